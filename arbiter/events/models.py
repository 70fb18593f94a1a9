"""Deliberation message model used for audit history and live streaming."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field

from arbiter.models import WireModel
from arbiter.utils.helpers import generate_id, utc_now

DeliberationPhase = Literal["proposing", "discussion", "consensus", "completed"]
MessageType = Literal["proposal", "evaluation", "comparison", "vote", "synthesis", "progress"]


class ProgressInfo(WireModel):
    step: str
    percent_complete: int = Field(..., ge=0, le=100)


class MessageContent(WireModel):
    """Type-specific payload of a deliberation message."""

    text: Optional[str] = None
    winner: Optional[str] = None
    confidence: Optional[float] = None
    scores: Optional[Dict[str, float]] = None
    evidence: Optional[List[str]] = None
    reasoning: Optional[List[str]] = None
    progress: Optional[ProgressInfo] = None


class MessageMetadata(WireModel):
    timestamp: datetime = Field(default_factory=utc_now)
    round: Optional[int] = None
    processing_time_ms: Optional[int] = None
    token_usage: Optional[int] = None
    comparison_pair: Optional[str] = None


class DeliberationMessage(WireModel):
    """One atomic, timestamped event of a committee deliberation."""

    id: str
    contract_id: str
    phase: DeliberationPhase
    message_type: MessageType
    content: MessageContent = Field(default_factory=MessageContent)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    agent_id: Optional[str] = None
    agent_name: Optional[str] = None

    @property
    def timestamp(self) -> datetime:
        return self.metadata.timestamp

    @classmethod
    def proposal(
        cls,
        contract_id: str,
        agent_id: str,
        agent_name: str,
        winner: str,
        confidence: float,
        rationale: str,
        evidence: List[str],
        token_usage: int = 0,
        processing_time_ms: int = 0,
        weight: Optional[float] = None,
    ) -> "DeliberationMessage":
        scores = {"weight": weight} if weight is not None else None
        return cls(
            id=generate_id("proposal"),
            contract_id=contract_id,
            phase="proposing",
            message_type="proposal",
            content=MessageContent(
                text=rationale,
                winner=winner,
                confidence=confidence,
                evidence=list(evidence),
                scores=scores,
            ),
            metadata=MessageMetadata(
                token_usage=token_usage,
                processing_time_ms=processing_time_ms,
            ),
            agent_id=agent_id,
            agent_name=agent_name,
        )

    @classmethod
    def evaluation(
        cls,
        contract_id: str,
        text: str,
        scores: Dict[str, float],
        reasoning: List[str],
        round: Optional[int] = None,
        agent_id: Optional[str] = None,
        agent_name: Optional[str] = None,
        winner: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> "DeliberationMessage":
        return cls(
            id=generate_id("evaluation"),
            contract_id=contract_id,
            phase="discussion",
            message_type="evaluation",
            content=MessageContent(
                text=text,
                winner=winner,
                confidence=confidence,
                scores=dict(scores),
                reasoning=list(reasoning),
            ),
            metadata=MessageMetadata(round=round),
            agent_id=agent_id,
            agent_name=agent_name,
        )

    @classmethod
    def comparison(
        cls,
        contract_id: str,
        proposal_a_id: str,
        proposal_b_id: str,
        winner: str,
        score_a: float,
        score_b: float,
        reasoning: List[str],
        round: int,
    ) -> "DeliberationMessage":
        return cls(
            id=generate_id("comparison"),
            contract_id=contract_id,
            phase="discussion",
            message_type="comparison",
            content=MessageContent(
                text=f"Pairwise round {round}: {winner} preferred",
                winner=winner,
                scores={"A": score_a, "B": score_b},
                reasoning=list(reasoning),
            ),
            metadata=MessageMetadata(
                round=round,
                comparison_pair=f"{proposal_a_id} vs {proposal_b_id}",
            ),
        )

    @classmethod
    def vote(
        cls,
        contract_id: str,
        agent_id: str,
        agent_name: str,
        choice: str,
        confidence: float,
        weight: float,
        round: int,
    ) -> "DeliberationMessage":
        return cls(
            id=generate_id("vote"),
            contract_id=contract_id,
            phase="consensus",
            message_type="vote",
            content=MessageContent(
                text=f"{agent_name} votes for {choice}",
                winner=choice,
                confidence=confidence,
                scores={"weight": weight},
            ),
            metadata=MessageMetadata(round=round),
            agent_id=agent_id,
            agent_name=agent_name,
        )

    @classmethod
    def synthesis(
        cls,
        contract_id: str,
        final_winner: str,
        confidence: float,
        reasoning: str,
        method: str,
    ) -> "DeliberationMessage":
        return cls(
            id=generate_id("synthesis"),
            contract_id=contract_id,
            phase="consensus",
            message_type="synthesis",
            content=MessageContent(
                text=reasoning,
                winner=final_winner,
                confidence=confidence,
                reasoning=[f"method: {method}"],
            ),
        )

    @classmethod
    def progress(
        cls,
        contract_id: str,
        phase: DeliberationPhase,
        step: str,
        percent_complete: int,
    ) -> "DeliberationMessage":
        return cls(
            id=generate_id("progress"),
            contract_id=contract_id,
            phase=phase,
            message_type="progress",
            content=MessageContent(
                text=f"Progress: {step}",
                progress=ProgressInfo(step=step, percent_complete=percent_complete),
            ),
        )

    def summary(self) -> str:
        """Human-readable one-line summary."""
        agent = f"[{self.agent_name}] " if self.agent_name else ""
        time_str = self.timestamp.strftime("%H:%M:%S")
        confidence = (self.content.confidence or 0) * 100

        if self.message_type == "proposal":
            return f"{time_str} {agent}Proposal: {self.content.winner} (confidence: {confidence:.0f}%)"
        if self.message_type == "vote":
            return f"{time_str} {agent}Vote: {self.content.winner}"
        if self.message_type == "synthesis":
            return f"{time_str} Consensus: {self.content.winner} (confidence: {confidence:.0f}%)"
        if self.message_type == "progress" and self.content.progress:
            return f"{time_str} {self.content.progress.step}"
        return f"{time_str} {agent}{self.message_type.capitalize()}: {self.content.text}"

    def is_critical(self) -> bool:
        """Synthesis, votes and very confident proposals are high-impact."""
        if self.message_type in ("synthesis", "vote"):
            return True
        return self.message_type == "proposal" and (self.content.confidence or 0) > 0.9
