"""Decision records, outcomes and deliberation states."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from arbiter.committee.models import ConsensusResult, DeliberationResult
from arbiter.events.models import DeliberationMessage
from arbiter.models import WireModel
from arbiter.utils.helpers import generate_id, utc_now


class DeliberationState(str, Enum):
    """Pipeline state of one deliberation."""

    IDLE = "idle"
    PROPOSING = "proposing"
    DISCUSSING = "discussing"
    SYNTHESIZING = "synthesizing"
    SETTLING = "settling"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliberationState.DONE, DeliberationState.FAILED)


class DecisionRecord(WireModel):
    """Persisted outcome of a successful deliberation."""

    id: str
    contract_id: str
    deliberation_id: str
    winner_id: str
    confidence: float
    reasoning: str
    evidence: List[str] = Field(default_factory=list)
    methodology: str
    metrics: Dict[str, Any] = Field(default_factory=dict)
    consensus: ConsensusResult
    transaction_ref: str
    messages: List[DeliberationMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_deliberation(
        cls,
        result: DeliberationResult,
        transaction_ref: str,
        messages: List[DeliberationMessage],
    ) -> "DecisionRecord":
        consensus = result.consensus
        return cls(
            id=generate_id("decision"),
            contract_id=result.contract_id,
            deliberation_id=result.deliberation_id,
            winner_id=consensus.final_winner,
            confidence=consensus.confidence_level,
            reasoning=consensus.synthesized_reasoning,
            evidence=[e.snippet or e.source for e in consensus.merged_evidence],
            methodology=consensus.methodology.value,
            metrics=result.metrics.to_wire(),
            consensus=consensus,
            transaction_ref=transaction_ref,
            messages=messages,
        )


class DecisionOutcome(BaseModel):
    """Structured result returned at the decision orchestrator boundary."""

    success: bool
    contract_id: str
    deliberation_id: Optional[str] = None
    winner_id: Optional[str] = None
    decision_id: Optional[str] = None
    transaction_ref: Optional[str] = None
    methodology: Optional[str] = None
    reason: Optional[str] = None
    phase: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def already_decided(self) -> bool:
        return self.error_code == "already_decided"

    @classmethod
    def succeeded(cls, record: DecisionRecord) -> "DecisionOutcome":
        return cls(
            success=True,
            contract_id=record.contract_id,
            deliberation_id=record.deliberation_id,
            winner_id=record.winner_id,
            decision_id=record.id,
            transaction_ref=record.transaction_ref,
            methodology=record.methodology,
        )

    @classmethod
    def failed(
        cls,
        contract_id: str,
        reason: str,
        phase: Optional[str] = None,
        error_code: Optional[str] = None,
        deliberation_id: Optional[str] = None,
        winner_id: Optional[str] = None,
        decision_id: Optional[str] = None,
    ) -> "DecisionOutcome":
        return cls(
            success=False,
            contract_id=contract_id,
            deliberation_id=deliberation_id,
            winner_id=winner_id,
            decision_id=decision_id,
            reason=reason,
            phase=phase,
            error_code=error_code,
        )
