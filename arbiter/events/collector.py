"""Per-deliberation message builder that publishes through the event bus."""

import logging
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

from arbiter.events.bus import DeliberationEventBus
from arbiter.events.models import DeliberationMessage

if TYPE_CHECKING:
    from arbiter.committee.models import AgentProposal, ConsensusResult, Evaluation, VoteTally

logger = logging.getLogger(__name__)

PHASE_PROGRESS = {
    "proposing": ("Proposal generation started", 10),
    "discussion": ("Discussion started", 40),
    "consensus": ("Consensus building started", 80),
}


class MessageCollector:
    """Collects the messages of one deliberation and emits each as it is built."""

    def __init__(
        self,
        bus: DeliberationEventBus,
        contract_id: str,
        deliberation_id: str,
        phase_listener: Optional[Callable[[str], None]] = None,
    ):
        """Initialize collector.

        Args:
            bus: Event bus to publish through
            contract_id: Contract under deliberation
            deliberation_id: Deliberation identifier
            phase_listener: Called with the phase name whenever a phase starts
                and with "synthesizing" when the consensus is published
        """
        self.bus = bus
        self.contract_id = contract_id
        self.deliberation_id = deliberation_id
        self._phase_listener = phase_listener
        self._messages: List[DeliberationMessage] = []

    @property
    def messages(self) -> List[DeliberationMessage]:
        return list(self._messages)

    def count(self, message_type: Optional[str] = None) -> int:
        if message_type is None:
            return len(self._messages)
        return sum(1 for m in self._messages if m.message_type == message_type)

    def add(self, message: DeliberationMessage) -> DeliberationMessage:
        self._messages.append(message)
        self.bus.emit(self.contract_id, message)
        return message

    def start(self, agent_count: int) -> None:
        self.add(
            DeliberationMessage.progress(
                self.contract_id,
                "proposing",
                f"Committee deliberation started with {agent_count} agents",
                0,
            )
        )
        logger.info(
            f"Deliberation {self.deliberation_id} started for {self.contract_id} "
            f"({agent_count} agents)"
        )

    def start_phase(self, phase: str) -> None:
        if self._phase_listener is not None:
            self._phase_listener(phase)
        step, percent = PHASE_PROGRESS[phase]
        self.add(DeliberationMessage.progress(self.contract_id, phase, step, percent))

    def proposal(self, proposal: "AgentProposal", weight: Optional[float] = None) -> None:
        self.add(
            DeliberationMessage.proposal(
                contract_id=self.contract_id,
                agent_id=proposal.agent_id,
                agent_name=proposal.agent_name,
                winner=proposal.winner_id,
                confidence=proposal.confidence,
                rationale=proposal.rationale,
                evidence=proposal.evidence,
                token_usage=proposal.metadata.token_usage.total_tokens,
                processing_time_ms=proposal.metadata.processing_time_ms,
                weight=weight,
            )
        )
        logger.debug(
            f"Proposal collected from {proposal.agent_id}: {proposal.winner_id}"
        )

    def proposals_complete(self, proposals: List["AgentProposal"]) -> None:
        distribution: Dict[str, int] = {}
        for proposal in proposals:
            distribution[proposal.winner_id] = distribution.get(proposal.winner_id, 0) + 1
        breakdown = ", ".join(f"{k}: {v}" for k, v in sorted(distribution.items()))
        self.add(
            DeliberationMessage.progress(
                self.contract_id,
                "proposing",
                f"Proposal generation complete ({len(proposals)} proposals; {breakdown})",
                30,
            )
        )

    def stance_update(self, proposal: "AgentProposal", round: int, changed: bool) -> None:
        """Record an agent's restated or revised stance during live discussion."""
        action = "revised stance to" if changed else "maintained stance on"
        self.add(
            DeliberationMessage.evaluation(
                contract_id=self.contract_id,
                text=f"{proposal.agent_name} {action} {proposal.winner_id}",
                scores={"confidence": proposal.confidence},
                reasoning=[proposal.rationale],
                round=round,
                agent_id=proposal.agent_id,
                agent_name=proposal.agent_name,
                winner=proposal.winner_id,
                confidence=proposal.confidence,
            )
        )

    def evaluation(self, evaluation: "Evaluation") -> None:
        """Record a rule-based evaluation of a proposal."""
        scores = dict(evaluation.scores)
        scores["overall"] = evaluation.overall_score
        reasoning = [f"{name}: {score:.2f}" for name, score in evaluation.scores.items()]
        self.add(
            DeliberationMessage.evaluation(
                contract_id=self.contract_id,
                text=f"Rule-based evaluation of {evaluation.proposal_id} complete",
                scores=scores,
                reasoning=reasoning + list(evaluation.reasoning),
                agent_id=evaluation.agent_id,
            )
        )

    def comparison(
        self,
        proposal_a_id: str,
        proposal_b_id: str,
        winner: str,
        score_a: float,
        score_b: float,
        reasoning: List[str],
        round: int,
    ) -> None:
        self.add(
            DeliberationMessage.comparison(
                self.contract_id,
                proposal_a_id,
                proposal_b_id,
                winner,
                score_a,
                score_b,
                reasoning,
                round,
            )
        )

    def discussion_complete(self, evaluation_count: int) -> None:
        self.add(
            DeliberationMessage.progress(
                self.contract_id,
                "discussion",
                f"Discussion complete ({evaluation_count} evaluations)",
                70,
            )
        )

    def votes(self, tally: "VoteTally") -> None:
        for vote in tally.votes:
            self.add(
                DeliberationMessage.vote(
                    contract_id=self.contract_id,
                    agent_id=vote.agent_id,
                    agent_name=vote.agent_name,
                    choice=vote.choice,
                    confidence=vote.confidence,
                    weight=vote.weight,
                    round=tally.round,
                )
            )

    def synthesis(self, consensus: "ConsensusResult") -> None:
        if self._phase_listener is not None:
            self._phase_listener("synthesizing")
        self.add(
            DeliberationMessage.synthesis(
                contract_id=self.contract_id,
                final_winner=consensus.final_winner,
                confidence=consensus.confidence_level,
                reasoning=consensus.synthesized_reasoning,
                method=consensus.methodology.value,
            )
        )

    def complete(self, winner_id: str) -> None:
        self.add(
            DeliberationMessage.progress(
                self.contract_id,
                "completed",
                f"Deliberation complete: winner {winner_id}",
                100,
            )
        )
        logger.info(f"Deliberation {self.deliberation_id} completed: {winner_id}")

    def fail(self, reason: str, phase: Optional[str] = None) -> None:
        self.add(
            DeliberationMessage.progress(
                self.contract_id,
                "completed",
                f"Deliberation failed during {phase or 'unknown'} phase: {reason}",
                100,
            )
        )
