"""Vote tallying and consensus result synthesis."""

import logging
from statistics import pvariance
from typing import List

from arbiter.committee.discussion import AnchorSnapshot
from arbiter.committee.models import (
    AgentProposal,
    AlternativeChoice,
    ConsensusMethod,
    ConsensusMetrics,
    ConsensusResult,
    EvidenceSource,
    QualityFlags,
    ReasoningBreakdown,
    Vote,
    VoteTally,
)
from arbiter.utils.helpers import truncate

logger = logging.getLogger(__name__)

MAX_MERGED_EVIDENCE = 3


def tally_votes(snapshot: AnchorSnapshot) -> VoteTally:
    """Cast one equal-weight vote per agent from its current anchor."""
    votes = [
        Vote(
            agent_id=anchor.agent_id,
            agent_name=anchor.agent_name,
            choice=anchor.winner_id,
            confidence=anchor.confidence,
            weight=1.0,
        )
        for anchor in snapshot.anchors()
    ]
    return VoteTally(round=snapshot.round, votes=votes)


class ConsensusBuilder:
    """Builds the final ConsensusResult from the last tally and final anchors."""

    def build(self, tally: VoteTally, anchors: List[AgentProposal]) -> ConsensusResult:
        """Build a unanimous or majority consensus.

        Args:
            tally: Votes of the last completed round
            anchors: Final anchor of every agent

        Returns:
            Consensus result

        Raises:
            ValueError: If the tally holds no votes
        """
        if tally.is_unanimous():
            winner = tally.votes[0].choice
            method = ConsensusMethod.UNANIMOUS
            reasoning = f"All participants unanimously agreed on '{winner}' as the winner."
        else:
            winner = tally.plurality_winner()
            method = ConsensusMethod.MAJORITY
            reasoning = (
                f"Round limit reached without unanimity; '{winner}' was selected "
                f"by plurality vote."
            )

        counts = tally.counts
        total = tally.total
        supporters = [anchor for anchor in anchors if anchor.winner_id == winner]
        dissenters = [anchor for anchor in anchors if anchor.winner_id != winner]

        merged_evidence = [
            EvidenceSource(
                source=truncate(anchor.rationale, 200),
                relevance=1.0,
                credibility=1.0,
                snippet=anchor.evidence[0] if anchor.evidence else truncate(anchor.rationale, 80),
            )
            for anchor in supporters[:MAX_MERGED_EVIDENCE]
        ]

        confidences = [anchor.confidence for anchor in anchors]
        confidence_variance = pvariance(confidences) if len(confidences) > 1 else 0.0

        alternatives = [
            AlternativeChoice(
                choice=choice,
                probability=count / total,
                reasoning="; ".join(
                    truncate(d.rationale, 80) for d in dissenters if d.winner_id == choice
                ),
            )
            for choice, count in sorted(counts.items())
            if choice != winner
        ]

        # Majority keeps full confidence; unanimity_level carries the dissent
        result = ConsensusResult(
            final_winner=winner,
            confidence_level=1.0,
            residual_uncertainty=0.0,
            merged_evidence=merged_evidence,
            synthesized_reasoning=reasoning,
            methodology=method,
            metrics=ConsensusMetrics(
                unanimity_level=counts.get(winner, 0) / total,
                confidence_variance=confidence_variance,
                evidence_overlap=0.0,
                reasoning=ReasoningBreakdown(
                    shared_points=[truncate(s.rationale, 80) for s in supporters[:MAX_MERGED_EVIDENCE]],
                    conflicting_points=[truncate(d.rationale, 80) for d in dissenters],
                ),
            ),
            alternative_choices=alternatives,
            quality_flags=QualityFlags(
                has_minority_dissent=counts.get(winner, 0) < total,
                has_insufficient_evidence=len(supporters) < 2,
                has_conflicting_evidence=False,
                requires_human_review=False,
            ),
        )

        logger.info(
            f"Consensus ({method.value}) reached: {winner} "
            f"with {counts.get(winner, 0)}/{total} votes"
        )
        return result
