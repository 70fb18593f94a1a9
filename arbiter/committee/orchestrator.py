"""Committee deliberation: proposals, discussion and voting rounds, synthesis."""

import logging
import time
from typing import Any, Dict, List, Optional

from arbiter.committee.consensus import ConsensusBuilder, tally_votes
from arbiter.committee.discussion import (
    AnchorSnapshot,
    DiscussionStrategy,
    build_discussion_strategy,
)
from arbiter.committee.models import (
    AgentProposal,
    AgentWeights,
    CostBreakdown,
    DeliberationMetrics,
    DeliberationResult,
    Evaluation,
    VoteTally,
)
from arbiter.committee.proposals import ProposalGenerator
from arbiter.config import Settings
from arbiter.contracts.models import Contract
from arbiter.events.collector import MessageCollector
from arbiter.llm.base import BaseProposer

logger = logging.getLogger(__name__)


class CommitteeOrchestrator:
    """Runs one committee deliberation for a contract.

    Voting rounds repeat discussion followed by a tally until every agent's
    anchor names the same winner or the round cap is reached, after which the
    plurality winner is taken.
    """

    def __init__(
        self,
        proposal_generator: ProposalGenerator,
        discussion_strategy: DiscussionStrategy,
        consensus_builder: Optional[ConsensusBuilder] = None,
        max_voting_rounds: int = 10,
    ):
        self.proposal_generator = proposal_generator
        self.discussion_strategy = discussion_strategy
        self.consensus_builder = consensus_builder or ConsensusBuilder()
        self.max_voting_rounds = max(1, max_voting_rounds)

    @classmethod
    def from_settings(cls, settings: Settings, proposers: List[BaseProposer]) -> "CommitteeOrchestrator":
        generator = ProposalGenerator(
            proposers,
            min_proposals=settings.committee_min_proposals,
            max_proposals_per_agent=settings.committee_max_proposals_per_agent,
            timeout_seconds=settings.proposer_timeout_seconds,
        )
        return cls(
            generator,
            build_discussion_strategy(settings, proposers),
            max_voting_rounds=settings.committee_max_voting_rounds,
        )

    @property
    def proposers(self) -> List[BaseProposer]:
        return self.proposal_generator.proposers

    async def deliberate(
        self,
        contract: Contract,
        collector: MessageCollector,
        weights: Optional[AgentWeights] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> DeliberationResult:
        """Deliberate on a contract and return the committee's verdict.

        Args:
            contract: Contract under deliberation
            collector: Message collector for the deliberation
            weights: Current agent weights
            context: Additional context passed to proposers

        Returns:
            Deliberation result with consensus, final anchors and metrics

        Raises:
            InsufficientProposalsError: If the proposal phase collected too few proposals
        """
        start = time.monotonic()
        collector.start(len(self.proposers))

        collector.start_phase("proposing")
        proposals = await self.proposal_generator.generate(contract, collector, weights, context)

        snapshot = AnchorSnapshot.seed(proposals)
        max_rounds = self.max_voting_rounds if self.discussion_strategy.revises_stances else 1
        tallies: List[VoteTally] = []
        evaluations: List[Evaluation] = []

        for _ in range(max_rounds):
            snapshot = snapshot.next_round()

            collector.start_phase("discussion")
            round_evaluations = await self.discussion_strategy.run(
                snapshot, proposals, contract, collector
            )
            evaluations.extend(round_evaluations)
            collector.discussion_complete(len(round_evaluations))
            logger.info(f"Discussion round {snapshot.round} completed")

            collector.start_phase("consensus")
            tally = tally_votes(snapshot)
            tallies.append(tally)
            collector.votes(tally)

            if tally.is_unanimous():
                logger.info(f"Unanimity achieved in round {snapshot.round}: {tally.votes[0].choice}")
                break

            logger.info(
                f"Unanimity not reached in round {snapshot.round}, choices: "
                f"{', '.join(sorted(tally.counts))}"
            )

        final_anchors = snapshot.anchors()
        consensus = self.consensus_builder.build(tallies[-1], final_anchors)
        collector.synthesis(consensus)

        deliberation_time_ms = int((time.monotonic() - start) * 1000)
        metrics = DeliberationMetrics(
            total_proposals=len(proposals),
            total_evaluations=len(evaluations),
            rounds_completed=len(tallies),
            deliberation_time_ms=deliberation_time_ms,
            consensus_level=consensus.metrics.unanimity_level,
            cost_breakdown=self._cost_breakdown(proposals, final_anchors, evaluations),
        )

        logger.info(
            f"Committee deliberation for {contract.id} completed: "
            f"{consensus.final_winner} ({consensus.methodology.value}) in {deliberation_time_ms}ms"
        )

        return DeliberationResult(
            deliberation_id=collector.deliberation_id,
            contract_id=contract.id,
            consensus=consensus,
            proposals=proposals,
            final_anchors=final_anchors,
            evaluations=evaluations,
            tallies=tallies,
            metrics=metrics,
        )

    @staticmethod
    def _cost_breakdown(
        proposals: List[AgentProposal],
        final_anchors: List[AgentProposal],
        evaluations: List[Evaluation],
    ) -> CostBreakdown:
        proposal_ids = {proposal.id for proposal in proposals}
        revised = [anchor for anchor in final_anchors if anchor.id not in proposal_ids]

        proposer_tokens = sum(p.metadata.token_usage.total_tokens for p in proposals)
        proposer_tokens += sum(
            e.metadata.token_usage or 0
            for e in evaluations
            if e.metadata.method == "discussion_statement"
        )
        judge_tokens = sum(
            e.metadata.token_usage or 0
            for e in evaluations
            if e.metadata.method != "discussion_statement"
        )
        total_cost = sum(p.metadata.cost_estimate for p in proposals + revised)

        return CostBreakdown(
            proposer_tokens=proposer_tokens,
            judge_tokens=judge_tokens,
            total_cost_usd=round(total_cost, 6),
        )
