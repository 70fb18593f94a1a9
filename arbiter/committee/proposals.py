"""Parallel proposal generation across enabled proposers."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from arbiter.committee.models import AgentProposal, AgentWeights
from arbiter.contracts.models import Contract
from arbiter.events.collector import MessageCollector
from arbiter.exceptions import InsufficientProposalsError, ParticipantError
from arbiter.llm.base import BaseProposer
from arbiter.llm.models import ProposalRequest

logger = logging.getLogger(__name__)


class ProposalGenerator:
    """Fans a proposal request out to every proposer and joins the results."""

    def __init__(
        self,
        proposers: List[BaseProposer],
        min_proposals: int = 3,
        max_proposals_per_agent: int = 2,
        timeout_seconds: float = 60.0,
    ):
        """Initialize generator.

        Args:
            proposers: Enabled proposers, in turn order
            min_proposals: Minimum total proposals for the phase to succeed
            max_proposals_per_agent: Proposals requested from each proposer
            timeout_seconds: Upper bound for each proposer call
        """
        self.proposers = proposers
        self.min_proposals = min_proposals
        self.max_proposals_per_agent = max_proposals_per_agent
        self.timeout_seconds = timeout_seconds

    async def generate(
        self,
        contract: Contract,
        collector: MessageCollector,
        weights: Optional[AgentWeights] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> List[AgentProposal]:
        """Generate proposals from all proposers concurrently.

        A failed or timed-out proposer contributes no proposals. Each
        proposal is published as soon as its proposer returns.

        Args:
            contract: Contract under deliberation
            collector: Message collector for the deliberation
            weights: Current agent weights, attached to proposal messages
            context: Additional context passed to proposers

        Returns:
            Collected proposals, grouped by proposer in turn order

        Raises:
            InsufficientProposalsError: If fewer than ``min_proposals`` were collected
        """
        request = ProposalRequest(
            contract_id=contract.id,
            party_a=contract.party_a,
            party_b=contract.party_b,
            context=context or ({"topic": contract.topic} if contract.topic else {}),
        )

        tasks = [
            asyncio.create_task(self._safe_generate(proposer, request, collector, weights))
            for proposer in self.proposers
        ]
        results = await asyncio.gather(*tasks)

        proposals = [proposal for batch in results for proposal in batch]
        logger.info(
            f"Collected {len(proposals)} proposals from "
            f"{sum(1 for batch in results if batch)}/{len(self.proposers)} proposers"
        )

        if len(proposals) < self.min_proposals:
            raise InsufficientProposalsError(len(proposals), self.min_proposals)

        collector.proposals_complete(proposals)
        return proposals

    async def _safe_generate(
        self,
        proposer: BaseProposer,
        request: ProposalRequest,
        collector: MessageCollector,
        weights: Optional[AgentWeights],
    ) -> List[AgentProposal]:
        try:
            proposals = await asyncio.wait_for(
                proposer.generate_proposals(request, self.max_proposals_per_agent),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = ParticipantError(
                proposer.agent_id,
                f"timed out after {self.timeout_seconds}s",
                phase="proposing",
            )
            logger.warning(f"Proposer failed: {error}")
            return []
        except Exception as e:
            error = ParticipantError(proposer.agent_id, str(e), phase="proposing")
            logger.warning(f"Proposer failed: {error}")
            return []

        weight = weights.get(proposer.agent_id) if weights is not None else None
        for proposal in proposals:
            collector.proposal(proposal, weight=weight)
        return proposals
