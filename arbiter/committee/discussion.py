"""Discussion strategies operating on one anchor proposal per agent."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Tuple

from arbiter.committee.judges import LLMJudge, RuleBasedJudge, RuleCriteria
from arbiter.committee.models import (
    AgentProposal,
    Evaluation,
    EvaluationMetadata,
    PairwiseRecord,
)
from arbiter.config import Settings
from arbiter.contracts.models import Contract
from arbiter.events.collector import MessageCollector
from arbiter.exceptions import ParticipantError
from arbiter.llm.base import BaseProposer
from arbiter.llm.manager import ProposerRegistry
from arbiter.llm.models import DiscussionContext, PeerStance, ProposalRequest
from arbiter.utils.helpers import clamp, generate_id, truncate

logger = logging.getLogger(__name__)


class AnchorSnapshot:
    """Versioned per-round view of every agent's current stance.

    Each voting round works on its own copy seeded from the previous round.
    Turns replace anchors in the current copy only, so agents later in a
    round see stances updated earlier in that same round while earlier
    rounds stay untouched.
    """

    def __init__(self, anchors: Dict[str, AgentProposal], round: int = 0, version: int = 0):
        self._anchors = dict(anchors)
        self.round = round
        self.version = version

    @classmethod
    def seed(cls, proposals: Iterable[AgentProposal]) -> "AnchorSnapshot":
        """Take each agent's first proposal as its anchor, in order of first appearance."""
        anchors: Dict[str, AgentProposal] = {}
        for proposal in proposals:
            anchors.setdefault(proposal.agent_id, proposal)
        return cls(anchors)

    def next_round(self) -> "AnchorSnapshot":
        return AnchorSnapshot(self._anchors, round=self.round + 1)

    def replace(self, agent_id: str, proposal: AgentProposal) -> None:
        if agent_id not in self._anchors:
            raise KeyError(f"No anchor for agent '{agent_id}'")
        self._anchors[agent_id] = proposal
        self.version += 1

    def get(self, agent_id: str) -> AgentProposal:
        return self._anchors[agent_id]

    @property
    def agent_ids(self) -> List[str]:
        return list(self._anchors.keys())

    def anchors(self) -> List[AgentProposal]:
        return list(self._anchors.values())

    def winners(self) -> Dict[str, str]:
        return {agent_id: anchor.winner_id for agent_id, anchor in self._anchors.items()}

    def peers_of(self, agent_id: str, rationale_chars: int = 200) -> List[PeerStance]:
        """Summaries of every other agent's current anchor."""
        return [
            PeerStance(
                agent_id=anchor.agent_id,
                agent_name=anchor.agent_name,
                winner=anchor.winner_id,
                confidence=anchor.confidence,
                rationale=truncate(anchor.rationale, rationale_chars),
            )
            for other_id, anchor in self._anchors.items()
            if other_id != agent_id
        ]

    def __len__(self) -> int:
        return len(self._anchors)


class DiscussionStrategy(ABC):
    """Policy that refines or scores anchors during one voting round."""

    name: str = "base"
    revises_stances: bool = True

    @abstractmethod
    async def run(
        self,
        snapshot: AnchorSnapshot,
        proposals: List[AgentProposal],
        contract: Contract,
        collector: MessageCollector,
    ) -> List[Evaluation]:
        """Run the discussion for the snapshot's round, updating anchors in place.

        Args:
            snapshot: Anchors for the current round
            proposals: All proposals from the proposal phase
            contract: Contract under deliberation
            collector: Message collector for the deliberation

        Returns:
            Evaluations produced during the round
        """
        pass


class LiveDiscussionStrategy(DiscussionStrategy):
    """Agents take turns restating or revising their stance after reading their peers."""

    name = "live"
    revises_stances = True

    def __init__(
        self,
        proposers: List[BaseProposer],
        discussion_rounds: int = 1,
        timeout_seconds: float = 60.0,
        peer_rationale_chars: int = 200,
    ):
        self.proposers = {proposer.agent_id: proposer for proposer in proposers}
        self.discussion_rounds = max(1, discussion_rounds)
        self.timeout_seconds = timeout_seconds
        self.peer_rationale_chars = peer_rationale_chars

    async def run(
        self,
        snapshot: AnchorSnapshot,
        proposals: List[AgentProposal],
        contract: Contract,
        collector: MessageCollector,
    ) -> List[Evaluation]:
        evaluations = []

        for turn_pass in range(1, self.discussion_rounds + 1):
            logger.info(
                f"Discussion round {snapshot.round} pass {turn_pass} "
                f"({len(snapshot)} participants)"
            )
            # Turns are sequential: each agent reads anchors already updated this round
            for agent_id in snapshot.agent_ids:
                proposer = self.proposers.get(agent_id)
                if proposer is None:
                    continue

                evaluation = await self._take_turn(proposer, snapshot, contract, collector)
                if evaluation is not None:
                    evaluations.append(evaluation)

        return evaluations

    async def _take_turn(
        self,
        proposer: BaseProposer,
        snapshot: AnchorSnapshot,
        contract: Contract,
        collector: MessageCollector,
    ) -> Optional[Evaluation]:
        agent_id = proposer.agent_id
        current = snapshot.get(agent_id)
        request = ProposalRequest(
            contract_id=contract.id,
            party_a=contract.party_a,
            party_b=contract.party_b,
            discussion=DiscussionContext(
                round=snapshot.round,
                peers=snapshot.peers_of(agent_id, self.peer_rationale_chars),
                own_winner=current.winner_id,
                own_rationale=truncate(current.rationale, self.peer_rationale_chars),
            ),
        )

        start = time.monotonic()
        try:
            updates = await asyncio.wait_for(
                proposer.generate_proposals(request, 1),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = ParticipantError(agent_id, f"timed out after {self.timeout_seconds}s", phase="discussion")
            logger.warning(f"Discussion statement failed: {error}")
            return None
        except Exception as e:
            error = ParticipantError(agent_id, str(e), phase="discussion")
            logger.warning(f"Discussion statement failed: {error}")
            return None

        if not updates:
            logger.warning(f"{agent_id} produced no discussion statement in round {snapshot.round}")
            return None

        update = updates[0]
        changed = update.winner_id != current.winner_id
        snapshot.replace(agent_id, update)
        collector.stance_update(update, round=snapshot.round, changed=changed)

        if changed:
            logger.info(f"{agent_id} revised stance: {current.winner_id} -> {update.winner_id}")

        return Evaluation(
            id=generate_id("disc"),
            proposal_id=update.id,
            agent_id=agent_id,
            evaluator_id="committee_discussion",
            evaluator_name="Committee Discussion",
            scores={
                "clarity": clamp(update.quality_score()),
                "relevance": 0.8 if update.has_sufficient_evidence() else 0.5,
            },
            overall_score=update.confidence,
            confidence=0.75,
            reasoning=[truncate(update.rationale, self.peer_rationale_chars)],
            metadata=EvaluationMetadata(
                evaluation_time_ms=int((time.monotonic() - start) * 1000),
                method="discussion_statement",
                token_usage=update.metadata.token_usage.total_tokens,
            ),
        )


class RulePairwiseStrategy(DiscussionStrategy):
    """Scores proposals with structural rules plus LLM pairwise comparison.

    Stances are not revised: each agent's anchor becomes its best-scoring
    proposal, so a single round is enough.
    """

    name = "pairwise"
    revises_stances = False

    def __init__(
        self,
        rule_judge: RuleBasedJudge,
        llm_judge: Optional[LLMJudge] = None,
        pairwise_rounds: int = 3,
        rule_weight: float = 0.4,
        llm_weight: float = 0.6,
    ):
        self.rule_judge = rule_judge
        self.llm_judge = llm_judge
        self.pairwise_rounds = pairwise_rounds
        self.rule_weight = rule_weight
        self.llm_weight = llm_weight

    async def run(
        self,
        snapshot: AnchorSnapshot,
        proposals: List[AgentProposal],
        contract: Contract,
        collector: MessageCollector,
    ) -> List[Evaluation]:
        start = time.monotonic()
        rule_scores = self.rule_judge.evaluate_all(proposals)
        pairwise: Dict[str, List[PairwiseRecord]] = {proposal.id: [] for proposal in proposals}

        if self.llm_judge is not None:
            for proposal_a, proposal_b in combinations(proposals, 2):
                await self._compare_pair(proposal_a, proposal_b, pairwise, collector)

        evaluations = []
        for proposal in proposals:
            scores = rule_scores[proposal.id]
            records = pairwise[proposal.id]
            evaluation = Evaluation(
                id=generate_id("eval"),
                proposal_id=proposal.id,
                agent_id=proposal.agent_id,
                evaluator_id="rule_pairwise",
                evaluator_name="Rule + Pairwise Judge",
                scores=scores.as_dict(),
                rule_based_score=scores.overall,
                pairwise_results=records,
                overall_score=0.0,
                confidence=proposal.confidence,
                reasoning=[],
                metadata=EvaluationMetadata(
                    evaluation_time_ms=int((time.monotonic() - start) * 1000),
                    method="rule_pairwise",
                ),
            )
            if records:
                overall = evaluation.weighted_score(self.rule_weight, self.llm_weight)
            else:
                overall = scores.overall
            evaluation = evaluation.model_copy(
                update={
                    "overall_score": clamp(overall),
                    "reasoning": [
                        f"Rule-based score: {scores.overall:.2f}",
                        f"Pairwise win rate: {evaluation.pairwise_win_rate():.2f} over {len(records)} comparisons",
                    ],
                }
            )
            collector.evaluation(evaluation)
            evaluations.append(evaluation)

        self._select_anchors(snapshot, proposals, evaluations)
        return evaluations

    async def _compare_pair(
        self,
        proposal_a: AgentProposal,
        proposal_b: AgentProposal,
        pairwise: Dict[str, List[PairwiseRecord]],
        collector: MessageCollector,
    ) -> None:
        try:
            comparison = await self.llm_judge.compare(proposal_a, proposal_b, self.pairwise_rounds)
        except ParticipantError as e:
            logger.warning(f"Pairwise comparison {proposal_a.id} vs {proposal_b.id} failed: {e}")
            return

        for judgment in comparison.judgments:
            collector.comparison(
                proposal_a.id,
                proposal_b.id,
                judgment.winner,
                judgment.score_a,
                judgment.score_b,
                judgment.reasoning,
                judgment.round,
            )

        result_a, result_b = _pair_results(comparison.winner)
        reasoning = "; ".join(comparison.reasoning[:3])
        pairwise[proposal_a.id].append(
            PairwiseRecord(
                opponent_proposal_id=proposal_b.id,
                result=result_a,
                score=clamp(comparison.score_a),
                reasoning=reasoning,
            )
        )
        pairwise[proposal_b.id].append(
            PairwiseRecord(
                opponent_proposal_id=proposal_a.id,
                result=result_b,
                score=clamp(comparison.score_b),
                reasoning=reasoning,
            )
        )

    @staticmethod
    def _select_anchors(
        snapshot: AnchorSnapshot,
        proposals: List[AgentProposal],
        evaluations: List[Evaluation],
    ) -> None:
        by_id = {proposal.id: proposal for proposal in proposals}
        best: Dict[str, Tuple[float, AgentProposal]] = {}
        for evaluation in evaluations:
            proposal = by_id[evaluation.proposal_id]
            current = best.get(proposal.agent_id)
            if current is None or evaluation.overall_score > current[0]:
                best[proposal.agent_id] = (evaluation.overall_score, proposal)

        for agent_id in snapshot.agent_ids:
            if agent_id in best and best[agent_id][1].id != snapshot.get(agent_id).id:
                snapshot.replace(agent_id, best[agent_id][1])


def _pair_results(winner: str) -> Tuple[str, str]:
    if winner == "A":
        return "win", "lose"
    if winner == "B":
        return "lose", "win"
    return "tie", "tie"


def build_discussion_strategy(
    settings: Settings,
    proposers: List[BaseProposer],
    judge_provider: Optional[BaseProposer] = None,
) -> DiscussionStrategy:
    """Select the discussion policy from configuration.

    Args:
        settings: Application settings
        proposers: Enabled proposers
        judge_provider: Provider backing the pairwise judge. If None, the
            configured judge provider is looked up among the proposers.

    Returns:
        Configured discussion strategy

    Raises:
        ValueError: If the configured strategy is unknown
    """
    strategy = settings.committee_discussion_strategy.strip().lower()

    if strategy == "live":
        return LiveDiscussionStrategy(
            proposers,
            discussion_rounds=settings.committee_discussion_rounds,
            timeout_seconds=settings.proposer_timeout_seconds,
            peer_rationale_chars=settings.peer_rationale_chars,
        )

    if strategy == "pairwise":
        if judge_provider is None:
            wanted = ProposerRegistry.canonical_name(settings.judge_provider)
            judge_provider = next((p for p in proposers if p.agent_id == wanted), None)
            if judge_provider is None and proposers:
                judge_provider = proposers[0]

        llm_judge = None
        if judge_provider is not None:
            llm_judge = LLMJudge(
                judge_provider,
                randomize_order=settings.judge_randomize_order,
                mask_agent_names=settings.judge_mask_agent_names,
                normalize_length=settings.judge_normalize_length,
                timeout_seconds=settings.proposer_timeout_seconds,
            )
        return RulePairwiseStrategy(
            RuleBasedJudge(RuleCriteria.from_settings(settings)),
            llm_judge,
            pairwise_rounds=settings.judge_pairwise_rounds,
            rule_weight=settings.judge_rule_based_weight,
            llm_weight=settings.judge_llm_weight,
        )

    raise ValueError(f"Unknown discussion strategy '{settings.committee_discussion_strategy}'")
