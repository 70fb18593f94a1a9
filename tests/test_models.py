"""Tests for contract, committee and message models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from arbiter.committee.models import (
    AgentProposal,
    AgentWeights,
    ConsensusMethod,
    ConsensusMetrics,
    ConsensusResult,
    Evaluation,
    EvaluationMetadata,
    EvidenceSource,
    PairwiseRecord,
    QualityFlags,
    TokenUsage,
    Vote,
    VoteTally,
    estimate_cost,
)
from arbiter.contracts.models import Choice, Contract, ContractStatus, Party
from arbiter.events.models import DeliberationMessage
from arbiter.exceptions import NotReadyError
from arbiter.utils.helpers import utc_now

from tests.conftest import make_contract


def _proposal(agent_id="claude", winner="alice", confidence=0.8, evidence=None, rationale=None):
    return AgentProposal(
        id=f"{agent_id}_p",
        agent_id=agent_id,
        agent_name=agent_id.title(),
        contract_id="contract-1",
        winner_id=winner,
        confidence=confidence,
        rationale=rationale or "Delivery logs show the goods arrived before the deadline.",
        evidence=evidence or [],
    )


class TestContract:
    def test_can_decide_after_betting_closed_and_ended(self):
        contract = make_contract()
        assert contract.can_decide_winner(utc_now())

    def test_cannot_decide_before_end_time(self):
        contract = make_contract(ends_delta=timedelta(minutes=5))
        assert not contract.can_decide_winner(utc_now())

    def test_cannot_decide_while_betting_open(self):
        contract = make_contract(status=ContractStatus.BETTING_OPEN)
        assert not contract.can_decide_winner(utc_now())

    def test_set_winner_moves_to_decided(self):
        contract = make_contract()
        contract.set_winner("bob", utc_now())
        assert contract.status == ContractStatus.DECIDED
        assert contract.winner_id == "bob"

    def test_set_winner_rejects_unknown_party(self):
        contract = make_contract()
        with pytest.raises(ValueError):
            contract.set_winner("mallory", utc_now())
        assert contract.winner_id is None

    def test_set_winner_requires_eligibility(self):
        contract = make_contract(status=ContractStatus.BETTING_OPEN)
        with pytest.raises(NotReadyError):
            contract.set_winner("alice", utc_now())

    def test_winner_requires_decided_status(self):
        with pytest.raises(ValidationError):
            Contract(
                id="c",
                status=ContractStatus.BETTING_CLOSED,
                betting_end_time=utc_now(),
                party_a=Party(id="a", name="A"),
                party_b=Party(id="b", name="B"),
                winner_id="a",
            )

    def test_close_betting(self):
        contract = make_contract(status=ContractStatus.BETTING_OPEN)
        contract.close_betting()
        assert contract.status == ContractStatus.BETTING_CLOSED

    def test_close_betting_rejected_once_decided(self):
        contract = make_contract()
        contract.set_winner("alice", utc_now())
        with pytest.raises(NotReadyError):
            contract.close_betting()

    def test_betting_open_until_end_time(self):
        contract = make_contract(status=ContractStatus.BETTING_OPEN, ends_delta=timedelta(minutes=5))
        assert contract.is_betting_open(utc_now())
        assert not contract.is_betting_open(utc_now() + timedelta(minutes=6))
        assert not make_contract(ends_delta=timedelta(minutes=5)).is_betting_open(utc_now())


class TestChoice:
    def test_from_party_id(self):
        assert Choice.from_party_id("alice", "alice", "bob") is Choice.A
        assert Choice.from_party_id("bob", "alice", "bob") is Choice.B
        assert Choice.from_party_id("carol", "alice", "bob") is Choice.NONE

    def test_to_party_id(self):
        assert Choice.B.to_party_id("alice", "bob") == "bob"
        assert Choice.NONE.to_party_id("alice", "bob") is None


class TestAgentProposal:
    def test_confidence_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            _proposal(confidence=1.2)

    def test_blank_rationale_rejected(self):
        with pytest.raises(ValidationError):
            _proposal(rationale="   ")

    def test_frozen(self):
        proposal = _proposal()
        with pytest.raises(ValidationError):
            proposal.winner_id = "bob"

    def test_quality_score_caps(self):
        proposal = _proposal(confidence=1.0, evidence=["e"] * 10, rationale="x" * 1000)
        assert proposal.quality_score() == pytest.approx(1.0)

    def test_wire_shape_uses_camel_case(self):
        wire = _proposal().to_wire()
        assert wire["winnerId"] == "alice"
        assert wire["metadata"]["tokenUsage"] == {"promptTokens": 0, "completionTokens": 0}


class TestEvaluation:
    def _evaluation(self, results):
        return Evaluation(
            id="eval-1",
            proposal_id="p1",
            evaluator_id="judge",
            evaluator_name="Judge",
            scores={"completeness": 0.5},
            rule_based_score=0.5,
            pairwise_results=[
                PairwiseRecord(opponent_proposal_id=f"p{i}", result=result, score=0.5)
                for i, result in enumerate(results)
            ],
            overall_score=0.5,
            confidence=0.7,
            metadata=EvaluationMetadata(method="rule_pairwise"),
        )

    def test_pairwise_win_rate_counts_ties_as_half(self):
        evaluation = self._evaluation(["win", "tie", "lose", "win"])
        assert evaluation.pairwise_win_rate() == pytest.approx(2.5 / 4)

    def test_weighted_score(self):
        evaluation = self._evaluation(["win", "win"])
        assert evaluation.weighted_score(0.4, 0.6) == pytest.approx(0.4 * 0.5 + 0.6 * 1.0)

    def test_no_comparisons_gives_zero_win_rate(self):
        assert self._evaluation([]).pairwise_win_rate() == 0.0

    def test_scores_validated(self):
        with pytest.raises(ValidationError):
            Evaluation(
                id="e",
                proposal_id="p",
                evaluator_id="j",
                evaluator_name="J",
                scores={"clarity": 1.5},
                overall_score=0.5,
                confidence=0.5,
                metadata=EvaluationMetadata(method="rule_pairwise"),
            )


class TestConsensusResult:
    def test_confidence_and_uncertainty_must_sum_to_one(self):
        with pytest.raises(ValidationError):
            ConsensusResult(
                final_winner="alice",
                confidence_level=0.8,
                residual_uncertainty=0.5,
                synthesized_reasoning="r",
                methodology=ConsensusMethod.UNANIMOUS,
                metrics=ConsensusMetrics(unanimity_level=1.0),
            )

    def test_tolerance_accepted(self):
        result = ConsensusResult(
            final_winner="alice",
            confidence_level=0.7,
            residual_uncertainty=0.305,
            synthesized_reasoning="r",
            methodology=ConsensusMethod.MAJORITY,
            metrics=ConsensusMetrics(unanimity_level=0.67),
        )
        assert result.consensus_strength() == "moderate"
        assert "Insufficient evidence base" in result.risk_factors()

    def test_quality_threshold_needs_two_evidence_sources(self):
        evidence = [EvidenceSource(source="delivery log", relevance=0.9, credibility=0.8)]
        single = _consensus(merged_evidence=evidence)
        double = _consensus(merged_evidence=evidence * 2)

        assert not single.meets_quality_threshold()
        assert double.meets_quality_threshold()
        assert not _consensus(
            confidence_level=0.6, residual_uncertainty=0.4, merged_evidence=evidence * 2
        ).meets_quality_threshold()

    def test_unanimous_result_needs_no_review(self):
        assert not _consensus().recommends_human_review()

    def test_majority_with_dissent_recommends_review(self):
        result = _consensus(
            methodology=ConsensusMethod.MAJORITY,
            metrics=ConsensusMetrics(unanimity_level=2 / 3),
            quality_flags=QualityFlags(has_minority_dissent=True),
        )
        assert result.confidence_level == 1.0
        assert result.recommends_human_review()

    def test_explicit_review_flag_and_low_confidence(self):
        assert _consensus(
            quality_flags=QualityFlags(requires_human_review=True)
        ).recommends_human_review()
        assert _consensus(confidence_level=0.5, residual_uncertainty=0.5).recommends_human_review()

    def test_audit_summary(self):
        evidence = [
            EvidenceSource(source="delivery log", relevance=0.9, credibility=0.9),
            EvidenceSource(source="forum post", relevance=0.9, credibility=0.3),
        ]
        summary = _consensus(merged_evidence=evidence).audit_summary()

        assert summary["decision"] == {
            "winner": "alice",
            "confidence": 1.0,
            "uncertainty": 0.0,
            "methodology": "unanimous",
        }
        assert summary["consensus"]["strength"] == "strong"
        assert summary["consensus"]["evidenceCount"] == 2
        assert summary["consensus"]["highQualityEvidenceCount"] == 1
        assert summary["quality"]["meetsThreshold"] is True
        assert summary["quality"]["recommendsHumanReview"] is False
        assert summary["quality"]["riskFactors"] == ["Insufficient evidence base"]


def _consensus(**overrides):
    fields = {
        "final_winner": "alice",
        "confidence_level": 1.0,
        "residual_uncertainty": 0.0,
        "synthesized_reasoning": "All agents agree alice delivered on time.",
        "methodology": ConsensusMethod.UNANIMOUS,
        "metrics": ConsensusMetrics(unanimity_level=1.0),
    }
    fields.update(overrides)
    return ConsensusResult(**fields)


class TestVoteTally:
    def _tally(self, choices):
        return VoteTally(
            round=1,
            votes=[
                Vote(agent_id=f"agent{i}", agent_name=f"Agent {i}", choice=c, confidence=0.8)
                for i, c in enumerate(choices)
            ],
        )

    def test_unanimous(self):
        assert self._tally(["alice", "alice"]).is_unanimous()
        assert not self._tally(["alice", "bob"]).is_unanimous()

    def test_plurality_winner(self):
        assert self._tally(["bob", "alice", "bob"]).plurality_winner() == "bob"

    def test_plurality_tie_breaks_lexicographically(self):
        assert self._tally(["bob", "alice"]).plurality_winner() == "alice"

    def test_empty_tally_has_no_winner(self):
        tally = self._tally([])
        assert not tally.is_unanimous()
        with pytest.raises(ValueError):
            tally.plurality_winner()


class TestAgentWeights:
    def test_reward_clamped_to_max(self):
        weights = AgentWeights()
        assert weights.update("claude", True) == 1.0

    def test_penalty_accumulates_to_min(self):
        weights = AgentWeights({"openai": 0.12})
        assert weights.update("openai", False) == pytest.approx(0.1)
        assert weights.update("openai", False) == pytest.approx(0.1)

    def test_apply_outcome(self):
        weights = AgentWeights({"claude": 0.5, "openai": 0.5})
        updated = weights.apply_outcome(
            [_proposal("claude", "alice"), _proposal("openai", "bob")], "alice"
        )
        assert updated == {"claude": pytest.approx(0.55), "openai": pytest.approx(0.48)}


def test_estimate_cost_uses_model_prefix():
    usage = TokenUsage(prompt_tokens=1000, completion_tokens=1000)
    assert estimate_cost("claude-3-5-sonnet", usage) == pytest.approx(0.018)
    assert estimate_cost("mystery-model", usage) == pytest.approx(0.004)


def test_message_summary_and_criticality():
    vote = DeliberationMessage.vote("c1", "claude", "Claude", "alice", 0.9, 1.0, round=1)
    assert vote.is_critical()
    assert "Vote: alice" in vote.summary()

    progress = DeliberationMessage.progress("c1", "proposing", "Started", 10)
    assert not progress.is_critical()
    assert progress.to_wire()["content"]["progress"]["percentComplete"] == 10
