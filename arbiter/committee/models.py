"""Models for committee proposals, evaluations and consensus results."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator, model_validator

from arbiter.models import WireModel
from arbiter.utils.helpers import clamp, utc_now

# Approximate USD cost per 1K tokens as (prompt, completion), matched by model prefix
MODEL_COSTS_PER_1K = {
    "gpt-5": (0.01, 0.03),
    "gpt-4": (0.01, 0.03),
    "claude": (0.003, 0.015),
    "gemini": (0.00125, 0.005),
}
DEFAULT_COST_PER_1K = (0.002, 0.002)


class TokenUsage(WireModel):
    """Token counts reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def estimate_cost(model: str, usage: TokenUsage) -> float:
    """Estimate the USD cost of a call from its token usage.

    Args:
        model: Model identifier
        usage: Token usage of the call

    Returns:
        Estimated cost in USD
    """
    prompt_rate, completion_rate = DEFAULT_COST_PER_1K
    model_lower = (model or "").lower()
    for prefix, rates in MODEL_COSTS_PER_1K.items():
        if model_lower.startswith(prefix):
            prompt_rate, completion_rate = rates
            break

    return (
        usage.prompt_tokens / 1000 * prompt_rate
        + usage.completion_tokens / 1000 * completion_rate
    )


class ProposalMetadata(WireModel):
    """Generation metadata attached to a proposal."""

    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    cost_estimate: float = 0.0
    processing_time_ms: int = 0
    model: str = "unknown"


class AgentProposal(WireModel):
    """One agent's proposed winner with rationale and evidence.

    Proposals are immutable. A revised stance during discussion is a new
    proposal that replaces the agent's anchor.
    """

    id: str
    agent_id: str
    agent_name: str
    contract_id: str
    winner_id: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str
    evidence: List[str] = Field(default_factory=list)
    metadata: ProposalMetadata = Field(default_factory=ProposalMetadata)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("winner_id", "rationale")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value

    def quality_score(self) -> float:
        """Quality score based on evidence, rationale length and confidence."""
        evidence_score = min(len(self.evidence) * 0.1, 0.3)
        rationale_score = min(len(self.rationale) / 500, 0.5)
        confidence_score = self.confidence * 0.2
        return evidence_score + rationale_score + confidence_score

    def has_sufficient_evidence(self) -> bool:
        return len(self.evidence) >= 2 and len(self.rationale) >= 100

    def summary(self) -> str:
        return f"{self.agent_name}: {self.winner_id} (confidence: {self.confidence:.2f})"


class PairwiseRecord(WireModel):
    """Outcome of one pairwise comparison from a proposal's point of view."""

    opponent_proposal_id: str
    result: Literal["win", "lose", "tie"]
    score: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


class EvaluationMetadata(WireModel):
    evaluation_time_ms: int = 0
    method: str
    token_usage: Optional[int] = None


class Evaluation(WireModel):
    """A judge's or the discussion's assessment of a proposal or agent stance."""

    id: str
    proposal_id: str
    agent_id: Optional[str] = None
    evaluator_id: str
    evaluator_name: str
    scores: Dict[str, float] = Field(default_factory=dict)
    rule_based_score: float = Field(0.0, ge=0.0, le=1.0)
    pairwise_results: List[PairwiseRecord] = Field(default_factory=list)
    overall_score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: List[str] = Field(default_factory=list)
    metadata: EvaluationMetadata
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("scores")
    @classmethod
    def _scores_in_range(cls, scores: Dict[str, float]) -> Dict[str, float]:
        for criterion, score in scores.items():
            if score < 0.0 or score > 1.0:
                raise ValueError(f"Score for {criterion} must be between 0 and 1")
        return scores

    def pairwise_win_rate(self) -> float:
        """Win rate over pairwise comparisons, counting ties as half a win."""
        if not self.pairwise_results:
            return 0.0
        wins = sum(1 for r in self.pairwise_results if r.result == "win")
        ties = sum(1 for r in self.pairwise_results if r.result == "tie")
        return (wins + ties * 0.5) / len(self.pairwise_results)

    def weighted_score(self, rule_weight: float = 0.4, llm_weight: float = 0.6) -> float:
        return self.rule_based_score * rule_weight + self.pairwise_win_rate() * llm_weight


class ConsensusMethod(str, Enum):
    UNANIMOUS = "unanimous"
    MAJORITY = "majority"
    WEIGHTED_VOTING = "weighted_voting"


class EvidenceSource(WireModel):
    source: str
    relevance: float = Field(..., ge=0.0, le=1.0)
    credibility: float = Field(..., ge=0.0, le=1.0)
    snippet: Optional[str] = None


class ReasoningBreakdown(WireModel):
    shared_points: List[str] = Field(default_factory=list)
    conflicting_points: List[str] = Field(default_factory=list)
    unique_insights: List[str] = Field(default_factory=list)


class ConsensusMetrics(WireModel):
    unanimity_level: float = Field(..., ge=0.0, le=1.0)
    confidence_variance: float = 0.0
    evidence_overlap: float = 0.0
    reasoning: ReasoningBreakdown = Field(default_factory=ReasoningBreakdown)


class QualityFlags(WireModel):
    has_minority_dissent: bool = False
    has_insufficient_evidence: bool = False
    has_conflicting_evidence: bool = False
    requires_human_review: bool = False


class AlternativeChoice(WireModel):
    choice: str
    probability: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


class ConsensusResult(WireModel):
    """Final committee verdict. Built once per deliberation and never mutated."""

    final_winner: str
    confidence_level: float = Field(..., ge=0.0, le=1.0)
    residual_uncertainty: float = Field(..., ge=0.0, le=1.0)
    merged_evidence: List[EvidenceSource] = Field(default_factory=list)
    synthesized_reasoning: str
    methodology: ConsensusMethod
    metrics: ConsensusMetrics
    alternative_choices: List[AlternativeChoice] = Field(default_factory=list)
    quality_flags: QualityFlags = Field(default_factory=QualityFlags)

    @field_validator("final_winner")
    @classmethod
    def _winner_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Final winner cannot be empty")
        return value

    @model_validator(mode="after")
    def _check_uncertainty(self) -> "ConsensusResult":
        if abs(self.confidence_level + self.residual_uncertainty - 1) > 0.01:
            raise ValueError(
                "Confidence level and residual uncertainty should approximately sum to 1"
            )
        return self

    def meets_quality_threshold(self, min_confidence: float = 0.7, max_uncertainty: float = 0.3) -> bool:
        return (
            self.confidence_level >= min_confidence
            and self.residual_uncertainty <= max_uncertainty
            and len(self.merged_evidence) >= 2
        )

    def consensus_strength(self) -> str:
        if self.confidence_level >= 0.8 and self.metrics.unanimity_level >= 0.8:
            return "strong"
        if self.confidence_level >= 0.6 and self.metrics.unanimity_level >= 0.6:
            return "moderate"
        return "weak"

    def high_quality_evidence(self) -> List[EvidenceSource]:
        return [e for e in self.merged_evidence if e.relevance >= 0.7 and e.credibility >= 0.7]

    def recommends_human_review(self) -> bool:
        flags = self.quality_flags
        return (
            flags.requires_human_review
            or self.confidence_level < 0.6
            or flags.has_conflicting_evidence
            or (flags.has_minority_dissent and self.metrics.unanimity_level < 0.7)
        )

    def risk_factors(self) -> List[str]:
        risks = []
        if self.confidence_level < 0.7:
            risks.append("Low confidence level")
        if self.residual_uncertainty > 0.4:
            risks.append("High residual uncertainty")
        if self.quality_flags.has_minority_dissent:
            risks.append("Minority dissent present")
        if self.quality_flags.has_conflicting_evidence:
            risks.append("Conflicting evidence detected")
        if len(self.merged_evidence) < 3:
            risks.append("Insufficient evidence base")
        if self.metrics.confidence_variance > 0.25:
            risks.append("High variance in agent confidence")
        return risks

    def audit_summary(self) -> Dict[str, Any]:
        """Summary of the decision for audit and reporting."""
        return {
            "decision": {
                "winner": self.final_winner,
                "confidence": self.confidence_level,
                "uncertainty": self.residual_uncertainty,
                "methodology": self.methodology.value,
            },
            "consensus": {
                "strength": self.consensus_strength(),
                "unanimityLevel": self.metrics.unanimity_level,
                "evidenceCount": len(self.merged_evidence),
                "highQualityEvidenceCount": len(self.high_quality_evidence()),
            },
            "quality": {
                "meetsThreshold": self.meets_quality_threshold(),
                "recommendsHumanReview": self.recommends_human_review(),
                "riskFactors": self.risk_factors(),
            },
        }


class Vote(WireModel):
    """One agent's vote in a voting round. Every vote has weight 1."""

    agent_id: str
    agent_name: str
    choice: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    weight: float = 1.0


class VoteTally(WireModel):
    """Votes cast in one round, in agent turn order."""

    round: int
    votes: List[Vote]

    @property
    def counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for vote in self.votes:
            counts[vote.choice] = counts.get(vote.choice, 0) + 1
        return counts

    @property
    def total(self) -> int:
        return len(self.votes)

    def is_unanimous(self) -> bool:
        return self.total > 0 and len(self.counts) == 1

    def plurality_winner(self) -> str:
        """Choice with the most votes; ties go to the lexicographically first choice.

        Raises:
            ValueError: If no votes were cast
        """
        if not self.votes:
            raise ValueError("No votes available to determine majority")
        ranked = sorted(self.counts.items(), key=lambda item: (-item[1], item[0]))
        return ranked[0][0]

    def distribution(self) -> Dict[str, float]:
        if not self.votes:
            return {}
        return {choice: count / self.total for choice, count in self.counts.items()}


class CostBreakdown(WireModel):
    proposer_tokens: int = 0
    judge_tokens: int = 0
    total_cost_usd: float = 0.0


class DeliberationMetrics(WireModel):
    total_proposals: int
    total_evaluations: int
    rounds_completed: int
    deliberation_time_ms: int
    consensus_level: float
    cost_breakdown: CostBreakdown = Field(default_factory=CostBreakdown)


class DeliberationResult(WireModel):
    """Everything a committee deliberation produced."""

    deliberation_id: str
    contract_id: str
    consensus: ConsensusResult
    proposals: List[AgentProposal]
    final_anchors: List[AgentProposal]
    evaluations: List[Evaluation]
    tallies: List[VoteTally]
    metrics: DeliberationMetrics

    @property
    def winner_id(self) -> str:
        return self.consensus.final_winner


class AgentWeights:
    """Per-agent performance weights owned by one decision orchestrator.

    Weights are informational: they are attached to proposal messages but
    every vote still counts once.
    """

    DEFAULT_WEIGHT = 1.0
    MIN_WEIGHT = 0.1
    MAX_WEIGHT = 1.0
    REWARD = 0.05
    PENALTY = 0.02

    def __init__(self, initial: Optional[Dict[str, float]] = None):
        self._weights: Dict[str, float] = {}
        for agent_id, weight in (initial or {}).items():
            self._weights[agent_id] = clamp(weight, self.MIN_WEIGHT, self.MAX_WEIGHT)

    def get(self, agent_id: str) -> float:
        return self._weights.get(agent_id, self.DEFAULT_WEIGHT)

    def update(self, agent_id: str, agreed_with_winner: bool) -> float:
        delta = self.REWARD if agreed_with_winner else -self.PENALTY
        new_weight = clamp(self.get(agent_id) + delta, self.MIN_WEIGHT, self.MAX_WEIGHT)
        self._weights[agent_id] = new_weight
        return new_weight

    def apply_outcome(self, final_anchors: List[AgentProposal], winner_id: str) -> Dict[str, float]:
        """Reward agents whose final stance matched the winner and penalize the rest."""
        return {
            anchor.agent_id: self.update(anchor.agent_id, anchor.winner_id == winner_id)
            for anchor in final_anchors
        }

    def snapshot(self) -> Dict[str, float]:
        return dict(self._weights)
