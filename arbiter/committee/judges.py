"""Rule-based and LLM pairwise judges for proposal evaluation."""

import asyncio
import json
import logging
import random
import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from arbiter.committee.models import AgentProposal
from arbiter.config import Settings
from arbiter.exceptions import ParticipantError
from arbiter.llm.base import BaseProposer
from arbiter.utils.helpers import clamp, extract_json_block

logger = logging.getLogger(__name__)

MAX_NORMALIZED_RATIONALE = 500
TRUNCATION_MARKER = "... [truncated for length normalization]"

CONTRADICTIONS = [
    ("definitely", "uncertain"),
    ("clear", "unclear"),
    ("strong", "weak"),
    ("certain", "possibly"),
    ("always", "sometimes"),
    ("never", "occasionally"),
]

Verdict = Literal["A", "B", "tie"]


class RuleCriteria(BaseModel):
    """Thresholds for the rule-based judge."""

    min_confidence: float = 0.6
    min_evidence_count: int = 2
    min_rationale_length: int = 100
    require_structured_evidence: bool = False
    penalize_inconsistency: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RuleCriteria":
        return cls(
            min_confidence=settings.rule_judge_min_confidence,
            min_evidence_count=settings.rule_judge_min_evidence_count,
            min_rationale_length=settings.rule_judge_min_rationale_length,
            require_structured_evidence=settings.rule_judge_require_structured_evidence,
            penalize_inconsistency=settings.rule_judge_penalize_inconsistency,
        )


class RuleScores(BaseModel):
    completeness: float
    consistency: float
    evidence_quality: float
    overall: float

    def as_dict(self) -> Dict[str, float]:
        return {
            "completeness": self.completeness,
            "consistency": self.consistency,
            "evidenceQuality": self.evidence_quality,
        }


class RuleBasedJudge:
    """Structural heuristics over a proposal: completeness, consistency and evidence quality."""

    def __init__(self, criteria: Optional[RuleCriteria] = None):
        self.criteria = criteria or RuleCriteria()

    def evaluate(self, proposal: AgentProposal) -> RuleScores:
        completeness = self._completeness(proposal)
        consistency = self._consistency(proposal)
        evidence_quality = self._evidence_quality(proposal)
        overall = completeness * 0.35 + consistency * 0.35 + evidence_quality * 0.3

        logger.debug(
            f"Rule-based evaluation for {proposal.id}: overall={overall:.2f} "
            f"completeness={completeness:.2f} consistency={consistency:.2f} "
            f"evidence={evidence_quality:.2f}"
        )
        return RuleScores(
            completeness=completeness,
            consistency=consistency,
            evidence_quality=evidence_quality,
            overall=clamp(overall),
        )

    def evaluate_all(self, proposals: List[AgentProposal]) -> Dict[str, RuleScores]:
        return {proposal.id: self.evaluate(proposal) for proposal in proposals}

    def _completeness(self, proposal: AgentProposal) -> float:
        criteria = self.criteria
        score = 0.0

        if proposal.confidence >= criteria.min_confidence:
            score += 0.3
        elif proposal.confidence >= criteria.min_confidence * 0.8:
            score += 0.2
        elif proposal.confidence >= criteria.min_confidence * 0.6:
            score += 0.1

        if len(proposal.evidence) >= criteria.min_evidence_count:
            score += 0.3
        elif len(proposal.evidence) >= criteria.min_evidence_count * 0.5:
            score += 0.15

        rationale_length = len(proposal.rationale)
        if rationale_length >= criteria.min_rationale_length:
            score += 0.25
        elif rationale_length >= criteria.min_rationale_length * 0.7:
            score += 0.15
        elif rationale_length >= criteria.min_rationale_length * 0.4:
            score += 0.05

        if proposal.winner_id.strip() and proposal.rationale.strip():
            score += 0.15

        return min(1.0, score)

    def _consistency(self, proposal: AgentProposal) -> float:
        score = 1.0
        high_confidence = proposal.confidence >= 0.8
        strong_evidence = len(proposal.evidence) >= 3

        # Confidence should track evidence and depth of reasoning
        if high_confidence and not strong_evidence:
            score -= 0.2
        if not high_confidence and strong_evidence:
            score -= 0.1
        if high_confidence and len(proposal.rationale) < 300:
            score -= 0.15

        if self.criteria.penalize_inconsistency:
            score -= self._rationale_inconsistency(proposal.rationale)

        processing_time = proposal.metadata.processing_time_ms
        token_count = proposal.metadata.token_usage.total_tokens
        if processing_time < 100 and token_count > 500:
            score -= 0.1
        if processing_time > 30000 and token_count < 200:
            score -= 0.1

        return max(0.0, score)

    def _evidence_quality(self, proposal: AgentProposal) -> float:
        evidence = proposal.evidence
        if not evidence:
            return 0.1

        score = 0.0
        quality_factors = 0

        evidence_types = set()
        for item in evidence:
            if "http" in item:
                evidence_types.add("url")
            if "contract" in item:
                evidence_types.add("contract")
            if "history" in item or "historical" in item:
                evidence_types.add("historical")
            if "technical" in item or "specification" in item:
                evidence_types.add("technical")
            if "performance" in item or "metrics" in item:
                evidence_types.add("performance")

        if len(evidence_types) >= 3:
            score += 0.3
            quality_factors += 1
        elif len(evidence_types) >= 2:
            score += 0.2
            quality_factors += 1

        specific = [
            item for item in evidence
            if len(item) > 20 and ("data" in item or "record" in item or "document" in item)
        ]
        if len(specific) >= len(evidence) * 0.7:
            score += 0.25
            quality_factors += 1
        elif len(specific) >= len(evidence) * 0.4:
            score += 0.15
            quality_factors += 1

        if self.criteria.require_structured_evidence:
            structured = [item for item in evidence if ":" in item or "=" in item or "{" in item]
            if structured:
                score += 0.2
                quality_factors += 1

        average_length = sum(len(item) for item in evidence) / len(evidence)
        if average_length >= 50:
            score += 0.15
            quality_factors += 1
        elif average_length >= 25:
            score += 0.1
            quality_factors += 1

        if quality_factors >= 3:
            score += 0.1

        return min(1.0, score)

    @staticmethod
    def _rationale_inconsistency(rationale: str) -> float:
        penalty = 0.0
        lowered = rationale.lower()

        for positive, negative in CONTRADICTIONS:
            if positive in lowered and negative in lowered:
                penalty += 0.05

        # Hedging after a strong statement
        if "definitely" in lowered and "however" in lowered:
            penalty += 0.05

        mentions_a = len(re.findall(r"party\s*a", lowered))
        mentions_b = len(re.findall(r"party\s*b", lowered))
        if abs(mentions_a - mentions_b) > 3 and min(mentions_a, mentions_b) > 0:
            penalty += 0.1

        return min(0.3, penalty)


class PairJudgment(BaseModel):
    """One judged round, already mapped back to the caller's A/B order."""

    round: int
    winner: Verdict
    confidence: float = Field(..., ge=0.0, le=1.0)
    score_a: float = Field(..., ge=0.0, le=1.0)
    score_b: float = Field(..., ge=0.0, le=1.0)
    reasoning: List[str] = Field(default_factory=list)
    swapped: bool = False


class PairComparison(BaseModel):
    """Aggregated outcome of several judged rounds for one pair."""

    proposal_a_id: str
    proposal_b_id: str
    winner: Verdict
    score_a: float
    score_b: float
    confidence: float
    reasoning: List[str] = Field(default_factory=list)
    judgments: List[PairJudgment] = Field(default_factory=list)


class LLMJudge:
    """Pairwise proposal comparison by an LLM with bias reduction.

    Presentation order is randomized, agent names can be masked and long
    rationales truncated so that position, identity and verbosity carry
    less weight. Results are always reported in the caller's A/B order.
    """

    def __init__(
        self,
        provider: BaseProposer,
        randomize_order: bool = True,
        mask_agent_names: bool = True,
        normalize_length: bool = True,
        temperature: float = 0.3,
        timeout_seconds: float = 60.0,
        rng: Optional[random.Random] = None,
    ):
        self.provider = provider
        self.randomize_order = randomize_order
        self.mask_agent_names = mask_agent_names
        self.normalize_length = normalize_length
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self._rng = rng or random.Random()

    @property
    def judge_id(self) -> str:
        return f"llm_judge_{self.provider.agent_id}"

    async def compare(self, proposal_a: AgentProposal, proposal_b: AgentProposal, rounds: int = 3) -> PairComparison:
        """Judge a pair over several rounds and aggregate the verdicts.

        Args:
            proposal_a: First proposal
            proposal_b: Second proposal
            rounds: Number of judged rounds

        Returns:
            Aggregated comparison

        Raises:
            ParticipantError: If every round failed
        """
        judgments = []

        for round_number in range(1, rounds + 1):
            swapped = self.randomize_order and self._rng.random() > 0.5
            first, second = (proposal_b, proposal_a) if swapped else (proposal_a, proposal_b)
            if self.normalize_length:
                first = normalize_length(first)
                second = normalize_length(second)

            prompt = self.build_prompt(first, second)
            try:
                completion = await asyncio.wait_for(
                    self.provider.complete(prompt, self.temperature),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.error(f"LLM judgment round {round_number} timed out")
                continue
            except Exception as e:
                logger.error(f"LLM judgment round {round_number} failed: {e}")
                continue

            judgment = self.parse_judgment(completion.content, round_number)
            if swapped:
                judgment = unswap(judgment)
            judgments.append(judgment)

        if not judgments:
            raise ParticipantError(self.judge_id, "no judgments to aggregate", phase="discussion")

        return aggregate_judgments(proposal_a.id, proposal_b.id, judgments)

    def build_prompt(self, proposal_a: AgentProposal, proposal_b: AgentProposal) -> str:
        name_a = "Agent Alpha" if self.mask_agent_names else proposal_a.agent_name
        name_b = "Agent Beta" if self.mask_agent_names else proposal_b.agent_name

        return f"""You are an expert judge evaluating two analyses of a contract dispute to determine which provides the better decision.

EVALUATION CRITERIA:
1. ACCURACY: Logical soundness and likely correctness
2. REASONING: Quality and depth of analytical reasoning
3. EVIDENCE: Strength and relevance of supporting evidence
4. CLARITY: Clear communication and well-structured argument

BIAS REDUCTION INSTRUCTIONS:
- Ignore the length of responses when judging quality
- Focus on substance over style
- Don't favor responses simply because they seem more confident
- Order of presentation should not influence your judgment

PROPOSAL A ({name_a}):
Winner: {proposal_a.winner_id}
Confidence: {proposal_a.confidence}
Rationale: {proposal_a.rationale}
Evidence: {'; '.join(proposal_a.evidence)}

PROPOSAL B ({name_b}):
Winner: {proposal_b.winner_id}
Confidence: {proposal_b.confidence}
Rationale: {proposal_b.rationale}
Evidence: {'; '.join(proposal_b.evidence)}

Respond in JSON format:
{{
    "winner": "A" | "B" | "tie",
    "confidence": <float between 0 and 1>,
    "overall_scores": {{"A": <float between 0 and 1>, "B": <float between 0 and 1>}},
    "reasoning": ["<point 1>", "<point 2>"]
}}
"""

    @staticmethod
    def parse_judgment(response_text: str, round_number: int) -> PairJudgment:
        """Parse a judge response. Unparseable responses count as a tie."""
        try:
            data = json.loads(extract_json_block(response_text))
            winner = str(data.get("winner", "tie")).strip()
            if winner.lower() == "tie":
                winner = "tie"
            elif winner.upper() in ("A", "B"):
                winner = winner.upper()
            else:
                raise ValueError(f"Unknown winner '{winner}'")

            scores = data.get("overall_scores") or data.get("scores") or {}
            return PairJudgment(
                round=round_number,
                winner=winner,
                confidence=clamp(float(data.get("confidence", 0.5))),
                score_a=clamp(float(scores.get("A", 0.5))),
                score_b=clamp(float(scores.get("B", 0.5))),
                reasoning=[str(r) for r in data.get("reasoning", [])][:5],
            )
        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse LLM judgment response: {e}")
            return PairJudgment(
                round=round_number,
                winner="tie",
                confidence=0.5,
                score_a=0.5,
                score_b=0.5,
                reasoning=["Failed to parse structured judgment", "Defaulting to tie"],
            )


def normalize_length(proposal: AgentProposal) -> AgentProposal:
    """Return a copy of the proposal with its rationale truncated to a fixed length."""
    if len(proposal.rationale) <= MAX_NORMALIZED_RATIONALE:
        return proposal
    return proposal.model_copy(
        update={"rationale": proposal.rationale[:MAX_NORMALIZED_RATIONALE] + TRUNCATION_MARKER}
    )


def unswap(judgment: PairJudgment) -> PairJudgment:
    """Map a judgment made on swapped inputs back to the original order."""
    winner = {"A": "B", "B": "A"}.get(judgment.winner, "tie")
    return judgment.model_copy(
        update={
            "winner": winner,
            "score_a": judgment.score_b,
            "score_b": judgment.score_a,
            "swapped": True,
        }
    )


def aggregate_judgments(
    proposal_a_id: str, proposal_b_id: str, judgments: List[PairJudgment]
) -> PairComparison:
    """Combine judged rounds into one verdict.

    A side wins only with strictly more round wins than both the other side
    and ties. Confidence is scaled by how unified the rounds were.
    """
    counts = {"A": 0, "B": 0, "tie": 0}
    reasoning = []
    for judgment in judgments:
        counts[judgment.winner] += 1
        reasoning.extend(judgment.reasoning)

    winner: Verdict = "tie"
    if counts["A"] > counts["B"] and counts["A"] > counts["tie"]:
        winner = "A"
    elif counts["B"] > counts["A"] and counts["B"] > counts["tie"]:
        winner = "B"

    n = len(judgments)
    consensus_strength = max(counts.values()) / n
    average_confidence = sum(j.confidence for j in judgments) / n

    return PairComparison(
        proposal_a_id=proposal_a_id,
        proposal_b_id=proposal_b_id,
        winner=winner,
        score_a=sum(j.score_a for j in judgments) / n,
        score_b=sum(j.score_b for j in judgments) / n,
        confidence=average_confidence * consensus_strength,
        reasoning=[
            f"Aggregated {n} rounds of judgment",
            f"Win distribution: A={counts['A']}, B={counts['B']}, tie={counts['tie']}",
            f"Consensus strength: {consensus_strength:.2f}",
        ] + reasoning[:5],
        judgments=judgments,
    )
