"""Base interface for committee proposers."""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from arbiter.committee.models import AgentProposal, ProposalMetadata, estimate_cost
from arbiter.llm.models import CompletionResult, ProposalRequest
from arbiter.utils.helpers import clamp, extract_json_block, generate_id

logger = logging.getLogger(__name__)

RESPONSE_SCHEMA = """Respond in JSON format:
{
    "winner": "partyA" or "partyB",
    "confidence": <float between 0 and 1>,
    "rationale": "<your detailed reasoning>",
    "evidence": ["<supporting evidence point>", "..."]
}"""


class BaseProposer(ABC):
    """Abstract base class for vendor-backed proposers.

    Subclasses only provide ``complete``; prompt building and response
    parsing are shared so the committee never branches on vendor.
    """

    agent_id: str = "base"
    agent_name: str = "Base Proposer"
    agent_type: str = "base"
    default_temperature: float = 0.7
    max_tokens: int = 1200
    system_prompt: str = (
        "You are an expert committee member evaluating a dispute between two "
        "parties to a binary-outcome contract. Weigh the evidence impartially "
        "and reason step by step before deciding."
    )

    def __init__(self, api_key: str, model: str):
        """Initialize proposer with API key and model name.

        Args:
            api_key: API key for the vendor
            model: Model identifier to use
        """
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def complete(self, prompt: str, temperature: float) -> CompletionResult:
        """Send a prompt to the model and return its raw text completion.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature

        Returns:
            Completion text with token usage

        Raises:
            Exception: If the vendor call fails
        """
        pass

    async def generate_proposals(self, request: ProposalRequest, count: int) -> List[AgentProposal]:
        """Generate up to ``count`` proposals for a contract.

        Each proposal uses a slightly higher temperature for variety. A failed
        attempt is logged and skipped, so the result may hold fewer proposals.

        Args:
            request: Contract, parties and optional discussion context
            count: Number of proposals to attempt

        Returns:
            Successfully generated proposals
        """
        proposals = []

        for index in range(count):
            temperature = min(self.default_temperature + index * 0.1, 1.0)
            try:
                proposal = await self.generate_single_proposal(request, index, temperature)
                proposals.append(proposal)
                logger.debug(
                    f"{self.agent_name} generated proposal {index + 1}/{count}: "
                    f"{proposal.winner_id} ({proposal.confidence:.2f})"
                )
            except Exception as e:
                logger.error(f"{self.agent_name} failed to generate proposal {index + 1}: {e}")

        return proposals

    async def generate_single_proposal(
        self, request: ProposalRequest, index: int, temperature: float
    ) -> AgentProposal:
        start = time.monotonic()
        prompt = self.build_prompt(request)
        completion = await self.complete(prompt, temperature)
        processing_time_ms = int((time.monotonic() - start) * 1000)

        parsed = self.parse_response(completion.content, request)

        metadata = ProposalMetadata(
            token_usage=completion.token_usage,
            cost_estimate=estimate_cost(completion.model, completion.token_usage),
            processing_time_ms=processing_time_ms,
            model=completion.model,
        )

        return AgentProposal(
            id=generate_id(f"{self.agent_id}_{index}"),
            agent_id=self.agent_id,
            agent_name=self.agent_name,
            contract_id=request.contract_id,
            winner_id=parsed["winner_id"],
            confidence=parsed["confidence"],
            rationale=parsed["rationale"],
            evidence=parsed["evidence"],
            metadata=metadata,
        )

    def build_prompt(self, request: ProposalRequest) -> str:
        """Build the prompt for a request, switching to discussion mode when peers are given."""
        if request.is_discussion:
            return self._build_discussion_prompt(request)

        return f"""{self.system_prompt}

I need your analysis of this contract dispute to determine the rightful winner.

{request.to_prompt_text()}

Consider:
- The quality and completeness of each party's evidence
- Consistency between claims and the agreed terms
- Remaining uncertainty and what would change your view

{RESPONSE_SCHEMA}
"""

    def _build_discussion_prompt(self, request: ProposalRequest) -> str:
        discussion = request.discussion
        peer_sections = []
        for peer in discussion.peers:
            peer_sections.append(
                f"{peer.agent_name}: {peer.winner} (confidence {peer.confidence * 100:.1f}%)\n"
                f"Rationale: {peer.rationale}\n"
            )
        peer_text = "\n".join(peer_sections) if peer_sections else "No peer statements yet.\n"

        own_text = ""
        if discussion.own_winner:
            own_text = (
                f"\nYOUR CURRENT STANCE:\n{discussion.own_winner}\n"
                f"Rationale: {discussion.own_rationale or ''}\n"
            )

        return f"""{self.system_prompt}

{discussion.instruction}

{request.to_prompt_text()}

DISCUSSION ROUND {discussion.round} - PEER STANCES:
{peer_text}{own_text}
Consider:
- Which of your peers' points are compelling?
- Where do you disagree and why?
- Should you revise your winner or confidence?

{RESPONSE_SCHEMA}
"""

    def parse_response(self, response_text: str, request: ProposalRequest) -> Dict[str, Any]:
        """Parse a model response into proposal fields.

        Falls back to plain-text parsing when no valid JSON object is found.
        """
        try:
            data = json.loads(extract_json_block(response_text))
            if not isinstance(data, dict):
                raise ValueError("Response JSON is not an object")
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to parse structured response from {self.agent_name}, using fallback: {e}")
            return self._fallback_parse(response_text, request)

        winner_id = request.resolve_party(data.get("winner") or data.get("winnerId"))
        if winner_id is None:
            logger.warning(f"{self.agent_name} returned no recognizable winner, defaulting to party A")
            winner_id = request.party_a.id

        evidence = data.get("evidence")
        if not isinstance(evidence, list):
            evidence = data.get("citations") if isinstance(data.get("citations"), list) else []

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5

        rationale = data.get("rationale") or data.get("reasoning") or "No rationale provided"

        return {
            "winner_id": winner_id,
            "confidence": clamp(confidence),
            "rationale": str(rationale),
            "evidence": [str(item) for item in evidence],
        }

    def _fallback_parse(self, content: str, request: ProposalRequest) -> Dict[str, Any]:
        lowered = content.lower()
        mentions_a = "party a" in lowered or "partya" in lowered
        mentions_b = "party b" in lowered or "partyb" in lowered

        winner_id = request.party_a.id
        if mentions_b and not mentions_a:
            winner_id = request.party_b.id

        match = re.search(r"confidence[:\s]+([0-9.]+)", content, re.IGNORECASE)
        confidence = 0.6
        if match:
            try:
                confidence = float(match.group(1))
            except ValueError:
                pass

        return {
            "winner_id": winner_id,
            "confidence": clamp(confidence),
            "rationale": content[:1000].strip() or "No rationale provided",
            "evidence": [],
        }
