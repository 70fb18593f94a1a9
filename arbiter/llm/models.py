"""Models for proposer requests and responses."""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from arbiter.committee.models import TokenUsage
from arbiter.contracts.models import Party

DISCUSSION_INSTRUCTION = (
    "You are in a live discussion with peers. Present a persuasive statement, "
    "respond to peers' points, and state (or reinforce) your winner with rationale. "
    "Keep the JSON schema."
)


class PeerStance(BaseModel):
    """Summary of another agent's current anchor."""

    agent_id: str
    agent_name: str
    winner: str
    confidence: float
    rationale: str


class DiscussionContext(BaseModel):
    """Discussion-mode input: the round and the peers' current stances."""

    round: int
    peers: List[PeerStance] = Field(default_factory=list)
    instruction: str = DISCUSSION_INSTRUCTION
    own_winner: Optional[str] = None
    own_rationale: Optional[str] = None


class ProposalRequest(BaseModel):
    """Input for a proposer's generate_proposals call."""

    contract_id: str
    party_a: Party
    party_b: Party
    context: Dict[str, Any] = Field(default_factory=dict)
    discussion: Optional[DiscussionContext] = None

    @property
    def is_discussion(self) -> bool:
        return self.discussion is not None

    def resolve_party(self, label: Optional[str]) -> Optional[str]:
        """Map a model's winner label to a party id.

        Accepts "partyA"/"A", "partyB"/"B", a party id or a party name.
        """
        if not label:
            return None
        value = str(label).strip()
        lowered = value.lower().replace(" ", "")
        if lowered in ("partya", "a") or value in (self.party_a.id, self.party_a.name):
            return self.party_a.id
        if lowered in ("partyb", "b") or value in (self.party_b.id, self.party_b.name):
            return self.party_b.id
        return None

    def to_prompt_text(self) -> str:
        """Convert the request to text suitable for an LLM prompt."""
        parts = [
            f"Contract ID: {self.contract_id}",
            "",
            f"Party A ({self.party_a.id}): {self.party_a.name}",
        ]
        if self.party_a.address:
            parts.append(f"  Address: {self.party_a.address}")
        if self.party_a.description:
            parts.append(f"  Description: {self.party_a.description}")

        parts.append(f"Party B ({self.party_b.id}): {self.party_b.name}")
        if self.party_b.address:
            parts.append(f"  Address: {self.party_b.address}")
        if self.party_b.description:
            parts.append(f"  Description: {self.party_b.description}")

        if self.context:
            parts.append("")
            parts.append("Context and Additional Information:")
            parts.append(json.dumps(self.context, indent=2, default=str))

        return "\n".join(parts)


class CompletionResult(BaseModel):
    """Raw text completion returned by a vendor adapter."""

    content: str
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str
