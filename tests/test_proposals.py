"""Tests for proposer response parsing and parallel proposal generation."""

import pytest

from arbiter.committee.models import AgentWeights
from arbiter.committee.proposals import ProposalGenerator
from arbiter.exceptions import InsufficientProposalsError
from arbiter.llm.models import DiscussionContext, PeerStance, ProposalRequest

from tests.conftest import HANG, ScriptedProposer


def _request(contract):
    return ProposalRequest(
        contract_id=contract.id,
        party_a=contract.party_a,
        party_b=contract.party_b,
    )


class TestResponseParsing:
    def test_json_response(self, contract):
        proposer = ScriptedProposer("claude", [])
        parsed = proposer.parse_response(
            '```json\n{"winner": "partyB", "confidence": 0.9, "rationale": "r", "evidence": ["e1"]}\n```',
            _request(contract),
        )
        assert parsed == {"winner_id": "bob", "confidence": 0.9, "rationale": "r", "evidence": ["e1"]}

    def test_winner_by_party_name(self, contract):
        proposer = ScriptedProposer("claude", [])
        parsed = proposer.parse_response('{"winner": "Bob", "confidence": 2}', _request(contract))
        assert parsed["winner_id"] == "bob"
        assert parsed["confidence"] == 1.0

    def test_unknown_winner_defaults_to_party_a(self, contract):
        proposer = ScriptedProposer("claude", [])
        parsed = proposer.parse_response('{"winner": "nobody"}', _request(contract))
        assert parsed["winner_id"] == "alice"

    def test_plain_text_fallback(self, contract):
        proposer = ScriptedProposer("claude", [])
        parsed = proposer.parse_response(
            "I side with Party B here. Confidence: 0.7", _request(contract)
        )
        assert parsed["winner_id"] == "bob"
        assert parsed["confidence"] == pytest.approx(0.7)
        assert parsed["evidence"] == []

    def test_discussion_prompt_lists_peers(self, contract):
        proposer = ScriptedProposer("claude", [])
        request = _request(contract).model_copy(
            update={
                "discussion": DiscussionContext(
                    round=2,
                    peers=[
                        PeerStance(
                            agent_id="openai",
                            agent_name="OpenAI",
                            winner="bob",
                            confidence=0.6,
                            rationale="Invoice was disputed.",
                        )
                    ],
                    own_winner="alice",
                )
            }
        )
        prompt = proposer.build_prompt(request)
        assert "DISCUSSION ROUND 2" in prompt
        assert "OpenAI: bob" in prompt
        assert "YOUR CURRENT STANCE" in prompt


@pytest.mark.asyncio
async def test_proposer_skips_failed_attempts(contract):
    proposer = ScriptedProposer("claude", ["A", RuntimeError("rate limited")])
    proposals = await proposer.generate_proposals(_request(contract), 2)

    assert len(proposals) == 1
    assert proposals[0].winner_id == "alice"
    assert proposals[0].metadata.token_usage.total_tokens == 150
    assert proposals[0].metadata.cost_estimate > 0


@pytest.mark.asyncio
async def test_generate_collects_from_every_proposer(contract, collector):
    proposers = [
        ScriptedProposer("openai", ["A", "A"]),
        ScriptedProposer("claude", ["B", "B"]),
        ScriptedProposer("gemini", ["A", "B"]),
    ]
    generator = ProposalGenerator(proposers, min_proposals=3, max_proposals_per_agent=2)

    proposals = await generator.generate(contract, collector)

    assert len(proposals) == 6
    assert [p.agent_id for p in proposals] == ["openai"] * 2 + ["claude"] * 2 + ["gemini"] * 2
    assert collector.count("proposal") == 6


@pytest.mark.asyncio
async def test_timed_out_proposer_contributes_nothing(contract, collector):
    proposers = [
        ScriptedProposer("openai", ["A"]),
        ScriptedProposer("claude", ["B"]),
        ScriptedProposer("gemini", [HANG]),
    ]
    generator = ProposalGenerator(
        proposers, min_proposals=2, max_proposals_per_agent=1, timeout_seconds=0.05
    )

    proposals = await generator.generate(contract, collector)

    assert {p.agent_id for p in proposals} == {"openai", "claude"}
    assert collector.count("proposal") == 2


@pytest.mark.asyncio
async def test_insufficient_proposals_raises(contract, collector):
    proposers = [
        ScriptedProposer("openai", ["A"]),
        ScriptedProposer("claude", [RuntimeError("down")]),
    ]
    generator = ProposalGenerator(proposers, min_proposals=3, max_proposals_per_agent=1)

    with pytest.raises(InsufficientProposalsError) as exc_info:
        await generator.generate(contract, collector)

    assert exc_info.value.collected == 1
    assert exc_info.value.phase == "proposing"
    assert exc_info.value.code == "insufficient_proposals"


@pytest.mark.asyncio
async def test_weights_attached_to_proposal_messages(contract, collector):
    weights = AgentWeights({"openai": 0.4})
    generator = ProposalGenerator(
        [ScriptedProposer("openai", ["A"])], min_proposals=1, max_proposals_per_agent=1
    )

    await generator.generate(contract, collector, weights=weights)

    message = [m for m in collector.messages if m.message_type == "proposal"][0]
    assert message.content.scores == {"weight": 0.4}
