"""Pytest configuration and shared fixtures."""

import asyncio
import json
from datetime import timedelta
from typing import List, Optional, Sequence

import pytest

from arbiter.committee.models import TokenUsage
from arbiter.config import reset_settings
from arbiter.contracts.models import Choice, Contract, ContractStatus, Party
from arbiter.database.db import Database
from arbiter.database.repositories import ContractRepository, DecisionRepository
from arbiter.events import DeliberationEventBus, MessageCollector
from arbiter.llm.base import BaseProposer
from arbiter.llm.models import CompletionResult
from arbiter.settlement.base import SettlementService
from arbiter.settlement.exceptions import SettlementRejectedError
from arbiter.utils.helpers import utc_now

HANG = "hang"


def proposal_json(winner: str, confidence: float = 0.8, rationale: Optional[str] = None) -> str:
    """Proposer response naming party A or B."""
    label = {"A": "partyA", "B": "partyB"}.get(winner, winner)
    return json.dumps(
        {
            "winner": label,
            "confidence": confidence,
            "rationale": rationale or f"The record supports {label} on every disputed point.",
            "evidence": [f"Signed delivery record favouring {label}", "Payment history document"],
        }
    )


class ScriptedProposer(BaseProposer):
    """Proposer whose completions are scripted per call.

    Each script entry is consumed by one ``complete`` call:
    "A"/"B" answers with that party, an exception instance is raised,
    ``HANG`` sleeps past any test timeout, and any other string is returned
    as the raw completion text.
    """

    def __init__(self, agent_id: str, script: Sequence, agent_name: Optional[str] = None):
        super().__init__(api_key="test-key", model=f"{agent_id}-test")
        self.agent_id = agent_id
        self.agent_name = agent_name or agent_id.title()
        self.agent_type = agent_id
        self.script: List = list(script)
        self.prompts: List[str] = []

    async def complete(self, prompt: str, temperature: float) -> CompletionResult:
        self.prompts.append(prompt)
        if not self.script:
            raise RuntimeError(f"{self.agent_id} script exhausted")

        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        if step == HANG:
            await asyncio.sleep(3600)
        if step in ("A", "B"):
            step = proposal_json(step)

        return CompletionResult(
            content=step,
            token_usage=TokenUsage(prompt_tokens=100, completion_tokens=50),
            model=self.model,
        )


class FakeSettlement(SettlementService):
    """Records declarations and returns sequential transaction references."""

    def __init__(self, fail_with: Optional[Exception] = None, delay: float = 0.0):
        self.calls = []
        self.fail_with = fail_with
        self.delay = delay

    async def declare_winner(self, contract_id: str, choice: Choice) -> str:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append((contract_id, choice))
        if self.fail_with is not None:
            raise self.fail_with
        if choice is Choice.NONE:
            raise SettlementRejectedError("Empty choice")
        return f"0xtx{len(self.calls):04d}"


def make_contract(
    contract_id: str = "contract-1",
    status: ContractStatus = ContractStatus.BETTING_CLOSED,
    ends_delta: timedelta = timedelta(minutes=-5),
) -> Contract:
    return Contract(
        id=contract_id,
        status=status,
        betting_end_time=utc_now() + ends_delta,
        party_a=Party(id="alice", name="Alice", description="Supplier"),
        party_b=Party(id="bob", name="Bob", description="Buyer"),
        topic="Was the shipment delivered on time?",
    )


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch):
    """Isolate tests from the developer's environment and .env file."""
    for key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GOOGLE_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db():
    database = Database(":memory:")
    database.initialize_schema()
    yield database
    database.close()


@pytest.fixture
def contract_repo(db):
    return ContractRepository(db)


@pytest.fixture
def decision_repo(db):
    return DecisionRepository(db)


@pytest.fixture
def bus():
    return DeliberationEventBus()


@pytest.fixture
def contract():
    return make_contract()


@pytest.fixture
def collector(bus, contract):
    return MessageCollector(bus, contract.id, "delib-test")


@pytest.fixture
def settlement():
    return FakeSettlement()
