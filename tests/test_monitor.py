"""Tests for the contract monitor."""

from datetime import timedelta

import pytest

from arbiter.committee.discussion import LiveDiscussionStrategy
from arbiter.committee.orchestrator import CommitteeOrchestrator
from arbiter.committee.proposals import ProposalGenerator
from arbiter.contracts.models import ContractStatus
from arbiter.coordination import DecisionCoordinator
from arbiter.decision.monitor import ContractMonitor
from arbiter.decision.orchestrator import DecisionOrchestrator
from arbiter.events.models import DeliberationMessage

from tests.conftest import ScriptedProposer, make_contract


@pytest.fixture
def coordinator():
    return DecisionCoordinator(cooldown_seconds=60)


@pytest.fixture
def orchestrator(contract_repo, decision_repo, bus, settlement, coordinator):
    proposers = [
        ScriptedProposer(agent_id, ["A"] * 6) for agent_id in ("openai", "claude", "gemini")
    ]
    committee = CommitteeOrchestrator(
        ProposalGenerator(proposers, min_proposals=3, max_proposals_per_agent=1),
        LiveDiscussionStrategy(proposers),
    )
    return DecisionOrchestrator(
        committee=committee,
        contracts=contract_repo,
        decisions=decision_repo,
        settlement=settlement,
        bus=bus,
        coordinator=coordinator,
    )


@pytest.mark.asyncio
async def test_run_once_decides_ready_contracts(orchestrator, contract_repo, decision_repo):
    contract_repo.save(make_contract("ready"))
    contract_repo.save(make_contract("later", ends_delta=timedelta(hours=1)))
    monitor = ContractMonitor(orchestrator, contract_repo)

    outcomes = await monitor.run_once()

    assert [o.contract_id for o in outcomes] == ["ready"]
    assert outcomes[0].success
    assert contract_repo.find_by_id("ready").status == ContractStatus.DECIDED
    assert decision_repo.find_by_contract_id("later") is None


@pytest.mark.asyncio
async def test_trigger_skips_in_flight_contract(orchestrator, contract_repo, coordinator):
    contract_repo.save(make_contract("c1"))
    monitor = ContractMonitor(orchestrator, contract_repo)
    coordinator.try_start("c1")

    assert await monitor.trigger("c1") is None


@pytest.mark.asyncio
async def test_trigger_respects_cooldown(orchestrator, contract_repo, settlement):
    contract_repo.save(make_contract("c1", ends_delta=timedelta(hours=1)))
    monitor = ContractMonitor(orchestrator, contract_repo)

    first = await monitor.trigger("c1")
    second = await monitor.trigger("c1")

    assert first.error_code == "not_ready"
    assert second is None
    assert settlement.calls == []


@pytest.mark.asyncio
async def test_run_once_prunes_stale_history(orchestrator, contract_repo, bus):
    bus.emit("old", DeliberationMessage.progress("old", "completed", "Done", 100))
    monitor = ContractMonitor(orchestrator, contract_repo, history_max_age_seconds=-1)

    await monitor.run_once()

    assert bus.history("old") == []
