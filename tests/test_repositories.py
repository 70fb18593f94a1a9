"""Tests for the SQLite contract and decision repositories."""

from datetime import timedelta

import pytest

from arbiter.committee.models import (
    ConsensusMethod,
    ConsensusMetrics,
    ConsensusResult,
    EvidenceSource,
)
from arbiter.config import reset_settings
from arbiter.contracts.models import ContractStatus
from arbiter.database.db import Database
from arbiter.decision.models import DecisionRecord
from arbiter.events.models import DeliberationMessage
from arbiter.exceptions import AlreadyDecidedError, ContractNotFoundError
from arbiter.utils.helpers import utc_now

from tests.conftest import make_contract


def _record(contract_id="contract-1", decision_id="decision-1"):
    consensus = ConsensusResult(
        final_winner="alice",
        confidence_level=1.0,
        residual_uncertainty=0.0,
        merged_evidence=[
            EvidenceSource(source="Delivery log", relevance=1.0, credibility=1.0, snippet="Arrived 28 Feb")
        ],
        synthesized_reasoning="All participants unanimously agreed on 'alice' as the winner.",
        methodology=ConsensusMethod.UNANIMOUS,
        metrics=ConsensusMetrics(unanimity_level=1.0),
    )
    return DecisionRecord(
        id=decision_id,
        contract_id=contract_id,
        deliberation_id="delib-1",
        winner_id="alice",
        confidence=1.0,
        reasoning=consensus.synthesized_reasoning,
        evidence=["Arrived 28 Feb"],
        methodology="unanimous",
        metrics={"roundsCompleted": 1},
        consensus=consensus,
        transaction_ref="0xabc",
        messages=[DeliberationMessage.progress(contract_id, "completed", "Done", 100)],
    )


class TestContractRepository:
    def test_save_and_find(self, contract_repo, contract):
        contract_repo.save(contract)
        loaded = contract_repo.find_by_id(contract.id)

        assert loaded.party_a.name == "Alice"
        assert loaded.status == ContractStatus.BETTING_CLOSED
        assert loaded.betting_end_time == contract.betting_end_time
        assert contract_repo.find_by_id("missing") is None

    def test_update_persists_winner(self, contract_repo, contract):
        contract_repo.save(contract)
        contract.set_winner("bob", utc_now())
        contract_repo.update(contract)

        loaded = contract_repo.find_by_id(contract.id)
        assert loaded.status == ContractStatus.DECIDED
        assert loaded.winner_id == "bob"

    def test_update_missing_contract(self, contract_repo, contract):
        with pytest.raises(ContractNotFoundError):
            contract_repo.update(contract)

    def test_find_ready_for_decision(self, contract_repo):
        contract_repo.save(make_contract("ready"))
        contract_repo.save(make_contract("future", ends_delta=timedelta(hours=1)))
        contract_repo.save(make_contract("open", status=ContractStatus.BETTING_OPEN))

        ready = contract_repo.find_ready_for_decision(utc_now())

        assert [c.id for c in ready] == ["ready"]

    def test_get_all(self, contract_repo):
        contract_repo.save(make_contract("c1"))
        contract_repo.save(make_contract("c2", status=ContractStatus.BETTING_OPEN))

        assert {c.id for c in contract_repo.get_all()} == {"c1", "c2"}


class TestDecisionRepository:
    def test_save_and_find(self, decision_repo):
        decision_repo.save(_record())
        loaded = decision_repo.find_by_contract_id("contract-1")

        assert loaded.winner_id == "alice"
        assert loaded.consensus.methodology == ConsensusMethod.UNANIMOUS
        assert loaded.consensus.merged_evidence[0].snippet == "Arrived 28 Feb"
        assert loaded.messages[0].content.progress.percent_complete == 100
        assert loaded.metrics == {"roundsCompleted": 1}
        assert decision_repo.find_by_contract_id("other") is None

    def test_one_decision_per_contract(self, decision_repo):
        decision_repo.save(_record())
        with pytest.raises(AlreadyDecidedError):
            decision_repo.save(_record(decision_id="decision-2"))
        assert decision_repo.count() == 1

    def test_get_recent(self, decision_repo):
        decision_repo.save(_record("c1", "d1"))
        decision_repo.save(_record("c2", "d2"))
        assert {d.contract_id for d in decision_repo.get_recent(limit=5)} == {"c1", "c2"}
        assert len(decision_repo.get_recent(limit=1)) == 1

    def test_save_decided_writes_both_rows(self, contract_repo, decision_repo, contract):
        contract_repo.save(contract)
        contract.set_winner("alice", utc_now())

        decision_repo.save_decided(_record(), contract)

        assert decision_repo.find_by_contract_id(contract.id).id == "decision-1"
        assert contract_repo.find_by_id(contract.id).status == ContractStatus.DECIDED

    def test_save_decided_rolls_back_when_contract_missing(self, decision_repo, contract):
        contract.set_winner("alice", utc_now())

        with pytest.raises(ContractNotFoundError):
            decision_repo.save_decided(_record(), contract)

        assert decision_repo.count() == 0

    def test_save_decided_rejects_second_decision(self, contract_repo, decision_repo, contract):
        contract_repo.save(contract)
        decision_repo.save(_record())
        contract.set_winner("bob", utc_now())

        with pytest.raises(AlreadyDecidedError):
            decision_repo.save_decided(_record(decision_id="decision-2"), contract)

        stored = contract_repo.find_by_id(contract.id)
        assert stored.status == ContractStatus.BETTING_CLOSED
        assert stored.winner_id is None


def test_default_database_creates_configured_directory(tmp_path, monkeypatch):
    db_path = tmp_path / "state" / "arbiter.db"
    monkeypatch.setenv("DATABASE_PATH", str(db_path))
    reset_settings()

    database = Database()
    database.initialize_schema()
    database.close()

    assert database.db_path == str(db_path)
    assert db_path.exists()
