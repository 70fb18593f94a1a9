"""Data access layer for contracts and decisions."""

import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from arbiter.committee.models import ConsensusResult
from arbiter.contracts.models import Contract, ContractStatus, Party
from arbiter.database.db import get_db
from arbiter.decision.models import DecisionRecord
from arbiter.events.models import DeliberationMessage
from arbiter.exceptions import AlreadyDecidedError, ContractNotFoundError
from arbiter.utils.helpers import ensure_utc, utc_now


class ContractStore(ABC):
    """Boundary for contract persistence."""

    @abstractmethod
    def find_by_id(self, contract_id: str) -> Optional[Contract]:
        pass

    @abstractmethod
    def find_ready_for_decision(self, now: Optional[datetime] = None) -> List[Contract]:
        pass

    @abstractmethod
    def save(self, contract: Contract) -> None:
        pass

    @abstractmethod
    def update(self, contract: Contract) -> None:
        pass


class DecisionStore(ABC):
    """Boundary for decision persistence, used for the idempotency check."""

    @abstractmethod
    def find_by_contract_id(self, contract_id: str) -> Optional[DecisionRecord]:
        pass

    @abstractmethod
    def save(self, decision: DecisionRecord) -> None:
        pass

    @abstractmethod
    def save_decided(self, decision: DecisionRecord, contract: Contract) -> None:
        """Store the decision and the decided contract atomically."""
        pass


def _to_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat()


def _from_timestamp(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value))


def _update_contract(cursor: sqlite3.Cursor, contract: Contract) -> None:
    cursor.execute(
        """
        UPDATE contracts
        SET status = ?, winner_id = ?, topic = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            contract.status.value,
            contract.winner_id,
            contract.topic,
            _to_timestamp(contract.updated_at),
            contract.id,
        ),
    )
    if cursor.rowcount == 0:
        raise ContractNotFoundError(f"Contract {contract.id} not found")


def _insert_decision(cursor: sqlite3.Cursor, decision: DecisionRecord) -> None:
    try:
        cursor.execute(
            """
            INSERT INTO decisions (
                id, contract_id, deliberation_id, winner_id, confidence,
                methodology, reasoning, evidence, metrics, consensus,
                transaction_ref, messages, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                decision.id,
                decision.contract_id,
                decision.deliberation_id,
                decision.winner_id,
                decision.confidence,
                decision.methodology,
                decision.reasoning,
                json.dumps(decision.evidence),
                json.dumps(decision.metrics),
                json.dumps(decision.consensus.to_wire()),
                decision.transaction_ref,
                json.dumps([message.to_wire() for message in decision.messages]),
                _to_timestamp(decision.created_at),
            ),
        )
    except sqlite3.IntegrityError as e:
        raise AlreadyDecidedError(
            f"Contract {decision.contract_id} already has a decision", phase="settling"
        ) from e


class ContractRepository(ContractStore):
    """Repository for contract operations."""

    def __init__(self, db=None):
        """Initialize repository with database connection."""
        self.db = db or get_db()

    def save(self, contract: Contract) -> None:
        """Insert a new contract."""
        cursor = self.db.conn.cursor()
        cursor.execute(
            """
            INSERT INTO contracts (
                id, status, betting_end_time, party_a, party_b,
                winner_id, topic, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                contract.id,
                contract.status.value,
                _to_timestamp(contract.betting_end_time),
                json.dumps(contract.party_a.model_dump()),
                json.dumps(contract.party_b.model_dump()),
                contract.winner_id,
                contract.topic,
                _to_timestamp(contract.created_at),
                _to_timestamp(contract.updated_at),
            ),
        )
        self.db.conn.commit()

    def update(self, contract: Contract) -> None:
        """Persist status, winner and timestamps of an existing contract.

        Raises:
            ContractNotFoundError: If the contract does not exist
        """
        with self.db.transaction() as cursor:
            _update_contract(cursor, contract)

    def find_by_id(self, contract_id: str) -> Optional[Contract]:
        """Get contract by ID."""
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM contracts WHERE id = ?", (contract_id,))
        row = cursor.fetchone()

        if row is None:
            return None

        return self._row_to_contract(row)

    def find_by_status(self, status: ContractStatus) -> List[Contract]:
        cursor = self.db.conn.cursor()
        cursor.execute(
            "SELECT * FROM contracts WHERE status = ? ORDER BY betting_end_time ASC",
            (status.value,),
        )
        return [self._row_to_contract(row) for row in cursor.fetchall()]

    def find_ready_for_decision(self, now: Optional[datetime] = None) -> List[Contract]:
        """Contracts with betting closed and the betting window elapsed."""
        now = now or utc_now()
        return [
            contract
            for contract in self.find_by_status(ContractStatus.BETTING_CLOSED)
            if contract.can_decide_winner(now)
        ]

    def get_all(self) -> List[Contract]:
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM contracts ORDER BY created_at DESC")
        return [self._row_to_contract(row) for row in cursor.fetchall()]

    @staticmethod
    def _row_to_contract(row: sqlite3.Row) -> Contract:
        return Contract(
            id=row["id"],
            status=ContractStatus(row["status"]),
            betting_end_time=_from_timestamp(row["betting_end_time"]),
            party_a=Party(**json.loads(row["party_a"])),
            party_b=Party(**json.loads(row["party_b"])),
            winner_id=row["winner_id"],
            topic=row["topic"],
            created_at=_from_timestamp(row["created_at"]),
            updated_at=_from_timestamp(row["updated_at"]),
        )


class DecisionRepository(DecisionStore):
    """Repository for decision records."""

    def __init__(self, db=None):
        """Initialize repository with database connection."""
        self.db = db or get_db()

    def save(self, decision: DecisionRecord) -> None:
        """Insert a decision record.

        Raises:
            AlreadyDecidedError: If the contract already has a decision
        """
        with self.db.transaction() as cursor:
            _insert_decision(cursor, decision)

    def save_decided(self, decision: DecisionRecord, contract: Contract) -> None:
        """Insert the decision and update its contract in one transaction.

        A decision row never exists without its contract marked decided.

        Raises:
            AlreadyDecidedError: If the contract already has a decision
            ContractNotFoundError: If the contract row is missing
        """
        with self.db.transaction() as cursor:
            _insert_decision(cursor, decision)
            _update_contract(cursor, contract)

    def find_by_contract_id(self, contract_id: str) -> Optional[DecisionRecord]:
        """Get the decision for a contract."""
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT * FROM decisions WHERE contract_id = ?", (contract_id,))
        row = cursor.fetchone()

        if row is None:
            return None

        return self._row_to_decision(row)

    def get_recent(self, limit: int = 20) -> List[DecisionRecord]:
        cursor = self.db.conn.cursor()
        cursor.execute(
            "SELECT * FROM decisions ORDER BY created_at DESC LIMIT ?",
            (limit,),
        )
        return [self._row_to_decision(row) for row in cursor.fetchall()]

    def count(self) -> int:
        cursor = self.db.conn.cursor()
        cursor.execute("SELECT COUNT(*) FROM decisions")
        return cursor.fetchone()[0]

    @staticmethod
    def _row_to_decision(row: sqlite3.Row) -> DecisionRecord:
        messages: List[Dict[str, Any]] = json.loads(row["messages"]) if row["messages"] else []
        return DecisionRecord(
            id=row["id"],
            contract_id=row["contract_id"],
            deliberation_id=row["deliberation_id"],
            winner_id=row["winner_id"],
            confidence=row["confidence"],
            reasoning=row["reasoning"] or "",
            evidence=json.loads(row["evidence"]) if row["evidence"] else [],
            methodology=row["methodology"],
            metrics=json.loads(row["metrics"]) if row["metrics"] else {},
            consensus=ConsensusResult.model_validate(json.loads(row["consensus"])),
            transaction_ref=row["transaction_ref"],
            messages=[DeliberationMessage.model_validate(m) for m in messages],
            created_at=_from_timestamp(row["created_at"]),
        )
