"""Contract models for binary-outcome agreements."""

from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from arbiter.exceptions import NotReadyError
from arbiter.utils.helpers import ensure_utc, utc_now


class ContractStatus(str, Enum):
    """Lifecycle status of a contract."""

    CREATED = "CREATED"
    BETTING_OPEN = "BETTING_OPEN"
    BETTING_CLOSED = "BETTING_CLOSED"
    DECIDED = "DECIDED"
    DISTRIBUTED = "DISTRIBUTED"


class Choice(IntEnum):
    """Winner choice as submitted to the ledger."""

    NONE = 0
    A = 1
    B = 2

    @classmethod
    def from_party_id(cls, party_id: str, party_a_id: str, party_b_id: str) -> "Choice":
        if party_id == party_a_id:
            return cls.A
        if party_id == party_b_id:
            return cls.B
        return cls.NONE

    def to_party_id(self, party_a_id: str, party_b_id: str) -> Optional[str]:
        if self is Choice.A:
            return party_a_id
        if self is Choice.B:
            return party_b_id
        return None


class Party(BaseModel):
    """One side of a contract."""

    id: str
    name: str
    description: str = ""
    address: Optional[str] = None


class Contract(BaseModel):
    """A binary-outcome agreement awaiting settlement."""

    id: str
    status: ContractStatus = ContractStatus.CREATED
    betting_end_time: datetime
    party_a: Party
    party_b: Party
    winner_id: Optional[str] = None
    topic: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _check_winner(self) -> "Contract":
        if self.winner_id is not None:
            if self.status not in (ContractStatus.DECIDED, ContractStatus.DISTRIBUTED):
                raise ValueError("winner_id may only be set once the contract is decided")
            if self.winner_id not in (self.party_a.id, self.party_b.id):
                raise ValueError("Winner must be either party A or party B")
        return self

    @property
    def party_ids(self) -> tuple:
        return (self.party_a.id, self.party_b.id)

    def is_betting_open(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        return (
            self.status == ContractStatus.BETTING_OPEN
            and now < ensure_utc(self.betting_end_time)
        )

    def can_decide_winner(self, now: Optional[datetime] = None) -> bool:
        """Check if the contract is eligible for a winner decision.

        Args:
            now: Reference time. Defaults to the current UTC time.

        Returns:
            True when betting is closed and the betting window has elapsed
        """
        now = now or utc_now()
        return (
            self.status == ContractStatus.BETTING_CLOSED
            and now >= ensure_utc(self.betting_end_time)
        )

    def set_winner(self, winner_id: str, now: Optional[datetime] = None) -> None:
        """Record the winner and move the contract to DECIDED.

        Raises:
            NotReadyError: If the contract is not eligible for a decision
            ValueError: If the winner is not one of the two parties
        """
        if not self.can_decide_winner(now):
            raise NotReadyError("Cannot decide winner at this stage", phase="settling")

        if winner_id not in self.party_ids:
            raise ValueError("Winner must be either party A or party B")

        self.status = ContractStatus.DECIDED
        self.winner_id = winner_id
        self.updated_at = utc_now()

    def close_betting(self) -> None:
        """Close betting (manual "mark ended" trigger)."""
        if self.status in (ContractStatus.DECIDED, ContractStatus.DISTRIBUTED):
            raise NotReadyError(f"Contract {self.id} is already {self.status.value}")
        self.status = ContractStatus.BETTING_CLOSED
        self.updated_at = utc_now()
