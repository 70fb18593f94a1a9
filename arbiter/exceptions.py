"""Exceptions raised by the deliberation pipeline."""

from typing import Optional


class ArbiterError(Exception):
    """Base exception for deliberation errors."""

    code = "arbiter_error"

    def __init__(self, message: str, phase: Optional[str] = None):
        super().__init__(message)
        self.phase = phase


class ContractNotFoundError(ArbiterError):
    """Contract does not exist in the contract store."""

    code = "not_found"


class NotReadyError(ArbiterError):
    """Contract is not eligible for a decision yet."""

    code = "not_ready"


class AlreadyDecidedError(ArbiterError):
    """A decision already exists for the contract."""

    code = "already_decided"


class InsufficientProposalsError(ArbiterError):
    """Fewer proposals than the configured minimum were generated."""

    code = "insufficient_proposals"

    def __init__(self, collected: int, minimum: int, phase: Optional[str] = "proposing"):
        super().__init__(
            f"Insufficient proposals generated: {collected} < {minimum}", phase=phase
        )
        self.collected = collected
        self.minimum = minimum


class ParticipantError(ArbiterError):
    """A single proposer or juror call failed or timed out."""

    code = "participant_failure"

    def __init__(self, agent_id: str, message: str, phase: Optional[str] = None):
        super().__init__(f"{agent_id}: {message}", phase=phase)
        self.agent_id = agent_id


class ConcurrencyConflictError(ArbiterError):
    """Another deliberation for the contract is already in progress."""

    code = "concurrency_conflict"
