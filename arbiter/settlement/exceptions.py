"""Exceptions for settlement gateway operations."""

from arbiter.exceptions import ArbiterError


class SettlementError(ArbiterError):
    """Base exception for settlement errors."""

    code = "settlement_failure"

    def __init__(self, message: str, status_code: int = None, response_data: dict = None):
        super().__init__(message, phase="settling")
        self.status_code = status_code
        self.response_data = response_data


class SettlementRejectedError(SettlementError):
    """The ledger rejected the submission (insufficient funds, stale state)."""

    pass


class SettlementNetworkError(SettlementError):
    """The gateway could not be reached."""

    pass
