"""Settlement boundary for committing a winner to the ledger."""

from abc import ABC, abstractmethod

from arbiter.contracts.models import Choice


class SettlementService(ABC):
    """Submits a contract's winner to the ledger."""

    @abstractmethod
    async def declare_winner(self, contract_id: str, choice: Choice) -> str:
        """Declare the winner of a contract.

        Args:
            contract_id: Contract to settle
            choice: Winning side

        Returns:
            Transaction reference

        Raises:
            SettlementError: If the ledger rejects the submission or cannot be reached
        """
        pass
