"""Periodic scanner that decides contracts whose betting window has ended."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from arbiter.coordination.coordinator import DecisionCoordinator
from arbiter.database.repositories import ContractStore
from arbiter.decision.models import DecisionOutcome
from arbiter.decision.orchestrator import DecisionOrchestrator
from arbiter.events.bus import DeliberationEventBus
from arbiter.exceptions import ConcurrencyConflictError
from arbiter.utils.helpers import utc_now

logger = logging.getLogger(__name__)


class ContractMonitor:
    """Polls for decidable contracts and hands them to the orchestrator.

    Secondary triggers use the coordinator's non-blocking guard: a contract
    that is already being decided, or was just attempted, is skipped instead
    of queued.
    """

    def __init__(
        self,
        orchestrator: DecisionOrchestrator,
        contracts: ContractStore,
        coordinator: Optional[DecisionCoordinator] = None,
        bus: Optional[DeliberationEventBus] = None,
        interval_seconds: float = 30.0,
        history_max_age_seconds: float = 24 * 60 * 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.orchestrator = orchestrator
        self.contracts = contracts
        self.coordinator = coordinator or orchestrator.coordinator
        self.bus = bus or orchestrator.bus
        self.interval_seconds = interval_seconds
        self.history_max_age_seconds = history_max_age_seconds
        self._clock = clock
        self._stopped = asyncio.Event()

    async def trigger(self, contract_id: str) -> Optional[DecisionOutcome]:
        """Decide one contract unless it is in progress or cooling down.

        Returns:
            The decision outcome, or None if the contract was skipped
        """
        try:
            self.coordinator.begin(contract_id)
        except ConcurrencyConflictError as e:
            logger.info(f"Monitor skipped {contract_id}: {e}")
            return None

        try:
            outcome = await self.orchestrator.decide(contract_id)
        finally:
            self.coordinator.finish(contract_id)

        if outcome.success:
            logger.info(f"Monitor decided {contract_id}: {outcome.winner_id}")
        else:
            logger.warning(f"Monitor could not decide {contract_id}: {outcome.reason}")
        return outcome

    async def run_once(self) -> List[DecisionOutcome]:
        """Scan once, decide every ready contract and prune stale event history."""
        ready = self.contracts.find_ready_for_decision(self._clock())
        if ready:
            logger.info(f"Found {len(ready)} contract(s) ready for decision")

        outcomes = []
        for contract in ready:
            outcome = await self.trigger(contract.id)
            if outcome is not None:
                outcomes.append(outcome)

        removed = self.bus.cleanup(self.history_max_age_seconds)
        if removed:
            logger.debug(f"Pruned event history for {removed} contract(s)")

        return outcomes

    async def run_forever(self) -> None:
        """Scan every ``interval_seconds`` until ``stop`` is called."""
        logger.info(f"Contract monitor started (interval {self.interval_seconds}s)")
        self._stopped.clear()

        while not self._stopped.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Monitor scan failed")

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

        logger.info("Contract monitor stopped")

    def stop(self) -> None:
        self._stopped.set()
