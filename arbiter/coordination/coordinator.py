"""Per-contract exclusion guard for deliberations."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional, Set, TypeVar

from arbiter.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DecisionCoordinator:
    """Guards deliberations per contract with two complementary mechanisms.

    ``acquire`` / ``run_exclusive`` queue callers on a per-contract lock so at
    most one deliberation runs at a time. ``try_start`` / ``finish`` are a
    non-blocking in-progress flag with a cooldown, used by secondary triggers
    that should skip rather than wait.

    Guard state is created lazily per contract and never removed.
    """

    def __init__(
        self,
        cooldown_seconds: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._in_flight: Set[str] = set()
        self._cooldown_until: Dict[str, float] = {}

    def _lock_for(self, contract_id: str) -> asyncio.Lock:
        lock = self._locks.get(contract_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[contract_id] = lock
        return lock

    @asynccontextmanager
    async def acquire(self, contract_id: str) -> AsyncIterator[None]:
        """Hold the exclusive lock for a contract, waiting for any current holder.

        The lock is released when the block exits, including on error.
        """
        lock = self._lock_for(contract_id)
        if lock.locked():
            logger.debug(f"Waiting for in-flight deliberation on {contract_id}")
        async with lock:
            yield

    async def run_exclusive(self, contract_id: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` while holding the contract's exclusive lock.

        Args:
            contract_id: Contract to lock
            fn: Coroutine function to run

        Returns:
            Whatever ``fn`` returns; exceptions propagate after the lock is released
        """
        async with self.acquire(contract_id):
            return await fn()

    def is_locked(self, contract_id: str) -> bool:
        lock = self._locks.get(contract_id)
        return lock is not None and lock.locked()

    def begin(self, contract_id: str) -> None:
        """Mark a contract in progress, refusing if it already is or is cooling down.

        Raises:
            ConcurrencyConflictError: If the contract is in flight or in cooldown
        """
        if contract_id in self._in_flight:
            raise ConcurrencyConflictError(
                f"Deliberation for {contract_id} already in progress", phase="idle"
            )

        if self.in_cooldown(contract_id):
            raise ConcurrencyConflictError(f"Contract {contract_id} is in cooldown", phase="idle")

        self._in_flight.add(contract_id)

    def try_start(self, contract_id: str) -> bool:
        """Like ``begin`` but reports a conflict as False instead of raising.

        Returns:
            True if the caller should start work
        """
        try:
            self.begin(contract_id)
        except ConcurrencyConflictError as e:
            logger.debug(f"Skipping {contract_id}: {e}")
            return False
        return True

    def finish(self, contract_id: str, cooldown_seconds: Optional[float] = None) -> None:
        """Clear the in-progress flag and start the cooldown window."""
        self._in_flight.discard(contract_id)
        self.set_cooldown(contract_id, cooldown_seconds)

    def set_cooldown(self, contract_id: str, cooldown_seconds: Optional[float] = None) -> None:
        seconds = self.cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        self._cooldown_until[contract_id] = self._clock() + seconds

    def in_cooldown(self, contract_id: str) -> bool:
        until = self._cooldown_until.get(contract_id)
        return until is not None and self._clock() < until

    def is_in_flight(self, contract_id: str) -> bool:
        return contract_id in self._in_flight
