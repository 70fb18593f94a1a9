"""In-memory publish/subscribe bus for deliberation messages."""

import asyncio
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from arbiter.events.models import DeliberationMessage
from arbiter.utils.helpers import ensure_utc, utc_now

logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """Live stream of messages for one contract.

    Messages are buffered in a bounded queue. When the buffer is full the
    oldest message is dropped so a slow consumer never blocks emission.
    Iterate with ``async for``; iteration ends once the subscription is
    closed and the buffer drained.
    """

    def __init__(self, bus: "DeliberationEventBus", contract_id: str, max_queue_size: int):
        self.contract_id = contract_id
        self.dropped = 0
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def _offer(self, item) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            if item is not _CLOSED:
                self.dropped += 1
        self._queue.put_nowait(item)

    def deliver(self, message: DeliberationMessage) -> None:
        if not self._closed:
            self._offer(message)

    async def get(self, timeout: Optional[float] = None) -> Optional[DeliberationMessage]:
        """Wait for the next message.

        Returns:
            The next message, or None once the subscription is closed
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if item is _CLOSED:
            return None
        return item

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self)
        self._offer(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> DeliberationMessage:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message


class DeliberationEventBus:
    """Per-contract append-only message log with live subscriber fan-out.

    History is kept per contract in emission order. Appends from concurrent
    deliberations of different contracts are serialized by a lock.
    """

    def __init__(
        self,
        max_queue_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_queue_size = max_queue_size
        self._clock = clock
        self._histories: Dict[str, List[DeliberationMessage]] = {}
        self._last_emitted: Dict[str, datetime] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def emit(self, contract_id: str, message: DeliberationMessage) -> None:
        """Append a message to the contract's history and notify subscribers.

        Delivery is best-effort and never blocks the caller.
        """
        with self._lock:
            self._histories.setdefault(contract_id, []).append(message)
            self._last_emitted[contract_id] = self._clock()
            subscribers = list(self._subscribers.get(contract_id, []))

        for subscription in subscribers:
            subscription.deliver(message)

        logger.debug(
            f"Emitted {message.message_type} message for {contract_id} "
            f"to {len(subscribers)} subscriber(s)"
        )

    def subscribe(self, contract_id: str, replay: bool = False) -> Subscription:
        """Subscribe to live messages for a contract.

        Args:
            contract_id: Contract to follow
            replay: Queue the existing history before live messages

        Returns:
            Subscription to iterate
        """
        subscription = Subscription(self, contract_id, self.max_queue_size)
        with self._lock:
            if replay:
                for message in self._histories.get(contract_id, []):
                    subscription.deliver(message)
            self._subscribers.setdefault(contract_id, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.contract_id)
            if not subscribers:
                return
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                del self._subscribers[subscription.contract_id]

    def subscriber_count(self, contract_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(contract_id, []))

    def history(self, contract_id: str) -> List[DeliberationMessage]:
        """Messages emitted for a contract, in emission order."""
        with self._lock:
            return list(self._histories.get(contract_id, []))

    def clear_history(self, contract_id: str) -> None:
        with self._lock:
            self._histories.pop(contract_id, None)
            self._last_emitted.pop(contract_id, None)

    def cleanup(self, max_age_seconds: float = 24 * 60 * 60) -> int:
        """Delete histories whose last message is older than ``max_age_seconds``.

        Returns:
            Number of contract histories removed
        """
        cutoff = self._clock() - timedelta(seconds=max_age_seconds)
        removed = 0
        with self._lock:
            for contract_id in list(self._histories):
                messages = self._histories[contract_id]
                last = self._last_emitted.get(contract_id)
                if last is None and messages:
                    last = ensure_utc(messages[-1].timestamp)
                if last is None or last < cutoff:
                    del self._histories[contract_id]
                    self._last_emitted.pop(contract_id, None)
                    removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} deliberation histories")
        return removed
