from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class QueuedNotification:
    text: str
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class DrainResult:
    attempted: int
    delivered: int

    @property
    def failed(self) -> int:
        return self.attempted - self.delivered


class DeliveryQueue:
    """FIFO buffer for notifications produced while the transport is not ready.

    Volatile and in-memory. Unbounded unless `max_size` is set, in which case the
    oldest entry is dropped to make room.
    """

    def __init__(self, max_size: int | None = None) -> None:
        self._max_size = max_size or None
        self._items: deque[QueuedNotification] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def snapshot(self) -> list[QueuedNotification]:
        return list(self._items)

    def enqueue(self, text: str) -> QueuedNotification:
        if self._max_size is not None and len(self._items) >= self._max_size:
            dropped = self._items.popleft()
            logger.warning(
                "Delivery queue full (max_size=%s); dropping notification queued at %s",
                self._max_size,
                dropped.enqueued_at.isoformat(),
            )

        item = QueuedNotification(text=text)
        self._items.append(item)
        logger.info("Notification queued. Queue size: %s", len(self._items))
        return item

    async def drain(
        self,
        send: Callable[[str], Awaitable[bool]],
        *,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]],
    ) -> DrainResult:
        """Send every queued notification oldest first, then empty the queue.

        Items are attempted once; a failed send is logged and not re-queued.
        """

        pending = list(self._items)
        self._items.clear()
        if not pending:
            return DrainResult(attempted=0, delivered=0)

        logger.info("Processing %s queued notification(s)", len(pending))
        delivered = 0
        for index, item in enumerate(pending):
            if index:
                await sleep(interval_seconds)
            if await send(item.text):
                delivered += 1
            else:
                logger.warning(
                    "Queued notification from %s could not be delivered; dropping it",
                    item.enqueued_at.isoformat(),
                )

        logger.info("Queue drained: %s/%s delivered", delivered, len(pending))
        return DrainResult(attempted=len(pending), delivered=delivered)
