from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pydantic import ValidationError

from packages.shared.schemas.payment_v1 import ChangeEventV1
from services.relay.app.services.store_base import StoreGateway

logger = logging.getLogger(__name__)


class ChangeWatcher:
    """Feeds "document added" changes from the store into the relay.

    Subscription errors are never fatal: the watcher waits a fixed delay and
    subscribes again, indefinitely.
    """

    def __init__(
        self,
        store: StoreGateway,
        on_change: Callable[[ChangeEventV1], Awaitable[None]],
        *,
        collection: str = "payments",
        include_existing: bool = False,
        retry_seconds: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._collection = collection
        self._include_existing = include_existing
        self._retry_seconds = retry_seconds
        self._sleep = sleep
        self.subscriptions = 0

    async def run(self) -> None:
        logger.info("Starting store monitoring for %r collection...", self._collection)
        while True:
            # Existing documents are only replayed on the very first subscription.
            include_existing = self._include_existing and self.subscriptions == 0
            self.subscriptions += 1
            try:
                async for change in self._store.subscribe(
                    self._collection, include_existing=include_existing
                ):
                    if change.type != "added":
                        continue
                    try:
                        event = ChangeEventV1.from_document(change.doc_id, change.data)
                    except ValidationError as e:
                        logger.error("Skipping malformed document %s: %s", change.doc_id, e)
                        continue
                    await self._on_change(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error monitoring store: %s", e)

            logger.info("Resubscribing in %s seconds...", self._retry_seconds)
            await self._sleep(self._retry_seconds)
