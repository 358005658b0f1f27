from __future__ import annotations

import asyncio
import copy
from collections.abc import AsyncIterator
from typing import Any

from services.relay.app.services.store_base import StoreChange, StoreDocumentNotFoundError


class MemoryStoreGateway:
    """Dict-backed document store for local dev and tests.

    `writes` records every update so callers can assert that a command did not write.
    """

    name = "MEMORY"

    def __init__(self, documents: dict[str, dict[str, dict[str, Any]]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = copy.deepcopy(documents or {})
        self._subscribers: dict[str, list[asyncio.Queue[StoreChange]]] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise StoreDocumentNotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(fields))
        self.writes.append((collection, doc_id, copy.deepcopy(fields)))

    async def add(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        change = StoreChange(doc_id=doc_id, data=copy.deepcopy(data))
        for queue in self._subscribers.get(collection, []):
            queue.put_nowait(change)

    async def subscribe(
        self,
        collection: str,
        *,
        include_existing: bool = False,
    ) -> AsyncIterator[StoreChange]:
        queue: asyncio.Queue[StoreChange] = asyncio.Queue()
        if include_existing:
            for doc_id, data in self._collections.get(collection, {}).items():
                queue.put_nowait(StoreChange(doc_id=doc_id, data=copy.deepcopy(data)))

        subscribers = self._subscribers.setdefault(collection, [])
        subscribers.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            subscribers.remove(queue)

    async def close(self) -> None:
        self._subscribers.clear()
