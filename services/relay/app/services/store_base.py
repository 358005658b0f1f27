from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol


class StoreError(Exception):
    """Base class for document store errors."""


class StoreDocumentNotFoundError(StoreError):
    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id


class StoreSubscriptionError(StoreError):
    def __init__(self, collection: str, reason: str) -> None:
        super().__init__(f"Subscription to {collection!r} failed: {reason}")
        self.collection = collection


@dataclass(frozen=True, slots=True)
class StoreChange:
    doc_id: str
    data: dict[str, Any] = field(default_factory=dict)
    type: str = "added"


class StoreGateway(Protocol):
    name: str

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...

    async def add(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def subscribe(
        self,
        collection: str,
        *,
        include_existing: bool = False,
    ) -> AsyncIterator[StoreChange]: ...

    async def close(self) -> None: ...
