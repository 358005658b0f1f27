from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from google.api_core.exceptions import Conflict, NotFound
from services.relay.app.services.store_base import (
    StoreDocumentNotFoundError,
    StoreError,
    StoreSubscriptionError,
)
from services.relay.app.services.store_firestore import (
    FirestoreStoreGateway,
    load_service_account,
)


class FakeWatch:
    def __init__(self) -> None:
        self.is_active = True
        self.unsubscribed = False

    def unsubscribe(self) -> None:
        self.unsubscribed = True


class FakeSnapshot:
    def __init__(self, data: dict[str, Any] | None) -> None:
        self.exists = data is not None
        self._data = data

    def to_dict(self) -> dict[str, Any] | None:
        return dict(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, docs: dict[str, dict[str, Any]], doc_id: str) -> None:
        self._docs = docs
        self._id = doc_id

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self._docs.get(self._id))

    def update(self, fields: dict[str, Any]) -> None:
        if self._id not in self._docs:
            raise NotFound(f"No document to update: {self._id}")
        self._docs[self._id].update(fields)

    def create(self, data: dict[str, Any]) -> None:
        if self._id in self._docs:
            raise Conflict(f"Document already exists: {self._id}")
        self._docs[self._id] = dict(data)


class FakeFirestore:
    """Just enough of google.cloud.firestore.Client for the gateway."""

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.listeners: list[Any] = []
        self.watches: list[FakeWatch] = []

    def collection(self, name: str) -> SimpleNamespace:
        docs = self.collections.setdefault(name, {})
        return SimpleNamespace(
            document=lambda doc_id: FakeDocument(docs, doc_id),
            on_snapshot=self._on_snapshot,
        )

    def _on_snapshot(self, callback) -> FakeWatch:
        self.listeners.append(callback)
        watch = FakeWatch()
        self.watches.append(watch)
        return watch


def _change(kind: str, doc_id: str, data: dict[str, Any]) -> SimpleNamespace:
    return SimpleNamespace(
        type=SimpleNamespace(name=kind),
        document=SimpleNamespace(id=doc_id, to_dict=lambda: dict(data)),
    )


async def _push(callback, *changes: SimpleNamespace) -> None:
    # Snapshot callbacks arrive on the client's own thread.
    await asyncio.to_thread(callback, None, list(changes), None)


@pytest.mark.asyncio
async def test_get_update_and_create() -> None:
    client = FakeFirestore()
    store = FirestoreStoreGateway(client)

    await store.add("payments", "P1", {"status": "pending"})
    await store.update(
        "payments",
        "P1",
        {"status": "approved", "approvedAt": {"_seconds": 1_700_000_000, "_nanoseconds": 0}},
    )

    doc = await store.get("payments", "P1")
    assert doc["status"] == "approved"
    assert doc["approvedAt"] == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert await store.get("payments", "missing") is None


@pytest.mark.asyncio
async def test_client_errors_map_to_store_errors() -> None:
    store = FirestoreStoreGateway(FakeFirestore())
    await store.add("payments", "P1", {})

    with pytest.raises(StoreDocumentNotFoundError):
        await store.update("payments", "nope", {"status": "approved"})
    with pytest.raises(StoreError, match="already exists"):
        await store.add("payments", "P1", {})


@pytest.mark.asyncio
async def test_initial_snapshot_skipped_unless_requested(wait_until) -> None:
    client = FakeFirestore()
    store = FirestoreStoreGateway(client)

    stream = store.subscribe("payments")
    pending = asyncio.create_task(anext(stream))
    await wait_until(lambda: bool(client.listeners))
    listener = client.listeners[0]

    await _push(listener, _change("ADDED", "old", {"fullName": "Old"}))
    await _push(listener, _change("ADDED", "P1", {"fullName": "Jane"}))
    change = await pending
    await stream.aclose()

    assert (change.doc_id, change.data, change.type) == ("P1", {"fullName": "Jane"}, "added")
    assert client.watches[0].unsubscribed


@pytest.mark.asyncio
async def test_initial_snapshot_reported_when_requested(wait_until) -> None:
    client = FakeFirestore()
    store = FirestoreStoreGateway(client)

    stream = store.subscribe("payments", include_existing=True)
    pending = asyncio.create_task(anext(stream))
    await wait_until(lambda: bool(client.listeners))

    await _push(
        client.listeners[0],
        _change("ADDED", "old", {}),
        _change("MODIFIED", "old", {"status": "approved"}),
    )
    first = await pending
    second = await anext(stream)
    await stream.aclose()

    assert (first.doc_id, first.type) == ("old", "added")
    assert second.type == "modified"


@pytest.mark.asyncio
async def test_stopped_listener_ends_subscription(wait_until) -> None:
    client = FakeFirestore()
    store = FirestoreStoreGateway(client, health_check_seconds=0.01)

    stream = store.subscribe("payments")
    pending = asyncio.create_task(anext(stream))
    await wait_until(lambda: bool(client.watches))
    client.watches[0].is_active = False

    with pytest.raises(StoreSubscriptionError, match="listener stopped"):
        await pending
    assert client.watches[0].unsubscribed


def test_service_account_from_inline_json_or_file(tmp_path: Path) -> None:
    assert load_service_account(raw_json='{"project_id": "a"}', path=None) == {"project_id": "a"}

    key_file = tmp_path / "key.json"
    key_file.write_text(json.dumps({"project_id": "b"}), encoding="utf-8")
    assert load_service_account(raw_json=None, path=str(key_file)) == {"project_id": "b"}


def test_missing_or_broken_credentials_are_store_errors(tmp_path: Path) -> None:
    with pytest.raises(StoreError, match="No Firebase credentials"):
        load_service_account(raw_json=None, path=str(tmp_path / "absent.json"))
    with pytest.raises(StoreError, match="not valid JSON"):
        load_service_account(raw_json="{not json", path=None)
