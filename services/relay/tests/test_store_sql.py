from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from services.relay.app.services.store_base import StoreDocumentNotFoundError, StoreError
from services.relay.app.services.store_sql import SqlStoreGateway


class _PollSignal:
    """Sleep stand-in that flags when the subscription finished a poll."""

    def __init__(self) -> None:
        self.polled = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.polled.set()
        await asyncio.sleep(0)


def _store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, sleep=None) -> SqlStoreGateway:
    monkeypatch.setenv("RELAY_DB_AUTO_CREATE", "true")
    url = f"sqlite+pysqlite:///{tmp_path / 'relay_store.db'}"
    if sleep is None:
        return SqlStoreGateway(url=url)
    return SqlStoreGateway(url=url, sleep=sleep)


@pytest.mark.asyncio
async def test_add_get_and_merge_update(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path, monkeypatch)

    await store.add("payments", "P1", {"status": "pending", "fullName": "Jane"})
    await store.update("payments", "P1", {"status": "approved", "approvedBy": "Relay Bot"})

    assert await store.get("payments", "P1") == {
        "status": "approved",
        "fullName": "Jane",
        "approvedBy": "Relay Bot",
    }
    assert await store.get("payments", "missing") is None
    assert await store.get("other", "P1") is None


@pytest.mark.asyncio
async def test_update_missing_document_raises(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path, monkeypatch)

    with pytest.raises(StoreDocumentNotFoundError):
        await store.update("payments", "nope", {"status": "approved"})


@pytest.mark.asyncio
async def test_duplicate_add_is_a_store_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path, monkeypatch)
    await store.add("payments", "P1", {})

    with pytest.raises(StoreError, match="already exists"):
        await store.add("payments", "P1", {})


@pytest.mark.asyncio
async def test_subscription_starts_after_existing_rows_and_resumes(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    poll = _PollSignal()
    store = _store(tmp_path, monkeypatch, sleep=poll)
    await store.add("payments", "old", {"fullName": "Old"})

    stream = store.subscribe("payments")
    pending = asyncio.create_task(anext(stream))
    await poll.polled.wait()
    await store.add("payments", "new", {"fullName": "New"})
    change = await pending
    await stream.aclose()

    assert (change.doc_id, change.data) == ("new", {"fullName": "New"})

    await store.add("payments", "later", {})
    resumed = store.subscribe("payments", include_existing=True)
    try:
        assert (await anext(resumed)).doc_id == "later"
    finally:
        await resumed.aclose()


@pytest.mark.asyncio
async def test_subscription_can_replay_existing_rows(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path, monkeypatch, sleep=_PollSignal())
    await store.add("payments", "A", {})
    await store.add("payments", "B", {})
    await store.add("refunds", "R", {})

    stream = store.subscribe("payments", include_existing=True)
    try:
        ids = [(await anext(stream)).doc_id, (await anext(stream)).doc_id]
    finally:
        await stream.aclose()

    assert ids == ["A", "B"]
