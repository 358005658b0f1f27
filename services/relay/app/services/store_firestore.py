"""Cloud Firestore document store.

Reads and writes go through the synchronous client in a worker thread. Subscriptions use
`on_snapshot`, whose callback runs on the client's own thread; changes are handed to the
event loop with `call_soon_threadsafe`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import Conflict, GoogleAPIError, NotFound

from services.relay.app.services.store_base import (
    StoreChange,
    StoreDocumentNotFoundError,
    StoreError,
    StoreSubscriptionError,
)

logger = logging.getLogger(__name__)

_APP_NAME = "payment-relay"


def load_service_account(*, raw_json: str | None, path: str | None) -> dict[str, Any]:
    """Service account from inline JSON, else from a key file."""

    if raw_json:
        try:
            return json.loads(raw_json)
        except json.JSONDecodeError as e:
            raise StoreError(f"FIREBASE_SERVICE_ACCOUNT is not valid JSON: {e}") from e

    key_file = Path(path).expanduser() if path else None
    if key_file is None or not key_file.is_file():
        raise StoreError(
            "No Firebase credentials: set FIREBASE_SERVICE_ACCOUNT or provide "
            f"{path or 'a key file'}"
        )
    try:
        return json.loads(key_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise StoreError(f"Firebase key file {key_file} is not valid JSON: {e}") from e


def firestore_client(
    *,
    raw_json: str | None = None,
    path: str | None = None,
    project_id: str | None = None,
) -> Any:
    info = load_service_account(raw_json=raw_json, path=path)
    try:
        app = firebase_admin.get_app(_APP_NAME)
    except ValueError:
        try:
            cert = credentials.Certificate(info)
        except ValueError as e:
            raise StoreError(f"Invalid Firebase service account: {e}") from e
        app = firebase_admin.initialize_app(
            cert,
            {"projectId": project_id or info.get("project_id")},
            name=_APP_NAME,
        )
    return firestore.client(app)


def _to_store_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Write relay timestamps (`{"_seconds", "_nanoseconds"}`) as native Firestore timestamps."""

    out: dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, dict) and set(value) == {"_seconds", "_nanoseconds"}:
            seconds = value["_seconds"] + value["_nanoseconds"] / 1_000_000_000
            value = datetime.fromtimestamp(seconds, tz=timezone.utc)
        out[key] = value
    return out


class FirestoreStoreGateway:
    name = "FIRESTORE"

    def __init__(self, client: Any, *, health_check_seconds: float = 30.0) -> None:
        self._client = client
        self._health_check_seconds = health_check_seconds

    def _doc(self, collection: str, doc_id: str) -> Any:
        return self._client.collection(collection).document(doc_id)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            snapshot = await asyncio.to_thread(self._doc(collection, doc_id).get)
        except GoogleAPIError as e:
            raise StoreError(f"Read {collection}/{doc_id} failed: {e}") from e
        return snapshot.to_dict() if snapshot.exists else None

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        ref = self._doc(collection, doc_id)
        try:
            await asyncio.to_thread(ref.update, _to_store_values(fields))
        except NotFound as e:
            raise StoreDocumentNotFoundError(collection, doc_id) from e
        except GoogleAPIError as e:
            raise StoreError(f"Update {collection}/{doc_id} failed: {e}") from e

    async def add(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        ref = self._doc(collection, doc_id)
        try:
            await asyncio.to_thread(ref.create, _to_store_values(data))
        except Conflict as e:
            raise StoreError(f"Document {collection}/{doc_id} already exists") from e
        except GoogleAPIError as e:
            raise StoreError(f"Insert {collection}/{doc_id} failed: {e}") from e

    async def subscribe(
        self,
        collection: str,
        *,
        include_existing: bool = False,
    ) -> AsyncIterator[StoreChange]:
        loop = asyncio.get_running_loop()
        changes: asyncio.Queue[StoreChange] = asyncio.Queue()
        first_snapshot = True

        def on_snapshot(_docs: Any, doc_changes: list[Any], _read_time: Any) -> None:
            nonlocal first_snapshot
            initial, first_snapshot = first_snapshot, False
            # The first snapshot lists every existing document as ADDED.
            if initial and not include_existing:
                return
            for change in doc_changes:
                loop.call_soon_threadsafe(
                    changes.put_nowait,
                    StoreChange(
                        doc_id=change.document.id,
                        data=change.document.to_dict() or {},
                        type=change.type.name.lower(),
                    ),
                )

        try:
            watch = self._client.collection(collection).on_snapshot(on_snapshot)
        except GoogleAPIError as e:
            raise StoreSubscriptionError(collection, str(e)) from e
        logger.info("Listening to Firestore collection %r", collection)

        try:
            while True:
                try:
                    change = await asyncio.wait_for(changes.get(), self._health_check_seconds)
                except asyncio.TimeoutError:
                    if not watch.is_active:
                        raise StoreSubscriptionError(collection, "listener stopped") from None
                    continue
                yield change
        finally:
            watch.unsubscribe()

    async def close(self) -> None:
        """The client belongs to the firebase app and lives as long as the process."""

