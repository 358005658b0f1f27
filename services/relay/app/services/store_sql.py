from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from services.relay.app.db.database import db_session
from services.relay.app.db.init_db import init_db
from services.relay.app.db.models import Document
from services.relay.app.services.store_base import (
    StoreChange,
    StoreDocumentNotFoundError,
    StoreError,
    StoreSubscriptionError,
)

logger = logging.getLogger(__name__)


class SqlStoreGateway:
    """Document store on a single SQLAlchemy `documents` table.

    Sessions are synchronous and run in a worker thread. `subscribe` polls for rows past a
    per-collection cursor, so resubscribing after an error resumes where it left off.
    """

    name = "SQL"

    def __init__(
        self,
        *,
        url: str | None = None,
        poll_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._poll_seconds = poll_seconds
        self._sleep = sleep
        self._cursors: dict[str, int] = {}
        init_db(url)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, collection, doc_id)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self._update_sync, collection, doc_id, fields)

    async def add(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await asyncio.to_thread(self._add_sync, collection, doc_id, data)

    async def subscribe(
        self,
        collection: str,
        *,
        include_existing: bool = False,
    ) -> AsyncIterator[StoreChange]:
        if collection not in self._cursors:
            start = 0 if include_existing else await self._call(self._max_seq_sync, collection)
            self._cursors[collection] = start
            logger.info("Watching collection %r from seq %s", collection, start)

        while True:
            try:
                rows = await asyncio.to_thread(
                    self._rows_after_sync, collection, self._cursors[collection]
                )
            except SQLAlchemyError as e:
                raise StoreSubscriptionError(collection, str(e)) from e

            for seq, doc_id, data in rows:
                self._cursors[collection] = seq
                yield StoreChange(doc_id=doc_id, data=data)

            await self._sleep(self._poll_seconds)

    async def close(self) -> None:
        self._cursors.clear()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    def _get_sync(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            with db_session(self._url) as db:
                row = db.scalar(
                    select(Document).where(
                        Document.collection == collection, Document.doc_id == doc_id
                    )
                )
                return dict(row.data) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"Read {collection}/{doc_id} failed: {e}") from e

    def _update_sync(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            with db_session(self._url) as db:
                row = db.scalar(
                    select(Document).where(
                        Document.collection == collection, Document.doc_id == doc_id
                    )
                )
                if row is None:
                    raise StoreDocumentNotFoundError(collection, doc_id)
                # Reassign so the JSON column is flagged dirty.
                row.data = {**row.data, **fields}
                row.updated_at = datetime.now(timezone.utc)
                db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Update {collection}/{doc_id} failed: {e}") from e

    def _add_sync(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            with db_session(self._url) as db:
                db.add(Document(collection=collection, doc_id=doc_id, data=data))
                db.commit()
        except IntegrityError as e:
            raise StoreError(f"Document {collection}/{doc_id} already exists") from e
        except SQLAlchemyError as e:
            raise StoreError(f"Insert {collection}/{doc_id} failed: {e}") from e

    def _max_seq_sync(self, collection: str) -> int:
        with db_session(self._url) as db:
            value = db.scalar(
                select(func.max(Document.seq)).where(Document.collection == collection)
            )
            return int(value or 0)

    def _rows_after_sync(self, collection: str, cursor: int) -> list[tuple[int, str, dict]]:
        with db_session(self._url) as db:
            rows = db.execute(
                select(Document.seq, Document.doc_id, Document.data)
                .where(Document.collection == collection, Document.seq > cursor)
                .order_by(Document.seq)
            ).all()
            return [(seq, doc_id, dict(data)) for seq, doc_id, data in rows]
