from __future__ import annotations

from services.relay.app.config import RelayConfig
from services.relay.app.services.store_base import StoreGateway
from services.relay.app.services.store_memory import MemoryStoreGateway


def get_store(config: RelayConfig) -> StoreGateway:
    mode = config.store

    if mode in ("memory", "mock"):
        return MemoryStoreGateway()

    if mode in ("sql", "sqlite", "postgres"):
        from services.relay.app.services.store_sql import SqlStoreGateway

        return SqlStoreGateway(url=config.database_url, poll_seconds=config.store_poll_seconds)

    if mode == "firestore":
        from services.relay.app.services.store_firestore import (
            FirestoreStoreGateway,
            firestore_client,
        )

        return FirestoreStoreGateway(
            firestore_client(
                raw_json=config.firebase_service_account,
                path=config.firebase_service_account_path,
                project_id=config.firebase_project_id,
            )
        )

    raise ValueError(f"Unknown RELAY_STORE={mode!r}. Expected memory, sql or firestore.")
