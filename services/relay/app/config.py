from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _optional(name: str) -> str | None:
    return (os.getenv(name) or "").strip() or None


def _float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Process configuration, read once at startup.

    Env vars:
    - RELAY_DESTINATION_ID: user or group handle that receives notifications and is the
      only accepted command origin
    - RELAY_TRANSPORT (mock | http), RELAY_TRANSPORT_URL, RELAY_TRANSPORT_SESSION,
      RELAY_TRANSPORT_API_KEY, RELAY_WEBHOOK_TOKEN
    - RELAY_STORE (memory | sql | firestore), DATABASE_URL, RELAY_STORE_POLL_SECONDS
    - FIREBASE_SERVICE_ACCOUNT (inline JSON) or FIREBASE_SERVICE_ACCOUNT_PATH, and
      FIREBASE_PROJECT_ID for the firestore store
    - RELAY_MESSAGE_TEMPLATE_PATH: optional notification template override
    """

    destination_id: str | None = None
    collection: str = "payments"

    transport: str = "mock"
    transport_url: str | None = None
    transport_session: str = "default"
    transport_api_key: str | None = None
    webhook_token: str | None = None

    store: str = "memory"
    database_url: str | None = None
    store_poll_seconds: float = 1.0
    firebase_service_account: str | None = None
    firebase_service_account_path: str = "firebase-service-account.json"
    firebase_project_id: str | None = None

    max_reconnect_attempts: int = 5
    reconnect_delay_seconds: float = 5.0
    connect_max_attempts: int = 3
    connect_retry_delay_seconds: float = 5.0
    drain_interval_seconds: float = 1.0
    subscribe_retry_seconds: float = 10.0
    monitor_start_delay_seconds: float = 2.0
    queue_max_size: int = 0

    start_running: bool = True
    notify_existing: bool = True

    message_template: str | None = None
    review_url: str | None = None
    currency_label: str = "Rs"
    actor_name: str = "Relay Bot"

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "RelayConfig":
        template_path = _optional("RELAY_MESSAGE_TEMPLATE_PATH")
        template = None
        if template_path:
            template = Path(template_path).expanduser().read_text(encoding="utf-8")

        return cls(
            destination_id=_optional("RELAY_DESTINATION_ID"),
            collection=os.getenv("RELAY_COLLECTION", "payments").strip() or "payments",
            transport=os.getenv("RELAY_TRANSPORT", "mock").strip().lower(),
            transport_url=_optional("RELAY_TRANSPORT_URL"),
            transport_session=os.getenv("RELAY_TRANSPORT_SESSION", "default").strip(),
            transport_api_key=_optional("RELAY_TRANSPORT_API_KEY"),
            webhook_token=_optional("RELAY_WEBHOOK_TOKEN"),
            store=os.getenv("RELAY_STORE", "memory").strip().lower(),
            database_url=_optional("DATABASE_URL"),
            store_poll_seconds=_float("RELAY_STORE_POLL_SECONDS", 1.0),
            firebase_service_account=_optional("FIREBASE_SERVICE_ACCOUNT"),
            firebase_service_account_path=os.getenv(
                "FIREBASE_SERVICE_ACCOUNT_PATH", "firebase-service-account.json"
            ),
            firebase_project_id=_optional("FIREBASE_PROJECT_ID"),
            max_reconnect_attempts=_int("RELAY_MAX_RECONNECT_ATTEMPTS", 5),
            reconnect_delay_seconds=_float("RELAY_RECONNECT_DELAY_SECONDS", 5.0),
            connect_max_attempts=_int("RELAY_CONNECT_MAX_ATTEMPTS", 3),
            connect_retry_delay_seconds=_float("RELAY_CONNECT_RETRY_DELAY_SECONDS", 5.0),
            drain_interval_seconds=_float("RELAY_DRAIN_INTERVAL_SECONDS", 1.0),
            subscribe_retry_seconds=_float("RELAY_SUBSCRIBE_RETRY_SECONDS", 10.0),
            monitor_start_delay_seconds=_float("RELAY_MONITOR_START_DELAY_SECONDS", 2.0),
            queue_max_size=_int("RELAY_QUEUE_MAX_SIZE", 0),
            start_running=_parse_bool(os.getenv("RELAY_START_RUNNING", "true")),
            notify_existing=_parse_bool(os.getenv("RELAY_NOTIFY_EXISTING", "true")),
            message_template=template,
            review_url=_optional("RELAY_REVIEW_URL"),
            currency_label=os.getenv("RELAY_CURRENCY_LABEL", "Rs").strip() or "Rs",
            actor_name=os.getenv("RELAY_ACTOR_NAME", "Relay Bot").strip() or "Relay Bot",
            log_level=os.getenv("RELAY_LOG_LEVEL", "INFO").strip().upper(),
            host=os.getenv("RELAY_HOST", "0.0.0.0"),
            port=_int("RELAY_PORT", 8000),
        )
