from __future__ import annotations

from services.relay.app.config import RelayConfig
from services.relay.app.services.transport_base import Transport
from services.relay.app.services.transport_mock import MockTransport


def get_transport(config: RelayConfig) -> Transport:
    """Select a messaging transport.

    Defaults to the mock transport so tests and local dev are deterministic unless
    explicitly configured otherwise.
    """

    mode = config.transport

    if mode == "mock":
        return MockTransport()

    if mode in ("http", "bridge"):
        from services.relay.app.services.transport_http import HttpBridgeTransport

        return HttpBridgeTransport(
            base_url=config.transport_url or "",
            session=config.transport_session,
            api_key=config.transport_api_key,
        )

    raise ValueError(f"Unknown RELAY_TRANSPORT={mode!r}. Expected mock or http.")
