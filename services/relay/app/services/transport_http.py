"""Messaging transport backed by a WhatsApp-style HTTP bridge.

Outbound calls go to the bridge REST API. Lifecycle signals and inbound messages come
back through the `/v1/transport/webhook` route, which hands them to `handle_webhook`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from services.relay.app.services.transport_base import (
    ChatInfo,
    InboundMessage,
    SignalKind,
    SignalListener,
    TransportError,
    TransportNotConfiguredError,
    TransportSignal,
)

logger = logging.getLogger(__name__)

_WEBHOOK_EVENTS = {
    "qr": SignalKind.QR_CHALLENGE,
    "authenticated": SignalKind.AUTHENTICATED,
    "auth_failure": SignalKind.AUTH_FAILURE,
    "ready": SignalKind.READY,
    "disconnected": SignalKind.DISCONNECTED,
    "message": SignalKind.MESSAGE_RECEIVED,
}


class UnknownWebhookEventError(TransportError):
    def __init__(self, event: str) -> None:
        super().__init__(
            f"Unknown webhook event {event!r}. Expected one of: {', '.join(_WEBHOOK_EVENTS)}"
        )
        self.event = event


class HttpBridgeTransport:
    name = "HTTP_BRIDGE"

    def __init__(
        self,
        *,
        base_url: str,
        session: str = "default",
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise TransportNotConfiguredError("RELAY_TRANSPORT_URL")

        self.base_url = base_url.rstrip("/")
        self.session = session
        self._api_key = api_key
        self._timeout = timeout
        # Injected in tests (httpx.MockTransport).
        self._transport = transport
        self._listener: SignalListener | None = None

    def set_listener(self, listener: SignalListener) -> None:
        self._listener = listener

    def _client(self) -> httpx.AsyncClient:
        headers = {"X-Api-Key": self._api_key} if self._api_key else {}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Bridge HTTP {e.response.status_code} on {method} {path}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Bridge connection error on {method} {path}: {e}") from e

    async def initialize(self) -> None:
        """Ask the bridge to (re)start the session. Readiness arrives later via webhook."""
        await self._request("POST", "/api/sessions/start", json={"name": self.session})
        logger.info("Requested bridge session start: %s", self.session)

    async def send_message(self, destination: str, text: str) -> None:
        await self._request(
            "POST",
            "/api/sendText",
            json={"session": self.session, "chatId": destination, "text": text},
        )

    async def list_chats(self) -> list[ChatInfo]:
        response = await self._request("GET", f"/api/{self.session}/chats")
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(f"Bridge returned non-JSON chat list: {e}") from e
        if not isinstance(payload, list):
            raise TransportError(f"Bridge chat list is {type(payload).__name__}, expected a list")

        chats = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            chat_id = raw.get("id")
            if isinstance(chat_id, dict):
                chat_id = chat_id.get("_serialized")
            if not chat_id:
                continue
            chats.append(
                ChatInfo(
                    id=str(chat_id),
                    name=str(raw.get("name") or ""),
                    is_group=bool(raw.get("isGroup", str(chat_id).endswith("@g.us"))),
                )
            )
        return chats

    async def destroy(self) -> None:
        try:
            await self._request("POST", "/api/sessions/stop", json={"name": self.session})
        except TransportError as e:
            logger.warning("Bridge session stop failed: %s", e)

    async def handle_webhook(self, event: str, payload: dict[str, Any]) -> TransportSignal:
        kind = _WEBHOOK_EVENTS.get(event.strip().lower())
        if kind is None:
            raise UnknownWebhookEventError(event)

        if kind is SignalKind.MESSAGE_RECEIVED:
            signal = TransportSignal(
                kind=kind,
                message=InboundMessage(
                    origin=str(payload.get("from") or ""),
                    body=str(payload.get("body") or ""),
                    is_self=bool(payload.get("fromMe", False)),
                ),
            )
        else:
            detail = payload.get("qr") or payload.get("reason") or payload.get("message") or ""
            signal = TransportSignal(kind=kind, detail=str(detail))

        if self._listener is None:
            raise TransportError("No signal listener registered")
        await self._listener(signal)
        return signal
