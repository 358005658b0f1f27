"""Connection lifecycle for the messaging transport.

    DISCONNECTED -> CONNECTING -> AUTHENTICATED -> READY
    any state -> DISCONNECTED on a disconnect signal
    DISCONNECTED -> RECONNECTING (attempts < max) -> CONNECTING after a fixed delay
    DISCONNECTED -> FAILED (attempts exhausted; terminal)

The reconnect counter resets only on READY. Bootstrap `connect()` has its own attempt
cap and raises `TransportStartupError` when it runs out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from services.relay.app.services.transport_base import (
    ChatInfo,
    Transport,
    TransportError,
    TransportStartupError,
)

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    READY = "ready"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class SendResult(str, Enum):
    SUCCESS = "success"
    # Transport not ready; the caller decides whether to enqueue.
    QUEUED = "queued"
    FAILED = "failed"


class TransportSession:
    def __init__(
        self,
        transport: Transport,
        *,
        max_reconnect_attempts: int = 5,
        reconnect_delay_seconds: float = 5.0,
        connect_max_attempts: int = 3,
        connect_retry_delay_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.transport = transport
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay_seconds = reconnect_delay_seconds
        self.connect_max_attempts = connect_max_attempts
        self.connect_retry_delay_seconds = connect_retry_delay_seconds
        self._sleep = sleep

        self.state = SessionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.last_error: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    @property
    def failed(self) -> bool:
        return self.state is SessionState.FAILED

    def _transition(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug("Session %s -> %s", self.state.value, state.value)
        self.state = state

    async def connect(self) -> None:
        """Bootstrap the transport, retrying with a fixed delay up to the attempt cap."""

        if self.state in (SessionState.CONNECTING, SessionState.AUTHENTICATED, SessionState.READY):
            return

        for attempt in range(1, self.connect_max_attempts + 1):
            self._transition(SessionState.CONNECTING)
            try:
                await self.transport.initialize()
                return
            except TransportError as e:
                self._transition(SessionState.DISCONNECTED)
                self.last_error = str(e)
                logger.warning("Transport initialize attempt %s failed: %s", attempt, e)
                if attempt >= self.connect_max_attempts:
                    logger.error("Max connect attempts reached; giving up")
                    raise TransportStartupError(attempt, e) from e

                logger.info(
                    "Retrying in %s seconds... (%s/%s)",
                    self.connect_retry_delay_seconds,
                    attempt,
                    self.connect_max_attempts,
                )
                await self._sleep(self.connect_retry_delay_seconds)

    def on_qr_challenge(self, payload: str) -> None:
        logger.info("Pairing QR challenge received; scan it with the messaging app: %s", payload)

    def on_authenticated(self) -> None:
        if self.state is SessionState.FAILED:
            return
        self._transition(SessionState.AUTHENTICATED)
        logger.info("Transport authentication successful")

    def on_auth_failure(self, reason: str) -> None:
        self.last_error = reason
        logger.error("Transport authentication failed: %s", reason)

    def on_ready(self) -> None:
        if self.state is SessionState.FAILED:
            logger.warning("Ignoring ready signal; session already failed")
            return
        self._transition(SessionState.READY)
        self.reconnect_attempts = 0
        logger.info("Transport is ready")

    def on_disconnected(self, reason: str) -> float | None:
        """Record a disconnect.

        Returns the delay before the next connect attempt, or None when the session has
        reached the terminal FAILED state.
        """

        if self.state is SessionState.FAILED:
            return None

        self.last_error = reason
        self._transition(SessionState.DISCONNECTED)
        logger.warning("Transport disconnected: %s", reason)

        if self.reconnect_attempts < self.max_reconnect_attempts:
            self.reconnect_attempts += 1
            self._transition(SessionState.RECONNECTING)
            logger.info(
                "Attempting to reconnect in %s seconds... (%s/%s)",
                self.reconnect_delay_seconds,
                self.reconnect_attempts,
                self.max_reconnect_attempts,
            )
            return self.reconnect_delay_seconds

        self._transition(SessionState.FAILED)
        logger.critical(
            "Max reconnection attempts (%s) reached. Restart the relay to recover.",
            self.max_reconnect_attempts,
        )
        return None

    async def reconnect(self) -> None:
        """Run one scheduled reconnect attempt. Raises TransportError if it fails."""

        if self.state is not SessionState.RECONNECTING:
            return
        self._transition(SessionState.CONNECTING)
        await self.transport.initialize()

    async def send(self, destination: str | None, text: str) -> SendResult:
        if not self.is_ready:
            return SendResult.QUEUED

        if not destination:
            logger.error("Destination id not configured (RELAY_DESTINATION_ID); cannot send")
            return SendResult.FAILED

        try:
            await self.transport.send_message(destination, text)
        except TransportError as e:
            logger.error("Error sending message to %s: %s", destination, e)
            return SendResult.FAILED

        logger.info("Message sent to %s", destination)
        return SendResult.SUCCESS

    async def list_group_chats(self) -> list[ChatInfo]:
        chats = await self.transport.list_chats()
        return [chat for chat in chats if chat.is_group]

    async def close(self) -> None:
        await self.transport.destroy()
        self._transition(SessionState.DISCONNECTED)
        logger.info("Transport session closed")
