from __future__ import annotations

from services.relay.app.services.transport_base import (
    ChatInfo,
    InboundMessage,
    SignalKind,
    SignalListener,
    TransportError,
    TransportSignal,
)


class MockTransport:
    """In-process transport for local dev and tests.

    Records every send instead of delivering it. Lifecycle signals are emitted on demand
    through the `emit_*` helpers, and automatically on `initialize()` when `auto_ready`
    is set.
    """

    name = "MOCK"

    def __init__(
        self,
        *,
        auto_ready: bool = True,
        initialize_failures: int = 0,
        chats: list[ChatInfo] | None = None,
    ) -> None:
        self.auto_ready = auto_ready
        self.fail_sends = False
        self.sent: list[tuple[str, str]] = []
        self.initialize_calls = 0
        self.destroyed = False
        self._initialize_failures = initialize_failures
        self._chats = chats or []
        self._listener: SignalListener | None = None

    def set_listener(self, listener: SignalListener) -> None:
        self._listener = listener

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self._initialize_failures > 0:
            self._initialize_failures -= 1
            raise TransportError("mock initialize failure")

        if self.auto_ready:
            await self.emit(SignalKind.AUTHENTICATED)
            await self.emit(SignalKind.READY)

    async def send_message(self, destination: str, text: str) -> None:
        if self.fail_sends:
            raise TransportError("mock send failure")
        self.sent.append((destination, text))

    async def list_chats(self) -> list[ChatInfo]:
        return list(self._chats)

    async def destroy(self) -> None:
        self.destroyed = True

    async def emit(self, kind: SignalKind, detail: str = "") -> None:
        if self._listener is None:
            raise TransportError("No signal listener registered")
        await self._listener(TransportSignal(kind=kind, detail=detail))

    async def emit_ready(self) -> None:
        await self.emit(SignalKind.READY)

    async def emit_disconnected(self, reason: str = "NAVIGATION") -> None:
        await self.emit(SignalKind.DISCONNECTED, reason)

    async def emit_message(self, origin: str, body: str, *, is_self: bool = False) -> None:
        if self._listener is None:
            raise TransportError("No signal listener registered")
        await self._listener(
            TransportSignal(
                kind=SignalKind.MESSAGE_RECEIVED,
                message=InboundMessage(origin=origin, body=body, is_self=is_self),
            )
        )
