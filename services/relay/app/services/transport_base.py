from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class TransportError(Exception):
    """Base class for messaging transport errors."""


class TransportNotConfiguredError(TransportError):
    def __init__(self, setting: str) -> None:
        super().__init__(f"Messaging transport is not configured. Set {setting}.")
        self.setting = setting


class TransportStartupError(TransportError):
    def __init__(self, attempts: int, last_error: Exception) -> None:
        super().__init__(
            f"Could not initialize the messaging transport after {attempts} attempt(s): "
            f"{last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class SignalKind(str, Enum):
    QR_CHALLENGE = "qr_challenge"
    AUTHENTICATED = "authenticated"
    AUTH_FAILURE = "auth_failure"
    READY = "ready"
    DISCONNECTED = "disconnected"
    MESSAGE_RECEIVED = "message_received"


@dataclass(frozen=True, slots=True)
class InboundMessage:
    origin: str
    body: str
    is_self: bool = False

    @property
    def from_group(self) -> bool:
        return self.origin.endswith("@g.us")


@dataclass(frozen=True, slots=True)
class TransportSignal:
    kind: SignalKind
    # QR payload, failure or disconnect reason.
    detail: str = ""
    message: InboundMessage | None = None


@dataclass(frozen=True, slots=True)
class ChatInfo:
    id: str
    name: str
    is_group: bool


SignalListener = Callable[[TransportSignal], Awaitable[None]]


class Transport(Protocol):
    name: str

    def set_listener(self, listener: SignalListener) -> None: ...

    async def initialize(self) -> None: ...

    async def send_message(self, destination: str, text: str) -> None: ...

    async def list_chats(self) -> list[ChatInfo]: ...

    async def destroy(self) -> None: ...
