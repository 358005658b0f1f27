from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from services.relay.app.relay.controller import RelayController
from services.relay.app.relay.formatter import NotificationFormatter
from services.relay.app.relay.session import TransportSession
from services.relay.app.services.store_memory import MemoryStoreGateway
from services.relay.app.services.transport_mock import MockTransport

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
DESTINATION = "120363000000000000@g.us"


class SleepRecorder:
    """Stands in for asyncio.sleep: records the delay and yields once."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


async def until(predicate: Callable[[], bool], attempts: int = 500, delay: float = 0) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(delay)
    raise AssertionError("condition not reached")


class RelayHarness:
    def __init__(
        self,
        *,
        destination: str | None = DESTINATION,
        documents: dict[str, dict[str, dict[str, Any]]] | None = None,
        store: Any = None,
        auto_ready: bool = False,
        max_reconnect_attempts: int = 5,
        server_running: bool = True,
    ) -> None:
        self.destination = destination
        self.sleep = SleepRecorder()
        self.transport = MockTransport(auto_ready=auto_ready)
        self.store = store if store is not None else MemoryStoreGateway(documents)
        self.session = TransportSession(
            self.transport,
            max_reconnect_attempts=max_reconnect_attempts,
            sleep=self.sleep,
        )
        self.controller = RelayController(
            session=self.session,
            store=self.store,
            formatter=NotificationFormatter(now=lambda: FIXED_NOW),
            destination_id=destination,
            server_running=server_running,
            sleep=self.sleep,
            now=lambda: FIXED_NOW,
        )

    @contextlib.asynccontextmanager
    async def running(self) -> AsyncIterator["RelayHarness"]:
        task = asyncio.create_task(self.controller.run())
        try:
            yield self
        finally:
            self.controller.cancel_timers()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def ready(self) -> None:
        await self.transport.emit_ready()
        await self.controller.wait_idle()

    async def disconnect(self, reason: str = "NAVIGATION") -> None:
        await self.transport.emit_disconnected(reason)
        await self.controller.wait_idle()

    async def say(self, body: str, origin: str | None = None) -> None:
        await self.transport.emit_message(origin or self.destination or "", body)
        await self.controller.wait_idle()

    @property
    def sent_texts(self) -> list[str]:
        return [text for _, text in self.transport.sent]


@pytest.fixture()
def harness() -> RelayHarness:
    return RelayHarness()


@pytest.fixture()
def make_harness() -> Callable[..., RelayHarness]:
    return RelayHarness


@pytest.fixture()
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def wait_until() -> Callable[..., Any]:
    return until
