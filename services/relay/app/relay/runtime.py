from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from services.relay.app.config import RelayConfig
from services.relay.app.relay.controller import RelayController
from services.relay.app.relay.delivery_queue import DeliveryQueue
from services.relay.app.relay.formatter import NotificationFormatter
from services.relay.app.relay.session import TransportSession
from services.relay.app.relay.watcher import ChangeWatcher
from services.relay.app.services.store_base import StoreGateway
from services.relay.app.services.store_factory import get_store
from services.relay.app.services.transport_base import Transport
from services.relay.app.services.transport_factory import get_transport

logger = logging.getLogger(__name__)


class RelayRuntime:
    """Owns every long-lived relay object for one process."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        transport: Transport | None = None,
        store: StoreGateway | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.transport = transport if transport is not None else get_transport(config)
        self.store = store if store is not None else get_store(config)
        self._sleep = sleep

        self.session = TransportSession(
            self.transport,
            max_reconnect_attempts=config.max_reconnect_attempts,
            reconnect_delay_seconds=config.reconnect_delay_seconds,
            connect_max_attempts=config.connect_max_attempts,
            connect_retry_delay_seconds=config.connect_retry_delay_seconds,
            sleep=sleep,
        )
        self.controller = RelayController(
            session=self.session,
            store=self.store,
            formatter=NotificationFormatter(
                template=config.message_template,
                currency=config.currency_label,
                review_url=config.review_url,
            ),
            queue=DeliveryQueue(max_size=config.queue_max_size),
            destination_id=config.destination_id,
            collection=config.collection,
            actor_name=config.actor_name,
            server_running=config.start_running,
            drain_interval_seconds=config.drain_interval_seconds,
            sleep=sleep,
        )
        self.watcher = ChangeWatcher(
            self.store,
            self.controller.on_change,
            collection=config.collection,
            include_existing=config.notify_existing,
            retry_seconds=config.subscribe_retry_seconds,
            sleep=sleep,
        )

        self._controller_task: asyncio.Task[None] | None = None
        self._watcher_task: asyncio.Task[None] | None = None

    @property
    def started(self) -> bool:
        return self._controller_task is not None

    async def start(self) -> None:
        """Connect the transport and start consuming events.

        Raises TransportStartupError when the bootstrap attempt cap is exhausted.
        """

        if self.started:
            return

        cfg = self.config
        logger.info("Starting payment relay...")
        logger.info("  Transport: %s", self.transport.name)
        logger.info("  Store: %s (collection %r)", self.store.name, cfg.collection)
        logger.info("  Destination: %s", cfg.destination_id or "Not set")

        # Signals emitted during connect are buffered until the consumer runs.
        self._controller_task = asyncio.create_task(self.controller.run())
        try:
            await self.session.connect()
        except Exception:
            await self._cancel(self._controller_task)
            self._controller_task = None
            raise

        self._watcher_task = asyncio.create_task(self._watch_after_delay())

    async def _watch_after_delay(self) -> None:
        await self._sleep(self.config.monitor_start_delay_seconds)
        await self.watcher.run()

    async def stop(self) -> None:
        logger.info("Shutting down gracefully...")
        await self._cancel(self._watcher_task)
        self._watcher_task = None
        self.controller.cancel_timers()
        await self._cancel(self._controller_task)
        self._controller_task = None
        await self.session.close()
        await self.store.close()

    @staticmethod
    async def _cancel(task: asyncio.Task[None] | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def status(self) -> dict[str, object]:
        return {
            "server_running": self.controller.server_running,
            "session_state": self.session.state.value,
            "transport_ready": self.session.is_ready,
            "reconnect_attempts": self.session.reconnect_attempts,
            "max_reconnect_attempts": self.session.max_reconnect_attempts,
            "failed": self.session.failed,
            "queue_depth": len(self.controller.queue),
            "destination_configured": bool(self.config.destination_id),
        }
