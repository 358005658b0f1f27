"""Relay orchestration.

Every external event source (store change stream, transport lifecycle and inbound
messages, reconnect timers) submits events to one queue. A single consumer handles them
one at a time, so session state, the running flag and the delivery queue only ever
have one writer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from packages.shared.schemas.payment_v1 import (
    ChangeEventV1,
    PaymentRecordV1,
    PaymentStatusV1,
    store_timestamp,
)
from services.relay.app.relay.commands import (
    Approve,
    Command,
    Help,
    NoMatch,
    Ping,
    QueryStatus,
    Reject,
    StartServer,
    StatusCheck,
    parse_command,
)
from services.relay.app.relay.delivery_queue import DeliveryQueue, DrainResult
from services.relay.app.relay.formatter import (
    HELP_TEXT,
    PING_REPLY,
    NotificationFormatter,
    already_reply,
    not_found_reply,
    server_status_reply,
)
from services.relay.app.relay.session import SendResult, TransportSession
from services.relay.app.services.store_base import StoreGateway
from services.relay.app.services.transport_base import (
    InboundMessage,
    SignalKind,
    TransportError,
    TransportSignal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeDetected:
    event: ChangeEventV1


@dataclass(frozen=True, slots=True)
class SignalReceived:
    signal: TransportSignal


@dataclass(frozen=True, slots=True)
class ReconnectDue:
    pass


RelayEvent = ChangeDetected | SignalReceived | ReconnectDue

_REVIEW_FAILURES = {
    PaymentStatusV1.APPROVED: "❌ Error approving payment. Please try again.",
    PaymentStatusV1.REJECTED: "❌ Error rejecting payment. Please try again.",
}
_STATUS_CHECK_FAILURE = "❌ Error checking payment status. Please try again."
_COMMAND_FAILURE = "❌ Error handling command. Please try again."


class RelayController:
    def __init__(
        self,
        *,
        session: TransportSession,
        store: StoreGateway,
        formatter: NotificationFormatter,
        queue: DeliveryQueue | None = None,
        destination_id: str | None = None,
        collection: str = "payments",
        actor_name: str = "Relay Bot",
        server_running: bool = True,
        drain_interval_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.session = session
        self.store = store
        self.formatter = formatter
        self.queue = queue if queue is not None else DeliveryQueue()
        self.destination_id = destination_id
        self.collection = collection
        self.actor_name = actor_name
        self.server_running = server_running
        self.drain_interval_seconds = drain_interval_seconds
        self._sleep = sleep
        self._now = now or (lambda: datetime.now(timezone.utc))

        self._events: asyncio.Queue[RelayEvent] = asyncio.Queue()
        self._timers: set[asyncio.Task[None]] = set()

        session.transport.set_listener(self.on_signal)

    # Producers

    async def submit(self, event: RelayEvent) -> None:
        await self._events.put(event)

    async def on_signal(self, signal: TransportSignal) -> None:
        await self.submit(SignalReceived(signal))

    async def on_change(self, event: ChangeEventV1) -> None:
        await self.submit(ChangeDetected(event))

    # Consumer

    async def run(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self.handle(event)
            except Exception:
                logger.exception("Unhandled error processing %s", type(event).__name__)
            finally:
                self._events.task_done()

    async def wait_idle(self) -> None:
        """Wait until the event queue is empty and no reconnect timer is pending."""
        while True:
            await self._events.join()
            pending = [t for t in self._timers if not t.done()]
            if pending:
                await asyncio.gather(*pending)
                continue
            if self._events.empty():
                return

    def cancel_timers(self) -> None:
        for task in self._timers:
            task.cancel()
        self._timers.clear()

    async def handle(self, event: RelayEvent) -> None:
        if isinstance(event, ChangeDetected):
            await self.on_change_detected(event.event)
        elif isinstance(event, SignalReceived):
            await self._handle_signal(event.signal)
        elif isinstance(event, ReconnectDue):
            await self._handle_reconnect_due()

    # Change events

    async def on_change_detected(self, event: ChangeEventV1) -> SendResult | None:
        if not self.server_running:
            logger.debug("Server stopped; ignoring change %s", event.id)
            return None

        logger.info("New payment detected: %s", event.id)
        text = self.formatter.format(event)

        result = await self.session.send(self.destination_id, text)
        if result is SendResult.QUEUED:
            logger.info("Transport not ready; queueing notification for %s", event.id)
            self.queue.enqueue(text)
        elif result is SendResult.FAILED:
            logger.warning("Failed to send payment notification for %s", event.id)
        else:
            logger.info("Payment notification sent for %s", event.id)
        return result

    # Transport lifecycle

    async def _handle_signal(self, signal: TransportSignal) -> None:
        kind = signal.kind
        if kind is SignalKind.QR_CHALLENGE:
            self.session.on_qr_challenge(signal.detail)
        elif kind is SignalKind.AUTHENTICATED:
            self.session.on_authenticated()
        elif kind is SignalKind.AUTH_FAILURE:
            self.session.on_auth_failure(signal.detail)
        elif kind is SignalKind.READY:
            await self._on_ready()
        elif kind is SignalKind.DISCONNECTED:
            self._on_disconnected(signal.detail)
        elif kind is SignalKind.MESSAGE_RECEIVED and signal.message is not None:
            await self.on_inbound_message(signal.message)

    async def _on_ready(self) -> None:
        was_ready = self.session.is_ready
        self.session.on_ready()
        if was_ready or not self.session.is_ready:
            return

        await self.drain()
        await self._log_group_destinations()

    async def drain(self) -> DrainResult:
        async def send(text: str) -> bool:
            return await self.session.send(self.destination_id, text) is SendResult.SUCCESS

        return await self.queue.drain(
            send, interval_seconds=self.drain_interval_seconds, sleep=self._sleep
        )

    async def _log_group_destinations(self) -> None:
        try:
            groups = await self.session.list_group_chats()
        except TransportError as e:
            logger.warning("Could not fetch chats: %s", e)
            return

        if not groups:
            return
        logger.info("Available group chats (set RELAY_DESTINATION_ID to one of these ids):")
        for chat in groups:
            logger.info("  Group: %s - ID: %s", chat.name, chat.id)

    def _on_disconnected(self, reason: str) -> None:
        delay = self.session.on_disconnected(reason)
        if delay is not None:
            self._schedule_reconnect(delay)

    def _schedule_reconnect(self, delay: float) -> None:
        async def fire() -> None:
            await self._sleep(delay)
            await self.submit(ReconnectDue())

        task = asyncio.create_task(fire())
        self._timers.add(task)
        task.add_done_callback(self._timers.discard)

    async def _handle_reconnect_due(self) -> None:
        try:
            await self.session.reconnect()
        except TransportError as e:
            # A failed attempt counts against the reconnect budget like a disconnect.
            self._on_disconnected(f"reconnect failed: {e}")

    # Inbound commands

    async def on_inbound_message(self, message: InboundMessage) -> Command | None:
        if message.from_group:
            logger.info(
                "Group message detected. Group ID: %s (set RELAY_DESTINATION_ID=%s to use it)",
                message.origin,
                message.origin,
            )

        if message.is_self:
            return None
        if not self.destination_id or message.origin != self.destination_id:
            return None

        command = parse_command(message.body)
        if isinstance(command, NoMatch):
            return command

        logger.info("Command received: %s", type(command).__name__)
        try:
            await self._dispatch(command, message.origin)
        except Exception:
            logger.exception("Error handling command %s", type(command).__name__)
            await self._reply(message.origin, _COMMAND_FAILURE)
        return command

    async def _dispatch(self, command: Command, origin: str) -> None:
        if isinstance(command, StatusCheck):
            await self._status_check(command.payment_id, origin)
        elif isinstance(command, Approve):
            await self._review(command.payment_id, PaymentStatusV1.APPROVED, origin)
        elif isinstance(command, Reject):
            await self._review(command.payment_id, PaymentStatusV1.REJECTED, origin)
        elif isinstance(command, StartServer):
            await self._start_server(origin)
        elif isinstance(command, QueryStatus):
            await self._reply(
                origin,
                server_status_reply(
                    running=self.server_running,
                    connected=self.session.is_ready,
                    queue_depth=len(self.queue),
                ),
            )
        elif isinstance(command, Help):
            await self._reply(origin, HELP_TEXT)
        elif isinstance(command, Ping):
            await self._reply(origin, PING_REPLY)

    async def _reply(self, origin: str, text: str) -> SendResult:
        result = await self.session.send(origin, text)
        if result is not SendResult.SUCCESS:
            logger.warning("Reply to %s not delivered (%s)", origin, result.value)
        return result

    async def _load(self, payment_id: str) -> PaymentRecordV1 | None:
        data = await self.store.get(self.collection, payment_id)
        if data is None:
            return None
        return PaymentRecordV1.from_document(payment_id, data)

    async def _status_check(self, payment_id: str, origin: str) -> None:
        logger.info("Checking status for payment %s", payment_id)
        try:
            record = await self._load(payment_id)
        except Exception:
            logger.exception("Error checking payment status for %s", payment_id)
            await self._reply(origin, _STATUS_CHECK_FAILURE)
            return

        if record is None:
            await self._reply(origin, not_found_reply(payment_id))
            return

        await self._reply(origin, self.formatter.status_report(record))

    async def _review(self, payment_id: str, target: PaymentStatusV1, origin: str) -> None:
        logger.info("Processing %s for payment %s", target.value, payment_id)
        try:
            record = await self._load(payment_id)
            if record is None:
                await self._reply(origin, not_found_reply(payment_id))
                return

            current = record.status
            # Only pending payments move; a reviewed payment keeps its outcome.
            if current in (PaymentStatusV1.APPROVED.value, PaymentStatusV1.REJECTED.value):
                await self._reply(origin, already_reply(payment_id, current))
                return

            reviewed_at = self._now()
            stamp = store_timestamp(reviewed_at)
            actor_field, time_field = (
                ("approvedBy", "approvedAt")
                if target is PaymentStatusV1.APPROVED
                else ("rejectedBy", "rejectedAt")
            )
            await self.store.update(
                self.collection,
                payment_id,
                {
                    "status": target.value,
                    "needsManualVerification": False,
                    "reviewedAt": stamp,
                    actor_field: self.actor_name,
                    time_field: stamp,
                },
            )
        except Exception:
            logger.exception("Error updating payment %s to %s", payment_id, target.value)
            await self._reply(origin, _REVIEW_FAILURES[target])
            return

        logger.info("Payment %s %s", payment_id, target.value)
        await self._reply(
            origin,
            self.formatter.review_confirmation(
                record, status=target.value, actor=self.actor_name, at=reviewed_at
            ),
        )

    async def _start_server(self, origin: str) -> None:
        if self.server_running:
            await self._reply(origin, "ℹ️ Server is already running!")
            return

        self.server_running = True
        logger.info("Server start command received")
        await self._reply(origin, "✅ Server started! Monitoring payments...")
