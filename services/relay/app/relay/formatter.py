"""Render payment documents and command replies as chat text.

The payment schema lets one fact live in several places, so each logical field has a
resolver with a fixed precedence (first present wins):

- product name: `productName`, first order item `name`
- price: number parsed from `orderTotal`, `productPrice`, variant price, first order item `price`
- variant: top-level `variant` (with a label), first order item `variant`
- extra fields: top-level `extraFields`, first order item `extraFields`
- timestamp: `createdAt`, `timestamp` (either seconds spelling), current time

Anything unresolved or unreadable renders as "N/A".
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from packages.shared.schemas.payment_v1 import (
    ChangeEventV1,
    ExtraFieldV1,
    PaymentDocumentV1,
    PaymentRecordV1,
    StoreTimestampV1,
)
from services.relay.app.relay.commands import approve_hint, reject_hint, status_hint

NA = "N/A"

_LEADING_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")

DEFAULT_TEMPLATE = """New Payment Alert! 💰

Payment ID: {payment_id}
Customer Name: {customer}
Phone: {phone}
Email: {email}
Product Name: {product}
Price: {currency} {price}
Variant: {variant_label} ({currency} {variant_price})
Extra Fields: {extra_fields}
Payment Method: {payment_method}
Time: {timestamp}

{quick_actions}"""

HELP_TEXT = """🤖 Available Commands:

🔧 Server Control:
• start - Start the server
• status - Check server status
• help - Show this help message
• ping - Test bot responsiveness

💳 Payment Management:
• status [PAYMENT_ID] - Check payment status
• [PAYMENT_ID] + approved - Approve a payment
• [PAYMENT_ID] + rejected - Reject a payment

📋 Examples:
• status 5SQE58Q9SezDZLPjTME1
• 5SQE58Q9SezDZLPjTME1 + approved
• 5SQE58Q9SezDZLPjTME1 + rejected"""

PING_REPLY = "🏓 Pong! Server is alive."


@dataclass(frozen=True, slots=True)
class Variant:
    label: str
    price: str


def _text(value: object) -> str | None:
    """Stringify a present value; empty and missing values count as absent."""
    if value is None or value == "" or value is False:
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_time(moment: datetime) -> str:
    return moment.astimezone().strftime("%d/%m/%Y, %H:%M:%S")


def resolve_customer(doc: PaymentDocumentV1) -> str:
    return _text(doc.full_name) or _text(doc.customer_name) or NA


def resolve_product_name(doc: PaymentDocumentV1) -> str:
    item = doc.first_item()
    return _text(doc.product_name) or (item and _text(item.name)) or NA


def resolve_variant(doc: PaymentDocumentV1) -> Variant:
    if doc.variant is not None and _text(doc.variant.label):
        return Variant(label=_text(doc.variant.label) or NA, price=_text(doc.variant.price) or NA)

    item = doc.first_item()
    if item is not None and item.variant is not None:
        return Variant(label=_text(item.variant.label) or NA, price=_text(item.variant.price) or NA)

    return Variant(label=NA, price=NA)


def resolve_price(doc: PaymentDocumentV1) -> str:
    total = _text(doc.order_total)
    if total:
        m = _LEADING_NUMBER.search(total)
        return m.group(1) if m else total

    product_price = _text(doc.product_price)
    if product_price:
        return product_price

    variant_price = resolve_variant(doc).price
    if variant_price != NA:
        return variant_price

    item = doc.first_item()
    return (item and _text(item.price)) or NA


def _render_extra_fields(fields: list[ExtraFieldV1]) -> str:
    return ", ".join(f"{_text(field.label) or NA}: {_text(field.value) or NA}" for field in fields)


def resolve_extra_fields(doc: PaymentDocumentV1) -> str:
    if doc.extra_fields:
        return _render_extra_fields(doc.extra_fields)

    item = doc.first_item()
    if item is not None and item.extra_fields:
        return _render_extra_fields(item.extra_fields)

    return NA


def _timestamp_value(ts: StoreTimestampV1 | None) -> datetime | None:
    return ts.as_datetime() if ts is not None else None


def resolve_timestamp(doc: PaymentDocumentV1, now: Callable[[], datetime]) -> datetime:
    created = doc.created_at.underscore_seconds if doc.created_at is not None else None
    if created is not None:
        return datetime.fromtimestamp(created, tz=timezone.utc)
    return _timestamp_value(doc.timestamp) or now()


def quick_actions(payment_id: str) -> str:
    return "\n".join(
        [
            "💡 Quick Actions:",
            f'• Check status: "{status_hint(payment_id)}"',
            f'• Approve: "{approve_hint(payment_id)}"',
            f'• Reject: "{reject_hint(payment_id)}"',
        ]
    )


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class NotificationFormatter:
    """Deterministic change-event to message rendering."""

    def __init__(
        self,
        *,
        template: str | None = None,
        currency: str = "Rs",
        review_url: str | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._template = template or DEFAULT_TEMPLATE
        self._currency = currency
        self._review_url = review_url
        self._now = now or (lambda: datetime.now(timezone.utc))

    def fields(self, event: ChangeEventV1) -> dict[str, str]:
        doc = event.fields
        payment_id = _text(event.id) or _text(doc.payment_id) or NA
        variant = resolve_variant(doc)
        return {
            "payment_id": payment_id,
            "customer": resolve_customer(doc),
            "phone": _text(doc.phone) or NA,
            "email": _text(doc.email) or NA,
            "product": resolve_product_name(doc),
            "price": resolve_price(doc),
            "variant_label": variant.label,
            "variant_price": variant.price,
            "extra_fields": resolve_extra_fields(doc),
            "payment_method": _text(doc.payment_method) or NA,
            "timestamp": format_time(resolve_timestamp(doc, self._now)),
            "currency": self._currency,
            "quick_actions": quick_actions(payment_id),
        }

    def format(self, event: ChangeEventV1) -> str:
        values = self.fields(event)
        text = self._template.format_map(_Placeholders(values))

        # A template override may drop the hints; the reply loop depends on them.
        if "{quick_actions}" not in self._template:
            text = f"{text.rstrip()}\n\n{values['quick_actions']}"

        if self._review_url:
            text = f"{text}\n\nCheck screenshot at: {self._review_url}"
        return text

    def status_report(self, record: PaymentRecordV1) -> str:
        doc = record.fields
        variant = resolve_variant(doc)
        variant_info = NA
        if variant.label != NA or variant.price != NA:
            variant_info = f"{variant.label} ({self._currency} {variant.price})"

        reviewed = _timestamp_value(doc.reviewed_at)
        reviewed_text = format_time(reviewed) if reviewed else "Not reviewed"

        return "\n".join(
            [
                "📊 Payment Status Report",
                "",
                f"Payment ID: {record.id}",
                f"Customer: {resolve_customer(doc)}",
                f"Amount: {_text(doc.order_total) or NA}",
                f"Variant: {variant_info}",
                f"Status: {record.status.upper()}",
                f"Needs Verification: {'Yes' if record.needs_manual_verification else 'No'}",
                f"Reviewed At: {reviewed_text}",
                f"Payment Method: {_text(doc.payment_method) or NA}",
                "",
                f'💡 To approve: Send "{approve_hint(record.id)}"',
            ]
        )

    def review_confirmation(
        self,
        record: PaymentRecordV1,
        *,
        status: str,
        actor: str,
        at: datetime,
    ) -> str:
        verb = status.capitalize()
        mark = "✅" if status == "approved" else "❌"
        return "\n".join(
            [
                f"{mark} Payment {verb} Successfully!",
                "",
                f"Payment ID: {record.id}",
                f"Customer: {resolve_customer(record.fields)}",
                f"Amount: {_text(record.fields.order_total) or NA}",
                f"Status: {status.upper()} {mark}",
                f"{verb} At: {format_time(at)}",
                f"{verb} By: {actor}",
                "",
                "The payment has been updated in the database.",
            ]
        )


def not_found_reply(payment_id: str) -> str:
    return f'❌ Payment ID "{payment_id}" not found in database.'


def already_reply(payment_id: str, status: str) -> str:
    return f'ℹ️ Payment "{payment_id}" is already {status}.'


def server_status_reply(*, running: bool, connected: bool, queue_depth: int) -> str:
    server = "🟢 Running" if running else "🔴 Stopped"
    transport = "🟢 Connected" if connected else "🔴 Disconnected"
    queue = f"📝 {queue_depth} queued" if queue_depth else "✅ No queue"
    return f"📊 Server Status:\n{server}\nMessaging: {transport}\nQueue: {queue}"
