"""Shared payment document schema (v1).

Payment documents are loosely structured: the same logical fact can live at the top level
or inside the first order item, and writers disagree on types (numeric phones, ISO string
timestamps, numeric labels). These models keep every known location optional, coerce
scalars to text, and turn values they cannot read into None. Only a non-mapping document
fails validation; resolution is left to the notification formatter.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

Scalar = str | int | float

_TRUTHY = {"1", "true", "yes", "y"}


def _loose_text(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _loose_scalar(value: Any) -> Scalar | None:
    if isinstance(value, bool) or not isinstance(value, str | int | float):
        return None
    return value


def _loose_flag(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return None


def _loose_mapping(value: Any) -> dict[str, Any] | None:
    return value if isinstance(value, dict) else None


def _loose_list(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _epoch(seconds: float) -> dict[str, float]:
    return {"_seconds": seconds}


def _loose_timestamp(value: Any) -> Any:
    """Accept every timestamp shape seen in payment documents; None when unreadable."""
    if isinstance(value, StoreTimestampV1):
        return value
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return _epoch(moment.timestamp())
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return _epoch(value)
    if isinstance(value, str):
        try:
            return _loose_timestamp(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    if isinstance(value, dict):
        try:
            return StoreTimestampV1.model_validate(value)
        except ValidationError:
            return None
    return None


class PaymentStatusV1(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StoreTimestampV1(BaseModel):
    """Serialized document-store timestamp.

    Two spellings exist in the wild: `{"_seconds": ...}` and `{"seconds": ...}`.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    seconds: float | None = None
    underscore_seconds: float | None = Field(default=None, alias="_seconds")
    nanoseconds: float | None = Field(default=None, alias="_nanoseconds")

    def as_datetime(self) -> datetime | None:
        value = self.underscore_seconds if self.underscore_seconds is not None else self.seconds
        if value is None:
            return None
        return datetime.fromtimestamp(value, tz=timezone.utc)


Text = Annotated[str | None, BeforeValidator(_loose_text)]
Amount = Annotated[Scalar | None, BeforeValidator(_loose_scalar)]
Flag = Annotated[bool | None, BeforeValidator(_loose_flag)]
Timestamp = Annotated[StoreTimestampV1 | None, BeforeValidator(_loose_timestamp)]


class _DocumentModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class VariantV1(_DocumentModel):
    label: Text = None
    price: Amount = None


class ExtraFieldV1(_DocumentModel):
    label: Text = None
    value: Any = None


class OrderItemV1(_DocumentModel):
    name: Text = None
    price: Amount = None
    variant: Annotated[VariantV1 | None, BeforeValidator(_loose_mapping)] = None
    extra_fields: Annotated[list[ExtraFieldV1], BeforeValidator(_loose_list)] = Field(
        default_factory=list
    )


class PaymentDocumentV1(_DocumentModel):
    """Every field a payment document may carry, all optional."""

    payment_id: Text = None

    full_name: Text = None
    customer_name: Text = None
    phone: Text = None
    email: Text = None

    product_name: Text = None
    product_price: Amount = None
    # Formatted total, e.g. "Rs 25.00".
    order_total: Amount = None
    payment_method: Text = None

    variant: Annotated[VariantV1 | None, BeforeValidator(_loose_mapping)] = None
    order_items: Annotated[list[OrderItemV1], BeforeValidator(_loose_list)] = Field(
        default_factory=list
    )
    extra_fields: Annotated[list[ExtraFieldV1], BeforeValidator(_loose_list)] = Field(
        default_factory=list
    )

    created_at: Timestamp = None
    timestamp: Timestamp = None

    status: Text = None
    needs_manual_verification: Flag = None
    reviewed_at: Timestamp = None
    approved_at: Timestamp = None
    rejected_at: Timestamp = None
    approved_by: Text = None
    rejected_by: Text = None

    def first_item(self) -> OrderItemV1 | None:
        return self.order_items[0] if self.order_items else None


class ChangeEventV1(BaseModel):
    """A newly observed document in the watched collection."""

    model_config = ConfigDict(frozen=True)

    id: str
    fields: PaymentDocumentV1
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "ChangeEventV1":
        return cls(id=doc_id, fields=PaymentDocumentV1.model_validate(data))


class PaymentRecordV1(BaseModel):
    """A payment document as read back from the store during command handling."""

    id: str
    fields: PaymentDocumentV1

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "PaymentRecordV1":
        return cls(id=doc_id, fields=PaymentDocumentV1.model_validate(data))

    @property
    def status(self) -> str:
        return (self.fields.status or PaymentStatusV1.PENDING.value).strip().lower()

    @property
    def needs_manual_verification(self) -> bool:
        return bool(self.fields.needs_manual_verification)


def store_timestamp(moment: datetime) -> dict[str, int]:
    """Serialize a datetime the way the document store returns timestamps."""
    return {"_seconds": int(moment.timestamp()), "_nanoseconds": moment.microsecond * 1000}
