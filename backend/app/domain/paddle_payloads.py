"""Field extraction for Paddle webhook payloads.

Pure domain functions. No DB access, fully deterministic.

Paddle payload shapes drift between API versions and event subtypes, so
every logical field is read from an ordered list of candidate locations
and the first usable value wins. Absent or malformed candidates are
skipped; nothing here raises on bad upstream data.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class EventFamily(StrEnum):
    """Event families the reconciler knows how to apply."""

    SUBSCRIPTION = "subscription"
    TRANSACTION = "transaction"
    OTHER = "other"


SUBSCRIPTION_STATUSES = frozenset({
    "inactive",
    "active",
    "trialing",
    "past_due",
    "paused",
    "canceled",
    "cancelled",
})

INVOICE_STATUSES = frozenset({
    "draft",
    "ready",
    "billed",
    "paid",
    "completed",
    "past_due",
    "canceled",
    "cancelled",
    "refunded",
    "failed",
})

UNKNOWN_STATUS = "unknown"
DEFAULT_SUBSCRIPTION_STATUS = "active"
DEFAULT_INVOICE_STATUS = "paid"

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")
_RFC3339_RE = re.compile(
    r"([0-9]{4}-[0-9]{2}-[0-9]{2})T([0-9]{2}:[0-9]{2}:[0-9]{2})(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)


@dataclass(frozen=True)
class ResolutionKeys:
    """Identifiers a payload offers for mapping it onto an organisation."""

    organisation_id: str
    customer_id: str
    subscription_id: str


@dataclass(frozen=True)
class SubscriptionUpdate:
    """Normalised fields of a subscription.* payload.

    Empty strings / None mean "not supplied" and must never clear stored data.
    """

    subscription_id: str
    customer_id: str
    status: str
    period_ends_at: datetime | None
    price_id: str


@dataclass(frozen=True)
class InvoiceSnapshot:
    """Normalised fields of a transaction.* payload, stored verbatim on upsert."""

    transaction_id: str
    invoice_id: str
    invoice_number: str
    status: str
    currency_code: str
    total_amount_cents: int
    billed_at: datetime | None
    invoice_url: str


def event_family(event_type: str) -> EventFamily:
    """Classify a dotted Paddle event type by its prefix."""
    if event_type.startswith("subscription."):
        return EventFamily.SUBSCRIPTION
    if event_type.startswith("transaction."):
        return EventFamily.TRANSACTION
    return EventFamily.OTHER


def get_path(data: Any, *keys: str | int) -> Any:
    """Walk nested dicts/lists, returning None as soon as a step is missing."""
    current = data
    for key in keys:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
        elif not isinstance(current, dict) or key not in current:
            return None
        current = current[key]
    return current


def as_text(value: Any) -> str:
    """Coerce an identifier-like value to a stripped string ("" if unusable)."""
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    return ""


def first_non_empty(*values: Any) -> str:
    for value in values:
        text = as_text(value)
        if text:
            return text
    return ""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse one RFC 3339 timestamp; other ISO 8601 shapes and naive values yield None."""
    match = _RFC3339_RE.fullmatch(as_text(value))
    if match is None:
        return None
    date_part, time_part, fraction, offset = match.groups()
    # fromisoformat takes at most microseconds; Paddle may send nanoseconds
    fraction = f".{fraction[:6].ljust(6, '0')}" if fraction else ""
    if offset == "Z":
        offset = "+00:00"
    try:
        parsed = datetime.fromisoformat(f"{date_part}T{time_part}{fraction}{offset}")
    except ValueError:
        return None
    return parsed.astimezone(UTC)


def parse_any_timestamp(*candidates: Any) -> datetime | None:
    """Return the first candidate that parses as an RFC 3339 timestamp, in UTC."""
    for candidate in candidates:
        parsed = parse_timestamp(candidate)
        if parsed is not None:
            return parsed
    return None


def parse_any_int(*candidates: Any) -> int:
    """Return the first candidate that is a base-10 integer, else 0.

    Paddle encodes money as integer strings in minor units ("1999").
    """
    for candidate in candidates:
        if isinstance(candidate, bool):
            continue
        if isinstance(candidate, int):
            return candidate
        text = as_text(candidate)
        if _INTEGER_RE.fullmatch(text):
            return int(text)
    return 0


def normalise_subscription_status(status: Any) -> str:
    normalised = as_text(status).lower() or DEFAULT_SUBSCRIPTION_STATUS
    return normalised if normalised in SUBSCRIPTION_STATUSES else UNKNOWN_STATUS


def normalise_invoice_status(status: Any) -> str:
    normalised = as_text(status).lower() or DEFAULT_INVOICE_STATUS
    return normalised if normalised in INVOICE_STATUSES else UNKNOWN_STATUS


def extract_resolution_keys(event_type: str, data: dict) -> ResolutionKeys:
    """Pull the tenant lookup keys out of an event's ``data`` object.

    Transaction payloads carry the subscription under ``subscription_id``;
    subscription payloads use their own ``id``.
    """
    if event_family(event_type) is EventFamily.TRANSACTION:
        subscription_id = as_text(data.get("subscription_id"))
    else:
        subscription_id = as_text(data.get("id"))

    return ResolutionKeys(
        organisation_id=as_text(get_path(data, "custom_data", "organisation_id")),
        customer_id=as_text(data.get("customer_id")),
        subscription_id=subscription_id,
    )


def extract_subscription_update(data: dict, subscription_id: str = "") -> SubscriptionUpdate:
    """Normalise a subscription.* payload.

    Args:
        data: The event's ``data`` object
        subscription_id: Id already derived during tenant resolution; used
            before falling back to ``data.subscription_id``

    Rules:
        - price: items[0].price.id, then items[0].price_id
        - period end: next_billed_at, then current_billing_period.ends_at
        - status: empty -> "active", then allow-list, else "unknown"
    """
    first_item = get_path(data, "items", 0)
    price_id = first_non_empty(
        get_path(first_item, "price", "id"),
        get_path(first_item, "price_id"),
    )

    return SubscriptionUpdate(
        subscription_id=first_non_empty(subscription_id, data.get("subscription_id")),
        customer_id=as_text(data.get("customer_id")),
        status=normalise_subscription_status(data.get("status")),
        period_ends_at=parse_any_timestamp(
            data.get("next_billed_at"),
            get_path(data, "current_billing_period", "ends_at"),
        ),
        price_id=price_id,
    )


def extract_invoice_snapshot(data: dict) -> InvoiceSnapshot | None:
    """Normalise a transaction.* payload; None when the transaction id is missing."""
    transaction_id = as_text(data.get("id"))
    if not transaction_id:
        return None

    totals = get_path(data, "details", "totals")

    return InvoiceSnapshot(
        transaction_id=transaction_id,
        invoice_id=as_text(data.get("invoice_id")),
        invoice_number=as_text(get_path(data, "details", "invoice_number")),
        status=normalise_invoice_status(data.get("status")),
        currency_code=first_non_empty(
            data.get("currency_code"),
            get_path(totals, "currency_code"),
        ),
        total_amount_cents=parse_any_int(
            get_path(totals, "grand_total"),
            get_path(totals, "total"),
        ),
        billed_at=parse_any_timestamp(
            data.get("billed_at"),
            data.get("updated_at"),
            data.get("created_at"),
        ),
        invoice_url=first_non_empty(
            data.get("invoice_url"),
            get_path(data, "details", "receipt_url"),
        ),
    )
