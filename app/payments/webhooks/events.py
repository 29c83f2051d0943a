"""
Processor webhook event variants.

The wire envelope is JSON: {"id": "...", "event": "<kind>", "data": {...}}
with camelCase data keys. parse_envelope() validates the envelope and
parse_event() turns it into exactly one of a closed set of typed variants.
Dispatch is keyed on WebhookEventKind; anything not in the set parses to
Unknown and is acknowledged without effect.

Usage:
    envelope = parse_envelope(request.body)
    event = parse_event(envelope.event_type, envelope.data)
    if event.kind is WebhookEventKind.INTENT_SUCCEEDED:
        ...
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from enum import Enum
from typing import Any, ClassVar, Union

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from payments.adapters import PayoutAccountResult
from payments.exceptions import MalformedPayloadError


class WebhookEventKind(str, Enum):
    """Closed set of processor events this service understands."""

    INTENT_SUCCEEDED = "intent.succeeded"
    INTENT_FAILED = "intent.failed"
    INTENT_CANCELED = "intent.canceled"
    RECURRING_CHARGE_FAILED = "recurring_charge.failed"
    RECURRING_CHARGE_SUCCEEDED = "recurring_charge.succeeded"
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    PAYOUT_ACCOUNT_UPDATED = "payout_account.updated"
    PAYOUT_ACCOUNT_DISCONNECTED = "payout_account.disconnected"
    TRANSFER_CREATED = "transfer.created"
    TRANSFER_FAILED = "transfer.failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, value: str) -> WebhookEventKind:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# =============================================================================
# Envelope
# =============================================================================


@dataclass
class WebhookEnvelope:
    """
    Validated outer shape of a webhook body.

    Attributes:
        event_id: Envelope id, or "sha256:<hex>" of the raw body when absent
        event_type: Wire event name
        data: Event data object (empty dict when absent)
        payload: The whole parsed body
    """

    event_id: str
    event_type: str
    data: dict[str, Any]
    payload: dict[str, Any]


def parse_envelope(raw_body: bytes) -> WebhookEnvelope:
    """
    Parse and validate a raw webhook body.

    The fallback event id is a digest of the exact bytes, so a redelivery
    of the same body deduplicates against the first delivery.

    Raises:
        MalformedPayloadError: Not JSON, not an object, or no event name
    """
    try:
        payload = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise MalformedPayloadError("Body is not valid JSON") from None

    if not isinstance(payload, dict):
        raise MalformedPayloadError("Body must be a JSON object")

    event_type = payload.get("event")
    if not isinstance(event_type, str) or not event_type:
        raise MalformedPayloadError("Missing event name")

    data = payload.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedPayloadError("Event data must be an object")

    event_id = payload.get("id")
    if not isinstance(event_id, str) or not event_id:
        event_id = f"sha256:{hashlib.sha256(raw_body).hexdigest()}"

    return WebhookEnvelope(
        event_id=event_id,
        event_type=event_type,
        data=data,
        payload=payload,
    )


# =============================================================================
# Variants
# =============================================================================


@dataclass(frozen=True)
class IntentSucceeded:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.INTENT_SUCCEEDED

    intent_id: str
    metadata: dict[str, Any]
    amount: int | None = None
    currency: str | None = None


@dataclass(frozen=True)
class IntentFailed:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.INTENT_FAILED

    intent_id: str
    metadata: dict[str, Any]
    reason: str | None = None


@dataclass(frozen=True)
class IntentCanceled:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.INTENT_CANCELED

    intent_id: str
    metadata: dict[str, Any]


@dataclass(frozen=True)
class RecurringChargeFailed:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.RECURRING_CHARGE_FAILED

    subscription_id: str
    attempt_count: int | None = None


@dataclass(frozen=True)
class RecurringChargeSucceeded:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.RECURRING_CHARGE_SUCCEEDED

    subscription_id: str
    period_end: datetime | None = None


@dataclass(frozen=True)
class SubscriptionCreated:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.SUBSCRIPTION_CREATED

    subscription_id: str
    principal_id: str
    period_end: datetime | None = None


@dataclass(frozen=True)
class SubscriptionCanceled:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.SUBSCRIPTION_CANCELED

    subscription_id: str


@dataclass(frozen=True)
class PayoutAccountUpdated:
    """Capability flags and requirements reported for a payout account."""

    kind: ClassVar[WebhookEventKind] = WebhookEventKind.PAYOUT_ACCOUNT_UPDATED

    account_id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    currently_due: tuple[str, ...] = field(default_factory=tuple)
    past_due: tuple[str, ...] = field(default_factory=tuple)
    disabled_reason: str | None = None

    def as_account(self) -> PayoutAccountResult:
        return PayoutAccountResult(
            id=self.account_id,
            charges_enabled=self.charges_enabled,
            payouts_enabled=self.payouts_enabled,
            details_submitted=self.details_submitted,
            currently_due=list(self.currently_due),
            past_due=list(self.past_due),
            disabled_reason=self.disabled_reason,
        )


@dataclass(frozen=True)
class PayoutAccountDisconnected:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.PAYOUT_ACCOUNT_DISCONNECTED

    account_id: str


@dataclass(frozen=True)
class TransferCreated:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.TRANSFER_CREATED

    transfer_id: str
    metadata: dict[str, Any]
    amount: int | None = None


@dataclass(frozen=True)
class TransferFailed:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.TRANSFER_FAILED

    transfer_id: str
    metadata: dict[str, Any]
    reason: str | None = None


@dataclass(frozen=True)
class Unknown:
    kind: ClassVar[WebhookEventKind] = WebhookEventKind.UNKNOWN

    event_type: str


ProcessorEvent = Union[
    IntentSucceeded,
    IntentFailed,
    IntentCanceled,
    RecurringChargeFailed,
    RecurringChargeSucceeded,
    SubscriptionCreated,
    SubscriptionCanceled,
    PayoutAccountUpdated,
    PayoutAccountDisconnected,
    TransferCreated,
    TransferFailed,
    Unknown,
]


# =============================================================================
# Parsing
# =============================================================================


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedPayloadError(f"Missing required field '{key}'", details={"field": key})
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value else None


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedPayloadError(f"Field '{key}' must be an integer", details={"field": key})
    return value


def _metadata(data: dict[str, Any]) -> dict[str, Any]:
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise MalformedPayloadError("Field 'metadata' must be an object")
    return metadata


def _string_list(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if not isinstance(value, list):
        raise MalformedPayloadError("Requirement lists must be arrays")
    return tuple(str(item) for item in value)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse a period end given as Unix seconds or an ISO-8601 string.

    Naive ISO values are taken as UTC.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=dt_timezone.utc)
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is not None:
            if timezone.is_naive(parsed):
                parsed = timezone.make_aware(parsed, dt_timezone.utc)
            return parsed
    raise MalformedPayloadError("Unrecognized timestamp", details={"value": str(value)})


def parse_event(event_type: str, data: dict[str, Any]) -> ProcessorEvent:
    """
    Build the typed variant for an event.

    Raises:
        MalformedPayloadError: A known event lacks a required field
    """
    kind = WebhookEventKind.from_wire(event_type)

    if kind is WebhookEventKind.INTENT_SUCCEEDED:
        return IntentSucceeded(
            intent_id=_require_str(data, "id"),
            metadata=_metadata(data),
            amount=_optional_int(data, "amount"),
            currency=_optional_str(data, "currency"),
        )

    if kind is WebhookEventKind.INTENT_FAILED:
        return IntentFailed(
            intent_id=_require_str(data, "id"),
            metadata=_metadata(data),
            reason=_optional_str(data, "failureMessage"),
        )

    if kind is WebhookEventKind.INTENT_CANCELED:
        return IntentCanceled(intent_id=_require_str(data, "id"), metadata=_metadata(data))

    if kind is WebhookEventKind.RECURRING_CHARGE_FAILED:
        return RecurringChargeFailed(
            subscription_id=_require_str(data, "subscriptionId"),
            attempt_count=_optional_int(data, "attemptCount"),
        )

    if kind is WebhookEventKind.RECURRING_CHARGE_SUCCEEDED:
        return RecurringChargeSucceeded(
            subscription_id=_require_str(data, "subscriptionId"),
            period_end=parse_timestamp(data.get("currentPeriodEnd")),
        )

    if kind is WebhookEventKind.SUBSCRIPTION_CREATED:
        return SubscriptionCreated(
            subscription_id=_require_str(data, "subscriptionId"),
            principal_id=_require_str(data, "principalId"),
            period_end=parse_timestamp(data.get("currentPeriodEnd")),
        )

    if kind is WebhookEventKind.SUBSCRIPTION_CANCELED:
        return SubscriptionCanceled(subscription_id=_require_str(data, "subscriptionId"))

    if kind is WebhookEventKind.PAYOUT_ACCOUNT_UPDATED:
        requirements = data.get("requirements") or {}
        if not isinstance(requirements, dict):
            raise MalformedPayloadError("Field 'requirements' must be an object")
        return PayoutAccountUpdated(
            account_id=_require_str(data, "id"),
            charges_enabled=bool(data.get("chargesEnabled", False)),
            payouts_enabled=bool(data.get("payoutsEnabled", False)),
            details_submitted=bool(data.get("detailsSubmitted", False)),
            currently_due=_string_list(requirements.get("currentlyDue")),
            past_due=_string_list(requirements.get("pastDue")),
            disabled_reason=_optional_str(requirements, "disabledReason"),
        )

    if kind is WebhookEventKind.PAYOUT_ACCOUNT_DISCONNECTED:
        return PayoutAccountDisconnected(account_id=_require_str(data, "id"))

    if kind is WebhookEventKind.TRANSFER_CREATED:
        return TransferCreated(
            transfer_id=_require_str(data, "id"),
            metadata=_metadata(data),
            amount=_optional_int(data, "amount"),
        )

    if kind is WebhookEventKind.TRANSFER_FAILED:
        return TransferFailed(
            transfer_id=_require_str(data, "id"),
            metadata=_metadata(data),
            reason=_optional_str(data, "failureMessage"),
        )

    return Unknown(event_type=event_type)
