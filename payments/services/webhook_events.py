# payments/services/webhook_events.py
"""
Typed gateway webhook events.

parse_event() turns a decoded webhook envelope into exactly one event
variant. Known event types with a payload missing required fields raise
MalformedEvent; unknown event types become UnrecognizedEvent so they can be
acknowledged and ignored.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


class MalformedEvent(ValueError):
    """A known event type whose payload is missing or has invalid fields."""


@dataclass(frozen=True)
class PaymentAuthorized:
    order_id: str
    payment_id: str
    raw: Dict[str, Any] = field(repr=False, compare=False)
    event_type: str = 'payment.authorized'


@dataclass(frozen=True)
class PaymentCaptured:
    order_id: str
    payment_id: str
    amount: Optional[int]
    currency: str
    method: str
    bank: str
    raw: Dict[str, Any] = field(repr=False, compare=False)
    event_type: str = 'payment.captured'


@dataclass(frozen=True)
class PaymentFailed:
    order_id: str
    payment_id: str
    error_code: str
    error_description: str
    raw: Dict[str, Any] = field(repr=False, compare=False)
    event_type: str = 'payment.failed'


@dataclass(frozen=True)
class RefundCreated:
    refund_id: str
    payment_id: str
    amount: int
    reason: str
    raw: Dict[str, Any] = field(repr=False, compare=False)
    event_type: str = 'refund.created'


@dataclass(frozen=True)
class UnrecognizedEvent:
    event_type: str
    raw: Dict[str, Any] = field(repr=False, compare=False)


WebhookEvent = Union[PaymentAuthorized, PaymentCaptured, PaymentFailed, RefundCreated, UnrecognizedEvent]


# =========================================================================
# FIELD HELPERS
# =========================================================================

def _entity(envelope: dict, key: str) -> dict:
    payload = envelope.get('payload')
    if not isinstance(payload, dict):
        raise MalformedEvent("Missing 'payload' object")
    wrapper = payload.get(key)
    if not isinstance(wrapper, dict) or not isinstance(wrapper.get('entity'), dict):
        raise MalformedEvent(f"Missing 'payload.{key}.entity' object")
    return wrapper['entity']


def _required_str(entity: dict, key: str, path: str) -> str:
    value = entity.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedEvent(f"'{path}.{key}' must be a non-empty string")
    return value


def _optional_str(entity: dict, key: str) -> str:
    value = entity.get(key)
    return value if isinstance(value, str) else ''


def _amount(entity: dict, path: str, required: bool) -> Optional[int]:
    """Amounts are non-negative integers in minor units. Floats and booleans are rejected."""
    value = entity.get('amount')
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise MalformedEvent(f"'{path}.amount' must be a non-negative integer")
    return value


# =========================================================================
# PARSERS
# =========================================================================

def _parse_payment_authorized(envelope: dict) -> PaymentAuthorized:
    entity = _entity(envelope, 'payment')
    return PaymentAuthorized(
        order_id=_required_str(entity, 'order_id', 'payment'),
        payment_id=_required_str(entity, 'id', 'payment'),
        raw=envelope,
    )


def _parse_payment_captured(envelope: dict) -> PaymentCaptured:
    entity = _entity(envelope, 'payment')
    return PaymentCaptured(
        order_id=_required_str(entity, 'order_id', 'payment'),
        payment_id=_required_str(entity, 'id', 'payment'),
        amount=_amount(entity, 'payment', required=False),
        currency=_optional_str(entity, 'currency'),
        method=_optional_str(entity, 'method'),
        bank=_optional_str(entity, 'bank'),
        raw=envelope,
    )


def _parse_payment_failed(envelope: dict) -> PaymentFailed:
    entity = _entity(envelope, 'payment')
    return PaymentFailed(
        order_id=_required_str(entity, 'order_id', 'payment'),
        payment_id=_required_str(entity, 'id', 'payment'),
        error_code=_optional_str(entity, 'error_code'),
        error_description=_optional_str(entity, 'error_description') or _optional_str(entity, 'error_reason'),
        raw=envelope,
    )


def _parse_refund_created(envelope: dict) -> RefundCreated:
    entity = _entity(envelope, 'refund')
    notes = entity.get('notes')
    reason = notes.get('reason', '') if isinstance(notes, dict) else ''
    return RefundCreated(
        refund_id=_required_str(entity, 'id', 'refund'),
        payment_id=_required_str(entity, 'payment_id', 'refund'),
        amount=_amount(entity, 'refund', required=True),
        reason=reason if isinstance(reason, str) else '',
        raw=envelope,
    )


PARSERS = {
    'payment.authorized': _parse_payment_authorized,
    'payment.captured': _parse_payment_captured,
    'payment.failed': _parse_payment_failed,
    'refund.created': _parse_refund_created,
}


def parse_event(envelope: Any) -> WebhookEvent:
    """
    Parse a decoded webhook envelope.

    Raises:
        MalformedEvent: envelope is not an object, has no event type, or a
            known event type is missing required fields.
    """
    if not isinstance(envelope, dict):
        raise MalformedEvent("Webhook body must be a JSON object")

    event_type = envelope.get('event')
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEvent("Missing 'event' type")

    parser = PARSERS.get(event_type)
    if parser is None:
        return UnrecognizedEvent(event_type=event_type, raw=envelope)

    return parser(envelope)
