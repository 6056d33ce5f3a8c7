"""Normalize provider webhooks and apply them.

``normalize_stripe`` / ``normalize_paypal`` turn a verified payload into one
of the ``schemas.webhook`` variants; ``process_event`` dispatches on the
variant. Unknown event types become ``IgnoredEvent`` and are acknowledged.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .. import crud
from ..crud.crud_payment import SettlementResult
from ..schemas.webhook import (
    CheckoutCompleted,
    IgnoredEvent,
    PaymentFailed,
    SubscriptionActivated,
    SubscriptionCancelled,
    WebhookEvent,
    webhook_event_adapter,
)
from ..utils import notifications

logger = logging.getLogger(__name__)

STRIPE_SUBSCRIPTION_ACTIVE = {"active", "trialing"}

PAYPAL_ACTIVATED = {"BILLING.SUBSCRIPTION.ACTIVATED", "BILLING.SUBSCRIPTION.RENEWED"}
PAYPAL_CANCELLED = {
    "BILLING.SUBSCRIPTION.CANCELLED",
    "BILLING.SUBSCRIPTION.SUSPENDED",
    "BILLING.SUBSCRIPTION.EXPIRED",
}
PAYPAL_PAYMENT_FAILED = "BILLING.SUBSCRIPTION.PAYMENT.FAILED"


class MalformedEvent(ValueError):
    """The payload is authentic but cannot be interpreted."""


def _metadata_id(metadata: Optional[dict], *keys: str) -> Optional[int]:
    metadata = metadata or {}
    for key in keys:
        raw = metadata.get(key)
        if raw in (None, ""):
            continue
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise MalformedEvent(f"metadata.{key} is not an integer: {raw!r}")
    return None


def _build(data: dict) -> WebhookEvent:
    try:
        return webhook_event_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise MalformedEvent(str(exc)) from exc


def normalize_stripe(payload: Any) -> WebhookEvent:
    if not isinstance(payload, dict):
        raise MalformedEvent("payload must be a JSON object")
    event_id = payload.get("id")
    event_type = payload.get("type")
    obj = (payload.get("data") or {}).get("object")
    if not event_id or not event_type or not isinstance(obj, dict):
        raise MalformedEvent("missing id, type or data.object")
    base = {"provider": "stripe", "event_id": str(event_id), "event_type": str(event_type)}
    metadata = obj.get("metadata") or {}

    if event_type == "checkout.session.completed":
        if obj.get("mode") == "subscription":
            talent_id = _metadata_id(metadata, "talent_id", "user_id")
            if talent_id is None:
                raise MalformedEvent("subscription checkout without metadata.talent_id")
            return _build({**base, "kind": "subscription_activated", "talent_id": talent_id,
                           "subscription_id": obj.get("subscription")})
        payment_id = _metadata_id(metadata, "payment_id", "paymentId")
        if payment_id is None:
            raise MalformedEvent("checkout session without metadata.payment_id")
        return _build({
            **base,
            "kind": "checkout_completed",
            "payment_id": payment_id,
            "payment_status": obj.get("payment_status") or "",
            "session_id": obj.get("id"),
        })

    if event_type in ("payment_intent.payment_failed", "checkout.session.async_payment_failed"):
        payment_id = _metadata_id(metadata, "payment_id", "paymentId")
        if payment_id is None:
            return _build({**base, "kind": "ignored"})
        error = obj.get("last_payment_error") or {}
        return _build({**base, "kind": "payment_failed", "payment_id": payment_id,
                       "reason": error.get("message")})

    if event_type == "invoice.payment_failed":
        talent_id = _metadata_id(
            (obj.get("subscription_details") or {}).get("metadata") or metadata,
            "talent_id",
            "user_id",
        )
        if talent_id is None:
            return _build({**base, "kind": "ignored"})
        return _build({**base, "kind": "payment_failed", "talent_id": talent_id,
                       "reason": "subscription renewal failed"})

    if event_type.startswith("customer.subscription."):
        talent_id = _metadata_id(metadata, "talent_id", "user_id")
        if talent_id is None:
            return _build({**base, "kind": "ignored"})
        active = event_type != "customer.subscription.deleted" and obj.get("status") in STRIPE_SUBSCRIPTION_ACTIVE
        kind = "subscription_activated" if active else "subscription_cancelled"
        return _build({**base, "kind": kind, "talent_id": talent_id, "subscription_id": obj.get("id")})

    return _build({**base, "kind": "ignored"})


def normalize_paypal(payload: Any) -> WebhookEvent:
    if not isinstance(payload, dict):
        raise MalformedEvent("payload must be a JSON object")
    event_id = payload.get("id")
    event_type = payload.get("event_type")
    resource = payload.get("resource")
    if not event_id or not event_type or not isinstance(resource, dict):
        raise MalformedEvent("missing id, event_type or resource")
    base = {"provider": "paypal", "event_id": str(event_id), "event_type": str(event_type)}

    if event_type in PAYPAL_ACTIVATED or event_type in PAYPAL_CANCELLED or event_type == PAYPAL_PAYMENT_FAILED:
        # Subscriptions are created with custom_id = our talent user id
        talent_id = _metadata_id(resource, "custom_id")
        if talent_id is None:
            raise MalformedEvent("subscription resource without custom_id")
        if event_type in PAYPAL_ACTIVATED:
            kind = "subscription_activated"
        elif event_type in PAYPAL_CANCELLED:
            kind = "subscription_cancelled"
        else:
            return _build({**base, "kind": "payment_failed", "talent_id": talent_id,
                           "reason": "subscription payment failed"})
        return _build({**base, "kind": kind, "talent_id": talent_id, "subscription_id": resource.get("id")})

    return _build({**base, "kind": "ignored"})


def process_event(db: Session, event: WebhookEvent) -> str:
    """Apply a normalized event and return a short outcome label for the response."""
    if isinstance(event, CheckoutCompleted):
        if event.payment_status != "paid":
            logger.info(
                "Checkout %s for payment %s not paid yet (%s)",
                event.session_id,
                event.payment_id,
                event.payment_status,
            )
            return "ignored"
        result = crud.crud_payment.settle_payment(db, event.payment_id, session_id=event.session_id)
        return "duplicate" if result == SettlementResult.ALREADY_SETTLED else "settled"

    if isinstance(event, PaymentFailed):
        if event.payment_id is not None:
            crud.crud_payment.record_payment_failure(
                db, event.payment_id, reason=event.reason, event_id=event.event_id
            )
        elif event.talent_id is not None:
            notifications.notify_payment_failed(
                db,
                user_id=event.talent_id,
                booking_id=None,
                reason=event.reason,
                dedupe_key=f"payment_failed:{event.provider}:{event.event_id}",
            )
        return "payment_failed"

    if isinstance(event, (SubscriptionActivated, SubscriptionCancelled)):
        active = isinstance(event, SubscriptionActivated)
        profile = crud.user.set_pro_status(db, event.talent_id, active)
        if profile is not None:
            notifications.notify_subscription_changed(
                db,
                event.talent_id,
                active,
                dedupe_key=f"subscription:{event.provider}:{event.event_id}",
            )
        return "subscription_activated" if active else "subscription_cancelled"

    if not isinstance(event, IgnoredEvent):
        logger.warning("No handler for webhook variant %s", type(event).__name__)
    logger.info("Ignoring %s webhook %s (%s)", event.provider, event.event_id, event.event_type)
    return "ignored"
