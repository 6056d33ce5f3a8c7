"""Provider-neutral webhook events.

Stripe and PayPal payloads are normalized into one of these variants by
``services.webhook_events.normalize_*``; only the variant is passed on to the
settlement processor.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class _EventBase(BaseModel):
    provider: Literal["stripe", "paypal"]
    event_id: str
    event_type: str


class SubscriptionActivated(_EventBase):
    kind: Literal["subscription_activated"] = "subscription_activated"
    talent_id: int
    subscription_id: Optional[str] = None


class SubscriptionCancelled(_EventBase):
    kind: Literal["subscription_cancelled"] = "subscription_cancelled"
    talent_id: int
    subscription_id: Optional[str] = None


class CheckoutCompleted(_EventBase):
    kind: Literal["checkout_completed"] = "checkout_completed"
    payment_id: int
    payment_status: str
    session_id: Optional[str] = None


class PaymentFailed(_EventBase):
    kind: Literal["payment_failed"] = "payment_failed"
    # Exactly one of these is set: checkout payments carry payment_id,
    # subscription renewals carry talent_id.
    payment_id: Optional[int] = None
    talent_id: Optional[int] = None
    reason: Optional[str] = None


class IgnoredEvent(_EventBase):
    kind: Literal["ignored"] = "ignored"


WebhookEvent = Annotated[
    Union[
        SubscriptionActivated,
        SubscriptionCancelled,
        CheckoutCompleted,
        PaymentFailed,
        IgnoredEvent,
    ],
    Field(discriminator="kind"),
]

webhook_event_adapter = TypeAdapter(WebhookEvent)
