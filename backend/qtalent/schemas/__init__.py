from .booking import (
    BookingBase,
    BookingCreate,
    BookingResponse,
    ClaimResponse,
    GigApplicationResponse,
)
from .payment import (
    ManualInvoiceCreate,
    RateInvoiceCreate,
    PaymentRead,
    CheckoutSessionResponse,
)
from .notification import NotificationResponse
from .webhook import (
    SubscriptionActivated,
    SubscriptionCancelled,
    CheckoutCompleted,
    PaymentFailed,
    IgnoredEvent,
    WebhookEvent,
    webhook_event_adapter,
)

__all__ = [
    "BookingBase",
    "BookingCreate",
    "BookingResponse",
    "ClaimResponse",
    "GigApplicationResponse",
    "ManualInvoiceCreate",
    "RateInvoiceCreate",
    "PaymentRead",
    "CheckoutSessionResponse",
    "NotificationResponse",
    "SubscriptionActivated",
    "SubscriptionCancelled",
    "CheckoutCompleted",
    "PaymentFailed",
    "IgnoredEvent",
    "WebhookEvent",
    "webhook_event_adapter",
]
