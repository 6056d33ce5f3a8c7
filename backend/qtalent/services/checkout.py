"""Stripe Checkout sessions for pending invoices.

Creating a session does not change any financial state; the payment only
moves once the signed ``checkout.session.completed`` webhook arrives.
"""

import logging
import time
from decimal import Decimal

import httpx

from .. import models
from ..core.config import FRONTEND_URL, settings
from ..models.booking_status import PaymentStatus

logger = logging.getLogger(__name__)

ZERO_DECIMAL_CURRENCIES = {"BIF", "CLP", "JPY", "KRW", "PYG", "RWF", "UGX", "VND", "XAF", "XOF"}


class CheckoutError(Exception):
    """The payment provider rejected or failed to create a session."""


def to_minor_units(amount: Decimal, currency: str) -> int:
    if currency.upper() in ZERO_DECIMAL_CURRENCIES:
        return int(Decimal(amount).quantize(Decimal("1")))
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def build_session_params(payment: models.Payment, now: float | None = None) -> dict[str, str]:
    now = now if now is not None else time.time()
    expires_at = int(now) + settings.CHECKOUT_SESSION_TTL_MINUTES * 60
    link = f"{FRONTEND_URL}/bookings/{payment.booking_id}"
    pid = str(payment.id)
    return {
        "mode": "payment",
        "client_reference_id": pid,
        "line_items[0][quantity]": "1",
        "line_items[0][price_data][currency]": payment.currency.lower(),
        "line_items[0][price_data][unit_amount]": str(to_minor_units(payment.total_amount, payment.currency)),
        "line_items[0][price_data][product_data][name]": f"Booking #{payment.booking_id}",
        "metadata[payment_id]": pid,
        "metadata[booking_id]": str(payment.booking_id),
        # Failed charges report the PaymentIntent, so it carries the id too
        "payment_intent_data[metadata][payment_id]": pid,
        "success_url": f"{link}?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{link}?payment=cancelled",
        "expires_at": str(expires_at),
    }


def create_checkout_session(payment: models.Payment) -> tuple[str, str]:
    """Create a Checkout Session and return ``(session_id, url)``."""
    if payment.payment_status != PaymentStatus.PENDING:
        raise ValueError("only pending payments can be checked out")
    if not settings.STRIPE_SECRET_KEY:
        raise CheckoutError("Stripe is not configured")
    try:
        with httpx.Client(timeout=15.0) as client:
            resp = client.post(
                f"{settings.STRIPE_API_BASE}/v1/checkout/sessions",
                data=build_session_params(payment),
                headers={"Authorization": f"Bearer {settings.STRIPE_SECRET_KEY}"},
            )
    except httpx.HTTPError as exc:
        logger.error("Stripe checkout request for payment %s failed: %s", payment.id, exc)
        raise CheckoutError("Payment provider unavailable") from exc

    if resp.status_code >= 400:
        logger.error(
            "Stripe rejected checkout for payment %s: %s %s",
            payment.id,
            resp.status_code,
            resp.text[:500],
        )
        raise CheckoutError("Payment provider rejected the checkout request")
    body = resp.json()
    session_id = body.get("id")
    url = body.get("url")
    if not session_id or not url:
        raise CheckoutError("Payment provider returned an incomplete session")
    logger.info("Created checkout session %s for payment %s", session_id, payment.id)
    return session_id, url
