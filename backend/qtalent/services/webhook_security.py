"""Authenticity checks for payment-provider webhooks.

Both verifiers run against the raw request body before any JSON parsing and
raise ``WebhookSignatureError`` on failure; the webhook router turns that
into a 401 without touching the database.
"""

import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)

PAYPAL_HEADERS = (
    "paypal-auth-algo",
    "paypal-cert-url",
    "paypal-transmission-id",
    "paypal-transmission-sig",
    "paypal-transmission-time",
)


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def parse_stripe_signature(header: str) -> tuple[Optional[str], list[str]]:
    """Split ``t=<ts>,v1=<sig>[,v1=<sig>...]`` into the timestamp and v1 signatures."""
    timestamp: Optional[str] = None
    signatures: list[str] = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_stripe_signature(
    payload: bytes,
    signature_header: Optional[str],
    secret: Optional[str] = None,
    tolerance: Optional[int] = None,
    now: Optional[float] = None,
) -> None:
    """Check a ``Stripe-Signature`` header against the raw body."""
    secret = secret if secret is not None else settings.STRIPE_WEBHOOK_SECRET
    tolerance = tolerance if tolerance is not None else settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
    if not secret:
        raise WebhookSignatureError("Stripe webhook secret is not configured")
    if not signature_header:
        raise WebhookSignatureError("Missing Stripe-Signature header")

    timestamp, signatures = parse_stripe_signature(signature_header)
    if not timestamp or not signatures:
        raise WebhookSignatureError("Malformed Stripe-Signature header")
    try:
        ts = int(timestamp)
    except ValueError:
        raise WebhookSignatureError("Malformed Stripe-Signature timestamp")

    current = int(now if now is not None else time.time())
    if abs(current - ts) > tolerance:
        logger.warning("Stripe webhook timestamp outside tolerance: %ss", current - ts)
        raise WebhookSignatureError("Stripe webhook timestamp outside tolerance")

    expected = compute_hmac_sha256(secret, timestamp.encode("utf-8") + b"." + payload)
    if not any(constant_time_compare(expected, sig) for sig in signatures):
        logger.warning("Stripe webhook signature mismatch")
        raise WebhookSignatureError("Stripe webhook signature mismatch")


def _paypal_access_token(client: httpx.Client) -> str:
    resp = client.post(
        f"{settings.PAYPAL_API_BASE}/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
        headers={"Accept": "application/json"},
    )
    resp.raise_for_status()
    token = resp.json().get("access_token")
    if not token:
        raise WebhookSignatureError("PayPal returned no access token")
    return token


def verify_paypal_signature(
    headers: Mapping[str, str],
    event: dict,
    webhook_id: Optional[str] = None,
) -> None:
    """Ask PayPal to verify the transmission headers for ``event``.

    PayPal signs with a certificate chain, so verification is delegated to
    ``/v1/notifications/verify-webhook-signature``.
    """
    webhook_id = webhook_id or settings.PAYPAL_WEBHOOK_ID
    if not webhook_id or not settings.PAYPAL_CLIENT_ID:
        raise WebhookSignatureError("PayPal webhook verification is not configured")
    lowered = {k.lower(): v for k, v in headers.items()}
    missing = [h for h in PAYPAL_HEADERS if not lowered.get(h)]
    if missing:
        raise WebhookSignatureError(f"Missing PayPal headers: {', '.join(missing)}")

    body = {
        "auth_algo": lowered["paypal-auth-algo"],
        "cert_url": lowered["paypal-cert-url"],
        "transmission_id": lowered["paypal-transmission-id"],
        "transmission_sig": lowered["paypal-transmission-sig"],
        "transmission_time": lowered["paypal-transmission-time"],
        "webhook_id": webhook_id,
        "webhook_event": event,
    }
    try:
        with httpx.Client(timeout=10.0) as client:
            token = _paypal_access_token(client)
            resp = client.post(
                f"{settings.PAYPAL_API_BASE}/v1/notifications/verify-webhook-signature",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
            resp.raise_for_status()
            status = resp.json().get("verification_status")
    except httpx.HTTPError as exc:
        logger.error("PayPal signature verification request failed: %s", exc)
        raise WebhookSignatureError("PayPal verification unavailable") from exc

    if status != "SUCCESS":
        logger.warning("PayPal webhook verification returned %s", status)
        raise WebhookSignatureError("PayPal webhook signature invalid")
