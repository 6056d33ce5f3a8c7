"""Payment-provider webhooks.

Status codes are what the providers act on: 2xx stops redelivery, anything
else is retried. Authentic events that cannot be applied (a declined or
superseded payment that was paid anyway) are logged for manual
reconciliation and still acknowledged with 200.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..services import webhook_events
from ..services.webhook_security import (
    WebhookSignatureError,
    verify_paypal_signature,
    verify_stripe_signature,
)
from ..utils.errors import InvalidTransition, NotFound
from .dependencies import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"], default_response_class=ORJSONResponse)


def _reply(code: int, **content) -> ORJSONResponse:
    return ORJSONResponse(status_code=code, content=content)


def _parse(raw: bytes):
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise webhook_events.MalformedEvent("body is not valid JSON") from exc


def _apply(db: Session, event) -> ORJSONResponse:
    try:
        outcome = webhook_events.process_event(db, event)
    except (InvalidTransition, NotFound) as exc:
        db.rollback()
        logger.error(
            "%s webhook %s (%s) could not be applied, needs manual reconciliation: %s",
            event.provider,
            event.event_id,
            event.event_type,
            exc.message,
        )
        return _reply(status.HTTP_200_OK, received=True, outcome="rejected")
    except Exception:
        db.rollback()
        logger.exception("%s webhook %s failed", event.provider, event.event_id)
        return _reply(status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal Server Error")
    return _reply(status.HTTP_200_OK, received=True, outcome=outcome)


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_signature: str | None = Header(default=None),
):
    """Handle Stripe events.

    - Verifies the ``Stripe-Signature`` HMAC over the raw body first.
    - ``checkout.session.completed`` with ``payment_status=paid`` settles the payment.
    - Idempotent: redelivered events return 200 without writing.
    """
    raw = await request.body()
    try:
        verify_stripe_signature(raw, stripe_signature)
    except WebhookSignatureError as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        return _reply(status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = webhook_events.normalize_stripe(_parse(raw))
    except webhook_events.MalformedEvent as exc:
        logger.warning("Malformed Stripe webhook: %s", exc)
        return _reply(status.HTTP_400_BAD_REQUEST, detail="Malformed event")

    return await run_in_threadpool(_apply, db, event)


@router.post("/paypal")
async def paypal_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """Handle PayPal subscription events after PayPal confirms the signature."""
    raw = await request.body()
    try:
        payload = _parse(raw)
    except webhook_events.MalformedEvent as exc:
        # The verify API needs the parsed event, so an unparseable body is
        # rejected before it can be authenticated.
        logger.warning("Malformed PayPal webhook: %s", exc)
        return _reply(status.HTTP_400_BAD_REQUEST, detail="Malformed event")

    try:
        await run_in_threadpool(verify_paypal_signature, dict(request.headers), payload)
    except WebhookSignatureError as exc:
        logger.warning("Rejected PayPal webhook: %s", exc)
        return _reply(status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        event = webhook_events.normalize_paypal(payload)
    except webhook_events.MalformedEvent as exc:
        logger.warning("Malformed PayPal webhook: %s", exc)
        return _reply(status.HTTP_400_BAD_REQUEST, detail="Malformed event")

    return await run_in_threadpool(_apply, db, event)
