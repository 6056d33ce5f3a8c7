"""Best-effort notification fan-out.

Every ``notify_*`` helper runs after the caller has committed its financial
state. Each channel (in-app row, realtime bus, email) is attempted
independently and failures are logged, never raised, so a broken SMTP
server or Redis outage can't undo or fail a settlement.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.config import FRONTEND_URL, settings
from ..models import NotificationType, User
from ..realtime import bus
from ..schemas.notification import NotificationResponse
from . import background_worker
from .email import send_email

logger = logging.getLogger(__name__)


def alert_scheduler_failure(exc: Exception) -> None:
    """Emit an error log when a background scheduler run fails."""
    logger.exception("Scheduler run failed: %s", exc)


def _best_effort(func: Callable[..., None]) -> Callable[..., None]:
    """Log and swallow anything a notify_* helper raises."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> None:
        try:
            func(*args, **kwargs)
        except Exception:
            logger.exception("Notification %s failed", func.__name__)

    return wrapper


def _money(amount, currency: str) -> str:
    return f"{currency} {amount}"


def _booking_link(booking_id: Optional[int]) -> str:
    if booking_id is None:
        return f"{FRONTEND_URL}/dashboard"
    return f"{FRONTEND_URL}/bookings/{booking_id}"


def _safe_publish(user_id: int, payload: dict) -> None:
    """Publish to the user's realtime topic from a coroutine or a worker thread."""
    topic = bus.user_topic(user_id)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Sync endpoints and webhook handlers run in the threadpool
        bus.publish_topic_sync(topic, payload)
        return
    loop.create_task(bus.publish_topic(topic, payload))


def _enqueue_email(user: Optional[User], subject: str, body: str) -> None:
    if not settings.EMAIL_ENABLED or user is None or not user.email:
        return
    try:
        background_worker.enqueue(send_email, user.email, subject, body)
    except Exception as exc:
        logger.error("Could not queue email to user %s: %s", user.id, exc)


def _create_and_broadcast(
    db: Session,
    user_id: Optional[int],
    ntype: NotificationType,
    title: str,
    message: str,
    booking_id: Optional[int] = None,
    dedupe_key: Optional[str] = None,
) -> Optional[models.Notification]:
    """Persist a notification, push it on the realtime bus and email it."""
    from ..crud import crud_notification

    if user_id is None:
        return None
    try:
        notif = crud_notification.create_notification(
            db,
            user_id=user_id,
            type=ntype,
            title=title,
            message=message,
            booking_id=booking_id,
            dedupe_key=dedupe_key,
        )
    except Exception:
        logger.exception("Failed to store %s notification for user %s", ntype.value, user_id)
        db.rollback()
        return None
    if notif is None:
        logger.info("Skipping duplicate %s notification for user %s (%s)", ntype.value, user_id, dedupe_key)
        return None

    try:
        data = NotificationResponse.model_validate(notif).model_dump(mode="json")
        data["link"] = _booking_link(booking_id)
        _safe_publish(user_id, {"type": "notification", "payload": data})
    except Exception:
        logger.exception("Failed to broadcast notification %s", notif.id)

    try:
        user = db.query(models.User).filter(models.User.id == user_id).first()
        _enqueue_email(user, title, f"{message}\n\n{_booking_link(booking_id)}")
    except Exception:
        logger.exception("Failed to email notification %s", notif.id)
        db.rollback()

    logger.info("Notify user %s: %s", user_id, title)
    return notif


# ─── Invoices ────────────────────────────────────────────────────────────────
@_best_effort
def notify_invoice_received(db: Session, payment: models.Payment) -> None:
    _create_and_broadcast(
        db,
        payment.booker_id,
        NotificationType.INVOICE_RECEIVED,
        "New invoice",
        f"You received an invoice of {_money(payment.total_amount, payment.currency)} "
        f"for booking #{payment.booking_id}.",
        booking_id=payment.booking_id,
        dedupe_key=f"invoice_received:{payment.id}",
    )


@_best_effort
def notify_invoice_declined(db: Session, payment: models.Payment) -> None:
    _create_and_broadcast(
        db,
        payment.talent_id,
        NotificationType.INVOICE_DECLINED,
        "Invoice declined",
        f"Your invoice for booking #{payment.booking_id} was declined. "
        "You can send a new one.",
        booking_id=payment.booking_id,
        dedupe_key=f"invoice_declined:{payment.id}",
    )


# ─── Payments ────────────────────────────────────────────────────────────────
@_best_effort
def notify_payment_completed(db: Session, payment: models.Payment) -> None:
    amount = _money(payment.total_amount, payment.currency)
    _create_and_broadcast(
        db,
        payment.booker_id,
        NotificationType.PAYMENT_COMPLETED,
        "Payment received",
        f"Your payment of {amount} for booking #{payment.booking_id} went through. "
        "The booking is confirmed.",
        booking_id=payment.booking_id,
        dedupe_key=f"payment_completed:{payment.id}",
    )
    _create_and_broadcast(
        db,
        payment.talent_id,
        NotificationType.PAYMENT_COMPLETED,
        "Booking confirmed",
        f"Booking #{payment.booking_id} is paid and confirmed. "
        f"Your earnings: {_money(payment.talent_earnings, payment.currency)}.",
        booking_id=payment.booking_id,
        dedupe_key=f"payment_completed:{payment.id}",
    )


@_best_effort
def notify_payment_failed(
    db: Session,
    user_id: int,
    booking_id: Optional[int],
    reason: Optional[str],
    dedupe_key: Optional[str] = None,
) -> None:
    what = f"booking #{booking_id}" if booking_id is not None else "your subscription"
    message = f"A payment for {what} did not go through."
    if reason:
        message = f"{message} Reason: {reason}"
    _create_and_broadcast(
        db,
        user_id,
        NotificationType.PAYMENT_FAILED,
        "Payment failed",
        message,
        booking_id=booking_id,
        dedupe_key=dedupe_key,
    )


@_best_effort
def notify_payment_expired(db: Session, payment: models.Payment) -> None:
    for user_id in (payment.booker_id, payment.talent_id):
        _create_and_broadcast(
            db,
            user_id,
            NotificationType.PAYMENT_EXPIRED,
            "Invoice expired",
            f"The invoice for booking #{payment.booking_id} expired before it was paid.",
            booking_id=payment.booking_id,
            dedupe_key=f"payment_expired:{payment.id}",
        )


# ─── Bookings ────────────────────────────────────────────────────────────────
@_best_effort
def notify_gig_claimed(db: Session, booking: models.Booking) -> None:
    talent = booking.talent
    name = talent.display_name if talent else "A talent"
    _create_and_broadcast(
        db,
        booking.requester_id,
        NotificationType.GIG_CLAIMED,
        "Gig claimed",
        f"{name} claimed your gig #{booking.id}.",
        booking_id=booking.id,
        dedupe_key=f"gig_claimed:{booking.id}:{booking.talent_id}",
    )


@_best_effort
def notify_booking_declined(db: Session, booking: models.Booking, actor_id: int) -> None:
    # Tell whoever did not decline
    for user_id in (booking.requester_id, booking.talent_id):
        if user_id is None or user_id == actor_id:
            continue
        _create_and_broadcast(
            db,
            user_id,
            NotificationType.BOOKING_DECLINED,
            "Booking declined",
            f"Booking #{booking.id} was declined.",
            booking_id=booking.id,
            dedupe_key=f"booking_declined:{booking.id}",
        )


@_best_effort
def notify_booking_completed(db: Session, booking: models.Booking) -> None:
    _create_and_broadcast(
        db,
        booking.talent_id,
        NotificationType.BOOKING_COMPLETED,
        "Booking completed",
        f"Booking #{booking.id} on {booking.event_date} is complete.",
        booking_id=booking.id,
        dedupe_key=f"booking_completed:{booking.id}",
    )


# ─── Subscriptions ───────────────────────────────────────────────────────────
@_best_effort
def notify_subscription_changed(
    db: Session, talent_id: int, active: bool, dedupe_key: Optional[str] = None
) -> None:
    if active:
        ntype = NotificationType.SUBSCRIPTION_ACTIVATED
        title = "Pro subscription active"
        message = (
            f"Your pro subscription is active. New invoices use the "
            f"{settings.COMMISSION_RATE_PRO:g}% platform commission."
        )
    else:
        ntype = NotificationType.SUBSCRIPTION_CANCELLED
        title = "Pro subscription ended"
        message = (
            f"Your pro subscription has ended. New invoices use the "
            f"{settings.COMMISSION_RATE_STANDARD:g}% platform commission."
        )
    _create_and_broadcast(db, talent_id, ntype, title, message, dedupe_key=dedupe_key)
