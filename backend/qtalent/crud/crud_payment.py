"""Invoices and their settlement.

Every function here leaves the database either fully updated or untouched:
status changes are conditional UPDATEs checked by row count, and a miss
rolls back the whole transaction before a domain error is raised.
Notifications are only sent after the commit.
"""

from datetime import datetime, timedelta
from decimal import Decimal
import enum
import logging
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models.booking_status import (
    BookingStatus,
    GigApplicationStatus,
    PaymentStatus,
    booking_sources,
)
from ..models.payment import DeclineReason, PaymentMethod
from ..services import commission
from ..utils.errors import (
    ConcurrencyConflict,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)

logger = logging.getLogger(__name__)


class SettlementResult(str, enum.Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"


def get_payment(db: Session, payment_id: int) -> Optional[models.Payment]:
    return db.query(models.Payment).filter(models.Payment.id == payment_id).first()


def get_payments_for_booking(db: Session, booking_id: int) -> List[models.Payment]:
    return (
        db.query(models.Payment)
        .filter(models.Payment.booking_id == booking_id)
        .order_by(models.Payment.id.asc())
        .all()
    )


def _has_completed_payment(db: Session, booking_id: int) -> bool:
    return (
        db.query(models.Payment.id)
        .filter(
            models.Payment.booking_id == booking_id,
            models.Payment.payment_status == PaymentStatus.COMPLETED,
        )
        .first()
        is not None
    )


def _resolve_currency(
    currency: Optional[str],
    booking: models.Booking,
    profile: Optional[models.TalentProfile],
) -> str:
    value = (
        currency
        or (profile.currency if profile else None)
        or booking.budget_currency
        or settings.DEFAULT_CURRENCY
    )
    return value.upper()


def _create_invoice(
    db: Session,
    booking: models.Booking,
    talent_id: int,
    total: Decimal,
    method: PaymentMethod,
    currency: str,
    profile: Optional[models.TalentProfile],
    hourly_rate: Decimal = Decimal("0"),
    hours_booked: Decimal = Decimal("0"),
    gig_application_id: Optional[int] = None,
) -> models.Payment:
    """Insert a pending Payment and point the booking at it. Does not commit."""
    rate = commission.commission_rate_for(bool(profile and profile.is_pro_subscriber))
    split = commission.split_amount(total, rate)
    now = datetime.utcnow()

    # Only the newest invoice may be paid
    db.execute(
        update(models.Payment)
        .where(
            models.Payment.booking_id == booking.id,
            models.Payment.payment_status == PaymentStatus.PENDING,
        )
        .values(
            payment_status=PaymentStatus.DECLINED,
            declined_reason=DeclineReason.SUPERSEDED.value,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    payment = models.Payment(
        booking_id=booking.id,
        booker_id=booking.requester_id,
        talent_id=talent_id,
        gig_application_id=gig_application_id,
        total_amount=split.total_amount,
        currency=currency,
        commission_rate=split.commission_rate,
        platform_commission=split.platform_commission,
        talent_earnings=split.talent_earnings,
        hourly_rate=commission.to_money(hourly_rate),
        hours_booked=Decimal(str(hours_booked)),
        payment_method=method,
        payment_status=PaymentStatus.PENDING,
    )
    db.add(payment)
    db.flush()

    result = db.execute(
        update(models.Booking)
        .where(
            models.Booking.id == booking.id,
            models.Booking.talent_id == talent_id,
            models.Booking.status.in_(booking_sources(BookingStatus.APPROVED)),
        )
        .values(status=BookingStatus.APPROVED, payment_id=payment.id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidTransition(
            "Booking changed while the invoice was being issued",
            {"booking_id": "retry after reloading the booking"},
        )
    return payment


def _check_invoiceable(db: Session, booking: models.Booking) -> None:
    if _has_completed_payment(db, booking.id):
        raise ValidationError(
            "Booking is already paid",
            {"booking_id": "a completed payment exists for this booking"},
        )
    if BookingStatus(booking.status) not in booking_sources(BookingStatus.APPROVED):
        raise InvalidTransition(
            "Booking cannot be invoiced",
            {"status": BookingStatus(booking.status).value},
        )


def _validate_amount(amount: Optional[Decimal]) -> Decimal:
    money = commission.to_money(amount) if amount is not None else None
    if money is None or money <= 0:
        raise ValidationError("Invalid amount", {"amount": "must be greater than 0"})
    return money


def issue_invoice(
    db: Session,
    booking_id: int,
    issuer_id: int,
    method: PaymentMethod,
    amount: Optional[Decimal] = None,
    currency: Optional[str] = None,
) -> models.Payment:
    """Issue an invoice for the booking's assigned talent.

    ``RATE_INVOICE`` prices the booking from the talent's hourly rate at
    issuance time; ``MANUAL_INVOICE`` takes ``amount`` as agreed in chat.
    """
    booking = db.query(models.Booking).filter(models.Booking.id == booking_id).first()
    if booking is None:
        raise NotFound("Booking not found", {"booking_id": "not found"})
    if booking.talent_id is None:
        raise ValidationError(
            "No talent assigned",
            {"talent_id": "claim the gig before invoicing it"},
        )
    if booking.talent_id != issuer_id:
        raise PermissionDenied("Only the assigned talent can invoice this booking")
    _check_invoiceable(db, booking)

    talent_id = booking.talent_id
    profile = (
        db.query(models.TalentProfile)
        .filter(models.TalentProfile.user_id == talent_id)
        .first()
    )
    hourly_rate = Decimal("0")
    hours = Decimal("0")
    if method == PaymentMethod.RATE_INVOICE:
        hourly_rate = Decimal(str(profile.hourly_rate)) if profile and profile.hourly_rate is not None else Decimal("0")
        hours = Decimal(str(booking.duration_hours))
        total = commission.rate_amount(hourly_rate, hours)
        if total <= 0:
            raise ValidationError(
                "Invalid amount",
                {"hourly_rate": "set an hourly rate on your profile before invoicing"},
            )
    else:
        total = _validate_amount(amount)

    payment = _create_invoice(
        db,
        booking,
        talent_id,
        total,
        method,
        _resolve_currency(currency, booking, profile),
        profile,
        hourly_rate=hourly_rate,
        hours_booked=hours,
    )
    return _commit_invoice(db, payment)


def issue_invoice_for_application(
    db: Session,
    application_id: int,
    issuer_id: int,
    amount: Optional[Decimal],
    currency: Optional[str] = None,
) -> models.Payment:
    """Invoice a gig from one of its applicants.

    The gig is assigned to the applicant in the same transaction; if another
    talent already holds it the call fails with ``ConcurrencyConflict``.
    """
    application = (
        db.query(models.GigApplication)
        .filter(models.GigApplication.id == application_id)
        .first()
    )
    if application is None:
        raise NotFound("Application not found", {"application_id": "not found"})
    if application.talent_id != issuer_id:
        raise PermissionDenied("Only the applicant can invoice from this application")
    if application.status in (GigApplicationStatus.DECLINED, GigApplicationStatus.CONFIRMED):
        raise InvalidTransition(
            "Application is closed",
            {"status": GigApplicationStatus(application.status).value},
        )
    total = _validate_amount(amount)

    gig = application.gig
    _check_invoiceable(db, gig)
    talent_id = application.talent_id

    result = db.execute(
        update(models.Booking)
        .where(
            models.Booking.id == gig.id,
            or_(models.Booking.talent_id.is_(None), models.Booking.talent_id == talent_id),
            models.Booking.status.in_(booking_sources(BookingStatus.APPROVED)),
        )
        .values(talent_id=talent_id, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConcurrencyConflict(
            "Gig is unavailable",
            {"gig_id": "another talent holds this gig"},
        )
    db.refresh(gig)
    application.status = GigApplicationStatus.INVOICE_SENT

    profile = (
        db.query(models.TalentProfile)
        .filter(models.TalentProfile.user_id == talent_id)
        .first()
    )
    payment = _create_invoice(
        db,
        gig,
        talent_id,
        total,
        PaymentMethod.MANUAL_INVOICE,
        _resolve_currency(currency, gig, profile),
        profile,
        gig_application_id=application.id,
    )
    return _commit_invoice(db, payment)


def _commit_invoice(db: Session, payment: models.Payment) -> models.Payment:
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.error("Invoice insert failed: %s", exc)
        raise ConcurrencyConflict("Booking changed while the invoice was being issued")
    db.refresh(payment)
    logger.info(
        "Issued invoice %s for booking %s: total=%s commission=%s earnings=%s",
        payment.id,
        payment.booking_id,
        payment.total_amount,
        payment.platform_commission,
        payment.talent_earnings,
    )

    from ..utils import notifications

    notifications.notify_invoice_received(db, payment)
    return payment


def decline_invoice(db: Session, booking_id: int, booker_id: int) -> models.Payment:
    """Decline the booking's outstanding invoice. The booking stays approved."""
    booking = db.query(models.Booking).filter(models.Booking.id == booking_id).first()
    if booking is None:
        raise NotFound("Booking not found", {"booking_id": "not found"})
    if booking.requester_id != booker_id:
        raise PermissionDenied("Only the booker can decline this invoice")
    payment_id = booking.payment_id
    if payment_id is None:
        raise InvalidTransition("Booking has no invoice", {"booking_id": "no invoice issued"})

    result = db.execute(
        update(models.Payment)
        .where(
            models.Payment.id == payment_id,
            models.Payment.payment_status == PaymentStatus.PENDING,
        )
        .values(
            payment_status=PaymentStatus.DECLINED,
            declined_reason=DeclineReason.BOOKER_DECLINED.value,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise InvalidTransition(
            "Invoice is not pending",
            {"payment_id": "only a pending invoice can be declined"},
        )
    db.commit()
    logger.info("Invoice %s for booking %s declined by booker", payment_id, booking_id)

    payment = get_payment(db, payment_id)

    from ..utils import notifications

    notifications.notify_invoice_declined(db, payment)
    return payment


def attach_checkout_session(db: Session, payment: models.Payment, session_id: str) -> models.Payment:
    payment.checkout_session_id = session_id
    db.commit()
    db.refresh(payment)
    return payment


# ─── Settlement ───────────────────────────────────────────────────────────────
def settle_payment(
    db: Session, payment_id: int, session_id: Optional[str] = None
) -> SettlementResult:
    """Apply a verified "paid" notification for ``payment_id``.

    Safe to call any number of times: once the payment is completed later
    calls return ``ALREADY_SETTLED`` without writing. The payment and booking
    transitions commit together or not at all.
    """
    payment = get_payment(db, payment_id)
    if payment is None:
        raise NotFound("Payment not found", {"payment_id": "not found"})
    if payment.payment_status == PaymentStatus.COMPLETED:
        db.rollback()
        logger.info("Payment %s already settled; ignoring duplicate", payment_id)
        return SettlementResult.ALREADY_SETTLED

    booking_id = payment.booking_id
    now = datetime.utcnow()
    values = {
        "payment_status": PaymentStatus.COMPLETED,
        "processed_at": now,
        "updated_at": now,
    }
    if session_id and not payment.checkout_session_id:
        values["checkout_session_id"] = session_id
    result = db.execute(
        update(models.Payment)
        .where(
            models.Payment.id == payment_id,
            models.Payment.payment_status == PaymentStatus.PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        current = get_payment(db, payment_id)
        if current is not None and current.payment_status == PaymentStatus.COMPLETED:
            logger.info("Payment %s settled concurrently; ignoring duplicate", payment_id)
            return SettlementResult.ALREADY_SETTLED
        logger.error(
            "Settlement for payment %s rejected: payment is %s; needs manual reconciliation",
            payment_id,
            current.payment_status if current else "missing",
        )
        raise InvalidTransition(
            "Payment is not pending",
            {"payment_id": "payment was declined or expired before settlement"},
        )

    result = db.execute(
        update(models.Booking)
        .where(
            models.Booking.id == booking_id,
            models.Booking.status == BookingStatus.APPROVED,
            models.Booking.payment_id == payment_id,
        )
        .values(status=BookingStatus.CONFIRMED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.error(
            "Settlement for payment %s rejected: booking %s is not awaiting it; needs manual reconciliation",
            payment_id,
            booking_id,
        )
        raise InvalidTransition(
            "Booking is not awaiting this payment",
            {"booking_id": "booking was declined or re-invoiced"},
        )

    _confirm_counterparty(db, payment, booking_id, now)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.error("Settlement for payment %s violated a constraint: %s", payment_id, exc)
        raise InvalidTransition("Booking already has a completed payment")
    logger.info("Payment %s settled; booking %s confirmed", payment_id, booking_id)

    from ..utils import notifications

    payment = get_payment(db, payment_id)
    notifications.notify_payment_completed(db, payment)
    return SettlementResult.SETTLED


def _confirm_counterparty(
    db: Session, payment: models.Payment, booking_id: int, now: datetime
) -> None:
    """Lock in the talent for a gig: the invoicing application wins, the rest are declined."""
    query = db.query(models.GigApplication).filter(models.GigApplication.gig_id == booking_id)
    if payment.gig_application_id is not None:
        winner = query.filter(models.GigApplication.id == payment.gig_application_id).first()
    else:
        winner = query.filter(
            models.GigApplication.status == GigApplicationStatus.INVOICE_SENT,
            models.GigApplication.talent_id == payment.talent_id,
        ).first()
    if winner is None:
        return
    db.execute(
        update(models.GigApplication)
        .where(models.GigApplication.id == winner.id)
        .values(status=GigApplicationStatus.CONFIRMED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(models.GigApplication)
        .where(
            models.GigApplication.gig_id == booking_id,
            models.GigApplication.id != winner.id,
            models.GigApplication.status != GigApplicationStatus.DECLINED,
        )
        .values(status=GigApplicationStatus.DECLINED, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        update(models.Booking)
        .where(models.Booking.id == booking_id, models.Booking.talent_id.is_(None))
        .values(talent_id=winner.talent_id)
        .execution_options(synchronize_session=False)
    )


def record_payment_failure(
    db: Session,
    payment_id: int,
    reason: Optional[str] = None,
    event_id: Optional[str] = None,
) -> Optional[models.Payment]:
    """Note a failed charge attempt. The payment stays pending so the booker can retry."""
    payment = get_payment(db, payment_id)
    if payment is None:
        raise NotFound("Payment not found", {"payment_id": "not found"})
    if payment.payment_status != PaymentStatus.PENDING:
        logger.info(
            "Ignoring failure event for payment %s in status %s",
            payment_id,
            payment.payment_status,
        )
        return payment
    logger.warning("Charge attempt for payment %s failed: %s", payment_id, reason)

    from ..utils import notifications

    notifications.notify_payment_failed(
        db,
        user_id=payment.booker_id,
        booking_id=payment.booking_id,
        reason=reason,
        dedupe_key=f"payment_failed:{event_id or payment_id}",
    )
    return payment


def expire_stale_payments(db: Session, now: Optional[datetime] = None) -> int:
    """Decline pending payments older than ``PAYMENT_PENDING_TTL_HOURS``."""
    now = now or datetime.utcnow()
    cutoff = now - timedelta(hours=settings.PAYMENT_PENDING_TTL_HOURS)
    stale = (
        db.query(models.Payment.id)
        .filter(
            models.Payment.payment_status == PaymentStatus.PENDING,
            models.Payment.created_at < cutoff,
        )
        .all()
    )
    expired_ids: list[int] = []
    for (payment_id,) in stale:
        result = db.execute(
            update(models.Payment)
            .where(
                models.Payment.id == payment_id,
                models.Payment.payment_status == PaymentStatus.PENDING,
            )
            .values(
                payment_status=PaymentStatus.DECLINED,
                declined_reason=DeclineReason.EXPIRED.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            expired_ids.append(payment_id)
    db.commit()
    if expired_ids:
        logger.info("Expired %s stale pending payments", len(expired_ids))

    from ..utils import notifications

    for payment_id in expired_ids:
        payment = get_payment(db, payment_id)
        if payment is not None:
            notifications.notify_payment_expired(db, payment)
    return len(expired_ids)
