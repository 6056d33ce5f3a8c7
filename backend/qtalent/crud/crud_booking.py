from datetime import date, datetime
import enum
import logging
from typing import List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models, schemas
from ..models.booking_status import (
    BookingStatus,
    GigApplicationStatus,
    PaymentStatus,
    booking_sources,
)
from ..models.payment import DeclineReason
from ..utils.errors import InvalidTransition, NotFound, PermissionDenied, ValidationError

logger = logging.getLogger(__name__)


class ClaimResult(str, enum.Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already-claimed"


class CRUDBooking:
    def get_booking(self, db: Session, booking_id: int) -> Optional[models.Booking]:
        return db.query(models.Booking).filter(models.Booking.id == booking_id).first()

    def get_bookings_for_user(
        self, db: Session, user_id: int, skip: int = 0, limit: int = 100
    ) -> List[models.Booking]:
        return (
            db.query(models.Booking)
            .filter(
                or_(
                    models.Booking.requester_id == user_id,
                    models.Booking.talent_id == user_id,
                )
            )
            .order_by(models.Booking.event_date.desc(), models.Booking.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_open_gigs(self, db: Session, skip: int = 0, limit: int = 100) -> List[models.Booking]:
        return (
            db.query(models.Booking)
            .filter(
                models.Booking.is_gig_opportunity.is_(True),
                models.Booking.is_public_request.is_(True),
                models.Booking.talent_id.is_(None),
                models.Booking.status == BookingStatus.PENDING,
            )
            .order_by(models.Booking.event_date.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def create_booking(
        self, db: Session, booking_in: schemas.BookingCreate, requester_id: int
    ) -> models.Booking:
        if booking_in.talent_id is not None:
            talent = db.query(models.User).filter(models.User.id == booking_in.talent_id).first()
            if not talent or talent.user_type != models.UserType.TALENT:
                raise ValidationError(
                    "Invalid talent",
                    {"talent_id": "No talent with this id."},
                )
            if talent.id == requester_id:
                raise ValidationError(
                    "Invalid talent",
                    {"talent_id": "You cannot book yourself."},
                )

        data = booking_in.model_dump()
        if data.get("budget_currency"):
            data["budget_currency"] = data["budget_currency"].upper()
        db_booking = models.Booking(
            **data,
            requester_id=requester_id,
            status=BookingStatus.PENDING,
        )
        db.add(db_booking)
        db.commit()
        db.refresh(db_booking)
        logger.info(
            "Created booking %s (gig=%s) for requester %s",
            db_booking.id,
            db_booking.is_gig_opportunity,
            requester_id,
        )
        return db_booking

    # ─── Gig claims ──────────────────────────────────────────────────────────
    def claim_gig(self, db: Session, gig_id: int, talent_id: int) -> ClaimResult:
        """Atomically assign an open gig to ``talent_id``.

        The whole decision is one conditional UPDATE, so of any number of
        concurrent callers exactly one sees a row count of 1. Losers get
        ``ALREADY_CLAIMED`` and nothing is written on their behalf.
        """
        stmt = (
            update(models.Booking)
            .where(
                models.Booking.id == gig_id,
                models.Booking.talent_id.is_(None),
                models.Booking.status == BookingStatus.PENDING,
                models.Booking.is_gig_opportunity.is_(True),
                models.Booking.is_public_request.is_(True),
            )
            .values(talent_id=talent_id, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        if result.rowcount != 1:
            db.rollback()
            if self.get_booking(db, gig_id) is None:
                raise NotFound("Gig not found", {"gig_id": "not found"})
            logger.info("Talent %s lost the claim on gig %s", talent_id, gig_id)
            return ClaimResult.ALREADY_CLAIMED
        db.commit()
        logger.info("Gig %s claimed by talent %s", gig_id, talent_id)

        from ..utils import notifications

        gig = self.get_booking(db, gig_id)
        if gig is not None:
            notifications.notify_gig_claimed(db, gig)
        return ClaimResult.CLAIMED

    def release_gig(self, db: Session, gig_id: int, talent_id: int) -> models.Booking:
        """Hand a claimed but not yet invoiced gig back to the public pool."""
        stmt = (
            update(models.Booking)
            .where(
                models.Booking.id == gig_id,
                models.Booking.talent_id == talent_id,
                models.Booking.status == BookingStatus.PENDING,
                models.Booking.is_gig_opportunity.is_(True),
            )
            .values(talent_id=None, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        result = db.execute(stmt)
        if result.rowcount != 1:
            db.rollback()
            gig = self.get_booking(db, gig_id)
            if gig is None:
                raise NotFound("Gig not found", {"gig_id": "not found"})
            raise InvalidTransition(
                "Gig cannot be released",
                {"gig_id": "only the claiming talent can release a pending gig"},
            )
        db.commit()
        logger.info("Gig %s released by talent %s", gig_id, talent_id)
        return self.get_booking(db, gig_id)

    def apply_to_gig(self, db: Session, gig_id: int, talent_id: int) -> models.GigApplication:
        """Register interest in a gig; applying twice returns the first application."""
        gig = self.get_booking(db, gig_id)
        if gig is None or not gig.is_gig_opportunity:
            raise NotFound("Gig not found", {"gig_id": "not found"})
        existing = self.get_application(db, gig_id, talent_id)
        if existing is not None:
            return existing
        if not gig.is_public_request or gig.status != BookingStatus.PENDING:
            raise InvalidTransition(
                "Gig is not open for applications",
                {"gig_id": f"status is {BookingStatus(gig.status).value}"},
            )
        application = models.GigApplication(
            gig_id=gig_id,
            talent_id=talent_id,
            status=GigApplicationStatus.INTERESTED,
        )
        db.add(application)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = self.get_application(db, gig_id, talent_id)
            if existing is None:
                raise
            return existing
        db.refresh(application)
        return application

    def get_application(
        self, db: Session, gig_id: int, talent_id: int
    ) -> Optional[models.GigApplication]:
        return (
            db.query(models.GigApplication)
            .filter(
                models.GigApplication.gig_id == gig_id,
                models.GigApplication.talent_id == talent_id,
            )
            .first()
        )

    def get_applications(self, db: Session, gig_id: int) -> List[models.GigApplication]:
        return (
            db.query(models.GigApplication)
            .filter(models.GigApplication.gig_id == gig_id)
            .order_by(models.GigApplication.id.asc())
            .all()
        )

    # ─── Declines ────────────────────────────────────────────────────────────
    def decline_gig(self, db: Session, gig_id: int, actor_id: int) -> models.Booking:
        """Close a gig posting whether or not a talent has claimed it."""
        gig = self.get_booking(db, gig_id)
        if gig is None or not gig.is_gig_opportunity:
            raise NotFound("Gig not found", {"gig_id": "not found"})
        if actor_id != gig.requester_id:
            raise PermissionDenied("Only the poster can decline this gig")
        return self._decline(db, gig, actor_id)

    def decline_booking(self, db: Session, booking_id: int, actor_id: int) -> models.Booking:
        """Decline a booking as its booker or its assigned talent."""
        booking = self.get_booking(db, booking_id)
        if booking is None:
            raise NotFound("Booking not found", {"booking_id": "not found"})
        if actor_id not in (booking.requester_id, booking.talent_id):
            raise PermissionDenied("Not authorized to decline this booking")
        return self._decline(db, booking, actor_id)

    def _decline(self, db: Session, booking: models.Booking, actor_id: int) -> models.Booking:
        if booking.status == BookingStatus.DECLINED:
            return booking
        booking_id = booking.id
        now = datetime.utcnow()
        result = db.execute(
            update(models.Booking)
            .where(
                models.Booking.id == booking_id,
                models.Booking.status.in_(booking_sources(BookingStatus.DECLINED)),
            )
            .values(status=BookingStatus.DECLINED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            current = self.get_booking(db, booking_id)
            if current is not None and current.status == BookingStatus.DECLINED:
                return current
            raise InvalidTransition(
                "Booking cannot be declined",
                {"status": BookingStatus(current.status).value if current else "unknown"},
            )
        # Outstanding invoices die with the booking
        db.execute(
            update(models.Payment)
            .where(
                models.Payment.booking_id == booking_id,
                models.Payment.payment_status == PaymentStatus.PENDING,
            )
            .values(
                payment_status=PaymentStatus.DECLINED,
                declined_reason=DeclineReason.BOOKING_DECLINED.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.execute(
            update(models.GigApplication)
            .where(
                models.GigApplication.gig_id == booking_id,
                models.GigApplication.status != GigApplicationStatus.DECLINED,
            )
            .values(status=GigApplicationStatus.DECLINED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        logger.info("Booking %s declined by user %s", booking_id, actor_id)

        from ..utils import notifications

        booking = self.get_booking(db, booking_id)
        notifications.notify_booking_declined(db, booking, actor_id)
        return booking

    # ─── Maintenance ─────────────────────────────────────────────────────────
    def complete_past_bookings(self, db: Session, today: Optional[date] = None) -> int:
        """Move confirmed bookings whose event date has passed to ``completed``."""
        today = today or datetime.utcnow().date()
        candidates = (
            db.query(models.Booking.id)
            .filter(
                models.Booking.status == BookingStatus.CONFIRMED,
                models.Booking.event_date < today,
            )
            .all()
        )
        completed_ids: list[int] = []
        for (booking_id,) in candidates:
            result = db.execute(
                update(models.Booking)
                .where(
                    models.Booking.id == booking_id,
                    models.Booking.status == BookingStatus.CONFIRMED,
                )
                .values(status=BookingStatus.COMPLETED, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                completed_ids.append(booking_id)
        db.commit()
        if completed_ids:
            logger.info("Completed %s past bookings", len(completed_ids))

        from ..utils import notifications

        for booking_id in completed_ids:
            booking = self.get_booking(db, booking_id)
            if booking is not None:
                notifications.notify_booking_completed(db, booking)
        return len(completed_ids)


booking = CRUDBooking()
