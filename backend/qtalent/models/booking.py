# backend/qtalent/models/booking.py

from sqlalchemy import Boolean, Column, Date, Integer, Numeric, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel
from .booking_status import BookingStatus
from .types import CaseInsensitiveEnum


class Booking(BaseModel):
    """A requested event (direct booking) or a publicly claimable gig posting.

    ``talent_id`` stays NULL only while a gig is pending and unclaimed. It is
    written by conditional UPDATEs in ``crud_booking`` so two talents can
    never both own the same gig.
    """

    __tablename__ = "bookings"

    id           = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    talent_id    = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    status       = Column(
        CaseInsensitiveEnum(BookingStatus, name="bookingstatus"),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )
    is_gig_opportunity = Column(Boolean, nullable=False, default=False)
    is_public_request  = Column(Boolean, nullable=False, default=False)
    # Latest invoice issued for this booking; no FK to avoid a cycle with payments
    payment_id   = Column(Integer, nullable=True, index=True)

    event_date     = Column(Date, nullable=False, index=True)
    duration_hours = Column(Numeric(6, 2), nullable=False)
    event_location = Column(String, nullable=False)
    event_type     = Column(String, nullable=False)
    description    = Column(Text, nullable=True)
    # Advertised budget on gig postings (informational; invoices carry the amount)
    budget          = Column(Numeric(10, 2), nullable=True)
    budget_currency = Column(String(3), nullable=True)

    requester    = relationship("User", foreign_keys=[requester_id])
    talent       = relationship("User", foreign_keys=[talent_id])
    applications = relationship(
        "GigApplication",
        back_populates="gig",
        cascade="all, delete-orphan",
    )
    payments     = relationship(
        "Payment",
        back_populates="booking",
        order_by="Payment.id",
    )
