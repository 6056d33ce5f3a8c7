import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import relationship

from .base import BaseModel
from .booking_status import PaymentStatus
from .types import CaseInsensitiveEnum


class PaymentMethod(str, enum.Enum):
    RATE_INVOICE = "rate_invoice"
    MANUAL_INVOICE = "manual_invoice"


class DeclineReason(str, enum.Enum):
    BOOKER_DECLINED = "booker_declined"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"
    BOOKING_DECLINED = "booking_declined"


class Payment(BaseModel):
    """Invoice and settlement record for a booking.

    Amounts are frozen at issuance: ``platform_commission + talent_earnings``
    always equals ``total_amount``.
    """

    __tablename__ = "payments"
    __table_args__ = (
        # A booking can be paid for once, however many invoices it went through.
        Index(
            "uq_payments_completed_per_booking",
            "booking_id",
            unique=True,
            sqlite_where=text("payment_status = 'completed'"),
            postgresql_where=text("payment_status = 'completed'"),
        ),
    )

    id             = Column(Integer, primary_key=True, index=True)
    booking_id     = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    booker_id      = Column(Integer, ForeignKey("users.id"), nullable=False)
    talent_id      = Column(Integer, ForeignKey("users.id"), nullable=False)
    gig_application_id = Column(Integer, ForeignKey("gig_applications.id"), nullable=True)

    total_amount        = Column(Numeric(10, 2), nullable=False)
    currency            = Column(String(3), nullable=False)
    commission_rate     = Column(Numeric(5, 2), nullable=False)
    platform_commission = Column(Numeric(10, 2), nullable=False)
    talent_earnings     = Column(Numeric(10, 2), nullable=False)
    # Rate-mode inputs, zero for manually priced invoices
    hourly_rate         = Column(Numeric(10, 2), nullable=False, default=0)
    hours_booked        = Column(Numeric(6, 2), nullable=False, default=0)

    payment_method = Column(
        CaseInsensitiveEnum(PaymentMethod, name="paymentmethod"),
        nullable=False,
        default=PaymentMethod.MANUAL_INVOICE,
    )
    payment_status = Column(
        CaseInsensitiveEnum(PaymentStatus, name="paymentstatus"),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    declined_reason     = Column(String, nullable=True)
    checkout_session_id = Column(String, nullable=True, index=True)
    processed_at        = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="payments")
    booker  = relationship("User", foreign_keys=[booker_id])
    talent  = relationship("User", foreign_keys=[talent_id])
    gig_application = relationship("GigApplication")
