from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..models.booking_status import PaymentStatus
from ..models.payment import PaymentMethod


class ManualInvoiceCreate(BaseModel):
    """Fixed price agreed in chat (gig opportunities)."""

    # Validated > 0 in crud_payment so the error carries field_errors
    amount: Decimal
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class RateInvoiceCreate(BaseModel):
    """Hourly rate x duration, priced from the talent profile."""

    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class PaymentRead(BaseModel):
    id: int
    booking_id: int
    booker_id: int
    talent_id: int
    gig_application_id: Optional[int] = None
    total_amount: Decimal
    currency: str
    commission_rate: Decimal
    platform_commission: Decimal
    talent_earnings: Decimal
    hourly_rate: Decimal
    hours_booked: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    declined_reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CheckoutSessionResponse(BaseModel):
    payment_id: int
    session_id: str
    checkout_url: str
