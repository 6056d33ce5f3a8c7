from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal
from datetime import date, datetime
from decimal import Decimal
from ..models.booking_status import BookingStatus, GigApplicationStatus


# Shared properties for Booking
class BookingBase(BaseModel):
    event_date: date
    duration_hours: Decimal = Field(gt=0)
    event_location: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    description: Optional[str] = None


# Properties to receive on item creation (from a booker)
class BookingCreate(BookingBase):
    # Direct bookings name the talent up front; gig postings leave it empty
    talent_id: Optional[int] = None
    is_gig_opportunity: bool = False
    is_public_request: bool = False
    budget: Optional[Decimal] = Field(default=None, gt=0)
    budget_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)

    @model_validator(mode="after")
    def check_assignment(self) -> "BookingCreate":
        if self.is_gig_opportunity:
            if self.talent_id is not None:
                raise ValueError("gig postings cannot be pre-assigned to a talent")
            if not self.is_public_request:
                raise ValueError("gig postings must be public requests")
        elif self.talent_id is None:
            raise ValueError("talent_id is required for direct bookings")
        return self


class BookingResponse(BookingBase):
    id: int
    requester_id: int
    talent_id: Optional[int] = None
    status: BookingStatus
    is_gig_opportunity: bool
    is_public_request: bool
    payment_id: Optional[int] = None
    budget: Optional[Decimal] = None
    budget_currency: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ClaimResponse(BaseModel):
    gig_id: int
    result: Literal["claimed", "already-claimed"]


class GigApplicationResponse(BaseModel):
    id: int
    gig_id: int
    talent_id: int
    status: GigApplicationStatus
    created_at: datetime

    model_config = {"from_attributes": True}
