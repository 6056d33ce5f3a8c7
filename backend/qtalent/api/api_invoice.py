import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..crud import crud_payment
from ..models import PaymentMethod, User
from ..schemas.payment import ManualInvoiceCreate, PaymentRead, RateInvoiceCreate
from .dependencies import get_current_booker, get_current_talent, get_db

router = APIRouter(tags=["invoices"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)


@router.post(
    "/bookings/{booking_id}/rate",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def issue_rate_invoice(
    booking_id: int,
    invoice_in: RateInvoiceCreate,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    """Invoice a direct booking at the talent's hourly rate x booked hours."""
    return crud_payment.issue_invoice(
        db,
        booking_id,
        issuer_id=current_talent.id,
        method=PaymentMethod.RATE_INVOICE,
        currency=invoice_in.currency,
    )


@router.post(
    "/bookings/{booking_id}/manual",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def issue_manual_invoice(
    booking_id: int,
    invoice_in: ManualInvoiceCreate,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    """Invoice a claimed gig for a price agreed with the booker."""
    return crud_payment.issue_invoice(
        db,
        booking_id,
        issuer_id=current_talent.id,
        method=PaymentMethod.MANUAL_INVOICE,
        amount=invoice_in.amount,
        currency=invoice_in.currency,
    )


@router.post(
    "/applications/{application_id}",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
def issue_application_invoice(
    application_id: int,
    invoice_in: ManualInvoiceCreate,
    db: Session = Depends(get_db),
    current_talent: User = Depends(get_current_talent),
) -> Any:
    return crud_payment.issue_invoice_for_application(
        db,
        application_id,
        issuer_id=current_talent.id,
        amount=invoice_in.amount,
        currency=invoice_in.currency,
    )


@router.post("/bookings/{booking_id}/decline", response_model=PaymentRead)
def decline_invoice(
    booking_id: int,
    db: Session = Depends(get_db),
    current_booker: User = Depends(get_current_booker),
) -> Any:
    """Decline the outstanding invoice; the talent may send a new one."""
    return crud_payment.decline_invoice(db, booking_id, current_booker.id)
