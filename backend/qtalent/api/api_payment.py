import logging
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..crud import crud_payment
from ..models import PaymentStatus, User
from ..schemas.payment import CheckoutSessionResponse, PaymentRead
from ..services import checkout
from ..utils import error_response
from ..utils.errors import InvalidTransition, NotFound, PermissionDenied
from .dependencies import get_current_booker, get_current_user, get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"], default_response_class=ORJSONResponse)


@router.get("/{payment_id}", response_model=PaymentRead)
def read_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    payment = crud_payment.get_payment(db, payment_id)
    if payment is None:
        raise NotFound("Payment not found", {"payment_id": "not found"})
    if current_user.id not in (payment.booker_id, payment.talent_id):
        raise PermissionDenied("Not authorized to view this payment")
    return payment


@router.post("/{payment_id}/checkout", response_model=CheckoutSessionResponse)
def create_checkout(
    payment_id: int,
    db: Session = Depends(get_db),
    current_booker: User = Depends(get_current_booker),
) -> Any:
    """Open a Stripe Checkout Session for a pending invoice.

    The payment is only settled by the signed webhook; this endpoint never
    changes its status.
    """
    payment = crud_payment.get_payment(db, payment_id)
    if payment is None:
        raise NotFound("Payment not found", {"payment_id": "not found"})
    if payment.booker_id != current_booker.id:
        raise PermissionDenied("Not authorized to pay this invoice")
    if payment.payment_status != PaymentStatus.PENDING:
        raise InvalidTransition(
            "Payment is not pending",
            {"payment_id": f"status is {PaymentStatus(payment.payment_status).value}"},
        )
    try:
        session_id, url = checkout.create_checkout_session(payment)
    except checkout.CheckoutError as exc:
        raise error_response(str(exc), {}, 502)
    crud_payment.attach_checkout_session(db, payment, session_id)
    return CheckoutSessionResponse(payment_id=payment.id, session_id=session_id, checkout_url=url)
