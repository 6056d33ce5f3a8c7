from .crud_user import user
from .crud_booking import booking, ClaimResult
from . import crud_payment
from . import crud_notification

# Usage: ``crud.booking.claim_gig(db, ...)``, ``crud.crud_payment.settle_payment(db, ...)``
