from __future__ import annotations

from datetime import date, datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..crud import crud_payment
from ..crud.crud_booking import booking as crud_booking
from ..database import SessionLocal

logger = logging.getLogger(__name__)


def handle_auto_completion(db: Session, today: Optional[date] = None) -> dict:
    """Mark confirmed bookings whose event date has passed as completed."""
    completed = crud_booking.complete_past_bookings(db, today=today)
    return {"bookings_completed": completed}


def handle_stale_payments(db: Session, now: Optional[datetime] = None) -> dict:
    """Decline invoices that stayed pending past PAYMENT_PENDING_TTL_HOURS."""
    expired = crud_payment.expire_stale_payments(db, now=now)
    return {"payments_expired": expired}


def run_maintenance() -> dict:
    """Run all operational maintenance tasks once and return a summary.

    Each task gets its own short-lived DB session so a connection (and, on
    SQLite, the write lock) is never held for the whole cycle.
    """
    with SessionLocal() as db:
        auto = handle_auto_completion(db)

    with SessionLocal() as db:
        stale = handle_stale_payments(db)

    return {**auto, **stale}
