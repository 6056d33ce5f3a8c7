import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from qtalent import crud
from qtalent.crud import crud_payment
from qtalent.models import (
    BookingStatus,
    Notification,
    NotificationType,
    PaymentMethod,
    PaymentStatus,
    UserType,
)
from qtalent.services import ops_scheduler
from qtalent.utils.errors import InvalidTransition


def test_auto_completion_moves_past_confirmed_bookings(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    yesterday = date.today() - timedelta(days=1)
    past = make_booking(booker, talent, status=BookingStatus.CONFIRMED, event_date=yesterday)
    future = make_booking(booker, talent, status=BookingStatus.CONFIRMED)
    unpaid = make_booking(booker, talent, status=BookingStatus.APPROVED, event_date=yesterday)
    today_event = make_booking(booker, talent, status=BookingStatus.CONFIRMED, event_date=date.today())

    assert ops_scheduler.handle_auto_completion(db) == {"bookings_completed": 1}

    db.expire_all()
    assert crud.booking.get_booking(db, past.id).status == BookingStatus.COMPLETED
    assert crud.booking.get_booking(db, future.id).status == BookingStatus.CONFIRMED
    assert crud.booking.get_booking(db, unpaid.id).status == BookingStatus.APPROVED
    assert crud.booking.get_booking(db, today_event.id).status == BookingStatus.CONFIRMED
    notes = (
        db.query(Notification)
        .filter(Notification.user_id == talent.id, Notification.type == NotificationType.BOOKING_COMPLETED)
        .all()
    )
    assert [n.booking_id for n in notes] == [past.id]

    # Second sweep finds nothing left to do
    assert ops_scheduler.handle_auto_completion(db) == {"bookings_completed": 0}


def test_auto_completion_with_explicit_today(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent, status=BookingStatus.CONFIRMED)

    later = booking.event_date + timedelta(days=1)
    assert crud.booking.complete_past_bookings(db, today=later) == 1


def test_stale_payments_expire(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)
    payment = crud_payment.issue_invoice(db, booking.id, talent.id, PaymentMethod.MANUAL_INVOICE, amount=Decimal("90"))
    payment.created_at = datetime.utcnow() - timedelta(hours=49)
    db.commit()

    fresh_booking = make_booking(booker, talent)
    fresh = crud_payment.issue_invoice(db, fresh_booking.id, talent.id, PaymentMethod.MANUAL_INVOICE, amount=Decimal("90"))

    assert ops_scheduler.handle_stale_payments(db) == {"payments_expired": 1}

    db.expire_all()
    expired = crud_payment.get_payment(db, payment.id)
    assert expired.payment_status == PaymentStatus.DECLINED
    assert expired.declined_reason == "expired"
    assert crud_payment.get_payment(db, fresh.id).payment_status == PaymentStatus.PENDING
    assert crud.booking.get_booking(db, booking.id).status == BookingStatus.APPROVED
    for user in (booker, talent):
        assert (
            db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.type == NotificationType.PAYMENT_EXPIRED)
            .count()
            == 1
        )

    # A late checkout for the expired invoice cannot settle it
    with pytest.raises(InvalidTransition):
        crud_payment.settle_payment(db, payment.id)


def test_run_maintenance_uses_own_sessions(Session, db, make_user, make_booking, monkeypatch):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    make_booking(
        booker,
        talent,
        status=BookingStatus.CONFIRMED,
        event_date=date.today() - timedelta(days=3),
    )
    monkeypatch.setattr(ops_scheduler, "SessionLocal", Session)

    assert ops_scheduler.run_maintenance() == {"bookings_completed": 1, "payments_expired": 0}


def test_maintenance_task_is_kept_and_cancelled_on_shutdown(monkeypatch):
    from qtalent import main
    from qtalent.core.config import settings

    monkeypatch.setenv("PYTEST_RUN", "0")
    monkeypatch.setattr(settings, "MAINTENANCE_ENABLED", True)
    monkeypatch.setattr(settings, "MAINTENANCE_INTERVAL_SECONDS", 3600)

    async def scenario():
        await main.start_background_tasks()
        task = main.app.state.maintenance_task
        await asyncio.sleep(0)
        assert not task.done()
        await main.stop_background_tasks()
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    assert main.app.state.maintenance_task is None
