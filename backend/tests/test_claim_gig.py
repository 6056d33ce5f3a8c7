import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from qtalent import crud
from qtalent.crud.crud_booking import ClaimResult
from qtalent.database import configure_sqlite_engine
from qtalent.models import (
    Booking,
    BookingStatus,
    Notification,
    NotificationType,
    User,
    UserType,
)
from qtalent.models.base import BaseModel
from qtalent.utils.errors import InvalidTransition, NotFound


def test_claim_open_gig(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)

    assert crud.booking.claim_gig(db, gig.id, talent.id) == ClaimResult.CLAIMED

    db.expire_all()
    gig = crud.booking.get_booking(db, gig.id)
    assert gig.talent_id == talent.id
    assert gig.status == BookingStatus.PENDING
    note = db.query(Notification).filter(Notification.user_id == booker.id).one()
    assert note.type == NotificationType.GIG_CLAIMED


def test_second_claim_loses(db, make_user, make_booking):
    booker = make_user()
    first = make_user(UserType.TALENT)
    second = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)

    assert crud.booking.claim_gig(db, gig.id, first.id) == ClaimResult.CLAIMED
    assert crud.booking.claim_gig(db, gig.id, second.id) == ClaimResult.ALREADY_CLAIMED

    db.expire_all()
    assert crud.booking.get_booking(db, gig.id).talent_id == first.id


def test_claim_unknown_gig(db, make_user):
    talent = make_user(UserType.TALENT)
    with pytest.raises(NotFound):
        crud.booking.claim_gig(db, 9999, talent.id)


def test_direct_booking_cannot_be_claimed(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    other = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)

    assert crud.booking.claim_gig(db, booking.id, other.id) == ClaimResult.ALREADY_CLAIMED
    db.expire_all()
    assert crud.booking.get_booking(db, booking.id).talent_id == talent.id


def test_declined_gig_cannot_be_claimed(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)
    crud.booking.decline_gig(db, gig.id, booker.id)

    assert crud.booking.claim_gig(db, gig.id, talent.id) == ClaimResult.ALREADY_CLAIMED


def test_release_returns_gig_to_pool(db, make_user, make_booking):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    other = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)
    crud.booking.claim_gig(db, gig.id, talent.id)

    with pytest.raises(InvalidTransition):
        crud.booking.release_gig(db, gig.id, other.id)

    released = crud.booking.release_gig(db, gig.id, talent.id)
    assert released.talent_id is None
    assert crud.booking.claim_gig(db, gig.id, other.id) == ClaimResult.CLAIMED


def test_concurrent_claims_have_one_winner(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'claims.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    configure_sqlite_engine(engine)
    BaseModel.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, autoflush=False)

    with Session() as db:
        booker = User(email="poster@test.com", first_name="P", last_name="B", user_type=UserType.BOOKER)
        talents = [
            User(email=f"t{i}@test.com", first_name="T", last_name=str(i), user_type=UserType.TALENT)
            for i in range(8)
        ]
        db.add_all([booker, *talents])
        db.flush()
        gig = Booking(
            requester_id=booker.id,
            is_gig_opportunity=True,
            is_public_request=True,
            event_date=date.today() + timedelta(days=7),
            duration_hours=Decimal("2"),
            event_location="Durban",
            event_type="Corporate",
        )
        db.add(gig)
        db.commit()
        gig_id = gig.id
        talent_ids = [t.id for t in talents]

    barrier = threading.Barrier(len(talent_ids))
    results: dict[int, ClaimResult] = {}
    errors: list[Exception] = []

    def claim(talent_id: int) -> None:
        with Session() as session:
            barrier.wait()
            try:
                results[talent_id] = crud.booking.claim_gig(session, gig_id, talent_id)
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=claim, args=(tid,)) for tid in talent_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert not errors
    winners = [tid for tid, r in results.items() if r == ClaimResult.CLAIMED]
    assert len(winners) == 1
    assert sum(1 for r in results.values() if r == ClaimResult.ALREADY_CLAIMED) == len(talent_ids) - 1

    with Session() as db:
        assert db.get(Booking, gig_id).talent_id == winners[0]
    engine.dispose()


def test_claim_endpoint(client, db, make_user, make_booking, auth_headers):
    booker = make_user()
    first = make_user(UserType.TALENT)
    second = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)

    res = client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(first))
    assert res.status_code == 200
    assert res.json() == {"gig_id": gig.id, "result": "claimed"}

    res = client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(second))
    assert res.status_code == 409
    assert res.json()["detail"]["field_errors"] == {"gig_id": "unavailable"}

    res = client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(booker))
    assert res.status_code == 403
