from datetime import date, timedelta

from qtalent import crud
from qtalent.models import (
    BookingStatus,
    GigApplicationStatus,
    Notification,
    NotificationType,
    UserType,
)


def _booking_payload(**overrides):
    payload = {
        "event_date": (date.today() + timedelta(days=30)).isoformat(),
        "duration_hours": "3",
        "event_location": "Johannesburg",
        "event_type": "Birthday",
    }
    payload.update(overrides)
    return payload


def test_create_direct_booking(client, make_user, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)

    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(talent_id=talent.id),
        headers=auth_headers(booker),
    )
    assert res.status_code == 201
    body = res.json()
    assert body["status"] == "pending"
    assert body["talent_id"] == talent.id
    assert body["requester_id"] == booker.id
    assert body["is_gig_opportunity"] is False


def test_create_gig_posting(client, make_user, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)

    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(is_gig_opportunity=True, is_public_request=True, budget="500", budget_currency="zar"),
        headers=auth_headers(booker),
    )
    assert res.status_code == 201
    gig = res.json()
    assert gig["talent_id"] is None
    assert gig["budget_currency"] == "ZAR"

    res = client.get("/api/v1/bookings/gigs/open", headers=auth_headers(talent))
    assert [g["id"] for g in res.json()] == [gig["id"]]


def test_create_booking_validation(client, make_user, auth_headers):
    booker = make_user()
    other_booker = make_user()
    talent = make_user(UserType.TALENT)

    # Gig postings cannot name a talent
    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(talent_id=talent.id, is_gig_opportunity=True, is_public_request=True),
        headers=auth_headers(booker),
    )
    assert res.status_code == 422

    # Direct bookings must
    res = client.post("/api/v1/bookings/", json=_booking_payload(), headers=auth_headers(booker))
    assert res.status_code == 422

    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(talent_id=other_booker.id),
        headers=auth_headers(booker),
    )
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"talent_id": "No talent with this id."}

    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(talent_id=talent.id, duration_hours="0"),
        headers=auth_headers(booker),
    )
    assert res.status_code == 422

    res = client.post(
        "/api/v1/bookings/",
        json=_booking_payload(talent_id=talent.id),
        headers=auth_headers(talent),
    )
    assert res.status_code == 403


def test_booking_visibility(client, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    stranger = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)
    gig = make_booking(booker, gig=True)

    assert client.get(f"/api/v1/bookings/{booking.id}", headers=auth_headers(talent)).status_code == 200
    assert client.get(f"/api/v1/bookings/{booking.id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get(f"/api/v1/bookings/{gig.id}", headers=auth_headers(stranger)).status_code == 200
    assert client.get("/api/v1/bookings/9999", headers=auth_headers(talent)).status_code == 404

    res = client.get("/api/v1/bookings/", headers=auth_headers(booker))
    assert {b["id"] for b in res.json()} == {booking.id, gig.id}


def test_talent_declines_direct_booking(client, db, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)

    res = client.post(f"/api/v1/bookings/{booking.id}/decline", headers=auth_headers(talent))
    assert res.status_code == 200
    assert res.json()["status"] == "declined"

    # Declining again is a no-op
    res = client.post(f"/api/v1/bookings/{booking.id}/decline", headers=auth_headers(talent))
    assert res.status_code == 200
    assert res.json()["status"] == "declined"

    notes = (
        db.query(Notification)
        .filter(Notification.user_id == booker.id, Notification.type == NotificationType.BOOKING_DECLINED)
        .all()
    )
    assert len(notes) == 1


def test_decline_requires_party(client, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    stranger = make_user()
    booking = make_booking(booker, talent)

    res = client.post(f"/api/v1/bookings/{booking.id}/decline", headers=auth_headers(stranger))
    assert res.status_code == 403


def test_confirmed_booking_cannot_be_declined(client, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent, status=BookingStatus.CONFIRMED)

    res = client.post(f"/api/v1/bookings/{booking.id}/decline", headers=auth_headers(booker))
    assert res.status_code == 409


def test_poster_closes_gig(client, db, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)
    client.post(f"/api/v1/bookings/{gig.id}/applications", headers=auth_headers(talent))

    res = client.post(f"/api/v1/bookings/{gig.id}/decline", headers=auth_headers(booker))
    assert res.status_code == 200
    assert res.json()["status"] == "declined"

    db.expire_all()
    assert crud.booking.get_application(db, gig.id, talent.id).status == GigApplicationStatus.DECLINED
    res = client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(talent))
    assert res.status_code == 409


def test_apply_to_gig_is_idempotent(client, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)
    direct = make_booking(booker, talent)

    first = client.post(f"/api/v1/bookings/{gig.id}/applications", headers=auth_headers(talent))
    second = client.post(f"/api/v1/bookings/{gig.id}/applications", headers=auth_headers(talent))
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert first.json()["status"] == "interested"

    res = client.get(f"/api/v1/bookings/{gig.id}/applications", headers=auth_headers(booker))
    assert [a["talent_id"] for a in res.json()] == [talent.id]
    res = client.get(f"/api/v1/bookings/{gig.id}/applications", headers=auth_headers(talent))
    assert res.status_code == 403

    res = client.post(f"/api/v1/bookings/{direct.id}/applications", headers=auth_headers(talent))
    assert res.status_code == 404


def test_release_claimed_gig(client, db, make_user, make_booking, auth_headers):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    other = make_user(UserType.TALENT)
    gig = make_booking(booker, gig=True)
    client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(talent))

    res = client.post(f"/api/v1/bookings/{gig.id}/release", headers=auth_headers(other))
    assert res.status_code == 409

    res = client.post(f"/api/v1/bookings/{gig.id}/release", headers=auth_headers(talent))
    assert res.status_code == 200
    assert res.json()["talent_id"] is None

    res = client.post(f"/api/v1/bookings/{gig.id}/claim", headers=auth_headers(other))
    assert res.json()["result"] == "claimed"


def test_unauthenticated_requests_rejected(client):
    assert client.get("/api/v1/bookings/").status_code == 401
    res = client.get("/api/v1/bookings/", headers={"Authorization": "Bearer not-a-token"})
    assert res.status_code == 401
