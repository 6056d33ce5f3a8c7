import asyncio
import json
from decimal import Decimal

import fakeredis
from fakeredis import aioredis as fake_aioredis
import pytest

from qtalent.core.config import settings
from qtalent.crud import crud_notification, crud_payment
from qtalent.models import Notification, NotificationType, PaymentMethod, UserType
from qtalent.realtime import bus
from qtalent.services import redis_client
from qtalent.utils import notifications


def test_dedupe_key_suppresses_repeat(db, make_user):
    user = make_user()
    first = crud_notification.create_notification(
        db, user.id, NotificationType.PAYMENT_FAILED, "Payment failed", "x", dedupe_key="payment_failed:evt_1"
    )
    second = crud_notification.create_notification(
        db, user.id, NotificationType.PAYMENT_FAILED, "Payment failed", "x", dedupe_key="payment_failed:evt_1"
    )
    assert first is not None
    assert second is None
    assert db.query(Notification).filter(Notification.user_id == user.id).count() == 1


def test_same_key_for_different_users(db, make_user):
    a = make_user()
    b = make_user()
    for user in (a, b):
        assert crud_notification.create_notification(
            db, user.id, NotificationType.PAYMENT_COMPLETED, "Paid", "x", dedupe_key="payment_completed:1"
        ) is not None


def test_notify_helpers_never_raise(db, make_user, make_booking, monkeypatch):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)

    def boom(*args, **kwargs):
        raise RuntimeError("broken channel")

    monkeypatch.setattr(notifications, "_create_and_broadcast", boom)
    # Invoice issuance still succeeds with every notification failing
    payment = crud_payment.issue_invoice(
        db, booking.id, talent.id, PaymentMethod.MANUAL_INVOICE, amount=Decimal("10")
    )
    notifications.notify_payment_completed(db, payment)
    notifications.notify_booking_declined(db, booking, booker.id)
    assert db.query(Notification).count() == 0


def test_broadcast_failure_keeps_stored_notification(db, make_user, monkeypatch):
    user = make_user()

    def boom(*args, **kwargs):
        raise RuntimeError("redis down")

    monkeypatch.setattr(notifications, "_safe_publish", boom)
    notifications.notify_payment_failed(db, user.id, booking_id=None, reason="card", dedupe_key="k1")
    assert db.query(Notification).filter(Notification.user_id == user.id).count() == 1


def test_email_queued_when_enabled(db, make_user, monkeypatch):
    user = make_user()
    queued = []
    monkeypatch.setattr(settings, "EMAIL_ENABLED", True)
    monkeypatch.setattr(
        notifications.background_worker,
        "enqueue",
        lambda func, *args, **kwargs: queued.append(args),
    )

    notifications.notify_subscription_changed(db, user.id, True, dedupe_key="sub:1")

    assert len(queued) == 1
    recipient, subject, body = queued[0]
    assert recipient == user.email
    assert subject == "Pro subscription active"
    assert "10%" in body


def test_publish_to_user_topic(monkeypatch):
    monkeypatch.setattr(settings, "REALTIME_BUS_ENABLED", True)

    async def scenario():
        fake = fake_aioredis.FakeRedis(decode_responses=True)
        monkeypatch.setattr(redis_client, "redis", fake)
        pubsub = fake.pubsub()
        await pubsub.subscribe("ws-topic:notifications:7")
        await bus.publish_topic(bus.user_topic(7), {"type": "notification", "payload": {"id": 1}})
        message = None
        for _ in range(20):
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
            if message:
                break
        await pubsub.aclose()
        return message

    message = asyncio.run(scenario())
    assert message is not None
    envelope = json.loads(message["data"])
    assert envelope["topic"] == "notifications:7"
    assert envelope["v"] == 1
    assert envelope["payload"] == {"id": 1}


def test_publish_is_noop_when_bus_disabled(monkeypatch):
    monkeypatch.setattr(settings, "REALTIME_BUS_ENABLED", False)
    assert bus.bus_enabled() is False
    asyncio.run(bus.publish_topic("notifications:1", {"type": "ping"}))


def test_notification_endpoints(client, db, make_user, auth_headers):
    user = make_user()
    other = make_user()
    note = crud_notification.create_notification(
        db, user.id, NotificationType.INVOICE_RECEIVED, "New invoice", "Invoice for booking #1"
    )

    res = client.get("/api/v1/notifications/", headers=auth_headers(user))
    assert res.status_code == 200
    assert [n["id"] for n in res.json()] == [note.id]
    assert res.json()[0]["type"] == "invoice_received"

    res = client.put(f"/api/v1/notifications/{note.id}/read", headers=auth_headers(other))
    assert res.status_code == 404

    res = client.put(f"/api/v1/notifications/{note.id}/read", headers=auth_headers(user))
    assert res.status_code == 200
    assert res.json()["is_read"] is True

    assert client.get("/api/v1/notifications/").status_code == 401


def test_repeated_publishes_from_worker_threads(db, make_user, monkeypatch):
    user = make_user()
    monkeypatch.setattr(settings, "REALTIME_BUS_ENABLED", True)
    fake = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_client, "sync_redis", fake)
    pubsub = fake.pubsub()
    pubsub.subscribe(f"ws-topic:notifications:{user.id}")
    pubsub.get_message(timeout=0.1)

    # No running loop here, same as the threadpool that serves sync endpoints
    notifications.notify_payment_failed(db, user.id, booking_id=None, reason="card", dedupe_key="evt_a")
    notifications.notify_payment_failed(db, user.id, booking_id=None, reason="card", dedupe_key="evt_b")

    received = []
    for _ in range(20):
        message = pubsub.get_message(ignore_subscribe_messages=True, timeout=0.1)
        if message:
            received.append(json.loads(message["data"]))
        if len(received) == 2:
            break
    pubsub.close()

    assert len(received) == 2
    assert all(env["topic"] == f"notifications:{user.id}" for env in received)
