from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from qtalent.core.config import settings
from qtalent.crud import crud_payment
from qtalent.models import PaymentMethod, PaymentStatus, UserType
from qtalent.services import checkout


def _invoice(db, make_user, make_booking, amount=Decimal("150")):
    booker = make_user()
    talent = make_user(UserType.TALENT)
    booking = make_booking(booker, talent)
    payment = crud_payment.issue_invoice(db, booking.id, talent.id, PaymentMethod.MANUAL_INVOICE, amount=amount)
    return booker, talent, payment


def test_minor_units():
    assert checkout.to_minor_units(Decimal("150.00"), "USD") == 15000
    assert checkout.to_minor_units(Decimal("19.99"), "zar") == 1999
    assert checkout.to_minor_units(Decimal("1500"), "JPY") == 1500


def test_session_params_carry_payment_id():
    payment = SimpleNamespace(id=5, booking_id=9, currency="USD", total_amount=Decimal("150.00"))
    params = checkout.build_session_params(payment, now=1_000)

    assert params["metadata[payment_id]"] == "5"
    assert params["payment_intent_data[metadata][payment_id]"] == "5"
    assert params["line_items[0][price_data][unit_amount]"] == "15000"
    assert params["line_items[0][price_data][currency]"] == "usd"
    assert params["expires_at"] == str(1_000 + settings.CHECKOUT_SESSION_TTL_MINUTES * 60)
    assert params["success_url"].endswith("session_id={CHECKOUT_SESSION_ID}")


def test_create_checkout_session_posts_to_stripe(db, make_user, make_booking, monkeypatch):
    _, _, payment = _invoice(db, make_user, make_booking)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_1")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"id": "cs_test_9", "url": "https://checkout.stripe.com/c/cs_test_9"})

    real_client = httpx.Client
    monkeypatch.setattr(
        checkout.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    assert checkout.create_checkout_session(payment) == ("cs_test_9", "https://checkout.stripe.com/c/cs_test_9")
    assert seen["url"].endswith("/v1/checkout/sessions")
    assert seen["auth"] == "Bearer sk_test_1"
    assert f"metadata%5Bpayment_id%5D={payment.id}" in seen["body"]


def test_create_checkout_session_errors(db, make_user, make_booking, monkeypatch):
    _, _, payment = _invoice(db, make_user, make_booking)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    with pytest.raises(checkout.CheckoutError):
        checkout.create_checkout_session(payment)

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_1")
    real_client = httpx.Client
    monkeypatch.setattr(
        checkout.httpx,
        "Client",
        lambda **kwargs: real_client(
            transport=httpx.MockTransport(lambda request: httpx.Response(400, json={"error": {}})),
            **kwargs,
        ),
    )
    with pytest.raises(checkout.CheckoutError):
        checkout.create_checkout_session(payment)


def test_read_payment_visibility(client, db, make_user, make_booking, auth_headers):
    booker, talent, payment = _invoice(db, make_user, make_booking)
    stranger = make_user()

    res = client.get(f"/api/v1/payments/{payment.id}", headers=auth_headers(talent))
    assert res.status_code == 200
    assert res.json()["payment_status"] == "pending"
    assert client.get(f"/api/v1/payments/{payment.id}", headers=auth_headers(booker)).status_code == 200
    assert client.get(f"/api/v1/payments/{payment.id}", headers=auth_headers(stranger)).status_code == 403
    assert client.get("/api/v1/payments/999", headers=auth_headers(booker)).status_code == 404


def test_checkout_endpoint(client, db, make_user, make_booking, auth_headers, monkeypatch):
    booker, talent, payment = _invoice(db, make_user, make_booking)
    monkeypatch.setattr(
        checkout,
        "create_checkout_session",
        lambda p: ("cs_test_5", "https://checkout.stripe.com/c/cs_test_5"),
    )

    res = client.post(f"/api/v1/payments/{payment.id}/checkout", headers=auth_headers(booker))
    assert res.status_code == 200
    assert res.json() == {
        "payment_id": payment.id,
        "session_id": "cs_test_5",
        "checkout_url": "https://checkout.stripe.com/c/cs_test_5",
    }
    db.expire_all()
    stored = crud_payment.get_payment(db, payment.id)
    assert stored.checkout_session_id == "cs_test_5"
    # Opening a checkout never settles anything
    assert stored.payment_status == PaymentStatus.PENDING

    res = client.post(f"/api/v1/payments/{payment.id}/checkout", headers=auth_headers(talent))
    assert res.status_code == 403


def test_checkout_endpoint_provider_failure(client, db, make_user, make_booking, auth_headers, monkeypatch):
    booker, _, payment = _invoice(db, make_user, make_booking)
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")

    res = client.post(f"/api/v1/payments/{payment.id}/checkout", headers=auth_headers(booker))
    assert res.status_code == 502
    assert res.json()["detail"]["message"] == "Stripe is not configured"


def test_checkout_rejects_settled_payment(client, db, make_user, make_booking, auth_headers):
    booker, _, payment = _invoice(db, make_user, make_booking)
    crud_payment.settle_payment(db, payment.id)

    res = client.post(f"/api/v1/payments/{payment.id}/checkout", headers=auth_headers(booker))
    assert res.status_code == 409
