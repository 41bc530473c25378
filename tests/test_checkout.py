import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

from storefront.gateways import PaymentGateway
from storefront.models import Cart, Order, OrderItem, OrderStatus
from storefront.observability.metrics import registry
from storefront.errors import GatewayError, WebhookSignatureError

WEBHOOK_SECRET = "whsec_test"

SHIPPING = {
    "name": "Ada Lovelace",
    "email": "ada@example.com",
    "line1": "1 Analytical Way",
    "city": "London",
    "postal_code": "N1",
}


def _add(client, variant, quantity=1, anonymous_id="anon_checkout"):
    response = client.post(
        "/api/products/cart/items",
        json={"variantId": variant.id, "quantity": quantity, "anonymousId": anonymous_id},
    )
    assert response.status_code == 201
    return response.get_json()


def _signature(payload, secret, timestamp=None):
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _webhook(client, event, secret=WEBHOOK_SECRET):
    payload = json.dumps(event).encode("utf-8")
    headers = {"Stripe-Signature": _signature(payload, secret)} if secret else {}
    return client.post("/api/checkout/webhook", data=payload, headers=headers, content_type="application/json")


def _succeeded(intent_id):
    return {"type": "payment_intent.succeeded", "data": {"object": {"id": intent_id}}}


def test_create_payment_intent_snapshots_cart(client, db_session, payments, sample_catalog):
    _add(client, sample_catalog["variants"][("Black", "M")], quantity=2)
    _add(client, sample_catalog["variants"][("White", "M")])

    response = client.post(
        "/api/checkout/create-payment-intent", json={"anonymousId": "anon_checkout", "shipping": SHIPPING}
    )

    assert response.status_code == 200
    body = response.get_json()
    assert body["totalCents"] == 5800
    assert body["clientSecret"] == "pi_test_1_secret"
    assert payments.created[0]["amount"] == 5800
    assert payments.created[0]["metadata"] == {"cartId": body["cartId"], "anonymousId": "anon_checkout"}
    assert payments.created[0]["receipt_email"] == "ada@example.com"

    order = db_session.query(Order).one()
    assert order.status == OrderStatus.PENDING
    assert order.stripe_payment_intent_id == "pi_test_1"
    assert order.shipping_city == "London"
    assert order.shipping_country == "US"
    assert sorted(item.price_cents for item in order.items) == [1800, 2000]


def test_create_payment_intent_is_idempotent_per_cart(client, db_session, payments, sample_catalog):
    black = sample_catalog["variants"][("Black", "M")]
    added = _add(client, black)
    payload = {"anonymousId": "anon_checkout", "shipping": SHIPPING}

    first = client.post("/api/checkout/create-payment-intent", json=payload).get_json()
    client.patch(f"/api/cart/items/{added['cartItem']['id']}", json={"quantity": 3})
    second = client.post("/api/checkout/create-payment-intent", json=payload).get_json()

    assert first["clientSecret"] == second["clientSecret"]
    assert second["totalCents"] == 6000
    assert len(payments.created) == 1
    assert payments.updated == [{"id": "pi_test_1", "amount": 6000}]

    db_session.expire_all()
    order = db_session.query(Order).one()
    assert order.subtotal_cents == 6000
    items = db_session.query(OrderItem).filter_by(order_id=order.id).all()
    assert [(item.quantity, item.price_cents) for item in items] == [(3, 2000)]


def test_create_payment_intent_records_signed_in_user(client, db_session, user_headers, sample_catalog):
    _add(client, sample_catalog["variants"][("Black", "M")])

    client.post(
        "/api/checkout/create-payment-intent",
        json={"anonymousId": "anon_checkout"},
        headers=user_headers,
    )

    assert db_session.query(Order).one().user_id == "user-1"


def test_create_payment_intent_errors(client, db_session, sample_catalog):
    missing_id = client.post("/api/checkout/create-payment-intent", json={})
    assert missing_id.status_code == 400
    assert missing_id.get_json() == {"error": "anonymousId is required"}

    no_cart = client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_ghost"})
    assert no_cart.status_code == 404
    assert no_cart.get_json() == {"error": "Cart not found"}

    db_session.add(Cart(anonymous_id="anon_empty"))
    db_session.commit()
    empty = client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_empty"})
    assert empty.status_code == 400
    assert empty.get_json() == {"error": "Cart is empty"}


def test_create_payment_intent_below_minimum(client, db_session, sample_catalog):
    variant = sample_catalog["variants"][("White", "M")]
    variant.price_cents = 25
    db_session.commit()
    _add(client, variant)

    response = client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_checkout"})

    assert response.status_code == 400
    assert "below the minimum" in response.get_json()["error"]


def test_create_payment_intent_without_payment_provider(client, payments, sample_catalog):
    payments.configured = False
    _add(client, sample_catalog["variants"][("Black", "M")])

    response = client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_checkout"})

    assert response.status_code == 500
    assert response.get_json() == {"error": "Stripe is not configured on the server."}


def test_signed_webhook_marks_order_paid_and_sends_email(client, db_session, notifier, sample_catalog):
    _add(client, sample_catalog["variants"][("Black", "M")])
    client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_checkout", "shipping": SHIPPING})

    response = _webhook(client, _succeeded("pi_test_1"))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    status = client.get("/api/checkout/orders/pi_test_1").get_json()
    assert status["status"] == "paid"
    assert status["subtotal_cents"] == 2000
    assert len(notifier.sent) == 1
    _, lines = notifier.sent[0]
    assert [(line.name, line.size, line.color, line.quantity) for line in lines] == [("Classic Tee", "M", "Black", 1)]
    assert registry.counter_value("orders_paid_total") == 1


def test_webhook_ignores_other_events_and_unknown_intents(client):
    assert _webhook(client, {"type": "charge.refunded", "data": {"object": {}}}).get_json() == {"received": True}
    assert _webhook(client, _succeeded("pi_unknown")).get_json() == {"received": True}


def test_webhook_rejects_bad_signature(client):
    response = _webhook(client, _succeeded("pi_test_1"), secret="whsec_wrong")

    assert response.status_code == 400
    assert registry.counter_value("webhook_rejected_total", labels={"reason": "signature"}) == 1

    unsigned = _webhook(client, _succeeded("pi_test_1"), secret=None)
    assert unsigned.status_code == 400


def test_webhook_without_secret_is_refused(make_app):
    client = make_app(STRIPE_WEBHOOK_SECRET="").test_client()

    response = _webhook(client, _succeeded("pi_test_1"), secret=None)

    assert response.status_code == 503
    assert response.get_json() == {"error": "Webhook signing secret is not configured"}


def test_webhook_without_secret_can_be_allowed_for_development(make_app, sample_catalog):
    client = make_app(STRIPE_WEBHOOK_SECRET="", STRIPE_WEBHOOK_ALLOW_UNVERIFIED=True).test_client()
    _add(client, sample_catalog["variants"][("Black", "M")])
    client.post("/api/checkout/create-payment-intent", json={"anonymousId": "anon_checkout"})

    response = _webhook(client, _succeeded("pi_test_1"), secret=None)

    assert response.status_code == 200
    assert client.get("/api/checkout/orders/pi_test_1").get_json()["status"] == "paid"


def test_order_status_unknown_intent(client):
    response = client.get("/api/checkout/orders/pi_missing")

    assert response.status_code == 404
    assert response.get_json() == {"error": "Order not found"}


def test_construct_event_returns_plain_event_dict():
    payload = b'{"type": "ping"}'

    assert PaymentGateway.construct_event(payload, _signature(payload, "whsec"), "whsec") == {"type": "ping"}


def test_construct_event_enforces_tolerance():
    payload = b'{"type": "ping"}'
    stale = _signature(payload, "whsec", timestamp=int(time.time()) - 1000)

    with pytest.raises(WebhookSignatureError):
        PaymentGateway.construct_event(payload, stale, "whsec", tolerance=300)


@pytest.mark.parametrize("header", [None, "", "t=abc,v1=00", "v1=deadbeef"])
def test_construct_event_rejects_missing_or_malformed_header(header):
    with pytest.raises(WebhookSignatureError):
        PaymentGateway.construct_event(b'{"type": "ping"}', header, "whsec")


def test_construct_event_rejects_non_object_payload():
    payload = b'["ping"]'

    with pytest.raises(WebhookSignatureError) as excinfo:
        PaymentGateway.construct_event(payload, _signature(payload, "whsec"), "whsec")
    assert excinfo.value.message == "Webhook payload is not an event object"


def test_payment_gateway_creates_intent_through_sdk(monkeypatch):
    calls = []

    def fake_create(**params):
        calls.append(params)
        return SimpleNamespace(id="pi_live_1", client_secret="pi_live_1_secret", amount=params["amount"])

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    gateway = PaymentGateway("sk_test_abc")

    intent = gateway.create_payment_intent(4200, "usd", metadata={"cart_id": "c1", "user_id": None}, receipt_email="a@b.test")

    assert intent == {"id": "pi_live_1", "client_secret": "pi_live_1_secret", "amount": 4200}
    assert calls[0]["api_key"] == "sk_test_abc"
    assert calls[0]["metadata"] == {"cart_id": "c1"}
    assert calls[0]["receipt_email"] == "a@b.test"
    assert calls[0]["automatic_payment_methods"] == {"enabled": True}


def test_payment_gateway_maps_sdk_errors(monkeypatch):
    def fake_modify(intent_id, **params):
        raise stripe.InvalidRequestError("No such payment_intent", param="intent", http_status=404)

    monkeypatch.setattr(stripe.PaymentIntent, "modify", fake_modify)

    with pytest.raises(GatewayError) as excinfo:
        PaymentGateway("sk_test_abc").update_payment_intent("pi_missing", 100)
    assert excinfo.value.upstream_status == 404


def test_payment_gateway_requires_secret_key():
    gateway = PaymentGateway("")

    assert gateway.configured is False
    with pytest.raises(GatewayError):
        gateway.create_payment_intent(100, "usd")
