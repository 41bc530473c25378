from __future__ import annotations

from flask import Blueprint, jsonify, request

from storefront.auth import optional_user
from storefront.blueprints.common import json_body, runtime
from storefront.database import get_db
from storefront.services.checkout_service import CheckoutService

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")

SIGNATURE_HEADER = "Stripe-Signature"


def _checkout_service() -> CheckoutService:
    services = runtime()
    return CheckoutService(get_db(), services.payments, services.config, notifier=services.notifier)


@checkout_bp.route("/create-payment-intent", methods=["POST"])
def create_payment_intent():
    payload = json_body()
    user = optional_user()
    result = _checkout_service().create_payment_intent(
        payload.get("anonymousId"),
        shipping=payload.get("shipping"),
        user_id=user.get("id") if user else None,
    )
    return jsonify(result)


@checkout_bp.route("/webhook", methods=["POST"])
def webhook():
    # The signature covers the exact bytes received
    raw_body = request.get_data(cache=False)
    result = _checkout_service().handle_webhook(raw_body, request.headers.get(SIGNATURE_HEADER))
    return jsonify(result)


@checkout_bp.route("/orders/<payment_intent_id>", methods=["GET"])
def order_status(payment_intent_id: str):
    return jsonify(_checkout_service().order_status(payment_intent_id))
