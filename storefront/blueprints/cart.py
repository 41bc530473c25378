from __future__ import annotations

from flask import Blueprint, jsonify, request

from storefront.blueprints.common import json_body, runtime
from storefront.database import get_db
from storefront.services.cart_service import CartService

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _cart_service() -> CartService:
    return CartService(get_db(), runtime().identity)


@cart_bp.route("", methods=["GET"])
def get_cart():
    return jsonify(_cart_service().get_cart(request.args.get("anonymousId")))


@cart_bp.route("/items/<item_id>", methods=["PATCH"])
def update_item(item_id: str):
    payload = json_body()
    return jsonify(_cart_service().update_item(item_id, payload.get("quantity")))


@cart_bp.route("/items/<item_id>", methods=["DELETE"])
def remove_item(item_id: str):
    return jsonify(_cart_service().remove_item(item_id))


@cart_bp.route("/merge", methods=["POST"])
def merge_carts():
    payload = json_body()
    return jsonify(_cart_service().merge(payload.get("anonymousId"), payload.get("accessToken")))
