from __future__ import annotations

from flask import Blueprint, g, jsonify

from storefront.auth import require_user
from storefront.blueprints.common import json_body
from storefront.database import get_db
from storefront.services.account_service import AccountService

account_bp = Blueprint("account", __name__, url_prefix="/api/account")


def _account_service() -> AccountService:
    return AccountService(get_db(), g.current_user_id)


@account_bp.route("/profile", methods=["GET"])
@require_user
def get_profile():
    return jsonify(_account_service().get_profile())


@account_bp.route("/profile", methods=["PATCH"])
@require_user
def update_profile():
    return jsonify(_account_service().update_profile(json_body()))


@account_bp.route("/orders", methods=["GET"])
@require_user
def list_orders():
    return jsonify(_account_service().list_orders())


@account_bp.route("/wishlist", methods=["GET"])
@require_user
def list_wishlist():
    return jsonify(_account_service().list_wishlist())


@account_bp.route("/wishlist", methods=["POST"])
@require_user
def add_to_wishlist():
    payload = json_body()
    return jsonify(_account_service().add_to_wishlist(payload.get("productId"))), 201


@account_bp.route("/wishlist/<product_id>", methods=["DELETE"])
@require_user
def remove_from_wishlist(product_id: str):
    return jsonify(_account_service().remove_from_wishlist(product_id))
