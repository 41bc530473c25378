from __future__ import annotations

from flask import Blueprint, jsonify, request

from storefront.auth import admin_secret_matches, require_admin
from storefront.blueprints.common import json_body, runtime
from storefront.database import get_db
from storefront.errors import AuthenticationError
from storefront.observability import get_metrics_snapshot
from storefront.services.admin_service import AdminService
from storefront.services.dashboard_service import DashboardService
from storefront.services.upload_service import UploadService

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _admin_service() -> AdminService:
    services = runtime()
    return AdminService(get_db(), services.storage, services.config)


def _upload_service() -> UploadService:
    services = runtime()
    return UploadService(get_db(), services.storage, services.config)


@admin_bp.route("/verify", methods=["POST"])
def verify():
    if not admin_secret_matches(json_body().get("secret")):
        raise AuthenticationError("Invalid secret")
    return jsonify({"ok": True})


@admin_bp.route("/dashboard", methods=["GET"])
@require_admin
def dashboard():
    return jsonify(DashboardService(get_db(), runtime().config).summary())


@admin_bp.route("/metrics", methods=["GET"])
@require_admin
def metrics():
    return jsonify(get_metrics_snapshot())


# ----------------------------------------------------------------------
# Orders
# ----------------------------------------------------------------------
@admin_bp.route("/orders", methods=["GET"])
@require_admin
def list_orders():
    return jsonify(
        _admin_service().list_orders(
            status=request.args.get("status") or None,
            page=request.args.get("page", 1),
            limit=request.args.get("limit"),
        )
    )


@admin_bp.route("/orders/<order_id>", methods=["GET"])
@require_admin
def get_order(order_id: str):
    return jsonify(_admin_service().get_order(order_id))


@admin_bp.route("/orders/<order_id>/status", methods=["PATCH"])
@require_admin
def update_order_status(order_id: str):
    return jsonify(_admin_service().update_order_status(order_id, json_body().get("status")))


@admin_bp.route("/orders/<order_id>", methods=["DELETE"])
@require_admin
def delete_order(order_id: str):
    return jsonify(_admin_service().delete_order(order_id))


# ----------------------------------------------------------------------
# Products, variants and images
# ----------------------------------------------------------------------
@admin_bp.route("/products", methods=["GET"])
@require_admin
def list_products():
    return jsonify(_admin_service().list_products())


@admin_bp.route("/products", methods=["POST"])
@require_admin
def create_product():
    return jsonify(_admin_service().create_product(json_body())), 201


@admin_bp.route("/products/upload/sign", methods=["POST"])
@require_admin
def sign_product_image_upload():
    payload = json_body()
    return jsonify(
        _upload_service().sign_product_image_upload(
            payload.get("productId"), payload.get("filename"), payload.get("contentType")
        )
    )


@admin_bp.route("/products/<product_id>", methods=["GET"])
@require_admin
def get_product(product_id: str):
    return jsonify(_admin_service().get_product(product_id))


@admin_bp.route("/products/<product_id>", methods=["PATCH"])
@require_admin
def update_product(product_id: str):
    return jsonify(_admin_service().update_product(product_id, json_body()))


@admin_bp.route("/products/<product_id>", methods=["DELETE"])
@require_admin
def delete_product(product_id: str):
    return jsonify(_admin_service().delete_product(product_id))


@admin_bp.route("/products/<product_id>/variants/bulk", methods=["POST"])
@require_admin
def bulk_create_variants(product_id: str):
    return jsonify(_admin_service().bulk_create_variants(product_id, json_body())), 201


@admin_bp.route("/products/<product_id>/variants/<variant_id>", methods=["PATCH"])
@require_admin
def update_variant(product_id: str, variant_id: str):
    return jsonify(_admin_service().update_variant(product_id, variant_id, json_body()))


@admin_bp.route("/products/<product_id>/variants/<variant_id>", methods=["DELETE"])
@require_admin
def delete_variant(product_id: str, variant_id: str):
    return jsonify(_admin_service().delete_variant(product_id, variant_id))


@admin_bp.route("/products/<product_id>/images", methods=["POST"])
@require_admin
def add_image(product_id: str):
    return jsonify(_admin_service().add_image(product_id, json_body())), 201


@admin_bp.route("/products/<product_id>/images/<image_id>", methods=["DELETE"])
@require_admin
def delete_image(product_id: str, image_id: str):
    return jsonify(_admin_service().delete_image(product_id, image_id))


# ----------------------------------------------------------------------
# Categories
# ----------------------------------------------------------------------
@admin_bp.route("/categories/upload/sign", methods=["POST"])
@require_admin
def sign_category_image_upload():
    payload = json_body()
    return jsonify(_upload_service().sign_category_image_upload(payload.get("filename"), payload.get("contentType")))


@admin_bp.route("/categories", methods=["GET"])
@require_admin
def list_categories():
    return jsonify(_admin_service().list_categories())


@admin_bp.route("/categories", methods=["POST"])
@require_admin
def create_category():
    return jsonify(_admin_service().create_category(json_body())), 201


@admin_bp.route("/categories/<category_id>", methods=["PATCH"])
@require_admin
def update_category(category_id: str):
    return jsonify(_admin_service().update_category(category_id, json_body()))


@admin_bp.route("/categories/<category_id>", methods=["DELETE"])
@require_admin
def delete_category(category_id: str):
    return jsonify(_admin_service().delete_category(category_id))
