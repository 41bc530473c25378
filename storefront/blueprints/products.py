from __future__ import annotations

from flask import Blueprint, jsonify

from storefront.auth import optional_user
from storefront.blueprints.common import json_body, runtime
from storefront.database import get_db
from storefront.services.cart_service import CartService
from storefront.services.catalog_service import CatalogService
from storefront.services.review_service import ReviewService
from storefront.services.upload_service import UploadService

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _current_user_id():
    user = optional_user()
    return user.get("id") if user else None


@products_bp.route("", methods=["GET"])
def list_products():
    return jsonify(CatalogService(get_db()).list_products())


@products_bp.route("/<slug>", methods=["GET"])
def get_product(slug: str):
    return jsonify(CatalogService(get_db()).get_product(slug))


@products_bp.route("/<slug>/related", methods=["GET"])
def related_products(slug: str):
    return jsonify(CatalogService(get_db()).related_products(slug))


@products_bp.route("/<slug>/reviews", methods=["GET"])
def list_reviews(slug: str):
    return jsonify(ReviewService(get_db()).list_reviews(slug))


@products_bp.route("/<slug>/reviews", methods=["POST"])
def submit_review(slug: str):
    payload = json_body()
    result = ReviewService(get_db()).submit_review(
        slug,
        rating=payload.get("rating"),
        comment=payload.get("comment"),
        reviewer_name=payload.get("reviewerName") or payload.get("reviewer_name"),
        anonymous_id=payload.get("anonymousId"),
        user_id=_current_user_id(),
    )
    return jsonify(result), 201


@products_bp.route("/upload/sign", methods=["POST"])
def sign_design_upload():
    payload = json_body()
    service = UploadService(get_db(), runtime().storage, runtime().config)
    return jsonify(
        service.sign_design_upload(
            payload.get("filename"),
            payload.get("contentType"),
            user_id=_current_user_id(),
            anonymous_id=payload.get("anonymousId"),
        )
    )


@products_bp.route("/upload/confirm", methods=["POST"])
def confirm_design_upload():
    payload = json_body()
    service = UploadService(get_db(), runtime().storage, runtime().config)
    return jsonify(
        service.confirm_design_upload(
            payload.get("storagePath"),
            payload.get("filename"),
            file_size=payload.get("fileSize"),
            mime_type=payload.get("mimeType"),
            user_id=_current_user_id(),
            anonymous_id=payload.get("anonymousId"),
        )
    )


@products_bp.route("/cart/items", methods=["POST"])
def add_cart_item():
    payload = json_body()
    result = CartService(get_db(), runtime().identity).add_item(
        payload.get("variantId"),
        quantity=payload.get("quantity", 1),
        config=payload.get("config"),
        user_id=_current_user_id(),
        anonymous_id=payload.get("anonymousId"),
    )
    return jsonify(result), 201
