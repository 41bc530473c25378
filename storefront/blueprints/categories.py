from flask import Blueprint, jsonify

from storefront.database import get_db
from storefront.services.catalog_service import CatalogService

categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@categories_bp.route("", methods=["GET"])
def list_categories():
    return jsonify(CatalogService(get_db()).list_categories())


@categories_bp.route("/<slug>/products", methods=["GET"])
def category_products(slug: str):
    return jsonify(CatalogService(get_db()).category_products(slug))
