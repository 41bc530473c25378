from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from storefront.errors import NotFoundError
from storefront.models import Category, ImageAngle, Product, ProductImage, ProductVariant
from storefront.serializers import (
    serialize_category,
    serialize_image,
    serialize_product,
    serialize_variant,
)

DEFAULT_COLOR_HEX = "#888888"


def group_by(rows: Iterable[Any], attr: str) -> Dict[Any, List[Any]]:
    grouped: Dict[Any, List[Any]] = defaultdict(list)
    for row in rows:
        grouped[getattr(row, attr)].append(row)
    return grouped


def pick_front_image(
    images: Iterable[ProductImage],
    color_name: Optional[str] = None,
    angle: str = ImageAngle.FRONT.value,
) -> Optional[str]:
    """URL of the first ``angle`` image for ``color_name``, else of any colour, else None."""
    candidates = sorted((image for image in images if image.angle == angle), key=lambda image: image.sort_order)
    if color_name:
        for image in candidates:
            if image.color_name == color_name:
                return image.url
    return candidates[0].url if candidates else None


def summarize_variants(variants: List[ProductVariant]) -> Dict[str, Any]:
    """Price floor and colour/size facets, in the order the variants were seen."""
    colors: Dict[str, str] = {}
    sizes: List[str] = []
    for variant in variants:
        if variant.color_name not in colors:
            colors[variant.color_name] = variant.color_hex or DEFAULT_COLOR_HEX
        if variant.size not in sizes:
            sizes.append(variant.size)
    prices = [variant.price_cents for variant in variants if variant.price_cents is not None]
    return {
        "minPrice": min(prices) if prices else None,
        "colorCount": len(colors),
        "colors": [{"name": name, "hex": hex_value} for name, hex_value in colors.items()],
        "sizes": sizes,
    }


class CatalogService:
    """Read side of the catalog: products, categories and their display facets."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session
        self.logger = logging.getLogger(__name__)

    def enrich_products(self, products: List[Product]) -> List[Dict[str, Any]]:
        if not products:
            return []
        product_ids = [product.id for product in products]
        variants = (
            self.db.query(ProductVariant)
            .filter(ProductVariant.product_id.in_(product_ids))
            .order_by(ProductVariant.created_at)
            .all()
        )
        images = (
            self.db.query(ProductImage)
            .filter(ProductImage.product_id.in_(product_ids))
            .filter(ProductImage.angle == ImageAngle.FRONT.value)
            .all()
        )
        variants_by_product = group_by(variants, "product_id")
        images_by_product = group_by(images, "product_id")

        enriched = []
        for product in products:
            body = serialize_product(product)
            body["thumbnailUrl"] = pick_front_image(images_by_product.get(product.id, []))
            body.update(summarize_variants(variants_by_product.get(product.id, [])))
            enriched.append(body)
        return enriched

    def _product_by_slug(self, slug: str) -> Product:
        product = self.db.query(Product).filter_by(slug=slug).first()
        if not product:
            raise NotFoundError("Product not found")
        return product

    def list_products(self) -> List[Dict[str, Any]]:
        products = self.db.query(Product).order_by(Product.created_at.desc()).all()
        return self.enrich_products(products)

    def get_product(self, slug: str) -> Dict[str, Any]:
        product = self._product_by_slug(slug)
        variants = (
            self.db.query(ProductVariant)
            .filter_by(product_id=product.id)
            .order_by(ProductVariant.color_name, ProductVariant.size)
            .all()
        )
        images = (
            self.db.query(ProductImage)
            .filter_by(product_id=product.id)
            .order_by(ProductImage.sort_order)
            .all()
        )
        return {
            "product": serialize_product(product),
            "variants": [serialize_variant(variant) for variant in variants],
            "images": [serialize_image(image) for image in images],
        }

    def related_products(self, slug: str, limit: int = 8) -> List[Dict[str, Any]]:
        product = self._product_by_slug(slug)
        if not product.category_id:
            return []
        related = (
            self.db.query(Product)
            .filter(Product.category_id == product.category_id)
            .filter(Product.id != product.id)
            .order_by(Product.created_at.desc())
            .limit(limit)
            .all()
        )
        return self.enrich_products(related)

    def list_categories(self) -> List[Dict[str, Any]]:
        categories = self.db.query(Category).order_by(Category.sort_order, Category.name).all()
        return [serialize_category(category) for category in categories]

    def category_products(self, slug: str) -> Dict[str, Any]:
        category = self.db.query(Category).filter_by(slug=slug).first()
        if not category:
            raise NotFoundError("Category not found")
        products = (
            self.db.query(Product)
            .filter_by(category_id=category.id)
            .order_by(Product.created_at.desc())
            .all()
        )
        return {"category": serialize_category(category), "products": self.enrich_products(products)}
