from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.errors import ConflictError, GatewayError, NotFoundError, ValidationError
from storefront.models import (
    Category,
    ImageAngle,
    Order,
    OrderItem,
    OrderStatus,
    PAID_STATUSES,
    Product,
    ProductImage,
    ProductVariant,
)
from storefront.observability import increment_counter, record_event
from storefront.serializers import (
    serialize_category,
    serialize_image,
    serialize_order,
    serialize_order_item,
    serialize_order_summary,
    serialize_product,
    serialize_variant,
)
from storefront.services.catalog_service import group_by, pick_front_image
from storefront.utils import (
    build_sku,
    parse_non_negative_int,
    parse_positive_int,
    sku_prefix_for_product,
    to_slug,
)

MAX_PAGE_SIZE = 100
_TIMESTAMP_PREFIX = re.compile(r"^\d+_")


def design_download_name(storage_path: str) -> str:
    """``anon_1/1700000000000_logo.png`` -> ``logo.png``."""
    return _TIMESTAMP_PREFIX.sub("", storage_path.rsplit("/", 1)[-1]) or "design"


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


class AdminService:
    """Back-office management of orders, products, variants, images and categories."""

    def __init__(self, db_session: Session, storage=None, config: type[Config] = Config) -> None:
        self.db = db_session
        self.storage = storage
        self.config = config
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def list_orders(self, status: Optional[str] = None, page: Any = 1, limit: Any = None) -> Dict[str, Any]:
        page_number = parse_positive_int(page if page is not None else 1)
        page_size = parse_positive_int(limit if limit is not None else self.config.ADMIN_ORDERS_PAGE_SIZE)
        if page_number is None or page_size is None:
            raise ValidationError("page and limit must be positive integers")
        page_size = min(page_size, MAX_PAGE_SIZE)

        query = self.db.query(Order)
        if status:
            query = query.filter(Order.status == self._parse_status(status))
        total = query.count()
        orders = (
            query.order_by(Order.created_at.desc())
            .offset((page_number - 1) * page_size)
            .limit(page_size)
            .all()
        )

        item_counts: Dict[str, int] = {}
        if orders:
            item_counts = dict(
                self.db.query(OrderItem.order_id, func.count(OrderItem.id))
                .filter(OrderItem.order_id.in_([order.id for order in orders]))
                .group_by(OrderItem.order_id)
                .all()
            )

        rows = []
        for order in orders:
            body = serialize_order_summary(order)
            body["item_count"] = item_counts.get(order.id, 0)
            rows.append(body)
        return {"stats": self.order_stats(), "orders": rows, "total": total}

    def order_stats(self) -> Dict[str, int]:
        counts = dict(self.db.query(Order.status, func.count(Order.id)).group_by(Order.status).all())
        revenue = (
            self.db.query(func.coalesce(func.sum(Order.subtotal_cents), 0))
            .filter(Order.status.in_(PAID_STATUSES))
            .scalar()
        )
        return {
            "total": sum(counts.values()),
            "paid": counts.get(OrderStatus.PAID, 0),
            "fulfilled": counts.get(OrderStatus.FULFILLED, 0),
            "revenue_cents": int(revenue or 0),
        }

    @staticmethod
    def _parse_status(value: Any) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError:
            allowed = ", ".join(status.value for status in OrderStatus)
            raise ValidationError(f"status must be one of: {allowed}")

    def _order(self, order_id: str) -> Order:
        order = self.db.get(Order, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    def get_order(self, order_id: str) -> Dict[str, Any]:
        order = self._order(order_id)
        items = list(order.items)

        variant_ids = {item.variant_id for item in items if item.variant_id}
        variants = {
            variant.id: variant
            for variant in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        } if variant_ids else {}
        product_ids = {variant.product_id for variant in variants.values()}
        products = {
            product.id: product
            for product in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        } if product_ids else {}
        images_by_product = group_by(
            self.db.query(ProductImage).filter(ProductImage.product_id.in_(product_ids)).all(),
            "product_id",
        ) if product_ids else {}

        detailed = []
        for item in items:
            body = serialize_order_item(item)
            config = item.config or {}
            body.update(self._design_urls(config))
            variant = variants.get(item.variant_id)
            if variant is None:
                body.update({"variant": None, "product": None, "thumbnailUrl": None, "backThumbnailUrl": None})
                detailed.append(body)
                continue

            product = products.get(variant.product_id)
            images = images_by_product.get(variant.product_id, [])
            color = config.get("color") or variant.color_name
            front = pick_front_image(images, color)
            back = pick_front_image(images, color, angle=ImageAngle.BACK.value) or front
            body.update(
                {
                    "variant": serialize_variant(variant),
                    "product": {"id": product.id, "name": product.name, "slug": product.slug} if product else None,
                    "thumbnailUrl": front,
                    "backThumbnailUrl": back,
                }
            )
            detailed.append(body)
        return {"order": serialize_order(order), "items": detailed}

    def _design_urls(self, config: Dict[str, Any]) -> Dict[str, Optional[str]]:
        urls: Dict[str, Optional[str]] = {}
        for side in ("front", "back"):
            side_config = config.get(side) if isinstance(config.get(side), dict) else {}
            path = side_config.get("design_url")
            urls[f"{side}DesignSignedUrl"] = self._sign_design(path, download=True)
            urls[f"{side}DesignViewUrl"] = self._sign_design(path, download=False)
        return urls

    def _sign_design(self, storage_path: Optional[str], download: bool) -> Optional[str]:
        if not storage_path or self.storage is None:
            return None
        try:
            return self.storage.create_signed_url(
                self.config.STORAGE_DESIGNS_BUCKET,
                storage_path,
                self.config.SIGNED_URL_TTL_SECONDS,
                download=design_download_name(storage_path) if download else None,
            )
        except GatewayError:
            self.logger.warning("Could not sign design %s", storage_path)
            return None

    def update_order_status(self, order_id: str, status: Any) -> Dict[str, Any]:
        new_status = self._parse_status(status)
        order = self._order(order_id)
        previous = order.status
        order.status = new_status
        self.db.commit()
        record_event(
            "order_status_changed",
            {"order_id": order.id, "from": previous.value if previous else None, "to": new_status.value},
        )
        self.logger.info("Order %s moved to %s", order.id, new_status.value)
        return {"success": True, "order": serialize_order(order)}

    def delete_order(self, order_id: str) -> Dict[str, Any]:
        order = self._order(order_id)
        self.db.delete(order)
        self.db.commit()
        self.logger.info("Order %s deleted", order_id)
        return {"success": True}

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def _product(self, product_id: str) -> Product:
        product = self.db.get(Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def _commit_unique(self, message: str) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(message)

    def _slug_taken(self, model, slug: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(model.id).filter(model.slug == slug)
        if exclude_id:
            query = query.filter(model.id != exclude_id)
        return query.first() is not None

    def list_products(self) -> List[Dict[str, Any]]:
        products = self.db.query(Product).order_by(Product.created_at.desc()).all()
        if not products:
            return []
        product_ids = [product.id for product in products]
        variant_counts = dict(
            self.db.query(ProductVariant.product_id, func.count(ProductVariant.id))
            .filter(ProductVariant.product_id.in_(product_ids))
            .group_by(ProductVariant.product_id)
            .all()
        )
        images_by_product = group_by(
            self.db.query(ProductImage).filter(ProductImage.product_id.in_(product_ids)).all(),
            "product_id",
        )
        rows = []
        for product in products:
            body = serialize_product(product)
            images = images_by_product.get(product.id, [])
            body["variantCount"] = variant_counts.get(product.id, 0)
            body["imageCount"] = len(images)
            body["thumbnailUrl"] = pick_front_image(images)
            rows.append(body)
        return rows

    def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = _clean_text(payload.get("name"))
        if not name:
            raise ValidationError("name is required")
        slug = _clean_text(payload.get("slug")) or to_slug(name)
        if not slug:
            raise ValidationError("slug could not be derived from name")
        if self._slug_taken(Product, slug):
            raise ConflictError("A product with this slug already exists")

        product = Product(
            name=name,
            slug=slug,
            description=_clean_text(payload.get("description")),
            category_id=payload.get("category_id") or None,
        )
        self.db.add(product)
        self._commit_unique("A product with this slug already exists")
        increment_counter("admin_products_created_total")
        self.logger.info("Product %s created", product.id, extra={"slug": slug})
        return serialize_product(product)

    def get_product(self, product_id: str) -> Dict[str, Any]:
        product = self._product(product_id)
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

    def update_product(self, product_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if "name" in payload:
            updates["name"] = _clean_text(payload["name"])
            if not updates["name"]:
                raise ValidationError("name cannot be empty")
        if "description" in payload:
            updates["description"] = _clean_text(payload["description"])
        if "slug" in payload:
            updates["slug"] = _clean_text(payload["slug"])
            if not updates["slug"]:
                raise ValidationError("slug cannot be empty")
        if "category_id" in payload:
            updates["category_id"] = payload["category_id"] or None
        if not updates:
            raise ValidationError("No fields to update")

        product = self._product(product_id)
        if "slug" in updates and self._slug_taken(Product, updates["slug"], exclude_id=product.id):
            raise ConflictError("Slug already in use")
        for key, value in updates.items():
            setattr(product, key, value)
        self._commit_unique("Slug already in use")
        return serialize_product(product)

    def delete_product(self, product_id: str) -> Dict[str, Any]:
        product = self._product(product_id)
        self.db.delete(product)
        self.db.commit()
        self.logger.info("Product %s deleted", product_id)
        return {"success": True}

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------
    def bulk_create_variants(self, product_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        colors = payload.get("colors")
        sizes = payload.get("sizes")
        price_cents = parse_positive_int(payload.get("price_cents"))
        if not colors or not sizes or price_cents is None:
            raise ValidationError("colors, sizes, and price_cents are required")
        if not isinstance(colors, list) or not isinstance(sizes, list):
            raise ValidationError("colors and sizes must be lists")
        if any(not isinstance(color, dict) or not _clean_text(color.get("name")) for color in colors):
            raise ValidationError("every color needs a name")

        product = self._product(product_id)
        existing = {
            (variant.color_name, variant.size)
            for variant in self.db.query(ProductVariant).filter_by(product_id=product.id).all()
        }
        prefix = _clean_text(payload.get("sku_prefix")) or sku_prefix_for_product(product.id)

        created: List[ProductVariant] = []
        for color in colors:
            color_name = _clean_text(color.get("name"))
            for size in sizes:
                size = str(size)
                if (color_name, size) in existing:
                    continue
                existing.add((color_name, size))
                variant = ProductVariant(
                    product_id=product.id,
                    color_name=color_name,
                    color_hex=color.get("hex") or None,
                    size=size,
                    price_cents=price_cents,
                    sku=build_sku(prefix, color_name, size),
                    stock=None,
                )
                self.db.add(variant)
                created.append(variant)

        if created:
            self._commit_unique("A variant with this SKU already exists")
            self.logger.info("Created %s variants for product %s", len(created), product.id)
        return {"inserted": len(created), "variants": [serialize_variant(variant) for variant in created]}

    def _variant(self, product_id: str, variant_id: str) -> ProductVariant:
        variant = self.db.query(ProductVariant).filter_by(id=variant_id, product_id=product_id).first()
        if not variant:
            raise NotFoundError("Variant not found")
        return variant

    def update_variant(self, product_id: str, variant_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if "stock" not in payload and payload.get("price_cents") is None:
            raise ValidationError("stock or price_cents is required")

        stock = None
        stock_value = payload.get("stock")
        if stock_value is not None and stock_value != "":
            stock = parse_non_negative_int(stock_value)
            if stock is None:
                raise ValidationError("stock must be null or a non-negative integer")

        price_cents = None
        if payload.get("price_cents") is not None:
            price_cents = parse_non_negative_int(payload["price_cents"])
            if price_cents is None:
                raise ValidationError("price_cents must be a non-negative integer")

        variant = self._variant(product_id, variant_id)
        if "stock" in payload:
            variant.stock = stock
        if price_cents is not None:
            variant.price_cents = price_cents
        self.db.commit()
        self.logger.info("Variant %s updated: stock=%s price_cents=%s", variant.id, variant.stock, variant.price_cents)
        return serialize_variant(variant)

    def delete_variant(self, product_id: str, variant_id: str) -> Dict[str, Any]:
        variant = self._variant(product_id, variant_id)
        self.db.delete(variant)
        self.db.commit()
        return {"success": True}

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------
    def add_image(self, product_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = _clean_text(payload.get("url"))
        if not url:
            raise ValidationError("url is required")
        angle = payload.get("angle") or ImageAngle.FRONT.value
        if angle not in {member.value for member in ImageAngle}:
            raise ValidationError("angle must be one of: front, back, side, detail")
        sort_order = parse_non_negative_int(payload.get("sort_order", 0) or 0)
        if sort_order is None:
            raise ValidationError("sort_order must be a non-negative integer")

        product = self._product(product_id)
        image = ProductImage(
            product_id=product.id,
            url=url,
            color_name=_clean_text(payload.get("color_name")),
            angle=angle,
            sort_order=sort_order,
        )
        self.db.add(image)
        self.db.commit()
        return serialize_image(image)

    def delete_image(self, product_id: str, image_id: str) -> Dict[str, Any]:
        image = self.db.query(ProductImage).filter_by(id=image_id, product_id=product_id).first()
        if not image:
            raise NotFoundError("Image not found")
        url = image.url
        self.db.delete(image)
        self.db.commit()
        self._remove_stored_image(url)
        return {"success": True}

    def _remove_stored_image(self, url: Optional[str]) -> None:
        if self.storage is None or not url:
            return
        bucket = self.config.STORAGE_PRODUCT_IMAGES_BUCKET
        storage_path = self.storage.path_from_public_url(bucket, url)
        if not storage_path:
            return
        try:
            self.storage.remove(bucket, [storage_path])
        except GatewayError:
            self.logger.warning("Could not remove stored image %s", storage_path)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------
    def _category(self, category_id: str) -> Category:
        category = self.db.get(Category, category_id)
        if not category:
            raise NotFoundError("Category not found")
        return category

    def list_categories(self) -> List[Dict[str, Any]]:
        categories = self.db.query(Category).order_by(Category.sort_order, Category.name).all()
        return [serialize_category(category) for category in categories]

    def create_category(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        name = _clean_text(payload.get("name"))
        if not name:
            raise ValidationError("name is required")
        slug = _clean_text(payload.get("slug")) or to_slug(name)
        if not slug:
            raise ValidationError("slug could not be derived from name")
        sort_order = 0
        if payload.get("sort_order") is not None:
            sort_order = parse_non_negative_int(payload["sort_order"])
            if sort_order is None:
                raise ValidationError("sort_order must be a non-negative integer")
        if self._slug_taken(Category, slug):
            raise ConflictError("A category with this slug already exists")

        category = Category(
            name=name,
            slug=slug,
            image_url=_clean_text(payload.get("image_url")),
            sort_order=sort_order,
        )
        self.db.add(category)
        self._commit_unique("A category with this slug already exists")
        self.logger.info("Category %s created", category.id, extra={"slug": slug})
        return serialize_category(category)

    def update_category(self, category_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if "name" in payload:
            updates["name"] = _clean_text(payload["name"])
            if not updates["name"]:
                raise ValidationError("name cannot be empty")
        if "slug" in payload:
            updates["slug"] = _clean_text(payload["slug"])
            if not updates["slug"]:
                raise ValidationError("slug cannot be empty")
        if "image_url" in payload:
            updates["image_url"] = _clean_text(payload["image_url"])
        if "sort_order" in payload:
            updates["sort_order"] = parse_non_negative_int(payload["sort_order"])
            if updates["sort_order"] is None:
                raise ValidationError("sort_order must be a non-negative integer")
        if not updates:
            raise ValidationError("No fields to update")

        category = self._category(category_id)
        if "slug" in updates and self._slug_taken(Category, updates["slug"], exclude_id=category.id):
            raise ConflictError("Slug already in use")
        for key, value in updates.items():
            setattr(category, key, value)
        self._commit_unique("Slug already in use")
        return serialize_category(category)

    def delete_category(self, category_id: str) -> Dict[str, Any]:
        category = self._category(category_id)
        self.db.query(Product).filter_by(category_id=category.id).update(
            {Product.category_id: None}, synchronize_session=False
        )
        self.db.delete(category)
        self.db.commit()
        self.logger.info("Category %s deleted", category_id)
        return {"success": True}
