"""Row -> JSON shaping shared by services and blueprints."""
from __future__ import annotations

from typing import Any, Dict, Optional

from storefront.models import (
    CartItem,
    Category,
    DesignUpload,
    Order,
    OrderItem,
    Product,
    ProductImage,
    ProductReview,
    ProductVariant,
    UserProfile,
)
from storefront.utils import enum_value, serialize_dt


def serialize_product(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "slug": product.slug,
        "name": product.name,
        "description": product.description,
        "category_id": product.category_id,
        "base_rating": float(product.base_rating or 0),
        "rating_count": product.rating_count or 0,
        "created_at": serialize_dt(product.created_at),
    }


def serialize_variant(variant: ProductVariant) -> Dict[str, Any]:
    return {
        "id": variant.id,
        "product_id": variant.product_id,
        "color_name": variant.color_name,
        "color_hex": variant.color_hex,
        "size": variant.size,
        "price_cents": variant.price_cents,
        "sku": variant.sku,
        "stock": variant.stock,
    }


def serialize_image(image: ProductImage) -> Dict[str, Any]:
    return {
        "id": image.id,
        "product_id": image.product_id,
        "url": image.url,
        "color_name": image.color_name,
        "angle": image.angle,
        "sort_order": image.sort_order,
    }


def serialize_category(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "slug": category.slug,
        "name": category.name,
        "image_url": category.image_url,
        "sort_order": category.sort_order,
        "created_at": serialize_dt(category.created_at),
    }


def serialize_cart_item(item: CartItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "cart_id": item.cart_id,
        "variant_id": item.variant_id,
        "quantity": item.quantity,
        "config": item.config or {},
        "created_at": serialize_dt(item.created_at),
    }


def serialize_order_summary(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "created_at": serialize_dt(order.created_at),
        "status": enum_value(order.status),
        "subtotal_cents": order.subtotal_cents,
        "shipping_name": order.shipping_name,
        "shipping_email": order.shipping_email,
        "stripe_payment_intent_id": order.stripe_payment_intent_id,
    }


def serialize_order(order: Order) -> Dict[str, Any]:
    body = serialize_order_summary(order)
    body.update(
        {
            "cart_id": order.cart_id,
            "anonymous_id": order.anonymous_id,
            "user_id": order.user_id,
            "shipping_line1": order.shipping_line1,
            "shipping_line2": order.shipping_line2,
            "shipping_city": order.shipping_city,
            "shipping_state": order.shipping_state,
            "shipping_postal_code": order.shipping_postal_code,
            "shipping_country": order.shipping_country,
            "updated_at": serialize_dt(order.updated_at),
        }
    )
    return body


def serialize_order_item(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "variant_id": item.variant_id,
        "quantity": item.quantity,
        "price_cents": item.price_cents,
        "config": item.config or {},
        "created_at": serialize_dt(item.created_at),
    }


def serialize_profile(profile: Optional[UserProfile]) -> Dict[str, Any]:
    if profile is None:
        return {}
    body: Dict[str, Any] = {"id": profile.id}
    for field_name in UserProfile.EDITABLE_FIELDS:
        body[field_name] = getattr(profile, field_name)
    body["created_at"] = serialize_dt(profile.created_at)
    body["updated_at"] = serialize_dt(profile.updated_at)
    return body


def serialize_review(review: ProductReview) -> Dict[str, Any]:
    return {
        "id": review.id,
        "product_id": review.product_id,
        "rating": review.rating,
        "comment": review.comment,
        "reviewer_name": review.reviewer_name,
        "created_at": serialize_dt(review.created_at),
    }


def serialize_design_upload(upload: DesignUpload) -> Dict[str, Any]:
    return {
        "id": upload.id,
        "storage_path": upload.storage_path,
        "filename": upload.filename,
        "file_size": upload.file_size,
        "mime_type": upload.mime_type,
        "created_at": serialize_dt(upload.created_at),
    }
