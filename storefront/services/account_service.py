from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront.errors import NotFoundError, ValidationError
from storefront.models import Order, OrderItem, Product, ProductVariant, UserProfile, WishlistEntry
from storefront.serializers import serialize_order_summary, serialize_profile
from storefront.services.catalog_service import CatalogService, group_by
from storefront.utils import serialize_dt


class AccountService:
    """Profile, order history and wishlist for one signed-in customer."""

    def __init__(self, db_session: Session, user_id: str) -> None:
        self.db = db_session
        self.user_id = user_id
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------
    def get_profile(self) -> Dict[str, Any]:
        return serialize_profile(self.db.get(UserProfile, self.user_id))

    def update_profile(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        updates = {key: payload[key] for key in UserProfile.EDITABLE_FIELDS if key in payload}
        if not updates:
            raise ValidationError("No valid fields provided")

        profile = self.db.get(UserProfile, self.user_id)
        if profile is None:
            profile = UserProfile(id=self.user_id)
            self.db.add(profile)
        for key, value in updates.items():
            setattr(profile, key, value)
        profile.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        self.logger.info("Profile updated", extra={"fields": sorted(updates)})
        return serialize_profile(profile)

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def list_orders(self) -> List[Dict[str, Any]]:
        orders = (
            self.db.query(Order)
            .filter_by(user_id=self.user_id)
            .order_by(Order.created_at.desc())
            .all()
        )
        if not orders:
            return []

        items = self.db.query(OrderItem).filter(OrderItem.order_id.in_([order.id for order in orders])).all()
        variant_ids = {item.variant_id for item in items if item.variant_id}
        variants = {
            variant.id: variant
            for variant in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        } if variant_ids else {}
        product_ids = {variant.product_id for variant in variants.values()}
        product_names = {
            product.id: product.name
            for product in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        } if product_ids else {}

        items_by_order = group_by(items, "order_id")
        history = []
        for order in orders:
            body = serialize_order_summary(order)
            body["items"] = []
            for item in items_by_order.get(order.id, []):
                variant = variants.get(item.variant_id)
                body["items"].append(
                    {
                        "id": item.id,
                        "quantity": item.quantity,
                        "price_cents": item.price_cents,
                        "config": item.config or {},
                        "variant_id": item.variant_id,
                        "variant": {
                            "id": variant.id,
                            "color_name": variant.color_name,
                            "color_hex": variant.color_hex,
                            "size": variant.size,
                            "product_id": variant.product_id,
                        } if variant else None,
                        "productName": product_names.get(variant.product_id) if variant else None,
                    }
                )
            history.append(body)
        return history

    # ------------------------------------------------------------------
    # Wishlist
    # ------------------------------------------------------------------
    def list_wishlist(self) -> List[Dict[str, Any]]:
        entries = (
            self.db.query(WishlistEntry)
            .filter_by(user_id=self.user_id)
            .order_by(WishlistEntry.created_at.desc())
            .all()
        )
        if not entries:
            return []
        products = self.db.query(Product).filter(Product.id.in_([entry.product_id for entry in entries])).all()
        enriched = {body["id"]: body for body in CatalogService(self.db).enrich_products(products)}
        return [
            {
                "productId": entry.product_id,
                "createdAt": serialize_dt(entry.created_at),
                "product": enriched.get(entry.product_id),
            }
            for entry in entries
        ]

    def add_to_wishlist(self, product_id: Optional[str]) -> Dict[str, Any]:
        if not product_id:
            raise ValidationError("productId is required")
        if self.db.get(Product, product_id) is None:
            raise NotFoundError("Product not found")

        entry = self.db.query(WishlistEntry).filter_by(user_id=self.user_id, product_id=product_id).first()
        if entry is None:
            entry = WishlistEntry(user_id=self.user_id, product_id=product_id)
            self.db.add(entry)
            try:
                self.db.commit()
            except IntegrityError:
                # Lost a race with a concurrent add of the same product
                self.db.rollback()
                entry = self.db.query(WishlistEntry).filter_by(user_id=self.user_id, product_id=product_id).one()
        return {"productId": entry.product_id, "createdAt": serialize_dt(entry.created_at)}

    def remove_from_wishlist(self, product_id: str) -> Dict[str, Any]:
        self.db.query(WishlistEntry).filter_by(user_id=self.user_id, product_id=product_id).delete(
            synchronize_session=False
        )
        self.db.commit()
        return {"success": True}
