from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from storefront.models import Cart, CartItem, Order, Product, ProductImage, ProductVariant
from storefront.observability import increment_counter, record_event
from storefront.serializers import serialize_cart_item, serialize_variant
from storefront.services.catalog_service import group_by, pick_front_image
from storefront.utils import epoch_millis, parse_positive_int


def check_stock(variant: ProductVariant, already_in_cart: int, requested: int) -> None:
    """Raise ConflictError when ``already_in_cart + requested`` exceeds a finite stock."""
    if variant.stock is None:
        return
    if variant.stock == 0:
        raise ConflictError("This item is out of stock")
    if already_in_cart + requested > variant.stock:
        raise ConflictError(f"Only {max(variant.stock - already_in_cart, 0)} left in stock")


class CartService:
    """Carts keyed by an anonymous browser id or an authenticated user id."""

    def __init__(self, db_session: Session, identity=None) -> None:
        self.db = db_session
        self.identity = identity
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def latest_cart_for_anonymous(self, anonymous_id: str) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter_by(anonymous_id=anonymous_id)
            .order_by(Cart.created_at.desc())
            .first()
        )

    def latest_cart_for_user(self, user_id: str) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter_by(user_id=user_id)
            .order_by(Cart.created_at.desc())
            .first()
        )

    def _quantity_in_cart(self, cart_id: str, variant_id: str, exclude_item_id: Optional[str] = None) -> int:
        query = self.db.query(CartItem).filter_by(cart_id=cart_id, variant_id=variant_id)
        if exclude_item_id:
            query = query.filter(CartItem.id != exclude_item_id)
        return sum(item.quantity for item in query.all())

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def get_cart(self, anonymous_id: Optional[str]) -> Dict[str, Any]:
        if not anonymous_id:
            return {"cartId": None, "items": []}
        cart = self.latest_cart_for_anonymous(anonymous_id)
        if not cart:
            return {"cartId": None, "items": []}
        return {"cartId": cart.id, "items": self.enrich_items(list(cart.items))}

    def enrich_items(self, items: List[CartItem]) -> List[Dict[str, Any]]:
        if not items:
            return []
        variant_ids = {item.variant_id for item in items}
        variants = {
            variant.id: variant
            for variant in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        }
        product_ids = {variant.product_id for variant in variants.values()}
        products = {
            product.id: product
            for product in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        } if product_ids else {}
        images_by_product = group_by(
            self.db.query(ProductImage).filter(ProductImage.product_id.in_(product_ids)).all(),
            "product_id",
        ) if product_ids else {}

        enriched = []
        for item in items:
            variant = variants.get(item.variant_id)
            if variant is None:
                enriched.append(
                    {
                        "id": item.id,
                        "quantity": item.quantity,
                        "config": item.config or {},
                        "variant": None,
                        "product": None,
                        "thumbnailUrl": None,
                    }
                )
                continue
            product = products.get(variant.product_id)
            color = (item.config or {}).get("color") or variant.color_name
            enriched.append(
                {
                    "id": item.id,
                    "quantity": item.quantity,
                    "config": item.config or {},
                    "variant": serialize_variant(variant),
                    "product": {"id": product.id, "name": product.name, "slug": product.slug} if product else None,
                    "thumbnailUrl": pick_front_image(images_by_product.get(variant.product_id, []), color),
                }
            )
        return enriched

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_item(
        self,
        variant_id: Optional[str],
        quantity: Any = 1,
        config: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        anonymous_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not variant_id:
            raise ValidationError("variantId is required")
        requested = parse_positive_int(quantity)
        if requested is None:
            raise ValidationError("quantity must be a positive integer")
        if config is not None and not isinstance(config, dict):
            raise ValidationError("config must be an object")

        variant = self.db.get(ProductVariant, variant_id)
        if not variant:
            raise NotFoundError("Variant not found")

        cart, new_anonymous_id = self._resolve_cart(user_id, anonymous_id)
        already = self._quantity_in_cart(cart.id, variant.id)
        try:
            check_stock(variant, already, requested)
        except ConflictError:
            self.db.rollback()
            raise

        item = CartItem(cart=cart, variant_id=variant.id, quantity=requested, config=config or {})
        self.db.add(item)
        self.db.commit()

        increment_counter("cart_items_added_total")
        self.logger.info(
            "Added variant %s x%s to cart %s",
            variant.id,
            requested,
            cart.id,
            extra={"cart_id": cart.id},
        )
        return {
            "cartItem": serialize_cart_item(item),
            "cartId": cart.id,
            "anonymousId": new_anonymous_id or anonymous_id or None,
        }

    def _resolve_cart(self, user_id: Optional[str], anonymous_id: Optional[str]) -> Tuple[Cart, Optional[str]]:
        """Find or stage the target cart; the second value is a freshly minted anonymous id."""
        if user_id:
            cart = self.latest_cart_for_user(user_id)
            if cart:
                return cart, None
            cart = Cart(user_id=user_id)
        elif anonymous_id:
            cart = self.latest_cart_for_anonymous(anonymous_id)
            if cart:
                return cart, None
            cart = Cart(anonymous_id=anonymous_id)
        else:
            generated = f"anon_{epoch_millis()}"
            cart = Cart(anonymous_id=generated)
            self.db.add(cart)
            self.db.flush()
            return cart, generated
        self.db.add(cart)
        self.db.flush()
        return cart, None

    def update_item(self, item_id: str, quantity: Any) -> Dict[str, Any]:
        new_quantity = parse_positive_int(quantity)
        if new_quantity is None:
            raise ValidationError("quantity must be a positive integer")

        item = self.db.get(CartItem, item_id)
        if not item:
            raise NotFoundError("Cart item not found")

        variant = self.db.get(ProductVariant, item.variant_id)
        if variant is not None:
            others = self._quantity_in_cart(item.cart_id, item.variant_id, exclude_item_id=item.id)
            check_stock(variant, others, new_quantity)

        item.quantity = new_quantity
        self.db.commit()
        return {"success": True, "item": serialize_cart_item(item)}

    def remove_item(self, item_id: str) -> Dict[str, Any]:
        self.db.query(CartItem).filter_by(id=item_id).delete(synchronize_session=False)
        self.db.commit()
        return {"success": True}

    def merge(self, anonymous_id: Optional[str], access_token: Optional[str]) -> Dict[str, Any]:
        """Fold the anonymous cart into the signed-in user's cart."""
        if not anonymous_id or not access_token:
            raise ValidationError("anonymousId and accessToken are required")
        user = self.identity.get_user(access_token) if self.identity else None
        if not user:
            raise AuthenticationError("Unauthorized")
        user_id = user["id"]

        anonymous_cart = self.latest_cart_for_anonymous(anonymous_id)
        user_cart = self.latest_cart_for_user(user_id)

        try:
            if anonymous_cart is None or (user_cart is not None and anonymous_cart.id == user_cart.id):
                if user_cart is None:
                    user_cart = Cart(user_id=user_id)
                    self.db.add(user_cart)
                surviving = user_cart
            elif user_cart is None:
                anonymous_cart.user_id = user_id
                surviving = anonymous_cart
            else:
                self._move_items(anonymous_cart, user_cart)
                self.db.query(Order).filter_by(cart_id=anonymous_cart.id).update(
                    {Order.cart_id: user_cart.id}, synchronize_session=False
                )
                self.db.delete(anonymous_cart)
                self.db.flush()
                user_cart.anonymous_id = anonymous_id
                surviving = user_cart
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        increment_counter("cart_merges_total")
        record_event("cart_merged", {"cart_id": surviving.id, "user_id": user_id})
        return {"cartId": surviving.id, "items": self.enrich_items(list(surviving.items))}

    def _move_items(self, source: Cart, target: Cart) -> None:
        by_variant = {item.variant_id: item for item in target.items}
        for item in list(source.items):
            existing = by_variant.get(item.variant_id)
            if existing is not None:
                existing.quantity += item.quantity
                self.db.delete(item)
            else:
                item.cart = target
                by_variant[item.variant_id] = item
