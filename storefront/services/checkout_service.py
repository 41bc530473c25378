from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.config import Config
from storefront.errors import NotFoundError, ServiceUnavailableError, StorefrontError, ValidationError
from storefront.models import CartItem, Order, OrderItem, OrderStatus, Product, ProductVariant
from storefront.observability import increment_counter, record_event
from storefront.services.cart_service import CartService
from storefront.services.notification_service import OrderLine, OrderNotifier
from storefront.utils import enum_value, serialize_dt

SHIPPING_FIELDS = {
    "name": "shipping_name",
    "email": "shipping_email",
    "line1": "shipping_line1",
    "line2": "shipping_line2",
    "city": "shipping_city",
    "state": "shipping_state",
    "postal_code": "shipping_postal_code",
}

PAYMENT_SUCCEEDED = "payment_intent.succeeded"


class CheckoutService:
    """Turns a cart into a pending order backed by a payment intent, then marks it paid."""

    def __init__(
        self,
        db_session: Session,
        payments,
        config: type[Config] = Config,
        notifier: Optional[OrderNotifier] = None,
    ) -> None:
        self.db = db_session
        self.payments = payments
        self.config = config
        self.notifier = notifier
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Payment intent
    # ------------------------------------------------------------------
    def _shipping_columns(self, shipping: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        shipping = shipping or {}
        columns = {column: (shipping.get(key) or None) for key, column in SHIPPING_FIELDS.items()}
        columns["shipping_country"] = shipping.get("country") or self.config.DEFAULT_SHIPPING_COUNTRY
        return columns

    @staticmethod
    def _snapshot_items(items: List[CartItem], prices: Dict[str, int]) -> List[OrderItem]:
        return [
            OrderItem(
                variant_id=item.variant_id,
                quantity=item.quantity,
                price_cents=prices.get(item.variant_id, 0),
                config=item.config or {},
            )
            for item in items
        ]

    def create_payment_intent(
        self,
        anonymous_id: Optional[str],
        shipping: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not anonymous_id:
            raise ValidationError("anonymousId is required")
        if shipping is not None and not isinstance(shipping, dict):
            raise ValidationError("shipping must be an object")
        if not self.payments.configured:
            raise StorefrontError("Stripe is not configured on the server.")

        cart = CartService(self.db).latest_cart_for_anonymous(anonymous_id)
        if not cart:
            raise NotFoundError("Cart not found")
        items = list(cart.items)
        if not items:
            raise ValidationError("Cart is empty")

        variant_ids = {item.variant_id for item in items}
        prices = {
            variant.id: variant.price_cents
            for variant in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        }
        total_cents = sum(prices.get(item.variant_id, 0) * item.quantity for item in items)
        minimum = self.config.MIN_CHARGE_CENTS
        if total_cents < minimum:
            raise ValidationError(f"Order total is below the minimum (${minimum / 100:.2f})")

        existing = (
            self.db.query(Order)
            .filter_by(cart_id=cart.id, status=OrderStatus.PENDING)
            .filter(Order.stripe_payment_intent_id.isnot(None))
            .order_by(Order.created_at.desc())
            .first()
        )

        if existing is not None:
            intent = self.payments.update_payment_intent(existing.stripe_payment_intent_id, total_cents)
            try:
                existing.subtotal_cents = total_cents
                existing.items = self._snapshot_items(items, prices)
                if shipping:
                    for column, value in self._shipping_columns(shipping).items():
                        setattr(existing, column, value)
                if user_id and not existing.user_id:
                    existing.user_id = user_id
                existing.updated_at = datetime.now(timezone.utc)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                raise
            increment_counter("payment_intents_updated_total")
            self.logger.info(
                "Payment intent %s re-synced for cart %s",
                existing.stripe_payment_intent_id,
                cart.id,
                extra={"total_cents": total_cents},
            )
        else:
            metadata = {"cartId": cart.id, "anonymousId": anonymous_id}
            intent = self.payments.create_payment_intent(
                total_cents,
                self.config.PAYMENT_CURRENCY,
                metadata=metadata,
                receipt_email=(shipping or {}).get("email") or None,
            )
            order = Order(
                cart_id=cart.id,
                anonymous_id=anonymous_id,
                user_id=user_id,
                status=OrderStatus.PENDING,
                subtotal_cents=total_cents,
                stripe_payment_intent_id=intent["id"],
                **self._shipping_columns(shipping),
            )
            order.items = self._snapshot_items(items, prices)
            try:
                self.db.add(order)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                self.logger.exception("Could not persist order for payment intent %s", intent["id"])
                raise
            increment_counter("payment_intents_created_total")
            record_event("order_created", {"order_id": order.id, "cart_id": cart.id, "total_cents": total_cents})
            self.logger.info("Pending order %s created for cart %s", order.id, cart.id)

        return {"clientSecret": intent.get("client_secret"), "totalCents": total_cents, "cartId": cart.id}

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------
    def verify_event(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        secret = self.config.STRIPE_WEBHOOK_SECRET
        if not secret:
            if not self.config.STRIPE_WEBHOOK_ALLOW_UNVERIFIED:
                increment_counter("webhook_rejected_total", labels={"reason": "no_secret"})
                raise ServiceUnavailableError("Webhook signing secret is not configured")
            self.logger.warning("STRIPE_WEBHOOK_SECRET not set; processing webhook without signature verification")
            return self.payments.parse_event(raw_body)
        try:
            return self.payments.construct_event(
                raw_body,
                signature_header,
                secret,
                tolerance=self.config.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except StorefrontError as exc:
            increment_counter("webhook_rejected_total", labels={"reason": "signature"})
            self.logger.warning("Webhook signature verification failed: %s", exc.message)
            raise

    def handle_webhook(self, raw_body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        event = self.verify_event(raw_body, signature_header)
        event_type = event.get("type")
        if event_type == PAYMENT_SUCCEEDED:
            intent = (event.get("data") or {}).get("object") or {}
            self.mark_paid(intent.get("id"))
        else:
            self.logger.debug("Ignoring webhook event type %s", event_type)
        return {"received": True}

    def mark_paid(self, payment_intent_id: Optional[str]) -> Optional[Order]:
        if not payment_intent_id:
            self.logger.warning("payment_intent.succeeded event without an intent id")
            return None
        order = self.db.query(Order).filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if not order:
            self.logger.error("No order found for payment intent %s", payment_intent_id)
            return None

        order.status = OrderStatus.PAID
        order.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        increment_counter("orders_paid_total")
        record_event("order_paid", {"order_id": order.id, "payment_intent_id": payment_intent_id})
        self.logger.info("Order %s paid for payment intent %s", order.id, payment_intent_id)

        if order.shipping_email and self.notifier is not None and self.notifier.configured:
            sent, reason = self.notifier.send_order_confirmation(order, self.order_lines(order))
            if not sent:
                self.logger.error("Failed to send confirmation email for order %s: %s", order.id, reason)
        return order

    def order_lines(self, order: Order) -> List[OrderLine]:
        items = list(order.items)
        variant_ids = {item.variant_id for item in items if item.variant_id}
        variants = {
            variant.id: variant
            for variant in self.db.query(ProductVariant).filter(ProductVariant.id.in_(variant_ids)).all()
        } if variant_ids else {}
        product_ids = {variant.product_id for variant in variants.values()}
        names = {
            product.id: product.name
            for product in self.db.query(Product).filter(Product.id.in_(product_ids)).all()
        } if product_ids else {}

        lines = []
        for item in items:
            variant = variants.get(item.variant_id)
            config = item.config or {}
            lines.append(
                OrderLine(
                    name=names.get(variant.product_id, "Custom T-Shirt") if variant else "Custom T-Shirt",
                    size=(variant.size if variant else None) or config.get("size") or "",
                    color=(variant.color_name if variant else None) or config.get("color") or "",
                    quantity=item.quantity,
                    price_cents=item.price_cents,
                )
            )
        return lines

    # ------------------------------------------------------------------
    # Confirmation page
    # ------------------------------------------------------------------
    def order_status(self, payment_intent_id: str) -> Dict[str, Any]:
        order = self.db.query(Order).filter_by(stripe_payment_intent_id=payment_intent_id).first()
        if not order:
            raise NotFoundError("Order not found")
        return {
            "id": order.id,
            "status": enum_value(order.status),
            "subtotal_cents": order.subtotal_cents,
            "created_at": serialize_dt(order.created_at),
        }
