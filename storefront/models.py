# storefront/models.py
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Enum as SAEnum,
)
from sqlalchemy.orm import relationship

# Use a single, shared Base for all models
from storefront.database import Base


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"


# Orders that count towards revenue
PAID_STATUSES = (OrderStatus.PAID, OrderStatus.FULFILLED, OrderStatus.SHIPPED)


class ImageAngle(str, Enum):
    FRONT = "front"
    BACK = "back"
    SIDE = "side"
    DETAIL = "detail"


class Category(Base):
    __tablename__ = 'categories'
    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    image_url = Column(Text)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    products = relationship("Product", back_populates="category")


class Product(Base):
    __tablename__ = 'products'
    id = Column(String(36), primary_key=True, default=_uuid)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    category_id = Column(String(36), ForeignKey('categories.id', ondelete='SET NULL'), index=True)
    base_rating = Column(Numeric(3, 2, asdecimal=False), nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    category = relationship("Category", back_populates="products")
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")
    images = relationship("ProductImage", back_populates="product", cascade="all, delete-orphan")
    reviews = relationship("ProductReview", back_populates="product", cascade="all, delete-orphan")
    wishlist_entries = relationship("WishlistEntry", back_populates="product", cascade="all, delete-orphan")


class ProductVariant(Base):
    __tablename__ = 'product_variants'
    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    color_name = Column(String(100), nullable=False)
    color_hex = Column(String(16))
    size = Column(String(20), nullable=False)
    price_cents = Column(Integer, nullable=False)
    sku = Column(String(100), unique=True)
    # NULL = unlimited, 0 = out of stock
    stock = Column(Integer, nullable=True, default=None)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    product = relationship("Product", back_populates="variants")
    cart_items = relationship("CartItem", back_populates="variant", cascade="all, delete-orphan")
    order_items = relationship("OrderItem", back_populates="variant")


class ProductImage(Base):
    __tablename__ = 'product_images'
    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    # NULL applies to every color
    color_name = Column(String(100))
    angle = Column(String(20), nullable=False, default=ImageAngle.FRONT.value)
    url = Column(Text, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    product = relationship("Product", back_populates="images")


class Cart(Base):
    __tablename__ = 'carts'
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), index=True)
    anonymous_id = Column(String(255), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )


class CartItem(Base):
    __tablename__ = 'cart_items'
    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(String(36), ForeignKey('carts.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(String(36), ForeignKey('product_variants.id'), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # { color, size, backside, decoration, front: {design_url}, back: {design_url} }
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    cart = relationship("Cart", back_populates="items")
    variant = relationship("ProductVariant", back_populates="cart_items")


class Order(Base):
    __tablename__ = 'orders'
    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(String(36), ForeignKey('carts.id', ondelete='SET NULL'))
    anonymous_id = Column(String(255), index=True)
    user_id = Column(String(36), index=True)
    status = Column(
        SAEnum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    subtotal_cents = Column(Integer, nullable=False)
    stripe_payment_intent_id = Column(String(255), unique=True, index=True)
    shipping_name = Column(String(255))
    shipping_email = Column(String(255))
    shipping_line1 = Column(String(255))
    shipping_line2 = Column(String(255))
    shipping_city = Column(String(255))
    shipping_state = Column(String(255))
    shipping_postal_code = Column(String(50))
    shipping_country = Column(String(10), default="US")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )


class OrderItem(Base):
    __tablename__ = 'order_items'
    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    variant_id = Column(String(36), ForeignKey('product_variants.id', ondelete='SET NULL'))
    quantity = Column(Integer, nullable=False, default=1)
    # Snapshotted unit price at order time
    price_cents = Column(Integer, nullable=False)
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    order = relationship("Order", back_populates="items")
    variant = relationship("ProductVariant", back_populates="order_items")


class UserProfile(Base):
    __tablename__ = 'user_profiles'
    id = Column(String(36), primary_key=True)
    full_name = Column(String(255))
    phone = Column(String(50))
    default_shipping_line1 = Column(String(255))
    default_shipping_line2 = Column(String(255))
    default_shipping_city = Column(String(255))
    default_shipping_state = Column(String(255))
    default_shipping_postal_code = Column(String(50))
    default_shipping_country = Column(String(10), default="US")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    EDITABLE_FIELDS = (
        "full_name",
        "phone",
        "default_shipping_line1",
        "default_shipping_line2",
        "default_shipping_city",
        "default_shipping_state",
        "default_shipping_postal_code",
        "default_shipping_country",
    )


class WishlistEntry(Base):
    __tablename__ = 'wishlists'
    __table_args__ = (UniqueConstraint('user_id', 'product_id', name='uq_wishlist_user_product'),)
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    product = relationship("Product", back_populates="wishlist_entries")


class ProductReview(Base):
    __tablename__ = 'product_reviews'
    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(String(36))
    anonymous_id = Column(String(255))
    rating = Column(Integer, nullable=False)
    comment = Column(Text)
    reviewer_name = Column(String(255))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    product = relationship("Product", back_populates="reviews")


class DesignUpload(Base):
    __tablename__ = 'design_uploads'
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36))
    anonymous_id = Column(String(255))
    cart_item_id = Column(String(36), ForeignKey('cart_items.id', ondelete='SET NULL'))
    storage_path = Column(Text, nullable=False)
    filename = Column(String(255), nullable=False)
    file_size = Column(Integer)
    mime_type = Column(String(100))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
