"""
SQLAlchemy ORM models for the storefront schema.

Notes:
- Status fields are Text columns guarded by CHECK constraints generated from the
  str-valued enums below, so the enums are the single list of allowed values.
- Money is stored as integer cents.
- `Inventory.available` is kept equal to `quantity - reserved_quantity` by
  src.services.inventory; nothing else writes those columns.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import List, Optional, Type

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, JSONType, utcnow


def _in_check(column: str, enum_cls: Type[enum.Enum], name: str) -> CheckConstraint:
    values = ",".join(f"'{member.value}'" for member in enum_cls)
    return CheckConstraint(f"{column} in ({values})", name=name)


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class FulfillmentStatus(str, enum.Enum):
    UNFULFILLED = "UNFULFILLED"
    PARTIALLY_FULFILLED = "PARTIALLY_FULFILLED"
    FULFILLED = "FULFILLED"


class ShippingStatus(str, enum.Enum):
    PENDING = "PENDING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"


class CheckoutSessionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"
    SHIPPING = "SHIPPING"


class RegistryStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class RegistryPriority(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SupplierStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class SourceStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    UNAVAILABLE = "UNAVAILABLE"
    DISCONTINUED = "DISCONTINUED"
    PRICE_CHANGED = "PRICE_CHANGED"


class SourceInventoryStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    LOW_STOCK = "LOW_STOCK"
    OUT_OF_STOCK = "OUT_OF_STOCK"


class DropshipStatus(str, enum.Enum):
    PENDING = "PENDING"
    PLACED = "PLACED"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ISSUE = "ISSUE"


class TimestampMixin:
    """Common timestamp columns in the schema."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False
    )


def _uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid, primary_key=True, default=uuid.uuid4)


class User(Base, TimestampMixin):
    """users table. Identities are provisioned by the auth gateway."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = _uuid_pk()
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(Text, nullable=False, default=UserRole.CUSTOMER.value, server_default=UserRole.CUSTOMER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    addresses: Mapped[List["Address"]] = relationship("Address", back_populates="user", cascade="all, delete-orphan")
    orders: Mapped[List["Order"]] = relationship("Order", back_populates="user")
    registry: Mapped[Optional["Registry"]] = relationship("Registry", back_populates="user", uselist=False)

    __table_args__ = (_in_check("role", UserRole, "users_role_check"),)

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.STAFF.value)


class Address(Base, TimestampMixin):
    """addresses table."""

    __tablename__ = "addresses"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    line1: Mapped[str] = mapped_column(Text, nullable=False)
    line2: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False)
    postal_code: Mapped[str] = mapped_column(Text, nullable=False)
    country: Mapped[str] = mapped_column(String(2), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped[User] = relationship("User", back_populates="addresses")


class Category(Base, TimestampMixin):
    """categories table."""

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = _uuid_pk()
    cms_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    parent: Mapped[Optional["Category"]] = relationship("Category", remote_side="Category.id", backref="children")

    products: Mapped[List["Product"]] = relationship("Product", back_populates="category")


class Product(Base, TimestampMixin):
    """products table."""

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = _uuid_pk()
    cms_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)

    base_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    compare_at_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    images: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_new: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    category: Mapped[Optional[Category]] = relationship("Category", back_populates="products")
    variants: Mapped[List["Variant"]] = relationship(
        "Variant", back_populates="product", cascade="all, delete-orphan", order_by="Variant.sort_order"
    )

    __table_args__ = (CheckConstraint("base_price_cents >= 0", name="products_base_price_cents_check"),)


class Variant(Base, TimestampMixin):
    """product_variants table."""

    __tablename__ = "product_variants"

    id: Mapped[uuid.UUID] = _uuid_pk()
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    cms_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    size: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    compare_at_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    product: Mapped[Product] = relationship("Product", back_populates="variants")
    inventory: Mapped[Optional["Inventory"]] = relationship(
        "Inventory", back_populates="variant", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("product_id", "cms_key", name="product_variants_product_id_cms_key_key"),
        CheckConstraint("price_cents >= 0", name="product_variants_price_cents_check"),
    )


class Inventory(Base):
    """inventory table, one row per variant."""

    __tablename__ = "inventory"

    id: Mapped[uuid.UUID] = _uuid_pk()
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False, unique=True)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    variant: Mapped[Variant] = relationship("Variant", back_populates="inventory")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="inventory_quantity_check"),
        CheckConstraint("reserved_quantity >= 0", name="inventory_reserved_quantity_check"),
        CheckConstraint("available >= 0", name="inventory_available_check"),
    )


class Cart(Base, TimestampMixin):
    """carts table. A cart belongs to a user or to an anonymous session id."""

    __tablename__ = "carts"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    session_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    abandonment_emails_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_abandonment_email_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[Optional[User]] = relationship("User")
    items: Mapped[List["CartItem"]] = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.created_at"
    )


class CartItem(Base, TimestampMixin):
    """cart_items table."""

    __tablename__ = "cart_items"

    id: Mapped[uuid.UUID] = _uuid_pk()
    cart_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    cart: Mapped[Cart] = relationship("Cart", back_populates="items")
    variant: Mapped[Variant] = relationship("Variant")

    __table_args__ = (
        UniqueConstraint("cart_id", "variant_id", name="cart_items_cart_id_variant_id_key"),
        CheckConstraint("quantity > 0", name="cart_items_quantity_check"),
    )


class Discount(Base, TimestampMixin):
    """discounts table. `value` is a percentage for PERCENTAGE codes and cents for FIXED."""

    __tablename__ = "discounts"

    id: Mapped[uuid.UUID] = _uuid_pk()
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_order_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_discount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    __table_args__ = (
        _in_check("type", DiscountType, "discounts_type_check"),
        CheckConstraint("value >= 0", name="discounts_value_check"),
    )


class CheckoutSession(Base, TimestampMixin):
    """checkout_sessions table, keyed by the payment provider's session id."""

    __tablename__ = "checkout_sessions"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    cart_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("carts.id", ondelete="SET NULL"), nullable=True)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    email: Mapped[str] = mapped_column(Text, nullable=False)
    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False)
    billing_address: Mapped[dict] = mapped_column(JSONType, nullable=False)
    shipping_method: Mapped[str] = mapped_column(Text, nullable=False)
    discount_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(Text, nullable=False, default=CheckoutSessionStatus.PENDING.value)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    cart: Mapped[Optional[Cart]] = relationship("Cart")

    __table_args__ = (_in_check("status", CheckoutSessionStatus, "checkout_sessions_status_check"),)


class Order(Base, TimestampMixin):
    """orders table."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = _uuid_pk()
    order_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    # Unique: at most one order per checkout session, even under concurrent webhook deliveries.
    checkout_session_id: Mapped[Optional[str]] = mapped_column(
        Text, ForeignKey("checkout_sessions.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.PENDING.value)
    payment_status: Mapped[str] = mapped_column(Text, nullable=False, default=PaymentStatus.PENDING.value)
    fulfillment_status: Mapped[str] = mapped_column(Text, nullable=False, default=FulfillmentStatus.UNFULFILLED.value)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    customer_email: Mapped[str] = mapped_column(Text, nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    discount_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[Optional[User]] = relationship("User", back_populates="orders")
    items: Mapped[List["OrderItem"]] = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payments: Mapped[List["Payment"]] = relationship(
        "Payment", back_populates="order", cascade="all, delete-orphan", order_by="Payment.created_at"
    )
    shipping: Mapped[Optional["Shipping"]] = relationship(
        "Shipping", back_populates="order", uselist=False, cascade="all, delete-orphan"
    )
    dropship_orders: Mapped[List["DropshipOrder"]] = relationship("DropshipOrder", back_populates="order")

    __table_args__ = (
        _in_check("status", OrderStatus, "orders_status_check"),
        _in_check("payment_status", PaymentStatus, "orders_payment_status_check"),
        _in_check("fulfillment_status", FulfillmentStatus, "orders_fulfillment_status_check"),
        CheckConstraint("subtotal_cents >= 0", name="orders_subtotal_cents_check"),
        CheckConstraint("shipping_cents >= 0", name="orders_shipping_cents_check"),
        CheckConstraint("tax_cents >= 0", name="orders_tax_cents_check"),
        CheckConstraint("discount_cents >= 0", name="orders_discount_cents_check"),
        CheckConstraint("total_cents >= 0", name="orders_total_cents_check"),
    )

    @property
    def latest_payment(self) -> Optional["Payment"]:
        return self.payments[-1] if self.payments else None


class OrderItem(Base):
    """order_items table. Names and prices are snapshotted at purchase time."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = _uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="RESTRICT"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    variant_name: Mapped[str] = mapped_column(Text, nullable=False)
    sku: Mapped[str] = mapped_column(Text, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    order: Mapped[Order] = relationship("Order", back_populates="items")
    variant: Mapped[Variant] = relationship("Variant")
    product: Mapped[Product] = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="order_items_quantity_check"),
        CheckConstraint("unit_price_cents >= 0", name="order_items_unit_price_cents_check"),
        CheckConstraint("total_price_cents >= 0", name="order_items_total_price_cents_check"),
    )


class Payment(Base, TimestampMixin):
    """payments table."""

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = _uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    provider: Mapped[str] = mapped_column(Text, nullable=False, default="stripe")
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, unique=True)

    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    refunded_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(Text, nullable=False, default=PaymentStatus.PENDING.value)

    payment_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    card_last4: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    card_brand: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    failure_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="payments")

    __table_args__ = (
        _in_check("status", PaymentStatus, "payments_status_check"),
        CheckConstraint("amount_cents >= 0", name="payments_amount_cents_check"),
    )


class Shipping(Base, TimestampMixin):
    """shipments table, one row per order."""

    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = _uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, unique=True)

    service: Mapped[str] = mapped_column(Text, nullable=False)
    carrier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ShippingStatus.PENDING.value)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="shipping")

    __table_args__ = (_in_check("status", ShippingStatus, "shipments_status_check"),)


class Registry(Base, TimestampMixin):
    """registries table. Each user owns at most one."""

    __tablename__ = "registries"

    id: Mapped[uuid.UUID] = _uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    share_code: Mapped[str] = mapped_column(String(8), nullable=False, unique=True)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())
    status: Mapped[str] = mapped_column(Text, nullable=False, default=RegistryStatus.ACTIVE.value)

    user: Mapped[User] = relationship("User", back_populates="registry")
    items: Mapped[List["RegistryItem"]] = relationship("RegistryItem", back_populates="registry", cascade="all, delete-orphan")

    __table_args__ = (_in_check("status", RegistryStatus, "registries_status_check"),)


class RegistryItem(Base, TimestampMixin):
    """registry_items table."""

    __tablename__ = "registry_items"

    id: Mapped[uuid.UUID] = _uuid_pk()
    registry_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("registries.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    variant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False)

    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_slug: Mapped[str] = mapped_column(Text, nullable=False)
    variant_name: Mapped[str] = mapped_column(Text, nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    quantity_purchased: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default=RegistryPriority.MEDIUM.value)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    registry: Mapped[Registry] = relationship("Registry", back_populates="items")
    variant: Mapped[Variant] = relationship("Variant")

    __table_args__ = (
        UniqueConstraint("registry_id", "variant_id", name="registry_items_registry_id_variant_id_key"),
        _in_check("priority", RegistryPriority, "registry_items_priority_check"),
        CheckConstraint("quantity > 0", name="registry_items_quantity_check"),
        CheckConstraint("quantity_purchased >= 0", name="registry_items_quantity_purchased_check"),
    )

    @property
    def remaining(self) -> int:
        return max(self.quantity - self.quantity_purchased, 0)


class Supplier(Base, TimestampMixin):
    """suppliers table (dropship stores)."""

    __tablename__ = "suppliers"

    id: Mapped[uuid.UUID] = _uuid_pk()
    external_store_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    store_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rating: Mapped[Optional[float]] = mapped_column(nullable=True)
    total_orders: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=SupplierStatus.ACTIVE.value)
    last_order_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    sources: Mapped[List["ProductSource"]] = relationship("ProductSource", back_populates="supplier")

    __table_args__ = (_in_check("status", SupplierStatus, "suppliers_status_check"),)


class ProductSource(Base, TimestampMixin):
    """product_sources table: where a catalog product is bought from."""

    __tablename__ = "product_sources"

    id: Mapped[uuid.UUID] = _uuid_pk()
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    cms_product_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    product_slug: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    supplier_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("suppliers.id", ondelete="RESTRICT"), nullable=False)
    supplier_product_id: Mapped[str] = mapped_column(Text, nullable=False)
    supplier_url: Mapped[str] = mapped_column(Text, nullable=False)
    supplier_sku: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    original_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    original_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    source_status: Mapped[str] = mapped_column(Text, nullable=False, default=SourceStatus.ACTIVE.value)
    inventory_status: Mapped[str] = mapped_column(Text, nullable=False, default=SourceInventoryStatus.AVAILABLE.value)
    # local variant sku -> supplier sku
    variant_mapping: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    supplier: Mapped[Supplier] = relationship("Supplier", back_populates="sources")
    product: Mapped[Optional[Product]] = relationship("Product")

    __table_args__ = (
        _in_check("source_status", SourceStatus, "product_sources_source_status_check"),
        _in_check("inventory_status", SourceInventoryStatus, "product_sources_inventory_status_check"),
    )


class DropshipOrder(Base, TimestampMixin):
    """dropship_orders table: the supplier-side purchase for a customer order."""

    __tablename__ = "dropship_orders"

    id: Mapped[uuid.UUID] = _uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    supplier_order_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    supplier_order_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=DropshipStatus.PENDING.value)

    customer_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False)

    tracking_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shipping_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    issue_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    placed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    order: Mapped[Order] = relationship("Order", back_populates="dropship_orders")
    items: Mapped[List["DropshipOrderItem"]] = relationship(
        "DropshipOrderItem", back_populates="dropship_order", cascade="all, delete-orphan"
    )

    __table_args__ = (_in_check("status", DropshipStatus, "dropship_orders_status_check"),)


class DropshipOrderItem(Base):
    """dropship_order_items table."""

    __tablename__ = "dropship_order_items"

    id: Mapped[uuid.UUID] = _uuid_pk()
    dropship_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("dropship_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_source_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("product_sources.id", ondelete="RESTRICT"), nullable=False)
    order_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)

    supplier_sku: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    dropship_order: Mapped[DropshipOrder] = relationship("DropshipOrder", back_populates="items")
    product_source: Mapped[ProductSource] = relationship("ProductSource")
    order_item: Mapped[Optional[OrderItem]] = relationship("OrderItem")
