"""
Pydantic schemas for API request/response models.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator


class ORMModel(BaseModel):
    """Base for responses built from ORM rows."""

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------


class AddressIn(BaseModel):
    """Postal address as submitted by the storefront."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: Optional[str] = Field(default=None, max_length=200)
    line1: str = Field(..., min_length=1, max_length=200)
    line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2 code")
    phone: Optional[str] = Field(default=None, max_length=30)

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        return v.upper()


class AddressCreate(AddressIn):
    is_default: bool = False


class AddressUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    company: Optional[str] = Field(default=None, max_length=200)
    line1: Optional[str] = Field(default=None, min_length=1, max_length=200)
    line2: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, min_length=1, max_length=100)
    postal_code: Optional[str] = Field(default=None, min_length=1, max_length=20)
    country: Optional[str] = Field(default=None, min_length=2, max_length=2)
    phone: Optional[str] = Field(default=None, max_length=30)
    is_default: Optional[bool] = None

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class AddressResponse(ORMModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    company: Optional[str] = None
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: Optional[str] = None
    is_default: bool


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class CategoryResponse(ORMModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None


class CategoryWithCount(CategoryResponse):
    product_count: int = 0


class ProductSummary(ORMModel):
    id: uuid.UUID
    name: str
    slug: str
    description: Optional[str] = None
    base_price_cents: int
    compare_at_price_cents: Optional[int] = None
    images: Optional[List[str]] = None
    category_id: Optional[uuid.UUID] = None
    is_featured: bool
    is_new: bool


class ProductListResponse(BaseModel):
    products: List[ProductSummary]
    total: int
    page: int
    page_size: int


class VariantView(BaseModel):
    id: uuid.UUID
    name: str
    sku: str
    size: Optional[str] = None
    color: Optional[str] = None
    price_cents: int
    compare_at_price_cents: Optional[int] = None
    available: int
    in_stock: bool
    low_stock: bool


class ProductDetailResponse(BaseModel):
    product: ProductSummary
    variants: List[VariantView]
    in_stock: bool


class CategoryDetailResponse(BaseModel):
    category: CategoryResponse
    products: List[ProductSummary]


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class AddCartItemRequest(BaseModel):
    variant_id: uuid.UUID
    quantity: int = Field(default=1, ge=1, le=99)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=99, description="0 removes the item")


class ApplyDiscountRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)


class CartItemView(BaseModel):
    id: uuid.UUID
    variant_id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    product_slug: str
    variant_name: str
    sku: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    available: int


class CartResponse(BaseModel):
    cart_id: uuid.UUID
    items: List[CartItemView]
    item_count: int
    subtotal_cents: int
    discount_code: Optional[str] = None
    discount_cents: int = 0


class CartItemMutationResponse(BaseModel):
    item_id: Optional[uuid.UUID] = None
    quantity: int
    cart: CartResponse


class DiscountAppliedResponse(BaseModel):
    code: str
    discount_cents: int
    cart: CartResponse


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------


class CheckoutRequest(BaseModel):
    """Request schema for starting a hosted checkout."""

    email: EmailStr
    shipping_address: AddressIn
    billing_address: Optional[AddressIn] = None
    use_same_billing_address: bool = True
    shipping_method_id: str = Field(default="standard", min_length=1)
    discount_code: Optional[str] = Field(default=None, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def require_billing_address(self) -> "CheckoutRequest":
        if not self.use_same_billing_address and self.billing_address is None:
            raise ValueError("billing_address is required when use_same_billing_address is false")
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "email": "jane@example.com",
                    "shipping_address": {
                        "first_name": "Jane",
                        "last_name": "Doe",
                        "line1": "1 Main St",
                        "city": "Austin",
                        "state": "TX",
                        "postal_code": "78701",
                        "country": "US",
                    },
                    "use_same_billing_address": True,
                    "shipping_method_id": "standard",
                }
            ]
        }
    }


class CheckoutResponse(BaseModel):
    session_id: str
    url: Optional[str] = None


class TotalsView(BaseModel):
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int


class CheckoutSessionResponse(TotalsView):
    id: str
    status: str
    email: EmailStr
    shipping_method: str
    discount_code: Optional[str] = None
    expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    order_number: Optional[str] = None


class QuoteRequest(BaseModel):
    country: str = Field(..., min_length=2, max_length=2)
    state: Optional[str] = None
    shipping_method_id: str = "standard"

    @field_validator("country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        return v.upper()


class ShippingOptionView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    price_cents: int
    estimated_days: str


class QuoteResponse(BaseModel):
    options: List[ShippingOptionView]
    tax_rate: float
    totals: TotalsView


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class CreateOrderRequest(BaseModel):
    checkout_session_id: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class OrderItemView(ORMModel):
    id: uuid.UUID
    variant_id: uuid.UUID
    product_id: uuid.UUID
    product_name: str
    variant_name: str
    sku: str
    quantity: int
    unit_price_cents: int
    total_price_cents: int


class PaymentView(ORMModel):
    status: str
    amount_cents: int
    refunded_cents: int
    currency: str
    payment_method: Optional[str] = None
    card_last4: Optional[str] = None
    card_brand: Optional[str] = None


class ShippingView(ORMModel):
    service: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    status: str
    estimated_delivery: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class OrderSummary(ORMModel):
    id: uuid.UUID
    order_number: str
    status: str
    payment_status: str
    fulfillment_status: str
    currency: str
    total_cents: int
    customer_email: EmailStr
    created_at: datetime


class OrderResponse(OrderSummary):
    subtotal_cents: int
    shipping_cents: int
    tax_cents: int
    discount_cents: int
    shipping_address: Dict[str, Any]
    billing_address: Optional[Dict[str, Any]] = None
    customer_phone: Optional[str] = None
    shipping_method: Optional[str] = None
    discount_code: Optional[str] = None
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemView] = []
    payment: Optional[PaymentView] = Field(default=None, validation_alias=AliasChoices("latest_payment", "payment"))
    shipping: Optional[ShippingView] = None


class OrderListResponse(BaseModel):
    orders: List[OrderSummary]
    total: int
    page: int
    page_size: int


class CreateOrderResponse(BaseModel):
    created: bool
    order: OrderResponse


class TimelineEvent(BaseModel):
    status: str
    description: str
    timestamp: datetime


class TrackingResponse(BaseModel):
    order_number: str
    status: str
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    timeline: List[TimelineEvent]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class RegistryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    event_date: Optional[datetime] = None


class RegistryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    event_date: Optional[datetime] = None
    is_public: Optional[bool] = None
    status: Optional[str] = None


class RegistryItemCreate(BaseModel):
    variant_id: uuid.UUID
    quantity: int = Field(default=1, ge=1, le=99)
    priority: str = "MEDIUM"
    notes: Optional[str] = Field(default=None, max_length=500)


class RegistryItemUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1, le=99)
    priority: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class PurchaseRequest(BaseModel):
    quantity: int = Field(default=1, ge=1)


class ShareRegistryRequest(BaseModel):
    emails: List[EmailStr] = Field(..., min_length=1, max_length=20)
    message: Optional[str] = Field(default=None, max_length=1000)


class ShareRegistryResponse(BaseModel):
    sent: int


class RegistryItemView(ORMModel):
    id: uuid.UUID
    product_id: uuid.UUID
    variant_id: uuid.UUID
    product_name: str
    product_slug: str
    variant_name: str
    quantity: int
    quantity_purchased: int
    remaining: int
    priority: str
    notes: Optional[str] = None


class RegistryResponse(ORMModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    share_code: str
    is_public: bool
    status: str
    created_at: datetime


class RegistryDetailResponse(BaseModel):
    registry: RegistryResponse
    items: List[RegistryItemView]
    is_owner: bool


# ---------------------------------------------------------------------------
# Admin / fulfillment
# ---------------------------------------------------------------------------


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., min_length=1)


class LowStockView(BaseModel):
    variant_id: uuid.UUID
    sku: str
    product_name: str
    variant_name: str
    available: int
    threshold: int


class DashboardResponse(BaseModel):
    orders_by_status: Dict[str, int]
    total_orders: int
    revenue_cents: int
    orders_last_30_days: int
    low_stock: List[LowStockView]
    fulfillment: Dict[str, int]


class TrackingRequest(BaseModel):
    tracking_number: str = Field(..., min_length=1)
    carrier: Optional[str] = None
    tracking_url: Optional[str] = None


class PlacedRequest(BaseModel):
    supplier_order_id: str = Field(..., min_length=1)


class IssueRequest(BaseModel):
    issue: str = Field(..., min_length=1, max_length=2000)


class DropshipItemView(ORMModel):
    id: uuid.UUID
    product_source_id: uuid.UUID
    order_item_id: Optional[uuid.UUID] = None
    supplier_sku: str
    quantity: int
    unit_cost_cents: int
    total_cost_cents: int


class DropshipOrderView(ORMModel):
    id: uuid.UUID
    order_id: uuid.UUID
    supplier_order_id: Optional[str] = None
    status: str
    customer_email: Optional[EmailStr] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None
    total_cost_cents: int
    shipping_cost_cents: int
    issue_note: Optional[str] = None
    placed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    items: List[DropshipItemView] = []


class FulfillmentListResponse(BaseModel):
    orders: List[DropshipOrderView]
    total: int
    limit: int
    offset: int


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str]
    warnings: List[str]


class HistoryEntry(BaseModel):
    status: str
    timestamp: Optional[datetime] = None
    note: Optional[str] = None


class FulfillmentDetailResponse(BaseModel):
    order: DropshipOrderView
    validation: ValidationResult
    history: List[HistoryEntry]
    supplier_order: Dict[str, Any]


# ---------------------------------------------------------------------------
# Search, webhooks, cron
# ---------------------------------------------------------------------------


class SearchResponse(BaseModel):
    hits: List[Dict[str, Any]]
    nb_hits: int
    page: int
    nb_pages: int


class WebhookResponse(BaseModel):
    received: bool
    event_type: Optional[str] = None


class AbandonmentRunResponse(BaseModel):
    sent: int
    failed: int
    skipped: int
