"""
Pytest configuration and fixtures.

The application engine is created at import time, so the environment is set
before anything under src is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fake_key_for_testing"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_fake_secret"
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["ALLOWED_ORIGINS"] = "http://localhost:3000"

import uuid  # noqa: E402
from typing import Any, Generator, Optional  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import src.db.models  # noqa: E402,F401
from src.api import deps  # noqa: E402
from src.api.main import app  # noqa: E402
from src.db.base import Base  # noqa: E402
from src.db.models import (  # noqa: E402
    Cart,
    CartItem,
    Category,
    CheckoutSession,
    Discount,
    Inventory,
    Product,
    ProductSource,
    Supplier,
    User,
    UserRole,
    Variant,
)
from src.db.session import get_db  # noqa: E402

SHIPPING_ADDRESS = {
    "first_name": "Jane",
    "last_name": "Doe",
    "company": None,
    "line1": "1 Main St",
    "line2": None,
    "city": "Austin",
    "state": "TX",
    "postal_code": "78701",
    "country": "US",
    "phone": "+15125550100",
}


@pytest.fixture
def engine() -> Generator[Any, None, None]:
    """In-memory SQLite engine shared across threads for the TestClient."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine: Any) -> Generator[Session, None, None]:
    """Create test database session."""
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture
def stripe_client() -> MagicMock:
    mock = MagicMock(name="StripeClient")
    mock.create_checkout_session.return_value = MagicMock(
        id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123", expires_at=1893456000
    )
    mock.create_coupon.return_value = MagicMock(id="coupon_test_1")
    mock.create_refund.return_value = MagicMock(id="re_test_1")
    mock.retrieve_checkout_session.return_value = MagicMock(payment_status="paid", payment_intent="pi_test_123")
    return mock


@pytest.fixture
def email_client() -> MagicMock:
    mock = MagicMock(name="EmailClient")
    mock.send.return_value = True
    return mock


@pytest.fixture
def analytics_client() -> MagicMock:
    return MagicMock(name="AnalyticsClient")


@pytest.fixture
def search_client() -> MagicMock:
    mock = MagicMock(name="SearchIndexClient")
    mock.search.return_value = {"hits": [], "nbHits": 0, "page": 0, "nbPages": 0}
    return mock


@pytest.fixture
def client(
    db: Session,
    stripe_client: MagicMock,
    email_client: MagicMock,
    analytics_client: MagicMock,
    search_client: MagicMock,
) -> Generator[TestClient, None, None]:
    """Create test HTTP client wired to the test session and mocked integrations."""

    def _get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[deps.get_stripe_client] = lambda: stripe_client
    app.dependency_overrides[deps.get_email_client] = lambda: email_client
    app.dependency_overrides[deps.get_analytics_client] = lambda: analytics_client
    app.dependency_overrides[deps.get_search_client] = lambda: search_client
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Gateway identity header for a user."""

    def _headers(user: User) -> dict:
        return {"X-User-Id": str(user.id)}

    return _headers


@pytest.fixture
def make_user(db: Session):
    def _make(email: Optional[str] = None, role: str = UserRole.CUSTOMER.value, name: str = "Jane Doe") -> User:
        user = User(email=email or f"{uuid.uuid4().hex[:8]}@example.com", name=name, role=role)
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_category(db: Session):
    def _make(name: str = "Tops", slug: str = "tops") -> Category:
        category = Category(name=name, slug=slug)
        db.add(category)
        db.commit()
        return category

    return _make


@pytest.fixture
def make_variant(db: Session):
    """Product with one variant and its inventory row."""

    def _make(
        name: str = "Linen Shirt",
        slug: Optional[str] = None,
        price_cents: int = 2500,
        stock: int = 10,
        category: Optional[Category] = None,
        variant_name: str = "M / White",
        is_featured: bool = False,
    ) -> Variant:
        slug = slug or f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}"
        product = Product(
            name=name,
            slug=slug,
            description=f"{name} description",
            base_price_cents=price_cents,
            category=category,
            is_featured=is_featured,
        )
        variant = Variant(
            product=product,
            name=variant_name,
            sku=f"SKU-{uuid.uuid4().hex[:8].upper()}",
            size="M",
            color="White",
            price_cents=price_cents,
        )
        variant.inventory = Inventory(quantity=stock, reserved_quantity=0, available=stock, low_stock_threshold=5)
        db.add(product)
        db.commit()
        return variant

    return _make


@pytest.fixture
def make_cart(db: Session):
    def _make(user: Optional[User] = None, lines: Optional[list] = None, session_id: Optional[str] = None) -> Cart:
        cart = Cart(
            user_id=user.id if user else None,
            session_id=None if user else (session_id or uuid.uuid4().hex),
            email=user.email if user else None,
        )
        for variant, quantity in lines or []:
            cart.items.append(CartItem(variant_id=variant.id, quantity=quantity))
        db.add(cart)
        db.commit()
        return cart

    return _make


@pytest.fixture
def make_checkout(db: Session):
    """CheckoutSession row as the checkout service would have written it."""

    def _make(
        cart: Cart,
        user: Optional[User] = None,
        session_id: Optional[str] = None,
        shipping_cents: int = 599,
        tax_cents: int = 0,
        discount_code: Optional[str] = None,
        discount_cents: int = 0,
    ) -> CheckoutSession:
        subtotal = sum(item.variant.price_cents * item.quantity for item in cart.items)
        checkout = CheckoutSession(
            id=session_id or f"cs_test_{uuid.uuid4().hex[:10]}",
            cart_id=cart.id,
            user_id=user.id if user else None,
            email=user.email if user else "guest@example.com",
            shipping_address=dict(SHIPPING_ADDRESS),
            billing_address=dict(SHIPPING_ADDRESS),
            shipping_method="standard",
            discount_code=discount_code,
            subtotal_cents=subtotal,
            shipping_cents=shipping_cents,
            tax_cents=tax_cents,
            discount_cents=discount_cents,
            total_cents=subtotal + shipping_cents + tax_cents - discount_cents,
        )
        db.add(checkout)
        db.commit()
        return checkout

    return _make


@pytest.fixture
def make_discount(db: Session):
    def _make(code: str = "SAVE10", type: str = "PERCENTAGE", value: int = 10, **fields: Any) -> Discount:
        discount = Discount(code=code, type=type, value=value, **fields)
        db.add(discount)
        db.commit()
        return discount

    return _make


@pytest.fixture
def make_source(db: Session):
    """Supplier source for a product, as the CMS sync would create it."""

    def _make(variant: Variant, cost_cents: int = 900, mapping: Optional[dict] = None) -> ProductSource:
        supplier = Supplier(external_store_id=f"store-{uuid.uuid4().hex[:6]}", name="Acme Supply")
        product = variant.product
        source = ProductSource(
            product_id=product.id,
            cms_product_id=product.cms_id or f"cms-{product.slug}",
            product_slug=product.slug,
            supplier=supplier,
            supplier_product_id="100200300",
            supplier_url="https://supplier.example.com/item/100200300",
            supplier_sku="SUP-DEFAULT",
            original_price_cents=cost_cents,
            variant_mapping=mapping if mapping is not None else {variant.sku: "SUP-M-WHITE"},
        )
        db.add(source)
        db.commit()
        return source

    return _make
