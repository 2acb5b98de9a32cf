"""
API tests for health, catalog, search, orders and addresses.
"""
import pytest
from fastapi.testclient import TestClient

from src.api import deps
from src.api.main import app

from conftest import SHIPPING_ADDRESS


class TestHealthAndErrors:
    """Test suite for health checks and the error envelope."""

    @pytest.mark.integration
    def test_health(self, client) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Healthy"}
        assert response.headers["X-Request-ID"]

    @pytest.mark.integration
    def test_db_health(self, client) -> None:
        assert client.get("/health/db").json() == {"database": "ok", "ok": True}

    @pytest.mark.integration
    def test_request_id_is_echoed(self, client) -> None:
        response = client.get("/", headers={"X-Request-ID": "req-abc"})
        assert response.headers["X-Request-ID"] == "req-abc"

    @pytest.mark.integration
    def test_not_found_envelope(self, client) -> None:
        response = client.get("/api/products/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"error": "Product not found", "code": "NOT_FOUND", "details": None}
        # Error responses on public routes are not cached.
        assert response.headers["Cache-Control"] == "no-store"

    @pytest.mark.integration
    def test_unhandled_error_is_generic_500(self, client, mocker) -> None:
        mocker.patch("src.services.catalog.list_products", side_effect=RuntimeError("db exploded"))

        response = client.get("/api/products")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "code": "INTERNAL_SERVER_ERROR", "details": None}


class TestCatalogAPI:
    """Test suite for products and categories."""

    @pytest.mark.integration
    def test_list_filters_and_sorts(self, client, make_category, make_variant) -> None:
        tops = make_category()
        make_variant(name="Linen Shirt", price_cents=4000, category=tops)
        make_variant(name="Cotton Tee", price_cents=1500, category=tops, is_featured=True)
        make_variant(name="Sold Out Hat", price_cents=2000, stock=0)

        response = client.get("/api/products", params={"sort": "price_asc"})
        assert response.status_code == 200
        assert [p["name"] for p in response.json()["products"]] == ["Cotton Tee", "Sold Out Hat", "Linen Shirt"]
        assert response.headers["Cache-Control"] == "public, s-maxage=60, stale-while-revalidate=300"

        by_category = client.get("/api/products", params={"category": "tops", "sort": "name"}).json()
        assert [p["name"] for p in by_category["products"]] == ["Cotton Tee", "Linen Shirt"]

        in_stock = client.get("/api/products", params={"in_stock": "true"}).json()
        assert in_stock["total"] == 2

        featured = client.get("/api/products", params={"featured": "true"}).json()
        assert [p["name"] for p in featured["products"]] == ["Cotton Tee"]

        searched = client.get("/api/products", params={"q": "LINEN"}).json()
        assert searched["total"] == 1

    @pytest.mark.integration
    def test_unknown_sort(self, client) -> None:
        response = client.get("/api/products", params={"sort": "random"})
        assert response.status_code == 400
        assert response.json()["error"] == "Unknown sort: random"

    @pytest.mark.integration
    def test_product_detail_reports_stock(self, client, make_variant) -> None:
        variant = make_variant(name="Wool Scarf", stock=3)

        response = client.get(f"/api/products/{variant.product.slug}")

        assert response.status_code == 200
        body = response.json()
        assert body["in_stock"] is True
        assert body["variants"][0]["available"] == 3
        assert body["variants"][0]["low_stock"] is True

    @pytest.mark.integration
    def test_inactive_product_is_hidden(self, client, db, make_variant) -> None:
        variant = make_variant()
        variant.product.is_active = False
        db.commit()
        assert client.get(f"/api/products/{variant.product.slug}").status_code == 404

    @pytest.mark.integration
    def test_categories_and_related(self, client, make_category, make_variant) -> None:
        tops = make_category()
        make_category(name="Hats", slug="hats")
        shirt = make_variant(name="Linen Shirt", category=tops)
        make_variant(name="Cotton Tee", category=tops)

        categories = {c["slug"]: c["product_count"] for c in client.get("/api/categories").json()}
        assert categories == {"hats": 0, "tops": 2}

        detail = client.get("/api/categories/tops").json()
        assert len(detail["products"]) == 2

        related = client.get(f"/api/products/{shirt.product.slug}/related").json()
        assert [p["name"] for p in related] == ["Cotton Tee"]


class TestSearchAPI:
    """Test suite for /api/search."""

    @pytest.mark.integration
    def test_search_is_proxied_with_active_filter(self, client, search_client) -> None:
        search_client.search.return_value = {"hits": [{"objectID": "p1"}], "nbHits": 1, "page": 0, "nbPages": 1}

        response = client.get("/api/search", params={"q": "linen", "hits_per_page": 5})

        assert response.status_code == 200
        assert response.json() == {"hits": [{"objectID": "p1"}], "nb_hits": 1, "page": 0, "nb_pages": 1}
        search_client.search.assert_called_once_with("linen", page=0, hits_per_page=5, filters="isActive:true")


class TestOrdersAPI:
    """Test suite for /api/orders."""

    @pytest.mark.integration
    def test_requires_sign_in(self, client) -> None:
        assert client.get("/api/orders").status_code == 401

    @pytest.mark.integration
    def test_create_from_paid_session_is_idempotent(
        self, client, make_user, make_variant, make_cart, make_checkout, auth, stripe_client
    ) -> None:
        user = make_user()
        checkout = make_checkout(make_cart(user, [(make_variant(price_cents=2000), 1)]), user)

        first = client.post("/api/orders", json={"checkout_session_id": checkout.id}, headers=auth(user))
        assert first.status_code == 201
        body = first.json()
        assert body["created"] is True
        assert body["order"]["payment"]["status"] == "COMPLETED"
        assert body["order"]["items"][0]["quantity"] == 1
        stripe_client.retrieve_checkout_session.assert_called_once_with(checkout.id)

        second = client.post("/api/orders", json={"checkout_session_id": checkout.id}, headers=auth(user))
        assert second.status_code == 200
        assert second.json()["created"] is False
        assert second.json()["order"]["order_number"] == body["order"]["order_number"]

        listed = client.get("/api/orders", headers=auth(user)).json()
        assert listed["total"] == 1

        detail = client.get(f"/api/orders/{body['order']['order_number']}", headers=auth(user))
        assert detail.status_code == 200
        assert detail.json()["shipping_address"]["city"] == "Austin"

    @pytest.mark.integration
    def test_unpaid_session_is_refused(
        self, client, make_user, make_variant, make_cart, make_checkout, auth, stripe_client
    ) -> None:
        stripe_client.retrieve_checkout_session.return_value.payment_status = "unpaid"
        user = make_user()
        checkout = make_checkout(make_cart(user, [(make_variant(), 1)]), user)

        response = client.post("/api/orders", json={"checkout_session_id": checkout.id}, headers=auth(user))

        assert response.status_code == 400
        assert response.json()["code"] == "PAYMENT_ERROR"

    @pytest.mark.integration
    def test_someone_elses_session_is_forbidden(
        self, client, make_user, make_variant, make_cart, make_checkout, auth
    ) -> None:
        owner = make_user()
        checkout = make_checkout(make_cart(owner, [(make_variant(), 1)]), owner)

        response = client.post("/api/orders", json={"checkout_session_id": checkout.id}, headers=auth(make_user()))

        assert response.status_code == 403

    @pytest.mark.integration
    def test_cancel_and_track(
        self, client, make_user, make_variant, make_cart, make_checkout, auth, stripe_client
    ) -> None:
        user = make_user()
        checkout = make_checkout(make_cart(user, [(make_variant(), 1)]), user)
        order_number = client.post(
            "/api/orders", json={"checkout_session_id": checkout.id}, headers=auth(user)
        ).json()["order"]["order_number"]

        tracking = client.get(f"/api/orders/{order_number}/tracking", headers=auth(user))
        assert tracking.status_code == 200
        assert tracking.json()["timeline"][0]["status"] == "Order placed"

        cancelled = client.post(f"/api/orders/{order_number}/cancel", headers=auth(user))
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        stripe_client.create_refund.assert_called_once_with("pi_test_123", reason="requested_by_customer")


class TestAddressesAPI:
    """Test suite for /api/user/addresses."""

    @pytest.mark.integration
    def test_first_address_is_default_and_default_moves(self, client, make_user, auth) -> None:
        headers = auth(make_user())

        first = client.post("/api/user/addresses", json=SHIPPING_ADDRESS, headers=headers)
        assert first.status_code == 201
        assert first.json()["is_default"] is True

        second = client.post(
            "/api/user/addresses", json={**SHIPPING_ADDRESS, "city": "Dallas", "is_default": True}, headers=headers
        )
        listed = client.get("/api/user/addresses", headers=headers).json()
        assert [(a["city"], a["is_default"]) for a in listed] == [("Dallas", True), ("Austin", False)]

        assert client.delete(f"/api/user/addresses/{second.json()['id']}", headers=headers).status_code == 204
        remaining = client.get("/api/user/addresses", headers=headers).json()
        assert [(a["city"], a["is_default"]) for a in remaining] == [("Austin", True)]

    @pytest.mark.integration
    def test_other_users_address_is_not_found(self, client, make_user, auth) -> None:
        created = client.post("/api/user/addresses", json=SHIPPING_ADDRESS, headers=auth(make_user())).json()
        response = client.patch(
            f"/api/user/addresses/{created['id']}", json={"city": "Houston"}, headers=auth(make_user())
        )
        assert response.status_code == 404


class TestLifespan:
    """Test suite for application startup and shutdown."""

    @pytest.mark.integration
    def test_startup_creates_schema_and_shutdown_closes_clients(self, mocker) -> None:
        init_db = mocker.patch("src.api.main.init_db")
        deps.get_email_client.cache_clear()
        deps.get_search_client.cache_clear()
        email = deps.get_email_client()
        search = deps.get_search_client()
        mocker.patch.object(email, "close")
        mocker.patch.object(search, "close")

        with TestClient(app) as client:
            init_db.assert_called_once()
            assert client.get("/").status_code == 200
            email.close.assert_not_called()

        email.close.assert_called_once()
        search.close.assert_called_once()
        assert deps.get_email_client.cache_info().currsize == 0
        assert deps.get_analytics_client.cache_info().currsize == 0
