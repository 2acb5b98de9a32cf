"""
Tests for the HTTP integrations, run against httpx.MockTransport.
"""
import json
from types import SimpleNamespace
from typing import Callable, List

import httpx
import pytest

from src.core.config import Settings
from src.core.errors import ExternalServiceError
from src.integrations.analytics import COLLECT_URL, AnalyticsClient
from src.integrations.cms import CMSClient
from src.integrations.email import SENDGRID_URL, EmailClient, EmailMessage, order_confirmation
from src.integrations.http import request_json
from src.integrations.search_index import SearchIndexClient


def _client(handler: Callable[[httpx.Request], httpx.Response], seen: List[httpx.Request]) -> httpx.Client:
    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.Client(transport=httpx.MockTransport(_record))


class TestRequestJson:
    """Test suite for the shared request helper."""

    @pytest.mark.unit
    def test_returns_json(self) -> None:
        seen: List[httpx.Request] = []
        client = _client(lambda r: httpx.Response(200, json={"ok": True}), seen)
        assert request_json(client, "Demo", "GET", "https://demo.test/x") == {"ok": True}

    @pytest.mark.unit
    def test_empty_body_is_none(self) -> None:
        client = _client(lambda r: httpx.Response(202), [])
        assert request_json(client, "Demo", "POST", "https://demo.test/x") is None

    @pytest.mark.unit
    def test_status_error(self) -> None:
        client = _client(lambda r: httpx.Response(503, text="unavailable"), [])
        with pytest.raises(ExternalServiceError, match="Demo returned 503") as exc_info:
            request_json(client, "Demo", "GET", "https://demo.test/x")
        assert exc_info.value.status_code == 502
        assert exc_info.value.service == "Demo"

    @pytest.mark.unit
    def test_connection_error(self) -> None:
        def _fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = _client(_fail, [])
        with pytest.raises(ExternalServiceError, match="Cannot reach Demo"):
            request_json(client, "Demo", "GET", "https://demo.test/x")

    @pytest.mark.unit
    def test_timeout(self) -> None:
        def _slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(_slow, [])
        with pytest.raises(ExternalServiceError, match="timed out"):
            request_json(client, "Demo", "GET", "https://demo.test/x")


class TestEmailClient:
    """Test suite for the SendGrid sender."""

    @pytest.mark.unit
    def test_unconfigured_returns_false(self) -> None:
        seen: List[httpx.Request] = []
        email = EmailClient(Settings(sendgrid_api_key=""), client=_client(lambda r: httpx.Response(202), seen))
        assert email.send(EmailMessage(to="a@example.com", subject="Hi", html="<p>Hi</p>")) is False
        assert seen == []

    @pytest.mark.unit
    def test_posts_sendgrid_payload(self) -> None:
        seen: List[httpx.Request] = []
        settings = Settings(sendgrid_api_key="SG.key", email_from="shop@example.com", store_name="Kind Shop")
        email = EmailClient(settings, client=_client(lambda r: httpx.Response(202), seen))

        assert email.send(EmailMessage(to="a@example.com", subject="Hi", html="<p>Hi</p>", text="Hi")) is True

        request = seen[0]
        assert str(request.url) == SENDGRID_URL
        assert request.headers["Authorization"] == "Bearer SG.key"
        body = json.loads(request.content)
        assert body["from"] == {"email": "shop@example.com", "name": "Kind Shop"}
        assert body["personalizations"] == [{"to": [{"email": "a@example.com"}]}]
        assert [part["type"] for part in body["content"]] == ["text/plain", "text/html"]

    @pytest.mark.unit
    def test_rejection_raises(self) -> None:
        email = EmailClient(Settings(sendgrid_api_key="SG.key"), client=_client(lambda r: httpx.Response(401), []))
        with pytest.raises(ExternalServiceError):
            email.send(EmailMessage(to="a@example.com", subject="Hi", html="<p>Hi</p>"))

    @pytest.mark.unit
    def test_order_confirmation_escapes_names(self) -> None:
        order = SimpleNamespace(
            order_number="KP-1-ABCD",
            customer_email="a@example.com",
            items=[SimpleNamespace(product_name="<b>Mug</b>", variant_name="Blue", quantity=1, total_price_cents=1200)],
            subtotal_cents=1200,
            shipping_cents=599,
            tax_cents=0,
            discount_cents=0,
            total_cents=1799,
            shipping_address={"first_name": "Jane", "last_name": "Doe", "line1": "1 Main St", "city": "Austin", "state": "TX", "postal_code": "78701", "country": "US"},
        )

        message = order_confirmation(Settings(store_name="Kind Shop"), order)

        assert message.to == "a@example.com"
        assert "KP-1-ABCD" in message.subject
        assert "&lt;b&gt;Mug&lt;/b&gt;" in message.html
        assert "$17.99" in message.html


class TestSearchIndexClient:
    """Test suite for the Algolia client."""

    @pytest.fixture
    def settings(self) -> Settings:
        return Settings(algolia_app_id="app1", algolia_admin_key="admin-key", algolia_index_name="products")

    @pytest.mark.unit
    def test_disabled_client_refuses(self) -> None:
        client = SearchIndexClient(Settings(algolia_app_id="", algolia_admin_key=""), client=_client(lambda r: httpx.Response(200), []))
        assert client.enabled is False
        with pytest.raises(ExternalServiceError, match="not configured"):
            client.save_objects([{"objectID": "1"}])

    @pytest.mark.unit
    def test_save_objects_in_batches(self, settings) -> None:
        seen: List[httpx.Request] = []
        client = SearchIndexClient(settings, client=_client(lambda r: httpx.Response(200, json={"taskID": 1}), seen))

        batches = client.save_objects([{"objectID": str(i)} for i in range(5)], batch_size=2)

        assert batches == 3
        assert str(seen[0].url) == "https://app1.algolia.net/1/indexes/products/batch"
        assert seen[0].headers["X-Algolia-API-Key"] == "admin-key"
        assert [len(json.loads(r.content)["requests"]) for r in seen] == [2, 2, 1]
        assert json.loads(seen[0].content)["requests"][0] == {"action": "updateObject", "body": {"objectID": "0"}}

    @pytest.mark.unit
    def test_search_sends_filters(self, settings) -> None:
        seen: List[httpx.Request] = []
        client = SearchIndexClient(settings, client=_client(lambda r: httpx.Response(200, json={"hits": [], "nbHits": 0}), seen))

        assert client.search("linen", page=1, hits_per_page=10, filters="isActive:true") == {"hits": [], "nbHits": 0}
        assert json.loads(seen[0].content) == {"query": "linen", "page": 1, "hitsPerPage": 10, "filters": "isActive:true"}


class TestCMSClient:
    """Test suite for the Sanity query client."""

    @pytest.mark.unit
    def test_unconfigured(self) -> None:
        cms = CMSClient(Settings(sanity_project_id=""), client=_client(lambda r: httpx.Response(200), []))
        with pytest.raises(ExternalServiceError, match="Sanity is not configured"):
            cms.fetch_products()

    @pytest.mark.unit
    def test_query_and_params(self) -> None:
        seen: List[httpx.Request] = []
        settings = Settings(sanity_project_id="abc123", sanity_dataset="production", sanity_api_token="tok")
        cms = CMSClient(settings, client=_client(lambda r: httpx.Response(200, json={"result": [{"_id": "p1"}]}), seen))

        assert cms.fetch('*[_type == "product" && slug.current == $slug]', {"slug": "linen"}) == [{"_id": "p1"}]

        request = seen[0]
        assert request.url.host == "abc123.api.sanity.io"
        assert request.url.params["$slug"] == '"linen"'
        assert request.headers["Authorization"] == "Bearer tok"


class TestAnalyticsClient:
    """Test suite for GA4 events."""

    @pytest.mark.unit
    def test_refund_event(self) -> None:
        seen: List[httpx.Request] = []
        settings = Settings(ga4_measurement_id="G-TEST", ga4_api_secret="secret")
        analytics = AnalyticsClient(settings, client=_client(lambda r: httpx.Response(204), seen))
        order = SimpleNamespace(user_id=None, id="order-1", order_number="KP-1-ABCD", currency="USD")

        assert analytics.track_refund(order, 1999) is True

        request = seen[0]
        assert str(request.url).startswith(COLLECT_URL)
        assert request.url.params["measurement_id"] == "G-TEST"
        body = json.loads(request.content)
        assert body["client_id"] == "order-1"
        assert body["events"] == [
            {"name": "refund", "params": {"transaction_id": "KP-1-ABCD", "currency": "USD", "value": 19.99}}
        ]

    @pytest.mark.unit
    def test_disabled_is_a_no_op(self) -> None:
        seen: List[httpx.Request] = []
        analytics = AnalyticsClient(Settings(ga4_measurement_id=""), client=_client(lambda r: httpx.Response(204), seen))
        assert analytics.track_refund(SimpleNamespace(user_id=None, id="o", order_number="KP", currency="USD"), 1) is False
        assert seen == []
