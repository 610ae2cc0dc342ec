"""Tests for the Shopify Admin GraphQL client."""

import json
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from src.cli.config import ShopifyConfig
from src.services.errors import StorefrontError
from src.services.shopify_client import (
    ShopifyClient,
    normalize_domain,
    to_canonical,
    to_gid,
)
from tests.helpers import FakeTransport, json_response

NOW = datetime(2026, 1, 10, 12, 0, tzinfo=UTC)
TOKEN_OK = json_response(200, {"access_token": "shpat_test"})


def _client(transport: FakeTransport, clock=None) -> ShopifyClient:
    config = ShopifyConfig(
        store_domain="my-shop",
        client_id="cid",
        client_secret="csecret",
        lookback_days=3,
    )
    return ShopifyClient(config, http_client=transport.client(), clock=clock or (lambda: NOW))


def _graphql(handler):
    """Route GraphQL calls to ``handler(query, variables) -> body``."""

    def respond(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        return httpx.Response(200, json=handler(payload["query"], payload["variables"]))

    return respond


def _order_node(number: int, **overrides) -> dict:
    node = {
        "id": f"gid://shopify/Order/{number}",
        "legacyResourceId": str(number),
        "name": f"#{number}",
        "email": "buyer@example.com",
        "phone": "9876543210",
        "displayFinancialStatus": "PENDING",
        "paymentGatewayNames": ["Cash on Delivery (COD)"],
        "createdAt": "2026-01-09T08:00:00Z",
        "risk": {"assessments": [{"riskLevel": "LOW"}]},
        "shippingAddress": {"name": "Asha", "address1": "42 MG Road", "zip": "560038"},
        "lineItems": {"edges": [{"node": {"title": "Case", "quantity": 1}}]},
    }
    node.update(overrides)
    return node


class TestHelpers:
    """Pure helpers."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("my-shop", "my-shop.myshopify.com"),
            ("https://my-shop.myshopify.com/admin", "my-shop.myshopify.com"),
            ("My-Shop.myshopify.com", "my-shop.myshopify.com"),
            ("shop.example.com", "shop.example.com"),
        ],
    )
    def test_normalize_domain(self, raw, expected):
        assert normalize_domain(raw) == expected

    def test_missing_domain_raises(self):
        with pytest.raises(StorefrontError):
            normalize_domain("  ")

    def test_to_gid(self):
        assert to_gid("Order", 1001) == "gid://shopify/Order/1001"
        assert to_gid("Order", "gid://shopify/Order/1001") == "gid://shopify/Order/1001"

    def test_canonical_flattens_line_items_and_risk(self):
        node = _order_node(
            1001,
            risk={"assessments": [{"riskLevel": "LOW"}, {"riskLevel": "HIGH"}]},
        )
        order = to_canonical(node)
        assert order["riskLevel"] == "HIGH"
        assert order["lineItems"] == [{"title": "Case", "quantity": 1}]
        assert order["paymentGatewayNames"] == ["Cash on Delivery (COD)"]

    def test_canonical_without_risk_is_none(self):
        assert to_canonical(_order_node(1, risk=None))["riskLevel"] is None


class TestAccessToken:
    """Client-credentials token handling."""

    async def test_token_cached_until_expiry(self):
        now = [NOW]
        transport = FakeTransport({("POST", "/admin/oauth/access_token"): TOKEN_OK})
        client = _client(transport, clock=lambda: now[0])

        await client.get_access_token()
        await client.get_access_token()
        assert len(transport.calls("/admin/oauth/access_token")) == 1

        now[0] = NOW + timedelta(hours=24)
        await client.get_access_token()
        assert len(transport.calls("/admin/oauth/access_token")) == 2

    async def test_token_request_uses_client_credentials(self):
        transport = FakeTransport({("POST", "/admin/oauth/access_token"): TOKEN_OK})
        await _client(transport).get_access_token()
        request = transport.requests[0]
        assert request.url.host == "my-shop.myshopify.com"
        assert json.loads(request.content)["grant_type"] == "client_credentials"

    async def test_rejected_token_raises(self):
        transport = FakeTransport(
            {("POST", "/admin/oauth/access_token"): json_response(401, {"error": "invalid_client"})}
        )
        with pytest.raises(StorefrontError, match="Authentication failed"):
            await _client(transport).get_access_token()


class TestOrders:
    """Order queries."""

    async def test_unfulfilled_orders_follow_pagination(self):
        pages = {
            None: {"orders": {
                "edges": [{"node": _order_node(1001)}],
                "pageInfo": {"hasNextPage": True, "endCursor": "c1"},
            }},
            "c1": {"orders": {
                "edges": [{"node": _order_node(1002)}],
                "pageInfo": {"hasNextPage": False, "endCursor": None},
            }},
        }
        seen_queries = []

        def handler(query, variables):
            seen_queries.append(variables["query"])
            return {"data": pages[variables["cursor"]]}

        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(handler),
        })
        orders = await _client(transport).get_unfulfilled_orders()

        assert [o["name"] for o in orders] == ["#1001", "#1002"]
        assert seen_queries[0] == (
            "fulfillment_status:unfulfilled status:open created_at:>=2026-01-07T12:00:00Z"
        )

    def test_filter_prefers_explicit_dates(self):
        client = _client(FakeTransport())
        query = client.build_orders_filter(start_date="2026-01-01", end_date="2026-01-03")
        assert query == (
            "fulfillment_status:unfulfilled status:open "
            "created_at:>=2026-01-01 created_at:<=2026-01-03"
        )

    async def test_get_order_by_numeric_id(self):
        captured = {}

        def handler(query, variables):
            captured.update(variables)
            return {"data": {"order": _order_node(1001)}}

        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(handler),
        })
        order = await _client(transport).get_order("1001")
        assert captured["id"] == "gid://shopify/Order/1001"
        assert order["name"] == "#1001"
        assert order["riskLevel"] == "LOW"

    async def test_missing_order_raises(self):
        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(lambda q, v: {"data": {"order": None}}),
        })
        with pytest.raises(StorefrontError, match="Order 42 not found"):
            await _client(transport).get_order(42)

    async def test_graphql_errors_raise(self):
        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(
                lambda q, v: {"errors": [{"message": "Throttled"}]}
            ),
        })
        with pytest.raises(StorefrontError, match="Throttled"):
            await _client(transport).get_order(1)


class TestSkuAssignment:
    """Next-SKU calculation and variant updates."""

    def _products(self, skus):
        return {"data": {"products": {"edges": [
            {"node": {"variants": {"edges": [{"node": {"sku": sku}} for sku in skus]}}}
        ]}}}

    async def test_next_sku_is_max_numeric_plus_one(self):
        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(
                lambda q, v: self._products(["105", "ABC-1", "", "99"])
            ),
        })
        assert await _client(transport).calculate_next_sku() == 106

    async def test_first_sku_when_none_numeric(self):
        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(lambda q, v: self._products(["X1"])),
        })
        assert await _client(transport).calculate_next_sku() == 100

    async def test_assign_sets_every_variant(self):
        mutations = []

        def handler(query, variables):
            if "productVariantsBulkUpdate" in query:
                mutations.append(variables)
                return {"data": {"productVariantsBulkUpdate": {"userErrors": []}}}
            if "variants(first" in query and "product(" in query:
                return {"data": {"product": {"variants": {"edges": [
                    {"node": {"id": "gid://shopify/ProductVariant/1"}},
                    {"node": {"id": "gid://shopify/ProductVariant/2"}},
                ]}}}}
            return self._products(["120"])

        transport = FakeTransport({
            ("POST", "/admin/oauth/access_token"): TOKEN_OK,
            ("POST", "/graphql.json"): _graphql(handler),
        })
        sku = await _client(transport).assign_sku_to_product("555")

        assert sku == 121
        assert mutations[0]["productId"] == "gid://shopify/Product/555"
        assert [v["inventoryItem"]["sku"] for v in mutations[0]["variants"]] == ["121", "121"]
