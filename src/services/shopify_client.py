"""Shopify Admin GraphQL client.

Authenticates with the client-credentials grant, then talks GraphQL to
the Admin API. Orders are returned in a canonical dict shape (camelCase
keys, ``lineItems`` flattened to a list of line item nodes, ``riskLevel``
resolved to a single string) that the processor, risk validator and label
job consume.

Example:
    async with ShopifyClient(config.shopify) as shopify:
        orders = await shopify.get_unfulfilled_orders(lookback_days=3)
"""

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from src.cli.config import ShopifyConfig
from src.services.errors import StorefrontError

logger = logging.getLogger(__name__)

# Tokens live 24h; refresh an hour early
TOKEN_TTL = timedelta(hours=23)

ORDERS_PAGE_SIZE = 50
DEFAULT_FIRST_SKU = 100

_LINE_ITEM_FIELDS = """
              title
              variantTitle
              sku
              quantity
              originalUnitPrice
              customAttributes {
                key
                value
              }
              variant {
                id
                title
                sku
                image {
                  url
                }
                handle_metafield: metafield(namespace: "custom", key: "handle") {
                  value
                }
                color_handle: metafield(namespace: "custom", key: "color_handle") {
                  value
                }
                selectedOptions {
                  name
                  value
                }
                inventoryItem {
                  unitCost {
                    amount
                  }
                }
              }
              product {
                id
                featuredImage {
                  url
                }
                onlineStoreUrl
                handle
                productType
              }
"""

_ORDER_FIELDS = """
        id
        legacyResourceId
        name
        email
        phone
        createdAt
        displayFinancialStatus
        paymentGatewayNames
        risk {
          assessments {
            riskLevel
          }
        }
        shippingAddress {
          name
          address1
          address2
          city
          province
          zip
          country
          phone
        }
        lineItems(first: 100) {
          edges {
            node {
""" + _LINE_ITEM_FIELDS + """
            }
          }
        }
"""

UNFULFILLED_ORDERS_QUERY = """
query GetUnfulfilledOrders($cursor: String, $query: String!) {
  orders(first: %d, after: $cursor, query: $query, sortKey: CREATED_AT, reverse: true) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
%s
      }
    }
  }
}
""" % (ORDERS_PAGE_SIZE, _ORDER_FIELDS)

ORDER_QUERY = """
query GetOrder($id: ID!) {
  order(id: $id) {
%s
  }
}
""" % _ORDER_FIELDS

RECENT_PRODUCT_SKUS_QUERY = """
query GetRecentProducts {
  products(first: 250, sortKey: CREATED_AT, reverse: true) {
    edges {
      node {
        variants(first: 20) {
          edges {
            node {
              sku
            }
          }
        }
      }
    }
  }
}
"""

PRODUCT_VARIANTS_QUERY = """
query GetProductVariants($id: ID!) {
  product(id: $id) {
    variants(first: 100) {
      edges {
        node {
          id
        }
      }
    }
  }
}
"""

VARIANTS_SKU_MUTATION = """
mutation SetVariantSkus($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants {
      id
      sku
    }
    userErrors {
      field
      message
    }
  }
}
"""

_RISK_ORDER = ("HIGH", "MEDIUM", "LOW")
_NUMERIC_SKU = re.compile(r"^\d+$")


def normalize_domain(domain: str) -> str:
    """Reduce a configured store domain to ``<shop>.myshopify.com`` form.

    Strips scheme and path; a bare shop handle gets ``.myshopify.com``.

    Raises:
        StorefrontError: If no domain is configured.
    """
    if not domain or not domain.strip():
        raise StorefrontError("SHOPIFY_STORE_DOMAIN is not configured")
    cleaned = domain.strip().lower()
    cleaned = re.sub(r"^https?://", "", cleaned)
    cleaned = re.sub(r"/.*$", "", cleaned)
    if ".myshopify.com" not in cleaned and "." not in cleaned:
        cleaned = f"{cleaned}.myshopify.com"
    return cleaned


def to_gid(resource: str, identifier: str | int) -> str:
    """Convert a numeric id to a Shopify GID; GIDs pass through."""
    value = str(identifier).strip()
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{resource}/{value}"


def _resolve_risk_level(node: dict[str, Any]) -> str | None:
    if node.get("riskLevel"):
        return node["riskLevel"]
    assessments = (node.get("risk") or {}).get("assessments") or []
    levels = {a.get("riskLevel") for a in assessments if a.get("riskLevel")}
    for level in _RISK_ORDER:
        if level in levels:
            return level
    return None


def to_canonical(node: dict[str, Any]) -> dict[str, Any]:
    """Flatten a GraphQL order node into the canonical order dict."""
    line_items = node.get("lineItems") or []
    if isinstance(line_items, dict):
        line_items = [edge["node"] for edge in line_items.get("edges") or []]
    return {
        "id": node.get("id"),
        "legacyResourceId": node.get("legacyResourceId"),
        "name": node.get("name") or "",
        "email": node.get("email"),
        "phone": node.get("phone"),
        "riskLevel": _resolve_risk_level(node),
        "shippingAddress": node.get("shippingAddress"),
        "lineItems": line_items,
        "displayFinancialStatus": node.get("displayFinancialStatus"),
        "paymentGatewayNames": node.get("paymentGatewayNames") or [],
        "createdAt": node.get("createdAt"),
    }


class ShopifyClient:
    """Shopify Admin API client using the client-credentials grant."""

    def __init__(
        self,
        config: ShopifyConfig,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Store domain, app credentials, API version and timeout.
            http_client: Optional pre-built httpx client (tests inject a
                mock transport here).
            clock: Returns the current UTC time; used for token expiry and
                lookback windows.
        """
        self._config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock or (lambda: datetime.now(UTC))
        self._access_token: str | None = None
        self._token_expiry: datetime | None = None

    async def __aenter__(self) -> "ShopifyClient":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.timeout_seconds)
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def domain(self) -> str:
        """Normalized store domain."""
        return normalize_domain(self._config.store_domain)

    def product_url(self, handle: str) -> str:
        """Public storefront URL for a product handle."""
        return f"https://{self.domain}/products/{handle}"

    async def get_access_token(self) -> str:
        """Return a cached admin token, fetching a new one when expired.

        Raises:
            StorefrontError: If the token request fails.
        """
        now = self._clock()
        if self._access_token and self._token_expiry and now < self._token_expiry:
            return self._access_token

        url = f"https://{self.domain}/admin/oauth/access_token"
        logger.info("Fetching new Shopify access token for %s", self.domain)
        client = self._ensure_client()
        try:
            response = await client.post(
                url,
                json={
                    "client_id": self._config.client_id,
                    "client_secret": self._config.client_secret,
                    "grant_type": "client_credentials",
                },
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise StorefrontError(f"Authentication failed: {e}") from e

        if response.status_code >= 400:
            logger.error("Shopify token request rejected (HTTP %d)", response.status_code)
            raise StorefrontError("Authentication failed", status_code=response.status_code)

        token = response.json().get("access_token")
        if not token:
            raise StorefrontError("Authentication failed: no access_token in response")
        self._access_token = token
        self._token_expiry = now + TOKEN_TTL
        return token

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a GraphQL request and return its ``data`` object.

        Raises:
            StorefrontError: On HTTP failure or a GraphQL ``errors`` payload.
        """
        token = await self.get_access_token()
        url = f"https://{self.domain}/admin/api/{self._config.api_version}/graphql.json"
        client = self._ensure_client()
        try:
            response = await client.post(
                url,
                json={"query": query, "variables": variables or {}},
                headers={
                    "Content-Type": "application/json",
                    "X-Shopify-Access-Token": token,
                },
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise StorefrontError(f"GraphQL request failed: {e}") from e

        if response.status_code >= 400:
            raise StorefrontError(
                f"GraphQL request failed (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        body = response.json()
        if body.get("errors"):
            logger.error("GraphQL errors: %s", body["errors"])
            messages = [
                e.get("message", str(e)) if isinstance(e, dict) else str(e)
                for e in body["errors"]
            ] if isinstance(body["errors"], list) else [str(body["errors"])]
            raise StorefrontError("; ".join(messages), details=body["errors"])
        return body.get("data") or {}

    def build_orders_filter(
        self,
        lookback_days: int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> str:
        """Build the order search query string.

        An explicit start date wins over the lookback window.
        """
        parts = ["fulfillment_status:unfulfilled", "status:open"]
        if start_date:
            parts.append(f"created_at:>={start_date}")
        else:
            days = self._config.lookback_days if lookback_days is None else lookback_days
            since = (self._clock() - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")
            parts.append(f"created_at:>={since}")
        if end_date:
            parts.append(f"created_at:<={end_date}")
        return " ".join(parts)

    async def get_unfulfilled_orders(
        self,
        lookback_days: int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch open, unfulfilled orders, following pagination to the end.

        Args:
            lookback_days: Days back from now (config default when None).
            start_date: Optional ISO date overriding the lookback window.
            end_date: Optional ISO date upper bound.

        Returns:
            Canonical order dicts, newest first.
        """
        query_filter = self.build_orders_filter(lookback_days, start_date, end_date)
        logger.info("Fetching unfulfilled orders: %s", query_filter)

        orders: list[dict[str, Any]] = []
        cursor = None
        while True:
            data = await self.graphql(
                UNFULFILLED_ORDERS_QUERY, {"cursor": cursor, "query": query_filter}
            )
            page = data.get("orders") or {}
            orders.extend(to_canonical(edge["node"]) for edge in page.get("edges") or [])
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        logger.info("Found %d unfulfilled orders", len(orders))
        return orders

    async def get_order(self, order_id: str | int) -> dict[str, Any]:
        """Fetch one order by numeric id or GID.

        Raises:
            StorefrontError: If the order does not exist or the call fails.
        """
        gid = to_gid("Order", order_id)
        data = await self.graphql(ORDER_QUERY, {"id": gid})
        node = data.get("order")
        if not node:
            raise StorefrontError(f"Order {order_id} not found")
        return to_canonical(node)

    async def calculate_next_sku(self) -> int:
        """Next numeric SKU: highest numeric SKU on recent products plus one.

        Non-numeric SKUs are ignored; with none found the sequence starts
        at 100.
        """
        data = await self.graphql(RECENT_PRODUCT_SKUS_QUERY)
        max_sku = 0
        for product_edge in (data.get("products") or {}).get("edges") or []:
            variants = (product_edge["node"].get("variants") or {}).get("edges") or []
            for variant_edge in variants:
                sku = variant_edge["node"].get("sku")
                if sku and _NUMERIC_SKU.match(sku):
                    max_sku = max(max_sku, int(sku))
        if max_sku == 0:
            return DEFAULT_FIRST_SKU
        return max_sku + 1

    async def update_product_sku(self, product_id: str | int, sku: int | str) -> None:
        """Set ``sku`` on every variant of a product.

        Raises:
            StorefrontError: If the product has no variants or Shopify
                reports user errors.
        """
        gid = to_gid("Product", product_id)
        logger.info("Updating product %s to SKU %s", gid, sku)
        data = await self.graphql(PRODUCT_VARIANTS_QUERY, {"id": gid})
        product = data.get("product")
        if not product:
            raise StorefrontError(f"Product {product_id} not found")
        variant_ids = [
            edge["node"]["id"] for edge in (product.get("variants") or {}).get("edges") or []
        ]
        if not variant_ids:
            raise StorefrontError("No variants found for product")

        result = await self.graphql(
            VARIANTS_SKU_MUTATION,
            {
                "productId": gid,
                "variants": [
                    {"id": vid, "inventoryItem": {"sku": str(sku)}} for vid in variant_ids
                ],
            },
        )
        user_errors = (result.get("productVariantsBulkUpdate") or {}).get("userErrors") or []
        if user_errors:
            raise StorefrontError(
                "; ".join(e.get("message", "") for e in user_errors), details=user_errors
            )

    async def assign_sku_to_product(self, product_id: str | int) -> int:
        """Assign the next numeric SKU to all variants of a product.

        Returns:
            The SKU that was assigned.
        """
        sku = await self.calculate_next_sku()
        await self.update_product_sku(product_id, sku)
        return sku
