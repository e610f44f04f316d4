"""Shopify Admin GraphQL client.

Covers the two calls this service makes to a merchant shop: checking
Admin API credentials when a store registers, and creating a paid order
once the x402 payment has settled.
"""

import re
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from storebridge.domain.value_objects import FulfillmentRef, ShippingAddress

logger = structlog.get_logger()

SHOP_QUERY = """
query {
  shop {
    name
  }
}
"""

ORDER_CREATE_MUTATION = """
mutation OrderCreate($order: OrderCreateOrderInput!, $options: OrderCreateOptionsInput) {
  orderCreate(order: $order, options: $options) {
    userErrors {
      field
      message
    }
    order {
      id
      legacyResourceId
      name
    }
  }
}
"""


class ShopifyClientError(Exception):
    """Error from a Shopify Admin API call."""

    def __init__(self, shop_domain: str, message: str, status_code: int | None = None) -> None:
        self.shop_domain = shop_domain
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{shop_domain}] {message}")


@dataclass
class ShopifyLineItem:
    """A line of the order to create, referencing a storefront variant."""

    variant_id: str
    quantity: int

    def to_input(self) -> dict[str, Any]:
        variant_gid = self.variant_id
        if not variant_gid.startswith("gid://"):
            variant_gid = f"gid://shopify/ProductVariant/{variant_gid}"
        return {"variantId": variant_gid, "quantity": self.quantity}


@dataclass
class ShopifyOrderRequest:
    """Everything needed to create a paid order in a shop."""

    line_items: list[ShopifyLineItem]
    note: str
    transaction_reference: str
    shipping_address: ShippingAddress | None = None
    tags: list[str] = field(default_factory=list)

    def to_input(self) -> dict[str, Any]:
        order: dict[str, Any] = {
            "lineItems": [item.to_input() for item in self.line_items],
            "financialStatus": "PAID",
            "note": self.note,
            "tags": self.tags,
            "customAttributes": [
                {"key": "x402_transaction", "value": self.transaction_reference},
            ],
        }
        address = self.shipping_address
        if address is not None:
            order["shippingAddress"] = {
                key: value
                for key, value in {
                    "firstName": address.first_name,
                    "lastName": address.last_name,
                    "address1": address.address1,
                    "address2": address.address2,
                    "city": address.city,
                    "provinceCode": address.province,
                    "countryCode": address.country,
                    "zip": address.zip,
                    "phone": address.phone,
                }.items()
                if value
            }
            if address.email:
                order["email"] = address.email
        return order


def normalize_shop_url(shop_domain: str) -> str:
    """Turn ``my-shop``, ``my-shop.myshopify.com`` or a full URL into a base URL."""
    normalized = shop_domain.strip().rstrip("/")
    if not normalized.startswith(("http://", "https://")):
        normalized = f"https://{normalized}"
    if ".myshopify.com" not in normalized and ".shopify.com" not in normalized:
        match = re.fullmatch(r"https?://([^./]+)", normalized)
        if match:
            normalized = f"https://{match.group(1)}.myshopify.com"
    return normalized


def shop_domain_of(shop_url: str) -> str:
    """Canonical host of a shop, e.g. ``mug-shop.myshopify.com``."""
    return urlparse(normalize_shop_url(shop_url)).netloc.lower()


class ShopifyAdminClient:
    """HTTP client for the Shopify Admin GraphQL API.

    One instance serves every shop; the shop domain and access token are
    passed per call.
    """

    def __init__(self, api_version: str = "2024-10", timeout: float = 15.0) -> None:
        self.api_version = api_version
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _graphql(
        self,
        shop_domain: str,
        access_token: str,
        query: str,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        url = f"{normalize_shop_url(shop_domain)}/admin/api/{self.api_version}/graphql.json"
        try:
            client = await self._get_client()
            response = await client.post(
                url,
                json={"query": query, "variables": variables},
                headers={"X-Shopify-Access-Token": access_token},
            )
        except httpx.RequestError as e:
            raise ShopifyClientError(shop_domain, f"Request failed: {e}") from e

        if response.status_code != 200:
            raise ShopifyClientError(
                shop_domain,
                f"GraphQL API error: {response.text}",
                response.status_code,
            )

        body = response.json()
        if body.get("errors"):
            messages = "; ".join(e.get("message", str(e)) for e in body["errors"])
            raise ShopifyClientError(shop_domain, f"GraphQL errors: {messages}")
        return body.get("data") or {}

    async def get_shop_name(self, shop_domain: str, access_token: str) -> str:
        """Fetch the shop name, proving the access token works for the shop.

        Raises:
            ShopifyClientError: If the shop is unreachable or rejects the token.
        """
        data = await self._graphql(shop_domain, access_token, SHOP_QUERY, {})
        shop = data.get("shop")
        if not shop or not shop.get("name"):
            raise ShopifyClientError(shop_domain, "Shop query returned no shop")
        return shop["name"]

    async def create_order(
        self,
        shop_domain: str,
        access_token: str,
        request: ShopifyOrderRequest,
    ) -> FulfillmentRef:
        """Create a paid order in the shop.

        Args:
            shop_domain: Shop domain or URL.
            access_token: Admin API access token of the shop.
            request: Order contents.

        Returns:
            Reference to the created order.

        Raises:
            ShopifyClientError: If the order could not be created.
        """
        data = await self._graphql(
            shop_domain,
            access_token,
            ORDER_CREATE_MUTATION,
            {"order": request.to_input(), "options": {"sendReceipt": False}},
        )
        result = data.get("orderCreate") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            messages = "; ".join(e.get("message", "") for e in user_errors)
            raise ShopifyClientError(shop_domain, f"Order rejected: {messages}")

        order = result.get("order")
        if not order:
            raise ShopifyClientError(shop_domain, "Order creation returned no order")

        name = order.get("name")
        number = re.sub(r"\D", "", name) if name else None
        ref = FulfillmentRef(
            external_order_id=str(order.get("legacyResourceId") or order["id"]),
            external_order_number=number or None,
            external_order_label=name,
        )
        logger.info(
            "Shopify order created",
            shop_domain=shop_domain,
            order_id=ref.external_order_id,
            order_name=name,
        )
        return ref
