"""Catalog and ordering tools.

Tools for browsing stores and buying from them:
1. list_stores - Browse connected stores
2. get_store_products - Browse a store's products
3. initiate_checkout - Price items and create an order intent
4. finalize_checkout - Pay an order intent with a signed x402 payment
5. get_order_details - Look up an order intent
"""

from typing import Any

import structlog
from pydantic import BaseModel, Field

from storebridge.application.order_intent_service import LineItemRequest, OrderIntentService
from storebridge.domain.exceptions import StoreNotFoundError
from storebridge.domain.value_objects import ShippingAddress
from storebridge.infrastructure.catalog import CatalogReader
from storebridge.tools.dispatcher import ToolDefinition

logger = structlog.get_logger()


# ============================================================================
# Tool Input Schemas
# ============================================================================


class ListStoresInput(BaseModel):
    """Input schema for list_stores tool."""

    search: str | None = Field(
        None,
        description="Optional text matched against store description and domain.",
    )
    category: str | None = Field(
        None,
        description="Optional category filter, e.g. 'apparel'.",
    )
    limit: int = Field(default=20, ge=1, le=100, description="Maximum stores to return.")
    offset: int = Field(default=0, ge=0, description="Number of stores to skip.")


class GetStoreProductsInput(BaseModel):
    """Input schema for get_store_products tool."""

    store_id: str = Field(..., description="The store ID returned from list_stores.")
    search: str | None = Field(
        None,
        description="Optional text matched against product title and description.",
    )
    limit: int = Field(default=20, ge=1, le=100, description="Maximum products to return.")
    offset: int = Field(default=0, ge=0, description="Number of products to skip.")


class CheckoutItemInput(BaseModel):
    """One line of a checkout."""

    product_id: str = Field(..., description="Product ID from get_store_products.")
    variant_id: str = Field(..., description="Variant ID of that product.")
    quantity: int = Field(default=1, description="Number of units, at least 1.")


class ShippingAddressInput(BaseModel):
    """Shipping destination for the order."""

    first_name: str | None = None
    last_name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = Field(None, description="Province or state code.")
    country: str | None = Field(None, description="ISO country code, e.g. 'US'.")
    zip: str | None = None
    phone: str | None = None
    email: str | None = None


class InitiateCheckoutInput(BaseModel):
    """Input schema for initiate_checkout tool."""

    store_id: str = Field(..., description="The store to buy from.")
    items: list[CheckoutItemInput] = Field(
        ...,
        description="Items to purchase. Each needs product_id, variant_id and quantity.",
    )
    shipping_address: ShippingAddressInput | None = Field(
        None,
        description="Optional shipping address for fulfillment.",
    )


class FinalizeCheckoutInput(BaseModel):
    """Input schema for finalize_checkout tool."""

    order_intent_id: str = Field(..., description="The order intent ID from initiate_checkout.")
    x_payment_header: str = Field(
        ...,
        description="Base64-encoded signed x402 payment payload (the X-PAYMENT header value).",
    )


class GetOrderDetailsInput(BaseModel):
    """Input schema for get_order_details tool."""

    order_intent_id: str = Field(..., description="The order intent ID to look up.")


def to_shipping_address(data: ShippingAddressInput | None) -> ShippingAddress | None:
    if data is None:
        return None
    return ShippingAddress.from_dict(data.model_dump(exclude_none=True))


# ============================================================================
# Catalog Tools
# ============================================================================


class CatalogTools:
    """Browse and checkout tools over the catalog and the order intent service."""

    def __init__(self, service: OrderIntentService, catalog: CatalogReader) -> None:
        self.service = service
        self.catalog = catalog

    def definitions(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name="list_stores",
                description=(
                    "List stores that accept x402 payments. "
                    "Supports text search, a category filter and pagination."
                ),
                input_model=ListStoresInput,
                handler=self.list_stores,
            ),
            ToolDefinition(
                name="get_store_products",
                description=(
                    "List the products of a store with their variants and prices. "
                    "Use the product and variant IDs with initiate_checkout."
                ),
                input_model=GetStoreProductsInput,
                handler=self.get_store_products,
            ),
            ToolDefinition(
                name="initiate_checkout",
                description=(
                    "Create an order intent for items from one store. "
                    "Returns the total in settlement units and the x402 payment "
                    "requirements to sign against."
                ),
                input_model=InitiateCheckoutInput,
                handler=self.initiate_checkout,
            ),
            ToolDefinition(
                name="finalize_checkout",
                description=(
                    "Pay an order intent with a signed x402 payment. "
                    "The payment is verified and settled, then the order is placed "
                    "with the store."
                ),
                input_model=FinalizeCheckoutInput,
                handler=self.finalize_checkout,
            ),
            ToolDefinition(
                name="get_order_details",
                description=(
                    "Get an order intent with its status, payment proof, "
                    "store and product details."
                ),
                input_model=GetOrderDetailsInput,
                handler=self.get_order_details,
            ),
        ]

    async def list_stores(self, data: ListStoresInput) -> dict[str, Any]:
        stores, total = await self.catalog.list_stores(
            limit=data.limit,
            offset=data.offset,
            search=data.search,
            category=data.category,
        )
        return {
            "stores": [store.to_public_dict() for store in stores],
            "total": total,
            "limit": data.limit,
            "offset": data.offset,
        }

    async def get_store_products(self, data: GetStoreProductsInput) -> dict[str, Any]:
        store = await self.catalog.get_store(data.store_id)
        if store is None:
            raise StoreNotFoundError(data.store_id)
        products, total = await self.catalog.list_products(
            store.id,
            limit=data.limit,
            offset=data.offset,
            search=data.search,
        )
        return {
            "store": store.to_public_dict(),
            "products": [product.to_dict() for product in products],
            "total": total,
            "limit": data.limit,
            "offset": data.offset,
        }

    async def initiate_checkout(self, data: InitiateCheckoutInput) -> dict[str, Any]:
        initiated = await self.service.initiate(
            store_id=data.store_id,
            items=[
                LineItemRequest(
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                )
                for item in data.items
            ],
            shipping_address=to_shipping_address(data.shipping_address),
        )
        result = initiated.to_payment_required()
        result["next_step"] = (
            "Sign a transfer matching the payment requirements (see "
            "build_payment_transaction), then call finalize_checkout with "
            f"order_intent_id '{initiated.intent.id}' and the base64 X-PAYMENT header."
        )
        return result

    async def finalize_checkout(self, data: FinalizeCheckoutInput) -> dict[str, Any]:
        intent = await self.service.finalize(data.order_intent_id, data.x_payment_header)
        return {
            "success": True,
            "message": "Payment settled",
            "order_intent": intent.to_dict(),
        }

    async def get_order_details(self, data: GetOrderDetailsInput) -> dict[str, Any]:
        order = await self.service.get_enriched_order(data.order_intent_id)
        return order.to_dict()
