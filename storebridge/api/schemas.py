"""API schemas for the store bridge.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    limit: int = Field(..., description="Maximum items per page")
    offset: int = Field(..., description="Number of items skipped")


# ============================================================================
# Catalog Schemas
# ============================================================================


class StoreSchema(BaseModel):
    """Public view of a store."""

    id: str = Field(..., description="Store identifier")
    shop_domain: str = Field(..., description="Storefront domain")
    description: str | None = Field(default=None, description="Store description")
    category: str | None = Field(default=None, description="Store category")
    agent_metadata: dict[str, Any] = Field(
        default_factory=dict, description="Hints for agent clients"
    )
    created_at: datetime = Field(..., description="When the store was connected")


class RegisterStoreRequest(BaseModel):
    """Request to connect a Shopify store."""

    shop_domain: str = Field(
        ..., min_length=1, description="Shop handle, myshopify.com domain or URL"
    )
    admin_access_token: str = Field(
        ..., min_length=1, description="Shopify Admin API access token"
    )
    pay_to_address: str = Field(..., description="Account that receives payments")
    description: str | None = Field(
        default=None, min_length=1, max_length=1000, description="Store description"
    )
    category: str | None = Field(default=None, max_length=100, description="Store category")
    agent_metadata: dict[str, Any] = Field(
        default_factory=dict, description="Hints for agent clients"
    )


class StoreListResponse(PaginatedResponse):
    """Paginated list of stores."""

    stores: list[StoreSchema] = Field(..., description="List of stores")


class VariantSchema(BaseModel):
    """A purchasable product variant."""

    id: str = Field(..., description="Variant identifier")
    external_variant_id: str | None = Field(default=None, description="Storefront variant ID")
    title: str = Field(..., description="Variant title")
    price: str = Field(..., description="Display price as a decimal string")
    currency: str = Field(default="USD", description="Display currency")
    sku: str | None = Field(default=None, description="Stock keeping unit")
    inventory_quantity: int | None = Field(default=None, description="Units in stock")
    available: bool = Field(default=True, description="Whether the variant can be bought")


class ProductSchema(BaseModel):
    """A catalog product with its variants."""

    id: str = Field(..., description="Product identifier")
    store_id: str = Field(..., description="Owning store")
    external_product_id: str = Field(default="", description="Storefront product ID")
    title: str = Field(..., description="Product title")
    description: str | None = Field(default=None, description="Product description")
    vendor: str | None = Field(default=None, description="Vendor")
    product_type: str | None = Field(default=None, description="Product type")
    tags: list[str] = Field(default_factory=list, description="Tags")
    images: list[dict[str, Any]] = Field(default_factory=list, description="Images")
    variants: list[VariantSchema] = Field(default_factory=list, description="Variants")
    created_at: datetime = Field(..., description="When the product was synced")


class ProductListResponse(PaginatedResponse):
    """Paginated list of a store's products."""

    store_id: str = Field(..., description="Store identifier")
    products: list[ProductSchema] = Field(..., description="List of products")


# ============================================================================
# Order Intent Schemas
# ============================================================================


class OrderIntentStatusEnum(str, Enum):
    """Order intent status values."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ShippingAddressSchema(BaseModel):
    """Shipping destination."""

    first_name: str | None = None
    last_name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = Field(default=None, description="Province or state code")
    country: str | None = Field(default=None, description="ISO country code")
    zip: str | None = None
    phone: str | None = None
    email: str | None = None


class CheckoutItemRequest(BaseModel):
    """An item to purchase."""

    product_id: str = Field(..., description="Product ID")
    variant_id: str = Field(..., description="Variant ID")
    quantity: int = Field(..., description="Quantity to purchase, at least 1")


class InitiateCheckoutRequest(BaseModel):
    """Request to start an x402 checkout."""

    store_id: str = Field(..., description="Store to buy from")
    items: list[CheckoutItemRequest] = Field(..., description="Items to purchase")
    shipping_address: ShippingAddressSchema | None = Field(
        default=None, description="Optional shipping address"
    )


class FinalizeCheckoutRequest(BaseModel):
    """Request to pay an order intent."""

    order_intent_id: str = Field(..., description="Order intent to pay")
    x_payment_header: str | None = Field(
        default=None,
        description="Base64 signed payment payload. May be sent as the X-PAYMENT header instead.",
    )


class OrderItemSchema(BaseModel):
    """A priced line item."""

    product_id: str
    variant_id: str
    quantity: int
    unit_price: str = Field(..., description="Unit price in smallest settlement units")
    title: str
    price: str | None = Field(default=None, description="Display price at creation")
    external_variant_id: str | None = None


class PaymentProofSchema(BaseModel):
    """Evidence of a settled payment."""

    transaction: str = Field(..., description="Settlement transaction reference")
    signature: str = Field(..., description="Signed payment header as submitted")
    verified_at: datetime
    facilitator_response: dict[str, Any] = Field(default_factory=dict)


class FulfillmentSchema(BaseModel):
    """Reference to the storefront order."""

    external_order_id: str
    external_order_number: str | None = None
    external_order_label: str | None = None


class OrderIntentSchema(BaseModel):
    """Full view of an order intent."""

    id: str = Field(..., description="Order intent identifier")
    store_id: str
    items: list[OrderItemSchema]
    total_amount: str = Field(..., description="Total in smallest settlement units")
    currency: str
    network: str
    asset: str
    pay_to_address: str
    status: OrderIntentStatusEnum
    payment_proof: PaymentProofSchema | None = None
    failure_reason: str | None = None
    shipping_address: ShippingAddressSchema | None = None
    fulfillment: FulfillmentSchema | None = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class OrderIntentSummarySchema(BaseModel):
    """The intent part of a payment-required answer."""

    id: str
    total_amount: str
    currency: str
    expires_at: datetime
    items: list[OrderItemSchema]


class PaymentRequirementsSchema(BaseModel):
    """x402 payment requirements."""

    network: str
    asset: str
    payTo: str
    maxAmountRequired: str
    description: str
    mimeType: str
    maxTimeoutSeconds: int
    orderIntentId: str | None = None


class PaymentRequiredResponse(BaseModel):
    """402 answer of checkout initiation."""

    success: bool
    message: str
    orderIntent: OrderIntentSummarySchema
    accepts: list[PaymentRequirementsSchema]


class FinalizeCheckoutResponse(BaseModel):
    """Answer of a successful finalize."""

    success: bool = True
    message: str
    data: OrderIntentSchema


class OrderProductSchema(BaseModel):
    """A line item with the product's current catalog record."""

    item: OrderItemSchema
    product: ProductSchema | None = None


class EnrichedOrderResponse(OrderIntentSchema):
    """An order intent with its store and product details."""

    store: StoreSchema
    products: list[OrderProductSchema]


class OrderIntentListResponse(PaginatedResponse):
    """Paginated list of order intents."""

    items: list[OrderIntentSchema] = Field(..., description="List of order intents")
