"""Fulfillment of paid order intents.

Creating the order in the merchant's storefront is a best-effort side
effect of a settled payment: it runs after the paid status is durable
and its failure never changes that status. The orchestrator talks to a
``FulfillmentDispatcher`` so the inline call used today can be swapped
for a queue-backed worker without touching the payment flow.
"""

from abc import ABC, abstractmethod

import structlog

from storebridge.domain.entities import OrderIntent
from storebridge.domain.value_objects import FulfillmentRef, OrderItem, ShippingAddress
from storebridge.infrastructure.catalog import Store
from storebridge.infrastructure.shopify_client import (
    ShopifyAdminClient,
    ShopifyLineItem,
    ShopifyOrderRequest,
)

logger = structlog.get_logger()

FULFILLMENT_TAGS = ["x402", "crypto-payment", "move-token", "agentic-marketplace"]


def build_fulfillment_note(intent: OrderIntent) -> str:
    """Order note linking the storefront order back to the intent."""
    return f"x402 Payment - {intent.currency} Token\nOrder Intent: {intent.id}"


class FulfillmentError(Exception):
    """A storefront order could not be created."""

    pass


# ============================================================================
# Connector
# ============================================================================


class FulfillmentConnector(ABC):
    """Creates orders in an external storefront."""

    @abstractmethod
    async def create_fulfillment(
        self,
        store: Store,
        items: list[OrderItem],
        shipping_address: ShippingAddress | None,
        note: str,
        payment_reference: str,
    ) -> FulfillmentRef:
        """Create the order and return its external identifiers.

        Raises:
            Exception: Any failure; callers treat it as best-effort.
        """
        pass


class ShopifyFulfillmentConnector(FulfillmentConnector):
    """Creates paid orders through the Shopify Admin GraphQL API."""

    def __init__(self, client: ShopifyAdminClient) -> None:
        self.client = client

    async def create_fulfillment(
        self,
        store: Store,
        items: list[OrderItem],
        shipping_address: ShippingAddress | None,
        note: str,
        payment_reference: str,
    ) -> FulfillmentRef:
        if not store.admin_access_token:
            raise FulfillmentError(f"Store {store.id} has no admin access token")

        missing = [item.variant_id for item in items if not item.external_variant_id]
        if missing:
            raise FulfillmentError(f"Variants without storefront ids: {missing}")

        request = ShopifyOrderRequest(
            line_items=[
                ShopifyLineItem(variant_id=item.external_variant_id, quantity=item.quantity)
                for item in items
            ],
            note=note,
            transaction_reference=payment_reference,
            shipping_address=shipping_address,
            tags=list(FULFILLMENT_TAGS),
        )
        return await self.client.create_order(
            store.shop_domain,
            store.admin_access_token,
            request,
        )


# ============================================================================
# Dispatchers
# ============================================================================


class FulfillmentDispatcher(ABC):
    """Hands a paid intent over to fulfillment."""

    @abstractmethod
    async def dispatch(self, intent: OrderIntent, store: Store) -> FulfillmentRef | None:
        """Trigger fulfillment for a paid intent.

        Implementations never raise.

        Returns:
            The external order reference if it was created synchronously,
            otherwise None.
        """
        pass


class InlineFulfillmentDispatcher(FulfillmentDispatcher):
    """Calls the connector once, in the request, and swallows failures."""

    def __init__(self, connector: FulfillmentConnector) -> None:
        self.connector = connector

    async def dispatch(self, intent: OrderIntent, store: Store) -> FulfillmentRef | None:
        transaction = intent.payment_proof.transaction if intent.payment_proof else ""
        try:
            return await self.connector.create_fulfillment(
                store=store,
                items=intent.items,
                shipping_address=intent.shipping_address,
                note=build_fulfillment_note(intent),
                payment_reference=transaction,
            )
        except Exception as e:
            logger.warning(
                "Fulfillment failed, order intent stays paid",
                order_intent_id=str(intent.id),
                store_id=store.id,
                error=str(e),
                exc_info=True,
            )
            return None


class NoopFulfillmentDispatcher(FulfillmentDispatcher):
    """Used when fulfillment is disabled by configuration."""

    async def dispatch(self, intent: OrderIntent, store: Store) -> FulfillmentRef | None:
        logger.info("Fulfillment disabled, skipping", order_intent_id=str(intent.id))
        return None
