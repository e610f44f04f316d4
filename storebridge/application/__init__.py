"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from storebridge.application.fulfillment import (
    FulfillmentConnector,
    FulfillmentDispatcher,
    InlineFulfillmentDispatcher,
    NoopFulfillmentDispatcher,
    ShopifyFulfillmentConnector,
)
from storebridge.application.order_intent_service import (
    EnrichedOrder,
    InitiatedOrder,
    LineItemRequest,
    OrderIntentService,
    run_expiry_sweep,
)

__all__ = [
    "EnrichedOrder",
    "FulfillmentConnector",
    "FulfillmentDispatcher",
    "InitiatedOrder",
    "InlineFulfillmentDispatcher",
    "LineItemRequest",
    "NoopFulfillmentDispatcher",
    "OrderIntentService",
    "ShopifyFulfillmentConnector",
    "run_expiry_sweep",
]
