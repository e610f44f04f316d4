"""Order API endpoints.

- GET /orders/{id} - order intent with store and product details
- POST /orders/{id}/cancel - cancel a pending order intent
"""

from fastapi import APIRouter

from storebridge.api.checkout import intent_to_response
from storebridge.api.dependencies import OrderServiceDep
from storebridge.api.schemas import EnrichedOrderResponse, ErrorResponse, OrderIntentSchema

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.get(
    "/{order_intent_id}",
    response_model=EnrichedOrderResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get order details",
)
async def get_order(order_intent_id: str, service: OrderServiceDep) -> EnrichedOrderResponse:
    """Get an order intent joined with its store and products."""
    order = await service.get_enriched_order(order_intent_id)
    return EnrichedOrderResponse.model_validate(order.to_dict())


@router.post(
    "/{order_intent_id}/cancel",
    response_model=OrderIntentSchema,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Cancel order intent",
    description="Cancel a pending order intent that is not being finalized.",
)
async def cancel_order(order_intent_id: str, service: OrderServiceDep) -> OrderIntentSchema:
    intent = await service.cancel(order_intent_id)
    return intent_to_response(intent)
