"""Checkout API endpoints.

The two phases of an x402 purchase:
- POST /checkout/initiate - price items, answer 402 with payment requirements
- POST /checkout/finalize - verify and settle the signed payment
"""

from typing import Annotated

from fastapi import APIRouter, Header, Response, status
from fastapi.responses import JSONResponse

from storebridge.api.dependencies import OrderServiceDep
from storebridge.api.schemas import (
    ErrorResponse,
    FinalizeCheckoutRequest,
    FinalizeCheckoutResponse,
    InitiateCheckoutRequest,
    OrderIntentSchema,
    PaymentRequiredResponse,
)
from storebridge.application.order_intent_service import LineItemRequest
from storebridge.domain.entities import OrderIntent
from storebridge.domain.exceptions import PaymentPayloadError
from storebridge.domain.payment_payload import encode_payment_header
from storebridge.domain.value_objects import ShippingAddress

router = APIRouter(prefix="/checkout", tags=["Checkout"])

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


def intent_to_response(intent: OrderIntent) -> OrderIntentSchema:
    """Convert an OrderIntent entity to its response schema."""
    return OrderIntentSchema.model_validate(intent.to_dict())


def payment_response_header(intent: OrderIntent) -> str:
    """Value of X-PAYMENT-RESPONSE for a paid intent."""
    return encode_payment_header(
        {
            "success": True,
            "transaction": intent.payment_proof.transaction if intent.payment_proof else None,
            "network": intent.network,
            "orderIntentId": str(intent.id),
        }
    )


@router.post(
    "/initiate",
    status_code=status.HTTP_402_PAYMENT_REQUIRED,
    responses={
        402: {"model": PaymentRequiredResponse},
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Initiate checkout",
    description="Create a pending order intent and return x402 payment requirements.",
)
async def initiate_checkout(
    request: InitiateCheckoutRequest,
    service: OrderServiceDep,
) -> JSONResponse:
    """Start a checkout.

    The total is computed from catalog prices. The answer is always
    402 Payment Required, carrying the requirements a payer signs against.

    Args:
        request: Store, items and optional shipping address.
        service: Order intent service.

    Returns:
        402 response with the order intent summary and ``accepts``.
    """
    shipping_address = None
    if request.shipping_address is not None:
        shipping_address = ShippingAddress.from_dict(
            request.shipping_address.model_dump(exclude_none=True)
        )

    initiated = await service.initiate(
        store_id=request.store_id,
        items=[
            LineItemRequest(
                product_id=item.product_id,
                variant_id=item.variant_id,
                quantity=item.quantity,
            )
            for item in request.items
        ],
        shipping_address=shipping_address,
    )
    return JSONResponse(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        content=initiated.to_payment_required(),
    )


@router.post(
    "/finalize",
    response_model=FinalizeCheckoutResponse,
    responses={
        400: {"model": ErrorResponse},
        402: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        410: {"model": ErrorResponse},
    },
    summary="Finalize checkout",
    description="Verify and settle a signed x402 payment for a pending order intent.",
)
async def finalize_checkout(
    request: FinalizeCheckoutRequest,
    response: Response,
    service: OrderServiceDep,
    x_payment: Annotated[str | None, Header(alias=PAYMENT_HEADER)] = None,
) -> FinalizeCheckoutResponse:
    """Pay an order intent.

    The signed payload is taken from the body, or from the X-PAYMENT
    header when the body has none.

    Args:
        request: Order intent ID and optional payment payload.
        response: Outgoing response, for the X-PAYMENT-RESPONSE header.
        service: Order intent service.
        x_payment: X-PAYMENT header value.

    Returns:
        The paid order intent.
    """
    payment_header = request.x_payment_header or x_payment
    if not payment_header:
        raise PaymentPayloadError(f"missing payment payload (body or {PAYMENT_HEADER} header)")

    intent = await service.finalize(request.order_intent_id, payment_header)

    response.headers[PAYMENT_RESPONSE_HEADER] = payment_response_header(intent)
    message = "Payment settled and order placed" if intent.fulfillment else "Payment settled"
    return FinalizeCheckoutResponse(
        success=True,
        message=message,
        data=intent_to_response(intent),
    )
