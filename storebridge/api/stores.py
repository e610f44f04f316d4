"""Store API endpoints.

Store registration, browsing of connected stores, and store-scoped
order listings.
"""

from typing import Annotated

from fastapi import APIRouter, Query

from storebridge.api.checkout import intent_to_response
from storebridge.api.dependencies import CatalogDep, OrderServiceDep, StoreServiceDep
from storebridge.api.schemas import (
    ErrorResponse,
    OrderIntentListResponse,
    OrderIntentStatusEnum,
    ProductListResponse,
    ProductSchema,
    RegisterStoreRequest,
    StoreListResponse,
    StoreSchema,
)
from storebridge.domain.exceptions import StoreNotFoundError
from storebridge.domain.state_machines import OrderIntentStatus
from storebridge.infrastructure.catalog import CatalogReader, Store

router = APIRouter(prefix="/stores", tags=["Stores"])

Limit = Annotated[int, Query(ge=1, le=100, description="Maximum items to return")]
Offset = Annotated[int, Query(ge=0, description="Number of items to skip")]


async def _require_store(catalog: CatalogReader, store_id: str) -> Store:
    store = await catalog.get_store(store_id)
    if store is None:
        raise StoreNotFoundError(store_id)
    return store


@router.get("", response_model=StoreListResponse, summary="List stores")
async def list_stores(
    catalog: CatalogDep,
    search: str | None = Query(default=None, description="Text search"),
    category: str | None = Query(default=None, description="Category filter"),
    limit: Limit = 50,
    offset: Offset = 0,
) -> StoreListResponse:
    stores, total = await catalog.list_stores(
        limit=limit, offset=offset, search=search, category=category
    )
    return StoreListResponse(
        stores=[StoreSchema.model_validate(store.to_public_dict()) for store in stores],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post(
    "",
    response_model=StoreSchema,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Register store",
)
async def register_store(request: RegisterStoreRequest, stores: StoreServiceDep) -> StoreSchema:
    """Connect a Shopify store.

    The Admin API token is checked against the shop and is never returned.
    """
    store = await stores.register_store(
        shop_domain=request.shop_domain,
        admin_access_token=request.admin_access_token,
        pay_to_address=request.pay_to_address,
        description=request.description,
        category=request.category,
        agent_metadata=request.agent_metadata,
    )
    return StoreSchema.model_validate(store.to_public_dict())

@router.get(
    "/{store_id}",
    response_model=StoreSchema,
    responses={404: {"model": ErrorResponse}},
    summary="Get store",
)
async def get_store(store_id: str, catalog: CatalogDep) -> StoreSchema:
    store = await _require_store(catalog, store_id)
    return StoreSchema.model_validate(store.to_public_dict())


@router.get(
    "/{store_id}/products",
    response_model=ProductListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List store products",
)
async def list_store_products(
    store_id: str,
    catalog: CatalogDep,
    search: str | None = Query(default=None, description="Text search"),
    limit: Limit = 50,
    offset: Offset = 0,
) -> ProductListResponse:
    store = await _require_store(catalog, store_id)
    products, total = await catalog.list_products(
        store.id, limit=limit, offset=offset, search=search
    )
    return ProductListResponse(
        store_id=store.id,
        products=[ProductSchema.model_validate(product.to_dict()) for product in products],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{store_id}/order-intents",
    response_model=OrderIntentListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List store order intents",
)
async def list_store_order_intents(
    store_id: str,
    service: OrderServiceDep,
    status: OrderIntentStatusEnum | None = Query(default=None, description="Filter by status"),
    limit: Limit = 50,
    offset: Offset = 0,
) -> OrderIntentListResponse:
    """List a store's order intents, newest first."""
    intents, total = await service.list_store_intents(
        store_id,
        status=OrderIntentStatus(status.value) if status else None,
        limit=limit,
        offset=offset,
    )
    return OrderIntentListResponse(
        items=[intent_to_response(intent) for intent in intents],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{store_id}/orders",
    response_model=OrderIntentListResponse,
    responses={404: {"model": ErrorResponse}},
    summary="List store orders",
    description="Paid order intents of a store.",
)
async def list_store_orders(
    store_id: str,
    service: OrderServiceDep,
    limit: Limit = 50,
    offset: Offset = 0,
) -> OrderIntentListResponse:
    intents, total = await service.list_store_intents(
        store_id, status=OrderIntentStatus.PAID, limit=limit, offset=offset
    )
    return OrderIntentListResponse(
        items=[intent_to_response(intent) for intent in intents],
        total=total,
        limit=limit,
        offset=offset,
    )
