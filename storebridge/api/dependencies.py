"""FastAPI dependencies resolving collaborators from the service container."""

from typing import Annotated

from fastapi import Depends, Request

from storebridge.application.order_intent_service import OrderIntentService
from storebridge.application.store_service import StoreService
from storebridge.container import ServiceContainer
from storebridge.infrastructure.catalog import CatalogReader


def get_container(request: Request) -> ServiceContainer:
    """Get the container built at startup."""
    return request.app.state.container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


def get_order_service(container: ContainerDep) -> OrderIntentService:
    return container.service


def get_store_service(container: ContainerDep) -> StoreService:
    return container.stores


def get_catalog(container: ContainerDep) -> CatalogReader:
    return container.catalog


OrderServiceDep = Annotated[OrderIntentService, Depends(get_order_service)]
CatalogDep = Annotated[CatalogReader, Depends(get_catalog)]
StoreServiceDep = Annotated[StoreService, Depends(get_store_service)]
