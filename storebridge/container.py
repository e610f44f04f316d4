"""Service container.

Builds every collaborator once per process and hands them to the API
and tool layers through ``app.state``. Tests build containers with
in-memory storage and fake facilitators instead of patching globals.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from storebridge import __version__
from storebridge.application.fulfillment import (
    FulfillmentDispatcher,
    InlineFulfillmentDispatcher,
    NoopFulfillmentDispatcher,
    ShopifyFulfillmentConnector,
)
from storebridge.application.order_intent_service import OrderIntentService
from storebridge.application.store_service import StoreService
from storebridge.domain.base import utc_now
from storebridge.infrastructure.catalog import (
    CatalogReader,
    InMemoryCatalog,
    SqlCatalog,
)
from storebridge.infrastructure.chain_client import ChainClient
from storebridge.infrastructure.config import Settings
from storebridge.infrastructure.database import create_engine, create_session_factory, ping
from storebridge.infrastructure.facilitator_client import FacilitatorClient
from storebridge.infrastructure.order_intent_repository import (
    InMemoryOrderIntentRepository,
    OrderIntentRepository,
    SqlOrderIntentRepository,
)
from storebridge.infrastructure.shopify_client import ShopifyAdminClient
from storebridge.tools.catalog_tools import CatalogTools
from storebridge.tools.dispatcher import JsonRpcDispatcher
from storebridge.tools.payment_tools import PaymentTools
from storebridge.tools.sse import SseSessionManager

logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    """Everything a request handler may need."""

    settings: Settings
    catalog: CatalogReader
    order_intents: OrderIntentRepository
    facilitator: FacilitatorClient
    chain: ChainClient
    shopify: ShopifyAdminClient
    service: OrderIntentService
    stores: StoreService
    catalog_dispatcher: JsonRpcDispatcher
    payment_dispatcher: JsonRpcDispatcher
    sse_sessions: SseSessionManager
    engine: AsyncEngine | None = None

    async def check_ready(self) -> None:
        """Raise if storage cannot serve requests."""
        if self.engine is not None:
            await ping(self.engine)

    async def close(self) -> None:
        """Release HTTP clients and database connections."""
        await self.facilitator.close()
        await self.chain.close()
        await self.shopify.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_container(
    settings: Settings,
    catalog: CatalogReader | None = None,
    order_intents: OrderIntentRepository | None = None,
    facilitator: FacilitatorClient | None = None,
    chain: ChainClient | None = None,
    fulfillment: FulfillmentDispatcher | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ServiceContainer:
    """Wire the application from settings.

    Any collaborator passed in replaces the one the settings would build.

    Args:
        settings: Application settings.
        catalog: Catalog override.
        order_intents: Order intent repository override.
        facilitator: Facilitator client override.
        chain: Chain client override.
        fulfillment: Fulfillment dispatcher override.
        clock: Source of the current time.

    Returns:
        The wired container.

    Raises:
        ValueError: If ``storage_backend`` is not supported.
    """
    engine = None
    if catalog is None or order_intents is None:
        if settings.storage_backend == "memory":
            catalog = catalog or InMemoryCatalog()
            order_intents = order_intents or InMemoryOrderIntentRepository()
        elif settings.storage_backend == "database":
            engine = create_engine(settings.database_url, echo=settings.debug)
            session_factory = create_session_factory(engine)
            catalog = catalog or SqlCatalog(session_factory)
            order_intents = order_intents or SqlOrderIntentRepository(session_factory)
        else:
            raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")

    rail = settings.settlement_rail
    facilitator = facilitator or FacilitatorClient(
        settings.facilitator_url,
        timeout=settings.facilitator_timeout_seconds,
    )
    chain = chain or ChainClient(settings.chain_rpc_url, asset=rail.asset)
    shopify = ShopifyAdminClient(api_version=settings.shopify_api_version)

    if fulfillment is None:
        if settings.fulfillment_enabled:
            fulfillment = InlineFulfillmentDispatcher(ShopifyFulfillmentConnector(shopify))
        else:
            fulfillment = NoopFulfillmentDispatcher()

    service = OrderIntentService(
        repository=order_intents,
        catalog=catalog,
        facilitator=facilitator,
        fulfillment=fulfillment,
        rail=rail,
        intent_ttl=timedelta(minutes=settings.order_intent_ttl_minutes),
        payment_timeout_seconds=settings.payment_timeout_seconds,
        claim_timeout=timedelta(seconds=settings.finalize_claim_timeout_seconds),
        clock=clock,
    )
    stores = StoreService(
        catalog=catalog,
        shopify=shopify,
        verify_credentials=settings.verify_store_credentials,
        clock=clock,
    )

    catalog_dispatcher = JsonRpcDispatcher(
        "storebridge",
        __version__,
        CatalogTools(service, catalog).definitions(),
    )
    payment_dispatcher = JsonRpcDispatcher(
        "storebridge-payment",
        __version__,
        PaymentTools(
            service,
            chain,
            rail,
            rpc_url=settings.chain_rpc_url,
            transfer_function=settings.transfer_function,
        ).definitions(),
    )

    logger.info(
        "Service container built",
        storage_backend=settings.storage_backend,
        network=rail.network,
        currency=rail.currency,
        fulfillment=type(fulfillment).__name__,
    )

    return ServiceContainer(
        settings=settings,
        catalog=catalog,
        order_intents=order_intents,
        facilitator=facilitator,
        chain=chain,
        shopify=shopify,
        service=service,
        stores=stores,
        catalog_dispatcher=catalog_dispatcher,
        payment_dispatcher=payment_dispatcher,
        sse_sessions=SseSessionManager(
            catalog_dispatcher,
            ping_interval=settings.sse_ping_interval_seconds,
        ),
        engine=engine,
    )
