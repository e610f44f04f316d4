"""Store registration service.

A merchant connects a shop by handing over its Admin API token and the
account that should receive payments. The token is checked against the
shop before anything is stored.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import uuid4

import structlog

from storebridge.domain.base import utc_now
from storebridge.domain.exceptions import (
    InvalidStoreCredentialsError,
    StoreAlreadyRegisteredError,
)
from storebridge.infrastructure.catalog import CatalogWriter, Store
from storebridge.infrastructure.chain_client import validate_address
from storebridge.infrastructure.shopify_client import (
    ShopifyAdminClient,
    ShopifyClientError,
    shop_domain_of,
)

logger = structlog.get_logger()


class StoreService:
    """Registers storefronts in the catalog."""

    def __init__(
        self,
        catalog: CatalogWriter,
        shopify: ShopifyAdminClient,
        verify_credentials: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize service.

        Args:
            catalog: Catalog the store is written to.
            shopify: Client used to check the Admin API token.
            verify_credentials: Whether to call the shop before registering.
            clock: Source of the current time.
        """
        self._catalog = catalog
        self._shopify = shopify
        self._verify_credentials = verify_credentials
        self._clock = clock

    async def register_store(
        self,
        shop_domain: str,
        admin_access_token: str,
        pay_to_address: str,
        description: str | None = None,
        category: str | None = None,
        agent_metadata: dict[str, Any] | None = None,
    ) -> Store:
        """Register a new store.

        Args:
            shop_domain: Shop handle, domain or URL.
            admin_access_token: Admin API token used for fulfillment.
            pay_to_address: Account that receives payments.
            description: Free-text description shown to agents.
            category: Catalog category.
            agent_metadata: Extra metadata shown to agents.

        Returns:
            The registered store.

        Raises:
            InvalidAddressError: If ``pay_to_address`` is malformed.
            StoreAlreadyRegisteredError: If the shop is already registered.
            InvalidStoreCredentialsError: If the shop rejects the token.
        """
        validate_address(pay_to_address)
        domain = shop_domain_of(shop_domain)

        if await self._catalog.get_store_by_domain(domain) is not None:
            raise StoreAlreadyRegisteredError(domain)

        if self._verify_credentials:
            try:
                shop_name = await self._shopify.get_shop_name(domain, admin_access_token)
            except ShopifyClientError as e:
                logger.warning(
                    "Store credentials rejected",
                    shop_domain=domain,
                    error=e.message,
                    status_code=e.status_code,
                )
                raise InvalidStoreCredentialsError(domain, e.message) from e
            logger.debug("Store credentials verified", shop_domain=domain, shop_name=shop_name)

        store = await self._catalog.create_store(
            Store(
                id=str(uuid4()),
                shop_domain=domain,
                pay_to_address=pay_to_address,
                description=description,
                category=category,
                agent_metadata=dict(agent_metadata or {}),
                admin_access_token=admin_access_token,
                created_at=self._clock(),
            )
        )
        logger.info(
            "Store registered",
            store_id=store.id,
            shop_domain=domain,
            category=category,
        )
        return store
