"""Catalog access.

Stores and products synced from storefronts. The order intent service
resolves prices through ``CatalogReader``. Store registration writes
through ``CatalogWriter``; the product sync that fills the products
table lives outside this service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storebridge.domain.exceptions import StoreAlreadyRegisteredError
from storebridge.infrastructure.models import ProductModel, StoreModel


# ============================================================================
# Catalog Records
# ============================================================================


@dataclass
class ProductVariant:
    """A purchasable variant of a product."""

    id: str
    title: str
    price: str
    external_variant_id: str | None = None
    currency: str = "USD"
    sku: str | None = None
    inventory_quantity: int | None = None
    available: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductVariant":
        """Create from the stored JSON form."""
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            price=str(data.get("price", "0")),
            external_variant_id=data.get("external_variant_id"),
            currency=data.get("currency", "USD"),
            sku=data.get("sku"),
            inventory_quantity=data.get("inventory_quantity"),
            available=data.get("available", True),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_variant_id": self.external_variant_id,
            "title": self.title,
            "price": self.price,
            "currency": self.currency,
            "sku": self.sku,
            "inventory_quantity": self.inventory_quantity,
            "available": self.available,
        }


@dataclass
class Product:
    """A catalog product with its variants."""

    id: str
    store_id: str
    title: str
    external_product_id: str = ""
    description: str | None = None
    vendor: str | None = None
    product_type: str | None = None
    tags: list[str] = field(default_factory=list)
    images: list[dict[str, Any]] = field(default_factory=list)
    variants: list[ProductVariant] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_variant(self, variant_id: str) -> ProductVariant | None:
        """Find a variant by its catalog id."""
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "external_product_id": self.external_product_id,
            "title": self.title,
            "description": self.description,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "tags": list(self.tags),
            "images": list(self.images),
            "variants": [v.to_dict() for v in self.variants],
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Store:
    """A connected storefront.

    ``admin_access_token`` is needed by fulfillment and must never be
    serialized to clients; use ``to_public_dict``.
    """

    id: str
    shop_domain: str
    pay_to_address: str
    description: str | None = None
    category: str | None = None
    agent_metadata: dict[str, Any] = field(default_factory=dict)
    admin_access_token: str | None = field(default=None, repr=False)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_public_dict(self) -> dict[str, Any]:
        """Store view safe to show agents and shoppers."""
        return {
            "id": self.id,
            "shop_domain": self.shop_domain,
            "description": self.description,
            "category": self.category,
            "agent_metadata": dict(self.agent_metadata),
            "created_at": self.created_at.isoformat(),
        }


# ============================================================================
# Catalog Interfaces
# ============================================================================


class CatalogReader(ABC):
    """Read-only catalog access."""

    @abstractmethod
    async def list_stores(
        self,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
        category: str | None = None,
    ) -> tuple[list[Store], int]:
        """List stores, newest first, with the total match count."""
        pass

    @abstractmethod
    async def get_store(self, store_id: str) -> Store | None:
        pass

    @abstractmethod
    async def list_products(
        self,
        store_id: str,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
    ) -> tuple[list[Product], int]:
        """List a store's products, newest first, with the total match count."""
        pass

    @abstractmethod
    async def get_product(self, product_id: str) -> Product | None:
        pass

    @abstractmethod
    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        """Fetch several products at once, keyed by id. Missing ids are omitted."""
        pass


class CatalogWriter(ABC):
    """Store registration."""

    @abstractmethod
    async def get_store_by_domain(self, shop_domain: str) -> Store | None:
        """Look up a store by its canonical shop domain."""
        pass

    @abstractmethod
    async def create_store(self, store: Store) -> Store:
        """Persist a new store.

        Raises:
            StoreAlreadyRegisteredError: If the shop domain is already taken.
        """
        pass


def _matches(search: str, *values: str | None) -> bool:
    needle = search.lower()
    return any(value and needle in value.lower() for value in values)


class InMemoryCatalog(CatalogReader, CatalogWriter):
    """Process-local catalog for development and tests."""

    def __init__(self) -> None:
        self._stores: dict[str, Store] = {}
        self._products: dict[str, Product] = {}

    def add_store(self, store: Store) -> Store:
        self._stores[store.id] = store
        return store

    def add_product(self, product: Product) -> Product:
        self._products[product.id] = product
        return product

    async def list_stores(
        self,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
        category: str | None = None,
    ) -> tuple[list[Store], int]:
        stores = sorted(self._stores.values(), key=lambda s: s.created_at, reverse=True)
        if search:
            stores = [s for s in stores if _matches(search, s.description, s.shop_domain)]
        if category:
            stores = [s for s in stores if (s.category or "").lower() == category.lower()]
        return stores[offset : offset + limit], len(stores)

    async def get_store(self, store_id: str) -> Store | None:
        return self._stores.get(store_id)

    async def list_products(
        self,
        store_id: str,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
    ) -> tuple[list[Product], int]:
        products = [p for p in self._products.values() if p.store_id == store_id]
        products.sort(key=lambda p: p.created_at, reverse=True)
        if search:
            products = [p for p in products if _matches(search, p.title, p.description)]
        return products[offset : offset + limit], len(products)

    async def get_product(self, product_id: str) -> Product | None:
        return self._products.get(product_id)

    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        return {pid: self._products[pid] for pid in product_ids if pid in self._products}

    async def get_store_by_domain(self, shop_domain: str) -> Store | None:
        needle = shop_domain.lower()
        for store in self._stores.values():
            if store.shop_domain.lower() == needle:
                return store
        return None

    async def create_store(self, store: Store) -> Store:
        if await self.get_store_by_domain(store.shop_domain) is not None:
            raise StoreAlreadyRegisteredError(store.shop_domain)
        return self.add_store(store)


# ============================================================================
# SQL Catalog
# ============================================================================


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def store_from_model(model: StoreModel) -> Store:
    return Store(
        id=model.id,
        shop_domain=model.shop_domain,
        pay_to_address=model.pay_to_address,
        description=model.description,
        category=model.category,
        agent_metadata=model.agent_metadata or {},
        admin_access_token=model.admin_access_token,
        created_at=_as_utc(model.created_at),
    )


def product_from_model(model: ProductModel) -> Product:
    return Product(
        id=model.id,
        store_id=model.store_id,
        title=model.title,
        external_product_id=model.external_product_id,
        description=model.description,
        vendor=model.vendor,
        product_type=model.product_type,
        tags=list(model.tags or []),
        images=list(model.images or []),
        variants=[ProductVariant.from_dict(v) for v in (model.variants or [])],
        created_at=_as_utc(model.created_at),
    )


class SqlCatalog(CatalogReader, CatalogWriter):
    """Catalog backed by the ``stores`` and ``products`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_stores(
        self,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
        category: str | None = None,
    ) -> tuple[list[Store], int]:
        conditions = [StoreModel.is_active.is_(True)]
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(StoreModel.description.ilike(pattern), StoreModel.shop_domain.ilike(pattern))
            )
        if category:
            conditions.append(func.lower(StoreModel.category) == category.lower())

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(StoreModel).where(*conditions)
            )
            result = await session.execute(
                select(StoreModel)
                .where(*conditions)
                .order_by(StoreModel.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            stores = [store_from_model(m) for m in result.scalars().all()]
        return stores, total or 0

    async def get_store(self, store_id: str) -> Store | None:
        async with self._session_factory() as session:
            model = await session.get(StoreModel, store_id)
            return store_from_model(model) if model else None

    async def list_products(
        self,
        store_id: str,
        limit: int = 50,
        offset: int = 0,
        search: str | None = None,
    ) -> tuple[list[Product], int]:
        conditions = [ProductModel.store_id == store_id]
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(ProductModel.title.ilike(pattern), ProductModel.description.ilike(pattern))
            )

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(ProductModel).where(*conditions)
            )
            result = await session.execute(
                select(ProductModel)
                .where(*conditions)
                .order_by(ProductModel.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            products = [product_from_model(m) for m in result.scalars().all()]
        return products, total or 0

    async def get_product(self, product_id: str) -> Product | None:
        async with self._session_factory() as session:
            model = await session.get(ProductModel, product_id)
            return product_from_model(model) if model else None

    async def get_products(self, product_ids: list[str]) -> dict[str, Product]:
        if not product_ids:
            return {}
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProductModel).where(ProductModel.id.in_(set(product_ids)))
            )
            return {m.id: product_from_model(m) for m in result.scalars().all()}

    async def get_store_by_domain(self, shop_domain: str) -> Store | None:
        async with self._session_factory() as session:
            model = await session.scalar(
                select(StoreModel).where(func.lower(StoreModel.shop_domain) == shop_domain.lower())
            )
            return store_from_model(model) if model else None

    async def create_store(self, store: Store) -> Store:
        async with self._session_factory() as session:
            session.add(
                StoreModel(
                    id=store.id,
                    shop_domain=store.shop_domain,
                    description=store.description,
                    category=store.category,
                    pay_to_address=store.pay_to_address,
                    admin_access_token=store.admin_access_token,
                    agent_metadata=dict(store.agent_metadata),
                    is_active=True,
                    created_at=store.created_at,
                )
            )
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise StoreAlreadyRegisteredError(store.shop_domain) from e
        return store
