"""Pytest configuration and shared fixtures.

Builds an in-memory catalog, a scripted facilitator, a controllable
clock and a fully wired service on top of them.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from storebridge.application.fulfillment import (
    FulfillmentConnector,
    FulfillmentDispatcher,
    InlineFulfillmentDispatcher,
)
from storebridge.application.order_intent_service import OrderIntentService
from storebridge.domain.payment_payload import SignedPaymentPayload, encode_payment_header
from storebridge.domain.value_objects import (
    FulfillmentRef,
    OrderItem,
    PaymentRequirements,
    SettlementRail,
    ShippingAddress,
)
from storebridge.infrastructure.catalog import InMemoryCatalog, Product, ProductVariant, Store
from storebridge.infrastructure.facilitator_client import SettlementResult, VerificationResult
from storebridge.infrastructure.order_intent_repository import InMemoryOrderIntentRepository

PAY_TO = "0x" + "a" * 64
OTHER_PAY_TO = "0x" + "c" * 64
SENDER = "0x" + "b" * 64
START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Test Doubles
# ============================================================================


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeFacilitator:
    """Scripted facilitator that yields to the event loop on every call."""

    def __init__(self) -> None:
        self.verification = VerificationResult(is_valid=True, payer=SENDER, raw={"isValid": True})
        self.settlement = SettlementResult(
            success=True,
            transaction="0xsettled",
            network="movement",
            raw={"success": True, "transactionHash": "0xsettled"},
        )
        self.verify_error: Exception | None = None
        self.settle_error: Exception | None = None
        self.verify_calls: list[tuple[SignedPaymentPayload, PaymentRequirements]] = []
        self.settle_calls: list[tuple[SignedPaymentPayload, PaymentRequirements]] = []

    async def verify(
        self, payload: SignedPaymentPayload, requirements: PaymentRequirements
    ) -> VerificationResult:
        self.verify_calls.append((payload, requirements))
        await asyncio.sleep(0)
        if self.verify_error:
            raise self.verify_error
        return self.verification

    async def settle(
        self, payload: SignedPaymentPayload, requirements: PaymentRequirements
    ) -> SettlementResult:
        self.settle_calls.append((payload, requirements))
        await asyncio.sleep(0)
        if self.settle_error:
            raise self.settle_error
        return self.settlement

    async def close(self) -> None:
        pass


class FakeConnector(FulfillmentConnector):
    """Connector that records calls and returns a fixed reference or raises."""

    def __init__(self) -> None:
        self.ref = FulfillmentRef(
            external_order_id="5001",
            external_order_number="1001",
            external_order_label="#1001",
        )
        self.error: Exception | None = None
        self.calls: list[dict[str, Any]] = []

    async def create_fulfillment(
        self,
        store: Store,
        items: list[OrderItem],
        shipping_address: ShippingAddress | None,
        note: str,
        payment_reference: str,
    ) -> FulfillmentRef:
        self.calls.append(
            {
                "store": store,
                "items": items,
                "shipping_address": shipping_address,
                "note": note,
                "payment_reference": payment_reference,
            }
        )
        if self.error:
            raise self.error
        return self.ref


class RaisingDispatcher(FulfillmentDispatcher):
    """Dispatcher that breaks its own never-raise contract."""

    async def dispatch(self, intent, store):
        raise RuntimeError("dispatcher exploded")


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def rail() -> SettlementRail:
    return SettlementRail(
        network="movement",
        asset="0x1::aptos_coin::AptosCoin",
        currency="MOVE",
        decimals=8,
        rate="1",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Store:
    return Store(
        id="store-1",
        shop_domain="mug-shop.myshopify.com",
        pay_to_address=PAY_TO,
        description="Mug Shop",
        category="home",
        admin_access_token="shpat_secret",
        created_at=START - timedelta(days=2),
    )


@pytest.fixture
def catalog(store: Store) -> InMemoryCatalog:
    catalog = InMemoryCatalog()
    catalog.add_store(store)
    catalog.add_store(
        Store(
            id="store-2",
            shop_domain="tee-shop.myshopify.com",
            pay_to_address=OTHER_PAY_TO,
            description="Tee Shop",
            category="apparel",
            created_at=START - timedelta(days=1),
        )
    )
    catalog.add_product(
        Product(
            id="prod-1",
            store_id="store-1",
            title="Mug",
            external_product_id="9001",
            description="A ceramic mug",
            variants=[
                ProductVariant(id="var-1", title="Blue", price="10.00", external_variant_id="111"),
                ProductVariant(id="var-2", title="Red", price="12.50", external_variant_id="112"),
                ProductVariant(
                    id="var-3",
                    title="Gold",
                    price="99.00",
                    external_variant_id="113",
                    inventory_quantity=0,
                    available=False,
                ),
            ],
        )
    )
    catalog.add_product(
        Product(
            id="prod-2",
            store_id="store-2",
            title="T-Shirt",
            external_product_id="9100",
            variants=[ProductVariant(id="var-10", title="M", price="20.00")],
        )
    )
    return catalog


@pytest.fixture
def repository() -> InMemoryOrderIntentRepository:
    return InMemoryOrderIntentRepository()


@pytest.fixture
def facilitator() -> FakeFacilitator:
    return FakeFacilitator()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def make_service(repository, catalog, facilitator, rail, clock):
    """Factory building a service around a given fulfillment dispatcher."""

    def _make(fulfillment: FulfillmentDispatcher) -> OrderIntentService:
        return OrderIntentService(
            repository=repository,
            catalog=catalog,
            facilitator=facilitator,
            fulfillment=fulfillment,
            rail=rail,
            intent_ttl=timedelta(minutes=30),
            payment_timeout_seconds=600,
            claim_timeout=timedelta(minutes=2),
            clock=clock,
        )

    return _make


@pytest.fixture
def service(make_service, connector) -> OrderIntentService:
    return make_service(InlineFulfillmentDispatcher(connector))


@pytest.fixture
def raising_dispatcher() -> RaisingDispatcher:
    return RaisingDispatcher()


@pytest.fixture
def pay_to() -> str:
    return PAY_TO


@pytest.fixture
def sender() -> str:
    return SENDER


@pytest.fixture
def payment_header() -> str:
    return encode_payment_header(
        {
            "x402Version": 1,
            "scheme": "exact",
            "network": "movement",
            "payload": {"signature": "0xsig", "transaction": "0xsignedtx"},
        }
    )
