"""Order intent application service.

Orchestrates the x402 purchase flow:
1. Initiate: price the items from the catalog and store a pending intent
2. Finalize: verify and settle the signed payment through the facilitator
3. Fulfill: create the storefront order, best-effort, once paid
4. Cancel / expire: close intents that will never be paid

The repository is the only arbiter of intent state. Every transition is
a conditional write, and finalize first takes an exclusive claim on the
intent so two concurrent attempts can never both reach the facilitator.
"""

import asyncio
import copy
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

import structlog

from storebridge.application.fulfillment import FulfillmentDispatcher
from storebridge.domain.base import utc_now
from storebridge.domain.entities import OrderIntent
from storebridge.domain.exceptions import (
    EmptyOrderError,
    InternalError,
    InvalidQuantityError,
    OrderIntentConflictError,
    OrderIntentExpiredError,
    OrderIntentNotFoundError,
    PaymentSettlementFailedError,
    PaymentVerificationFailedError,
    ProductNotFoundError,
    StoreNotFoundError,
    VariantNotFoundError,
    VariantUnavailableError,
)
from storebridge.domain.payment_payload import decode_payment_header
from storebridge.domain.state_machines import OrderIntentStatus
from storebridge.domain.value_objects import (
    FulfillmentRef,
    OrderIntentId,
    OrderItem,
    PaymentProof,
    PaymentRequirements,
    SettlementRail,
    ShippingAddress,
)
from storebridge.infrastructure.catalog import CatalogReader, Product, Store
from storebridge.infrastructure.facilitator_client import (
    FacilitatorClient,
    FacilitatorClientError,
    SettlementResult,
    VerificationResult,
)
from storebridge.infrastructure.order_intent_repository import OrderIntentRepository

logger = structlog.get_logger()


# ============================================================================
# Service Inputs / Results
# ============================================================================


@dataclass
class LineItemRequest:
    """A line item as requested by the buyer, before pricing."""

    product_id: str
    variant_id: str
    quantity: int


@dataclass
class InitiatedOrder:
    """A freshly created intent and the requirements to pay it."""

    intent: OrderIntent
    payment_requirements: PaymentRequirements

    def to_payment_required(self) -> dict[str, Any]:
        """Body of the x402 "402 Payment Required" answer."""
        return {
            "success": True,
            "message": "Payment required",
            "orderIntent": {
                "id": str(self.intent.id),
                "total_amount": self.intent.total_amount,
                "currency": self.intent.currency,
                "expires_at": self.intent.expires_at.isoformat(),
                "items": [item.to_dict() for item in self.intent.items],
            },
            "accepts": [self.payment_requirements.to_dict()],
        }


@dataclass
class EnrichedOrder:
    """An intent joined with its store and current product records."""

    intent: OrderIntent
    store: Store
    products: list[tuple[OrderItem, Product | None]]

    def to_dict(self) -> dict[str, Any]:
        data = self.intent.to_dict()
        data["store"] = self.store.to_public_dict()
        data["products"] = [
            {"item": item.to_dict(), "product": product.to_dict() if product else None}
            for item, product in self.products
        ]
        return data


# ============================================================================
# Order Intent Service
# ============================================================================


class OrderIntentService:
    """Application service owning the order intent state machine."""

    def __init__(
        self,
        repository: OrderIntentRepository,
        catalog: CatalogReader,
        facilitator: FacilitatorClient,
        fulfillment: FulfillmentDispatcher,
        rail: SettlementRail,
        intent_ttl: timedelta = timedelta(minutes=30),
        payment_timeout_seconds: int = 600,
        claim_timeout: timedelta = timedelta(minutes=2),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize service.

        Args:
            repository: Order intent store.
            catalog: Catalog used to price items.
            facilitator: x402 facilitator client.
            fulfillment: Dispatcher for the post-payment storefront order.
            rail: Settlement rail of this deployment.
            intent_ttl: How long a new intent stays payable.
            payment_timeout_seconds: Advertised to payers as maxTimeoutSeconds.
            claim_timeout: Age after which a finalize claim is abandoned.
            clock: Source of the current time.
        """
        self._repository = repository
        self._catalog = catalog
        self._facilitator = facilitator
        self._fulfillment = fulfillment
        self._rail = rail
        self._intent_ttl = intent_ttl
        self._payment_timeout_seconds = payment_timeout_seconds
        self._claim_timeout = claim_timeout
        self._clock = clock

    @property
    def rail(self) -> SettlementRail:
        return self._rail

    # -------------------------------------------------------------------------
    # Initiate
    # -------------------------------------------------------------------------

    async def initiate(
        self,
        store_id: str,
        items: list[LineItemRequest],
        shipping_address: ShippingAddress | None = None,
    ) -> InitiatedOrder:
        """Price the requested items and store a pending intent.

        Nothing is persisted unless every item resolves.

        Args:
            store_id: Store to buy from.
            items: Requested products, variants and quantities.
            shipping_address: Optional destination.

        Returns:
            The new intent and its payment requirements.

        Raises:
            EmptyOrderError: If no items are given.
            InvalidQuantityError: If a quantity is not positive.
            StoreNotFoundError: If the store does not exist.
            ProductNotFoundError: If a product is missing or from another store.
            VariantNotFoundError: If a variant is missing.
            VariantUnavailableError: If a variant cannot be bought.
        """
        if not items:
            raise EmptyOrderError()
        for item in items:
            if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
                raise InvalidQuantityError(item.quantity, "Quantity must be an integer")
            if item.quantity <= 0:
                raise InvalidQuantityError(item.quantity)

        store = await self._catalog.get_store(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)

        products = await self._catalog.get_products([item.product_id for item in items])
        order_items: list[OrderItem] = []
        for item in items:
            product = products.get(item.product_id)
            if product is None or product.store_id != store.id:
                raise ProductNotFoundError(item.product_id, store.id)
            variant = product.get_variant(item.variant_id)
            if variant is None:
                raise VariantNotFoundError(item.product_id, item.variant_id)
            if not variant.available:
                raise VariantUnavailableError(item.product_id, item.variant_id)

            order_items.append(
                OrderItem(
                    product_id=product.id,
                    variant_id=variant.id,
                    quantity=item.quantity,
                    unit_price=str(self._rail.to_base_units(variant.price)),
                    title=f"{product.title} - {variant.title}",
                    price=variant.price,
                    external_variant_id=variant.external_variant_id,
                )
            )

        intent = OrderIntent.create(
            store_id=store.id,
            items=order_items,
            rail=self._rail,
            pay_to_address=store.pay_to_address,
            ttl=self._intent_ttl,
            shipping_address=shipping_address,
            now=self._clock(),
        )
        await self._repository.add(intent)

        logger.info(
            "Order intent created",
            order_intent_id=str(intent.id),
            store_id=store.id,
            total_amount=intent.total_amount,
            currency=intent.currency,
            expires_at=intent.expires_at.isoformat(),
        )
        self._publish(intent)

        return InitiatedOrder(intent=intent, payment_requirements=self._requirements_for(intent))

    # -------------------------------------------------------------------------
    # Finalize
    # -------------------------------------------------------------------------

    async def finalize(self, intent_id: str, payment_header: str) -> OrderIntent:
        """Verify and settle a signed payment for a pending intent.

        Args:
            intent_id: Order intent to pay.
            payment_header: Base64-encoded signed payment payload.

        Returns:
            The paid intent, with a fulfillment reference if the storefront
            order could be created.

        Raises:
            OrderIntentNotFoundError: If the intent does not exist.
            OrderIntentConflictError: If the intent is not pending or another
                finalize attempt holds it.
            OrderIntentExpiredError: If the intent outlived its TTL. The intent
                is moved to expired first.
            PaymentPayloadError: If the payload cannot be decoded. The
                intent is left untouched.
            PaymentVerificationFailedError: If the facilitator rejected the
                payment. The intent is moved to failed first.
            PaymentSettlementFailedError: If the verified payment did not
                settle. The intent is moved to failed first.
        """
        intent = await self._load(intent_id)
        if not intent.is_pending:
            raise OrderIntentConflictError(str(intent.id), intent.status.value)

        now = self._clock()
        if intent.is_expired(now):
            await self._expire(intent, now)

        payload = decode_payment_header(payment_header)

        claim_id = str(uuid4())
        claimed = await self._repository.claim_for_finalize(
            str(intent.id),
            claim_id=claim_id,
            claimed_at=now,
            stale_before=now - self._claim_timeout,
        )
        if claimed is None:
            await self._raise_current_conflict(str(intent.id), "is already being finalized")
        intent = claimed

        log = logger.bind(order_intent_id=str(intent.id), claim_id=claim_id)
        requirements = self._requirements_for(intent)

        log.info("Verifying payment", amount=intent.total_amount, pay_to=intent.pay_to_address)
        try:
            verification = await self._facilitator.verify(payload, requirements)
        except FacilitatorClientError as e:
            verification = VerificationResult.rejected(e.message)
        if not verification.is_valid:
            reason = verification.invalid_reason or "Verification failed"
            log.warning("Payment verification failed", reason=reason)
            await self._fail(intent, claim_id, f"verification: {reason}")
            raise PaymentVerificationFailedError(str(intent.id), reason)

        log.info("Settling payment")
        try:
            settlement = await self._facilitator.settle(payload, requirements)
        except FacilitatorClientError as e:
            settlement = SettlementResult.rejected(e.message)
        if settlement.success and not settlement.transaction:
            settlement = SettlementResult.rejected(
                "Settlement response did not include a transaction reference",
                raw=settlement.raw,
            )
        if not settlement.success:
            reason = settlement.error or "Settlement failed"
            log.warning("Payment settlement failed", reason=reason)
            await self._fail(intent, claim_id, f"settlement: {reason}")
            raise PaymentSettlementFailedError(str(intent.id), reason)

        paid_at = self._clock()
        proof = PaymentProof(
            transaction=settlement.transaction,
            signature=payment_header,
            verified_at=paid_at,
            facilitator_response=settlement.raw,
        )
        intent.mark_paid(proof, paid_at)
        if not await self._repository.save_transition(
            intent, OrderIntentStatus.PENDING, claim_id=claim_id
        ):
            log.error(
                "Settled payment could not be recorded",
                transaction=settlement.transaction,
            )
            raise InternalError(
                "Payment settled but the order intent could not be updated",
                details={
                    "order_intent_id": str(intent.id),
                    "transaction": settlement.transaction,
                },
            )

        log.info("Order intent paid", transaction=settlement.transaction)
        self._publish(intent)

        return await self._fulfill(intent)

    # -------------------------------------------------------------------------
    # Cancel / Expire
    # -------------------------------------------------------------------------

    async def cancel(self, intent_id: str) -> OrderIntent:
        """Cancel a pending intent.

        Raises:
            OrderIntentNotFoundError: If the intent does not exist.
            OrderIntentConflictError: If it is not pending or is being finalized.
        """
        intent = await self._load(intent_id)
        if not intent.is_pending:
            raise OrderIntentConflictError(str(intent.id), intent.status.value)

        now = self._clock()
        stale_before = now - self._claim_timeout
        if intent.has_active_claim(stale_before):
            raise OrderIntentConflictError(
                str(intent.id), intent.status.value, "is being finalized"
            )

        intent.cancel(now)
        if not await self._repository.save_transition(
            intent, OrderIntentStatus.PENDING, stale_before=stale_before
        ):
            await self._raise_current_conflict(str(intent.id), "changed while cancelling")

        logger.info("Order intent cancelled", order_intent_id=str(intent.id))
        self._publish(intent)
        return intent

    async def expire_stale_intents(self, limit: int = 100) -> int:
        """Move pending intents past their deadline to expired.

        Intents held by a live finalize claim are skipped.

        Returns:
            Number of intents expired by this call.
        """
        now = self._clock()
        stale_before = now - self._claim_timeout
        expired = 0
        for intent in await self._repository.list_expired_pending(now, limit=limit):
            if intent.has_active_claim(stale_before):
                continue
            intent.expire(now)
            if await self._repository.save_transition(
                intent, OrderIntentStatus.PENDING, stale_before=stale_before
            ):
                self._publish(intent)
                expired += 1

        if expired:
            logger.info("Expired stale order intents", count=expired)
        return expired

    # -------------------------------------------------------------------------
    # Fulfillment
    # -------------------------------------------------------------------------

    async def record_fulfillment(self, intent_id: str, ref: FulfillmentRef) -> OrderIntent:
        """Attach a storefront order to a paid intent.

        Entry point for asynchronous fulfillment workers.

        Raises:
            OrderIntentNotFoundError: If the intent does not exist.
            OrderIntentConflictError: If it is not paid or already fulfilled.
        """
        intent = await self._load(intent_id)
        return await self._attach_fulfillment(intent, ref)

    async def _attach_fulfillment(self, intent: OrderIntent, ref: FulfillmentRef) -> OrderIntent:
        intent.attach_fulfillment(ref, self._clock())
        if not await self._repository.record_fulfillment(intent):
            await self._raise_current_conflict(
                str(intent.id), "already has a fulfillment reference"
            )
        logger.info(
            "Fulfillment recorded",
            order_intent_id=str(intent.id),
            external_order_id=ref.external_order_id,
        )
        self._publish(intent)
        return intent

    async def _fulfill(self, intent: OrderIntent) -> OrderIntent:
        """Run fulfillment for a paid intent without ever raising."""
        try:
            store = await self._catalog.get_store(intent.store_id)
            if store is None:
                logger.warning(
                    "Store missing, skipping fulfillment",
                    order_intent_id=str(intent.id),
                    store_id=intent.store_id,
                )
                return intent

            ref = await self._fulfillment.dispatch(intent, store)
            if ref is None:
                return intent
            return await self._attach_fulfillment(copy.deepcopy(intent), ref)
        except Exception:
            logger.exception(
                "Fulfillment bookkeeping failed, order intent stays paid",
                order_intent_id=str(intent.id),
            )
            return intent

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_intent(self, intent_id: str) -> OrderIntent:
        """Get an intent by ID.

        Raises:
            OrderIntentNotFoundError: If it does not exist.
        """
        return await self._load(intent_id)

    async def get_payment_requirements(self, intent_id: str) -> tuple[OrderIntent, PaymentRequirements]:
        """Get the payment requirements of a payable intent.

        Raises:
            OrderIntentNotFoundError: If the intent does not exist.
            OrderIntentConflictError: If it is no longer pending.
            OrderIntentExpiredError: If it outlived its TTL.
        """
        intent = await self._load(intent_id)
        if not intent.is_pending:
            raise OrderIntentConflictError(str(intent.id), intent.status.value)
        now = self._clock()
        if intent.is_expired(now):
            await self._expire(intent, now)
        return intent, self._requirements_for(intent)

    async def get_enriched_order(self, intent_id: str) -> EnrichedOrder:
        """Get an intent joined with its store and product records.

        Raises:
            OrderIntentNotFoundError: If the intent does not exist.
            StoreNotFoundError: If its store no longer exists.
        """
        intent = await self._load(intent_id)
        store = await self._catalog.get_store(intent.store_id)
        if store is None:
            raise StoreNotFoundError(intent.store_id)
        products = await self._catalog.get_products([item.product_id for item in intent.items])
        return EnrichedOrder(
            intent=intent,
            store=store,
            products=[(item, products.get(item.product_id)) for item in intent.items],
        )

    async def list_store_intents(
        self,
        store_id: str,
        status: OrderIntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[OrderIntent], int]:
        """List a store's intents, newest first.

        Raises:
            StoreNotFoundError: If the store does not exist.
        """
        if await self._catalog.get_store(store_id) is None:
            raise StoreNotFoundError(store_id)
        return await self._repository.list_by_store(
            store_id, status=status, limit=limit, offset=offset
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load(self, intent_id: str) -> OrderIntent:
        try:
            key = str(OrderIntentId.from_string(intent_id))
        except (ValueError, TypeError, AttributeError):
            raise OrderIntentNotFoundError(str(intent_id)) from None
        intent = await self._repository.get(key)
        if intent is None:
            raise OrderIntentNotFoundError(key)
        return intent

    def _requirements_for(self, intent: OrderIntent) -> PaymentRequirements:
        return intent.payment_requirements(
            description=f"Payment for order {intent.id}",
            max_timeout_seconds=self._payment_timeout_seconds,
        )

    async def _expire(self, intent: OrderIntent, now: datetime) -> None:
        """Record expiry of a pending intent, then raise.

        Raises:
            OrderIntentExpiredError: If this call recorded the expiry.
            OrderIntentConflictError: If the intent changed concurrently.
        """
        intent.expire(now)
        if await self._repository.save_transition(
            intent, OrderIntentStatus.PENDING, stale_before=now - self._claim_timeout
        ):
            logger.info("Order intent expired", order_intent_id=str(intent.id))
            self._publish(intent)
            raise OrderIntentExpiredError(str(intent.id))
        await self._raise_current_conflict(str(intent.id), "is already being finalized")

    async def _fail(self, intent: OrderIntent, claim_id: str, reason: str) -> None:
        intent.mark_failed(reason, self._clock())
        if not await self._repository.save_transition(
            intent, OrderIntentStatus.PENDING, claim_id=claim_id
        ):
            await self._raise_current_conflict(str(intent.id), "changed during finalization")
        self._publish(intent)

    async def _raise_current_conflict(self, intent_id: str, pending_reason: str) -> None:
        """Raise a conflict naming the intent's stored status."""
        current = await self._repository.get(intent_id)
        if current is None:
            raise OrderIntentNotFoundError(intent_id)
        if current.is_pending:
            raise OrderIntentConflictError(intent_id, current.status.value, pending_reason)
        raise OrderIntentConflictError(intent_id, current.status.value)

    def _publish(self, intent: OrderIntent) -> None:
        for event in intent.collect_events():
            logger.info("Domain event", **event.to_dict())


# ============================================================================
# Background Expiry Sweep
# ============================================================================


async def run_expiry_sweep(service: OrderIntentService, interval_seconds: float) -> None:
    """Expire stale pending intents every ``interval_seconds`` until cancelled."""
    logger.info("Expiry sweep started", interval_seconds=interval_seconds)
    while True:
        try:
            await service.expire_stale_intents()
        except Exception:
            logger.exception("Expiry sweep failed")
        await asyncio.sleep(interval_seconds)
