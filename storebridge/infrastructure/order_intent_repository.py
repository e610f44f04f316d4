"""Order intent persistence.

The repository is the only arbiter of intent state. Every status change
is a compare-and-set: it succeeds only if the stored row still has the
expected status (and, for finalize, the expected claim), so racing
callers can never both win.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storebridge.domain.entities import OrderIntent
from storebridge.domain.state_machines import OrderIntentStatus
from storebridge.domain.value_objects import (
    FulfillmentRef,
    OrderIntentId,
    OrderItem,
    PaymentProof,
    ShippingAddress,
)
from storebridge.infrastructure.models import OrderIntentModel


# ============================================================================
# Repository Interface
# ============================================================================


class OrderIntentRepository(ABC):
    """Durable store of order intents."""

    @abstractmethod
    async def add(self, intent: OrderIntent) -> None:
        """Persist a newly created intent."""
        pass

    @abstractmethod
    async def get(self, intent_id: str) -> OrderIntent | None:
        pass

    @abstractmethod
    async def list_by_store(
        self,
        store_id: str,
        status: OrderIntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[OrderIntent], int]:
        """List a store's intents, newest first, with the total match count."""
        pass

    @abstractmethod
    async def claim_for_finalize(
        self,
        intent_id: str,
        claim_id: str,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> OrderIntent | None:
        """Atomically mark a pending intent as being finalized.

        The claim succeeds only if the intent is pending and either
        unclaimed or holding a claim taken before ``stale_before``.

        Returns:
            The claimed intent, or None if another caller holds it or it
            is no longer pending.
        """
        pass

    @abstractmethod
    async def save_transition(
        self,
        intent: OrderIntent,
        expected_status: OrderIntentStatus,
        claim_id: str | None = None,
        stale_before: datetime | None = None,
    ) -> bool:
        """Write a status change if the stored intent is still as expected.

        Args:
            intent: Intent carrying the new state.
            expected_status: Status the stored row must still have.
            claim_id: When given, the stored finalize claim must match it.
            stale_before: When no claim_id is given, the row must be
                unclaimed or hold a claim older than this.

        Returns:
            True if this call won and the change was written.
        """
        pass

    @abstractmethod
    async def record_fulfillment(self, intent: OrderIntent) -> bool:
        """Write the fulfillment reference of a paid intent, at most once."""
        pass

    @abstractmethod
    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[OrderIntent]:
        """Pending intents whose deadline passed before ``now``."""
        pass


# ============================================================================
# In-Memory Repository
# ============================================================================


class InMemoryOrderIntentRepository(OrderIntentRepository):
    """Process-local repository for development and tests.

    Snapshots are copied in and out so callers never share state with
    the store. Each method runs without suspending, which makes every
    check-and-set atomic on the event loop.
    """

    def __init__(self) -> None:
        self._intents: dict[str, OrderIntent] = {}

    @staticmethod
    def _snapshot(intent: OrderIntent) -> OrderIntent:
        snapshot = copy.deepcopy(intent)
        snapshot.collect_events()
        return snapshot

    def _claim_is_free(self, stored: OrderIntent, stale_before: datetime | None) -> bool:
        if stored.finalize_claim_id is None:
            return True
        return stale_before is not None and not stored.has_active_claim(stale_before)

    async def add(self, intent: OrderIntent) -> None:
        self._intents[str(intent.id)] = self._snapshot(intent)

    async def get(self, intent_id: str) -> OrderIntent | None:
        stored = self._intents.get(intent_id)
        return self._snapshot(stored) if stored else None

    async def list_by_store(
        self,
        store_id: str,
        status: OrderIntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[OrderIntent], int]:
        matches = [
            i
            for i in self._intents.values()
            if i.store_id == store_id and (status is None or i.status == status)
        ]
        matches.sort(key=lambda i: i.created_at, reverse=True)
        return [self._snapshot(i) for i in matches[offset : offset + limit]], len(matches)

    async def claim_for_finalize(
        self,
        intent_id: str,
        claim_id: str,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> OrderIntent | None:
        stored = self._intents.get(intent_id)
        if stored is None or stored.status != OrderIntentStatus.PENDING:
            return None
        if not self._claim_is_free(stored, stale_before):
            return None
        stored.finalize_claim_id = claim_id
        stored.finalize_claimed_at = claimed_at
        return self._snapshot(stored)

    async def save_transition(
        self,
        intent: OrderIntent,
        expected_status: OrderIntentStatus,
        claim_id: str | None = None,
        stale_before: datetime | None = None,
    ) -> bool:
        stored = self._intents.get(str(intent.id))
        if stored is None or stored.status != expected_status:
            return False
        if claim_id is not None:
            if stored.finalize_claim_id != claim_id:
                return False
        elif not self._claim_is_free(stored, stale_before):
            return False
        self._intents[str(intent.id)] = self._snapshot(intent)
        return True

    async def record_fulfillment(self, intent: OrderIntent) -> bool:
        stored = self._intents.get(str(intent.id))
        if stored is None or stored.status != OrderIntentStatus.PAID:
            return False
        if stored.fulfillment is not None or intent.fulfillment is None:
            return False
        stored.fulfillment = intent.fulfillment
        stored.updated_at = intent.updated_at
        stored.version = intent.version
        return True

    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[OrderIntent]:
        expired = [
            i
            for i in self._intents.values()
            if i.status == OrderIntentStatus.PENDING and i.expires_at < now
        ]
        expired.sort(key=lambda i: i.expires_at)
        return [self._snapshot(i) for i in expired[:limit]]


# ============================================================================
# SQL Repository
# ============================================================================


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def intent_to_model(intent: OrderIntent) -> OrderIntentModel:
    """Map an OrderIntent onto a new ORM row."""
    return OrderIntentModel(
        id=str(intent.id),
        store_id=intent.store_id,
        status=intent.status.value,
        items=[item.to_dict() for item in intent.items],
        total_amount=intent.total_amount,
        currency=intent.currency,
        network=intent.network,
        asset=intent.asset,
        pay_to_address=intent.pay_to_address,
        shipping_address=intent.shipping_address.to_dict() if intent.shipping_address else None,
        payment_proof=intent.payment_proof.to_dict() if intent.payment_proof else None,
        failure_reason=intent.failure_reason,
        fulfillment=intent.fulfillment.to_dict() if intent.fulfillment else None,
        finalize_claim_id=intent.finalize_claim_id,
        finalize_claimed_at=intent.finalize_claimed_at,
        version=intent.version,
        expires_at=intent.expires_at,
        created_at=intent.created_at,
        updated_at=intent.updated_at,
    )


def intent_from_model(model: OrderIntentModel) -> OrderIntent:
    """Rebuild an OrderIntent from its ORM row."""
    return OrderIntent(
        id=OrderIntentId.from_string(model.id),
        store_id=model.store_id,
        items=[OrderItem.from_dict(item) for item in model.items],
        total_amount=model.total_amount,
        currency=model.currency,
        network=model.network,
        asset=model.asset,
        pay_to_address=model.pay_to_address,
        expires_at=_as_utc(model.expires_at),
        status=OrderIntentStatus(model.status),
        shipping_address=ShippingAddress.from_dict(model.shipping_address),
        payment_proof=PaymentProof.from_dict(model.payment_proof) if model.payment_proof else None,
        failure_reason=model.failure_reason,
        fulfillment=FulfillmentRef.from_dict(model.fulfillment) if model.fulfillment else None,
        finalize_claim_id=model.finalize_claim_id,
        finalize_claimed_at=_as_utc(model.finalize_claimed_at),
        version=model.version,
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


class SqlOrderIntentRepository(OrderIntentRepository):
    """Repository backed by the ``order_intents`` table.

    Transitions are single ``UPDATE ... WHERE`` statements; the affected
    row count tells whether this caller won.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, intent: OrderIntent) -> None:
        async with self._session_factory() as session:
            session.add(intent_to_model(intent))
            await session.commit()

    async def get(self, intent_id: str) -> OrderIntent | None:
        async with self._session_factory() as session:
            model = await session.get(OrderIntentModel, intent_id)
            return intent_from_model(model) if model else None

    async def list_by_store(
        self,
        store_id: str,
        status: OrderIntentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[OrderIntent], int]:
        conditions = [OrderIntentModel.store_id == store_id]
        if status is not None:
            conditions.append(OrderIntentModel.status == status.value)

        async with self._session_factory() as session:
            total = await session.scalar(
                select(func.count()).select_from(OrderIntentModel).where(*conditions)
            )
            result = await session.execute(
                select(OrderIntentModel)
                .where(*conditions)
                .order_by(OrderIntentModel.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            intents = [intent_from_model(m) for m in result.scalars().all()]
        return intents, total or 0

    async def claim_for_finalize(
        self,
        intent_id: str,
        claim_id: str,
        claimed_at: datetime,
        stale_before: datetime,
    ) -> OrderIntent | None:
        stmt = (
            update(OrderIntentModel)
            .where(
                OrderIntentModel.id == intent_id,
                OrderIntentModel.status == OrderIntentStatus.PENDING.value,
                self._claim_is_free(stale_before),
            )
            .values(finalize_claim_id=claim_id, finalize_claimed_at=claimed_at)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount != 1:
                return None
            model = await session.get(OrderIntentModel, intent_id)
            return intent_from_model(model) if model else None

    async def save_transition(
        self,
        intent: OrderIntent,
        expected_status: OrderIntentStatus,
        claim_id: str | None = None,
        stale_before: datetime | None = None,
    ) -> bool:
        conditions = [
            OrderIntentModel.id == str(intent.id),
            OrderIntentModel.status == expected_status.value,
        ]
        if claim_id is not None:
            conditions.append(OrderIntentModel.finalize_claim_id == claim_id)
        else:
            conditions.append(self._claim_is_free(stale_before))

        stmt = (
            update(OrderIntentModel)
            .where(*conditions)
            .values(
                status=intent.status.value,
                payment_proof=intent.payment_proof.to_dict() if intent.payment_proof else None,
                failure_reason=intent.failure_reason,
                finalize_claim_id=intent.finalize_claim_id,
                finalize_claimed_at=intent.finalize_claimed_at,
                version=intent.version,
                updated_at=intent.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def record_fulfillment(self, intent: OrderIntent) -> bool:
        if intent.fulfillment is None:
            return False
        stmt = (
            update(OrderIntentModel)
            .where(
                OrderIntentModel.id == str(intent.id),
                OrderIntentModel.status == OrderIntentStatus.PAID.value,
                OrderIntentModel.fulfillment.is_(None),
            )
            .values(
                fulfillment=intent.fulfillment.to_dict(),
                version=intent.version,
                updated_at=intent.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount == 1

    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[OrderIntent]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderIntentModel)
                .where(
                    OrderIntentModel.status == OrderIntentStatus.PENDING.value,
                    OrderIntentModel.expires_at < now,
                )
                .order_by(OrderIntentModel.expires_at)
                .limit(limit)
            )
            return [intent_from_model(m) for m in result.scalars().all()]

    @staticmethod
    def _claim_is_free(stale_before: datetime | None):
        if stale_before is None:
            return OrderIntentModel.finalize_claim_id.is_(None)
        return or_(
            OrderIntentModel.finalize_claim_id.is_(None),
            and_(
                OrderIntentModel.finalize_claimed_at.is_not(None),
                OrderIntentModel.finalize_claimed_at < stale_before,
            ),
        )
