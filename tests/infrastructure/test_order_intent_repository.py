"""Tests for order intent repositories.

Both implementations are run through the same compare-and-set
contract. The SQL repository runs against SQLite through aiosqlite.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from storebridge.domain.entities import OrderIntent
from storebridge.domain.state_machines import OrderIntentStatus
from storebridge.domain.value_objects import (
    FulfillmentRef,
    OrderItem,
    PaymentProof,
    ShippingAddress,
)
from storebridge.infrastructure.database import create_all, create_engine, create_session_factory
from storebridge.infrastructure.order_intent_repository import (
    InMemoryOrderIntentRepository,
    SqlOrderIntentRepository,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sql_repository(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'intents.db'}")
    await create_all(engine)
    yield SqlOrderIntentRepository(create_session_factory(engine))
    await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def repo(request, sql_repository):
    if request.param == "memory":
        return InMemoryOrderIntentRepository()
    return sql_repository


@pytest.fixture
def new_intent(rail, clock, pay_to):
    def _new(store_id: str = "store-1", minutes_ago: int = 0) -> OrderIntent:
        return OrderIntent.create(
            store_id=store_id,
            items=[
                OrderItem(
                    product_id="prod-1",
                    variant_id="var-1",
                    quantity=2,
                    unit_price="1000000000",
                    title="Mug - Blue",
                    price="10.00",
                    external_variant_id="111",
                )
            ],
            rail=rail,
            pay_to_address=pay_to,
            ttl=timedelta(minutes=30),
            shipping_address=ShippingAddress(city="Lisbon"),
            now=clock.now - timedelta(minutes=minutes_ago),
        )

    return _new


def make_proof(clock) -> PaymentProof:
    return PaymentProof(
        transaction="0xsettled",
        signature="header",
        verified_at=clock.now,
        facilitator_response={"success": True, "transaction": "0xsettled"},
    )


# ============================================================================
# Storage
# ============================================================================


class TestAddAndGet:
    """Tests for storing and loading intents."""

    @pytest.mark.asyncio
    async def test_round_trip(self, repo, new_intent):
        """Test that every field survives storage."""
        intent = new_intent()
        await repo.add(intent)

        loaded = await repo.get(str(intent.id))

        assert loaded.id == intent.id
        assert loaded.status == OrderIntentStatus.PENDING
        assert loaded.items == intent.items
        assert loaded.total_amount == "2000000000"
        assert loaded.pay_to_address == intent.pay_to_address
        assert loaded.shipping_address == ShippingAddress(city="Lisbon")
        assert loaded.expires_at == intent.expires_at
        assert loaded.created_at == intent.created_at
        assert loaded.collect_events() == []

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        """Test loading an unknown intent."""
        assert await repo.get("00000000-0000-0000-0000-000000000000") is None

    @pytest.mark.asyncio
    async def test_list_by_store(self, repo, new_intent):
        """Test listing newest first with a status filter."""
        older = new_intent(minutes_ago=10)
        newer = new_intent()
        other = new_intent(store_id="store-2")
        for intent in (older, newer, other):
            await repo.add(intent)

        intents, total = await repo.list_by_store("store-1")
        page, _ = await repo.list_by_store("store-1", limit=1, offset=1)
        paid, paid_total = await repo.list_by_store("store-1", status=OrderIntentStatus.PAID)

        assert total == 2
        assert [i.id for i in intents] == [newer.id, older.id]
        assert [i.id for i in page] == [older.id]
        assert paid == []
        assert paid_total == 0


# ============================================================================
# Compare-and-Set
# ============================================================================


class TestClaimForFinalize:
    """Tests for the exclusive finalize claim."""

    @pytest.mark.asyncio
    async def test_first_claim_wins(self, repo, new_intent, clock):
        """Test that a second claim is refused while the first is fresh."""
        intent = new_intent()
        await repo.add(intent)
        stale_before = clock.now - timedelta(minutes=2)

        first = await repo.claim_for_finalize(str(intent.id), "claim-a", clock.now, stale_before)
        second = await repo.claim_for_finalize(str(intent.id), "claim-b", clock.now, stale_before)

        assert first is not None
        assert first.finalize_claim_id == "claim-a"
        assert second is None

    @pytest.mark.asyncio
    async def test_stale_claim_can_be_taken(self, repo, new_intent, clock):
        """Test that an abandoned claim is replaced."""
        intent = new_intent()
        await repo.add(intent)
        await repo.claim_for_finalize(
            str(intent.id), "claim-a", clock.now, clock.now - timedelta(minutes=2)
        )
        later = clock.now + timedelta(minutes=5)

        claimed = await repo.claim_for_finalize(
            str(intent.id), "claim-b", later, later - timedelta(minutes=2)
        )

        assert claimed is not None
        assert claimed.finalize_claim_id == "claim-b"

    @pytest.mark.asyncio
    async def test_only_pending_can_be_claimed(self, repo, new_intent, clock):
        """Test that a closed intent cannot be claimed."""
        intent = new_intent()
        await repo.add(intent)
        intent.cancel(clock.now)
        assert await repo.save_transition(
            intent, OrderIntentStatus.PENDING, stale_before=clock.now
        )

        claimed = await repo.claim_for_finalize(
            str(intent.id), "claim-a", clock.now, clock.now - timedelta(minutes=2)
        )

        assert claimed is None


class TestSaveTransition:
    """Tests for conditional status writes."""

    @pytest.mark.asyncio
    async def test_claim_holder_can_mark_paid(self, repo, new_intent, clock):
        """Test the finalize write path."""
        intent = new_intent()
        await repo.add(intent)
        claimed = await repo.claim_for_finalize(
            str(intent.id), "claim-a", clock.now, clock.now - timedelta(minutes=2)
        )
        claimed.mark_paid(make_proof(clock), clock.now)

        saved = await repo.save_transition(claimed, OrderIntentStatus.PENDING, claim_id="claim-a")

        assert saved is True
        stored = await repo.get(str(intent.id))
        assert stored.status == OrderIntentStatus.PAID
        assert stored.payment_proof == make_proof(clock)
        assert stored.finalize_claim_id is None

    @pytest.mark.asyncio
    async def test_wrong_claim_is_refused(self, repo, new_intent, clock):
        """Test that only the claim holder may finish finalize."""
        intent = new_intent()
        await repo.add(intent)
        claimed = await repo.claim_for_finalize(
            str(intent.id), "claim-a", clock.now, clock.now - timedelta(minutes=2)
        )
        claimed.mark_failed("verification: bad", clock.now)

        saved = await repo.save_transition(claimed, OrderIntentStatus.PENDING, claim_id="claim-b")

        assert saved is False
        assert (await repo.get(str(intent.id))).status == OrderIntentStatus.PENDING

    @pytest.mark.asyncio
    async def test_active_claim_blocks_unclaimed_writes(self, repo, new_intent, clock):
        """Test that cancel and expiry cannot overwrite an in-flight finalize."""
        intent = new_intent()
        await repo.add(intent)
        await repo.claim_for_finalize(
            str(intent.id), "claim-a", clock.now, clock.now - timedelta(minutes=2)
        )
        intent.cancel(clock.now)

        saved = await repo.save_transition(
            intent, OrderIntentStatus.PENDING, stale_before=clock.now - timedelta(minutes=2)
        )

        assert saved is False
        assert (await repo.get(str(intent.id))).status == OrderIntentStatus.PENDING

    @pytest.mark.asyncio
    async def test_second_transition_loses(self, repo, new_intent, clock):
        """Test that only one terminal write wins."""
        intent = new_intent()
        await repo.add(intent)
        first = await repo.get(str(intent.id))
        second = await repo.get(str(intent.id))
        first.cancel(clock.now)
        second.expire(clock.now)

        assert await repo.save_transition(first, OrderIntentStatus.PENDING, stale_before=clock.now)
        assert not await repo.save_transition(
            second, OrderIntentStatus.PENDING, stale_before=clock.now
        )
        assert (await repo.get(str(intent.id))).status == OrderIntentStatus.CANCELLED


class TestRecordFulfillment:
    """Tests for the at-most-once fulfillment write."""

    @pytest.mark.asyncio
    async def test_written_once(self, repo, new_intent, clock):
        """Test that the first reference sticks."""
        intent = new_intent()
        await repo.add(intent)
        intent.mark_paid(make_proof(clock), clock.now)
        await repo.save_transition(intent, OrderIntentStatus.PENDING, stale_before=clock.now)

        first = await repo.get(str(intent.id))
        second = await repo.get(str(intent.id))
        first.attach_fulfillment(FulfillmentRef(external_order_id="5001"), clock.now)
        second.attach_fulfillment(FulfillmentRef(external_order_id="5002"), clock.now)

        assert await repo.record_fulfillment(first) is True
        assert await repo.record_fulfillment(second) is False
        stored = await repo.get(str(intent.id))
        assert stored.fulfillment.external_order_id == "5001"
        assert stored.status == OrderIntentStatus.PAID

    @pytest.mark.asyncio
    async def test_pending_intent_refused(self, repo, new_intent):
        """Test that an unpaid intent never gets a reference."""
        intent = new_intent()
        await repo.add(intent)
        intent.fulfillment = FulfillmentRef(external_order_id="5001")

        assert await repo.record_fulfillment(intent) is False
        assert (await repo.get(str(intent.id))).fulfillment is None


class TestListExpiredPending:
    """Tests for finding overdue intents."""

    @pytest.mark.asyncio
    async def test_only_overdue_pending(self, repo, new_intent, clock):
        """Test that fresh and closed intents are excluded."""
        overdue = new_intent(minutes_ago=45)
        closed = new_intent(minutes_ago=45)
        fresh = new_intent()
        for intent in (overdue, closed, fresh):
            await repo.add(intent)
        closed.cancel(clock.now)
        await repo.save_transition(closed, OrderIntentStatus.PENDING, stale_before=clock.now)

        expired = await repo.list_expired_pending(clock.now)

        assert [i.id for i in expired] == [overdue.id]
