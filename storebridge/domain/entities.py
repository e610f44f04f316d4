"""Domain entities.

The ``OrderIntent`` aggregate: a priced, time-boxed purchase proposal
that waits for a signed payment.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from storebridge.domain.base import AggregateRoot, utc_now
from storebridge.domain.events import (
    FulfillmentRecorded,
    OrderIntentCancelled,
    OrderIntentCreated,
    OrderIntentExpired,
    OrderIntentFailed,
    OrderIntentPaid,
)
from storebridge.domain.exceptions import EmptyOrderError, OrderIntentConflictError
from storebridge.domain.state_machines import (
    OrderIntentStatus,
    validate_order_intent_transition,
)
from storebridge.domain.value_objects import (
    FulfillmentRef,
    OrderIntentId,
    OrderItem,
    PaymentProof,
    PaymentRequirements,
    SettlementRail,
    ShippingAddress,
)


# ============================================================================
# Order Intent Aggregate Root
# ============================================================================


@dataclass(kw_only=True)
class OrderIntent(AggregateRoot[OrderIntentId]):
    """Order intent aggregate root.

    The settlement rail (network, asset, currency) and the recipient
    address are copied onto the intent when it is created so that later
    configuration changes never alter an outstanding quote.

    Once the status leaves PENDING the intent is frozen, except for the
    fulfillment reference written after payment.

    Attributes:
        id: Unique order intent identifier.
        store_id: Store the purchase is made from.
        items: Priced line items.
        total_amount: Integer string in smallest settlement units.
        currency: Settlement currency symbol.
        network: Settlement network.
        asset: Settlement asset identifier.
        pay_to_address: Recipient snapshotted from the store.
        status: Current lifecycle status.
        expires_at: Deadline for finalizing the payment.
        shipping_address: Optional destination, immutable.
        payment_proof: Set only when the intent becomes PAID.
        failure_reason: Set only when the intent becomes FAILED.
        fulfillment: Storefront order created after payment, if any.
        finalize_claim_id: Marker of an in-flight finalize attempt.
        finalize_claimed_at: When that attempt started.
    """

    id: OrderIntentId
    store_id: str
    items: list[OrderItem]
    total_amount: str
    currency: str
    network: str
    asset: str
    pay_to_address: str
    expires_at: datetime
    status: OrderIntentStatus = OrderIntentStatus.PENDING
    shipping_address: ShippingAddress | None = None
    payment_proof: PaymentProof | None = None
    failure_reason: str | None = None
    fulfillment: FulfillmentRef | None = None
    finalize_claim_id: str | None = field(default=None, compare=False)
    finalize_claimed_at: datetime | None = field(default=None, compare=False)

    @classmethod
    def create(
        cls,
        store_id: str,
        items: list[OrderItem],
        rail: SettlementRail,
        pay_to_address: str,
        ttl: timedelta,
        shipping_address: ShippingAddress | None = None,
        now: datetime | None = None,
        intent_id: OrderIntentId | None = None,
    ) -> "OrderIntent":
        """Create a new pending order intent.

        Args:
            store_id: Store the purchase is made from.
            items: Priced line items, at least one.
            rail: Settlement rail of the deployment.
            pay_to_address: Store's recipient address at this moment.
            ttl: How long the quote stays payable.
            shipping_address: Optional destination.
            now: Creation time, defaults to the current time.
            intent_id: Optional pre-generated ID.

        Returns:
            New OrderIntent instance.

        Raises:
            EmptyOrderError: If no items are given.
        """
        if not items:
            raise EmptyOrderError()

        created_at = now or utc_now()
        total = sum(item.line_total for item in items)
        intent = cls(
            id=intent_id or OrderIntentId.generate(),
            store_id=store_id,
            items=list(items),
            total_amount=str(total),
            currency=rail.currency,
            network=rail.network,
            asset=rail.asset,
            pay_to_address=pay_to_address,
            expires_at=created_at + ttl,
            shipping_address=shipping_address,
            created_at=created_at,
            updated_at=created_at,
        )
        intent._record_event(
            OrderIntentCreated(
                aggregate_id=str(intent.id),
                aggregate_type="OrderIntent",
                store_id=store_id,
                total_amount=intent.total_amount,
                currency=intent.currency,
                item_count=len(intent.items),
            )
        )
        return intent

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def is_pending(self) -> bool:
        return self.status == OrderIntentStatus.PENDING

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check whether the payment deadline has passed.

        Args:
            now: Reference time, defaults to the current time.
        """
        return (now or utc_now()) > self.expires_at

    def has_active_claim(self, stale_before: datetime) -> bool:
        """Check whether a finalize attempt currently holds this intent.

        Args:
            stale_before: Claims taken before this moment are abandoned.
        """
        return (
            self.finalize_claim_id is not None
            and self.finalize_claimed_at is not None
            and self.finalize_claimed_at >= stale_before
        )

    def payment_requirements(
        self, description: str, max_timeout_seconds: int
    ) -> PaymentRequirements:
        """Build the payment requirements from the frozen snapshot."""
        return PaymentRequirements(
            network=self.network,
            asset=self.asset,
            pay_to=self.pay_to_address,
            max_amount_required=self.total_amount,
            description=description,
            max_timeout_seconds=max_timeout_seconds,
            order_intent_id=str(self.id),
        )

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def mark_paid(self, proof: PaymentProof, now: datetime | None = None) -> None:
        """Record a settled payment.

        Args:
            proof: Settlement evidence with a transaction reference.
            now: Transition time.
        """
        self._transition(OrderIntentStatus.PAID, now)
        self.payment_proof = proof
        self._record_event(
            OrderIntentPaid(
                aggregate_id=str(self.id),
                aggregate_type="OrderIntent",
                transaction=proof.transaction,
                total_amount=self.total_amount,
            )
        )

    def mark_failed(self, reason: str, now: datetime | None = None) -> None:
        """Record a rejected payment.

        Args:
            reason: Why verification or settlement was rejected.
            now: Transition time.
        """
        self._transition(OrderIntentStatus.FAILED, now)
        self.failure_reason = reason
        self._record_event(
            OrderIntentFailed(
                aggregate_id=str(self.id),
                aggregate_type="OrderIntent",
                reason=reason,
            )
        )

    def expire(self, now: datetime | None = None) -> None:
        """Mark the intent as expired."""
        self._transition(OrderIntentStatus.EXPIRED, now)
        self._record_event(
            OrderIntentExpired(aggregate_id=str(self.id), aggregate_type="OrderIntent")
        )

    def cancel(self, now: datetime | None = None) -> None:
        """Cancel the intent before any payment was made."""
        self._transition(OrderIntentStatus.CANCELLED, now)
        self._record_event(
            OrderIntentCancelled(aggregate_id=str(self.id), aggregate_type="OrderIntent")
        )

    def attach_fulfillment(self, ref: FulfillmentRef, now: datetime | None = None) -> None:
        """Record the storefront order created for this paid intent.

        Raises:
            OrderIntentConflictError: If the intent is not paid or already
                carries a fulfillment reference.
        """
        if self.status != OrderIntentStatus.PAID:
            raise OrderIntentConflictError(str(self.id), self.status.value, "is not paid")
        if self.fulfillment is not None:
            raise OrderIntentConflictError(
                str(self.id), self.status.value, "already has a fulfillment reference"
            )
        self.fulfillment = ref
        self._touch(now)
        self._record_event(
            FulfillmentRecorded(
                aggregate_id=str(self.id),
                aggregate_type="OrderIntent",
                external_order_id=ref.external_order_id,
                external_order_label=ref.external_order_label,
            )
        )

    def _transition(self, target: OrderIntentStatus, now: datetime | None) -> None:
        validate_order_intent_transition(str(self.id), self.status, target)
        self.status = target
        self.finalize_claim_id = None
        self.finalize_claimed_at = None
        self._touch(now)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Public representation used by the HTTP API and the tools."""
        return {
            "id": str(self.id),
            "store_id": self.store_id,
            "items": [item.to_dict() for item in self.items],
            "total_amount": self.total_amount,
            "currency": self.currency,
            "network": self.network,
            "asset": self.asset,
            "pay_to_address": self.pay_to_address,
            "status": self.status.value,
            "payment_proof": self.payment_proof.to_dict() if self.payment_proof else None,
            "failure_reason": self.failure_reason,
            "shipping_address": (
                self.shipping_address.to_dict() if self.shipping_address else None
            ),
            "fulfillment": self.fulfillment.to_dict() if self.fulfillment else None,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
