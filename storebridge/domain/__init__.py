"""Domain layer - order intent aggregate, value objects, state machine, errors.

Example usage:
    from storebridge.domain import OrderIntent, OrderItem, SettlementRail

    rail = SettlementRail(network="movement", asset="0x1::aptos_coin::AptosCoin", currency="MOVE")
    item = OrderItem(
        product_id="p-1",
        variant_id="v-1",
        quantity=2,
        unit_price=str(rail.to_base_units("10.00")),
        title="Mug - Blue",
    )
    intent = OrderIntent.create("store-1", [item], rail, "0xabc...", ttl=timedelta(minutes=30))
    print(intent.total_amount)  # "2000000000"
"""

from storebridge.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject, utc_now
from storebridge.domain.entities import OrderIntent
from storebridge.domain.exceptions import (
    ConflictError,
    DomainError,
    DomainValidationError,
    InternalError,
    NotFoundError,
    OrderIntentConflictError,
    OrderIntentExpiredError,
    OrderIntentNotFoundError,
    PaymentPayloadError,
    PaymentSettlementFailedError,
    PaymentVerificationFailedError,
    StoreAlreadyRegisteredError,
    VariantUnavailableError,
)
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

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    "utc_now",
    # Entities
    "OrderIntent",
    "OrderIntentStatus",
    # Value objects
    "FulfillmentRef",
    "OrderIntentId",
    "OrderItem",
    "PaymentProof",
    "PaymentRequirements",
    "SettlementRail",
    "ShippingAddress",
    # Exceptions
    "ConflictError",
    "DomainError",
    "DomainValidationError",
    "InternalError",
    "NotFoundError",
    "OrderIntentConflictError",
    "OrderIntentExpiredError",
    "OrderIntentNotFoundError",
    "PaymentPayloadError",
    "PaymentSettlementFailedError",
    "PaymentVerificationFailedError",
    "StoreAlreadyRegisteredError",
    "VariantUnavailableError",
]
