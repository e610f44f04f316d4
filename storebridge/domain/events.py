"""Domain events for order intents.

Recorded by the ``OrderIntent`` aggregate and collected by the
application layer after the new state has been persisted.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from storebridge.domain.base import DomainEvent


@dataclass(frozen=True)
class OrderIntentCreated(DomainEvent):
    """Event raised when a new order intent is priced and stored."""

    event_type: ClassVar[str] = "order_intent.created"

    store_id: str = ""
    total_amount: str = "0"
    currency: str = ""
    item_count: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            "store_id": self.store_id,
            "total_amount": self.total_amount,
            "currency": self.currency,
            "item_count": self.item_count,
        }


@dataclass(frozen=True)
class OrderIntentPaid(DomainEvent):
    """Event raised when a payment settled for an intent."""

    event_type: ClassVar[str] = "order_intent.paid"

    transaction: str = ""
    total_amount: str = "0"

    def _payload(self) -> dict[str, Any]:
        return {"transaction": self.transaction, "total_amount": self.total_amount}


@dataclass(frozen=True)
class OrderIntentFailed(DomainEvent):
    """Event raised when verification or settlement was rejected."""

    event_type: ClassVar[str] = "order_intent.failed"

    reason: str = ""

    def _payload(self) -> dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class OrderIntentExpired(DomainEvent):
    """Event raised when an intent outlived its TTL."""

    event_type: ClassVar[str] = "order_intent.expired"

    def _payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class OrderIntentCancelled(DomainEvent):
    """Event raised when an intent was cancelled before payment."""

    event_type: ClassVar[str] = "order_intent.cancelled"

    def _payload(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class FulfillmentRecorded(DomainEvent):
    """Event raised when the storefront order was created for a paid intent."""

    event_type: ClassVar[str] = "order_intent.fulfillment_recorded"

    external_order_id: str = ""
    external_order_label: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "external_order_id": self.external_order_id,
            "external_order_label": self.external_order_label,
        }
