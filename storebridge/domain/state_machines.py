"""State machine for order intents.

A deterministic table of the status changes an order intent may go
through. Every other transition is rejected.
"""

from enum import Enum

from storebridge.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Order Intent State Machine
# ============================================================================


class OrderIntentStatus(str, Enum):
    """Order intent lifecycle states.

    State diagram:
                    ┌──────────────► PAID
                    │ settle ok
        PENDING ────┼──────────────► FAILED
                    │ verify/settle rejected
                    ├──────────────► EXPIRED
                    │ ttl elapsed
                    └──────────────► CANCELLED
                      cancel

    Every state other than PENDING is terminal.
    """

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderIntentStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_INTENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderIntentStatus"]:
        """Get list of valid target states."""
        return sorted(_ORDER_INTENT_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if no further transitions are possible."""
        return len(_ORDER_INTENT_TRANSITIONS.get(self, set())) == 0


_ORDER_INTENT_TRANSITIONS: dict[OrderIntentStatus, set[OrderIntentStatus]] = {
    OrderIntentStatus.PENDING: {
        OrderIntentStatus.PAID,
        OrderIntentStatus.FAILED,
        OrderIntentStatus.EXPIRED,
        OrderIntentStatus.CANCELLED,
    },
    OrderIntentStatus.PAID: set(),
    OrderIntentStatus.FAILED: set(),
    OrderIntentStatus.EXPIRED: set(),
    OrderIntentStatus.CANCELLED: set(),
}


def validate_order_intent_transition(
    intent_id: str,
    current_status: OrderIntentStatus,
    target_status: OrderIntentStatus,
) -> None:
    """Validate and raise if an order intent transition is invalid.

    Args:
        intent_id: Order intent identifier for error message.
        current_status: Current status.
        target_status: Target status.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="OrderIntent",
            entity_id=intent_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
