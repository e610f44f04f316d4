"""Domain exceptions.

Every error the order intent lifecycle can surface. Each class carries
an ``error_code`` that the HTTP layer and the tool dispatcher expose to
callers so they can branch on the kind of failure.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions."""

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Not Found
# ============================================================================


class NotFoundError(DomainError):
    """Base class for missing resources."""

    error_code = "NOT_FOUND"


class StoreNotFoundError(NotFoundError):
    """Raised when a store does not exist."""

    def __init__(self, store_id: str) -> None:
        super().__init__(f"Store {store_id} not found", details={"store_id": store_id})


class ProductNotFoundError(NotFoundError):
    """Raised when a product does not exist or belongs to another store."""

    def __init__(self, product_id: str, store_id: str | None = None) -> None:
        message = f"Product {product_id} not found"
        if store_id:
            message = f"{message} in store {store_id}"
        super().__init__(
            message,
            details={"product_id": product_id, "store_id": store_id},
        )


class VariantNotFoundError(NotFoundError):
    """Raised when a product has no variant with the requested id."""

    def __init__(self, product_id: str, variant_id: str) -> None:
        super().__init__(
            f"Variant {variant_id} not found for product {product_id}",
            details={"product_id": product_id, "variant_id": variant_id},
        )


class OrderIntentNotFoundError(NotFoundError):
    """Raised when an order intent does not exist."""

    def __init__(self, intent_id: str) -> None:
        super().__init__(
            f"Order intent {intent_id} not found",
            details={"order_intent_id": intent_id},
        )


# ============================================================================
# Conflict
# ============================================================================


class ConflictError(DomainError):
    """Base class for operations that clash with current state."""

    error_code = "CONFLICT"


class InvalidStateTransitionError(ConflictError):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "OrderIntent").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: States reachable from the current one.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition {entity_type}({entity_id}) "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )


class OrderIntentConflictError(ConflictError):
    """Raised when an order intent is not in a state that allows the operation.

    The message always names the current status so callers can branch
    on it (for example ``paid`` versus ``expired``).
    """

    def __init__(self, intent_id: str, current_status: str, reason: str | None = None) -> None:
        message = f"Order intent {intent_id} is not pending (status: {current_status})"
        if reason:
            message = f"Order intent {intent_id} {reason} (status: {current_status})"
        super().__init__(
            message,
            details={"order_intent_id": intent_id, "current_status": current_status},
        )
        self.current_status = current_status


class StoreAlreadyRegisteredError(ConflictError):
    """Raised when a shop domain is registered twice."""

    def __init__(self, shop_domain: str) -> None:
        super().__init__(
            f"Store with domain {shop_domain} is already registered",
            details={"shop_domain": shop_domain},
        )


# ============================================================================
# Validation
# ============================================================================


class DomainValidationError(DomainError):
    """Base class for malformed input."""

    error_code = "VALIDATION_ERROR"


class EmptyOrderError(DomainValidationError):
    """Raised when an order is initiated without items."""

    def __init__(self) -> None:
        super().__init__("At least one item is required")


class InvalidQuantityError(DomainValidationError):
    """Raised when a line item quantity is not a positive integer."""

    def __init__(self, quantity: int, reason: str = "Quantity must be positive") -> None:
        super().__init__(
            f"Invalid quantity {quantity}: {reason}",
            details={"quantity": quantity, "reason": reason},
        )


class InvalidAddressError(DomainValidationError):
    """Raised when an account address is not in the expected format."""

    def __init__(self, address: str) -> None:
        super().__init__(
            "Invalid address format. Expected 0x followed by 64 hex characters.",
            details={"address": address},
        )


class InvalidStoreCredentialsError(DomainValidationError):
    """Raised when a shop does not accept the given Admin API token."""

    def __init__(self, shop_domain: str, reason: str) -> None:
        super().__init__(
            "Invalid Shopify credentials or store URL",
            details={"shop_domain": shop_domain, "reason": reason},
        )


class InvalidAmountError(DomainValidationError):
    """Raised when a display amount cannot be converted."""

    def __init__(self, amount: str, reason: str) -> None:
        super().__init__(
            f"Invalid amount {amount!r}: {reason}",
            details={"amount": amount, "reason": reason},
        )


class PaymentPayloadError(DomainValidationError):
    """Raised when a signed payment payload cannot be decoded.

    A malformed payload is a client bug and never changes intent state.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Invalid payment payload: {reason}",
            details={"reason": reason},
        )


# ============================================================================
# Payment
# ============================================================================


class PaymentVerificationFailedError(DomainError):
    """Raised when the facilitator rejects a payment during verification."""

    error_code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, intent_id: str, reason: str) -> None:
        super().__init__(
            f"Payment verification failed: {reason}",
            details={"order_intent_id": intent_id, "reason": reason},
        )
        self.reason = reason


class PaymentSettlementFailedError(DomainError):
    """Raised when a verified payment could not be settled."""

    error_code = "PAYMENT_SETTLEMENT_FAILED"

    def __init__(self, intent_id: str, reason: str) -> None:
        super().__init__(
            f"Payment settlement failed: {reason}",
            details={"order_intent_id": intent_id, "reason": reason},
        )
        self.reason = reason


# ============================================================================
# Expiry / Availability / Internal
# ============================================================================


class OrderIntentExpiredError(DomainError):
    """Raised when finalize is attempted after the intent's TTL."""

    error_code = "ORDER_INTENT_EXPIRED"

    def __init__(self, intent_id: str) -> None:
        super().__init__(
            f"Order intent {intent_id} has expired",
            details={"order_intent_id": intent_id},
        )


class VariantUnavailableError(DomainError):
    """Raised when a variant exists but cannot be purchased."""

    error_code = "VARIANT_UNAVAILABLE"

    def __init__(self, product_id: str, variant_id: str) -> None:
        super().__init__(
            f"Variant {variant_id} of product {product_id} is not available",
            details={"product_id": product_id, "variant_id": variant_id},
        )


class InternalError(DomainError):
    """Raised for unexpected failures the caller cannot act on."""

    error_code = "INTERNAL_ERROR"
