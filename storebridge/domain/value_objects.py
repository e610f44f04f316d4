"""Value Objects for the domain layer.

Immutable building blocks of an order intent: typed identifiers, the
settlement rail with its unit conversion, addresses, line items and the
records written when a payment settles or an order is fulfilled.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Self
from uuid import UUID, uuid4

from storebridge.domain.base import ValueObject
from storebridge.domain.exceptions import InvalidAmountError, InvalidQuantityError


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class OrderIntentId(ValueObject):
    """Strongly-typed order intent identifier."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        """Generate a new order intent ID."""
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, value: str) -> Self:
        """Create OrderIntentId from its string form.

        Args:
            value: String UUID representation.

        Returns:
            OrderIntentId instance.

        Raises:
            ValueError: If value is not a UUID.
        """
        return cls(value=UUID(str(value)))

    def __str__(self) -> str:
        return str(self.value)


# ============================================================================
# Settlement Rail
# ============================================================================


@dataclass(frozen=True)
class SettlementRail(ValueObject):
    """The single asset and network payments settle on.

    Display prices are converted into the asset's smallest unit with a
    fixed, deployment-configured rate. This is not a price oracle: the
    rate only changes when the deployment changes it.

    Attributes:
        network: Settlement network identifier (e.g. "movement").
        asset: On-chain asset identifier.
        currency: Human-facing currency symbol (e.g. "MOVE").
        decimals: Number of decimals of the asset's smallest unit.
        rate: Settlement units per one unit of display currency.
    """

    network: str
    asset: str
    currency: str
    decimals: int = 8
    rate: str = "1"

    def to_base_units(self, display_amount: str | int | Decimal) -> int:
        """Convert a display-currency amount into smallest settlement units.

        This is the only place decimal arithmetic happens. The result is
        rounded half-up to a whole smallest unit.

        Args:
            display_amount: Amount in display currency, e.g. "10.00".

        Returns:
            Integer amount in the asset's smallest unit.

        Raises:
            InvalidAmountError: If the amount is not a non-negative number.
        """
        try:
            amount = Decimal(str(display_amount).strip())
        except InvalidOperation as e:
            raise InvalidAmountError(str(display_amount), "not a number") from e
        if not amount.is_finite():
            raise InvalidAmountError(str(display_amount), "not a finite number")
        if amount < 0:
            raise InvalidAmountError(str(display_amount), "must not be negative")

        scaled = amount * Decimal(self.rate) * (Decimal(10) ** self.decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def format_units(self, base_units: int) -> str:
        """Render smallest units as a human-readable settlement amount.

        Args:
            base_units: Amount in smallest units.

        Returns:
            Decimal string with exactly ``decimals`` fractional digits.
        """
        sign = "-" if base_units < 0 else ""
        whole, fraction = divmod(abs(base_units), 10**self.decimals)
        if self.decimals == 0:
            return f"{sign}{whole}"
        return f"{sign}{whole}.{fraction:0{self.decimals}d}"


# ============================================================================
# Shipping Address
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Destination captured when the intent is created."""

    first_name: str | None = None
    last_name: str | None = None
    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    province: str | None = None
    country: str | None = None
    zip: str | None = None
    phone: str | None = None
    email: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Self | None:
        """Build an address from a plain dictionary, ignoring unknown keys."""
        if not data:
            return None
        known = {name: data.get(name) for name in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Line Items
# ============================================================================


@dataclass(frozen=True)
class OrderItem(ValueObject):
    """A priced line of an order intent.

    The unit price is snapshotted in smallest settlement units when the
    intent is created and never recomputed.

    Attributes:
        product_id: Catalog product reference.
        variant_id: Catalog variant reference.
        quantity: Units purchased, always positive.
        unit_price: Integer string in smallest settlement units.
        title: Display title ("Product - Variant").
        price: Display price as listed in the catalog.
        external_variant_id: Storefront variant id used for fulfillment.
    """

    product_id: str
    variant_id: str
    quantity: int
    unit_price: str
    title: str
    price: str | None = None
    external_variant_id: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidQuantityError(self.quantity, "Quantity must be an integer")
        if self.quantity <= 0:
            raise InvalidQuantityError(self.quantity)
        if not self.unit_price.isdigit():
            raise InvalidAmountError(self.unit_price, "unit price must be a non-negative integer")

    @property
    def line_total(self) -> int:
        """Line total in smallest settlement units."""
        return int(self.unit_price) * self.quantity

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            product_id=data["product_id"],
            variant_id=data["variant_id"],
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            title=data.get("title", ""),
            price=data.get("price"),
            external_variant_id=data.get("external_variant_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ============================================================================
# Payment Requirements
# ============================================================================


@dataclass(frozen=True)
class PaymentRequirements(ValueObject):
    """The contract a payer needs to build a compliant signed payment."""

    network: str
    asset: str
    pay_to: str
    max_amount_required: str
    description: str
    max_timeout_seconds: int
    mime_type: str = "application/json"
    order_intent_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the wire format payers expect (camelCase)."""
        data: dict[str, Any] = {
            "network": self.network,
            "asset": self.asset,
            "payTo": self.pay_to,
            "maxAmountRequired": self.max_amount_required,
            "description": self.description,
            "mimeType": self.mime_type,
            "maxTimeoutSeconds": self.max_timeout_seconds,
        }
        if self.order_intent_id:
            data["orderIntentId"] = self.order_intent_id
        return data

    def to_facilitator_dict(self) -> dict[str, Any]:
        """The subset of fields the facilitator checks a payment against."""
        return {
            "network": self.network,
            "asset": self.asset,
            "payTo": self.pay_to,
            "maxAmountRequired": self.max_amount_required,
        }


# ============================================================================
# Payment Proof / Fulfillment Reference
# ============================================================================


@dataclass(frozen=True)
class PaymentProof(ValueObject):
    """Evidence recorded when a payment settles.

    Attributes:
        transaction: Settlement transaction reference, never empty.
        signature: The raw signed payment header as received.
        verified_at: When the settlement was confirmed.
        facilitator_response: Raw settlement response kept for audit.
    """

    transaction: str
    signature: str
    verified_at: datetime
    facilitator_response: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.transaction:
            raise ValueError("Payment proof requires a transaction reference")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        verified_at = data["verified_at"]
        if isinstance(verified_at, str):
            verified_at = datetime.fromisoformat(verified_at)
        return cls(
            transaction=data["transaction"],
            signature=data.get("signature", ""),
            verified_at=verified_at,
            facilitator_response=data.get("facilitator_response") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction": self.transaction,
            "signature": self.signature,
            "verified_at": self.verified_at.isoformat(),
            "facilitator_response": self.facilitator_response,
        }


@dataclass(frozen=True)
class FulfillmentRef(ValueObject):
    """Identifiers of the order created in the external storefront."""

    external_order_id: str
    external_order_number: str | None = None
    external_order_label: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            external_order_id=data["external_order_id"],
            external_order_number=data.get("external_order_number"),
            external_order_label=data.get("external_order_label"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
