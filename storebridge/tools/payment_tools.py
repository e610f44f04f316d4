"""Payment construction tools.

Helpers for agents that sign x402 payments themselves:
1. build_payment_transaction - Transfer descriptor to sign
2. get_payment_requirements - Requirements of a pending order intent
3. verify_payment - Structural check of a signed payment header, with optional
   expected recipient and amount
4. get_balance - Settlement asset balance of an account
5. convert_usd_to_settlement - Price conversion at the fixed deployment rate

Nothing here signs, submits or verifies signatures; that is the wallet's
and the facilitator's job.
"""

import re
from typing import Any

import structlog
from pydantic import BaseModel, Field

from storebridge.application.order_intent_service import OrderIntentService
from storebridge.domain.exceptions import DomainValidationError, InvalidAmountError
from storebridge.domain.payment_payload import (
    SUPPORTED_SCHEME,
    SUPPORTED_X402_VERSION,
    inspect_payment_header,
)
from storebridge.domain.value_objects import SettlementRail
from storebridge.infrastructure.chain_client import ChainClient, validate_address
from storebridge.tools.dispatcher import ToolDefinition

logger = structlog.get_logger()

SIGNING_INSTRUCTIONS = [
    "1. Build the transaction from transaction_data with your wallet SDK",
    "2. Sign the transaction with the sender account",
    "3. Do not submit it; the facilitator submits it during settlement",
    "4. Serialize the signed transaction and its authenticator to base64",
    "5. Base64-encode the JSON {x402Version, scheme, network, payload: {signature, transaction}}"
    " and pass it as x_payment_header to finalize_checkout",
]


# ============================================================================
# Tool Input Schemas
# ============================================================================


class BuildPaymentTransactionInput(BaseModel):
    """Input schema for build_payment_transaction tool.

    Either ``order_intent_id`` or both ``pay_to`` and ``amount`` are needed.
    """

    sender: str = Field(..., description="Address of the paying account (0x + 64 hex chars).")
    order_intent_id: str | None = Field(
        None,
        description="Order intent to pay. Its recipient and amount are used.",
    )
    pay_to: str | None = Field(
        None,
        description="Recipient address, when no order intent is given.",
    )
    amount: str | None = Field(
        None,
        description="Amount in smallest settlement units, when no order intent is given.",
    )


class GetPaymentRequirementsInput(BaseModel):
    """Input schema for get_payment_requirements tool."""

    order_intent_id: str = Field(..., description="The order intent to get requirements for.")


class VerifyPaymentInput(BaseModel):
    """Input schema for verify_payment tool."""

    x_payment_header: str = Field(
        ...,
        description="The base64-encoded X-PAYMENT header containing the signed transaction.",
    )
    expected_pay_to: str | None = Field(
        None,
        description="Recipient the payment should go to (0x + 64 hex chars).",
    )
    expected_amount: str | None = Field(
        None,
        description="Amount in smallest settlement units the payment should carry.",
    )



class GetBalanceInput(BaseModel):
    """Input schema for get_balance tool."""

    address: str = Field(..., description="Account address (0x + 64 hex chars).")


class ConvertUsdInput(BaseModel):
    """Input schema for convert_usd_to_settlement tool."""

    usd_amount: str = Field(
        ...,
        description="Amount in USD as a decimal string, e.g. '19.99'.",
    )


# ============================================================================
# Helpers
# ============================================================================


def _check_amount(amount: str) -> str:
    if not re.fullmatch(r"[0-9]+", amount) or int(amount) <= 0:
        raise InvalidAmountError(amount, "must be a positive integer in smallest units")
    return amount


def _expectation_warnings(
    inner: dict[str, Any],
    expected_pay_to: str | None,
    expected_amount: str | None,
) -> list[str]:
    """Compare expected recipient and amount with what the payload discloses.

    Signed transactions are opaque bytes, so only payloads that carry an
    ``authorization`` object (``to`` / ``value``) can be compared. Other
    payloads get a single warning that the expectation was not checked.
    """
    if expected_pay_to is None and expected_amount is None:
        return []
    authorization = inner.get("authorization")
    if not isinstance(authorization, dict):
        return ["Expected recipient and amount cannot be checked against a signed transaction"]

    warnings = []
    pay_to = authorization.get("to")
    if expected_pay_to is not None and str(pay_to).lower() != expected_pay_to.lower():
        warnings.append(f"Recipient mismatch: expected {expected_pay_to}, got {pay_to}")
    amount = authorization.get("value")
    if expected_amount is not None and str(amount) != expected_amount:
        warnings.append(f"Amount mismatch: expected {expected_amount}, got {amount}")
    return warnings


# ============================================================================
# Payment Tools
# ============================================================================


class PaymentTools:
    """Tools that help an agent build and check x402 payments."""

    def __init__(
        self,
        service: OrderIntentService,
        chain: ChainClient,
        rail: SettlementRail,
        rpc_url: str,
        transfer_function: str,
    ) -> None:
        self.service = service
        self.chain = chain
        self.rail = rail
        self.rpc_url = rpc_url
        self.transfer_function = transfer_function

    def definitions(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name="build_payment_transaction",
                description=(
                    "Get the transfer transaction to sign for a payment. "
                    "Returns the function, arguments and instructions for building "
                    "the X-PAYMENT header. Nothing is submitted."
                ),
                input_model=BuildPaymentTransactionInput,
                handler=self.build_payment_transaction,
            ),
            ToolDefinition(
                name="get_payment_requirements",
                description=(
                    "Get the x402 payment requirements of a pending order intent: "
                    "network, asset, recipient and exact amount."
                ),
                input_model=GetPaymentRequirementsInput,
                handler=self.get_payment_requirements,
            ),
            ToolDefinition(
                name="verify_payment",
                description=(
                    "Check the structure of a signed X-PAYMENT header before finalizing. "
                    "Optionally compare it with the expected recipient and amount. "
                    "Signatures are only verified by the facilitator."
                ),
                input_model=VerifyPaymentInput,
                handler=self.verify_payment,
            ),
            ToolDefinition(
                name="get_balance",
                description=f"Get the {self.rail.currency} balance of an account.",
                input_model=GetBalanceInput,
                handler=self.get_balance,
            ),
            ToolDefinition(
                name="convert_usd_to_settlement",
                description=(
                    f"Convert a USD amount to {self.rail.currency} smallest units "
                    "at the fixed rate used for order pricing."
                ),
                input_model=ConvertUsdInput,
                handler=self.convert_usd_to_settlement,
            ),
        ]

    async def build_payment_transaction(self, data: BuildPaymentTransactionInput) -> dict[str, Any]:
        validate_address(data.sender)

        if data.order_intent_id:
            _, requirements = await self.service.get_payment_requirements(
                data.order_intent_id
            )
            pay_to = requirements.pay_to
            amount = requirements.max_amount_required
        else:
            if not data.pay_to or not data.amount:
                raise DomainValidationError(
                    "Either order_intent_id or both pay_to and amount are required"
                )
            pay_to = validate_address(data.pay_to)
            amount = _check_amount(data.amount)

        logger.info("Payment transaction built", pay_to=pay_to, amount=amount)
        return {
            "status": "ready",
            "transaction_data": {
                "network": self.rail.network,
                "rpc_url": self.rpc_url,
                "function": self.transfer_function,
                "type_arguments": [],
                "function_arguments": [pay_to, amount],
                "sender": data.sender,
                "asset": self.rail.asset,
            },
            "amount_display": f"{self.rail.format_units(int(amount))} {self.rail.currency}",
            "x402": {
                "x402Version": SUPPORTED_X402_VERSION,
                "scheme": SUPPORTED_SCHEME,
                "network": self.rail.network,
            },
            "instructions": list(SIGNING_INSTRUCTIONS),
        }

    async def get_payment_requirements(self, data: GetPaymentRequirementsInput) -> dict[str, Any]:
        intent, requirements = await self.service.get_payment_requirements(data.order_intent_id)
        return {
            "order_intent_id": str(intent.id),
            "x402Version": SUPPORTED_X402_VERSION,
            "payment_requirements": requirements.to_dict(),
            "expires_at": intent.expires_at.isoformat(),
            "items": [item.to_dict() for item in intent.items],
        }

    async def verify_payment(self, data: VerifyPaymentInput) -> dict[str, Any]:
        if data.expected_pay_to is not None:
            validate_address(data.expected_pay_to)
        if data.expected_amount is not None:
            _check_amount(data.expected_amount)

        check = inspect_payment_header(data.x_payment_header, self.rail.network)
        if check.error:
            return {"status": check.status, "error": check.error}
        decoded = check.decoded or {}
        inner = decoded.get("payload") if isinstance(decoded.get("payload"), dict) else {}
        warnings = check.warnings + _expectation_warnings(
            inner, data.expected_pay_to, data.expected_amount
        )
        return {
            "status": check.status,
            "x402_version": decoded.get("x402Version", decoded.get("protocolVersion")),
            "scheme": decoded.get("scheme"),
            "network": decoded.get("network"),
            "has_signature": bool(inner.get("signature")),
            "has_transaction": bool(inner.get("transaction")),
            "warnings": warnings,
            "expected_pay_to": data.expected_pay_to,
            "expected_amount": data.expected_amount,
            "note": "Cryptographic verification happens at the facilitator during finalize",
        }

    async def get_balance(self, data: GetBalanceInput) -> dict[str, Any]:
        balance = await self.chain.get_balance(data.address)
        return {
            "address": balance.address,
            "balance": str(balance.balance),
            "balance_display": self.rail.format_units(balance.balance),
            "currency": self.rail.currency,
            "decimals": self.rail.decimals,
            "account_exists": balance.exists,
        }

    async def convert_usd_to_settlement(self, data: ConvertUsdInput) -> dict[str, Any]:
        base_units = self.rail.to_base_units(data.usd_amount)
        return {
            "usd_amount": data.usd_amount,
            "amount": str(base_units),
            "amount_display": self.rail.format_units(base_units),
            "currency": self.rail.currency,
            "decimals": self.rail.decimals,
            "rate": f"1 USD = {self.rail.rate} {self.rail.currency}",
        }
