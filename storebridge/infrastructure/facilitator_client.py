"""x402 facilitator HTTP client.

The facilitator checks a signed payment against the payment
requirements (``/verify``) and then submits it to the settlement
network (``/settle``). The two steps have separate, typed outcomes:
a payment can carry a valid signature and still fail to settle.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from storebridge.domain.payment_payload import SignedPaymentPayload
from storebridge.domain.value_objects import PaymentRequirements

logger = structlog.get_logger()


# ============================================================================
# Step Outcomes
# ============================================================================


@dataclass
class VerificationResult:
    """Outcome of the verify step."""

    is_valid: bool
    invalid_reason: str | None = None
    payer: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "VerificationResult":
        """Create from a 2xx facilitator response.

        Facilitators that omit ``isValid`` signal acceptance with the status
        code alone, so a missing flag counts as valid unless a reason is given.
        """
        reason = data.get("invalidReason") or data.get("error")
        if "isValid" in data:
            is_valid = bool(data["isValid"])
        else:
            is_valid = not reason
        if not is_valid and not reason:
            reason = "Verification failed"
        return cls(is_valid=is_valid, invalid_reason=reason, payer=data.get("payer"), raw=data)

    @classmethod
    def rejected(cls, reason: str, raw: dict[str, Any] | None = None) -> "VerificationResult":
        return cls(is_valid=False, invalid_reason=reason, raw=raw or {})


@dataclass
class SettlementResult:
    """Outcome of the settle step.

    ``transaction`` is the settlement transaction reference. Facilitators
    name it ``transaction``, ``transactionHash`` or ``txHash``.
    """

    success: bool
    transaction: str | None = None
    error: str | None = None
    network: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "SettlementResult":
        """Create from a 2xx facilitator response.

        Without a ``success`` flag the answer counts as settled when it
        carries a transaction reference.
        """
        transaction = data.get("transaction") or data.get("transactionHash") or data.get("txHash")
        if "success" in data:
            success = bool(data["success"])
        else:
            success = transaction is not None
        error = data.get("errorReason") or data.get("error")
        if not success and not error:
            error = "Settlement failed"
        return cls(
            success=success,
            transaction=transaction,
            error=error,
            network=data.get("network"),
            raw=data,
        )

    @classmethod
    def rejected(cls, reason: str, raw: dict[str, Any] | None = None) -> "SettlementResult":
        return cls(success=False, error=reason, raw=raw or {})


class FacilitatorClientError(Exception):
    """The facilitator could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ============================================================================
# Facilitator Client
# ============================================================================


class FacilitatorClient:
    """HTTP client for an x402 facilitator.

    A non-2xx answer is a rejection of that step. A transport failure
    raises ``FacilitatorClientError`` so the caller decides what it
    means for the payment.
    """

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        """Initialize facilitator client.

        Args:
            base_url: Facilitator base URL.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _build_body(
        payload: SignedPaymentPayload, requirements: PaymentRequirements
    ) -> dict[str, Any]:
        return {
            "paymentPayload": payload.to_facilitator_dict(),
            "paymentRequirements": requirements.to_facilitator_dict(),
        }

    async def _post(self, path: str, body: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        try:
            client = await self._get_client()
            response = await client.post(path, json=body)
        except httpx.RequestError as e:
            logger.error("Facilitator request failed", path=path, error=str(e))
            raise FacilitatorClientError(f"Facilitator request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text or f"HTTP {response.status_code}"}
        if not isinstance(data, dict):
            data = {"error": f"Unexpected facilitator response: {data!r}"}
        return response.status_code, data

    async def verify(
        self, payload: SignedPaymentPayload, requirements: PaymentRequirements
    ) -> VerificationResult:
        """Ask the facilitator whether the payment satisfies the requirements.

        Args:
            payload: Decoded signed payment.
            requirements: The intent's frozen payment requirements.

        Returns:
            Verification outcome.

        Raises:
            FacilitatorClientError: If the facilitator is unreachable.
        """
        status_code, data = await self._post("/verify", self._build_body(payload, requirements))
        if status_code >= 400:
            logger.warning(
                "Facilitator rejected verification",
                status_code=status_code,
                error=data.get("error"),
            )
            return VerificationResult.rejected(
                data.get("invalidReason") or data.get("error") or "Verification failed",
                raw=data,
            )
        return VerificationResult.from_api_response(data)

    async def settle(
        self, payload: SignedPaymentPayload, requirements: PaymentRequirements
    ) -> SettlementResult:
        """Submit a verified payment for settlement.

        Args:
            payload: Decoded signed payment.
            requirements: The intent's frozen payment requirements.

        Returns:
            Settlement outcome.

        Raises:
            FacilitatorClientError: If the facilitator is unreachable.
        """
        status_code, data = await self._post("/settle", self._build_body(payload, requirements))
        if status_code >= 400:
            logger.warning(
                "Facilitator rejected settlement",
                status_code=status_code,
                error=data.get("error"),
            )
            return SettlementResult.rejected(
                data.get("errorReason") or data.get("error") or "Settlement failed",
                raw=data,
            )
        return SettlementResult.from_api_response(data)
