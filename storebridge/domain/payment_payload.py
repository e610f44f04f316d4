"""Signed payment payloads.

Payers send the signed payment as a base64-encoded JSON document (the
``X-PAYMENT`` header in x402 terms). This module decodes it into a
validated model and offers a lenient structural inspection used by the
``verify_payment`` tool.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from storebridge.domain.exceptions import PaymentPayloadError

SUPPORTED_X402_VERSION = 1
SUPPORTED_SCHEME = "exact"


class SignedTransaction(BaseModel):
    """Inner ``payload`` object carrying the signed transaction."""

    model_config = ConfigDict(extra="allow")

    signature: str = Field(..., min_length=1)
    transaction: str = Field(..., min_length=1)


class SignedPaymentPayload(BaseModel):
    """Decoded signed payment payload.

    ``x402Version`` is also accepted under the name ``protocolVersion``.
    """

    model_config = ConfigDict(populate_by_name=True)

    x402_version: int = Field(
        default=SUPPORTED_X402_VERSION,
        validation_alias=AliasChoices("x402Version", "protocolVersion"),
        serialization_alias="x402Version",
    )
    scheme: str
    network: str
    payload: SignedTransaction

    def to_facilitator_dict(self) -> dict[str, Any]:
        """Serialize in the shape the facilitator expects."""
        return {
            "x402Version": self.x402_version,
            "scheme": self.scheme,
            "network": self.network,
            "payload": self.payload.model_dump(),
        }


def _decode_json(header: str) -> Any:
    if not header or not header.strip():
        raise PaymentPayloadError("payment header is empty")
    try:
        raw = base64.b64decode(header.strip(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise PaymentPayloadError("payment header is not valid base64") from e
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PaymentPayloadError("payment header does not contain valid JSON") from e


def decode_payment_header(header: str) -> SignedPaymentPayload:
    """Decode and validate a base64 signed payment header.

    Args:
        header: The base64-encoded JSON payload.

    Returns:
        The validated payload.

    Raises:
        PaymentPayloadError: If the header is not base64 JSON or misses
            a required field.
    """
    data = _decode_json(header)
    if not isinstance(data, dict):
        raise PaymentPayloadError("payment payload must be a JSON object")
    try:
        return SignedPaymentPayload.model_validate(data)
    except ValidationError as e:
        missing = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise PaymentPayloadError(f"missing or invalid fields: {missing}") from e


def encode_payment_header(payload: dict[str, Any]) -> str:
    """Encode a payload dictionary as a base64 header value."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


@dataclass
class StructuralCheck:
    """Outcome of a structural inspection of a payment header."""

    status: str
    warnings: list[str] = field(default_factory=list)
    decoded: dict[str, Any] | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.status == "valid_structure"


def inspect_payment_header(header: str, network_prefix: str) -> StructuralCheck:
    """Structurally check a header without contacting the facilitator.

    No signature is verified here; only shape, required fields, the
    protocol version, the scheme and the network prefix are looked at.

    Args:
        header: The base64-encoded JSON payload.
        network_prefix: Prefix the payload's network must start with.

    Returns:
        ``valid_structure`` when only warnings (if any) were found,
        ``invalid_structure`` when a required field is missing, or
        ``invalid`` when the header could not be decoded at all.
    """
    try:
        decoded = _decode_json(header)
    except PaymentPayloadError as e:
        return StructuralCheck(status="invalid", error=e.message)
    if not isinstance(decoded, dict):
        return StructuralCheck(status="invalid", error="payment payload must be a JSON object")

    warnings: list[str] = []
    version = decoded.get("x402Version", decoded.get("protocolVersion"))
    if version != SUPPORTED_X402_VERSION:
        warnings.append(f"Unexpected x402Version: {version}")
    scheme = decoded.get("scheme")
    if scheme != SUPPORTED_SCHEME:
        warnings.append(f"Unexpected scheme: {scheme}")
    network = decoded.get("network")
    if not isinstance(network, str) or not network.startswith(network_prefix):
        warnings.append(f"Unexpected network: {network}")

    inner = decoded.get("payload")
    inner = inner if isinstance(inner, dict) else {}
    valid = True
    if not inner.get("signature"):
        warnings.append("Missing signature in payload")
        valid = False
    if not inner.get("transaction"):
        warnings.append("Missing transaction in payload")
        valid = False

    return StructuralCheck(
        status="valid_structure" if valid else "invalid_structure",
        warnings=warnings,
        decoded=decoded,
    )
