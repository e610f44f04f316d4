"""Tests for the x402 facilitator client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from storebridge.domain.payment_payload import decode_payment_header
from storebridge.domain.value_objects import PaymentRequirements
from storebridge.infrastructure.facilitator_client import (
    FacilitatorClient,
    FacilitatorClientError,
    SettlementResult,
    VerificationResult,
)


def make_response(status_code: int, data=None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(data, Exception):
        response.json.side_effect = data
    else:
        response.json.return_value = data
    return response


@pytest.fixture
def client() -> FacilitatorClient:
    return FacilitatorClient("https://facilitator.example/", timeout=5)


@pytest.fixture
def payload(payment_header):
    return decode_payment_header(payment_header)


@pytest.fixture
def requirements(pay_to) -> PaymentRequirements:
    return PaymentRequirements(
        network="movement",
        asset="0x1::aptos_coin::AptosCoin",
        pay_to=pay_to,
        max_amount_required="2000000000",
        description="Payment for order 1",
        max_timeout_seconds=600,
        order_intent_id="intent-1",
    )


class TestFacilitatorClient:
    """Tests for FacilitatorClient."""

    def test_initialization(self, client):
        """Test that the base URL is normalized."""
        assert client.base_url == "https://facilitator.example"
        assert client._client is None

    @pytest.mark.asyncio
    async def test_verify_valid(self, client, payload, requirements, pay_to):
        """Test a successful verification and the request body."""
        response = make_response(200, {"isValid": True, "payer": "0xpayer"})

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.verify(payload, requirements)

        assert result.is_valid is True
        assert result.payer == "0xpayer"
        path = mock_http_client.post.call_args.args[0]
        body = mock_http_client.post.call_args.kwargs["json"]
        assert path == "/verify"
        assert body["paymentPayload"]["payload"]["transaction"] == "0xsignedtx"
        assert body["paymentRequirements"] == {
            "network": "movement",
            "asset": "0x1::aptos_coin::AptosCoin",
            "payTo": pay_to,
            "maxAmountRequired": "2000000000",
        }

    @pytest.mark.asyncio
    async def test_verify_invalid(self, client, payload, requirements):
        """Test a verification the facilitator refused."""
        response = make_response(200, {"isValid": False, "invalidReason": "amount mismatch"})

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "amount mismatch"

    @pytest.mark.asyncio
    async def test_verify_http_error_is_rejection(self, client, payload, requirements):
        """Test that a non-2xx answer is a rejection, not an exception."""
        response = make_response(500, ValueError("no json"), text="upstream exploded")

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.verify(payload, requirements)

        assert result.is_valid is False
        assert result.invalid_reason == "upstream exploded"

    @pytest.mark.asyncio
    async def test_settle_success(self, client, payload, requirements):
        """Test that the transaction is read from transactionHash."""
        response = make_response(
            200, {"success": True, "transactionHash": "0xabc", "network": "movement"}
        )

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.settle(payload, requirements)

        assert mock_http_client.post.call_args.args[0] == "/settle"
        assert result.success is True
        assert result.transaction == "0xabc"
        assert result.network == "movement"
        assert result.raw["transactionHash"] == "0xabc"

    @pytest.mark.asyncio
    async def test_settle_reply_without_success_flag(self, client, payload, requirements):
        """Test that a 2xx reply carrying only a transaction hash is a settlement."""
        response = make_response(200, {"transactionHash": "0xonchain"})

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.settle(payload, requirements)

        assert result.success is True
        assert result.transaction == "0xonchain"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_verify_reply_without_valid_flag(self, client, payload, requirements):
        """Test that a 2xx verify reply without isValid is an acceptance."""
        response = make_response(200, {"payer": "0xpayer"})

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.verify(payload, requirements)

        assert result.is_valid is True
        assert result.invalid_reason is None

    @pytest.mark.asyncio
    async def test_settle_failure(self, client, payload, requirements):
        """Test a settlement the facilitator refused."""
        response = make_response(400, {"error": "insufficient balance"})

        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(return_value=response)
            mock_get_client.return_value = mock_http_client

            result = await client.settle(payload, requirements)

        assert result.success is False
        assert result.error == "insufficient balance"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, client, payload, requirements):
        """Test that an unreachable facilitator raises."""
        with patch.object(client, "_get_client", new_callable=AsyncMock) as mock_get_client:
            mock_http_client = AsyncMock()
            mock_http_client.post = AsyncMock(
                side_effect=httpx.ConnectError("Connection refused")
            )
            mock_get_client.return_value = mock_http_client

            with pytest.raises(FacilitatorClientError) as exc_info:
                await client.verify(payload, requirements)

        assert "Connection refused" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_close(self, client):
        """Test closing an open HTTP client."""
        http_client = AsyncMock()
        client._client = http_client

        await client.close()

        http_client.aclose.assert_awaited_once()
        assert client._client is None


class TestFacilitatorResults:
    """Tests for parsing facilitator answers."""

    def test_verification_without_reason(self):
        """Test that a bare refusal still carries a reason."""
        result = VerificationResult.from_api_response({"isValid": False})
        assert result.invalid_reason == "Verification failed"

    @pytest.mark.parametrize("key", ["transaction", "transactionHash", "txHash"])
    def test_settlement_transaction_aliases(self, key):
        """Test every accepted name of the transaction reference."""
        result = SettlementResult.from_api_response({"success": True, key: "0xabc"})
        assert result.transaction == "0xabc"

    def test_settlement_without_error(self):
        """Test that a bare failure still carries a reason."""
        result = SettlementResult.from_api_response({"success": False})
        assert result.error == "Settlement failed"

    @pytest.mark.parametrize(
        "data, success",
        [
            ({"txHash": "0xabc"}, True),
            ({}, False),
            ({"success": False, "transactionHash": "0xabc"}, False),
            ({"error": "nonce reused"}, False),
        ],
    )
    def test_settlement_without_success_flag(self, data, success):
        """Test that only an explicit refusal or a missing reference is a failure."""
        result = SettlementResult.from_api_response(data)
        assert result.success is success

    @pytest.mark.parametrize(
        "data, is_valid",
        [
            ({}, True),
            ({"invalidReason": "bad signature"}, False),
            ({"isValid": False}, False),
        ],
    )
    def test_verification_without_valid_flag(self, data, is_valid):
        """Test that a missing isValid only fails with a stated reason."""
        result = VerificationResult.from_api_response(data)
        assert result.is_valid is is_valid
