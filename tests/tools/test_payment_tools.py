"""Tests for the payment construction tools."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from storebridge.application.order_intent_service import LineItemRequest
from storebridge.domain.payment_payload import encode_payment_header
from storebridge.infrastructure.chain_client import AccountBalance, ChainClient
from storebridge.tools.dispatcher import JsonRpcDispatcher
from storebridge.tools.payment_tools import SIGNING_INSTRUCTIONS, PaymentTools


@pytest.fixture
def mock_chain() -> MagicMock:
    chain = MagicMock(spec=ChainClient)
    chain.get_balance = AsyncMock()
    chain.close = AsyncMock()
    return chain


@pytest.fixture
def dispatcher(service, mock_chain, rail) -> JsonRpcDispatcher:
    tools = PaymentTools(
        service,
        mock_chain,
        rail,
        rpc_url="https://rpc.example/v1",
        transfer_function="0x1::aptos_account::transfer",
    )
    return JsonRpcDispatcher("storebridge-payment", "0.1.0", tools.definitions())


async def call_tool(dispatcher, name, arguments):
    response = await dispatcher.handle(
        {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": name, "arguments": arguments},
        }
    )
    result = response["result"]
    return json.loads(result["content"][0]["text"]), result.get("isError", False)


async def pending_intent_id(service) -> str:
    initiated = await service.initiate(
        "store-1", [LineItemRequest(product_id="prod-1", variant_id="var-2", quantity=1)]
    )
    return str(initiated.intent.id)


class TestPaymentToolListing:
    """Tests for the tool set."""

    def test_tool_names(self, dispatcher):
        """Test that every payment tool is registered."""
        assert dispatcher.tool_names == [
            "build_payment_transaction",
            "get_payment_requirements",
            "verify_payment",
            "get_balance",
            "convert_usd_to_settlement",
        ]


class TestBuildPaymentTransaction:
    """Tests for build_payment_transaction."""

    @pytest.mark.asyncio
    async def test_from_order_intent(self, dispatcher, service, sender, pay_to):
        """Test that recipient and amount come from the intent."""
        intent_id = await pending_intent_id(service)

        payload, is_error = await call_tool(
            dispatcher,
            "build_payment_transaction",
            {"sender": sender, "order_intent_id": intent_id},
        )

        assert not is_error
        assert payload["status"] == "ready"
        data = payload["transaction_data"]
        assert data["function"] == "0x1::aptos_account::transfer"
        assert data["function_arguments"] == [pay_to, "1250000000"]
        assert data["sender"] == sender
        assert data["rpc_url"] == "https://rpc.example/v1"
        assert payload["amount_display"] == "12.50000000 MOVE"
        assert payload["x402"] == {"x402Version": 1, "scheme": "exact", "network": "movement"}
        assert payload["instructions"] == SIGNING_INSTRUCTIONS

    @pytest.mark.asyncio
    async def test_from_explicit_values(self, dispatcher, sender, pay_to):
        """Test building a transfer without an intent."""
        payload, is_error = await call_tool(
            dispatcher,
            "build_payment_transaction",
            {"sender": sender, "pay_to": pay_to, "amount": "500"},
        )

        assert not is_error
        assert payload["transaction_data"]["function_arguments"] == [pay_to, "500"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments, error_code",
        [
            ({"sender": "0x123"}, "VALIDATION_ERROR"),
            ({"sender": "0x" + "b" * 64}, "VALIDATION_ERROR"),
            ({"sender": "0x" + "b" * 64, "pay_to": "0x1", "amount": "5"}, "VALIDATION_ERROR"),
            ({"sender": "0x" + "b" * 64, "pay_to": "0x" + "a" * 64, "amount": "1.5"}, "VALIDATION_ERROR"),
            ({"sender": "0x" + "b" * 64, "pay_to": "0x" + "a" * 64, "amount": "0"}, "VALIDATION_ERROR"),
            (
                {"sender": "0x" + "b" * 64, "order_intent_id": "00000000-0000-0000-0000-000000000000"},
                "NOT_FOUND",
            ),
        ],
    )
    async def test_invalid_input(self, dispatcher, arguments, error_code):
        """Test that bad addresses, amounts and intents are tool errors."""
        payload, is_error = await call_tool(dispatcher, "build_payment_transaction", arguments)

        assert is_error
        assert payload["error_code"] == error_code

    @pytest.mark.asyncio
    async def test_closed_intent(self, dispatcher, service, sender):
        """Test that a cancelled intent cannot be paid."""
        intent_id = await pending_intent_id(service)
        await service.cancel(intent_id)

        payload, is_error = await call_tool(
            dispatcher,
            "build_payment_transaction",
            {"sender": sender, "order_intent_id": intent_id},
        )

        assert is_error
        assert payload["error_code"] == "CONFLICT"


class TestGetPaymentRequirements:
    """Tests for get_payment_requirements."""

    @pytest.mark.asyncio
    async def test_pending_intent(self, dispatcher, service, pay_to):
        """Test the requirements of a payable intent."""
        intent_id = await pending_intent_id(service)

        payload, is_error = await call_tool(
            dispatcher, "get_payment_requirements", {"order_intent_id": intent_id}
        )

        assert not is_error
        assert payload["order_intent_id"] == intent_id
        assert payload["x402Version"] == 1
        assert payload["payment_requirements"]["payTo"] == pay_to
        assert payload["payment_requirements"]["maxAmountRequired"] == "1250000000"
        assert payload["items"][0]["variant_id"] == "var-2"

    @pytest.mark.asyncio
    async def test_expired_intent(self, dispatcher, service, clock):
        """Test that an overdue intent is reported as expired."""
        intent_id = await pending_intent_id(service)
        clock.advance(minutes=45)

        payload, is_error = await call_tool(
            dispatcher, "get_payment_requirements", {"order_intent_id": intent_id}
        )

        assert is_error
        assert payload["error_code"] == "ORDER_INTENT_EXPIRED"


class TestVerifyPayment:
    """Tests for verify_payment."""

    @pytest.mark.asyncio
    async def test_valid_structure(self, dispatcher, payment_header):
        """Test a well-formed header."""
        payload, is_error = await call_tool(
            dispatcher, "verify_payment", {"x_payment_header": payment_header}
        )

        assert not is_error
        assert payload["status"] == "valid_structure"
        assert payload["has_signature"] is True
        assert payload["has_transaction"] is True
        assert payload["warnings"] == []

    @pytest.mark.asyncio
    async def test_missing_transaction(self, dispatcher):
        """Test a header missing its signed transaction."""
        header = encode_payment_header(
            {"x402Version": 1, "scheme": "exact", "network": "movement", "payload": {"signature": "s"}}
        )

        payload, _ = await call_tool(dispatcher, "verify_payment", {"x_payment_header": header})

        assert payload["status"] == "invalid_structure"
        assert payload["has_transaction"] is False

    @pytest.mark.asyncio
    async def test_undecodable(self, dispatcher):
        """Test a header that is not base64 JSON."""
        payload, is_error = await call_tool(
            dispatcher, "verify_payment", {"x_payment_header": "???"}
        )

        assert not is_error
        assert payload["status"] == "invalid"
        assert payload["error"]

    @pytest.mark.asyncio
    async def test_expected_values_are_echoed(self, dispatcher, payment_header, pay_to):
        """Test that expectations against an opaque transaction are echoed with a warning."""
        payload, is_error = await call_tool(
            dispatcher,
            "verify_payment",
            {
                "x_payment_header": payment_header,
                "expected_pay_to": pay_to,
                "expected_amount": "2000000000",
            },
        )

        assert not is_error
        assert payload["status"] == "valid_structure"
        assert payload["expected_pay_to"] == pay_to
        assert payload["expected_amount"] == "2000000000"
        assert len(payload["warnings"]) == 1
        assert "cannot be checked" in payload["warnings"][0]

    @pytest.mark.asyncio
    async def test_expected_values_mismatch(self, dispatcher, pay_to):
        """Test that a disclosed recipient and amount are compared."""
        header = encode_payment_header(
            {
                "x402Version": 1,
                "scheme": "exact",
                "network": "movement",
                "payload": {
                    "signature": "s",
                    "transaction": "t",
                    "authorization": {"to": "0x" + "c" * 64, "value": "5"},
                },
            }
        )

        payload, _ = await call_tool(
            dispatcher,
            "verify_payment",
            {"x_payment_header": header, "expected_pay_to": pay_to, "expected_amount": "7"},
        )

        assert payload["status"] == "valid_structure"
        assert payload["warnings"] == [
            f"Recipient mismatch: expected {pay_to}, got {'0x' + 'c' * 64}",
            "Amount mismatch: expected 7, got 5",
        ]

    @pytest.mark.asyncio
    async def test_expected_values_match(self, dispatcher, pay_to):
        """Test that matching disclosed values add no warnings."""
        header = encode_payment_header(
            {
                "x402Version": 1,
                "scheme": "exact",
                "network": "movement",
                "payload": {
                    "signature": "s",
                    "transaction": "t",
                    "authorization": {"to": pay_to.upper().replace("0X", "0x"), "value": "7"},
                },
            }
        )

        payload, _ = await call_tool(
            dispatcher,
            "verify_payment",
            {"x_payment_header": header, "expected_pay_to": pay_to, "expected_amount": "7"},
        )

        assert payload["warnings"] == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "arguments",
        [{"expected_pay_to": "0x1"}, {"expected_amount": "1.5"}],
    )
    async def test_malformed_expectations(self, dispatcher, payment_header, arguments):
        """Test that malformed expected values are tool errors."""
        payload, is_error = await call_tool(
            dispatcher, "verify_payment", {"x_payment_header": payment_header, **arguments}
        )

        assert is_error
        assert payload["error_code"] == "VALIDATION_ERROR"


class TestGetBalance:
    """Tests for get_balance."""

    @pytest.mark.asyncio
    async def test_balance(self, dispatcher, mock_chain, sender):
        """Test rendering an account balance."""
        mock_chain.get_balance.return_value = AccountBalance(
            address=sender, balance=250_000_000, exists=True
        )

        payload, is_error = await call_tool(dispatcher, "get_balance", {"address": sender})

        assert not is_error
        assert payload == {
            "address": sender,
            "balance": "250000000",
            "balance_display": "2.50000000",
            "currency": "MOVE",
            "decimals": 8,
            "account_exists": True,
        }
        mock_chain.get_balance.assert_awaited_once_with(sender)


class TestConvertUsd:
    """Tests for convert_usd_to_settlement."""

    @pytest.mark.asyncio
    async def test_convert(self, dispatcher):
        """Test conversion at the configured rate."""
        payload, is_error = await call_tool(
            dispatcher, "convert_usd_to_settlement", {"usd_amount": "19.99"}
        )

        assert not is_error
        assert payload["amount"] == "1999000000"
        assert payload["amount_display"] == "19.99000000"
        assert payload["rate"] == "1 USD = 1 MOVE"

    @pytest.mark.asyncio
    async def test_invalid_amount(self, dispatcher):
        """Test that a non-number is a validation tool error."""
        payload, is_error = await call_tool(
            dispatcher, "convert_usd_to_settlement", {"usd_amount": "lots"}
        )

        assert is_error
        assert payload["error_code"] == "VALIDATION_ERROR"
