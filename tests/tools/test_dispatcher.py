"""Tests for the JSON-RPC tool dispatcher."""

import json

import pytest
from pydantic import BaseModel, Field

from storebridge.domain.exceptions import StoreNotFoundError
from storebridge.tools.dispatcher import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    MCP_PROTOCOL_VERSION,
    JsonRpcDispatcher,
    ToolDefinition,
    parse_error_response,
    text_content,
)


class EchoInput(BaseModel):
    message: str = Field(..., description="Text to echo.")
    times: int = Field(default=1, ge=1)


async def echo(data: EchoInput):
    return {"echo": data.message * data.times}


async def missing_store(data: EchoInput):
    raise StoreNotFoundError(data.message)


async def explode(data: EchoInput):
    raise RuntimeError("kaboom")


@pytest.fixture
def dispatcher() -> JsonRpcDispatcher:
    return JsonRpcDispatcher(
        "test-server",
        "1.2.3",
        [
            ToolDefinition("echo", "Echo a message.", EchoInput, echo),
            ToolDefinition("missing_store", "Always misses.", EchoInput, missing_store),
            ToolDefinition("explode", "Always crashes.", EchoInput, explode),
        ],
    )


def call(name, arguments=None, request_id=1):
    params = {"name": name}
    if arguments is not None:
        params["arguments"] = arguments
    return {"jsonrpc": "2.0", "id": request_id, "method": "tools/call", "params": params}


def payload_of(response):
    return json.loads(response["result"]["content"][0]["text"])


# ============================================================================
# Protocol
# ============================================================================


class TestProtocol:
    """Tests for the JSON-RPC envelope."""

    @pytest.mark.asyncio
    async def test_initialize(self, dispatcher):
        """Test the initialize handshake."""
        response = await dispatcher.handle({"jsonrpc": "2.0", "id": 1, "method": "initialize"})

        assert response["id"] == 1
        assert response["result"]["protocolVersion"] == MCP_PROTOCOL_VERSION
        assert response["result"]["serverInfo"] == {"name": "test-server", "version": "1.2.3"}
        assert response["result"]["capabilities"] == {"tools": {}}

    @pytest.mark.asyncio
    async def test_ping(self, dispatcher):
        """Test ping."""
        response = await dispatcher.handle({"jsonrpc": "2.0", "id": "a", "method": "ping"})

        assert response == {"jsonrpc": "2.0", "id": "a", "result": {"status": "pong"}}

    @pytest.mark.asyncio
    async def test_tools_list(self, dispatcher):
        """Test that every tool is listed with its input schema."""
        response = await dispatcher.handle({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})

        tools = response["result"]["tools"]
        assert [t["name"] for t in tools] == ["echo", "missing_store", "explode"]
        assert tools[0]["description"] == "Echo a message."
        assert tools[0]["inputSchema"]["required"] == ["message"]

    @pytest.mark.asyncio
    async def test_unknown_method(self, dispatcher):
        """Test that an unknown method is reported."""
        response = await dispatcher.handle({"jsonrpc": "2.0", "id": 3, "method": "resources/list"})

        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["id"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_body",
        [
            [],
            "tools/list",
            {"id": 1, "method": "ping"},
            {"jsonrpc": "1.0", "id": 1, "method": "ping"},
            {"jsonrpc": "2.0", "id": 1},
            {"jsonrpc": "2.0", "id": 1, "method": ""},
        ],
    )
    async def test_invalid_requests(self, dispatcher, request_body):
        """Test that malformed envelopes are rejected."""
        response = await dispatcher.handle(request_body)

        assert response["error"]["code"] == INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_params_must_be_object(self, dispatcher):
        """Test that positional params are rejected."""
        response = await dispatcher.handle(
            {"jsonrpc": "2.0", "id": 4, "method": "tools/call", "params": ["echo"]}
        )

        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_notifications_get_no_response(self, dispatcher):
        """Test that id-less requests are answered with nothing."""
        assert await dispatcher.handle(
            {"jsonrpc": "2.0", "method": "notifications/initialized"}
        ) is None
        assert await dispatcher.handle({"jsonrpc": "2.0", "method": "ping"}) is None

    def test_parse_error_response(self):
        """Test the answer to a body that is not JSON."""
        assert parse_error_response() == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32700, "message": "Parse error"},
        }

    def test_duplicate_tool_names(self):
        """Test that tool names must be unique."""
        tool = ToolDefinition("echo", "Echo.", EchoInput, echo)

        with pytest.raises(ValueError):
            JsonRpcDispatcher("s", "1", [tool, tool])

    def test_text_content(self):
        """Test wrapping a payload as MCP content."""
        result = text_content({"ok": True}, is_error=True)

        assert result["isError"] is True
        assert json.loads(result["content"][0]["text"]) == {"ok": True}
        assert "isError" not in text_content({})


# ============================================================================
# Tool Calls
# ============================================================================


class TestToolCalls:
    """Tests for tools/call."""

    @pytest.mark.asyncio
    async def test_successful_call(self, dispatcher):
        """Test that the handler result is returned as text content."""
        response = await dispatcher.handle(call("echo", {"message": "hi", "times": 2}))

        assert "isError" not in response["result"]
        assert payload_of(response) == {"echo": "hihi"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher):
        """Test that an unknown tool is an invalid-params error."""
        response = await dispatcher.handle(call("nope", {}))

        assert response["error"]["code"] == INVALID_PARAMS
        assert "nope" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_missing_tool_name(self, dispatcher):
        """Test a call without a name."""
        response = await dispatcher.handle(
            {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {}}
        )

        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, dispatcher):
        """Test that schema violations carry the validation details."""
        response = await dispatcher.handle(call("echo", {"times": 0}))

        assert response["error"]["code"] == INVALID_PARAMS
        locations = [tuple(err["loc"]) for err in response["error"]["data"]]
        assert ("message",) in locations
        assert ("times",) in locations

    @pytest.mark.asyncio
    async def test_arguments_must_be_object(self, dispatcher):
        """Test that non-object arguments are rejected."""
        response = await dispatcher.handle(call("echo", ["hi"]))

        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_domain_error_is_tool_error(self, dispatcher):
        """Test that a domain failure is reported inside the result."""
        response = await dispatcher.handle(call("missing_store", {"message": "store-9"}))

        assert response["result"]["isError"] is True
        payload = payload_of(response)
        assert payload["error_code"] == "NOT_FOUND"
        assert payload["error"] == "Store store-9 not found"
        assert payload["details"] == {"store_id": "store-9"}

    @pytest.mark.asyncio
    async def test_unexpected_error_is_tool_error(self, dispatcher):
        """Test that a crashing handler does not break the envelope."""
        response = await dispatcher.handle(call("explode", {"message": "x"}))

        assert response["result"]["isError"] is True
        assert payload_of(response) == {"error": "kaboom", "error_code": "INTERNAL_ERROR"}

    @pytest.mark.asyncio
    async def test_dispatch_failure_is_internal_error(self, dispatcher, monkeypatch):
        """Test that a failure outside the handler becomes a JSON-RPC error."""

        def broken_list():
            raise RuntimeError("registry corrupted")

        monkeypatch.setattr(dispatcher, "list_tools", broken_list)

        response = await dispatcher.handle({"jsonrpc": "2.0", "id": 9, "method": "tools/list"})

        assert response["error"]["code"] == INTERNAL_ERROR
        assert response["error"]["data"] == "registry corrupted"
