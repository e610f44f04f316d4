"""JSON-RPC tool dispatcher.

Routes MCP-shaped JSON-RPC requests to registered tools. Each tool is a
name, a description, a pydantic input model and an async handler. The
dispatcher owns the protocol envelope; handlers only see validated input
and return plain JSON-serializable data.
"""

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from storebridge.domain.exceptions import DomainError

logger = structlog.get_logger()

JSONRPC_VERSION = "2.0"
MCP_PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32000


# ============================================================================
# Envelope Helpers
# ============================================================================


class JsonRpcError(Exception):
    """A request that must be answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(message)


def error_response(request_id: Any, code: int, message: str, data: Any = None) -> dict[str, Any]:
    """Build a JSON-RPC error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}


def parse_error_response() -> dict[str, Any]:
    """Response for a body that is not valid JSON."""
    return error_response(None, PARSE_ERROR, "Parse error")


def text_content(payload: Any, is_error: bool = False) -> dict[str, Any]:
    """Wrap a payload as an MCP ``tools/call`` result."""
    result: dict[str, Any] = {
        "content": [
            {"type": "text", "text": json.dumps(payload, indent=2, default=str)},
        ]
    }
    if is_error:
        result["isError"] = True
    return result


# ============================================================================
# Tool Registry
# ============================================================================


@dataclass
class ToolDefinition:
    """A named, schema-described operation."""

    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[Any]]

    def to_listing(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_model.model_json_schema(),
        }


class JsonRpcDispatcher:
    """Routes JSON-RPC requests to a fixed set of tools."""

    def __init__(self, server_name: str, version: str, tools: list[ToolDefinition]) -> None:
        """Initialize dispatcher.

        Args:
            server_name: Name reported in ``serverInfo``.
            version: Version reported in ``serverInfo``.
            tools: Tools to expose. Names must be unique.
        """
        self.server_name = server_name
        self.version = version
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[dict[str, Any]]:
        """Describe every registered tool."""
        return [tool.to_listing() for tool in self._tools.values()]

    async def handle(self, request: Any) -> dict[str, Any] | None:
        """Handle one decoded JSON-RPC request.

        Args:
            request: The decoded request body.

        Returns:
            The response envelope, or None for notifications.
        """
        if not isinstance(request, dict):
            return error_response(None, INVALID_REQUEST, "Invalid Request: expected an object")

        request_id = request.get("id")
        if request.get("jsonrpc") != JSONRPC_VERSION:
            return error_response(
                request_id, INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'"
            )

        method = request.get("method")
        if not isinstance(method, str) or not method:
            return error_response(request_id, INVALID_REQUEST, "Invalid Request: missing method")

        is_notification = "id" not in request
        if is_notification and method.startswith("notifications/"):
            logger.debug("Notification received", method=method)
            return None

        params = request.get("params")
        if params is None:
            params = {}

        try:
            if not isinstance(params, dict):
                raise JsonRpcError(INVALID_PARAMS, "Invalid params: expected an object")
            result = await self._dispatch(method, params)
        except JsonRpcError as e:
            response = error_response(request_id, e.code, e.message, e.data)
        except Exception as e:
            logger.exception("JSON-RPC dispatch failed", method=method)
            response = error_response(request_id, INTERNAL_ERROR, "Internal error", str(e))
        else:
            response = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

        return None if is_notification else response

    async def _dispatch(self, method: str, params: dict[str, Any]) -> Any:
        if method == "initialize":
            return {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.server_name, "version": self.version},
            }
        if method == "ping":
            return {"status": "pong"}
        if method == "tools/list":
            return {"tools": self.list_tools()}
        if method == "tools/call":
            return await self._call_tool(params)
        raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        tool = self._tools.get(name) if isinstance(name, str) else None
        if tool is None:
            raise JsonRpcError(INVALID_PARAMS, f"Unknown tool: {name}")

        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise JsonRpcError(INVALID_PARAMS, "Invalid params: arguments must be an object")

        try:
            tool_input = tool.input_model.model_validate(arguments)
        except ValidationError as e:
            raise JsonRpcError(
                INVALID_PARAMS,
                f"Invalid arguments for tool {name}",
                json.loads(e.json(include_url=False)),
            ) from e

        log = logger.bind(tool=name)
        log.info("Tool called")
        try:
            result = await tool.handler(tool_input)
        except DomainError as e:
            log.warning("Tool failed", error_code=e.error_code, error=e.message)
            payload: dict[str, Any] = {"error": e.message, "error_code": e.error_code}
            if e.details:
                payload["details"] = e.details
            return text_content(payload, is_error=True)
        except Exception as e:
            log.exception("Tool execution failed")
            return text_content(
                {"error": str(e) or e.__class__.__name__, "error_code": "INTERNAL_ERROR"},
                is_error=True,
            )

        log.info("Tool completed")
        return text_content(result)
