"""Stdio MCP bridge.

Runs an MCP server on stdin/stdout for desktop agents and forwards every
tool call to the backend's JSON-RPC endpoints over HTTP. The bridge holds
no state of its own; the backend stays the only place orders live.

Logs go to stderr because stdout carries the protocol.
"""

import asyncio
import json
import sys
from typing import Any

import httpx
import structlog
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from storebridge.infrastructure.config import Settings, get_settings
from storebridge.infrastructure.logging import configure_logging

logger = structlog.get_logger()

BACKEND_ENDPOINTS = ("/api/mcp", "/api/mcp/payment")


class McpBackendError(Exception):
    """The backend could not serve a bridged request."""

    def __init__(self, message: str, code: int | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# ============================================================================
# Backend Client
# ============================================================================


class McpBackendClient:
    """JSON-RPC client for the backend's tool endpoints."""

    def __init__(
        self,
        base_url: str,
        endpoints: tuple[str, ...] = BACKEND_ENDPOINTS,
        timeout: float = 60.0,
    ) -> None:
        """Initialize backend client.

        Args:
            base_url: Backend base URL.
            endpoints: JSON-RPC paths whose tools are bridged.
            timeout: Request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.endpoints = endpoints
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._routes: dict[str, str] = {}
        self._next_id = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, path: str, method: str, params: dict[str, Any] | None = None) -> Any:
        self._next_id += 1
        body: dict[str, Any] = {"jsonrpc": "2.0", "id": self._next_id, "method": method}
        if params is not None:
            body["params"] = params

        try:
            client = await self._get_client()
            response = await client.post(path, json=body)
        except httpx.RequestError as e:
            logger.error("Backend request failed", path=path, method=method, error=str(e))
            raise McpBackendError(f"Backend unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise McpBackendError(f"Backend returned HTTP {response.status_code}") from e

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            raise McpBackendError(error.get("message", "Backend error"), error.get("code"))
        if not isinstance(data, dict) or "result" not in data:
            raise McpBackendError(f"Backend returned HTTP {response.status_code}")
        return data["result"]

    async def list_tools(self) -> list[dict[str, Any]]:
        """Collect the tool listings of every bridged endpoint."""
        tools: list[dict[str, Any]] = []
        routes: dict[str, str] = {}
        for path in self.endpoints:
            result = await self._rpc(path, "tools/list")
            for tool in result.get("tools", []):
                routes.setdefault(tool["name"], path)
                tools.append(tool)
        self._routes = routes
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Call a tool on whichever endpoint serves it.

        Raises:
            McpBackendError: If the tool is unknown or the call failed.
        """
        if name not in self._routes:
            await self.list_tools()
        path = self._routes.get(name)
        if path is None:
            raise McpBackendError(f"Unknown tool: {name}")
        return await self._rpc(path, "tools/call", {"name": name, "arguments": arguments})


# ============================================================================
# MCP Server
# ============================================================================


def _text_of(result: dict[str, Any]) -> str:
    return "\n".join(
        item.get("text", "") for item in result.get("content", []) if item.get("type") == "text"
    )


def create_mcp_server(backend: McpBackendClient) -> Server:
    """Create an MCP server whose tools are served by the backend."""
    server = Server("storebridge-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List the backend's tools."""
        return [
            Tool(
                name=tool["name"],
                description=tool.get("description", ""),
                inputSchema=tool.get("inputSchema") or {"type": "object"},
            )
            for tool in await backend.list_tools()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        """Forward a tool call to the backend."""
        logger.info("Tool called", tool=name)
        result = await backend.call_tool(name, arguments or {})
        text = _text_of(result)
        if result.get("isError"):
            logger.warning("Tool returned an error", tool=name)
            raise McpBackendError(text or json.dumps(result))
        return [TextContent(type="text", text=text)]

    return server


async def run_server(settings: Settings) -> None:
    """Run the MCP bridge using stdio transport."""
    logger.info("Starting stdio MCP bridge", backend_url=settings.backend_url)

    backend = McpBackendClient(settings.backend_url)
    server = create_mcp_server(backend)
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await backend.close()


def main() -> None:
    """Entry point of the ``storebridge-mcp`` command."""
    settings = get_settings()
    configure_logging(settings.log_level, json_logs=True, stream=sys.stderr)
    asyncio.run(run_server(settings))


if __name__ == "__main__":
    main()
