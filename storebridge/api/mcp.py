"""MCP JSON-RPC endpoints.

- POST /mcp, GET /mcp/tools - catalog and ordering tools
- POST /mcp/payment, GET /mcp/payment/tools - payment construction tools
- GET /mcp/sse, POST /mcp/sse/message - catalog tools over server-sent events
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, StreamingResponse

from storebridge.api.dependencies import ContainerDep
from storebridge.tools.dispatcher import JsonRpcDispatcher, parse_error_response

router = APIRouter(prefix="/mcp", tags=["MCP"])


async def _read_json(request: Request) -> tuple[Any, bool]:
    try:
        return await request.json(), True
    except ValueError:
        return None, False


async def _dispatch(request: Request, dispatcher: JsonRpcDispatcher) -> Response:
    body, ok = await _read_json(request)
    if not ok:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=parse_error_response())
    result = await dispatcher.handle(body)
    if result is None:
        return Response(status_code=status.HTTP_202_ACCEPTED)
    return JSONResponse(content=result)


def _tool_listing(dispatcher: JsonRpcDispatcher) -> dict[str, Any]:
    tools = dispatcher.list_tools()
    return {"server": dispatcher.server_name, "tools": tools, "count": len(tools)}


@router.post("", summary="Catalog tools JSON-RPC endpoint")
async def catalog_rpc(request: Request, container: ContainerDep) -> Response:
    return await _dispatch(request, container.catalog_dispatcher)


@router.get("/tools", summary="List catalog tools")
async def catalog_tools(container: ContainerDep) -> dict[str, Any]:
    return _tool_listing(container.catalog_dispatcher)


@router.post("/payment", summary="Payment tools JSON-RPC endpoint")
async def payment_rpc(request: Request, container: ContainerDep) -> Response:
    return await _dispatch(request, container.payment_dispatcher)


@router.get("/payment/tools", summary="List payment tools")
async def payment_tools(container: ContainerDep) -> dict[str, Any]:
    return _tool_listing(container.payment_dispatcher)


@router.get("/sse", summary="Open an SSE session")
async def sse_stream(request: Request, container: ContainerDep) -> StreamingResponse:
    """Open an event stream.

    The first event is ``endpoint``, carrying the URL to POST requests to.
    The session exists only while the stream is being consumed.
    """
    endpoint_url = f"{request.url.path.rstrip('/')}/message"
    return StreamingResponse(
        container.sse_sessions.stream(endpoint_url),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/sse/message",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Send a JSON-RPC request to an SSE session",
)
async def sse_message(
    request: Request,
    container: ContainerDep,
    session_id: str = Query(..., description="Session ID from the endpoint event"),
) -> Response:
    """Accept a request; its response is pushed on the session's stream."""
    session = container.sse_sessions.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": "NOT_FOUND",
                "message": f"SSE session not found: {session_id}",
            },
        )

    body, ok = await _read_json(request)
    if not ok:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=parse_error_response())

    await container.sse_sessions.submit(session, body)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content={"status": "accepted"})
