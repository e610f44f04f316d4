"""Agent tools.

JSON-RPC dispatcher, the catalog and payment tool groups, and the SSE
and stdio transports that expose them.
"""

from storebridge.tools.catalog_tools import CatalogTools
from storebridge.tools.dispatcher import JsonRpcDispatcher, ToolDefinition
from storebridge.tools.payment_tools import PaymentTools
from storebridge.tools.sse import SseSessionManager

__all__ = [
    "CatalogTools",
    "JsonRpcDispatcher",
    "PaymentTools",
    "SseSessionManager",
    "ToolDefinition",
]
