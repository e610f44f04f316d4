"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from storebridge.api.checkout import router as checkout_router
from storebridge.api.health import router as health_router
from storebridge.api.mcp import router as mcp_router
from storebridge.api.orders import router as orders_router
from storebridge.api.stores import router as stores_router

__all__ = [
    "checkout_router",
    "health_router",
    "mcp_router",
    "orders_router",
    "stores_router",
]
