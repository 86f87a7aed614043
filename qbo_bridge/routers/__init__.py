# FastAPI Routers
from qbo_bridge.routers.health import router as health_router
from qbo_bridge.routers.quickbooks import router as quickbooks_router

__all__ = [
    "health_router",
    "quickbooks_router",
]
