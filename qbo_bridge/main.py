"""
QuickBooks token keeper API - FastAPI Application

Main entry point for the HTTP layer (connect flow, webhook, company info).
The token refresher runs separately: see qbo_bridge.scheduler.main.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from qbo_bridge import __version__
from qbo_bridge.config import get_settings
from qbo_bridge.core.database import close_db, init_db
from qbo_bridge.routers import health_router, quickbooks_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Suppress noisy third-party loggers
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting QuickBooks token keeper API...")
    settings = get_settings()

    logger.info("Initializing database connection...")
    await init_db()
    logger.info("Database connection established")

    logger.info(f"API started against QuickBooks {settings.qbo_env}")

    yield

    # Shutdown
    logger.info("Shutting down QuickBooks token keeper API...")
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="QuickBooks Token Keeper",
        description="QuickBooks Online OAuth connect flow and token storage",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    # Register routers
    app.include_router(health_router)
    app.include_router(quickbooks_router)

    # Root endpoint
    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "QuickBooks token keeper API is live."

    return app


# Create app instance
app = create_app()


def run() -> None:
    """Console script entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("qbo_bridge.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
