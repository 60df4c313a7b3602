"""
FastAPI Application

Main entry point for the Grocery Storefront Analytics API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import structlog

from grocery_analytics.config import get_settings
from grocery_analytics.config.logging import configure_logging
from grocery_analytics.serving.api.middleware import RequestLoggingMiddleware
from grocery_analytics.serving.api.routes import analytics_router, health_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    settings = get_settings()
    logger.info(
        "Starting Grocery Analytics API",
        version=settings.version,
        environment=settings.app_env,
        timezone=settings.analytics.timezone,
    )

    yield

    logger.info("Shutting down...")


def create_app() -> FastAPI:
    """Build the API application"""
    settings = get_settings()

    app = FastAPI(
        title="Grocery Storefront Analytics API",
        description="Order, customer and inventory analytics for the grocery storefront",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
