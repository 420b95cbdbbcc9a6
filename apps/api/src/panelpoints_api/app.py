from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from panelpoints_api.core.settings import settings
from panelpoints_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Panel points API starting",
        environment=settings.environment,
        rate_limit_enabled=settings.rate_limit_enabled,
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Panel points API stopped")


def create_app() -> FastAPI:
    """Application factory for the panel points FastAPI service."""
    configure_logging(
        service_name="panelpoints-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Panel Points API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="panelpoints-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
