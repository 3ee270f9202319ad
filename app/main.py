"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.database import get_engine
from app.core.exceptions import register_exception_handlers
from app.core.health import router as health_router
from app.core.logging import configure_logging, get_logger
from app.core.middleware import REQUEST_ID_HEADER, RequestIdMiddleware
from app.features.analytics.routes import router as analytics_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup and release the connection pool on shutdown."""
    settings = get_settings()
    configure_logging()
    logger.info(
        "app.startup_started",
        app_name=settings.app_name,
        app_env=settings.app_env,
        debug=settings.debug,
        analytics_max_range_months=settings.analytics_max_range_months,
        audit_tolerance_pct=settings.audit_tolerance_pct,
    )

    yield

    # Only dispose an engine a request actually created
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
    logger.info("app.shutdown_completed")


def _allowed_origins(settings: Settings) -> list[str]:
    return settings.cors_origins if settings.is_development else []


def create_app() -> FastAPI:
    """Assemble the API: middleware, problem-document handlers and routers.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Order analytics, CSV export and consistency auditing",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # First added = outermost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        # Browsers need these to read the CSV filename and correlate errors
        expose_headers=["Content-Disposition", REQUEST_ID_HEADER],
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(analytics_router)

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development and settings.debug,
        log_config=None,
    )
