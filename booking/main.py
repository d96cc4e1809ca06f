"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from booking.api.v1.router import api_router
from booking.config import Settings, get_settings
from booking.container import ServiceContainer, build_container
from booking.core.exceptions import AppException
from booking.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from booking.middleware.logging import LoggingMiddleware, configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Builds the service container unless one was supplied up front, checks
    the backing services and releases connections on shutdown.
    """
    settings: Settings = app.state.settings
    logger.info("application_startup", environment=settings.environment)

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        app.state.container = build_container(settings)
    container: ServiceContainer = app.state.container

    checks = await container.check_health()
    for dependency, healthy in checks.items():
        if healthy:
            logger.info(f"{dependency}_connected")
        else:
            logger.error(f"{dependency}_connection_failed")

    yield

    logger.info("application_shutdown")
    if owns_container:
        await container.aclose()


def create_app(
    settings: Settings | None = None, container: ServiceContainer | None = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment if omitted
        container: Prebuilt service container; built during startup if omitted

    Returns:
        Configured application
    """
    settings = settings or (container.settings if container else get_settings())
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multi-country medical appointment booking pipeline",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, general_exception_handler)  # type: ignore[arg-type]

    app.include_router(api_router, prefix=settings.api_v1_prefix)

    if settings.metrics_enabled:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=False,
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/docs", "/redoc", "/openapi.json"],
            inprogress_name="http_requests_inprogress",
            inprogress_labels=True,
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "booking.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
