"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from workload_ledger.api.router import api_router
from workload_ledger.core.config import get_settings
from workload_ledger.core.logging_config import configure_logging
from workload_ledger.db.session import get_session_factory
from workload_ledger.services.notification_scanner import NotificationScanner


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    scanner: NotificationScanner | None = None
    if settings.notification_scan_enabled:
        scanner = NotificationScanner(
            get_session_factory(),
            interval_seconds=settings.notification_scan_interval_seconds,
        )
        scanner.start()
    app.state.notification_scanner = scanner
    try:
        yield
    finally:
        if scanner is not None:
            scanner.stop()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["system"])
    def root() -> dict[str, str]:
        return {"service": settings.app_name, "status": "running"}

    return app


app = create_app()
