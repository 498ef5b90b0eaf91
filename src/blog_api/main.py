"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from blog_api.config import Settings
from blog_api.errors import register_exception_handlers
from blog_api.posts import router as posts_router
from blog_api.store import create_post_store
from blog_api.telemetry import (
    add_trace_context,
    configure_stdlib_logging,
    emit_to_otel_logs,
    init_telemetry,
    instrument_app,
    shutdown_telemetry,
)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_trace_context,  # type: ignore[list-item]
        emit_to_otel_logs,  # type: ignore[list-item]
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(),
    ],
)

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the document store on startup and close it on shutdown."""
    init_telemetry(app.version)
    settings = getattr(app.state, "settings", None) or Settings()
    app.state.settings = settings
    app.state.store = create_post_store(
        settings.store_backend, settings.redis_url, settings.redis_key_prefix
    )
    await log.ainfo("service started", store_backend=settings.store_backend)
    yield

    try:
        await app.state.store.aclose()
    finally:
        await log.ainfo("service stopped")
        shutdown_telemetry()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application. The store is attached to ``app.state`` by the lifespan."""
    app = FastAPI(title="Blog Post API", version="0.1.0", lifespan=lifespan)
    if settings is not None:
        app.state.settings = settings
    register_exception_handlers(app)
    app.include_router(posts_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    instrument_app(app)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = Settings()
    configure_stdlib_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=None,
    )
