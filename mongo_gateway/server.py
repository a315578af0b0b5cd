"""Application entry point: health routes, error envelopes, lifespan and uvicorn.

Run: mongo-gateway [--host HOST] [--port PORT] [--log-level LEVEL]
 or: uvicorn --factory mongo_gateway.server:create_app
"""

import argparse
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api_server import ENDPOINTS, router
from .config import Settings, load_settings
from .db import ConnectionManager
from .errors import DriverError, GatewayError
from .log import configure_logging
from .validation import DocumentValidator, PassthroughValidator

logger = logging.getLogger(__name__)

SERVICE_NAME = "MongoDB Gateway API"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _log_async_error(loop, context):
    logger.error(
        "Unhandled async error: %s",
        context.get("message", "unknown"),
        exc_info=context.get("exception"),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    asyncio.get_running_loop().set_exception_handler(_log_async_error)
    await app.state.store.start()
    try:
        yield
    finally:
        await app.state.store.close()


def create_app(
    settings: Settings | None = None,
    store=None,
    validator: DocumentValidator | None = None,
) -> FastAPI:
    """Build the FastAPI app. ``store`` defaults to a ConnectionManager from settings."""
    if settings is None:
        settings = load_settings()
    if not settings.api_key:
        logger.warning("API_KEY is not set; every authenticated request will be rejected")

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store if store is not None else ConnectionManager.from_settings(settings)
    app.state.validator = validator if validator is not None else PassthroughValidator()
    app.state.started_at = time.monotonic()

    # ── Error envelopes ──────────────────────────────────────────────

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        message = exc.message
        if isinstance(exc, DriverError) and not settings.expose_driver_errors:
            message = "Database operation failed"
        return _error(exc.status_code, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            # a known path with the wrong method is also an unmatched route
            return _error(404, "Endpoint not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Server error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length is not None and length.isdigit() and int(length) > settings.max_body_bytes:
            return _error(413, "Request body too large")
        return await call_next(request)

    # ── Routes ───────────────────────────────────────────────────────

    @app.get("/")
    async def root():
        db_status = app.state.store.check_health()
        return {
            "success": True,
            "service": SERVICE_NAME,
            "version": __version__,
            "status": "connected" if db_status["status"] == "connected" else "connecting",
            "database": settings.mongo_db_name,
            "endpoints": ["/health", *ENDPOINTS],
        }

    @app.get("/health")
    async def health():
        db_status = app.state.store.check_health()
        return {
            "success": True,
            "status": "ok",
            "mongodb": db_status["status"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
        }

    app.include_router(router)
    return app


def _log_banner(settings: Settings) -> None:
    auth_mode = "API key in request body"
    if settings.allow_query_api_key:
        auth_mode += " or query string"
    logger.info("=" * 60)
    logger.info(SERVICE_NAME)
    logger.info("Listening on: http://%s:%d", settings.host, settings.port)
    logger.info("Health check: /health")
    logger.info("Database: %s", settings.mongo_db_name)
    logger.info("Auth: %s", auth_mode)
    logger.info("=" * 60)


def main(argv=None):
    parser = argparse.ArgumentParser(description=SERVICE_NAME)
    parser.add_argument("--host", default=None, help="Interface to bind (default: $HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: $PORT or 3000)")
    parser.add_argument("--log-level", default=None, help="Log level (default: $LOG_LEVEL or INFO)")
    args = parser.parse_args(argv)

    settings = load_settings()
    overrides = {"host": args.host, "port": args.port, "log_level": args.log_level}
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})

    configure_logging(settings.log_level)
    app = create_app(settings)
    _log_banner(settings)
    # uvicorn handles SIGINT/SIGTERM: stop accepting, drain, run lifespan shutdown
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_timeout_seconds,
        log_config=None,
    )


if __name__ == "__main__":
    main()
