"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.middleware.trustedhost import TrustedHostMiddleware

from langcms.api.admin import router as admin_router
from langcms.api.assets import router as assets_router
from langcms.api.auth import router as auth_router
from langcms.api.collections import router as collections_router
from langcms.api.health import router as health_router
from langcms.api.sync import router as sync_router
from langcms.cache.backends import create_backend
from langcms.cache.service import ContentCache
from langcms.config import Settings
from langcms.database import create_engine, ensure_tables
from langcms.exceptions import (
    NotFoundError,
    StorageError,
    SyncInProgressError,
)
from langcms.filesystem.source_manager import SourceManager
from langcms.services.rate_limit_service import FailureRateLimiter
from langcms.services.resolver_service import Resolver

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def ensure_source_dir(source_dir: Path) -> None:
    """Create the source root and its collections folder if missing."""
    if source_dir.exists() and not source_dir.is_dir():
        msg = f"Source path exists but is not a directory: {source_dir}"
        raise NotADirectoryError(msg)

    collections_dir = source_dir / "collections"
    if not collections_dir.exists():
        logger.info("Creating source directory scaffold at %s", source_dir)
        collections_dir.mkdir(parents=True)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Attach cache, source manager, resolver and limiter to app state."""
    cache = ContentCache(
        create_backend(settings.redis_url),
        namespace=settings.cache_namespace,
        content_ttl=settings.cache_content_ttl,
        list_ttl=settings.cache_list_ttl,
    )
    source = SourceManager(source_dir=settings.source_dir)
    app.state.cache = cache
    app.state.source_manager = source
    app.state.resolver = Resolver(
        cache,
        source,
        db_timeout=settings.db_query_timeout_seconds,
        warm_from_filesystem=settings.cache_warm_from_filesystem,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting LangCMS (debug=%s)", settings.debug)

    db_url = settings.database_url
    if db_url.startswith("sqlite"):
        db_path = db_url.split("///", 1)[-1] if "///" in db_url else None
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
        await ensure_tables(engine)
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database URL and permissions.", exc
        )
        raise

    try:
        ensure_source_dir(settings.source_dir)
    except OSError as exc:
        logger.critical(
            "Failed to initialize source directory at %s: %s.", settings.source_dir, exc
        )
        raise

    build_services(app, settings)
    if not await app.state.cache.ping():
        logger.warning("Cache backend unreachable at startup; reads will fall through")

    yield

    try:
        await app.state.cache.close()
    except Exception as exc:
        logger.error("Error during cache shutdown: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("LangCMS stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="LangCMS",
        description="Multi-language content backend with read-through caching",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings
    app.state.rate_limiter = FailureRateLimiter(
        settings.auth_max_failures, settings.auth_rate_limit_window_seconds
    )

    app.add_middleware(GZipMiddleware, minimum_size=500)

    cors_origins = (
        settings.cors_origins
        if settings.cors_origins
        else (["http://localhost:3000", "http://localhost:8000"] if settings.debug else [])
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    trusted_hosts = settings.trusted_hosts or (
        ["localhost", "127.0.0.1", "::1", "test", "testserver"] if settings.debug else []
    )
    if trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

    app.include_router(health_router)
    app.include_router(collections_router)
    app.include_router(assets_router)
    app.include_router(auth_router)
    app.include_router(sync_router)
    app.include_router(admin_router)

    # Global exception handlers

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        logger.info("NotFoundError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=404,
            content={
                "detail": str(exc),
                "tiers_tried": exc.tiers_tried,
                "cache_key": exc.cache_key,
                "path": exc.path,
            },
        )

    @app.exception_handler(SyncInProgressError)
    async def sync_in_progress_handler(
        request: Request, exc: SyncInProgressError
    ) -> JSONResponse:
        logger.warning("SyncInProgressError in %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(
            "StorageError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": f"Storage temporarily unavailable ({exc.operation})"},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    @app.exception_handler(UnicodeDecodeError)
    async def unicode_error_handler(request: Request, exc: UnicodeDecodeError) -> JSONResponse:
        logger.error(
            "UnicodeDecodeError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=422,
            content={"detail": "Invalid content encoding"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError in %s %s: %s", request.method, request.url.path, exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(
            status_code=422,
            content={"detail": message},
        )

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={"detail": "Storage operation failed"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "langcms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
