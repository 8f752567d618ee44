"""FastAPI application entry point."""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from tagbrowser.api.routes import files, folders, tags, upload
from tagbrowser.config import settings
from tagbrowser.core.job_queue import JobQueue
from tagbrowser.core.path_mapper import InvalidPathError, PathMapper
from tagbrowser.db.database import async_session_factory, engine
from tagbrowser.db.exceptions import (
    ConnectionError,
    DatabaseError,
    DuplicateRecordError,
    RecordNotFoundError,
)
from tagbrowser.db.repositories import folder_repo
from tagbrowser.middleware.request_id import RequestIDMiddleware
from tagbrowser.models.envelope import error_response
from tagbrowser.services import disk
from tagbrowser.services.context import StorageContext
from tagbrowser.services.reconciler import Reconciler
from tagbrowser.services.scheduler import start_scheduler, stop_scheduler
from tagbrowser.services.tag_service import InvalidTagError
from tagbrowser.services.upload_service import UploadTooLargeError

logger = logging.getLogger(__name__)

# Configure logging format based on dev_mode
if not settings.dev_mode:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='{"time":"%(asctime)s","level":"%(levelname)s","name":"%(name)s","message":"%(message)s"}',
    )
else:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def build_storage() -> StorageContext:
    return StorageContext(
        mapper=PathMapper(settings.upload_root),
        queue=JobQueue(),
        session_factory=async_session_factory,
    )


async def prepare_root(ctx: StorageContext) -> None:
    """Make sure the root folder exists as a record and a directory, then queue a full pass."""
    async with ctx.session_factory() as session:
        root = await folder_repo.ensure_root_folder(session)
        await session.commit()
        root_id, root_path = root.id, root.full_path
    await disk.ensure_dir(ctx.mapper.to_physical(root_path))
    await disk.ensure_dir(settings.staging_dir)
    Reconciler(ctx).schedule_sync(root_id, root_path)


async def drain_queue(queue: JobQueue, timeout: float) -> None:
    try:
        await asyncio.wait_for(queue.join(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Shutting down with %d background jobs still queued", queue.pending)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    # Startup
    storage = build_storage()
    app.state.storage = storage
    app.state.job_queue = storage.queue
    await prepare_root(storage)
    start_scheduler(storage)
    logger.info("Serving %s", storage.mapper.upload_root)
    yield
    # Shutdown
    stop_scheduler()
    await drain_queue(storage.queue, settings.shutdown_drain_seconds)
    await engine.dispose()


app = FastAPI(
    title="Tag Browser API",
    description="Tagged file browser backed by a directory tree on disk",
    version="0.1.0",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs" if settings.dev_mode else None,
    redoc_url="/redoc" if settings.dev_mode else None,
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Security headers middleware
# ---------------------------------------------------------------------------

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if not settings.dev_mode:
            response.headers["Strict-Transport-Security"] = (
                "max-age=63072000; includeSubDomains"
            )
        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

def _envelope(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


_HTTP_CODES = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "UPLOAD_TOO_LARGE",
}


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _envelope(exc.status_code, _HTTP_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or None
    content = error_response("VALIDATION_ERROR", first.get("msg", "Invalid request"), field)
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(InvalidPathError)
@app.exception_handler(InvalidTagError)
async def _invalid_input_handler(_request: Request, exc: ValueError) -> JSONResponse:
    return _envelope(400, "INVALID_INPUT", str(exc))


@app.exception_handler(UploadTooLargeError)
async def _upload_too_large_handler(_request: Request, exc: UploadTooLargeError) -> JSONResponse:
    return _envelope(413, "UPLOAD_TOO_LARGE", str(exc))


@app.exception_handler(RecordNotFoundError)
async def _not_found_handler(_request: Request, exc: RecordNotFoundError) -> JSONResponse:
    return _envelope(404, "NOT_FOUND", str(exc))


@app.exception_handler(DuplicateRecordError)
async def _duplicate_handler(_request: Request, exc: DuplicateRecordError) -> JSONResponse:
    return _envelope(409, "CONFLICT", str(exc))


@app.exception_handler(ConnectionError)
async def _db_unavailable_handler(request: Request, exc: ConnectionError) -> JSONResponse:
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return _envelope(503, "DATABASE_UNAVAILABLE", "Database unavailable")


@app.exception_handler(DatabaseError)
async def _database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    detail = str(exc) if settings.dev_mode else "Database error"
    return _envelope(500, "DATABASE_ERROR", detail)


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=True)
    detail = str(exc) if settings.dev_mode else "Internal server error"
    return _envelope(500, "INTERNAL_ERROR", detail)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Routers, all under /api/v1/
# ---------------------------------------------------------------------------

app.include_router(folders.router, prefix="/api/v1/folders", tags=["folders"])
app.include_router(files.router, prefix="/api/v1/files", tags=["files"])
app.include_router(tags.router, prefix="/api/v1/tags", tags=["tags"])
app.include_router(upload.router, prefix="/api/v1/upload", tags=["upload"])

# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health_check() -> dict:
    """Liveness check: verifies the API process is alive."""
    return {"status": "healthy"}


@app.get("/health/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check: database reachable and upload root writable."""
    checks: dict[str, str] = {}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        logger.warning("Readiness: database check failed", exc_info=True)
        checks["database"] = "unavailable"

    root = PathMapper(settings.upload_root).upload_root
    writable = await disk.is_dir(root) and await asyncio.to_thread(os.access, root, os.W_OK)
    checks["upload_root"] = "ok" if writable else "unavailable"

    storage: StorageContext | None = getattr(request.app.state, "storage", None)
    queue_stats = storage.queue.stats() if storage is not None else {}

    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "degraded", "services": checks, "queue": queue_stats},
    )


@app.get("/api/v1/version")
async def version() -> dict:
    """Return build / version metadata."""
    return {
        "version": app.version,
        "title": app.title,
        "api_prefix": "/api/v1",
    }
