import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.middleware.rate_limit import setup_rate_limiting
from core.config import get_settings
from core.database import init_db
from core.errors import AppError, InternalError
from core.logging import configure_logging

configure_logging()

logger = structlog.get_logger()

settings = get_settings()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event management and totem display service"
)

app.state.startup_time = time.time()

setup_rate_limiting(app)


@app.on_event("startup")
async def startup_event():
    """
    Create any missing table before the first request.

    A failure is logged and the server keeps starting; requests will then
    surface the database error themselves.
    """
    logger.info("server_startup", app=settings.APP_NAME, version=settings.APP_VERSION)

    try:
        init_db()
        logger.info("database_ready")
    except Exception as e:
        logger.warning("database_init_failed", error=str(e))

    logger.info("server_ready", display_timezone=settings.DISPLAY_TIMEZONE)


# ----------------------------------------------------------------------
# Error rendering
# ----------------------------------------------------------------------

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render an AppError as {error, code, message, field, details}."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_error" if exc.status_code >= 500 else "request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code.value,
        field=exc.field,
        error=exc.message,
    )
    headers = {"WWW-Authenticate": "ApiKey"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=True)
    error = InternalError("An unexpected error occurred")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ----------------------------------------------------------------------
# Middleware
# ----------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Accept", "Authorization", "Content-Type", "X-API-Key", "X-Actor-Id"],
    expose_headers=["X-Request-ID"],
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@app.middleware("http")
async def security_headers_middleware(request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def request_logging_middleware(request, call_next):
    """
    Structured access log.

    Every log line emitted while the request runs carries its request id
    (taken from X-Request-ID when the gateway sends one), and the id is
    echoed back in the response.
    """
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    started = time.perf_counter()
    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_ip=request.client.host if request.client else None,
        actor_id=request.headers.get("X-Actor-Id"),
    )

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            exc_info=True,
        )
        raise

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(api_router, prefix="/api/v1")


@app.get("/api")
async def api_root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "totem": "/api/v1/totem/events",
    }
