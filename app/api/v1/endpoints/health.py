import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.deps import blob_store, get_db
from core.config import get_settings

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, db: Session = Depends(get_db), store=Depends(blob_store)):
    """
    Liveness probe for the load balancer.

    The database is required: when it does not answer the probe returns 503.
    An unreachable media bucket only degrades the service, since listings
    and the totem feed keep working without it.
    """
    settings = get_settings()
    report = {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }

    started = getattr(request.app.state, "startup_time", None)
    if started is not None:
        report["uptime_seconds"] = int(time.time() - started)

    try:
        db.execute(text("SELECT 1"))
        report["database"] = "connected"
    except SQLAlchemyError as e:
        report["database"] = f"error: {e}"
        report["status"] = "unhealthy"

    if store.ping():
        report["storage"] = "connected"
    else:
        report["storage"] = "unreachable"
        if report["status"] == "healthy":
            report["status"] = "degraded"

    return JSONResponse(status_code=503 if report["status"] == "unhealthy" else 200, content=report)
