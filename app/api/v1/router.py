from fastapi import APIRouter
from app.api.v1.endpoints import health, events, media, totem

api_router = APIRouter()

# Include endpoint routers
api_router.include_router(health.router, tags=["health"])
api_router.include_router(events.router, prefix="/events", tags=["events"])
api_router.include_router(media.router, prefix="/events", tags=["media"])
api_router.include_router(totem.router, prefix="/totem", tags=["totem"])
