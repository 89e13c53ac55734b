"""
API Dependencies
Dependency injection functions for FastAPI endpoints
"""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.middleware.auth import resolve_actor
from core.database import get_db
from core.errors import AuthenticationRequired
from core.storage import S3BlobStore, get_blob_store
from services.event_service import EventService
from services.media_ingest import MediaIngestPipeline
from services.permissions import Actor

__all__ = [
    "get_db",
    "blob_store",
    "optional_actor",
    "require_actor",
    "event_service",
    "media_pipeline",
]


def blob_store() -> S3BlobStore:
    """
    Dependency for the media blob store

    Returns:
        S3BlobStore: Process-wide store (overridden in tests)
    """
    return get_blob_store()


def optional_actor(request: Request, db: Session = Depends(get_db)) -> Optional[Actor]:
    """
    Dependency for the acting user, None for anonymous requests
    """
    return resolve_actor(request, db)


def require_actor(actor: Optional[Actor] = Depends(optional_actor)) -> Actor:
    """
    Dependency for endpoints that need an authenticated actor

    Raises:
        AuthenticationRequired: If the request is anonymous
    """
    if actor is None:
        raise AuthenticationRequired("authentication required")
    return actor


def event_service(db: Session = Depends(get_db), store=Depends(blob_store)) -> EventService:
    return EventService(db, store)


def media_pipeline(db: Session = Depends(get_db), store=Depends(blob_store)) -> MediaIngestPipeline:
    return MediaIngestPipeline(db, store)
