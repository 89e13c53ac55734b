from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile

from app.api.deps import event_service, media_pipeline, optional_actor, require_actor
from app.schemas.media import MediaListResponse, MediaResponse, MediaUploadResponse
from app.utils.validation import read_uploads, validate_id
from services.event_service import EventService
from services.media_ingest import MediaIngestPipeline
from services.media_validation import parse_variant
from services.permissions import Actor

router = APIRouter()


@router.get("/{event_id}/media", response_model=MediaListResponse)
async def list_media(
    event_id: str,
    variant: Optional[str] = None,
    actor: Optional[Actor] = Depends(optional_actor),
    service: EventService = Depends(event_service),
    pipeline: MediaIngestPipeline = Depends(media_pipeline),
):
    """
    List the media of an event, grouped by variant
    """
    event = service.get_event(validate_id(event_id, "event_id"), actor)
    return MediaListResponse(event_id=event.id, media=pipeline.list_media(event, variant))


@router.post("/{event_id}/media/{variant}", response_model=MediaUploadResponse, status_code=201)
async def upload_media(
    event_id: str,
    variant: str,
    files: List[UploadFile] = File(..., description="One or more files of the variant"),
    actor: Actor = Depends(require_actor),
    pipeline: MediaIngestPipeline = Depends(media_pipeline),
):
    """
    Upload media files to an event

    Batches are all or nothing: the first invalid file aborts the request
    and every file already stored for it is removed.
    """
    selected = parse_variant(variant)
    uploads = await read_uploads(files)
    added = pipeline.add_media(validate_id(event_id, "event_id"), selected, uploads, actor)
    return MediaUploadResponse(
        event_id=event_id,
        variant=selected,
        uploaded=[MediaResponse.model_validate(item) for item in added],
    )


@router.delete("/{event_id}/media/{variant}/{media_id}", response_model=MediaResponse)
async def delete_media(
    event_id: str,
    variant: str,
    media_id: str,
    actor: Actor = Depends(require_actor),
    pipeline: MediaIngestPipeline = Depends(media_pipeline),
):
    """
    Remove one media item and its stored file
    """
    return pipeline.remove_media(
        validate_id(event_id, "event_id"), variant, validate_id(media_id, "media_id"), actor
    )
