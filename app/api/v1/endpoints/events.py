from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import event_service, optional_actor, require_actor
from app.schemas.event import (
    EventCreate,
    EventPage,
    EventResponse,
    EventUpdate,
    OrganizerTransfer,
    PermissionResponse,
    ShareRequest,
    StatusChange,
)
from app.utils.validation import pydantic_errors, read_uploads, validate_id
from models.event import MediaVariant
from services.event_service import EventService
from services.permissions import Actor
from services.visibility import DEFAULT_LIMIT, DEFAULT_SORT, ListingCriteria

router = APIRouter()


@router.post("", response_model=EventResponse, status_code=201)
async def create_event(
    payload: EventCreate,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Create a new event

    The requesting user becomes the organizer. An event created as active
    must reference every media variant (legacy ``media`` links).
    """
    return service.create_event(payload.model_dump(), actor)


@router.post("/with-media", response_model=EventResponse, status_code=201)
async def create_event_with_media(
    event: str = Form(..., description="EventCreate JSON document"),
    cover: Optional[UploadFile] = File(None),
    carousel: Optional[List[UploadFile]] = File(None),
    video: Optional[UploadFile] = File(None),
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Create an event and upload its media in one request

    Every file is validated and stored before the event row is written; if
    anything fails, all stored files are removed again.
    """
    try:
        payload = EventCreate.model_validate_json(event)
    except PydanticValidationError as e:
        raise pydantic_errors(e)

    uploads = {
        MediaVariant.COVER: await read_uploads([cover] if cover else []),
        MediaVariant.CAROUSEL: await read_uploads(carousel),
        MediaVariant.VIDEO: await read_uploads([video] if video else []),
    }
    return service.create_event(payload.model_dump(), actor, uploads)


@router.get("", response_model=EventPage)
async def list_events(
    title: Optional[str] = None,
    description: Optional[str] = None,
    location: Optional[str] = None,
    category: Optional[str] = None,
    organizer: Optional[str] = Query(None, description="Organizer name substring"),
    tags: Optional[List[str]] = Query(None, description="Repeat for membership, or one comma-separated value"),
    status: Optional[List[str]] = Query(None, description="active/inactive, repeatable"),
    start: Optional[datetime] = Query(None, description="Overlap range start"),
    end: Optional[datetime] = Query(None, description="Overlap range end"),
    all_statuses: bool = Query(False, description="Anonymous callers: do not restrict to active events"),
    scope: Optional[str] = Query(None, description="'all' lets administrators list every event"),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, description="Page size, capped at 100"),
    sort: str = Query(DEFAULT_SORT, description="start_at, -start_at, title or -created_at"),
    actor: Optional[Actor] = Depends(optional_actor),
    service: EventService = Depends(event_service),
):
    """
    List events

    Anonymous callers see active events unless they filter by status;
    authenticated callers see the events they organize or hold a valid edit
    permission for.
    """
    criteria = ListingCriteria(
        title=title,
        description=description,
        location=location,
        category=category,
        organizer_name=organizer,
        tags=tags[0] if tags and len(tags) == 1 else tags,
        status=status[0] if status and len(status) == 1 else status,
        start=start,
        end=end,
        ignore_default_status=all_statuses,
        scope_all=(scope == "all"),
        page=page,
        limit=limit,
        sort=sort,
    )
    result = service.list_events(criteria, actor)
    return EventPage(
        items=[EventResponse.model_validate(item) for item in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: str,
    actor: Optional[Actor] = Depends(optional_actor),
    service: EventService = Depends(event_service),
):
    """
    Get event by ID

    Inactive events are only returned to users who may edit them.
    """
    return service.get_event(validate_id(event_id, "event_id"), actor)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event(
    event_id: str,
    event_update: EventUpdate,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Update event details

    Organizer, administrators and users with a valid edit permission.
    """
    changes = event_update.model_dump(exclude_unset=True)
    return service.update_event(validate_id(event_id, "event_id"), changes, actor)


@router.patch("/{event_id}/status", response_model=EventResponse)
async def change_status(
    event_id: str,
    body: StatusChange,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Activate or deactivate an event (organizer only)
    """
    return service.change_status(validate_id(event_id, "event_id"), body.status, actor)


@router.post("/{event_id}/permissions", response_model=PermissionResponse, status_code=201)
async def share_event(
    event_id: str,
    body: ShareRequest,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Share edit access with another user (organizer only)
    """
    return service.share_permission(
        validate_id(event_id, "event_id"), body.email, body.expires_at, actor, body.kind
    )


@router.delete("/{event_id}/permissions/{user_id}", status_code=204)
async def revoke_permission(
    event_id: str,
    user_id: str,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Revoke a user's shared access (organizer only)
    """
    service.revoke_permission(validate_id(event_id, "event_id"), validate_id(user_id, "user_id"), actor)
    return None


@router.patch("/{event_id}/organizer", response_model=EventResponse)
async def transfer_organizer(
    event_id: str,
    body: OrganizerTransfer,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Transfer an event to another organizer (administrators only)
    """
    return service.transfer_organizer(validate_id(event_id, "event_id"), body.email, actor)


@router.delete("/{event_id}", status_code=204)
async def delete_event(
    event_id: str,
    actor: Actor = Depends(require_actor),
    service: EventService = Depends(event_service),
):
    """
    Delete event (organizer only)

    Media and permissions are deleted with the event; stored files are
    removed afterwards on a best-effort basis.
    """
    service.delete_event(validate_id(event_id, "event_id"), actor)
    return None
