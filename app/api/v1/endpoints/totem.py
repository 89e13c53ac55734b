from fastapi import APIRouter, Depends, Request

from app.api.deps import event_service
from app.middleware.rate_limit import limiter, totem_client_key, totem_rate_limit
from app.schemas.event import TotemEventResponse, TotemResponse
from core.clock import utcnow
from core.config import get_settings
from services.event_service import EventService
from services.visibility import period_of_day, weekday_name

router = APIRouter()


@router.get("/events", response_model=TotemResponse)
@limiter.limit(totem_rate_limit, key_func=totem_client_key)
async def totem_events(request: Request, service: EventService = Depends(event_service)):
    """
    Events a totem should display right now

    Public endpoint polled by the terminals. Weekday and period are computed
    in the configured display timezone; no pagination is applied.
    """
    now = utcnow()
    tz = get_settings().display_timezone
    local = now.astimezone(tz)

    events = service.list_totem_events(now, tz)
    return TotemResponse(
        generated_at=now,
        weekday=weekday_name(local),
        period=period_of_day(local.hour),
        events=[TotemEventResponse.model_validate(event) for event in events],
    )
