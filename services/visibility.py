"""
Visibility filters for event listings and totems.

A listing request is described by an immutable ``ListingCriteria``. A fixed
pipeline of named predicate functions turns it into a ``ListingQuery``: a
tuple of SQL clauses plus page, limit and ordering. No builder state is
shared between requests.

The totem query answers "what should a terminal show right now": active
events inside their exhibition window whose display-day mask and period
flags match the local weekday and time of day.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Callable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from core.clock import ensure_utc, utcnow
from models.event import Event, EventPermission, EventStatus, EventTag, PermissionKind
from services.permissions import Actor

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

# Monday first, matching datetime.weekday()
WEEKDAYS = ("segunda", "terca", "quarta", "quinta", "sexta", "sabado", "domingo")

MORNING = "morning"
AFTERNOON = "afternoon"
NIGHT = "night"

STATUS_ALIASES = {
    "active": EventStatus.ACTIVE,
    "ativo": EventStatus.ACTIVE,
    "1": EventStatus.ACTIVE,
    "true": EventStatus.ACTIVE,
    "inactive": EventStatus.INACTIVE,
    "inativo": EventStatus.INACTIVE,
    "0": EventStatus.INACTIVE,
    "false": EventStatus.INACTIVE,
}

SORT_OPTIONS = {
    "start_at": (Event.start_at.asc(),),
    "-start_at": (Event.start_at.desc(),),
    "title": (Event.title.asc(),),
    "-created_at": (Event.created_at.desc(),),
}
DEFAULT_SORT = "-created_at"


@dataclass(frozen=True)
class ListingCriteria:
    """Filters, pagination and ordering of one listing request."""

    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    category: Optional[str] = None
    organizer_name: Optional[str] = None
    tags: Union[str, Sequence[str], None] = None
    status: Union[str, bool, Sequence[str], None] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    ignore_default_status: bool = False
    scope_all: bool = False
    page: int = 1
    limit: int = DEFAULT_LIMIT
    sort: str = DEFAULT_SORT


@dataclass(frozen=True)
class ListingQuery:
    """Finished listing query, ready to run against a session."""

    clauses: Tuple = ()
    page: int = 1
    limit: int = DEFAULT_LIMIT
    order_by: Tuple = field(default_factory=lambda: SORT_OPTIONS[DEFAULT_SORT])

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Page:
    items: List[Event]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


# ----------------------------------------------------------------------
# Shared primitives
# ----------------------------------------------------------------------

def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally (escape char: backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains(column, text: str):
    """Case-insensitive substring match on ``column``."""
    return column.ilike(f"%{escape_like(text)}%", escape="\\")


def coerce_status(value) -> Optional[EventStatus]:
    """Map a status value (enum, name, Portuguese name, 1/0, bool) to EventStatus; None if unknown."""
    if isinstance(value, EventStatus):
        return value
    if isinstance(value, bool):
        return EventStatus.ACTIVE if value else EventStatus.INACTIVE
    return STATUS_ALIASES.get(str(value).strip().lower())


def coerce_statuses(value) -> Tuple[EventStatus, ...]:
    """Coerce a single status, a comma string or a sequence; unknown values are dropped."""
    if value is None or value == "":
        return ()
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, (bool, EventStatus)):
        raw = [value]
    else:
        raw = list(value)
    statuses = []
    for item in raw:
        status = coerce_status(item)
        if status is not None and status not in statuses:
            statuses.append(status)
    return tuple(statuses)


def split_tags(tags) -> Union[str, List[str], None]:
    """
    Normalise a tag filter.

    Returns a list for membership matching (a sequence, or a string that
    contains a comma), a plain string for substring matching, or None.
    """
    if tags is None:
        return None
    if isinstance(tags, str):
        if "," in tags:
            values = [tag.strip() for tag in tags.split(",") if tag.strip()]
            return values or None
        return tags.strip() or None
    values = [str(tag).strip() for tag in tags if str(tag).strip()]
    return values or None


def accessible_by(actor: Actor, now: datetime):
    """Events the actor organizes or holds an unexpired edit grant for."""
    return or_(
        Event.organizer_id == actor.id,
        Event.permissions.any(
            and_(
                EventPermission.user_id == actor.id,
                EventPermission.kind == PermissionKind.EDIT,
                or_(EventPermission.expires_at.is_(None), EventPermission.expires_at > now),
            )
        ),
    )


# ----------------------------------------------------------------------
# Listing predicates, applied in order
# ----------------------------------------------------------------------

Predicate = Callable[[ListingCriteria, Optional[Actor], datetime], Optional[object]]


def by_title(criteria, actor, now):
    return contains(Event.title, criteria.title) if criteria.title else None


def by_description(criteria, actor, now):
    return contains(Event.description, criteria.description) if criteria.description else None


def by_location(criteria, actor, now):
    return contains(Event.location, criteria.location) if criteria.location else None


def by_category(criteria, actor, now):
    return contains(Event.category, criteria.category) if criteria.category else None


def by_organizer_name(criteria, actor, now):
    return contains(Event.organizer_name, criteria.organizer_name) if criteria.organizer_name else None


def by_tags(criteria, actor, now):
    tags = split_tags(criteria.tags)
    if tags is None:
        return None
    if isinstance(tags, list):
        return Event.tag_rows.any(EventTag.value.in_(tags))
    return Event.tag_rows.any(contains(EventTag.value, tags))


def by_status(criteria, actor, now):
    statuses = coerce_statuses(criteria.status)
    if not statuses:
        return None
    if len(statuses) == 1:
        return Event.status == statuses[0]
    return Event.status.in_(statuses)


def by_date_range(criteria, actor, now):
    """Overlap of [start_at, end_at] with the requested range; either bound may be open."""
    clauses = []
    if criteria.end is not None:
        clauses.append(Event.start_at <= ensure_utc(criteria.end))
    if criteria.start is not None:
        clauses.append(Event.end_at >= ensure_utc(criteria.start))
    if not clauses:
        return None
    return and_(*clauses)


def by_audience(criteria, actor, now):
    """
    Restrict known actors to their own or shared events.

    Anonymous callers only see active events unless they opted out or asked
    for explicit statuses.
    """
    if actor is not None:
        if actor.admin and criteria.scope_all:
            return None
        return accessible_by(actor, now)
    if criteria.ignore_default_status or coerce_statuses(criteria.status):
        return None
    return Event.status == EventStatus.ACTIVE


LISTING_PREDICATES: Tuple[Predicate, ...] = (
    by_title,
    by_description,
    by_location,
    by_category,
    by_organizer_name,
    by_tags,
    by_status,
    by_date_range,
    by_audience,
)


def build_listing_query(criteria: ListingCriteria, actor: Optional[Actor] = None, now: Optional[datetime] = None) -> ListingQuery:
    """
    Run the predicate pipeline over ``criteria``.

    Args:
        criteria: Listing request
        actor: Requesting actor, None when anonymous
        now: Instant used for grant expiry, defaults to the current time

    Returns:
        ListingQuery: Clauses, page, limit and ordering
    """
    now = ensure_utc(now) if now is not None else utcnow()

    clauses = tuple(
        clause
        for clause in (predicate(criteria, actor, now) for predicate in LISTING_PREDICATES)
        if clause is not None
    )

    page = max(int(criteria.page or 1), 1)
    limit = int(criteria.limit or DEFAULT_LIMIT)
    if limit < 1:
        limit = DEFAULT_LIMIT
    limit = min(limit, MAX_LIMIT)

    order_by = SORT_OPTIONS.get(criteria.sort or DEFAULT_SORT)
    if order_by is None:
        logger.debug(f"Ignoring unknown sort '{criteria.sort}'")
        order_by = SORT_OPTIONS[DEFAULT_SORT]

    return ListingQuery(clauses=clauses, page=page, limit=limit, order_by=order_by)


def paginate(db: Session, query: ListingQuery) -> Page:
    """Execute a listing query with offset/limit pagination."""
    base = db.query(Event).filter(*query.clauses)
    total = base.order_by(None).count()
    items = (
        base.order_by(*query.order_by, Event.id.asc())
        .offset(query.offset)
        .limit(query.limit)
        .all()
    )
    return Page(items=items, total=total, page=query.page, limit=query.limit)


# ----------------------------------------------------------------------
# Totem temporal match
# ----------------------------------------------------------------------

def weekday_name(moment: datetime) -> str:
    """Portuguese weekday name of a local datetime (segunda = Monday)."""
    return WEEKDAYS[moment.weekday()]


def period_of_day(hour: int) -> str:
    """06:00-11:59 morning, 12:00-17:59 afternoon, otherwise night."""
    if 6 <= hour < 12:
        return MORNING
    if 12 <= hour < 18:
        return AFTERNOON
    return NIGHT


def period_flag(period: str):
    match period:
        case "morning":
            return Event.display_morning
        case "afternoon":
            return Event.display_afternoon
        case "night":
            return Event.display_night
    raise ValueError(f"Unknown period: {period}")


def build_totem_clauses(now: datetime, tz: tzinfo) -> Tuple:
    """
    Clauses selecting the events a totem shows at ``now``.

    Weekday and period are computed in ``tz``; the exhibition window is
    compared in UTC.
    """
    now = ensure_utc(now)
    local = now.astimezone(tz)
    weekday = weekday_name(local)
    period = period_of_day(local.hour)

    return (
        Event.status == EventStatus.ACTIVE,
        Event.exhibit_start_at <= now,
        Event.exhibit_end_at >= now,
        contains(Event.display_days, weekday),
        period_flag(period),
        Event.media.any(),
    )


def totem_events(db: Session, now: datetime, tz: tzinfo) -> List[Event]:
    """Every qualifying event, ordered by start time, unpaginated."""
    return (
        db.query(Event)
        .filter(*build_totem_clauses(now, tz))
        .order_by(Event.start_at.asc(), Event.id.asc())
        .all()
    )
