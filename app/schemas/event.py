import json
import unicodedata
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.media import LegacyMediaIn, MediaResponse
from core.clock import ensure_utc
from models.event import EventStatus, PermissionKind
from services.visibility import WEEKDAYS, coerce_status

CATEGORIES = (
    "academico",
    "palestra",
    "workshop",
    "seminario",
    "congresso",
    "minicurso",
    "cultural",
    "esportivo",
    "social",
    "cientifico",
    "extensao",
    "pesquisa",
    "feira",
    "mostra",
    "competicao",
    "formatura",
    "vestibular",
    "enem",
    "institucional",
    "outros",
)

DATETIME_FIELDS = ("start_at", "end_at", "exhibit_start_at", "exhibit_end_at")


def strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(char for char in normalized if not unicodedata.combining(char))


def parse_tags(value):
    """Accept a list, a JSON array string or a comma-separated string."""
    if value is None:
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                raise ValueError("tags must be a JSON array or a comma-separated string")
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError("tags must be a list of strings")
    tags = [str(tag).strip() for tag in value]
    if not tags or any(not tag for tag in tags):
        raise ValueError("tags must contain at least one non-blank tag")
    return tags


def parse_display_days(value):
    """Normalise a weekday list or comma string to the canonical comma string."""
    if value is None:
        return value
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        raise ValueError("display_days must be a list or a comma-separated string")
    days = []
    for item in items:
        day = strip_accents(str(item)).strip().lower()
        if day.endswith("-feira"):
            day = day[: -len("-feira")]
        if not day:
            continue
        if day not in WEEKDAYS:
            raise ValueError(f"Invalid display day '{item}'. Allowed: {', '.join(WEEKDAYS)}")
        if day not in days:
            days.append(day)
    if not days:
        raise ValueError("display_days must contain at least one weekday")
    return ",".join(day for day in WEEKDAYS if day in days)


def parse_category(value):
    if value is None:
        return value
    category = strip_accents(value).strip().lower()
    if category not in CATEGORIES:
        raise ValueError(f"Invalid category '{value}'. Allowed: {', '.join(CATEGORIES)}")
    return category


def check_link(value):
    if value is None or value == "":
        return None
    link = value.strip()
    if not (link.startswith("http://") or link.startswith("https://") or link.startswith("/")):
        raise ValueError("link must be an absolute http(s) URL or a root-relative path")
    return link


class EventFields(BaseModel):
    """Validators shared by create and update payloads."""

    @field_validator("tags", mode="before", check_fields=False)
    @classmethod
    def validate_tags(cls, v):
        return parse_tags(v)

    @field_validator("display_days", mode="before", check_fields=False)
    @classmethod
    def validate_display_days(cls, v):
        return parse_display_days(v)

    @field_validator("category", mode="before", check_fields=False)
    @classmethod
    def validate_category(cls, v):
        return parse_category(v)

    @field_validator("link", check_fields=False)
    @classmethod
    def validate_link(cls, v):
        return check_link(v)

    @field_validator(*DATETIME_FIELDS, check_fields=False)
    @classmethod
    def normalise_datetimes(cls, v):
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_windows(self):
        if self.start_at and self.end_at and self.end_at < self.start_at:
            raise ValueError("end_at must not be before start_at")
        if self.exhibit_start_at and self.exhibit_end_at and self.exhibit_end_at < self.exhibit_start_at:
            raise ValueError("exhibit_end_at must not be before exhibit_start_at")
        return self


class EventCreate(EventFields):
    """Request schema for event creation"""
    title: str = Field(..., description="Event title", min_length=1, max_length=255)
    description: str = Field(..., description="Event description", min_length=1)
    location: str = Field(..., description="Event location", min_length=1, max_length=255)
    start_at: datetime = Field(..., description="Event start")
    end_at: datetime = Field(..., description="Event end")
    exhibit_start_at: datetime = Field(..., description="Start of the totem exhibition window")
    exhibit_end_at: datetime = Field(..., description="End of the totem exhibition window")
    display_days: str = Field(..., description="Weekdays shown on totems, e.g. 'segunda,quarta'")
    display_morning: bool = Field(False, description="Show between 06:00 and 11:59")
    display_afternoon: bool = Field(False, description="Show between 12:00 and 17:59")
    display_night: bool = Field(False, description="Show between 18:00 and 05:59")
    link: Optional[str] = Field(None, description="Event link (http(s) URL or root-relative path)")
    category: str = Field(..., description="Event category")
    tags: List[str] = Field(..., description="Non-empty list of tags")
    color: int = Field(0, ge=0, description="Color code")
    animation: int = Field(0, ge=0, description="Animation code")
    status: EventStatus = Field(EventStatus.INACTIVE, description="Initial status")
    media: Optional[List[LegacyMediaIn]] = Field(
        None,
        description="Already hosted media in the legacy {type, link} shape"
    )

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        if v is None:
            return EventStatus.INACTIVE
        status = coerce_status(v)
        if status is None:
            raise ValueError(f"Invalid status '{v}'")
        return status

    class Config:
        json_schema_extra = {
            "example": {
                "title": "Semana de Tecnologia",
                "description": "Palestras e oficinas abertas ao publico",
                "location": "Auditorio central",
                "start_at": "2026-11-03T13:00:00Z",
                "end_at": "2026-11-03T21:00:00Z",
                "exhibit_start_at": "2026-10-20T00:00:00Z",
                "exhibit_end_at": "2026-11-03T21:00:00Z",
                "display_days": "segunda,quarta,sexta",
                "display_morning": True,
                "display_afternoon": True,
                "display_night": False,
                "category": "palestra",
                "tags": ["tecnologia", "inovacao"],
                "color": 3,
                "animation": 1
            }
        }


class EventUpdate(EventFields):
    """Request schema for event update; status and organizer have their own endpoints"""
    title: Optional[str] = Field(None, description="Event title", min_length=1, max_length=255)
    description: Optional[str] = Field(None, description="Event description", min_length=1)
    location: Optional[str] = Field(None, description="Event location", min_length=1, max_length=255)
    start_at: Optional[datetime] = Field(None, description="Event start")
    end_at: Optional[datetime] = Field(None, description="Event end")
    exhibit_start_at: Optional[datetime] = Field(None, description="Start of the exhibition window")
    exhibit_end_at: Optional[datetime] = Field(None, description="End of the exhibition window")
    display_days: Optional[str] = Field(None, description="Weekdays shown on totems")
    display_morning: Optional[bool] = Field(None, description="Show in the morning")
    display_afternoon: Optional[bool] = Field(None, description="Show in the afternoon")
    display_night: Optional[bool] = Field(None, description="Show at night")
    link: Optional[str] = Field(None, description="Event link")
    category: Optional[str] = Field(None, description="Event category")
    tags: Optional[List[str]] = Field(None, description="Replacement tag list")
    color: Optional[int] = Field(None, ge=0, description="Color code")
    animation: Optional[int] = Field(None, ge=0, description="Animation code")

    class Config:
        extra = "forbid"

    @model_validator(mode="after")
    def reject_nulls(self):
        for name in self.model_fields_set:
            if name != "link" and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class StatusChange(BaseModel):
    """Request schema for status change"""
    status: EventStatus = Field(..., description="active or inactive (ativo/inativo accepted)")

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v):
        status = coerce_status(v)
        if status is None:
            raise ValueError(f"Invalid status '{v}'")
        return status


class ShareRequest(BaseModel):
    """Request schema for sharing an event with another user"""
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$", description="Target user email")
    expires_at: Optional[datetime] = Field(None, description="Grant expiry; omitted means it never expires")
    kind: PermissionKind = Field(PermissionKind.EDIT, description="Permission kind")

    @field_validator("expires_at")
    @classmethod
    def normalise_expiry(cls, v):
        return ensure_utc(v)


class OrganizerTransfer(BaseModel):
    """Request schema for organizer transfer"""
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$", description="New organizer email")


class PermissionResponse(BaseModel):
    """Response schema for a shared permission"""
    id: str = Field(..., description="Permission ID")
    user_id: str = Field(..., description="User holding the grant")
    kind: PermissionKind = Field(..., description="Permission kind")
    expires_at: Optional[datetime] = Field(None, description="Expiry, null when it never expires")
    granted_at: Optional[datetime] = Field(None, description="Grant timestamp")

    @field_validator("expires_at", "granted_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    """Response schema for event"""
    id: str = Field(..., description="Event ID")
    title: str
    description: str
    location: str
    start_at: datetime
    end_at: datetime
    exhibit_start_at: datetime
    exhibit_end_at: datetime
    display_days: str
    display_morning: bool
    display_afternoon: bool
    display_night: bool
    link: Optional[str] = None
    category: str
    tags: List[str]
    color: int
    animation: int
    status: EventStatus
    organizer_id: str
    organizer_name: str
    media: List[MediaResponse]
    permissions: List[PermissionResponse]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def tags_as_list(cls, v):
        return list(v or [])

    @field_validator(*DATETIME_FIELDS, "created_at", "updated_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    class Config:
        from_attributes = True


class TotemEventResponse(BaseModel):
    """Public response schema for totems (no organizer or permission data)"""
    id: str
    title: str
    description: str
    location: str
    start_at: datetime
    end_at: datetime
    link: Optional[str] = None
    category: str
    tags: List[str]
    color: int
    animation: int
    media: List[MediaResponse]

    @field_validator("tags", mode="before")
    @classmethod
    def tags_as_list(cls, v):
        return list(v or [])

    @field_validator("start_at", "end_at")
    @classmethod
    def as_utc(cls, v):
        return ensure_utc(v)

    class Config:
        from_attributes = True


class EventPage(BaseModel):
    """Paginated event listing"""
    items: List[EventResponse]
    total: int = Field(..., description="Matching events")
    page: int
    limit: int
    pages: int

    class Config:
        from_attributes = True


class TotemResponse(BaseModel):
    """Events a totem should show now"""
    generated_at: datetime
    weekday: str
    period: str
    events: List[TotemEventResponse]

