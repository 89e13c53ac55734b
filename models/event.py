"""
Event models for the events database.

An Event exclusively owns its tags, media and shared permissions; none of
them has a life outside the owning event, so every child relationship
cascades deletes and orphan removal.
"""

import enum
import uuid
from typing import Iterable, List

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.ext.associationproxy import association_proxy
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Session, relationship
from sqlalchemy.sql import func

from core.database import Base
from core.errors import ValidationError


def new_id() -> str:
    return uuid.uuid4().hex


class EventStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class MediaVariant(str, enum.Enum):
    COVER = "cover"
    CAROUSEL = "carousel"
    VIDEO = "video"


class PermissionKind(str, enum.Enum):
    EDIT = "edit"


# Variants an active event must always carry
REQUIRED_VARIANTS = (MediaVariant.COVER, MediaVariant.CAROUSEL, MediaVariant.VIDEO)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Event(Base):
    """
    Event shown on totems and managed by its organizer.

    ``display_days`` is a comma-separated subset of the weekday names
    (segunda ... domingo); the three ``display_*`` flags select the periods
    of the day in which a totem may show the event.
    """
    __tablename__ = "events"

    id = Column(String(32), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=False)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)

    exhibit_start_at = Column(DateTime(timezone=True), nullable=False)
    exhibit_end_at = Column(DateTime(timezone=True), nullable=False)
    display_days = Column(String(128), nullable=False)
    display_morning = Column(Boolean, nullable=False, default=False)
    display_afternoon = Column(Boolean, nullable=False, default=False)
    display_night = Column(Boolean, nullable=False, default=False)

    link = Column(String(500), nullable=True)
    category = Column(String(50), nullable=False)
    color = Column(Integer, nullable=False, default=0)
    animation = Column(Integer, nullable=False, default=0)
    status = Column(
        Enum(EventStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=EventStatus.INACTIVE,
    )

    organizer_id = Column(String(32), nullable=False, index=True)
    organizer_name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    tag_rows = relationship(
        "EventTag",
        cascade="all, delete-orphan",
        order_by="EventTag.id",
        lazy="selectin",
    )
    tags = association_proxy("tag_rows", "value", creator=lambda value: EventTag(value=value))

    media = relationship(
        "EventMedia",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventMedia.position",
        collection_class=ordering_list("position"),
        lazy="selectin",
    )

    permissions = relationship(
        "EventPermission",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventPermission.granted_at",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_events_totem", "status", "exhibit_start_at", "exhibit_end_at"),
    )

    def media_of(self, variant: MediaVariant) -> List["EventMedia"]:
        """Media items of one variant, in list order."""
        return [item for item in self.media if item.variant == variant]

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title='{self.title}', status={self.status})>"


class EventTag(Base):
    __tablename__ = "event_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(String(100), nullable=False, index=True)


class EventMedia(Base):
    """
    Media item attached to an event.

    Canonical descriptor: id, variant, url, size_mb, height, width. Items are
    appended or removed wholesale, never edited in place.
    """
    __tablename__ = "event_media"

    id = Column(String(32), primary_key=True, default=new_id)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    variant = Column(
        Enum(MediaVariant, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
    )
    url = Column(String(500), nullable=False)
    size_mb = Column(Float, nullable=False)
    height = Column(Integer, nullable=False)
    width = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="media")

    def __repr__(self) -> str:
        return f"<EventMedia(id={self.id}, variant={self.variant}, url='{self.url}')>"


class EventPermission(Base):
    """Shared grant allowing a non-owner to edit an event until ``expires_at``."""
    __tablename__ = "event_permissions"

    id = Column(String(32), primary_key=True, default=new_id)
    event_id = Column(String(32), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), nullable=False, index=True)
    kind = Column(
        Enum(PermissionKind, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=PermissionKind.EDIT,
    )
    # NULL means the grant never expires
    expires_at = Column(DateTime(timezone=True), nullable=True)
    granted_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="permissions")

    __table_args__ = (
        Index("ix_event_permissions_event_user", "event_id", "user_id"),
    )


def missing_required_variants(media: Iterable) -> List[MediaVariant]:
    """
    Variants from REQUIRED_VARIANTS with no item in ``media``.

    Accepts ORM rows or anything with a ``variant`` attribute, so the
    request-validation layer and the flush listener share one rule.
    """
    present = {MediaVariant(item.variant) for item in media}
    return [variant for variant in REQUIRED_VARIANTS if variant not in present]


@event.listens_for(Session, "before_flush")
def _check_active_events_have_media(session, flush_context, instances):
    """Refuse to persist an active event that lacks a required media variant."""
    for obj in list(session.new) + list(session.dirty):
        if not isinstance(obj, Event) or obj in session.deleted:
            continue
        if obj.status != EventStatus.ACTIVE:
            continue
        missing = missing_required_variants(obj.media)
        if missing:
            names = ", ".join(variant.value for variant in missing)
            raise ValidationError(
                f"Active event is missing required media: {names}",
                field="media",
                details=[variant.value for variant in missing],
            )
