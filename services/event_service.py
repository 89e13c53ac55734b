"""
Event Service

This service handles the event lifecycle: creation (optionally with media),
reads, listing, updates, status changes, shared edit permissions, organizer
transfer and deletion. Every mutation passes the permission evaluator
before any state is touched.
"""

import logging
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import DateTime, delete, exists, func, insert, literal, or_, select
from sqlalchemy.orm import Session

from core.clock import ensure_utc, utcnow
from core.config import get_settings
from core.errors import (
    AppError,
    AuthenticationRequired,
    DuplicateResource,
    InternalError,
    ResourceNotFound,
    UnauthorizedAccess,
    ValidationError,
)
from models.event import (
    Event,
    EventMedia,
    EventPermission,
    EventStatus,
    MediaVariant,
    PermissionKind,
    missing_required_variants,
    new_id,
)
from models.user import User
from services import visibility
from services.media_ingest import MediaIngestPipeline, legacy_media_to_canonical, load_event
from services.media_validation import UploadedFile
from services.permissions import Actor, ensure_can_mutate, evaluate

logger = logging.getLogger(__name__)

# Fields PATCH /events/{id} may change; status and organizer have their own operations
EDITABLE_FIELDS = frozenset({
    "title",
    "description",
    "location",
    "start_at",
    "end_at",
    "exhibit_start_at",
    "exhibit_end_at",
    "display_days",
    "display_morning",
    "display_afternoon",
    "display_night",
    "link",
    "category",
    "tags",
    "color",
    "animation",
})

DATETIME_FIELDS = ("start_at", "end_at", "exhibit_start_at", "exhibit_end_at")


def check_schedule(start_at, end_at, exhibit_start_at, exhibit_end_at) -> None:
    """
    Raises:
        ValidationError: If an end instant precedes its start
    """
    if ensure_utc(end_at) < ensure_utc(start_at):
        raise ValidationError("end_at must not be before start_at", field="end_at")
    if ensure_utc(exhibit_end_at) < ensure_utc(exhibit_start_at):
        raise ValidationError(
            "exhibit_end_at must not be before exhibit_start_at",
            field="exhibit_end_at",
        )


def check_tags(tags) -> List[str]:
    """
    Strip the tag list and require at least one tag.

    Raises:
        ValidationError: If the list is missing, empty or holds a blank tag
    """
    cleaned = [str(tag).strip() for tag in tags or []]
    if not cleaned or not all(cleaned):
        raise ValidationError("An event needs at least one non-blank tag", field="tags")
    return cleaned


def check_required_media(media: Iterable) -> None:
    """
    Raises:
        ValidationError: Listing every required variant with no media item
    """
    missing = missing_required_variants(media)
    if missing:
        names = ", ".join(variant.value for variant in missing)
        raise ValidationError(
            f"Cannot activate the event. Missing required media: {names}",
            field="media",
            details=[variant.value for variant in missing],
        )


def event_row_lock(event_id: str):
    """SELECT ... FOR UPDATE on one event row; a no-op clause on SQLite."""
    return select(Event.id).where(Event.id == event_id).with_for_update()


def parse_status(value) -> EventStatus:
    status = visibility.coerce_status(value)
    if status is None:
        raise ValidationError(f"Invalid status '{value}'", field="status")
    return status


class EventService:
    """Service for event operations on behalf of an actor."""

    def __init__(self, db: Session, blob_store=None, clock=utcnow):
        """
        Args:
            db: Database session of the current request
            blob_store: Blob store passed to the media pipeline
            clock: Callable returning the current aware datetime
        """
        self.db = db
        self.media = MediaIngestPipeline(db, blob_store)
        self.clock = clock

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create_event(
        self,
        data: dict,
        actor: Optional[Actor],
        uploads: Optional[Dict[MediaVariant, Sequence[UploadedFile]]] = None,
    ) -> Event:
        """
        Create an event organized by ``actor``.

        Args:
            data: Validated event fields; may carry ``status`` and a legacy
                ``media`` list of ``{type, link}`` entries
            actor: Creating actor, becomes the organizer
            uploads: Files per variant to ingest with the event

        Returns:
            Event: The persisted event

        Raises:
            AuthenticationRequired: If there is no actor
            ValidationError: On schedule errors, bad media, or an active
                event lacking a required variant
            InternalError: If storage or persistence fails
        """
        if actor is None:
            raise AuthenticationRequired("authentication required")

        fields = {key: value for key, value in data.items() if key in EDITABLE_FIELDS}
        status = parse_status(data.get("status") or EventStatus.INACTIVE)
        legacy = [legacy_media_to_canonical(item) for item in data.get("media") or []]

        for name in DATETIME_FIELDS:
            fields[name] = ensure_utc(fields[name])
        check_schedule(*(fields[name] for name in DATETIME_FIELDS))
        tags = check_tags(fields.pop("tags", None))

        event_id = new_id()
        staged = self.media.stage_for_creation(event_id, uploads or {})
        media = staged + [
            EventMedia(**{**item, "variant": MediaVariant(item["variant"])}) for item in legacy
        ]

        try:
            if status == EventStatus.ACTIVE:
                check_required_media(media)

            event = Event(
                id=event_id,
                status=status,
                organizer_id=actor.id,
                organizer_name=actor.name,
                **fields,
            )
            event.tags = list(tags)
            for item in media:
                event.media.append(item)

            self.db.add(event)
            self.db.commit()
        except AppError:
            self.db.rollback()
            self.media.discard(staged)
            raise
        except Exception as e:
            self.db.rollback()
            self.media.discard(staged)
            logger.error(f"Failed to create event: {e}")
            raise InternalError("Failed to create event") from e

        logger.info(f"Created event {event.id} ({status.value}) for organizer {actor.id} with {len(media)} media")
        return event

    def get_event(self, event_id: str, actor: Optional[Actor] = None) -> Event:
        """
        Get one event.

        Inactive events are only visible to actors who could edit them;
        everyone else gets ResourceNotFound.
        """
        event = load_event(self.db, event_id)
        if event.status != EventStatus.ACTIVE and not evaluate(event, actor, now=self.clock()):
            raise ResourceNotFound("Event", "Event not found or inactive")
        return event

    def list_events(self, criteria: visibility.ListingCriteria, actor: Optional[Actor] = None) -> visibility.Page:
        query = visibility.build_listing_query(criteria, actor, now=self.clock())
        return visibility.paginate(self.db, query)

    def list_totem_events(self, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> List[Event]:
        """Events a totem shows at ``now`` (default: the current time) in the display timezone."""
        now = now or self.clock()
        tz = tz or get_settings().display_timezone
        return visibility.totem_events(self.db, now, tz)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_event(self, event_id: str, changes: dict, actor: Optional[Actor]) -> Event:
        """
        Apply a partial update.

        Raises:
            ValidationError: If ``changes`` touches status or organizer, empties
                the tag list, or the resulting schedule is invalid
        """
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor, now=self.clock())

        forbidden = sorted(set(changes) - EDITABLE_FIELDS)
        if forbidden:
            raise ValidationError(
                f"Fields cannot be changed here: {', '.join(forbidden)}",
                field=forbidden[0],
            )
        if "tags" in changes:
            changes = {**changes, "tags": check_tags(changes["tags"])}

        try:
            for name, value in changes.items():
                if name == "tags":
                    event.tags = value
                elif name in DATETIME_FIELDS:
                    setattr(event, name, ensure_utc(value))
                else:
                    setattr(event, name, value)

            check_schedule(*(getattr(event, name) for name in DATETIME_FIELDS))
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update event {event_id}: {e}")
            raise InternalError("Failed to update event") from e

        logger.info(f"Updated event {event_id}: {', '.join(sorted(changes))}")
        return event

    def change_status(self, event_id: str, status, actor: Optional[Actor]) -> Event:
        """
        Activate or deactivate an event (owner only).

        Raises:
            ValidationError: If activating an event that lacks a required media variant
        """
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor, owner_only=True, now=self.clock())

        status = parse_status(status)
        if status == EventStatus.ACTIVE:
            check_required_media(event.media)

        event.status = status
        self._commit(f"change status of event {event_id}")
        logger.info(f"Event {event_id} is now {status.value}")
        return event

    def share_permission(
        self,
        event_id: str,
        email: str,
        expires_at: Optional[datetime],
        actor: Optional[Actor],
        kind: PermissionKind = PermissionKind.EDIT,
    ) -> EventPermission:
        """
        Grant another user a shared permission on an event (owner only).

        The event row is locked first, then the grant is written by one
        INSERT ... SELECT guarded by NOT EXISTS on an unexpired grant for the
        same user. Concurrent shares of one event therefore run one after the
        other, and under READ COMMITTED the second statement sees the first
        grant once it is committed.

        Raises:
            ValidationError: On self-share or an expiry in the past
            ResourceNotFound: If no user has that email
            DuplicateResource: If the user already holds an unexpired grant
        """
        now = self.clock()
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor, owner_only=True, now=now)

        email = (email or "").strip().lower()
        if email == (actor.email or "").strip().lower():
            raise ValidationError("You cannot share the event with yourself", field="email")

        expires_at = ensure_utc(expires_at)
        if expires_at is not None and expires_at <= now:
            raise ValidationError("Expiry date must be in the future", field="expires_at")

        target = self.db.query(User).filter(func.lower(User.email) == email).first()
        if target is None or not target.is_active:
            raise ResourceNotFound("User", f"User with email {email} not found")
        if target.id == event.organizer_id:
            raise ValidationError("The organizer already has full access to the event", field="email")

        kind = PermissionKind(kind)
        active_grant = select(EventPermission.id).where(
            EventPermission.event_id == event.id,
            EventPermission.user_id == target.id,
            EventPermission.kind == kind,
            or_(EventPermission.expires_at.is_(None), EventPermission.expires_at > now),
        )
        permission_id = new_id()
        statement = insert(EventPermission.__table__).from_select(
            ["id", "event_id", "user_id", "kind", "expires_at", "granted_at"],
            select(
                literal(permission_id),
                literal(event.id),
                literal(target.id),
                literal(kind.value),
                literal(expires_at, DateTime(timezone=True)),
                literal(now, DateTime(timezone=True)),
            ).where(~exists(active_grant)),
        )

        try:
            self.db.execute(event_row_lock(event.id))
            result = self.db.execute(statement)
            if result.rowcount == 0:
                self.db.rollback()
                raise DuplicateResource(
                    f"User {email} already has an active permission for this event",
                    field="permission",
                )
            self.db.commit()
        except AppError:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to share event {event_id} with {email}: {e}")
            raise InternalError("Failed to share event") from e

        logger.info(f"Event {event_id} shared with user {target.id} ({kind.value}) until {expires_at}")
        return self.db.get(EventPermission, permission_id)

    def revoke_permission(self, event_id: str, user_id: str, actor: Optional[Actor]) -> None:
        """
        Remove every grant of ``user_id`` on an event (owner only) with one DELETE.

        Raises:
            ResourceNotFound: If the user holds no grant on the event
        """
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor, owner_only=True, now=self.clock())

        statement = (
            delete(EventPermission)
            .where(EventPermission.event_id == event.id, EventPermission.user_id == user_id)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(statement)
            if result.rowcount == 0:
                self.db.rollback()
                raise ResourceNotFound("Permission")
            self.db.commit()
        except AppError:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to revoke permission of {user_id} on event {event_id}: {e}")
            raise InternalError("Failed to revoke permission") from e

        logger.info(f"Revoked permissions of user {user_id} on event {event_id}")

    def transfer_organizer(self, event_id: str, email: str, actor: Optional[Actor]) -> Event:
        """
        Hand an event over to another user (administrators only).

        Raises:
            AuthenticationRequired: If there is no actor
            UnauthorizedAccess: If the actor is not an administrator
            ResourceNotFound: If the event or the new organizer does not exist
        """
        if actor is None:
            raise AuthenticationRequired("authentication required")
        if not actor.admin:
            raise UnauthorizedAccess("administrator-only operation", field="event")

        event = load_event(self.db, event_id)
        email = (email or "").strip().lower()
        target = self.db.query(User).filter(func.lower(User.email) == email).first()
        if target is None or not target.is_active:
            raise ResourceNotFound("User", f"User with email {email} not found")

        previous = event.organizer_id
        event.organizer_id = target.id
        event.organizer_name = target.name
        self._commit(f"transfer event {event_id}")
        logger.info(f"Event {event_id} transferred from {previous} to {target.id} by {actor.id}")
        return event

    def delete_event(self, event_id: str, actor: Optional[Actor]) -> None:
        """Delete an event (owner only), then best-effort delete its media blobs."""
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor, owner_only=True, now=self.clock())

        urls = [item.url for item in event.media if item.url.startswith("/uploads/")]
        self.db.delete(event)
        self._commit(f"delete event {event_id}")

        self.media.discard_paths(urls)
        logger.info(f"Deleted event {event_id} and {len(urls)} media blobs")

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise InternalError(f"Failed to {action}") from e
