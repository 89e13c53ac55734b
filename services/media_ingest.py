"""
Media ingest pipeline.

This service handles:
- Validating uploaded files against their variant policy
- Writing them to the blob store under /uploads/{event}/{variant}/
- Probing stored images and enforcing their exact dimensions
- Appending the resulting media to the event in a single transaction
- Removing media and their blobs

Whatever fails after a blob was written, the blob is deleted before the
error propagates. Batches follow an abort-on-first-failure policy: the
first invalid file removes every blob written for the request and fails
the whole batch with that file's error.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from core.errors import AppError, InternalError, ResourceNotFound, ValidationError
from core.storage import ImageProbeError, StorageError, get_blob_store
from models.event import Event, EventMedia, EventStatus, MediaVariant, new_id
from services import media_validation
from services.media_validation import MB, UploadedFile
from services.permissions import Actor, ensure_can_mutate

logger = logging.getLogger(__name__)


def blob_path(event_id: str, variant: MediaVariant, extension: str) -> str:
    """Public path for a new blob: /uploads/{eventId}/{variant}/{generatedFilename}."""
    return f"/uploads/{event_id}/{variant.value}/{uuid.uuid4().hex}{extension}"


def load_event(db: Session, event_id: str) -> Event:
    """
    Get an event by id.

    Raises:
        ResourceNotFound: If the event does not exist
    """
    event = db.get(Event, event_id)
    if event is None:
        raise ResourceNotFound("Event")
    return event


def group_media(media: Iterable[EventMedia], variant: Optional[MediaVariant] = None) -> Dict[str, List[EventMedia]]:
    """Media grouped by variant name, restricted to one variant when given."""
    variants = [variant] if variant is not None else list(MediaVariant)
    grouped = {v.value: [] for v in variants}
    for item in media:
        key = MediaVariant(item.variant).value
        if key in grouped:
            grouped[key].append(item)
    return grouped


class MediaIngestPipeline:
    """Pipeline for adding media to events and removing them."""

    def __init__(self, db: Session, blob_store=None):
        """
        Args:
            db: Database session of the current request
            blob_store: Blob store, defaults to the S3 store
        """
        self.db = db
        self.blob_store = blob_store or get_blob_store()

    # ------------------------------------------------------------------
    # Staging: validate, write, probe. Nothing is persisted here.
    # ------------------------------------------------------------------

    def stage(self, event_id: str, variant: MediaVariant, upload: UploadedFile) -> EventMedia:
        """
        Validate one file, store it and build its media record.

        The record is not attached to any event. If anything fails after
        the write, the blob is removed before the error propagates.

        Raises:
            ValidationError: If the file breaks the variant policy
            InternalError: If the blob store fails
        """
        validated = media_validation.validate(upload, variant)
        policy = validated.policy
        path = blob_path(event_id, policy.variant, upload.extension)

        try:
            blob = self.blob_store.write(upload.data, path, upload.content_type)
        except StorageError as e:
            logger.error(f"Failed to store {upload.filename} for event {event_id}: {e}")
            raise InternalError("Failed to store media file", field="file") from e

        try:
            if policy.is_image:
                width, height = self._probe(blob.path, upload.filename)
                media_validation.check_dimensions(policy.variant, width, height)
            else:
                width, height = media_validation.nominal_dimensions(policy.variant)
        except Exception:
            self.discard_paths([blob.path])
            raise

        return EventMedia(
            id=new_id(),
            variant=policy.variant,
            url=blob.path,
            size_mb=round(blob.size / MB, 2),
            width=width,
            height=height,
        )

    def stage_batch(self, event_id: str, variant: MediaVariant, uploads: Sequence[UploadedFile]) -> List[EventMedia]:
        """
        Stage several files of one variant, all or nothing.

        Raises:
            ValidationError: For the first invalid file (its name prefixes the message)
            InternalError: If the blob store fails
        """
        media_validation.check_batch_size(variant, len(uploads))

        staged: List[EventMedia] = []
        for upload in uploads:
            try:
                staged.append(self.stage(event_id, variant, upload))
            except Exception as e:
                self.discard(staged)
                if isinstance(e, AppError) and len(uploads) > 1:
                    e.message = f"File '{upload.filename}': {e.message}"
                    e.args = (e.message,)
                raise
        return staged

    def stage_for_creation(self, event_id: str, uploads: Dict[MediaVariant, Sequence[UploadedFile]]) -> List[EventMedia]:
        """Stage the files of a new event, variant by variant, all or nothing."""
        staged: List[EventMedia] = []
        for variant in MediaVariant:
            files = uploads.get(variant) or []
            if not files:
                continue
            try:
                staged.extend(self.stage_batch(event_id, variant, files))
            except Exception:
                self.discard(staged)
                raise
        return staged

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def add_media(self, event_id: str, variant, uploads: Sequence[UploadedFile], actor: Optional[Actor]) -> List[EventMedia]:
        """
        Add one or more files of a variant to an event.

        All staged media are appended in one commit.

        Returns:
            List[EventMedia]: The persisted media, in upload order

        Raises:
            ResourceNotFound: If the event does not exist
            UnauthorizedAccess: If the actor may not edit the event
            ValidationError: If a file breaks the variant policy
            InternalError: If storage or persistence fails
        """
        variant = media_validation.parse_variant(variant)
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor)

        staged = self.stage_batch(event.id, variant, uploads)

        try:
            for item in staged:
                event.media.append(item)
            self.db.commit()
        except AppError:
            self.db.rollback()
            self.discard(staged)
            raise
        except Exception as e:
            self.db.rollback()
            self.discard(staged)
            logger.error(f"Failed to persist media for event {event_id}: {e}")
            raise InternalError("Failed to save media") from e

        logger.info(f"Added {len(staged)} {variant.value} media to event {event_id}")
        return staged

    def add_single(self, event_id: str, variant, upload: UploadedFile, actor: Optional[Actor]) -> EventMedia:
        """Add exactly one file; see ``add_media``."""
        return self.add_media(event_id, variant, [upload], actor)[0]

    def remove_media(self, event_id: str, variant, media_id: str, actor: Optional[Actor]) -> dict:
        """
        Remove one media item from an event and delete its blob.

        Returns:
            dict: Snapshot of the removed media descriptor

        Raises:
            ResourceNotFound: If the event or the media item does not exist
            UnauthorizedAccess: If the actor may not edit the event
            ValidationError: If the item is the last of its variant on an active event
        """
        variant = media_validation.parse_variant(variant)
        event = load_event(self.db, event_id)
        ensure_can_mutate(event, actor)

        items = event.media_of(variant)
        target = next((item for item in items if item.id == media_id), None)
        if target is None:
            raise ResourceNotFound("Media")

        if event.status == EventStatus.ACTIVE and len(items) == 1:
            raise ValidationError(
                f"Cannot remove the last {variant.value} media of an active event",
                field="media",
            )

        removed = media_to_dict(target)
        try:
            event.media.remove(target)
            self.db.commit()
        except AppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to remove media {media_id} from event {event_id}: {e}")
            raise InternalError("Failed to remove media") from e

        self._delete_blob(removed["url"])
        logger.info(f"Removed {variant.value} media {media_id} from event {event_id}")
        return removed

    def list_media(self, event: Event, variant=None) -> Dict[str, List[EventMedia]]:
        """Media of an event grouped by variant."""
        selected = media_validation.parse_variant(variant) if variant else None
        return group_media(event.media, selected)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def discard(self, staged: Iterable[EventMedia]) -> None:
        """Delete the blobs of staged (never persisted) media."""
        self.discard_paths([item.url for item in staged])

    def discard_paths(self, paths: Iterable[str]) -> None:
        for path in paths:
            self._delete_blob(path)

    def _delete_blob(self, path: str) -> None:
        """Best-effort blob deletion; failures are logged only."""
        try:
            if not self.blob_store.delete(path):
                logger.warning(f"Blob store could not delete {path}")
        except Exception as e:
            logger.error(f"Error deleting blob {path}: {e}")

    def _probe(self, path: str, filename: str):
        try:
            return self.blob_store.probe_image(path)
        except ImageProbeError as e:
            raise ValidationError(
                f"File '{filename}' is corrupted or is not a valid image",
                field="file",
            ) from e
        except StorageError as e:
            logger.error(f"Failed to probe {path}: {e}")
            raise InternalError("Failed to read image metadata", field="file") from e


def media_to_dict(item: EventMedia) -> dict:
    """Canonical descriptor of a media item."""
    return {
        "id": item.id,
        "variant": MediaVariant(item.variant).value,
        "url": item.url,
        "size_mb": item.size_mb,
        "height": item.height,
        "width": item.width,
    }


def legacy_media_to_canonical(legacy: dict) -> dict:
    """
    Map the legacy ``{type, link}`` media shape onto the canonical descriptor.

    Dimensions come from the variant policy and the size is unknown (0.0);
    a fresh id is assigned.

    Raises:
        ValidationError: If the type is unknown or the link is missing
    """
    variant = media_validation.parse_variant(legacy.get("type"))
    link = (legacy.get("link") or "").strip()
    if not link:
        raise ValidationError("Legacy media link is required", field="link")
    width, height = media_validation.nominal_dimensions(variant)
    return {
        "id": new_id(),
        "variant": variant.value,
        "url": link,
        "size_mb": 0.0,
        "height": height,
        "width": width,
    }
