"""
Media validation policy.

Each media variant has a fixed policy: accepted extensions and content
types, a size ceiling, the exact pixel size it must have and how many files
one request may carry. Validation is pure; it never touches the blob store.
"""

import os
from dataclasses import dataclass
from typing import FrozenSet, Optional, Tuple, assert_never

from core.errors import ValidationError
from models.event import MediaVariant

MB = 1024 * 1024

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})
IMAGE_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png"})
VIDEO_EXTENSIONS = frozenset({".mp4"})
VIDEO_CONTENT_TYPES = frozenset({"video/mp4"})

# Portuguese names still sent by older clients
VARIANT_ALIASES = {
    "capa": MediaVariant.COVER,
    "carrossel": MediaVariant.CAROUSEL,
}


@dataclass(frozen=True)
class MediaPolicy:
    variant: MediaVariant
    extensions: FrozenSet[str]
    content_types: FrozenSet[str]
    max_size_mb: int
    width: int
    height: int
    max_files: int
    is_image: bool

    @property
    def max_size_bytes(self) -> int:
        return self.max_size_mb * MB


COVER_POLICY = MediaPolicy(
    variant=MediaVariant.COVER,
    extensions=IMAGE_EXTENSIONS,
    content_types=IMAGE_CONTENT_TYPES,
    max_size_mb=5,
    width=1280,
    height=720,
    max_files=1,
    is_image=True,
)

CAROUSEL_POLICY = MediaPolicy(
    variant=MediaVariant.CAROUSEL,
    extensions=IMAGE_EXTENSIONS,
    content_types=IMAGE_CONTENT_TYPES,
    max_size_mb=5,
    width=1280,
    height=720,
    max_files=10,
    is_image=True,
)

# Video dimensions are nominal; the file is never probed.
VIDEO_POLICY = MediaPolicy(
    variant=MediaVariant.VIDEO,
    extensions=VIDEO_EXTENSIONS,
    content_types=VIDEO_CONTENT_TYPES,
    max_size_mb=25,
    width=1280,
    height=720,
    max_files=1,
    is_image=False,
)


@dataclass(frozen=True)
class UploadedFile:
    """Raw uploaded-file descriptor as received from the client."""

    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename or "")[1].lower()


@dataclass(frozen=True)
class ValidatedUpload:
    upload: UploadedFile
    policy: MediaPolicy

    @property
    def variant(self) -> MediaVariant:
        return self.policy.variant


def parse_variant(value) -> MediaVariant:
    """
    Coerce a variant name into MediaVariant.

    Raises:
        ValidationError: If the name is not a known variant
    """
    if isinstance(value, MediaVariant):
        return value
    name = str(value or "").strip().lower()
    if name in VARIANT_ALIASES:
        return VARIANT_ALIASES[name]
    try:
        return MediaVariant(name)
    except ValueError:
        allowed = ", ".join(variant.value for variant in MediaVariant)
        raise ValidationError(
            f"Media variant '{value}' is not allowed. Allowed: {allowed}",
            field="variant",
        )


def policy_for(variant: MediaVariant) -> MediaPolicy:
    """Policy of a variant; a new MediaVariant member must be handled here."""
    match variant:
        case MediaVariant.COVER:
            return COVER_POLICY
        case MediaVariant.CAROUSEL:
            return CAROUSEL_POLICY
        case MediaVariant.VIDEO:
            return VIDEO_POLICY
        case _:
            assert_never(variant)


def validate(upload: UploadedFile, variant) -> ValidatedUpload:
    """
    Check an uploaded file against its variant policy.

    Dimensions are not checked here because they need the stored blob;
    see ``check_dimensions``.

    Args:
        upload: Raw file descriptor
        variant: Variant name or MediaVariant

    Returns:
        ValidatedUpload: The descriptor paired with its policy

    Raises:
        ValidationError: On empty file, unknown variant, wrong extension,
            wrong content type or oversized file
    """
    if upload.size == 0:
        raise ValidationError(f"File '{upload.filename}' is empty", field="file")

    policy = policy_for(parse_variant(variant))

    if upload.extension not in policy.extensions:
        allowed = ", ".join(sorted(policy.extensions))
        raise ValidationError(
            f"Invalid extension '{upload.extension or upload.filename}' for {policy.variant.value}. Allowed: {allowed}",
            field="file",
        )

    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in policy.content_types:
        allowed = ", ".join(sorted(policy.content_types))
        raise ValidationError(
            f"Invalid content type '{upload.content_type}' for {policy.variant.value}. Allowed: {allowed}",
            field="file",
        )

    if upload.size > policy.max_size_bytes:
        raise ValidationError(
            f"File '{upload.filename}' is larger than {policy.max_size_mb}MB",
            field="file",
        )

    return ValidatedUpload(upload=upload, policy=policy)


def check_dimensions(variant: MediaVariant, width: int, height: int) -> None:
    """
    Require the exact pixel size of the variant.

    Raises:
        ValidationError: With expected and actual dimensions in the message
    """
    policy = policy_for(variant)
    if (width, height) != (policy.width, policy.height):
        raise ValidationError(
            f"Invalid dimensions for {policy.variant.value}. "
            f"Expected: {policy.width}x{policy.height}px, received: {width}x{height}px.",
            field="dimensions",
            details=[{"expected": [policy.width, policy.height], "actual": [width, height]}],
        )


def nominal_dimensions(variant: MediaVariant) -> Tuple[int, int]:
    """Policy (width, height) of a variant."""
    policy = policy_for(variant)
    return policy.width, policy.height


def check_batch_size(variant: MediaVariant, count: int) -> None:
    """
    Raises:
        ValidationError: If ``count`` is zero or above the variant's per-request limit
    """
    policy = policy_for(variant)
    if count == 0:
        raise ValidationError("At least one file is required", field="files")
    if count > policy.max_files:
        raise ValidationError(
            f"At most {policy.max_files} file(s) allowed for {policy.variant.value}, received {count}",
            field="files",
        )
