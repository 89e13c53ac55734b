"""
Input helpers for EvenTotem endpoints.

This module turns FastAPI uploads into the plain file descriptors the media
pipeline validates, and checks identifiers before they reach the database.
"""

import logging
import re
from typing import List, Optional

from fastapi import UploadFile
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from services.media_validation import UploadedFile

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


async def read_upload(file: UploadFile) -> UploadedFile:
    """
    Read an uploaded file into memory.

    Args:
        file: Uploaded file from FastAPI

    Returns:
        UploadedFile: Filename, declared content type and bytes

    Raises:
        ValidationError: If the file cannot be read
    """
    try:
        data = await file.read()
    except Exception as e:
        logger.error(f"Error reading file {file.filename}: {str(e)}")
        raise ValidationError(f"Error reading file '{file.filename}'", field="file") from e
    finally:
        await file.close()

    return UploadedFile(filename=file.filename or "", content_type=file.content_type, data=data)


async def read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedFile]:
    return [await read_upload(file) for file in files or []]


def validate_id(value: str, field: str = "id") -> str:
    """
    Validate an event, media or user id (32 lowercase hex characters).

    Raises:
        ValidationError: If the id is malformed
    """
    if not value or not ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {field} format", field=field)
    return value


def pydantic_errors(error: PydanticValidationError) -> ValidationError:
    """Convert a pydantic error raised outside request parsing into a ValidationError."""
    details = [
        {"field": ".".join(str(part) for part in item["loc"]), "message": item["msg"]}
        for item in error.errors()
    ]
    first = details[0] if details else {"field": None, "message": "Invalid payload"}
    return ValidationError(first["message"], field=first["field"] or None, details=details)
