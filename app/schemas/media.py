"""
Pydantic schemas for event media.

Media are exposed in one canonical shape: id, variant, url, size_mb,
height, width. The legacy ``{type, link}`` shape is only accepted as input
on event creation and converted explicitly.
"""

from typing import Dict, List

from pydantic import BaseModel, Field

from models.event import MediaVariant


class MediaResponse(BaseModel):
    """Canonical media descriptor."""
    id: str = Field(..., description="Media ID")
    variant: MediaVariant = Field(..., description="Media variant: cover, carousel or video")
    url: str = Field(..., description="Public path of the stored file")
    size_mb: float = Field(..., description="File size in MB, two decimals")
    height: int = Field(..., description="Height in pixels")
    width: int = Field(..., description="Width in pixels")

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "4f1c2d7e9a0b4c3d8e7f6a5b4c3d2e1f",
                "variant": "cover",
                "url": "/uploads/0d2f5c1e7b9a4e6f8c3d2b1a0f9e8d7c/cover/9b8a7c6d5e4f.png",
                "size_mb": 0.42,
                "height": 720,
                "width": 1280
            }
        }


class LegacyMediaIn(BaseModel):
    """Legacy media reference (already hosted file)."""
    type: str = Field(..., description="cover, carousel or video (capa/carrossel accepted)")
    link: str = Field(..., min_length=1, description="URL of the hosted file")


class MediaListResponse(BaseModel):
    """Media of one event grouped by variant."""
    event_id: str = Field(..., description="Event ID")
    media: Dict[str, List[MediaResponse]] = Field(..., description="Media lists keyed by variant")


class MediaUploadResponse(BaseModel):
    """Result of a media upload request."""
    event_id: str = Field(..., description="Event ID")
    variant: MediaVariant = Field(..., description="Variant the files were added to")
    uploaded: List[MediaResponse] = Field(..., description="Persisted media, in upload order")
