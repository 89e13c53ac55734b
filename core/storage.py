"""
S3 blob store module for media uploads.

This module wraps an S3-compatible bucket behind the small interface the
media pipeline needs: write, read, delete and image metadata probing.
Blob paths are the public media URLs (``/uploads/{event}/{variant}/{file}``);
the object key is the path without its leading slash.
"""

import io
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError, BotoCoreError
from PIL import Image, UnidentifiedImageError

from core.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for blob store operations."""
    pass


class StorageWriteError(StorageError):
    """Exception raised when a blob cannot be written."""
    pass


class StorageReadError(StorageError):
    """Exception raised when a blob cannot be read."""
    pass


class StorageConnectionError(StorageError):
    """Exception raised when the S3 client cannot be created."""
    pass


class ImageProbeError(StorageError):
    """Exception raised when a stored blob is not a readable image."""
    pass


@dataclass(frozen=True)
class StoredBlob:
    """Result of a successful write."""

    path: str
    size: int


def object_key(path: str) -> str:
    """
    Convert a blob path into an S3 object key.

    Args:
        path: Blob path, e.g. "/uploads/abc/cover/f.png"

    Returns:
        str: Object key, e.g. "uploads/abc/cover/f.png"

    Raises:
        ValueError: If path is empty
    """
    if not path or not path.strip():
        raise ValueError("path cannot be empty")
    return path.strip().lstrip("/")


def get_s3_client():
    """
    Create and return S3 client for the media bucket.

    Returns:
        boto3.client: Configured S3 client

    Raises:
        StorageConnectionError: If client creation fails
    """
    settings = get_settings()
    try:
        return boto3.client(
            's3',
            endpoint_url=settings.S3_ENDPOINT,
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
            config=Config(
                signature_version='s3v4',
                s3={'addressing_style': 'path'}
            )
        )
    except Exception as e:
        logger.error(f"Failed to create S3 client: {e}")
        raise StorageConnectionError(f"Failed to create S3 client: {e}") from e


def image_size(data: bytes) -> Tuple[int, int]:
    """
    Read the pixel size of an encoded image.

    Args:
        data: Encoded image bytes (JPEG, PNG, ...)

    Returns:
        Tuple[int, int]: (width, height)

    Raises:
        ImageProbeError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        # verify() checks for truncated/corrupted files but leaves the image unusable
        image.verify()
        image = Image.open(io.BytesIO(data))
        return image.size
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise ImageProbeError(f"Not a valid image: {e}") from e


class S3BlobStore:
    """
    Blob store backed by an S3-compatible bucket.

    Example:
        store = S3BlobStore()
        blob = store.write(data, "/uploads/e1/cover/x.png", "image/png")
        width, height = store.probe_image(blob.path)
    """

    def __init__(self, client=None, bucket: str = None):
        settings = get_settings()
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def write(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredBlob:
        """
        Upload bytes to the bucket.

        Args:
            data: Binary content to upload
            path: Destination blob path
            content_type: MIME type stored with the object

        Returns:
            StoredBlob: The written path and its size in bytes

        Raises:
            StorageWriteError: If upload fails
            ValueError: If data or path is empty
        """
        if not data:
            raise ValueError("data cannot be empty")
        key = object_key(path)

        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type
            )
            logger.info(f"Stored blob {key} ({len(data)} bytes)")
            return StoredBlob(path=path, size=len(data))

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_message = e.response.get('Error', {}).get('Message', str(e))
            logger.error(f"S3 ClientError during upload: {error_code} - {error_message}")
            raise StorageWriteError(f"Failed to store blob: {error_message}") from e

        except BotoCoreError as e:
            logger.error(f"BotoCoreError during upload: {e}")
            raise StorageWriteError(f"Failed to store blob: {e}") from e

    def read(self, path: str) -> bytes:
        """
        Download a blob.

        Raises:
            StorageReadError: If the object is missing or the download fails
        """
        key = object_key(path)

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response['Body'].read()

        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            error_message = e.response.get('Error', {}).get('Message', str(e))

            if error_code == 'NoSuchKey':
                logger.error(f"Object not found in S3: {key}")
                raise StorageReadError(f"Object not found: {key}") from e

            logger.error(f"S3 ClientError during download: {error_code} - {error_message}")
            raise StorageReadError(f"Failed to read blob: {error_message}") from e

        except BotoCoreError as e:
            logger.error(f"BotoCoreError during download: {e}")
            raise StorageReadError(f"Failed to read blob: {e}") from e

    def delete(self, path: str) -> bool:
        """
        Delete a blob.

        Returns:
            bool: True if the delete request succeeded, False otherwise.
            Failures are logged, never raised.
        """
        try:
            key = object_key(path)
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.info(f"Deleted blob {key}")
            return True
        except (ClientError, BotoCoreError, StorageConnectionError, ValueError) as e:
            logger.warning(f"Failed to delete blob {path}: {e}")
            return False

    def probe_image(self, path: str) -> Tuple[int, int]:
        """
        Read the pixel dimensions of a stored image.

        Returns:
            Tuple[int, int]: (width, height)

        Raises:
            StorageReadError: If the blob cannot be read
            ImageProbeError: If the blob is not a readable image
        """
        return image_size(self.read(path))

    def ping(self) -> bool:
        """Return True when the bucket answers a HEAD request."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except (ClientError, BotoCoreError, StorageConnectionError) as e:
            logger.warning(f"Bucket {self.bucket} unreachable: {e}")
            return False


@lru_cache()
def get_blob_store() -> S3BlobStore:
    """Get the process-wide blob store."""
    return S3BlobStore()
