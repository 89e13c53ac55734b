"""
Unit tests for core/storage.py module.

Tests S3 client initialization, blob write/read/delete, image probing and
error handling.
"""

import io
import pytest
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError, BotoCoreError

from core.storage import (
    ImageProbeError,
    S3BlobStore,
    StorageConnectionError,
    StorageError,
    StorageReadError,
    StorageWriteError,
    StoredBlob,
    get_s3_client,
    image_size,
    object_key,
)
from factories import image_bytes


def client_error(code, message="boom", operation="PutObject"):
    return ClientError({'Error': {'Code': code, 'Message': message}}, operation)


class TestStorageExceptions:
    """Test custom storage exception classes."""

    @pytest.mark.parametrize("exc", [StorageWriteError, StorageReadError, StorageConnectionError, ImageProbeError])
    def test_subclasses_storage_error(self, exc):
        assert issubclass(exc, StorageError)


class TestObjectKey:

    def test_strips_leading_slash(self):
        assert object_key("/uploads/e1/cover/a.png") == "uploads/e1/cover/a.png"

    @pytest.mark.parametrize("path", ["", "   "])
    def test_empty_path_rejected(self, path):
        with pytest.raises(ValueError):
            object_key(path)


class TestGetS3Client:
    """Test S3 client initialization."""

    @patch('core.storage.boto3.client')
    def test_get_s3_client_uses_correct_parameters(self, mock_boto_client):
        """Test that get_s3_client uses correct configuration parameters."""
        mock_boto_client.return_value = MagicMock()

        get_s3_client()

        call_args = mock_boto_client.call_args
        assert call_args[0][0] == 's3'
        assert call_args[1]['endpoint_url'] == 'https://test.s3.com'
        assert call_args[1]['aws_access_key_id'] == 'test_access_key'
        assert call_args[1]['aws_secret_access_key'] == 'test_secret_key'

    @patch('core.storage.boto3.client')
    def test_get_s3_client_handles_exception(self, mock_boto_client):
        """Test that get_s3_client raises StorageConnectionError on failure."""
        mock_boto_client.side_effect = Exception("Connection failed")

        with pytest.raises(StorageConnectionError) as exc_info:
            get_s3_client()

        assert "Failed to create S3 client" in str(exc_info.value)


class TestImageSize:

    def test_reads_png_dimensions(self):
        assert image_size(image_bytes(1280, 720)) == (1280, 720)

    def test_reads_jpeg_dimensions(self):
        assert image_size(image_bytes(640, 480, "JPEG")) == (640, 480)

    def test_garbage_bytes_raise_probe_error(self):
        with pytest.raises(ImageProbeError):
            image_size(b"definitely not an image")

    def test_truncated_image_raises_probe_error(self):
        data = image_bytes(1280, 720)
        with pytest.raises(ImageProbeError):
            image_size(data[: len(data) // 3])


class TestS3BlobStore:
    """Test the bucket-backed blob store against a mocked client."""

    def setup_method(self):
        self.client = MagicMock()
        self.store = S3BlobStore(client=self.client, bucket="media")

    def test_write_puts_object_under_key(self):
        blob = self.store.write(b"abc", "/uploads/e1/cover/a.png", "image/png")

        assert blob == StoredBlob(path="/uploads/e1/cover/a.png", size=3)
        self.client.put_object.assert_called_once_with(
            Bucket="media",
            Key="uploads/e1/cover/a.png",
            Body=b"abc",
            ContentType="image/png",
        )

    def test_write_rejects_empty_data(self):
        with pytest.raises(ValueError):
            self.store.write(b"", "/uploads/e1/cover/a.png")

    def test_write_client_error(self):
        self.client.put_object.side_effect = client_error("AccessDenied", "Access Denied")

        with pytest.raises(StorageWriteError) as exc_info:
            self.store.write(b"abc", "/uploads/e1/cover/a.png")

        assert "Access Denied" in str(exc_info.value)

    def test_write_botocore_error(self):
        self.client.put_object.side_effect = BotoCoreError()

        with pytest.raises(StorageWriteError):
            self.store.write(b"abc", "/uploads/e1/cover/a.png")

    def test_read_returns_body(self):
        self.client.get_object.return_value = {'Body': io.BytesIO(b"payload")}

        assert self.store.read("/uploads/e1/video/v.mp4") == b"payload"
        self.client.get_object.assert_called_once_with(Bucket="media", Key="uploads/e1/video/v.mp4")

    def test_read_missing_object(self):
        self.client.get_object.side_effect = client_error("NoSuchKey", operation="GetObject")

        with pytest.raises(StorageReadError) as exc_info:
            self.store.read("/uploads/e1/video/v.mp4")

        assert "Object not found" in str(exc_info.value)

    def test_delete_success(self):
        assert self.store.delete("/uploads/e1/cover/a.png") is True
        self.client.delete_object.assert_called_once_with(Bucket="media", Key="uploads/e1/cover/a.png")

    def test_delete_failure_is_logged_not_raised(self):
        self.client.delete_object.side_effect = client_error("InternalError", operation="DeleteObject")

        assert self.store.delete("/uploads/e1/cover/a.png") is False

    def test_probe_image(self):
        self.client.get_object.return_value = {'Body': io.BytesIO(image_bytes(1280, 720))}

        assert self.store.probe_image("/uploads/e1/cover/a.png") == (1280, 720)

    def test_probe_non_image(self):
        self.client.get_object.return_value = {'Body': io.BytesIO(b"not an image")}

        with pytest.raises(ImageProbeError):
            self.store.probe_image("/uploads/e1/cover/a.png")

    def test_ping_heads_bucket(self):
        assert self.store.ping() is True
        self.client.head_bucket.assert_called_once_with(Bucket="media")

    def test_ping_unreachable_bucket(self):
        self.client.head_bucket.side_effect = client_error("404", operation="HeadBucket")

        assert self.store.ping() is False

    @patch('core.storage.get_s3_client')
    def test_client_created_lazily(self, mock_get_client):
        store = S3BlobStore(bucket="media")
        mock_get_client.assert_not_called()

        assert store.client is mock_get_client.return_value
        assert store.client is mock_get_client.return_value
        mock_get_client.assert_called_once()
