"""Unit tests for S3 Storage Adapter using moto

Covers store, retrieve, delete, exists, presigned URLs, bucket verification
and the student-scoped storage key layout.
"""

import hashlib
import io
import re
from uuid import UUID, uuid4

import boto3
import pytest
from moto import mock_aws

from infrastructure.storage.s3_storage_adapter import (
    S3StorageAdapter,
    StorageError,
    build_storage_key,
)
from domain.documents.ports.object_storage_port import StoredFile


TEST_BUCKET = "test-mentorlink-bucket"
TEST_REGION = "us-east-1"
TEST_ACCESS_KEY = "test-access-key"
TEST_SECRET_KEY = "test-secret-key"
TEST_STUDENT_ID = UUID("a1b2c3d4-e5f6-7890-abcd-ef1234567890")

KEY_PATTERN = re.compile(rf"^{TEST_STUDENT_ID}/\d{{13}}_[0-9a-f]{{8}}(\.[a-z]+)?$")


@pytest.fixture
def s3():
    """Mocked S3 with the test bucket; yields (client, adapter)."""
    with mock_aws():
        client = boto3.client(
            "s3",
            region_name=TEST_REGION,
            aws_access_key_id=TEST_ACCESS_KEY,
            aws_secret_access_key=TEST_SECRET_KEY,
        )
        client.create_bucket(Bucket=TEST_BUCKET)
        adapter = S3StorageAdapter(
            endpoint_url=None,
            access_key=TEST_ACCESS_KEY,
            secret_key=TEST_SECRET_KEY,
            bucket_name=TEST_BUCKET,
            region=TEST_REGION,
        )
        yield client, adapter


@pytest.fixture
def storage_adapter(s3):
    return s3[1]


async def _store(adapter, content=b"%PDF-1.4 test", filename="essay.pdf", mime_type="application/pdf"):
    return await adapter.store_file(
        file=io.BytesIO(content),
        owner_id=TEST_STUDENT_ID,
        filename=filename,
        mime_type=mime_type,
    )


class TestBuildStorageKey:

    def test_format(self):
        key = build_storage_key(TEST_STUDENT_ID, "deadbeefcafe", "essay.PDF", timestamp_ms=1700000000000)
        assert key == f"{TEST_STUDENT_ID}/1700000000000_deadbeef.pdf"

    def test_without_extension(self):
        key = build_storage_key(TEST_STUDENT_ID, "deadbeefcafe", "scan", timestamp_ms=1)
        assert key == f"{TEST_STUDENT_ID}/1_deadbeef"

    def test_uses_current_time_by_default(self):
        assert KEY_PATTERN.match(build_storage_key(TEST_STUDENT_ID, "0123456789abcdef", "a.png"))


class TestStoreFile:

    @pytest.mark.asyncio
    async def test_store_file_success(self, storage_adapter):
        content = b"Internship certificate scan"

        stored = await _store(storage_adapter, content)

        assert isinstance(stored, StoredFile)
        assert KEY_PATTERN.match(stored.storage_key)
        assert stored.storage_key.endswith(".pdf")
        assert stored.sha256 == hashlib.sha256(content).hexdigest()
        assert stored.sha256[:8] in stored.storage_key
        assert stored.size_bytes == len(content)
        assert stored.mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_store_file_streaming_chunks(self, storage_adapter):
        """20KB file is larger than the 8KB read chunk"""
        content = b"X" * (20 * 1024)

        stored = await _store(storage_adapter, content)

        assert stored.size_bytes == len(content)
        assert stored.sha256 == hashlib.sha256(content).hexdigest()

    @pytest.mark.asyncio
    async def test_store_file_empty_raises_error(self, storage_adapter):
        with pytest.raises(ValueError, match="Cannot store empty file"):
            await _store(storage_adapter, b"")

    @pytest.mark.asyncio
    async def test_same_content_twice_is_stored_twice(self, storage_adapter):
        first = await _store(storage_adapter, b"same bytes", filename="a.pdf")
        second = await _store(storage_adapter, b"same bytes", filename="b.png", mime_type="image/png")

        assert second.storage_key.endswith(".png")
        assert await storage_adapter.file_exists(first.storage_key)
        assert await storage_adapter.file_exists(second.storage_key)

    @pytest.mark.asyncio
    async def test_metadata_and_content_type_stored(self, s3):
        client, adapter = s3
        stored = await _store(adapter, b"PNG bytes", filename="photo.png", mime_type="image/png")

        head = client.head_object(Bucket=TEST_BUCKET, Key=stored.storage_key)
        assert head["ContentType"] == "image/png"
        assert head["Metadata"]["sha256"] == stored.sha256
        assert head["Metadata"]["student-id"] == str(TEST_STUDENT_ID)

    @pytest.mark.asyncio
    async def test_missing_bucket_raises_storage_error(self):
        with mock_aws():
            adapter = S3StorageAdapter(
                endpoint_url=None,
                access_key=TEST_ACCESS_KEY,
                secret_key=TEST_SECRET_KEY,
                bucket_name="no-such-bucket",
                region=TEST_REGION,
            )
            with pytest.raises(StorageError):
                await _store(adapter)


class TestRetrieveFile:

    @pytest.mark.asyncio
    async def test_retrieve_file_success(self, storage_adapter):
        content = b"Attendance log for March"
        stored = await _store(storage_adapter, content)

        body = await storage_adapter.retrieve_file(stored.storage_key)

        assert body.read() == content

    @pytest.mark.asyncio
    async def test_retrieve_nonexistent_file_raises_error(self, storage_adapter):
        with pytest.raises(FileNotFoundError):
            await storage_adapter.retrieve_file(f"{uuid4()}/missing.pdf")


class TestDeleteAndExists:

    @pytest.mark.asyncio
    async def test_file_exists(self, storage_adapter):
        stored = await _store(storage_adapter)
        assert await storage_adapter.file_exists(stored.storage_key) is True
        assert await storage_adapter.file_exists("missing/key.pdf") is False

    @pytest.mark.asyncio
    async def test_delete_file_success(self, storage_adapter):
        stored = await _store(storage_adapter)

        assert await storage_adapter.delete_file(stored.storage_key) is True
        assert await storage_adapter.file_exists(stored.storage_key) is False

    @pytest.mark.asyncio
    async def test_delete_twice_is_idempotent(self, storage_adapter):
        stored = await _store(storage_adapter)
        await storage_adapter.delete_file(stored.storage_key)
        assert await storage_adapter.delete_file(stored.storage_key) is False


class TestGeneratePresignedUrl:

    @pytest.mark.asyncio
    async def test_generate_presigned_url_success(self, storage_adapter):
        stored = await _store(storage_adapter)

        url = await storage_adapter.generate_presigned_url(stored.storage_key, expires_in_seconds=600)

        assert TEST_BUCKET in url
        assert stored.storage_key.split("/")[1] in url
        assert "Expires=" in url or "X-Amz-Expires=600" in url

    @pytest.mark.asyncio
    async def test_presigned_url_keeps_download_name(self, storage_adapter):
        stored = await _store(storage_adapter)

        url = await storage_adapter.generate_presigned_url(stored.storage_key, download_name="essay.pdf")

        assert "response-content-disposition" in url
        assert "essay.pdf" in url

    @pytest.mark.asyncio
    async def test_generate_presigned_url_nonexistent_file(self, storage_adapter):
        with pytest.raises(FileNotFoundError):
            await storage_adapter.generate_presigned_url("missing/key.pdf")


class TestVerifyBucket:

    @pytest.mark.asyncio
    async def test_verify_bucket_exists(self, storage_adapter):
        assert await storage_adapter.verify_bucket_exists() is True

    @pytest.mark.asyncio
    async def test_verify_nonexistent_bucket_raises_error(self):
        with mock_aws():
            adapter = S3StorageAdapter(
                endpoint_url=None,
                access_key=TEST_ACCESS_KEY,
                secret_key=TEST_SECRET_KEY,
                bucket_name="nonexistent-bucket",
                region=TEST_REGION,
            )
            with pytest.raises(StorageError, match="does not exist"):
                await adapter.verify_bucket_exists()
