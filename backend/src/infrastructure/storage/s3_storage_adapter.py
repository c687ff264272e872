"""S3 storage adapter for submitted documents.

Implements ObjectStoragePort with boto3 against AWS S3 or MinIO.
"""

import hashlib
import logging
import time
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional
from uuid import UUID

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from domain.documents.ports.object_storage_port import (
    ObjectStoragePort,
    StoredFile,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


def build_storage_key(owner_id: UUID, sha256: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Build the object key for an upload: {owner_id}/{epoch_ms}_{sha256[:8]}{ext}

    Example:
        >>> build_storage_key(UUID('a1b2c3d4-e5f6-7890-abcd-ef1234567890'),
        ...                   'deadbeefcafe', 'essay.PDF', timestamp_ms=1700000000000)
        'a1b2c3d4-e5f6-7890-abcd-ef1234567890/1700000000000_deadbeef.pdf'
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    ext = Path(filename).suffix.lower()
    return f"{owner_id}/{timestamp_ms}_{sha256[:8]}{ext}"


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class S3StorageAdapter(ObjectStoragePort):
    """S3-compatible storage adapter using boto3.

    Every upload gets a new key under the owning student's prefix; files are
    never deduplicated across submissions.

    Example:
        config = load_storage_config_from_env()
        storage = S3StorageAdapter(
            endpoint_url=config.endpoint_url,
            access_key=config.access_key,
            secret_key=config.secret_key,
            bucket_name=config.bucket_name,
            region=config.region,
        )
    """

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key: str,
        secret_key: str,
        bucket_name: str,
        region: str = "us-east-1",
    ):
        try:
            self.s3_client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
        except NoCredentialsError as e:
            raise StorageError(f"Invalid S3 credentials: {e}")
        except Exception as e:
            raise StorageError(f"Failed to initialize S3 client: {e}")

        self.bucket_name = bucket_name
        self.region = region
        logger.info(
            f"Initialized S3 storage adapter: bucket={bucket_name}, "
            f"endpoint={endpoint_url or 'AWS S3'}, region={region}"
        )

    async def store_file(
        self,
        file: BinaryIO,
        owner_id: UUID,
        filename: str,
        mime_type: str,
    ) -> StoredFile:
        """Hash the stream in 8KB chunks, then upload it under a fresh key."""
        sha256_hash = hashlib.sha256()
        chunks = []
        size_bytes = 0

        while True:
            chunk = file.read(8192)
            if not chunk:
                break
            sha256_hash.update(chunk)
            chunks.append(chunk)
            size_bytes += len(chunk)

        if size_bytes == 0:
            raise ValueError("Cannot store empty file")

        sha256_hex = sha256_hash.hexdigest()
        storage_key = build_storage_key(owner_id, sha256_hex, filename)

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=storage_key,
                Body=BytesIO(b"".join(chunks)),
                ContentType=mime_type,
                Metadata={
                    "sha256": sha256_hex,
                    "student-id": str(owner_id),
                },
            )
        except ClientError as e:
            logger.error(
                f"S3 upload failed: storage_key={storage_key}, "
                f"error={_error_code(e)}, message={e}"
            )
            raise StorageError(f"Failed to upload file: {_error_code(e)}")

        logger.info(
            f"Uploaded file: storage_key={storage_key}, "
            f"sha256={sha256_hex}, size={size_bytes}, mime_type={mime_type}"
        )
        return StoredFile(
            storage_key=storage_key,
            sha256=sha256_hex,
            size_bytes=size_bytes,
            mime_type=mime_type,
        )

    async def retrieve_file(self, storage_key: str) -> BinaryIO:
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
        except ClientError as e:
            if _error_code(e) in ("NoSuchKey", "404"):
                logger.warning(f"File not found: storage_key={storage_key}")
                raise FileNotFoundError(f"File not found: {storage_key}")
            logger.error(
                f"S3 retrieval failed: storage_key={storage_key}, "
                f"error={_error_code(e)}"
            )
            raise StorageError(f"Failed to retrieve file: {_error_code(e)}")

        return response["Body"]

    async def delete_file(self, storage_key: str) -> bool:
        if not await self.file_exists(storage_key):
            logger.info(f"File not found for deletion: storage_key={storage_key}")
            return False

        try:
            self.s3_client.delete_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
        except ClientError as e:
            logger.error(
                f"S3 deletion failed: storage_key={storage_key}, "
                f"error={_error_code(e)}"
            )
            raise StorageError(f"Failed to delete file: {_error_code(e)}")

        logger.info(f"Deleted file: storage_key={storage_key}")
        return True

    async def file_exists(self, storage_key: str) -> bool:
        """HEAD the object; any client error other than 404 is raised."""
        try:
            self.s3_client.head_object(
                Bucket=self.bucket_name,
                Key=storage_key,
            )
            return True
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to check file: {_error_code(e)}")

    async def generate_presigned_url(
        self,
        storage_key: str,
        expires_in_seconds: int = 3600,
        download_name: Optional[str] = None,
    ) -> str:
        if not await self.file_exists(storage_key):
            raise FileNotFoundError(f"File not found: {storage_key}")

        params = {"Bucket": self.bucket_name, "Key": storage_key}
        if download_name:
            params["ResponseContentDisposition"] = f'attachment; filename="{download_name}"'

        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params=params,
                ExpiresIn=expires_in_seconds,
            )
        except ClientError as e:
            logger.error(
                f"Presigned URL generation failed: storage_key={storage_key}, "
                f"error={_error_code(e)}"
            )
            raise StorageError(f"Failed to generate presigned URL: {_error_code(e)}")

    async def verify_bucket_exists(self) -> bool:
        """Fail fast on startup when the bucket is missing.

        Raises:
            StorageError: If the bucket does not exist or cannot be reached
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            if _error_code(e) == "404":
                raise StorageError(
                    f"Bucket '{self.bucket_name}' does not exist. "
                    f"Create it first or update MINIO_BUCKET environment variable."
                )
            raise StorageError(f"Failed to verify bucket: {_error_code(e)}")
        return True
