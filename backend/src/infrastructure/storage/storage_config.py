"""Storage configuration for S3-compatible object storage.

MinIO is used in development and AWS S3 in production; both go through the
same adapter.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class StorageConfig:
    """Connection settings for the document bucket.

    Attributes:
        endpoint_url: 'http://localhost:9000' for MinIO, None for AWS S3
        access_key: S3 access key ID
        secret_key: S3 secret access key
        bucket_name: Bucket holding submitted documents
        region: AWS region
        use_ssl: Whether the endpoint is reached over HTTPS
    """
    endpoint_url: Optional[str]
    access_key: str
    secret_key: str
    bucket_name: str
    region: str = "us-east-1"
    use_ssl: bool = True


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def load_storage_config_from_env() -> StorageConfig:
    """Load storage configuration from environment variables.

    Environment Variables:
        MINIO_ENDPOINT: host:port of MinIO; unset means AWS S3
        MINIO_ROOT_USER / MINIO_ROOT_PASSWORD: credentials (required)
        MINIO_BUCKET: bucket name (default 'mentorlink-documents')
        MINIO_USE_SSL: 'true' for HTTPS (default false with an endpoint)
        AWS_REGION: region (default 'us-east-1')

    Raises:
        ValueError: If credentials are missing
    """
    endpoint = os.getenv("MINIO_ENDPOINT")
    use_ssl = _env_flag("MINIO_USE_SSL", "false" if endpoint else "true")

    endpoint_url = None
    if endpoint:
        protocol = "https" if use_ssl else "http"
        endpoint_url = f"{protocol}://{endpoint}"

    access_key = os.getenv("MINIO_ROOT_USER")
    secret_key = os.getenv("MINIO_ROOT_PASSWORD")
    if not access_key or not secret_key:
        raise ValueError(
            "Missing required storage credentials. "
            "Set MINIO_ROOT_USER and MINIO_ROOT_PASSWORD environment variables."
        )

    return StorageConfig(
        endpoint_url=endpoint_url,
        access_key=access_key,
        secret_key=secret_key,
        bucket_name=os.getenv("MINIO_BUCKET", "mentorlink-documents"),
        region=os.getenv("AWS_REGION", "us-east-1"),
        use_ssl=use_ssl,
    )


def validate_storage_config(config: StorageConfig) -> None:
    """Raise ValueError if the configuration cannot work."""
    if not config.access_key:
        raise ValueError("Storage access_key is required")

    if not config.secret_key:
        raise ValueError("Storage secret_key is required")

    if not config.bucket_name:
        raise ValueError("Storage bucket_name is required")

    if config.endpoint_url:
        if not config.endpoint_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Invalid endpoint_url: {config.endpoint_url}. "
                "Must start with http:// or https://"
            )
    elif not config.region:
        raise ValueError("AWS region is required when using S3 (MINIO_ENDPOINT not set)")
