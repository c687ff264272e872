"""Global FastAPI dependencies shared by several routers.

- get_storage_adapter: object storage for document files
- get_change_feed: the application's realtime change feed

Tests override both through app.dependency_overrides.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status

from domain.documents.ports.object_storage_port import ObjectStoragePort
from infrastructure.storage.s3_storage_adapter import S3StorageAdapter, StorageError
from infrastructure.storage.storage_config import (
    load_storage_config_from_env,
    validate_storage_config,
)
from realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

# Storage adapter singleton (initialized on first use)
_storage_adapter: Optional[S3StorageAdapter] = None


def get_storage_adapter() -> ObjectStoragePort:
    """Get or create the S3 storage adapter.

    Raises:
        HTTPException 500: If storage configuration is invalid
    """
    global _storage_adapter

    if _storage_adapter is None:
        try:
            config = load_storage_config_from_env()
            validate_storage_config(config)
            _storage_adapter = S3StorageAdapter(
                endpoint_url=config.endpoint_url,
                access_key=config.access_key,
                secret_key=config.secret_key,
                bucket_name=config.bucket_name,
                region=config.region,
            )
        except (ValueError, StorageError) as e:
            logger.error(f"Failed to initialize storage adapter: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Storage configuration error: {str(e)}",
            )

    return _storage_adapter


def get_change_feed(request: Request) -> ChangeFeed:
    """The ChangeFeed created in the application lifespan."""
    return request.app.state.change_feed
