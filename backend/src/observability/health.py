"""Component checks behind /health and /ready.

The database and the document bucket are required; Redis only throttles
logins, so losing it degrades the service instead of failing it. The
realtime feed is reported for visibility and is always healthy while the
process runs.
"""

import time
from enum import Enum
from typing import Dict, Optional
from dataclasses import dataclass, field

import boto3
import redis
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from infrastructure.storage.storage_config import load_storage_config_from_env
from realtime.change_feed import ChangeFeed
from .logging_config import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# Worst first
_SEVERITY = [HealthStatus.UNHEALTHY, HealthStatus.DEGRADED, HealthStatus.HEALTHY]


@dataclass
class ComponentHealth:
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    details: Dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {"status": self.status.value, "message": self.message, "latency_ms": self.latency_ms}
        if self.details:
            data.update(self.details)
        return data


class _Timer:
    def __enter__(self):
        self.started = time.perf_counter()
        return self

    def __exit__(self, *exc_info):
        self.ms = round((time.perf_counter() - self.started) * 1000, 2)
        return False


def check_database_health(db: Session) -> ComponentHealth:
    try:
        with _Timer() as timer:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return ComponentHealth(HealthStatus.UNHEALTHY, f"Database unreachable: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Database reachable", timer.ms)


def check_redis_health() -> ComponentHealth:
    if settings.RATE_LIMIT_DISABLED:
        return ComponentHealth(HealthStatus.HEALTHY, "Login rate limiting disabled")
    try:
        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        with _Timer() as timer:
            client.ping()
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")
        return ComponentHealth(HealthStatus.DEGRADED, f"Login rate limiting unavailable: {e}")
    return ComponentHealth(HealthStatus.HEALTHY, "Redis reachable", timer.ms)


def check_object_storage_health() -> ComponentHealth:
    """HEAD the bucket that holds submitted documents."""
    try:
        config = load_storage_config_from_env()
        client = boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
        )
        with _Timer() as timer:
            client.head_bucket(Bucket=config.bucket_name)
    except (ValueError, BotoCoreError, ClientError) as e:
        logger.error(f"Object storage health check failed: {e}")
        return ComponentHealth(HealthStatus.UNHEALTHY, f"Document bucket unavailable: {e}")
    return ComponentHealth(
        HealthStatus.HEALTHY,
        "Document bucket reachable",
        timer.ms,
        {"bucket": config.bucket_name},
    )


def check_change_feed_health(feed: ChangeFeed) -> ComponentHealth:
    return ComponentHealth(
        HealthStatus.HEALTHY,
        "Realtime feed running",
        details={"subscribers": feed.subscriber_count, "queue_size": feed.queue_size},
    )


def get_overall_health(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """The worst status among the components (HEALTHY when there are none)."""
    statuses = {c.status for c in components.values()}
    for status in _SEVERITY:
        if status in statuses:
            return status
    return HealthStatus.HEALTHY
