"""Operational endpoints: Prometheus metrics, health and readiness.

Mounted at the application root (not under /api/v1) so probes do not need
a token.
"""

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from database import get_db
from dependencies import get_change_feed
from realtime.change_feed import ChangeFeed
from .health import (
    HealthStatus,
    check_change_feed_health,
    check_database_health,
    check_object_storage_health,
    check_redis_health,
    get_overall_health,
)

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health", summary="Component health")
def health_check(
    db: Session = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """Status of the database, document bucket, Redis and realtime feed.

    Returns 503 when a required component is unhealthy.
    """
    components = {
        "database": check_database_health(db),
        "object_storage": check_object_storage_health(),
        "redis": check_redis_health(),
        "realtime": check_change_feed_health(feed),
    }
    overall = get_overall_health(components)

    return JSONResponse(
        content={
            "status": overall.value,
            "components": {name: c.to_dict() for name, c in components.items()},
        },
        status_code=503 if overall == HealthStatus.UNHEALTHY else 200,
    )


@router.get("/ready", summary="Readiness probe")
def readiness_check(db: Session = Depends(get_db)):
    """Ready once the database answers; uploads additionally need the bucket."""
    database = check_database_health(db)
    if database.status != HealthStatus.HEALTHY:
        return JSONResponse(content={"status": "not_ready", "reason": database.message}, status_code=503)
    return {"status": "ready"}
