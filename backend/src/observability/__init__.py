"""Observability module for MentorLink.

Provides structured logging, request correlation and metrics. Health checks
live in observability.health, which depends on the realtime feed and is
imported directly by the router.
"""

from .logging_config import configure_logging, get_logger
from .metrics import (
    documents_uploaded_total,
    documents_reviewed_total,
    documents_deleted_total,
    realtime_events_published_total,
    realtime_subscribers,
    realtime_subscriber_overflows_total,
)
from .request_id import request_id_var, get_request_id, set_request_id, generate_request_id, accept_request_id
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    # Metrics
    "documents_uploaded_total",
    "documents_reviewed_total",
    "documents_deleted_total",
    "realtime_events_published_total",
    "realtime_subscribers",
    "realtime_subscriber_overflows_total",
    # Request ID
    "request_id_var",
    "get_request_id",
    "set_request_id",
    "generate_request_id",
    "accept_request_id",
    # Middleware
    "RequestIDMiddleware",
]
