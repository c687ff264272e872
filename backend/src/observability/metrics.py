"""Prometheus metrics for MentorLink.

Exposed at /metrics by observability.router.
"""

from prometheus_client import Counter, Gauge

# Submissions
documents_uploaded_total = Counter(
    "mentorlink_documents_uploaded_total",
    "Total number of document uploads",
    ["mime_type", "status"]  # status: success|rejected|error
)

documents_reviewed_total = Counter(
    "mentorlink_documents_reviewed_total",
    "Total number of completed reviews",
    ["decision", "reviewer_role"]  # decision: approved|rejected
)

documents_deleted_total = Counter(
    "mentorlink_documents_deleted_total",
    "Total number of deleted documents"
)

# Realtime change feed
realtime_events_published_total = Counter(
    "mentorlink_realtime_events_published_total",
    "Change events published to the realtime feed",
    ["event"]  # insert|update|delete
)

realtime_subscribers = Gauge(
    "mentorlink_realtime_subscribers",
    "Currently open realtime subscriptions"
)

realtime_subscriber_overflows_total = Counter(
    "mentorlink_realtime_subscriber_overflows_total",
    "Subscriptions closed because their event buffer filled up"
)
