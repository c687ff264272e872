"""Realtime change feed for document rows.

Document mutations are published to an in-process ChangeFeed; API clients
follow it over Server-Sent Events at /api/v1/realtime/documents.
"""

from .events import ChangeEvent, ChangeType
from .change_feed import ChangeFeed, FeedScope, FeedSubscription

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "ChangeFeed",
    "FeedScope",
    "FeedSubscription",
]
