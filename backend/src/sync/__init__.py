"""Client-side document list synchronization.

Keeps a local, newest-first collection of DocumentRecord in step with the
server's realtime change feed and derives filtered views from it.

Example:
    async with MentorLinkClient("https://mentorlink.example.edu") as client:
        await client.login("mentor@example.edu", "secret-pass1")
        synchronizer = ListSynchronizer(client)
        async with synchronizer:
            await synchronizer.refresh()
            view = FilteredDocumentView(synchronizer, FilterCriteria(status="pending"))
            print(view.stats, [d.file_name for d in view.documents])
"""

from .records import FilterCriteria, ALL, DocumentRecord, ChangeEvent, ChangeType
from .filter_engine import FilterEngine, summarize
from .ports import DocumentSource, ChangeSubscription
from .list_synchronizer import ListSynchronizer
from .view import FilteredDocumentView
from .api_client import MentorLinkClient, RemoteOperationError

__all__ = [
    "ALL",
    "FilterCriteria",
    "DocumentRecord",
    "ChangeEvent",
    "ChangeType",
    "FilterEngine",
    "summarize",
    "DocumentSource",
    "ChangeSubscription",
    "ListSynchronizer",
    "FilteredDocumentView",
    "MentorLinkClient",
    "RemoteOperationError",
]
