"""Value types used by the synchronizer and filter engine."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from documents.schemas import DocumentRecord
from domain.documents.document_status import DocumentStatus
from realtime.events import ChangeEvent, ChangeType

ALL = "all"


def _as_date(value: Optional[Union[date, datetime]]) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    return value


@dataclass(frozen=True)
class FilterCriteria:
    """What the user asked to see.

    Attributes:
        query: Case-insensitive substring of the file name ("" matches all)
        category: Category name, or "all"
        status: "pending" / "approved" / "rejected", or "all"
        date_from: Inclusive lower bound on the creation date
        date_to: Inclusive upper bound on the creation date

    Date bounds are calendar dates; a datetime bound is reduced to its date.
    """
    query: str = ""
    category: str = ALL
    status: str = ALL
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, "date_from", _as_date(self.date_from))
        object.__setattr__(self, "date_to", _as_date(self.date_to))
        if isinstance(self.status, DocumentStatus):
            object.__setattr__(self, "status", self.status.value)

    @property
    def is_default(self) -> bool:
        return self == FilterCriteria()

    def to_params(self) -> dict:
        """Query parameters understood by GET /api/v1/documents."""
        params = {}
        if self.query.strip():
            params["query"] = self.query
        if self.category != ALL:
            params["category"] = self.category
        if self.status != ALL:
            params["status"] = self.status
        if self.date_from:
            params["date_from"] = self.date_from.isoformat()
        if self.date_to:
            params["date_to"] = self.date_to.isoformat()
        return params


__all__ = [
    "ALL",
    "FilterCriteria",
    "DocumentRecord",
    "DocumentStatus",
    "ChangeEvent",
    "ChangeType",
]
