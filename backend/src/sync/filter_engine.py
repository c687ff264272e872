"""Pure filtering of document collections.

FilterEngine.apply never mutates its input and keeps the relative order of
the records that survive. Each rule is a small predicate; a record is kept
only when every predicate holds.
"""

from typing import Callable, Iterable, List, Sequence

from documents.schemas import DocumentStats
from domain.documents.document_status import DocumentStatus
from .records import ALL, DocumentRecord, FilterCriteria

Predicate = Callable[[DocumentRecord, FilterCriteria], bool]


def matches_query(record: DocumentRecord, criteria: FilterCriteria) -> bool:
    needle = criteria.query.strip().lower()
    if not needle:
        return True
    return needle in record.file_name.lower()


def matches_category(record: DocumentRecord, criteria: FilterCriteria) -> bool:
    if criteria.category == ALL:
        return True
    return record.category is not None and record.category.name == criteria.category


def matches_status(record: DocumentRecord, criteria: FilterCriteria) -> bool:
    if criteria.status == ALL:
        return True
    return record.status.value == criteria.status


def matches_date_range(record: DocumentRecord, criteria: FilterCriteria) -> bool:
    created = record.created_at.date()
    if criteria.date_from is not None and created < criteria.date_from:
        return False
    if criteria.date_to is not None and created > criteria.date_to:
        return False
    return True


class FilterEngine:
    """Projection from (records, criteria) to the records to display.

    An inverted date range simply yields nothing.

    Example:
        >>> FilterEngine.apply(records, FilterCriteria(status="approved"))
    """

    predicates: Sequence[Predicate] = (
        matches_query,
        matches_category,
        matches_status,
        matches_date_range,
    )

    @classmethod
    def apply(cls, records: Iterable[DocumentRecord], criteria: FilterCriteria) -> List[DocumentRecord]:
        if criteria.is_default:
            return list(records)
        return [
            record for record in records
            if all(predicate(record, criteria) for predicate in cls.predicates)
        ]


def summarize(records: Iterable[DocumentRecord]) -> DocumentStats:
    """Count records by review status."""
    stats = {"total": 0, "pending": 0, "approved": 0, "rejected": 0}
    for record in records:
        stats["total"] += 1
        stats[DocumentStatus(record.status).value] += 1
    return DocumentStats(**stats)
