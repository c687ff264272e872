"""Filtered, cached projection of a synchronized document list."""

from typing import List, Optional, Tuple

from documents.schemas import DocumentStats
from .filter_engine import FilterEngine, summarize
from .list_synchronizer import ListSynchronizer
from .records import DocumentRecord, FilterCriteria


class FilteredDocumentView:
    """What a dashboard shows: the filtered list plus status counts.

    The filtered list is recomputed only when the collection or the criteria
    change. Stats always cover the whole unfiltered collection.
    """

    def __init__(self, synchronizer: ListSynchronizer, criteria: Optional[FilterCriteria] = None):
        self._synchronizer = synchronizer
        self._criteria = criteria or FilterCriteria()
        self._cache_key: Optional[Tuple[int, FilterCriteria]] = None
        self._cache: List[DocumentRecord] = []

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    def set_criteria(self, criteria: FilterCriteria) -> None:
        self._criteria = criteria

    @property
    def documents(self) -> List[DocumentRecord]:
        key = (self._synchronizer.version, self._criteria)
        if key != self._cache_key:
            self._cache = FilterEngine.apply(self._synchronizer.records, self._criteria)
            self._cache_key = key
        return list(self._cache)

    @property
    def stats(self) -> DocumentStats:
        return summarize(self._synchronizer.records)
