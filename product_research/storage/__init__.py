"""Storage module: response cache, credit counter, report store, catalog and bookmarks."""

from product_research.storage.cache import (
    CacheBackend,
    CacheEntry,
    FileCacheBackend,
    MemoryCacheBackend,
    ResponseCache,
)
from product_research.storage.bookmarks import BookmarkStore, JsonFileBookmarkStore, MemoryBookmarkStore
from product_research.storage.catalog import InMemoryCatalog, JsonFileCatalog, SubjectCatalog
from product_research.storage.credits import CreditCounter
from product_research.storage.report_store import (
    InMemoryReportStore,
    JsonFileReportStore,
    ReportStore,
)

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "FileCacheBackend",
    "MemoryCacheBackend",
    "ResponseCache",
    "CreditCounter",
    "SubjectCatalog",
    "InMemoryCatalog",
    "JsonFileCatalog",
    "ReportStore",
    "InMemoryReportStore",
    "JsonFileReportStore",
    "BookmarkStore",
    "MemoryBookmarkStore",
    "JsonFileBookmarkStore",
]
