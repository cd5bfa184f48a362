"""
Bookmarked competitor URLs, kept per subject across research runs.

Lists preserve insertion order and hold each URL once; removing a URL that
is not bookmarked is a no-op.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path

from product_research.utils.logger import get_logger

logger = get_logger(__name__)


class BookmarkStore(ABC):
    """Per-subject bookmark lists behind one lock per store."""

    def __init__(self):
        self._lock = asyncio.Lock()

    @abstractmethod
    def _load(self) -> dict[str, list[str]]:
        """Return every subject's bookmark list."""

    @abstractmethod
    def _save(self, bookmarks: dict[str, list[str]]) -> None:
        """Persist every subject's bookmark list."""

    async def for_subject(self, subject_id: str) -> list[str]:
        async with self._lock:
            return list(self._load().get(str(subject_id), []))

    async def add(self, subject_id: str, url: str) -> list[str]:
        """Bookmark ``url`` for the subject and return the updated list."""
        async with self._lock:
            bookmarks = self._load()
            urls = bookmarks.setdefault(str(subject_id), [])
            if url not in urls:
                urls.append(url)
                self._save(bookmarks)
                logger.info("Competitor bookmarked", subject_id=subject_id, total=len(urls))
            return list(urls)

    async def remove(self, subject_id: str, url: str) -> list[str]:
        """Drop ``url`` from the subject's bookmarks and return the updated list."""
        async with self._lock:
            bookmarks = self._load()
            urls = bookmarks.get(str(subject_id), [])
            if url not in urls:
                return list(urls)
            remaining = [u for u in urls if u != url]
            if remaining:
                bookmarks[str(subject_id)] = remaining
            else:
                bookmarks.pop(str(subject_id), None)
            self._save(bookmarks)
            logger.info("Bookmark removed", subject_id=subject_id, total=len(remaining))
            return remaining


class MemoryBookmarkStore(BookmarkStore):

    def __init__(self):
        super().__init__()
        self._bookmarks: dict[str, list[str]] = {}

    def _load(self) -> dict[str, list[str]]:
        return self._bookmarks

    def _save(self, bookmarks: dict[str, list[str]]) -> None:
        self._bookmarks = bookmarks


class JsonFileBookmarkStore(BookmarkStore):
    """A single JSON object mapping subject ids to URL lists."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)

    def _load(self) -> dict[str, list[str]]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Bookmarks file unreadable, starting empty", path=str(self.path))
            return {}
        return {
            str(subject_id): [u for u in urls if isinstance(u, str)]
            for subject_id, urls in raw.items()
            if isinstance(urls, list)
        }

    def _save(self, bookmarks: dict[str, list[str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(bookmarks, indent=2), encoding="utf-8")
        tmp.replace(self.path)
