"""
Response cache for third-party API calls.

Keys are content hashes of ``(subject_id, kind, discriminator)``. Plain
entries are replaced on write; mapping entries (exchange rates) are merged so
concurrent writers fetching different subsets never drop each other's data.

Features:
    - TTL-based expiration per entry
    - Pluggable backends (in-process dict, JSON file)
    - Read-merge-write for mapping entries
    - Additive counters (used by the credit counter)

Example:
    >>> cache = ResponseCache(MemoryCacheBackend(), default_ttl=86400)
    >>> key = ResponseCache.make_key("42", "search", '"Mouse" price buy')
    >>> await cache.set(key, payload)
    >>> await cache.merge_mapping("fx_rates:USD", {"EUR": 0.92})
"""

import asyncio
import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from product_research.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


# =============================================================================
# Cache Entry
# =============================================================================

@dataclass
class CacheEntry:
    """Cache entry with expiration."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "expires_at": self.expires_at}


# =============================================================================
# Backends
# =============================================================================

class CacheBackend(ABC):
    """Keyed storage with per-entry expiry."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or time.time
        self._lock = asyncio.Lock()

    @abstractmethod
    def _load(self) -> dict[str, CacheEntry]:
        """Return the live entry table."""

    @abstractmethod
    def _save(self, entries: dict[str, CacheEntry]) -> None:
        """Persist the entry table."""

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entries = self._load()
            entry = entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del entries[key]
                self._save(entries)
                return None
            return entry.value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        async with self._lock:
            entries = self._load()
            entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
            self._save(entries)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            entries = self._load()
            if key not in entries:
                return False
            del entries[key]
            self._save(entries)
            return True

    async def merge(self, key: str, items: dict[str, Any], ttl: int) -> dict[str, Any]:
        """Union ``items`` into the mapping stored at ``key`` and return the result."""
        async with self._lock:
            entries = self._load()
            now = self._clock()
            entry = entries.get(key)
            existing = {}
            if entry is not None and not entry.is_expired(now) and isinstance(entry.value, dict):
                existing = dict(entry.value)
            existing.update(items)
            entries[key] = CacheEntry(value=existing, expires_at=now + ttl)
            self._save(entries)
            return existing

    async def increment(self, key: str, amount: float, ttl: int) -> float:
        """Add ``amount`` to a numeric entry, creating it if absent or expired."""
        async with self._lock:
            entries = self._load()
            now = self._clock()
            entry = entries.get(key)
            current = 0.0
            if entry is not None and not entry.is_expired(now):
                current = float(entry.value or 0)
            total = current + amount
            entries[key] = CacheEntry(value=total, expires_at=now + ttl)
            self._save(entries)
            return total

    async def clear(self) -> None:
        async with self._lock:
            self._save({})


class MemoryCacheBackend(CacheBackend):
    """Process-local backend."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__(clock)
        self._entries: dict[str, CacheEntry] = {}

    def _load(self) -> dict[str, CacheEntry]:
        return self._entries

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        self._entries = entries


class FileCacheBackend(CacheBackend):
    """
    JSON-file backend shared by separate CLI invocations.

    Expired entries are dropped whenever the file is rewritten.
    """

    def __init__(self, path: Path, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.path = Path(path)

    def _load(self) -> dict[str, CacheEntry]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Cache file unreadable, starting empty", path=str(self.path))
            return {}
        return {
            key: CacheEntry(value=item.get("value"), expires_at=float(item.get("expires_at", 0)))
            for key, item in raw.items()
        }

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        now = self._clock()
        live = {k: e.to_dict() for k, e in entries.items() if not e.is_expired(now)}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(live), encoding="utf-8")
        tmp.replace(self.path)


# =============================================================================
# Response Cache
# =============================================================================

class ResponseCache:
    """Content-addressed cache for search, extract and exchange-rate responses."""

    def __init__(self, backend: CacheBackend, default_ttl: int = 86400, prefix: str = "pr_cache_"):
        self.backend = backend
        self.default_ttl = default_ttl
        self.prefix = prefix
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(subject_id: str, kind: str, discriminator: str = "") -> str:
        """Deterministic hash of the subject, response kind and discriminator."""
        key_data = json.dumps([str(subject_id), kind, discriminator])
        return hashlib.sha256(key_data.encode()).hexdigest()

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        value = await self.backend.get(self._full_key(key))
        if value is None:
            self._misses += 1
        else:
            self._hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.backend.set(self._full_key(key), value, ttl or self.default_ttl)

    async def delete(self, key: str) -> bool:
        return await self.backend.delete(self._full_key(key))

    async def merge_mapping(
        self,
        key: str,
        items: dict[str, Any],
        ttl: Optional[int] = None,
    ) -> dict[str, Any]:
        """Union new pairs into a cached mapping without replacing it."""
        return await self.backend.merge(self._full_key(key), items, ttl or self.default_ttl)

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total > 0 else 0,
        }
