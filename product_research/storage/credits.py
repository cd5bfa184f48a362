"""Daily accumulator of third-party API credits."""

from datetime import datetime, timezone
from typing import Callable, Optional

from product_research.storage.cache import CacheBackend
from product_research.utils.logger import get_logger

logger = get_logger(__name__)

DAY_SECONDS = 86400


class CreditCounter:
    """
    Per-UTC-day credit total.

    Each day gets its own key (``pr_credits_YYYY-MM-DD``), so the count resets
    at UTC midnight. Writes are additive increments against the backend.
    """

    def __init__(
        self,
        backend: CacheBackend,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _key(self) -> str:
        return f"pr_credits_{self._clock().astimezone(timezone.utc):%Y-%m-%d}"

    async def add(self, credits: float) -> float:
        if credits <= 0:
            return await self.used_today()
        total = await self.backend.increment(self._key(), float(credits), DAY_SECONDS)
        logger.debug("Credits recorded", credits=credits, total_today=total)
        return total

    async def used_today(self) -> float:
        value = await self.backend.get(self._key())
        return float(value or 0)
