"""
Currency normalization for competitor profiles.

Exchange rates come from the Frankfurter API and are cached per base
currency as a ``{code: rate}`` map. Lookups are cache-first and only the
missing codes are fetched, in one batched request; new rates are merged into
the cached map rather than replacing it.

Rates are quoted as "foreign units per base unit", so a foreign price is
converted with ``price / rate``.
"""

from typing import Iterable, Optional

from product_research.config.settings import Settings
from product_research.models.schemas import CompetitorProfile, ConversionStatus
from product_research.services.http_client import ResilientHttpClient
from product_research.storage.cache import ResponseCache
from product_research.utils.errors import AppError
from product_research.utils.logger import get_logger
from product_research.utils.retry import RetryPolicy

logger = get_logger(__name__)

RATES_SUBJECT = "global"
RATES_KIND = "fx_rates"


class ExchangeRateClient:
    """Cache-first exchange-rate lookup."""

    def __init__(
        self,
        settings: Settings,
        cache: ResponseCache,
        http: Optional[ResilientHttpClient] = None,
    ):
        self.settings = settings
        self.cache = cache
        self.http = http or ResilientHttpClient(
            RetryPolicy.from_settings(settings),
            service_name="Frankfurter",
        )

    @staticmethod
    def cache_key(base: str) -> str:
        return ResponseCache.make_key(RATES_SUBJECT, RATES_KIND, base.upper())

    async def get_rates(self, base: str, currencies: Iterable[str]) -> dict[str, float]:
        """
        Rates for ``currencies`` against ``base``.

        Currencies that cannot be resolved are simply absent from the result;
        a failed fetch falls back to whatever is cached.
        """
        base = base.upper()
        wanted = sorted({c.upper() for c in currencies if c and c.upper() != base})
        if not wanted:
            return {}

        key = self.cache_key(base)
        cached = await self.cache.get(key) or {}
        missing = [c for c in wanted if c not in cached]

        if missing:
            fetched = await self._fetch(base, missing)
            if fetched:
                cached = await self.cache.merge_mapping(
                    key, fetched, ttl=self.settings.fx_cache_ttl_seconds
                )

        return {c: float(cached[c]) for c in wanted if c in cached}

    async def _fetch(self, base: str, currencies: list[str]) -> dict[str, float]:
        url = self.settings.fx_base_url.rstrip("/") + "/latest"
        try:
            data = await self.http.request_json(
                "GET",
                url,
                params={"from": base, "to": ",".join(currencies)},
                timeout=self.settings.fx_timeout_seconds,
            )
        except AppError as e:
            logger.warning(
                "Exchange rate fetch failed",
                base=base,
                currencies=currencies,
                error=e.message,
            )
            return {}

        rates = data.get("rates")
        if not isinstance(rates, dict):
            logger.warning("Exchange rate response missing rates", base=base)
            return {}

        valid = {
            code.upper(): float(rate)
            for code, rate in rates.items()
            if isinstance(rate, (int, float)) and rate > 0
        }
        logger.info("Exchange rates fetched", base=base, currencies=sorted(valid))
        return valid

    async def close(self) -> None:
        await self.http.disconnect()


class CurrencyNormalizer:
    """Converts every profile's prices into the store currency."""

    def __init__(self, rates: ExchangeRateClient, store_currency: str):
        self.rates = rates
        self.store_currency = store_currency.upper()

    async def normalize(self, profiles: list[CompetitorProfile]) -> list[CompetitorProfile]:
        """
        Return profiles with conversion fields populated.

        Profiles whose currency has no available rate are marked ``failed``
        and keep their raw prices in the converted fields.
        """
        foreign = {
            p.currency.upper()
            for p in profiles
            if p.currency and p.currency.upper() != self.store_currency
        }
        rates = await self.rates.get_rates(self.store_currency, foreign) if foreign else {}

        normalized = [self.convert(p, rates) for p in profiles]
        failed = sum(1 for p in normalized if p.conversion_status == ConversionStatus.FAILED)
        if failed:
            logger.warning(
                "Some prices could not be converted",
                failed=failed,
                store_currency=self.store_currency,
            )
        return normalized

    def convert(self, profile: CompetitorProfile, rates: dict[str, float]) -> CompetitorProfile:
        currency = (profile.currency or "").upper()
        update = {"store_currency": self.store_currency}

        if not currency or currency == self.store_currency:
            update.update(
                converted_price=profile.current_price,
                converted_original_price=profile.original_price,
                conversion_status=ConversionStatus.SAME_CURRENCY,
            )
        elif rates.get(currency, 0) > 0:
            rate = rates[currency]
            original = profile.original_price or 0
            update.update(
                converted_price=round(profile.current_price / rate, 2),
                converted_original_price=round(original / rate, 2) if original > 0 else None,
                conversion_status=ConversionStatus.CONVERTED,
            )
        else:
            update.update(
                converted_price=profile.current_price,
                converted_original_price=profile.original_price,
                conversion_status=ConversionStatus.FAILED,
            )

        return profile.model_copy(update=update)
