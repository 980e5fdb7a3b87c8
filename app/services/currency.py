"""Currency service: cache-first rate lookups, conversion and history.

Latest rates and historical series are cached; conversions always ask the
provider for fresh rates and never touch the cache.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from app.config import Settings
from app.errors import (
    InvalidCurrencyError,
    InvalidDateRangeError,
    InvalidPageError,
    NoDataError,
    RateNotFoundError,
    UnsupportedCurrencyError,
)
from app.schemas import ConversionRequest, ConversionResponse, ExchangeRate, HistoricalRate
from app.services.cache import CacheBackend, MemoryCache
from app.services.provider import FrankfurterClient
from app.services.resilience import CircuitBreaker, ResiliencePolicy

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Z]{3}$")

UNSUPPORTED_CURRENCIES = frozenset({"TRY", "PLN", "THB", "MXN"})


class RateProvider(Protocol):
    async def fetch_latest(self, base_currency: str) -> ExchangeRate: ...

    async def fetch_for_date(self, base_currency: str, day: date) -> HistoricalRate: ...


@dataclass
class CurrencyServiceOptions:
    latest_ttl: timedelta = timedelta(minutes=5)
    history_ttl: timedelta = timedelta(minutes=10)
    history_concurrency: int = 5
    history_max_days: int = 366
    unsupported: frozenset[str] = field(default_factory=lambda: UNSUPPORTED_CURRENCIES)


def normalize_code(code: str) -> str:
    """Uppercase a currency code, rejecting anything but three letters."""
    normalized = (code or "").strip().upper()
    if not _CODE_RE.match(normalized):
        raise InvalidCurrencyError(code)
    return normalized


def paginate(series: list[HistoricalRate], page: int, page_size: int) -> list[HistoricalRate]:
    start = (page - 1) * page_size
    return series[start:start + page_size]


def iter_days(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


class CurrencyService:
    def __init__(
        self,
        provider: RateProvider,
        cache: CacheBackend,
        options: Optional[CurrencyServiceOptions] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.options = options or CurrencyServiceOptions()

    async def get_latest_rates(self, base_currency: str) -> ExchangeRate:
        base = normalize_code(base_currency)
        cache_key = f"latest-{base}"

        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit: latest exchange rates for {base}")
            return cached

        logger.info(f"Cache miss: fetching latest exchange rates for {base}")
        rates = await self.provider.fetch_latest(base)
        if not rates.rates:
            raise NoDataError(f"No exchange rates found for {base}.")

        await self.cache.set(cache_key, rates, self.options.latest_ttl)
        logger.info(f"Cached latest exchange rates for {base}")
        return rates

    async def convert_currency(self, request: ConversionRequest) -> ConversionResponse:
        from_c = normalize_code(request.from_currency)
        to_c = normalize_code(request.to_currency)

        blocked = [c for c in (from_c, to_c) if c in self.options.unsupported]
        if blocked:
            logger.warning(f"Unsupported currency in conversion request: {from_c} -> {to_c}")
            raise UnsupportedCurrencyError(sorted(set(blocked)))

        # Deliberately uncached: conversions use fresh rates.
        latest = await self.provider.fetch_latest(from_c)

        if to_c == from_c:
            rate = Decimal(1)
        elif to_c in latest.rates:
            rate = latest.rates[to_c]
        else:
            logger.warning(f"Conversion rate not found for {from_c} to {to_c}")
            raise RateNotFoundError(from_c, to_c)

        converted = request.amount * rate
        logger.info(f"Converted {request.amount} {from_c} to {converted} {to_c}")
        return ConversionResponse(
            amount=converted,
            from_currency=from_c,
            to_currency=to_c,
            rate=rate,
        )

    async def get_historical_rates(
        self,
        base_currency: str,
        start_date: date,
        end_date: date,
        page: int = 1,
        page_size: int = 50,
    ) -> list[HistoricalRate]:
        base = normalize_code(base_currency)
        if start_date > end_date:
            raise InvalidDateRangeError("Start date cannot be later than end date.")
        span = (end_date - start_date).days + 1
        if span > self.options.history_max_days:
            raise InvalidDateRangeError(
                f"Date range spans {span} days; at most {self.options.history_max_days} allowed."
            )
        if page < 1 or page_size < 1:
            raise InvalidPageError("page and pageSize must be positive.")

        cache_key = f"historical-{base}-{start_date.isoformat()}-{end_date.isoformat()}"
        cached = await self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache hit: historical rates for {base} from {start_date} to {end_date}")
            return paginate(cached, page, page_size)

        logger.info(f"Cache miss: fetching historical rates for {base} from {start_date} to {end_date}")
        series = await self._fetch_series(base, start_date, end_date)
        if not series:
            logger.warning(f"No historical rates found for {base} from {start_date} to {end_date}")
            raise NoDataError("No historical exchange rates available for the given dates.")

        await self.cache.set(cache_key, series, self.options.history_ttl)
        logger.info(f"Cached {len(series)} historical rates for {base}")
        return paginate(series, page, page_size)

    async def _fetch_series(self, base: str, start: date, end: date) -> list[HistoricalRate]:
        semaphore = asyncio.Semaphore(self.options.history_concurrency)

        async def fetch_day(day: date) -> Optional[tuple[date, HistoricalRate]]:
            async with semaphore:
                try:
                    return day, await self.provider.fetch_for_date(base, day)
                except NoDataError:
                    logger.warning(f"No exchange rate found for {base} on {day}")
                    return None

        days = list(iter_days(start, end))
        # The first day settles alone so a half-open breaker sees one trial
        # before the rest fan out.
        results = [await fetch_day(days[0])]
        tasks = [asyncio.ensure_future(fetch_day(d)) for d in days[1:]]
        try:
            results += await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
        found = sorted((r for r in results if r is not None), key=lambda r: r[0])
        return [rate for _, rate in found]


def build_currency_service(settings: Settings, http_client: httpx.AsyncClient) -> CurrencyService:
    """Wire provider, resilience policy and cache from settings."""
    resilience = ResiliencePolicy(
        breaker=CircuitBreaker(
            failure_threshold=settings.breaker_failure_threshold,
            reset_timeout=settings.breaker_reset_seconds,
        ),
        retry_attempts=settings.retry_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
    )
    provider = FrankfurterClient(http_client, resilience, base_url=settings.provider_base_url)
    options = CurrencyServiceOptions(
        latest_ttl=timedelta(seconds=settings.latest_cache_ttl_seconds),
        history_ttl=timedelta(seconds=settings.history_cache_ttl_seconds),
        history_concurrency=settings.history_concurrency,
        history_max_days=settings.history_max_days,
        unsupported=frozenset(c.upper() for c in settings.unsupported_currencies),
    )
    return CurrencyService(provider, MemoryCache(), options)
