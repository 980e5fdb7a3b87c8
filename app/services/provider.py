"""Frankfurter exchange-rate provider client.

One GET per call, routed through the resilience policy. Responses are
classified into domain errors before they reach the currency service.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import ValidationError

from app.errors import InvalidCurrencyError, NoDataError, UpstreamUnavailableError
from app.schemas import ExchangeRate, HistoricalRate, ProviderPayload
from app.services.resilience import ResiliencePolicy, TransientUpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.frankfurter.app"

# Statuses worth retrying; 404 means the currency code is unknown.
_TRANSIENT_STATUSES = {408, 429}


class FrankfurterClient:
    """Rate provider backed by api.frankfurter.app."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        resilience: Optional[ResiliencePolicy] = None,
        base_url: str = DEFAULT_BASE_URL,
    ):
        self._http = http_client
        self._resilience = resilience or ResiliencePolicy()
        self.base_url = base_url.rstrip("/")

    async def fetch_latest(self, base_currency: str) -> ExchangeRate:
        payload = await self._get("latest", base_currency)
        return ExchangeRate(base_currency=payload.base, date=payload.date, rates=payload.rates)

    async def fetch_for_date(self, base_currency: str, day: date) -> HistoricalRate:
        payload = await self._get(day.isoformat(), base_currency)
        return HistoricalRate(
            base_currency=payload.base,
            date=payload.date or day,
            rates=payload.rates,
        )

    async def _get(self, path: str, base_currency: str) -> ProviderPayload:
        url = f"{self.base_url}/{path}"

        async def attempt() -> ProviderPayload:
            return await self._request(url, base_currency)

        return await self._resilience.call(attempt, description=f"GET /{path}?base={base_currency}")

    async def _request(self, url: str, base_currency: str) -> ProviderPayload:
        try:
            resp = await self._http.get(url, params={"base": base_currency})
        except httpx.TransportError as exc:
            raise TransientUpstreamError(f"{type(exc).__name__}: {exc}") from exc

        if resp.status_code == 404:
            logger.warning(f"Provider returned 404 for base currency {base_currency}")
            raise InvalidCurrencyError(base_currency)
        if resp.status_code >= 500 or resp.status_code in _TRANSIENT_STATUSES:
            raise TransientUpstreamError(f"HTTP {resp.status_code} from {url}")
        if not resp.is_success:
            raise UpstreamUnavailableError(f"Unexpected HTTP {resp.status_code} from {url}")

        try:
            payload = ProviderPayload.model_validate(resp.json(parse_float=Decimal))
        except (ValueError, ValidationError) as exc:
            raise UpstreamUnavailableError(f"Malformed provider response from {url}: {exc}") from exc

        if not payload.rates:
            raise NoDataError(f"No exchange rates found for {base_currency}.")
        return payload
