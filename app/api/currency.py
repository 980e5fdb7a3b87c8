"""Currency API — latest rates, conversion, historical series."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.errors import CurrencyError
from app.schemas import ConversionRequest, ConversionResponse, ExchangeRate, HistoricalRate
from app.services.auth import ROLE_ADMIN, ROLE_USER, require_roles
from app.services.currency import CurrencyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/currency", tags=["currency"])


def get_currency_service(request: Request) -> CurrencyService:
    return request.app.state.currency_service


def _to_http(exc: CurrencyError, fallback: str) -> HTTPException:
    """Map a domain error to an HTTP error, hiding non-public detail."""
    if exc.public:
        logger.warning(f"{exc.kind.value}: {exc.message}")
        return HTTPException(exc.status_code, exc.message)
    logger.error(f"{exc.kind.value}: {exc.message}", exc_info=exc)
    return HTTPException(exc.status_code, fallback)


@router.get(
    "/latest/{base_currency}",
    response_model=ExchangeRate,
    dependencies=[Depends(require_roles(ROLE_USER, ROLE_ADMIN))],
)
async def latest_rates(
    base_currency: str,
    service: CurrencyService = Depends(get_currency_service),
):
    """Latest exchange rates for a base currency (User or Admin)."""
    try:
        return await service.get_latest_rates(base_currency)
    except CurrencyError as exc:
        raise _to_http(exc, "An error occurred while fetching exchange rates.")


@router.post(
    "/convert",
    response_model=ConversionResponse,
    dependencies=[Depends(require_roles(ROLE_ADMIN))],
)
async def convert(
    data: ConversionRequest,
    service: CurrencyService = Depends(get_currency_service),
):
    """Convert an amount between two currencies (Admin only)."""
    logger.info(f"Conversion request: {data.amount} {data.from_currency} to {data.to_currency}")
    try:
        return await service.convert_currency(data)
    except CurrencyError as exc:
        raise _to_http(exc, "An error occurred while converting currency.")


@router.get(
    "/history",
    response_model=list[HistoricalRate],
    dependencies=[Depends(require_roles(ROLE_ADMIN))],
)
async def history(
    base_currency: str = Query(..., alias="baseCurrency"),
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, alias="pageSize"),
    service: CurrencyService = Depends(get_currency_service),
):
    """Historical daily rates over an inclusive date range, paginated (Admin only)."""
    if start_date > end_date:
        logger.warning(f"Start date later than end date: {start_date} > {end_date}")
        raise HTTPException(400, "Start date cannot be later than end date.")
    try:
        rates = await service.get_historical_rates(base_currency, start_date, end_date, page, page_size)
    except CurrencyError as exc:
        raise _to_http(exc, "An error occurred while fetching historical rates.")

    if not rates:
        raise HTTPException(404, "No historical data found for the given page.")
    logger.info(f"Returning {len(rates)} historical rates for {base_currency} (page {page})")
    return rates
