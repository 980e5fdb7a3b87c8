"""Domain error taxonomy.

Service operations raise one of the ``CurrencyError`` variants below; the
HTTP layer turns the ``kind`` tag into a status code via ``STATUS_BY_KIND``.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_CURRENCY = "invalid_currency"
    UNSUPPORTED_CURRENCY = "unsupported_currency"
    RATE_NOT_FOUND = "rate_not_found"
    INVALID_DATE_RANGE = "invalid_date_range"
    INVALID_PAGE = "invalid_page"
    NO_DATA = "no_data"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CURRENCY: 400,
    ErrorKind.UNSUPPORTED_CURRENCY: 400,
    ErrorKind.RATE_NOT_FOUND: 400,
    ErrorKind.INVALID_DATE_RANGE: 400,
    ErrorKind.INVALID_PAGE: 400,
    ErrorKind.NO_DATA: 404,
    ErrorKind.UPSTREAM_UNAVAILABLE: 500,
}


class CurrencyError(Exception):
    """Base class for every failure a currency operation can report."""

    kind: ErrorKind
    # Whether ``message`` may be shown to API callers as-is.
    public: bool = True

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


class InvalidCurrencyError(CurrencyError):
    kind = ErrorKind.INVALID_CURRENCY

    def __init__(self, code: str):
        super().__init__(f"Invalid currency: '{code}' is not a valid currency code.")
        self.code = code


class UnsupportedCurrencyError(CurrencyError):
    kind = ErrorKind.UNSUPPORTED_CURRENCY

    def __init__(self, codes: list[str]):
        super().__init__(f"Currency not supported: {', '.join(codes)}.")
        self.codes = codes


class RateNotFoundError(CurrencyError):
    kind = ErrorKind.RATE_NOT_FOUND

    def __init__(self, from_currency: str, to_currency: str):
        super().__init__(f"Conversion rate not found for {from_currency} to {to_currency}.")
        self.from_currency = from_currency
        self.to_currency = to_currency


class InvalidDateRangeError(CurrencyError):
    kind = ErrorKind.INVALID_DATE_RANGE


class InvalidPageError(CurrencyError):
    kind = ErrorKind.INVALID_PAGE


class NoDataError(CurrencyError):
    kind = ErrorKind.NO_DATA


class UpstreamUnavailableError(CurrencyError):
    """Transport failure, unexpected upstream status, or open circuit."""

    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    public = False


class AuthInvalidError(Exception):
    """Unknown user or wrong password."""


class ConfigMissingError(RuntimeError):
    """Required configuration is absent; the process must not start."""

    def __init__(self, names: list[str]):
        super().__init__(
            "Missing required configuration: " + ", ".join(n.upper() for n in names)
        )
        self.names = names
