"""Pydantic schemas for the gateway API."""

import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import AliasChoices, BaseModel, Field, PlainSerializer

# Exact in memory, plain JSON numbers on the wire.
JsonDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ── Rates ────────────────────────────────────────────────
class ExchangeRate(BaseModel):
    base_currency: str
    date: Optional[datetime.date] = None
    rates: dict[str, JsonDecimal]

    model_config = {"frozen": True}


class HistoricalRate(BaseModel):
    base_currency: str
    date: datetime.date
    rates: dict[str, JsonDecimal]

    model_config = {"frozen": True}


class ProviderPayload(BaseModel):
    """Raw body returned by the upstream provider."""
    base: str
    date: Optional[datetime.date] = None
    rates: dict[str, Decimal] = Field(default_factory=dict)


# ── Conversion ───────────────────────────────────────────
class ConversionRequest(BaseModel):
    amount: Decimal
    from_currency: str = Field(
        validation_alias=AliasChoices("from_currency", "fromCurrency", "from"),
    )
    to_currency: str = Field(
        validation_alias=AliasChoices("to_currency", "toCurrency", "to"),
    )


class ConversionResponse(BaseModel):
    amount: JsonDecimal
    from_currency: str = ""
    to_currency: str = ""
    rate: Optional[JsonDecimal] = None


# ── Auth ─────────────────────────────────────────────────
class TokenRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int


class UserInfo(BaseModel):
    username: str
    role: str
