"""Configuration."""

from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings

from app.errors import ConfigMissingError

_REQUIRED = ("jwt_secret_key", "jwt_issuer", "jwt_audience")


class Settings(BaseSettings):
    app_name: str = "Currency-Exchange-Gateway"
    debug: bool = False

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/gateway.log"
    log_retention_days: int = 7

    # Tracing
    tracing_enabled: bool = True
    tracing_service_name: str = "CurrencyConverterAPI"

    # Auth (required, no defaults)
    jwt_secret_key: str
    jwt_issuer: str
    jwt_audience: str
    jwt_expire_minutes: int = 60

    # Demo credentials: username -> password
    auth_users: dict[str, str] = {"admin": "admin", "testuser1": "testuser1"}
    admin_users: list[str] = ["admin"]

    # Upstream provider
    provider_base_url: str = "https://api.frankfurter.app"
    provider_timeout_seconds: float = 10.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 2.0
    breaker_failure_threshold: int = 5
    breaker_reset_seconds: float = 30.0

    # Currency service
    latest_cache_ttl_seconds: int = 300
    history_cache_ttl_seconds: int = 600
    history_concurrency: int = 5
    history_max_days: int = 366
    unsupported_currencies: set[str] = {"TRY", "PLN", "THB", "MXN"}

    cors_origins: list[str] = ["*"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()
    except ValidationError as exc:
        missing = sorted(
            str(err["loc"][0]) for err in exc.errors() if err["loc"] and err["loc"][0] in _REQUIRED
        )
        if missing:
            raise ConfigMissingError(missing) from exc
        raise
    empty = [name for name in _REQUIRED if not getattr(settings, name).strip()]
    if empty:
        raise ConfigMissingError(empty)
    return settings
