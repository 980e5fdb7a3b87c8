"""Currency Exchange Gateway — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import auth_routes, currency
from app.config import get_settings
from app.logging_config import setup_logging
from app.middleware.request_logging import RequestLoggingMiddleware
from app.services.currency import build_currency_service
from app.tracing import setup_tracing

VERSION = "1.0.0"

logger = logging.getLogger(__name__)

# Fails fast with ConfigMissingError when the JWT settings are absent.
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings)
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        app.state.currency_service = build_currency_service(settings, client)
        logger.info(f"{settings.app_name} started; provider {settings.provider_base_url}")
        yield
    if tracer_provider is not None:
        tracer_provider.shutdown()
    logger.info(f"{settings.app_name} stopped")


app = FastAPI(
    title=settings.app_name,
    version=VERSION,
    description="JWT-protected gateway to an upstream currency exchange-rate provider, "
                "with caching, retries and a circuit breaker",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

tracer_provider = setup_tracing(app, settings) if settings.tracing_enabled else None


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred."})


# Register routers
app.include_router(auth_routes.router, prefix="/api")
app.include_router(currency.router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok", "service": settings.app_name, "version": VERSION}
