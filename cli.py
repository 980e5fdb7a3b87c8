"""Currency Exchange Gateway CLI.

Usage:
    python -m cli serve --port 8000
    python -m cli token admin admin
    python -m cli rates latest USD
    python -m cli rates convert 100 usd eur
    python -m cli rates history USD 2024-01-01 2024-01-07 --page 1 --page-size 5
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation

import httpx
import uvicorn

from app.config import get_settings
from app.errors import AuthInvalidError, CurrencyError
from app.logging_config import setup_logging
from app.schemas import ConversionRequest
from app.services.auth import create_access_token, get_user_store
from app.services.currency import build_currency_service


def main():
    parser = argparse.ArgumentParser(
        prog="fxgw",
        description="Currency Exchange Gateway CLI",
    )
    sub = parser.add_subparsers(dest="command", help="Top-level command")

    # ── Server ───────────────────────────────────────────
    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve.add_argument("--port", type=int, default=8000, help="Bind port")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    # ── Token ────────────────────────────────────────────
    token = sub.add_parser("token", help="Issue a JWT for a configured user")
    token.add_argument("username")
    token.add_argument("password")

    # ── Rates ────────────────────────────────────────────
    rates_parser = sub.add_parser("rates", help="Query the rate provider directly")
    rates_sub = rates_parser.add_subparsers(dest="action")

    latest = rates_sub.add_parser("latest", help="Latest rates for a base currency")
    latest.add_argument("base", help="Base currency code")

    convert = rates_sub.add_parser("convert", help="Convert an amount")
    convert.add_argument("amount", help="Amount to convert")
    convert.add_argument("from_currency", help="Source currency")
    convert.add_argument("to_currency", help="Target currency")

    history = rates_sub.add_parser("history", help="Historical daily rates")
    history.add_argument("base", help="Base currency code")
    history.add_argument("start", type=date.fromisoformat, help="Start date (YYYY-MM-DD)")
    history.add_argument("end", type=date.fromisoformat, help="End date (YYYY-MM-DD)")
    history.add_argument("--page", type=int, default=1)
    history.add_argument("--page-size", type=int, default=50)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    handlers = {
        "serve": handle_serve,
        "token": handle_token,
        "rates": handle_rates,
    }
    handler = handlers.get(args.command)
    if handler:
        handler(args)
    else:
        parser.print_help()


# ── Command Handlers ────────────────────────────────────

def handle_serve(args):
    uvicorn.run("app.main:app", host=args.host, port=args.port, reload=args.reload)


def handle_token(args):
    try:
        role = get_user_store().authenticate(args.username, args.password)
    except AuthInvalidError as e:
        print(f"❌ {e}")
        sys.exit(1)
    print(create_access_token({"sub": args.username, "role": role}))


def handle_rates(args):
    if args.action not in ("latest", "convert", "history"):
        print("Usage: fxgw rates {latest|convert|history}")
        return

    settings = get_settings()
    setup_logging(settings, log_file="")
    try:
        result = asyncio.run(_run_rates(args, settings))
    except CurrencyError as e:
        print(f"❌ {e.kind.value}: {e.message}")
        sys.exit(1)
    print(json.dumps(result, indent=2, default=str))


async def _run_rates(args, settings):
    async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
        svc = build_currency_service(settings, client)

        if args.action == "latest":
            rates = await svc.get_latest_rates(args.base)
            return rates.model_dump(mode="json")

        if args.action == "convert":
            try:
                amount = Decimal(args.amount)
            except InvalidOperation:
                print(f"Not a number: {args.amount}")
                sys.exit(1)
            req = ConversionRequest(amount=amount, from_currency=args.from_currency, to_currency=args.to_currency)
            resp = await svc.convert_currency(req)
            return resp.model_dump(mode="json")

        series = await svc.get_historical_rates(args.base, args.start, args.end, args.page, args.page_size)
        return [r.model_dump(mode="json") for r in series]


if __name__ == "__main__":
    main()
