#!/usr/bin/env python3
"""Monitoring / healthcheck script for the bill relay.

Checks the availability of:
    - FastAPI application (/health)
    - PostgreSQL
    - LINE Messaging API (/v2/bot/info, with the channel access token)

Outputs a JSON array of ``{service, status, latency_ms}`` objects.

Exit codes:
    0 -- all services healthy
    1 -- one or more services unhealthy
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
import time
from typing import Any

import asyncpg  # type: ignore[import-untyped]
import httpx

from billrelay.config import settings
from billrelay.integrations.line_client import LineClient

# ---------------------------------------------------------------------------
# Configuration -- all overridable via environment variables
# ---------------------------------------------------------------------------

APP_URL = os.environ.get("APP_URL", f"http://localhost:{settings.PORT}")

# Timeout in seconds for each individual check.
CHECK_TIMEOUT = float(os.environ.get("HEALTHCHECK_TIMEOUT", "5"))


def _pg_dsn(url: str) -> str:
    """Normalise a SQLAlchemy-style URL to a plain ``postgresql://`` DSN."""
    for prefix in ("postgresql+asyncpg://", "postgresql+psycopg2://"):
        if url.startswith(prefix):
            url = "postgresql://" + url[len(prefix):]
    return url


def _result(service: str, start: float, healthy: bool, error: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {
        "service": service,
        "status": "healthy" if healthy else "unhealthy",
        "latency_ms": round((time.monotonic() - start) * 1000, 2),
    }
    if error is not None:
        result["error"] = error
    return result


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------

async def check_app(client: httpx.AsyncClient) -> dict[str, Any]:
    """Hit the FastAPI /health endpoint."""
    start = time.monotonic()
    try:
        resp = await client.get(f"{APP_URL}/health", timeout=CHECK_TIMEOUT)
        return _result("app", start, resp.status_code == 200)
    except Exception as exc:
        return _result("app", start, False, str(exc))


async def check_postgres() -> dict[str, Any]:
    """Open a connection and run ``SELECT 1``."""
    start = time.monotonic()
    try:
        conn = await asyncio.wait_for(
            asyncpg.connect(_pg_dsn(settings.DATABASE_URL)), timeout=CHECK_TIMEOUT
        )
        try:
            await conn.fetchval("SELECT 1")
        finally:
            await conn.close()
        return _result("postgres", start, True)
    except Exception as exc:
        return _result("postgres", start, False, str(exc))


async def check_line() -> dict[str, Any]:
    """Fetch the bot info, which also validates the access token."""
    start = time.monotonic()
    line = LineClient(timeout=CHECK_TIMEOUT)
    try:
        await line.get_bot_info()
        return _result("line", start, True)
    except Exception as exc:
        return _result("line", start, False, str(exc))
    finally:
        await line.aclose()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

async def run_checks() -> list[dict[str, Any]]:
    """Run all health checks concurrently and return results."""
    async with httpx.AsyncClient() as client:
        results = await asyncio.gather(
            check_app(client),
            check_postgres(),
            check_line(),
        )
    return list(results)


async def main() -> int:
    results = await run_checks()

    json.dump(results, sys.stdout, indent=2)
    sys.stdout.write("\n")

    all_healthy = all(r["status"] == "healthy" for r in results)
    return 0 if all_healthy else 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
