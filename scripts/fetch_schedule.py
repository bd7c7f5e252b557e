#!/usr/bin/env python3
"""
Fetch the remote schedule once and log it.

Usage:
    python3 scripts/fetch_schedule.py [--env .env]

Environment variables (a .env file in the working directory is loaded first):
    SCHEDULE_URL    - Endpoint to GET (required)
    SCHEDULE_TOKEN  - Bearer token (required)
    SCHEDULE_COOKIE - Cookie header value (optional)

One request, no retry, no caching. Token acquisition and refresh are handled elsewhere.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Mapping
from pathlib import Path

import aiohttp
import dotenv

from roomba_bridge.logging_abstraction import get_logger

logger = get_logger("fetch_schedule")

REQUEST_TIMEOUT_SECONDS = 30


class ScheduleFetchError(Exception):
    """The schedule endpoint could not be reached or did not return JSON."""


def build_headers(token: str, cookie: str | None = None) -> dict[str, str]:
    headers = {
        "Accept": "application/json, text/plain, */*",
        "Authorization": f"bearer {token}",
    }
    if cookie:
        headers["Cookie"] = cookie
    return headers


async def fetch_schedule(
    url: str,
    token: str,
    cookie: str | None = None,
    *,
    session: aiohttp.ClientSession | None = None,
) -> object:
    """GET the schedule and return the decoded JSON body.

    Raises:
        ScheduleFetchError: transport failure, non-2xx status, or a body that is not JSON

    """
    lp = "fetch_schedule:"
    owns_session = session is None
    http = session or aiohttp.ClientSession()
    try:
        async with http.get(
            url,
            headers=build_headers(token, cookie),
            timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
        ) as response:
            response.raise_for_status()
            return await response.json(content_type=None)
    except aiohttp.ClientResponseError as e:
        logger.error("%s schedule endpoint answered %s", lp, e.status)
        raise ScheduleFetchError(f"HTTP {e.status}: {e.message}") from e
    except aiohttp.ClientError as e:
        logger.error("%s request failed: %s", lp, e)
        raise ScheduleFetchError(str(e)) from e
    except ValueError as e:
        logger.error("%s response was not JSON: %s", lp, e)
        raise ScheduleFetchError("response was not JSON") from e
    finally:
        if owns_session:
            await http.close()


def read_settings(environ: Mapping[str, str] = os.environ) -> tuple[str, str, str | None]:
    """Return (url, token, cookie), raising ScheduleFetchError if url or token is missing."""
    url = environ.get("SCHEDULE_URL", "")
    token = environ.get("SCHEDULE_TOKEN", "")
    missing = [name for name, value in (("SCHEDULE_URL", url), ("SCHEDULE_TOKEN", token)) if not value]
    if missing:
        raise ScheduleFetchError(f"missing environment variable(s): {', '.join(missing)}")
    return url, token, environ.get("SCHEDULE_COOKIE") or None


async def run() -> int:
    url, token, cookie = read_settings()
    schedule = await fetch_schedule(url, token, cookie)
    logger.info("Fetched schedule", extra={"schedule": schedule})
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch the remote schedule once and log it")
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    args = parser.parse_args(argv)
    if args.env:
        _ = dotenv.load_dotenv(args.env.expanduser().resolve(), override=True)
    else:
        _ = dotenv.load_dotenv()

    try:
        return asyncio.run(run())
    except ScheduleFetchError as e:
        logger.error("Schedule fetch failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
