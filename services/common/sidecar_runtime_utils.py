"""Shared runtime helpers for Python sidecar services."""

from __future__ import annotations

import os
from typing import Optional

import httpx

DEFAULT_CONNECT_TIMEOUT = 10.0
JSON_ACCEPT_HEADER = "application/json"


def env_int(name: str, default: str) -> int:
    """Parse an integer env var using a string default value."""
    return int(os.getenv(name, default))


def env_float(name: str, default: str) -> float:
    """Parse a float env var using a string default value."""
    return float(os.getenv(name, default))


def env_str(name: str, default: str) -> str:
    """Read a string env var, treating blank values as unset."""
    value = os.getenv(name, "").strip()
    return value or default


def env_list(name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    """Parse a comma-separated env var; blank entries are dropped."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return tuple(default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def request_timeout(total: float) -> httpx.Timeout:
    """Per-request timeout; connecting never gets more than the total budget."""
    return httpx.Timeout(total, connect=min(total, DEFAULT_CONNECT_TIMEOUT))


def build_resolver_client(
    timeout: float,
    user_agent: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build an AsyncClient that asks every upstream for JSON."""
    headers = {"Accept": JSON_ACCEPT_HEADER}
    if user_agent is not None:
        headers["User-Agent"] = user_agent
    client_kwargs = {
        "timeout": request_timeout(timeout),
        "headers": headers,
        "follow_redirects": True,
    }
    if transport is not None:
        client_kwargs["transport"] = transport
    return httpx.AsyncClient(**client_kwargs)
