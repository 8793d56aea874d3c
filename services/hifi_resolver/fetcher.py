"""Fetch-with-fallback engine.

A request is sent to one proxy at a time, in the order the server pool
hands out. Each answer is classified into an ``AttemptOutcome``; retryable
outcomes move on to the next server, a client error stops the sweep at
once, and a success short-circuits it. Servers are never queried in
parallel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import httpx

from services.common.sidecar_runtime_utils import JSON_ACCEPT_HEADER
from services.hifi_resolver.errors import (
    ExhaustionFault,
    RequestFault,
    ResourceNotFound,
    TransientServerFault,
)
from services.hifi_resolver.models import AttemptOutcome, RequestAttempt
from services.hifi_resolver.server_pool import ServerPool

log = logging.getLogger(__name__)

_HTML_PREFIXES = ("<!doctype", "<html")
_DETAIL_PREVIEW_CHARS = 200


def _looks_like_html(text: str) -> bool:
    return text.lstrip()[:16].lower().startswith(_HTML_PREFIXES)


def _preview(text: str) -> str:
    return text.strip()[:_DETAIL_PREVIEW_CHARS]


def classify_response(server: str, endpoint: str, status: int, text: str) -> RequestAttempt:
    """Map one HTTP answer to exactly one outcome."""

    def attempt(outcome: AttemptOutcome, payload: Any = None, detail: str = "") -> RequestAttempt:
        return RequestAttempt(server, endpoint, outcome, status=status, payload=payload, detail=detail)

    if 200 <= status < 300:
        if _looks_like_html(text):
            return attempt(AttemptOutcome.SERVICE_UNAVAILABLE, detail="server returned an HTML page instead of JSON")
        try:
            payload = json.loads(text)
        except ValueError:
            return attempt(AttemptOutcome.MALFORMED_PAYLOAD, detail=f"invalid JSON: {_preview(text)!r}")
        return attempt(AttemptOutcome.SUCCESS, payload=payload)

    if status == 429:
        return attempt(AttemptOutcome.RATE_LIMITED, detail="rate limited")
    if status == 402:
        return attempt(AttemptOutcome.SERVICE_UNAVAILABLE, detail="server out of service")
    if status == 404:
        return attempt(AttemptOutcome.NOT_FOUND, detail="not found")
    if 400 <= status < 500:
        return attempt(AttemptOutcome.CLIENT_ERROR, detail=_preview(text))
    if status >= 500:
        return attempt(AttemptOutcome.SERVER_ERROR, detail="server error")
    return attempt(AttemptOutcome.SERVICE_UNAVAILABLE, detail=f"unexpected status {status}")


def _fault_for(attempt: RequestAttempt) -> TransientServerFault:
    return TransientServerFault(
        attempt.outcome,
        attempt.server,
        attempt.endpoint,
        status=attempt.status,
        message=attempt.detail,
    )


class FallbackFetcher:
    """Issues a GET against the pool until one server gives usable JSON.

    Example:
        fetcher = FallbackFetcher(pool, client, timeout=15.0)
        payload = await fetcher.fetch("/album/", params={"id": 123})
    """

    def __init__(self, pool: ServerPool, client: httpx.AsyncClient, timeout: float = 15.0) -> None:
        self._pool = pool
        self._client = client
        self._timeout = timeout

    async def _attempt(
        self,
        server: str,
        endpoint: str,
        params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
    ) -> RequestAttempt:
        url = f"{server}{endpoint}"
        request_headers = {"Accept": JSON_ACCEPT_HEADER, **(headers or {})}
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params, headers=request_headers),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return RequestAttempt(server, endpoint, AttemptOutcome.TIMEOUT, detail=f"no answer within {self._timeout:g}s")
        except httpx.RequestError as err:
            return RequestAttempt(server, endpoint, AttemptOutcome.NETWORK_ERROR, detail=str(err) or type(err).__name__)
        return classify_response(server, endpoint, response.status_code, response.text)

    async def fetch(
        self,
        endpoint: str,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        """Return the first successful JSON payload for ``endpoint``.

        Raises:
            RequestFault: a server rejected the request (4xx other than 402/404/429).
            ResourceNotFound: every server answered 404.
            ExhaustionFault: the sweep ended without success.
        """
        order = self._pool.pick_order()
        last_fault: Optional[TransientServerFault] = None
        not_found = 0

        for server in order:
            log.debug("Trying %s%s params=%s", server, endpoint, dict(params or {}))
            attempt = await self._attempt(server, endpoint, params, headers)

            if attempt.outcome is AttemptOutcome.SUCCESS:
                return attempt.payload

            if attempt.outcome is AttemptOutcome.CLIENT_ERROR:
                log.warning("Server %s rejected %s with HTTP %s", server, endpoint, attempt.status)
                raise RequestFault(attempt.status or 400, server, endpoint, attempt.detail)

            if attempt.outcome is AttemptOutcome.NOT_FOUND:
                not_found += 1

            last_fault = _fault_for(attempt)
            log.warning("Server %s failed for %s: %s; trying next", server, endpoint, last_fault)

        if not_found == len(order):
            raise ResourceNotFound("Resource", endpoint)
        raise ExhaustionFault(endpoint, last_fault, attempts=len(order))
