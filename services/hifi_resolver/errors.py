"""Typed failures raised by the resolver engine.

Callers should treat ``ExhaustionFault`` as retryable later and
``RequestFault`` as not retryable without changing the input.
"""

from __future__ import annotations

from typing import Optional

from services.hifi_resolver.models import AttemptOutcome


class HifiResolverError(Exception):
    """Base class for every resolver failure."""


class EmptyServerPoolError(HifiResolverError, ValueError):
    """Raised when an engine is configured without any proxy server."""

    def __init__(self) -> None:
        super().__init__("Server pool is empty; configure at least one proxy server")


class TransientServerFault(HifiResolverError):
    """A single server could not answer; another server may."""

    def __init__(
        self,
        outcome: AttemptOutcome,
        server: str,
        endpoint: str,
        status: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.outcome = outcome
        self.server = server
        self.endpoint = endpoint
        self.status = status
        detail = message or outcome.value
        if status is not None:
            detail = f"{detail} (HTTP {status})"
        super().__init__(f"{server}{endpoint}: {detail}")


class RequestFault(HifiResolverError):
    """Upstream rejected the request itself (4xx other than 402/404/429)."""

    def __init__(self, status: int, server: str, endpoint: str, detail: str = "") -> None:
        self.status = status
        self.server = server
        self.endpoint = endpoint
        self.detail = detail
        super().__init__(f"HTTP {status} from {server}{endpoint}: {detail or 'request rejected'}")


class ResourceNotFound(HifiResolverError):
    """Every server agreed the resource does not exist."""

    def __init__(self, resource: str, identifier: object = None) -> None:
        self.resource = resource
        self.identifier = identifier
        if identifier is None:
            super().__init__(f"{resource} not found")
        else:
            super().__init__(f"{resource} {identifier} not found")


class ExhaustionFault(HifiResolverError):
    """A full sweep of the pool ended without a usable response."""

    def __init__(
        self,
        endpoint: str,
        last_fault: Optional[TransientServerFault] = None,
        attempts: int = 0,
    ) -> None:
        self.endpoint = endpoint
        self.last_fault = last_fault
        self.attempts = attempts
        if last_fault is None:
            message = f"All servers failed for {endpoint}"
        else:
            message = f"All {attempts} servers failed for {endpoint}; last error: {last_fault}"
        super().__init__(message)


class StreamExtractionError(HifiResolverError):
    """A quality tier answered, but no playable stream could be extracted."""

    def __init__(self, track_id: object, quality: str, reason: str) -> None:
        self.track_id = track_id
        self.quality = quality
        self.reason = reason
        super().__init__(f"Track {track_id} at {quality}: {reason}")
