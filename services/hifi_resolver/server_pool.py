"""Proxy server pool and per-request ordering."""

from __future__ import annotations

import random
from collections.abc import Iterable, Sequence
from typing import Optional, Protocol

from services.hifi_resolver.errors import EmptyServerPoolError


class ChoiceSource(Protocol):
    def choice(self, seq: Sequence[str]) -> str: ...


def pick_order(servers: Sequence[str], rng: ChoiceSource) -> list[str]:
    """Return every server exactly once, a random one promoted to the front.

    The promoted server spreads load across the pool; the others keep their
    configured order and form the fallback path.
    """
    if not servers:
        raise EmptyServerPoolError()
    first = rng.choice(servers)
    return [first] + [server for server in servers if server != first]


class ServerPool:
    """Immutable, de-duplicated set of proxy base URLs."""

    def __init__(self, servers: Iterable[str], rng: Optional[ChoiceSource] = None) -> None:
        unique: dict[str, None] = {}
        for server in servers:
            cleaned = server.strip().rstrip("/")
            if cleaned:
                unique.setdefault(cleaned, None)
        if not unique:
            raise EmptyServerPoolError()
        self._servers = tuple(unique)
        self._rng = rng if rng is not None else random.Random()

    @property
    def servers(self) -> tuple[str, ...]:
        return self._servers

    def __len__(self) -> int:
        return len(self._servers)

    def pick_order(self) -> list[str]:
        """Order in which the servers are tried for one request."""
        return pick_order(self._servers, self._rng)

    def __repr__(self) -> str:
        return f"ServerPool({len(self._servers)} servers)"
