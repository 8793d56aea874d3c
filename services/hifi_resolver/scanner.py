"""Structural discovery of entities inside arbitrarily shaped payloads.

Proxy responses do not follow a fixed schema: the same search can come back
as a bare ``{"items": [...]}`` page, nested under ``tracks`` or wrapped in a
``data`` envelope. Instead of per-entity traversal code, every lookup here
walks the payload once, depth-first, and tests nodes against a *signature*:
a predicate over a dict describing which fields an entity carries.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Callable, Optional

Signature = Callable[[dict], bool]


def has_fields(*names: str) -> Signature:
    """Signature matching dicts where every named field is present and truthy."""

    def signature(node: dict) -> bool:
        return all(node.get(name) for name in names)

    signature.__name__ = f"has_fields({', '.join(names)})"
    return signature


def _without(signature: Signature, *names: str) -> Signature:
    def narrowed(node: dict) -> bool:
        return signature(node) and not any(node.get(name) for name in names)

    return narrowed


TRACK_SIGNATURE = has_fields("title", "duration")
STREAM_TRACK_SIGNATURE = has_fields("album", "artist", "duration")
STREAM_INFO_SIGNATURE = has_fields("manifest")
ALBUM_SIGNATURE = has_fields("id", "title", "cover")
ARTIST_SIGNATURE = has_fields("id", "name")
ARTIST_PROFILE_SIGNATURE = has_fields("id", "name", "type")
ARTIST_ALBUM_SIGNATURE = _without(ALBUM_SIGNATURE, "duration")
ARTIST_TRACK_SIGNATURE = has_fields("id", "title", "duration", "album")


def _children(node: Any) -> list:
    if isinstance(node, dict):
        return list(node.values())
    if isinstance(node, list):
        return list(node)
    return []


def _walk(payload: Any) -> Iterator[dict]:
    """Yield every dict in pre-order, each object at most once."""
    visited: set[int] = set()
    stack = [payload]
    while stack:
        node = stack.pop()
        if not isinstance(node, (dict, list)) or id(node) in visited:
            continue
        visited.add(id(node))
        if isinstance(node, dict):
            yield node
        # Reverse so the first key / index is visited first.
        stack.extend(reversed(_children(node)))


def iter_entities(payload: Any, signature: Signature) -> Iterator[dict]:
    """Every dict in ``payload`` satisfying ``signature``, first-encountered first."""
    for node in _walk(payload):
        if signature(node):
            yield node


def find_entity(payload: Any, signature: Signature) -> Optional[dict]:
    """The first dict satisfying ``signature``, or None."""
    return next(iter_entities(payload, signature), None)


def _is_section(signature: Signature) -> Signature:
    def section(node: dict) -> bool:
        items = node.get("items")
        if not isinstance(items, list) or not items:
            return False
        first = items[0]
        return isinstance(first, dict) and signature(first)

    return section


def find_entity_section(payload: Any, signature: Signature) -> Optional[dict]:
    """Locate the paged section whose ``items`` hold entities of one kind.

    A section is a dict with a non-empty ``items`` list whose first element
    satisfies ``signature``. Returns None when nothing matches; callers
    treat that as an empty result rather than an error.
    """
    return find_entity(payload, _is_section(signature))


def as_entries(payload: Any) -> list:
    """Flatten a response into the list of top-level entries it carries.

    Some proxies answer with a list of entries, some with a single object,
    and newer ones wrap either form in a ``{"data": ...}`` envelope.
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and "data" in payload and isinstance(payload["data"], (dict, list)):
        return as_entries(payload["data"])
    if payload is None:
        return []
    return [payload]
