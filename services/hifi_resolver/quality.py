"""Quality cascade for stream resolution.

Tiers are tried from the requested one downwards, each through the
fetch-with-fallback engine. A tier that cannot produce a playable URL is
abandoned for the next lower one; a tier is never retried and the cascade
never climbs back up.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from services.common.logging_utils import with_log_context
from services.hifi_resolver.errors import (
    ExhaustionFault,
    HifiResolverError,
    ResourceNotFound,
    StreamExtractionError,
    TransientServerFault,
)
from services.hifi_resolver.fetcher import FallbackFetcher
from services.hifi_resolver.manifest import decode_manifest
from services.hifi_resolver.models import EntityId, QualityTier, StreamResolution
from services.hifi_resolver.normalize import normalize_track
from services.hifi_resolver.scanner import (
    STREAM_INFO_SIGNATURE,
    STREAM_TRACK_SIGNATURE,
    as_entries,
    find_entity,
)

log = logging.getLogger(__name__)

TRACK_ENDPOINT = "/track/"
DIRECT_URL_FIELDS = ("OriginalTrackUrl", "originalTrackUrl")

# Failures that only condemn the current tier.
_TIER_LOCAL_ERRORS = (
    TransientServerFault,
    ExhaustionFault,
    ResourceNotFound,
    StreamExtractionError,
)


def _first_entry(entries: list, signature) -> Optional[dict]:
    for entry in entries:
        if isinstance(entry, dict) and signature(entry):
            return entry
    return None


def _direct_url(entries: list) -> Optional[str]:
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        for field in DIRECT_URL_FIELDS:
            value = entry.get(field)
            if isinstance(value, str) and value:
                return value
    return None


def extract_stream(payload: Any, track_id: EntityId, quality: QualityTier) -> StreamResolution:
    """Pull track metadata and a playable URL out of one ``/track/`` answer.

    Top-level entries are checked first; when the proxy nested them
    elsewhere the whole payload is scanned.

    Raises:
        StreamExtractionError: the answer lacks metadata, stream info or a usable URL.
    """
    entries = as_entries(payload)
    track_entry = _first_entry(entries, STREAM_TRACK_SIGNATURE) or find_entity(payload, STREAM_TRACK_SIGNATURE)
    info_entry = _first_entry(entries, STREAM_INFO_SIGNATURE) or find_entity(payload, STREAM_INFO_SIGNATURE)

    if track_entry is None or info_entry is None:
        raise StreamExtractionError(track_id, quality.value, "invalid track response from server")

    track = normalize_track(track_entry, default_quality=quality.value)
    if track is None:
        raise StreamExtractionError(track_id, quality.value, "track metadata has no id or title")

    stream_url = (
        _direct_url(entries)
        or _direct_url([info_entry, track_entry])
        or decode_manifest(info_entry.get("manifest"))
    )
    if not stream_url:
        raise StreamExtractionError(track_id, quality.value, "could not extract stream URL from manifest")

    return StreamResolution(stream_url=stream_url, track=track, quality=quality)


class QualityCascadeResolver:
    """Resolves a track to a stream URL at the best tier available."""

    def __init__(self, fetcher: FallbackFetcher) -> None:
        self._fetcher = fetcher

    async def resolve_stream(
        self,
        track_id: EntityId,
        preferred_quality: Union[QualityTier, str, None] = QualityTier.LOSSLESS,
    ) -> StreamResolution:
        """Try ``preferred_quality`` and each lower tier once, in order.

        Raises:
            RequestFault: a proxy rejected the request; lower tiers are not tried.
            HifiResolverError: the last tier-local failure once every tier failed.
        """
        ctx = with_log_context(log, track_id=track_id)
        last_error: Optional[HifiResolverError] = None

        for quality in QualityTier.parse(preferred_quality).cascade():
            ctx.debug("Requesting stream at %s", quality.value)
            try:
                payload = await self._fetcher.fetch(
                    TRACK_ENDPOINT,
                    params={"id": track_id, "quality": quality.value},
                )
                resolution = extract_stream(payload, track_id, quality)
            except _TIER_LOCAL_ERRORS as err:
                ctx.warning("No stream at %s: %s", quality.value, err)
                last_error = err
                continue

            ctx.info("Resolved stream at %s", quality.value)
            return resolution

        ctx.error("All quality tiers failed")
        if isinstance(last_error, ResourceNotFound):
            raise ResourceNotFound("Track", track_id) from last_error
        raise last_error
