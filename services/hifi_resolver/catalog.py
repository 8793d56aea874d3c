"""Catalog operations over the proxy cluster.

Each operation fetches through the fallback engine, discovers the relevant
part of the payload structurally and returns normalized records.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Union

import httpx

from services.common.logging_utils import log_timing
from services.common.sidecar_runtime_utils import build_resolver_client
from services.hifi_resolver.config import ResolverConfig
from services.hifi_resolver.errors import HifiResolverError, RequestFault, ResourceNotFound
from services.hifi_resolver.fetcher import FallbackFetcher
from services.hifi_resolver.models import (
    UNKNOWN_ARTIST,
    AlbumDetails,
    AlbumSearchResult,
    ArtistDetails,
    ArtistSearchResult,
    EntityId,
    NormalizedTrack,
    QualityTier,
    StreamResolution,
    TrackSearchResult,
)
from services.hifi_resolver.normalize import (
    keep_records,
    normalize_album,
    normalize_artist,
    normalize_track,
)
from services.hifi_resolver.quality import QualityCascadeResolver
from services.hifi_resolver.scanner import (
    ALBUM_SIGNATURE,
    ARTIST_ALBUM_SIGNATURE,
    ARTIST_PROFILE_SIGNATURE,
    ARTIST_SIGNATURE,
    ARTIST_TRACK_SIGNATURE,
    TRACK_SIGNATURE,
    as_entries,
    find_entity,
    find_entity_section,
    iter_entities,
)
from services.hifi_resolver.server_pool import ChoiceSource, ServerPool

log = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/search/"
ALBUM_ENDPOINT = "/album/"
ARTIST_ENDPOINT = "/artist/"

MAX_ARTIST_ALBUMS = 50
MAX_ARTIST_TOP_TRACKS = 10
COVER_SIZE = 640
ARTIST_PICTURE_SIZE = 750


def _section_items(payload: Any, signature) -> tuple[list, dict]:
    """Items of the matching section, falling back to top-level ``items``."""
    section = find_entity_section(payload, signature)
    if section is None:
        section = payload if isinstance(payload, dict) else {}
    items = section.get("items")
    return (items if isinstance(items, list) else []), section


def _unwrap_item(raw: Any) -> Any:
    """Album listings sometimes wrap each track as ``{"item": {...}, "type": ...}``."""
    if isinstance(raw, dict) and isinstance(raw.get("item"), dict):
        return raw["item"]
    return raw


def _paging_value(section: dict, key: str, default: int) -> int:
    value = section.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else default


def image_url(base_url: str, image_id: Optional[str], size: int) -> Optional[str]:
    """CDN URL for a cover or picture id; ids use dashes where the path has slashes."""
    if not image_id:
        return None
    path = str(image_id).replace("-", "/")
    return f"{base_url.rstrip('/')}/{path}/{size}x{size}.jpg"


def normalize_match_text(value: Optional[str]) -> str:
    """Lower-case, punctuation-free form used to compare titles and artist names."""
    if not value:
        return ""
    text = value.lower()
    text = text.replace("‘", "'").replace("’", "'")
    text = text.replace("“", '"').replace("”", '"')
    text = re.sub(r"\s-\s", " ", text)
    text = re.sub(r"[-:;]", " ", text)
    text = re.sub(r"[()\[\]{}]", "", text)
    text = re.sub(r"[.,!]", "", text)
    return re.sub(r"\s+", " ", text).strip()


def match_candidates(tracks: list[NormalizedTrack], title: str, artist: Optional[str]) -> list[NormalizedTrack]:
    """Search hits that plausibly are ``title`` by ``artist``.

    Strict matching wants both the artist and the title contained in the hit;
    when nothing passes, a relaxed pass accepts containment in either
    direction. Without an artist every hit is a candidate.
    """
    if not artist or artist == UNKNOWN_ARTIST:
        return list(tracks)

    wanted_artist = normalize_match_text(artist)
    wanted_title = normalize_match_text(title)

    strict = [
        track
        for track in tracks
        if wanted_artist in normalize_match_text(track.artist)
        and wanted_title in normalize_match_text(track.title)
    ]
    if strict:
        return strict

    relaxed = []
    for track in tracks:
        hit_artist = normalize_match_text(track.artist)
        hit_title = normalize_match_text(track.title)
        if wanted_artist not in hit_artist and hit_artist not in wanted_artist:
            continue
        if wanted_title in hit_title or hit_title in wanted_title:
            relaxed.append(track)
    return relaxed


class HifiCatalogClient:
    """Catalog and stream access through a pool of interchangeable proxies.

    Example:
        async with HifiCatalogClient(ResolverConfig.from_env()) as catalog:
            results = await catalog.search_tracks("daft punk")
            stream = await catalog.get_track_stream_url(results.tracks[0].id)
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        rng: Optional[ChoiceSource] = None,
    ) -> None:
        """Initialize the catalog client.

        Args:
            config: Resolver settings; defaults to the built-in server cluster.
            client: Shared HTTP client. When omitted one is built and owned here.
            rng: Source for the randomly promoted first server.
        """
        self._config = config or ResolverConfig()
        self._pool = ServerPool(self._config.servers, rng=rng)
        self._owns_client = client is None
        self._client = client or build_resolver_client(
            self._config.request_timeout,
            user_agent=self._config.user_agent,
        )
        self._fetcher = FallbackFetcher(self._pool, self._client, timeout=self._config.request_timeout)
        self._resolver = QualityCascadeResolver(self._fetcher)

    @property
    def config(self) -> ResolverConfig:
        return self._config

    @property
    def pool(self) -> ServerPool:
        return self._pool

    async def __aenter__(self) -> "HifiCatalogClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    # ── Search ──────────────────────────────────────────────────────

    def _limit(self, limit: Optional[int]) -> int:
        return limit if limit and limit > 0 else self._config.search_limit

    @log_timing(log, "track search", level=logging.DEBUG)
    async def search_tracks(self, query: str, limit: Optional[int] = None) -> TrackSearchResult:
        limit = self._limit(limit)
        payload = await self._fetcher.fetch(SEARCH_ENDPOINT, params={"s": query, "limit": limit})

        items, section = _section_items(payload, TRACK_SIGNATURE)
        if not items:
            log.info("No track results for %r", query)
        tracks = keep_records([normalize_track(item) for item in items])
        return TrackSearchResult(
            tracks=tracks,
            total=_paging_value(section, "totalNumberOfItems", len(tracks)),
            limit=_paging_value(section, "limit", limit),
            offset=_paging_value(section, "offset", 0),
        )

    @log_timing(log, "album search", level=logging.DEBUG)
    async def search_albums(self, query: str, limit: Optional[int] = None) -> AlbumSearchResult:
        limit = self._limit(limit)
        payload = await self._fetcher.fetch(SEARCH_ENDPOINT, params={"al": query, "limit": limit})

        items, section = _section_items(payload, ALBUM_SIGNATURE)
        albums = keep_records([normalize_album(item) for item in items])
        return AlbumSearchResult(
            albums=albums,
            total=_paging_value(section, "totalNumberOfItems", len(albums)),
        )

    @log_timing(log, "artist search", level=logging.DEBUG)
    async def search_artists(self, query: str, limit: Optional[int] = None) -> ArtistSearchResult:
        limit = self._limit(limit)
        payload = await self._fetcher.fetch(SEARCH_ENDPOINT, params={"a": query, "limit": limit})

        items, section = _section_items(payload, ARTIST_SIGNATURE)
        artists = keep_records([normalize_artist(item) for item in items])
        return ArtistSearchResult(
            artists=artists,
            total=_paging_value(section, "totalNumberOfItems", len(artists)),
        )

    # ── Streaming ───────────────────────────────────────────────────

    @log_timing(log, "stream resolution", level=logging.DEBUG)
    async def get_track_stream_url(
        self,
        track_id: EntityId,
        preferred_quality: Union[QualityTier, str, None] = QualityTier.LOSSLESS,
    ) -> StreamResolution:
        return await self._resolver.resolve_stream(track_id, preferred_quality)

    async def find_streamable_track(
        self,
        title: str,
        artist: Optional[str] = None,
        limit: int = 10,
    ) -> Optional[StreamResolution]:
        """Search for ``title`` by ``artist`` and return the first hit that streams.

        Candidates are verified one at a time; a candidate that cannot be
        resolved at any tier is skipped. Returns None when no candidate
        matches or none is streamable.
        """
        clean_title = re.sub(r"[()]", "", re.sub(r"\s-\s", " ", title)).strip()
        clean_artist = re.sub(r"\s-\s", " ", artist or "").strip()
        query = clean_title
        if clean_artist and clean_artist != UNKNOWN_ARTIST:
            query = f"{clean_title} {clean_artist}"

        results = await self.search_tracks(query, limit=limit)
        if not results.tracks:
            log.info("No search results for %r", query)
            return None

        candidates = match_candidates(results.tracks, title, artist)
        if not candidates:
            top = results.tracks[0]
            log.info("No candidate matched %r by %r (top hit: %r by %r)", title, artist, top.title, top.artist)
            return None

        for candidate in candidates:
            try:
                return await self.get_track_stream_url(candidate.id, QualityTier.LOSSLESS)
            except RequestFault:
                raise
            except HifiResolverError as err:
                log.warning("Candidate %s (%s) not streamable: %s", candidate.id, candidate.title, err)

        log.info("No streamable candidate for %r by %r", title, artist)
        return None

    # ── Albums & artists ────────────────────────────────────────────

    @log_timing(log, "album lookup", level=logging.DEBUG)
    async def get_album(self, album_id: EntityId) -> AlbumDetails:
        try:
            payload = await self._fetcher.fetch(ALBUM_ENDPOINT, params={"id": album_id})
        except ResourceNotFound as err:
            raise ResourceNotFound("Album", album_id) from err
        entries = as_entries(payload)

        album_entry = next(
            (entry for entry in entries if isinstance(entry, dict) and ALBUM_SIGNATURE(entry)),
            None,
        ) or find_entity(payload, ALBUM_SIGNATURE)
        collection = next(
            (entry for entry in entries if isinstance(entry, dict) and isinstance(entry.get("items"), list)),
            None,
        ) or find_entity_section(payload, lambda item: TRACK_SIGNATURE(_unwrap_item(item)))

        album_record = normalize_album(album_entry)
        if album_record is None:
            raise ResourceNotFound("Album", album_id)

        album_ref = {"id": album_record.id, "title": album_record.title, "cover": album_record.cover}
        album_artist = {"id": album_record.artist_id, "name": album_record.artist}
        raw_items = collection.get("items", []) if collection else []
        tracks = keep_records([
            normalize_track(
                _unwrap_item(raw),
                album=album_ref,
                fallback_artist=album_artist,
            )
            for raw in raw_items
        ])

        if album_record.number_of_tracks is None:
            album_record = album_record.model_copy(update={"number_of_tracks": len(tracks)})
        return AlbumDetails(album=album_record, tracks=tracks)

    @log_timing(log, "artist lookup", level=logging.DEBUG)
    async def get_artist(self, artist_id: EntityId) -> ArtistDetails:
        """Artist profile, albums and top tracks from one undifferentiated payload."""
        try:
            payload = await self._fetcher.fetch(ARTIST_ENDPOINT, params={"f": artist_id})
        except ResourceNotFound as err:
            raise ResourceNotFound("Artist", artist_id) from err

        artist = normalize_artist(find_entity(payload, ARTIST_PROFILE_SIGNATURE))
        if artist is None:
            raise ResourceNotFound("Artist", artist_id)
        artist_ref = {"id": artist.id, "name": artist.name}

        albums = []
        seen_albums: set = set()
        for node in iter_entities(payload, ARTIST_ALBUM_SIGNATURE):
            record = normalize_album(node, fallback_artist=artist_ref)
            if record is None or record.id in seen_albums:
                continue
            seen_albums.add(record.id)
            albums.append(record)
            if len(albums) >= MAX_ARTIST_ALBUMS:
                break

        top_tracks = []
        seen_tracks: set = set()
        for node in iter_entities(payload, ARTIST_TRACK_SIGNATURE):
            record = normalize_track(node, fallback_artist=artist_ref)
            if record is None or record.id in seen_tracks:
                continue
            seen_tracks.add(record.id)
            top_tracks.append(record)
            if len(top_tracks) >= MAX_ARTIST_TOP_TRACKS:
                break

        return ArtistDetails(artist=artist, albums=albums, top_tracks=top_tracks)

    # ── Images ──────────────────────────────────────────────────────

    def cover_art_url(self, cover_id: Optional[str], size: int = COVER_SIZE) -> Optional[str]:
        return image_url(self._config.image_base_url, cover_id, size)

    def artist_picture_url(self, picture_id: Optional[str], size: int = ARTIST_PICTURE_SIZE) -> Optional[str]:
        return image_url(self._config.image_base_url, picture_id, size)
