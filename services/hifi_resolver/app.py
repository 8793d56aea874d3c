"""
HiFi Resolver — FastAPI sidecar for soundspan.

Resolves TIDAL catalog lookups and stream URLs through a cluster of public,
interchangeable proxy servers instead of an authenticated TIDAL session.
Every request is answered by whichever proxy responds first with usable
JSON; streams cascade from the requested quality down to LOW.

The Node.js backend communicates with this service over HTTP on port 8587.
"""

import asyncio
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from services.common.logging_utils import configure_service_logger, log_exceptions
from services.common.sidecar_runtime_utils import env_int
from services.hifi_resolver.catalog import HifiCatalogClient
from services.hifi_resolver.config import ResolverConfig
from services.hifi_resolver.errors import (
    EmptyServerPoolError,
    ExhaustionFault,
    HifiResolverError,
    RequestFault,
    ResourceNotFound,
)
from services.hifi_resolver.models import (
    AlbumDetails,
    AlbumSearchResult,
    ArtistDetails,
    ArtistSearchResult,
    StreamResolution,
    TrackSearchResult,
)

# ── Logging ─────────────────────────────────────────────────────────
log = configure_service_logger("hifi-resolver")

# ── FastAPI app ─────────────────────────────────────────────────────
app = FastAPI(title="soundspan HiFi Resolver", version="1.0.0")

# ── Catalog client (initialised on first use) ──────────────────────
_catalog: Optional[HifiCatalogClient] = None
_catalog_lock = asyncio.Lock()


# ════════════════════════════════════════════════════════════════════
# Models
# ════════════════════════════════════════════════════════════════════

class FindTrackRequest(BaseModel):
    """Payload for locating a streamable version of a known track."""
    title: str
    artist: Optional[str] = None
    limit: int = 10


# ════════════════════════════════════════════════════════════════════
# Helpers
# ════════════════════════════════════════════════════════════════════

async def _get_catalog() -> HifiCatalogClient:
    """Return the shared catalog client, building it from env on first use."""
    global _catalog
    if _catalog is not None:
        return _catalog
    async with _catalog_lock:
        if _catalog is None:
            config = ResolverConfig.from_env()
            _catalog = HifiCatalogClient(config)
            log.info("HiFi resolver ready with %d proxy servers", len(_catalog.pool))
    return _catalog


def _http_error(err: HifiResolverError) -> HTTPException:
    """Translate resolver failures into sidecar HTTP statuses."""
    if isinstance(err, RequestFault):
        return HTTPException(status_code=400, detail=str(err))
    if isinstance(err, ResourceNotFound):
        return HTTPException(status_code=404, detail=str(err))
    if isinstance(err, EmptyServerPoolError):
        return HTTPException(status_code=500, detail=str(err))
    if isinstance(err, ExhaustionFault):
        log.warning(f"Proxy pool exhausted: {err}")
    return HTTPException(status_code=503, detail=str(err))


# ════════════════════════════════════════════════════════════════════
# Routes
# ════════════════════════════════════════════════════════════════════

@app.get("/health")
async def health():
    catalog = await _get_catalog()
    return {"status": "ok", "service": "hifi-resolver", "servers": len(catalog.pool)}


# ── Search ──────────────────────────────────────────────────────────

@app.get("/search/tracks", response_model=TrackSearchResult)
@log_exceptions(log, "Track search failed", ignore=(HTTPException,))
async def search_tracks(q: str = Query(..., min_length=1), limit: Optional[int] = Query(None, ge=1)):
    """Search the catalog for tracks."""
    catalog = await _get_catalog()
    try:
        return await catalog.search_tracks(q, limit)
    except HifiResolverError as e:
        raise _http_error(e)


@app.get("/search/albums", response_model=AlbumSearchResult)
@log_exceptions(log, "Album search failed", ignore=(HTTPException,))
async def search_albums(q: str = Query(..., min_length=1), limit: Optional[int] = Query(None, ge=1)):
    """Search the catalog for albums."""
    catalog = await _get_catalog()
    try:
        return await catalog.search_albums(q, limit)
    except HifiResolverError as e:
        raise _http_error(e)


@app.get("/search/artists", response_model=ArtistSearchResult)
@log_exceptions(log, "Artist search failed", ignore=(HTTPException,))
async def search_artists(q: str = Query(..., min_length=1), limit: Optional[int] = Query(None, ge=1)):
    """Search the catalog for artists."""
    catalog = await _get_catalog()
    try:
        return await catalog.search_artists(q, limit)
    except HifiResolverError as e:
        raise _http_error(e)


# ── Streaming ───────────────────────────────────────────────────────

@app.get("/track/{track_id}/stream", response_model=StreamResolution)
@log_exceptions(log, "Stream resolution failed", ignore=(HTTPException,))
async def track_stream(track_id: int, quality: str = "LOSSLESS"):
    """Resolve a playable stream URL, cascading down from `quality`."""
    catalog = await _get_catalog()
    try:
        return await catalog.get_track_stream_url(track_id, quality)
    except HifiResolverError as e:
        raise _http_error(e)


@app.post("/stream/find", response_model=StreamResolution)
@log_exceptions(log, "Streamable track lookup failed", ignore=(HTTPException,))
async def find_stream(req: FindTrackRequest):
    """
    Find a streamable catalog version of a track known only by title/artist.
    Used for unowned tracks in local playlists.
    """
    catalog = await _get_catalog()
    try:
        resolution = await catalog.find_streamable_track(req.title, req.artist, limit=req.limit)
    except HifiResolverError as e:
        raise _http_error(e)
    if resolution is None:
        raise HTTPException(status_code=404, detail=f"No streamable match for {req.title!r}")
    return resolution


# ── Albums & artists ────────────────────────────────────────────────

@app.get("/album/{album_id}", response_model=AlbumDetails)
@log_exceptions(log, "Album lookup failed", ignore=(HTTPException,))
async def get_album(album_id: int):
    """Album metadata with its track listing."""
    catalog = await _get_catalog()
    try:
        return await catalog.get_album(album_id)
    except HifiResolverError as e:
        raise _http_error(e)


@app.get("/artist/{artist_id}", response_model=ArtistDetails)
@log_exceptions(log, "Artist lookup failed", ignore=(HTTPException,))
async def get_artist(artist_id: int):
    """Artist profile with albums and top tracks."""
    catalog = await _get_catalog()
    try:
        return await catalog.get_artist(artist_id)
    except HifiResolverError as e:
        raise _http_error(e)


@app.get("/cover/{cover_id}")
async def cover_url(cover_id: str, size: int = Query(640, ge=1, le=3000)):
    """Image CDN URL for a cover or artist picture id."""
    catalog = await _get_catalog()
    return {"url": catalog.cover_art_url(cover_id, size)}


@app.on_event("shutdown")
async def shutdown():
    global _catalog
    if _catalog is not None:
        await _catalog.aclose()
        _catalog = None


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=env_int("HIFI_RESOLVER_PORT", "8587"))
