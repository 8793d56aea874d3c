"""Coerce raw proxy entities into the fixed record shapes.

Missing optional fields fall back to documented defaults; an entity without
an id or a title/name yields no record at all.
"""

from __future__ import annotations

from typing import Any, Optional

from services.hifi_resolver.models import (
    DEFAULT_AUDIO_QUALITY,
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    NormalizedAlbum,
    NormalizedArtist,
    NormalizedTrack,
)


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return default
    try:
        return int(float(value)) if not isinstance(value, int) else value
    except (ValueError, OverflowError):
        return default


def _as_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text or None


def _as_id(value: Any) -> Optional[int | str]:
    if isinstance(value, bool) or not isinstance(value, (int, str)) or value == "":
        return None
    return value


def _has_identity(raw: dict, label: str) -> bool:
    return _as_id(raw.get("id")) is not None and bool(raw.get(label))


def primary_artist(raw: dict) -> dict:
    """``artist`` when it carries a name, otherwise the first of ``artists``."""
    artist = _as_dict(raw.get("artist"))
    if artist.get("name"):
        return artist
    artists = raw.get("artists")
    if isinstance(artists, list) and artists:
        first = _as_dict(artists[0])
        if first.get("name"):
            return first
    return artist


def normalize_track(
    raw: Any,
    *,
    album: Optional[dict] = None,
    fallback_artist: Optional[dict] = None,
    default_quality: str = DEFAULT_AUDIO_QUALITY,
) -> Optional[NormalizedTrack]:
    """Build a track record; ``album``/``fallback_artist`` fill gaps for album listings."""
    if not isinstance(raw, dict) or not _has_identity(raw, "title"):
        return None

    artist = primary_artist(raw)
    if not artist.get("name") and fallback_artist:
        artist = fallback_artist
    track_album = _as_dict(raw.get("album")) or _as_dict(album)

    return NormalizedTrack(
        id=raw["id"],
        title=str(raw["title"]),
        artist=str(artist.get("name") or UNKNOWN_ARTIST),
        artist_id=_as_id(artist.get("id")),
        album=str(track_album.get("title") or UNKNOWN_ALBUM),
        album_id=_as_id(track_album.get("id")),
        album_cover=_as_str(track_album.get("cover")),
        duration=_as_int(raw.get("duration"), 0),
        audio_quality=str(raw.get("audioQuality") or default_quality),
        explicit=bool(raw.get("explicit") or False),
        track_number=_as_int(raw.get("trackNumber")),
        volume_number=_as_int(raw.get("volumeNumber")),
    )


def normalize_album(
    raw: Any,
    *,
    fallback_artist: Optional[dict] = None,
    track_count: Optional[int] = None,
) -> Optional[NormalizedAlbum]:
    if not isinstance(raw, dict) or not _has_identity(raw, "title"):
        return None

    artist = primary_artist(raw)
    if not artist.get("name") and fallback_artist:
        artist = fallback_artist

    return NormalizedAlbum(
        id=raw["id"],
        title=str(raw["title"]),
        artist=str(artist.get("name") or UNKNOWN_ARTIST),
        artist_id=_as_id(artist.get("id")),
        cover=_as_str(raw.get("cover")),
        release_date=_as_str(raw.get("releaseDate")),
        number_of_tracks=_as_int(raw.get("numberOfTracks")) or track_count,
        duration=_as_int(raw.get("duration")),
        explicit=bool(raw.get("explicit") or False),
    )


def normalize_artist(raw: Any) -> Optional[NormalizedArtist]:
    if not isinstance(raw, dict) or not _has_identity(raw, "name"):
        return None
    return NormalizedArtist(
        id=raw["id"],
        name=str(raw["name"]),
        picture=_as_str(raw.get("picture")),
        type=_as_str(raw.get("type")),
    )


def keep_records(records: list) -> list:
    """Drop the entities that failed to normalize."""
    return [record for record in records if record is not None]
