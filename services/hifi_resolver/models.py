"""Records, enums and attempt bookkeeping shared by the resolver modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
DEFAULT_AUDIO_QUALITY = "LOSSLESS"

EntityId = Union[int, str]


class AttemptOutcome(str, Enum):
    """How a single request against one server ended."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    MALFORMED_PAYLOAD = "malformed_payload"


@dataclass(frozen=True)
class RequestAttempt:
    """One request against one server. Discarded once the fetch returns."""

    server: str
    endpoint: str
    outcome: AttemptOutcome
    status: Optional[int] = None
    payload: Any = None
    detail: str = ""


class QualityTier(str, Enum):
    """Audio quality tiers, best first."""

    HI_RES_LOSSLESS = "HI_RES_LOSSLESS"
    LOSSLESS = "LOSSLESS"
    HIGH = "HIGH"
    LOW = "LOW"

    @classmethod
    def parse(cls, value: Union["QualityTier", str, None]) -> "QualityTier":
        """Map user input to a tier; unknown values fall back to LOSSLESS."""
        if isinstance(value, QualityTier):
            return value
        normalized = (value or "").strip().upper()
        if normalized == "MAX":
            return cls.HI_RES_LOSSLESS
        try:
            return cls(normalized)
        except ValueError:
            return cls.LOSSLESS

    def cascade(self) -> list["QualityTier"]:
        """This tier followed by every lower tier, never a higher one."""
        tiers = list(QualityTier)
        return tiers[tiers.index(self):]


class ApiModel(BaseModel):
    """Immutable record serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class NormalizedTrack(ApiModel):
    id: EntityId
    title: str
    artist: str = UNKNOWN_ARTIST
    artist_id: Optional[EntityId] = None
    album: str = UNKNOWN_ALBUM
    album_id: Optional[EntityId] = None
    album_cover: Optional[str] = None
    duration: int = 0
    audio_quality: str = DEFAULT_AUDIO_QUALITY
    explicit: bool = False
    track_number: Optional[int] = None
    volume_number: Optional[int] = None


class NormalizedAlbum(ApiModel):
    id: EntityId
    title: str
    artist: str = UNKNOWN_ARTIST
    artist_id: Optional[EntityId] = None
    cover: Optional[str] = None
    release_date: Optional[str] = None
    number_of_tracks: Optional[int] = None
    duration: Optional[int] = None
    explicit: bool = False


class NormalizedArtist(ApiModel):
    id: EntityId
    name: str
    picture: Optional[str] = None
    type: Optional[str] = None


class StreamResolution(ApiModel):
    stream_url: str
    track: NormalizedTrack
    quality: QualityTier


class TrackSearchResult(ApiModel):
    tracks: list[NormalizedTrack]
    total: int
    limit: int
    offset: int = 0


class AlbumSearchResult(ApiModel):
    albums: list[NormalizedAlbum]
    total: int


class ArtistSearchResult(ApiModel):
    artists: list[NormalizedArtist]
    total: int


class AlbumDetails(ApiModel):
    album: NormalizedAlbum
    tracks: list[NormalizedTrack]


class ArtistDetails(ApiModel):
    artist: NormalizedArtist
    albums: list[NormalizedAlbum]
    top_tracks: list[NormalizedTrack]
