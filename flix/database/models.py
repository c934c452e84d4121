from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any

class StreamingMode(str, Enum):
    ADAPTIVE_MANIFEST = "adaptive_manifest"
    DIRECT_FILE = "direct_file"

class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"
    FAILED = "failed"

TERMINAL_STATES = {SessionState.ENDED, SessionState.FAILED}

@dataclass
class User:
    id: str
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any], server_url: str) -> "User":
        """Build a user from a media-server user payload."""
        user_id = data.get("Id", "")
        image_tag = data.get("PrimaryImageTag")
        return cls(
            id=user_id,
            name=data.get("Name", ""),
            email=data.get("Email") or None,
            image_url=f"{server_url}/Users/{user_id}/Images/Primary?tag={image_tag}" if image_tag else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "imageUrl": self.image_url}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            email=data.get("email"),
            image_url=data.get("imageUrl"),
        )

@dataclass
class MediaItem:
    id: str
    name: str
    type: str
    overview: str = ""
    production_year: Optional[int] = None
    run_time_ticks: int = 0
    genres: List[str] = field(default_factory=list)
    community_rating: Optional[float] = None
    official_rating: Optional[str] = None
    collection_type: Optional[str] = None
    image_tags: Dict[str, str] = field(default_factory=dict)
    backdrop_image_tags: List[str] = field(default_factory=list)
    playback_position_ticks: int = 0
    played: bool = False
    primary_image_url: Optional[str] = None
    backdrop_image_url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "MediaItem":
        user_data = data.get("UserData") or {}
        return cls(
            id=data.get("Id", ""),
            name=data.get("Name", ""),
            type=data.get("Type", ""),
            overview=data.get("Overview") or "",
            production_year=data.get("ProductionYear"),
            run_time_ticks=data.get("RunTimeTicks") or 0,
            genres=list(data.get("Genres") or []),
            community_rating=data.get("CommunityRating"),
            official_rating=data.get("OfficialRating"),
            collection_type=data.get("CollectionType"),
            image_tags=dict(data.get("ImageTags") or {}),
            backdrop_image_tags=list(data.get("BackdropImageTags") or []),
            playback_position_ticks=user_data.get("PlaybackPositionTicks") or 0,
            played=bool(user_data.get("Played", False)),
        )

    @property
    def has_backdrop(self) -> bool:
        return bool(self.backdrop_image_tags) or "Backdrop" in self.image_tags

@dataclass
class Season:
    id: str
    name: str
    series_id: str
    index_number: Optional[int] = None
    image_tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Season":
        return cls(
            id=data.get("Id", ""),
            name=data.get("Name", ""),
            series_id=data.get("SeriesId", ""),
            index_number=data.get("IndexNumber"),
            image_tags=dict(data.get("ImageTags") or {}),
        )

@dataclass
class Episode:
    id: str
    name: str
    series_id: str
    season_id: str
    index_number: Optional[int] = None
    overview: str = ""
    run_time_ticks: int = 0
    image_tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Episode":
        return cls(
            id=data.get("Id", ""),
            name=data.get("Name", ""),
            series_id=data.get("SeriesId", ""),
            season_id=data.get("SeasonId", ""),
            index_number=data.get("IndexNumber"),
            overview=data.get("Overview") or "",
            run_time_ticks=data.get("RunTimeTicks") or 0,
            image_tags=dict(data.get("ImageTags") or {}),
        )

@dataclass(frozen=True)
class SubtitleTrack:
    id: str  # media stream index on the server
    display_title: str
    language: str = "und"
    is_default: bool = False

@dataclass(frozen=True)
class StreamNegotiationResult:
    supports_direct_stream: bool
    candidate_urls: List[str]

@dataclass
class TextTrack:
    track_id: str
    label: str
    language: str
    src: str
    kind: str = "subtitles"
    mode: str = "hidden"  # 'hidden' or 'showing'

@dataclass
class PlaybackSession:
    item_id: str
    stream_url: Optional[str] = None
    streaming_mode: Optional[StreamingMode] = None
    subtitle_track_id: Optional[str] = None
    is_playing: bool = False
    volume: int = 100
    is_muted: bool = False
    current_time_seconds: float = 0.0
    duration_seconds: float = 0.0
    buffered_seconds: float = 0.0
    has_fatal_error: bool = False
    state: SessionState = SessionState.LOADING
    item: Optional[MediaItem] = None
    subtitle_tracks: List[SubtitleTrack] = field(default_factory=list)
    playback_started: bool = False
    fallback_attempted: bool = False
    media_recovery_attempted: bool = False
    error_message: Optional[str] = None

@dataclass
class BackdropMovie:
    id: int
    title: str
    backdrop_path: str
    poster_path: Optional[str] = None
    overview: str = ""
