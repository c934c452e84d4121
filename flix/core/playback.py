"""
Playback session controller.

Resolves a playable stream for an item, binds it to a media surface (through
an adaptive-streaming client when one is available) and mirrors the surface's
own notifications into a PlaybackSession. Everything the controller reacts to
arrives as a typed event, either from the surface or from the adaptive client,
so the state machine can be driven without a real player.

Session states: LOADING -> READY -> PLAYING <-> PAUSED -> ENDED, with FAILED
reachable from any non-terminal state. FAILED is only left by an explicit
retry().
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Callable, List
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from .api_client import MediaServerClient, MANIFEST_FILENAME, DIRECT_FILENAME
from .errors import (
    FlixError, AuthenticationFailure, NegotiationFailure, TransientFetchFailure,
    StreamingFailure, ManifestLoadFailure, StreamingNetworkFailure, MediaDecodeFailure
)
from ..database.models import (
    PlaybackSession, SessionState, StreamingMode, TextTrack, SubtitleTrack, MediaItem, TERMINAL_STATES
)
from ..config import SCRUB_SETTLE_DELAY, SUBTITLE_SHOW_DELAY
from ..utils.logger import get_logger

logger = get_logger(__name__)

class ErrorType(str, Enum):
    NETWORK = "networkError"
    MEDIA = "mediaError"
    OTHER = "otherError"

MANIFEST_LOAD_ERRORS = {"manifestLoadTimeOut", "manifestLoadError"}

# Media surface events

@dataclass(frozen=True)
class TimeUpdate:
    current_time: float

@dataclass(frozen=True)
class DurationChange:
    duration: float

@dataclass(frozen=True)
class BufferedUpdate:
    buffered_end: float

@dataclass(frozen=True)
class Played:
    pass

@dataclass(frozen=True)
class Paused:
    pass

@dataclass(frozen=True)
class VolumeChange:
    volume: float  # 0-100
    muted: bool

@dataclass(frozen=True)
class Ended:
    pass

@dataclass(frozen=True)
class SurfaceError:
    message: str = ""

# Adaptive-streaming client events

@dataclass(frozen=True)
class ManifestParsed:
    pass

@dataclass(frozen=True)
class StreamingError:
    error_type: ErrorType
    details: str = ""
    fatal: bool = False

class MediaSurface(ABC):
    """The thing that actually renders video and reports what it is doing."""

    @abstractmethod
    def set_source(self, url: str):
        pass

    @abstractmethod
    def clear_source(self):
        pass

    @abstractmethod
    def play(self):
        """Start playback. Raises StreamingFailure if playback cannot start."""

    @abstractmethod
    def pause(self):
        pass

    @abstractmethod
    def seek(self, seconds: float):
        pass

    @abstractmethod
    def set_volume(self, level: int):
        pass

    @abstractmethod
    def set_muted(self, muted: bool):
        pass

    @abstractmethod
    def can_play_manifest(self) -> bool:
        pass

    @property
    @abstractmethod
    def text_tracks(self) -> List[TextTrack]:
        pass

    @abstractmethod
    def add_text_track(self, track: TextTrack):
        pass

    @abstractmethod
    def remove_text_track(self, track: TextTrack):
        pass

    @abstractmethod
    def show_text_track(self, track: TextTrack):
        pass

    @abstractmethod
    def subscribe(self, callback: Callable[[object], None]) -> Callable[[], None]:
        """Register for surface events. Returns a function that unsubscribes."""

class AdaptiveClient(ABC):
    """An adaptive-streaming runtime bound to one media surface."""

    @abstractmethod
    def load_source(self, url: str):
        pass

    @abstractmethod
    def attach_media(self, surface: MediaSurface):
        pass

    @abstractmethod
    def start_load(self):
        pass

    @abstractmethod
    def recover_media_error(self):
        """Raises StreamingFailure if recovery is impossible."""

    @abstractmethod
    def destroy(self):
        pass

    @abstractmethod
    def subscribe(self, callback: Callable[[object], None]) -> Callable[[], None]:
        pass

AdaptiveClientFactory = Callable[[], AdaptiveClient]

def estimate_buffered_end(position: float, fill_percent: float, cache_seconds: float,
                          duration: float = 0.0) -> float:
    """
    Buffered end for surfaces that report cache fill instead of time ranges.
    A full cache holds cache_seconds of media ahead of the playhead.
    """
    fill = max(0.0, min(100.0, fill_percent)) / 100.0
    end = max(0.0, position) + cache_seconds * fill
    if duration > 0:
        end = min(end, duration)
    return end

def direct_file_url(url: str) -> str:
    """Rewrite a manifest URL into its direct-file form, keeping the query string."""
    parts = urlsplit(url)
    path = parts.path.replace(MANIFEST_FILENAME, DIRECT_FILENAME)
    if ".mp4" not in path:
        path = path.rstrip("/") + "/" + DIRECT_FILENAME
    return urlunsplit(parts._replace(path=path))

class PlaybackController:
    def __init__(self, api: MediaServerClient, surface: MediaSurface,
                 adaptive_factory: Optional[AdaptiveClientFactory] = None,
                 scrub_settle_delay: float = SCRUB_SETTLE_DELAY,
                 subtitle_show_delay: float = SUBTITLE_SHOW_DELAY):
        self.api = api
        self.surface = surface
        self.adaptive_factory = adaptive_factory
        self.scrub_settle_delay = scrub_settle_delay
        self.subtitle_show_delay = subtitle_show_delay

        self.session: Optional[PlaybackSession] = None
        self._client: Optional[AdaptiveClient] = None
        self._client_unsubscribe: Optional[Callable[[], None]] = None
        self._surface_unsubscribe: Optional[Callable[[], None]] = None
        # Events tagged with an older generation belong to a torn-down session or client
        self._generation = 0
        self._client_generation = 0
        self._scrubbing = False
        self._settle_handle: Optional[asyncio.TimerHandle] = None
        self._subtitle_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: List[Callable[[PlaybackSession], None]] = []

    @property
    def state(self) -> Optional[SessionState]:
        return self.session.state if self.session else None

    @property
    def is_scrubbing(self) -> bool:
        return self._scrubbing

    @property
    def has_client(self) -> bool:
        return self._client is not None

    def add_listener(self, callback: Callable[[PlaybackSession], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback) if callback in self._listeners else None

    def _notify(self):
        if self.session is None:
            return
        for callback in list(self._listeners):
            callback(self.session)

    def _require_session(self) -> PlaybackSession:
        if self.session is None:
            raise RuntimeError("No active playback session")
        return self.session

    # Session lifecycle

    async def initialize(self, item_id: str) -> Optional[PlaybackSession]:
        """
        Negotiate and start playback for an item.

        Returns None if the session was torn down while loading. Raises
        NegotiationFailure (or AuthenticationFailure) when no stream could be
        resolved; the session is torn down before the error is raised.
        """
        if not item_id:
            raise ValueError("item_id must not be empty")

        self.teardown()
        self._generation += 1
        generation = self._generation
        session = PlaybackSession(item_id=item_id)
        self.session = session
        self._surface_unsubscribe = self.surface.subscribe(
            lambda event, g=generation: self._on_surface_event(g, event)
        )
        logger.info(f"Loading playback session for {item_id}")
        self._notify()

        try:
            item, negotiation, subtitles = await asyncio.gather(
                self._load_item(item_id),
                self.api.negotiate(item_id),
                self.api.get_subtitle_streams(item_id),
            )
        except FlixError as e:
            if generation != self._generation:
                logger.info(f"Playback session for {item_id} was superseded while loading")
                return None
            logger.error(f"Error loading video {item_id}: {e}")
            self.teardown()
            if isinstance(e, (AuthenticationFailure, NegotiationFailure)):
                raise
            raise NegotiationFailure(f"Failed to load video stream: {e}", item_id) from e

        if generation != self._generation:
            logger.info(f"Playback session for {item_id} was superseded while loading")
            return None

        if not negotiation.candidate_urls:
            self.teardown()
            raise NegotiationFailure("Server offered no stream for this item", item_id)

        session.item = item
        session.subtitle_tracks = list(subtitles)
        mode = StreamingMode.DIRECT_FILE if negotiation.supports_direct_stream else StreamingMode.ADAPTIVE_MANIFEST
        self.attach_stream(negotiation.candidate_urls[0], mode)

        if session.state == SessionState.LOADING:
            session.state = SessionState.READY

        default_track = next((t for t in session.subtitle_tracks if t.is_default), None)
        if default_track and session.state != SessionState.FAILED:
            self.select_subtitle(default_track.id)

        self._notify()
        return session

    async def _load_item(self, item_id: str) -> Optional[MediaItem]:
        # Display metadata only; playback does not depend on it
        try:
            return await self.api.get_item_details(item_id)
        except TransientFetchFailure as e:
            logger.warning(f"Item details unavailable for {item_id}: {e}")
            return None

    async def retry(self) -> Optional[PlaybackSession]:
        """User-requested restart of a failed or finished session."""
        session = self._require_session()
        logger.info(f"Retrying playback for {session.item_id}")
        return await self.initialize(session.item_id)

    def teardown(self):
        """Release the adaptive client and every listener. Safe to call at any time, any number of times."""
        self._cancel_timers()
        self._release_client()
        if self._surface_unsubscribe:
            self._surface_unsubscribe()
            self._surface_unsubscribe = None
        if self.session is not None:
            logger.debug(f"Tearing down playback session for {self.session.item_id}")
            self._detach_text_tracks()
            self.surface.clear_source()
        self._generation += 1
        self._scrubbing = False
        self.session = None

    def _cancel_timers(self):
        for handle in (self._settle_handle, self._subtitle_handle):
            if handle:
                handle.cancel()
        self._settle_handle = None
        self._subtitle_handle = None

    # Stream attachment

    def attach_stream(self, url: str, mode: StreamingMode):
        session = self._require_session()
        self._release_client()
        session.stream_url = url
        session.streaming_mode = mode

        if mode == StreamingMode.ADAPTIVE_MANIFEST:
            if self.adaptive_factory is not None:
                self._client_generation += 1
                client_generation = self._client_generation
                client = self.adaptive_factory()
                self._client = client
                self._client_unsubscribe = client.subscribe(
                    lambda event, g=client_generation: self._on_client_event(g, event)
                )
                logger.info(f"Attaching adaptive stream: {url}")
                client.load_source(url)
                client.attach_media(self.surface)
                return

            if self.surface.can_play_manifest():
                logger.info(f"Playing manifest natively: {url}")
                self.surface.set_source(url)
                self._start_playback()
                return

            logger.warning("No adaptive runtime and the surface cannot play manifests")
            self._fall_back_to_direct_file()
            return

        logger.info(f"Attaching direct stream: {url}")
        self.surface.set_source(url)
        self._start_playback()

    def _release_client(self):
        if self._client is None:
            return
        client = self._client
        self._client = None
        # Anything the old client still emits is now stale
        self._client_generation += 1
        if self._client_unsubscribe:
            self._client_unsubscribe()
            self._client_unsubscribe = None
        client.destroy()
        logger.debug("Adaptive client released")

    def _start_playback(self):
        session = self._require_session()
        try:
            self.surface.play()
        except StreamingFailure as e:
            logger.error(f"Play error: {e}")
            session.is_playing = False
            if session.fallback_attempted:
                self._fail(f"Direct play error: {e}")
            self._notify()

    # Event handling

    def dispatch(self, event):
        """Feed an event to the current session as if its surface or client had emitted it."""
        if self.session is None:
            return
        if isinstance(event, (ManifestParsed, StreamingError)):
            self._on_client_event(self._client_generation, event)
        else:
            self._on_surface_event(self._generation, event)

    def _on_client_event(self, generation: int, event):
        if generation != self._client_generation or self.session is None:
            logger.debug(f"Dropping stale adaptive client event: {event}")
            return
        if isinstance(event, ManifestParsed):
            logger.debug("Manifest parsed, starting playback")
            self._start_playback()
        elif isinstance(event, StreamingError):
            self._handle_streaming_error(event)

    def _handle_streaming_error(self, event: StreamingError):
        session = self._require_session()
        if session.state == SessionState.FAILED:
            return
        if not event.fatal:
            logger.warning(f"Non-fatal streaming error: {event.error_type.value} {event.details}")
            return

        failure = StreamingFailure.from_event(event)
        logger.error(f"Fatal streaming error: {failure}")

        if isinstance(failure, ManifestLoadFailure):
            if session.fallback_attempted:
                self._fail(str(failure))
            else:
                self._fall_back_to_direct_file()
        elif isinstance(failure, StreamingNetworkFailure):
            if self._client is None:
                self._fail(str(failure))
            else:
                logger.info("Restarting load from last known position")
                self._client.start_load()
        elif isinstance(failure, MediaDecodeFailure):
            if session.media_recovery_attempted or self._client is None:
                self._fail(str(failure))
            else:
                session.media_recovery_attempted = True
                logger.info("Attempting to recover from media error")
                try:
                    self._client.recover_media_error()
                except StreamingFailure as e:
                    self._fail(f"Media error recovery failed: {e}")
        else:
            self._fail(str(failure))
        self._notify()

    def _fall_back_to_direct_file(self):
        session = self._require_session()
        session.fallback_attempted = True
        direct_url = direct_file_url(session.stream_url or "")
        logger.info(f"Trying direct streaming URL: {direct_url}")
        self.attach_stream(direct_url, StreamingMode.DIRECT_FILE)
        if session.subtitle_track_id and session.state != SessionState.FAILED:
            self.select_subtitle(session.subtitle_track_id)

    def _fail(self, message: str):
        session = self._require_session()
        logger.error(f"Playback failed for {session.item_id}: {message}")
        session.has_fatal_error = True
        session.is_playing = False
        session.error_message = message
        session.state = SessionState.FAILED
        self._release_client()

    def _on_surface_event(self, generation: int, event):
        session = self.session
        if generation != self._generation or session is None:
            logger.debug(f"Dropping stale surface event: {event}")
            return
        if session.state == SessionState.FAILED:
            return

        if isinstance(event, TimeUpdate):
            if self._scrubbing:
                return
            session.current_time_seconds = event.current_time
            if event.current_time > 0:
                # Media has decoded, so later surface errors are not manifest load failures
                session.playback_started = True
        elif isinstance(event, DurationChange):
            session.duration_seconds = event.duration
        elif isinstance(event, BufferedUpdate):
            session.buffered_seconds = event.buffered_end
        elif isinstance(event, Played):
            if session.state in TERMINAL_STATES:
                logger.debug(f"Ignoring play from terminal state {session.state.value}")
                return
            session.is_playing = True
            session.state = SessionState.PLAYING
        elif isinstance(event, Paused):
            session.is_playing = False
            if session.state == SessionState.PLAYING:
                session.state = SessionState.PAUSED
        elif isinstance(event, VolumeChange):
            session.volume = int(round(event.volume))
            session.is_muted = event.muted
        elif isinstance(event, Ended):
            session.is_playing = False
            session.state = SessionState.ENDED
        elif isinstance(event, SurfaceError):
            logger.error(f"Video error: {event.message}")
            if self._native_manifest_failed(session):
                # The surface is loading the manifest itself, so this is the manifest load failure
                self._fall_back_to_direct_file()
            else:
                self._fail(event.message or "Media surface error")
        else:
            logger.debug(f"Ignoring unknown surface event: {event}")
            return
        self._notify()

    def _native_manifest_failed(self, session: PlaybackSession) -> bool:
        return (session.streaming_mode == StreamingMode.ADAPTIVE_MANIFEST
                and self._client is None
                and not session.fallback_attempted
                and not session.playback_started)

    # User controls

    def toggle_play_pause(self):
        """Play or pause. Ended and failed sessions only restart through retry()."""
        session = self._require_session()
        if session.state in TERMINAL_STATES:
            return
        if session.is_playing:
            self.surface.pause()
        else:
            self._start_playback()

    def set_volume(self, level: float):
        session = self._require_session()
        level = int(max(0, min(100, level)))
        self.surface.set_volume(level)
        if level == 0 and not session.is_muted:
            self.surface.set_muted(True)
        elif level > 0 and session.is_muted:
            self.surface.set_muted(False)

    def toggle_mute(self):
        session = self._require_session()
        self.surface.set_muted(not session.is_muted)

    def _clamp_time(self, seconds: float) -> float:
        session = self._require_session()
        seconds = max(0.0, seconds)
        if session.duration_seconds > 0:
            seconds = min(seconds, session.duration_seconds)
        return seconds

    def scrub(self, target_seconds: float):
        """Track a seek-bar drag without touching the surface yet."""
        session = self._require_session()
        self._scrubbing = True
        if self._settle_handle:
            self._settle_handle.cancel()
            self._settle_handle = None
        session.current_time_seconds = self._clamp_time(target_seconds)
        self._notify()

    def seek(self, target_seconds: float):
        """Commit a seek. Time updates from the surface stay suppressed until it settles."""
        session = self._require_session()
        target = self._clamp_time(target_seconds)
        self.scrub(target)
        self.surface.seek(target)
        generation = self._generation
        self._settle_handle = asyncio.get_running_loop().call_later(
            self.scrub_settle_delay, self._end_scrub, generation
        )
        logger.debug(f"Seeking {session.item_id} to {target:.1f}s")

    def skip(self, delta_seconds: float):
        session = self._require_session()
        self.seek(session.current_time_seconds + delta_seconds)

    def _end_scrub(self, generation: int):
        self._settle_handle = None
        if generation != self._generation:
            return
        self._scrubbing = False

    # Subtitles

    def subtitle_url(self, track: SubtitleTrack) -> str:
        session = self._require_session()
        stream_url = session.stream_url or ""
        base = stream_url.split("/Videos/")[0] if "/Videos/" in stream_url else self.api.server_url
        auth = [(k, v) for k, v in parse_qsl(urlsplit(stream_url).query) if k == "api_key"]
        url = f"{base}/Videos/{session.item_id}/{session.item_id}/Subtitles/{track.id}/Stream.vtt"
        if auth:
            url += "?" + urlencode(auth)
        return url

    def _detach_text_tracks(self):
        for track in list(self.surface.text_tracks):
            self.surface.remove_text_track(track)

    def select_subtitle(self, track_id: Optional[str]):
        session = self._require_session()
        if self._subtitle_handle:
            self._subtitle_handle.cancel()
            self._subtitle_handle = None

        # Detach everything first so two caption tracks never render together
        self._detach_text_tracks()
        session.subtitle_track_id = None

        if track_id is not None:
            selected = next((t for t in session.subtitle_tracks if t.id == track_id), None)
            if selected is None:
                logger.warning(f"Unknown subtitle track: {track_id}")
            else:
                text_track = TextTrack(
                    track_id=selected.id,
                    label=selected.display_title,
                    language=selected.language,
                    src=self.subtitle_url(selected),
                )
                self.surface.add_text_track(text_track)
                session.subtitle_track_id = selected.id
                # Some surfaces add new tracks hidden
                self._subtitle_handle = asyncio.get_running_loop().call_later(
                    self.subtitle_show_delay, self._show_text_track, self._generation, text_track
                )
        self._notify()

    def _show_text_track(self, generation: int, track: TextTrack):
        self._subtitle_handle = None
        if generation != self._generation:
            return
        if any(t is track for t in self.surface.text_tracks):
            self.surface.show_text_track(track)
