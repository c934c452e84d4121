import os
import asyncio
from typing import Callable, List, Optional
import vlc

from ..core.errors import StreamingFailure
from ..core.playback import (
    MediaSurface, TimeUpdate, DurationChange, BufferedUpdate, Played, Paused, VolumeChange, Ended, SurfaceError,
    estimate_buffered_end
)
from ..config import NETWORK_CACHING_MS
from ..database.models import TextTrack
from ..utils.logger import get_logger

logger = get_logger(__name__)

class VlcSurface(MediaSurface):
    """
    MediaSurface backed by libvlc.

    libvlc reports events on its own thread; they are handed to the asyncio
    (qasync) loop before any subscriber sees them.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        # Stability flags for Windows/AMD
        args = [
            "--no-video-title-show",
            "--quiet",
            "--no-stats",
            f"--network-caching={NETWORK_CACHING_MS}"
        ]
        self.instance = vlc.Instance(*args)
        self.player = self.instance.media_player_new()
        self._loop = loop or asyncio.get_event_loop()
        self._subscribers: List[Callable[[object], None]] = []
        self._text_tracks: List[TextTrack] = []
        self._volume = 100
        self._setup_events()

    def bind_window(self, win_id: int):
        if os.name == 'nt':
            self.player.set_hwnd(win_id)
        else:
            self.player.set_xwindow(win_id)

    def unbind_window(self):
        # Detach before the window handle is destroyed (deadlocks on Windows otherwise)
        if os.name == 'nt':
            self.player.set_hwnd(0)
        else:
            self.player.set_xwindow(0)

    def _setup_events(self):
        em = self.player.event_manager()
        em.event_attach(vlc.EventType.MediaPlayerTimeChanged,
                        lambda e: self._post(TimeUpdate(e.u.new_time / 1000.0)))
        em.event_attach(vlc.EventType.MediaPlayerLengthChanged,
                        lambda e: self._post(DurationChange(e.u.new_length / 1000.0)))
        em.event_attach(vlc.EventType.MediaPlayerPlaying, lambda e: self._post(Played()))
        em.event_attach(vlc.EventType.MediaPlayerPaused, lambda e: self._post(Paused()))
        em.event_attach(vlc.EventType.MediaPlayerEndReached, lambda e: self._post(Ended()))
        em.event_attach(vlc.EventType.MediaPlayerEncounteredError,
                        lambda e: self._post(SurfaceError("VLC could not play this stream")))
        # Player state is queried on the loop thread, never from libvlc's event thread
        em.event_attach(vlc.EventType.MediaPlayerBuffering,
                        lambda e: self._loop.call_soon_threadsafe(self._emit_buffered, e.u.new_cache))
        for event_type in (vlc.EventType.MediaPlayerAudioVolume, vlc.EventType.MediaPlayerMuted,
                           vlc.EventType.MediaPlayerUnmuted):
            em.event_attach(event_type, lambda e: self._loop.call_soon_threadsafe(self._emit_volume))

    def _emit_volume(self):
        volume = self.player.audio_get_volume()
        if volume < 0:
            volume = self._volume
        self._emit(VolumeChange(volume=volume, muted=bool(self.player.audio_get_mute())))

    def _emit_buffered(self, fill_percent):
        position = max(self.player.get_time(), 0) / 1000.0
        duration = max(self.player.get_length(), 0) / 1000.0
        self._emit(BufferedUpdate(estimate_buffered_end(position, fill_percent, NETWORK_CACHING_MS / 1000.0, duration)))

    def _post(self, event):
        self._loop.call_soon_threadsafe(self._emit, event)

    def _emit(self, event):
        for callback in list(self._subscribers):
            callback(event)

    def subscribe(self, callback: Callable[[object], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def set_source(self, url: str):
        media = self.instance.media_new(url)
        self.player.set_media(media)

    def clear_source(self):
        self.player.stop()
        self.player.set_media(None)

    def play(self):
        if self.player.play() == -1:
            raise StreamingFailure("VLC refused to start playback")

    def pause(self):
        self.player.set_pause(1)

    def seek(self, seconds: float):
        if not self.player.is_seekable():
            logger.debug("Stream is not seekable")
            return
        self.player.set_time(int(seconds * 1000))

    def set_volume(self, level: int):
        self._volume = level
        self.player.audio_set_volume(level)

    def set_muted(self, muted: bool):
        self.player.audio_set_mute(muted)

    def can_play_manifest(self) -> bool:
        # libvlc ships its own HLS demuxer
        return True

    @property
    def text_tracks(self) -> List[TextTrack]:
        return list(self._text_tracks)

    def add_text_track(self, track: TextTrack):
        self.player.add_slave(vlc.MediaSlaveType.subtitle, track.src, False)
        self._text_tracks.append(track)

    def remove_text_track(self, track: TextTrack):
        # libvlc cannot unload a slave; disabling the SPU is the closest equivalent
        self.player.video_set_spu(-1)
        self._text_tracks = [t for t in self._text_tracks if t is not track]
        track.mode = "hidden"

    def show_text_track(self, track: TextTrack):
        descriptions = self.player.video_get_spu_description() or []
        if not descriptions:
            logger.debug("No subtitle tracks reported by VLC yet")
            return
        # The most recently added slave is listed last
        self.player.video_set_spu(descriptions[-1][0])
        track.mode = "showing"

    def release(self):
        self._subscribers.clear()
        self.player.stop()
        self.player.release()
        self.instance.release()
