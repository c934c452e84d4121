import asyncio
from PyQt6.QtWidgets import (QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QPushButton, QLabel,
                             QSlider, QFrame, QComboBox, QMessageBox, QProgressBar)
from PyQt6.QtCore import Qt, QTimer, QSize, pyqtSignal
import qasync

from .vlc_surface import VlcSurface
from .home_window import pixmap_from_bytes
from ..core.api_client import MediaServerClient
from ..core.errors import AuthenticationFailure, NegotiationFailure, TransientFetchFailure
from ..core.playback import PlaybackController
from ..database.models import MediaItem, PlaybackSession, SessionState
from ..utils.format_utils import format_time, format_runtime
from ..config import SKIP_SECONDS, VOLUME_STEP
from ..utils.logger import get_logger

logger = get_logger(__name__)

INFO_POSTER_SIZE = QSize(150, 225)
CONTROLS_HIDE_MS = 3000

OVERLAY_STYLE = "background-color: rgba(0, 0, 0, 0.75); border-radius: 10px; color: white;"

class ErrorPanel(QFrame):
    retry_requested = pyqtSignal()
    back_requested = pyqtSignal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setStyleSheet(OVERLAY_STYLE)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(24, 20, 24, 20)
        layout.setSpacing(14)

        heading = QLabel("Playback error")
        heading.setStyleSheet("font-size: 20px; font-weight: bold;")
        heading.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.message_label = QLabel()
        self.message_label.setWordWrap(True)
        self.message_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.message_label.setStyleSheet("font-size: 14px; color: #cccccc;")

        buttons = QHBoxLayout()
        retry_btn = QPushButton("Retry")
        retry_btn.clicked.connect(self.retry_requested)
        back_btn = QPushButton("Back")
        back_btn.clicked.connect(self.back_requested)
        buttons.addStretch()
        buttons.addWidget(retry_btn)
        buttons.addWidget(back_btn)
        buttons.addStretch()

        layout.addWidget(heading)
        layout.addWidget(self.message_label)
        layout.addLayout(buttons)
        self.setFixedWidth(380)
        self.hide()

    def show_error(self, message: str):
        self.message_label.setText(message or "Unable to play this content")
        self.adjustSize()
        self.show()
        self.raise_()

class InfoPanel(QFrame):
    """Item overview shown over the video: poster, year, runtime, genres and synopsis."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setStyleSheet(OVERLAY_STYLE)
        self.setFixedWidth(520)

        layout = QHBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)
        layout.setSpacing(16)

        self.poster_label = QLabel()
        self.poster_label.setFixedSize(INFO_POSTER_SIZE)
        self.poster_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.poster_label.setStyleSheet("background-color: #2a2a2a; border-radius: 6px;")

        text = QVBoxLayout()
        header = QHBoxLayout()
        self.name_label = QLabel()
        self.name_label.setWordWrap(True)
        self.name_label.setStyleSheet("font-size: 18px; font-weight: bold;")
        close_btn = QPushButton("✕")
        close_btn.setFixedSize(28, 28)
        close_btn.setToolTip("Close (Esc)")
        close_btn.clicked.connect(self.hide)
        header.addWidget(self.name_label, 1)
        header.addWidget(close_btn, 0, Qt.AlignmentFlag.AlignTop)

        self.meta_label = QLabel()
        self.meta_label.setStyleSheet("color: #aaaaaa;")
        self.genres_label = QLabel()
        self.genres_label.setWordWrap(True)
        self.genres_label.setStyleSheet("color: #8ab4f8; font-size: 12px;")
        self.overview_label = QLabel()
        self.overview_label.setWordWrap(True)
        self.overview_label.setAlignment(Qt.AlignmentFlag.AlignTop | Qt.AlignmentFlag.AlignLeft)

        text.addLayout(header)
        text.addWidget(self.meta_label)
        text.addWidget(self.genres_label)
        text.addWidget(self.overview_label, 1)

        layout.addWidget(self.poster_label, 0, Qt.AlignmentFlag.AlignTop)
        layout.addLayout(text, 1)
        self.hide()

    def set_item(self, item: MediaItem):
        self.name_label.setText(item.name)
        meta = [str(item.production_year) if item.production_year else "", format_runtime(item.run_time_ticks),
                item.official_rating or ""]
        self.meta_label.setText("  •  ".join(m for m in meta if m))
        self.genres_label.setText(" · ".join(item.genres))
        self.genres_label.setVisible(bool(item.genres))
        self.overview_label.setText(item.overview or "No overview available.")
        self.poster_label.setText("No poster")

    def set_poster(self, pixmap):
        if pixmap is None:
            return
        self.poster_label.setText("")
        self.poster_label.setPixmap(pixmap)

class WatchWindow(QMainWindow):
    # Details page on Back or when the stream cannot be negotiated
    navigate_requested = pyqtSignal(str)
    window_closed = pyqtSignal()
    auth_lost = pyqtSignal()

    def __init__(self, api: MediaServerClient, item_id: str, parent=None):
        super().__init__(parent)
        self.api = api
        self.item_id = item_id
        self.setWindowTitle("Flix")
        self.resize(1280, 720)

        self.surface = VlcSurface(asyncio.get_event_loop())
        self.controller = PlaybackController(api, self.surface)
        self.controller.add_listener(self._on_session_changed)
        self.is_fullscreen = False

        self.setup_ui()

        self.controls_hide_timer = QTimer(self)
        self.controls_hide_timer.setSingleShot(True)
        self.controls_hide_timer.timeout.connect(self._hide_chrome)

    def setup_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        root = QVBoxLayout(central)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(0)

        self.video_container = QWidget()
        self.video_container.setStyleSheet("background-color: black;")
        self.video_container.setMouseTracking(True)

        # Overlays live on the video container and are placed in resizeEvent
        self.top_bar = QFrame(self.video_container)
        self.top_bar.setStyleSheet("background-color: rgba(0, 0, 0, 0.55);")
        top = QHBoxLayout(self.top_bar)
        top.setContentsMargins(10, 6, 10, 6)
        self.back_btn = QPushButton("← Back")
        self.back_btn.setFlat(True)
        self.back_btn.clicked.connect(self.go_back)
        self.title_label = QLabel("Loading...")
        self.title_label.setStyleSheet("color: white; font-size: 17px; font-weight: bold;")
        top.addWidget(self.back_btn)
        top.addSpacing(12)
        top.addWidget(self.title_label, 1)

        self.error_panel = ErrorPanel(self.video_container)
        self.error_panel.retry_requested.connect(self.retry)
        self.error_panel.back_requested.connect(self.go_back)

        self.info_panel = InfoPanel(self.video_container)

        self.osd_label = QLabel(self.video_container)
        self.osd_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.osd_label.setStyleSheet(
            "color: white; background-color: rgba(0, 0, 0, 0.6); border-radius: 24px;"
            " font-size: 26px; font-weight: bold; padding: 14px 30px;"
        )
        self.osd_label.hide()

        root.addWidget(self.video_container, 1)
        root.addWidget(self._build_controls())

        for control in (self.seek_slider, self.volume_slider, self.subtitle_selector):
            control.installEventFilter(self)
        self.setMouseTracking(True)

    def _build_controls(self):
        self.controls_bar = QFrame()
        self.controls_bar.setStyleSheet("background-color: #141414;")
        column = QVBoxLayout(self.controls_bar)
        column.setContentsMargins(14, 8, 14, 10)
        column.setSpacing(4)

        # elapsed | seek | duration, with the buffered range drawn under the slider
        seek_row = QHBoxLayout()
        self.elapsed_label = QLabel("0:00")
        self.duration_label = QLabel("0:00")
        for label in (self.elapsed_label, self.duration_label):
            label.setStyleSheet("color: #bbbbbb; font-family: 'Consolas';")
            label.setMinimumWidth(56)
        self.duration_label.setAlignment(Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter)

        seek_column = QVBoxLayout()
        seek_column.setSpacing(0)
        self.seek_slider = QSlider(Qt.Orientation.Horizontal)
        self.seek_slider.setRange(0, 1000)
        self.seek_slider.sliderMoved.connect(self._on_seek_moved)
        self.seek_slider.sliderReleased.connect(self._on_seek_released)
        self.buffer_bar = QProgressBar()
        self.buffer_bar.setRange(0, 1000)
        self.buffer_bar.setTextVisible(False)
        self.buffer_bar.setFixedHeight(3)
        self.buffer_bar.setStyleSheet(
            "QProgressBar { background-color: #2a2a2a; border: none; }"
            " QProgressBar::chunk { background-color: #5f6368; }"
        )
        seek_column.addWidget(self.seek_slider)
        seek_column.addWidget(self.buffer_bar)

        seek_row.addWidget(self.elapsed_label)
        seek_row.addLayout(seek_column, 1)
        seek_row.addWidget(self.duration_label)

        buttons = QHBoxLayout()
        buttons.setSpacing(6)

        self.skip_back_btn = QPushButton(f"⏪ {SKIP_SECONDS}")
        self.skip_back_btn.clicked.connect(lambda: self._skip(-SKIP_SECONDS))
        self.play_pause_btn = QPushButton("▶")
        self.play_pause_btn.setFixedSize(48, 36)
        self.play_pause_btn.clicked.connect(self.toggle_pause)
        self.skip_fwd_btn = QPushButton(f"{SKIP_SECONDS} ⏩")
        self.skip_fwd_btn.clicked.connect(lambda: self._skip(SKIP_SECONDS))

        self.volume_btn = QPushButton("🔊")
        self.volume_btn.setFixedWidth(36)
        self.volume_btn.clicked.connect(self.toggle_mute)
        self.volume_slider = QSlider(Qt.Orientation.Horizontal)
        self.volume_slider.setRange(0, 100)
        self.volume_slider.setValue(100)
        self.volume_slider.setFixedWidth(90)
        self.volume_slider.valueChanged.connect(self._on_volume_changed)

        self.subtitle_selector = QComboBox()
        self.subtitle_selector.setMinimumWidth(170)
        self.subtitle_selector.setToolTip("Subtitles (S)")
        self.subtitle_selector.currentIndexChanged.connect(self._on_subtitle_changed)

        self.info_btn = QPushButton("ⓘ")
        self.info_btn.setFixedWidth(36)
        self.info_btn.setToolTip("Info (I)")
        self.info_btn.clicked.connect(self.toggle_info)
        self.fullscreen_btn = QPushButton("⛶")
        self.fullscreen_btn.setFixedWidth(36)
        self.fullscreen_btn.setToolTip("Fullscreen (F)")
        self.fullscreen_btn.clicked.connect(self.toggle_fullscreen)

        buttons.addWidget(self.skip_back_btn)
        buttons.addWidget(self.play_pause_btn)
        buttons.addWidget(self.skip_fwd_btn)
        buttons.addStretch()
        buttons.addWidget(self.subtitle_selector)
        buttons.addSpacing(8)
        buttons.addWidget(self.volume_btn)
        buttons.addWidget(self.volume_slider)
        buttons.addSpacing(8)
        buttons.addWidget(self.info_btn)
        buttons.addWidget(self.fullscreen_btn)

        column.addLayout(seek_row)
        column.addLayout(buttons)
        return self.controls_bar

    # Loading

    @qasync.asyncSlot()
    async def start(self):
        await self._load(self.controller.initialize(self.item_id))

    @qasync.asyncSlot()
    async def retry(self):
        self.error_panel.hide()
        if self.controller.session is None:
            await self._load(self.controller.initialize(self.item_id))
        else:
            await self._load(self.controller.retry())

    async def _load(self, pending):
        try:
            session = await pending
        except AuthenticationFailure:
            self.auth_lost.emit()
            self.close()
            return
        except NegotiationFailure as e:
            QMessageBox.warning(self, "Error loading video", f"Failed to load video stream\n{e}")
            self.go_back()
            return
        if session is None:
            return

        self.title_label.setText(session.item.name if session.item else "")
        self._fill_subtitles(session)
        if session.item:
            self.info_panel.set_item(session.item)
            await self._load_poster(session.item.id)

    def _fill_subtitles(self, session: PlaybackSession):
        self.subtitle_selector.blockSignals(True)
        self.subtitle_selector.clear()
        self.subtitle_selector.addItem("Subtitles off", None)
        for track in session.subtitle_tracks:
            self.subtitle_selector.addItem(track.display_title, track.id)
            if track.id == session.subtitle_track_id:
                self.subtitle_selector.setCurrentIndex(self.subtitle_selector.count() - 1)
        self.subtitle_selector.blockSignals(False)

    async def _load_poster(self, item_id: str):
        try:
            data = await self.api.fetch_image(item_id, "Primary")
        except TransientFetchFailure as e:
            logger.debug(f"No poster for info panel: {e}")
            return
        self.info_panel.set_poster(pixmap_from_bytes(data, INFO_POSTER_SIZE))

    def go_back(self):
        self.navigate_requested.emit(f"/details/{self.item_id}")
        self.close()

    # Session mirroring

    def _on_session_changed(self, session: PlaybackSession):
        self.play_pause_btn.setText("⏸" if session.is_playing else "▶")
        if session.state == SessionState.ENDED:
            self.play_pause_btn.setText("↻")

        duration = session.duration_seconds
        if duration > 0:
            if not self.seek_slider.isSliderDown():
                self.seek_slider.blockSignals(True)
                self.seek_slider.setValue(int(session.current_time_seconds / duration * 1000))
                self.seek_slider.blockSignals(False)
            self.buffer_bar.setValue(int(min(session.buffered_seconds, duration) / duration * 1000))
        self.elapsed_label.setText(format_time(session.current_time_seconds))
        self.duration_label.setText(format_time(duration))

        self.volume_slider.blockSignals(True)
        self.volume_slider.setValue(session.volume)
        self.volume_slider.blockSignals(False)
        self._update_volume_icon(session.volume, session.is_muted)

        if session.state == SessionState.FAILED:
            self.error_panel.show_error(session.error_message)
            self._place_overlays()
        elif session.state == SessionState.ENDED:
            self._show_chrome()

    def _update_volume_icon(self, volume, muted):
        if volume == 0 or muted:
            self.volume_btn.setText("🔇")
        elif volume < 50:
            self.volume_btn.setText("🔉")
        else:
            self.volume_btn.setText("🔊")

    # Controls

    def toggle_pause(self):
        session = self.controller.session
        if not session:
            return
        if session.state == SessionState.ENDED:
            # Replay from the start
            self.retry()
        else:
            self.controller.toggle_play_pause()

    def toggle_mute(self):
        if self.controller.session:
            self.controller.toggle_mute()
            self.show_osd("Muted" if not self.controller.session.is_muted else "Unmuted")

    def _on_volume_changed(self, value):
        if self.controller.session:
            self.controller.set_volume(value)
            self.show_osd(f"Volume {value}%")

    def _adjust_volume(self, delta):
        if self.controller.session:
            self._on_volume_changed(max(0, min(100, self.controller.session.volume + delta)))

    def _skip(self, seconds):
        if not self.controller.session:
            return
        self.controller.skip(seconds)
        self.show_osd(f"{'+' if seconds > 0 else '-'}{abs(seconds)}s")

    def _slider_seconds(self, value):
        return value / 1000.0 * self.controller.session.duration_seconds

    def _on_seek_moved(self, value):
        if self.controller.session and self.controller.session.duration_seconds > 0:
            self.controller.scrub(self._slider_seconds(value))
            self.elapsed_label.setText(format_time(self._slider_seconds(value)))

    def _on_seek_released(self):
        if self.controller.session and self.controller.session.duration_seconds > 0:
            self.controller.seek(self._slider_seconds(self.seek_slider.value()))

    def _on_subtitle_changed(self, index):
        if self.controller.session:
            self.controller.select_subtitle(self.subtitle_selector.itemData(index))

    def toggle_info(self):
        if self.info_panel.isVisible():
            self.info_panel.hide()
            return
        session = self.controller.session
        if not session or not session.item:
            self.show_osd("No details available")
            return
        self._place_overlays()
        self.info_panel.show()
        self.info_panel.raise_()

    # Chrome

    def _place_overlays(self):
        width = self.video_container.width()
        height = self.video_container.height()
        self.top_bar.setGeometry(0, 0, width, self.top_bar.sizeHint().height())
        self.info_panel.adjustSize()
        self.info_panel.move(max(0, width - self.info_panel.width() - 24), self.top_bar.height() + 16)
        self.error_panel.move((width - self.error_panel.width()) // 2, (height - self.error_panel.height()) // 2)

    def show_osd(self, text, duration=1500):
        self.osd_label.setText(text)
        self.osd_label.adjustSize()
        self.osd_label.move((self.video_container.width() - self.osd_label.width()) // 2,
                            self.video_container.height() // 3)
        self.osd_label.show()
        self.osd_label.raise_()
        QTimer.singleShot(duration, self.osd_label.hide)

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._place_overlays()

    def toggle_fullscreen(self):
        self.is_fullscreen = not self.is_fullscreen
        if self.is_fullscreen:
            self.showFullScreen()
            self.controls_hide_timer.start(CONTROLS_HIDE_MS)
        else:
            self.showNormal()
            self.controls_hide_timer.stop()
            self._show_chrome()

    def _show_chrome(self):
        self.controls_bar.show()
        self.top_bar.show()
        self.setCursor(Qt.CursorShape.ArrowCursor)

    def _hide_chrome(self):
        session = self.controller.session
        if self.is_fullscreen and session and session.is_playing:
            self.controls_bar.hide()
            self.top_bar.hide()
            self.setCursor(Qt.CursorShape.BlankCursor)

    def mouseMoveEvent(self, event):
        if self.is_fullscreen:
            self._show_chrome()
            self.controls_hide_timer.start(CONTROLS_HIDE_MS)
        super().mouseMoveEvent(event)

    def mouseDoubleClickEvent(self, event):
        self.toggle_fullscreen()
        super().mouseDoubleClickEvent(event)

    def keyPressEvent(self, event):
        key = event.key()
        actions = {
            Qt.Key.Key_Space: self.toggle_pause,
            Qt.Key.Key_K: self.toggle_pause,
            Qt.Key.Key_Right: lambda: self._skip(SKIP_SECONDS),
            Qt.Key.Key_Left: lambda: self._skip(-SKIP_SECONDS),
            Qt.Key.Key_Up: lambda: self._adjust_volume(VOLUME_STEP),
            Qt.Key.Key_Down: lambda: self._adjust_volume(-VOLUME_STEP),
            Qt.Key.Key_M: self.toggle_mute,
            Qt.Key.Key_F: self.toggle_fullscreen,
            Qt.Key.Key_F11: self.toggle_fullscreen,
            Qt.Key.Key_S: self.subtitle_selector.showPopup,
            Qt.Key.Key_I: self.toggle_info,
            Qt.Key.Key_Escape: self._escape,
        }
        action = actions.get(key)
        if action is None:
            super().keyPressEvent(event)
            return
        action()
        event.accept()

    def _escape(self):
        # Close the innermost layer first
        if self.info_panel.isVisible():
            self.info_panel.hide()
        elif self.is_fullscreen:
            self.toggle_fullscreen()
        else:
            self.go_back()

    def eventFilter(self, obj, event):
        """Route shortcuts to the window even when a control has focus"""
        if event.type() == event.Type.KeyPress:
            if event.key() in (Qt.Key.Key_Space, Qt.Key.Key_K, Qt.Key.Key_F, Qt.Key.Key_F11, Qt.Key.Key_M,
                               Qt.Key.Key_I, Qt.Key.Key_Escape, Qt.Key.Key_Left, Qt.Key.Key_Right,
                               Qt.Key.Key_Up, Qt.Key.Key_Down):
                self.keyPressEvent(event)
                return True
        return super().eventFilter(obj, event)

    def showEvent(self, event):
        # Embed VLC in our QWidget after it's shown
        self.surface.bind_window(int(self.video_container.winId()))
        super().showEvent(event)
        self._place_overlays()

    def closeEvent(self, event):
        self.controller.teardown()
        try:
            self.surface.unbind_window()
            self.surface.release()
        except Exception as e:
            logger.warning(f"Error releasing VLC: {e}")
        self.window_closed.emit()
        event.accept()
