import httpx
from PyQt6.QtWidgets import QWidget, QVBoxLayout, QLabel, QLineEdit, QPushButton, QFrame
from PyQt6.QtCore import Qt, QTimer, pyqtSignal
from PyQt6.QtGui import QPixmap
import qasync

from ..core.background_feed import LoginBackgroundFeed
from ..core.errors import FlixError
from ..core.session_context import SessionContext
from ..config import BACKGROUND_ROTATE_INTERVAL, REQUEST_TIMEOUT
from ..utils.logger import get_logger

logger = get_logger(__name__)

class LoginWidget(QWidget):
    login_succeeded = pyqtSignal()

    def __init__(self, ctx: SessionContext, feed: LoginBackgroundFeed = None, parent=None):
        super().__init__(parent)
        self.ctx = ctx
        self.feed = feed or LoginBackgroundFeed()
        self._background = None

        self.setup_ui()

        self.rotate_timer = QTimer(self)
        self.rotate_timer.setInterval(BACKGROUND_ROTATE_INTERVAL * 1000)
        self.rotate_timer.timeout.connect(self.next_background)

    def setup_ui(self):
        # Background fills the page, the form floats over it
        self.background_label = QLabel(self)
        self.background_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.background_label.setStyleSheet("background-color: #0b0b0b;")

        self.layout = QVBoxLayout(self)
        self.layout.setAlignment(Qt.AlignmentFlag.AlignCenter)

        self.form = QFrame()
        self.form.setFixedWidth(380)
        self.form.setStyleSheet("""
            QFrame {
                background-color: rgba(0, 0, 0, 0.75);
                border-radius: 12px;
            }
            QLineEdit {
                border-radius: 8px;
                padding: 10px 14px;
                font-size: 14px;
                background-color: rgba(255, 255, 255, 0.08);
                border: 1px solid rgba(255, 255, 255, 0.15);
            }
            QPushButton {
                border-radius: 8px;
                padding: 10px;
                font-weight: bold;
                background-color: #e50914;
                color: white;
            }
            QPushButton:disabled {
                background-color: #7a1a1f;
            }
        """)
        form_layout = QVBoxLayout(self.form)
        form_layout.setContentsMargins(30, 30, 30, 30)
        form_layout.setSpacing(12)

        title = QLabel("Sign In")
        title.setStyleSheet("font-size: 26px; font-weight: bold; color: white; background: transparent;")

        self.username_edit = QLineEdit()
        self.username_edit.setPlaceholderText("Username")
        self.password_edit = QLineEdit()
        self.password_edit.setPlaceholderText("Password")
        self.password_edit.setEchoMode(QLineEdit.EchoMode.Password)
        self.password_edit.returnPressed.connect(self.submit)

        self.error_label = QLabel()
        self.error_label.setWordWrap(True)
        self.error_label.setStyleSheet("color: #ff6b6b; background: transparent;")
        self.error_label.hide()

        self.submit_btn = QPushButton("Sign In")
        self.submit_btn.clicked.connect(self.submit)

        self.caption_label = QLabel()
        self.caption_label.setStyleSheet("color: rgba(255, 255, 255, 0.6); font-size: 11px; background: transparent;")

        form_layout.addWidget(title)
        form_layout.addWidget(self.username_edit)
        form_layout.addWidget(self.password_edit)
        form_layout.addWidget(self.error_label)
        form_layout.addWidget(self.submit_btn)
        form_layout.addWidget(self.caption_label)

        self.layout.addWidget(self.form)

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self.background_label.setGeometry(self.rect())
        self.background_label.lower()
        self._apply_background()

    def showEvent(self, event):
        super().showEvent(event)
        self.username_edit.setFocus()
        self.start_background()

    def hideEvent(self, event):
        self.rotate_timer.stop()
        super().hideEvent(event)

    @qasync.asyncSlot()
    async def submit(self):
        username = self.username_edit.text().strip()
        password = self.password_edit.text()
        if not username:
            self._show_error("Please enter your username")
            return

        self.error_label.hide()
        self.submit_btn.setEnabled(False)
        self.submit_btn.setText("Signing in...")
        try:
            user = await self.ctx.login(username, password)
        except FlixError as e:
            logger.warning(f"Login failed for {username}: {e}")
            self._show_error("Invalid username or password")
            return
        finally:
            self.submit_btn.setEnabled(True)
            self.submit_btn.setText("Sign In")

        logger.info(f"Logged in as {user.name}")
        self.password_edit.clear()
        self.login_succeeded.emit()

    def _show_error(self, message):
        self.error_label.setText(message)
        self.error_label.show()

    # Background

    @qasync.asyncSlot()
    async def start_background(self):
        if not self.feed.movies:
            await self.feed.load()
        if self.feed.current:
            await self._load_background(self.feed.current)
            self.rotate_timer.start()

    @qasync.asyncSlot()
    async def next_background(self):
        movie = self.feed.advance()
        if movie:
            await self._load_background(movie)

    async def _load_background(self, movie):
        url = LoginBackgroundFeed.backdrop_url(movie, "w1280")
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(f"Could not load backdrop {url}: {e}")
            return

        pixmap = QPixmap()
        if pixmap.loadFromData(response.content):
            self._background = pixmap
            self.caption_label.setText(movie.title)
            self._apply_background()

    def _apply_background(self):
        if self._background is None:
            return
        scaled = self._background.scaled(
            self.size(),
            Qt.AspectRatioMode.KeepAspectRatioByExpanding,
            Qt.TransformationMode.SmoothTransformation
        )
        self.background_label.setPixmap(scaled)
