from typing import List
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QFrame,
                             QScrollArea, QListWidget, QListWidgetItem, QComboBox)
from PyQt6.QtCore import Qt, pyqtSignal, QSize
from PyQt6.QtGui import QPixmap, QIcon
import qasync

from ..core.catalog import CatalogService, DetailsContent
from ..core.errors import AuthenticationFailure, FlixError
from ..database.models import MediaItem, Episode
from ..utils.format_utils import format_runtime
from ..utils.logger import get_logger

logger = get_logger(__name__)

POSTER_SIZE = QSize(180, 260)

class PosterRow(QWidget):
    item_selected = pyqtSignal(object)

    def __init__(self, title: str, parent=None):
        super().__init__(parent)
        self.layout = QVBoxLayout(self)
        self.layout.setContentsMargins(0, 0, 0, 0)

        self.header = QLabel(title)
        self.header.setStyleSheet("font-size: 20px; font-weight: bold; margin: 10px 0px;")
        self.list = QListWidget()
        self.list.setFlow(QListWidget.Flow.LeftToRight)
        self.list.setWrapping(False)
        self.list.setIconSize(POSTER_SIZE)
        self.list.setFixedHeight(POSTER_SIZE.height() + 60)
        self.list.setSpacing(8)
        self.list.setStyleSheet("""
            QListWidget { background: transparent; border: none; }
            QListWidget::item { border-radius: 12px; }
            QListWidget::item:hover { background-color: rgba(61, 90, 254, 0.1); }
        """)
        self.list.itemClicked.connect(lambda it: self.item_selected.emit(it.data(Qt.ItemDataRole.UserRole)))

        self.layout.addWidget(self.header)
        self.layout.addWidget(self.list)

    def set_items(self, items: List[MediaItem]) -> List[QListWidgetItem]:
        self.list.clear()
        entries = []
        for media in items:
            entry = QListWidgetItem("🎞️\n" + media.name)
            entry.setData(Qt.ItemDataRole.UserRole, media)
            entry.setSizeHint(QSize(POSTER_SIZE.width(), POSTER_SIZE.height() + 40))
            entry.setTextAlignment(Qt.AlignmentFlag.AlignHCenter | Qt.AlignmentFlag.AlignBottom)
            self.list.addItem(entry)
            entries.append(entry)
        self.setVisible(bool(items))
        return entries

def pixmap_from_bytes(data, size: QSize = POSTER_SIZE):
    if not data:
        return None
    pixmap = QPixmap()
    if not pixmap.loadFromData(data):
        return None
    return pixmap.scaled(size, Qt.AspectRatioMode.KeepAspectRatioByExpanding,
                         Qt.TransformationMode.SmoothTransformation)

class HomeWidget(QWidget):
    item_selected = pyqtSignal(object)
    play_requested = pyqtSignal(str)
    logout_requested = pyqtSignal()
    auth_lost = pyqtSignal()

    def __init__(self, catalog: CatalogService, parent=None):
        super().__init__(parent)
        self.catalog = catalog
        self.setup_ui()

    def setup_ui(self):
        outer = QVBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)

        # Top bar
        top_bar = QHBoxLayout()
        top_bar.setContentsMargins(20, 10, 20, 0)
        brand = QLabel("FLIX")
        brand.setStyleSheet("font-size: 28px; font-weight: 900; color: #e50914;")
        self.user_label = QLabel()
        self.logout_btn = QPushButton("Sign Out")
        self.logout_btn.clicked.connect(self.logout_requested.emit)
        top_bar.addWidget(brand)
        top_bar.addStretch()
        top_bar.addWidget(self.user_label)
        top_bar.addWidget(self.logout_btn)
        outer.addLayout(top_bar)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.Shape.NoFrame)
        content = QWidget()
        self.content_layout = QVBoxLayout(content)
        self.content_layout.setContentsMargins(20, 10, 20, 20)

        # Featured banner
        self.featured = QFrame()
        self.featured.setMinimumHeight(320)
        self.featured.setStyleSheet("QFrame { background-color: #141414; border-radius: 12px; }")
        featured_layout = QVBoxLayout(self.featured)
        featured_layout.setAlignment(Qt.AlignmentFlag.AlignBottom)
        self.featured_title = QLabel()
        self.featured_title.setStyleSheet("font-size: 32px; font-weight: bold; background: transparent;")
        self.featured_overview = QLabel()
        self.featured_overview.setWordWrap(True)
        self.featured_overview.setStyleSheet("color: rgba(255, 255, 255, 0.8); background: transparent;")
        featured_btns = QHBoxLayout()
        self.featured_play_btn = QPushButton("▶ Play")
        self.featured_info_btn = QPushButton("More Info")
        self.featured_play_btn.clicked.connect(self._play_featured)
        self.featured_info_btn.clicked.connect(self._open_featured)
        featured_btns.addWidget(self.featured_play_btn)
        featured_btns.addWidget(self.featured_info_btn)
        featured_btns.addStretch()
        featured_layout.addWidget(self.featured_title)
        featured_layout.addWidget(self.featured_overview)
        featured_layout.addLayout(featured_btns)
        self.featured.hide()
        self._featured_item = None

        self.continue_row = PosterRow("Continue Watching")
        self.movies_row = PosterRow("Movies")
        self.series_row = PosterRow("Series")
        for row in (self.continue_row, self.movies_row, self.series_row):
            row.item_selected.connect(self.item_selected.emit)

        self.status_label = QLabel("Loading...")
        self.status_label.setAlignment(Qt.AlignmentFlag.AlignCenter)

        self.content_layout.addWidget(self.featured)
        self.content_layout.addWidget(self.status_label)
        self.content_layout.addWidget(self.continue_row)
        self.content_layout.addWidget(self.movies_row)
        self.content_layout.addWidget(self.series_row)
        self.content_layout.addStretch()

        scroll.setWidget(content)
        outer.addWidget(scroll)

    def set_user(self, user):
        self.user_label.setText(user.name if user else "")

    @qasync.asyncSlot()
    async def load(self):
        self.status_label.setText("Loading...")
        self.status_label.show()
        try:
            home = await self.catalog.load_home()
        except AuthenticationFailure:
            self.auth_lost.emit()
            return
        except FlixError as e:
            logger.error(f"Error loading home: {e}")
            self.status_label.setText("Could not load your library")
            return

        self.status_label.setVisible(not (home.continue_watching or home.movies or home.series))
        self.status_label.setText("Nothing to watch yet")

        self._featured_item = home.featured
        if home.featured:
            self.featured_title.setText(home.featured.name)
            self.featured_overview.setText(home.featured.overview[:300])
            self.featured.show()
        else:
            self.featured.hide()

        rows = [
            (self.continue_row, home.continue_watching),
            (self.movies_row, home.movies),
            (self.series_row, home.series),
        ]
        for row, items in rows:
            entries = row.set_items(items)
            for entry in entries:
                await self._load_poster(entry)

    async def _load_poster(self, entry: QListWidgetItem):
        media = entry.data(Qt.ItemDataRole.UserRole)
        if "Primary" not in media.image_tags:
            return
        pixmap = pixmap_from_bytes(await self.catalog.load_image(media.id, "Primary"))
        if pixmap:
            entry.setIcon(QIcon(pixmap))
            entry.setText(media.name)

    def _play_featured(self):
        if self._featured_item:
            self.play_requested.emit(self._featured_item.id)

    def _open_featured(self):
        if self._featured_item:
            self.item_selected.emit(self._featured_item)

class DetailsWidget(QWidget):
    play_requested = pyqtSignal(str)
    back_requested = pyqtSignal()
    auth_lost = pyqtSignal()

    def __init__(self, catalog: CatalogService, parent=None):
        super().__init__(parent)
        self.catalog = catalog
        self.details: DetailsContent = None
        self.setup_ui()

    def setup_ui(self):
        self.layout = QVBoxLayout(self)
        self.layout.setContentsMargins(20, 10, 20, 20)

        self.back_btn = QPushButton("← Back")
        self.back_btn.setFixedWidth(100)
        self.back_btn.clicked.connect(self.back_requested.emit)

        header = QHBoxLayout()
        self.poster_label = QLabel("🎞️")
        self.poster_label.setFixedSize(POSTER_SIZE)
        self.poster_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.poster_label.setStyleSheet("font-size: 40px; border-radius: 12px; background-color: #2a2a2a;")

        info = QVBoxLayout()
        self.title_label = QLabel()
        self.title_label.setStyleSheet("font-size: 28px; font-weight: bold;")
        self.meta_label = QLabel()
        self.meta_label.setStyleSheet("color: rgba(255, 255, 255, 0.6);")
        self.overview_label = QLabel()
        self.overview_label.setWordWrap(True)
        self.play_btn = QPushButton("▶ Play")
        self.play_btn.setFixedWidth(120)
        self.play_btn.clicked.connect(self._play_item)
        info.addWidget(self.title_label)
        info.addWidget(self.meta_label)
        info.addWidget(self.overview_label)
        info.addWidget(self.play_btn)
        info.addStretch()

        header.addWidget(self.poster_label)
        header.addLayout(info, 1)

        # Series only
        self.season_selector = QComboBox()
        self.season_selector.currentIndexChanged.connect(self._on_season_changed)
        self.episode_list = QListWidget()
        self.episode_list.itemDoubleClicked.connect(self._on_episode_activated)

        self.layout.addWidget(self.back_btn)
        self.layout.addLayout(header)
        self.layout.addWidget(self.season_selector)
        self.layout.addWidget(self.episode_list, 1)

    @qasync.asyncSlot(str)
    async def load(self, item_id: str):
        self.details = None
        self.title_label.setText("Loading...")
        self.meta_label.clear()
        self.overview_label.clear()
        self.season_selector.hide()
        self.episode_list.hide()
        try:
            details = await self.catalog.load_details(item_id)
        except AuthenticationFailure:
            self.auth_lost.emit()
            return
        except FlixError as e:
            logger.error(f"Error loading details for {item_id}: {e}")
            self.title_label.setText("Could not load this title")
            return

        self.details = details
        item = details.item
        self.title_label.setText(item.name)
        meta = [str(item.production_year) if item.production_year else "",
                format_runtime(item.run_time_ticks), item.official_rating or "",
                ", ".join(item.genres)]
        self.meta_label.setText("  •  ".join(m for m in meta if m))
        self.overview_label.setText(item.overview)
        self.play_btn.setVisible(not details.is_series)

        if details.is_series:
            self.season_selector.blockSignals(True)
            self.season_selector.clear()
            for season in details.seasons:
                self.season_selector.addItem(season.name, season.id)
            self.season_selector.blockSignals(False)
            self.season_selector.setVisible(bool(details.seasons))
            self.episode_list.show()
            if details.seasons:
                self._show_episodes(details.episodes.get(details.seasons[0].id, []))

        pixmap = pixmap_from_bytes(await self.catalog.load_image(item.id, "Primary"))
        if pixmap:
            self.poster_label.setPixmap(pixmap)
        else:
            self.poster_label.setText("🎞️")

    def _show_episodes(self, episodes: List[Episode]):
        self.episode_list.clear()
        for ep in episodes:
            number = f"{ep.index_number}. " if ep.index_number is not None else ""
            runtime = format_runtime(ep.run_time_ticks)
            text = f"{number}{ep.name}" + (f"  ({runtime})" if runtime else "")
            entry = QListWidgetItem(text)
            entry.setData(Qt.ItemDataRole.UserRole, ep)
            entry.setToolTip(ep.overview)
            self.episode_list.addItem(entry)

    @qasync.asyncSlot(int)
    async def _on_season_changed(self, index):
        if not self.details or index < 0:
            return
        season_id = self.season_selector.itemData(index)
        self._show_episodes(await self.catalog.load_episodes(self.details, season_id))

    def _on_episode_activated(self, entry):
        ep = entry.data(Qt.ItemDataRole.UserRole)
        self.play_requested.emit(ep.id)

    def _play_item(self):
        if self.details:
            self.play_requested.emit(self.details.item.id)
