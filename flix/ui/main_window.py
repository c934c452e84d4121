from PyQt6.QtWidgets import QMainWindow, QStackedWidget
import qasync

from .login_window import LoginWidget
from .home_window import HomeWidget, DetailsWidget
from .watch_window import WatchWindow
from ..core.api_client import MediaServerClient
from ..core.catalog import CatalogService
from ..core.session_context import SessionContext, LOGIN_ROUTE, HOME_ROUTE
from ..utils.logger import get_logger

logger = get_logger(__name__)

class MainWindow(QMainWindow):
    def __init__(self, ctx: SessionContext, api: MediaServerClient):
        super().__init__()
        self.setWindowTitle("Flix")
        self.resize(1280, 850)
        # Theme will be handled by qdarktheme
        self.setStyleSheet("")

        self.ctx = ctx
        self.ctx.navigate = self.navigate
        self.api = api
        self.catalog = CatalogService(api)
        self.watch_window = None
        self.current_route = None

        self.setup_ui()
        logger.info("MainWindow initialized")

    def setup_ui(self):
        self.stack = QStackedWidget()
        self.setCentralWidget(self.stack)

        self.login_page = LoginWidget(self.ctx)
        self.login_page.login_succeeded.connect(lambda: self.navigate(HOME_ROUTE))

        self.home_page = HomeWidget(self.catalog)
        self.home_page.item_selected.connect(lambda item: self.navigate(f"/details/{item.id}"))
        self.home_page.play_requested.connect(lambda item_id: self.navigate(f"/watch/{item_id}"))
        self.home_page.logout_requested.connect(self.logout)
        self.home_page.auth_lost.connect(self.logout)

        self.details_page = DetailsWidget(self.catalog)
        self.details_page.play_requested.connect(lambda item_id: self.navigate(f"/watch/{item_id}"))
        self.details_page.back_requested.connect(lambda: self.navigate(HOME_ROUTE))
        self.details_page.auth_lost.connect(self.logout)

        self.stack.addWidget(self.login_page)
        self.stack.addWidget(self.home_page)
        self.stack.addWidget(self.details_page)

    def navigate(self, route: str):
        resolved = self.ctx.resolve_route(route)
        if resolved != route:
            logger.debug(f"Route {route} redirected to {resolved}")
        self.current_route = resolved

        if resolved == LOGIN_ROUTE:
            self._close_player()
            self.stack.setCurrentWidget(self.login_page)
        elif resolved == HOME_ROUTE:
            self.home_page.set_user(self.ctx.user)
            self.stack.setCurrentWidget(self.home_page)
            self.home_page.load()
        elif resolved.startswith("/details/"):
            self.stack.setCurrentWidget(self.details_page)
            self.details_page.load(resolved[len("/details/"):])
        elif resolved.startswith("/watch/"):
            self._open_player(resolved[len("/watch/"):])
        else:
            logger.warning(f"Unknown route {resolved}")
            self.navigate(HOME_ROUTE)

    def _open_player(self, item_id: str):
        self._close_player()
        self.watch_window = WatchWindow(self.api, item_id)
        self.watch_window.navigate_requested.connect(self.navigate)
        self.watch_window.auth_lost.connect(self.logout)
        self.watch_window.window_closed.connect(self._on_player_closed)
        self.watch_window.show()
        self.watch_window.start()

    def _close_player(self):
        if self.watch_window:
            window = self.watch_window
            self.watch_window = None
            window.close()

    def _on_player_closed(self):
        self.watch_window = None

    @qasync.asyncSlot()
    async def logout(self):
        await self.ctx.logout()

    def closeEvent(self, event):
        self._close_player()
        super().closeEvent(event)
