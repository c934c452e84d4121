import sys
import asyncio
from PyQt6.QtWidgets import QApplication
import qdarktheme
from qasync import QEventLoop
import logging
from flix.utils.logger import setup_logging
from flix.ui.main_window import MainWindow
from flix.database.db import CredentialStore
from flix.core.api_client import MediaServerClient
from flix.core.session_context import SessionContext

# Initialize logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("Flix")

def main():
    app = QApplication(sys.argv)

    # Apply Dark Theme
    qdarktheme.setup_theme("dark", corner_shape="rounded")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)

    store = CredentialStore()
    api = MediaServerClient(store)

    async def setup():
        await store.initialize()
        ctx = SessionContext(store, api)
        await ctx.initialize()
        window = MainWindow(ctx, api)
        window.navigate("/")
        window.show()
        # Ensure window is kept alive
        app._window = window

    # Schedule the initial setup
    asyncio.ensure_future(setup())

    with loop:
        loop.run_forever()
        loop.run_until_complete(api.aclose())

if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
