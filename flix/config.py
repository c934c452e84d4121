import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Base Paths
BASE_DIR = Path(__file__).parent.parent
CREDENTIALS_DB_PATH = Path(os.getenv("FLIX_CREDENTIALS_DB", str(BASE_DIR / "flix.db")))

# Media Server
JELLYFIN_SERVER_URL = os.getenv("JELLYFIN_SERVER_URL", "http://localhost:8096").rstrip("/")
CLIENT_NAME = os.getenv("FLIX_CLIENT_NAME", "Flix")
DEVICE_NAME = os.getenv("FLIX_DEVICE_NAME", "Desktop")
DEVICE_ID = os.getenv("FLIX_DEVICE_ID", "flix-desktop-app")
CLIENT_VERSION = "1.0.0"
REQUEST_TIMEOUT = float(os.getenv("FLIX_REQUEST_TIMEOUT", "30"))
MAX_STREAMING_BITRATE = 140_000_000
PLACEHOLDER_IMAGE = "placeholder.svg"


def _parse_folder_map(raw: str) -> dict:
    """Parse "Movie=<id>,Series=<id>" into {"Movie": "<id>", "Series": "<id>"}."""
    folders = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        item_type, folder_id = pair.split("=", 1)
        if item_type.strip() and folder_id.strip():
            folders[item_type.strip()] = folder_id.strip()
    return folders


# Library Settings (item type -> library folder id)
LIBRARY_FOLDERS = _parse_folder_map(os.getenv("FLIX_LIBRARY_FOLDERS", ""))

# Playback Settings
SCRUB_SETTLE_DELAY = 0.5  # seconds
SUBTITLE_SHOW_DELAY = 0.5  # seconds
SKIP_SECONDS = 10
VOLUME_STEP = 5
NETWORK_CACHING_MS = int(os.getenv("FLIX_NETWORK_CACHING_MS", "3000"))  # libvlc read-ahead for network streams

# Login Background (TMDb relay)
TMDB_API_TOKEN = os.getenv("TMDB_API_TOKEN", "")
TMDB_API_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
RELAY_URL = os.getenv("FLIX_RELAY_URL", "http://127.0.0.1:8000/api/movies")
BACKGROUND_LANGUAGE = os.getenv("FLIX_BACKGROUND_LANGUAGE", "pt-BR")
BACKGROUND_ROTATE_INTERVAL = 8  # seconds
