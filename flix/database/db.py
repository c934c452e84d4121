import json
import aiosqlite
from typing import Optional, Dict
from .models import User
from ..config import CREDENTIALS_DB_PATH
from ..utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_KEY = "jellyfin_token"
USER_KEY = "jellyfin_user"

class CredentialStore:
    """
    Durable key-value storage for the session token and user profile.

    Entries are loaded into memory on initialize() so that every API call can
    read the token synchronously; save() and clear() write through to SQLite.
    """

    def __init__(self, db_path: str = str(CREDENTIALS_DB_PATH)):
        self.db_path = db_path
        self._cache: Dict[str, str] = {}
        logger.debug(f"CredentialStore initialized with path: {self.db_path}")

    async def initialize(self):
        logger.info("Initializing credential store...")
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS credentials (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            await db.commit()

            async with db.execute("SELECT key, value FROM credentials") as cursor:
                rows = await cursor.fetchall()
                self._cache = {row[0]: row[1] for row in rows}
        logger.debug(f"Loaded {len(self._cache)} credential entries")

    @property
    def token(self) -> Optional[str]:
        return self._cache.get(TOKEN_KEY)

    @property
    def user(self) -> Optional[User]:
        raw = self._cache.get(USER_KEY)
        if not raw:
            return None
        try:
            return User.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error parsing stored user data: {e}")
            return None

    async def save(self, token: str, user: User):
        logger.debug(f"Persisting credentials for user: {user.name}")
        entries = {TOKEN_KEY: token, USER_KEY: json.dumps(user.to_dict())}
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                "INSERT OR REPLACE INTO credentials (key, value) VALUES (?, ?)",
                list(entries.items())
            )
            await db.commit()
        self._cache.update(entries)

    async def clear(self):
        logger.info("Clearing stored credentials")
        # Drop the cached token first so no request can pick it up mid-write
        self._cache.pop(TOKEN_KEY, None)
        self._cache.pop(USER_KEY, None)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM credentials WHERE key IN (?, ?)", (TOKEN_KEY, USER_KEY))
            await db.commit()
