from typing import Optional, Callable
from .api_client import MediaServerClient
from .errors import AuthenticationFailure, FlixError
from ..database.db import CredentialStore
from ..database.models import User
from ..utils.logger import get_logger

logger = get_logger(__name__)

LOGIN_ROUTE = "/login"
HOME_ROUTE = "/home"
PROTECTED_PREFIXES = ("/home", "/details/", "/watch/")

class SessionContext:
    """
    Application-lifetime authentication state.

    Owns the current user and gates every content route. Views receive this
    object explicitly; nothing reads authentication state from globals.
    """

    def __init__(self, store: CredentialStore, api: MediaServerClient,
                 navigate: Optional[Callable[[str], None]] = None):
        self.store = store
        self.api = api
        self.navigate = navigate
        self.user: Optional[User] = None
        self.is_loading = True

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    async def initialize(self):
        """Restore a previous session if the stored token is still accepted."""
        try:
            if not self.store.token:
                logger.info("No stored session")
                return
            self.user = await self.api.get_user_info()
            logger.info(f"Restored session for {self.user.name}")
        except FlixError as e:
            logger.warning(f"Stored session rejected: {e}")
            self.user = None
            await self.store.clear()
        finally:
            self.is_loading = False

    async def login(self, username: str, password: str) -> User:
        _, user = await self.api.authenticate_by_name(username, password)
        self.user = user
        self.is_loading = False
        return user

    async def logout(self):
        logger.info("Logging out")
        await self.store.clear()
        self.user = None
        if self.navigate:
            self.navigate(LOGIN_ROUTE)

    def require_auth(self):
        if not self.is_authenticated:
            raise AuthenticationFailure("Not authenticated")

    def resolve_route(self, route: str) -> str:
        """Return the route that should actually be shown for a requested one."""
        if route in ("", "/"):
            return HOME_ROUTE if self.is_authenticated else LOGIN_ROUTE
        if route == LOGIN_ROUTE:
            return HOME_ROUTE if self.is_authenticated else LOGIN_ROUTE
        if route.startswith(PROTECTED_PREFIXES) and not self.is_authenticated:
            return LOGIN_ROUTE
        return route
