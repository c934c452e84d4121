import httpx
from typing import Optional, List
from ..database.models import BackdropMovie
from ..config import RELAY_URL, BACKGROUND_LANGUAGE, TMDB_IMAGE_BASE, REQUEST_TIMEOUT
from ..utils.logger import get_logger

logger = get_logger(__name__)

class LoginBackgroundFeed:
    """Popular-movie backdrops cycled behind the login form. Purely cosmetic."""

    def __init__(self, relay_url: str = RELAY_URL, language: str = BACKGROUND_LANGUAGE,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.relay_url = relay_url
        self.language = language
        self._transport = transport
        self.movies: List[BackdropMovie] = []
        self.index = 0

    async def load(self, page: int = 1) -> List[BackdropMovie]:
        params = {
            "endpoint": "discover/movie",
            "language": self.language,
            "page": page,
            "sort_by": "popularity.desc",
            "include_adult": "false",
        }
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport) as client:
                response = await client.get(self.relay_url, params=params)
                response.raise_for_status()
                results = response.json().get("results") or []
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error(f"Error fetching movies: {e}")
            results = []

        # Only movies with a backdrop are worth showing
        self.movies = [
            BackdropMovie(
                id=m.get("id", 0),
                title=m.get("title") or m.get("name") or "",
                backdrop_path=m["backdrop_path"],
                poster_path=m.get("poster_path"),
                overview=m.get("overview") or "",
            )
            for m in results if isinstance(m, dict) and m.get("backdrop_path")
        ]
        self.index = 0
        logger.debug(f"Loaded {len(self.movies)} background movies")
        return self.movies

    @property
    def current(self) -> Optional[BackdropMovie]:
        if not self.movies:
            return None
        return self.movies[self.index]

    def advance(self) -> Optional[BackdropMovie]:
        if not self.movies:
            return None
        self.index = (self.index + 1) % len(self.movies)
        return self.current

    @staticmethod
    def backdrop_url(movie: BackdropMovie, size: str = "original") -> str:
        return f"{TMDB_IMAGE_BASE}/{size}{movie.backdrop_path}"

    @staticmethod
    def poster_url(movie: BackdropMovie, size: str = "w342") -> Optional[str]:
        if not movie.poster_path:
            return None
        return f"{TMDB_IMAGE_BASE}/{size}{movie.poster_path}"
