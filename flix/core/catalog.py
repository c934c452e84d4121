import asyncio
import random
from dataclasses import dataclass, field
from typing import Optional, List, Dict
from .api_client import MediaServerClient
from .errors import TransientFetchFailure
from ..database.models import MediaItem, Season, Episode
from ..config import PLACEHOLDER_IMAGE
from ..utils.logger import get_logger

logger = get_logger(__name__)

@dataclass
class HomeContent:
    continue_watching: List[MediaItem] = field(default_factory=list)
    movies: List[MediaItem] = field(default_factory=list)
    series: List[MediaItem] = field(default_factory=list)
    featured: Optional[MediaItem] = None

@dataclass
class DetailsContent:
    item: MediaItem
    seasons: List[Season] = field(default_factory=list)
    episodes: Dict[str, List[Episode]] = field(default_factory=dict)

    @property
    def is_series(self) -> bool:
        return self.item.type == "Series"

class CatalogService:
    def __init__(self, api: MediaServerClient, rng: Optional[random.Random] = None):
        self.api = api
        self._rng = rng or random.Random()

    async def _row(self, name: str, **params) -> List[MediaItem]:
        try:
            return await self.api.get_items(**params)
        except TransientFetchFailure as e:
            logger.warning(f"Could not load {name}: {e}")
            return []

    async def load_home(self) -> HomeContent:
        """Load the home rows. Authentication failures propagate so the caller can log out."""
        logger.info("Loading home content...")
        continue_watching, movies, series = await asyncio.gather(
            self._row("continue watching", sort_by="DatePlayed", sort_order="Descending",
                      filters="IsResumable", limit=10),
            self._row("movies", include_item_types="Movie", sort_by="SortName",
                      sort_order="Ascending", limit=20),
            self._row("series", include_item_types="Series", sort_by="SortName",
                      sort_order="Ascending", limit=20),
        )

        content = HomeContent(continue_watching=continue_watching, movies=movies, series=series)
        candidates = movies + series
        if candidates:
            content.featured = self._rng.choice(candidates)
        return content

    async def load_details(self, item_id: str) -> DetailsContent:
        item = await self.api.get_item_details(item_id)
        details = DetailsContent(item=item)

        if details.is_series:
            try:
                details.seasons = await self.api.get_seasons(item_id)
            except TransientFetchFailure as e:
                logger.error(f"Error loading seasons: {e}")
                return details
            # Preload the first season
            if details.seasons:
                await self.load_episodes(details, details.seasons[0].id)
        return details

    async def load_episodes(self, details: DetailsContent, season_id: str) -> List[Episode]:
        if season_id in details.episodes:
            return details.episodes[season_id]
        try:
            episodes = await self.api.get_season_episodes(season_id)
        except TransientFetchFailure as e:
            logger.error(f"Error loading episodes for season {season_id}: {e}")
            return []
        details.episodes[season_id] = episodes
        return episodes

    def poster_url(self, item: MediaItem) -> str:
        if not item.id or "Primary" not in item.image_tags:
            return PLACEHOLDER_IMAGE
        return self.api.image_url(item.id, "Primary")

    def backdrop_url(self, item: MediaItem) -> str:
        if not item.id or not item.has_backdrop:
            return PLACEHOLDER_IMAGE
        return self.api.image_url(item.id, "Backdrop")

    async def load_image(self, item_id: str, image_type: str = "Primary") -> Optional[bytes]:
        """Image bytes, or None when the view should show its placeholder."""
        try:
            return await self.api.fetch_image(item_id, image_type)
        except TransientFetchFailure:
            return None
