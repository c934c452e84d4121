import httpx
from typing import Optional, List, Dict, Any, Tuple
from urllib.parse import urlencode
from .errors import AuthenticationFailure, NegotiationFailure, TransientFetchFailure
from ..database.db import CredentialStore
from ..database.models import (
    User, MediaItem, Season, Episode, SubtitleTrack, StreamNegotiationResult, StreamingMode
)
from ..config import (
    JELLYFIN_SERVER_URL, CLIENT_NAME, DEVICE_NAME, DEVICE_ID, CLIENT_VERSION,
    REQUEST_TIMEOUT, MAX_STREAMING_BITRATE, LIBRARY_FOLDERS, PLACEHOLDER_IMAGE
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Server-declared collection types for each requestable item type
COLLECTION_TYPES = {
    "Movie": "movies",
    "Series": "tvshows",
}

MANIFEST_FILENAME = "master.m3u8"
DIRECT_FILENAME = "stream.mp4"

class MediaServerClient:
    """
    Client for the Jellyfin-compatible media server.

    The session token is read from the credential store on every request, so a
    logout takes effect immediately for anything issued afterwards.
    """

    def __init__(self, store: CredentialStore, server_url: str = JELLYFIN_SERVER_URL,
                 folder_map: Optional[Dict[str, str]] = None,
                 timeout: float = REQUEST_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.store = store
        self.server_url = server_url.rstrip("/")
        self.folder_map = dict(LIBRARY_FOLDERS if folder_map is None else folder_map)
        self._client = httpx.AsyncClient(base_url=self.server_url, timeout=timeout, transport=transport)

    async def aclose(self):
        await self._client.aclose()

    # Request plumbing

    def _authorization(self, token: Optional[str] = None) -> str:
        value = (f'MediaBrowser Client="{CLIENT_NAME}", Device="{DEVICE_NAME}", '
                 f'DeviceId="{DEVICE_ID}", Version="{CLIENT_VERSION}"')
        if token:
            value += f', Token="{token}"'
        return value

    def _headers(self, auth: bool = True) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.store.token
        if auth and not token:
            raise AuthenticationFailure("No authentication token")
        if token and auth:
            headers["X-MediaBrowser-Token"] = token
        headers["X-Emby-Authorization"] = self._authorization(token if auth else None)
        return headers

    def _user_id(self) -> str:
        user = self.store.user
        if not user or not user.id:
            raise AuthenticationFailure("User ID not found")
        return user.id

    async def _request(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None,
                       json: Optional[Dict[str, Any]] = None, auth: bool = True,
                       failure=TransientFetchFailure) -> Any:
        headers = self._headers(auth)
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise failure(f"Request to {path} failed: {e}") from e

        if response.status_code in (401, 403):
            logger.warning(f"{method} {path} rejected with {response.status_code}")
            raise AuthenticationFailure(f"Media server rejected credentials ({response.status_code})")
        if response.is_error:
            logger.error(f"{method} {path} returned {response.status_code}")
            raise failure(f"Media server responded with status: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise failure(f"Invalid JSON from {path}") from e

    async def _get(self, path: str, failure=TransientFetchFailure, **params) -> Any:
        return await self._request("GET", path, params=params, failure=failure)

    # Authentication

    async def authenticate_by_name(self, username: str, password: str) -> Tuple[str, User]:
        logger.info(f"Authenticating user: {username}")
        try:
            data = await self._request(
                "POST", "/Users/AuthenticateByName",
                json={"Username": username, "Pw": password},
                auth=False, failure=AuthenticationFailure,
            )
        except AuthenticationFailure:
            logger.warning(f"Login failed for user: {username}")
            raise

        if not data or not data.get("AccessToken"):
            raise AuthenticationFailure("Authentication failed")

        token = data["AccessToken"]
        user = User.from_api(data.get("User") or {}, self.server_url)
        await self.store.save(token, user)
        logger.info(f"Authenticated as {user.name} (ID: {user.id})")
        return token, user

    async def get_user_info(self) -> User:
        data = await self._get("/Users/Me")
        return User.from_api(data, self.server_url)

    # Catalog

    async def get_media_folders(self) -> List[MediaItem]:
        user_id = self._user_id()
        data = await self._get(f"/Users/{user_id}/Items", userId=user_id)
        folders = [MediaItem.from_api(f) for f in data.get("Items", [])]
        logger.debug(f"Fetched {len(folders)} media folders")
        return folders

    def resolve_library_folder(self, item_type: Optional[str], folders: List[MediaItem]) -> Optional[str]:
        """Pick the library folder for an item type: explicit mapping first, then CollectionType."""
        if not item_type:
            return None
        if item_type in self.folder_map:
            return self.folder_map[item_type]
        collection_type = COLLECTION_TYPES.get(item_type)
        for folder in folders:
            if collection_type and folder.collection_type == collection_type:
                return folder.id
        return None

    async def get_items(self, filters: Optional[str] = None, include_item_types: Optional[str] = None,
                        sort_by: Optional[str] = None, sort_order: Optional[str] = None,
                        limit: Optional[int] = None, recursive: bool = True,
                        parent_id: Optional[str] = None) -> List[MediaItem]:
        """Items of one type from its library folder, resumable items, or the children of parent_id."""
        params = {
            "filters": filters,
            "includeItemTypes": include_item_types,
            "sortBy": sort_by,
            "sortOrder": sort_order,
            "limit": limit,
        }

        # Resumable items live across every library
        if filters == "IsResumable":
            user_id = self._user_id()
            data = await self._get(f"/Users/{user_id}/Items", **params, userId=user_id, recursive=recursive)
            items = [MediaItem.from_api(i) for i in data.get("Items", [])]
            logger.debug(f"Continue watching: {len(items)} items")
            return items

        if parent_id:
            return await self.get_library_items(parent_id, params, recursive)

        if include_item_types in self.folder_map:
            return await self.get_library_items(self.folder_map[include_item_types], params, recursive)

        folders = await self.get_media_folders()
        parent_id = self.resolve_library_folder(include_item_types, folders)
        if parent_id:
            return await self.get_library_items(parent_id, params, recursive)

        logger.warning(f"No library folder found for type {include_item_types!r}, returning folders")
        return folders

    async def get_library_items(self, parent_id: str, params: Optional[Dict[str, Any]] = None,
                                recursive: bool = True) -> List[MediaItem]:
        user_id = self._user_id()
        query = dict(params or {})
        query.update(userId=user_id, parentId=parent_id, recursive=recursive)
        data = await self._get(f"/Users/{user_id}/Items", **query)
        items = [MediaItem.from_api(i) for i in data.get("Items", [])]
        logger.debug(f"Items from parent {parent_id}: {len(items)}")
        return items

    async def get_item_details(self, item_id: str) -> MediaItem:
        user_id = self._user_id()
        data = await self._get(f"/Users/{user_id}/Items/{item_id}")
        item = MediaItem.from_api(data)
        item.primary_image_url = self.image_url(item_id, "Primary")
        item.backdrop_image_url = self.image_url(item_id, "Backdrop")
        return item

    async def get_seasons(self, series_id: str) -> List[Season]:
        data = await self._get(f"/Shows/{series_id}/Seasons", userId=self._user_id())
        return [Season.from_api(s) for s in data.get("Items", [])]

    async def get_season_episodes(self, season_id: str) -> List[Episode]:
        data = await self._get(f"/Shows/Seasons/{season_id}/Episodes", userId=self._user_id())
        return [Episode.from_api(e) for e in data.get("Items", [])]

    # Images

    def image_url(self, item_id: str, image_type: str = "Primary") -> str:
        if not item_id:
            logger.error(f"Invalid item ID for image: {item_id!r}")
            return PLACEHOLDER_IMAGE
        query = urlencode({
            "fillHeight": 400,
            "fillWidth": 270,
            "quality": 90,
            "api_key": self.store.token or "",
        })
        return f"{self.server_url}/Items/{item_id}/Images/{image_type}?{query}"

    async def fetch_image(self, item_id: str, image_type: str = "Primary") -> bytes:
        url = self.image_url(item_id, image_type)
        if url == PLACEHOLDER_IMAGE:
            raise TransientFetchFailure(f"No image for item {item_id!r}")
        try:
            response = await self._client.get(url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(f"Image {image_type} for {item_id} unavailable: {e}")
            raise TransientFetchFailure(f"Image {image_type} for {item_id} unavailable") from e
        return response.content

    # Playback

    async def get_playback_info(self, item_id: str) -> Dict[str, Any]:
        return await self._get(
            f"/Items/{item_id}/PlaybackInfo",
            failure=NegotiationFailure,
            userId=self._user_id(),
            startTimeTicks=0,
            autoOpenLiveStream=True,
            mediaSourceId=item_id,
            deviceId=DEVICE_ID,
            maxStreamingBitrate=MAX_STREAMING_BITRATE,
        )

    def stream_url(self, item_id: str, mode: StreamingMode) -> str:
        token = self.store.token
        if not token:
            raise AuthenticationFailure("Authentication token not found")
        filename = MANIFEST_FILENAME if mode == StreamingMode.ADAPTIVE_MANIFEST else DIRECT_FILENAME
        query = urlencode({"static": "true", "api_key": token})
        return f"{self.server_url}/Videos/{item_id}/{filename}?{query}"

    async def negotiate(self, item_id: str) -> StreamNegotiationResult:
        """Ask the server how an item can be played and order the stream URLs accordingly."""
        info = await self.get_playback_info(item_id)
        sources = info.get("MediaSources") or []
        supports_direct = bool(sources) and bool(sources[0].get("SupportsDirectStream"))

        direct_url = self.stream_url(item_id, StreamingMode.DIRECT_FILE)
        manifest_url = self.stream_url(item_id, StreamingMode.ADAPTIVE_MANIFEST)
        candidates = [direct_url, manifest_url] if supports_direct else [manifest_url, direct_url]

        logger.info(f"Negotiated {item_id}: direct stream {'supported' if supports_direct else 'unsupported'}")
        return StreamNegotiationResult(supports_direct_stream=supports_direct, candidate_urls=candidates)

    async def get_subtitle_streams(self, item_id: str) -> List[SubtitleTrack]:
        try:
            data = await self._get(f"/Items/{item_id}", userId=self._user_id())
        except TransientFetchFailure as e:
            logger.error(f"Error getting subtitle streams: {e}")
            return []

        streams = data.get("MediaStreams")
        if streams is None:
            sources = data.get("MediaSources") or []
            streams = sources[0].get("MediaStreams", []) if sources else []

        tracks = []
        for stream in streams:
            if stream.get("Type") != "Subtitle":
                continue
            language = stream.get("Language") or "und"
            title = stream.get("DisplayTitle") or f"{stream.get('Language') or 'Unknown'} {stream.get('Title') or ''}".strip()
            tracks.append(SubtitleTrack(
                id=str(stream.get("Index", len(tracks))),
                display_title=title,
                language=language,
                is_default=bool(stream.get("IsDefault", False)),
            ))
        logger.debug(f"Found {len(tracks)} subtitle tracks for {item_id}")
        return tracks
