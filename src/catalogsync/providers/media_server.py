"""Jellyfin and Emby adapter.

Emby and Jellyfin share one API; they differ only in the authorization
header, the client identity sent in it, and the image path prefix. One
adapter class is parameterized by a ServerProfile.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx

from catalogsync import __version__
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.exceptions import AdapterError
from catalogsync.providers.base import HTTPProviderAdapter
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

TICKS_PER_MS = 10_000

ITEM_FIELDS = (
    "Path,MediaSources,ProviderIds,DateCreated,DateLastSaved,ParentId,SeriesId,"
    "ImageTags,BackdropImageTags,SeriesPrimaryImageTag,ProductionYear"
)

_VIDEO_COLLECTION_TYPES = {"movies", "tvshows", "homevideos", "musicvideos", "mixed", "boxsets"}
_LIBRARY_TYPES = {"movies": "movies", "tvshows": "tvshows"}


@dataclass(frozen=True)
class ServerProfile:
    """What distinguishes one Emby-family server from another."""

    source_type: str
    auth_header: str
    auth_scheme: str
    client_name: str = "catalogsync"
    client_version: str = __version__
    device_name: str = "catalogsync"
    image_path_prefix: str = ""


JELLYFIN_PROFILE = ServerProfile(
    source_type="jellyfin",
    auth_header="Authorization",
    auth_scheme="MediaBrowser",
)

EMBY_PROFILE = ServerProfile(
    source_type="emby",
    auth_header="X-Emby-Authorization",
    auth_scheme="Emby",
    image_path_prefix="/emby",
)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse the server's ISO-8601 timestamps (7 fractional digits, trailing Z)."""
    if not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    if "." in text:
        head, _, rest = text.partition(".")
        digits = ""
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{digits[:6]}{rest}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class MediaServerAdapter(HTTPProviderAdapter):
    """ProviderAdapter for Jellyfin and Emby servers."""

    supports_modified_since = True

    def __init__(
        self,
        source_id: str,
        server_url: str,
        profile: ServerProfile,
        token: Optional[str] = None,
        api_key: Optional[str] = None,
        user_id: Optional[str] = None,
        page_size: int = 100,
        parent_batch_size: int = 50,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the adapter.

        Args:
            source_id: Configured source id
            server_url: Server base URL
            profile: JELLYFIN_PROFILE or EMBY_PROFILE
            token: User access token
            api_key: Server API key (used when no token is given)
            user_id: User whose views define the libraries
            page_size: Items per page
            parent_batch_size: Series ids per batch request
            timeout: Request timeout in seconds
            retry_attempts: Attempts per request
            client: Optional pre-built httpx client
        """
        self.profile = profile
        self.token = token
        self.api_key = api_key
        self.user_id = user_id
        self.parent_batch_size = parent_batch_size
        self._library_types: Optional[dict[str, str]] = None
        super().__init__(
            source_id,
            server_url,
            page_size=page_size,
            timeout=timeout,
            retry_attempts=retry_attempts,
            headers=self._auth_headers(source_id),
            client=client,
        )

    @property
    def source_type(self) -> str:
        return self.profile.source_type

    def _auth_headers(self, device_id: str) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers[self.profile.auth_header] = self.build_auth_header(device_id)
        elif self.api_key:
            headers["X-Emby-Token"] = self.api_key
        return headers

    def build_auth_header(self, device_id: Optional[str] = None) -> str:
        """Authorization header value identifying this client."""
        parts = [
            f'{self.profile.auth_scheme} Client="{self.profile.client_name}"',
            f'Device="{self.profile.device_name}"',
            f'DeviceId="{device_id or self.source_id}"',
            f'Version="{self.profile.client_version}"',
        ]
        if self.token:
            parts.append(f'Token="{self.token}"')
        return ", ".join(parts)

    def build_image_url(self, item_id: str, image_type: str, tag: Optional[str] = None) -> str:
        """Artwork URL for an item."""
        url = f"{self.base_url}{self.profile.image_path_prefix}/Items/{item_id}/Images/{image_type}"
        if tag:
            url += f"?tag={quote(tag)}"
        return url

    async def get_libraries(self) -> list[Library]:
        """List video libraries from the user's views, or from VirtualFolders."""
        if self.user_id:
            data = await self._request("GET", f"/Users/{self.user_id}/Views")
            folders = [
                (f.get("Id"), f.get("Name"), f.get("CollectionType")) for f in data.get("Items", [])
            ]
        else:
            data = await self._request("GET", "/Library/VirtualFolders")
            entries = data if isinstance(data, list) else data.get("Items", [])
            folders = [
                (f.get("ItemId") or f.get("Id"), f.get("Name"), f.get("CollectionType"))
                for f in entries
            ]

        libraries = []
        for folder_id, name, collection_type in folders:
            kind = (collection_type or "").lower()
            if kind and kind not in _VIDEO_COLLECTION_TYPES:
                continue
            libraries.append(
                Library(
                    id=str(folder_id),
                    name=name or str(folder_id),
                    media_type=_LIBRARY_TYPES.get(kind, "mixed"),
                )
            )
        return libraries

    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        """Fetch one page of movies or episodes, optionally modified since a time."""
        media_type = await self._library_type(library_id)
        params: dict[str, Any] = {
            "ParentId": library_id,
            "Recursive": "true",
            "IncludeItemTypes": "Episode" if media_type == "tvshows" else "Movie",
            "Fields": ITEM_FIELDS,
            "StartIndex": pagination.start,
            "Limit": pagination.limit,
            "SortBy": "SortName",
        }
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            params["MinDateLastSaved"] = since.astimezone(timezone.utc).isoformat()

        data = await self._request("GET", self._items_path(), params=params)
        raw_items = data.get("Items", [])
        items = [m for m in (self.convert_item(raw) for raw in raw_items) if m is not None]
        if len(items) < len(raw_items):
            logger.debug(
                "Skipped items without media sources",
                source_id=self.source_id,
                count=len(raw_items) - len(items),
            )
        return ItemPage(
            items=items,
            start=pagination.start,
            total=int(data.get("TotalRecordCount", len(raw_items))),
            fetched=len(raw_items),
        )

    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        """Fetch a single item."""
        data = await self._request(
            "GET", self._items_path(), params={"Ids": item_id, "Fields": ITEM_FIELDS}
        )
        raw_items = data.get("Items", [])
        if not raw_items:
            return None
        return self.convert_item(raw_items[0])

    async def resolve_parents(self, items: Sequence[MediaMetadata]) -> None:
        """Attach series external ids and posters to episodes.

        Series are fetched in batches of ``parent_batch_size`` ids. A failed
        batch is logged and skipped.
        """
        series_ids = sorted({m.parent_id for m in items if m.media_type == "episode" and m.parent_id})
        if not series_ids:
            return

        series_data: dict[str, dict] = {}
        for start in range(0, len(series_ids), self.parent_batch_size):
            batch = series_ids[start:start + self.parent_batch_size]
            try:
                data = await self._request(
                    "GET",
                    self._items_path(),
                    params={"Ids": ",".join(batch), "Fields": "ProviderIds,ImageTags"},
                )
            except AdapterError as e:
                logger.warning(
                    "Failed to fetch series batch",
                    source_id=self.source_id,
                    batch_size=len(batch),
                    error=str(e),
                )
                continue
            for series in data.get("Items", []):
                series_data[str(series.get("Id"))] = series

        for item in items:
            series = series_data.get(item.parent_id or "")
            if series is None:
                continue
            provider_ids = series.get("ProviderIds") or {}
            item.imdb_id = provider_ids.get("Imdb") or item.imdb_id
            item.tmdb_id = provider_ids.get("Tmdb") or item.tmdb_id
            poster_tag = (series.get("ImageTags") or {}).get("Primary")
            if poster_tag:
                item.poster_url = self.build_image_url(item.parent_id, "Primary", poster_tag)

        logger.debug(
            "Resolved series metadata",
            source_id=self.source_id,
            series=len(series_ids),
            found=len(series_data),
        )

    def _items_path(self) -> str:
        return f"/Users/{self.user_id}/Items" if self.user_id else "/Items"

    async def _library_type(self, library_id: str) -> str:
        if self._library_types is None:
            self._library_types = {lib.id: lib.media_type for lib in await self.get_libraries()}
        return self._library_types.get(library_id, "movies")

    def convert_item(self, raw: dict) -> Optional[MediaMetadata]:
        """Convert a server item into MediaMetadata. Items without media sources yield None."""
        sources = raw.get("MediaSources") or []
        if not sources:
            return None

        is_episode = raw.get("Type") == "Episode"
        item_id = str(raw.get("Id"))
        provider_ids = raw.get("ProviderIds") or {}

        poster_url = None
        if is_episode and raw.get("SeriesId"):
            poster_url = self.build_image_url(
                raw["SeriesId"], "Primary", raw.get("SeriesPrimaryImageTag")
            )
        elif (raw.get("ImageTags") or {}).get("Primary"):
            poster_url = self.build_image_url(item_id, "Primary", raw["ImageTags"]["Primary"])

        backdrops = raw.get("BackdropImageTags") or []
        fanart_url = self.build_image_url(item_id, "Backdrop", backdrops[0]) if backdrops else None

        return MediaMetadata(
            item_id=item_id,
            title=raw.get("Name"),
            media_type="episode" if is_episode else "movie",
            year=raw.get("ProductionYear"),
            series_title=raw.get("SeriesName") if is_episode else None,
            season_number=raw.get("ParentIndexNumber") if is_episode else None,
            episode_number=raw.get("IndexNumber") if is_episode else None,
            parent_id=raw.get("SeriesId") if is_episode else None,
            files=[self._convert_source(s) for s in sources],
            bitrate_unit="bps",
            imdb_id=provider_ids.get("Imdb"),
            tmdb_id=provider_ids.get("Tmdb"),
            poster_url=poster_url,
            fanart_url=fanart_url,
            added_at=parse_timestamp(raw.get("DateCreated")),
            modified_at=parse_timestamp(raw.get("DateLastSaved")),
        )

    @staticmethod
    def _convert_source(source: dict) -> MediaFile:
        streams = source.get("MediaStreams") or []
        video = None
        audio = []
        for stream in streams:
            kind = stream.get("Type")
            if kind == "Video" and video is None:
                video = VideoStream(
                    codec=stream.get("Codec"),
                    profile=stream.get("Profile"),
                    width=stream.get("Width"),
                    height=stream.get("Height"),
                    bitrate=stream.get("BitRate"),
                    frame_rate=stream.get("RealFrameRate") or stream.get("AverageFrameRate"),
                    bit_depth=stream.get("BitDepth"),
                    range_hint=stream.get("VideoRangeType") or stream.get("VideoRange"),
                    color_primaries=stream.get("ColorPrimaries"),
                    color_transfer=stream.get("ColorTransfer"),
                )
            elif kind == "Audio":
                audio.append(
                    AudioStream(
                        index=stream.get("Index", len(audio)),
                        codec=stream.get("Codec"),
                        profile=stream.get("Profile"),
                        channels=stream.get("Channels"),
                        channel_layout=stream.get("ChannelLayout"),
                        bitrate=stream.get("BitRate"),
                        sample_rate=stream.get("SampleRate"),
                        language=stream.get("Language"),
                        title=stream.get("Title") or stream.get("DisplayTitle"),
                        is_default=bool(stream.get("IsDefault")),
                    )
                )

        ticks = source.get("RunTimeTicks")
        return MediaFile(
            file_path=source.get("Path"),
            file_size_bytes=source.get("Size"),
            duration_ms=ticks // TICKS_PER_MS if ticks else None,
            container=source.get("Container"),
            total_bitrate=source.get("Bitrate"),
            video=video,
            audio_streams=audio,
        )
