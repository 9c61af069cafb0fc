"""Plex Media Server adapter."""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import httpx

from catalogsync import __version__
from catalogsync.exceptions import AdapterError
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.providers.base import HTTPProviderAdapter
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

STREAM_VIDEO = 1
STREAM_AUDIO = 2

PLEX_TYPE_MOVIE = 1
PLEX_TYPE_EPISODE = 4


def parse_guids(guids: Optional[list]) -> tuple[Optional[str], Optional[str]]:
    """Extract (imdb_id, tmdb_id) from a Plex ``Guid`` list."""
    imdb_id = tmdb_id = None
    for guid in guids or []:
        value = (guid.get("id") or "").split("?")[0]
        if value.startswith("imdb://"):
            imdb_id = value[len("imdb://"):]
        elif value.startswith("tmdb://"):
            tmdb_id = value[len("tmdb://"):]
    return imdb_id, tmdb_id


def _from_unix(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class PlexAdapter(HTTPProviderAdapter):
    """ProviderAdapter for Plex.

    Section listings carry no stream details, so each page is followed by
    one ``/library/metadata/{k1,k2,...}`` request for the whole page.
    Plex reports bitrates in kbps and durations in ms.
    """

    source_type = "plex"
    supports_modified_since = True

    def __init__(
        self,
        source_id: str,
        server_url: str,
        token: str,
        page_size: int = 100,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(
            source_id,
            server_url,
            page_size=page_size,
            timeout=timeout,
            retry_attempts=retry_attempts,
            headers={
                "Accept": "application/json",
                "X-Plex-Token": token,
                "X-Plex-Product": "catalogsync",
                "X-Plex-Version": __version__,
                "X-Plex-Client-Identifier": source_id,
            },
            client=client,
        )
        self._section_types: Optional[dict[str, str]] = None

    async def get_libraries(self) -> list[Library]:
        """List movie and show sections."""
        data = await self._request("GET", "/library/sections")
        libraries = []
        for directory in data.get("MediaContainer", {}).get("Directory", []):
            kind = directory.get("type")
            if kind not in ("movie", "show"):
                continue
            libraries.append(
                Library(
                    id=str(directory.get("key")),
                    name=directory.get("title") or str(directory.get("key")),
                    media_type="tvshows" if kind == "show" else "movies",
                )
            )
        self._section_types = {lib.id: lib.media_type for lib in libraries}
        return libraries

    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        """Fetch one page of a section, with stream details."""
        if self._section_types is None:
            await self.get_libraries()
        is_show = self._section_types.get(str(library_id)) == "tvshows"

        params: dict[str, Any] = {
            "type": PLEX_TYPE_EPISODE if is_show else PLEX_TYPE_MOVIE,
            "includeGuids": 1,
            "X-Plex-Container-Start": pagination.start,
            "X-Plex-Container-Size": pagination.limit,
        }
        if since is not None:
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            params["updatedAt>"] = int(since.timestamp())

        data = await self._request("GET", f"/library/sections/{library_id}/all", params=params)
        container = data.get("MediaContainer", {})
        listed = container.get("Metadata", [])
        total = int(container.get("totalSize", container.get("size", len(listed))))

        details = await self._fetch_details([str(m.get("ratingKey")) for m in listed])
        items = []
        for entry in listed:
            key = str(entry.get("ratingKey"))
            items.append(self.convert_item(details.get(key, entry)))

        return ItemPage(items=items, start=pagination.start, total=total, fetched=len(listed))

    async def _fetch_details(self, keys: Sequence[str]) -> dict[str, dict]:
        if not keys:
            return {}
        data = await self._request("GET", f"/library/metadata/{','.join(keys)}")
        return {
            str(m.get("ratingKey")): m for m in data.get("MediaContainer", {}).get("Metadata", [])
        }

    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        """Fetch a single item by rating key."""
        details = await self._fetch_details([str(item_id)])
        entry = details.get(str(item_id))
        return self.convert_item(entry) if entry else None

    async def resolve_parents(self, items: Sequence[MediaMetadata]) -> None:
        """Fetch each unique show once and copy its external ids onto its episodes."""
        show_keys = sorted({m.parent_id for m in items if m.media_type == "episode" and m.parent_id})
        if not show_keys:
            return

        shows: dict[str, dict] = {}
        for key in show_keys:
            try:
                shows.update(await self._fetch_details([key]))
            except AdapterError as e:
                logger.warning("Failed to fetch show", source_id=self.source_id, show=key, error=str(e))

        for item in items:
            show = shows.get(item.parent_id or "")
            if show is None:
                continue
            imdb_id, tmdb_id = parse_guids(show.get("Guid"))
            item.imdb_id = imdb_id or item.imdb_id
            item.tmdb_id = tmdb_id or item.tmdb_id

    def _image_url(self, path: Optional[str]) -> Optional[str]:
        return f"{self.base_url}{path}" if path else None

    def convert_item(self, entry: dict) -> MediaMetadata:
        """Convert a Plex metadata entry into MediaMetadata."""
        is_episode = entry.get("type") == "episode"
        imdb_id, tmdb_id = parse_guids(entry.get("Guid"))

        return MediaMetadata(
            item_id=str(entry.get("ratingKey")),
            title=entry.get("title"),
            media_type="episode" if is_episode else "movie",
            year=entry.get("year"),
            series_title=entry.get("grandparentTitle") if is_episode else None,
            season_number=entry.get("parentIndex") if is_episode else None,
            episode_number=entry.get("index") if is_episode else None,
            parent_id=str(entry["grandparentRatingKey"])
            if is_episode and entry.get("grandparentRatingKey")
            else None,
            files=[self._convert_media(m) for m in entry.get("Media", [])],
            bitrate_unit="kbps",
            imdb_id=imdb_id,
            tmdb_id=tmdb_id,
            poster_url=self._image_url(entry.get("grandparentThumb") if is_episode else entry.get("thumb")),
            fanart_url=self._image_url(entry.get("art")),
            added_at=_from_unix(entry.get("addedAt")),
            modified_at=_from_unix(entry.get("updatedAt")),
        )

    @staticmethod
    def _convert_media(media: dict) -> MediaFile:
        parts = media.get("Part") or [{}]
        part = parts[0]
        streams = part.get("Stream") or []

        video = None
        audio = []
        for stream in streams:
            kind = stream.get("streamType")
            if kind == STREAM_VIDEO and video is None:
                video = VideoStream(
                    codec=stream.get("codec"),
                    profile=stream.get("profile"),
                    width=stream.get("width"),
                    height=stream.get("height"),
                    bitrate=stream.get("bitrate"),
                    frame_rate=stream.get("frameRate"),
                    bit_depth=stream.get("bitDepth"),
                    range_hint="dovi" if stream.get("DOVIPresent") else None,
                    color_primaries=stream.get("colorPrimaries"),
                    color_transfer=stream.get("colorTrc"),
                )
            elif kind == STREAM_AUDIO:
                audio.append(
                    AudioStream(
                        index=stream.get("index", len(audio)),
                        codec=stream.get("codec"),
                        profile=stream.get("profile"),
                        channels=stream.get("channels"),
                        channel_layout=stream.get("audioChannelLayout"),
                        bitrate=stream.get("bitrate"),
                        sample_rate=stream.get("samplingRate"),
                        language=stream.get("languageCode") or stream.get("language"),
                        title=stream.get("title") or stream.get("extendedDisplayTitle"),
                        is_default=bool(stream.get("default") or stream.get("selected")),
                    )
                )

        if video is None and media.get("videoCodec"):
            # Listing entries without Stream data still describe the video
            video = VideoStream(
                codec=media.get("videoCodec"),
                width=media.get("width"),
                height=media.get("height"),
                frame_rate=media.get("videoFrameRate"),
            )

        return MediaFile(
            file_path=part.get("file"),
            file_size_bytes=part.get("size"),
            duration_ms=part.get("duration") or media.get("duration"),
            container=part.get("container") or media.get("container"),
            total_bitrate=media.get("bitrate"),
            video=video,
            audio_streams=audio,
        )
