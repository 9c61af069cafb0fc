"""Kodi adapter (JSON-RPC 2.0 over HTTP)."""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from urllib.parse import quote

import httpx

from catalogsync.exceptions import AdapterError
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.providers.base import HTTPProviderAdapter
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

MOVIE_PROPERTIES = [
    "title", "year", "file", "streamdetails", "imdbnumber", "uniqueid", "art", "runtime", "dateadded",
]
EPISODE_PROPERTIES = [
    "title", "file", "season", "episode", "streamdetails", "showtitle", "tvshowid",
    "uniqueid", "art", "runtime", "dateadded",
]

KODI_LIBRARIES = (
    Library(id="movies", name="Movies", media_type="movies"),
    Library(id="tvshows", name="TV Shows", media_type="tvshows"),
)


def parse_kodi_date(value: Optional[str]) -> Optional[datetime]:
    """Parse Kodi's ``YYYY-MM-DD HH:MM:SS`` timestamps as UTC."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class KodiAdapter(HTTPProviderAdapter):
    """ProviderAdapter for Kodi's JSON-RPC web interface.

    Kodi reports no bitrates at all. File sizes come from one batched
    ``Files.GetFileDetails`` call per page so the builder can derive the
    total bitrate from size and duration.
    """

    source_type = "kodi"
    # VideoLibrary filters cannot express "modified since"
    supports_modified_since = False

    def __init__(
        self,
        source_id: str,
        host: str,
        port: int = 8080,
        username: Optional[str] = None,
        password: Optional[str] = None,
        page_size: int = 100,
        timeout: float = 10.0,
        retry_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
    ):
        base_url = host if host.startswith(("http://", "https://")) else f"http://{host}:{port}"
        super().__init__(
            source_id,
            base_url,
            page_size=page_size,
            timeout=timeout,
            retry_attempts=retry_attempts,
            headers={"Content-Type": "application/json"},
            auth=(username, password or "") if username else None,
            client=client,
        )

    async def _rpc(self, method: str, params: Optional[dict] = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or {}}
        data = await self._request("POST", "/jsonrpc", json=payload)
        if "error" in data:
            raise AdapterError(f"kodi {method} failed: {data['error'].get('message', data['error'])}")
        return data.get("result", {})

    async def _rpc_batch(self, calls: Sequence[tuple[str, dict]]) -> list[Any]:
        """Send several calls in one JSON-RPC batch; failed calls yield None."""
        if not calls:
            return []
        payload = [
            {"jsonrpc": "2.0", "id": i, "method": method, "params": params}
            for i, (method, params) in enumerate(calls)
        ]
        data = await self._request("POST", "/jsonrpc", json=payload)
        if not isinstance(data, list):
            raise AdapterError("kodi returned a non-batch response to a batch request")

        results: list[Any] = [None] * len(calls)
        for entry in data:
            i = entry.get("id")
            if isinstance(i, int) and 0 <= i < len(calls) and "result" in entry:
                results[i] = entry["result"]
        return results

    async def get_libraries(self) -> list[Library]:
        """Kodi has one movie and one TV library."""
        await self._rpc("JSONRPC.Ping")
        return list(KODI_LIBRARIES)

    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        """Fetch one page of movies or episodes."""
        if library_id == "movies":
            method, key, properties = "VideoLibrary.GetMovies", "movies", MOVIE_PROPERTIES
        elif library_id == "tvshows":
            method, key, properties = "VideoLibrary.GetEpisodes", "episodes", EPISODE_PROPERTIES
        else:
            raise AdapterError(f"Unknown kodi library: {library_id}")

        result = await self._rpc(
            method,
            {
                "properties": properties,
                "limits": {"start": pagination.start, "end": pagination.start + pagination.limit},
            },
        )
        entries = result.get(key, [])
        total = int(result.get("limits", {}).get("total", pagination.start + len(entries)))

        sizes = await self._file_sizes([e.get("file") for e in entries])
        items = [
            self.convert_item(entry, size, is_episode=library_id == "tvshows")
            for entry, size in zip(entries, sizes)
        ]
        return ItemPage(items=items, start=pagination.start, total=total, fetched=len(entries))

    async def _file_sizes(self, paths: Sequence[Optional[str]]) -> list[Optional[int]]:
        calls = [
            ("Files.GetFileDetails", {"file": p, "media": "video", "properties": ["size"]})
            for p in paths
            if p
        ]
        try:
            results = iter(await self._rpc_batch(calls))
        except AdapterError as e:
            logger.warning("Failed to fetch file sizes", source_id=self.source_id, error=str(e))
            return [None] * len(paths)

        sizes = []
        for path in paths:
            if not path:
                sizes.append(None)
                continue
            result = next(results)
            size = (result or {}).get("filedetails", {}).get("size")
            sizes.append(int(size) if size else None)
        return sizes

    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        """Fetch a single item by ``movie:<id>`` or ``episode:<id>``."""
        kind, _, raw_id = item_id.partition(":")
        if not raw_id.isdigit():
            return None
        if kind == "movie":
            result = await self._rpc(
                "VideoLibrary.GetMovieDetails",
                {"movieid": int(raw_id), "properties": MOVIE_PROPERTIES},
            )
            entry = result.get("moviedetails")
        elif kind == "episode":
            result = await self._rpc(
                "VideoLibrary.GetEpisodeDetails",
                {"episodeid": int(raw_id), "properties": EPISODE_PROPERTIES},
            )
            entry = result.get("episodedetails")
        else:
            return None
        if not entry:
            return None
        size = (await self._file_sizes([entry.get("file")]))[0]
        return self.convert_item(entry, size, is_episode=kind == "episode")

    async def resolve_parents(self, items: Sequence[MediaMetadata]) -> None:
        """Copy show-level ids onto episodes, one batched call for all shows."""
        show_ids = sorted({int(m.parent_id) for m in items if m.parent_id and m.parent_id.isdigit()})
        if not show_ids:
            return

        results = await self._rpc_batch(
            [
                ("VideoLibrary.GetTVShowDetails", {"tvshowid": sid, "properties": ["uniqueid", "imdbnumber", "art"]})
                for sid in show_ids
            ]
        )
        shows = {
            str(sid): result.get("tvshowdetails", {})
            for sid, result in zip(show_ids, results)
            if result
        }

        for item in items:
            show = shows.get(item.parent_id or "")
            if not show:
                continue
            uniqueid = show.get("uniqueid") or {}
            item.imdb_id = item.imdb_id or uniqueid.get("imdb") or show.get("imdbnumber") or None
            item.tmdb_id = item.tmdb_id or uniqueid.get("tmdb")
            item.poster_url = self._image_url((show.get("art") or {}).get("poster")) or item.poster_url

    def _image_url(self, art: Optional[str]) -> Optional[str]:
        if not art:
            return None
        return f"{self.base_url}/image/{quote(art, safe='')}"

    def convert_item(
        self, entry: dict, file_size: Optional[int] = None, is_episode: bool = False
    ) -> MediaMetadata:
        """Convert a Kodi movie or episode into MediaMetadata."""
        details = entry.get("streamdetails") or {}
        videos = details.get("video") or []
        video_info = videos[0] if videos else None

        # Both are seconds
        duration_s = (video_info or {}).get("duration") or entry.get("runtime") or 0

        video = None
        if video_info is not None:
            video = VideoStream(
                codec=video_info.get("codec"),
                width=video_info.get("width"),
                height=video_info.get("height"),
                range_hint=video_info.get("hdrtype") or None,
            )

        audio = [
            AudioStream(
                index=i,
                codec=a.get("codec"),
                channels=a.get("channels"),
                language=a.get("language") or None,
            )
            for i, a in enumerate(details.get("audio") or [])
        ]

        file_path = entry.get("file")
        container = file_path.rsplit(".", 1)[-1] if file_path and "." in file_path else None
        uniqueid = entry.get("uniqueid") or {}
        art = entry.get("art") or {}
        added = parse_kodi_date(entry.get("dateadded"))

        if is_episode:
            item_id = f"episode:{entry.get('episodeid')}"
            tvshowid = entry.get("tvshowid")
            parent_id = str(tvshowid) if tvshowid not in (None, -1) else None
        else:
            item_id = f"movie:{entry.get('movieid')}"
            parent_id = None

        return MediaMetadata(
            item_id=item_id,
            title=entry.get("title") or entry.get("label"),
            media_type="episode" if is_episode else "movie",
            year=entry.get("year") or None,
            series_title=entry.get("showtitle") if is_episode else None,
            season_number=entry.get("season") if is_episode else None,
            episode_number=entry.get("episode") if is_episode else None,
            parent_id=parent_id,
            files=[
                MediaFile(
                    file_path=file_path,
                    file_size_bytes=file_size,
                    duration_ms=int(duration_s * 1000) if duration_s else None,
                    container=container,
                    video=video,
                    audio_streams=audio,
                )
            ],
            bitrate_unit="kbps",
            imdb_id=uniqueid.get("imdb") or entry.get("imdbnumber") or None,
            tmdb_id=uniqueid.get("tmdb"),
            poster_url=self._image_url(art.get("poster") or art.get("thumb")),
            fanart_url=self._image_url(art.get("fanart")),
            added_at=added,
            modified_at=added,
        )
