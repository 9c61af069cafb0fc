"""Shared pytest fixtures for catalogsync tests."""

from datetime import datetime
from typing import Optional

import pytest

from catalogsync.config import Config, SourceConfig
from catalogsync.core.store import SQLiteStore
from catalogsync.exceptions import AdapterError
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.models.track import AudioTrack
from catalogsync.providers.base import ProviderAdapter


def build_movie(
    item_id: str,
    title: Optional[str] = None,
    height: int = 1080,
    audio: Optional[list[AudioStream]] = None,
    modified_at: Optional[datetime] = None,
    file_path: Optional[str] = None,
    file_size_bytes: Optional[int] = None,
    duration_ms: Optional[int] = None,
    video_bitrate: Optional[float] = None,
    has_video: bool = True,
) -> MediaMetadata:
    """Provider metadata for a single-file movie with kbps bitrates."""
    if audio is None:
        audio = [AudioStream(index=0, codec="ac3", channels=6, bitrate=640, language="eng")]
    video = None
    if has_video:
        video = VideoStream(
            codec="h264",
            width=height * 16 // 9,
            height=height,
            bitrate=video_bitrate,
        )
    return MediaMetadata(
        item_id=item_id,
        title=title if title is not None else f"Movie {item_id}",
        year=2020,
        files=[
            MediaFile(
                file_path=file_path or f"/media/movies/{item_id}.mkv",
                file_size_bytes=file_size_bytes,
                duration_ms=duration_ms,
                container="mkv",
                video=video,
                audio_streams=audio,
            )
        ],
        bitrate_unit="kbps",
        modified_at=modified_at,
    )


class FakeAdapter(ProviderAdapter):
    """In-memory ProviderAdapter serving pre-built MediaMetadata."""

    source_type = "fake"

    def __init__(
        self,
        items: Optional[dict[str, list[MediaMetadata]]] = None,
        source_id: str = "src1",
        page_size: int = 2,
        supports_modified_since: bool = False,
        fail_at_start: Optional[int] = None,
    ):
        super().__init__(source_id, page_size)
        self.items = items if items is not None else {}
        self.supports_modified_since = supports_modified_since
        self.fail_at_start = fail_at_start
        self.page_requests: list[tuple[str, int, Optional[datetime]]] = []
        self.parents_resolved = 0
        self.closed = False

    async def get_libraries(self) -> list[Library]:
        return [Library(id=lib, name=lib.title()) for lib in self.items]

    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        self.page_requests.append((library_id, pagination.start, since))
        if self.fail_at_start is not None and pagination.start >= self.fail_at_start:
            raise AdapterError("connection refused")

        items = self.items.get(library_id, [])
        if since is not None and self.supports_modified_since:
            items = [m for m in items if m.modified_at and m.modified_at > since]
        page = items[pagination.start : pagination.start + pagination.limit]
        return ItemPage(items=page, start=pagination.start, total=len(items))

    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        for items in self.items.values():
            for item in items:
                if item.item_id == item_id:
                    return item
        return None

    async def resolve_parents(self, items) -> None:
        self.parents_resolved += 1

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def movie():
    """Factory for provider movie metadata."""
    return build_movie


@pytest.fixture
def fake_adapter():
    """The FakeAdapter class, for tests to instantiate."""
    return FakeAdapter


@pytest.fixture
def store(tmp_path):
    """SQLite store in a temporary directory."""
    s = SQLiteStore(tmp_path / "catalog.db")
    yield s
    s.close()


@pytest.fixture
def default_config(tmp_path):
    """Configuration with one local and one Jellyfin source."""
    return Config(
        sources=[
            SourceConfig(source_id="src1", source_type="local", folder_path=str(tmp_path)),
            SourceConfig(
                source_id="jf",
                source_type="jellyfin",
                server_url="http://jellyfin:8096",
                api_key="secret",
            ),
        ],
        store={"db_path": str(tmp_path / "catalog.db")},
        logging={"output": str(tmp_path / "logs" / "catalogsync.log")},
    )


@pytest.fixture
def sample_tracks():
    """Audio tracks covering several tiers."""
    return [
        AudioTrack(index=0, codec="AC3", channels=6, bitrate_kbps=640, language="eng"),
        AudioTrack(index=1, codec="TrueHD", channels=8, bitrate_kbps=4000, language="eng"),
        AudioTrack(
            index=2,
            codec="AAC",
            channels=2,
            bitrate_kbps=256,
            language="eng",
            title="Director's Commentary",
        ),
    ]
