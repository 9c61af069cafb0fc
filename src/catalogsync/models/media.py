"""Canonical catalog records and scan bookkeeping models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal, Optional

from catalogsync.models.metadata import MediaMetadata
from catalogsync.models.track import AudioTrack

Resolution = Literal["SD", "480p", "720p", "1080p", "4K"]
HDRFormat = Literal["None", "HDR10", "HDR10+", "Dolby Vision", "HLG"]
MediaType = Literal["movie", "episode"]


@dataclass
class MediaVersion:
    """One quality variant (file) of a canonical media item."""

    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    duration_ms: Optional[int] = None
    container: Optional[str] = None
    resolution: Resolution = "SD"
    width: Optional[int] = None
    height: Optional[int] = None
    video_codec: str = "Unknown"
    video_bitrate_kbps: int = 0
    video_frame_rate: Optional[float] = None
    color_bit_depth: Optional[int] = None
    hdr_format: HDRFormat = "None"
    audio_codec: str = "Unknown"
    audio_channels: int = 0
    audio_bitrate_kbps: int = 0
    total_bitrate_kbps: Optional[int] = None
    has_object_audio: bool = False
    audio_tracks: list[AudioTrack] = field(default_factory=list)
    best_audio_index: Optional[int] = None
    edition: Optional[str] = None
    label: str = ""


@dataclass
class MediaItem:
    """Canonical, persisted catalog record.

    ``(source_id, library_id, provider_item_id)`` is the natural key.
    Top-level quality fields mirror the best entry of ``versions``.
    """

    provider_item_id: str
    source_id: str
    source_type: str
    library_id: str
    title: str
    media_type: MediaType = "movie"
    year: Optional[int] = None

    series_title: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    duration_ms: Optional[int] = None
    container: Optional[str] = None
    resolution: Resolution = "SD"
    width: Optional[int] = None
    height: Optional[int] = None
    video_codec: str = "Unknown"
    video_bitrate_kbps: int = 0
    video_frame_rate: Optional[float] = None
    color_bit_depth: Optional[int] = None
    hdr_format: HDRFormat = "None"
    audio_codec: str = "Unknown"
    audio_channels: int = 0
    audio_bitrate_kbps: int = 0
    total_bitrate_kbps: Optional[int] = None
    has_object_audio: bool = False
    audio_tracks: list[AudioTrack] = field(default_factory=list)
    best_audio_index: Optional[int] = None
    versions: list[MediaVersion] = field(default_factory=list)

    imdb_id: Optional[str] = None
    tmdb_id: Optional[str] = None
    poster_url: Optional[str] = None
    fanart_url: Optional[str] = None

    id: Optional[int] = None  # Store row id, set once persisted
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def best_audio_track(self) -> Optional[AudioTrack]:
        """The audio track whose values populate the top-level audio fields."""
        for track in self.audio_tracks:
            if track.index == self.best_audio_index:
                return track
        return None

    def apply_version(self, version: MediaVersion) -> None:
        """Copy a version's file and quality fields onto the item."""
        self.file_path = version.file_path
        self.file_size_bytes = version.file_size_bytes
        self.duration_ms = version.duration_ms
        self.container = version.container
        self.resolution = version.resolution
        self.width = version.width
        self.height = version.height
        self.video_codec = version.video_codec
        self.video_bitrate_kbps = version.video_bitrate_kbps
        self.video_frame_rate = version.video_frame_rate
        self.color_bit_depth = version.color_bit_depth
        self.hdr_format = version.hdr_format
        self.audio_codec = version.audio_codec
        self.audio_channels = version.audio_channels
        self.audio_bitrate_kbps = version.audio_bitrate_kbps
        self.total_bitrate_kbps = version.total_bitrate_kbps
        self.has_object_audio = version.has_object_audio
        self.audio_tracks = list(version.audio_tracks)
        self.best_audio_index = version.best_audio_index

    def __str__(self) -> str:
        """Human-readable representation."""
        hdr_part = f" {self.hdr_format}" if self.hdr_format != "None" else ""
        return (
            f"{self.title} [{self.resolution}{hdr_part} {self.video_codec} / "
            f"{self.audio_codec} {self.audio_channels}ch]"
        )


@dataclass
class Library:
    """A library (section) exposed by a source."""

    id: str
    name: str
    media_type: Literal["movies", "tvshows", "mixed"] = "movies"


@dataclass
class Pagination:
    """Page request passed to ProviderAdapter.get_library_items."""

    start: int = 0
    limit: int = 100


@dataclass
class ItemPage:
    """One page of library items."""

    items: list[MediaMetadata]
    start: int
    total: int
    fetched: Optional[int] = None  # Raw entries read, when some were dropped

    @property
    def consumed(self) -> int:
        """How far this page advances the offset."""
        return self.fetched if self.fetched is not None else len(self.items)

    @property
    def has_more(self) -> bool:
        """Whether another page should be requested."""
        return self.consumed > 0 and self.start + self.consumed < self.total


@dataclass
class ScanProgress:
    """Progress snapshot emitted during a scan."""

    current: int
    total: int
    phase: str
    current_item_label: Optional[str] = None

    @property
    def percentage(self) -> int:
        """Completion percentage, 0-100."""
        if self.total <= 0:
            return 0
        return min(100, round(self.current * 100 / self.total))


ProgressCallback = Callable[[ScanProgress], None]


@dataclass
class ScanOptions:
    """Options for a single library scan."""

    on_progress: Optional[ProgressCallback] = None
    since: Optional[datetime] = None
    force_full_scan: bool = False

    @property
    def incremental(self) -> bool:
        """A scan is incremental only when a timestamp is given and not overridden."""
        return self.since is not None and not self.force_full_scan


@dataclass
class ScanResult:
    """Outcome of a scan. Failures are reported here, never raised."""

    success: bool = False
    items_scanned: int = 0
    items_added: int = 0
    items_updated: int = 0
    items_removed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    cancelled: bool = False

    def merge(self, other: "ScanResult") -> None:
        """Fold another library's result into this one."""
        self.items_scanned += other.items_scanned
        self.items_added += other.items_added
        self.items_updated += other.items_updated
        self.items_removed += other.items_removed
        self.errors.extend(other.errors)
        self.duration_ms += other.duration_ms
        self.cancelled = self.cancelled or other.cancelled
        self.success = self.success and other.success

    def __str__(self) -> str:
        """Human-readable representation."""
        status = "cancelled" if self.cancelled else ("ok" if self.success else "failed")
        return (
            f"{status}: {self.items_scanned} scanned, {self.items_added} added, "
            f"{self.items_updated} updated, {self.items_removed} removed, "
            f"{len(self.errors)} error(s) in {self.duration_ms}ms"
        )
