"""Provider-side media metadata models.

These are what adapters produce: raw provider vocabulary, not yet
normalized. Codec names, HDR hints and bitrates keep the provider's
spelling and units until the item builder canonicalizes them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

BitrateUnit = Literal["bps", "kbps", "mbps", "auto"]


@dataclass
class VideoStream:
    """Video stream as reported by a provider."""

    codec: Optional[str] = None
    profile: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate: Optional[float] = None  # In the metadata's bitrate_unit
    frame_rate: Optional[str | float] = None
    bit_depth: Optional[int] = None
    range_hint: Optional[str] = None  # e.g. "HDR10", "DOVI", "hdr"
    color_primaries: Optional[str] = None
    color_transfer: Optional[str] = None


@dataclass
class AudioStream:
    """Audio stream as reported by a provider."""

    index: int
    codec: Optional[str] = None
    profile: Optional[str] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    bitrate: Optional[float] = None  # In the metadata's bitrate_unit
    sample_rate: Optional[int] = None
    language: Optional[str] = None
    title: Optional[str] = None
    is_default: bool = False


@dataclass
class MediaFile:
    """One on-disk file (quality variant) of a catalog entry."""

    file_path: Optional[str] = None
    file_size_bytes: Optional[int] = None
    duration_ms: Optional[int] = None
    container: Optional[str] = None
    total_bitrate: Optional[float] = None  # Container bitrate, in bitrate_unit
    video: Optional[VideoStream] = None
    audio_streams: list[AudioStream] = field(default_factory=list)


@dataclass
class MediaMetadata:
    """A single catalog entry as returned by a ProviderAdapter."""

    item_id: str
    title: Optional[str] = None
    media_type: Literal["movie", "episode"] = "movie"
    year: Optional[int] = None

    # Episode fields
    series_title: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    parent_id: Optional[str] = None  # Provider id of the series

    files: list[MediaFile] = field(default_factory=list)
    bitrate_unit: BitrateUnit = "auto"

    imdb_id: Optional[str] = None
    tmdb_id: Optional[str] = None
    poster_url: Optional[str] = None
    fanart_url: Optional[str] = None

    added_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    @property
    def primary_file(self) -> Optional[MediaFile]:
        """The first reported file, used when only one variant matters."""
        return self.files[0] if self.files else None

    @property
    def label(self) -> str:
        """Display label used in progress reports and error messages."""
        name = self.title or self.item_id
        if self.media_type == "episode" and self.series_title:
            if self.season_number is not None and self.episode_number is not None:
                return (
                    f"{self.series_title} S{self.season_number:02d}"
                    f"E{self.episode_number:02d} - {name}"
                )
            return f"{self.series_title} - {name}"
        return name

    def __str__(self) -> str:
        """Human-readable representation."""
        year_part = f" ({self.year})" if self.year else ""
        return f"{self.label}{year_part} [{len(self.files)} file(s)]"
