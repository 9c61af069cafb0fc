"""Audio track data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class AudioTrack:
    """A canonical audio track of a media item.

    ``index`` is the track's position in the source's stream list and never
    changes between scans of the same file.
    """

    index: int
    codec: str  # Canonical codec name (e.g. "TrueHD", "EAC3")
    channels: int
    bitrate_kbps: int
    language: Optional[str] = None  # ISO 639-2 language code
    title: Optional[str] = None
    is_default: bool = False
    has_object_audio: bool = False
    sample_rate: Optional[int] = None  # Hz

    def __str__(self) -> str:
        """Human-readable representation."""
        default_marker = " [DEFAULT]" if self.is_default else ""
        title_part = f" ({self.title})" if self.title else ""
        return (
            f"Track {self.index}: {self.language or 'und'} {self.codec} "
            f"{self.channels}ch {self.bitrate_kbps}kbps{title_part}{default_marker}"
        )
