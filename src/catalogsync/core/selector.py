"""Audio track ranking and best-track selection."""

from typing import Optional, Sequence

from catalogsync.models.track import AudioTrack
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

TIER_OBJECT_AUDIO = 5  # Atmos, DTS:X
TIER_LOSSLESS = 4  # TrueHD, DTS-HD MA, FLAC, ALAC, PCM
TIER_NEAR_LOSSLESS = 3  # DTS-HD HRA
TIER_HIGH_LOSSY = 2  # DTS, EAC3/DD+
TIER_STANDARD = 1  # AC3, AAC, MP3, anything else

TIER_NAMES = {
    TIER_OBJECT_AUDIO: "Object Audio",
    TIER_LOSSLESS: "Lossless",
    TIER_NEAR_LOSSLESS: "Near-Lossless",
    TIER_HIGH_LOSSY: "High-Quality Lossy",
    TIER_STANDARD: "Standard",
}

_OBJECT_AUDIO_MARKERS = ("atmos", "dts:x", "dtsx")

_LOSSLESS_CODECS = (
    "truehd",
    "dts-hd ma",
    "dtshd_ma",
    "dtsma",
    "dts-hd.ma",
    "flac",
    "alac",
    "pcm",
    "lpcm",
    "wav",
    "aiff",
)

_NEAR_LOSSLESS_CODECS = ("dts-hd hra", "dtshd_hra", "dts-hd.hra", "dtshra")

_HIGH_LOSSY_CODECS = (
    "dts",
    "eac3",
    "ec-3",
    "dd+",
    "ddp",
    "dolby digital plus",
    "e-ac-3",
)


def get_tier(codec: str, has_object_audio: bool = False, title: Optional[str] = None) -> int:
    """Quality tier (1-5) of an audio codec.

    Args:
        codec: Codec name, canonical or raw
        has_object_audio: Explicit object-audio flag from the provider
        title: Track title, checked for object-audio markers

    Returns:
        Tier number, 5 being best
    """
    if has_object_audio:
        return TIER_OBJECT_AUDIO

    codec_lower = (codec or "").lower()
    title_lower = (title or "").lower()

    if any(m in codec_lower or m in title_lower for m in _OBJECT_AUDIO_MARKERS):
        return TIER_OBJECT_AUDIO
    if any(c in codec_lower for c in _LOSSLESS_CODECS):
        return TIER_LOSSLESS
    if any(c in codec_lower for c in _NEAR_LOSSLESS_CODECS):
        return TIER_NEAR_LOSSLESS
    if any(c in codec_lower for c in _HIGH_LOSSY_CODECS):
        return TIER_HIGH_LOSSY
    return TIER_STANDARD


def track_tier(track: AudioTrack) -> int:
    """Quality tier of a track."""
    return get_tier(track.codec, track.has_object_audio, track.title)


def is_commentary(track: AudioTrack) -> bool:
    """Whether a track's title marks it as a commentary track."""
    return bool(track.title) and "commentary" in track.title.lower()


class AudioTrackSelector:
    """Pick the best audio track by tier, then channels, then bitrate."""

    def select(self, tracks: Sequence[AudioTrack]) -> Optional[AudioTrack]:
        """Select the best track.

        Commentary tracks are ignored unless every track is a commentary.
        Ties keep the earlier track.

        Args:
            tracks: Audio tracks in stream order

        Returns:
            The best track, or None for an empty list
        """
        if not tracks:
            return None

        candidates = [t for t in tracks if not is_commentary(t)] or list(tracks)

        best = candidates[0]
        best_tier = track_tier(best)
        for current in candidates[1:]:
            current_tier = track_tier(current)
            if self._beats(current, current_tier, best, best_tier):
                best, best_tier = current, current_tier

        logger.debug(
            "Selected audio track",
            track_index=best.index,
            codec=best.codec,
            channels=best.channels,
            tier=TIER_NAMES[best_tier],
            candidates=len(candidates),
        )
        return best

    @staticmethod
    def _beats(current: AudioTrack, current_tier: int, best: AudioTrack, best_tier: int) -> bool:
        if current_tier != best_tier:
            return current_tier > best_tier
        if current.channels != best.channels:
            return current.channels > best.channels
        return current.bitrate_kbps > best.bitrate_kbps

    def has_object_audio(self, tracks: Sequence[AudioTrack]) -> bool:
        """True if any track is object audio (tier 5)."""
        return any(track_tier(t) == TIER_OBJECT_AUDIO for t in tracks)
