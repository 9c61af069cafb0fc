"""Audio/video bitrate reconciliation under missing or unreliable data.

Many sources omit per-stream bitrates (lossless and object audio in
particular) and container-level totals are often wrong. The reconciler
combines whatever is known, in priority order:

1. A reported video bitrate is authoritative.
2. With a measured total, audio gets ``(total - video) * (1 - overhead)``
   split evenly across the tracks lacking a bitrate, and the audio sum is
   capped at ``audio_cap_ratio * total``. An unreported video bitrate is
   first estimated as ``video_share_ratio * total``, and afterwards
   recomputed as ``total - audio``.
3. Otherwise codec/channel (audio) and resolution (video) estimation
   tables fill the gaps.

The cap ratio, the overhead ratio and the table constants are empirical
heuristics carried over from observed files, not physical limits.
"""

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from catalogsync.core.normalizer import normalize_bitrate
from catalogsync.models.metadata import MediaMetadata
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_AUDIO_CAP_RATIO = 0.30
DEFAULT_CONTAINER_OVERHEAD_RATIO = 0.05
DEFAULT_VIDEO_SHARE_RATIO = 0.90

# Calculated per-track values above this are treated as garbage
MAX_PLAUSIBLE_TRACK_KBPS = 20000

ESTIMATED_AUDIO_KBPS = frozenset(
    {128, 192, 256, 320, 384, 640, 768, 1024, 1500, 1509,
     2000, 2500, 3000, 3500, 4000, 4500, 5000, 6000}
)
ESTIMATED_VIDEO_KBPS = frozenset({25000, 10000, 5000, 2500, 1500})


def estimate_audio_bitrate(codec: Optional[str], channels: Optional[int]) -> int:
    """Typical bitrate (kbps) for a codec at a channel count."""
    c = (codec or "").lower()
    ch = channels or 2

    if "truehd" in c or "atmos" in c:
        return 6000 if ch >= 8 else 4000 if ch >= 6 else 2500
    if any(s in c for s in ("dtshd_ma", "dts-hd ma", "dts-hd.ma")):
        return 5000 if ch >= 8 else 3500 if ch >= 6 else 2000
    if "dtshd" in c or "dts-hd" in c:
        return 2500 if ch >= 6 else 1500
    if any(s in c for s in ("flac", "pcm", "alac")):
        return 3000 if ch >= 6 else 1500
    if "dts" in c:
        return 1509 if ch >= 6 else 768
    if any(s in c for s in ("eac3", "e-ac-3", "ec3")):
        return 1024 if ch >= 8 else 640 if ch >= 6 else 384
    if "ac3" in c or "ac-3" in c:
        return 640 if ch >= 6 else 384
    if "aac" in c:
        return 384 if ch >= 6 else 256
    if "mp3" in c:
        return 320 if ch >= 6 else 192
    if "opus" in c:
        return 256 if ch >= 6 else 128
    return 640 if ch >= 6 else 256


def estimate_video_bitrate(height: Optional[int]) -> int:
    """Typical video bitrate (kbps) for a frame height."""
    h = height or 0
    if h >= 2160:
        return 25000
    if h >= 1080:
        return 10000
    if h >= 720:
        return 5000
    if h >= 480:
        return 2500
    return 1500


def is_estimated_bitrate(kbps: Optional[int]) -> bool:
    """Whether a value is one of the estimation-table constants."""
    return bool(kbps) and (kbps in ESTIMATED_AUDIO_KBPS or kbps in ESTIMATED_VIDEO_KBPS)


def total_bitrate_from_file(file_size_bytes: Optional[int], duration_ms: Optional[int]) -> Optional[int]:
    """Measured container bitrate (kbps) from file size and duration."""
    if not file_size_bytes or not duration_ms or file_size_bytes <= 0 or duration_ms <= 0:
        return None
    return round(file_size_bytes * 8 / (duration_ms / 1000) / 1000)


@dataclass
class AudioInput:
    """What is known about one audio track before reconciliation."""

    codec: str
    channels: int
    reported_kbps: int = 0


@dataclass
class BitrateSplit:
    """Reconciled bitrates for one file."""

    video_kbps: int
    audio_kbps: list[int] = field(default_factory=list)
    total_kbps: Optional[int] = None
    video_estimated: bool = False
    audio_estimated: list[bool] = field(default_factory=list)


class BitrateReconciler:
    """Split a file's bitrate between its video and audio streams."""

    def __init__(
        self,
        audio_cap_ratio: float = DEFAULT_AUDIO_CAP_RATIO,
        container_overhead_ratio: float = DEFAULT_CONTAINER_OVERHEAD_RATIO,
        video_share_ratio: float = DEFAULT_VIDEO_SHARE_RATIO,
    ):
        self.audio_cap_ratio = audio_cap_ratio
        self.container_overhead_ratio = container_overhead_ratio
        self.video_share_ratio = video_share_ratio

    def audio_from_total(self, total_kbps: int, video_kbps: int, track_count: int) -> int:
        """Per-track audio bitrate left over once video and overhead are removed.

        Returns:
            kbps per track, or 0 when it cannot be calculated
        """
        if total_kbps <= 0 or video_kbps <= 0 or track_count <= 0:
            return 0
        budget = (total_kbps - video_kbps) * (1 - self.container_overhead_ratio)
        if budget <= 0:
            return 0
        return round(budget / track_count)

    def reconcile(
        self,
        tracks: Sequence[AudioInput],
        video_kbps: int = 0,
        total_kbps: Optional[int] = None,
        height: Optional[int] = None,
    ) -> BitrateSplit:
        """Reconcile video and per-track audio bitrates.

        Args:
            tracks: Audio tracks in stream order with any reported bitrate
            video_kbps: Reported video bitrate, 0 if unknown
            total_kbps: Measured total bitrate, None if unknown
            height: Frame height, for the video estimation table

        Returns:
            BitrateSplit with one audio value per input track
        """
        total = total_kbps if total_kbps and total_kbps > 0 else None
        video_reported = video_kbps > 0
        audio = [t.reported_kbps if t.reported_kbps > 0 else 0 for t in tracks]
        audio_estimated = [False] * len(tracks)
        missing = [i for i, kbps in enumerate(audio) if kbps <= 0]

        if missing and total:
            known = sum(audio)
            basis = video_kbps if video_reported else round(total * self.video_share_ratio)
            per_track = self.audio_from_total(total - known, basis, len(missing))
            if 0 < per_track <= MAX_PLAUSIBLE_TRACK_KBPS:
                for i in missing:
                    audio[i] = per_track
                missing = []

        for i in missing:
            audio[i] = estimate_audio_bitrate(tracks[i].codec, tracks[i].channels)
            audio_estimated[i] = True

        video = video_kbps
        video_estimated = False
        if total:
            cap = math.floor(total * self.audio_cap_ratio)
            audio_sum = sum(audio)
            if audio_sum > cap:
                logger.debug(
                    "Audio bitrate exceeds cap, clamping",
                    audio_kbps=audio_sum,
                    total_kbps=total,
                    cap_kbps=cap,
                )
                audio = self._scale(audio, cap)
                audio_sum = sum(audio)
            if not video_reported:
                video = max(0, total - audio_sum)
        elif not video_reported:
            video = estimate_video_bitrate(height)
            video_estimated = True

        return BitrateSplit(
            video_kbps=video,
            audio_kbps=audio,
            total_kbps=total,
            video_estimated=video_estimated,
            audio_estimated=audio_estimated,
        )

    @staticmethod
    def _scale(values: list[int], cap: int) -> list[int]:
        total = sum(values)
        if total <= 0:
            return values
        return [v * cap // total for v in values]

    def refine(self, item, analysis: MediaMetadata) -> bool:
        """Merge a file-analysis measurement into an item.

        Estimated (or missing) bitrates are replaced by measured ones;
        measured values are never replaced. Versions sharing the analysed
        file are refined too.

        Args:
            item: MediaItem (or MediaVersion) to update in place
            analysis: Metadata produced by FileAnalyzer for the item's file

        Returns:
            True if any value changed
        """
        measured = analysis.primary_file
        if measured is None:
            return False

        changed = self._refine_target(item, measured, analysis.bitrate_unit)
        for version in getattr(item, "versions", []):
            if version.file_path and version.file_path == item.file_path:
                self._refine_target(version, measured, analysis.bitrate_unit)

        if changed:
            logger.debug(
                "Bitrates refined from file analysis",
                file=item.file_path,
                video_kbps=item.video_bitrate_kbps,
                audio_kbps=item.audio_bitrate_kbps,
            )
        return changed

    def _refine_target(self, target, measured, unit: str) -> bool:
        changed = False

        total = total_bitrate_from_file(measured.file_size_bytes, measured.duration_ms)
        if total is None:
            total = normalize_bitrate(measured.total_bitrate, unit) or None
        if total and not target.total_bitrate_kbps:
            target.total_bitrate_kbps = total
            changed = True

        if measured.video is not None:
            video_kbps = normalize_bitrate(measured.video.bitrate, unit)
            if video_kbps and (
                not target.video_bitrate_kbps or is_estimated_bitrate(target.video_bitrate_kbps)
            ):
                target.video_bitrate_kbps = video_kbps
                changed = True

        by_index = {s.index: s for s in measured.audio_streams}
        for track in target.audio_tracks:
            stream = by_index.get(track.index)
            if stream is None:
                continue
            kbps = normalize_bitrate(stream.bitrate, unit)
            if kbps and (not track.bitrate_kbps or is_estimated_bitrate(track.bitrate_kbps)):
                track.bitrate_kbps = kbps
                changed = True

        if target.total_bitrate_kbps and target.audio_tracks:
            cap = math.floor(target.total_bitrate_kbps * self.audio_cap_ratio)
            if sum(t.bitrate_kbps for t in target.audio_tracks) > cap:
                scaled = self._scale([t.bitrate_kbps for t in target.audio_tracks], cap)
                for track, kbps in zip(target.audio_tracks, scaled):
                    track.bitrate_kbps = kbps
                changed = True

        best = next(
            (t for t in target.audio_tracks if t.index == target.best_audio_index), None
        )
        if best is not None and best.bitrate_kbps != target.audio_bitrate_kbps:
            target.audio_bitrate_kbps = best.bitrate_kbps
            changed = True

        return changed
