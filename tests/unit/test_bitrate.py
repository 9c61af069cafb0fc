"""Unit tests for bitrate reconciliation."""

from catalogsync.core.bitrate import (
    AudioInput,
    BitrateReconciler,
    estimate_audio_bitrate,
    estimate_video_bitrate,
    is_estimated_bitrate,
    total_bitrate_from_file,
)
from catalogsync.models.media import MediaItem
from catalogsync.models.metadata import AudioStream, MediaFile, MediaMetadata, VideoStream
from catalogsync.models.track import AudioTrack


class TestEstimates:
    """Test the estimation tables."""

    def test_audio_estimates_scale_with_channels(self):
        """Should give more bitrate to more channels."""
        assert estimate_audio_bitrate("TrueHD", 8) == 6000
        assert estimate_audio_bitrate("TrueHD", 6) == 4000
        assert estimate_audio_bitrate("AC3", 6) == 640
        assert estimate_audio_bitrate("AC3", 2) == 384
        assert estimate_audio_bitrate("AAC", 2) == 256

    def test_video_estimates_by_height(self):
        """Should estimate video from frame height."""
        assert estimate_video_bitrate(2160) == 25000
        assert estimate_video_bitrate(1080) == 10000
        assert estimate_video_bitrate(720) == 5000
        assert estimate_video_bitrate(480) == 2500
        assert estimate_video_bitrate(None) == 1500

    def test_is_estimated(self):
        """Should flag exact table constants only."""
        assert is_estimated_bitrate(640)
        assert is_estimated_bitrate(10000)
        assert not is_estimated_bitrate(641)
        assert not is_estimated_bitrate(0)
        assert not is_estimated_bitrate(None)

    def test_total_from_file(self):
        """Should compute kbps from size and duration."""
        assert total_bitrate_from_file(1_000_000_000, 7_200_000) == 1111
        assert total_bitrate_from_file(None, 7_200_000) is None
        assert total_bitrate_from_file(1000, 0) is None


class TestReconcile:
    """Test BitrateReconciler.reconcile."""

    def test_reported_values_are_kept(self):
        """Should not touch reported bitrates under the cap."""
        split = BitrateReconciler().reconcile(
            [AudioInput("AC3", 6, 640)], video_kbps=8000, total_kbps=10000
        )

        assert split.video_kbps == 8000
        assert split.audio_kbps == [640]
        assert split.audio_estimated == [False]

    def test_audio_from_total_minus_video(self):
        """Should give audio what video leaves, minus overhead."""
        split = BitrateReconciler().reconcile(
            [AudioInput("AC3", 6)], video_kbps=8000, total_kbps=10000
        )

        # (10000 - 8000) * 0.95
        assert split.audio_kbps == [1900]
        assert split.video_kbps == 8000

    def test_budget_is_split_across_missing_tracks(self):
        """Should divide the budget evenly and keep known values."""
        split = BitrateReconciler().reconcile(
            [AudioInput("AC3", 6, 640), AudioInput("AAC", 2), AudioInput("AAC", 2)],
            video_kbps=20000,
            total_kbps=22640,
        )

        # (22640 - 640 - 20000) * 0.95 / 2
        assert split.audio_kbps == [640, 950, 950]

    def test_audio_is_capped(self):
        """Should clamp audio to 30% of the total."""
        split = BitrateReconciler().reconcile(
            [AudioInput("TrueHD", 8)], video_kbps=2000, total_kbps=10000
        )

        assert sum(split.audio_kbps) <= 3000
        assert split.audio_kbps == [3000]
        assert split.video_kbps == 2000

    def test_cap_scales_reported_tracks(self):
        """Should scale every track proportionally when reported audio exceeds the cap."""
        split = BitrateReconciler().reconcile(
            [AudioInput("TrueHD", 8, 6000), AudioInput("AC3", 6, 640)],
            video_kbps=5000,
            total_kbps=10000,
        )

        assert sum(split.audio_kbps) <= 3000
        assert split.audio_kbps[0] > split.audio_kbps[1]

    def test_audio_from_total_with_provisional_video(self):
        """Should derive audio against a provisional 90% video share, then recompute video."""
        split = BitrateReconciler().reconcile(
            [AudioInput("TrueHD", 8)], total_kbps=30000, height=2160
        )

        # (30000 - 27000) * 0.95
        assert split.audio_kbps == [2850]
        assert split.audio_estimated == [False]
        assert split.video_kbps == 27150
        assert not split.video_estimated
        assert not is_estimated_bitrate(split.audio_kbps[0])

    def test_provisional_video_split_across_tracks(self):
        """Should split the derived budget over the tracks lacking a bitrate."""
        split = BitrateReconciler().reconcile(
            [AudioInput("TrueHD", 8), AudioInput("AC3", 6)], total_kbps=15000, height=1080
        )

        # (15000 - 13500) * 0.95 / 2
        assert split.audio_kbps == [712, 712]
        assert split.video_kbps == 15000 - 1424

    def test_cap_applies_to_derived_audio(self):
        """Should clamp derived audio to the cap and recompute video from it."""
        reconciler = BitrateReconciler(audio_cap_ratio=0.05, video_share_ratio=0.5)
        split = reconciler.reconcile([AudioInput("FLAC", 2)], total_kbps=10000, height=1080)

        # derived (10000 - 5000) * 0.95 = 4750, capped at 500
        assert split.audio_kbps == [500]
        assert split.video_kbps == 9500

    def test_no_total_uses_estimates(self):
        """Should estimate both sides without file data."""
        split = BitrateReconciler().reconcile(
            [AudioInput("AC3", 6), AudioInput("AAC", 2)], height=2160
        )

        assert split.video_kbps == 25000
        assert split.video_estimated
        assert split.audio_kbps == [640, 256]
        assert split.audio_estimated == [True, True]
        assert split.total_kbps is None

    def test_implausible_calculation_falls_back(self):
        """Should estimate when the calculated per-track value is absurd."""
        split = BitrateReconciler().reconcile(
            [AudioInput("AC3", 6)], video_kbps=1000, total_kbps=100000
        )

        assert split.audio_kbps == [640]
        assert split.audio_estimated == [True]

    def test_custom_ratios(self):
        """Should honour configured cap and overhead ratios."""
        reconciler = BitrateReconciler(audio_cap_ratio=0.5, container_overhead_ratio=0.0)
        split = reconciler.reconcile([AudioInput("AC3", 6)], video_kbps=6000, total_kbps=10000)

        assert split.audio_kbps == [4000]


class TestRefine:
    """Test merging file-analysis measurements."""

    def _item(self, track_kbps: int, video_kbps: int) -> MediaItem:
        item = MediaItem(
            provider_item_id="1",
            source_id="src1",
            source_type="plex",
            library_id="lib",
            title="Movie",
            file_path="/media/movie.mkv",
            video_bitrate_kbps=video_kbps,
            audio_bitrate_kbps=track_kbps,
            audio_tracks=[AudioTrack(index=0, codec="AC3", channels=6, bitrate_kbps=track_kbps)],
            best_audio_index=0,
        )
        return item

    def _analysis(self) -> MediaMetadata:
        return MediaMetadata(
            item_id="/media/movie.mkv",
            title="Movie",
            files=[
                MediaFile(
                    file_path="/media/movie.mkv",
                    video=VideoStream(codec="h264", height=1080, bitrate=8_000_000),
                    audio_streams=[AudioStream(index=0, codec="ac3", bitrate=448_000)],
                )
            ],
            bitrate_unit="bps",
        )

    def test_estimates_are_replaced(self):
        """Should overwrite estimated values with measurements."""
        item = self._item(track_kbps=640, video_kbps=10000)

        changed = BitrateReconciler().refine(item, self._analysis())

        assert changed
        assert item.video_bitrate_kbps == 8000
        assert item.audio_tracks[0].bitrate_kbps == 448
        assert item.audio_bitrate_kbps == 448

    def test_measured_values_are_kept(self):
        """Should never overwrite a non-estimated value."""
        item = self._item(track_kbps=700, video_kbps=9123)

        changed = BitrateReconciler().refine(item, self._analysis())

        assert not changed
        assert item.video_bitrate_kbps == 9123
        assert item.audio_tracks[0].bitrate_kbps == 700
