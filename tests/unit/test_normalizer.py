"""Unit tests for metadata normalization."""

import pytest

from catalogsync.core.normalizer import (
    detect_object_audio,
    normalize_audio_channels,
    normalize_audio_codec,
    normalize_bitrate,
    normalize_container,
    normalize_frame_rate,
    normalize_hdr_format,
    normalize_resolution,
    normalize_sample_rate,
    normalize_video_codec,
    resolution_rank,
)


class TestVideoCodec:
    """Test video codec normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("hevc", "HEVC"),
            ("h265", "HEVC"),
            ("x265", "HEVC"),
            ("h264", "H.264"),
            ("AVC", "H.264"),
            ("av1", "AV1"),
            ("vp9", "VP9"),
            ("mpeg2video", "MPEG-2"),
            ("wvc1", "VC-1"),
            ("xvid", "MPEG-4"),
        ],
    )
    def test_known_codecs(self, raw, expected):
        """Should map provider spellings onto one name."""
        assert normalize_video_codec(raw) == expected

    def test_missing_codec_is_unknown(self):
        """Should not fail on missing input."""
        assert normalize_video_codec(None) == "Unknown"
        assert normalize_video_codec("  ") == "Unknown"

    def test_unrecognized_codec_is_uppercased(self):
        """Should keep unknown codecs comparable across spellings."""
        assert normalize_video_codec("theora") == "THEORA"


class TestAudioCodec:
    """Test audio codec normalization."""

    @pytest.mark.parametrize(
        "codec,profile,expected",
        [
            ("truehd", None, "TrueHD"),
            ("dca", "MA", "DTS-HD MA"),
            ("dca", "DTS-HD MA", "DTS-HD MA"),
            ("dca", "HRA", "DTS-HD HRA"),
            ("dts", "X", "DTS:X"),
            ("dca", None, "DTS"),
            ("dts", None, "DTS"),
            ("eac3", None, "EAC3"),
            ("ec3", None, "EAC3"),
            ("ac3", None, "AC3"),
            ("aac", "LC", "AAC"),
            ("pcm_s24le", None, "PCM"),
            ("flac", None, "FLAC"),
        ],
    )
    def test_codec_and_profile(self, codec, profile, expected):
        """Should resolve DTS flavours from the profile."""
        assert normalize_audio_codec(codec, profile) == expected

    def test_missing_codec_is_unknown(self):
        """Should return a safe default."""
        assert normalize_audio_codec(None) == "Unknown"


class TestResolution:
    """Test resolution classification."""

    @pytest.mark.parametrize(
        "width,height,expected",
        [
            (3840, 2160, "4K"),
            (3840, 1600, "4K"),
            (1920, 1080, "1080p"),
            (1920, 800, "1080p"),
            (1280, 720, "720p"),
            (720, 480, "480p"),
            (640, 360, "SD"),
        ],
    )
    def test_thresholds(self, width, height, expected):
        """Should use height or width thresholds."""
        assert normalize_resolution(width, height) == expected

    def test_missing_dimensions_default_to_sd(self):
        """Should default to SD."""
        assert normalize_resolution(None, None) == "SD"

    def test_rank_orders_labels(self):
        """Should rank 4K above 1080p above SD."""
        assert resolution_rank("4K") > resolution_rank("1080p") > resolution_rank("SD")
        assert resolution_rank("bogus") == 0


class TestHdrFormat:
    """Test HDR format detection."""

    def test_defaults_to_none(self):
        """Should return "None" without any hint."""
        assert normalize_hdr_format() == "None"

    def test_range_hint_wins(self):
        """Should trust an explicit range hint."""
        assert normalize_hdr_format("DOVIWithHDR10") == "Dolby Vision"
        assert normalize_hdr_format("HDR10Plus") == "HDR10+"
        assert normalize_hdr_format("HDR10") == "HDR10"
        assert normalize_hdr_format("HLG") == "HLG"

    def test_transfer_characteristics(self):
        """Should derive HDR from primaries and transfer."""
        assert normalize_hdr_format(None, "bt2020", "smpte2084") == "HDR10"
        assert normalize_hdr_format(None, "bt2020", "arib-std-b67") == "HLG"

    def test_ten_bit_wide_gamut_is_hdr10(self):
        """Should treat 10-bit BT.2020 as HDR10."""
        assert normalize_hdr_format(None, "bt2020", None, bit_depth=10) == "HDR10"

    def test_dolby_vision_profile(self):
        """Should detect Dolby Vision from the codec profile."""
        assert normalize_hdr_format(None, None, None, None, "dolby vision") == "Dolby Vision"

    def test_sdr_stays_none(self):
        """Should not flag plain BT.709 content."""
        assert normalize_hdr_format(None, "bt709", "bt709", bit_depth=8) == "None"


class TestBitrate:
    """Test bitrate unit conversion."""

    def test_explicit_units(self):
        """Should convert to kbps by unit."""
        assert normalize_bitrate(640000, "bps") == 640
        assert normalize_bitrate(640, "kbps") == 640
        assert normalize_bitrate(25, "mbps") == 25000

    def test_auto_unit(self):
        """Should guess the unit from the magnitude."""
        assert normalize_bitrate(24000000) == 24000
        assert normalize_bitrate(8000) == 8000
        assert normalize_bitrate(12.5) == 12500

    def test_bad_values(self):
        """Should return 0 for missing or malformed values."""
        assert normalize_bitrate(None) == 0
        assert normalize_bitrate("n/a") == 0
        assert normalize_bitrate(-5) == 0
        assert normalize_bitrate("640 kbps", "kbps") == 640


class TestFrameRate:
    """Test frame rate parsing."""

    def test_formats(self):
        """Should parse ratios, strings and numbers."""
        assert normalize_frame_rate("24000/1001") == 23.976
        assert normalize_frame_rate("29.97fps") == 29.97
        assert normalize_frame_rate(25) == 25.0

    def test_invalid(self):
        """Should return None for unusable input."""
        assert normalize_frame_rate("0/0") is None
        assert normalize_frame_rate(None) is None
        assert normalize_frame_rate("abc") is None


class TestChannelsAndSampleRate:
    """Test channel count and sample rate normalization."""

    def test_explicit_count_wins(self):
        """Should prefer the reported count."""
        assert normalize_audio_channels(8, "5.1") == 8

    def test_layout_fallback(self):
        """Should read the count from a layout string."""
        assert normalize_audio_channels(None, "5.1(side)") == 6
        assert normalize_audio_channels(None, "7.1") == 8
        assert normalize_audio_channels(None, "stereo") == 2
        assert normalize_audio_channels(None, "FL+FR+FC") == 3

    def test_default_is_stereo(self):
        """Should default to 2 channels."""
        assert normalize_audio_channels() == 2

    def test_sample_rate(self):
        """Should accept Hz and kHz."""
        assert normalize_sample_rate(48000) == 48000
        assert normalize_sample_rate("44.1") == 44100
        assert normalize_sample_rate(None) is None


class TestContainerAndObjectAudio:
    """Test container names and object-audio detection."""

    def test_container(self):
        """Should canonicalize container names."""
        assert normalize_container("matroska,webm") == "MKV"
        assert normalize_container("mov") == "MOV"
        assert normalize_container("m2ts") == "TS"
        assert normalize_container(None) == "Unknown"

    def test_atmos(self):
        """Should detect Atmos on TrueHD and EAC3 only."""
        assert detect_object_audio("truehd", title="TrueHD Atmos 7.1")
        assert detect_object_audio("eac3", profile="Dolby Digital Plus + Dolby Atmos")
        assert not detect_object_audio("aac", title="Atmos")

    def test_dts_x(self):
        """Should detect DTS:X from codec or profile."""
        assert detect_object_audio("dca", profile="DTS:X")
        assert detect_object_audio("DTS:X")
        assert not detect_object_audio("dca", profile="DTS-HD MA")
