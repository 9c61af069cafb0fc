"""Canonical vocabulary for provider media metadata.

Every provider spells codecs, HDR flags and bitrates differently. The
functions here map those spellings onto one vocabulary. They are pure and
never raise on missing or malformed input: provider data is routinely
incomplete, so each one falls back to a safe default instead.
"""

import re
from typing import Optional

UNKNOWN = "Unknown"

RESOLUTION_RANK = {"SD": 0, "480p": 1, "720p": 2, "1080p": 3, "4K": 4}

HDR_NONE = "None"

# (min height, min width, label), highest first
_RESOLUTION_THRESHOLDS = (
    (2160, 3840, "4K"),
    (1080, 1920, "1080p"),
    (720, 1280, "720p"),
    (480, 720, "480p"),
)

_CONTAINERS = {
    "mkv": "MKV",
    "matroska": "MKV",
    "mp4": "MP4",
    "m4v": "MP4",
    "avi": "AVI",
    "mov": "MOV",
    "quicktime": "MOV",
    "wmv": "WMV",
    "asf": "WMV",
    "ts": "TS",
    "mpegts": "TS",
    "m2ts": "TS",
    "webm": "WebM",
    "flv": "FLV",
    "ogm": "OGG",
    "ogg": "OGG",
}

_LAYOUT_CHANNELS = (
    ("7.1", 8),
    ("6.1", 7),
    ("5.1", 6),
    ("5.0", 5),
    ("4.1", 5),
    ("4.0", 4),
    ("quad", 4),
    ("stereo", 2),
    ("2.0", 2),
    ("mono", 1),
    ("1.0", 1),
)


def _to_float(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        match = re.match(r"\s*(-?\d+(?:\.\d+)?)", str(value))
        return float(match.group(1)) if match else None


def normalize_video_codec(codec: Optional[str]) -> str:
    """Map a provider video codec name onto the canonical set.

    Unrecognized codecs are upper-cased so different spellings of the same
    unknown codec still compare equal.
    """
    if not codec or not codec.strip():
        return UNKNOWN

    c = codec.lower().strip()

    if c in ("h265", "h.265", "x265") or "hevc" in c:
        return "HEVC"
    if c in ("h.264", "x264") or "avc" in c or "h264" in c:
        return "H.264"
    if c == "av1" or "av01" in c:
        return "AV1"
    if "vp9" in c:
        return "VP9"
    if "vp8" in c:
        return "VP8"
    if c == "mp4v" or any(s in c for s in ("mpeg4", "divx", "xvid")):
        return "MPEG-4"
    if c == "mp2v" or "mpeg2" in c:
        return "MPEG-2"
    if c in ("vc-1", "wmv3", "wvc1") or "vc1" in c or "wmv" in c:
        return "VC-1"
    if c in ("mpeg1", "mpeg1video"):
        return "MPEG-1"
    if "prores" in c:
        return "ProRes"
    if "dnxh" in c:
        return "DNxHD"

    return codec.strip().upper()


def normalize_audio_codec(codec: Optional[str], profile: Optional[str] = None) -> str:
    """Map a provider audio codec (and optional profile) onto the canonical set.

    ffprobe and Plex report every DTS flavour as ``dca``/``dts`` and put the
    distinguishing part in the profile (``ma``, ``hra``, ``x``).

    Args:
        codec: Provider codec name
        profile: Provider codec profile, if any

    Returns:
        Canonical codec name, e.g. "TrueHD", "DTS-HD MA", "EAC3"
    """
    if not codec or not codec.strip():
        return UNKNOWN

    c = codec.lower().strip()
    p = (profile or "").lower().strip()

    if c == "dca" or (c == "dts" and p):
        if p == "ma" or "dts-hd ma" in p:
            return "DTS-HD MA"
        if p == "hra" or "dts-hd hra" in p or "dts-hd hr" in p:
            return "DTS-HD HRA"
        if p == "x" or "dts:x" in p or "dtsx" in p:
            return "DTS:X"
        if c == "dca":
            return "DTS"

    if "truehd" in c:
        return "TrueHD"
    if any(s in c for s in ("dts-hd ma", "dtshd_ma", "dts-hd.ma", "dtsma")):
        return "DTS-HD MA"
    if any(s in c for s in ("dts-hd", "dtshd")):
        return "DTS-HD HRA"
    if "dts:x" in c or "dtsx" in c:
        return "DTS:X"
    if "dts" in c:
        return "DTS"
    if c in ("ec3", "e-ac-3", "ec-3") or "eac3" in c or "dolby digital plus" in c:
        return "EAC3"
    if c in ("ac3", "ac-3", "a52") or "dolby digital" in c:
        return "AC3"
    if "aac" in c:
        return "AAC"
    if "flac" in c:
        return "FLAC"
    if "alac" in c:
        return "ALAC"
    if c in ("pcm", "lpcm") or "pcm_" in c:
        return "PCM"
    if "mp3" in c or "mpeg audio" in c:
        return "MP3"
    if "opus" in c:
        return "Opus"
    if "vorbis" in c:
        return "Vorbis"
    if "wma" in c:
        return "WMA"

    return codec.strip().upper()


def normalize_resolution(width: Optional[int], height: Optional[int]) -> str:
    """Classify a frame size into SD/480p/720p/1080p/4K.

    Height is the primary signal; width catches letterboxed encodes
    (e.g. 1920x800 is still 1080p).
    """
    w = width or 0
    h = height or 0
    for min_height, min_width, label in _RESOLUTION_THRESHOLDS:
        if h >= min_height or w >= min_width:
            return label
    return "SD"


def normalize_hdr_format(
    range_hint: Optional[str] = None,
    color_primaries: Optional[str] = None,
    color_transfer: Optional[str] = None,
    bit_depth: Optional[int] = None,
    profile: Optional[str] = None,
) -> str:
    """Determine the HDR format of a video stream.

    An explicit range hint wins, then a Dolby Vision profile, then color
    primaries and transfer characteristics.

    Returns:
        One of "None", "HDR10", "HDR10+", "Dolby Vision", "HLG"
    """
    if range_hint:
        hint = range_hint.lower().strip()
        if "dolbyvision" in hint or "dolby vision" in hint or "dovi" in hint:
            return "Dolby Vision"
        if "hdr10+" in hint or "hdr10plus" in hint:
            return "HDR10+"
        if "hdr10" in hint or hint == "hdr":
            return "HDR10"
        if "hlg" in hint:
            return "HLG"

    if profile:
        profile_lower = profile.lower()
        if "dolby vision" in profile_lower or "dovi" in profile_lower:
            return "Dolby Vision"

    trc = (color_transfer or "").lower()
    primaries = (color_primaries or "").lower()
    wide_gamut = "bt2020" in primaries or "rec2020" in primaries

    if "dovi" in trc or "dovi" in primaries:
        return "Dolby Vision"
    if "hdr10+" in trc or "smpte2094" in trc:
        return "HDR10+"
    if "hlg" in trc or trc == "arib-std-b67":
        return "HLG"
    if wide_gamut and any(s in trc for s in ("smpte2084", "pq", "st2084")):
        return "HDR10"
    if bit_depth and bit_depth >= 10 and wide_gamut:
        return "HDR10"

    return HDR_NONE


def normalize_bitrate(value, unit: str = "auto") -> int:
    """Convert a bitrate to kbps.

    Args:
        value: Bitrate as number or numeric string
        unit: "bps", "kbps", "mbps" or "auto". In auto mode values above
            100000 are taken as bps and values below 100 as Mbps.

    Returns:
        Bitrate in kbps, 0 when unknown
    """
    number = _to_float(value)
    if number is None or number <= 0:
        return 0

    if unit == "bps":
        return round(number / 1000)
    if unit == "mbps":
        return round(number * 1000)
    if unit == "kbps":
        return round(number)

    if number > 100000:
        return round(number / 1000)
    if number < 100:
        return round(number * 1000)
    return round(number)


def normalize_frame_rate(frame_rate) -> Optional[float]:
    """Parse "23.976", "24000/1001", "29.97fps" or a number into fps (3 decimals)."""
    if frame_rate is None or isinstance(frame_rate, bool):
        return None

    if isinstance(frame_rate, (int, float)):
        return round(float(frame_rate), 3) if frame_rate > 0 else None

    text = str(frame_rate).lower().replace("fps", "").strip()
    if "/" in text:
        num, _, den = text.partition("/")
        numerator = _to_float(num)
        denominator = _to_float(den)
        if numerator is None or not denominator or denominator <= 0:
            return None
        rate = numerator / denominator
        return round(rate, 3) if rate > 0 else None

    number = _to_float(text)
    return round(number, 3) if number and number > 0 else None


def normalize_audio_channels(count=None, layout: Optional[str] = None) -> int:
    """Resolve a channel count from an explicit count or a layout string.

    Falls back to 2 (stereo) when neither gives an answer.
    """
    number = _to_float(count)
    if number is not None and number > 0:
        return round(number)

    if layout:
        layout_lower = layout.lower()
        for marker, channels in _LAYOUT_CHANNELS:
            if marker in layout_lower:
                return channels
        # e.g. "FL+FR+FC+LFE+BL+BR"
        counted = layout_lower.count("+") + 1
        if counted > 1:
            return counted

    return 2


def normalize_sample_rate(sample_rate) -> Optional[int]:
    """Sample rate in Hz; small values are taken as kHz."""
    number = _to_float(sample_rate)
    if number is None or number <= 0:
        return None
    if number < 1000:
        return round(number * 1000)
    return round(number)


def normalize_container(container: Optional[str]) -> str:
    """Canonical container name. Comma lists ("matroska,webm") use the first entry."""
    if not container or not container.strip():
        return UNKNOWN
    first = container.split(",")[0].lower().strip()
    return _CONTAINERS.get(first, first.upper())


def detect_object_audio(
    codec: Optional[str],
    profile: Optional[str] = None,
    title: Optional[str] = None,
    layout: Optional[str] = None,
) -> bool:
    """Detect Atmos (TrueHD/EAC3) or DTS:X from codec, profile, title and layout."""
    c = (codec or "").lower()
    hints = " ".join(s.lower() for s in (profile, title, layout) if s)

    if "atmos" in c or "dts:x" in c or "dtsx" in c:
        return True
    if "atmos" in hints and any(s in c for s in ("truehd", "eac3", "ec3", "e-ac-3", "ec-3")):
        return True
    if any(s in hints for s in ("dts:x", "dtsx", "dts-x")) and ("dts" in c or c == "dca"):
        return True
    return False


def resolution_rank(resolution: str) -> int:
    """Sort key for canonical resolution labels."""
    return RESOLUTION_RANK.get(resolution, 0)
