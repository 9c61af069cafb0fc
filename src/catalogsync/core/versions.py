"""Edition names for quality variants, recovered by diffing their filenames.

Given every file of one title, the shared leading words (title and year)
are removed, technical tokens are dropped, and whatever is left becomes the
variant's edition, e.g. "Extended Cut".
"""

import re
from typing import Optional, Sequence

from catalogsync.core.normalizer import HDR_NONE
from catalogsync.models.media import MediaVersion
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

EDITION_TAG_PATTERN = re.compile(r"\{edition-([^}]+)\}", re.IGNORECASE)

MEDIA_EXTENSIONS = frozenset(
    {"mkv", "mp4", "avi", "mov", "wmv", "flv", "webm", "m4v", "ts", "mpg", "mpeg"}
)

TECHNICAL_TOKENS = frozenset(
    {
        # resolutions
        "480p", "576p", "720p", "1080p", "1080i", "2160p", "4k", "uhd", "sd",
        # sources
        "bluray", "blu-ray", "bdrip", "brrip", "remux", "web-dl", "webdl",
        "webrip", "web", "hdtv", "pdtv", "dvdrip", "dvd", "dvd-r",
        # video codecs
        "x264", "x265", "h264", "h265", "h.264", "h.265", "hevc", "avc",
        "av1", "vp9", "xvid", "divx", "mpeg-2", "mpeg2", "vc-1", "vc1",
        # audio codecs
        "dts", "dts-hd", "dts-hdma", "dtsx", "dts-x", "dts:x",
        "truehd", "atmos", "dd+", "ddp", "dd", "eac3", "e-ac-3", "ac3", "ac-3",
        "aac", "flac", "lpcm", "mp3", "pcm", "opus",
        # hdr
        "hdr", "hdr10", "hdr10+", "hdr10plus", "dv", "hlg", "sdr",
        # release descriptors and channel layouts
        "proper", "repack", "internal", "10bit", "10-bit", "8bit", "8-bit",
        "hybrid", "5.1", "7.1", "2.0",
    }
)

# Stripped before word filtering so their words don't survive individually
TECHNICAL_PHRASES = (
    "dolby vision",
    "dolby atmos",
    "dts-hd ma",
    "dts hd ma",
    "dts-hd",
    "blu-ray",
    "web-dl",
)

_PHRASE_PATTERNS = [re.compile(re.escape(p), re.IGNORECASE) for p in TECHNICAL_PHRASES]
_WORD_PUNCTUATION = re.compile(r"[\[\](){},-]")
_RESOLUTION_WORD = re.compile(r"^\d+p$")
_BIT_DEPTH_WORD = re.compile(r"^\d+bit$")
_TITLE_CASE = re.compile(r"(?<![\w'])\w")
_EDGE_LEAD = re.compile(r"^[\s\-–—_.]+")
_EDGE_TRAIL = re.compile(r"[\s\-–—_.]+$")


def basename(file_path: str) -> str:
    """File name of a POSIX or Windows path."""
    idx = max(file_path.rfind("/"), file_path.rfind("\\"))
    return file_path[idx + 1:] if idx >= 0 else file_path


def strip_extension(filename: str) -> str:
    """Strip the extension only when it is a known media extension ("Vol.1" survives)."""
    stem, dot, ext = filename.rpartition(".")
    if dot and stem and ext.lower() in MEDIA_EXTENSIONS:
        return stem
    return filename


def normalize_name(name: str) -> str:
    """Dots and underscores to spaces, whitespace collapsed."""
    return re.sub(r"\s+", " ", name.replace(".", " ").replace("_", " ")).strip()


def common_word_prefix(names: Sequence[str]) -> str:
    """Longest case-insensitive common word prefix, in the first name's casing."""
    if not names:
        return ""
    word_lists = [n.split() for n in names]
    count = 0
    for words in zip(*word_lists):
        first = words[0].lower()
        if all(w.lower() == first for w in words):
            count += 1
        else:
            break
    return " ".join(word_lists[0][:count])


def strip_brackets(text: str) -> str:
    """Remove [...] and {...} segments, and parentheses while keeping their text."""
    text = re.sub(r"\[[^\]]*\]", "", text)
    text = re.sub(r"\{[^}]*\}", "", text)
    text = re.sub(r"[()]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def is_technical_word(word: str) -> bool:
    """Whether a single word is release/encoding metadata rather than an edition."""
    lower = _WORD_PUNCTUATION.sub("", word.lower())
    if not lower:
        return True
    return (
        lower in TECHNICAL_TOKENS
        or bool(_RESOLUTION_WORD.match(lower))
        or bool(_BIT_DEPTH_WORD.match(lower))
        or lower.isdigit()
    )


def strip_technical_tokens(text: str) -> str:
    """Drop technical phrases, then technical words."""
    for pattern in _PHRASE_PATTERNS:
        text = pattern.sub(" ", text)
    return " ".join(w for w in text.split() if not is_technical_word(w)).strip()


def title_case(text: str) -> str:
    """Capitalize the first letter of each word ("director's cut" -> "Director's Cut")."""
    return _TITLE_CASE.sub(lambda m: m.group(0).upper(), text)


def clean_edges(text: str) -> str:
    """Trim stray leading/trailing dashes, dots, underscores and whitespace."""
    return _EDGE_TRAIL.sub("", _EDGE_LEAD.sub("", text)).strip()


def edition_tag(file_path: str) -> Optional[str]:
    """Text of an explicit ``{edition-...}`` tag in a file name, if any."""
    match = EDITION_TAG_PATTERN.search(basename(file_path))
    if match:
        return match.group(1).strip() or None
    return None


def build_label(resolution: str, hdr_format: Optional[str], edition: Optional[str]) -> str:
    """Composite label: resolution, HDR format unless none, edition if set."""
    parts = [resolution]
    if hdr_format and hdr_format != HDR_NONE:
        parts.append(hdr_format)
    if edition:
        parts.append(edition)
    return " ".join(parts)


class VersionNameExtractor:
    """Assign edition names and labels to the quality variants of one title."""

    def extract(self, versions: Sequence[MediaVersion]) -> Sequence[MediaVersion]:
        """Set ``edition`` and ``label`` on each version in place.

        A version that already has an edition keeps it. With a single
        version there is nothing to diff against, so only its label is set.

        Args:
            versions: All variants of the same title

        Returns:
            The same versions
        """
        if len(versions) > 1:
            for version in versions:
                if not version.edition and version.file_path:
                    version.edition = edition_tag(version.file_path)

            pending = [v for v in versions if not v.edition and v.file_path]
            if len(pending) >= 2:
                self._diff(pending)

        for version in versions:
            version.label = build_label(version.resolution, version.hdr_format, version.edition)

        return versions

    def _diff(self, pending: Sequence[MediaVersion]) -> None:
        names = [normalize_name(strip_extension(basename(v.file_path))) for v in pending]
        prefix = common_word_prefix(names)

        editions = []
        for name in names:
            remainder = name
            if prefix and remainder.lower().startswith(prefix.lower()):
                remainder = remainder[len(prefix):]
            remainder = strip_technical_tokens(strip_brackets(remainder.strip()))
            editions.append(clean_edges(remainder))

        for version, edition in zip(pending, editions):
            if edition:
                version.edition = title_case(edition)

        logger.debug(
            "Extracted version names",
            common_prefix=prefix,
            editions=[v.edition for v in pending],
        )
