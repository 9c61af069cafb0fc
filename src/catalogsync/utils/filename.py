"""Media filename parsing (title, year, episode numbers, edition tag)."""

import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal, Optional

VIDEO_EXTENSIONS = frozenset(
    {
        ".mkv", ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v",
        ".mpg", ".mpeg", ".m2ts", ".ts", ".vob", ".ogv", ".divx", ".xvid",
    }
)

_EPISODE_PATTERNS = (
    re.compile(r"[Ss](\d{1,2})[Ee](\d{1,3})(?:[Ee-]+(\d{1,3}))?"),
    re.compile(r"\b(\d{1,2})[xX](\d{1,3})(?:[-x](\d{1,3}))?\b"),
    re.compile(r"[Ss]eason\s*(\d{1,2})\s*[Ee]pisode\s*(\d{1,3})", re.IGNORECASE),
    re.compile(r"[Ss](\d{1,2})[.\s]+[Ee](\d{1,3})"),
)

_YEAR = re.compile(r"\b(19\d{2}|20\d{2})\b")
_PAREN_YEAR = re.compile(r"[(\[](19\d{2}|20\d{2})[)\]]")
_EDITION_TAG = re.compile(r"\{edition-([^}]+)\}", re.IGNORECASE)
_QUALITY_START = re.compile(
    r"\b(2160p|1080[pi]|720p|576p|480p|4k|uhd|blu-?ray|bdrip|brrip|remux|web-?dl|webrip|"
    r"hdtv|dvdrip|x26[45]|h\.?26[45]|hevc|xvid|hdr\d*|dts|truehd|atmos|aac|ac3)\b",
    re.IGNORECASE,
)
_SEASON_FOLDER = re.compile(r"^(season\s*\d+|s\d{1,2}|specials)$", re.IGNORECASE)


@dataclass
class ParsedName:
    """What could be read from a media filename."""

    media_type: Literal["movie", "episode"]
    title: str
    year: Optional[int] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    episode_number_end: Optional[int] = None
    episode_title: Optional[str] = None
    edition: Optional[str] = None


def is_video_file(filename: str) -> bool:
    """Whether a file name has a video extension."""
    return PurePath(filename).suffix.lower() in VIDEO_EXTENSIONS


def _clean(text: str) -> str:
    text = _EDITION_TAG.sub(" ", text)
    text = re.sub(r"[._]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def _clean_title(title: str) -> str:
    title = re.sub(r"[\[\]{}]", " ", title)
    title = re.sub(r"\s+", " ", title)
    return title.strip(" -()")


class FilenameParser:
    """Parse movie and episode file names.

    Recognized episode forms: ``S01E02`` (and ``S01E02-E03``), ``1x02``,
    ``Season 1 Episode 2`` and ``S01.E02``. Everything else is a movie.
    """

    def parse(self, file_path: str, folder_context: Optional[str] = None) -> ParsedName:
        """Parse a file path.

        Args:
            file_path: Path or bare file name
            folder_context: Parent folder path, used for series titles when
                the file name has none (e.g. ``Show/Season 1/S01E01.mkv``)

        Returns:
            ParsedName
        """
        name = PurePath(file_path).name
        stem = name[: -len(PurePath(name).suffix)] if is_video_file(name) else name

        tag = _EDITION_TAG.search(stem)
        edition = tag.group(1).strip() if tag else None

        parsed = self._parse_episode(stem, folder_context) or self._parse_movie(stem)
        parsed.edition = edition
        return parsed

    def _parse_episode(self, stem: str, folder_context: Optional[str]) -> Optional[ParsedName]:
        clean = _clean(stem)
        for pattern in _EPISODE_PATTERNS:
            match = pattern.search(clean)
            if not match:
                continue

            series = clean[: match.start()].strip(" -")
            if not series and folder_context:
                series = self._series_from_folder(folder_context)

            year = None
            paren = _PAREN_YEAR.search(series)
            if paren:
                year = int(paren.group(1))
                series = _PAREN_YEAR.sub(" ", series)
            else:
                bare = re.search(r"\s(19\d{2}|20\d{2})$", series)
                if bare:
                    year = int(bare.group(1))
                    series = series[: bare.start()]

            after = clean[match.end():].strip(" -")
            quality = _QUALITY_START.search(after)
            episode_title = (after[: quality.start()] if quality else after).strip(" -") or None

            groups = match.groups()
            return ParsedName(
                media_type="episode",
                title=_clean_title(series) or "Unknown",
                year=year,
                season_number=int(groups[0]),
                episode_number=int(groups[1]),
                episode_number_end=int(groups[2]) if len(groups) > 2 and groups[2] else None,
                episode_title=episode_title,
            )
        return None

    def _parse_movie(self, stem: str) -> ParsedName:
        clean = _clean(stem).replace("-", " ")
        clean = re.sub(r"\s+", " ", clean)

        year = None
        title_end = None
        paren = _PAREN_YEAR.search(clean)
        if paren:
            year = int(paren.group(1))
            title_end = paren.start()
        else:
            years = list(_YEAR.finditer(clean))
            if len(years) == 1 and clean[: years[0].start()].strip(" ([") == "":
                years = []  # a numeric title such as "1917"
            if years:
                last = years[-1]
                year = int(last.group(1))
                title_end = last.start()

        if title_end:
            title = clean[:title_end]
        else:
            quality = _QUALITY_START.search(clean)
            title = clean[: quality.start()] if quality and quality.start() > 0 else clean

        return ParsedName(media_type="movie", title=_clean_title(title) or stem, year=year)

    @staticmethod
    def _series_from_folder(folder_context: str) -> str:
        for part in reversed(PurePath(folder_context).parts):
            if not _SEASON_FOLDER.match(part.strip()):
                return _clean(part)
        return ""
