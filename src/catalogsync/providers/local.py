"""Local folder adapter: filesystem discovery plus ffprobe analysis."""

import asyncio
import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from catalogsync.config import LocalLibraryConfig
from catalogsync.core.analyzer import FileAnalyzer
from catalogsync.core.scanner import FileScanner
from catalogsync.exceptions import AdapterError, AnalysisError
from catalogsync.models.media import ItemPage, Library, Pagination
from catalogsync.models.metadata import MediaFile, MediaMetadata
from catalogsync.providers.base import ProviderAdapter
from catalogsync.utils.filename import FilenameParser, ParsedName
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

MOVIE_FOLDER_NAMES = frozenset({"movies", "movie", "films", "film"})
TVSHOW_FOLDER_NAMES = frozenset({"tv", "tv shows", "tvshows", "shows", "series", "tv series"})


def local_item_id(key: str) -> str:
    """Stable provider id for a local entry."""
    return "local_" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]


@dataclass
class _Entry:
    """One catalog entry: a movie (all its versions) or an episode file."""

    key: str
    parsed: ParsedName
    paths: list[Path] = field(default_factory=list)


class LocalFolderAdapter(ProviderAdapter):
    """ProviderAdapter over plain folders of video files.

    Movie files with the same parsed title and year become one entry with
    several versions. Episodes are one entry per file. Nothing reports
    stream details here, so every file on a page is probed with ffprobe.
    """

    source_type = "local"
    supports_modified_since = True

    def __init__(
        self,
        source_id: str,
        folder_path: Optional[str] = None,
        libraries: Optional[Sequence[LocalLibraryConfig]] = None,
        page_size: int = 100,
        analyzer: Optional[FileAnalyzer] = None,
        scanner: Optional[FileScanner] = None,
        parser: Optional[FilenameParser] = None,
    ):
        super().__init__(source_id, page_size)
        self.folder_path = Path(folder_path) if folder_path else None
        self.configured_libraries = list(libraries or [])
        self.analyzer = analyzer or FileAnalyzer()
        self.scanner = scanner or FileScanner()
        self.parser = parser or FilenameParser()
        self._library_paths: dict[str, tuple[Path, str]] = {}
        self._entries: dict[tuple, list[_Entry]] = {}

    async def get_libraries(self) -> list[Library]:
        """Configured libraries, else movie/TV subfolders, else the root as movies."""
        libraries = []
        self._library_paths = {}

        if self.configured_libraries:
            for lib in self.configured_libraries:
                library_id = f"{lib.media_type}:{lib.name}"
                libraries.append(Library(id=library_id, name=lib.name, media_type=lib.media_type))
                self._library_paths[library_id] = (Path(lib.path), lib.media_type)
            return libraries

        if self.folder_path is None or not self.folder_path.is_dir():
            raise AdapterError(f"Local folder not found: {self.folder_path}")

        for child in sorted(self.folder_path.iterdir()):
            if not child.is_dir():
                continue
            name = child.name.lower()
            if name in MOVIE_FOLDER_NAMES:
                media_type = "movies"
            elif name in TVSHOW_FOLDER_NAMES:
                media_type = "tvshows"
            else:
                continue
            library_id = f"{media_type}:{child.name}"
            libraries.append(Library(id=library_id, name=child.name, media_type=media_type))
            self._library_paths[library_id] = (child, media_type)

        if not libraries:
            libraries.append(Library(id="movies", name="Movies", media_type="movies"))
            self._library_paths["movies"] = (self.folder_path, "movies")

        return libraries

    async def get_library_items(
        self,
        library_id: str,
        pagination: Pagination,
        since: Optional[datetime] = None,
    ) -> ItemPage:
        """Return one page of entries, probing each file on the page."""
        if not self._library_paths:
            await self.get_libraries()
        if library_id not in self._library_paths:
            raise AdapterError(f"Unknown local library: {library_id}")

        cache_key = (library_id, since)
        if pagination.start == 0 or cache_key not in self._entries:
            self._entries[cache_key] = await asyncio.to_thread(self._discover, library_id, since)
        entries = self._entries[cache_key]

        page = entries[pagination.start : pagination.start + pagination.limit]
        items = [await self._convert(entry) for entry in page]
        return ItemPage(items=items, start=pagination.start, total=len(entries))

    def _discover(self, library_id: str, since: Optional[datetime]) -> list[_Entry]:
        root, media_type = self._library_paths[library_id]
        try:
            files = self.scanner.scan(root)
        except FileNotFoundError as e:
            raise AdapterError(str(e)) from e

        entries: dict[str, _Entry] = {}
        for path in files:
            parsed = self.parser.parse(str(path), folder_context=str(path.parent))
            if media_type == "movies" or parsed.media_type == "movie":
                key = f"movie|{parsed.title.lower()}|{parsed.year or ''}"
            else:
                key = f"file|{path}"
            entry = entries.setdefault(key, _Entry(key=key, parsed=parsed))
            entry.paths.append(path)

        result = list(entries.values())
        if since is not None:
            threshold = since if since.tzinfo else since.replace(tzinfo=timezone.utc)
            # A changed version re-emits the whole movie so no version is lost
            result = [e for e in result if any(_mtime(p) > threshold for p in e.paths)]

        return sorted(result, key=lambda e: e.key)

    async def _convert(self, entry: _Entry) -> MediaMetadata:
        files = []
        for path in entry.paths:
            try:
                analysis = await asyncio.to_thread(self.analyzer.analyze, path)
            except AnalysisError as e:
                logger.warning("Skipping unreadable file", file=str(path), error=str(e))
                continue
            media_file = analysis.primary_file or MediaFile()
            media_file.file_path = str(path)
            files.append(media_file)

        return self.build_metadata(entry, files)

    def build_metadata(self, entry: _Entry, files: list[MediaFile]) -> MediaMetadata:
        """Assemble MediaMetadata for an entry from its probed files."""
        parsed = entry.parsed
        mtimes = [_mtime(p) for p in entry.paths if p.exists()]
        modified = max(mtimes) if mtimes else None

        if parsed.media_type == "episode" and entry.key.startswith("file|"):
            title = parsed.episode_title or f"Episode {parsed.episode_number}"
            return MediaMetadata(
                item_id=self._entry_id(entry),
                title=title,
                media_type="episode",
                series_title=parsed.title,
                season_number=parsed.season_number,
                episode_number=parsed.episode_number,
                year=parsed.year,
                files=files,
                bitrate_unit="bps",
                modified_at=modified,
                added_at=min(mtimes) if mtimes else None,
            )

        return MediaMetadata(
            item_id=self._entry_id(entry),
            title=parsed.title,
            media_type="movie",
            year=parsed.year,
            files=files,
            bitrate_unit="bps",
            modified_at=modified,
            added_at=min(mtimes) if mtimes else None,
        )

    async def get_item_metadata(self, item_id: str) -> Optional[MediaMetadata]:
        """Look an entry up among the last discovered entries."""
        for entries in self._entries.values():
            for entry in entries:
                if self._entry_id(entry) == item_id:
                    return await self._convert(entry)
        return None

    @staticmethod
    def _entry_id(entry: _Entry) -> str:
        if entry.key.startswith("file|"):
            return local_item_id(str(entry.paths[0]))
        return local_item_id(entry.key)


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
