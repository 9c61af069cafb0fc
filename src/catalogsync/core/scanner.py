"""Discovery of video files in local folders."""

import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from catalogsync.utils.filename import VIDEO_EXTENSIONS
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)

# Folder names holding bonus material or NAS metadata, never main features
SKIPPED_FOLDERS = frozenset(
    {
        "@eadir", ".ds_store", "thumbs", "metadata",
        "extras", "extra", "featurettes", "featurette", "behind the scenes",
        "deleted scenes", "interviews", "interview", "scenes", "shorts", "short",
        "trailers", "trailer", "other", "bonus", "bonuses", "bonus features",
        "special features", "specials", "samples", "sample", "subs", "subtitles",
    }
)

_EXTRAS_FILENAME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bsample\b",
        r"\bfeaturettes?\b",
        r"\bbehind[.\-_ ]?the[.\-_ ]?scenes?\b",
        r"\bdeleted[.\-_ ]?scenes?\b",
        r"\bgag[.\-_ ]?reel\b",
        r"\bbloopers?\b",
        r"\binterview(s|ed)?\b",
        r"\bmaking[.\-_ ]?of\b",
        r"\b(trailer|teaser)\b",
        r"\bouttakes?\b",
        r"[.\-_ ](scene|trailer|featurette|interview|behindthescenes|deleted|short|other)$",
    )
]


def is_extras_file(filename: str) -> bool:
    """Whether a file name looks like bonus material rather than a main feature."""
    stem = Path(filename).stem
    return any(p.search(stem) for p in _EXTRAS_FILENAME_PATTERNS)


class FileScanner:
    """Scan directories for video files."""

    def scan(self, path: Path, since: Optional[datetime] = None) -> List[Path]:
        """Recursively collect video files under a path.

        Extras folders and extras-looking file names are skipped.

        Args:
            path: Directory (or single file) to scan
            since: Only return files modified after this time

        Returns:
            Video file paths, sorted

        Raises:
            FileNotFoundError: If path doesn't exist
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Path not found: {path}")

        if path.is_file():
            candidates = [path] if path.suffix.lower() in VIDEO_EXTENSIONS else []
        else:
            candidates = []
            for root, dirs, files in os.walk(path):
                dirs[:] = [d for d in dirs if d.lower() not in SKIPPED_FOLDERS]
                for name in files:
                    if Path(name).suffix.lower() in VIDEO_EXTENSIONS and not is_extras_file(name):
                        candidates.append(Path(root) / name)

        skipped = 0
        if since is not None:
            threshold = since.timestamp() if since.tzinfo else since.replace(tzinfo=timezone.utc).timestamp()
            kept = [p for p in candidates if p.stat().st_mtime > threshold]
            skipped = len(candidates) - len(kept)
            candidates = kept

        files = sorted(candidates)
        logger.info(
            "Directory scan complete",
            directory=str(path),
            total_files=len(files),
            skipped_unchanged=skipped,
        )
        return files
