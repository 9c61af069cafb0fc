"""Translate file paths reported by media servers into local paths."""

from pathlib import Path
from typing import List, Optional

from catalogsync.config import PathMapping
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)


class PathMapper:
    """Map server-side paths to paths readable from this machine."""

    def __init__(self, mappings: List[PathMapping]):
        self.mappings = [(Path(m.remote), Path(m.local)) for m in mappings]

    def map_path(self, remote_path: str | Path) -> Path:
        """Translate a server path to a local filesystem path.

        Mappings are tried in order and the first matching prefix wins.
        Unmapped paths are returned unchanged.

        Example:
            mapper = PathMapper([PathMapping(remote="/data/movies", local="/mnt/movies")])
            mapper.map_path("/data/movies/Heat (1995)/Heat.mkv")
            # Returns: /mnt/movies/Heat (1995)/Heat.mkv
        """
        remote = Path(remote_path)

        for remote_prefix, local_prefix in self.mappings:
            try:
                relative = remote.relative_to(remote_prefix)
            except ValueError:
                continue
            local_path = local_prefix / relative
            logger.debug(
                "Path mapped",
                remote_path=str(remote_path),
                local_path=str(local_path),
            )
            return local_path

        return remote

    def resolve_local(self, remote_path: Optional[str]) -> Optional[Path]:
        """Map a path and return it only if the file exists locally."""
        if not remote_path:
            return None
        local = self.map_path(remote_path)
        if local.is_file():
            return local
        logger.debug("File not reachable locally", remote_path=remote_path)
        return None
