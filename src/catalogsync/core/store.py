"""Persistent store for canonical media items."""

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, List, Optional, Protocol

from catalogsync.exceptions import StoreError
from catalogsync.models.media import MediaItem, MediaVersion
from catalogsync.models.track import AudioTrack
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class MediaItemFilter:
    """Filter for Store.get_media_items. Unset fields match everything."""

    source_id: Optional[str] = None
    library_id: Optional[str] = None
    media_type: Optional[str] = None


class Store(Protocol):
    """Persistence collaborator consumed by the sync engine."""

    def upsert_media_item(self, item: MediaItem) -> int: ...

    def get_media_items(self, filter: Optional[MediaItemFilter] = None) -> List[MediaItem]: ...

    def get_media_item(self, item_id: int) -> Optional[MediaItem]: ...

    def delete_media_item(self, item_id: int) -> None: ...

    def start_batch(self) -> None: ...

    def end_batch(self) -> None: ...

    def force_save(self) -> None: ...

    def update_source_scan_time(self, source_id: str, when: Optional[datetime] = None) -> None: ...

    def get_source_scan_time(self, source_id: str) -> Optional[datetime]: ...

    def update_library_scan_time(
        self, source_id: str, library_id: str, when: Optional[datetime] = None
    ) -> None: ...

    def get_library_scan_time(self, source_id: str, library_id: str) -> Optional[datetime]: ...

    def close(self) -> None: ...


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# Scalar MediaItem fields stored as plain columns, in table order
_COLUMNS = (
    "source_id",
    "library_id",
    "provider_item_id",
    "source_type",
    "title",
    "media_type",
    "year",
    "series_title",
    "season_number",
    "episode_number",
    "file_path",
    "file_size_bytes",
    "duration_ms",
    "container",
    "resolution",
    "width",
    "height",
    "video_codec",
    "video_bitrate_kbps",
    "video_frame_rate",
    "color_bit_depth",
    "hdr_format",
    "audio_codec",
    "audio_channels",
    "audio_bitrate_kbps",
    "total_bitrate_kbps",
    "has_object_audio",
    "best_audio_index",
    "imdb_id",
    "tmdb_id",
    "poster_url",
    "fanart_url",
)

_KEY_COLUMNS = ("source_id", "library_id", "provider_item_id")


def _encode_tracks(tracks: List[AudioTrack]) -> str:
    return json.dumps([asdict(t) for t in tracks])


def _decode_tracks(raw: Optional[str]) -> List[AudioTrack]:
    if not raw:
        return []
    return [AudioTrack(**t) for t in json.loads(raw)]


def _encode_versions(versions: List[MediaVersion]) -> str:
    return json.dumps([asdict(v) for v in versions])


def _decode_versions(raw: Optional[str]) -> List[MediaVersion]:
    if not raw:
        return []
    versions = []
    for data in json.loads(raw):
        tracks = [AudioTrack(**t) for t in data.pop("audio_tracks", [])]
        versions.append(MediaVersion(audio_tracks=tracks, **data))
    return versions


class SQLiteStore:
    """SQLite-backed Store.

    Outside a batch every write commits. Between start_batch() and
    end_batch() commits are deferred until force_save() or end_batch().
    Nested JSON (audio tracks, versions) is encoded only here.
    """

    def __init__(self, db_path: str | Path):
        """Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._batch_depth = 0
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS media_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_id TEXT NOT NULL,
                    library_id TEXT NOT NULL,
                    provider_item_id TEXT NOT NULL,
                    source_type TEXT NOT NULL,
                    title TEXT NOT NULL,
                    media_type TEXT NOT NULL,
                    year INTEGER,
                    series_title TEXT,
                    season_number INTEGER,
                    episode_number INTEGER,
                    file_path TEXT,
                    file_size_bytes INTEGER,
                    duration_ms INTEGER,
                    container TEXT,
                    resolution TEXT NOT NULL,
                    width INTEGER,
                    height INTEGER,
                    video_codec TEXT,
                    video_bitrate_kbps INTEGER,
                    video_frame_rate REAL,
                    color_bit_depth INTEGER,
                    hdr_format TEXT NOT NULL,
                    audio_codec TEXT,
                    audio_channels INTEGER,
                    audio_bitrate_kbps INTEGER,
                    total_bitrate_kbps INTEGER,
                    has_object_audio INTEGER NOT NULL DEFAULT 0,
                    best_audio_index INTEGER,
                    imdb_id TEXT,
                    tmdb_id TEXT,
                    poster_url TEXT,
                    fanart_url TEXT,
                    audio_tracks TEXT NOT NULL DEFAULT '[]',
                    versions TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (source_id, library_id, provider_item_id)
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_items_library ON media_items(source_id, library_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sources (
                    source_id TEXT PRIMARY KEY,
                    last_scan_at TEXT
                )
            """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS library_scans (
                    source_id TEXT NOT NULL,
                    library_id TEXT NOT NULL,
                    last_scan_at TEXT NOT NULL,
                    PRIMARY KEY (source_id, library_id)
                )
            """
            )
            conn.commit()

        logger.info("Media store initialized", db_path=self.db_path)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Serialize access to the shared connection and map sqlite errors."""
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as e:
                logger.error("Store operation failed", db_path=self.db_path, error=str(e))
                raise StoreError(str(e)) from e

    def _commit(self, conn: sqlite3.Connection) -> None:
        if self._batch_depth == 0:
            conn.commit()

    @property
    def in_batch(self) -> bool:
        """Whether commits are currently deferred."""
        return self._batch_depth > 0

    def upsert_media_item(self, item: MediaItem) -> int:
        """Insert or update an item keyed by (source_id, library_id, provider_item_id).

        ``created_at`` is kept from the first insert and ``updated_at`` is
        bumped on every call. The item's ``id`` and timestamps are updated
        in place.

        Args:
            item: Canonical record

        Returns:
            Row id of the stored record
        """
        now = utcnow().isoformat()
        values = [getattr(item, c) for c in _COLUMNS]
        values[_COLUMNS.index("has_object_audio")] = int(item.has_object_audio)
        columns = _COLUMNS + ("audio_tracks", "versions", "created_at", "updated_at")
        values += [_encode_tracks(item.audio_tracks), _encode_versions(item.versions), now, now]

        updates = ", ".join(
            f"{c} = excluded.{c}"
            for c in columns
            if c not in _KEY_COLUMNS and c != "created_at"
        )
        sql = (
            f"INSERT INTO media_items ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT (source_id, library_id, provider_item_id) DO UPDATE SET {updates}"
        )

        with self._get_connection() as conn:
            conn.execute(sql, values)
            row = conn.execute(
                "SELECT id, created_at, updated_at FROM media_items "
                "WHERE source_id = ? AND library_id = ? AND provider_item_id = ?",
                (item.source_id, item.library_id, item.provider_item_id),
            ).fetchone()
            self._commit(conn)

        item.id = row["id"]
        item.created_at = datetime.fromisoformat(row["created_at"])
        item.updated_at = datetime.fromisoformat(row["updated_at"])
        return item.id

    def get_media_items(self, filter: Optional[MediaItemFilter] = None) -> List[MediaItem]:
        """List stored items matching a filter, ordered by row id."""
        clauses = []
        params = []
        if filter is not None:
            for column in ("source_id", "library_id", "media_type"):
                value = getattr(filter, column)
                if value is not None:
                    clauses.append(f"{column} = ?")
                    params.append(value)

        sql = "SELECT * FROM media_items"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY id"

        with self._get_connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_item(row) for row in rows]

    def get_media_item(self, item_id: int) -> Optional[MediaItem]:
        """Get one item by row id."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM media_items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def delete_media_item(self, item_id: int) -> None:
        """Delete one item by row id."""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM media_items WHERE id = ?", (item_id,))
            self._commit(conn)
        logger.debug("Media item deleted", item_id=item_id)

    def start_batch(self) -> None:
        """Defer commits until force_save() or end_batch()."""
        with self._lock:
            self._batch_depth += 1

    def end_batch(self) -> None:
        """Leave batch mode, committing when the outermost batch ends."""
        with self._lock:
            if self._batch_depth == 0:
                return
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self.force_save()

    def force_save(self) -> None:
        """Commit pending writes regardless of batch mode."""
        with self._get_connection() as conn:
            conn.commit()

    def update_source_scan_time(self, source_id: str, when: Optional[datetime] = None) -> None:
        """Record when a source was last scanned successfully."""
        stamp = (when or utcnow()).isoformat()
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO sources (source_id, last_scan_at) VALUES (?, ?) "
                "ON CONFLICT (source_id) DO UPDATE SET last_scan_at = excluded.last_scan_at",
                (source_id, stamp),
            )
            self._commit(conn)

    def get_source_scan_time(self, source_id: str) -> Optional[datetime]:
        """Last successful scan time of a source, if any."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT last_scan_at FROM sources WHERE source_id = ?", (source_id,)
            ).fetchone()
        if row is None or row["last_scan_at"] is None:
            return None
        return datetime.fromisoformat(row["last_scan_at"])

    def update_library_scan_time(
        self, source_id: str, library_id: str, when: Optional[datetime] = None
    ) -> None:
        """Record the start time of the last successful scan of one library.

        Incremental scans of the library fetch changes made after this time.
        """
        stamp = (when or utcnow()).isoformat()
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO library_scans (source_id, library_id, last_scan_at) VALUES (?, ?, ?) "
                "ON CONFLICT (source_id, library_id) DO UPDATE SET last_scan_at = excluded.last_scan_at",
                (source_id, library_id, stamp),
            )
            self._commit(conn)

    def get_library_scan_time(self, source_id: str, library_id: str) -> Optional[datetime]:
        """Start time of the last successful scan of a library, if any."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT last_scan_at FROM library_scans WHERE source_id = ? AND library_id = ?",
                (source_id, library_id),
            ).fetchone()
        if row is None:
            return None
        return datetime.fromisoformat(row["last_scan_at"])

    def close(self) -> None:
        """Commit and close the connection."""
        with self._lock:
            try:
                self._conn.commit()
                self._conn.close()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> MediaItem:
        data = {c: row[c] for c in _COLUMNS}
        data["has_object_audio"] = bool(data["has_object_audio"])
        return MediaItem(
            id=row["id"],
            audio_tracks=_decode_tracks(row["audio_tracks"]),
            versions=_decode_versions(row["versions"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            **data,
        )
