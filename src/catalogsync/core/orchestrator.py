"""Scan orchestration: fetch, build, persist, prune."""

import asyncio
import dataclasses
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Sequence

from catalogsync.config import ScanConfig
from catalogsync.core.analyzer import FileAnalyzer
from catalogsync.core.bitrate import BitrateReconciler, is_estimated_bitrate
from catalogsync.core.builder import MediaItemBuilder
from catalogsync.core.store import MediaItemFilter, Store, utcnow
from catalogsync.exceptions import AdapterError, AnalysisError, StoreError
from catalogsync.models.media import (
    ItemPage,
    MediaItem,
    Pagination,
    ScanOptions,
    ScanProgress,
    ScanResult,
)
from catalogsync.models.metadata import MediaMetadata
from catalogsync.providers.base import ProviderAdapter
from catalogsync.utils.logger import get_logger
from catalogsync.utils.path_mapper import PathMapper

logger = get_logger(__name__)

PHASE_FETCHING = "fetching"
PHASE_PROCESSING = "processing"
PHASE_RECONCILING = "reconciling"


class CancellationToken:
    """Cooperative cancellation flag passed into a scan.

    The scan polls it between pages and between items; an in-flight
    request is never interrupted.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class SyncOrchestrator:
    """Drive library scans end to end.

    Collaborators are injected so tests can substitute fakes. The
    orchestrator holds no per-scan state; concurrent scans of different
    sources may share one instance.
    """

    def __init__(
        self,
        store: Store,
        builder: Optional[MediaItemBuilder] = None,
        scan_config: Optional[ScanConfig] = None,
        analyzer: Optional[FileAnalyzer] = None,
        path_mapper: Optional[PathMapper] = None,
    ):
        """Initialize orchestrator.

        Args:
            store: Persistence collaborator
            builder: Per-item pipeline (defaults built from scan_config)
            scan_config: Checkpoint interval and bitrate heuristics
            analyzer: Optional ffprobe analyzer for bitrate refinement
            path_mapper: Maps server paths to local ones for the analyzer
        """
        self.store = store
        self.config = scan_config or ScanConfig()
        if builder is None:
            builder = MediaItemBuilder(
                reconciler=BitrateReconciler(
                    audio_cap_ratio=self.config.audio_cap_ratio,
                    container_overhead_ratio=self.config.container_overhead_ratio,
                    video_share_ratio=self.config.video_share_ratio,
                )
            )
        self.builder = builder
        self.analyzer = analyzer
        self.path_mapper = path_mapper or PathMapper([])

    async def scan(
        self,
        adapter: ProviderAdapter,
        library_id: str,
        options: Optional[ScanOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ScanResult:
        """Scan one library of a source.

        Incremental when ``options.since`` is set and ``force_full_scan`` is
        not; only full scans prune records missing from the fetched set.
        Never raises: failures are reported in the returned ScanResult.

        Args:
            adapter: Source to read from
            library_id: Library to scan
            options: Progress callback, since timestamp, force-full flag
            cancel_token: Cooperative cancellation flag

        Returns:
            ScanResult for this library
        """
        options = options or ScanOptions()
        token = cancel_token or CancellationToken()
        incremental = options.incremental
        started = time.monotonic()
        # Changes made while this scan runs are picked up by the next one
        scan_started_at = utcnow()
        result = ScanResult()
        log = logger.bind(source_id=adapter.source_id, library_id=library_id)

        log.info(
            "Starting library scan",
            mode="incremental" if incremental else "full",
            since=options.since.isoformat() if incremental else None,
        )

        try:
            items = await self._fetch_all(adapter, library_id, options, token)
            if items is None:
                result.cancelled = True
                log.info("Scan cancelled while fetching")
                return result

            if incremental and not adapter.supports_modified_since:
                since = _as_utc(options.since)
                before = len(items)
                items = [
                    m for m in items if m.modified_at is None or _as_utc(m.modified_at) > since
                ]
                log.debug("Filtered unchanged items", fetched=before, changed=len(items))

            try:
                await adapter.resolve_parents(items)
            except AdapterError as e:
                log.warning("Parent metadata unavailable, continuing without it", error=str(e))

            seen = await self._process(adapter, library_id, items, options, token, result, log)

            if result.cancelled:
                log.info("Scan cancelled", items_scanned=result.items_scanned)
                return result

            if not incremental:
                result.items_removed = self._prune(
                    adapter.source_id, library_id, seen, log, options
                )

            self.store.update_library_scan_time(adapter.source_id, library_id, scan_started_at)
            self.store.update_source_scan_time(adapter.source_id)
            result.success = True

        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Scan failed", error=str(e), exc_info=True)
            result.errors.append(str(e))
            result.success = False
        finally:
            result.duration_ms = _elapsed_ms(started)

        log.info(
            "Library scan complete",
            scanned=result.items_scanned,
            added=result.items_added,
            updated=result.items_updated,
            removed=result.items_removed,
            errors=len(result.errors),
            duration_ms=result.duration_ms,
        )
        return result

    async def scan_source(
        self,
        adapter: ProviderAdapter,
        options: Optional[ScanOptions] = None,
        cancel_token: Optional[CancellationToken] = None,
        library_ids: Optional[Sequence[str]] = None,
        incremental: bool = False,
    ) -> ScanResult:
        """Scan every (or the given) library of a source.

        With ``incremental`` each library resumes from its own last
        successful scan time, and a library never scanned before gets a
        full scan; ``options.since`` is ignored then. A failed library
        does not stop the others. Never raises.
        """
        options = options or ScanOptions()
        token = cancel_token or CancellationToken()
        started = time.monotonic()
        combined = ScanResult(success=True)

        if library_ids is None:
            try:
                library_ids = [lib.id for lib in await adapter.get_libraries()]
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Failed to list libraries", source_id=adapter.source_id, error=str(e))
                return ScanResult(
                    success=False, errors=[str(e)], duration_ms=_elapsed_ms(started)
                )

        for library_id in library_ids:
            if token.cancelled:
                combined.cancelled = True
                break
            library_options = options
            if incremental:
                try:
                    since = self.store.get_library_scan_time(adapter.source_id, library_id)
                except StoreError as e:
                    logger.error(
                        "Cannot read library scan time",
                        source_id=adapter.source_id,
                        library_id=library_id,
                        error=str(e),
                    )
                    combined.merge(ScanResult(errors=[str(e)]))
                    continue
                library_options = dataclasses.replace(options, since=since)
            combined.merge(await self.scan(adapter, library_id, library_options, token))
            if combined.cancelled:
                break

        if combined.cancelled:
            combined.success = False
        combined.duration_ms = _elapsed_ms(started)
        return combined

    async def _fetch_all(
        self,
        adapter: ProviderAdapter,
        library_id: str,
        options: ScanOptions,
        token: CancellationToken,
    ) -> Optional[list[MediaMetadata]]:
        """Page through a library. Returns None if cancelled."""
        since = options.since if options.incremental else None
        items: list[MediaMetadata] = []
        start = 0

        while True:
            if token.cancelled:
                return None

            page: ItemPage = await adapter.get_library_items(
                library_id, Pagination(start=start, limit=adapter.page_size), since
            )
            items.extend(page.items)
            logger.debug(
                "Fetched page",
                source_id=adapter.source_id,
                library_id=library_id,
                start=start,
                count=len(page.items),
                total=page.total,
            )
            self._emit(options, ScanProgress(len(items), max(page.total, len(items)), PHASE_FETCHING))

            if not page.has_more:
                return items
            start += page.consumed

    async def _process(
        self,
        adapter: ProviderAdapter,
        library_id: str,
        items: list[MediaMetadata],
        options: ScanOptions,
        token: CancellationToken,
        result: ScanResult,
        log,
    ) -> set[str]:
        """Build and upsert every item.

        Returns:
            Provider ids seen in this scan: stored items plus items that
            failed conversion, which are kept rather than pruned
        """
        seen: set[str] = set()
        known = {
            item.provider_item_id
            for item in self.store.get_media_items(
                MediaItemFilter(source_id=adapter.source_id, library_id=library_id)
            )
        }
        total = len(items)

        self.store.start_batch()
        try:
            for position, metadata in enumerate(items, start=1):
                if token.cancelled:
                    result.cancelled = True
                    break

                label = metadata.label
                try:
                    item = self.builder.build(
                        metadata, adapter.source_id, adapter.source_type, library_id
                    )
                    if item is not None:
                        await self._refine(item)
                        self.store.upsert_media_item(item)
                        seen.add(item.provider_item_id)

                        if item.provider_item_id in known:
                            result.items_updated += 1
                        else:
                            result.items_added += 1
                            known.add(item.provider_item_id)
                        result.items_scanned += 1

                        if result.items_scanned % self.config.checkpoint_interval == 0:
                            self.store.force_save()
                            log.debug("Checkpoint saved", items_scanned=result.items_scanned)
                except StoreError:
                    raise
                except Exception as e:
                    log.warning("Failed to process item", item=label, error=str(e))
                    result.errors.append(f"Failed to process {label}: {e}")
                    seen.add(str(metadata.item_id))

                self._emit(options, ScanProgress(position, total, PHASE_PROCESSING, label))
        finally:
            self.store.end_batch()

        return seen

    async def _refine(self, item: MediaItem) -> None:
        """Replace estimated bitrates with ffprobe measurements when the file is reachable."""
        if self.analyzer is None or not self.config.analyze_local_files:
            return
        if not any(is_estimated_bitrate(t.bitrate_kbps) for t in item.audio_tracks):
            return

        local_path = self.path_mapper.resolve_local(item.file_path)
        if local_path is None:
            return

        try:
            analysis = await asyncio.to_thread(self.analyzer.analyze, local_path)
        except AnalysisError as e:
            logger.debug("File analysis skipped", file=str(local_path), error=str(e))
            return

        self.builder.reconciler.refine(item, analysis)

    def _prune(
        self,
        source_id: str,
        library_id: str,
        seen: set[str],
        log,
        options: ScanOptions,
    ) -> int:
        """Delete stored items of the library that this full scan did not see."""
        stored = self.store.get_media_items(
            MediaItemFilter(source_id=source_id, library_id=library_id)
        )
        stale = [item for item in stored if item.provider_item_id not in seen]

        for position, item in enumerate(stale, start=1):
            self.store.delete_media_item(item.id)
            log.info("Removed stale item", provider_item_id=item.provider_item_id, title=item.title)
            self._emit(options, ScanProgress(position, len(stale), PHASE_RECONCILING, item.title))

        return len(stale)

    @staticmethod
    def _emit(options: ScanOptions, progress: ScanProgress) -> None:
        if options.on_progress is None:
            return
        try:
            options.on_progress(progress)
        except Exception as e:
            logger.warning("Progress callback failed", error=str(e))
