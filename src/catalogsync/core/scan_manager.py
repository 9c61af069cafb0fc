"""Background scan management: one running scan per source."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence
from uuid import uuid4

from catalogsync.config import Config, SourceConfig
from catalogsync.core.analyzer import FileAnalyzer
from catalogsync.core.orchestrator import CancellationToken, SyncOrchestrator
from catalogsync.core.store import Store, utcnow
from catalogsync.exceptions import ScanInProgressError
from catalogsync.models.media import ScanOptions, ScanProgress, ScanResult
from catalogsync.providers.base import ProviderAdapter
from catalogsync.providers.factory import create_adapter
from catalogsync.utils.logger import get_logger
from catalogsync.utils.path_mapper import PathMapper

logger = get_logger(__name__)

AdapterFactory = Callable[[SourceConfig, Config], ProviderAdapter]


@dataclass
class ScanState:
    """Status of the latest scan of one source."""

    scan_id: str
    source_id: str
    incremental: bool
    library_ids: Optional[list[str]] = None
    status: str = "running"  # running, completed, failed, cancelled
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    progress: Optional[ScanProgress] = None
    result: Optional[ScanResult] = None

    @property
    def is_running(self) -> bool:
        return self.status == "running"


class ScanManager:
    """Runs source scans as asyncio tasks and tracks their state."""

    def __init__(
        self,
        config: Config,
        store: Store,
        orchestrator: Optional[SyncOrchestrator] = None,
        adapter_factory: AdapterFactory = create_adapter,
    ):
        """Initialize scan manager.

        Args:
            config: Application configuration
            store: Store shared by all scans
            orchestrator: Scan driver (defaults to one built from config)
            adapter_factory: Builds an adapter for a source
        """
        self.config = config
        self.store = store
        if orchestrator is None:
            analyzer = None
            if config.scan.analyze_local_files:
                analyzer = FileAnalyzer(timeout=config.scan.analysis_timeout_seconds)
            orchestrator = SyncOrchestrator(
                store,
                scan_config=config.scan,
                analyzer=analyzer,
                path_mapper=PathMapper(config.path_mappings),
            )
        self.orchestrator = orchestrator
        self.adapter_factory = adapter_factory
        self._states: dict[str, ScanState] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()

    def _source(self, source_id: str) -> SourceConfig:
        source = self.config.get_source(source_id)
        if source is None:
            raise KeyError(f"Unknown source: {source_id}")
        return source

    async def _begin(
        self, source_id: str, library_ids: Optional[Sequence[str]], incremental: bool
    ) -> tuple[ScanState, CancellationToken]:
        self._source(source_id)
        async with self._lock:
            current = self._states.get(source_id)
            if current is not None and current.is_running:
                raise ScanInProgressError(f"A scan of {source_id} is already running")
            state = ScanState(
                scan_id=f"scan_{uuid4().hex[:12]}",
                source_id=source_id,
                incremental=incremental,
                library_ids=list(library_ids) if library_ids else None,
            )
            token = CancellationToken()
            self._states[source_id] = state
            self._tokens[source_id] = token
        return state, token

    async def run_scan(
        self,
        source_id: str,
        library_ids: Optional[Sequence[str]] = None,
        incremental: bool = False,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
    ) -> ScanResult:
        """Scan a source and wait for the result.

        Incremental scans resume each library from its own last successful
        scan start; a library never scanned before gets a full scan.

        Raises:
            KeyError: If the source is not configured
            ScanInProgressError: If the source is already being scanned
        """
        state, token = await self._begin(source_id, library_ids, incremental)
        return await self._execute(state, token, on_progress)

    async def start_scan(
        self,
        source_id: str,
        library_ids: Optional[Sequence[str]] = None,
        incremental: bool = False,
    ) -> ScanState:
        """Start a scan in the background and return its initial state."""
        state, token = await self._begin(source_id, library_ids, incremental)
        self._tasks[source_id] = asyncio.create_task(
            self._execute(state, token), name=f"scan-{source_id}"
        )
        return state

    async def _execute(
        self,
        state: ScanState,
        token: CancellationToken,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
    ) -> ScanResult:
        source = self._source(state.source_id)

        def track(progress: ScanProgress) -> None:
            state.progress = progress
            if on_progress is not None:
                on_progress(progress)

        options = ScanOptions(on_progress=track)

        logger.info(
            "Scan started",
            scan_id=state.scan_id,
            source_id=source.source_id,
            source_type=source.source_type,
            incremental=state.incremental,
        )

        try:
            adapter = self.adapter_factory(source, self.config)
        except ValueError as e:
            logger.error("Cannot create adapter", source_id=source.source_id, error=str(e))
            state.status = "failed"
            state.finished_at = utcnow()
            state.result = ScanResult(success=False, errors=[str(e)])
            return state.result

        try:
            result = await self.orchestrator.scan_source(
                adapter,
                options,
                token,
                library_ids=state.library_ids,
                incremental=state.incremental,
            )
        except asyncio.CancelledError:
            state.status = "cancelled"
            state.result = ScanResult(cancelled=True)
            raise
        except Exception as e:
            state.status = "failed"
            state.result = ScanResult(success=False, errors=[str(e)])
            raise
        finally:
            state.finished_at = utcnow()
            self._tasks.pop(source.source_id, None)
            await self._close_adapter(adapter, source.source_id)

        state.result = result
        if result.cancelled:
            state.status = "cancelled"
        elif result.success:
            state.status = "completed"
        else:
            state.status = "failed"

        logger.info("Scan finished", scan_id=state.scan_id, source_id=source.source_id, result=str(result))
        return result

    @staticmethod
    async def _close_adapter(adapter: ProviderAdapter, source_id: str) -> None:
        try:
            await adapter.close()
        except Exception as e:
            logger.warning("Failed to close adapter", source_id=source_id, error=str(e))

    def cancel_scan(self, source_id: str) -> bool:
        """Request cancellation of a running scan. Returns False if none is running."""
        state = self._states.get(source_id)
        if state is None or not state.is_running:
            return False
        self._tokens[source_id].cancel()
        logger.info("Scan cancellation requested", source_id=source_id, scan_id=state.scan_id)
        return True

    def get_status(self, source_id: str) -> Optional[ScanState]:
        """State of the latest scan of a source, if any."""
        return self._states.get(source_id)

    def list_status(self) -> list[ScanState]:
        """States of the latest scan of every source scanned so far."""
        return list(self._states.values())

    async def scan_all(self, incremental: bool = False) -> dict[str, ScanResult]:
        """Scan every enabled source in turn. A failed source does not stop the rest."""
        results = {}
        for source in self.config.sources:
            if not source.enabled:
                logger.debug("Skipping disabled source", source_id=source.source_id)
                continue
            try:
                results[source.source_id] = await self.run_scan(
                    source.source_id, incremental=incremental
                )
            except ScanInProgressError as e:
                logger.warning("Skipping source", source_id=source.source_id, error=str(e))
                results[source.source_id] = ScanResult(success=False, errors=[str(e)])
        return results

    async def poll_once(self) -> dict[str, ScanResult]:
        """Incrementally scan every enabled source that is not already being scanned."""
        results = {}
        for source in self.config.sources:
            if not source.enabled:
                continue
            state = self._states.get(source.source_id)
            if state is not None and state.is_running:
                logger.debug("Poll skipped busy source", source_id=source.source_id)
                continue
            try:
                results[source.source_id] = await self.run_scan(source.source_id, incremental=True)
            except ScanInProgressError:
                logger.debug("Poll skipped busy source", source_id=source.source_id)
        return results

    def start_polling(self, interval_seconds: float) -> None:
        """Run poll_once every interval_seconds until shutdown."""
        if self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll(interval_seconds), name="scan-poller")
        logger.info("Polling started", interval_seconds=interval_seconds)

    async def _poll(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                results = await self.poll_once()
                logger.info(
                    "Poll complete",
                    sources=len(results),
                    failed=[s for s, r in results.items() if not r.success],
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Poll error", error=str(e), exc_info=True)

    async def shutdown(self) -> None:
        """Stop polling, cancel running scans and wait for them to stop."""
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None
        for source_id in list(self._tasks):
            self.cancel_scan(source_id)
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scan manager stopped", cancelled=len(tasks))
