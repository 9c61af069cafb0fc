"""API routes for sources, scans and stored items."""

import shutil
import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from catalogsync import __version__
from catalogsync.api.models import (
    AudioTrackResponse,
    HealthResponse,
    LibraryResponse,
    MediaItemResponse,
    ScanProgressResponse,
    ScanRequest,
    ScanResultResponse,
    ScanStatusResponse,
    SourceResponse,
)
from catalogsync.config import Config
from catalogsync.core.scan_manager import ScanManager, ScanState
from catalogsync.core.store import MediaItemFilter, Store
from catalogsync.exceptions import AdapterError, ScanInProgressError, StoreError
from catalogsync.models.media import MediaItem
from catalogsync.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()
api_router = APIRouter(prefix="/api/v1", tags=["catalog"])


def get_config() -> Config:
    """Dependency to get configuration from app state."""
    from catalogsync.api.app import get_app_state

    return get_app_state()["config"]


def get_store() -> Store:
    """Dependency to get the store from app state."""
    from catalogsync.api.app import get_app_state

    return get_app_state()["store"]


def get_scan_manager() -> ScanManager:
    """Dependency to get the scan manager from app state."""
    from catalogsync.api.app import get_app_state

    return get_app_state()["scan_manager"]


def _require_source(config: Config, source_id: str):
    source = config.get_source(source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Unknown source: {source_id}")
    return source


def _scan_status(state: ScanState) -> ScanStatusResponse:
    progress = None
    if state.progress is not None:
        progress = ScanProgressResponse(
            phase=state.progress.phase,
            current=state.progress.current,
            total=state.progress.total,
            percentage=state.progress.percentage,
            current_item=state.progress.current_item_label,
        )
    result = None
    if state.result is not None:
        r = state.result
        result = ScanResultResponse(
            success=r.success,
            items_scanned=r.items_scanned,
            items_added=r.items_added,
            items_updated=r.items_updated,
            items_removed=r.items_removed,
            errors=r.errors,
            duration_ms=r.duration_ms,
            cancelled=r.cancelled,
        )
    return ScanStatusResponse(
        scan_id=state.scan_id,
        source_id=state.source_id,
        status=state.status,
        incremental=state.incremental,
        library_ids=state.library_ids,
        started_at=state.started_at.isoformat(),
        finished_at=state.finished_at.isoformat() if state.finished_at else None,
        progress=progress,
        result=result,
    )


def _item_response(item: MediaItem) -> MediaItemResponse:
    return MediaItemResponse(
        id=item.id,
        source_id=item.source_id,
        library_id=item.library_id,
        provider_item_id=item.provider_item_id,
        media_type=item.media_type,
        title=item.title,
        year=item.year,
        series_title=item.series_title,
        season_number=item.season_number,
        episode_number=item.episode_number,
        resolution=item.resolution,
        video_codec=item.video_codec,
        video_bitrate_kbps=item.video_bitrate_kbps,
        hdr_format=item.hdr_format,
        audio_codec=item.audio_codec,
        audio_channels=item.audio_channels,
        audio_bitrate_kbps=item.audio_bitrate_kbps,
        has_object_audio=item.has_object_audio,
        version_count=len(item.versions),
        audio_tracks=[
            AudioTrackResponse(
                index=t.index,
                codec=t.codec,
                channels=t.channels,
                bitrate_kbps=t.bitrate_kbps,
                language=t.language,
                title=t.title,
                has_object_audio=t.has_object_audio,
            )
            for t in item.audio_tracks
        ],
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """Health check endpoint.

    Args:
        request: FastAPI request

    Returns:
        Health status
    """
    app_state = request.app.state.catalogsync
    uptime = time.time() - app_state.start_time

    checks = {
        "api": True,
        "ffprobe": shutil.which("ffprobe") is not None,
        "store": app_state.store is not None,
    }

    running = 0
    if app_state.scan_manager is not None:
        running = sum(1 for s in app_state.scan_manager.list_status() if s.is_running)

    return HealthResponse(
        status="healthy" if checks["store"] else "degraded",
        version=__version__,
        uptime_seconds=round(uptime, 2),
        running_scans=running,
        checks=checks,
    )


@api_router.get("/sources", response_model=List[SourceResponse])
async def list_sources(
    config: Config = Depends(get_config),
    store: Store = Depends(get_store),
):
    """List configured sources with their last successful scan time."""
    sources = []
    for source in config.sources:
        last_scan = store.get_source_scan_time(source.source_id)
        sources.append(
            SourceResponse(
                source_id=source.source_id,
                source_type=source.source_type,
                display_name=source.display_name,
                enabled=source.enabled,
                last_scan_at=last_scan.isoformat() if last_scan else None,
            )
        )
    return sources


@api_router.get("/sources/{source_id}/libraries", response_model=List[LibraryResponse])
async def list_libraries(
    source_id: str,
    config: Config = Depends(get_config),
    scan_manager: ScanManager = Depends(get_scan_manager),
):
    """Ask a source for its libraries."""
    source = _require_source(config, source_id)
    adapter = scan_manager.adapter_factory(source, config)
    try:
        libraries = await adapter.get_libraries()
    except AdapterError as e:
        logger.error("Failed to list libraries", source_id=source_id, error=str(e))
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        await adapter.close()

    return [LibraryResponse(id=lib.id, name=lib.name, media_type=lib.media_type) for lib in libraries]


@api_router.post(
    "/sources/{source_id}/scan",
    response_model=ScanStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_scan(
    source_id: str,
    request: Optional[ScanRequest] = None,
    config: Config = Depends(get_config),
    scan_manager: ScanManager = Depends(get_scan_manager),
):
    """Start a background scan of a source.

    Returns 409 if the source is already being scanned.
    """
    _require_source(config, source_id)
    request = request or ScanRequest()
    incremental = request.incremental and not request.force_full_scan

    try:
        state = await scan_manager.start_scan(
            source_id, library_ids=request.library_ids, incremental=incremental
        )
    except ScanInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(
        "Scan requested",
        source_id=source_id,
        scan_id=state.scan_id,
        incremental=incremental,
    )
    return _scan_status(state)


@api_router.get("/sources/{source_id}/scan", response_model=ScanStatusResponse)
async def get_scan_status(
    source_id: str,
    config: Config = Depends(get_config),
    scan_manager: ScanManager = Depends(get_scan_manager),
):
    """State of the latest scan of a source."""
    _require_source(config, source_id)
    state = scan_manager.get_status(source_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"No scan recorded for {source_id}")
    return _scan_status(state)


@api_router.delete("/sources/{source_id}/scan")
async def cancel_scan(
    source_id: str,
    config: Config = Depends(get_config),
    scan_manager: ScanManager = Depends(get_scan_manager),
):
    """Request cancellation of a running scan."""
    _require_source(config, source_id)
    if not scan_manager.cancel_scan(source_id):
        raise HTTPException(status_code=404, detail=f"No running scan for {source_id}")
    return {"status": "cancelling", "source_id": source_id}


@api_router.get("/items", response_model=List[MediaItemResponse])
async def list_items(
    source_id: Optional[str] = Query(default=None),
    library_id: Optional[str] = Query(default=None),
    media_type: Optional[str] = Query(default=None),
    store: Store = Depends(get_store),
):
    """List stored items, optionally filtered."""
    try:
        items = store.get_media_items(
            MediaItemFilter(source_id=source_id, library_id=library_id, media_type=media_type)
        )
    except StoreError as e:
        logger.error("Failed to read items", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    return [_item_response(item) for item in items]


@api_router.get("/items/{item_id}", response_model=MediaItemResponse)
async def get_item(item_id: int, store: Store = Depends(get_store)):
    """Get one stored item by id."""
    item = store.get_media_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Item {item_id} not found")
    return _item_response(item)
