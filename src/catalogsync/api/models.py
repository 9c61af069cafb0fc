"""Pydantic models for API requests and responses."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "degraded", "unhealthy"]
    version: str
    uptime_seconds: float
    running_scans: int
    checks: dict[str, bool] = Field(default_factory=dict)


class SourceResponse(BaseModel):
    """A configured source."""

    source_id: str
    source_type: str
    display_name: str
    enabled: bool
    last_scan_at: Optional[str] = None


class LibraryResponse(BaseModel):
    """A library exposed by a source."""

    id: str
    name: str
    media_type: str


class ScanRequest(BaseModel):
    """Request body for starting a scan."""

    library_ids: Optional[List[str]] = Field(
        default=None, description="Libraries to scan (default: all)"
    )
    incremental: bool = Field(
        default=False, description="Only fetch items changed since the last scan"
    )
    force_full_scan: bool = Field(
        default=False, description="Run a full, pruning scan even if incremental is set"
    )


class ScanResultResponse(BaseModel):
    """Outcome of a finished scan."""

    success: bool
    items_scanned: int
    items_added: int
    items_updated: int
    items_removed: int
    errors: List[str]
    duration_ms: int
    cancelled: bool


class ScanProgressResponse(BaseModel):
    """Latest progress snapshot of a running scan."""

    phase: str
    current: int
    total: int
    percentage: int
    current_item: Optional[str] = None


class ScanStatusResponse(BaseModel):
    """State of the latest scan of a source."""

    scan_id: str
    source_id: str
    status: Literal["running", "completed", "failed", "cancelled"]
    incremental: bool
    library_ids: Optional[List[str]] = None
    started_at: str
    finished_at: Optional[str] = None
    progress: Optional[ScanProgressResponse] = None
    result: Optional[ScanResultResponse] = None


class AudioTrackResponse(BaseModel):
    """One audio track of a stored item."""

    index: int
    codec: str
    channels: int
    bitrate_kbps: int
    language: Optional[str] = None
    title: Optional[str] = None
    has_object_audio: bool = False


class MediaItemResponse(BaseModel):
    """A stored canonical item (best version's quality fields)."""

    id: int
    source_id: str
    library_id: str
    provider_item_id: str
    media_type: str
    title: str
    year: Optional[int] = None
    series_title: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    resolution: str
    video_codec: str
    video_bitrate_kbps: int
    hdr_format: str
    audio_codec: Optional[str] = None
    audio_channels: Optional[int] = None
    audio_bitrate_kbps: Optional[int] = None
    has_object_audio: bool = False
    version_count: int
    audio_tracks: List[AudioTrackResponse] = Field(default_factory=list)
