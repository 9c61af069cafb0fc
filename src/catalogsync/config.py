"""Configuration management for catalogsync."""

import os
import re
from pathlib import Path
from typing import Any, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

SourceType = Literal["plex", "jellyfin", "emby", "kodi", "local"]


class LocalLibraryConfig(BaseModel):
    """Explicit library definition for a local folder source."""

    name: str = Field(..., description="Library display name")
    path: str = Field(..., description="Folder to scan for this library")
    media_type: Literal["movies", "tvshows"] = Field(
        default="movies", description="Kind of content in the folder"
    )


class SourceConfig(BaseModel):
    """A single media source (remote server or local folder)."""

    source_id: str = Field(..., description="Stable identifier for this source")
    source_type: SourceType = Field(..., description="Kind of source")
    display_name: str = Field(default="", description="Human-readable name")
    enabled: bool = Field(default=True, description="Include in scan-all runs")

    # Plex / Jellyfin / Emby
    server_url: Optional[str] = Field(default=None, description="Base URL of the server")
    token: Optional[str] = Field(default=None, description="Access token")
    api_key: Optional[str] = Field(default=None, description="API key (Jellyfin/Emby)")
    user_id: Optional[str] = Field(default=None, description="User id (Jellyfin/Emby)")

    # Kodi JSON-RPC
    host: Optional[str] = Field(default=None, description="Kodi host")
    port: int = Field(default=8080, description="Kodi JSON-RPC port")
    username: Optional[str] = Field(default=None, description="Kodi web username")
    password: Optional[str] = Field(default=None, description="Kodi web password")

    # Local folder
    folder_path: Optional[str] = Field(default=None, description="Root folder to scan")
    libraries: List[LocalLibraryConfig] = Field(
        default_factory=list, description="Custom local libraries"
    )

    @model_validator(mode="after")
    def validate_connection(self) -> "SourceConfig":
        """Validate that the fields the source type needs are present."""
        if self.source_type in ("plex", "jellyfin", "emby") and not self.server_url:
            raise ValueError(f"server_url required for {self.source_type} source")
        if self.source_type == "plex" and not self.token:
            raise ValueError("token required for plex source")
        if self.source_type in ("jellyfin", "emby") and not (self.token or self.api_key):
            raise ValueError(f"token or api_key required for {self.source_type} source")
        if self.source_type == "kodi" and not self.host:
            raise ValueError("host required for kodi source")
        if self.source_type == "local" and not (self.folder_path or self.libraries):
            raise ValueError("folder_path or libraries required for local source")
        if not self.display_name:
            self.display_name = self.source_id
        return self


class PathMapping(BaseModel):
    """Path mapping from a remote server's view of a file to the local filesystem."""

    remote: str = Field(..., description="Path prefix as reported by the server")
    local: str = Field(..., description="Same location on this machine")


class ScanConfig(BaseModel):
    """Scan engine tuning.

    The bitrate ratios are empirical heuristics, not physical limits.
    """

    checkpoint_interval: int = Field(
        default=50, ge=1, description="Force a store save every N scanned items"
    )
    page_size: int = Field(default=100, ge=1, description="Items per adapter page")
    parent_batch_size: int = Field(
        default=50, ge=1, description="Parent ids per batch metadata request"
    )
    audio_cap_ratio: float = Field(
        default=0.30, gt=0, le=1, description="Max share of total bitrate given to audio"
    )
    container_overhead_ratio: float = Field(
        default=0.05, ge=0, lt=1, description="Share of (total - video) kept for overhead"
    )
    video_share_ratio: float = Field(
        default=0.90, gt=0, lt=1, description="Provisional video share of total when video is unreported"
    )
    analyze_local_files: bool = Field(
        default=False, description="Refine estimated bitrates with ffprobe when reachable"
    )
    analysis_timeout_seconds: int = Field(default=30, ge=1, description="ffprobe timeout")
    poll_interval_minutes: int = Field(
        default=0, ge=0, description="Daemon incremental scan interval (0 disables polling)"
    )


class StoreConfig(BaseModel):
    """Persistent store configuration."""

    db_path: str = Field(default="/config/catalogsync.db", description="SQLite database path")


class APIConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=9494, description="API port")


class HTTPConfig(BaseModel):
    """Outbound HTTP configuration for remote adapters."""

    timeout_seconds: float = Field(default=10.0, gt=0, description="Request timeout")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per request")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    format: str = Field(default="json", description="Log format (json or text)")
    level: str = Field(default="info", description="Log level")
    output: str = Field(default="/logs/catalogsync.log", description="Log output path")

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        if v.lower() not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError("Invalid log level")
        return v.lower()


class Config(BaseModel):
    """Main configuration model."""

    sources: List[SourceConfig] = Field(default_factory=list, description="Media sources")
    scan: ScanConfig = Field(default_factory=ScanConfig, description="Scan engine tuning")
    store: StoreConfig = Field(default_factory=StoreConfig, description="Store configuration")
    path_mappings: List[PathMapping] = Field(
        default_factory=list, description="Remote to local path mappings"
    )
    api: APIConfig = Field(default_factory=APIConfig, description="API configuration")
    http: HTTPConfig = Field(default_factory=HTTPConfig, description="Outbound HTTP")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @field_validator("sources")
    @classmethod
    def validate_unique_sources(cls, v: List[SourceConfig]) -> List[SourceConfig]:
        """Source ids must be unique."""
        seen = set()
        for source in v:
            if source.source_id in seen:
                raise ValueError(f"Duplicate source_id: {source.source_id}")
            seen.add(source.source_id)
        return v

    def get_source(self, source_id: str) -> Optional[SourceConfig]:
        """Look up a configured source by id."""
        for source in self.sources:
            if source.source_id == source_id:
                return source
        return None

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        raw_config = cls._substitute_env_vars(raw_config)

        return cls(**raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """Recursively replace ${VAR_NAME} with os.environ['VAR_NAME']."""
        if isinstance(obj, dict):
            return {key: Config._substitute_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [Config._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            pattern = r"\$\{([^}]+)\}"

            def replace_var(match):
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable '{var_name}' not found "
                        f"(referenced in configuration)"
                    )
                return value

            return re.sub(pattern, replace_var, obj)
        else:
            return obj

    @classmethod
    def from_defaults(cls) -> "Config":
        """Create configuration with default values."""
        return cls()


def load_config(path: Optional[str | Path] = None) -> Config:
    """Load configuration from file or use defaults.

    Args:
        path: Optional path to configuration file. If None, uses defaults.

    Returns:
        Config instance
    """
    if path is None:
        return Config.from_defaults()

    return Config.from_yaml(path)
