"""Build ProviderAdapters from source configuration."""

from typing import Optional

from catalogsync.config import Config, SourceConfig
from catalogsync.core.analyzer import FileAnalyzer
from catalogsync.providers.base import ProviderAdapter
from catalogsync.providers.kodi import KodiAdapter
from catalogsync.providers.local import LocalFolderAdapter
from catalogsync.providers.media_server import EMBY_PROFILE, JELLYFIN_PROFILE, MediaServerAdapter
from catalogsync.providers.plex import PlexAdapter


def create_adapter(source: SourceConfig, config: Optional[Config] = None) -> ProviderAdapter:
    """Create the adapter for a configured source.

    Args:
        source: Source configuration
        config: Global configuration (page size, HTTP timeouts)

    Returns:
        A ProviderAdapter; callers close it when done

    Raises:
        ValueError: If the source type is not supported
    """
    config = config or Config()
    page_size = config.scan.page_size
    http = config.http

    if source.source_type == "plex":
        return PlexAdapter(
            source.source_id,
            source.server_url,
            source.token,
            page_size=page_size,
            timeout=http.timeout_seconds,
            retry_attempts=http.retry_attempts,
        )
    if source.source_type in ("jellyfin", "emby"):
        return MediaServerAdapter(
            source.source_id,
            source.server_url,
            JELLYFIN_PROFILE if source.source_type == "jellyfin" else EMBY_PROFILE,
            token=source.token,
            api_key=source.api_key,
            user_id=source.user_id,
            page_size=page_size,
            parent_batch_size=config.scan.parent_batch_size,
            timeout=http.timeout_seconds,
            retry_attempts=http.retry_attempts,
        )
    if source.source_type == "kodi":
        return KodiAdapter(
            source.source_id,
            source.host,
            port=source.port,
            username=source.username,
            password=source.password,
            page_size=page_size,
            timeout=http.timeout_seconds,
            retry_attempts=http.retry_attempts,
        )
    if source.source_type == "local":
        return LocalFolderAdapter(
            source.source_id,
            folder_path=source.folder_path,
            libraries=source.libraries,
            page_size=page_size,
            analyzer=FileAnalyzer(timeout=config.scan.analysis_timeout_seconds),
        )
    raise ValueError(f"Unsupported source type: {source.source_type}")
