"""Daemon mode: HTTP API plus optional periodic incremental scans."""

import sys

import uvicorn

from catalogsync.api.app import create_app
from catalogsync.config import Config
from catalogsync.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def build_server(config: Config) -> uvicorn.Server:
    """Create the uvicorn server for the catalog API.

    uvicorn installs its own SIGINT/SIGTERM handlers; the app lifespan
    stops polling and cancels running scans on the way out.
    """
    server_config = uvicorn.Config(
        create_app(config),
        host=config.api.host,
        port=config.api.port,
        log_level=config.logging.level,
        access_log=False,  # RequestLoggingMiddleware logs requests
    )
    return uvicorn.Server(server_config)


def start_daemon(config: Config):
    """Start the daemon and block until it stops.

    Args:
        config: Application configuration
    """
    setup_logging(config.logging)

    enabled = [s.source_id for s in config.sources if s.enabled]
    logger.info(
        "Starting daemon",
        host=config.api.host,
        port=config.api.port,
        sources=enabled,
        poll_interval_minutes=config.scan.poll_interval_minutes or None,
    )
    if config.scan.poll_interval_minutes and not enabled:
        logger.warning("Polling enabled but no source is enabled")

    try:
        build_server(config).run()
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user")
    except Exception as e:
        logger.exception("Daemon error", error=str(e))
        sys.exit(1)
    finally:
        logger.info("Daemon stopped")
