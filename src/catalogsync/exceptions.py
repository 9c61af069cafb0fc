"""Exception hierarchy for catalogsync."""


class CatalogSyncError(Exception):
    """Base exception for catalogsync errors."""

    pass


class AdapterError(CatalogSyncError):
    """A provider adapter failed to talk to its source (network, protocol)."""

    pass


class AuthenticationError(AdapterError):
    """The source rejected our credentials."""

    pass


class ItemConversionError(CatalogSyncError):
    """A single catalog entry could not be converted to a canonical record."""

    pass


class StoreError(CatalogSyncError):
    """The persistent store failed to read or write."""

    pass


class AnalysisError(CatalogSyncError):
    """File analysis (ffprobe) failed for a file."""

    pass


class ScanInProgressError(CatalogSyncError):
    """A scan of the same source is already running."""

    pass
