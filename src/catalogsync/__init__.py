"""catalogsync - media catalog synchronization and quality normalization."""

__version__ = "0.1.0"
