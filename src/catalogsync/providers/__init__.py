"""Provider adapters for media servers and local folders."""

from catalogsync.providers.base import ProviderAdapter
from catalogsync.providers.factory import create_adapter

__all__ = ["ProviderAdapter", "create_adapter"]
