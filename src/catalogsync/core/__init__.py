"""Scan engine: normalization, bitrate reconciliation, audio selection, versions, store and orchestration."""
