"""Shared helpers: logging, path mapping, language codes, filename parsing."""
