"""Data models: provider metadata, canonical items and scan bookkeeping."""
