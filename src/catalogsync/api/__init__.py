"""HTTP API for the catalogsync daemon."""
