"""HTTP API for Infosight."""
