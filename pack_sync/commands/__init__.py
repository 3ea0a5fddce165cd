"""CLI command implementations for pack-sync."""
