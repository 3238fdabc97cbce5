"""Metadata store implementations (SQLite via aiosqlite)."""

from src.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

__all__ = ["SQLiteMetadataStore"]
