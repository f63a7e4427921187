"""Infra layer utilities (SQLite connections and the listing store)."""

from .listing_store import SQLiteListingStore
from .storage import SQLiteManager

__all__ = ["SQLiteListingStore", "SQLiteManager"]
