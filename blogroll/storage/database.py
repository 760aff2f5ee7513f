"""Database access for blogroll.

Provides the process-wide DocumentStore and creates the collections and
indexes the sync engine relies on.
Database location: ~/.blogroll/blogroll.db (or BLOGROLL_DB_PATH env var)
"""

import os
from pathlib import Path
from typing import Optional

from blogroll.config import get_config
from blogroll.storage.document_store import DocumentStore


BLOGS = "blogs"
ITEMS = "items"
SOURCES = "sources"
META = "meta"


def _get_db_path() -> Path:
    """Get the database path, respecting BLOGROLL_DB_PATH env var for testing."""
    env_path = os.environ.get("BLOGROLL_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path(get_config().db_path).expanduser()


# Singleton store
_store: Optional[DocumentStore] = None


async def get_database() -> DocumentStore:
    """Get or create the singleton document store.

    Returns:
        Open, initialized DocumentStore
    """
    global _store

    if _store is None:
        _store = await DocumentStore.open(_get_db_path())
        await init_database(_store)

    return _store


async def init_database(store: Optional[DocumentStore] = None) -> None:
    """Create collections and indexes if they don't exist.

    Args:
        store: Optional store (uses singleton if not provided)
    """
    if store is None:
        store = await get_database()

    for name in (SOURCES, BLOGS, ITEMS, META):
        await store.ensure_collection(name)

    await store.create_index(BLOGS, ["feed_url"])
    await store.create_index(BLOGS, ["source_id"])
    await store.create_index(ITEMS, ["blog_id", "uid"])
    await store.create_index(ITEMS, ["published"])
    await store.create_index(META, ["key"])


async def close_database() -> None:
    """Close the singleton store, if open."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None
