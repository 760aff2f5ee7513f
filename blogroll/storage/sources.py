"""Source storage operations."""

from typing import Any, Dict, List, Optional

from blogroll.models import SourceKind
from blogroll.models.timestamps import now_timestamp
from blogroll.storage.database import BLOGS, ITEMS, SOURCES
from blogroll.storage.document_store import DocumentStore


async def get_sources(store: DocumentStore, enabled_only: bool = False) -> List[Dict[str, Any]]:
    """All sources ordered by name."""
    query = {"enabled": True} if enabled_only else {}
    return await store[SOURCES].find(query, sort=[("name", 1)])


async def get_source(store: DocumentStore, source_id: str) -> Optional[Dict[str, Any]]:
    return await store[SOURCES].find_one({"_id": source_id})


async def create_source(store: DocumentStore, data: Dict[str, Any]) -> Dict[str, Any]:
    """Create a source.

    Args:
        store: Document store
        data: Source fields; ``kind`` and ``name`` are required

    Returns:
        The created source document

    Raises:
        ValueError: If the kind is unknown or a required field is missing
    """
    try:
        kind = SourceKind(data.get("kind"))
    except ValueError as e:
        raise ValueError(f"Unknown source kind: {data.get('kind')!r}") from e

    if not data.get("name"):
        raise ValueError("Source name is required")
    if kind == SourceKind.LIST_URL and not data.get("url"):
        raise ValueError("A list_url source needs a url")
    if kind == SourceKind.LIST_INLINE and not data.get("inline_document"):
        raise ValueError("A list_inline source needs an inline_document")
    if kind == SourceKind.REMOTE_DIRECTORY and not (
        data.get("remote_instance") and data.get("remote_username")
    ):
        raise ValueError("A remote_directory source needs remote_instance and remote_username")

    now = now_timestamp()
    source = {
        "kind": kind.value,
        "name": data["name"],
        "url": data.get("url"),
        "inline_document": data.get("inline_document"),
        "channel_filter": data.get("channel_filter"),
        "category_prefix": data.get("category_prefix") or "",
        "remote_instance": data.get("remote_instance"),
        "remote_username": data.get("remote_username"),
        "remote_category": data.get("remote_category"),
        "enabled": data.get("enabled") is not False,
        "sync_interval": data.get("sync_interval") or 60,
        "last_sync_at": None,
        "last_sync_error": None,
        "created_at": now,
        "updated_at": now,
    }
    source["_id"] = await store[SOURCES].insert_one(source)
    return source


async def update_source_sync_status(
    store: DocumentStore, source_id: str, success: bool, error: Optional[str] = None
) -> None:
    """Record the outcome of a source sync.

    Success stamps ``last_sync_at`` and clears the error; failure keeps the
    last successful time and stores the error.
    """
    now = now_timestamp()
    update: Dict[str, Any] = {"updated_at": now}
    if success:
        update.update(last_sync_at=now, last_sync_error=None)
    else:
        update["last_sync_error"] = error
    await store[SOURCES].update_one({"_id": source_id}, update)


async def delete_source(store: DocumentStore, source_id: str) -> bool:
    """Delete a source together with its blogs and their items.

    Returns:
        True if the source existed
    """
    blogs = await store[BLOGS].find({"source_id": source_id})
    blog_ids = [blog["_id"] for blog in blogs]

    if blog_ids:
        await store[ITEMS].delete_many({"blog_id": {"$in": blog_ids}})
    await store[BLOGS].delete_many({"source_id": source_id})

    return await store[SOURCES].delete_one({"_id": source_id}) > 0
