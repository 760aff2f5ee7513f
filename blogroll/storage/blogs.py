"""Blog storage operations.

Blogs are matched by feed URL. Operator deletion is a soft delete: the
document stays with status ``deleted`` so automated sync never recreates it.
"""

from typing import Any, Dict, Iterable, List, Optional

from blogroll.log_system import UnifiedLogger
from blogroll.models import BlogStatus, BlogUpsertResult, Provenance
from blogroll.models.timestamps import now_timestamp
from blogroll.storage.database import BLOGS
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.items import delete_items_for_blog


logger = UnifiedLogger.get_logger(__name__)

# Fields an automated sync may set; applied on every upsert when present.
_OPTIONAL_SYNC_FIELDS = {
    "provenance": None,
    "mirror_feed_id": None,
    "mirror_channel_id": None,
    "mirror_channel_name": None,
    "skip_item_fetch": False,
    "photo": None,
    "last_fetch_at": None,
    "status": BlogStatus.ACTIVE,
}

_VISIBLE = {"status": {"$ne": BlogStatus.DELETED}, "hidden": {"$ne": True}}


def _blog_query(
    category: Optional[str] = None,
    source_id: Optional[str] = None,
    include_hidden: bool = False,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {"status": {"$ne": BlogStatus.DELETED}}
    if not include_hidden:
        query["hidden"] = {"$ne": True}
    if category:
        query["category"] = category
    if source_id:
        query["source_id"] = source_id
    return query


async def get_blogs(
    store: DocumentStore,
    category: Optional[str] = None,
    source_id: Optional[str] = None,
    include_hidden: bool = False,
    limit: Optional[int] = 100,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    """List non-deleted blogs, pinned first, then by title."""
    return await store[BLOGS].find(
        _blog_query(category, source_id, include_hidden),
        sort=[("pinned", -1), ("title", 1)],
        limit=limit,
        skip=offset,
    )


async def get_blogs_for_sync(store: DocumentStore, limit: int, offset: int = 0) -> List[Dict[str, Any]]:
    """A page of visible blogs in insertion order."""
    return await store[BLOGS].find(_blog_query(), limit=limit, skip=offset)


async def count_blogs(
    store: DocumentStore, category: Optional[str] = None, include_hidden: bool = False
) -> int:
    return await store[BLOGS].count(_blog_query(category, include_hidden=include_hidden))


async def get_blog(store: DocumentStore, blog_id: str) -> Optional[Dict[str, Any]]:
    return await store[BLOGS].find_one({"_id": blog_id})


async def get_blog_by_feed_url(store: DocumentStore, feed_url: str) -> Optional[Dict[str, Any]]:
    """Get the non-deleted blog owning ``feed_url``, if any."""
    return await store[BLOGS].find_one({"feed_url": feed_url, "status": {"$ne": BlogStatus.DELETED}})


async def create_blog(store: DocumentStore, data: Dict[str, Any]) -> Dict[str, Any]:
    """Add a blog by hand.

    Args:
        store: Document store
        data: Blog fields; ``title`` and ``feed_url`` are required

    Returns:
        The created blog document

    Raises:
        ValueError: If a non-deleted blog already owns the feed URL
    """
    if await get_blog_by_feed_url(store, data["feed_url"]):
        raise ValueError(f"Blog with feed URL '{data['feed_url']}' already exists")

    now = now_timestamp()
    blog = {
        "source_id": data.get("source_id"),
        "title": data["title"],
        "description": data.get("description"),
        "feed_url": data["feed_url"],
        "site_url": data.get("site_url"),
        "feed_type": data.get("feed_type") or "rss",
        "category": data.get("category") or "",
        "tags": data.get("tags") or [],
        "photo": data.get("photo"),
        "author": data.get("author"),
        "status": BlogStatus.ACTIVE,
        "last_fetch_at": None,
        "last_error": None,
        "item_count": 0,
        "pinned": bool(data.get("pinned", False)),
        "hidden": bool(data.get("hidden", False)),
        "notes": data.get("notes"),
        "provenance": None,
        "mirror_feed_id": None,
        "mirror_channel_id": None,
        "mirror_channel_name": None,
        "skip_item_fetch": False,
        "created_at": now,
        "updated_at": now,
    }
    blog["_id"] = await store[BLOGS].insert_one(blog)
    return blog


async def upsert_blog(store: DocumentStore, data: Dict[str, Any]) -> BlogUpsertResult:
    """Insert or refresh a blog coming from an automated source.

    A blog whose feed URL was soft-deleted is never touched. A blog owned by
    another source or added by hand is never overwritten; an unowned blog
    created by an automated path (e.g. a webhook) is claimed by the source.

    Sync fields (title, site URL, feed type, category, source) overwrite on
    every call; operator fields (description, tags, notes, pinned, hidden,
    counters) are only written when the blog is first inserted.

    The whole check-then-write runs under the store's ``reconcile_lock`` so
    concurrent sources listing the same feed URL resolve to one blog.
    """
    async with store.reconcile_lock:
        return await _upsert_blog(store, data)


async def _upsert_blog(store: DocumentStore, data: Dict[str, Any]) -> BlogUpsertResult:
    blogs = store[BLOGS]
    feed_url = data["feed_url"]
    source_id = data.get("source_id")

    if await blogs.find_one({"feed_url": feed_url, "status": BlogStatus.DELETED}):
        return BlogUpsertResult(skipped_deleted=True)

    match: Dict[str, Any] = {"feed_url": feed_url}
    if source_id:
        match["source_id"] = source_id

    existing = await blogs.find_one(match)
    if existing is None:
        owner = await get_blog_by_feed_url(store, feed_url)
        if owner is not None:
            if owner.get("source_id") is None and owner.get("provenance") is not None:
                match = {"_id": owner["_id"]}
            else:
                return BlogUpsertResult(skipped_duplicate=True, blog_id=owner["_id"])
    elif not source_id and existing.get("provenance") is None and data.get("provenance"):
        return BlogUpsertResult(skipped_duplicate=True, blog_id=existing["_id"])

    now = now_timestamp()
    set_fields = {
        "title": data.get("title"),
        "feed_url": feed_url,
        "site_url": data.get("site_url"),
        "feed_type": data.get("feed_type") or "rss",
        "category": data.get("category") or "",
        "source_id": source_id or None,
        "updated_at": now,
    }
    for key in _OPTIONAL_SYNC_FIELDS:
        if key in data:
            set_fields[key] = data[key]

    insert_defaults = {
        "description": None,
        "tags": [],
        "author": None,
        "last_error": None,
        "item_count": 0,
        "pinned": False,
        "hidden": False,
        "notes": None,
        "created_at": now,
    }
    for key, default in _OPTIONAL_SYNC_FIELDS.items():
        if key not in set_fields:
            insert_defaults[key] = default

    result = await blogs.update_one(match, set_fields, insert_defaults, upsert=True)
    return BlogUpsertResult(
        upserted=result.upserted_id is not None,
        modified=result.modified_count > 0,
        blog_id=result.upserted_id or (existing or {}).get("_id") or match.get("_id"),
    )


async def update_blog(store: DocumentStore, blog_id: str, data: Dict[str, Any]) -> bool:
    """Apply an operator edit. Identity and timestamps cannot be changed."""
    update = {k: v for k, v in data.items() if k not in ("_id", "created_at")}
    update["updated_at"] = now_timestamp()
    result = await store[BLOGS].update_one({"_id": blog_id}, update)
    return result.matched_count > 0


async def update_blog_status(
    store: DocumentStore,
    blog_id: str,
    success: bool,
    error: Optional[str] = None,
    item_count: Optional[int] = None,
    title: Optional[str] = None,
    photo: Optional[str] = None,
    site_url: Optional[str] = None,
) -> None:
    """Record the outcome of fetching a blog's feed."""
    now = now_timestamp()
    update: Dict[str, Any] = {"updated_at": now}

    if success:
        update.update(status=BlogStatus.ACTIVE, last_fetch_at=now, last_error=None)
        if item_count is not None:
            update["item_count"] = item_count
        if title:
            update["title"] = title
        if photo:
            update["photo"] = photo
        if site_url:
            update["site_url"] = site_url
    else:
        update.update(status=BlogStatus.ERROR, last_error=error)

    await store[BLOGS].update_one({"_id": blog_id}, update)


async def delete_blog(store: DocumentStore, blog_id: str) -> bool:
    """Soft-delete a blog and remove its items.

    Returns:
        True if the blog was marked deleted
    """
    await delete_items_for_blog(store, blog_id)

    now = now_timestamp()
    result = await store[BLOGS].update_one(
        {"_id": blog_id},
        {"status": BlogStatus.DELETED, "hidden": True, "deleted_at": now, "updated_at": now},
    )
    return result.modified_count > 0


async def get_categories(store: DocumentStore) -> List[Dict[str, Any]]:
    """Non-empty categories of visible blogs with their blog counts, by name."""
    query = dict(_VISIBLE, category={"$ne": ""})
    rows = await store[BLOGS].distinct_counts("category", query)
    return [{"category": name, "count": count} for name, count in rows if name]


async def mark_orphaned_mirror_blogs(
    store: DocumentStore, source_id: str, current_feed_ids: Iterable[str]
) -> int:
    """Soft-delete mirror blogs of ``source_id`` whose foreign feed is gone.

    Returns:
        Number of blogs marked deleted
    """
    now = now_timestamp()
    result = await store[BLOGS].update_many(
        {
            "provenance": Provenance.MIRROR,
            "source_id": source_id,
            "mirror_feed_id": {"$nin": list(current_feed_ids)},
            "status": {"$ne": BlogStatus.DELETED},
        },
        {"status": BlogStatus.DELETED, "hidden": True, "deleted_at": now, "updated_at": now},
    )
    if result.modified_count:
        logger.info(f"Soft-deleted {result.modified_count} orphaned mirror blog(s)")
    return result.modified_count


async def reset_blogs_for_resync(store: DocumentStore) -> int:
    """Reset counters and status of every non-deleted blog."""
    result = await store[BLOGS].update_many(
        {"status": {"$ne": BlogStatus.DELETED}},
        {"item_count": 0, "last_fetch_at": None, "status": BlogStatus.ACTIVE, "last_error": None},
    )
    return result.modified_count
