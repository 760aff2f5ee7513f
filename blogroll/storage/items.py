"""Item storage operations for blogs whose items are fetched locally.

Items are keyed by ``(blog_id, uid)``. Mirror blogs own no local items; see
``blogroll.storage.item_sources`` for the combined read path.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from blogroll.log_system import UnifiedLogger
from blogroll.models import ItemUpsertResult
from blogroll.models.timestamps import days_ago, format_timestamp, now_timestamp, utcnow
from blogroll.storage.database import ITEMS
from blogroll.storage.document_store import DocumentStore


logger = UnifiedLogger.get_logger(__name__)

_MUTABLE_FIELDS = (
    "url",
    "title",
    "content",
    "summary",
    "published",
    "updated",
    "author",
    "photo",
)


async def upsert_item(store: DocumentStore, blog_id: str, item: Dict[str, Any]) -> ItemUpsertResult:
    """Insert or refresh one item of a blog.

    Args:
        store: Document store
        blog_id: Owning blog
        item: Normalized item document (must carry ``uid``)

    Returns:
        Whether the item was newly inserted or an existing one was changed
    """
    set_fields = {key: item.get(key) for key in _MUTABLE_FIELDS}
    set_fields["categories"] = item.get("categories") or []
    set_fields["fetched_at"] = now_timestamp()

    result = await store[ITEMS].update_one(
        {"blog_id": blog_id, "uid": item["uid"]},
        set_fields,
        set_on_insert={"blog_id": blog_id, "uid": item["uid"]},
        upsert=True,
    )
    return ItemUpsertResult(
        upserted=result.upserted_id is not None,
        modified=result.modified_count > 0,
    )


async def count_local_items(
    store: DocumentStore, blog_ids: Optional[List[str]] = None, since: Optional[str] = None
) -> int:
    query: Dict[str, Any] = {}
    if blog_ids is not None:
        query["blog_id"] = {"$in": blog_ids}
    if since:
        query["published"] = {"$gte": since}
    return await store[ITEMS].count(query)


async def delete_items_for_blog(store: DocumentStore, blog_id: str) -> int:
    return await store[ITEMS].delete_many({"blog_id": blog_id})


async def delete_all_items(store: DocumentStore) -> int:
    return await store[ITEMS].delete_many({})


async def delete_old_items(
    store: DocumentStore, max_age_days: float = 7, now: Optional[datetime] = None
) -> int:
    """Delete items beyond the retention window.

    An item is stale when ``published`` is strictly before ``now - max_age_days``;
    an item published exactly at the cutoff is kept. Items dated in the
    future are stale once they have not been re-fetched within the window.

    Returns:
        Number of items deleted
    """
    now = now or utcnow()
    cutoff = days_ago(max_age_days, now)

    deleted = await store[ITEMS].delete_many(
        {
            "$or": [
                {"published": {"$lt": cutoff}},
                {"published": {"$gt": format_timestamp(now)}, "fetched_at": {"$lt": cutoff}},
            ]
        }
    )
    if deleted:
        logger.info(f"Cleaned up {deleted} items older than {max_age_days:g} days")
    return deleted
