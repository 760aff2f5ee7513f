"""Fetch one blog's feed and reconcile its items."""

from datetime import datetime
from typing import Any, Dict, Optional

from blogroll.config import SyncOptions
from blogroll.errors import BlogrollError
from blogroll.log_system import UnifiedLogger
from blogroll.models import SyncResult
from blogroll.models.timestamps import days_ago
from blogroll.services.feed_parser import fetch_and_parse_feed
from blogroll.storage.blogs import update_blog_status
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.items import count_local_items, upsert_item


logger = UnifiedLogger.get_logger(__name__)


async def sync_blog_items(
    store: DocumentStore,
    blog: Dict[str, Any],
    options: Optional[SyncOptions] = None,
    now: Optional[datetime] = None,
) -> SyncResult:
    """Fetch a blog's feed and upsert its items.

    Items already outside the retention window are not stored. A fetch or
    parse failure is recorded on the blog and returned as a failed result.
    """
    options = options or SyncOptions()

    try:
        feed = await fetch_and_parse_feed(
            blog["feed_url"], timeout=options.fetch_timeout, max_items=options.max_items_per_blog
        )
    except BlogrollError as e:
        logger.warning(f"Feed fetch failed for \"{blog.get('title')}\": {e}")
        await update_blog_status(store, blog["_id"], success=False, error=str(e))
        return SyncResult.failed(str(e))

    cutoff = days_ago(options.max_item_age, now)
    result = SyncResult(success=True, total=len(feed.items))

    for item in feed.items:
        if item.published < cutoff:
            result.skipped += 1
            continue
        outcome = await upsert_item(store, blog["_id"], item.to_document())
        if outcome.upserted:
            result.added += 1
        elif outcome.modified:
            result.updated += 1

    await update_blog_status(
        store,
        blog["_id"],
        success=True,
        item_count=await count_local_items(store, [blog["_id"]]),
        title=feed.title if feed.title and blog.get("title") in (None, "", blog["feed_url"]) else None,
        photo=feed.photo if not blog.get("photo") else None,
        site_url=feed.site_url if not blog.get("site_url") else None,
    )

    return result
