"""Mirror sources: reference blogs for a co-installed subscription service.

A mirror blog stores only the foreign feed's id and channel. Its items are
never fetched or copied; they are read from the foreign items collection
when requested (see ``blogroll.storage.item_sources``).
"""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from blogroll.errors import AdapterUnavailable
from blogroll.log_system import UnifiedLogger
from blogroll.models import BlogStatus, Provenance, SyncResult
from blogroll.models.timestamps import now_timestamp
from blogroll.storage.blogs import get_blog_by_feed_url, mark_orphaned_mirror_blogs, upsert_blog
from blogroll.storage.database import BLOGS
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.mirror import MirrorStore
from blogroll.sync.context import SyncContext


logger = UnifiedLogger.get_logger(__name__)

DEFAULT_WEBHOOK_CATEGORY = "Microsub"


def domain_of(url: str) -> str:
    """Host name without a leading ``www.``; the URL itself if it has none."""
    host = urlparse(url).hostname or ""
    return re.sub(r"^www\.", "", host) or url


def site_url_of(feed_url: str) -> str:
    parsed = urlparse(feed_url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}"
    return ""


def _reference_blog(source: Dict[str, Any], channel: Dict[str, Any], feed: Dict[str, Any]) -> Dict[str, Any]:
    channel_name = channel.get("name") or ""
    return {
        "title": feed.get("title") or domain_of(feed["url"]),
        "feed_url": feed["url"],
        "site_url": site_url_of(feed["url"]),
        "feed_type": "rss",
        "category": f"{source.get('category_prefix') or ''}{channel_name}",
        "source_id": source["_id"],
        "provenance": Provenance.MIRROR,
        "mirror_feed_id": str(feed["_id"]),
        "mirror_channel_id": str(channel["_id"]),
        "mirror_channel_name": channel_name,
        "status": BlogStatus.ERROR if feed.get("status") == "error" else BlogStatus.ACTIVE,
        "last_fetch_at": feed.get("last_fetched_at"),
        "photo": feed.get("photo"),
        "skip_item_fetch": True,
    }


async def sync_mirror_source(context: SyncContext, source: Dict[str, Any]) -> SyncResult:
    """Mirror the foreign service's subscriptions as reference blogs.

    Blogs of this source whose foreign feed no longer exists are
    soft-deleted. With no matching channels nothing is changed.

    Raises:
        AdapterUnavailable: If the foreign collections are missing
    """
    mirror = context.mirror
    if mirror is None:
        raise AdapterUnavailable("No mirror store configured")
    await mirror.require()

    channels = await mirror.get_channels(source.get("channel_filter"))
    if not channels:
        logger.info("No mirror channels found")
        return SyncResult(success=True)

    result = SyncResult(success=True)
    current_feed_ids: List[str] = []

    for channel in channels:
        for feed in await mirror.get_feeds(channel["_id"]):
            if not feed.get("url"):
                continue
            result.total += 1
            current_feed_ids.append(str(feed["_id"]))

            outcome = await upsert_blog(context.store, _reference_blog(source, channel, feed))
            if outcome.skipped:
                result.skipped += 1
            elif outcome.upserted:
                result.added += 1
            elif outcome.modified:
                result.updated += 1

    result.orphaned = await mark_orphaned_mirror_blogs(context.store, source["_id"], current_feed_ids)

    logger.info(
        f"Synced mirror source \"{source.get('name')}\": {result.added} added, "
        f"{result.updated} updated, {result.orphaned} orphaned, {result.total} total "
        f"from {len(channels)} channels"
    )
    return result


async def handle_subscription_event(store: DocumentStore, event: Dict[str, Any]) -> Dict[str, Any]:
    """Apply a subscribe/unsubscribe notification from the foreign service.

    Args:
        store: Document store
        event: ``{action, url, group_name, title}``

    Returns:
        ``{ok, action, reason?}`` or ``{ok: False, error}``
    """
    action = event.get("action")
    url = event.get("url")

    if action not in ("subscribe", "unsubscribe"):
        return {"ok": False, "error": f"Unknown action: {action}"}
    if not url:
        return {"ok": False, "error": "url is required"}

    existing = await get_blog_by_feed_url(store, url)

    if action == "subscribe":
        if existing:
            reason = "already_exists" if Provenance.is_mirror(existing.get("provenance")) else "manual_entry"
            logger.info(f"Subscription event for {url} skipped: {reason}")
            return {"ok": True, "action": "skipped", "reason": reason}

        outcome = await upsert_blog(
            store,
            {
                "title": event.get("title") or domain_of(url),
                "feed_url": url,
                "site_url": site_url_of(url),
                "feed_type": "rss",
                "category": event.get("group_name") or DEFAULT_WEBHOOK_CATEGORY,
                "provenance": Provenance.MIRROR_WEBHOOK,
                "status": BlogStatus.PENDING,
            },
        )
        if outcome.skipped_deleted:
            return {"ok": True, "action": "skipped", "reason": "deleted"}

        logger.info(f"Subscription event: added {url}")
        return {"ok": True, "action": "added", "blog_id": outcome.blog_id}

    if existing and Provenance.is_mirror(existing.get("provenance")):
        now = now_timestamp()
        await store[BLOGS].update_one(
            {"_id": existing["_id"]},
            {"status": BlogStatus.INACTIVE, "unsubscribed_at": now, "updated_at": now},
        )
        logger.info(f"Subscription event: marked {url} inactive")
        return {"ok": True, "action": "deactivated"}

    return {"ok": True, "action": "skipped", "reason": "not_found_or_not_mirror"}


async def list_mirror_channels(mirror: Optional[MirrorStore]) -> List[Dict[str, Any]]:
    """Channels of the foreign service, or an empty list when it is absent."""
    if mirror is None or not await mirror.is_available():
        return []
    channels = await mirror.get_channels()
    return [
        {"uid": channel.get("uid"), "name": channel.get("name"), "_id": str(channel["_id"])}
        for channel in channels
    ]


async def is_mirror_available(mirror: Optional[MirrorStore]) -> bool:
    return mirror is not None and await mirror.is_available()
