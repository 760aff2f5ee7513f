"""Where a blog's items live.

Locally fetched blogs keep items in the ``items`` collection. Mirror blogs
only reference a foreign feed; their items are read from the mirrored
service at query time and mapped to the local item shape.
"""

from typing import Any, Dict, List, Optional

from blogroll.errors import NotFound
from blogroll.models import Provenance
from blogroll.models.timestamps import days_ago
from blogroll.storage.blogs import get_blog, get_blogs
from blogroll.storage.database import BLOGS, ITEMS
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.mirror import MirrorStore


# Items older than this are not counted in status figures.
COUNT_RETENTION_DAYS = 30

SUMMARY_LENGTH = 300


class ItemSource:
    """Read capability over one kind of item storage."""

    async def items_for_blogs(
        self, blogs: List[Dict[str, Any]], limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def count(self, blogs: List[Dict[str, Any]], since: Optional[str] = None) -> int:
        raise NotImplementedError

    async def items_for_blog(self, blog: Dict[str, Any], limit: Optional[int] = 20) -> List[Dict[str, Any]]:
        return await self.items_for_blogs([blog], limit)


class LocalItemSource(ItemSource):
    def __init__(self, store: DocumentStore):
        self.store = store

    async def items_for_blogs(self, blogs, limit=None):
        if not blogs:
            return []
        return await self.store[ITEMS].find(
            {"blog_id": {"$in": [blog["_id"] for blog in blogs]}},
            sort=[("published", -1)],
            limit=limit,
        )

    async def count(self, blogs, since=None):
        if not blogs:
            return 0
        query: Dict[str, Any] = {"blog_id": {"$in": [blog["_id"] for blog in blogs]}}
        if since:
            query["published"] = {"$gte": since}
        return await self.store[ITEMS].count(query)


class MirroredItemSource(ItemSource):
    def __init__(self, mirror: MirrorStore):
        self.mirror = mirror

    async def items_for_blogs(self, blogs, limit=None):
        by_feed = {blog["mirror_feed_id"]: blog for blog in blogs if blog.get("mirror_feed_id")}
        if not by_feed:
            return []
        items = await self.mirror.get_items(by_feed.keys(), limit=limit)
        return [map_mirror_item(by_feed[item["feed_id"]], item) for item in items]

    async def count(self, blogs, since=None):
        feed_ids = [blog["mirror_feed_id"] for blog in blogs if blog.get("mirror_feed_id")]
        return await self.mirror.count_items(feed_ids, since)


def map_mirror_item(blog: Dict[str, Any], item: Dict[str, Any]) -> Dict[str, Any]:
    """Map a foreign item to the local item shape."""
    content = item.get("content") or {}
    summary = item.get("summary") or (content.get("text") or "")[:SUMMARY_LENGTH]

    photos = item.get("photo") or []
    photo = photos[0] if photos else item.get("featured")

    author = item.get("author")
    if isinstance(author, dict):
        author = {"name": author.get("name")} if author.get("name") else None

    return {
        "_id": item.get("_id"),
        "blog_id": blog["_id"],
        "uid": item.get("uid") or item.get("_id"),
        "url": item.get("url"),
        "title": item.get("name") or item.get("url"),
        "content": {"html": content.get("html"), "text": content.get("text") or ""},
        "summary": summary,
        "published": item.get("published"),
        "updated": item.get("updated"),
        "author": author,
        "photo": [photo] if photo else None,
        "categories": item.get("category") or [],
    }


def is_mirrored(blog: Dict[str, Any]) -> bool:
    """True for reference blogs whose items live in the mirrored service."""
    return blog.get("provenance") == Provenance.MIRROR and bool(blog.get("mirror_feed_id"))


def item_source_for(
    blog: Dict[str, Any], store: DocumentStore, mirror: Optional[MirrorStore] = None
) -> ItemSource:
    if is_mirrored(blog) and mirror is not None:
        return MirroredItemSource(mirror)
    return LocalItemSource(store)


def _attach_blog(items: List[Dict[str, Any]], blogs: Dict[str, Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [dict(item, blog=blogs.get(item["blog_id"])) for item in items]


async def get_items(
    store: DocumentStore,
    mirror: Optional[MirrorStore] = None,
    blog_id: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Dict[str, Any]:
    """Newest-first items across local and mirrored storage.

    Args:
        store: Document store
        mirror: Mirrored service accessor, if one is configured
        blog_id: Restrict to one blog
        category: Restrict to visible blogs of one category
        limit: Page size
        offset: Items to skip

    Returns:
        ``{"items": [...], "has_more": bool}``; each item carries its ``blog``

    Raises:
        NotFound: If ``blog_id`` does not exist
    """
    if blog_id:
        blog = await get_blog(store, blog_id)
        if blog is None:
            raise NotFound(f"Blog not found: {blog_id}")
        blogs = [blog]
    else:
        blogs = await get_blogs(store, category=category, limit=None)

    mirrored = [blog for blog in blogs if is_mirrored(blog)]
    local = [blog for blog in blogs if not is_mirrored(blog)]

    window = offset + limit + 1
    items = await LocalItemSource(store).items_for_blogs(local, window)
    if mirror is not None and mirrored:
        items.extend(await MirroredItemSource(mirror).items_for_blogs(mirrored, window))

    items.sort(key=lambda item: item.get("published") or "", reverse=True)
    page = items[offset:window]
    has_more = len(page) > limit

    blogs_by_id = {blog["_id"]: blog for blog in blogs}
    return {"items": _attach_blog(page[:limit], blogs_by_id), "has_more": has_more}


async def count_items(
    store: DocumentStore,
    mirror: Optional[MirrorStore] = None,
    blog_id: Optional[str] = None,
    retention_days: int = COUNT_RETENTION_DAYS,
) -> int:
    """Count local and mirrored items published within ``retention_days``."""
    since = days_ago(retention_days)

    if blog_id:
        blog = await get_blog(store, blog_id)
        if blog is None:
            return 0
        return await item_source_for(blog, store, mirror).count([blog], since)

    total = await store[ITEMS].count({"published": {"$gte": since}})
    if mirror is not None:
        mirror_blogs = await store[BLOGS].find(
            {"provenance": Provenance.MIRROR, "mirror_feed_id": {"$exists": True}}
        )
        total += await MirroredItemSource(mirror).count(mirror_blogs, since)
    return total
