"""Blogroll MCP tools.

This module exposes the sync engine and the blog/source stores as MCP tools.

NOTE: Never use Optional parameters in MCP tools - they break MCP clients.
Use empty string "" for optional strings and 0 for optional integers.
"""

from typing import Any, Dict

from mcp.server.fastmcp import Context

from blogroll.errors import BlogrollError, NotFound
from blogroll.log_system import UnifiedLogger
from blogroll.models import SourceKind
from blogroll.services.feed_discovery import discover_feeds as discover_site_feeds
from blogroll.services.subscription_list import generate_subscription_list
from blogroll.storage import blogs as blog_store
from blogroll.storage import sources as source_store
from blogroll.storage.item_sources import get_items
from blogroll.sync.engine import get_sync_engine
from blogroll.sync.mirror import (
    domain_of,
    handle_subscription_event,
    is_mirror_available,
    list_mirror_channels,
    site_url_of,
)
from blogroll.sync.remote_directory import build_remote_river_url, fetch_remote_categories


def _error(message: str) -> Dict[str, Any]:
    return {"success": False, "error": message}


# Sync


async def run_sync(
    max_items_per_blog: int = 0,
    fetch_timeout: float = 0,
    max_item_age: int = 0,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Run a full sync now: prune old items, sync every enabled source, then
    fetch every visible blog's feed.

    Only one sync runs at a time; if one is already in progress this returns
    immediately with skipped=True.

    Args:
        max_items_per_blog: Override the per-blog item cap (0 uses the configured value)
        fetch_timeout: Override the per-fetch timeout in seconds (0 uses the configured value)
        max_item_age: Override item retention in days (0 uses the configured value)
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with:
        - success: bool
        - skipped: true if another sync was running
        - duration: run time in milliseconds
        - sources / blogs: total, success, failed (and skipped for blogs)
        - items: added and deleted counts
        - error: string if the run failed
    """
    engine = await get_sync_engine()
    result = await engine.run_full_sync(
        {
            "max_items_per_blog": max_items_per_blog,
            "fetch_timeout": fetch_timeout,
            "max_item_age": max_item_age,
        }
    )
    return result.to_dict()


async def clear_and_resync(ctx: Context = None) -> Dict[str, Any]:
    """Delete every stored item, reset all blogs to a clean state and run a full sync.

    Sources and blogs (including operator edits) are kept. Refused with
    skipped=True while a sync is running.

    Returns:
        Same shape as run_sync
    """
    engine = await get_sync_engine()
    return (await engine.clear_and_resync()).to_dict()


async def sync_status(ctx: Context = None) -> Dict[str, Any]:
    """Report whether a sync is running, blog and item counts, and the last run's statistics."""
    engine = await get_sync_engine()
    status = await engine.get_sync_status()
    return {"success": True, **status}


async def sync_source(source_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Sync one source now and report added/updated/orphaned blog counts.

    Args:
        source_id: Id of the source to sync
    """
    engine = await get_sync_engine()
    try:
        result = await engine.sync_source(source_id)
    except NotFound as e:
        return _error(str(e))
    return result.to_dict()


async def refresh_blog(blog_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Fetch one blog's feed now and store its new items.

    Args:
        blog_id: Id of the blog to refresh
    """
    engine = await get_sync_engine()
    try:
        result = await engine.refresh_blog(blog_id)
    except NotFound as e:
        return _error(str(e))
    return result.to_dict()


# Sources


async def add_source(
    kind: str,
    name: str,
    url: str = "",
    inline_document: str = "",
    channel_filter: str = "",
    category_prefix: str = "",
    remote_instance: str = "",
    remote_username: str = "",
    remote_category: str = "",
    enabled: bool = True,
    sync_now: bool = False,
    ctx: Context = None,
) -> Dict[str, Any]:
    """Add a source of blogs.

    Kinds:
    - list_url: an OPML subscription list at `url`
    - list_inline: an OPML document passed as `inline_document`
    - mirror: the co-installed subscription service (optionally one channel by `channel_filter` uid)
    - remote_directory: a user's list on a hosted directory (`remote_instance`, `remote_username`,
      optionally `remote_category`)

    Args:
        kind: One of list_url, list_inline, mirror, remote_directory
        name: Display name
        url: Subscription list URL (list_url)
        inline_document: OPML text (list_inline)
        channel_filter: Channel uid to mirror (mirror, empty for all)
        category_prefix: Prefix for mirrored channel names used as categories (mirror)
        remote_instance: Base URL of the directory service (remote_directory)
        remote_username: Account name on that service (remote_directory)
        remote_category: Category to import (remote_directory, empty for all)
        enabled: Whether scheduled syncs include this source
        sync_now: Sync the source immediately after adding it
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, the created source and, if sync_now, the sync result
    """
    logger = UnifiedLogger.get_logger(__name__)
    engine = await get_sync_engine()

    try:
        source = await source_store.create_source(
            engine.store,
            {
                "kind": kind,
                "name": name,
                "url": url or None,
                "inline_document": inline_document or None,
                "channel_filter": channel_filter or None,
                "category_prefix": category_prefix,
                "remote_instance": remote_instance or None,
                "remote_username": remote_username or None,
                "remote_category": remote_category or None,
                "enabled": enabled,
            },
        )
    except ValueError as e:
        return _error(str(e))

    logger.info(f"Added {source['kind']} source \"{name}\"")
    response: Dict[str, Any] = {"success": True, "source": source}
    if sync_now:
        response["sync"] = (await engine.sync_source(source["_id"])).to_dict()
    return response


async def remove_source(source_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Delete a source together with the blogs it created and their items.

    Args:
        source_id: Id of the source to delete
    """
    engine = await get_sync_engine()
    if await source_store.delete_source(engine.store, source_id):
        return {"success": True, "message": f"Removed source {source_id}"}
    return _error(f"Source not found: {source_id}")


async def list_sources(ctx: Context = None) -> Dict[str, Any]:
    """List all sources with their last sync time and last error."""
    engine = await get_sync_engine()
    sources = await source_store.get_sources(engine.store)
    for source in sources:
        if source.get("kind") == SourceKind.REMOTE_DIRECTORY.value:
            source["river_url"] = build_remote_river_url(source)
        source.pop("inline_document", None)
    return {"success": True, "count": len(sources), "sources": sources}


# Blogs and items


async def add_blog(
    feed_url: str = "",
    site_url: str = "",
    title: str = "",
    category: str = "",
    notes: str = "",
    ctx: Context = None,
) -> Dict[str, Any]:
    """Add a blog by hand.

    If no feed_url is given, the feed is discovered from site_url.

    Args:
        feed_url: RSS/Atom/JSON feed URL (empty string to discover from site_url)
        site_url: Homepage URL of the blog
        title: Display title (empty string uses the page title or domain)
        category: Category name (empty string for none)
        notes: Free-form operator notes
        ctx: MCP Context object (injected automatically)

    Returns:
        Dictionary with success, the created blog and whether the feed was discovered
    """
    engine = await get_sync_engine()
    discovered = False
    feed_type = "rss"

    if not feed_url:
        if not site_url:
            return _error("Provide a feed_url or a site_url to discover it from")
        result = await discover_site_feeds(site_url, timeout=engine.options.fetch_timeout)
        if not result.success or not result.feeds:
            return _error(result.error or f"No feed found for {site_url}")
        feed_url = result.feeds[0].url
        feed_type = result.feeds[0].type
        title = title or result.page_title or ""
        site_url = result.site_url or site_url
        discovered = True

    try:
        blog = await blog_store.create_blog(
            engine.store,
            {
                "title": title or domain_of(feed_url),
                "feed_url": feed_url,
                "site_url": site_url or site_url_of(feed_url),
                "feed_type": feed_type,
                "category": category,
                "notes": notes or None,
            },
        )
    except ValueError as e:
        return _error(str(e))

    return {"success": True, "blog": blog, "feed_discovered": discovered}


async def remove_blog(blog_id: str, ctx: Context = None) -> Dict[str, Any]:
    """Delete a blog and its items.

    The blog is kept as deleted so that later source syncs do not add it back.

    Args:
        blog_id: Id of the blog to delete
    """
    engine = await get_sync_engine()
    if await blog_store.delete_blog(engine.store, blog_id):
        return {"success": True, "message": f"Removed blog {blog_id}"}
    return _error(f"Blog not found: {blog_id}")


async def list_blogs(
    category: str = "",
    include_hidden: bool = False,
    limit: int = 100,
    offset: int = 0,
    ctx: Context = None,
) -> Dict[str, Any]:
    """List blogs, pinned first then by title.

    Args:
        category: Only this category (empty string for all)
        include_hidden: Include hidden blogs
        limit: Page size
        offset: Blogs to skip
    """
    engine = await get_sync_engine()
    blogs = await blog_store.get_blogs(
        engine.store, category=category or None, include_hidden=include_hidden, limit=limit, offset=offset
    )
    total = await blog_store.count_blogs(engine.store, category=category or None, include_hidden=include_hidden)
    return {"success": True, "count": len(blogs), "total": total, "blogs": blogs}


async def list_items(
    blog_id: str = "",
    category: str = "",
    limit: int = 50,
    offset: int = 0,
    ctx: Context = None,
) -> Dict[str, Any]:
    """List recent items, newest first, across local and mirrored blogs.

    Args:
        blog_id: Only this blog (empty string for all)
        category: Only blogs in this category (empty string for all)
        limit: Page size
        offset: Items to skip

    Returns:
        Dictionary with success, items (each with its blog) and has_more
    """
    engine = await get_sync_engine()
    try:
        page = await get_items(
            engine.store,
            engine.mirror,
            blog_id=blog_id or None,
            category=category or None,
            limit=limit,
            offset=offset,
        )
    except NotFound as e:
        return _error(str(e))
    return {"success": True, "count": len(page["items"]), **page}


async def list_categories(ctx: Context = None) -> Dict[str, Any]:
    """List categories of visible blogs with blog counts."""
    engine = await get_sync_engine()
    categories = await blog_store.get_categories(engine.store)
    return {"success": True, "categories": categories}


async def export_subscription_list(
    title: str = "Blogroll", category: str = "", ctx: Context = None
) -> Dict[str, Any]:
    """Export visible blogs as an OPML document.

    Args:
        title: Document title
        category: Only this category (empty string for all)
    """
    engine = await get_sync_engine()
    blogs = await blog_store.get_blogs(engine.store, category=category or None, limit=None)
    return {
        "success": True,
        "count": len(blogs),
        "opml": generate_subscription_list(blogs, title=title or "Blogroll"),
    }


# Discovery and integrations


async def discover_feeds(url: str, ctx: Context = None) -> Dict[str, Any]:
    """Find the feeds a website advertises, with the page title and site URL.

    Args:
        url: Website URL (https:// is assumed if no scheme is given)
    """
    engine = await get_sync_engine()
    result = await discover_site_feeds(url, timeout=engine.options.fetch_timeout)
    return result.to_dict()


async def subscription_event(
    action: str, url: str, group_name: str = "", title: str = "", ctx: Context = None
) -> Dict[str, Any]:
    """Apply a subscribe/unsubscribe notification from the mirrored subscription service.

    Args:
        action: "subscribe" or "unsubscribe"
        url: Feed URL
        group_name: Channel name, used as the category on subscribe
        title: Feed title
    """
    engine = await get_sync_engine()
    result = await handle_subscription_event(
        engine.store, {"action": action, "url": url, "group_name": group_name, "title": title}
    )
    return {"success": result["ok"], **result}


async def mirror_status(ctx: Context = None) -> Dict[str, Any]:
    """Report whether the mirrored subscription service is installed and list its channels."""
    engine = await get_sync_engine()
    available = await is_mirror_available(engine.mirror)
    channels = await list_mirror_channels(engine.mirror) if available else []
    return {"success": True, "available": available, "channels": channels}


async def remote_categories(instance: str, username: str, ctx: Context = None) -> Dict[str, Any]:
    """List the categories a user has defined on a remote directory service.

    Args:
        instance: Base URL of the service
        username: Account name
    """
    engine = await get_sync_engine()
    try:
        result = await fetch_remote_categories(instance, username, timeout=engine.options.fetch_timeout)
    except BlogrollError as e:
        return _error(str(e))
    return {"success": True, **result}


# List of sync tools for registration
sync_tools = [
    run_sync,
    clear_and_resync,
    sync_status,
    sync_source,
    refresh_blog,
    add_source,
    remove_source,
    list_sources,
    add_blog,
    remove_blog,
    list_blogs,
    list_items,
    list_categories,
    export_subscription_list,
    discover_feeds,
    subscription_event,
    mirror_status,
    remote_categories,
]
