"""Storage layer for blogroll."""

from .database import BLOGS, ITEMS, META, SOURCES, close_database, get_database, init_database
from .document_store import Collection, DocumentStore, UpdateResult
from .blogs import (
    count_blogs,
    create_blog,
    delete_blog,
    get_blog,
    get_blog_by_feed_url,
    get_blogs,
    get_blogs_for_sync,
    get_categories,
    mark_orphaned_mirror_blogs,
    reset_blogs_for_resync,
    update_blog,
    update_blog_status,
    upsert_blog,
)
from .items import (
    count_local_items,
    delete_all_items,
    delete_items_for_blog,
    delete_old_items,
    upsert_item,
)
from .sources import (
    create_source,
    delete_source,
    get_source,
    get_sources,
    update_source_sync_status,
)
from .mirror import MirrorStore
from .item_sources import (
    ItemSource,
    LocalItemSource,
    MirroredItemSource,
    count_items,
    get_items,
    item_source_for,
)

__all__ = [
    "BLOGS",
    "ITEMS",
    "META",
    "SOURCES",
    "Collection",
    "DocumentStore",
    "ItemSource",
    "LocalItemSource",
    "MirrorStore",
    "MirroredItemSource",
    "UpdateResult",
    "close_database",
    "count_blogs",
    "count_items",
    "count_local_items",
    "create_blog",
    "create_source",
    "delete_all_items",
    "delete_blog",
    "delete_items_for_blog",
    "delete_old_items",
    "delete_source",
    "get_blog",
    "get_blog_by_feed_url",
    "get_blogs",
    "get_blogs_for_sync",
    "get_categories",
    "get_database",
    "get_items",
    "get_source",
    "get_sources",
    "init_database",
    "item_source_for",
    "mark_orphaned_mirror_blogs",
    "reset_blogs_for_resync",
    "update_blog",
    "update_blog_status",
    "update_source_sync_status",
    "upsert_blog",
    "upsert_item",
]
