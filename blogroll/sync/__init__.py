"""Synchronization engine for blogroll."""

from .adapters import ADAPTERS, adapter_for, sync_source_document
from .blog_items import sync_blog_items
from .context import SyncContext
from .engine import STATS_KEY, SyncEngine, get_sync_engine, reset_sync_engine
from .list_source import sync_list_source
from .mirror import (
    handle_subscription_event,
    is_mirror_available,
    list_mirror_channels,
    sync_mirror_source,
)
from .remote_directory import (
    build_remote_opml_url,
    build_remote_river_url,
    fetch_remote_categories,
    sync_remote_directory_source,
)
from .scheduler import SchedulerHandle

__all__ = [
    "ADAPTERS",
    "STATS_KEY",
    "SchedulerHandle",
    "SyncContext",
    "SyncEngine",
    "adapter_for",
    "build_remote_opml_url",
    "build_remote_river_url",
    "fetch_remote_categories",
    "get_sync_engine",
    "handle_subscription_event",
    "is_mirror_available",
    "list_mirror_channels",
    "reset_sync_engine",
    "sync_blog_items",
    "sync_list_source",
    "sync_mirror_source",
    "sync_remote_directory_source",
    "sync_source_document",
]
