"""Full-sync orchestration.

A run has three stages, in order: retention sweep, sources, blogs. Fetches
inside a stage run concurrently up to ``max_concurrent_fetches``. Only one
run executes at a time per engine; a request made while a run is active is
answered with ``skipped`` and touches nothing.
"""

import asyncio
import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from blogroll.config import ServerConfig, SyncOptions, get_config
from blogroll.errors import AlreadyRunning, NotFound
from blogroll.log_system import (
    UnifiedLogger,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from blogroll.models import BlogStatus, Provenance, RunResult, StageCounts, SyncResult
from blogroll.models.timestamps import now_timestamp
from blogroll.storage.blogs import (
    count_blogs,
    get_blog,
    get_blogs_for_sync,
    reset_blogs_for_resync,
    update_blog_status,
)
from blogroll.storage.database import META, get_database
from blogroll.storage.document_store import DocumentStore
from blogroll.storage.item_sources import count_items
from blogroll.storage.items import delete_all_items, delete_old_items
from blogroll.storage.mirror import MirrorStore
from blogroll.storage.sources import get_source, get_sources
from blogroll.sync.adapters import adapter_for, sync_source_document
from blogroll.sync.blog_items import sync_blog_items
from blogroll.sync.context import SyncContext


logger = UnifiedLogger.get_logger(__name__)

STATS_KEY = "sync_stats"

T = TypeVar("T")
R = TypeVar("R")

OptionsArg = Union[SyncOptions, Dict[str, Any], None]


async def gather_bounded(
    func: Callable[[T], Awaitable[R]], items: Iterable[T], limit: int
) -> List[R]:
    """Run ``func`` over ``items`` with at most ``limit`` in flight."""
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_with_semaphore(item: T) -> R:
        async with semaphore:
            return await func(item)

    return await asyncio.gather(*(run_with_semaphore(item) for item in items))


def skips_item_fetch(blog: Dict[str, Any]) -> bool:
    """Mirror blogs, blogs flagged to skip fetching and unsubscribed blogs."""
    return (
        blog.get("provenance") == Provenance.MIRROR
        or bool(blog.get("skip_item_fetch"))
        or blog.get("status") == BlogStatus.INACTIVE
    )


class SyncEngine:
    """Runs full and partial syncs against one store."""

    def __init__(
        self,
        store: DocumentStore,
        options: Optional[SyncOptions] = None,
        mirror: Optional[MirrorStore] = None,
    ):
        self.store = store
        self.options = options or SyncOptions()
        self.mirror = mirror
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _claim(self) -> None:
        if self._running:
            raise AlreadyRunning("Sync already running")
        self._running = True

    def _resolve_options(self, options: OptionsArg) -> SyncOptions:
        if isinstance(options, SyncOptions):
            return options
        return self.options.merged(options)

    def _context(self, options: SyncOptions) -> SyncContext:
        return SyncContext(store=self.store, options=options, mirror=self.mirror)

    async def run_full_sync(self, options: OptionsArg = None) -> RunResult:
        """Run retention, then every enabled source, then every visible blog."""
        return await self._single_flight(self._full_sync, self._resolve_options(options))

    async def clear_and_resync(self, options: OptionsArg = None) -> RunResult:
        """Delete all items, reset blog status and counters, then run a full sync.

        Sources and blogs are kept. Refused with ``skipped`` while a run is active.
        """
        return await self._single_flight(self._clear_and_sync, self._resolve_options(options))

    async def _single_flight(
        self, job: Callable[[SyncOptions], Awaitable[RunResult]], options: SyncOptions
    ) -> RunResult:
        try:
            self._claim()
        except AlreadyRunning as e:
            logger.info(f"{e}, skipping")
            return RunResult(success=False, skipped=True)

        token = set_correlation_id(generate_correlation_id("sync"))
        try:
            return await job(options)
        except Exception as e:
            logger.exception("Full sync failed")
            return RunResult(success=False, error=str(e) or type(e).__name__)
        finally:
            self._running = False
            reset_correlation_id(token)

    async def _clear_and_sync(self, options: SyncOptions) -> RunResult:
        logger.info("Clearing all items for resync")
        await delete_all_items(self.store)
        await reset_blogs_for_resync(self.store)
        return await self._full_sync(options)

    async def _full_sync(self, options: SyncOptions) -> RunResult:
        logger.info("Starting full sync")
        started = time.monotonic()
        context = self._context(options)

        deleted = await delete_old_items(self.store, options.max_item_age)

        sources = [s for s in await get_sources(self.store, enabled_only=True) if adapter_for(s.get("kind"))]
        source_results = await gather_bounded(
            lambda source: sync_source_document(context, source), sources, options.max_concurrent_fetches
        )
        source_counts = StageCounts(
            total=len(sources),
            success=sum(1 for r in source_results if r.success),
            failed=sum(1 for r in source_results if not r.success),
        )

        blogs = await self._visible_blogs(options.blog_page_size)
        to_fetch = [blog for blog in blogs if not skips_item_fetch(blog)]
        blog_results = await gather_bounded(
            lambda blog: self._sync_blog_isolated(blog, options), to_fetch, options.max_concurrent_fetches
        )
        blog_counts = StageCounts(
            total=len(blogs),
            success=sum(1 for r in blog_results if r.success),
            failed=sum(1 for r in blog_results if not r.success),
            skipped=len(blogs) - len(to_fetch),
        )
        if blog_counts.skipped:
            logger.info(f"Skipped {blog_counts.skipped} blogs without local item fetching")

        result = RunResult(
            success=True,
            duration=int((time.monotonic() - started) * 1000),
            sources=source_counts,
            blogs=blog_counts,
            items_added=sum(r.added for r in blog_results),
            items_deleted=deleted,
        )
        await self._save_stats(result)

        logger.info(
            f"Full sync complete in {result.duration}ms: "
            f"{source_counts.success}/{source_counts.total} sources, "
            f"{blog_counts.success}/{blog_counts.total} blogs, "
            f"{result.items_added} new items, {deleted} old items removed"
        )
        return result

    async def _visible_blogs(self, page_size: int) -> List[Dict[str, Any]]:
        blogs: List[Dict[str, Any]] = []
        while True:
            page = await get_blogs_for_sync(self.store, limit=page_size, offset=len(blogs))
            blogs.extend(page)
            if not page or len(page) < page_size:
                return blogs

    async def _sync_blog_isolated(self, blog: Dict[str, Any], options: SyncOptions) -> SyncResult:
        try:
            return await sync_blog_items(self.store, blog, options)
        except Exception as e:
            logger.exception(f"Blog sync failed for \"{blog.get('title')}\"")
            error = str(e) or type(e).__name__
            await update_blog_status(self.store, blog["_id"], success=False, error=error)
            return SyncResult.failed(error)

    async def _save_stats(self, result: RunResult) -> None:
        await self.store[META].update_one(
            {"key": STATS_KEY},
            {
                "key": STATS_KEY,
                "last_full_sync": now_timestamp(),
                "duration": result.duration,
                "sources": asdict(result.sources),
                "blogs": asdict(result.blogs),
                "items": {"added": result.items_added, "deleted": result.items_deleted},
            },
            upsert=True,
        )

    async def get_sync_status(self) -> Dict[str, Any]:
        """Counts, the running flag and the statistics of the last completed run."""
        stats = await self.store[META].find_one({"key": STATS_KEY})
        if stats is not None:
            stats = {k: v for k, v in stats.items() if k != "_id"}

        return {
            "status": "ok",
            "is_running": self._running,
            "blogs": {"count": await count_blogs(self.store)},
            "items": {"count": await count_items(self.store, self.mirror)},
            "last_sync": stats.get("last_full_sync") if stats else None,
            "last_sync_stats": stats,
        }

    async def sync_source(self, source_id: str, options: OptionsArg = None) -> SyncResult:
        """Sync a single source now.

        Raises:
            NotFound: If the source does not exist
        """
        source = await get_source(self.store, source_id)
        if source is None:
            raise NotFound(f"Source not found: {source_id}")
        return await sync_source_document(self._context(self._resolve_options(options)), source)

    async def refresh_blog(self, blog_id: str, options: OptionsArg = None) -> SyncResult:
        """Fetch a single blog's items now. Blogs without local items are skipped.

        Raises:
            NotFound: If the blog does not exist
        """
        blog = await get_blog(self.store, blog_id)
        if blog is None or blog.get("status") == BlogStatus.DELETED:
            raise NotFound(f"Blog not found: {blog_id}")
        if skips_item_fetch(blog):
            return SyncResult(success=True, skipped=1)
        return await sync_blog_items(self.store, blog, self._resolve_options(options))


_engine: Optional[SyncEngine] = None


async def get_sync_engine(config: Optional[ServerConfig] = None) -> SyncEngine:
    """Get or create the process-wide engine over the singleton store."""
    global _engine

    if _engine is None:
        config = config or get_config()
        store = await get_database()
        _engine = SyncEngine(
            store,
            SyncOptions.from_config(config),
            MirrorStore(store, config.mirror_collection_prefix),
        )
    return _engine


def reset_sync_engine() -> None:
    global _engine
    _engine = None
