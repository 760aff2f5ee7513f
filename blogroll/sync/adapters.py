"""Source adapter dispatch.

Each adapter is an async function ``(context, source) -> SyncResult`` that
raises on failure. ``sync_source_document`` runs the adapter for a source's
kind, turns failures into a failed result and records the outcome on the
source either way.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from blogroll.errors import BlogrollError
from blogroll.log_system import UnifiedLogger
from blogroll.models import SourceKind, SyncResult
from blogroll.storage.sources import update_source_sync_status
from blogroll.sync.context import SyncContext
from blogroll.sync.list_source import sync_list_source
from blogroll.sync.mirror import sync_mirror_source
from blogroll.sync.remote_directory import sync_remote_directory_source


logger = UnifiedLogger.get_logger(__name__)

SourceAdapter = Callable[[SyncContext, Dict[str, Any]], Awaitable[SyncResult]]

ADAPTERS: Dict[SourceKind, SourceAdapter] = {
    SourceKind.LIST_URL: sync_list_source,
    SourceKind.LIST_INLINE: sync_list_source,
    SourceKind.MIRROR: sync_mirror_source,
    SourceKind.REMOTE_DIRECTORY: sync_remote_directory_source,
}


def adapter_for(kind: Any) -> Optional[SourceAdapter]:
    try:
        return ADAPTERS.get(SourceKind(kind))
    except ValueError:
        return None


async def sync_source_document(context: SyncContext, source: Dict[str, Any]) -> SyncResult:
    """Sync one source and record its last-sync status."""
    adapter = adapter_for(source.get("kind"))
    name = source.get("name")

    if adapter is None:
        result = SyncResult.failed(f"Unsupported source kind: {source.get('kind')}")
    else:
        try:
            result = await adapter(context, source)
        except (BlogrollError, ValueError) as e:
            logger.warning(f"Source sync failed for \"{name}\": {e}")
            result = SyncResult.failed(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error syncing source \"{name}\"")
            result = SyncResult.failed(str(e) or type(e).__name__)

    await update_source_sync_status(context.store, source["_id"], result.success, result.error)
    return result
