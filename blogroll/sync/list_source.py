"""Subscription-list sources: an OPML document by URL or stored inline."""

from typing import Any, Callable, Dict, Iterable, Optional

from blogroll.log_system import UnifiedLogger
from blogroll.models import CandidateBlog, Provenance, SourceKind, SyncResult
from blogroll.services.subscription_list import (
    fetch_and_parse_subscription_list,
    parse_subscription_list,
)
from blogroll.storage.blogs import upsert_blog
from blogroll.storage.document_store import DocumentStore
from blogroll.sync.context import SyncContext


logger = UnifiedLogger.get_logger(__name__)


async def upsert_candidates(
    store: DocumentStore,
    source: Dict[str, Any],
    candidates: Iterable[CandidateBlog],
    provenance: str,
    category_for: Optional[Callable[[CandidateBlog], str]] = None,
) -> SyncResult:
    """Upsert candidate blogs under ``source`` and tally the outcome."""
    result = SyncResult(success=True)

    for candidate in candidates:
        data = candidate.to_document()
        if category_for is not None:
            data["category"] = category_for(candidate)
        data["source_id"] = source["_id"]
        data["provenance"] = provenance

        outcome = await upsert_blog(store, data)
        result.total += 1
        if outcome.skipped:
            result.skipped += 1
        elif outcome.upserted:
            result.added += 1
        elif outcome.modified:
            result.updated += 1

    return result


async def sync_list_source(context: SyncContext, source: Dict[str, Any]) -> SyncResult:
    """Import the blogs listed in a source's subscription list.

    Raises:
        FetchError: If the list URL could not be fetched
        ParseFailed: If the document is not OPML
        ValueError: If the source kind is not a list kind
    """
    kind = source.get("kind")
    if kind == SourceKind.LIST_URL.value:
        candidates = await fetch_and_parse_subscription_list(
            source["url"], timeout=context.options.fetch_timeout
        )
    elif kind == SourceKind.LIST_INLINE.value:
        candidates = parse_subscription_list(source.get("inline_document") or "")
    else:
        raise ValueError(f"Unsupported source kind: {kind}")

    result = await upsert_candidates(context.store, source, candidates, Provenance.LIST)

    logger.info(
        f"Synced list source \"{source.get('name')}\": {result.added} added, "
        f"{result.updated} updated, {result.skipped} skipped, {result.total} total"
    )
    return result
