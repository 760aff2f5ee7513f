"""Remote directory sources: a user's subscription list on a hosted service.

The service publishes ``/opml?screenname=<user>[&catname=<category>]`` and
``/getusercategories?screenname=<user>``.
"""

import json
from typing import Any, Dict
from urllib.parse import quote

from blogroll.errors import ParseFailed
from blogroll.log_system import UnifiedLogger
from blogroll.models import CandidateBlog, Provenance, SyncResult
from blogroll.services.http import fetch_text
from blogroll.services.subscription_list import fetch_and_parse_subscription_list
from blogroll.sync.context import SyncContext
from blogroll.sync.list_source import upsert_candidates


logger = UnifiedLogger.get_logger(__name__)


def _base_url(instance: str) -> str:
    return instance.rstrip("/")


def build_remote_opml_url(source: Dict[str, Any]) -> str:
    url = (
        f"{_base_url(source['remote_instance'])}/opml"
        f"?screenname={quote(source['remote_username'], safe='')}"
    )
    if source.get("remote_category"):
        url += f"&catname={quote(source['remote_category'], safe='')}"
    return url


def build_remote_river_url(source: Dict[str, Any]) -> str:
    """Link to the user's river page on the remote service."""
    return (
        f"{_base_url(source['remote_instance'])}/?river=true"
        f"&screenname={quote(source['remote_username'], safe='')}"
    )


def _split(value: Any) -> list:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


async def fetch_remote_categories(instance: str, username: str, timeout: float = 10.0) -> Dict[str, Any]:
    """Fetch the category names a remote user has defined.

    Returns:
        ``{"categories": [...], "home_page_categories": [...], "screenname": str}``

    Raises:
        FetchError: If the request failed
        ParseFailed: If the response is not a JSON object
    """
    url = f"{_base_url(instance)}/getusercategories?screenname={quote(username, safe='')}"
    document = await fetch_text(url, timeout=timeout, accept="application/json")

    try:
        data = json.loads(document.text)
    except ValueError as e:
        raise ParseFailed(f"Invalid category response: {e}") from e
    if not isinstance(data, dict):
        raise ParseFailed("Invalid category response: expected an object")

    return {
        "categories": _split(data.get("categories")),
        "home_page_categories": _split(data.get("homePageCategories")),
        "screenname": data.get("screenname") or username,
    }


def resolve_category(candidate: CandidateBlog, source: Dict[str, Any]) -> str:
    """Folder category, else the entry's declared category, else the source's
    category filter, else the remote username."""
    return (
        candidate.category
        or candidate.declared_category
        or source.get("remote_category")
        or source.get("remote_username")
        or ""
    )


async def sync_remote_directory_source(context: SyncContext, source: Dict[str, Any]) -> SyncResult:
    """Import a remote user's subscription list.

    Raises:
        FetchError: If the list could not be fetched
        ParseFailed: If it is not OPML
    """
    candidates = await fetch_and_parse_subscription_list(
        build_remote_opml_url(source), timeout=context.options.fetch_timeout
    )

    result = await upsert_candidates(
        context.store,
        source,
        candidates,
        Provenance.REMOTE_DIRECTORY,
        category_for=lambda candidate: resolve_category(candidate, source),
    )

    logger.info(
        f"Synced remote directory source \"{source.get('name')}\" "
        f"({source.get('remote_username')}@{source.get('remote_instance')}): "
        f"{result.added} added, {result.updated} updated, {result.total} total"
    )
    return result
