"""Feed fetcher and normalizer.

Parses RSS/Atom (via feedparser) and JSON Feed documents into
``NormalizedFeed`` objects with items in one canonical shape.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser

from blogroll.errors import ParseFailed
from blogroll.log_system import UnifiedLogger
from blogroll.models import ItemContent, NormalizedFeed, NormalizedItem
from blogroll.models.timestamps import format_timestamp, parse_timestamp, utcnow
from blogroll.services.html_utils import decode_entities, sanitize_html, strip_html, truncate_text
from blogroll.services.http import FEED_ACCEPT, fetch_text


SUMMARY_LENGTH = 300
UID_LENGTH = 24


def generate_uid(feed_url: str, item_id: Any) -> str:
    """Stable item key derived from the feed URL and the item's own id."""
    digest = hashlib.sha256(f"{feed_url}::{item_id}".encode("utf-8")).hexdigest()
    return digest[:UID_LENGTH]


async def fetch_and_parse_feed(url: str, timeout: float = 15.0, max_items: int = 50) -> NormalizedFeed:
    """Fetch a feed and normalize it.

    Args:
        url: Feed URL
        timeout: Seconds before the request is cancelled
        max_items: Maximum number of entries to normalize (applied after parsing)

    Returns:
        The normalized feed

    Raises:
        FetchTimeout: If the request timed out
        FetchFailed: On network errors or non-2xx responses
        ParseFailed: If the body is not a feed
    """
    logger = UnifiedLogger.get_logger(__name__)
    logger.debug(f"Fetching feed: {url}")

    document = await fetch_text(url, timeout=timeout, accept=FEED_ACCEPT)
    feed = parse_feed_content(document.text, url, max_items, document.content_type)

    logger.debug(f"Parsed {len(feed.items)} items from {url}")
    return feed


def parse_feed_content(
    content: str,
    feed_url: str,
    max_items: int = 50,
    content_type: str = "",
    fetched_at: Optional[datetime] = None,
) -> NormalizedFeed:
    """Normalize a feed document already in memory.

    JSON is tried first when the content type says so or the body looks
    like a JSON object; a body that fails to decode as JSON is parsed as XML.

    ``max_items`` caps the entries that are normalized, sanitized and
    returned. The document itself is still parsed whole: feedparser and
    ``json.loads`` have no incremental mode, so the cap bounds per-item work
    and storage, not parse time.
    """
    fetched_at = fetched_at or utcnow()

    if "json" in (content_type or "").lower() or content.lstrip().startswith("{"):
        data = _load_json(content)
        if isinstance(data, dict):
            return _parse_json_feed(data, feed_url, max_items, fetched_at)

    return _parse_xml_feed(content, feed_url, max_items, fetched_at)


def _load_json(content: str) -> Any:
    try:
        return json.loads(content)
    except ValueError:
        return None


def _struct_to_timestamp(value) -> Optional[str]:
    if not value:
        return None
    try:
        return format_timestamp(datetime(*value[:6], tzinfo=timezone.utc))
    except (TypeError, ValueError):
        return None


def _iso_to_timestamp(value: Any) -> Optional[str]:
    parsed = parse_timestamp(value) if isinstance(value, str) else None
    return format_timestamp(parsed) if parsed else None


def _dedupe(urls: List[str]) -> Optional[List[str]]:
    photos = list(dict.fromkeys(url for url in urls if url))
    return photos or None


def _build_item(
    feed_url: str,
    natural_id: Any,
    url: Optional[str],
    title: Optional[str],
    content_html: Optional[str],
    content_text: Optional[str],
    summary_source: Optional[str],
    published: Optional[str],
    updated: Optional[str],
    author_name: Optional[str],
    photos: List[str],
    categories: List[str],
    fetched_at: datetime,
) -> NormalizedItem:
    text = content_text if content_text else strip_html(content_html or "")
    if summary_source:
        summary = truncate_text(strip_html(summary_source), SUMMARY_LENGTH)
    else:
        summary = truncate_text(text, SUMMARY_LENGTH)

    return NormalizedItem(
        uid=generate_uid(feed_url, natural_id),
        url=url or None,
        title=decode_entities(title or "").strip() or "Untitled",
        content=ItemContent(
            html=sanitize_html(content_html) if content_html else None,
            text=text,
        ),
        summary=summary,
        published=published or format_timestamp(fetched_at),
        updated=updated,
        author={"name": author_name} if author_name else None,
        photo=_dedupe(photos),
        categories=[c for c in categories if c],
    )


# XML (RSS / Atom)


def extract_photos(entry: Dict[str, Any]) -> Optional[List[str]]:
    """Image URLs from enclosures, media:content and an explicit image field."""
    photos = []

    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/"):
            photos.append(enclosure.get("href") or enclosure.get("url"))

    for media in entry.get("media_content") or []:
        if (media.get("type") or "").startswith("image/") or media.get("medium") == "image":
            photos.append(media.get("url"))

    image = entry.get("image")
    if isinstance(image, dict):
        photos.append(image.get("href") or image.get("url"))

    return _dedupe(photos)


def _parse_xml_feed(content: str, feed_url: str, max_items: int, fetched_at: datetime) -> NormalizedFeed:
    parsed = feedparser.parse(content)

    if not parsed.entries and not parsed.get("version"):
        reason = parsed.get("bozo_exception") or "no recognizable feed"
        raise ParseFailed(f"Malformed feed: {reason}")

    items = []
    for entry in parsed.entries[:max_items]:
        natural_id = entry.get("id") or entry.get("link")
        if not natural_id:
            continue

        if entry.get("content"):
            body = entry.content[0].get("value")
        else:
            body = entry.get("summary") or entry.get("description")

        summary = entry.get("summary") if entry.get("content") else None

        items.append(
            _build_item(
                feed_url,
                natural_id,
                url=entry.get("link"),
                title=entry.get("title"),
                content_html=body,
                content_text=None,
                summary_source=summary,
                published=_struct_to_timestamp(
                    entry.get("published_parsed") or entry.get("updated_parsed")
                ),
                updated=_struct_to_timestamp(entry.get("updated_parsed")),
                author_name=entry.get("author"),
                photos=extract_photos(entry) or [],
                categories=[tag.get("term") for tag in entry.get("tags") or []],
                fetched_at=fetched_at,
            )
        )

    feed = parsed.feed
    image = feed.get("image")
    photo = (image.get("href") or image.get("url")) if isinstance(image, dict) else None

    return NormalizedFeed(
        title=feed.get("title"),
        description=feed.get("subtitle") or feed.get("description"),
        site_url=feed.get("link"),
        photo=photo or feed.get("icon") or feed.get("logo"),
        author={"name": feed.get("author")} if feed.get("author") else None,
        items=items,
    )


# JSON Feed


def _text(obj: Dict[str, Any], key: str) -> Optional[str]:
    """String field of a JSON Feed object; any other non-null type is malformed."""
    value = obj.get(key)
    if value is None or isinstance(value, str):
        return value
    raise ParseFailed(f"Malformed JSON feed: {key} is not a string")


def _list(obj: Dict[str, Any], key: str) -> List[Any]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseFailed(f"Malformed JSON feed: {key} is not a list")
    return value


def _json_author(data: Dict[str, Any]) -> Optional[str]:
    author = data.get("author") or (_list(data, "authors") or [None])[0]
    if isinstance(author, dict):
        name = author.get("name")
        return name if isinstance(name, str) else None
    if isinstance(author, str):
        return author
    return None


def _json_photos(entry: Dict[str, Any]) -> List[str]:
    photos = [_text(entry, "image")]
    for attachment in _list(entry, "attachments"):
        if not isinstance(attachment, dict):
            raise ParseFailed("Malformed JSON feed: attachment is not an object")
        if (_text(attachment, "mime_type") or "").startswith("image/"):
            photos.append(_text(attachment, "url"))
    return photos


def _parse_json_feed(data: Dict[str, Any], feed_url: str, max_items: int, fetched_at: datetime) -> NormalizedFeed:
    items = []
    for entry in _list(data, "items")[:max_items]:
        if not isinstance(entry, dict):
            continue
        natural_id = entry.get("id") or entry.get("url")
        if natural_id is None or natural_id == "":
            continue
        if not isinstance(natural_id, (str, int, float)):
            raise ParseFailed("Malformed JSON feed: id is not a string")

        items.append(
            _build_item(
                feed_url,
                natural_id,
                url=_text(entry, "url") or _text(entry, "external_url"),
                title=_text(entry, "title"),
                content_html=_text(entry, "content_html"),
                content_text=_text(entry, "content_text"),
                summary_source=_text(entry, "summary"),
                published=_iso_to_timestamp(entry.get("date_published")),
                updated=_iso_to_timestamp(entry.get("date_modified")),
                author_name=_json_author(entry),
                photos=_json_photos(entry),
                categories=[str(tag) for tag in _list(entry, "tags")],
                fetched_at=fetched_at,
            )
        )

    author = _json_author(data)
    return NormalizedFeed(
        title=_text(data, "title"),
        description=_text(data, "description"),
        site_url=_text(data, "home_page_url"),
        photo=_text(data, "icon") or _text(data, "favicon"),
        author={"name": author} if author else None,
        items=items,
    )
