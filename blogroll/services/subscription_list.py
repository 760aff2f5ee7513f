"""Subscription lists (OPML): parsing, fetching and export."""

import re
from datetime import datetime
from email.utils import format_datetime
from typing import Any, Iterable, List, Optional

from bs4 import BeautifulSoup
from lxml import etree

from blogroll.errors import ParseFailed
from blogroll.log_system import UnifiedLogger
from blogroll.models import CandidateBlog
from blogroll.models.timestamps import utcnow
from blogroll.services.http import OPML_ACCEPT, fetch_text


_XML_UNSAFE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def detect_feed_type(type_hint: Optional[str]) -> str:
    """Map an outline ``type`` attribute to rss, atom or jsonfeed."""
    if not type_hint:
        return "rss"
    hint = type_hint.lower()
    if "atom" in hint:
        return "atom"
    if "json" in hint:
        return "jsonfeed"
    return "rss"


def _declared_category(outline) -> str:
    """First entry of the outline's own comma-separated ``category`` attribute."""
    raw = outline.get("category") or ""
    for part in raw.split(","):
        part = part.strip().strip("/").strip()
        if part:
            return part
    return ""


def _leaf(outline, category: str) -> CandidateBlog:
    return CandidateBlog(
        title=outline.get("text") or outline.get("title") or "Unknown",
        feed_url=outline["xmlUrl"],
        site_url=outline.get("htmlUrl") or "",
        feed_type=detect_feed_type(outline.get("type")),
        category=category,
        declared_category=_declared_category(outline),
    )


def parse_subscription_list(document: str) -> List[CandidateBlog]:
    """Extract candidate blogs from an OPML document.

    A top-level outline with child outlines is a category folder whose label
    applies to its direct children; deeper levels are ignored. A top-level
    outline with an ``xmlUrl`` and no children is an uncategorized blog.

    Raises:
        ParseFailed: If the document has no ``<opml>`` root
    """
    soup = BeautifulSoup(document or "", "xml")
    opml = soup.find("opml")
    if opml is None:
        raise ParseFailed("Not an OPML document")

    body = opml.find("body", recursive=False)
    if body is None:
        return []

    blogs = []
    for outline in body.find_all("outline", recursive=False):
        children = outline.find_all("outline", recursive=False)
        if children:
            category = outline.get("text") or outline.get("title") or ""
            for child in children:
                if child.get("xmlUrl"):
                    blogs.append(_leaf(child, category))
        elif outline.get("xmlUrl"):
            blogs.append(_leaf(outline, ""))

    return blogs


async def fetch_and_parse_subscription_list(url: str, timeout: float = 15.0) -> List[CandidateBlog]:
    """Fetch an OPML document and parse it.

    Raises:
        FetchTimeout, FetchFailed: If the document could not be fetched
        ParseFailed: If it is not OPML
    """
    logger = UnifiedLogger.get_logger(__name__)
    document = await fetch_text(url, timeout=timeout, accept=OPML_ACCEPT)
    blogs = parse_subscription_list(document.text)
    logger.debug(f"Parsed {len(blogs)} blogs from {url}")
    return blogs


def _field(blog: Any, name: str) -> str:
    value = blog.get(name) if isinstance(blog, dict) else getattr(blog, name, None)
    return _XML_UNSAFE_RE.sub("", str(value)) if value else ""


def _add_leaf(parent, blog: Any) -> None:
    title = _field(blog, "title")
    etree.SubElement(
        parent,
        "outline",
        text=title,
        title=title,
        type=_field(blog, "feed_type") or "rss",
        xmlUrl=_field(blog, "feed_url"),
        htmlUrl=_field(blog, "site_url"),
    )


def generate_subscription_list(
    blogs: Iterable[Any], title: str = "Blogroll", now: Optional[datetime] = None
) -> str:
    """Serialize blogs to OPML.

    Blogs without a category become top-level outlines; the rest are grouped
    in folders sorted by category name, keeping input order inside a folder.
    Accepts blog documents or ``CandidateBlog`` objects.
    """
    uncategorized = []
    grouped = {}
    for blog in blogs:
        category = _field(blog, "category")
        if category:
            grouped.setdefault(category, []).append(blog)
        else:
            uncategorized.append(blog)

    root = etree.Element("opml", version="2.0")
    head = etree.SubElement(root, "head")
    etree.SubElement(head, "title").text = _XML_UNSAFE_RE.sub("", title)
    etree.SubElement(head, "dateCreated").text = format_datetime(now or utcnow(), usegmt=True)

    body = etree.SubElement(root, "body")
    for blog in uncategorized:
        _add_leaf(body, blog)
    for category in sorted(grouped):
        folder = etree.SubElement(body, "outline", text=category, title=category)
        for blog in grouped[category]:
            _add_leaf(folder, blog)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode(
        "utf-8"
    )
