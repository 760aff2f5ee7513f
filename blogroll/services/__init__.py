"""Services for blogroll."""

from .feed_discovery import discover_feed_url, discover_feeds
from .feed_parser import fetch_and_parse_feed, generate_uid, parse_feed_content
from .html_utils import decode_entities, sanitize_html, strip_html, truncate_text
from .http import FetchedDocument, fetch_text
from .subscription_list import (
    detect_feed_type,
    fetch_and_parse_subscription_list,
    generate_subscription_list,
    parse_subscription_list,
)

__all__ = [
    "FetchedDocument",
    "decode_entities",
    "detect_feed_type",
    "discover_feed_url",
    "discover_feeds",
    "fetch_and_parse_feed",
    "fetch_and_parse_subscription_list",
    "fetch_text",
    "generate_subscription_list",
    "generate_uid",
    "parse_feed_content",
    "parse_subscription_list",
    "sanitize_html",
    "strip_html",
    "truncate_text",
]
