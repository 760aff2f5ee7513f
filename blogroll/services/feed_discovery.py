"""Feed discovery service.

This module finds RSS/Atom/JSON feeds advertised by a website.
"""

import asyncio
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from blogroll.log_system import UnifiedLogger
from blogroll.models import DiscoveredFeed, DiscoveryResult
from blogroll.services.http import USER_AGENT


# Common feed paths to probe, in order
COMMON_FEED_PATHS = [
    "/feed",
    "/feed.xml",
    "/rss",
    "/rss.xml",
    "/atom.xml",
    "/feed/atom",
    "/feed/rss",
    "/index.xml",
    "/blog/feed",
    "/blog/rss",
    "/.rss",
    "/feed.json",
]

# Subtypes that mark a <link rel="alternate"> as a feed
FEED_SUBTYPES = ["rss+xml", "atom+xml", "feed+json", "json", "xml"]

_TITLE_SUFFIX_RE = re.compile(r"\s*[-|–—]\s*.*$")
_TITLE_HOME_RE = re.compile(r"\s*:\s*Home.*$", re.IGNORECASE)


def _feed_type(content_type: str) -> str:
    content_type = content_type.lower()
    if "atom" in content_type:
        return "atom"
    if "json" in content_type:
        return "jsonfeed"
    return "rss"


def _looks_like_feed(content_type: str) -> bool:
    content_type = content_type.lower()
    return any(marker in content_type for marker in ("xml", "rss", "atom", "json"))


def clean_page_title(title: Optional[str]) -> Optional[str]:
    """Drop site-name suffixes like ' - Home' or ': Home' from a page title."""
    if not title:
        return None
    title = _TITLE_SUFFIX_RE.sub("", title.strip())
    title = _TITLE_HOME_RE.sub("", title).strip()
    return title or None


def _link_feeds(html: str, base_url: str) -> List[DiscoveredFeed]:
    soup = BeautifulSoup(html, "lxml")
    feeds = []
    for link in soup.find_all("link", rel=lambda x: x and "alternate" in x):
        link_type = (link.get("type") or "").lower()
        href = link.get("href")
        if href and any(subtype in link_type for subtype in FEED_SUBTYPES):
            feeds.append(
                DiscoveredFeed(
                    url=urljoin(base_url, href),
                    type=_feed_type(link_type),
                    title=link.get("title"),
                )
            )
    return feeds


def _page_title(html: str) -> Optional[str]:
    soup = BeautifulSoup(html, "lxml")
    if soup.title and soup.title.string:
        return clean_page_title(soup.title.string)
    return None


async def _probe_common_paths(client: httpx.AsyncClient, base_url: str) -> Optional[DiscoveredFeed]:
    logger = UnifiedLogger.get_logger(__name__)
    for path in COMMON_FEED_PATHS:
        feed_url = urljoin(base_url, path)
        try:
            response = await client.head(feed_url)
        except httpx.HTTPError as e:
            logger.debug(f"Probe failed for {feed_url}: {e}")
            continue
        if not 200 <= response.status_code < 300:
            continue
        content_type = response.headers.get("content-type", "")
        if _looks_like_feed(content_type):
            return DiscoveredFeed(url=feed_url, type=_feed_type(content_type))
    return None


async def discover_feeds(url: str, timeout: float = 10.0) -> DiscoveryResult:
    """Find the feeds a website advertises.

    1. Fetches the page and reads its <link rel="alternate"> feed links
    2. If there are none, probes common feed paths with HEAD requests

    Args:
        url: Website URL; https:// is assumed when no scheme is given
        timeout: Seconds allowed for the whole discovery

    Returns:
        DiscoveryResult; ``success`` is False when the page could not be fetched
    """
    logger = UnifiedLogger.get_logger(__name__)

    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    parsed = urlparse(url)
    site_url = f"{parsed.scheme}://{parsed.netloc}"

    async def _discover() -> DiscoveryResult:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT, "Accept": "text/html,application/xhtml+xml"},
        ) as client:
            response = await client.get(url)
            if not 200 <= response.status_code < 300:
                return DiscoveryResult(success=False, error=f"HTTP {response.status_code}")

            html = response.text
            feeds = _link_feeds(html, url)
            if not feeds:
                probed = await _probe_common_paths(client, url)
                if probed:
                    feeds.append(probed)

            return DiscoveryResult(
                success=True, feeds=feeds, page_title=_page_title(html), site_url=site_url
            )

    try:
        result = await asyncio.wait_for(_discover(), timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException):
        logger.warning(f"Feed discovery timed out for {url}")
        return DiscoveryResult(success=False, error="Request timed out")
    except httpx.HTTPError as e:
        logger.warning(f"Feed discovery failed for {url}: {e}")
        return DiscoveryResult(success=False, error=str(e) or type(e).__name__)

    logger.info(f"Discovered {len(result.feeds)} feed(s) for {url}")
    return result


async def discover_feed_url(url: str, timeout: float = 10.0) -> Optional[str]:
    """Return the first feed URL discovered for a website, or None."""
    result = await discover_feeds(url, timeout)
    if result.success and result.feeds:
        return result.feeds[0].url
    return None
