"""HTTP fetching with explicit timeouts.

A timeout cancels the in-flight request and raises ``FetchTimeout``; any
other transport failure or a non-2xx response raises ``FetchFailed``.
"""

import asyncio
from dataclasses import dataclass

import httpx

from blogroll.errors import FetchFailed, FetchTimeout
from blogroll.log_system import UnifiedLogger


USER_AGENT = "Blogroll/1.0 (Feed Aggregator)"

FEED_ACCEPT = "application/atom+xml, application/rss+xml, application/json, application/feed+json, */*"
OPML_ACCEPT = "text/x-opml, application/xml, text/xml, */*"


@dataclass
class FetchedDocument:
    url: str
    status_code: int
    text: str
    content_type: str


async def fetch_text(url: str, timeout: float = 15.0, accept: str = "*/*") -> FetchedDocument:
    """GET a URL and return its decoded body.

    Args:
        url: Absolute URL
        timeout: Seconds before the request is cancelled
        accept: Accept header value

    Returns:
        The fetched document

    Raises:
        FetchTimeout: If the request did not finish within ``timeout``
        FetchFailed: On network errors or non-2xx responses
    """
    logger = UnifiedLogger.get_logger(__name__)

    async def _get() -> httpx.Response:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT, "Accept": accept},
        ) as client:
            return await client.get(url)

    try:
        response = await asyncio.wait_for(_get(), timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        logger.warning(f"Timed out fetching {url} after {timeout:g}s")
        raise FetchTimeout(url, timeout) from e
    except httpx.HTTPError as e:
        logger.warning(f"Failed to fetch {url}: {e}")
        raise FetchFailed(str(e) or type(e).__name__) from e

    if not 200 <= response.status_code < 300:
        raise FetchFailed(f"HTTP {response.status_code}", status_code=response.status_code)

    return FetchedDocument(
        url=url,
        status_code=response.status_code,
        text=response.text,
        content_type=response.headers.get("content-type", ""),
    )
