"""Unit tests for website feed discovery."""

import httpx
import pytest

from blogroll.services.feed_discovery import clean_page_title, discover_feed_url, discover_feeds


pytestmark = pytest.mark.anyio

PAGE = """<html><head>
  <title>Ann's Notes - Home</title>
  <link rel="alternate" type="application/rss+xml" title="RSS" href="/feed.xml">
  <link rel="alternate" type="application/atom+xml" href="https://example.com/atom.xml">
  <link rel="alternate" type="application/feed+json" href="feed.json">
  <link rel="alternate" hreflang="de" href="/de/">
  <link rel="stylesheet" href="/style.css">
</head><body></body></html>"""


async def test_link_tags(http_routes):
    http_routes.add("https://example.com/blog/", PAGE, content_type="text/html")

    result = await discover_feeds("https://example.com/blog/")

    assert result.success
    assert [(f.url, f.type) for f in result.feeds] == [
        ("https://example.com/feed.xml", "rss"),
        ("https://example.com/atom.xml", "atom"),
        ("https://example.com/blog/feed.json", "jsonfeed"),
    ]
    assert result.feeds[0].title == "RSS"
    assert result.page_title == "Ann's Notes"
    assert result.site_url == "https://example.com"


async def test_scheme_is_added_and_paths_probed(http_routes):
    http_routes.add("https://example.com", "<html><head><title>Plain</title></head></html>", content_type="text/html")
    http_routes.add("https://example.com/rss", "", content_type="text/html")
    http_routes.add("https://example.com/rss.xml", "", content_type="application/rss+xml; charset=utf-8")

    result = await discover_feeds("example.com")

    assert result.success
    assert [(f.url, f.type) for f in result.feeds] == [("https://example.com/rss.xml", "rss")]
    assert "https://example.com/feed" in http_routes.calls


async def test_nothing_found(http_routes):
    http_routes.add("https://example.com", "<html></html>", content_type="text/html")

    result = await discover_feeds("https://example.com")

    assert result.success
    assert result.feeds == []
    assert await discover_feed_url("https://example.com") is None


async def test_page_errors(http_routes):
    http_routes.add("https://gone.example", "", status_code=404, content_type="text/html")
    http_routes.fail("https://down.example", httpx.ConnectError("refused"))

    missing = await discover_feeds("https://gone.example")
    down = await discover_feeds("https://down.example")

    assert not missing.success
    assert missing.error == "HTTP 404"
    assert not down.success
    assert down.error == "refused"


async def test_timeout(http_routes):
    http_routes.stall("https://slow.example", 5.0)
    result = await discover_feeds("https://slow.example", timeout=0.05)
    assert not result.success
    assert result.error == "Request timed out"


async def test_discover_feed_url(http_routes):
    http_routes.add("https://example.com/blog/", PAGE, content_type="text/html")
    assert await discover_feed_url("https://example.com/blog/") == "https://example.com/feed.xml"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Ann's Notes - Home", "Ann's Notes"),
        ("Ann's Notes | Blog", "Ann's Notes"),
        ("Ann: Home page", "Ann"),
        ("  Plain  ", "Plain"),
        ("", None),
    ],
)
def test_clean_page_title(raw, expected):
    assert clean_page_title(raw) == expected
