"""Unit tests for subscription-list (OPML) parsing and export."""

from datetime import datetime, timezone

import pytest

from blogroll.errors import FetchFailed, ParseFailed
from blogroll.models import CandidateBlog
from blogroll.services.subscription_list import (
    detect_feed_type,
    fetch_and_parse_subscription_list,
    generate_subscription_list,
    parse_subscription_list,
)


pytestmark = pytest.mark.anyio

OPML = """<?xml version="1.0" encoding="UTF-8"?>
<opml version="2.0">
  <head><title>Friends</title></head>
  <body>
    <outline text="Tech" title="Tech">
      <outline type="rss" text="Alpha" xmlUrl="https://alpha.example/feed" htmlUrl="https://alpha.example/"/>
      <outline type="atom" text="Beta" xmlUrl="https://beta.example/atom.xml"/>
      <outline text="Nested folder">
        <outline text="Too deep" xmlUrl="https://deep.example/feed"/>
      </outline>
    </outline>
    <outline type="rss" text="Gamma" xmlUrl="https://gamma.example/feed" category="/Writing/Essays, Other"/>
    <outline text="Just a note"/>
  </body>
</opml>
"""


class TestParse:
    def test_folder_and_uncategorized_entries(self):
        blogs = parse_subscription_list(OPML)

        assert [(b.title, b.category) for b in blogs] == [
            ("Alpha", "Tech"),
            ("Beta", "Tech"),
            ("Gamma", ""),
        ]
        assert blogs[0].site_url == "https://alpha.example/"
        assert blogs[1].feed_type == "atom"

    def test_declared_category_is_first_entry(self):
        gamma = parse_subscription_list(OPML)[2]
        assert gamma.declared_category == "Writing/Essays"

    def test_not_opml(self):
        with pytest.raises(ParseFailed):
            parse_subscription_list("<html><body>nope</body></html>")

    def test_missing_body_is_empty(self):
        assert parse_subscription_list('<opml version="2.0"><head/></opml>') == []

    @pytest.mark.parametrize(
        "hint,expected",
        [(None, "rss"), ("RSS", "rss"), ("atom", "atom"), ("application/feed+json", "jsonfeed")],
    )
    def test_detect_feed_type(self, hint, expected):
        assert detect_feed_type(hint) == expected


class TestExport:
    def test_round_trip_preserves_triples(self):
        blogs = [
            {"title": "Zed & Co", "feed_url": "https://z.example/feed", "site_url": "", "category": "Tech"},
            {"title": "Alpha", "feed_url": "https://a.example/feed", "site_url": "https://a.example/", "category": ""},
            {"title": "Art Blog", "feed_url": "https://art.example/feed", "category": "Art"},
            CandidateBlog(title="Beta", feed_url="https://b.example/feed", category="Tech"),
        ]

        document = generate_subscription_list(blogs, title="Export")
        parsed = parse_subscription_list(document)

        def triple(blog):
            if isinstance(blog, dict):
                return (blog["title"], blog["feed_url"], blog["category"])
            return (blog.title, blog.feed_url, blog.category)

        assert sorted(triple(b) for b in parsed) == sorted(triple(b) for b in blogs)

    def test_uncategorized_first_then_sorted_folders(self):
        blogs = [
            {"title": "T1", "feed_url": "https://t1.example/feed", "category": "Tech"},
            {"title": "A1", "feed_url": "https://a1.example/feed", "category": "Art"},
            {"title": "U1", "feed_url": "https://u1.example/feed", "category": ""},
            {"title": "T2", "feed_url": "https://t2.example/feed", "category": "Tech"},
        ]

        parsed = parse_subscription_list(generate_subscription_list(blogs))

        assert [(b.title, b.category) for b in parsed] == [
            ("U1", ""),
            ("A1", "Art"),
            ("T1", "Tech"),
            ("T2", "Tech"),
        ]

    def test_head(self):
        document = generate_subscription_list(
            [], title="Mine", now=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        )
        assert "<title>Mine</title>" in document
        assert "Tue, 02 Jan 2024 03:04:05 GMT" in document


class TestFetch:
    async def test_fetch_and_parse(self, http_routes):
        http_routes.add("https://lists.example/opml", OPML, content_type="text/x-opml")
        blogs = await fetch_and_parse_subscription_list("https://lists.example/opml")
        assert len(blogs) == 3

    async def test_fetch_failure(self, http_routes):
        with pytest.raises(FetchFailed):
            await fetch_and_parse_subscription_list("https://lists.example/missing")
