"""Unit tests for blog, item and source reconciliation."""

import asyncio
from datetime import datetime, timezone

import pytest

from blogroll.models import BlogStatus, Provenance
from blogroll.storage import blogs, items, sources
from blogroll.storage.database import BLOGS, ITEMS, SOURCES


pytestmark = pytest.mark.anyio

FEED = "https://example.com/feed.xml"


def candidate(source_id="src-1", **overrides):
    data = {
        "title": "Example",
        "feed_url": FEED,
        "site_url": "https://example.com",
        "feed_type": "rss",
        "category": "Tech",
        "source_id": source_id,
        "provenance": Provenance.LIST,
    }
    data.update(overrides)
    return data


class TestUpsertBlog:
    async def test_insert_sets_operator_defaults(self, store):
        result = await blogs.upsert_blog(store, candidate())

        assert result.upserted
        blog = await blogs.get_blog(store, result.blog_id)
        assert blog["pinned"] is False
        assert blog["hidden"] is False
        assert blog["item_count"] == 0
        assert blog["status"] == BlogStatus.ACTIVE
        assert blog["provenance"] == Provenance.LIST

    async def test_resync_overwrites_sync_fields_and_keeps_operator_fields(self, store):
        first = await blogs.upsert_blog(store, candidate())
        await blogs.update_blog(store, first.blog_id, {"pinned": True, "notes": "favourite"})

        second = await blogs.upsert_blog(store, candidate(title="Renamed", category="Writing"))

        assert not second.upserted
        assert second.modified
        blog = await blogs.get_blog(store, first.blog_id)
        assert blog["title"] == "Renamed"
        assert blog["category"] == "Writing"
        assert blog["pinned"] is True
        assert blog["notes"] == "favourite"
        assert await store[BLOGS].count() == 1

    async def test_soft_deleted_blog_is_never_resurrected(self, store):
        created = await blogs.create_blog(store, {"title": "Example", "feed_url": FEED})
        assert await blogs.delete_blog(store, created["_id"])

        result = await blogs.upsert_blog(store, candidate())

        assert result.skipped_deleted
        assert await store[BLOGS].count() == 1
        blog = await blogs.get_blog(store, created["_id"])
        assert blog["status"] == BlogStatus.DELETED
        assert await blogs.get_blog_by_feed_url(store, FEED) is None

    async def test_soft_delete_suppresses_every_provenance(self, store):
        first = await blogs.upsert_blog(store, candidate())
        await blogs.delete_blog(store, first.blog_id)

        result = await blogs.upsert_blog(
            store, candidate(source_id="src-2", provenance=Provenance.REMOTE_DIRECTORY)
        )
        assert result.skipped_deleted

    async def test_concurrent_sources_share_one_blog(self, store):
        results = await asyncio.gather(
            *(blogs.upsert_blog(store, candidate(source_id=f"src-{n}")) for n in range(4))
        )

        assert sum(1 for r in results if r.upserted) == 1
        assert sum(1 for r in results if r.skipped_duplicate) == 3
        assert await store[BLOGS].count({"feed_url": FEED}) == 1

    async def test_manual_blog_is_not_taken_over_by_a_source(self, store):
        manual = await blogs.create_blog(store, {"title": "Mine", "feed_url": FEED, "category": "Friends"})

        result = await blogs.upsert_blog(store, candidate())

        assert result.skipped_duplicate
        assert result.blog_id == manual["_id"]
        blog = await blogs.get_blog(store, manual["_id"])
        assert blog["title"] == "Mine"
        assert blog["source_id"] is None

    async def test_blog_of_another_source_is_left_alone(self, store):
        await blogs.upsert_blog(store, candidate(source_id="src-1"))

        result = await blogs.upsert_blog(store, candidate(source_id="src-2", title="Other"))

        assert result.skipped_duplicate
        assert (await blogs.get_blog_by_feed_url(store, FEED))["source_id"] == "src-1"

    async def test_unowned_automated_blog_is_claimed(self, store):
        webhook = await blogs.upsert_blog(
            store,
            {"title": "example.com", "feed_url": FEED, "provenance": Provenance.MIRROR_WEBHOOK},
        )

        result = await blogs.upsert_blog(store, candidate())

        assert not result.skipped
        assert result.blog_id == webhook.blog_id
        blog = await blogs.get_blog(store, webhook.blog_id)
        assert blog["source_id"] == "src-1"
        assert blog["provenance"] == Provenance.LIST
        assert await store[BLOGS].count() == 1

    async def test_create_blog_rejects_duplicates(self, store):
        await blogs.create_blog(store, {"title": "Example", "feed_url": FEED})
        with pytest.raises(ValueError):
            await blogs.create_blog(store, {"title": "Again", "feed_url": FEED})


class TestBlogQueries:
    async def test_pinned_first_then_title(self, store):
        for title, pinned in [("Charlie", False), ("Alpha", False), ("Zulu", True)]:
            await blogs.create_blog(
                store, {"title": title, "feed_url": f"https://{title}.example/feed", "pinned": pinned}
            )

        listed = await blogs.get_blogs(store)
        assert [b["title"] for b in listed] == ["Zulu", "Alpha", "Charlie"]

    async def test_categories_count_visible_blogs_only(self, store):
        await blogs.create_blog(store, {"title": "A", "feed_url": "https://a.example/feed", "category": "Tech"})
        await blogs.create_blog(store, {"title": "B", "feed_url": "https://b.example/feed", "category": "Tech"})
        await blogs.create_blog(
            store, {"title": "C", "feed_url": "https://c.example/feed", "category": "Art", "hidden": True}
        )
        await blogs.create_blog(store, {"title": "D", "feed_url": "https://d.example/feed"})
        gone = await blogs.create_blog(
            store, {"title": "E", "feed_url": "https://e.example/feed", "category": "Art"}
        )
        await blogs.delete_blog(store, gone["_id"])

        assert await blogs.get_categories(store) == [{"category": "Tech", "count": 2}]

    async def test_delete_blog_removes_items(self, store):
        blog = await blogs.create_blog(store, {"title": "A", "feed_url": FEED})
        await items.upsert_item(store, blog["_id"], {"uid": "u1", "published": "2024-01-01T00:00:00.000Z"})

        await blogs.delete_blog(store, blog["_id"])

        assert await store[ITEMS].count({"blog_id": blog["_id"]}) == 0


class TestItems:
    async def test_upsert_is_idempotent_by_uid(self, store):
        item = {"uid": "u1", "title": "Post", "published": "2024-01-01T00:00:00.000Z"}

        first = await items.upsert_item(store, "blog-1", item)
        second = await items.upsert_item(store, "blog-1", item)

        assert first.upserted
        assert not second.upserted
        assert await store[ITEMS].count() == 1

    async def test_same_uid_on_different_blogs_is_two_items(self, store):
        item = {"uid": "u1", "published": "2024-01-01T00:00:00.000Z"}
        await items.upsert_item(store, "blog-1", item)
        await items.upsert_item(store, "blog-2", item)
        assert await store[ITEMS].count() == 2


class TestRetention:
    NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)

    async def _insert(self, store, uid, published, fetched_at="2024-06-15T11:00:00.000Z"):
        await store[ITEMS].insert_one(
            {"blog_id": "b", "uid": uid, "published": published, "fetched_at": fetched_at}
        )

    async def test_boundary_item_is_kept(self, store):
        await self._insert(store, "at-cutoff", "2024-06-08T12:00:00.000Z")
        await self._insert(store, "just-older", "2024-06-08T11:59:59.999Z")
        await self._insert(store, "recent", "2024-06-14T00:00:00.000Z")

        deleted = await items.delete_old_items(store, 7, now=self.NOW)

        assert deleted == 1
        remaining = sorted(doc["uid"] for doc in await store[ITEMS].find())
        assert remaining == ["at-cutoff", "recent"]

    async def test_future_dated_items_expire_when_not_refetched(self, store):
        await self._insert(store, "future-fresh", "2030-01-01T00:00:00.000Z")
        await self._insert(
            store, "future-stale", "2030-01-01T00:00:00.000Z", fetched_at="2024-06-01T00:00:00.000Z"
        )

        deleted = await items.delete_old_items(store, 7, now=self.NOW)

        assert deleted == 1
        assert [doc["uid"] for doc in await store[ITEMS].find()] == ["future-fresh"]


class TestSources:
    async def test_create_validates_kind_and_fields(self, store):
        with pytest.raises(ValueError):
            await sources.create_source(store, {"kind": "carrier-pigeon", "name": "x"})
        with pytest.raises(ValueError):
            await sources.create_source(store, {"kind": "list_url", "name": "x"})
        with pytest.raises(ValueError):
            await sources.create_source(store, {"kind": "remote_directory", "name": "x", "remote_instance": "h"})

    async def test_create_defaults(self, store):
        source = await sources.create_source(store, {"kind": "mirror", "name": "Reader"})
        assert source["enabled"] is True
        assert source["sync_interval"] == 60
        assert source["last_sync_at"] is None

    async def test_sync_status_failure_keeps_last_success(self, store):
        source = await sources.create_source(store, {"kind": "mirror", "name": "Reader"})
        await sources.update_source_sync_status(store, source["_id"], True)
        synced_at = (await sources.get_source(store, source["_id"]))["last_sync_at"]

        await sources.update_source_sync_status(store, source["_id"], False, "boom")

        updated = await sources.get_source(store, source["_id"])
        assert updated["last_sync_at"] == synced_at
        assert updated["last_sync_error"] == "boom"

    async def test_enabled_only(self, store):
        await sources.create_source(store, {"kind": "mirror", "name": "On"})
        await sources.create_source(store, {"kind": "mirror", "name": "Off", "enabled": False})
        assert [s["name"] for s in await sources.get_sources(store, enabled_only=True)] == ["On"]

    async def test_delete_cascades_to_blogs_and_items(self, store):
        source = await sources.create_source(store, {"kind": "mirror", "name": "Reader"})
        result = await blogs.upsert_blog(store, candidate(source_id=source["_id"]))
        await items.upsert_item(store, result.blog_id, {"uid": "u1", "published": "2024-01-01T00:00:00.000Z"})

        assert await sources.delete_source(store, source["_id"])

        assert await store[SOURCES].count() == 0
        assert await store[BLOGS].count() == 0
        assert await store[ITEMS].count() == 0
        assert not await sources.delete_source(store, source["_id"])
