"""Unit tests for the mirror adapter, subscription events and item sources."""

import pytest

from blogroll.config import SyncOptions
from blogroll.errors import AdapterUnavailable, NotFound
from blogroll.models import BlogStatus, Provenance
from blogroll.storage import blogs, items
from blogroll.storage.database import BLOGS
from blogroll.storage.item_sources import LocalItemSource, count_items, get_items, is_mirrored, item_source_for
from blogroll.storage.mirror import MirrorStore
from blogroll.storage.sources import create_source
from blogroll.sync.context import SyncContext
from blogroll.sync.mirror import handle_subscription_event, list_mirror_channels, sync_mirror_source


pytestmark = pytest.mark.anyio


@pytest.fixture
async def mirror(store):
    mirror = MirrorStore(store)
    await mirror.channels.insert_one({"_id": "ch-1", "uid": "news", "name": "News", "order": 1})
    await mirror.channels.insert_one({"_id": "ch-2", "uid": "fun", "name": "Fun", "order": 2})
    for feed_id, channel_id, url in [
        ("f-1", "ch-1", "https://one.example/feed"),
        ("f-2", "ch-1", "https://www.two.example/feed"),
        ("f-3", "ch-2", "https://three.example/feed"),
    ]:
        await mirror.feeds.insert_one(
            {"_id": feed_id, "channel_id": channel_id, "url": url, "title": None, "status": "active"}
        )
    return mirror


@pytest.fixture
async def source(store):
    return await create_source(store, {"kind": "mirror", "name": "Reader", "category_prefix": "MS: "})


def context(store, mirror):
    return SyncContext(store=store, options=SyncOptions(), mirror=mirror)


class TestMirrorSync:
    async def test_creates_reference_blogs(self, store, mirror, source):
        result = await sync_mirror_source(context(store, mirror), source)

        assert (result.added, result.total, result.orphaned) == (3, 3, 0)
        blog = await blogs.get_blog_by_feed_url(store, "https://www.two.example/feed")
        assert blog["title"] == "two.example"
        assert blog["site_url"] == "https://www.two.example"
        assert blog["category"] == "MS: News"
        assert blog["provenance"] == Provenance.MIRROR
        assert blog["mirror_feed_id"] == "f-2"
        assert blog["skip_item_fetch"] is True

    async def test_resync_is_stable(self, store, mirror, source):
        await sync_mirror_source(context(store, mirror), source)
        result = await sync_mirror_source(context(store, mirror), source)
        assert result.added == 0
        assert await store[BLOGS].count() == 3

    async def test_orphans_are_exactly_the_vanished_feeds(self, store, mirror, source):
        await sync_mirror_source(context(store, mirror), source)
        other_source = await create_source(store, {"kind": "mirror", "name": "Other", "channel_filter": "none"})
        await blogs.upsert_blog(
            store,
            {
                "title": "Elsewhere",
                "feed_url": "https://elsewhere.example/feed",
                "source_id": other_source["_id"],
                "provenance": Provenance.MIRROR,
                "mirror_feed_id": "f-9",
            },
        )
        await mirror.feeds.delete_one({"_id": "f-3"})

        result = await sync_mirror_source(context(store, mirror), source)

        assert result.orphaned == 1
        gone = await store[BLOGS].find_one({"mirror_feed_id": "f-3"})
        assert gone["status"] == BlogStatus.DELETED
        for feed_id in ("f-1", "f-2", "f-9"):
            kept = await store[BLOGS].find_one({"mirror_feed_id": feed_id})
            assert kept["status"] != BlogStatus.DELETED

    async def test_channel_filter(self, store, mirror):
        source = await create_source(store, {"kind": "mirror", "name": "Fun only", "channel_filter": "fun"})
        result = await sync_mirror_source(context(store, mirror), source)
        assert result.total == 1

    async def test_no_matching_channels_changes_nothing(self, store, mirror, source):
        await sync_mirror_source(context(store, mirror), source)
        filtered = dict(source, channel_filter="missing")

        result = await sync_mirror_source(context(store, mirror), filtered)

        assert result.success
        assert result.orphaned == 0
        assert await store[BLOGS].count({"status": BlogStatus.DELETED}) == 0

    async def test_unavailable(self, store, source):
        with pytest.raises(AdapterUnavailable):
            await sync_mirror_source(context(store, MirrorStore(store, prefix="absent_")), source)

    async def test_list_channels(self, store, mirror):
        channels = await list_mirror_channels(mirror)
        assert [c["uid"] for c in channels] == ["news", "fun"]
        assert await list_mirror_channels(MirrorStore(store, prefix="absent_")) == []


class TestSubscriptionEvents:
    async def test_subscribe_adds_pending_blog(self, store):
        result = await handle_subscription_event(
            store, {"action": "subscribe", "url": "https://new.example/feed", "group_name": "Later"}
        )

        assert result["action"] == "added"
        blog = await blogs.get_blog(store, result["blog_id"])
        assert blog["status"] == BlogStatus.PENDING
        assert blog["category"] == "Later"
        assert blog["provenance"] == Provenance.MIRROR_WEBHOOK

    async def test_subscribe_existing(self, store):
        await blogs.create_blog(store, {"title": "Mine", "feed_url": "https://mine.example/feed"})
        await handle_subscription_event(store, {"action": "subscribe", "url": "https://new.example/feed"})

        manual = await handle_subscription_event(store, {"action": "subscribe", "url": "https://mine.example/feed"})
        again = await handle_subscription_event(store, {"action": "subscribe", "url": "https://new.example/feed"})

        assert manual["reason"] == "manual_entry"
        assert again["reason"] == "already_exists"

    async def test_subscribe_deleted(self, store):
        blog = await blogs.create_blog(store, {"title": "Gone", "feed_url": "https://gone.example/feed"})
        await blogs.delete_blog(store, blog["_id"])

        result = await handle_subscription_event(store, {"action": "subscribe", "url": "https://gone.example/feed"})

        assert result == {"ok": True, "action": "skipped", "reason": "deleted"}

    async def test_unsubscribe(self, store):
        await handle_subscription_event(store, {"action": "subscribe", "url": "https://new.example/feed"})
        await blogs.create_blog(store, {"title": "Mine", "feed_url": "https://mine.example/feed"})

        result = await handle_subscription_event(store, {"action": "unsubscribe", "url": "https://new.example/feed"})
        manual = await handle_subscription_event(store, {"action": "unsubscribe", "url": "https://mine.example/feed"})

        assert result["action"] == "deactivated"
        blog = await blogs.get_blog_by_feed_url(store, "https://new.example/feed")
        assert blog["status"] == BlogStatus.INACTIVE
        assert blog["unsubscribed_at"]
        assert manual["reason"] == "not_found_or_not_mirror"

    async def test_invalid_events(self, store):
        assert not (await handle_subscription_event(store, {"action": "poke", "url": "x"}))["ok"]
        assert not (await handle_subscription_event(store, {"action": "subscribe"}))["ok"]


class TestItemSources:
    async def test_mixed_local_and_mirrored_items(self, store, mirror, source):
        await sync_mirror_source(context(store, mirror), source)
        await mirror.items.insert_one(
            {
                "_id": "mi-1",
                "feed_id": "f-1",
                "uid": "remote-1",
                "url": "https://one.example/a",
                "name": "Remote post",
                "content": {"html": "<p>Hi</p>", "text": "Hi"},
                "published": "2024-01-03T00:00:00.000Z",
                "photo": ["https://one.example/a.jpg"],
                "category": ["x"],
            }
        )
        local = await blogs.create_blog(store, {"title": "Local", "feed_url": "https://local.example/feed"})
        await items.upsert_item(
            store, local["_id"], {"uid": "l1", "title": "Local post", "published": "2024-01-02T00:00:00.000Z"}
        )
        await items.upsert_item(
            store, local["_id"], {"uid": "l2", "title": "Newest", "published": "2024-01-04T00:00:00.000Z"}
        )

        page = await get_items(store, mirror, limit=2)

        assert [item["title"] for item in page["items"]] == ["Newest", "Remote post"]
        assert page["has_more"] is True
        remote = page["items"][1]
        assert remote["blog"]["mirror_feed_id"] == "f-1"
        assert remote["summary"] == "Hi"
        assert remote["photo"] == ["https://one.example/a.jpg"]
        assert remote["categories"] == ["x"]

        rest = await get_items(store, mirror, limit=2, offset=2)
        assert [item["title"] for item in rest["items"]] == ["Local post"]
        assert rest["has_more"] is False

    async def test_item_source_selection(self, store, mirror):
        mirrored = {"_id": "b", "provenance": Provenance.MIRROR, "mirror_feed_id": "f-1"}
        webhook = {"_id": "c", "provenance": Provenance.MIRROR_WEBHOOK}
        assert is_mirrored(mirrored)
        assert not is_mirrored(webhook)
        assert isinstance(item_source_for(webhook, store, mirror), LocalItemSource)
        assert not isinstance(item_source_for(mirrored, store, mirror), LocalItemSource)

    async def test_items_for_one_blog(self, store, mirror, source):
        await sync_mirror_source(context(store, mirror), source)
        await mirror.items.insert_one(
            {"_id": "mi-2", "feed_id": "f-1", "url": "https://one.example/b", "published": "2024-01-05T00:00:00.000Z"}
        )
        await mirror.items.insert_one({"_id": "mi-3", "feed_id": "f-3", "published": "2024-01-06T00:00:00.000Z"})
        mirrored = await blogs.get_blog_by_feed_url(store, "https://one.example/feed")

        found = await item_source_for(mirrored, store, mirror).items_for_blog(mirrored)

        assert [item["_id"] for item in found] == ["mi-2"]
        assert found[0]["blog_id"] == mirrored["_id"]
        assert found[0]["title"] == "https://one.example/b"
        assert found[0]["uid"] == "mi-2"

        local = await blogs.create_blog(store, {"title": "Local", "feed_url": "https://local.example/feed"})
        await items.upsert_item(store, local["_id"], {"uid": "l1", "published": "2024-01-02T00:00:00.000Z"})
        await items.upsert_item(store, local["_id"], {"uid": "l2", "published": "2024-01-03T00:00:00.000Z"})

        newest = await item_source_for(local, store, mirror).items_for_blog(local, limit=1)
        assert [item["uid"] for item in newest] == ["l2"]

    async def test_unknown_blog(self, store, mirror):
        with pytest.raises(NotFound):
            await get_items(store, mirror, blog_id="nope")

    async def test_count_uses_recent_window(self, store):
        blog = await blogs.create_blog(store, {"title": "Local", "feed_url": "https://local.example/feed"})
        await items.upsert_item(store, blog["_id"], {"uid": "old", "published": "2000-01-01T00:00:00.000Z"})
        await items.upsert_item(store, blog["_id"], {"uid": "new", "published": "2999-01-01T00:00:00.000Z"})

        assert await count_items(store, None) == 1
        assert await count_items(store, None, blog_id=blog["_id"]) == 1
