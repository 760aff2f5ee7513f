"""Unit tests for the SQLite-backed document store."""

import pytest

from blogroll.storage.document_store import DocumentStore, compile_filter


pytestmark = pytest.mark.anyio


@pytest.fixture
async def docs():
    store = await DocumentStore.open(":memory:")
    collection = store["things"]
    for doc in [
        {"_id": "a", "name": "alpha", "rank": 3, "status": "active", "tags": ["x"]},
        {"_id": "b", "name": "beta", "rank": 1, "status": "deleted", "hidden": True},
        {"_id": "c", "name": "gamma", "rank": 2, "status": "active", "hidden": False, "group": None},
    ]:
        await collection.insert_one(doc)
    yield collection
    await store.close()


class TestFilters:
    async def test_equality_and_id(self, docs):
        assert (await docs.find_one({"_id": "a"}))["name"] == "alpha"
        assert [d["_id"] for d in await docs.find({"status": "active"})] == ["a", "c"]

    async def test_ne_matches_missing_fields(self, docs):
        """A document without ``hidden`` counts as not hidden."""
        visible = await docs.find({"hidden": {"$ne": True}})
        assert sorted(d["_id"] for d in visible) == ["a", "c"]

    async def test_in_and_nin(self, docs):
        assert sorted(d["_id"] for d in await docs.find({"_id": {"$in": ["a", "b"]}})) == ["a", "b"]
        assert [d["_id"] for d in await docs.find({"_id": {"$nin": ["a", "b"]}})] == ["c"]
        assert await docs.find({"_id": {"$in": []}}) == []
        assert await docs.count({"_id": {"$nin": []}}) == 3

    async def test_comparisons(self, docs):
        assert sorted(d["_id"] for d in await docs.find({"rank": {"$gte": 2}})) == ["a", "c"]
        assert [d["_id"] for d in await docs.find({"rank": {"$lt": 2}})] == ["b"]

    async def test_or(self, docs):
        found = await docs.find({"$or": [{"rank": 3}, {"status": "deleted"}]})
        assert sorted(d["_id"] for d in found) == ["a", "b"]

    async def test_null_and_exists(self, docs):
        assert [d["_id"] for d in await docs.find({"group": {"$exists": True}})] == ["c"]
        assert sorted(d["_id"] for d in await docs.find({"group": None})) == ["a", "b", "c"]

    async def test_sort_limit_skip(self, docs):
        ranked = await docs.find(sort=[("rank", -1)])
        assert [d["_id"] for d in ranked] == ["a", "c", "b"]
        page = await docs.find(sort=[("rank", 1)], limit=1, skip=1)
        assert [d["_id"] for d in page] == ["c"]

    def test_rejects_unsafe_field_names(self):
        with pytest.raises(ValueError):
            compile_filter({"name') OR 1=1 --": "x"})

    def test_rejects_unknown_operator(self):
        with pytest.raises(ValueError):
            compile_filter({"rank": {"$regex": "a"}})


class TestWrites:
    async def test_update_one_without_change_is_not_a_modification(self, docs):
        result = await docs.update_one({"_id": "a"}, {"name": "alpha"})
        assert result.matched_count == 1
        assert result.modified_count == 0

    async def test_upsert_inserts_filter_fields_and_insert_defaults(self, docs):
        result = await docs.update_one(
            {"name": "delta"}, {"rank": 9}, set_on_insert={"status": "new"}, upsert=True
        )
        assert result.upserted_id is not None
        doc = await docs.find_one({"_id": result.upserted_id})
        assert doc == {"_id": result.upserted_id, "name": "delta", "rank": 9, "status": "new"}

    async def test_set_on_insert_not_applied_on_update(self, docs):
        await docs.update_one({"_id": "a"}, {"rank": 10}, set_on_insert={"status": "new"}, upsert=True)
        doc = await docs.find_one({"_id": "a"})
        assert doc["rank"] == 10
        assert doc["status"] == "active"

    async def test_update_many_and_delete(self, docs):
        result = await docs.update_many({"status": "active"}, {"rank": 0})
        assert (result.matched_count, result.modified_count) == (2, 2)
        assert await docs.delete_many({"rank": 0}) == 2
        assert await docs.delete_one({"_id": "missing"}) == 0
        assert await docs.count() == 1

    async def test_distinct_counts(self, docs):
        assert await docs.distinct_counts("status") == [("active", 2), ("deleted", 1)]


async def test_reads_on_missing_collection_do_not_create_it():
    store = await DocumentStore.open(":memory:")
    try:
        assert await store["ghost"].find() == []
        assert await store["ghost"].count() == 0
        assert not await store.has_collection("ghost")
    finally:
        await store.close()
