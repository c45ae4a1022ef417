"""Tests for the in-memory store backends."""

import pytest

from agentmem.persistence.memory_backend import InMemoryKeyValueStore, InMemorySemanticStore


class TestInMemoryKeyValueStore:
    """Tests for InMemoryKeyValueStore."""

    @pytest.fixture
    def store(self, clock):
        return InMemoryKeyValueStore(clock=clock)

    async def test_set_and_get(self, store):
        """Should round-trip values."""
        await store.set("key", b"value")

        assert await store.get("key") == b"value"
        assert await store.get("missing") is None

    async def test_ttl_expiry(self, store, clock):
        """Should hide values once their TTL passes."""
        await store.set("key", b"value", ttl_seconds=10)

        clock.advance(9)
        assert await store.get("key") == b"value"

        clock.advance(1)
        assert await store.get("key") is None

    async def test_no_ttl_persists(self, store, clock):
        """Should keep values without a TTL."""
        await store.set("key", b"value")
        clock.advance(10**6)

        assert await store.get("key") == b"value"
        assert await store.ttl("key") is None

    async def test_overwrite_resets_ttl(self, store, clock):
        """Should replace the deadline on overwrite."""
        await store.set("key", b"one", ttl_seconds=10)
        clock.advance(8)
        await store.set("key", b"two", ttl_seconds=10)
        clock.advance(8)

        assert await store.get("key") == b"two"

    async def test_delete(self, store):
        """Should report whether the key existed."""
        await store.set("key", b"value")

        assert await store.delete("key") is True
        assert await store.delete("key") is False

    async def test_expire(self, store, clock):
        """Should reset the deadline of a live key only."""
        await store.set("key", b"value", ttl_seconds=10)

        assert await store.expire("key", 100) is True
        assert await store.ttl("key") == pytest.approx(100)
        assert await store.expire("missing", 100) is False

        clock.advance(101)
        assert await store.expire("key", 100) is False


class TestInMemorySemanticStore:
    """Tests for InMemorySemanticStore."""

    @pytest.fixture
    def store(self):
        return InMemorySemanticStore()

    async def test_search_ranks_by_overlap(self, store):
        """Should rank records sharing more words higher."""
        await store.insert("c", "1", "red apples and green pears")
        await store.insert("c", "2", "red apples")
        await store.insert("c", "3", "blue sky")

        results = await store.search("c", "red apples", 10)

        assert [r.id for r in results] == ["2", "1"]
        assert results[0].score == pytest.approx(1.0)
        assert results[0].distance == pytest.approx(0.0)

    async def test_search_is_case_insensitive(self, store):
        """Should ignore case when matching words."""
        await store.insert("c", "1", "Launch Plan")

        assert len(await store.search("c", "launch", 5)) == 1

    async def test_wildcard_matches_all(self, store):
        """Should return everything for '*', newest first."""
        await store.insert("c", "1", "first")
        await store.insert("c", "2", "second")

        results = await store.search("c", "*", 10)

        assert [r.id for r in results] == ["2", "1"]

    async def test_filters(self, store):
        """Should only return records whose metadata matches."""
        await store.insert("c", "1", "note", {"agent_id": "a"})
        await store.insert("c", "2", "note", {"agent_id": "b"})

        results = await store.search("c", "note", 10, {"agent_id": "a"})

        assert [r.id for r in results] == ["1"]
        assert results[0].metadata == {"agent_id": "a"}

    async def test_unknown_collection(self, store):
        """Should treat a missing collection as empty."""
        assert await store.search("missing", "*", 10) == []
        assert await store.count("missing") == 0
        assert await store.delete("missing", ["1"]) == 0
        assert await store.delete_least_accessed("missing", 1) == 0

    async def test_insert_replaces_same_id(self, store):
        """Should upsert by record id."""
        await store.insert("c", "1", "old text")
        await store.insert("c", "1", "new text")

        [record] = await store.search("c", "*", 10)

        assert record.content == "new text"
        assert await store.count("c") == 1

    async def test_delete(self, store):
        """Should delete only existing ids."""
        await store.insert("c", "1", "one")
        await store.insert("c", "2", "two")

        assert await store.delete("c", ["1", "9"]) == 1
        assert await store.count("c") == 1

    async def test_delete_least_accessed(self, store):
        """Should remove never-searched records before searched ones."""
        await store.insert("c", "1", "alpha")
        await store.insert("c", "2", "beta")
        await store.insert("c", "3", "gamma")
        await store.search("c", "alpha", 1)

        assert await store.delete_least_accessed("c", 2) == 2

        [survivor] = await store.search("c", "*", 10)
        assert survivor.id == "1"

    async def test_close_clears(self, store):
        """Should drop all data on close."""
        await store.insert("c", "1", "one")
        await store.close()

        assert await store.count("c") == 0
