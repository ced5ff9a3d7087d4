"""Unit tests for the two-tier response cache."""

import json

import pytest

from rewind.riot.cache import DurableCache, generate_key, prefix_of


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(tmp_path, clock):
    return DurableCache(tmp_path / "cache", max_entries=3, clock=clock)


class TestKeys:
    """Test cache key generation."""

    def test_deterministic(self):
        """Test identical parameters give identical keys."""
        assert generate_key("matchDetails", "EUW1_1", "europe") == generate_key("matchDetails", "EUW1_1", "europe")

    def test_distinct_params(self):
        """Test different parameters give different keys."""
        assert generate_key("matchDetails", "EUW1_1") != generate_key("matchDetails", "EUW1_2")

    def test_no_separator_collisions(self):
        """Test underscores inside parameters cannot collide."""
        assert generate_key("account", "a_b", "c") != generate_key("account", "a", "b_c")

    def test_prefix_stays_readable(self):
        """Test the prefix can be read back from a key."""
        key = generate_key("matchIds", "puuid", 0, 100)
        assert prefix_of(key) == "matchIds"


class TestGetSet:
    """Test the memory and disk tiers."""

    def test_miss(self, cache):
        """Test an unknown key is a counted miss."""
        assert cache.get(generate_key("summoner", "x")) is None
        assert cache.counters.misses == 1

    def test_memory_hit(self, cache):
        """Test a fresh entry is served from memory."""
        key = generate_key("summoner", "x")
        cache.set(key, {"puuid": "x"})
        assert cache.get(key) == {"puuid": "x"}
        assert cache.counters.memory_hits == 1

    def test_disk_record_format(self, cache, clock):
        """Test the on-disk record layout and temp file cleanup."""
        key = generate_key("summoner", "x")
        cache.set(key, {"puuid": "x"})
        with open(cache.cache_dir / f"{key}.json", encoding="utf-8") as f:
            record = json.load(f)
        assert record == {"storedAt": int(clock.now * 1000), "payload": {"puuid": "x"}}
        assert not list(cache.cache_dir.glob("*.tmp"))

    def test_memory_only_entry(self, tmp_path, clock):
        """Test an entry stored without persist never reaches disk."""
        cache = DurableCache(tmp_path / "cache", clock=clock)
        key = generate_key("matchIds", "p-1", 0, 100)
        cache.set(key, ["EUW1_1"], persist=False)

        assert cache.get(key) == ["EUW1_1"]
        assert not (cache.cache_dir / f"{key}.json").exists()
        assert DurableCache(tmp_path / "cache", clock=clock).get(key) is None

    def test_disk_survives_restart(self, tmp_path, clock):
        """Test a new cache instance reads disk and promotes to memory."""
        key = generate_key("matchDetails", "EUW1_1")
        DurableCache(tmp_path / "cache", clock=clock).set(key, {"info": {}})

        fresh = DurableCache(tmp_path / "cache", clock=clock)
        assert fresh.get(key) == {"info": {}}
        assert fresh.counters.disk_hits == 1
        # promoted into memory
        assert fresh.get(key) == {"info": {}}
        assert fresh.counters.memory_hits == 1

    def test_memory_expiry_falls_back_to_disk(self, cache, clock):
        """Test an expired memory entry is reread from disk."""
        key = generate_key("summoner", "x")
        cache.set(key, {"puuid": "x"})
        clock.now += 3600
        assert cache.get(key) == {"puuid": "x"}
        assert cache.counters.disk_hits == 1

    def test_disk_never_expires(self, cache, clock):
        """Test disk entries are served a year later."""
        key = generate_key("matchDetails", "EUW1_1")
        cache.set(key, {"info": {}})
        clock.now += 365 * 24 * 3600
        assert cache.get(key) == {"info": {}}

    def test_per_prefix_memory_ttl(self, cache):
        """Test memory TTLs follow the key prefix."""
        assert cache.memory_ttl(generate_key("matchDetails", "a")) == 24 * 3600
        assert cache.memory_ttl(generate_key("matchIds", "a")) == 2 * 3600
        assert cache.memory_ttl(generate_key("somethingElse", "a")) == 3600

    def test_memory_is_bounded(self, cache):
        """Test the memory tier evicts beyond its capacity."""
        keys = [generate_key("summoner", i) for i in range(5)]
        for i, key in enumerate(keys):
            cache.set(key, {"n": i})
        assert cache.stats()["memory"]["entries"] == 3
        # evicted from memory, still on disk
        assert cache.get(keys[0]) == {"n": 0}
        assert cache.counters.disk_hits == 1

    def test_corrupted_file_is_deleted(self, cache):
        """Test an unparsable file is deleted and treated as a miss."""
        key = generate_key("summoner", "x")
        path = cache.cache_dir / f"{key}.json"
        path.write_text("{not json", encoding="utf-8")

        assert cache.get(key) is None
        assert not path.exists()
        assert cache.counters.corrupted == 1

    def test_file_without_payload_is_corrupted(self, cache):
        """Test a record without payload is treated as corrupted."""
        key = generate_key("summoner", "x")
        path = cache.cache_dir / f"{key}.json"
        path.write_text(json.dumps({"storedAt": 1}), encoding="utf-8")
        assert cache.get(key) is None
        assert not path.exists()


class TestMaintenance:
    """Test administrative operations."""

    def test_prune_memory(self, cache, clock):
        """Test pruning drops only expired memory entries."""
        cache.set(generate_key("summoner", "a"), 1)
        cache.set(generate_key("matchDetails", "b"), 2)
        clock.now += 2 * 3600
        assert cache.prune_memory() == 1
        assert cache.stats()["memory"]["entries"] == 1

    def test_purge_corrupted(self, cache):
        """Test the disk scan deletes unreadable files."""
        cache.set(generate_key("summoner", "ok"), {"ok": True})
        (cache.cache_dir / "summoner_bad.json").write_text("garbage", encoding="utf-8")
        assert cache.purge_corrupted() == 1
        assert cache.stats()["disk"] == {
            "total": 1, "valid": 1, "corrupted": 0,
            "size": (cache.cache_dir / f"{generate_key('summoner', 'ok')}.json").stat().st_size,
        }

    def test_clear_all(self, cache):
        """Test clearing removes every disk file."""
        key = generate_key("summoner", "a")
        cache.set(key, 1)
        assert cache.clear_all() == 1
        assert cache.get(key) is None

    def test_delete(self, cache):
        """Test deleting a single key."""
        key = generate_key("summoner", "a")
        cache.set(key, 1)
        assert cache.delete(key)
        assert cache.get(key) is None

    def test_hit_rate(self, cache):
        """Test the hit rate over hits and misses."""
        key = generate_key("summoner", "a")
        cache.get(key)
        cache.set(key, 1)
        cache.get(key)
        assert cache.stats()["hit_rate"] == 50
