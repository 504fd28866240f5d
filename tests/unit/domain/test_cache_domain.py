"""
Unit tests for Cache Domain Layer.

Tests value objects and entities of the cache domain.
"""

import pytest

from event_discovery.domain.cache.entities import (
    CacheEntry,
    CacheSnapshot,
    CacheStats,
    SnapshotEntry,
)
from event_discovery.domain.cache.value_objects import (
    TTL,
    CacheKey,
    CacheTag,
    normalize_key,
    normalize_tag,
)


class TestCacheKey:
    """Test CacheKey value object."""

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            CacheKey("")

    def test_long_key_rejected(self):
        with pytest.raises(ValueError, match="too long"):
            CacheKey("x" * 1025)

    def test_event_list_key_ignores_param_order(self):
        first = CacheKey.event_list({"city": "Berlin", "page": 1})
        second = CacheKey.event_list({"page": 1, "city": "Berlin"})

        assert first == second
        assert first.value.startswith("events:list:")

    def test_namespaced_factories(self):
        assert str(CacheKey.event_detail(42)) == "events:detail:42"
        assert str(CacheKey.popular_events()) == "events:popular"
        assert str(CacheKey.trending_events()) == "events:trending"
        assert str(CacheKey.event_category("music")) == "events:category:music"
        assert str(CacheKey.event_analytics("e1")) == "events:analytics:e1"
        assert str(CacheKey.user_favorites("u1")) == "user:favorites:u1"
        assert str(CacheKey.user_preferences("u1")) == "user:preferences:u1"
        assert str(CacheKey.api_response("ticketmaster", "q=jazz")) == "api:ticketmaster:q=jazz"

    def test_search_key_defaults_to_global(self):
        assert str(CacheKey.event_search("jazz")) == "events:search:jazz:global"
        assert str(CacheKey.event_search("jazz", "Paris")) == "events:search:jazz:Paris"

    def test_location_key(self):
        assert str(CacheKey.events_near(52.5, 13.4, 10)) == "events:location:52.5:13.4:10"

    def test_normalize_key(self):
        assert normalize_key(CacheKey("a:b")) == "a:b"
        assert normalize_key("a:b") == "a:b"


class TestCacheTag:
    """Test tag vocabulary."""

    def test_tag_values(self):
        assert CacheTag.USER_DATA.value == "user-data"
        assert CacheTag.LOCATION_BASED.value == "location-based"
        assert CacheTag.SEARCH_RESULTS.value == "search-results"

    def test_normalize_tag(self):
        assert normalize_tag(CacheTag.EVENTS) == "events"
        assert normalize_tag("custom") == "custom"


class TestTTL:
    """Test TTL value object."""

    def test_presets(self):
        assert TTL.event_list().seconds == 300
        assert TTL.event_detail().seconds == 900
        assert TTL.search_results().seconds == 120
        assert TTL.user_data().seconds == 3600

    def test_non_positive_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            TTL(0)

    def test_too_large_rejected(self):
        with pytest.raises(ValueError, match="too large"):
            TTL(86400 * 366)


class TestCacheEntry:
    """Test CacheEntry entity."""

    def test_expiry_is_strictly_after_ttl(self):
        entry = CacheEntry(data="x", created_at=100.0, ttl_seconds=10.0)

        assert not entry.is_expired(110.0)
        assert entry.is_expired(110.5)

    def test_access_updates_metadata(self):
        entry = CacheEntry(data="x", created_at=100.0, ttl_seconds=10.0)
        assert entry.last_accessed_at == 100.0

        entry.access(105.0)

        assert entry.access_count == 1
        assert entry.last_accessed_at == 105.0

    def test_extend_keeps_creation_time(self):
        entry = CacheEntry(data="x", created_at=100.0, ttl_seconds=10.0)

        entry.extend(5.0)

        assert entry.created_at == 100.0
        assert entry.ttl_seconds == 15.0
        assert entry.remaining_ttl(110.0) == 5.0

    def test_has_any_tag(self):
        entry = CacheEntry(
            data="x", created_at=0.0, ttl_seconds=1.0, tags=frozenset({"events"})
        )

        assert entry.has_any_tag({"events", "analytics"})
        assert not entry.has_any_tag({"user-data"})


class TestCacheStats:
    """Test statistics counters."""

    def test_hit_rate_without_lookups(self):
        assert CacheStats().hit_rate == 0.0

    def test_hit_rate(self):
        stats = CacheStats(hits=3, misses=1)
        assert stats.hit_rate == 0.75

    def test_merge_overlays_known_counters(self):
        stats = CacheStats(hits=1)

        stats.merge({"hits": 10, "misses": 2, "unknown": 5})

        assert stats.hits == 10
        assert stats.misses == 2
        assert "unknown" not in stats.to_dict()


class TestSnapshotModels:
    """Test serializable snapshot models."""

    def test_entry_conversion_keeps_metadata(self):
        entry = CacheEntry(
            data={"id": 1},
            created_at=100.0,
            ttl_seconds=60.0,
            tags=frozenset({"events", "analytics"}),
        )
        entry.access(110.0)

        restored = SnapshotEntry.from_entry(entry).to_entry()

        assert restored.data == {"id": 1}
        assert restored.tags == frozenset({"events", "analytics"})
        assert restored.access_count == 1
        assert restored.last_accessed_at == 110.0

    def test_snapshot_json_layout(self):
        entry = CacheEntry(data=[1, 2], created_at=1.0, ttl_seconds=2.0)
        snapshot = CacheSnapshot(
            cache=[("k", SnapshotEntry.from_entry(entry))],
            stats={"hits": 1},
            timestamp=5.0,
        )

        parsed = CacheSnapshot.model_validate_json(snapshot.model_dump_json())

        assert parsed.cache[0][0] == "k"
        assert parsed.cache[0][1].data == [1, 2]
        assert parsed.stats == {"hits": 1}
        assert parsed.timestamp == 5.0
