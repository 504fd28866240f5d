"""
Cache Value Objects

Immutable value objects for the cache domain: structured cache keys,
invalidation tags and TTL presets used by event fetchers.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class CacheTag(str, Enum):
    """Tags grouping related cache entries for bulk invalidation."""

    EVENTS = "events"
    USER_DATA = "user-data"
    API_RESPONSES = "api-responses"
    ANALYTICS = "analytics"
    LOCATION_BASED = "location-based"
    SEARCH_RESULTS = "search-results"


@dataclass(frozen=True)
class CacheKey:
    """
    Immutable cache key value object.

    Enforces the namespace convention used by event fetchers, e.g.
    ``events:detail:<id>`` or ``user:favorites:<id>``.
    """

    value: str

    def __post_init__(self) -> None:
        """Validate cache key format."""
        if not self.value:
            raise ValueError("Cache key cannot be empty")

        if len(self.value) > 1024:
            raise ValueError("Cache key too long (max 1024 characters)")

    @classmethod
    def event_list(cls, params: Dict[str, Any]) -> "CacheKey":
        """Create event listing key from query parameters."""
        # sort_keys keeps the key stable regardless of argument order
        return cls(f"events:list:{json.dumps(params, sort_keys=True, default=str)}")

    @classmethod
    def event_detail(cls, event_id: Union[int, str]) -> "CacheKey":
        """Create event detail key."""
        return cls(f"events:detail:{event_id}")

    @classmethod
    def popular_events(cls) -> "CacheKey":
        return cls("events:popular")

    @classmethod
    def trending_events(cls) -> "CacheKey":
        return cls("events:trending")

    @classmethod
    def event_search(cls, query: str, location: Optional[str] = None) -> "CacheKey":
        """Create search key; searches without a location are global."""
        return cls(f"events:search:{query}:{location or 'global'}")

    @classmethod
    def events_near(cls, lat: float, lng: float, radius: float) -> "CacheKey":
        """Create location-based listing key."""
        return cls(f"events:location:{lat}:{lng}:{radius}")

    @classmethod
    def event_category(cls, category: str) -> "CacheKey":
        return cls(f"events:category:{category}")

    @classmethod
    def event_analytics(cls, event_id: Union[int, str]) -> "CacheKey":
        return cls(f"events:analytics:{event_id}")

    @classmethod
    def user_favorites(cls, user_id: str) -> "CacheKey":
        return cls(f"user:favorites:{user_id}")

    @classmethod
    def user_preferences(cls, user_id: str) -> "CacheKey":
        return cls(f"user:preferences:{user_id}")

    @classmethod
    def api_response(cls, api_name: str, params: str) -> "CacheKey":
        """Create raw provider response key, e.g. ``api:ticketmaster:<params>``."""
        return cls(f"api:{api_name}:{params}")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for cache expiration.

    Provides type-safe TTL configuration with validation.
    """

    seconds: float

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds <= 0:
            raise ValueError("TTL must be positive")
        if self.seconds > 86400 * 365:  # Max 1 year
            raise ValueError("TTL too large (max 1 year)")

    @classmethod
    def minutes(cls, minutes: float) -> "TTL":
        """Create TTL from minutes."""
        return cls(minutes * 60)

    @classmethod
    def hours(cls, hours: float) -> "TTL":
        """Create TTL from hours."""
        return cls(hours * 3600)

    # Common TTL presets
    @classmethod
    def event_list(cls) -> "TTL":
        """Event listings (5 minutes)."""
        return cls.minutes(5)

    @classmethod
    def event_detail(cls) -> "TTL":
        """Single event details (15 minutes)."""
        return cls.minutes(15)

    @classmethod
    def search_results(cls) -> "TTL":
        """Search results (2 minutes)."""
        return cls.minutes(2)

    @classmethod
    def user_data(cls) -> "TTL":
        """User favorites and preferences (1 hour)."""
        return cls.hours(1)

    def __str__(self) -> str:
        return f"{self.seconds:g}s"


def normalize_key(key: Union[str, CacheKey]) -> str:
    """Return the string form of a key given as str or CacheKey."""
    return key.value if isinstance(key, CacheKey) else str(key)


def normalize_tag(tag: Union[str, CacheTag]) -> str:
    """Return the string form of a tag given as str or CacheTag."""
    return tag.value if isinstance(tag, CacheTag) else str(tag)
