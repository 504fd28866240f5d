"""
Event Discovery Constants

Names of the external event providers and their default request budgets.
"""

from typing import Dict

from .domain.resilience.value_objects import RateLimitConfig

TICKETMASTER = "ticketmaster"
RAPIDAPI = "rapidapi"
EVENTBRITE = "eventbrite"

DEFAULT_RATE_LIMITS: Dict[str, RateLimitConfig] = {
    TICKETMASTER: RateLimitConfig(
        max_requests=5000,
        window_seconds=24 * 60 * 60,
        retry_after_seconds=1.0,
    ),
    # Varies by subscription tier
    RAPIDAPI: RateLimitConfig(
        max_requests=500,
        window_seconds=60 * 60,
        retry_after_seconds=2.0,
    ),
    EVENTBRITE: RateLimitConfig(
        max_requests=1000,
        window_seconds=60 * 60,
        retry_after_seconds=1.5,
    ),
}

# Queued calls for APIs without a rate limit config are re-checked after this
DEFAULT_RETRY_AFTER_SECONDS = 1.0
