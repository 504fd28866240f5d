"""
Prometheus Metrics

Process-wide collectors for the cache engine and the resilience layer.
Engine instances update them alongside their own in-memory statistics.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

registry = CollectorRegistry()

CACHE_OPERATIONS = Counter(
    "event_cache_operations_total",
    "Cache operations by type and result",
    ["operation", "result"],
    registry=registry,
)

CACHE_EVICTIONS = Counter(
    "event_cache_evictions_total",
    "Cache entries removed by LRU eviction or expiry",
    ["reason"],
    registry=registry,
)

CACHE_ENTRIES = Gauge(
    "event_cache_entries",
    "Current number of cache entries",
    registry=registry,
)

API_CALL_ATTEMPTS = Counter(
    "external_api_call_attempts_total",
    "Outbound API call attempts by outcome",
    ["api_name", "outcome"],
    registry=registry,
)

API_CALL_REJECTIONS = Counter(
    "external_api_call_rejections_total",
    "Calls rejected or deferred before any attempt",
    ["api_name", "reason"],
    registry=registry,
)

CIRCUIT_STATE = Gauge(
    "external_api_circuit_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["api_name"],
    registry=registry,
)

QUEUE_DEPTH = Gauge(
    "external_api_queue_depth",
    "Calls waiting for rate-limit capacity",
    ["api_name"],
    registry=registry,
)


def export_metrics() -> bytes:
    """Render all collectors in the Prometheus text exposition format."""
    return generate_latest(registry)
