"""Prometheus metrics shared by the resolver, click sync and rate limiter."""

from prometheus_client import Counter, Histogram

__all__ = [
    "URL_CREATION_REQUESTS_TOTAL",
    "URL_CREATION_DURATION",
    "URL_LOOKUP_REQUESTS_TOTAL",
    "URL_LOOKUP_DURATION",
    "CACHE_HITS_TOTAL",
    "CACHE_MISSES_TOTAL",
    "CACHE_DEGRADED_TOTAL",
    "DATABASE_READS_TOTAL",
    "DATABASE_WRITES_TOTAL",
    "CLICK_INCREMENTS_TOTAL",
    "CLICK_INCREMENT_FAILURES_TOTAL",
    "CLICK_SYNC_RUNS_TOTAL",
    "CLICK_SYNC_FLUSHED_TOTAL",
    "CLICK_SYNC_LOST_TOTAL",
    "RATE_LIMIT_DECISIONS_TOTAL",
]

# Request metrics
URL_CREATION_REQUESTS_TOTAL = Counter(
    "shorturl_creation_requests_total",
    "Total URL creation requests",
    ["status"],
)
URL_CREATION_DURATION = Histogram(
    "shorturl_creation_duration_seconds",
    "Time taken to create short URLs",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
URL_LOOKUP_REQUESTS_TOTAL = Counter(
    "shorturl_lookup_requests_total",
    "Total URL resolve requests",
    ["status", "cache_hit"],
)
URL_LOOKUP_DURATION = Histogram(
    "shorturl_lookup_duration_seconds",
    "Time taken to resolve short codes",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)

# Cache metrics
CACHE_HITS_TOTAL = Counter(
    "shorturl_cache_hits_total",
    "Total URL snapshot cache hits",
)
CACHE_MISSES_TOTAL = Counter(
    "shorturl_cache_misses_total",
    "Total URL snapshot cache misses",
)
CACHE_DEGRADED_TOTAL = Counter(
    "shorturl_cache_degraded_total",
    "Redis failures absorbed by a fallback",
    ["operation"],
)

# Database metrics
DATABASE_READS_TOTAL = Counter(
    "shorturl_database_reads_total",
    "Total database read operations",
)
DATABASE_WRITES_TOTAL = Counter(
    "shorturl_database_writes_total",
    "Total database write operations",
)

# Click aggregation metrics
CLICK_INCREMENTS_TOTAL = Counter(
    "shorturl_click_increments_total",
    "Clicks added to pending Redis counters",
)
CLICK_INCREMENT_FAILURES_TOTAL = Counter(
    "shorturl_click_increment_failures_total",
    "Clicks dropped because the pending counter could not be incremented",
)
CLICK_SYNC_RUNS_TOTAL = Counter(
    "shorturl_click_sync_runs_total",
    "Reconciliation runs by outcome",
    ["outcome"],
)
CLICK_SYNC_FLUSHED_TOTAL = Counter(
    "shorturl_click_sync_flushed_total",
    "Clicks written from Redis counters to PostgreSQL",
)
CLICK_SYNC_LOST_TOTAL = Counter(
    "shorturl_click_sync_lost_total",
    "Clicks drained but neither applied nor restored",
)

# Rate limiting metrics
RATE_LIMIT_DECISIONS_TOTAL = Counter(
    "shorturl_rate_limit_decisions_total",
    "Sliding window rate limiter decisions",
    ["limiter", "outcome"],
)
