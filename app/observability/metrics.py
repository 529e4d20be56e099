"""
Prometheus metrics for the translation quote engine.
"""

from prometheus_client import Counter, Histogram


# ── Analysis Oracle ──────────────────────────────────────────
oracle_calls_total = Counter(
    "oracle_calls_total",
    "Total document analysis calls to the oracle",
    ["target", "outcome"],
)

oracle_latency_seconds = Histogram(
    "oracle_latency_seconds",
    "Latency of oracle analysis calls",
    ["target"],
    buckets=[0.5, 1, 2, 5, 10, 20, 30, 60, 120],
)

# ── Pricing ──────────────────────────────────────────────────
line_totals_priced_total = Counter(
    "line_totals_priced_total",
    "Line totals computed by the line pricing calculator",
    ["kind"],
)

quote_recalculations_total = Counter(
    "quote_recalculations_total",
    "Quote total recalculations",
    ["outcome"],
)

quote_recalculation_duration_seconds = Histogram(
    "quote_recalculation_duration_seconds",
    "Time to recalculate one quote's totals",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1, 5],
)

# ── Batch Operations ─────────────────────────────────────────
batch_items_total = Counter(
    "batch_items_total",
    "Items processed by batch operations",
    ["operation", "outcome"],
)
