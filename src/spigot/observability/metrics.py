"""Prometheus metrics for the Spigot faucet.

Metrics:
- spigot_requests_total: Counter of claims by denomination and outcome
- spigot_tokens_distributed_total: Counter of micro-units dispensed
- spigot_broadcasts_total: Counter of broadcast attempts by outcome
- spigot_sequence: Gauge of the faucet account's next sequence number
- spigot_request_duration_seconds: Histogram of claim handling duration
- spigot_sequence_lock_wait_seconds: Histogram of time spent queuing for the sequence lock
- spigot_remote_call_duration_seconds: Histogram of remote ledger call duration
"""

from prometheus_client import Counter, Gauge, Histogram

# Counters
REQUESTS = Counter(
    "spigot_requests_total",
    "Total number of faucet claims",
    ["denom", "status"],
)

TOKENS_DISTRIBUTED = Counter(
    "spigot_tokens_distributed_total",
    "Total micro-units distributed",
    ["denom"],
)

BROADCASTS = Counter(
    "spigot_broadcasts_total",
    "Total transaction broadcasts",
    ["outcome"],
)

# Gauges
SEQUENCE = Gauge(
    "spigot_sequence",
    "Next sequence number of the faucet account",
)

# Histograms
REQUEST_DURATION = Histogram(
    "spigot_request_duration_seconds",
    "Claim processing duration",
    ["denom"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

SEQUENCE_LOCK_WAIT = Histogram(
    "spigot_sequence_lock_wait_seconds",
    "Time spent waiting for the sequence lock",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0),
)

REMOTE_CALL_DURATION = Histogram(
    "spigot_remote_call_duration_seconds",
    "Remote ledger call duration",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)
