"""Observability module for the Spigot faucet."""

from .health import (
    HealthCheck,
    HealthServer,
    HealthStatus,
    LedgerStorageCheck,
    SequenceLoadedCheck,
)
from .logging import clear_request_id, configure_logging, get_logger, set_request_id
from .metrics import (
    BROADCASTS,
    REMOTE_CALL_DURATION,
    REQUEST_DURATION,
    REQUESTS,
    SEQUENCE,
    SEQUENCE_LOCK_WAIT,
    TOKENS_DISTRIBUTED,
)

__all__ = [
    # Health
    "HealthCheck",
    "HealthServer",
    "HealthStatus",
    "LedgerStorageCheck",
    "SequenceLoadedCheck",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "set_request_id",
    # Metrics
    "BROADCASTS",
    "REMOTE_CALL_DURATION",
    "REQUEST_DURATION",
    "REQUESTS",
    "SEQUENCE",
    "SEQUENCE_LOCK_WAIT",
    "TOKENS_DISTRIBUTED",
]
