"""Tests for Prometheus metrics."""

from prometheus_client import REGISTRY

from spigot.observability.metrics import (
    BROADCASTS,
    REMOTE_CALL_DURATION,
    REQUESTS,
    SEQUENCE,
    TOKENS_DISTRIBUTED,
)


class TestMetrics:
    """Tests for Prometheus metrics."""

    def test_requests_counter_labels(self):
        """REQUESTS counter has denom and status labels."""
        REQUESTS.labels(denom="uluna", status="success").inc()

        sample = REGISTRY.get_sample_value(
            "spigot_requests_total",
            {"denom": "uluna", "status": "success"},
        )
        assert sample is not None
        assert sample >= 1

    def test_tokens_distributed_counter(self):
        """TOKENS_DISTRIBUTED counter tracks micro-units dispensed."""
        initial = (
            REGISTRY.get_sample_value("spigot_tokens_distributed_total", {"denom": "ukrw"})
            or 0
        )

        TOKENS_DISTRIBUTED.labels(denom="ukrw").inc(10_000_000)

        current = REGISTRY.get_sample_value("spigot_tokens_distributed_total", {"denom": "ukrw"})
        assert current == initial + 10_000_000

    def test_broadcasts_counter(self):
        """BROADCASTS counter tracks outcomes."""
        BROADCASTS.labels(outcome="failed").inc()

        sample = REGISTRY.get_sample_value("spigot_broadcasts_total", {"outcome": "failed"})
        assert sample is not None
        assert sample >= 1

    def test_sequence_gauge(self):
        """SEQUENCE gauge holds the next sequence."""
        SEQUENCE.set(17)

        assert REGISTRY.get_sample_value("spigot_sequence") == 17

    def test_remote_call_histogram(self):
        """REMOTE_CALL_DURATION histogram records observations per operation."""
        initial = (
            REGISTRY.get_sample_value(
                "spigot_remote_call_duration_seconds_count", {"operation": "broadcast"}
            )
            or 0
        )

        REMOTE_CALL_DURATION.labels(operation="broadcast").observe(0.2)

        count = REGISTRY.get_sample_value(
            "spigot_remote_call_duration_seconds_count", {"operation": "broadcast"}
        )
        assert count == initial + 1
