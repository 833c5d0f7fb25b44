"""Tests for health check endpoints."""

from unittest.mock import MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from spigot.observability.health import (
    CheckResult,
    HealthCheck,
    HealthResult,
    HealthServer,
    HealthStatus,
    LedgerStorageCheck,
    SequenceLoadedCheck,
)
from spigot.observability.metrics import REQUESTS


class TestHealthResult:
    """Tests for HealthResult dataclass."""

    def test_health_result_ok(self):
        """HealthResult to_dict for OK status."""
        result = HealthResult(status=HealthStatus.OK)
        assert result.to_dict() == {"status": "ok"}

    def test_health_result_with_checks(self):
        """HealthResult to_dict includes checks."""
        result = HealthResult(
            status=HealthStatus.NOT_READY,
            checks={"ledger": "ok", "sequence": "sequence not loaded"},
        )
        assert result.to_dict() == {
            "status": "not_ready",
            "checks": {"ledger": "ok", "sequence": "sequence not loaded"},
        }


class FailingHealthCheck(HealthCheck):
    """Health check that raises an exception."""

    @property
    def name(self) -> str:
        return "failing"

    async def check(self) -> CheckResult:
        raise RuntimeError("Check failed")


class TestLedgerStorageCheck:
    """Tests for LedgerStorageCheck."""

    @pytest.mark.asyncio
    async def test_reachable(self):
        """Reachable storage is OK."""
        ledger = MagicMock()
        ledger.ping.return_value = True

        result = await LedgerStorageCheck(ledger).check()

        assert result.name == "ledger"
        assert result.status == HealthStatus.OK

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Unreachable storage is an error."""
        ledger = MagicMock()
        ledger.ping.return_value = False

        result = await LedgerStorageCheck(ledger).check()

        assert result.status == HealthStatus.ERROR
        assert result.message == "storage unreachable"


class TestSequenceLoadedCheck:
    """Tests for SequenceLoadedCheck."""

    @pytest.mark.asyncio
    async def test_not_loaded(self):
        """No sequence yet means not ready."""
        coordinator = MagicMock()
        coordinator.state = None

        result = await SequenceLoadedCheck(coordinator).check()

        assert result.status == HealthStatus.NOT_READY

    @pytest.mark.asyncio
    async def test_loaded(self):
        """A loaded sequence is OK."""
        coordinator = MagicMock()

        result = await SequenceLoadedCheck(coordinator).check()

        assert result.status == HealthStatus.OK


class TestHealthServer:
    """Tests for HealthServer endpoints."""

    @pytest.fixture
    async def app_client(self):
        """Create test client with HealthServer app."""
        health_server = HealthServer()
        client = TestClient(TestServer(health_server.create_app()))
        await client.start_server()
        yield client, health_server
        await client.close()

    @pytest.mark.asyncio
    async def test_health_endpoint_returns_ok(self, app_client):
        """GET /health returns 200 OK."""
        client, _ = app_client
        resp = await client.get("/health")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_no_checks(self, app_client):
        """GET /ready returns 200 when no checks configured."""
        client, _ = app_client
        resp = await client.get("/ready")
        assert resp.status == 200
        assert await resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_all_checks_pass(self, app_client):
        """GET /ready returns 200 when ledger and sequence are ready."""
        client, server = app_client
        ledger = MagicMock()
        ledger.ping.return_value = True
        server.add_check(LedgerStorageCheck(ledger))
        server.add_check(SequenceLoadedCheck(MagicMock()))

        resp = await client.get("/ready")

        assert resp.status == 200
        data = await resp.json()
        assert data["checks"] == {"ledger": "ok", "sequence": "ok"}

    @pytest.mark.asyncio
    async def test_ready_endpoint_not_ready(self, app_client):
        """GET /ready returns 503 when the sequence is not loaded."""
        client, server = app_client
        coordinator = MagicMock()
        coordinator.state = None
        server.add_check(SequenceLoadedCheck(coordinator))

        resp = await client.get("/ready")

        assert resp.status == 503
        data = await resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"]["sequence"] == "sequence not loaded"

    @pytest.mark.asyncio
    async def test_ready_endpoint_check_raises(self, app_client):
        """GET /ready returns 503 when a check raises."""
        client, server = app_client
        server.add_check(FailingHealthCheck())

        resp = await client.get("/ready")

        assert resp.status == 503
        data = await resp.json()
        assert "RuntimeError" in data["checks"]["failing"]

    @pytest.mark.asyncio
    async def test_metrics_endpoint(self, app_client):
        """GET /metrics returns Prometheus metrics."""
        client, _ = app_client
        REQUESTS.labels(denom="uluna", status="success").inc()
        resp = await client.get("/metrics")
        assert resp.status == 200
        text = await resp.text()
        assert "spigot_requests_total" in text

    @pytest.mark.asyncio
    async def test_readiness_with_initial_checks(self):
        """Checks passed to the constructor are evaluated."""
        coordinator = MagicMock()
        coordinator.state = None
        server = HealthServer(checks=[SequenceLoadedCheck(coordinator), FailingHealthCheck()])

        result = await server.readiness()

        assert result.status == HealthStatus.NOT_READY
        assert result.checks["sequence"] == "sequence not loaded"
        assert result.checks["failing"].startswith("error: RuntimeError")
