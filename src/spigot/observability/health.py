"""Health, readiness and metrics endpoints for the Spigot faucet.

Served on their own port so orchestrators can check the process while
the claim server is still loading the faucet account.

Endpoints:
- /health: process is alive
- /ready: faucet can dispense (sequence loaded, ledger storage reachable)
- /metrics: Prometheus exposition
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

if TYPE_CHECKING:
    from spigot.faucet.ledger import DripLedger
    from spigot.faucet.sequence import SequenceCoordinator

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health check status values."""

    OK = "ok"
    ERROR = "error"
    NOT_READY = "not_ready"


@dataclass
class CheckResult:
    """Outcome of one readiness check."""

    name: str
    status: HealthStatus
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == HealthStatus.OK

    def describe(self) -> str:
        """Short text shown in the /ready body."""
        if self.ok:
            return "ok"
        return self.message or self.status.value


@dataclass
class HealthResult:
    """Aggregate readiness."""

    status: HealthStatus
    checks: dict[str, str] = field(default_factory=dict)

    @classmethod
    def combine(cls, results: Iterable[CheckResult]) -> "HealthResult":
        """Ready only if every check is OK."""
        results = list(results)
        status = HealthStatus.OK if all(r.ok for r in results) else HealthStatus.NOT_READY
        return cls(status=status, checks={r.name: r.describe() for r in results})

    def to_dict(self) -> dict:
        body: dict = {"status": self.status.value}
        if self.checks:
            body["checks"] = self.checks
        return body


class HealthCheck(ABC):
    """A single readiness condition."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Key reported under ``checks``."""
        ...

    @abstractmethod
    async def check(self) -> CheckResult:
        """Evaluate the condition.

        Returns
        -------
        CheckResult
            OK, or the reason the faucet cannot serve.
        """
        ...


class LedgerStorageCheck(HealthCheck):
    """Drip ledger storage is reachable."""

    def __init__(self, ledger: "DripLedger"):
        self._ledger = ledger

    @property
    def name(self) -> str:
        return "ledger"

    async def check(self) -> CheckResult:
        if self._ledger.ping():
            return CheckResult(self.name, HealthStatus.OK)
        return CheckResult(self.name, HealthStatus.ERROR, "storage unreachable")


class SequenceLoadedCheck(HealthCheck):
    """Faucet account sequence has been loaded from the remote ledger."""

    def __init__(self, coordinator: "SequenceCoordinator"):
        self._coordinator = coordinator

    @property
    def name(self) -> str:
        return "sequence"

    async def check(self) -> CheckResult:
        if self._coordinator.state is None:
            return CheckResult(self.name, HealthStatus.NOT_READY, "sequence not loaded")
        return CheckResult(self.name, HealthStatus.OK)


async def _run_check(check: HealthCheck) -> CheckResult:
    """Run ``check``, reporting an exception as a failed result."""
    try:
        return await check.check()
    except Exception as e:
        logger.exception("Readiness check raised", extra={"check": check.name})
        return CheckResult(check.name, HealthStatus.ERROR, f"error: {type(e).__name__}: {e}")


class HealthServer:
    """HTTP server for health and metrics endpoints.

    Parameters
    ----------
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    checks : Iterable[HealthCheck]
        Initial readiness checks.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = 8080,
        checks: Iterable[HealthCheck] = (),
    ):
        self._host = host
        self._port = port
        self._checks: list[HealthCheck] = list(checks)
        self._runner: web.AppRunner | None = None

    def add_check(self, check: HealthCheck) -> None:
        """Register a readiness check.

        Parameters
        ----------
        check : HealthCheck
            Condition that must hold for /ready to answer 200.
        """
        self._checks.append(check)

    def create_app(self) -> web.Application:
        """Build the application serving /health, /ready and /metrics."""
        app = web.Application()
        app.add_routes(
            [
                web.get("/health", self._liveness),
                web.get("/ready", self._readiness),
                web.get("/metrics", self._metrics),
            ]
        )
        return app

    async def start(self) -> None:
        """Bind and start serving."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        await web.TCPSite(self._runner, self._host, self._port).start()
        logger.info("Health server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop serving."""
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("Health server stopped")

    async def readiness(self) -> HealthResult:
        """Run every registered check concurrently."""
        results = await asyncio.gather(*(_run_check(c) for c in self._checks))
        return HealthResult.combine(results)

    async def _liveness(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _readiness(self, _request: web.Request) -> web.Response:
        result = await self.readiness()
        return web.json_response(
            result.to_dict(), status=200 if result.status == HealthStatus.OK else 503
        )

    async def _metrics(self, _request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(REGISTRY),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )
