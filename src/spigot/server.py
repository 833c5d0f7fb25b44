"""HTTP claim endpoint for the Spigot faucet.

Endpoints:
- POST /claim: dispense one drip; body ``{"address", "denom", "response"}``
"""

import logging

from aiohttp import web

from spigot.faucet.service import Claim, DripStatus, FaucetService
from spigot.observability.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

STATUS_CODES = {
    DripStatus.SUCCESS: 200,
    DripStatus.INVALID_CLAIM: 400,
    DripStatus.VERIFICATION_FAILED: 400,
    DripStatus.THROTTLED: 429,
    DripStatus.QUOTA_EXCEEDED: 429,
    DripStatus.STORAGE_ERROR: 500,
    DripStatus.SIGNING_FAILED: 500,
    DripStatus.REMOTE_QUERY_FAILED: 502,
    DripStatus.BUILD_FAILED: 502,
    DripStatus.BROADCAST_FAILED: 502,
    DripStatus.PARSE_FAILED: 502,
    DripStatus.TRANSIENT_FAILURE: 504,
}


def client_ip(request: web.Request) -> str | None:
    """Best guess at the client's address, honouring proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-Ip")
    if real_ip:
        return real_ip.strip()
    return request.remote


@web.middleware
async def request_id_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Tag every log line of a request with one request ID."""
    request_id = set_request_id(request.headers.get("X-Request-Id"))
    try:
        response = await handler(request)
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        clear_request_id()


class ClaimServer:
    """HTTP server accepting faucet claims.

    Parameters
    ----------
    faucet : FaucetService
        Service handling claims.
    host : str
        Host to bind to.
    port : int
        Port to bind to.
    """

    def __init__(self, faucet: FaucetService, host: str = "0.0.0.0", port: int = 3000):  # noqa: S104
        self._faucet = faucet
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Build the claim application."""
        app = web.Application(middlewares=[request_id_middleware])
        app.router.add_post("/claim", self._handle_claim)
        return app

    async def start(self) -> None:
        """Start the claim server."""
        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()

        logger.info("Claim server started", extra={"host": self._host, "port": self._port})

    async def stop(self) -> None:
        """Stop the claim server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            logger.info("Claim server stopped")

    async def _handle_claim(self, request: web.Request) -> web.Response:
        """Handle POST /claim."""
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON body"}, status=400)
        if not isinstance(payload, dict):
            return web.json_response({"error": "Claim must be a JSON object"}, status=400)

        claim = Claim(
            address=str(payload.get("address") or ""),
            denom=str(payload.get("denom") or ""),
            response=str(payload.get("response") or ""),
        )
        result = await self._faucet.handle_claim(claim, remote_ip=client_ip(request))

        if result.success:
            return web.json_response({"amount": result.amount, "response": result.response})

        return web.json_response(
            {"error": result.message, "status": result.status.value},
            status=STATUS_CODES.get(result.status, 500),
        )
