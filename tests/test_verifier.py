"""Tests for human verification."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from pydantic import SecretStr

from spigot.errors import TransientError
from spigot.faucet.verifier import RecaptchaVerifier


@pytest.fixture
async def siteverify():
    """Fake siteverify endpoint accepting the token "good"."""
    requests = []

    async def handler(request: web.Request) -> web.Response:
        form = await request.post()
        requests.append(dict(form))
        if form.get("response") == "down":
            return web.Response(status=503)
        if form.get("secret") == "s3cret" and form.get("response") == "good":
            return web.json_response({"success": True})
        return web.json_response({"success": False, "error-codes": ["invalid-input-response"]})

    app = web.Application()
    app.router.add_post("/siteverify", handler)
    server = TestServer(app)
    await server.start_server()
    server.requests = requests
    yield server
    await server.close()


@pytest.fixture
async def verifier(siteverify):
    """RecaptchaVerifier pointed at the fake endpoint."""
    instance = RecaptchaVerifier(
        SecretStr("s3cret"), verify_url=str(siteverify.make_url("/siteverify"))
    )
    yield instance
    await instance.close()


class TestRecaptchaVerifier:
    """Tests for RecaptchaVerifier."""

    @pytest.mark.asyncio
    async def test_accepts_valid_response(self, verifier, siteverify):
        """A valid token passes and the form carries secret, token and IP."""
        assert await verifier.verify("good", remote_ip="203.0.113.7") is True

        assert siteverify.requests == [
            {"secret": "s3cret", "response": "good", "remoteip": "203.0.113.7"}
        ]

    @pytest.mark.asyncio
    async def test_rejects_invalid_response(self, verifier):
        """An invalid token fails verification."""
        assert await verifier.verify("bad") is False

    @pytest.mark.asyncio
    async def test_empty_response_short_circuits(self, verifier, siteverify):
        """An empty token fails without contacting the service."""
        assert await verifier.verify("") is False
        assert siteverify.requests == []

    @pytest.mark.asyncio
    async def test_service_error(self, verifier):
        """Service outages raise TransientError."""
        with pytest.raises(TransientError):
            await verifier.verify("down")

    @pytest.mark.asyncio
    async def test_unreachable(self):
        """Unreachable service raises TransientError."""
        instance = RecaptchaVerifier(
            SecretStr("s3cret"), timeout_seconds=2.0, verify_url="http://127.0.0.1:1/siteverify"
        )
        try:
            with pytest.raises(TransientError):
                await instance.verify("good")
        finally:
            await instance.close()
