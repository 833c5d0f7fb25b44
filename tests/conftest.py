"""Pytest configuration and fixtures for Spigot tests."""

import asyncio
import os
from dataclasses import dataclass, field

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from pydantic import SecretStr

from spigot.core.wallet import EnvironmentWallet

# Well-known BIP-39 test vector (DO NOT USE FOR REAL FUNDS)
TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
CHAIN_ID = "soju-0007"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Clear Spigot-related environment variables before each test."""
    env_prefixes = ("SPIGOT_", "REDIS_")
    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(scope="session")
def wallet():
    """Faucet wallet derived from the test mnemonic."""
    return EnvironmentWallet(mnemonic=SecretStr(TEST_MNEMONIC), prefix="terra")


@dataclass
class FakeLcd:
    """State of the fake remote ledger."""

    sequence: int = 5
    account_number: int = 42
    account_status: int = 200
    build_status: int = 200
    broadcast_status: int = 200
    broadcast_text: str | None = None
    delay: float = 0.0
    account_queries: int = 0
    built: list = field(default_factory=list)
    broadcasts: list = field(default_factory=list)
    url: str = ""


def build_fake_lcd_app(lcd: FakeLcd) -> web.Application:
    """LCD REST routes backed by ``lcd``."""

    async def get_account(request: web.Request) -> web.Response:
        lcd.account_queries += 1
        await asyncio.sleep(lcd.delay)
        if lcd.account_status != 200:
            return web.Response(status=lcd.account_status, text="account query failed")
        return web.json_response(
            {
                "height": "100",
                "result": {
                    "type": "core/Account",
                    "value": {
                        "address": request.match_info["address"],
                        "coins": [],
                        "account_number": str(lcd.account_number),
                        "sequence": str(lcd.sequence),
                    },
                },
            }
        )

    async def build_transfer(request: web.Request) -> web.Response:
        body = await request.json()
        lcd.built.append(body)
        await asyncio.sleep(lcd.delay)
        if lcd.build_status != 200:
            return web.Response(status=lcd.build_status, text="build failed")
        base_req = body["base_req"]
        return web.json_response(
            {
                "type": "core/StdTx",
                "value": {
                    "msg": [
                        {
                            "type": "bank/MsgSend",
                            "value": {
                                "from_address": base_req["from"],
                                "to_address": request.match_info["address"],
                                "amount": body["amount"],
                            },
                        }
                    ],
                    "fee": {"amount": base_req["fees"], "gas": "200000"},
                    "signatures": None,
                    "memo": base_req["memo"],
                },
            }
        )

    async def broadcast(request: web.Request) -> web.Response:
        body = await request.json()
        await asyncio.sleep(lcd.delay)
        if lcd.broadcast_status != 200:
            return web.Response(status=lcd.broadcast_status, text="internal error")
        lcd.broadcasts.append(body)
        lcd.sequence += 1
        if lcd.broadcast_text is not None:
            return web.Response(text=lcd.broadcast_text)
        return web.json_response({"height": "0", "txhash": f"TX{len(lcd.broadcasts):04d}"})

    app = web.Application()
    app.router.add_get("/auth/accounts/{address}", get_account)
    app.router.add_post("/bank/accounts/{address}/transfers", build_transfer)
    app.router.add_post("/txs", broadcast)
    return app


@pytest.fixture
async def fake_lcd():
    """Running fake remote ledger; ``fake_lcd.url`` is its base URL."""
    lcd = FakeLcd()
    server = TestServer(build_fake_lcd_app(lcd))
    await server.start_server()
    lcd.url = str(server.make_url("")).rstrip("/")
    yield lcd
    await server.close()
