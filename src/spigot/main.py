#!/usr/bin/env python3
"""Spigot - rate-limited test-network faucet.

Entry point for the Spigot service.
"""

import asyncio
import logging
import os
import signal
import sys
import tempfile
from pathlib import Path

from eth_account import Account
from pydantic import SecretStr

from spigot.blockchain.client import Coin, LcdClient
from spigot.cli import create_parser, run_cli
from spigot.config import SpigotConfig
from spigot.core.wallet import FUNDRAISER_PATH, EnvironmentWallet
from spigot.errors import SpigotError
from spigot.faucet import (
    DripLedger,
    FaucetService,
    RecaptchaVerifier,
    SequenceCoordinator,
    TransactionSigner,
)
from spigot.faucet.ledger import build_denom_limits
from spigot.observability.health import HealthServer, LedgerStorageCheck, SequenceLoadedCheck
from spigot.observability.logging import configure_logging
from spigot.server import ClaimServer


def generate_wallet(output_path: str, prefix: str = "terra") -> None:
    """Generate a new mnemonic and save it to a file.

    Parameters
    ----------
    output_path : str
        Path to save the mnemonic file.
    prefix : str
        Bech32 prefix used to display the faucet address.
    """
    _, mnemonic = Account.create_with_mnemonic(num_words=24, account_path=FUNDRAISER_PATH)
    wallet = EnvironmentWallet(mnemonic=SecretStr(mnemonic), prefix=prefix)

    # Write mnemonic atomically with restrictive permissions.
    # Temp file in the same directory so the rename stays on one filesystem.
    key_path = Path(output_path)
    key_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".spigot-mnemonic-")
    fd_closed = False
    try:
        os.fchmod(fd, 0o600)
        os.write(fd, mnemonic.encode())
        os.close(fd)
        fd_closed = True
        os.rename(temp_path, key_path)
    except Exception:
        if not fd_closed:
            os.close(fd)
        Path(temp_path).unlink(missing_ok=True)
        raise

    print(f"""
Wallet generated successfully!

  Address:  {wallet.address}
  Mnemonic: {key_path.absolute()}

Next steps:

  1. Fund this address on your target network

  2. Launch Spigot with this wallet:

     export SPIGOT_MNEMONIC_FILE={key_path.absolute()}
     export SPIGOT_RECAPTCHA_SECRET=<reCAPTCHA private key>
     spigot run

IMPORTANT: Keep this mnemonic secure. Anyone with access can control the wallet.
""")


def parse_args():
    """Parse command line arguments."""
    return create_parser().parse_args()


async def run_service() -> None:
    """Run the Spigot service (long-running mode).

    Wires up and starts all service components:
    - HealthServer for liveness, readiness and metrics
    - Wallet, remote ledger client and sequence coordinator
    - DripLedger for per-account limits
    - FaucetService with reCAPTCHA verification
    - ClaimServer for POST /claim
    """
    config = SpigotConfig()
    configure_logging(level=config.log_level, log_format=config.log_format)

    logger = logging.getLogger(__name__)
    logger.info("Spigot starting")
    logger.info("LCD: %s", config.lcd_url)
    logger.info("Chain: %s", config.chain_id)

    if not config.recaptcha_secret:
        logger.error("Missing reCAPTCHA secret. Set SPIGOT_RECAPTCHA_SECRET")
        sys.exit(1)

    if not config.mnemonic and not config.mnemonic_file:
        logger.error("No wallet configured. Set SPIGOT_MNEMONIC or SPIGOT_MNEMONIC_FILE")
        sys.exit(1)

    wallet = EnvironmentWallet(
        mnemonic=config.mnemonic,
        mnemonic_file=config.mnemonic_file,
        prefix=config.bech32_prefix,
    )
    logger.info("Wallet loaded: %s", wallet.address)

    try:
        ledger = DripLedger(
            build_denom_limits(config.denoms, config.drip_amount, config.window_multiplier),
            interval_seconds=config.request_interval_seconds,
            redis_url=config.redis_url,
            timeout_seconds=config.request_timeout_seconds,
        )
    except SpigotError as e:
        logger.error("Drip ledger unavailable: %s", e)
        sys.exit(1)
    if not ledger.persistent:
        logger.warning("REDIS_URL not set; drip ledger is in-memory and will not survive restarts")

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def on_shutdown_signal(sig_name: str) -> None:
        logger.info("Received signal %s, initiating shutdown", sig_name)
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGTERM, lambda: on_shutdown_signal("SIGTERM"))
    loop.add_signal_handler(signal.SIGINT, lambda: on_shutdown_signal("SIGINT"))

    client = LcdClient(config.lcd_url, timeout_seconds=config.request_timeout_seconds)
    coordinator = SequenceCoordinator(client, wallet.address)

    # Start health server first so /health answers during startup
    health_server = HealthServer(
        port=config.metrics_port,
        checks=[LedgerStorageCheck(ledger), SequenceLoadedCheck(coordinator)],
    )
    await health_server.start()

    faucet = FaucetService(
        ledger=ledger,
        coordinator=coordinator,
        client=client,
        signer=TransactionSigner(wallet, config.chain_id),
        verifier=RecaptchaVerifier(
            config.recaptcha_secret, timeout_seconds=config.request_timeout_seconds
        ),
        fee=Coin(denom=config.fee_denom, amount=str(config.fee_amount)),
        memo=config.memo,
        broadcast_mode=config.broadcast_mode,
    )

    try:
        await faucet.start()
    except SpigotError as e:
        logger.error("Cannot load faucet account from the remote ledger: %s", e)
        await client.close()
        await health_server.stop()
        sys.exit(1)

    claim_server = ClaimServer(faucet, host=config.host, port=config.port)
    await claim_server.start()
    logger.info("Spigot service ready")

    await shutdown_event.wait()

    # Graceful shutdown
    logger.info("Spigot shutting down...")
    await claim_server.stop()
    await faucet.stop()
    await health_server.stop()
    logger.info("Spigot shutdown complete")


def main() -> None:
    """Main entry point for Spigot."""
    args = parse_args()

    if args.generate_wallet:
        generate_wallet(args.generate_wallet, prefix=SpigotConfig().bech32_prefix)
        return

    # Handle CLI subcommands
    if args.command and args.command != "run":
        exit_code = run_cli(args)
        if exit_code >= 0:
            sys.exit(exit_code)
        # exit_code < 0 means show help
        create_parser().print_help()
        sys.exit(0)

    # No subcommand or "run" - start service
    asyncio.run(run_service())


if __name__ == "__main__":
    main()
