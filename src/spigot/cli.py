"""CLI subcommands for Spigot testing and operations.

Provides command-line interface for:
- Wallet operations (address, account)
- Ledger inspection (show)
- Faucet operations (drip)
"""

import argparse
import asyncio
import json
import sys

from spigot.blockchain.client import Coin, LcdClient
from spigot.config import SpigotConfig
from spigot.core.address import decode_address
from spigot.core.wallet import EnvironmentWallet
from spigot.faucet.ledger import DripLedger, build_denom_limits
from spigot.faucet.sequence import SequenceCoordinator
from spigot.faucet.service import FaucetService
from spigot.faucet.signer import TransactionSigner


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="spigot",
        description="Spigot - rate-limited test-network faucet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Global flags
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--generate-wallet",
        metavar="FILE",
        help="Generate a new mnemonic, save it to FILE, then exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Wallet subcommand
    wallet_parser = subparsers.add_parser("wallet", help="Wallet operations")
    wallet_sub = wallet_parser.add_subparsers(dest="wallet_command")

    wallet_sub.add_parser("address", help="Show faucet address")
    wallet_sub.add_parser("account", help="Show faucet sequence and account number")

    # Ledger subcommand
    ledger_parser = subparsers.add_parser("ledger", help="Drip ledger inspection")
    ledger_sub = ledger_parser.add_subparsers(dest="ledger_command")

    show_parser = ledger_sub.add_parser("show", help="Show the drip record of an address")
    show_parser.add_argument("address", type=str, help="Bech32 address")

    # Faucet subcommand
    faucet_parser = subparsers.add_parser("faucet", help="Faucet operations")
    faucet_sub = faucet_parser.add_subparsers(dest="faucet_command")

    drip_parser = faucet_sub.add_parser("drip", help="Send one drip to an address")
    drip_parser.add_argument("address", type=str, help="Recipient address")
    drip_parser.add_argument("denom", type=str, help="Denomination (e.g. uluna)")

    # Run subcommand (start service)
    subparsers.add_parser("run", help="Start the Spigot service")

    return parser


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, config: SpigotConfig, json_output: bool = False):
        self.config = config
        self.json_output = json_output
        self._wallet: EnvironmentWallet | None = None
        self._ledger: DripLedger | None = None

    @property
    def wallet(self) -> EnvironmentWallet:
        """Get wallet (lazy loaded)."""
        if self._wallet is None:
            if not self.config.mnemonic and not self.config.mnemonic_file:
                raise ValueError(
                    "No wallet configured. Set SPIGOT_MNEMONIC or SPIGOT_MNEMONIC_FILE"
                )
            self._wallet = EnvironmentWallet(
                mnemonic=self.config.mnemonic,
                mnemonic_file=self.config.mnemonic_file,
                prefix=self.config.bech32_prefix,
            )
        return self._wallet

    @property
    def ledger(self) -> DripLedger:
        """Get drip ledger (lazy loaded)."""
        if self._ledger is None:
            self._ledger = DripLedger(
                build_denom_limits(
                    self.config.denoms,
                    self.config.drip_amount,
                    self.config.window_multiplier,
                ),
                interval_seconds=self.config.request_interval_seconds,
                redis_url=self.config.redis_url,
                timeout_seconds=self.config.request_timeout_seconds,
            )
        return self._ledger

    def new_client(self) -> LcdClient:
        """Create a remote ledger client; the caller closes it."""
        return LcdClient(self.config.lcd_url, timeout_seconds=self.config.request_timeout_seconds)

    def new_faucet(self, client: LcdClient) -> FaucetService:
        """Build a faucet service around ``client`` (no human verification)."""
        return FaucetService(
            ledger=self.ledger,
            coordinator=SequenceCoordinator(client, self.wallet.address),
            client=client,
            signer=TransactionSigner(self.wallet, self.config.chain_id),
            verifier=None,
            fee=Coin(denom=self.config.fee_denom, amount=str(self.config.fee_amount)),
            memo=self.config.memo,
            broadcast_mode=self.config.broadcast_mode,
        )

    def output(self, data: dict) -> None:
        """Output data in the appropriate format."""
        if self.json_output:
            print(json.dumps(data, default=str, indent=2))
        else:
            self._print_formatted(data)

    def _print_formatted(self, data: dict, indent: int = 0) -> None:
        """Print data in human-readable format."""
        prefix = "  " * indent
        for key, value in data.items():
            if isinstance(value, dict):
                print(f"{prefix}{key}:")
                self._print_formatted(value, indent + 1)
            else:
                print(f"{prefix}{key}: {value}")


# Wallet commands


def cmd_wallet_address(ctx: CLIContext) -> int:
    """Show faucet address."""
    try:
        ctx.output({"address": ctx.wallet.address})
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


async def _query_account(ctx: CLIContext, address: str):
    client = ctx.new_client()
    try:
        return await client.get_account(address)
    finally:
        await client.close()


def cmd_wallet_account(ctx: CLIContext) -> int:
    """Show faucet sequence and account number."""
    try:
        address = ctx.wallet.address
        info = asyncio.run(_query_account(ctx, address))
        ctx.output(
            {
                "address": address,
                "sequence": info.sequence,
                "account_number": info.account_number,
                "lcd": ctx.config.lcd_url,
                "chain_id": ctx.config.chain_id,
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Ledger commands


def cmd_ledger_show(ctx: CLIContext, address_str: str) -> int:
    """Show the drip record of an address."""
    try:
        address = decode_address(address_str)
        record = asyncio.run(ctx.ledger.get_record(address.raw))
        if record is None:
            ctx.output({"address": address_str, "account": address.raw.hex(), "record": None})
            return 0

        ctx.output(
            {
                "address": address_str,
                "account": address.raw.hex(),
                "last_requested_at": record.last_requested_at.isoformat(),
                "amounts": dict(sorted(record.amounts.items())),
            }
        )
        return 0
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


# Faucet commands


async def _drip(ctx: CLIContext, address_str: str, denom: str):
    client = ctx.new_client()
    try:
        faucet = ctx.new_faucet(client)
        await faucet.start()
        return await faucet.drip(decode_address(address_str), denom)
    finally:
        await client.close()


def cmd_faucet_drip(ctx: CLIContext, address_str: str, denom: str) -> int:
    """Send one drip to an address, bypassing human verification."""
    try:
        result = asyncio.run(_drip(ctx, address_str, denom))
        data = {
            "success": result.success,
            "status": result.status.value,
            "recipient": address_str,
            "amount": result.amount,
            "denom": result.denom,
            "message": result.message,
        }
        if result.sequence is not None:
            data["sequence"] = result.sequence
        if result.response is not None:
            data["response"] = result.response
        ctx.output(data)
        return 0 if result.success else 1
    except Exception as e:
        ctx.output({"error": str(e)})
        return 1


def run_cli(args: argparse.Namespace) -> int:
    """Execute CLI command based on parsed arguments.

    Returns
    -------
    int
        Exit code: 0 for success, positive for error, -1 signals caller
        to show help (no CLI command specified).
    """
    # Load config
    try:
        config = SpigotConfig()
    except Exception as e:
        if args.json:
            print(json.dumps({"error": f"Configuration error: {e}"}))
        else:
            print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    ctx = CLIContext(config, json_output=args.json)

    # Route to appropriate command
    if args.command == "wallet":
        if args.wallet_command == "address":
            return cmd_wallet_address(ctx)
        elif args.wallet_command == "account":
            return cmd_wallet_account(ctx)
        else:
            print("Usage: spigot wallet [address|account]", file=sys.stderr)
            return 1

    elif args.command == "ledger":
        if args.ledger_command == "show":
            return cmd_ledger_show(ctx, args.address)
        else:
            print("Usage: spigot ledger show ADDRESS", file=sys.stderr)
            return 1

    elif args.command == "faucet":
        if args.faucet_command == "drip":
            return cmd_faucet_drip(ctx, args.address, args.denom)
        else:
            print("Usage: spigot faucet drip ADDRESS DENOM", file=sys.stderr)
            return 1

    else:
        # No subcommand - show help
        return -1
