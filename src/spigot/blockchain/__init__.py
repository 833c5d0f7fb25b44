"""Remote ledger integration for Spigot."""

from .client import AccountInfo, Coin, LcdClient, StdFee, UnsignedTx

__all__ = ["AccountInfo", "Coin", "LcdClient", "StdFee", "UnsignedTx"]
