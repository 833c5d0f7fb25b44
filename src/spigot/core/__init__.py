"""Core components for Spigot."""

from .address import AccountAddress, decode_address, encode_address
from .wallet import EnvironmentWallet, WalletProvider

__all__ = [
    "AccountAddress",
    "EnvironmentWallet",
    "WalletProvider",
    "decode_address",
    "encode_address",
]
