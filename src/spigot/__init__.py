"""Spigot - a rate-limited test-network faucet."""

__version__ = "0.1.0"
