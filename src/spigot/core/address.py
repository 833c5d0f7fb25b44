"""Bech32 account addresses.

The raw address bytes are the canonical account identifier; the
human-readable prefix only matters when talking to the remote ledger.
"""

from dataclasses import dataclass

from bech32 import bech32_decode, bech32_encode, convertbits

from spigot.errors import ValidationError

# Cosmos account addresses are RIPEMD160 digests
ADDRESS_LENGTH = 20


@dataclass(frozen=True)
class AccountAddress:
    """A decoded account address.

    Attributes
    ----------
    prefix : str
        Human-readable part of the bech32 string (e.g. ``terra``).
    raw : bytes
        Decoded address bytes, used as the ledger key.
    """

    prefix: str
    raw: bytes

    def __str__(self) -> str:
        return encode_address(self.prefix, self.raw)

    def with_prefix(self, prefix: str) -> "AccountAddress":
        """Return the same account under another human-readable prefix."""
        return AccountAddress(prefix=prefix, raw=self.raw)


def decode_address(address: str) -> AccountAddress:
    """Decode a bech32 address string.

    Parameters
    ----------
    address : str
        Bech32 encoded address.

    Returns
    -------
    AccountAddress
        The prefix and raw bytes.

    Raises
    ------
    ValidationError
        If the string is not valid bech32 or does not hold an account address.
    """
    if not isinstance(address, str) or not address:
        raise ValidationError("Address is required")

    prefix, data = bech32_decode(address.strip())
    if prefix is None or data is None:
        raise ValidationError(f"Invalid bech32 address: {address}")

    raw = convertbits(data, 5, 8, False)
    if raw is None or len(raw) != ADDRESS_LENGTH:
        raise ValidationError(f"Invalid account address: {address}")

    return AccountAddress(prefix=prefix, raw=bytes(raw))


def encode_address(prefix: str, raw: bytes) -> str:
    """Encode raw address bytes as bech32 under ``prefix``."""
    data = convertbits(raw, 8, 5)
    encoded = bech32_encode(prefix, data) if data is not None else None
    if not encoded:
        raise ValidationError(f"Cannot encode address with prefix {prefix!r}")
    return encoded
