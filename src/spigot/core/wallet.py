"""Wallet provider abstraction for signing transactions."""

import hashlib
from abc import ABC, abstractmethod
from functools import cached_property
from pathlib import Path

from Crypto.Hash import RIPEMD160
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from pydantic import SecretStr

from .address import encode_address

# BIP-44 path for Cosmos SDK chains (coin type 118), first account
FUNDRAISER_PATH = "m/44'/118'/0'/0/0"

# Order of the secp256k1 group
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

Account.enable_unaudited_hdwallet_features()


def address_from_public_key(public_key: bytes) -> bytes:
    """Derive raw account address bytes from a compressed public key."""
    digest = RIPEMD160.new()
    digest.update(hashlib.sha256(public_key).digest())
    return digest.digest()


class WalletProvider(ABC):
    """Abstract wallet provider for signing transactions.

    Parameters
    ----------
    prefix : str
        Bech32 prefix used to render the wallet address.
    """

    def __init__(self, prefix: str = "terra"):
        self._prefix = prefix

    @abstractmethod
    def get_account(self) -> LocalAccount:
        """Get the wallet account for signing.

        Returns
        -------
        LocalAccount
            The account instance holding the secp256k1 key.
        """
        ...

    @cached_property
    def _private_key(self) -> keys.PrivateKey:
        return keys.PrivateKey(bytes(self.get_account().key))

    @property
    def public_key(self) -> bytes:
        """33-byte compressed secp256k1 public key."""
        return self._private_key.public_key.to_compressed_bytes()

    @property
    def address_bytes(self) -> bytes:
        """Raw 20-byte account address."""
        return address_from_public_key(self.public_key)

    @property
    def address(self) -> str:
        """Get the wallet address.

        Returns
        -------
        str
            The bech32 encoded wallet address.
        """
        return encode_address(self._prefix, self.address_bytes)

    def sign_hash(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest.

        Returns
        -------
        bytes
            64-byte ``r || s`` signature with a low S value.
        """
        signature = self._private_key.sign_msg_hash(digest)
        s = signature.s
        if s > SECP256K1_N // 2:
            s = SECP256K1_N - s
        return signature.r.to_bytes(32, "big") + s.to_bytes(32, "big")


class EnvironmentWallet(WalletProvider):
    """Derive the faucet key from a mnemonic in an environment variable or file.

    Parameters
    ----------
    mnemonic : SecretStr, optional
        The BIP-39 seed phrase as a SecretStr (from env var).
    mnemonic_file : str, optional
        Path to a file containing the seed phrase.
    prefix : str
        Bech32 prefix for the wallet address.

    Raises
    ------
    ValueError
        If neither mnemonic nor mnemonic_file is provided.
    FileNotFoundError
        If mnemonic_file does not exist.
    """

    def __init__(
        self,
        mnemonic: SecretStr | None = None,
        mnemonic_file: str | None = None,
        prefix: str = "terra",
    ):
        super().__init__(prefix=prefix)
        if mnemonic is not None:
            phrase = mnemonic.get_secret_value()
        elif mnemonic_file is not None:
            # Expand ~ to user home directory
            path = Path(mnemonic_file).expanduser()
            if not path.exists():
                raise FileNotFoundError(f"Mnemonic file not found: {mnemonic_file}")
            phrase = path.read_text()
        else:
            raise ValueError("Either mnemonic or mnemonic_file must be provided")

        self._account = Account.from_mnemonic(
            " ".join(phrase.split()), account_path=FUNDRAISER_PATH
        )

    def get_account(self) -> LocalAccount:
        """Get the wallet account for signing.

        Returns
        -------
        LocalAccount
            The account instance for transaction signing.
        """
        return self._account
