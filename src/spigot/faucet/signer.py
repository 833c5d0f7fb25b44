"""Transaction signing for the faucet account.

The signature covers the exact bytes of the canonical sign document, so
everything that affects serialisation (coin ordering in transfer
messages in particular) must be settled before the document is built.
"""

import base64
import copy
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from spigot.blockchain.client import UnsignedTx
from spigot.core.wallet import WalletProvider
from spigot.errors import SigningError

logger = logging.getLogger(__name__)

PUBKEY_TYPE = "tendermint/PubKeySecp256k1"


def canonical_json(value: Any) -> bytes:
    """Serialise ``value`` as compact JSON with sorted keys."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode()


def sort_transfer_amounts(msgs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return a copy of ``msgs`` with transfer coin lists sorted by denom."""
    msgs = copy.deepcopy(msgs)
    for msg in msgs:
        if not str(msg.get("type", "")).endswith("MsgSend"):
            continue
        value = msg.get("value") or {}
        if isinstance(value.get("amount"), list):
            value["amount"] = sorted(value["amount"], key=lambda coin: coin["denom"])
    return msgs


def build_sign_doc(
    chain_id: str,
    account_number: int,
    sequence: int,
    fee: dict[str, Any],
    msgs: list[dict[str, Any]],
    memo: str,
) -> bytes:
    """Build the canonical bytes the faucet signs.

    Numbers are rendered as decimal strings and all object keys are sorted.
    """
    doc = {
        "account_number": str(account_number),
        "chain_id": chain_id,
        "fee": fee,
        "memo": memo,
        "msgs": msgs,
        "sequence": str(sequence),
    }
    return canonical_json(doc)


@dataclass
class SignedTransaction:
    """Signed transaction envelope plus the sequence it was signed for."""

    envelope: dict[str, Any]
    sequence: int
    sign_bytes: bytes


class TransactionSigner:
    """Signs unsigned transactions with the faucet key.

    Parameters
    ----------
    wallet : WalletProvider
        Source of the faucet's secp256k1 key.
    chain_id : str
        Chain identifier included in every sign document.
    """

    def __init__(self, wallet: WalletProvider, chain_id: str):
        self._wallet = wallet
        self._chain_id = chain_id

    @property
    def chain_id(self) -> str:
        """Chain identifier."""
        return self._chain_id

    def sign(self, tx: UnsignedTx, account_number: int, sequence: int) -> SignedTransaction:
        """Sign ``tx`` for the given account number and sequence.

        Returns
        -------
        SignedTransaction
            The envelope ready for broadcast.

        Raises
        ------
        SigningError
            If the document cannot be serialised or the key cannot sign.
        """
        msgs = sort_transfer_amounts(tx.msg)
        fee = tx.fee.model_dump()
        try:
            sign_bytes = build_sign_doc(
                self._chain_id, account_number, sequence, fee, msgs, tx.memo
            )
            signature = self._wallet.sign_hash(hashlib.sha256(sign_bytes).digest())
            public_key = self._wallet.public_key
        except Exception as e:
            logger.critical("Transaction signing failed", exc_info=True)
            raise SigningError(f"Transaction signing failed: {e}") from e

        envelope = {
            "msg": msgs,
            "fee": fee,
            "signatures": [
                {
                    "pub_key": {
                        "type": PUBKEY_TYPE,
                        "value": base64.b64encode(public_key).decode(),
                    },
                    "signature": base64.b64encode(signature).decode(),
                }
            ],
            "memo": tx.memo,
        }
        return SignedTransaction(envelope=envelope, sequence=sequence, sign_bytes=sign_bytes)
