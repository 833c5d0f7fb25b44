"""Faucet components for Spigot."""

from .ledger import DenomLimit, DripLedger, DripRecord, ReservationResult, ReservationStatus
from .sequence import SequenceCoordinator, SequenceLease, SequenceState
from .service import Claim, DripResult, DripStatus, FaucetService
from .signer import SignedTransaction, TransactionSigner
from .verifier import HumanVerifier, RecaptchaVerifier

__all__ = [
    "Claim",
    "DenomLimit",
    "DripLedger",
    "DripRecord",
    "DripResult",
    "DripStatus",
    "FaucetService",
    "HumanVerifier",
    "RecaptchaVerifier",
    "ReservationResult",
    "ReservationStatus",
    "SequenceCoordinator",
    "SequenceLease",
    "SequenceState",
    "SignedTransaction",
    "TransactionSigner",
]
