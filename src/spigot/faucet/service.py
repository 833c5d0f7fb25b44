"""Faucet Service for Spigot.

Coordinates all faucet components for one claim:
- Claim validation and human verification
- Drip ledger reservation
- Sequence coordination, signing and broadcast
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from spigot.blockchain.client import Coin, LcdClient
from spigot.core.address import AccountAddress, decode_address
from spigot.errors import (
    BroadcastError,
    BuildTxError,
    ParseError,
    RemoteError,
    RemoteQueryError,
    SigningError,
    StorageError,
    TransientError,
    ValidationError,
    VerificationError,
)
from spigot.observability.metrics import (
    BROADCASTS,
    REQUEST_DURATION,
    REQUESTS,
    TOKENS_DISTRIBUTED,
)

from .ledger import DripLedger, ReservationStatus
from .sequence import SequenceCoordinator
from .signer import TransactionSigner
from .verifier import HumanVerifier

logger = logging.getLogger(__name__)


class DripStatus(str, Enum):
    """Outcome of a claim."""

    SUCCESS = "success"
    INVALID_CLAIM = "invalid_claim"
    VERIFICATION_FAILED = "verification_failed"
    THROTTLED = "throttled"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORAGE_ERROR = "storage_error"
    REMOTE_QUERY_FAILED = "remote_query_failed"
    BUILD_FAILED = "build_failed"
    BROADCAST_FAILED = "broadcast_failed"
    TRANSIENT_FAILURE = "transient_failure"
    PARSE_FAILED = "parse_failed"
    SIGNING_FAILED = "signing_failed"


_RESERVATION_STATUS = {
    ReservationStatus.THROTTLED: DripStatus.THROTTLED,
    ReservationStatus.QUOTA_EXCEEDED: DripStatus.QUOTA_EXCEEDED,
}

_REMOTE_STATUS = {
    RemoteQueryError: DripStatus.REMOTE_QUERY_FAILED,
    BuildTxError: DripStatus.BUILD_FAILED,
    BroadcastError: DripStatus.BROADCAST_FAILED,
    TransientError: DripStatus.TRANSIENT_FAILURE,
    ParseError: DripStatus.PARSE_FAILED,
}


@dataclass
class Claim:
    """A faucet claim as submitted by a client."""

    address: str
    denom: str
    response: str = ""  # Human verification response


@dataclass
class DripResult:
    """Result of a faucet claim."""

    success: bool
    status: DripStatus
    denom: str
    amount: int
    message: str
    response: Any = None  # Broadcast result from the remote ledger
    sequence: int | None = None  # Sequence the transaction was signed with


class FaucetService:
    """Main faucet service orchestrating all components.

    Parameters
    ----------
    ledger : DripLedger
        Per-account drip ledger.
    coordinator : SequenceCoordinator
        Owner of the faucet account's sequence.
    client : LcdClient
        Remote ledger client.
    signer : TransactionSigner
        Signs transactions with the faucet key.
    verifier : HumanVerifier | None
        Human verification; None disables the check.
    fee : Coin
        Fee attached to every transfer.
    memo : str
        Memo attached to every transfer.
    broadcast_mode : str
        Delivery mode requested from the remote ledger.
    """

    def __init__(
        self,
        ledger: DripLedger,
        coordinator: SequenceCoordinator,
        client: LcdClient,
        signer: TransactionSigner,
        verifier: HumanVerifier | None = None,
        fee: Coin | None = None,
        memo: str = "faucet",
        broadcast_mode: str = "async",
    ):
        self._ledger = ledger
        self._coordinator = coordinator
        self._client = client
        self._signer = signer
        self._verifier = verifier
        self._fee = fee or Coin(denom="uluna", amount="10")
        self._memo = memo
        self._broadcast_mode = broadcast_mode
        self._running = False

    @property
    def is_running(self) -> bool:
        """Check if the faucet service is running."""
        return self._running

    @property
    def ledger(self) -> DripLedger:
        """The drip ledger."""
        return self._ledger

    @property
    def coordinator(self) -> SequenceCoordinator:
        """The sequence coordinator."""
        return self._coordinator

    async def start(self) -> None:
        """Start the faucet service.

        Loads the faucet account's sequence and account number.
        """
        if self._running:
            logger.warning("Faucet service already running")
            return

        sequence = await self._coordinator.refresh()
        state = self._coordinator.state
        logger.info(
            "Faucet service started",
            extra={
                "address": self._coordinator.address,
                "sequence": sequence,
                "account_number": state.account_number if state else None,
            },
        )
        self._running = True

    async def stop(self) -> None:
        """Stop the faucet service and close outbound sessions."""
        if not self._running:
            return

        await self._client.close()
        if self._verifier:
            await self._verifier.close()

        self._running = False
        logger.info("Faucet service stopped")

    def _label(self, denom: str) -> str:
        return denom if denom in self._ledger.limits else "unknown"

    def _record(self, result: DripResult, started: float) -> DripResult:
        label = self._label(result.denom)
        REQUESTS.labels(denom=label, status=result.status.value).inc()
        REQUEST_DURATION.labels(denom=label).observe(time.monotonic() - started)
        if result.success:
            TOKENS_DISTRIBUTED.labels(denom=label).inc(result.amount)
        return result

    @staticmethod
    def _failure(status: DripStatus, denom: str, amount: int, message: str) -> DripResult:
        return DripResult(
            success=False,
            status=status,
            denom=denom,
            amount=amount,
            message=message,
        )

    async def handle_claim(self, claim: Claim, remote_ip: str | None = None) -> DripResult:
        """Handle a claim from a client.

        Validates the address and denomination, checks human verification,
        then dispenses one drip.

        Parameters
        ----------
        claim : Claim
            The submitted claim.
        remote_ip : str | None
            Client IP address, forwarded to the verifier.

        Returns
        -------
        DripResult
            Result of the claim.
        """
        started = time.monotonic()

        try:
            address = decode_address(claim.address)
            amount = self._ledger.limit_for(claim.denom).drip_amount
        except ValidationError as e:
            return self._record(
                self._failure(DripStatus.INVALID_CLAIM, claim.denom, 0, str(e)), started
            )

        try:
            await self._verify(claim, remote_ip)
        except TransientError as e:
            logger.warning("Verification unavailable", extra={"error": str(e)})
            return self._record(
                self._failure(DripStatus.TRANSIENT_FAILURE, claim.denom, amount, str(e)),
                started,
            )
        except VerificationError as e:
            logger.info(
                "Claim failed verification",
                extra={"recipient": str(address), "denom": claim.denom},
            )
            return self._record(
                self._failure(DripStatus.VERIFICATION_FAILED, claim.denom, amount, str(e)),
                started,
            )

        return self._record(await self._drip(address, claim.denom), started)

    async def _verify(self, claim: Claim, remote_ip: str | None) -> None:
        """Raise VerificationError unless the claim passes human verification."""
        if self._verifier is None:
            return
        if not await self._verifier.verify(claim.response, remote_ip):
            raise VerificationError("captcha failed, please refresh page and try again")

    async def drip(self, address: AccountAddress, denom: str) -> DripResult:
        """Dispense one drip of ``denom`` to ``address`` without verification.

        Parameters
        ----------
        address : AccountAddress
            Decoded recipient address.
        denom : str
            Denomination to send.

        Returns
        -------
        DripResult
            Result of the drip.
        """
        started = time.monotonic()
        try:
            self._ledger.limit_for(denom)
        except ValidationError as e:
            return self._record(self._failure(DripStatus.INVALID_CLAIM, denom, 0, str(e)), started)
        return self._record(await self._drip(address, denom), started)

    async def _drip(self, address: AccountAddress, denom: str) -> DripResult:
        amount = self._ledger.limit_for(denom).drip_amount
        recipient = str(address)

        async with self._coordinator.acquire() as lease:
            try:
                reservation = await self._ledger.check_and_reserve(address.raw, denom)
            except StorageError as e:
                logger.error(
                    "Drip ledger unavailable",
                    extra={"recipient": recipient, "error": str(e)},
                    exc_info=True,
                )
                return self._failure(DripStatus.STORAGE_ERROR, denom, amount, str(e))

            if not reservation.allowed:
                logger.info(
                    "Claim rejected by drip ledger",
                    extra={
                        "recipient": recipient,
                        "denom": denom,
                        "reason": reservation.status.value,
                    },
                )
                return self._failure(
                    _RESERVATION_STATUS[reservation.status],
                    denom,
                    amount,
                    reservation.reason or "Rate limit exceeded",
                )

            sequence: int | None = None
            try:
                await lease.refresh()
                sequence = lease.sequence
                unsigned = await self._client.build_transfer(
                    self._coordinator.address,
                    recipient,
                    Coin(denom=denom, amount=str(amount)),
                    chain_id=self._signer.chain_id,
                    sequence=sequence,
                    fee=self._fee,
                    memo=self._memo,
                )
                signed = self._signer.sign(unsigned, lease.account_number, sequence)
                logger.debug(
                    "Transaction signed",
                    extra={
                        "sequence": signed.sequence,
                        "sign_doc_sha256": hashlib.sha256(signed.sign_bytes).hexdigest(),
                    },
                )
                try:
                    response = await self._client.broadcast(
                        signed.envelope, mode=self._broadcast_mode
                    )
                except RemoteError:
                    BROADCASTS.labels(outcome="failed").inc()
                    raise
            except SigningError as e:
                return self._failure(DripStatus.SIGNING_FAILED, denom, amount, str(e))
            except RemoteError as e:
                logger.error(
                    "Drip failed",
                    extra={
                        "recipient": recipient,
                        "denom": denom,
                        "sequence": sequence,
                        "error": str(e),
                    },
                )
                status = _REMOTE_STATUS.get(type(e), DripStatus.TRANSIENT_FAILURE)
                result = self._failure(status, denom, amount, str(e))
                result.sequence = sequence
                return result

            BROADCASTS.labels(outcome="accepted").inc()
            lease.commit()

        logger.info(
            "Drip sent",
            extra={
                "recipient": recipient,
                "amount": amount,
                "denom": denom,
                "sequence": sequence,
                "txhash": response.get("txhash") if isinstance(response, dict) else None,
            },
        )
        return DripResult(
            success=True,
            status=DripStatus.SUCCESS,
            denom=denom,
            amount=amount,
            message=f"Sent {amount}{denom}",
            response=response,
            sequence=signed.sequence,
        )
