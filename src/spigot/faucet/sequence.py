"""Sequence Coordinator for the faucet account.

The remote ledger orders and de-duplicates transactions by a per-account
sequence number. Once a sequence value has been handed to one signer it
cannot be reclaimed, so the whole refresh -> sign -> broadcast -> commit
cycle for a claim runs under one lock, never just the increment.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from spigot.blockchain.client import LcdClient
from spigot.observability.metrics import SEQUENCE, SEQUENCE_LOCK_WAIT

logger = logging.getLogger(__name__)


@dataclass
class SequenceState:
    """Sequence and account number of the faucet account."""

    sequence: int
    account_number: int


class SequenceLease:
    """Exclusive handle on the faucet sequence.

    Only valid inside ``SequenceCoordinator.acquire()``.
    """

    def __init__(self, coordinator: "SequenceCoordinator"):
        self._coordinator = coordinator
        self._committed = False
        self._released = False

    def _check_open(self) -> None:
        if self._released:
            raise RuntimeError("Sequence lease used after release")

    @property
    def sequence(self) -> int:
        """Sequence to sign the next transaction with."""
        self._check_open()
        return self._coordinator._require_state().sequence

    @property
    def account_number(self) -> int:
        """Account number of the faucet account."""
        self._check_open()
        return self._coordinator._require_state().account_number

    @property
    def committed(self) -> bool:
        """Whether this lease advanced the sequence."""
        return self._committed

    async def refresh(self) -> int:
        """Absorb the remote ledger's view of the sequence (never decreases)."""
        self._check_open()
        return await self._coordinator._refresh_locked()

    def commit(self) -> int:
        """Advance the sequence after a successful broadcast.

        Returns
        -------
        int
            The new sequence value.
        """
        self._check_open()
        if self._committed:
            raise RuntimeError("Sequence lease already committed")
        state = self._coordinator._require_state()
        state.sequence += 1
        self._committed = True
        SEQUENCE.set(state.sequence)
        return state.sequence


class SequenceCoordinator:
    """Owns the faucet account's sequence and serialises signing.

    Parameters
    ----------
    client : LcdClient
        Remote ledger client used to query the faucet account.
    address : str
        Bech32 address of the faucet account.
    """

    def __init__(self, client: LcdClient, address: str):
        self._client = client
        self._address = address
        self._lock = asyncio.Lock()
        self._state: SequenceState | None = None

    @property
    def address(self) -> str:
        """Faucet account address."""
        return self._address

    @property
    def state(self) -> SequenceState | None:
        """Snapshot of the current state, or None before the first load."""
        if self._state is None:
            return None
        return SequenceState(self._state.sequence, self._state.account_number)

    @property
    def locked(self) -> bool:
        """Whether a claim currently holds the sequence."""
        return self._lock.locked()

    def _require_state(self) -> SequenceState:
        if self._state is None:
            raise RuntimeError("Sequence state not loaded; call refresh() first")
        return self._state

    async def _refresh_locked(self) -> int:
        info = await self._client.get_account(self._address)

        if self._state is None:
            self._state = SequenceState(info.sequence, info.account_number)
            logger.info(
                "Faucet account loaded",
                extra={"sequence": info.sequence, "account_number": info.account_number},
            )
        else:
            if info.account_number != self._state.account_number:
                logger.warning(
                    "Remote account number differs from loaded value; keeping loaded value",
                    extra={
                        "loaded": self._state.account_number,
                        "remote": info.account_number,
                    },
                )
            if info.sequence > self._state.sequence:
                logger.info(
                    "Sequence advanced externally",
                    extra={"local": self._state.sequence, "remote": info.sequence},
                )
                self._state.sequence = info.sequence

        SEQUENCE.set(self._state.sequence)
        return self._state.sequence

    async def refresh(self) -> int:
        """Query the remote ledger and set ``sequence = max(local, remote)``.

        Returns
        -------
        int
            The sequence after the refresh.
        """
        async with self._lock:
            return await self._refresh_locked()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[SequenceLease]:
        """Hold the sequence exclusively for one sign-and-broadcast cycle.

        The sequence advances only if the lease is committed; on any other
        exit the lock is released with the sequence unchanged.
        """
        start = time.monotonic()
        async with self._lock:
            SEQUENCE_LOCK_WAIT.observe(time.monotonic() - start)
            lease = SequenceLease(self)
            try:
                yield lease
            finally:
                lease._released = True
                if not lease.committed and self._state is not None:
                    logger.debug(
                        "Sequence released without advancing",
                        extra={"sequence": self._state.sequence},
                    )
