"""LCD (light client daemon) REST client for the remote ledger.

Three calls are used by the faucet: account query, unsigned transfer
build, and broadcast. None of them are retried here; every call is
bounded by the session timeout.
"""

import asyncio
import json
import logging
import time
from typing import Any

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from spigot.errors import (
    BroadcastError,
    BuildTxError,
    ParseError,
    RemoteError,
    RemoteQueryError,
    TransientError,
)
from spigot.observability.metrics import REMOTE_CALL_DURATION

logger = logging.getLogger(__name__)


class AccountInfo(BaseModel):
    """Sequence and account number of an on-chain account."""

    model_config = ConfigDict(extra="ignore")

    sequence: int
    account_number: int


class Coin(BaseModel):
    """Amount of a single denomination (amounts travel as decimal strings)."""

    denom: str
    amount: str


class StdFee(BaseModel):
    """Transaction fee."""

    amount: list[Coin] = Field(default_factory=list)
    gas: str

    @field_validator("amount", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return [] if value is None else value


class UnsignedTx(BaseModel):
    """Unsigned transaction document returned by the transfer builder."""

    model_config = ConfigDict(extra="ignore")

    msg: list[dict[str, Any]]
    fee: StdFee
    memo: str = ""


def _unwrap(payload: Any) -> Any:
    """Strip the ``{height, result}`` and amino ``{type, value}`` envelopes."""
    if isinstance(payload, dict) and "result" in payload:
        payload = payload["result"]
    if isinstance(payload, dict) and "type" in payload and "value" in payload:
        payload = payload["value"]
    return payload


class LcdClient:
    """Async client for the remote ledger's LCD REST interface.

    Parameters
    ----------
    base_url : str
        LCD base URL, e.g. ``https://lcd.terra.money``.
    timeout_seconds : float
        Total timeout applied to every request.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 10.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        """LCD base URL."""
        return self._base_url

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        error_cls: type[RemoteError],
        payload: dict | None = None,
        strict_json: bool = True,
    ) -> Any:
        """Perform a request and return the decoded JSON body.

        With ``strict_json=False`` a 200 body that is not JSON is returned
        as text instead of raising.

        Raises
        ------
        TransientError
            On connection failures and timeouts.
        RemoteError
            ``error_cls`` when the remote answers with a non-200 status.
        ParseError
            When the body is not valid JSON and ``strict_json`` is set.
        """
        url = f"{self._base_url}{path}"
        start = time.monotonic()
        try:
            async with self._get_session().request(method, url, json=payload) as response:
                status = response.status
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Remote ledger call failed",
                extra={"operation": operation, "error": repr(e)},
            )
            raise TransientError(f"{operation} failed: {e!r}") from e
        finally:
            REMOTE_CALL_DURATION.labels(operation=operation).observe(time.monotonic() - start)

        if status != 200:
            logger.warning(
                "Remote ledger returned error status",
                extra={"operation": operation, "status": status, "body": body[:512]},
            )
            raise error_cls(f"{operation} failed: status {status}, message: {body}", status, body)

        try:
            return json.loads(body)
        except ValueError as e:
            if not strict_json:
                logger.warning(
                    "Remote ledger returned non-JSON body", extra={"operation": operation}
                )
                return body
            raise ParseError(f"{operation} returned invalid JSON", status, body) from e

    async def get_account(self, address: str) -> AccountInfo:
        """Query the sequence and account number of ``address``.

        Parameters
        ----------
        address : str
            Bech32 account address.

        Returns
        -------
        AccountInfo
            The account's current sequence and account number.
        """
        payload = await self._request(
            "GET", f"/auth/accounts/{address}", "query_account", RemoteQueryError
        )
        try:
            return AccountInfo.model_validate(_unwrap(payload))
        except PydanticValidationError as e:
            raise ParseError(
                f"Malformed account response for {address}", 200, json.dumps(payload)
            ) from e

    async def build_transfer(
        self,
        sender: str,
        recipient: str,
        amount: Coin,
        *,
        chain_id: str,
        sequence: int,
        fee: Coin,
        memo: str = "",
    ) -> UnsignedTx:
        """Ask the remote ledger to build an unsigned transfer transaction.

        Parameters
        ----------
        sender : str
            Faucet address.
        recipient : str
            Recipient address.
        amount : Coin
            Amount to transfer.
        chain_id : str
            Chain identifier.
        sequence : int
            Sequence the transaction will be signed with.
        fee : Coin
            Fee paid by the faucet.
        memo : str
            Transaction memo.

        Returns
        -------
        UnsignedTx
            The unsigned transaction document.
        """
        body = {
            "base_req": {
                "from": sender,
                "memo": memo,
                "chain_id": chain_id,
                "sequence": str(sequence),
                "fees": [fee.model_dump()],
            },
            "amount": [amount.model_dump()],
        }
        payload = await self._request(
            "POST",
            f"/bank/accounts/{recipient}/transfers",
            "build_transfer",
            BuildTxError,
            payload=body,
        )
        try:
            return UnsignedTx.model_validate(_unwrap(payload))
        except PydanticValidationError as e:
            raise ParseError(
                "Malformed unsigned transaction response", 200, json.dumps(payload)
            ) from e

    async def broadcast(self, tx: dict[str, Any], mode: str = "async") -> Any:
        """Submit a signed transaction.

        Parameters
        ----------
        tx : dict
            Signed transaction envelope.
        mode : str
            Delivery mode (``async``, ``sync`` or ``block``).

        Returns
        -------
        Any
            The remote response body: decoded JSON, or the raw text when the
            body is not JSON. Any 200 means the transaction was accepted.
        """
        return await self._request(
            "POST",
            "/txs",
            "broadcast",
            BroadcastError,
            payload={"tx": tx, "mode": mode},
            strict_json=False,
        )
