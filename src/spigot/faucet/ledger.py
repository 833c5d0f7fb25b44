"""Drip ledger for the Spigot faucet.

Features:
- Per-account minimum interval between claims
- Per-denomination cumulative cap over one UTC day
- Redis persistence in production, in-memory storage for development
"""

import asyncio
import logging
import math
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic import ValidationError as PydanticValidationError
from redis import Redis
from redis.exceptions import RedisError

from spigot.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

KEY_PREFIX = b"spigot:drip:"


def _format_cooldown(seconds: int) -> str:
    """Format cooldown duration for user display."""
    if seconds < 60:
        return f"Please wait {seconds} seconds before next request"
    minutes = seconds // 60
    remaining_seconds = seconds % 60
    if remaining_seconds > 0:
        return f"Please wait {minutes}m {remaining_seconds}s before next request"
    return f"Please wait {minutes} minutes before next request"


def _utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


@dataclass(frozen=True)
class DenomLimit:
    """Drip amount and daily cap for one denomination."""

    drip_amount: int
    window_cap: int

    @classmethod
    def of(cls, drip_amount: int, multiplier: int = 10) -> "DenomLimit":
        """Limit whose cap is ``multiplier`` drips."""
        return cls(drip_amount=drip_amount, window_cap=drip_amount * multiplier)


def build_denom_limits(
    denoms: Iterable[str], drip_amount: int, multiplier: int = 10
) -> dict[str, DenomLimit]:
    """Same drip amount and cap for every denomination."""
    return {denom: DenomLimit.of(drip_amount, multiplier) for denom in denoms}


class DripRecord(BaseModel):
    """Amounts dispensed to one account in the current window.

    Stored as ``{"amounts": [{"denom", "amount"}], "lastRequestedAt": ...}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    amounts: dict[str, int] = Field(default_factory=dict)
    last_requested_at: datetime = Field(alias="lastRequestedAt")

    @field_validator("amounts", mode="before")
    @classmethod
    def _amounts_from_list(cls, value):
        if not isinstance(value, list):
            return value
        amounts = {}
        for coin in value:
            if not isinstance(coin, dict) or "denom" not in coin or "amount" not in coin:
                raise ValueError(f"Malformed coin entry: {coin!r}")
            try:
                amounts[coin["denom"]] = int(coin["amount"])
            except (TypeError, ValueError):
                raise ValueError(f"Malformed coin amount: {coin!r}") from None
        return amounts

    @field_validator("last_requested_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return _utc(value)

    @field_serializer("amounts")
    def _amounts_as_list(self, amounts: dict[str, int]) -> list[dict]:
        return [{"denom": denom, "amount": amount} for denom, amount in sorted(amounts.items())]

    def to_bytes(self) -> bytes:
        """Serialise for storage."""
        return self.model_dump_json(by_alias=True).encode()

    @classmethod
    def from_bytes(cls, data: bytes) -> "DripRecord":
        """Deserialise a stored record."""
        return cls.model_validate_json(data)


class ReservationStatus(str, Enum):
    """Outcome of a ledger reservation."""

    RESERVED = "reserved"
    THROTTLED = "throttled"
    QUOTA_EXCEEDED = "quota_exceeded"


@dataclass
class ReservationResult:
    """Result of a ledger check-and-reserve."""

    allowed: bool
    status: ReservationStatus
    amount: int  # Drip amount for the denomination
    remaining: int  # Amount still claimable today for the denomination
    cooldown_seconds: int | None  # Seconds until next request allowed
    reason: str | None  # Rejection reason if not allowed


class DripLedger:
    """Persistent per-account drip ledger.

    The read-modify-write of one account's record runs under that
    account's lock; different accounts never wait on each other.

    Parameters
    ----------
    limits : dict[str, DenomLimit]
        Drip amount and cap per supported denomination.
    interval_seconds : int
        Minimum time between two claims from the same account.
    redis_url : str | None
        Redis connection URL. If None, uses in-memory storage.
    timeout_seconds : float
        Socket connect and read timeout for Redis calls.
    """

    def __init__(
        self,
        limits: dict[str, DenomLimit],
        interval_seconds: int = 30,
        redis_url: str | None = None,
        timeout_seconds: float = 5.0,
    ):
        self._limits = dict(limits)
        self._interval_seconds = interval_seconds
        self._timeout_seconds = timeout_seconds
        self._redis: Redis | None = None
        self._locks: defaultdict[bytes, asyncio.Lock] = defaultdict(asyncio.Lock)

        # In-memory storage for development
        self._memory_records: dict[bytes, bytes] = {}

        if redis_url:
            self._init_redis(redis_url)

    def _init_redis(self, redis_url: str) -> None:
        """Initialize Redis connection."""
        try:
            self._redis = Redis.from_url(
                redis_url,
                socket_timeout=self._timeout_seconds,
                socket_connect_timeout=self._timeout_seconds,
            )
            self._redis.ping()
        except RedisError as e:
            logger.error("Redis connection failed", extra={"url": redis_url, "error": str(e)})
            raise StorageError(f"Cannot connect to ledger storage: {e}") from e
        logger.info("Redis connected for drip ledger", extra={"url": redis_url})

    @property
    def limits(self) -> dict[str, DenomLimit]:
        """Supported denominations and their limits."""
        return dict(self._limits)

    @property
    def persistent(self) -> bool:
        """Whether records survive a restart."""
        return self._redis is not None

    def limit_for(self, denom: str) -> DenomLimit:
        """Get the limit for ``denom``.

        Raises
        ------
        ValidationError
            If the denomination is not dispensed by this faucet.
        """
        try:
            return self._limits[denom]
        except KeyError:
            raise ValidationError(f"Unsupported denomination: {denom}") from None

    def ping(self) -> bool:
        """Check that the storage backend is reachable."""
        if self._redis is None:
            return True
        try:
            return bool(self._redis.ping())
        except RedisError:
            return False

    def _load(self, account_id: bytes) -> DripRecord | None:
        key = KEY_PREFIX + account_id
        try:
            if self._redis is not None:
                data = self._redis.get(key)
            else:
                data = self._memory_records.get(key)
        except RedisError as e:
            raise StorageError(f"Failed to read drip record: {e}") from e

        if data is None:
            return None
        try:
            return DripRecord.from_bytes(data)
        except PydanticValidationError as e:
            raise StorageError(f"Corrupt drip record for {account_id.hex()}") from e

    def _store(self, account_id: bytes, record: DripRecord) -> None:
        key = KEY_PREFIX + account_id
        data = record.to_bytes()
        if self._redis is None:
            self._memory_records[key] = data
            return
        try:
            self._redis.set(key, data)
        except RedisError as e:
            raise StorageError(f"Failed to write drip record: {e}") from e

    async def get_record(self, account_id: bytes) -> DripRecord | None:
        """Get the stored record for an account.

        Parameters
        ----------
        account_id : bytes
            Raw account address bytes.

        Returns
        -------
        DripRecord | None
            The record, or None if the account never claimed.
        """
        async with self._locks[account_id]:
            return self._load(account_id)

    async def check_and_reserve(
        self,
        account_id: bytes,
        denom: str,
        now: datetime | None = None,
    ) -> ReservationResult:
        """Admit a claim and durably record its consumption.

        Parameters
        ----------
        account_id : bytes
            Raw account address bytes.
        denom : str
            Denomination being claimed.
        now : datetime | None
            Time of the claim, defaults to the current UTC time.

        Returns
        -------
        ReservationResult
            Whether the claim is admitted and the account's standing.

        Raises
        ------
        ValidationError
            If the denomination is not supported.
        StorageError
            If the record cannot be read or written.
        """
        limit = self.limit_for(denom)
        now = _utc(now or datetime.now(timezone.utc))

        async with self._locks[account_id]:
            record = self._load(account_id)

            if record is None:
                record = DripRecord(amounts={}, last_requested_at=now)
            else:
                elapsed = (now - record.last_requested_at).total_seconds()
                if elapsed < self._interval_seconds:
                    wait = max(1, math.ceil(self._interval_seconds - elapsed))
                    consumed = record.amounts.get(denom, 0)
                    if now.date() != record.last_requested_at.date():
                        consumed = 0
                    return ReservationResult(
                        allowed=False,
                        status=ReservationStatus.THROTTLED,
                        amount=limit.drip_amount,
                        remaining=max(0, limit.window_cap - consumed),
                        cooldown_seconds=wait,
                        reason=_format_cooldown(wait),
                    )

                # New UTC day opens a new window
                if now.date() != record.last_requested_at.date():
                    record.amounts = {}

            consumed = record.amounts.get(denom, 0)
            if consumed + limit.drip_amount > limit.window_cap:
                return ReservationResult(
                    allowed=False,
                    status=ReservationStatus.QUOTA_EXCEEDED,
                    amount=limit.drip_amount,
                    remaining=max(0, limit.window_cap - consumed),
                    cooldown_seconds=None,
                    reason=f"Daily limit for {denom} reached",
                )

            record.amounts[denom] = consumed + limit.drip_amount
            record.last_requested_at = now
            self._store(account_id, record)

        logger.debug(
            "Drip reserved",
            extra={"account": account_id.hex(), "denom": denom, "total": record.amounts[denom]},
        )

        return ReservationResult(
            allowed=True,
            status=ReservationStatus.RESERVED,
            amount=limit.drip_amount,
            remaining=limit.window_cap - record.amounts[denom],
            cooldown_seconds=None,
            reason=None,
        )
