"""Configuration management for Spigot using Pydantic Settings."""

from typing import Annotated

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DENOMS = ("uluna", "ukrw", "uusd", "usdr", "ugbp", "ueur", "ujpy", "ucny")

MICRO_UNIT = 1_000_000


class SpigotConfig(BaseSettings):
    """Spigot service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    # Network
    lcd_url: str = Field(default="https://lcd.terra.money", alias="SPIGOT_LCD_URL")
    chain_id: str = Field(default="soju-0007", alias="SPIGOT_CHAIN_ID")
    bech32_prefix: str = Field(default="terra", alias="SPIGOT_BECH32_PREFIX")
    request_timeout_seconds: float = Field(
        default=10.0, alias="SPIGOT_REQUEST_TIMEOUT_SECONDS", gt=0
    )

    # Wallet
    mnemonic: SecretStr | None = Field(default=None, alias="SPIGOT_MNEMONIC")
    mnemonic_file: str | None = Field(default=None, alias="SPIGOT_MNEMONIC_FILE")

    # Human verification
    recaptcha_secret: SecretStr | None = Field(default=None, alias="SPIGOT_RECAPTCHA_SECRET")

    # Faucet limits
    denoms: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_DENOMS, alias="SPIGOT_DENOMS"
    )
    drip_amount: int = Field(default=10 * MICRO_UNIT, alias="SPIGOT_DRIP_AMOUNT", gt=0)
    window_multiplier: int = Field(default=10, alias="SPIGOT_WINDOW_MULTIPLIER", gt=0)
    request_interval_seconds: int = Field(
        default=30, alias="SPIGOT_REQUEST_INTERVAL_SECONDS", ge=0
    )

    # Transaction
    fee_denom: str = Field(default="uluna", alias="SPIGOT_FEE_DENOM")
    fee_amount: int = Field(default=10, alias="SPIGOT_FEE_AMOUNT", ge=0)
    memo: str = Field(default="faucet", alias="SPIGOT_MEMO")
    broadcast_mode: str = Field(default="async", alias="SPIGOT_BROADCAST_MODE")

    # Ledger storage
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Claim server
    host: str = Field(default="0.0.0.0", alias="SPIGOT_HOST")  # noqa: S104
    port: int = Field(default=3000, alias="SPIGOT_PORT", ge=1, le=65535)

    # Observability
    metrics_port: int = Field(default=8080, alias="SPIGOT_METRICS_PORT", ge=1, le=65535)
    log_level: str = Field(default="INFO", alias="SPIGOT_LOG_LEVEL")
    log_format: str = Field(default="json", alias="SPIGOT_LOG_FORMAT")

    @field_validator("denoms", mode="before")
    @classmethod
    def _split_denoms(cls, value):
        """Accept a comma separated list of denominations."""
        if isinstance(value, str):
            value = [d.strip() for d in value.split(",") if d.strip()]
        if not value:
            raise ValueError("At least one denomination is required")
        return tuple(value)

    @field_validator("broadcast_mode")
    @classmethod
    def _check_mode(cls, value: str) -> str:
        if value not in ("async", "sync", "block"):
            raise ValueError(f"Invalid broadcast mode: {value!r}")
        return value
