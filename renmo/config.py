"""
Runtime settings using Pydantic Settings.

Loads configuration from ``RENMO_``-prefixed environment variables (or a
``.env`` file) with validation. A ``Settings`` instance is built once by
the caller and passed explicitly to every component that needs it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Testnet RLUSD issuer.
TESTNET_RLUSD_ISSUER = "rQhWct2fv4Vc4KRjRgMrxa8xPN9Zx9iLKV"


class Settings(BaseSettings):
    """Settings for the ledger, the pinning service, and payment policy."""

    # Ledger network
    ledger_url: str = Field(default="https://s.altnet.rippletest.net:51234")
    faucet_url: str = Field(default="https://faucet.altnet.rippletest.net/accounts")
    http_timeout: float = Field(default=30.0)

    # Issued currency policy
    issued_currency: str = Field(default="RLUSD")
    issuer_address: str | None = Field(default=TESTNET_RLUSD_ISSUER)
    default_trust_limit: str = Field(default="1000000000")
    enable_default_ripple: bool = Field(default=False)

    # Submission policy
    fallback_fee_drops: str = Field(default="10")
    ledger_horizon: int = Field(default=20)
    drops_per_xrp: int = Field(default=1_000_000)

    # Address syntax
    address_prefix: str = Field(default="r")
    address_min_length: int = Field(default=25)
    address_max_length: int = Field(default=35)

    # Funding wait (wallet creation only)
    funding_poll_interval: float = Field(default=3.0)
    funding_max_attempts: int = Field(default=20)

    # Pinning service
    pinata_base_url: str = Field(default="https://api.pinata.cloud")
    pinata_gateway_url: str = Field(default="https://gateway.pinata.cloud/ipfs")
    pinata_jwt: SecretStr | None = Field(default=None)

    # Local persistence
    wallet_db_path: str = Field(default=":memory:")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_prefix="RENMO_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("default_trust_limit", "fallback_fee_drops")
    @classmethod
    def validate_positive_number(cls, v: str) -> str:
        """Validate that numeric string settings are positive."""
        try:
            value = Decimal(v)
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {v!r}") from exc
        if not value.is_finite() or value <= 0:
            raise ValueError(f"must be positive, got {v!r}")
        return v

    @field_validator(
        "ledger_horizon",
        "drops_per_xrp",
        "funding_max_attempts",
        "address_min_length",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate integer settings are positive."""
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("issued_currency")
    @classmethod
    def validate_currency_code(cls, v: str) -> str:
        """Currency codes are either 3-char ISO-like or 40-char hex."""
        if len(v) == 40:
            bytes.fromhex(v)
            return v.upper()
        if not 3 <= len(v) <= 20 or v.upper() == "XRP":
            raise ValueError(f"invalid issued currency code: {v!r}")
        return v
