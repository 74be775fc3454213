"""
Configuration for the relay service.

Reads environment variables (optionally from `.env`) via pydantic-settings.
All variables share the `RELAY_` prefix; per-chain settings are nested with
a double underscore.

Environment variables:
    RELAY_DATABASE_URL                 (str, default "sqlite:///./relay.db")
    RELAY_LOG_LEVEL                    (str, default "INFO")
    RELAY_ADMIN_API_KEY                (str, optional)   enables /admin routes
    RELAY_CORS_ALLOW_ORIGINS           (json list, default ["*"])

Per chain (SOLANA, ETHEREUM, BNB):
    RELAY_<CHAIN>__RPC_URL             (str)             JSON-RPC endpoint
    RELAY_<CHAIN>__POOL_PRIVATE_KEY    (str, optional)   pool key; relay disabled if unset
    RELAY_<CHAIN>__NETWORK_FEE         (decimal)         flat fee deducted from payouts
    RELAY_<CHAIN>__AMOUNT_TOLERANCE    (decimal)         allowed deposit amount deviation
    RELAY_<CHAIN>__CONFIRM_TIMEOUT     (float, seconds)  payout confirmation wait
    RELAY_<CHAIN>__REQUEST_TIMEOUT     (float, seconds)  single RPC call timeout

Fees and tolerances are in native units (SOL, ETH, BNB).
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import ClassVar

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from privacy_relay.core.models import Chain, to_base_units


class ChainSettings(BaseModel):
    # Base unit precision that fee and tolerance must fit
    decimals: ClassVar[int] = 18

    rpc_url: str
    pool_private_key: SecretStr | None = None
    network_fee: Decimal = Decimal("0")
    amount_tolerance: Decimal = Decimal("0")
    confirm_timeout: float = Field(60.0, gt=0)
    request_timeout: float = Field(15.0, gt=0)

    @field_validator("network_fee", "amount_tolerance")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if not v.is_finite() or v < 0:
            raise ValueError("must be a non-negative decimal")
        return v

    @field_validator("pool_private_key", mode="before")
    @classmethod
    def _blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _fits_base_unit(self) -> ChainSettings:
        for name in ("network_fee", "amount_tolerance"):
            try:
                to_base_units(getattr(self, name), self.decimals)
            except ValueError:
                raise ValueError(
                    f"{name} has more than {self.decimals} decimal places"
                ) from None
        return self


# Each chain gets its own subclass so a partially set environment
# (e.g. only RELAY_SOLANA__POOL_PRIVATE_KEY) still picks up the chain defaults.


class SolanaSettings(ChainSettings):
    decimals: ClassVar[int] = 9

    rpc_url: str = "https://api.mainnet-beta.solana.com"
    network_fee: Decimal = Decimal("0.000005")  # 5000 lamports
    amount_tolerance: Decimal = Decimal("0.000001")  # 1000 lamports


class EthereumSettings(ChainSettings):
    rpc_url: str = "https://eth.llamarpc.com"
    network_fee: Decimal = Decimal("0.001")
    amount_tolerance: Decimal = Decimal("0.0001")
    confirm_timeout: float = Field(120.0, gt=0)


class BnbSettings(ChainSettings):
    rpc_url: str = "https://bsc-dataseed.binance.org"
    network_fee: Decimal = Decimal("0.0005")
    amount_tolerance: Decimal = Decimal("0.0001")
    confirm_timeout: float = Field(120.0, gt=0)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./relay.db"
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    admin_api_key: SecretStr | None = None
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    solana: SolanaSettings = Field(default_factory=SolanaSettings)
    ethereum: EthereumSettings = Field(default_factory=EthereumSettings)
    bnb: BnbSettings = Field(default_factory=BnbSettings)

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    def for_chain(self, chain: Chain) -> ChainSettings:
        return getattr(self, chain.value)


@lru_cache
def get_settings() -> Settings:
    return Settings()
