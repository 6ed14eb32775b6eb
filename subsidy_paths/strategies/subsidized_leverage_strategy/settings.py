from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from subsidy_paths.core.constants.chains import CHAIN_ID_ETHEREUM
from subsidy_paths.core.utils.addresses import normalize_address

from .constants import (
    DEFAULT_IDLE_TRIGGER_BPS,
    DEFAULT_LEVERAGE_DEVIATION_BPS,
    DEFAULT_MIN_HEALTH_FACTOR,
    DEFAULT_TARGET_LEVERAGE_BPS,
    MAX_BPS,
    MAX_TARGET_LEVERAGE_BPS,
    WAD,
)


class SubsidizedLeverageSettings(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    chain_id: int = Field(default=CHAIN_ID_ETHEREUM, description="EVM chain id")
    market_unique_key: str = Field(
        ..., description="Morpho Blue market id (bytes32 hex)"
    )
    savings_vault: str = Field(..., description="ERC-4626 vault used as collateral")
    donation_address: str = Field(
        ..., description="Receives all lending interest on harvest"
    )
    management: str | None = Field(
        default=None, description="Admin identity (defaults to main wallet)"
    )

    target_leverage_bps: int = Field(
        default=DEFAULT_TARGET_LEVERAGE_BPS, ge=0, le=MAX_TARGET_LEVERAGE_BPS
    )
    idle_trigger_bps: int = Field(default=DEFAULT_IDLE_TRIGGER_BPS, ge=0, le=MAX_BPS)
    leverage_deviation_bps: int = Field(
        default=DEFAULT_LEVERAGE_DEVIATION_BPS, ge=0, le=MAX_BPS
    )
    min_health_factor: int = Field(
        default=DEFAULT_MIN_HEALTH_FACTOR, ge=0, description="WAD scaled (1.2 = 1.2e18)"
    )

    borrowers: list[str] = Field(default_factory=list)

    @field_validator("savings_vault", "donation_address")
    @classmethod
    def _checksum(cls, value: str, info) -> str:
        return normalize_address(value, field=info.field_name)

    @field_validator("management")
    @classmethod
    def _checksum_management(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_address(value, field="management")

    @field_validator("borrowers")
    @classmethod
    def _checksum_borrowers(cls, value: list[str]) -> list[str]:
        return [normalize_address(v, field="borrowers") for v in value]

    @field_validator("market_unique_key")
    @classmethod
    def _market_key(cls, value: str) -> str:
        key = str(value).strip().lower()
        if not key.startswith("0x"):
            key = f"0x{key}"
        try:
            raw = bytes.fromhex(key[2:])
        except ValueError as exc:
            raise ValueError(f"market_unique_key is not hex: {value!r}") from exc
        if len(raw) != 32:
            raise ValueError("market_unique_key must be 32 bytes")
        return key

    @field_validator("min_health_factor", mode="before")
    @classmethod
    def _health_to_wad(cls, value: Any) -> Any:
        # Human-readable factors (e.g. 1.2) are scaled; WAD integers pass through.
        if isinstance(value, float) and value < 1_000:
            return int(Decimal(str(value)) * WAD)
        return value

    @model_validator(mode="after")
    def _unique_borrowers(self) -> SubsidizedLeverageSettings:
        if len({b.lower() for b in self.borrowers}) != len(self.borrowers):
            raise ValueError("borrowers must not contain duplicates")
        return self
