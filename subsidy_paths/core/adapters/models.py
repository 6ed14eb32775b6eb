from pydantic import BaseModel, ConfigDict, Field


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)


class MarketPosition(_Snapshot):
    """One account's stake in an isolated lending market."""

    supply_shares: int = Field(default=0, ge=0)
    borrow_shares: int = Field(default=0, ge=0)
    collateral: int = Field(default=0, ge=0)


class MarketTotals(_Snapshot):
    total_supply_assets: int = Field(default=0, ge=0)
    total_supply_shares: int = Field(default=0, ge=0)
    total_borrow_assets: int = Field(default=0, ge=0)
    total_borrow_shares: int = Field(default=0, ge=0)

    @property
    def liquidity(self) -> int:
        return max(0, self.total_supply_assets - self.total_borrow_assets)


class MarketParams(_Snapshot):
    loan_token: str
    collateral_token: str
    oracle: str
    irm: str
    lltv: int = Field(ge=0)

    def as_tuple(self) -> tuple[str, str, str, str, int]:
        return (
            self.loan_token,
            self.collateral_token,
            self.oracle,
            self.irm,
            self.lltv,
        )


class VaultTotals(_Snapshot):
    """Pooled totals of an ERC-4626 savings vault."""

    total_assets: int = Field(default=0, ge=0)
    total_shares: int = Field(default=0, ge=0)
