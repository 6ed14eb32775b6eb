from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from subsidy_paths.core.adapters.models import MarketPosition, MarketTotals, VaultTotals

from . import mirror
from .constants import WAD

# ─────────────────────────────────────────────────────────────────────────────
# OWNED STATE
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class StrategyAccounting:
    """Durable bookkeeping owned by one strategy instance.

    ``last_collateral_value`` / ``last_supply_value`` are the yield checkpoints;
    ``reported_total_assets`` is what the owning vault has accounted for.
    """

    last_collateral_value: int = 0
    last_supply_value: int = 0
    reported_total_assets: int = 0

    total_borrower_repaid: int = 0
    total_own_debt_repaid: int = 0
    total_donated: int = 0
    harvest_count: int = 0

    def copy(self) -> StrategyAccounting:
        return replace(self)

    def add_collateral(self, value: int) -> None:
        self.last_collateral_value += max(0, value)

    def release_collateral(self, units: int, units_held: int) -> None:
        """Lower the collateral checkpoint by the released share of the position.

        Unharvested appreciation on the remaining units stays visible as profit.
        """
        if units_held <= 0 or units >= units_held:
            self.last_collateral_value = 0
            return
        self.last_collateral_value -= self.last_collateral_value * units // units_held

    def add_supply(self, value: int) -> None:
        self.last_supply_value += max(0, value)

    def remove_supply(self, value: int) -> None:
        self.last_supply_value = max(0, self.last_supply_value - value)


# ─────────────────────────────────────────────────────────────────────────────
# POSITION SNAPSHOT (read once per operation)
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PositionSnapshot:
    position: MarketPosition
    market: MarketTotals
    vault: VaultTotals
    idle: int
    lltv: int

    @property
    def collateral_value(self) -> int:
        return mirror.collateral_value(self.position, self.vault)

    @property
    def supplied(self) -> int:
        return mirror.supplied_value(self.position, self.market)

    @property
    def borrowed(self) -> int:
        return mirror.borrowed_value(self.position, self.market)

    @property
    def full_debt(self) -> int:
        return mirror.full_debt(self.position, self.market)

    @property
    def net_value(self) -> int:
        return mirror.net_value(self.collateral_value, self.supplied, self.borrowed)

    @property
    def total_assets(self) -> int:
        return self.idle + self.net_value

    @property
    def health_factor(self) -> int:
        return mirror.health_factor(self.collateral_value, self.borrowed, self.lltv)

    @property
    def leverage_bps(self) -> int:
        return mirror.leverage_bps(self.borrowed, self.collateral_value)

    def units_value(self, units: int) -> int:
        return mirror.units_to_assets(
            units, self.vault.total_assets, self.vault.total_shares
        )

    def value_units(self, assets: int) -> int:
        return mirror.assets_to_units(
            assets, self.vault.total_assets, self.vault.total_shares
        )


# ─────────────────────────────────────────────────────────────────────────────
# PLANS
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class UnwindPlan:
    ratio: int
    supply_to_withdraw: int
    debt_to_repay: int
    collateral_to_release: int

    @property
    def full(self) -> bool:
        return self.ratio >= WAD

    @property
    def is_noop(self) -> bool:
        return self.ratio <= 0


class RebalanceAction(Enum):
    NONE = "none"
    BORROW = "borrow"
    REPAY = "repay"


@dataclass(frozen=True)
class RebalancePlan:
    action: RebalanceAction
    amount: int
    current_borrow: int
    target_borrow: int

    @classmethod
    def noop(cls, current_borrow: int = 0, target_borrow: int = 0) -> RebalancePlan:
        return cls(RebalanceAction.NONE, 0, current_borrow, target_borrow)


@dataclass(frozen=True)
class TendDecision:
    should_tend: bool
    reason: str


# ─────────────────────────────────────────────────────────────────────────────
# HARVEST RESULT
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class HarvestReport:
    profit_collateral: int = 0
    profit_supply: int = 0
    collateral_units_redeemed: int = 0
    received: int = 0
    borrower_repayments: dict[str, int] = field(default_factory=dict)
    own_debt_repaid: int = 0
    donated: int = 0
    reported_total_assets: int = 0

    @property
    def borrower_repaid(self) -> int:
        return sum(self.borrower_repayments.values())

    def summary(self) -> str:
        return (
            f"profit_collateral={self.profit_collateral} "
            f"profit_supply={self.profit_supply} "
            f"borrowers_repaid={self.borrower_repaid} "
            f"own_debt_repaid={self.own_debt_repaid} "
            f"donated={self.donated} "
            f"reported={self.reported_total_assets}"
        )
