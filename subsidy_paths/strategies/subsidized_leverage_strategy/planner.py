"""Sizing for SubsidizedLeverageStrategy.

Everything here is pure: given a PositionSnapshot (and the owned accounting
state where needed) it returns how much to withdraw, repay, borrow or
distribute. The mixins execute the plans against the adapters.
"""

from __future__ import annotations

from collections.abc import Mapping

from .constants import MAX_BPS, WAD
from .mirror import (
    apply_ratio,
    compute_withdraw_ratio,
    mul_div_up,
    snap_ratio,
)
from .settings import SubsidizedLeverageSettings
from .types import (
    PositionSnapshot,
    RebalanceAction,
    RebalancePlan,
    StrategyAccounting,
    TendDecision,
    UnwindPlan,
)


def plan_unwind(snapshot: PositionSnapshot, requested: int) -> UnwindPlan:
    ratio = snap_ratio(compute_withdraw_ratio(requested, snapshot.net_value))
    if ratio <= 0:
        return UnwindPlan(0, 0, 0, 0)

    position = snapshot.position
    if ratio >= WAD:
        return UnwindPlan(
            ratio=WAD,
            supply_to_withdraw=snapshot.supplied,
            debt_to_repay=snapshot.full_debt,
            collateral_to_release=position.collateral,
        )

    return UnwindPlan(
        ratio=ratio,
        supply_to_withdraw=apply_ratio(snapshot.supplied, ratio),
        debt_to_repay=apply_ratio(snapshot.borrowed, ratio),
        collateral_to_release=apply_ratio(position.collateral, ratio),
    )


def shortfall_collateral(units: int, units_value: int, shortfall: int) -> int:
    """Collateral units to redeem early so ``shortfall`` of debt can be repaid.

    Rounds up so the redeemed slice covers the shortfall; never exceeds ``units``.
    """
    if units <= 0 or shortfall <= 0:
        return 0
    if units_value <= 0:
        return units
    return min(units, mul_div_up(units, shortfall, units_value))


def harvest_profits(
    snapshot: PositionSnapshot, accounting: StrategyAccounting
) -> tuple[int, int]:
    profit_collateral = max(
        0, snapshot.collateral_value - accounting.last_collateral_value
    )
    profit_supply = max(0, snapshot.supplied - accounting.last_supply_value)
    return profit_collateral, profit_supply


def pro_rata_repayments(amount: int, debts: Mapping[str, int]) -> dict[str, int]:
    """Split ``amount`` across ``debts`` in proportion to each debt.

    Truncation strands at most one unit per borrower; no repayment exceeds
    the borrower's debt and zero-sized repayments are dropped.
    """
    total_debt = sum(d for d in debts.values() if d > 0)
    if amount <= 0 or total_debt <= 0:
        return {}

    repayments: dict[str, int] = {}
    for address, debt in debts.items():
        if debt <= 0:
            continue
        repay = min(amount * debt // total_debt, debt)
        if repay > 0:
            repayments[address] = repay
    return repayments


def plan_rebalance(
    snapshot: PositionSnapshot,
    target_leverage_bps: int,
    *,
    allow_increase: bool = True,
) -> RebalancePlan:
    collateral = snapshot.collateral_value
    current = snapshot.borrowed
    if collateral <= 0:
        return RebalancePlan.noop(current)

    target = collateral * target_leverage_bps // MAX_BPS
    if target > current:
        if not allow_increase:
            return RebalancePlan.noop(current, target)
        amount = min(target - current, snapshot.market.liquidity)
        if amount <= 0:
            return RebalancePlan.noop(current, target)
        return RebalancePlan(RebalanceAction.BORROW, amount, current, target)

    if current > target:
        return RebalancePlan(RebalanceAction.REPAY, current - target, current, target)

    return RebalancePlan.noop(current, target)


def should_tend(
    snapshot: PositionSnapshot, settings: SubsidizedLeverageSettings
) -> TendDecision:
    total = snapshot.total_assets
    if total > 0 and snapshot.idle * MAX_BPS > total * settings.idle_trigger_bps:
        return TendDecision(True, f"idle balance {snapshot.idle} above threshold")

    if snapshot.collateral_value > 0:
        deviation = abs(snapshot.leverage_bps - settings.target_leverage_bps)
        if deviation > settings.leverage_deviation_bps:
            return TendDecision(
                True,
                f"leverage {snapshot.leverage_bps}bps deviates {deviation}bps from target",
            )

    if snapshot.health_factor < settings.min_health_factor:
        return TendDecision(
            True, f"health factor {snapshot.health_factor} below minimum"
        )

    return TendDecision(False, "position within bounds")
