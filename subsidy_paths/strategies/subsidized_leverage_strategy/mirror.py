"""Share/asset conversions over explicit protocol snapshots.

Every function here is pure: callers pass in the position and pooled totals
they just read, and get back asset-denominated values. Conversions truncate
toward zero so a claim is never overstated, and an empty pool (zero shares
outstanding) converts to zero.
"""

from __future__ import annotations

from subsidy_paths.core.adapters.models import MarketPosition, MarketTotals, VaultTotals

from .constants import FULL_UNWIND_SNAP_RATIO, INFINITE_HEALTH_FACTOR, MAX_BPS, WAD


def mul_div_up(x: int, y: int, d: int) -> int:
    if d <= 0:
        return 0
    return (x * y + d - 1) // d


def units_to_assets(units: int, total_assets: int, total_shares: int) -> int:
    if total_shares <= 0 or units <= 0:
        return 0
    return units * total_assets // total_shares


def assets_to_units(assets: int, total_assets: int, total_shares: int) -> int:
    if total_assets <= 0 or assets <= 0:
        return 0
    return assets * total_shares // total_assets


def to_assets_up(units: int, total_assets: int, total_shares: int) -> int:
    """Round-up conversion, i.e. what the pool charges to clear ``units`` of debt."""
    if total_shares <= 0 or units <= 0:
        return 0
    return mul_div_up(units, total_assets, total_shares)


def collateral_value(position: MarketPosition, vault: VaultTotals) -> int:
    return units_to_assets(position.collateral, vault.total_assets, vault.total_shares)


def supplied_value(position: MarketPosition, totals: MarketTotals) -> int:
    return units_to_assets(
        position.supply_shares, totals.total_supply_assets, totals.total_supply_shares
    )


def borrowed_value(position: MarketPosition, totals: MarketTotals) -> int:
    return units_to_assets(
        position.borrow_shares, totals.total_borrow_assets, totals.total_borrow_shares
    )


def full_debt(position: MarketPosition, totals: MarketTotals) -> int:
    return to_assets_up(
        position.borrow_shares, totals.total_borrow_assets, totals.total_borrow_shares
    )


def net_value(collateral: int, supplied: int, borrowed: int) -> int:
    return max(0, collateral + supplied - borrowed)


def compute_withdraw_ratio(requested: int, net: int) -> int:
    """Fraction of the position (WAD scaled) that frees ``requested`` assets."""
    if net <= 0 or requested <= 0:
        return 0
    if requested >= net:
        return WAD
    return requested * WAD // net


def snap_ratio(ratio: int) -> int:
    if ratio >= FULL_UNWIND_SNAP_RATIO:
        return WAD
    return max(0, ratio)


def apply_ratio(amount: int, ratio: int) -> int:
    if ratio >= WAD:
        return amount
    return amount * ratio // WAD


def health_factor(collateral: int, borrowed: int, lltv: int) -> int:
    if borrowed <= 0:
        return INFINITE_HEALTH_FACTOR
    return collateral * lltv // WAD * WAD // borrowed


def leverage_bps(borrowed: int, collateral: int) -> int:
    if collateral <= 0:
        return 0
    return borrowed * MAX_BPS // collateral
