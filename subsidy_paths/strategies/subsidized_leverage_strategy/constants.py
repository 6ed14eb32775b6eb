from subsidy_paths.core.constants.base import MANTISSA, MAX_BPS, MAX_UINT256

WAD = MANTISSA

# ─────────────────────────────────────────────────────────────────────────────
# LEVERAGE
# ─────────────────────────────────────────────────────────────────────────────

MAX_TARGET_LEVERAGE_BPS = 9_000
DEFAULT_TARGET_LEVERAGE_BPS = 5_000

# ─────────────────────────────────────────────────────────────────────────────
# WITHDRAW RATIO
# ─────────────────────────────────────────────────────────────────────────────

# Ratios at or above 99.99% unwind everything.
FULL_UNWIND_SNAP_RATIO = WAD * 9_999 // MAX_BPS

# ─────────────────────────────────────────────────────────────────────────────
# TEND TRIGGER
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_IDLE_TRIGGER_BPS = 10  # 0.1% of total assets
DEFAULT_LEVERAGE_DEVIATION_BPS = 500
DEFAULT_MIN_HEALTH_FACTOR = WAD * 12 // 10  # 1.2

# Health factor reported when there is no debt.
INFINITE_HEALTH_FACTOR = MAX_UINT256

__all__ = [
    "WAD",
    "MAX_BPS",
    "MAX_TARGET_LEVERAGE_BPS",
    "DEFAULT_TARGET_LEVERAGE_BPS",
    "FULL_UNWIND_SNAP_RATIO",
    "DEFAULT_IDLE_TRIGGER_BPS",
    "DEFAULT_LEVERAGE_DEVIATION_BPS",
    "DEFAULT_MIN_HEALTH_FACTOR",
    "INFINITE_HEALTH_FACTOR",
]
