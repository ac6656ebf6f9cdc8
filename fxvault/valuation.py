"""
valuation.py - Collateral valuation and position risk math

ARCHITECTURE (Pure Function Pattern):
=====================================

1. PURE CALCULATION FUNCTIONS (calculate_*):
   - Take every input explicitly (amounts, price, ratios)
   - Integer wad arithmetic with floor division, never rounded up
   - Trivially testable and stress-testable

2. CollateralValuator:
   - Reads the current price from a PriceNormalizer
   - Delegates to the pure functions

Key Formulas (all values wad-scaled):
    collateral_value = collateral * price / 1e18
    health_factor    = (collateral_value * threshold / 1e18) * 1e18 / debt
    debt_in_base     = debt * 1e18 / price
    rollover_fee     = debt_in_base * rate * seconds / (365 days * 1e18)
    reward           = min(debt_in_base * (1e18 + bonus) / 1e18, collateral)
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import Wad, WAD, MAX_UINT256, SECONDS_PER_YEAR
from .pricing_source import PriceNormalizer


@dataclass(frozen=True, slots=True)
class LiquidationSplit:
    """
    How a liquidated position's collateral is divided.

    Attributes:
        debt_to_cover: Synthetic dollars the liquidator pays in
        base_collateral_needed: Collateral worth exactly the debt at the current price
        reward: Collateral paid to the liquidator (bonus included, capped)
        remainder: Collateral returned to the position owner
    """
    debt_to_cover: Wad
    base_collateral_needed: Wad
    reward: Wad
    remainder: Wad


# ============================================================================
# PURE CALCULATION FUNCTIONS
# ============================================================================

def calculate_collateral_value(collateral_amount: Wad, price: Wad) -> Wad:
    """
    USD value of a collateral amount at ``price``.

    Example:
        calculate_collateral_value(10**18, 300 * 10**18)  # 300 * 10**18
    """
    return collateral_amount * price // WAD


def calculate_debt_in_base(debt_amount: Wad, price: Wad) -> Wad:
    """Quantity of base asset worth ``debt_amount`` dollars at ``price``."""
    return debt_amount * WAD // price


def calculate_health_factor(collateral_value: Wad, debt_amount: Wad, liquidation_threshold: Wad) -> Wad:
    """
    Threshold-adjusted collateral value over debt, wad-scaled.

    Returns MAX_UINT256 when there is no debt. Below 1e18 the position is
    eligible for liquidation.
    """
    if debt_amount == 0:
        return MAX_UINT256
    adjusted = collateral_value * liquidation_threshold // WAD
    return adjusted * WAD // debt_amount


def calculate_rollover_fee(debt_amount: Wad, price: Wad, rate_apr: Wad, added_duration: int) -> Wad:
    """
    Pro-rated simple-interest fee, charged in base asset, for extending a term.

    Example:
        # 150 debt at $300 -> 0.5 base; 7 days at 5% -> ~0.0004795 base
        calculate_rollover_fee(150 * 10**18, 300 * 10**18, 5 * 10**16, 7 * 86400)
    """
    debt_in_base = calculate_debt_in_base(debt_amount, price)
    return debt_in_base * rate_apr * added_duration // (SECONDS_PER_YEAR * WAD)


def calculate_liquidation_split(
    collateral_amount: Wad,
    debt_amount: Wad,
    price: Wad,
    liquidation_bonus: Wad,
) -> LiquidationSplit:
    """
    Divide collateral between liquidator and owner.

    The liquidator receives the base value of the debt plus the bonus. On an
    under-collateralized position that would exceed the collateral, so the
    reward is capped and the owner receives nothing.
    """
    base_needed = calculate_debt_in_base(debt_amount, price)
    reward = base_needed * (WAD + liquidation_bonus) // WAD
    if reward > collateral_amount:
        reward = collateral_amount
    return LiquidationSplit(
        debt_to_cover=debt_amount,
        base_collateral_needed=base_needed,
        reward=reward,
        remainder=collateral_amount - reward,
    )


def within_max_ltv(mint_amount: Wad, collateral_value: Wad, max_ltv: Wad) -> bool:
    """True when ``mint_amount`` is at most ``max_ltv`` of ``collateral_value``."""
    return mint_amount * WAD <= collateral_value * max_ltv


# ============================================================================
# VALUATOR
# ============================================================================

class CollateralValuator:
    """Values base-asset collateral in USD using the normalizer's current price."""

    def __init__(self, normalizer: PriceNormalizer):
        self.normalizer = normalizer

    def price(self) -> Wad:
        """Fresh normalized price; raises InvalidPrice or StaleData."""
        return self.normalizer.get_latest_price()

    def value_of(self, collateral_amount: Wad) -> Wad:
        return calculate_collateral_value(collateral_amount, self.price())

    def __repr__(self):
        return f"CollateralValuator({self.normalizer!r})"
