"""
Unit tests for valuation.py - collateral value and risk math.

Every expected value below is worked out by hand with floor division.
"""

import pytest

from fxvault import (
    WAD, DAY, MAX_UINT256, SECONDS_PER_YEAR,
    DEFAULT_LIQUIDATION_THRESHOLD, DEFAULT_LIQUIDATION_BONUS, DEFAULT_ROLLOVER_RATE_APR,
    DEFAULT_MAX_LTV,
    Clock, PriceNormalizer, StaticPriceFeed, CollateralValuator, LiquidationSplit,
    calculate_collateral_value, calculate_debt_in_base, calculate_health_factor,
    calculate_rollover_fee, calculate_liquidation_split, within_max_ltv,
    StaleData,
)


PRICE_300 = 300 * WAD
PRICE_200 = 200 * WAD


class TestCollateralValue:

    def test_one_unit(self):
        assert calculate_collateral_value(WAD, PRICE_300) == PRICE_300

    def test_fractional_amount(self):
        assert calculate_collateral_value(WAD // 2, PRICE_300) == 150 * WAD

    def test_truncates(self):
        # 1 wei of collateral at $0.5 is worth 0.5 wei -> 0
        assert calculate_collateral_value(1, WAD // 2) == 0

    def test_zero(self):
        assert calculate_collateral_value(0, PRICE_300) == 0


class TestDebtInBase:

    def test_debt_in_base(self):
        assert calculate_debt_in_base(180 * WAD, PRICE_200) == 9 * WAD // 10

    def test_truncates(self):
        # 100 / 300 = 0.333... base
        assert calculate_debt_in_base(100 * WAD, PRICE_300) == 333_333_333_333_333_333


class TestHealthFactor:

    def test_healthy_position(self):
        hf = calculate_health_factor(PRICE_300, 180 * WAD, DEFAULT_LIQUIDATION_THRESHOLD)
        assert hf == 1_333_333_333_333_333_333

    def test_unhealthy_after_drop(self):
        hf = calculate_health_factor(PRICE_200, 180 * WAD, DEFAULT_LIQUIDATION_THRESHOLD)
        assert hf == 888_888_888_888_888_888
        assert hf < WAD

    def test_exactly_one(self):
        # 225 value * 0.8 = 180 adjusted, 180 debt
        assert calculate_health_factor(225 * WAD, 180 * WAD, DEFAULT_LIQUIDATION_THRESHOLD) == WAD

    def test_no_debt_is_max(self):
        assert calculate_health_factor(PRICE_300, 0, DEFAULT_LIQUIDATION_THRESHOLD) == MAX_UINT256

    def test_zero_collateral(self):
        assert calculate_health_factor(0, 180 * WAD, DEFAULT_LIQUIDATION_THRESHOLD) == 0


class TestRolloverFee:

    def test_one_week_at_five_percent(self):
        # 150 debt at $300 -> 0.5 base; 0.5 * 0.05 * 7/365 = 7e16 / 146 wei
        fee = calculate_rollover_fee(150 * WAD, PRICE_300, DEFAULT_ROLLOVER_RATE_APR, 7 * DAY)
        assert fee == 479_452_054_794_520

    def test_full_year(self):
        fee = calculate_rollover_fee(300 * WAD, PRICE_300, DEFAULT_ROLLOVER_RATE_APR, SECONDS_PER_YEAR)
        assert fee == 5 * WAD // 100

    def test_zero_rate(self):
        assert calculate_rollover_fee(150 * WAD, PRICE_300, 0, 7 * DAY) == 0

    def test_linear_in_duration(self):
        one = calculate_rollover_fee(300 * WAD, PRICE_300, DEFAULT_ROLLOVER_RATE_APR, SECONDS_PER_YEAR)
        two = calculate_rollover_fee(300 * WAD, PRICE_300, DEFAULT_ROLLOVER_RATE_APR, 2 * SECONDS_PER_YEAR)
        assert two == 2 * one


class TestLiquidationSplit:

    def test_partial_reward_leaves_remainder(self):
        split = calculate_liquidation_split(WAD, 180 * WAD, PRICE_200, DEFAULT_LIQUIDATION_BONUS)
        assert split == LiquidationSplit(
            debt_to_cover=180 * WAD,
            base_collateral_needed=900_000_000_000_000_000,
            reward=990_000_000_000_000_000,
            remainder=10_000_000_000_000_000,
        )

    def test_reward_capped_at_collateral(self):
        # at $150 the debt is worth 1.2 base, more than the 1 base held
        split = calculate_liquidation_split(WAD, 180 * WAD, 150 * WAD, DEFAULT_LIQUIDATION_BONUS)
        assert split.base_collateral_needed == 1_200_000_000_000_000_000
        assert split.reward == WAD
        assert split.remainder == 0

    def test_zero_bonus(self):
        split = calculate_liquidation_split(WAD, 180 * WAD, PRICE_200, 0)
        assert split.reward == split.base_collateral_needed
        assert split.remainder == WAD - split.reward

    def test_reward_plus_remainder_is_collateral(self):
        split = calculate_liquidation_split(3 * WAD, 400 * WAD, 170 * WAD, DEFAULT_LIQUIDATION_BONUS)
        assert split.reward + split.remainder == 3 * WAD


class TestMaxLtv:

    def test_at_limit(self):
        assert within_max_ltv(198 * WAD, PRICE_300, DEFAULT_MAX_LTV)

    def test_one_wei_over_limit(self):
        assert not within_max_ltv(198 * WAD + 1, PRICE_300, DEFAULT_MAX_LTV)

    def test_nothing_against_nothing(self):
        assert not within_max_ltv(1, 0, DEFAULT_MAX_LTV)


class TestCollateralValuator:

    @pytest.fixture
    def setup(self):
        clock = Clock(1_700_000_000)
        feed = StaticPriceFeed(300_00000000, 8, clock)
        return clock, feed, CollateralValuator(PriceNormalizer(feed, clock))

    def test_price(self, setup):
        _, _, valuator = setup
        assert valuator.price() == PRICE_300

    def test_value_of(self, setup):
        _, _, valuator = setup
        assert valuator.value_of(2 * WAD) == 600 * WAD

    def test_follows_feed(self, setup):
        _, feed, valuator = setup
        feed.set_answer(200_00000000)
        assert valuator.value_of(WAD) == PRICE_200

    def test_stale_feed_propagates(self, setup):
        clock, _, valuator = setup
        clock.advance(4 * 3600)
        with pytest.raises(StaleData):
            valuator.value_of(WAD)
