"""
Risk Conformance Tests

INVARIANTS:

    open succeeds        ⟺ mint * 1e18 <= collateral_value * max_ltv
    open succeeds        ⟹ health_factor >= 1e18 (never born liquidatable)
    p1 <= p2             ⟹ health_factor(p1) <= health_factor(p2)
    liquidation          ⟹ reward <= collateral and reward + remainder == collateral
    before maturity      ⟹ (liquidatable ⟺ health_factor < 1e18)
"""

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from fxvault import (
    WAD, DAY,
    DEFAULT_MAX_LTV, DEFAULT_LIQUIDATION_THRESHOLD,
    calculate_collateral_value, calculate_health_factor,
    calculate_liquidation_split, calculate_rollover_fee,
    InsufficientCollateral,
)
from tests.builders import deploy, give_busd, open_standard


# 8-decimal answers from $0.00000001 up to $10,000
answers = st.integers(min_value=1, max_value=10_000 * 10 ** 8)
amounts = st.integers(min_value=1, max_value=10 ** 24)


class TestLoanToValue:

    @given(collateral=st.integers(min_value=1, max_value=1_000 * WAD), answer=answers, mint=amounts)
    @settings(max_examples=200, deadline=None)
    def test_open_respects_max_ltv(self, collateral, answer, mint):
        """
        PROPERTY: open succeeds exactly when the mint is within max LTV.
        """
        d = deploy(price=answer, fund=1_000 * WAD)
        value = calculate_collateral_value(collateral, answer * 10 ** 10)
        allowed = mint * WAD <= value * DEFAULT_MAX_LTV

        if allowed:
            pid = open_standard(d, debt=mint, collateral=collateral)
            assert d.vault.health_factor(pid) >= WAD
            assert not d.vault.is_liquidatable(pid)
        else:
            with pytest.raises(InsufficientCollateral):
                open_standard(d, debt=mint, collateral=collateral)


class TestHealthFactor:

    @given(collateral=amounts, debt=amounts, p1=answers, p2=answers)
    @settings(max_examples=200)
    def test_monotone_in_price(self, collateral, debt, p1, p2):
        """
        PROPERTY: A higher price never lowers the health factor.
        """
        low, high = sorted((p1 * 10 ** 10, p2 * 10 ** 10))
        hf_low = calculate_health_factor(
            calculate_collateral_value(collateral, low), debt, DEFAULT_LIQUIDATION_THRESHOLD
        )
        hf_high = calculate_health_factor(
            calculate_collateral_value(collateral, high), debt, DEFAULT_LIQUIDATION_THRESHOLD
        )
        assert hf_low <= hf_high

    @given(top_up=st.integers(min_value=1, max_value=50 * WAD), answer=answers)
    @settings(max_examples=50, deadline=None)
    def test_top_up_never_lowers_health(self, top_up, answer):
        """
        PROPERTY: add_collateral never lowers the health factor.
        """
        d = deploy()
        pid = open_standard(d)
        d.feed.set_answer(answer)
        before = d.vault.health_factor(pid)
        d.vault.add_collateral("bob", pid, top_up)
        assert d.vault.health_factor(pid) >= before

    @given(answer=st.integers(min_value=100 * 10 ** 8, max_value=400 * 10 ** 8))
    @settings(max_examples=100, deadline=None)
    def test_liquidatable_iff_unhealthy_before_maturity(self, answer):
        """
        PROPERTY: Before maturity a position is liquidatable exactly when HF < 1.
        """
        d = deploy()
        pid = open_standard(d)
        d.feed.set_answer(answer)
        unhealthy = d.vault.health_factor(pid) < WAD
        assert d.vault.is_liquidatable(pid) == unhealthy

        give_busd(d, "liquidator", 180 * WAD)
        if unhealthy:
            d.vault.liquidate("liquidator", pid)
            assert not d.vault.get_position(pid).is_open
        else:
            assert d.vault.get_position(pid).is_open


class TestLiquidationBounds:

    @given(
        collateral=amounts,
        debt=amounts,
        answer=answers,
        bonus=st.integers(min_value=0, max_value=WAD),
    )
    @settings(max_examples=300)
    def test_split_bounds(self, collateral, debt, answer, bonus):
        """
        PROPERTY: The liquidator never receives more than the collateral, and
        nothing is created or lost in the split.
        """
        split = calculate_liquidation_split(collateral, debt, answer * 10 ** 10, bonus)

        assert 0 <= split.reward <= collateral
        assert split.remainder >= 0
        assert split.reward + split.remainder == collateral
        assert split.debt_to_cover == debt
        if split.reward < collateral:
            assert split.reward == split.base_collateral_needed * (WAD + bonus) // WAD
            assert split.reward >= split.base_collateral_needed

    @given(answer=st.integers(min_value=50 * 10 ** 8, max_value=224 * 10 ** 8))
    @settings(max_examples=50, deadline=None)
    def test_liquidation_pays_out_all_collateral(self, answer):
        """
        PROPERTY: After a liquidation the vault holds none of the position's collateral.
        """
        d = deploy()
        pid = open_standard(d)
        give_busd(d, "liquidator", 180 * WAD)
        d.feed.set_answer(answer)
        assume(d.vault.is_liquidatable(pid))

        split = d.vault.liquidate("liquidator", pid)
        assert d.vault.collateral.balance == 0
        assert d.bnb.balance_of("liquidator") - 100 * WAD == split.reward
        assert d.bnb.balance_of("alice") - 99 * WAD == split.remainder


class TestRolloverFee:

    @given(
        debt=amounts,
        answer=answers,
        d1=st.integers(min_value=DAY, max_value=90 * DAY),
        d2=st.integers(min_value=DAY, max_value=90 * DAY),
    )
    @settings(max_examples=200)
    def test_fee_monotone_in_duration(self, debt, answer, d1, d2):
        """
        PROPERTY: A longer extension never costs less.
        """
        short, long_ = sorted((d1, d2))
        price = answer * 10 ** 10
        assert calculate_rollover_fee(debt, price, 5 * WAD // 100, short) <= \
            calculate_rollover_fee(debt, price, 5 * WAD // 100, long_)
