"""
test_engine.py - Tests for the LiquidationKeeper

Tests:
- Scanning for unsafe and expired positions
- step() advancing the clock along a recorded price path
- run() across several timestamps
- Failed liquidations propagate and leave the vault untouched
"""

import pytest

from fxvault import (
    Clock, TimeSeriesPriceFeed, SyntheticDollar, NativeAsset,
    VaultEngine, LiquidationKeeper, EventKind,
    WAD, DAY, HOUR,
    TransferFailed,
)
from tests.builders import START_TIME as T0


PRICE_PATH = [
    (T0, 300_00000000),
    (T0 + HOUR, 280_00000000),
    (T0 + 2 * HOUR, 200_00000000),
    (T0 + 8 * DAY, 300_00000000),
]


@pytest.fixture
def market():
    """Vault on a recorded price path with two open positions."""
    clock = Clock(T0)
    feed = TimeSeriesPriceFeed(8, clock, PRICE_PATH)
    busd = SyntheticDollar(minter="vault")
    bnb = NativeAsset()
    vault = VaultEngine(clock, feed, busd.bind("vault"), bnb.custody("vault"))

    for wallet in ("alice", "bob", "liquidator"):
        bnb.fund(wallet, 10 * WAD)
    alice = vault.open("alice", mint_amount=180 * WAD, duration=30 * DAY, collateral_in=WAD)
    bob = vault.open("bob", mint_amount=100 * WAD, duration=7 * DAY, collateral_in=WAD)

    busd.mint("vault", "liquidator", 1000 * WAD)
    busd.approve("liquidator", "vault", 1000 * WAD)
    return vault, busd, bnb, alice, bob


class TestScan:

    def test_nothing_to_do_when_healthy(self, market):
        vault, _, _, _, _ = market
        assert LiquidationKeeper(vault, "liquidator").scan() == []

    def test_finds_unsafe_position(self, market):
        vault, _, _, alice, _ = market
        vault.clock.advance_to(T0 + 2 * HOUR)
        assert LiquidationKeeper(vault, "liquidator").scan() == [alice]


class TestStep:

    def test_step_advances_clock(self, market):
        vault, _, _, _, _ = market
        keeper = LiquidationKeeper(vault, "liquidator")
        assert keeper.step(T0 + HOUR) == []
        assert vault.clock.now == T0 + HOUR

    def test_liquidates_after_price_drop(self, market):
        vault, busd, bnb, alice, bob = market
        keeper = LiquidationKeeper(vault, "liquidator")

        events = keeper.step(T0 + 2 * HOUR)

        assert [e.position_id for e in events] == [alice]
        assert events[0].kind == EventKind.LIQUIDATED
        assert not vault.get_position(alice).is_open
        assert vault.get_position(bob).is_open
        assert bnb.balance_of("liquidator") == 10 * WAD + 990_000_000_000_000_000
        assert busd.balance_of("liquidator") == 820 * WAD

    def test_liquidates_expired_position(self, market):
        vault, _, _, alice, bob = market
        keeper = LiquidationKeeper(vault, "liquidator")
        keeper.step(T0 + 2 * HOUR)

        events = keeper.step(T0 + 8 * DAY)
        assert [e.position_id for e in events] == [bob]
        # $300 and healthy; eligible only because it matured at T0 + 7 days
        assert events[0].health_factor >= WAD

    def test_cannot_step_backwards(self, market):
        vault, _, _, _, _ = market
        keeper = LiquidationKeeper(vault, "liquidator")
        keeper.step(T0 + HOUR)
        with pytest.raises(ValueError):
            keeper.step(T0)


class TestRun:

    def test_run_over_path(self, market):
        vault, busd, _, alice, bob = market
        keeper = LiquidationKeeper(vault, "liquidator")

        events = keeper.run([T0 + HOUR, T0 + 2 * HOUR, T0 + 8 * DAY])

        assert [e.position_id for e in events] == [alice, bob]
        assert vault.positions.open_positions() == []
        assert vault.total_outstanding_debt() == 0
        # both debts were paid out of the liquidator's 1000; alice and bob keep their 280
        assert busd.total_supply == 1000 * WAD
        assert busd.balance_of("liquidator") == 720 * WAD


class TestFailures:

    def test_unfunded_liquidator_propagates(self, market):
        vault, _, _, alice, _ = market
        keeper = LiquidationKeeper(vault, "pauper")
        with pytest.raises(TransferFailed):
            keeper.step(T0 + 2 * HOUR)
        assert vault.get_position(alice).is_open
        assert vault.event_log[-1].kind == EventKind.OPENED

    def test_verbose_keeper(self, market, capsys):
        vault, _, _, alice, _ = market
        vault.verbose = True
        keeper = LiquidationKeeper(vault, "liquidator")
        keeper.step(T0 + 2 * HOUR)
        out = capsys.readouterr().out
        assert f"[KEEPER] Liquidating position {alice}" in out
