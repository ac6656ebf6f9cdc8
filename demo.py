#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Vault Step by Step

This is a pedagogical demonstration of how the fixed-term collateral vault
works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:   Foundation   - Deployment, the price feed, opening a position
  4-6:   Risk         - Health factor, the LTV ceiling, rejected calls
  7-8:   Time         - Rollover fees, expiry
  9-10:  Liquidation  - Price crash, the keeper
  11:    Audit        - Replaying the event log

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from fxvault import (
    # Deployment
    create_in_memory_vault, VaultDeployment, LiquidationKeeper,
    # Units and helpers
    WAD, DAY, HOUR, to_wad, from_wad,
    # Events
    replay_events,
    # Errors
    VaultError, InsufficientCollateral, StaleData, PositionHealthy,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Market
    start_time: int = 1_735_722_000          # 2025-01-01 09:00 UTC
    opening_price: int = 300_00000000        # $300, 8-decimal feed
    crash_price: int = 180_00000000          # $180

    # Funding (base asset)
    alice_bnb: int = 10 * WAD
    bob_bnb: int = 10 * WAD
    liquidator_bnb: int = 10 * WAD

    # Alice's loan
    alice_collateral: int = 1 * WAD
    alice_mint: int = 180 * WAD
    alice_term: int = 7 * DAY

    # Bob's loan (rolled over later)
    bob_collateral: int = 2 * WAD
    bob_mint: int = 300 * WAD
    bob_term: int = 7 * DAY
    bob_extension: int = 14 * DAY


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def usd(amount: int) -> str:
    return f"${from_wad(amount):,.2f}"


def bnb(amount: int) -> str:
    return f"{from_wad(amount).normalize():f} BNB"


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_deploy() -> VaultDeployment:
    """Deploy a vault against in-memory collaborators."""
    step_header(1, "Deploying the Vault",
        "See the four pieces a vault is wired to.")

    print("""
    A vault never holds balances of its own. It drives:

    1. A PRICE FEED      - reports BNB/USD in its own decimals
    2. A SYNTHETIC TOKEN - bUSD, which only the vault may mint
    3. A BASE ASSET      - BNB, held in custody as collateral
    4. A CLOCK           - shared by the vault, the feed and the keeper
    """)

    print(">>> d = create_in_memory_vault(price=300_00000000, verbose=True)")
    d = create_in_memory_vault(
        price=CONFIG.opening_price,
        start_time=CONFIG.start_time,
        verbose=True,
    )
    d.bnb.fund("alice", CONFIG.alice_bnb)
    d.bnb.fund("bob", CONFIG.bob_bnb)
    d.bnb.fund("liquidator", CONFIG.liquidator_bnb)

    section_header("Initial State")
    print(f"Clock:             {d.clock.now}")
    print(f"Feed:              {d.feed!r}")
    print(f"Token:             {d.busd!r}")
    print(f"Vault:             {d.vault!r}")
    print(f"alice / bob:       {bnb(d.bnb.balance_of('alice'))} / {bnb(d.bnb.balance_of('bob'))}")

    section_header("Risk Parameters")
    c = d.vault.config
    print(f"Max LTV:               {from_wad(c.max_ltv):.0%}")
    print(f"Liquidation threshold: {from_wad(c.liquidation_threshold):.0%}")
    print(f"Liquidation bonus:     {from_wad(c.liquidation_bonus):.0%}")
    print(f"Rollover APR:          {from_wad(c.rollover_rate_apr):.0%}")
    print(f"Terms:                 {c.min_duration // DAY} to {c.max_duration // DAY} days")
    return d


def step_02_price_feed(d: VaultDeployment) -> VaultDeployment:
    """Show normalization and staleness."""
    step_header(2, "The Price Feed",
        "Raw answers are rescaled to 18 decimals and rejected when stale.")

    raw = d.feed.latest_round_data()
    print(f"Raw answer:         {raw.answer} ({d.feed.decimals()} decimals)")
    print(f"Normalized price:   {d.vault.get_latest_price()} (18 decimals) = {usd(d.vault.get_latest_price())}")

    section_header("Staleness")
    print(">>> d.clock.advance(3 * HOUR)")
    d.clock.advance(3 * HOUR)
    try:
        d.vault.get_latest_price()
    except StaleData as exc:
        print(f"StaleData: {exc}")
    print(">>> d.feed.set_answer(300_00000000)   # new round, stamped now")
    d.feed.set_answer(CONFIG.opening_price)
    print(f"Price is usable again: {usd(d.vault.get_latest_price())}")
    return d


def step_03_open(d: VaultDeployment) -> int:
    """Open alice's position."""
    step_header(3, "Opening a Position",
        "Deposit collateral and mint bUSD against it.")

    print(">>> pid = d.vault.open('alice', mint_amount=180 * WAD, duration=7 * DAY, collateral_in=1 * WAD)")
    pid = d.vault.open(
        "alice",
        mint_amount=CONFIG.alice_mint,
        duration=CONFIG.alice_term,
        collateral_in=CONFIG.alice_collateral,
    )

    section_header("After")
    print(f"Position:          {d.vault.get_position(pid)!r}")
    print(f"alice bUSD:        {usd(d.busd.balance_of('alice'))}")
    print(f"alice BNB:         {bnb(d.bnb.balance_of('alice'))}")
    print(f"Vault custody:     {bnb(d.vault.collateral.balance)}")
    print(f"bUSD supply:       {usd(d.busd.total_supply)}")
    return pid


# ============================================================================
# PHASE 2: RISK (Steps 4-6)
# ============================================================================

def step_04_health_factor(d: VaultDeployment, pid: int):
    """Explain the health factor."""
    step_header(4, "Health Factor",
        "Threshold-adjusted collateral value over debt; below 1.0 is liquidatable.")

    value = d.vault.collateral_value(d.vault.get_position(pid).collateral_amount)
    hf = d.vault.health_factor(pid)
    print(f"Collateral value:  {usd(value)}")
    print(f"x threshold 80%:   {usd(value * 8 // 10)}")
    print(f"/ debt:            {usd(CONFIG.alice_mint)}")
    print(f"Health factor:     {from_wad(hf):.4f}")
    print(f"Liquidatable:      {d.vault.is_liquidatable(pid)}")


def step_05_ltv_ceiling(d: VaultDeployment):
    """Show the LTV boundary and an atomic rejection."""
    step_header(5, "The LTV Ceiling",
        "Minting is capped at 66% of collateral value, and rejected calls leave no trace.")

    print("1 BNB at $300 supports at most 300 * 0.66 = 198 bUSD.")
    before = (d.bnb.balance_of("bob"), d.busd.total_supply, len(d.vault.event_log))

    print("\n>>> d.vault.open('bob', mint_amount=to_wad('198.000000000000000001'), ...)")
    try:
        d.vault.open("bob", mint_amount=to_wad("198.000000000000000001"),
                     duration=DAY, collateral_in=WAD)
    except InsufficientCollateral:
        pass

    after = (d.bnb.balance_of("bob"), d.busd.total_supply, len(d.vault.event_log))
    print(f"\nbob BNB, bUSD supply, events before: {before}")
    print(f"bob BNB, bUSD supply, events after:  {after}")
    print(f"Unchanged: {before == after}")


def step_06_top_up(d: VaultDeployment, pid: int):
    """Anyone may add collateral."""
    step_header(6, "Adding Collateral",
        "Top-ups raise the health factor and need no price.")

    before = d.vault.health_factor(pid)
    print(">>> d.vault.add_collateral('bob', pid, WAD // 4)   # bob tops up alice's loan")
    d.vault.add_collateral("bob", pid, WAD // 4)
    print(f"Health factor:     {from_wad(before):.4f} -> {from_wad(d.vault.health_factor(pid)):.4f}")
    print(f"Owner unchanged:   {d.vault.get_position(pid).owner}")


# ============================================================================
# PHASE 3: TIME (Steps 7-8)
# ============================================================================

def step_07_rollover(d: VaultDeployment) -> int:
    """Extend bob's term for a pro-rated fee."""
    step_header(7, "Rolling Over",
        "Pay a base-asset fee to push maturity later.")

    pid = d.vault.open("bob", mint_amount=CONFIG.bob_mint, duration=CONFIG.bob_term,
                       collateral_in=CONFIG.bob_collateral)
    fee = d.vault.quote_rollover_fee(pid, CONFIG.bob_extension)
    print(f"Quoted fee for {CONFIG.bob_extension // DAY} days: {bnb(fee)}")
    print("fee = debt / price * 5% * seconds / 365 days")

    print(f"\n>>> d.vault.roll_over('bob', pid, 14 * DAY, fee_paid={bnb(WAD // 100)})")
    d.vault.roll_over("bob", pid, CONFIG.bob_extension, WAD // 100)
    print(f"New maturity:      {d.vault.get_position(pid).maturity_timestamp}")
    print(f"Treasury:          {bnb(d.bnb.balance_of('treasury'))}")
    print("Overpayment was refunded in the same call.")
    return pid


def step_08_expiry(d: VaultDeployment, alice_pid: int, bob_pid: int):
    """Maturity makes a healthy position liquidatable."""
    step_header(8, "Expiry",
        "After maturity a position can be liquidated even if healthy.")

    maturity = d.vault.get_position(alice_pid).maturity_timestamp
    print(f">>> d.clock.advance_to({maturity})   # exactly at alice's maturity")
    d.clock.advance_to(maturity)
    d.feed.set_answer(CONFIG.opening_price)
    print(f"alice liquidatable: {d.vault.is_liquidatable(alice_pid)} (expiry is strictly after maturity)")

    d.clock.advance(1)
    d.feed.set_answer(CONFIG.opening_price)
    print(f"One second later:   {d.vault.is_liquidatable(alice_pid)}")
    print(f"bob (rolled over):  {d.vault.is_liquidatable(bob_pid)}")

    section_header("Alice Repays Instead")
    d.busd.approve("alice", d.vault.address, CONFIG.alice_mint)
    returned = d.vault.repay("alice", alice_pid)
    print(f"Collateral returned: {bnb(returned)}")


# ============================================================================
# PHASE 4: LIQUIDATION (Steps 9-10)
# ============================================================================

def step_09_crash(d: VaultDeployment, bob_pid: int):
    """A price drop makes bob's position unsafe."""
    step_header(9, "Price Crash",
        "Watch the health factor fall below 1.0.")

    print(f"bob health factor before: {from_wad(d.vault.health_factor(bob_pid)):.4f}")
    try:
        d.vault.liquidate("liquidator", bob_pid)
    except PositionHealthy:
        pass

    print(f"\n>>> d.feed.set_answer({CONFIG.crash_price})")
    d.feed.set_answer(CONFIG.crash_price)
    print(f"bob health factor after:  {from_wad(d.vault.health_factor(bob_pid)):.4f}")
    print(f"Liquidatable:              {d.vault.is_liquidatable(bob_pid)}")


def step_10_keeper(d: VaultDeployment, bob_pid: int):
    """The keeper repays bob's debt and seizes collateral."""
    step_header(10, "The Liquidation Keeper",
        "A keeper pays the debt and receives collateral plus a 10% bonus.")

    d.busd.mint(d.busd.minter, "liquidator", CONFIG.bob_mint)   # stands in for a market purchase
    d.busd.approve("liquidator", d.vault.address, CONFIG.bob_mint)

    keeper = LiquidationKeeper(d.vault, "liquidator")
    print(f"Scan: {keeper.scan()}")
    events = keeper.step(d.clock.now + 60)

    event = events[0]
    print(f"\nDebt covered:       {usd(event.amounts['debt_covered'])}")
    print(f"Base needed:        {bnb(event.amounts['base_collateral_needed'])}")
    print(f"Reward (+10%):      {bnb(event.amounts['reward'])}")
    print(f"Returned to bob:    {bnb(event.amounts['remainder'])}")
    print(f"Outstanding debt:   {usd(d.vault.total_outstanding_debt())}")


# ============================================================================
# PHASE 5: AUDIT (Step 11)
# ============================================================================

def step_11_replay(d: VaultDeployment):
    """Rebuild every position from the event log."""
    step_header(11, "Replaying the Event Log",
        "The event log alone reproduces every position.")

    for event in d.vault.event_log:
        print(f"  {event!r}")

    replayed = replay_events(d.vault.event_log)
    matches = all(p == d.vault.get_position(pid) for pid, p in replayed.items())
    print(f"\nReplayed positions: {len(replayed)}")
    print(f"Match live state:   {matches}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       FXVAULT - INTERACTIVE TUTORIAL")
    print("=" * 70)
    print("""
    Welcome! This tutorial walks through a fixed-term collateral vault.

    PHASES:
      1-3:   Foundation   - Deployment, price feed, opening a position
      4-6:   Risk         - Health factor, LTV ceiling, top-ups
      7-8:   Time         - Rollover, expiry
      9-10:  Liquidation  - Price crash, keeper
      11:    Audit        - Event replay
    """)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    try:
        d = step_01_deploy()
        wait_for_enter()
        d = step_02_price_feed(d)
        wait_for_enter()
        alice_pid = step_03_open(d)
        wait_for_enter()

        step_04_health_factor(d, alice_pid)
        wait_for_enter()
        step_05_ltv_ceiling(d)
        wait_for_enter()
        step_06_top_up(d, alice_pid)
        wait_for_enter()

        bob_pid = step_07_rollover(d)
        wait_for_enter()
        step_08_expiry(d, alice_pid, bob_pid)
        wait_for_enter()

        step_09_crash(d, bob_pid)
        wait_for_enter()
        step_10_keeper(d, bob_pid)
        wait_for_enter()

        step_11_replay(d)
    except VaultError as exc:
        print(f"\nTutorial stopped: {type(exc).__name__}: {exc}")
        sys.exit(1)

    print(f"\n{'='*70}")
    print("TUTORIAL COMPLETE")
    print(f"{'='*70}")
    print("""
    Next steps:
      - See fxvault/vault.py for the engine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
