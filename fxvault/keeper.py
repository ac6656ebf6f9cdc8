"""
keeper.py - Liquidation Keeper

Polls a vault for liquidatable positions and liquidates them on behalf of a
liquidator wallet.

Execution order each step():
1. Advance the shared clock
2. Scan open positions in id order
3. Liquidate every position that is unsafe or expired

The vault's event log is the audit trail - the keeper keeps no records of
its own beyond the events it returns.
"""

from __future__ import annotations
from typing import List

from .core import Address
from .events import VaultEvent
from .vault import VaultEngine


class LiquidationKeeper:
    """
    Liquidation bot driving a VaultEngine.

    The liquidator must hold enough bUSD, and have approved the vault for
    it, to cover every debt it liquidates. A liquidation that fails is
    rolled back by the vault and its error propagates out of step().
    """

    def __init__(self, vault: VaultEngine, liquidator: Address):
        """
        Args:
            vault: The vault to police
            liquidator: Wallet paying debts and receiving seized collateral
        """
        self.vault = vault
        self.liquidator = liquidator
        self.verbose = vault.verbose

    def scan(self) -> List[int]:
        """Ids of positions liquidatable right now, in id order."""
        return [
            position.id
            for position in self.vault.positions.open_positions()
            if self.vault.is_liquidatable(position.id)
        ]

    def step(self, timestamp: int) -> List[VaultEvent]:
        """
        Advance time and liquidate everything eligible.

        Args:
            timestamp: New clock time (unix seconds)

        Returns:
            The LIQUIDATED events produced
        """
        self.vault.clock.advance_to(timestamp)
        executed: List[VaultEvent] = []

        for position_id in self.scan():
            if self.verbose:
                print(f"[KEEPER] Liquidating position {position_id}")
            self.vault.liquidate(self.liquidator, position_id)
            executed.append(self.vault.event_log[-1])

        return executed

    def run(self, timestamps: List[int]) -> List[VaultEvent]:
        """Run step() over a sequence of timestamps."""
        all_events: List[VaultEvent] = []
        for timestamp in timestamps:
            all_events.extend(self.step(timestamp))
        return all_events
