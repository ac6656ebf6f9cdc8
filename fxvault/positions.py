"""
positions.py - Position Ledger

The PositionLedger owns every position the vault has ever opened and the
per-owner index. It is the only object that stores position state; the
engine mutates it exclusively through the CRUD methods below.

Key responsibilities:
    - Assigns monotonically increasing ids starting at 1, never reused
    - Keeps an append-only owner -> [ids] index (closing does not remove ids)
    - Answers reads of unknown ids with a zero-valued CLOSED sentinel
    - Provides snapshot()/restore() so a failed call can be discarded whole
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Tuple, Any

from .core import (
    Position, PositionStatus, Address, Wad,
    EMPTY_POSITION,
    PositionNotOpen,
)


class PositionLedger:
    """
    Dense table of positions keyed by id plus an owner index.

    Positions are frozen values; every mutation stores a replaced instance.
    Because nothing is ever edited in place, a snapshot is a shallow copy of
    the table and index.

    Thread Safety:
        Not thread-safe. The vault serializes access through its guard.

    Example:
        book = PositionLedger()
        pid = book.create("alice", 10**18, 180 * 10**18, start=0, maturity=86400)
        book.mutate_collateral(pid, 10**17)
        book.close(pid)
    """

    def __init__(self):
        self._positions: Dict[int, Position] = {}
        self._by_owner: Dict[Address, List[int]] = defaultdict(list)
        self._next_id: int = 1

    # ========================================================================
    # READS
    # ========================================================================

    def get(self, position_id: int) -> Position:
        """
        Return the position, or EMPTY_POSITION if the id was never assigned.

        Callers must check ``status``; a missing id is indistinguishable from
        a closed position with zero balances.
        """
        return self._positions.get(position_id, EMPTY_POSITION)

    def ids_for_owner(self, owner: Address) -> Tuple[int, ...]:
        """All ids ever opened by ``owner``, in creation order."""
        return tuple(self._by_owner.get(owner, ()))

    def open_positions(self) -> List[Position]:
        """Open positions in id order."""
        return [p for _, p in sorted(self._positions.items()) if p.is_open]

    def total_debt(self) -> Wad:
        """Sum of debt across open positions."""
        return sum(p.debt_amount for p in self._positions.values() if p.is_open)

    @property
    def next_id(self) -> int:
        return self._next_id

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, position_id: int) -> bool:
        return position_id in self._positions

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def create(
        self,
        owner: Address,
        collateral: Wad,
        debt: Wad,
        start: int,
        maturity: int,
    ) -> int:
        """
        Store a new OPEN position and append its id to the owner's index.

        Returns:
            The newly assigned id

        Raises:
            ValueError: If amounts are not positive or maturity <= start
        """
        if collateral <= 0 or debt <= 0:
            raise ValueError(
                f"Open positions need positive collateral and debt, got {collateral} and {debt}"
            )
        if maturity <= start:
            raise ValueError(f"maturity ({maturity}) must be after start ({start})")
        position_id = self._next_id
        self._next_id += 1
        self._positions[position_id] = Position(
            id=position_id,
            owner=owner,
            collateral_amount=collateral,
            debt_amount=debt,
            start_time=start,
            maturity_timestamp=maturity,
            status=PositionStatus.OPEN,
        )
        self._by_owner[owner].append(position_id)
        return position_id

    def mutate_collateral(self, position_id: int, delta: Wad) -> Position:
        """Add ``delta`` (may be negative) to an open position's collateral."""
        position = self._require_open(position_id)
        collateral = position.collateral_amount + delta
        if collateral <= 0:
            raise ValueError(
                f"Open position {position_id} must keep collateral > 0, got {collateral}"
            )
        updated = replace(position, collateral_amount=collateral)
        self._positions[position_id] = updated
        return updated

    def extend_maturity(self, position_id: int, delta: int) -> Position:
        """Push an open position's maturity ``delta`` seconds later."""
        if delta <= 0:
            raise ValueError(f"Maturity extension must be positive, got {delta}")
        position = self._require_open(position_id)
        updated = replace(position, maturity_timestamp=position.maturity_timestamp + delta)
        self._positions[position_id] = updated
        return updated

    def close(self, position_id: int) -> Position:
        """Zero collateral and debt and mark the position CLOSED (terminal)."""
        position = self._require_open(position_id)
        closed = position.closed()
        self._positions[position_id] = closed
        return closed

    def _require_open(self, position_id: int) -> Position:
        position = self.get(position_id)
        if not position.is_open:
            raise PositionNotOpen(f"Position {position_id} is not open")
        return position

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def snapshot(self) -> Tuple[Dict[int, Position], Dict[Address, List[int]], int]:
        """Capture the full ledger state."""
        return (
            dict(self._positions),
            {owner: list(ids) for owner, ids in self._by_owner.items()},
            self._next_id,
        )

    def restore(self, snapshot: Tuple[Dict[int, Position], Dict[Address, List[int]], int]) -> None:
        """Put back a state captured by snapshot()."""
        positions, by_owner, next_id = snapshot
        self._positions = dict(positions)
        self._by_owner = defaultdict(list, {owner: list(ids) for owner, ids in by_owner.items()})
        self._next_id = next_id

    def __repr__(self):
        open_count = sum(1 for p in self._positions.values() if p.is_open)
        return f"PositionLedger({len(self._positions)} positions, {open_count} open)"
