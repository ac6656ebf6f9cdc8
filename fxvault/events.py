"""
events.py - Vault event log

Every committed mutating call on the vault appends one VaultEvent. The log
is the audit trail: replay_events() rebuilds the latest state of every
position from the events alone, without touching the vault.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from .core import Position, PositionStatus, Address, Wad, from_wad


class EventKind(Enum):
    """Kind of lifecycle transition recorded by an event."""
    OPENED = "opened"
    COLLATERAL_ADDED = "collateral_added"
    ROLLED_OVER = "rolled_over"
    REPAID = "repaid"
    LIQUIDATED = "liquidated"


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """
    Immutable record of one committed lifecycle transition.

    The position fields (collateral, debt, maturity) hold the values the
    transition acted on: the resulting values for OPENED, COLLATERAL_ADDED and
    ROLLED_OVER, and the pre-close values for REPAID and LIQUIDATED.

    Attributes:
        kind: Which transition happened
        position_id: Position it happened to
        owner: Position owner
        actor: Caller that triggered it (owner, a top-up payer or a liquidator)
        collateral_amount: Collateral after (or, when closing, before) the transition
        debt_amount: Debt after (or, when closing, before) the transition
        maturity_timestamp: Maturity after the transition
        health_factor: Health factor after the transition, if it was computed
        amounts: Operation-specific amounts (fee, refund, reward, remainder, ...)
        timestamp: Clock time of the call
        sequence_number: Monotonic within the vault
    """
    kind: EventKind
    position_id: int
    owner: Address
    actor: Address
    collateral_amount: Wad
    debt_amount: Wad
    maturity_timestamp: int
    timestamp: int
    sequence_number: int
    health_factor: Optional[Wad] = None
    amounts: Mapping[str, Wad] = field(default_factory=dict)

    def __post_init__(self):
        # Read-only copy so a logged event cannot be edited afterwards
        object.__setattr__(self, 'amounts', MappingProxyType(dict(self.amounts)))

    def __repr__(self) -> str:
        extras = ", ".join(f"{k}={from_wad(v)}" for k, v in sorted(self.amounts.items()))
        text = (
            f"VaultEvent(#{self.sequence_number} {self.kind.value} position={self.position_id} "
            f"owner={self.owner} actor={self.actor} collateral={from_wad(self.collateral_amount)} "
            f"debt={from_wad(self.debt_amount)} maturity={self.maturity_timestamp}"
        )
        if extras:
            text += f", {extras}"
        return text + ")"


def replay_events(events: Iterable[VaultEvent]) -> Dict[int, Position]:
    """
    Rebuild every position's latest state from an event log.

    Events must be supplied in sequence order. Closed positions come back
    zeroed and CLOSED, exactly as the vault stores them.

    Raises:
        ValueError: If an event refers to a position that was never opened
    """
    positions: Dict[int, Position] = {}
    for event in events:
        if event.kind is EventKind.OPENED:
            positions[event.position_id] = Position(
                id=event.position_id,
                owner=event.owner,
                collateral_amount=event.collateral_amount,
                debt_amount=event.debt_amount,
                start_time=event.timestamp,
                maturity_timestamp=event.maturity_timestamp,
                status=PositionStatus.OPEN,
            )
            continue

        if event.position_id not in positions:
            raise ValueError(
                f"Event #{event.sequence_number} refers to unknown position {event.position_id}"
            )
        current = positions[event.position_id]

        if event.kind is EventKind.COLLATERAL_ADDED:
            positions[event.position_id] = replace(current, collateral_amount=event.collateral_amount)
        elif event.kind is EventKind.ROLLED_OVER:
            positions[event.position_id] = replace(current, maturity_timestamp=event.maturity_timestamp)
        else:
            positions[event.position_id] = current.closed()

    return positions
