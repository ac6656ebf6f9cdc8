"""
Core types and constants for the fixed-term collateral vault.

This module provides the foundational pieces shared by every other module:
1. Fixed-point constants: wad scale, default risk parameters, time units
2. Clock: the logical time source shared by the engine and price feeds
3. Exceptions: VaultError and the domain-specific error taxonomy
4. Immutable data structures: Position, VaultConfig
5. Protocols: PriceSource, TokenLedger, CollateralAsset, Snapshottable
6. Wad helpers: conversion between Decimal amounts and 18-decimal integers

All amounts inside the engine are integers with 18 implied decimals ("wads").
Every division is floor division; truncation is part of the contract and is
never rounded.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from decimal import Decimal, ROUND_DOWN, localcontext
from enum import Enum
from typing import Protocol, runtime_checkable, Any


# ============================================================================
# CONSTANTS
# ============================================================================

# Canonical fixed-point scale: 1.0 == 10**18.
WAD_DECIMALS = 18
WAD = 10 ** WAD_DECIMALS

# Decimal precision for the wad helpers; covers the full uint256 range.
_WAD_PRECISION = 80

# Largest value representable by the health factor; reads as "infinitely healthy".
MAX_UINT256 = 2 ** 256 - 1

# Time units (seconds).
HOUR = 3600
DAY = 24 * HOUR
SECONDS_PER_YEAR = 365 * DAY

# Default risk parameters (wad-scaled ratios).
DEFAULT_MAX_LTV = 660_000_000_000_000_000                # 0.66 -> ~150% collateralization
DEFAULT_LIQUIDATION_THRESHOLD = 800_000_000_000_000_000  # 0.80 -> ~125% before liquidation
DEFAULT_LIQUIDATION_BONUS = 100_000_000_000_000_000      # 0.10 extra collateral to liquidator
DEFAULT_ROLLOVER_RATE_APR = 50_000_000_000_000_000       # 0.05 simple annual rate

# Default term limits (seconds).
DEFAULT_MIN_DURATION = DAY
DEFAULT_MAX_DURATION = 90 * DAY

# A price older than this is stale.
DEFAULT_PRICE_TIMEOUT = 3 * HOUR


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Identity of a wallet or contract (an address string such as "alice" or "vault").
Address = str

# Integer amount with WAD_DECIMALS implied decimals.
Wad = int


# ============================================================================
# CLOCK
# ============================================================================

class Clock:
    """
    Logical time source measured in integer unix seconds.

    The engine, the price feeds and the keeper share one Clock so that a
    single advance moves the whole simulation. Time only moves forward.
    """

    def __init__(self, initial_time: int = 0):
        self._now = int(initial_time)

    @property
    def now(self) -> int:
        """Current logical time (unix seconds)."""
        return self._now

    def advance(self, seconds: int) -> int:
        """Move the clock forward by ``seconds`` and return the new time."""
        if seconds < 0:
            raise ValueError(f"Cannot move time backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def advance_to(self, timestamp: int) -> int:
        """
        Move the clock to an absolute timestamp.

        Raises:
            ValueError: If timestamp is before the current time
        """
        if timestamp < self._now:
            raise ValueError(
                f"Cannot move time backwards: {timestamp} < {self._now}"
            )
        self._now = int(timestamp)
        return self._now

    def __repr__(self) -> str:
        return f"Clock(now={self._now})"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class VaultError(Exception):
    """Base exception for all vault-related errors."""
    pass


class InvalidInput(VaultError):
    """Raised for zero or out-of-range amounts and durations."""
    pass


class DurationExceedsMax(InvalidInput):
    """Raised when a term or rollover would push maturity past the maximum duration."""
    pass


class PositionExpired(InvalidInput):
    """Raised when rolling over a position that is already past maturity."""
    pass


class PositionNotOpen(VaultError):
    """Raised when operating on a position that is closed or does not exist."""
    pass


class NotOwner(VaultError):
    """Raised when someone other than the position owner repays or rolls over."""
    pass


class InsufficientCollateral(VaultError):
    """Raised when the requested debt would breach the maximum loan-to-value at open."""
    pass


class InsufficientFee(VaultError):
    """Raised when the fee paid for a rollover is below the pro-rated fee."""
    pass


class PositionHealthy(VaultError):
    """Raised when liquidating a position that is neither unsafe nor expired."""
    pass


class InvalidPrice(VaultError):
    """Raised when the price source reports a non-positive answer."""
    pass


class StaleData(VaultError):
    """Raised when the price source has not updated within the timeout."""
    pass


class TransferFailed(VaultError):
    """Raised when a token or collateral transfer does not go through."""
    pass


class ReentrantCall(VaultError):
    """Raised when a mutating operation is entered while another is still executing."""
    pass


class Unauthorized(VaultError):
    """Raised when a caller without mint authority tries to mint."""
    pass


# ============================================================================
# POSITION
# ============================================================================

class PositionStatus(Enum):
    """
    Lifecycle status of a position.

    OPEN: Collateral and debt are live.
    CLOSED: Repaid or liquidated. Terminal; collateral and debt are zero.
    """
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class Position:
    """
    One fixed-term collateralized loan.

    Positions are immutable values. The PositionLedger replaces the stored
    instance on every change, which keeps snapshots cheap and makes an
    accidental in-place edit impossible.

    Attributes:
        id: Unique, monotonically increasing identifier (0 only for the sentinel).
        owner: Address that opened the position.
        collateral_amount: Base asset held against the position (wad).
        debt_amount: Synthetic dollars owed (wad).
        start_time: Creation time (unix seconds).
        maturity_timestamp: Time after which the position is liquidatable regardless of health.
        status: OPEN or CLOSED.
    """
    id: int
    owner: Address
    collateral_amount: Wad
    debt_amount: Wad
    start_time: int
    maturity_timestamp: int
    status: PositionStatus

    def __post_init__(self):
        if self.collateral_amount < 0:
            raise ValueError(f"collateral_amount cannot be negative, got {self.collateral_amount}")
        if self.debt_amount < 0:
            raise ValueError(f"debt_amount cannot be negative, got {self.debt_amount}")

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def closed(self) -> Position:
        """Return the terminal form of this position: zeroed and CLOSED."""
        return replace(
            self,
            collateral_amount=0,
            debt_amount=0,
            status=PositionStatus.CLOSED,
        )

    def __repr__(self) -> str:
        return (
            f"Position(#{self.id} {self.status.value} owner={self.owner} "
            f"collateral={from_wad(self.collateral_amount)} debt={from_wad(self.debt_amount)} "
            f"maturity={self.maturity_timestamp})"
        )


# Returned for reads of ids that were never assigned.
EMPTY_POSITION = Position(
    id=0,
    owner="",
    collateral_amount=0,
    debt_amount=0,
    start_time=0,
    maturity_timestamp=0,
    status=PositionStatus.CLOSED,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class VaultConfig:
    """
    Immutable risk parameters for a vault - set at deployment, never changes.

    All ratios are wad-scaled integers (0.66 == 660_000_000_000_000_000) and
    all durations are seconds.
    """
    max_ltv: Wad = DEFAULT_MAX_LTV
    liquidation_threshold: Wad = DEFAULT_LIQUIDATION_THRESHOLD
    liquidation_bonus: Wad = DEFAULT_LIQUIDATION_BONUS
    rollover_rate_apr: Wad = DEFAULT_ROLLOVER_RATE_APR
    min_duration: int = DEFAULT_MIN_DURATION
    max_duration: int = DEFAULT_MAX_DURATION
    price_timeout: int = DEFAULT_PRICE_TIMEOUT

    def __post_init__(self):
        if not 0 < self.max_ltv <= self.liquidation_threshold <= WAD:
            raise ValueError(
                f"Require 0 < max_ltv <= liquidation_threshold <= 1e18, "
                f"got {self.max_ltv} and {self.liquidation_threshold}"
            )
        if self.liquidation_bonus < 0:
            raise ValueError(f"liquidation_bonus cannot be negative, got {self.liquidation_bonus}")
        if self.rollover_rate_apr < 0:
            raise ValueError(f"rollover_rate_apr cannot be negative, got {self.rollover_rate_apr}")
        if self.min_duration <= 0:
            raise ValueError(f"min_duration must be positive, got {self.min_duration}")
        if self.max_duration < self.min_duration:
            raise ValueError(
                f"max_duration ({self.max_duration}) must be >= min_duration ({self.min_duration})"
            )
        if self.price_timeout <= 0:
            raise ValueError(f"price_timeout must be positive, got {self.price_timeout}")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceSource(Protocol):
    """
    Raw external price feed.

    Mirrors the aggregator interface of on-chain feeds: the latest round plus
    the number of decimals the answer is quoted in.
    """

    def latest_round_data(self) -> Any:
        """Return a RoundData(round_id, answer, started_at, updated_at, answered_in_round)."""
        ...

    def decimals(self) -> int:
        """Return the number of decimals of ``answer``."""
        ...


@runtime_checkable
class TokenLedger(Protocol):
    """
    Synthetic-dollar ledger as seen by the vault.

    The vault holds a handle already bound to its own address, so ``burn``
    destroys the vault's balance and ``mint`` is authorized by construction.
    """

    def mint(self, to: Address, amount: Wad) -> None:
        ...

    def burn(self, amount: Wad) -> None:
        ...

    def transfer_from(self, source: Address, dest: Address, amount: Wad) -> bool:
        ...


@runtime_checkable
class CollateralAsset(Protocol):
    """
    Custody of the base asset held by the vault.

    ``receive`` pulls an amount from a payer into custody. ``send`` pays out of
    custody and may hand control to arbitrary recipient code; it returns False
    when the payment did not go through.
    """

    def receive(self, payer: Address, amount: Wad) -> None:
        ...

    def send(self, recipient: Address, amount: Wad) -> bool:
        ...


@runtime_checkable
class Snapshottable(Protocol):
    """
    A collaborator whose state can be captured and put back.

    The vault snapshots every Snapshottable collaborator at the start of a
    mutating call and restores them all if the call fails.
    """

    def snapshot(self) -> Any:
        ...

    def restore(self, snapshot: Any) -> None:
        ...


# ============================================================================
# WAD HELPERS
# ============================================================================

def to_wad(value: Any) -> Wad:
    """
    Convert a human amount to a wad, truncating beyond 18 decimals.

    Accepts Decimal, int or str. Floats go through str() so that 0.1 becomes
    exactly 10**17.

    Example:
        to_wad("1.5")  # 1_500_000_000_000_000_000
    """
    if isinstance(value, bool):
        raise TypeError("bool is not an amount")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value.is_nan() or value.is_infinite():
        raise ValueError(f"Amount must be finite, got {value}")
    with localcontext() as ctx:
        ctx.prec = _WAD_PRECISION
        scaled = (value * WAD).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_wad(amount: Wad) -> Decimal:
    """Convert a wad to an exact Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = _WAD_PRECISION
        return Decimal(amount) / Decimal(WAD)
