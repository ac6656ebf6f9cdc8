"""
vault.py - Fixed-term collateral vault (position lifecycle and liquidation)

The VaultEngine is the only component that changes position state. Every
mutating entry point runs as one indivisible unit:

    1. Fail at once with ReentrantCall if another call is still executing
    2. Snapshot the position ledger, the event log and the collaborators
    3. Check preconditions, value collateral, mutate positions, move assets
    4. Append one VaultEvent
    5. On any exception restore every snapshot and re-raise

Within a call, status writes happen before the outbound transfers that
depend on them (checks-effects-interactions), independent of the guard.

State machine per position:
    OPEN --add_collateral / roll_over--> OPEN
    OPEN --repay / liquidate-----------> CLOSED (terminal)
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

from .core import (
    Address, Clock, Position, PriceSource, TokenLedger, CollateralAsset,
    Snapshottable, VaultConfig, Wad,
    WAD, MAX_UINT256,
    InvalidInput, DurationExceedsMax, PositionExpired, PositionNotOpen,
    NotOwner, InsufficientCollateral, InsufficientFee, PositionHealthy,
    TransferFailed, ReentrantCall,
    from_wad,
)
from .events import EventKind, VaultEvent
from .positions import PositionLedger
from .pricing_source import PriceNormalizer, StaticPriceFeed
from .valuation import (
    CollateralValuator, LiquidationSplit,
    calculate_collateral_value, calculate_health_factor,
    calculate_liquidation_split, calculate_rollover_fee, within_max_ltv,
)
from .assets import SyntheticDollar, NativeAsset


class VaultEngine:
    """
    Opens, values, extends, closes and liquidates fixed-term positions.

    Collaborators are injected: any object satisfying the TokenLedger,
    CollateralAsset and PriceSource protocols can be used. Collaborators that
    also satisfy Snapshottable are rolled back together with the vault when a
    call fails; the in-memory ones in fxvault.assets all do.

    Thread Safety:
        Not thread-safe. One call executes at a time; nested calls fail.

    Example:
        vault = VaultEngine(clock, feed, busd.bind("vault"), bnb.custody("vault"))
        pid = vault.open("alice", mint_amount=180 * WAD, duration=7 * DAY,
                         collateral_in=1 * WAD)
        busd.approve("alice", "vault", 180 * WAD)
        vault.repay("alice", pid)
    """

    def __init__(
        self,
        clock: Clock,
        price_source: PriceSource,
        token: TokenLedger,
        collateral: CollateralAsset,
        config: Optional[VaultConfig] = None,
        address: Address = "vault",
        treasury: Address = "treasury",
        verbose: bool = False,
    ):
        """
        Args:
            clock: Shared logical clock
            price_source: Raw feed; wrapped in a PriceNormalizer
            token: Synthetic-dollar handle bound to ``address`` (the sole minter)
            collateral: Custody handle for the base asset held at ``address``
            config: Risk parameters (defaults to VaultConfig())
            address: The vault's own address (receives repaid bUSD before burning)
            treasury: Receives rollover fees
            verbose: Print one line per committed or rejected call
        """
        self.config = config or VaultConfig()
        self.clock = clock
        self.normalizer = PriceNormalizer(price_source, clock, self.config.price_timeout)
        self.valuator = CollateralValuator(self.normalizer)
        self.token = token
        self.collateral = collateral
        self.address = address
        self.treasury = treasury
        self.verbose = verbose
        self.positions = PositionLedger()
        self.event_log: List[VaultEvent] = []
        self._entered = False

    # ========================================================================
    # ATOMIC SCOPE
    # ========================================================================

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[None]:
        """
        Non-reentrant, all-or-nothing scope around a mutating call.

        Raises:
            ReentrantCall: If a mutating call is already executing
        """
        if self._entered:
            raise ReentrantCall(f"{operation}: vault is already executing a call")
        self._entered = True
        log_length = len(self.event_log)
        snapshots = [(self.positions, self.positions.snapshot())]
        for collaborator in (self.token, self.collateral):
            if isinstance(collaborator, Snapshottable):
                snapshots.append((collaborator, collaborator.snapshot()))
        try:
            yield
        except Exception as exc:
            for target, snapshot in reversed(snapshots):
                target.restore(snapshot)
            del self.event_log[log_length:]
            if self.verbose:
                print(f"✗ REJECTED {operation}: {type(exc).__name__}: {exc}")
            raise
        finally:
            self._entered = False

    # ========================================================================
    # MUTATING OPERATIONS
    # ========================================================================

    def open(self, caller: Address, mint_amount: Wad, duration: int, collateral_in: Wad) -> int:
        """
        Deposit collateral and mint synthetic dollars against it.

        Args:
            caller: Depositor; becomes the position owner
            mint_amount: Synthetic dollars to mint (wad)
            duration: Term in seconds, within [min_duration, max_duration]
            collateral_in: Base asset pulled from the caller (wad)

        Returns:
            The new position id

        Raises:
            InvalidInput: Zero amounts or a term shorter than min_duration
            DurationExceedsMax: Term longer than max_duration
            InsufficientCollateral: mint_amount above max_ltv of collateral value
            InvalidPrice, StaleData: Price feed unusable
            TransferFailed: Caller cannot pay the collateral
        """
        with self._atomic("open"):
            if collateral_in <= 0:
                raise InvalidInput("Collateral must be greater than zero")
            if mint_amount <= 0:
                raise InvalidInput("Mint amount must be greater than zero")
            if duration < self.config.min_duration:
                raise InvalidInput(
                    f"Duration {duration}s is below the minimum {self.config.min_duration}s"
                )
            if duration > self.config.max_duration:
                raise DurationExceedsMax(
                    f"Duration {duration}s exceeds the maximum {self.config.max_duration}s"
                )

            price = self.valuator.price()
            collateral_value = calculate_collateral_value(collateral_in, price)
            if not within_max_ltv(mint_amount, collateral_value, self.config.max_ltv):
                raise InsufficientCollateral(
                    f"Minting {from_wad(mint_amount)} against collateral worth "
                    f"{from_wad(collateral_value)} exceeds max LTV {from_wad(self.config.max_ltv)}"
                )

            self.collateral.receive(caller, collateral_in)
            now = self.clock.now
            position_id = self.positions.create(
                owner=caller,
                collateral=collateral_in,
                debt=mint_amount,
                start=now,
                maturity=now + duration,
            )
            self.token.mint(caller, mint_amount)

            position = self.positions.get(position_id)
            self._emit(
                EventKind.OPENED, position, caller,
                health_factor=calculate_health_factor(
                    collateral_value, mint_amount, self.config.liquidation_threshold
                ),
                amounts={'collateral_in': collateral_in, 'minted': mint_amount},
            )
        return position_id

    def repay(self, caller: Address, position_id: int) -> Wad:
        """
        Repay the full debt, close the position and return its collateral.

        The caller must have approved the vault for the debt amount.

        Returns:
            Collateral returned to the caller

        Raises:
            PositionNotOpen: Position closed or unknown
            NotOwner: Caller is not the owner
            TransferFailed: bUSD pull or collateral payout failed
        """
        with self._atomic("repay"):
            position = self._require_open(position_id)
            if caller != position.owner:
                raise NotOwner(f"{caller} does not own position {position_id}")

            debt = position.debt_amount
            collateral = position.collateral_amount

            self._pull_synthetic(caller, debt)
            self.token.burn(debt)
            self.positions.close(position_id)

            self._pay(caller, collateral)
            self._emit(
                EventKind.REPAID, position, caller,
                amounts={'debt_repaid': debt, 'collateral_returned': collateral},
            )
        return collateral

    def add_collateral(self, caller: Address, position_id: int, amount_in: Wad) -> Position:
        """
        Top up an open position's collateral. Anyone may pay.

        Debt and maturity are unchanged. No price is read, so top-ups keep
        working while the feed is stale.

        Returns:
            The updated position
        """
        with self._atomic("add_collateral"):
            self._require_open(position_id)
            if amount_in <= 0:
                raise InvalidInput("Collateral top-up must be greater than zero")

            self.collateral.receive(caller, amount_in)
            position = self.positions.mutate_collateral(position_id, amount_in)
            self._emit(
                EventKind.COLLATERAL_ADDED, position, caller,
                amounts={'collateral_in': amount_in},
            )
        return position

    def roll_over(self, caller: Address, position_id: int, added_duration: int, fee_paid: Wad) -> Wad:
        """
        Extend maturity in exchange for a pro-rated fee paid in base asset.

        fee = debt_in_base * rollover_rate_apr * added_duration / (365 days * 1e18)

        ``fee_paid`` is pulled from the caller; the excess over the fee is
        refunded and the fee goes to the treasury.

        Returns:
            The fee charged

        Raises:
            PositionNotOpen, NotOwner
            PositionExpired: Already past maturity
            InvalidInput: added_duration below min_duration, negative fee_paid
            DurationExceedsMax: New maturity beyond now + max_duration
            InsufficientFee: fee_paid below the fee
        """
        with self._atomic("roll_over"):
            position = self._require_open(position_id)
            if caller != position.owner:
                raise NotOwner(f"{caller} does not own position {position_id}")
            now = self.clock.now
            if now > position.maturity_timestamp:
                raise PositionExpired(
                    f"Position {position_id} matured at {position.maturity_timestamp} (now {now})"
                )
            if added_duration < self.config.min_duration:
                raise InvalidInput(
                    f"Extension {added_duration}s is below the minimum {self.config.min_duration}s"
                )
            if fee_paid < 0:
                raise InvalidInput("Fee paid cannot be negative")
            new_maturity = position.maturity_timestamp + added_duration
            if new_maturity > now + self.config.max_duration:
                raise DurationExceedsMax(
                    f"New maturity {new_maturity} is beyond now + {self.config.max_duration}s"
                )

            price = self.valuator.price()
            fee = calculate_rollover_fee(
                position.debt_amount, price, self.config.rollover_rate_apr, added_duration
            )
            if fee_paid < fee:
                raise InsufficientFee(f"Fee {fee} required, {fee_paid} paid")

            if fee_paid > 0:
                self.collateral.receive(caller, fee_paid)
            position = self.positions.extend_maturity(position_id, added_duration)

            refund = fee_paid - fee
            if refund > 0:
                self._pay(caller, refund)
            if fee > 0:
                self._pay(self.treasury, fee)

            self._emit(
                EventKind.ROLLED_OVER, position, caller,
                health_factor=calculate_health_factor(
                    calculate_collateral_value(position.collateral_amount, price),
                    position.debt_amount,
                    self.config.liquidation_threshold,
                ),
                amounts={'fee': fee, 'fee_paid': fee_paid, 'refund': refund},
            )
        return fee

    def liquidate(self, caller: Address, position_id: int) -> LiquidationSplit:
        """
        Repay an unsafe or expired position's debt and seize its collateral.

        Eligible when health_factor < 1e18 or now > maturity. The caller
        pays the whole debt in bUSD (approval required) and receives the
        debt's base value plus the liquidation bonus, capped at the
        collateral; any remainder goes back to the owner.

        Returns:
            The LiquidationSplit that was paid out

        Raises:
            PositionNotOpen: Position closed or unknown
            PositionHealthy: Neither unsafe nor expired
            InvalidPrice, StaleData: Price feed unusable
            TransferFailed: bUSD pull or a collateral payout failed
        """
        with self._atomic("liquidate"):
            position = self._require_open(position_id)
            price = self.valuator.price()
            health = calculate_health_factor(
                calculate_collateral_value(position.collateral_amount, price),
                position.debt_amount,
                self.config.liquidation_threshold,
            )
            expired = self.clock.now > position.maturity_timestamp
            if health >= WAD and not expired:
                raise PositionHealthy(
                    f"Position {position_id} is healthy (health factor {from_wad(health)}) "
                    f"and matures at {position.maturity_timestamp}"
                )

            split = calculate_liquidation_split(
                position.collateral_amount,
                position.debt_amount,
                price,
                self.config.liquidation_bonus,
            )

            self._pull_synthetic(caller, split.debt_to_cover)
            self.token.burn(split.debt_to_cover)
            self.positions.close(position_id)

            self._pay(caller, split.reward)
            if split.remainder > 0:
                self._pay(position.owner, split.remainder)

            self._emit(
                EventKind.LIQUIDATED, position, caller,
                health_factor=health,
                amounts={
                    'debt_covered': split.debt_to_cover,
                    'base_collateral_needed': split.base_collateral_needed,
                    'reward': split.reward,
                    'remainder': split.remainder,
                },
            )
        return split

    # ========================================================================
    # READ-ONLY SURFACE
    # ========================================================================

    def get_position(self, position_id: int) -> Position:
        """Position by id; unknown ids return the zero-valued CLOSED sentinel."""
        return self.positions.get(position_id)

    def get_user_positions(self, owner: Address) -> Tuple[int, ...]:
        """Every id ever opened by ``owner`` (including closed ones)."""
        return self.positions.ids_for_owner(owner)

    def health_factor(self, position_id: int) -> Wad:
        """
        Threshold-adjusted collateral value over debt, wad-scaled.

        MAX_UINT256 for positions that are not open or carry no debt.
        """
        position = self.positions.get(position_id)
        if not position.is_open or position.debt_amount == 0:
            return MAX_UINT256
        return calculate_health_factor(
            self.valuator.value_of(position.collateral_amount),
            position.debt_amount,
            self.config.liquidation_threshold,
        )

    def collateral_value(self, amount: Wad) -> Wad:
        """USD value (wad) of ``amount`` base asset at the current price."""
        return self.valuator.value_of(amount)

    def get_latest_price(self) -> Wad:
        return self.normalizer.get_latest_price()

    def is_liquidatable(self, position_id: int) -> bool:
        """True when liquidate() would pass its eligibility check right now."""
        position = self.positions.get(position_id)
        if not position.is_open:
            return False
        if self.clock.now > position.maturity_timestamp:
            return True
        return self.health_factor(position_id) < WAD

    def quote_rollover_fee(self, position_id: int, added_duration: int) -> Wad:
        """Fee roll_over() would charge right now for ``added_duration``."""
        position = self._require_open(position_id)
        return calculate_rollover_fee(
            position.debt_amount,
            self.valuator.price(),
            self.config.rollover_rate_apr,
            added_duration,
        )

    def total_outstanding_debt(self) -> Wad:
        """Sum of debt across open positions; equals the bUSD the vault has net minted."""
        return self.positions.total_debt()

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _require_open(self, position_id: int) -> Position:
        position = self.positions.get(position_id)
        if not position.is_open:
            raise PositionNotOpen(f"Position {position_id} is not open")
        return position

    def _pull_synthetic(self, payer: Address, amount: Wad) -> None:
        if not self.token.transfer_from(payer, self.address, amount):
            raise TransferFailed(f"Could not pull {from_wad(amount)} synthetic dollars from {payer}")

    def _pay(self, recipient: Address, amount: Wad) -> None:
        if not self.collateral.send(recipient, amount):
            raise TransferFailed(f"Collateral payment of {from_wad(amount)} to {recipient} failed")

    def _emit(
        self,
        kind: EventKind,
        position: Position,
        actor: Address,
        health_factor: Optional[Wad] = None,
        amounts: Optional[Dict[str, Wad]] = None,
    ) -> VaultEvent:
        event = VaultEvent(
            kind=kind,
            position_id=position.id,
            owner=position.owner,
            actor=actor,
            collateral_amount=position.collateral_amount,
            debt_amount=position.debt_amount,
            maturity_timestamp=position.maturity_timestamp,
            timestamp=self.clock.now,
            sequence_number=len(self.event_log),
            health_factor=health_factor,
            amounts=dict(amounts or {}),
        )
        self.event_log.append(event)
        if self.verbose:
            print(f"✓ {event!r}")
        return event

    def __repr__(self):
        return (
            f"VaultEngine({self.address}, {self.positions!r}, "
            f"debt={from_wad(self.total_outstanding_debt())})"
        )


# ============================================================================
# IN-MEMORY DEPLOYMENT
# ============================================================================

@dataclass
class VaultDeployment:
    """A vault wired to in-memory collaborators sharing one clock."""
    clock: Clock
    feed: StaticPriceFeed
    busd: SyntheticDollar
    bnb: NativeAsset
    vault: VaultEngine


def create_in_memory_vault(
    price: int,
    price_decimals: int = 8,
    start_time: int = 1_700_000_000,
    config: Optional[VaultConfig] = None,
    address: Address = "vault",
    treasury: Address = "treasury",
    verbose: bool = False,
) -> VaultDeployment:
    """
    Deploy a vault against a StaticPriceFeed, a SyntheticDollar and a NativeAsset.

    Args:
        price: Initial feed answer in ``price_decimals`` (300_00000000 is $300 at 8 decimals)
        price_decimals: Decimals of the feed
        start_time: Initial clock time (unix seconds)
        config: Risk parameters
        address: Vault address (the bUSD minter and collateral custodian)
        treasury: Rollover fee recipient
        verbose: Echo vault calls to stdout

    Example:
        d = create_in_memory_vault(price=300_00000000)
        d.bnb.fund("alice", 10 * WAD)
        pid = d.vault.open("alice", 180 * WAD, 7 * DAY, 1 * WAD)
    """
    clock = Clock(start_time)
    feed = StaticPriceFeed(price, price_decimals, clock)
    busd = SyntheticDollar(minter=address)
    bnb = NativeAsset()
    vault = VaultEngine(
        clock=clock,
        price_source=feed,
        token=busd.bind(address),
        collateral=bnb.custody(address),
        config=config,
        address=address,
        treasury=treasury,
        verbose=verbose,
    )
    return VaultDeployment(clock=clock, feed=feed, busd=busd, bnb=bnb, vault=vault)
