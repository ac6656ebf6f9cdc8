"""
assets.py - In-memory asset ledgers the vault can drive

The vault never owns balances of its own; it drives two external ledgers
through narrow protocols (see core.TokenLedger and core.CollateralAsset).
This module provides in-memory implementations of both, used by tests,
simulations and the demo:

- SyntheticDollar: ERC20-style synthetic dollar with a single authorized
  minter, allowances and burn.
- NativeAsset: native-coin balances with receive hooks, so a payment can run
  arbitrary recipient code (the way a contract's fallback does).

Both support snapshot()/restore(), which lets the vault discard every effect
of a failed call.
"""

from __future__ import annotations
from collections import defaultdict
from typing import Callable, Dict, Optional, Tuple

from .core import (
    Address, Wad, MAX_UINT256,
    TransferFailed, Unauthorized,
)


# Hook run after an address is credited: hook(sender, amount).
ReceiveHook = Callable[[Address, Wad], None]


def _require_amount(amount: Wad) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError(f"Amounts are integer wads, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative, got {amount}")


# ============================================================================
# SYNTHETIC DOLLAR
# ============================================================================

class SyntheticDollar:
    """
    Synthetic dollar ledger with owner-controlled mint and burn.

    Only ``minter`` (the vault) may mint. Anyone may burn their own balance.
    transfer and transfer_from report failure by returning False rather than
    raising, so the caller decides whether a failed transfer is fatal.

    Example:
        busd = SyntheticDollar(minter="vault")
        vault_handle = busd.bind("vault")
        vault_handle.mint("alice", 100 * 10**18)
        busd.approve("alice", "vault", 100 * 10**18)
    """

    def __init__(self, minter: Address, symbol: str = "bUSD", verbose: bool = False):
        self.symbol = symbol
        self.minter = minter
        self.verbose = verbose
        self.balances: Dict[Address, Wad] = defaultdict(int)
        self.allowances: Dict[Tuple[Address, Address], Wad] = {}
        self.total_supply: Wad = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, address: Address) -> Wad:
        return self.balances.get(address, 0)

    def allowance(self, owner: Address, spender: Address) -> Wad:
        return self.allowances.get((owner, spender), 0)

    # ------------------------------------------------------------------
    # Mutations (sender passed explicitly)
    # ------------------------------------------------------------------

    def mint(self, sender: Address, to: Address, amount: Wad) -> None:
        """Create ``amount`` for ``to``. Raises Unauthorized unless sender is the minter."""
        _require_amount(amount)
        if sender != self.minter:
            raise Unauthorized(f"{sender} is not the {self.symbol} minter")
        self.balances[to] += amount
        self.total_supply += amount
        if self.verbose:
            print(f"  {self.symbol} mint {amount} -> {to}")

    def burn(self, sender: Address, amount: Wad) -> None:
        """Destroy ``amount`` of the sender's own balance."""
        _require_amount(amount)
        if self.balance_of(sender) < amount:
            raise TransferFailed(
                f"{sender} cannot burn {amount} {self.symbol}: balance {self.balance_of(sender)}"
            )
        self.balances[sender] -= amount
        self.total_supply -= amount
        if self.verbose:
            print(f"  {self.symbol} burn {amount} from {sender}")

    def approve(self, owner: Address, spender: Address, amount: Wad) -> bool:
        _require_amount(amount)
        self.allowances[(owner, spender)] = amount
        return True

    def transfer(self, sender: Address, to: Address, amount: Wad) -> bool:
        _require_amount(amount)
        if self.balance_of(sender) < amount:
            return False
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: Address, source: Address, dest: Address, amount: Wad) -> bool:
        """
        Move ``amount`` from ``source`` to ``dest`` using spender's allowance.

        Returns False (and changes nothing) on insufficient allowance or
        balance. An allowance of MAX_UINT256 is never decremented.
        """
        _require_amount(amount)
        allowed = self.allowance(source, spender)
        if allowed < amount or self.balance_of(source) < amount:
            return False
        if allowed != MAX_UINT256:
            self.allowances[(source, spender)] = allowed - amount
        self._move(source, dest, amount)
        return True

    def _move(self, source: Address, dest: Address, amount: Wad) -> None:
        self.balances[source] -= amount
        self.balances[dest] += amount

    def bind(self, address: Address) -> BoundToken:
        """Return a TokenLedger handle whose calls are sent by ``address``."""
        return BoundToken(self, address)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self):
        return dict(self.balances), dict(self.allowances), self.total_supply

    def restore(self, snapshot) -> None:
        balances, allowances, total_supply = snapshot
        self.balances = defaultdict(int, balances)
        self.allowances = dict(allowances)
        self.total_supply = total_supply

    def __repr__(self):
        return f"SyntheticDollar({self.symbol}, supply={self.total_supply}, minter={self.minter})"


class BoundToken:
    """TokenLedger handle: a SyntheticDollar with the sender fixed."""

    def __init__(self, token: SyntheticDollar, address: Address):
        self.token = token
        self.address = address

    def mint(self, to: Address, amount: Wad) -> None:
        self.token.mint(self.address, to, amount)

    def burn(self, amount: Wad) -> None:
        self.token.burn(self.address, amount)

    def transfer_from(self, source: Address, dest: Address, amount: Wad) -> bool:
        return self.token.transfer_from(self.address, source, dest, amount)

    def snapshot(self):
        return self.token.snapshot()

    def restore(self, snapshot) -> None:
        self.token.restore(snapshot)

    def __repr__(self):
        return f"BoundToken({self.token.symbol} as {self.address})"


# ============================================================================
# NATIVE ASSET
# ============================================================================

class NativeAsset:
    """
    Native-coin balances (the vault's collateral asset).

    Paying an address with a receive hook runs the hook after the credit.
    If the hook raises, the payment is undone and reported as failed, the
    same way a reverted fallback makes a low-level call return false.

    Example:
        bnb = NativeAsset()
        bnb.fund("alice", 10 * 10**18)
        bnb.set_receive_hook("attacker", lambda sender, amount: vault.repay("attacker", 1))
    """

    def __init__(self, symbol: str = "BNB", verbose: bool = False):
        self.symbol = symbol
        self.verbose = verbose
        self.balances: Dict[Address, Wad] = defaultdict(int)
        self.receive_hooks: Dict[Address, ReceiveHook] = {}
        self.last_failure: Optional[Exception] = None

    def balance_of(self, address: Address) -> Wad:
        return self.balances.get(address, 0)

    def fund(self, address: Address, amount: Wad) -> None:
        """Credit ``amount`` out of thin air (test and simulation setup only)."""
        _require_amount(amount)
        self.balances[address] += amount

    def set_receive_hook(self, address: Address, hook: Optional[ReceiveHook]) -> None:
        """Install (or with None, remove) the code run when ``address`` is paid."""
        if hook is None:
            self.receive_hooks.pop(address, None)
        else:
            self.receive_hooks[address] = hook

    def transfer(self, sender: Address, to: Address, amount: Wad) -> bool:
        """
        Pay ``amount`` from sender to ``to`` and run the recipient's hook.

        Returns:
            True if the payment stuck, False on insufficient balance or when
            the recipient's hook raised (the credit is rolled back).
        """
        _require_amount(amount)
        if self.balance_of(sender) < amount:
            return False
        before = self.snapshot()
        self.balances[sender] -= amount
        self.balances[to] += amount
        hook = self.receive_hooks.get(to)
        if hook is not None:
            try:
                hook(sender, amount)
            except Exception as exc:
                self.restore(before)
                self.last_failure = exc
                if self.verbose:
                    print(f"  {self.symbol} payment {sender} -> {to} reverted: {exc!r}")
                return False
        return True

    def custody(self, address: Address) -> Custody:
        """Return a CollateralAsset handle holding funds at ``address``."""
        return Custody(self, address)

    def snapshot(self):
        return dict(self.balances)

    def restore(self, snapshot) -> None:
        self.balances = defaultdict(int, snapshot)

    def __repr__(self):
        return f"NativeAsset({self.symbol}, {len(self.balances)} holders)"


class Custody:
    """CollateralAsset handle: pulls into and pays out of one address."""

    def __init__(self, asset: NativeAsset, address: Address):
        self.asset = asset
        self.address = address

    def receive(self, payer: Address, amount: Wad) -> None:
        """
        Pull ``amount`` from payer into custody.

        Raises:
            TransferFailed: If the payer cannot cover the amount
        """
        if not self.asset.transfer(payer, self.address, amount):
            raise TransferFailed(
                f"{payer} cannot pay {amount} {self.asset.symbol} "
                f"(balance {self.asset.balance_of(payer)})"
            )

    def send(self, recipient: Address, amount: Wad) -> bool:
        return self.asset.transfer(self.address, recipient, amount)

    @property
    def balance(self) -> Wad:
        return self.asset.balance_of(self.address)

    def snapshot(self):
        return self.asset.snapshot()

    def restore(self, snapshot) -> None:
        self.asset.restore(snapshot)

    def __repr__(self):
        return f"Custody({self.asset.symbol} at {self.address})"
