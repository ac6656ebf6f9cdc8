"""
pricing_source.py - Price feeds and price normalization for collateral valuation

Provides the raw price sources the vault reads from and the normalizer that
turns their answers into trustworthy 18-decimal USD prices.

Classes:
- RoundData: One answer from a price feed
- PriceNormalizer: Rejects invalid/stale answers and rescales to 18 decimals
- StaticPriceFeed: A single settable answer (manual oracle)
- TimeSeriesPriceFeed: Time-varying answers with historical data

Feeds answer in their own decimals (8 is common for USD pairs). Only the
normalizer's output is ever used for risk decisions.
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .core import (
    Clock, PriceSource, Wad,
    WAD_DECIMALS, DEFAULT_PRICE_TIMEOUT,
    InvalidPrice, StaleData,
)


@dataclass(frozen=True, slots=True)
class RoundData:
    """
    One round reported by a price feed.

    Attributes:
        round_id: Monotonic round counter
        answer: Price in the feed's own decimals (may be <= 0 on a broken feed)
        started_at: When the round started (unix seconds)
        updated_at: When the answer was last written (unix seconds)
        answered_in_round: Round in which the answer was computed
    """
    round_id: int
    answer: int
    started_at: int
    updated_at: int
    answered_in_round: int


class PriceNormalizer:
    """
    Wraps a raw PriceSource and returns canonical 18-decimal USD prices.

    Two failure modes, checked on every read (there is no caching):
    - InvalidPrice if the answer is <= 0
    - StaleData if the answer is at least ``timeout`` seconds old
    """

    def __init__(self, source: PriceSource, clock: Clock, timeout: int = DEFAULT_PRICE_TIMEOUT):
        """
        Args:
            source: Raw feed providing latest_round_data() and decimals()
            clock: Shared clock used to judge staleness
            timeout: Maximum age of an answer in seconds (default: 3 hours)
        """
        self.source = source
        self.clock = clock
        self.timeout = timeout

    @property
    def price_decimals(self) -> int:
        """Raw decimal count of the wrapped source (diagnostics only)."""
        return self.source.decimals()

    def get_latest_price(self) -> Wad:
        """
        Read the source and return its price scaled to 18 decimals.

        Rescaling truncates when the source carries more than 18 decimals;
        the dropped low digits are never rounded up.

        Raises:
            InvalidPrice: If the answer is <= 0, or truncates to 0 when rescaled
            StaleData: If now - updated_at >= timeout
        """
        round_data = self.source.latest_round_data()
        if round_data.answer <= 0:
            raise InvalidPrice(f"Invalid price {round_data.answer} in round {round_data.round_id}")
        age = self.clock.now - round_data.updated_at
        if age >= self.timeout:
            raise StaleData(
                f"Price is stale: updated {age}s ago (timeout {self.timeout}s)"
            )
        price = normalize_price(round_data.answer, self.source.decimals())
        if price <= 0:
            raise InvalidPrice(
                f"Price {round_data.answer} at {self.source.decimals()} decimals rounds to 0"
            )
        return price

    def __repr__(self):
        return f"PriceNormalizer({self.source!r}, timeout={self.timeout}s)"


def normalize_price(answer: int, decimals: int) -> Wad:
    """
    Rescale a raw answer from ``decimals`` to 18 decimals.

    Example:
        normalize_price(300_00000000, 8)  # 300 * 10**18
    """
    if decimals < WAD_DECIMALS:
        return answer * 10 ** (WAD_DECIMALS - decimals)
    if decimals > WAD_DECIMALS:
        return answer // 10 ** (decimals - WAD_DECIMALS)
    return answer


class StaticPriceFeed:
    """
    Price feed with a single answer that changes only when set.

    Each set_answer() opens a new round stamped with the clock's current
    time, so a feed that is never touched goes stale as the clock advances.
    """

    def __init__(self, answer: int, decimals: int, clock: Clock):
        """
        Args:
            answer: Initial answer in the feed's own decimals
            decimals: Number of decimals of the answer
            clock: Shared clock used to stamp rounds
        """
        self._decimals = decimals
        self.clock = clock
        self._round_id = 0
        self._round: Optional[RoundData] = None
        self.set_answer(answer)

    def decimals(self) -> int:
        return self._decimals

    def latest_round_data(self) -> RoundData:
        return self._round

    def set_answer(self, answer: int) -> RoundData:
        """Publish a new answer stamped with the current time."""
        self._round_id += 1
        now = self.clock.now
        self._round = RoundData(
            round_id=self._round_id,
            answer=answer,
            started_at=now,
            updated_at=now,
            answered_in_round=self._round_id,
        )
        return self._round

    def set_updated_at(self, updated_at: int) -> None:
        """Overwrite the update time of the current round (ages the feed)."""
        r = self._round
        self._round = RoundData(r.round_id, r.answer, r.started_at, updated_at, r.answered_in_round)

    def __repr__(self):
        return f"StaticPriceFeed(answer={self._round.answer}, decimals={self._decimals})"


class TimeSeriesPriceFeed:
    """
    Price feed replaying a recorded price path.

    Returns the most recent observation at or before the clock's current
    time, so advancing the clock walks the feed along the path.

    Supports two initialization patterns:
    - Empty initialization for incremental observations via add_price()
    - Batch initialization with a complete price path for simulations
    """

    def __init__(
        self,
        decimals: int,
        clock: Clock,
        history: Optional[List[Tuple[int, int]]] = None,
    ):
        """
        Args:
            decimals: Number of decimals of every answer
            clock: Shared clock selecting the observation
            history: Optional list of (timestamp, answer) tuples

        Examples:
            feed = TimeSeriesPriceFeed(8, clock, [(0, 300_00000000), (3600, 280_00000000)])
        """
        self._decimals = decimals
        self.clock = clock
        self.history: List[Tuple[int, int]] = sorted(history or [], key=lambda x: x[0])

    def decimals(self) -> int:
        return self._decimals

    def add_price(self, timestamp: int, answer: int) -> None:
        """Add an observation, keeping the history in timestamp order."""
        self.history.append((timestamp, answer))
        self.history.sort(key=lambda x: x[0])

    def latest_round_data(self) -> RoundData:
        """
        Return the latest observation at or before now as a round.

        Round ids are 1-based positions in the history. With no observation
        yet, an empty round (answer 0, updated_at 0) is returned, which the
        normalizer rejects as an invalid price.
        """
        timestamps = [ts for ts, _ in self.history]
        idx = bisect_right(timestamps, self.clock.now)
        if idx == 0:
            return RoundData(0, 0, 0, 0, 0)
        ts, answer = self.history[idx - 1]
        return RoundData(idx, answer, ts, ts, idx)

    def __repr__(self):
        return f"TimeSeriesPriceFeed({len(self.history)} observations, decimals={self._decimals})"
