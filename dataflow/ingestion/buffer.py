"""
Trade Buffer

Bounded working set of recent trades, deduplicated by trade timestamp.
"""

from datetime import datetime
from typing import Iterable, List, Set, Tuple

from schemas.market_data import Trade

DEFAULT_CAPACITY = 100


class TradeBuffer:
    """
    Bounded FIFO of trades keyed by timestamp.

    The first batch of a session replaces the contents with its most recent
    `capacity` trades. Every later batch appends only trades whose timestamp
    is not already held, then drops from the front down to `capacity`.
    Two trades with the same timestamp are the same trade; the later one is
    discarded.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._trades: List[Trade] = []
        self._keys: Set[datetime] = set()
        self._seeded = False

    def __len__(self) -> int:
        return len(self._trades)

    @property
    def seeded(self) -> bool:
        """True once the first batch of the session has been applied"""
        return self._seeded

    def snapshot(self) -> Tuple[Trade, ...]:
        return tuple(self._trades)

    def merge(self, batch: Iterable[Trade]) -> List[Trade]:
        """
        Merge a batch into the working set.

        Args:
            batch: Trades in the order received

        Returns:
            Trades from the batch that were accepted (still retained after
            truncation), in arrival order
        """
        if not self._seeded:
            self._seeded = True
            self._trades = []
            self._keys = set()
            fresh = _unique(batch, set())[-self.capacity:]
        else:
            fresh = _unique(batch, self._keys)

        self._trades.extend(fresh)
        self._keys.update(t.timestamp for t in fresh)

        overflow = len(self._trades) - self.capacity
        if overflow > 0:
            for dropped in self._trades[:overflow]:
                self._keys.discard(dropped.timestamp)
            del self._trades[:overflow]

        return [t for t in fresh if t.timestamp in self._keys]

    def reset(self) -> None:
        """Forget all trades and start a new session"""
        self._trades = []
        self._keys = set()
        self._seeded = False


def _unique(batch: Iterable[Trade], seen: Set[datetime]) -> List[Trade]:
    """Trades whose timestamp is neither in `seen` nor earlier in the batch"""
    keys = set(seen)
    out = []
    for trade in batch:
        if trade.timestamp in keys:
            continue
        keys.add(trade.timestamp)
        out.append(trade)
    return out
