"""
Tick Aggregator

Folds trades into fixed-width time buckets and keeps a continuous OHLC
series: every candle after the first opens at the previous candle's close.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional

from schemas.market_data import Candle, Trade

logger = logging.getLogger(__name__)


class CandleBuilder:
    """Accumulates the trades of one bucket"""

    def __init__(self, key: int, start_time: datetime, price: float):
        self.key = key
        self.start_time = start_time
        self.first_price = price
        self.high = price
        self.low = price
        self.close = price
        self.volume: float = 0.0
        self.trade_count: int = 0

    def add_trade(self, trade: Trade) -> None:
        """Add a trade to this bucket"""
        price = trade.price
        self.high = max(self.high, price)
        self.low = min(self.low, price)
        self.close = price
        self.volume += trade.quantity
        self.trade_count += 1

    def build(self, open_price: Optional[float] = None) -> Candle:
        """Build the Candle, optionally with the open carried from the predecessor"""
        return Candle(
            bucket_start=self.start_time,
            open=self.first_price if open_price is None else open_price,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
            trade_count=self.trade_count,
        )


class TickAggregator:
    """
    Incremental tick-to-candle aggregation for one live session.

    The bucket map is the only state. The candle series is regenerated from
    it on demand, so `candles()` can be restarted at any time and always
    yields the same series for the same accumulated trades.

    Example usage:
        aggregator = TickAggregator(bucket_seconds=1)
        series = aggregator.ingest(trades)
        assert all(b.open == a.close for a, b in zip(series, series[1:]))
    """

    def __init__(self, bucket_seconds: float = 1.0):
        if bucket_seconds <= 0:
            raise ValueError(f"bucket_seconds must be positive, got {bucket_seconds}")
        self.bucket_seconds = bucket_seconds
        self._buckets: Dict[int, CandleBuilder] = {}
        self.last_touched: Optional[int] = None

    def __len__(self) -> int:
        return len(self._buckets)

    def bucket_key(self, timestamp: datetime) -> int:
        """Integer bucket index containing this timestamp"""
        return math.floor(timestamp.timestamp() / self.bucket_seconds)

    def bucket_start(self, key: int) -> datetime:
        return datetime.fromtimestamp(key * self.bucket_seconds, tz=timezone.utc)

    def ingest(self, trades: Iterable[Trade]) -> List[Candle]:
        """
        Fold trades into the bucket map and return the full candle series.

        Trades are folded in timestamp order (stable for equal timestamps),
        so the close of a bucket is its latest trade.

        Args:
            trades: New trades in any order

        Returns:
            Candle series sorted by bucket start, continuity applied
        """
        touched = None
        for trade in sorted(trades, key=lambda t: t.timestamp):
            key = self.bucket_key(trade.timestamp)
            builder = self._buckets.get(key)
            if builder is None:
                builder = CandleBuilder(key, self.bucket_start(key), trade.price)
                self._buckets[key] = builder
            builder.add_trade(trade)
            touched = key if touched is None else min(touched, key)

        self.last_touched = touched
        if touched is not None:
            logger.debug(f"Folded trades into {len(self._buckets)} buckets, first touched {touched}")
        return list(self.candles())

    def candles(self, since_key: Optional[int] = None) -> Iterator[Candle]:
        """
        Yield the candle series in bucket order with continuity applied.

        Args:
            since_key: Only yield candles from this bucket key onward. Opens
                are still stitched from the preceding candle.
        """
        previous: Optional[CandleBuilder] = None
        for key in sorted(self._buckets):
            builder = self._buckets[key]
            if since_key is None or key >= since_key:
                yield builder.build(None if previous is None else previous.close)
            previous = builder

    def latest(self) -> Optional[Candle]:
        """Most recent candle, or None before the first trade"""
        if not self._buckets:
            return None
        keys = sorted(self._buckets)
        last = self._buckets[keys[-1]]
        prev = self._buckets[keys[-2]] if len(keys) > 1 else None
        return last.build(None if prev is None else prev.close)

    def reset(self) -> None:
        """Discard all candles and start a new session"""
        self._buckets.clear()
        self.last_touched = None
