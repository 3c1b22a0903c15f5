"""
Candle Aggregation Service

Folds live trades into a continuous OHLC candle series and publishes
updated candles to NATS.
"""

from dataflow.candle_aggregation.aggregator import CandleBuilder, TickAggregator

__all__ = ["CandleBuilder", "TickAggregator"]
