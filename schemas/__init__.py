"""
Typed Message Catalog

Entities flowing through the monitor: live market data (trades, order book,
candles), bot lifecycle records and order submission models.
"""

from schemas.market_data import Candle, Order, OrderBookSnapshot, OrderKind, SchemaError, Side, Trade
from schemas.records import Carry, PositionAction, PositionRecord, TradeRecord

__all__ = [
    "Candle",
    "Carry",
    "Order",
    "OrderBookSnapshot",
    "OrderKind",
    "PositionAction",
    "PositionRecord",
    "SchemaError",
    "Side",
    "Trade",
    "TradeRecord",
]
