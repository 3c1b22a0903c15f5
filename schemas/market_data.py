"""
Market Data Types

Core market data types carried on the live stream.
Trades and order book snapshots arrive over the websocket feed; candles are
derived from trades by the aggregation session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
import json
import re

_FRACTION = re.compile(r"\.(\d+)")


class SchemaError(ValueError):
    """Raised when a payload does not match the expected entity shape"""


class Side(str, Enum):
    BUY = "Buy"
    SELL = "Sell"


class OrderKind(str, Enum):
    LIMIT = "Limit"
    MARKET = "Market"


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    A trailing "Z" is accepted and naive values are assumed to be UTC.
    Fractional seconds are cut (or padded) to microseconds, so nanosecond
    timestamps parse but lose their sub-microsecond digits.
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"))
        try:
            ts = datetime.fromisoformat(text)
        except ValueError as e:
            raise SchemaError(f"Invalid timestamp {value!r}: {e}") from e
    else:
        raise SchemaError(f"Invalid timestamp {value!r}")

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def require_field(data: dict, key: str) -> Any:
    if not isinstance(data, dict):
        raise SchemaError(f"Expected object, got {type(data).__name__}")
    if key not in data:
        raise SchemaError(f"Missing field '{key}'")
    return data[key]


def parse_enum(enum_cls, value: Any):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise SchemaError(f"Invalid {enum_cls.__name__}: {value!r}") from e


def require_number(data: dict, key: str) -> float:
    value = require_field(data, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"Field '{key}' must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class Trade:
    """Executed trade from the market feed"""
    price: float
    quantity: float
    side: Side
    timestamp: datetime

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "price": self.price,
            "quantity": self.quantity,
            "side": self.side.value,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Trade":
        """Create Trade from dictionary"""
        return cls(
            price=require_number(data, "price"),
            quantity=require_number(data, "quantity"),
            side=parse_enum(Side, require_field(data, "side")),
            timestamp=parse_timestamp(require_field(data, "timestamp")),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Trade":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))


@dataclass(frozen=True)
class Order:
    """Resting order as shown in an order book snapshot"""
    id: str
    side: Side
    order_type: OrderKind
    price: Optional[float]
    quantity: float
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "side": self.side.value,
            "order_type": self.order_type.value,
            "price": self.price,
            "quantity": self.quantity,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Order":
        price = require_field(data, "price")
        return cls(
            id=str(require_field(data, "id")),
            side=parse_enum(Side, require_field(data, "side")),
            order_type=parse_enum(OrderKind, require_field(data, "order_type")),
            price=None if price is None else require_number(data, "price"),
            quantity=require_number(data, "quantity"),
            timestamp=parse_timestamp(require_field(data, "timestamp")),
        )


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Full bid/ask snapshot of the simulated book"""
    bids: List[Order] = field(default_factory=list)
    asks: List[Order] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "bids": [o.to_dict() for o in self.bids],
            "asks": [o.to_dict() for o in self.asks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderBookSnapshot":
        bids = require_field(data, "bids")
        asks = require_field(data, "asks")
        if not isinstance(bids, list) or not isinstance(asks, list):
            raise SchemaError("Order book sides must be arrays")
        return cls(
            bids=[Order.from_dict(o) for o in bids],
            asks=[Order.from_dict(o) for o in asks],
        )


@dataclass
class Candle:
    """OHLC candle for one time bucket"""
    bucket_start: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    trade_count: int = 0  # Number of trades that formed this candle

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "bucket_start": self.bucket_start.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "trade_count": self.trade_count,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Candle":
        """Create Candle from dictionary"""
        return cls(
            bucket_start=parse_timestamp(require_field(data, "bucket_start")),
            open=require_number(data, "open"),
            high=require_number(data, "high"),
            low=require_number(data, "low"),
            close=require_number(data, "close"),
            volume=float(data.get("volume", 0.0)),
            trade_count=int(data.get("trade_count", 0)),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Candle":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))
