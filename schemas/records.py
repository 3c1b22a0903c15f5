"""
Lifecycle Record Types

Trade records and position lifecycle records written by the trading bots.
Both are loaded from the records REST resources and are read-only here.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from schemas.market_data import SchemaError, parse_enum, parse_timestamp, require_field, require_number


class Carry(str, Enum):
    """Direction of the basis trade"""
    CARRY = "CARRY"
    REVERSE = "REVERSE"


class PositionAction(str, Enum):
    OPEN = "OPEN"
    CLOSE = "CLOSE"


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    return None if value is None else str(value)


@dataclass(frozen=True)
class TradeRecord:
    """Single exchange execution recorded by a bot"""
    id: int
    executed_at: datetime
    exchange: str
    symbol: str
    market_type: str  # "SPOT" | "FUTURES"
    side: str  # "BUY" | "SELL"
    trade_type: str  # "MARKET" | "LIMIT" | "OTHER"
    executed_price: Optional[float]
    quantity: float
    request_query_string: Optional[str] = None
    api_response: Optional[str] = None
    metadata: Optional[str] = None
    is_liquidation: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "executed_at": self.executed_at.isoformat(),
            "exchange": self.exchange,
            "symbol": self.symbol,
            "market_type": self.market_type,
            "side": self.side,
            "trade_type": self.trade_type,
            "executed_price": self.executed_price,
            "quantity": self.quantity,
            "request_query_string": self.request_query_string,
            "api_response": self.api_response,
            "metadata": self.metadata,
            "is_liquidation": self.is_liquidation,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TradeRecord":
        price = data.get("executed_price") if isinstance(data, dict) else None
        return cls(
            id=int(require_field(data, "id")),
            executed_at=parse_timestamp(require_field(data, "executed_at")),
            exchange=str(require_field(data, "exchange")),
            symbol=str(require_field(data, "symbol")),
            market_type=str(require_field(data, "market_type")),
            side=str(require_field(data, "side")),
            trade_type=str(require_field(data, "trade_type")),
            executed_price=None if price is None else require_number(data, "executed_price"),
            quantity=require_number(data, "quantity"),
            request_query_string=_optional_str(data, "request_query_string"),
            api_response=_optional_str(data, "api_response"),
            metadata=_optional_str(data, "metadata"),
            is_liquidation=bool(data.get("is_liquidation", False)),
        )


@dataclass(frozen=True)
class PositionRecord:
    """Position lifecycle event (OPEN or CLOSE) emitted by a basis bot"""
    id: int
    executed_at: datetime
    bot_name: str
    carry: Carry
    action: PositionAction
    symbol: str
    spot_price: float
    futures_mark: float
    buy_exchange: str
    sell_exchange: str

    @property
    def group_key(self) -> Tuple[str, str, Carry]:
        """Composite key shared by all events of the same position stream"""
        return (self.bot_name, self.symbol, self.carry)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "executed_at": self.executed_at.isoformat(),
            "bot_name": self.bot_name,
            "carry": self.carry.value,
            "action": self.action.value,
            "symbol": self.symbol,
            "spot_price": self.spot_price,
            "futures_mark": self.futures_mark,
            "buy_exchange": self.buy_exchange,
            "sell_exchange": self.sell_exchange,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PositionRecord":
        return cls(
            id=int(require_field(data, "id")),
            executed_at=parse_timestamp(require_field(data, "executed_at")),
            bot_name=str(require_field(data, "bot_name")),
            carry=parse_enum(Carry, require_field(data, "carry")),
            action=parse_enum(PositionAction, require_field(data, "action")),
            symbol=str(require_field(data, "symbol")),
            spot_price=require_number(data, "spot_price"),
            futures_mark=require_number(data, "futures_mark"),
            buy_exchange=str(require_field(data, "buy_exchange")),
            sell_exchange=str(require_field(data, "sell_exchange")),
        )


__all__ = ["Carry", "PositionAction", "PositionRecord", "SchemaError", "TradeRecord"]
