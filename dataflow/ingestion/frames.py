"""
Stream Frame Decoding

The simulator feed sends externally tagged JSON objects:

- {"OrderBook": {"bids": [...], "asks": [...]}}
- {"Trades": [{"price": ..., "quantity": ..., "side": ..., "timestamp": ...}, ...]}

Each frame is decoded on its own; a bad frame never affects the next one.
"""

import json
from dataclasses import dataclass
from typing import Tuple, Union

from schemas.market_data import OrderBookSnapshot, SchemaError, Trade


class FrameDecodeError(ValueError):
    """Raised when an inbound frame cannot be decoded"""


@dataclass(frozen=True)
class OrderBookUpdate:
    """Order book snapshot event"""
    snapshot: OrderBookSnapshot


@dataclass(frozen=True)
class TradeBatchFrame:
    """Raw trade batch as received, before buffer merge"""
    trades: Tuple[Trade, ...]


Frame = Union[OrderBookUpdate, TradeBatchFrame]


def decode_frame(raw: Union[str, bytes]) -> Frame:
    """
    Decode one inbound frame.

    Args:
        raw: Text or UTF-8 bytes as delivered by the transport

    Returns:
        OrderBookUpdate or TradeBatchFrame

    Raises:
        FrameDecodeError: If the frame is not valid JSON or has an unknown shape
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"Frame is not UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FrameDecodeError(f"Expected tagged object, got {type(data).__name__}")

    try:
        if "OrderBook" in data:
            return OrderBookUpdate(snapshot=OrderBookSnapshot.from_dict(data["OrderBook"]))

        if "Trades" in data:
            items = data["Trades"]
            if not isinstance(items, list):
                raise FrameDecodeError("Trades payload must be an array")
            return TradeBatchFrame(trades=tuple(Trade.from_dict(t) for t in items))
    except (SchemaError, TypeError) as e:
        raise FrameDecodeError(f"Malformed payload: {e}") from e

    raise FrameDecodeError(f"Unknown frame tag(s): {sorted(data.keys())}")
