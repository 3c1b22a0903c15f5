"""
Frame decoding for the simulator feed.
"""
import json

import pytest

from dataflow.ingestion.frames import (
    FrameDecodeError,
    OrderBookUpdate,
    TradeBatchFrame,
    decode_frame,
)
from schemas.market_data import OrderKind, Side
from tests.conftest import encode_trades, make_trade, ts

ORDER_BOOK = {
    "OrderBook": {
        "bids": [
            {
                "id": "b1",
                "side": "Buy",
                "order_type": "Limit",
                "price": 99.5,
                "quantity": 2.0,
                "timestamp": "2024-01-01T00:00:00Z",
            }
        ],
        "asks": [
            {
                "id": "a1",
                "side": "Sell",
                "order_type": "Market",
                "price": None,
                "quantity": 1.0,
                "timestamp": "2024-01-01T00:00:01Z",
            }
        ],
    }
}


def test_decode_order_book():
    frame = decode_frame(json.dumps(ORDER_BOOK))

    assert isinstance(frame, OrderBookUpdate)
    bid, ask = frame.snapshot.bids[0], frame.snapshot.asks[0]
    assert bid.side is Side.BUY and bid.price == 99.5
    assert ask.order_type is OrderKind.MARKET and ask.price is None
    assert ask.timestamp == ts(1)


def test_decode_trades_from_bytes():
    raw = encode_trades([make_trade(1, price=10.0), make_trade(2, price=11.0)]).encode("utf-8")
    frame = decode_frame(raw)

    assert isinstance(frame, TradeBatchFrame)
    assert [t.price for t in frame.trades] == [10.0, 11.0]
    assert frame.trades[0].timestamp == ts(1)


def test_decode_empty_trade_batch():
    frame = decode_frame('{"Trades": []}')
    assert isinstance(frame, TradeBatchFrame)
    assert frame.trades == ()


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        '{"Heartbeat": {}}',
        '{"Trades": {"price": 1}}',
        '{"Trades": [{"price": "abc", "quantity": 1, "side": "Buy", "timestamp": "2024-01-01T00:00:00Z"}]}',
        '{"Trades": [{"price": 1, "quantity": 1, "side": "Hold", "timestamp": "2024-01-01T00:00:00Z"}]}',
        '{"Trades": [{"price": 1, "quantity": 1, "side": "Buy", "timestamp": "yesterday"}]}',
        '{"OrderBook": {"bids": []}}',
        b"\xff\xfe",
    ],
)
def test_malformed_frames_raise_decode_error(raw):
    with pytest.raises(FrameDecodeError):
        decode_frame(raw)
