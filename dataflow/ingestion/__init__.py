"""
Live Ingestion

Websocket channel for the simulator feed with reconnect, frame decoding and
the bounded trade buffer.
"""

from dataflow.ingestion.buffer import TradeBuffer
from dataflow.ingestion.channel import ConnectionState, IngestionChannel, TradeBatch, open_channel
from dataflow.ingestion.frames import FrameDecodeError, OrderBookUpdate, decode_frame

__all__ = [
    "ConnectionState",
    "FrameDecodeError",
    "IngestionChannel",
    "OrderBookUpdate",
    "TradeBatch",
    "TradeBuffer",
    "decode_frame",
    "open_channel",
]
