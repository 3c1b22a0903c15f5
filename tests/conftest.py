"""
Pytest configuration and shared fixtures.
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from schemas.market_data import Side, Trade
from schemas.records import Carry, PositionAction, PositionRecord, TradeRecord

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ts(seconds: float) -> datetime:
    """Instant `seconds` after the test epoch"""
    return EPOCH + timedelta(seconds=seconds)


def make_trade(seconds: float, price: float = 100.0, quantity: float = 1.0, side: Side = Side.BUY) -> Trade:
    return Trade(price=price, quantity=quantity, side=side, timestamp=ts(seconds))


def encode_trades(trades) -> str:
    """Trade batch in the feed's wire shape"""
    return json.dumps({"Trades": [t.to_dict() for t in trades]})


def make_position(
    id: int,
    seconds: float,
    action: PositionAction = PositionAction.OPEN,
    bot_name: str = "intra_basis",
    symbol: str = "BTC",
    carry: Carry = Carry.CARRY,
) -> PositionRecord:
    return PositionRecord(
        id=id,
        executed_at=ts(seconds),
        bot_name=bot_name,
        carry=carry,
        action=action,
        symbol=symbol,
        spot_price=45000.0,
        futures_mark=45050.0,
        buy_exchange="binance",
        sell_exchange="bithumb",
    )


def make_trade_record(id: int, seconds: float, symbol: str = "BTC") -> TradeRecord:
    return TradeRecord(
        id=id,
        executed_at=ts(seconds),
        exchange="binance",
        symbol=symbol,
        market_type="SPOT",
        side="BUY",
        trade_type="MARKET",
        executed_price=45000.0,
        quantity=0.5,
    )


class _End:
    def __init__(self, exc=None):
        self.exc = exc


class FakeConnection:
    """In-memory stand-in for a websocket client connection"""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def feed(self, raw) -> None:
        self._queue.put_nowait(raw)

    def drop(self, exc: Exception = None) -> None:
        """End the stream; with `exc` the iteration raises it"""
        self._queue.put_nowait(_End(exc))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if isinstance(item, _End):
            if item.exc is not None:
                raise item.exc
            raise StopAsyncIteration
        return item

    async def close(self) -> None:
        self.closed = True
        self._queue.put_nowait(_End())


class FakeServer:
    """Connector handing out FakeConnections, optionally failing first"""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.attempts = 0
        self.connections: list[FakeConnection] = []

    async def connect(self, address: str) -> FakeConnection:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def current(self) -> FakeConnection:
        return self.connections[-1]


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until predicate() holds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def server():
    return FakeServer()
