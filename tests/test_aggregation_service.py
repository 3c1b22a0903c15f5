"""
Candle aggregation service wiring: channel -> aggregator -> NATS.
"""
import json

from dataflow.candle_aggregation.aggregator import TickAggregator
from dataflow.candle_aggregation.service import CandleAggregationService, timeframe_label
from dataflow.ingestion.channel import IngestionChannel
from tests.conftest import encode_trades, make_trade, ts, wait_for


class RecordingNats:
    def __init__(self, fail: bool = False):
        self.published = []
        self.fail = fail

    async def publish_json(self, subject, data):
        if self.fail:
            raise RuntimeError("NATS client not connected")
        self.published.append((subject, json.loads(data)))


def test_timeframe_label():
    assert timeframe_label(1) == "1s"
    assert timeframe_label(0.5) == "0_5s"
    assert timeframe_label(60) == "1m"
    assert timeframe_label(300) == "5m"
    assert timeframe_label(90) == "90s"


async def test_trades_are_folded_and_published(server):
    nats = RecordingNats()
    channel = IngestionChannel("ws://sim/ws", connect=server.connect, reconnect_delay=0.01)
    service = CandleAggregationService(channel, TickAggregator(1), nats, symbol="BTC/USDT")

    await service.start()
    try:
        await wait_for(lambda: channel.connected)
        server.current.feed(encode_trades([make_trade(0.2, price=10.0), make_trade(1.4, price=12.0)]))
        await wait_for(lambda: len(nats.published) == 2)

        server.current.feed(encode_trades([make_trade(1.8, price=11.0)]))
        await wait_for(lambda: len(nats.published) == 3)
    finally:
        await service.stop()

    subjects = {subject for subject, _ in nats.published}
    assert subjects == {"candles.BTC_USDT.1s"}
    last = nats.published[-1][1]
    assert last["bucket_start"] == ts(1).isoformat()
    assert last["open"] == 10.0
    assert last["close"] == 11.0
    assert service.candles_published == 3


async def test_order_book_and_empty_batches_are_ignored(server):
    nats = RecordingNats()
    channel = IngestionChannel("ws://sim/ws", connect=server.connect, reconnect_delay=0.01)
    aggregator = TickAggregator(1)
    service = CandleAggregationService(channel, aggregator, nats)

    await service.start()
    try:
        await wait_for(lambda: channel.connected)
        server.current.feed('{"OrderBook": {"bids": [], "asks": []}}')
        server.current.feed('{"Trades": []}')
        await wait_for(lambda: channel.order_book is not None)
    finally:
        await service.stop()

    assert len(aggregator) == 0
    assert nats.published == []


async def test_publish_failures_do_not_stop_aggregation(server):
    channel = IngestionChannel("ws://sim/ws", connect=server.connect, reconnect_delay=0.01)
    aggregator = TickAggregator(1)
    service = CandleAggregationService(channel, aggregator, RecordingNats(fail=True))

    await service.start()
    try:
        await wait_for(lambda: channel.connected)
        server.current.feed(encode_trades([make_trade(0)]))
        server.current.feed(encode_trades([make_trade(3)]))
        await wait_for(lambda: len(aggregator) == 2)
        assert channel.connected
    finally:
        await service.stop()

    assert service.candles_published == 0


async def test_without_nats_candles_stay_in_memory(server):
    channel = IngestionChannel("ws://sim/ws", connect=server.connect, reconnect_delay=0.01)
    aggregator = TickAggregator(1)
    service = CandleAggregationService(channel, aggregator)

    await service.start()
    try:
        await wait_for(lambda: channel.connected)
        server.current.feed(encode_trades([make_trade(0, price=5.0)]))
        await wait_for(lambda: len(aggregator) == 1)
    finally:
        await service.stop()

    assert aggregator.latest().close == 5.0
