"""
Candle Aggregation Service

Subscribes to the ingestion channel, folds every accepted trade batch into
the session's TickAggregator and publishes changed candles to NATS:

- candles.{symbol}.{timeframe}

Publishing happens on a background task so subscriber callbacks stay
synchronous.
"""

import asyncio
import logging
import os
from typing import List, Optional

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics
from dataflow.candle_aggregation.aggregator import TickAggregator
from dataflow.config.loader import MonitorConfig, load_config
from dataflow.ingestion.channel import ChannelEvent, IngestionChannel, TradeBatch
from schemas.market_data import Candle

logger = logging.getLogger(__name__)


def timeframe_label(bucket_seconds: float) -> str:
    """Topic segment for a bucket width, e.g. 1 -> "1s", 60 -> "1m" """
    if bucket_seconds >= 60 and bucket_seconds % 60 == 0:
        return f"{int(bucket_seconds // 60)}m"
    return f"{bucket_seconds:g}s".replace(".", "_")


class CandleAggregationService:
    """
    Owns the aggregation session for one symbol.

    Args:
        channel: Ingestion channel delivering trade batches
        aggregator: Session aggregator (reset when the service starts)
        nats_client: Optional connected NATS client; without it candles are
            kept in memory only
        symbol: Symbol used in the candle topic
    """

    def __init__(
        self,
        channel: IngestionChannel,
        aggregator: TickAggregator,
        nats_client: Optional[NatsClient] = None,
        symbol: str = "SIM",
    ):
        self.channel = channel
        self.aggregator = aggregator
        self.nats = nats_client
        self.symbol = symbol
        self.timeframe = timeframe_label(aggregator.bucket_seconds)

        self._queue: "asyncio.Queue[List[Candle]]" = asyncio.Queue()
        self._publish_task: Optional[asyncio.Task] = None
        self._published = 0

    @property
    def candles_published(self) -> int:
        return self._published

    def handle_event(self, event: ChannelEvent) -> None:
        """Channel subscriber: fold trade batches, ignore order book updates"""
        if not isinstance(event, TradeBatch) or not event.trades:
            return

        self.aggregator.ingest(event.trades)
        changed = list(self.aggregator.candles(since_key=self.aggregator.last_touched))
        if changed and self.nats is not None:
            self._queue.put_nowait(changed)

    async def _publish_loop(self) -> None:
        topic = Topics.candles(self.symbol, self.timeframe)
        while True:
            candles = await self._queue.get()
            for candle in candles:
                try:
                    await self.nats.publish_json(topic, candle.to_json())
                    self._published += 1
                except Exception as e:
                    logger.error(f"Failed to publish candle: {e}")
            logger.debug(f"Published {len(candles)} candle(s) to {topic}")

    async def start(self) -> None:
        """Start the aggregation session"""
        logger.info(f"Starting candle aggregation for {self.symbol} ({self.timeframe})")
        self.aggregator.reset()
        self.channel.subscribe(self.handle_event)
        if self.nats is not None:
            self._publish_task = asyncio.create_task(self._publish_loop())
        await self.channel.open()

    async def stop(self) -> None:
        """Stop the session and release the channel"""
        self.channel.unsubscribe(self.handle_event)
        await self.channel.close()

        if self._publish_task:
            self._publish_task.cancel()
            try:
                await self._publish_task
            except asyncio.CancelledError:
                pass
            self._publish_task = None

        logger.info(f"Candle aggregation stopped ({len(self.aggregator)} candles in session)")


async def main():
    """Main entry point"""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config: MonitorConfig = load_config(os.getenv("MONITOR_CONFIG"))
    nats_client: Optional[NatsClient] = NatsClient(NatsConfig.from_env())
    try:
        await nats_client.connect()
    except Exception as e:
        logger.warning(f"Failed to connect to NATS: {e}. Running in standalone mode.")
        nats_client = None

    channel = IngestionChannel(
        config.stream.url,
        reconnect_delay=config.stream.reconnect_delay,
        buffer_size=config.stream.buffer_size,
    )
    service = CandleAggregationService(
        channel,
        TickAggregator(config.aggregation.bucket_seconds),
        nats_client,
        symbol=config.symbol,
    )

    try:
        await service.start()
        logger.info("Candle aggregation running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        await service.stop()
        if nats_client:
            await nats_client.close()


if __name__ == "__main__":
    asyncio.run(main())
