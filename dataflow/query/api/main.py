"""
Query API

FastAPI service exposing the live session and position reconciliation.

HTTP Endpoints:
- GET  /                           - Health check
- GET  /health                     - Connectivity and record-store status
- GET  /candles                    - Latest candles of the live session
- GET  /trades                     - Retained trade buffer
- GET  /orderbook                  - Last order book snapshot (REST fallback)
- POST /orders                     - Order pass-through to the simulator
- GET  /positions                  - Position records of the current snapshot
- GET  /positions/{id}/trades      - Trades attributed to one position event
- GET  /positions/{id}/pair        - OPEN/CLOSE pair and its trades
- POST /records/refresh            - Reload trade/position records now
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from dataflow.adapters.nats_client import NatsClient, NatsConfig
from dataflow.adapters.record_store import RecordStore
from dataflow.adapters.records_client import DataFetchError, RecordsClient
from dataflow.candle_aggregation.aggregator import TickAggregator
from dataflow.candle_aggregation.service import CandleAggregationService
from dataflow.config.loader import MonitorConfig, load_config
from dataflow.ingestion.channel import IngestionChannel
from schemas.orders import OrderRequest, OrderResponse

logger = logging.getLogger(__name__)

NO_RELATED_RECORDS = "no_related_records"


# Response models (Pydantic)
class CandleResponse(BaseModel):
    """Single candle response"""
    bucket_start: str  # ISO 8601
    open: float
    high: float
    low: float
    close: float
    volume: float
    trade_count: int


class CandlesResponse(BaseModel):
    symbol: str
    timeframe: str
    count: int
    candles: List[CandleResponse]


class TradeResponse(BaseModel):
    price: float
    quantity: float
    side: str
    timestamp: str


class TradeRecordResponse(BaseModel):
    id: int
    executed_at: str
    exchange: str
    symbol: str
    market_type: str
    side: str
    trade_type: str
    executed_price: Optional[float]
    quantity: float
    is_liquidation: bool


class PositionResponse(BaseModel):
    id: int
    executed_at: str
    bot_name: str
    carry: str
    action: str
    symbol: str
    spot_price: float
    futures_mark: float
    buy_exchange: str
    sell_exchange: str


class SelectionResponse(BaseModel):
    """Trades attributed to one position event"""
    position_id: int
    status: str  # "ok" | "no_related_records"
    window_start: Optional[str] = None
    window_end: Optional[str] = None
    count: int
    trades: List[TradeRecordResponse]


class PairResponse(BaseModel):
    """OPEN/CLOSE pair with the union of both windows' trades"""
    position_id: int
    status: str
    open: Optional[PositionResponse] = None
    close: Optional[PositionResponse] = None
    count: int = 0
    trades: List[TradeRecordResponse] = []


def _trade_record(record) -> TradeRecordResponse:
    data = record.to_dict()
    return TradeRecordResponse(**{k: data[k] for k in TradeRecordResponse.model_fields})


def _position(record) -> PositionResponse:
    return PositionResponse(**record.to_dict())


def create_app(
    config: Optional[MonitorConfig] = None,
    channel: Optional[IngestionChannel] = None,
    aggregator: Optional[TickAggregator] = None,
    store: Optional[RecordStore] = None,
    nats_client: Optional[NatsClient] = None,
    start_background: bool = True,
) -> FastAPI:
    """
    Build the API around one monitoring session.

    Args:
        config: Monitor configuration (defaults from env)
        channel: Ingestion channel; built from config if omitted
        aggregator: Session aggregator; built from config if omitted
        store: Record store; built from config if omitted
        nats_client: Optional NATS client for candle fan-out
        start_background: Start the channel and record polling on startup
    """
    config = config or load_config(os.getenv("MONITOR_CONFIG"))
    if channel is None:
        channel = IngestionChannel(
            config.stream.url,
            reconnect_delay=config.stream.reconnect_delay,
            buffer_size=config.stream.buffer_size,
        )
    if aggregator is None:
        aggregator = TickAggregator(config.aggregation.bucket_seconds)
    if store is None:
        store = RecordStore(RecordsClient(config.records.api_base, timeout=config.records.timeout))
    service = CandleAggregationService(channel, aggregator, nats_client, symbol=config.symbol)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the live session and record polling for the app's lifetime"""
        logger.info("Starting Query API...")
        if start_background:
            if nats_client is not None:
                try:
                    await nats_client.connect()
                except Exception as e:
                    logger.warning(f"Failed to connect to NATS: {e}. Candles will not be published.")
                    service.nats = None
            await service.start()
            store.start_polling(config.records.poll_interval)

        yield

        if start_background:
            await store.stop()
            await service.stop()
            await store.client.close()
            if service.nats is not None:
                await service.nats.close()
        logger.info("Query API shutdown complete")

    app = FastAPI(
        title="Market Monitor - Query API",
        description="Live candles and position reconciliation",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.channel = channel
    app.state.aggregator = aggregator
    app.state.store = store
    app.state.service = service

    def require_records() -> RecordStore:
        if store.error is not None:
            raise HTTPException(status_code=503, detail=f"Record fetch failed: {store.error}")
        if not store.loaded:
            raise HTTPException(status_code=503, detail="Records not loaded yet")
        return store

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "running",
            "service": "query-api",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health():
        """Connectivity flag and record-store status"""
        degraded = not channel.connected or store.error is not None
        return {
            "status": "degraded" if degraded else "healthy",
            "service": "query-api",
            "stream_state": channel.state.value,
            "stream_connected": channel.connected,
            "stream_error": channel.last_error,
            "frames_dropped": channel.frames_dropped,
            "records_loaded": store.loaded,
            "records_error": store.error,
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/candles")
    async def get_candles(
        limit: int = Query(default=100, ge=1, le=1000, description="Number of candles to return")
    ) -> CandlesResponse:
        """Latest candles of the session, oldest first"""
        candles = list(aggregator.candles())[-limit:]
        return CandlesResponse(
            symbol=config.symbol,
            timeframe=service.timeframe,
            count=len(candles),
            candles=[CandleResponse(**c.to_dict()) for c in candles],
        )

    @app.get("/trades")
    async def get_trades() -> List[TradeResponse]:
        return [TradeResponse(**t.to_dict()) for t in channel.buffer.snapshot()]

    @app.get("/orderbook")
    async def get_order_book():
        """Last streamed snapshot; before the first frame, the simulator's REST snapshot"""
        if channel.order_book is not None:
            return channel.order_book.snapshot.to_dict()
        try:
            snapshot = await store.client.fetch_order_book()
        except DataFetchError as e:
            raise HTTPException(status_code=503, detail=f"Order book unavailable: {e}")
        return snapshot.to_dict()

    @app.post("/orders")
    async def submit_order(order: OrderRequest) -> OrderResponse:
        """Pass an order through to the simulator; the status is returned unchanged"""
        try:
            return await store.client.submit_order(order)
        except DataFetchError as e:
            raise HTTPException(status_code=503, detail=f"Order submission failed: {e}")

    @app.get("/positions")
    async def get_positions() -> List[PositionResponse]:
        records = require_records()
        return [_position(p) for p in records.positions]

    @app.get("/positions/{position_id}/trades")
    async def get_position_trades(position_id: int) -> SelectionResponse:
        """
        Trades executed between the previous event of the same
        (bot_name, symbol, carry) group and the selected event.
        """
        reconciler = require_records().reconciler()
        window = reconciler.window(position_id)
        trades = reconciler.window_for_selection(position_id)
        return SelectionResponse(
            position_id=position_id,
            status="ok" if trades else NO_RELATED_RECORDS,
            window_start=window.start.isoformat() if window and window.start else None,
            window_end=window.end.isoformat() if window else None,
            count=len(trades),
            trades=[_trade_record(t) for t in trades],
        )

    @app.get("/positions/{position_id}/pair")
    async def get_position_pair(position_id: int) -> PairResponse:
        """Pair the event with its OPEN/CLOSE partner"""
        pair = require_records().reconciler().window_for_pair(position_id)
        if pair is None:
            return PairResponse(position_id=position_id, status=NO_RELATED_RECORDS)
        return PairResponse(
            position_id=position_id,
            status="ok",
            open=_position(pair.open),
            close=_position(pair.close),
            count=len(pair.trades),
            trades=[_trade_record(t) for t in pair.trades],
        )

    @app.post("/records/refresh")
    async def refresh_records():
        """Manual retry after a failed fetch"""
        if not await store.refresh():
            raise HTTPException(status_code=503, detail=f"Record fetch failed: {store.error}")
        return {
            "status": "success",
            "trade_records": len(store.trades),
            "position_records": len(store.positions),
        }

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting Query API on {host}:{port}")
    logger.info(f"NATS servers: {os.getenv('NATS_SERVERS', 'nats://localhost:4222')}")

    uvicorn.run(create_app(nats_client=NatsClient(NatsConfig.from_env())), host=host, port=port)
