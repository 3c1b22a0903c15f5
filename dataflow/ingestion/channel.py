"""
Ingestion Channel

Owns the single websocket connection to the simulator feed, decodes frames,
merges trade batches into the bounded trade buffer and pushes events to
subscribers. Reconnects with a fixed delay until closed.

State machine:

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTING/CONNECTED --(error or remote close)--> RECONNECTING -> CONNECTING
    any --(close())--> DISCONNECTED
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional, Tuple, Union

import websockets

from dataflow.ingestion.buffer import DEFAULT_CAPACITY, TradeBuffer
from dataflow.ingestion.frames import FrameDecodeError, OrderBookUpdate, TradeBatchFrame, decode_frame
from schemas.market_data import Trade

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 3.0


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(frozen=True)
class TradeBatch:
    """Trade batch event after merging into the buffer"""
    trades: Tuple[Trade, ...]  # newly accepted trades, arrival order
    retained: Tuple[Trade, ...]  # full buffer after the merge


ChannelEvent = Union[OrderBookUpdate, TradeBatch]
Subscriber = Callable[[ChannelEvent], None]
StateListener = Callable[[ConnectionState], None]
Connector = Callable[[str], Awaitable[Any]]


class IngestionChannel:
    """
    Resilient websocket ingestion for the simulator feed.

    Example usage:
        channel = IngestionChannel("ws://localhost:3000/ws")
        channel.subscribe(aggregator_callback)

        async with channel:
            ...  # events are delivered while the block runs

    Args:
        address: Websocket URL of the feed
        connect: Coroutine factory returning a connection that supports
            async iteration over frames and `close()`. Defaults to
            `websockets.connect`.
        reconnect_delay: Fixed delay in seconds before each retry
        buffer_size: Maximum number of retained trades
    """

    def __init__(
        self,
        address: str,
        connect: Optional[Connector] = None,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        buffer_size: int = DEFAULT_CAPACITY,
    ):
        self.address = address
        self.reconnect_delay = reconnect_delay
        self.buffer = TradeBuffer(buffer_size)
        self.order_book: Optional[OrderBookUpdate] = None

        self._connect = connect or websockets.connect
        self._subscribers: List[Subscriber] = []
        self._state_listeners: List[StateListener] = []
        self._state = ConnectionState.DISCONNECTED
        self._conn: Optional[Any] = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._last_error: Optional[str] = None
        self._frames_dropped = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """Connectivity flag for observers"""
        return self._state is ConnectionState.CONNECTED

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def frames_dropped(self) -> int:
        return self._frames_dropped

    def subscribe(self, callback: Subscriber) -> None:
        """Register a callback for OrderBookUpdate and TradeBatch events"""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def on_state_change(self, listener: StateListener) -> None:
        """Register a callback for connection state transitions"""
        self._state_listeners.append(listener)

    async def open(self) -> "IngestionChannel":
        """Start the connection loop and return the channel as its handle"""
        if self._task is not None and not self._task.done():
            return self

        self._closing = False
        self.buffer.reset()
        self._task = asyncio.create_task(self._run(), name=f"ingestion:{self.address}")
        logger.info(f"Ingestion channel opened for {self.address}")
        return self

    async def close(self) -> None:
        """
        Stop the channel.

        Cancels a pending reconnect delay or in-flight connect attempt and
        releases the transport. Safe to call more than once.
        """
        self._closing = True

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._release()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info(f"Ingestion channel closed for {self.address}")

    async def __aenter__(self) -> "IngestionChannel":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _run(self) -> None:
        """Connect, stream and reconnect until closed"""
        while not self._closing:
            self._set_state(ConnectionState.CONNECTING)
            try:
                self._conn = await self._connect(self.address)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = f"connect failed: {e}"
                logger.warning(f"Failed to connect to {self.address}: {e}")
                await self._wait_before_retry()
                continue

            self._last_error = None
            self._set_state(ConnectionState.CONNECTED)
            logger.info(f"Connected to {self.address}")

            try:
                async for raw in self._conn:
                    self._handle_frame(raw)
                logger.warning(f"Connection to {self.address} closed by remote")
                self._last_error = "connection closed"
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._last_error = f"connection lost: {e}"
                logger.warning(f"Connection to {self.address} lost: {e}")
            finally:
                await self._release()

            if not self._closing:
                await self._wait_before_retry()

    async def _wait_before_retry(self) -> None:
        self._set_state(ConnectionState.RECONNECTING)
        logger.info(f"Reconnecting to {self.address} in {self.reconnect_delay}s")
        await asyncio.sleep(self.reconnect_delay)

    async def _release(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await conn.close()
        except Exception as e:
            logger.debug(f"Error while closing transport: {e}")

    def _handle_frame(self, raw: Union[str, bytes]) -> None:
        try:
            frame = decode_frame(raw)
        except FrameDecodeError as e:
            self._frames_dropped += 1
            logger.warning(f"Dropped frame: {e}")
            return

        if isinstance(frame, OrderBookUpdate):
            self.order_book = frame
            self._publish(frame)
        elif isinstance(frame, TradeBatchFrame):
            accepted = self.buffer.merge(frame.trades)
            self._publish(TradeBatch(trades=tuple(accepted), retained=self.buffer.snapshot()))

    def _publish(self, event: ChannelEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber {callback!r} failed on {type(event).__name__}")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(f"Channel state {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception(f"State listener {listener!r} failed")


@asynccontextmanager
async def open_channel(address: str, **kwargs) -> AsyncIterator[IngestionChannel]:
    """
    Scoped acquisition of an ingestion channel.

    The channel is closed on every exit path, including cancellation while
    a connect or reconnect delay is in flight.
    """
    channel = IngestionChannel(address, **kwargs)
    await channel.open()
    try:
        yield channel
    finally:
        await channel.close()
