"""
Records REST Client

Async aiohttp client for the read endpoints the monitor consumes:

- GET  /api/trade-records     - trade records written by the bots
- GET  /api/position-records  - position lifecycle records
- GET  /api/orderbook         - simulator order book snapshot
- POST /api/order             - single-shot order submission (pass-through)
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, TypeVar

import aiohttp

from schemas.market_data import OrderBookSnapshot
from schemas.orders import OrderRequest, OrderResponse
from schemas.records import PositionRecord, TradeRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataFetchError(Exception):
    """REST error status, transport failure or undecodable body"""

    def __init__(self, url: str, message: str, status: Optional[int] = None):
        self.url = url
        self.status = status
        self.message = message
        detail = f"{status} " if status is not None else ""
        super().__init__(f"{detail}{url}: {message}")


class RecordsClient:
    """
    Client for the records API.

    Args:
        base_url: Server root, e.g. "http://localhost:8080"
        session: Optional shared aiohttp session; created on demand otherwise
        timeout: Total request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RecordsClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request(self, method: str, path: str, json_body: Any = None) -> Any:
        url = self._url(path)
        session = await self._get_session()
        try:
            async with session.request(method, url, json=json_body) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise DataFetchError(url, text or resp.reason or "request failed", resp.status)
                return await resp.json(content_type=None)
        except DataFetchError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"{method} {url} timed out after {self._timeout.total}s")
            raise DataFetchError(url, f"timed out after {self._timeout.total}s") from e
        except aiohttp.ClientError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise DataFetchError(url, str(e)) from e
        except ValueError as e:
            raise DataFetchError(url, f"invalid JSON body: {e}") from e

    async def _get_list(self, path: str, parse: Callable[[dict], T]) -> List[T]:
        data = await self._request("GET", path)
        if not isinstance(data, list):
            raise DataFetchError(self._url(path), f"expected JSON array, got {type(data).__name__}")
        try:
            return [parse(item) for item in data]
        except (ValueError, TypeError) as e:
            raise DataFetchError(self._url(path), f"malformed record: {e}") from e

    async def fetch_trade_records(self) -> List[TradeRecord]:
        return await self._get_list("/api/trade-records", TradeRecord.from_dict)

    async def fetch_position_records(self) -> List[PositionRecord]:
        return await self._get_list("/api/position-records", PositionRecord.from_dict)

    async def fetch_order_book(self) -> OrderBookSnapshot:
        url = self._url("/api/orderbook")
        data = await self._request("GET", "/api/orderbook")
        try:
            return OrderBookSnapshot.from_dict(data)
        except (ValueError, TypeError) as e:
            raise DataFetchError(url, f"malformed order book: {e}") from e

    async def submit_order(self, order: OrderRequest) -> OrderResponse:
        """
        Submit an order and return the simulator's response unchanged.

        Raises:
            DataFetchError: On error status or an unexpected response body
        """
        url = self._url("/api/order")
        data = await self._request("POST", "/api/order", order.model_dump(mode="json", exclude_none=True))
        try:
            response = OrderResponse.model_validate(data)
        except ValueError as e:
            raise DataFetchError(url, f"malformed order response: {e}") from e
        logger.info(f"Order {response.id} {response.status.value} ({len(response.trades)} trades)")
        return response
