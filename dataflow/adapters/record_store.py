"""
Record Store

Holds the latest snapshots of trade and position records for the session
and refreshes them on an interval. Snapshots are replaced as a pair, never
edited in place, so a reconciler built from them always sees a consistent
view.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from dataflow.adapters.records_client import DataFetchError, RecordsClient
from dataflow.reconciliation.reconciler import PositionReconciler
from schemas.records import PositionRecord, TradeRecord

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Data-loading collaborator for reconciliation.

    A failed refresh keeps the previous snapshots and records the error;
    it is not retried until the next poll or an explicit `refresh()`.
    """

    def __init__(self, client: RecordsClient):
        self.client = client
        self.trades: Tuple[TradeRecord, ...] = ()
        self.positions: Tuple[PositionRecord, ...] = ()
        self.error: Optional[str] = None
        self.loaded_at: Optional[datetime] = None

        self._reconciler: Optional[PositionReconciler] = None
        self._poll_task: Optional[asyncio.Task] = None

    @property
    def loaded(self) -> bool:
        return self.loaded_at is not None

    async def refresh(self) -> bool:
        """
        Load both record sets concurrently.

        Returns:
            True on success, False if either request failed
        """
        results = await asyncio.gather(
            self.client.fetch_trade_records(),
            self.client.fetch_position_records(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, DataFetchError):
                self.error = str(result)
                logger.error(f"Failed to load records: {result}")
                return False
            if isinstance(result, BaseException):
                raise result

        trades, positions = results

        self.trades = tuple(trades)
        self.positions = tuple(positions)
        self.error = None
        self.loaded_at = datetime.now(timezone.utc)
        self._reconciler = None
        logger.info(f"Loaded {len(self.trades)} trade records, {len(self.positions)} position records")
        return True

    def reconciler(self) -> PositionReconciler:
        """Reconciler over the current snapshots (rebuilt after each refresh)"""
        if self._reconciler is None:
            self._reconciler = PositionReconciler(self.positions, self.trades)
        return self._reconciler

    async def run_polling(self, interval: float) -> None:
        """Refresh every `interval` seconds until cancelled"""
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error = f"{type(e).__name__}: {e}"
                logger.exception(f"Record refresh failed unexpectedly: {e}")
            await asyncio.sleep(interval)

    def start_polling(self, interval: float) -> asyncio.Task:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self.run_polling(interval))
            logger.info(f"Polling records every {interval}s")
        return self._poll_task

    async def stop(self) -> None:
        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
