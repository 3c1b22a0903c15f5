"""
Position Reconciler

Attributes trade records to the position lifecycle events that produced
them.

Events are grouped by (bot_name, symbol, carry) and ordered by executed_at.
The window of an event runs from the previous event of its group (inclusive)
up to the event itself (exclusive); the first event of a group has no lower
bound. A pair (OPEN with its nearest following CLOSE) is attributed the union
of the two events' windows, not the whole OPEN..CLOSE span, so trades
belonging to intervening events of the same group are left out.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from schemas.records import Carry, PositionAction, PositionRecord, TradeRecord

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, str, Carry]


@dataclass(frozen=True)
class ReconciliationWindow:
    """Half-open interval [start, end); start None means unbounded below"""
    start: Optional[datetime]
    end: datetime

    def contains(self, instant: datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        return instant < self.end


@dataclass(frozen=True)
class PositionPair:
    """Matched OPEN/CLOSE events with their attributed trades"""
    open: PositionRecord
    close: PositionRecord
    trades: List[TradeRecord]


def group_key(position: PositionRecord) -> GroupKey:
    return (position.bot_name, position.symbol, position.carry)


def position_group(selected: PositionRecord, positions: Sequence[PositionRecord]) -> List[PositionRecord]:
    """All events sharing the selected event's key, by executed_at (stable)"""
    key = group_key(selected)
    return sorted((p for p in positions if group_key(p) == key), key=lambda p: p.executed_at)


def _find(positions: Sequence[PositionRecord], position_id: int) -> Optional[PositionRecord]:
    for p in positions:
        if p.id == position_id:
            return p
    return None


def _index_of(group: Sequence[PositionRecord], position_id: int) -> int:
    for i, p in enumerate(group):
        if p.id == position_id:
            return i
    return -1


def window_at(group: Sequence[PositionRecord], index: int) -> ReconciliationWindow:
    """Window of group[index], bounded below by its predecessor"""
    start = group[index - 1].executed_at if index > 0 else None
    return ReconciliationWindow(start=start, end=group[index].executed_at)


def trades_in(windows: Sequence[ReconciliationWindow], trades: Sequence[TradeRecord]) -> List[TradeRecord]:
    """Trades inside any of the windows, in input order"""
    return [t for t in trades if any(w.contains(t.executed_at) for w in windows)]


def find_partner(group: Sequence[PositionRecord], index: int) -> Optional[int]:
    """
    Index of the pairing partner of group[index].

    A CLOSE pairs with the nearest preceding OPEN, an OPEN with the nearest
    following CLOSE.
    """
    action = group[index].action
    if action is PositionAction.CLOSE:
        for i in range(index - 1, -1, -1):
            if group[i].action is PositionAction.OPEN:
                return i
    elif action is PositionAction.OPEN:
        for i in range(index + 1, len(group)):
            if group[i].action is PositionAction.CLOSE:
                return i
    return None


def window_for_selection(
    position_id: int,
    positions: Sequence[PositionRecord],
    trades: Sequence[TradeRecord],
) -> List[TradeRecord]:
    """
    Trades attributed to one position event.

    Args:
        position_id: Id of the selected event
        positions: All position events (any order)
        trades: All trade records (any order)

    Returns:
        Trades with start <= executed_at < end, empty if the id is unknown
    """
    selected = _find(positions, position_id)
    if selected is None:
        return []

    group = position_group(selected, positions)
    index = _index_of(group, position_id)
    if index < 0:
        return []

    return trades_in([window_at(group, index)], trades)


def window_for_pair(
    position_id: int,
    positions: Sequence[PositionRecord],
    trades: Sequence[TradeRecord],
) -> Optional[PositionPair]:
    """
    Pair a clicked event with its partner and attribute trades to the pair.

    Returns:
        PositionPair with the union of both events' windows, or None when the
        event is unknown or has no partner
    """
    clicked = _find(positions, position_id)
    if clicked is None:
        return None

    group = position_group(clicked, positions)
    return _pair_in_group(group, _index_of(group, position_id), trades)


def _pair_in_group(
    group: Sequence[PositionRecord],
    index: int,
    trades: Sequence[TradeRecord],
) -> Optional[PositionPair]:
    if index < 0:
        return None

    partner = find_partner(group, index)
    if partner is None:
        return None

    open_index, close_index = sorted((index, partner))
    windows = [window_at(group, open_index), window_at(group, close_index)]
    return PositionPair(
        open=group[open_index],
        close=group[close_index],
        trades=trades_in(windows, trades),
    )


class PositionReconciler:
    """
    Reconciliation over one snapshot of position and trade records.

    Groups are indexed once per snapshot; the records themselves are never
    modified. Results match `window_for_selection` / `window_for_pair`.

    Example usage:
        reconciler = PositionReconciler(store.positions, store.trades)
        trades = reconciler.window_for_selection(42)
        pair = reconciler.window_for_pair(42)
    """

    def __init__(self, positions: Sequence[PositionRecord], trades: Sequence[TradeRecord]):
        self.positions = positions
        self.trades = trades

        groups: Dict[GroupKey, List[PositionRecord]] = defaultdict(list)
        for p in positions:
            groups[group_key(p)].append(p)
        self._groups = {k: sorted(v, key=lambda p: p.executed_at) for k, v in groups.items()}

        self._by_id: Dict[int, PositionRecord] = {}
        for p in positions:
            self._by_id.setdefault(p.id, p)

        logger.debug(f"Indexed {len(positions)} positions into {len(self._groups)} groups")

    def _locate(self, position_id: int) -> Tuple[List[PositionRecord], int]:
        selected = self._by_id.get(position_id)
        if selected is None:
            return [], -1
        group = self._groups[group_key(selected)]
        return group, _index_of(group, position_id)

    def group_of(self, position_id: int) -> List[PositionRecord]:
        return list(self._locate(position_id)[0])

    def window(self, position_id: int) -> Optional[ReconciliationWindow]:
        group, index = self._locate(position_id)
        if index < 0:
            return None
        return window_at(group, index)

    def window_for_selection(self, position_id: int) -> List[TradeRecord]:
        window = self.window(position_id)
        if window is None:
            return []
        return trades_in([window], self.trades)

    def window_for_pair(self, position_id: int) -> Optional[PositionPair]:
        group, index = self._locate(position_id)
        return _pair_in_group(group, index, self.trades)
