"""
Position reconciliation: grouping, selection windows and OPEN/CLOSE pairing.
"""
from schemas.records import Carry, PositionAction

from dataflow.reconciliation.reconciler import (
    PositionReconciler,
    ReconciliationWindow,
    position_group,
    window_for_pair,
    window_for_selection,
)
from tests.conftest import make_position, make_trade_record, ts

OPEN = PositionAction.OPEN
CLOSE = PositionAction.CLOSE


def ids(records):
    return [r.id for r in records]


def test_window_contains_is_half_open():
    window = ReconciliationWindow(start=ts(0), end=ts(10))
    assert window.contains(ts(0))
    assert window.contains(ts(9.999))
    assert not window.contains(ts(10))
    assert not window.contains(ts(-1))

    unbounded = ReconciliationWindow(start=None, end=ts(10))
    assert unbounded.contains(ts(-1_000_000))


def test_open_close_scenario():
    positions = [make_position(1, 0, OPEN), make_position(2, 100, CLOSE)]
    trades = [make_trade_record(10, 10), make_trade_record(50, 50), make_trade_record(150, 150)]

    assert ids(window_for_selection(2, positions, trades)) == [10, 50]

    for clicked in (1, 2):
        pair = window_for_pair(clicked, positions, trades)
        assert pair.open.id == 1
        assert pair.close.id == 2
        assert ids(pair.trades) == [10, 50]


def test_first_event_window_is_unbounded_below():
    positions = [make_position(1, 100, OPEN)]
    trades = [make_trade_record(1, -500), make_trade_record(2, 99), make_trade_record(3, 100)]

    assert ids(window_for_selection(1, positions, trades)) == [1, 2]


def test_window_starts_at_previous_event_inclusive():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 100, CLOSE),
        make_position(3, 200, OPEN),
    ]
    trades = [make_trade_record(i, s) for i, s in enumerate([0, 99, 100, 150, 200, 250])]

    assert ids(window_for_selection(3, positions, trades)) == [2, 3]
    assert ids(window_for_selection(1, positions, trades)) == []


def test_groups_are_isolated_by_composite_key():
    positions = [
        make_position(1, 0, OPEN, bot_name="intra_basis"),
        make_position(2, 50, OPEN, bot_name="cross_basis"),
        make_position(3, 60, OPEN, symbol="ETH"),
        make_position(4, 70, OPEN, carry=Carry.REVERSE),
        make_position(5, 100, CLOSE),
    ]
    trades = [make_trade_record(i, s) for i, s in enumerate([-10, 10, 55, 65, 90])]

    # previous event of id 5's group is id 1 at t=0, not the other groups
    assert ids(window_for_selection(5, positions, trades)) == [1, 2, 3, 4]
    assert ids(position_group(positions[4], positions)) == [1, 5]


def test_unsorted_input_is_grouped_in_time_order():
    positions = [
        make_position(3, 200, CLOSE),
        make_position(1, 0, OPEN),
        make_position(2, 100, OPEN),
    ]
    trades = [make_trade_record(i, s) for i, s in enumerate([50, 150, 250])]

    assert ids(position_group(positions[0], positions)) == [1, 2, 3]
    assert ids(window_for_selection(3, positions, trades)) == [1]


def test_equal_timestamps_keep_input_order():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 100, CLOSE),
        make_position(3, 100, OPEN),
    ]
    trades = [make_trade_record(1, 50)]

    assert ids(position_group(positions[0], positions)) == [1, 2, 3]
    # id 3 follows id 2 at the same instant: empty window
    assert window_for_selection(3, positions, trades) == []


def test_unknown_position_yields_empty_results():
    positions = [make_position(1, 0, OPEN)]
    trades = [make_trade_record(1, -5)]

    assert window_for_selection(99, positions, trades) == []
    assert window_for_pair(99, positions, trades) is None


def test_pair_is_union_of_both_windows():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 100, OPEN),
        make_position(3, 200, CLOSE),
    ]
    trades = [make_trade_record(i, s) for i, s in enumerate([-5, 50, 150])]

    pair = window_for_pair(1, positions, trades)

    assert (pair.open.id, pair.close.id) == (1, 3)
    # t=50 belongs to the intervening OPEN (id 2), so it is left out
    assert ids(pair.trades) == [0, 2]
    expected = window_for_selection(1, positions, trades) + window_for_selection(3, positions, trades)
    assert sorted(ids(pair.trades)) == sorted(ids(expected))


def test_close_pairs_with_nearest_preceding_open():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 10, OPEN),
        make_position(3, 20, CLOSE),
    ]
    pair = window_for_pair(3, positions, [])
    assert pair.open.id == 2


def test_open_pairs_with_nearest_following_close():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 10, CLOSE),
        make_position(3, 20, CLOSE),
    ]
    pair = window_for_pair(1, positions, [])
    assert pair.close.id == 2


def test_no_partner_yields_no_pair():
    positions = [
        make_position(1, 0, CLOSE),
        make_position(2, 10, OPEN),
        make_position(3, 20, OPEN, symbol="ETH"),
    ]
    assert window_for_pair(1, positions, []) is None
    assert window_for_pair(2, positions, []) is None
    assert window_for_pair(3, positions, []) is None


def test_inputs_are_not_mutated():
    positions = [make_position(2, 100, CLOSE), make_position(1, 0, OPEN)]
    trades = [make_trade_record(2, 50), make_trade_record(1, 10)]
    positions_before, trades_before = list(positions), list(trades)

    window_for_selection(2, positions, trades)
    window_for_pair(1, positions, trades)
    PositionReconciler(positions, trades).window_for_pair(2)

    assert positions == positions_before
    assert trades == trades_before


def test_result_preserves_trade_input_order():
    positions = [make_position(1, 100, CLOSE)]
    trades = [make_trade_record(3, 30), make_trade_record(1, 10), make_trade_record(2, 20)]

    assert ids(window_for_selection(1, positions, trades)) == [3, 1, 2]


def test_indexed_reconciler_matches_functions():
    positions = [
        make_position(1, 0, OPEN),
        make_position(2, 40, OPEN, bot_name="cross_basis"),
        make_position(3, 100, CLOSE),
        make_position(4, 120, OPEN),
        make_position(5, 180, CLOSE, bot_name="cross_basis"),
        make_position(6, 200, CLOSE),
    ]
    trades = [make_trade_record(i, s) for i, s in enumerate(range(-20, 220, 15))]
    reconciler = PositionReconciler(positions, trades)

    for p in positions:
        assert ids(reconciler.window_for_selection(p.id)) == ids(window_for_selection(p.id, positions, trades))
        expected = window_for_pair(p.id, positions, trades)
        actual = reconciler.window_for_pair(p.id)
        if expected is None:
            assert actual is None
        else:
            assert (actual.open.id, actual.close.id) == (expected.open.id, expected.close.id)
            assert ids(actual.trades) == ids(expected.trades)

    assert reconciler.window(1) == ReconciliationWindow(start=None, end=ts(0))
    assert reconciler.window(3) == ReconciliationWindow(start=ts(0), end=ts(100))
    assert reconciler.window(42) is None
    assert ids(reconciler.group_of(5)) == [2, 5]
