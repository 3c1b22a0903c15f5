"""
Position Reconciliation

Time-window attribution of trade records to position lifecycle events.
"""

from dataflow.reconciliation.reconciler import (
    PositionPair,
    PositionReconciler,
    ReconciliationWindow,
    position_group,
    window_for_pair,
    window_for_selection,
)

__all__ = [
    "PositionPair",
    "PositionReconciler",
    "ReconciliationWindow",
    "position_group",
    "window_for_pair",
    "window_for_selection",
]
