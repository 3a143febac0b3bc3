"""
expense_services.dashboard -- Statistics snapshots per scope.

``StatisticsTracker`` keeps the last snapshot of every scope it has
computed so each recompute can report the previous figures and the
percentage change next to the new ones.  The first recompute of a scope
compares against an empty snapshot.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterable
from dataclasses import dataclass

from expense_engines.statistics import (
    EMPTY_STATISTICS,
    ExpenseStatistics,
    StatisticsDelta,
    aggregate,
    compare,
)
from expense_kernel.domain.expense import Expense
from expense_kernel.logging_config import get_logger

logger = get_logger("services.dashboard")


@dataclass(frozen=True)
class StatisticsUpdate:
    previous: ExpenseStatistics
    current: ExpenseStatistics
    deltas: StatisticsDelta


class StatisticsTracker:
    """Previous/current statistics per scope key."""

    def __init__(self) -> None:
        self._snapshots: dict[Hashable, ExpenseStatistics] = {}
        self._lock = threading.Lock()

    def update(self, scope: Hashable, expenses: Iterable[Expense]) -> StatisticsUpdate:
        current = aggregate(expenses)
        with self._lock:
            previous = self._snapshots.get(scope, EMPTY_STATISTICS)
            self._snapshots[scope] = current

        if current.is_mixed_currency:
            logger.warning(
                "statistics_mixed_currency",
                extra={
                    "scope": str(scope),
                    "currencies": list(current.currencies),
                    "total_amount": current.total_amount,
                },
            )

        return StatisticsUpdate(
            previous=previous,
            current=current,
            deltas=compare(previous, current),
        )

    def snapshot(self, scope: Hashable) -> ExpenseStatistics | None:
        with self._lock:
            return self._snapshots.get(scope)

    def forget(self, scope: Hashable) -> None:
        with self._lock:
            self._snapshots.pop(scope, None)
