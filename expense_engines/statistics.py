"""
Statistics Aggregator (``expense_engines.statistics``).

Responsibility
--------------
Pure aggregation of an expense collection into dashboard totals, plus the
directional percentage change between two snapshots.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O.

Invariants enforced
-------------------
* ``total_amount == pending_amount + approved_amount + rejected_amount``.
* ``count == len(expenses)``.
* No currency conversion.  Sums are nominal; when more than one currency is
  present the result is flagged ``is_mixed_currency`` so callers can warn
  instead of presenting the number as meaningful.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from expense_engines.tracer import traced_engine
from expense_kernel.domain.expense import Expense, ExpenseStatus

ZERO = Decimal("0")


@dataclass(frozen=True)
class ExpenseStatistics:
    """Totals for one scope."""

    total_amount: Decimal = ZERO
    pending_amount: Decimal = ZERO
    approved_amount: Decimal = ZERO
    rejected_amount: Decimal = ZERO
    count: int = 0
    currencies: tuple[str, ...] = ()

    @property
    def is_mixed_currency(self) -> bool:
        return len(self.currencies) > 1

    @property
    def currency(self) -> str | None:
        """The single currency of the scope, or None when empty or mixed."""
        if len(self.currencies) == 1:
            return self.currencies[0]
        return None


@dataclass(frozen=True)
class StatisticsDelta:
    """Percentage change per figure between two snapshots."""

    total_amount: int = 0
    pending_amount: int = 0
    approved_amount: int = 0
    rejected_amount: int = 0
    count: int = 0


EMPTY_STATISTICS = ExpenseStatistics()


@traced_engine("statistics", "1.0")
def aggregate(expenses: Iterable[Expense]) -> ExpenseStatistics:
    """Sum amounts per status over ``expenses``."""
    by_status = {status: ZERO for status in ExpenseStatus}
    currencies: set[str] = set()
    count = 0

    for expense in expenses:
        by_status[expense.status] += expense.amount
        currencies.add(expense.currency)
        count += 1

    return ExpenseStatistics(
        total_amount=sum(by_status.values(), ZERO),
        pending_amount=by_status[ExpenseStatus.PENDING],
        approved_amount=by_status[ExpenseStatus.APPROVED],
        rejected_amount=by_status[ExpenseStatus.REJECTED],
        count=count,
        currencies=tuple(sorted(currencies)),
    )


def percent_change(previous: Decimal | int, current: Decimal | int) -> int:
    """Directional change from ``previous`` to ``current`` as a whole percent.

    0 when both are zero, 100 when growing from zero, otherwise the exact
    change rounded half-up.
    """
    previous = Decimal(previous)
    current = Decimal(current)
    if previous == 0:
        if current == 0:
            return 0
        return 100 if current > 0 else -100
    change = (current - previous) / abs(previous) * 100
    return int(change.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compare(previous: ExpenseStatistics, current: ExpenseStatistics) -> StatisticsDelta:
    """Percentage change of every figure between two snapshots."""
    return StatisticsDelta(
        total_amount=percent_change(previous.total_amount, current.total_amount),
        pending_amount=percent_change(previous.pending_amount, current.pending_amount),
        approved_amount=percent_change(previous.approved_amount, current.approved_amount),
        rejected_amount=percent_change(previous.rejected_amount, current.rejected_amount),
        count=percent_change(previous.count, current.count),
    )
