"""
Listing filters (``expense_engines.listing``).

Search, filter and sort over already-fetched expense listings.  Sorting is
stable: rows with equal sort keys keep ascending id order in both
directions.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from expense_kernel.domain.expense import ExpenseListing, ExpenseStatus


class SortField(str, Enum):
    DATE = "date"
    AMOUNT = "amount"
    CATEGORY = "category"
    EMPLOYEE = "employee"
    CREATED = "created"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ExpenseQuery:
    """Client-side listing query.  ``None`` means "all"."""

    search: str | None = None
    category: str | None = None
    status: ExpenseStatus | None = None
    sort_by: SortField = SortField.DATE
    sort_order: SortOrder = SortOrder.DESC


_SORT_KEYS = {
    SortField.DATE: lambda row: row.expense.expense_date,
    SortField.AMOUNT: lambda row: row.expense.amount,
    SortField.CATEGORY: lambda row: row.expense.category.casefold(),
    SortField.EMPLOYEE: lambda row: row.employee_name.casefold(),
    SortField.CREATED: lambda row: row.expense.created_at,
}


def matches_search(row: ExpenseListing, term: str) -> bool:
    """Case-insensitive match on employee name, category, description, currency."""
    needle = term.casefold()
    haystacks = (
        row.employee_name,
        row.expense.category,
        row.expense.description or "",
        row.expense.currency,
    )
    return any(needle in value.casefold() for value in haystacks)


def filter_listings(
    listings: Sequence[ExpenseListing],
    query: ExpenseQuery,
) -> list[ExpenseListing]:
    result = list(listings)

    if query.search:
        result = [row for row in result if matches_search(row, query.search)]
    if query.category:
        result = [row for row in result if row.expense.category == query.category]
    if query.status is not None:
        result = [row for row in result if row.expense.status == query.status]

    key = _SORT_KEYS[query.sort_by]
    # Stable sorts: ascending id first, then the requested key.  A reversed
    # stable sort in Python keeps the id order of equal keys.
    result.sort(key=lambda row: str(row.expense.id))
    result.sort(key=key, reverse=query.sort_order == SortOrder.DESC)
    return result
