"""
Expense domain types (``expense_kernel.domain.expense``).

The nouns of expense claims: the expense record, submission input, list
rows and detail views, and the submission rules a company validates against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from expense_kernel.domain.approval import Approval


class ExpenseStatus(str, Enum):
    """Derived expense status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_EXPENSE_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
})

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Travel",
    "Meals",
    "Accommodation",
    "Office Supplies",
    "Software",
    "Training",
    "Other",
)

DEFAULT_CURRENCIES: tuple[str, ...] = ("USD", "EUR", "GBP", "JPY", "AUD", "CAD")


@dataclass(frozen=True)
class SubmissionRules:
    """Allowed values checked when an expense is submitted."""

    categories: tuple[str, ...] = DEFAULT_CATEGORIES
    currencies: tuple[str, ...] = DEFAULT_CURRENCIES
    max_description_length: int = 2000


@dataclass(frozen=True)
class ExpenseSubmission:
    """Raw submission input, validated before anything is persisted."""

    employee_id: UUID
    company_id: UUID
    amount: Decimal | str | int
    currency: str
    category: str
    expense_date: date | str
    description: str | None = None


@dataclass(frozen=True)
class Expense:
    """An expense claim."""

    id: UUID
    company_id: UUID
    employee_id: UUID
    amount: Decimal
    currency: str
    category: str
    expense_date: date
    status: ExpenseStatus = ExpenseStatus.PENDING
    description: str | None = None
    receipt_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXPENSE_STATUSES


@dataclass(frozen=True)
class ExpenseListing:
    """A list row: the expense plus the submitter's display name."""

    expense: Expense
    employee_name: str


@dataclass(frozen=True)
class ExpenseDetail:
    """An expense with its full approval history, in sequence order."""

    expense: Expense
    employee_name: str
    approvals: tuple[Approval, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ApprovalQueueItem:
    """A pending approval on an approver's queue."""

    approval: Approval
    expense: Expense
    employee_name: str
    actionable: bool


@dataclass(frozen=True)
class DecisionOutcome:
    """Per-item result of a bulk decision."""

    approval_id: UUID
    success: bool
    expense_status: ExpenseStatus | None = None
    error_code: str | None = None
    message: str = ""
