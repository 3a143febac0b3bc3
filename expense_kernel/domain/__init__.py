"""
Pure domain layer.

Frozen value objects and enums with NO dependencies on the ORM, the
database, or I/O.  The clock lives here as an injectable interface; nothing
in this package reads the wall clock on its own.
"""

from expense_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    Approval,
    ApprovalDecision,
    ApprovalRule,
    ApprovalStatus,
    DecisionCheck,
    PlannedApproval,
    RuleType,
    TierMode,
    WorkflowLimits,
)
from expense_kernel.domain.clock import Clock, DeterministicClock, SystemClock, as_utc
from expense_kernel.domain.expense import (
    DEFAULT_CATEGORIES,
    DEFAULT_CURRENCIES,
    TERMINAL_EXPENSE_STATUSES,
    ApprovalQueueItem,
    DecisionOutcome,
    Expense,
    ExpenseDetail,
    ExpenseListing,
    ExpenseStatus,
    ExpenseSubmission,
    SubmissionRules,
)
from expense_kernel.domain.org import (
    ROLE_CAPABILITIES,
    Actor,
    Capability,
    Company,
    Profile,
    Role,
    capabilities_for,
)

__all__ = [
    # Approval
    "APPROVAL_TRANSITIONS",
    "TERMINAL_APPROVAL_STATUSES",
    "Approval",
    "ApprovalDecision",
    "ApprovalRule",
    "ApprovalStatus",
    "DecisionCheck",
    "PlannedApproval",
    "RuleType",
    "TierMode",
    "WorkflowLimits",
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "as_utc",
    # Expense
    "DEFAULT_CATEGORIES",
    "DEFAULT_CURRENCIES",
    "TERMINAL_EXPENSE_STATUSES",
    "ApprovalQueueItem",
    "DecisionOutcome",
    "Expense",
    "ExpenseDetail",
    "ExpenseListing",
    "ExpenseStatus",
    "ExpenseSubmission",
    "SubmissionRules",
    # Organization
    "ROLE_CAPABILITIES",
    "Actor",
    "Capability",
    "Company",
    "Profile",
    "Role",
    "capabilities_for",
]
