"""
Module: expense_engines
Responsibility:
    Re-exports the pure calculation engines used by the service layer:
    approval workflow, statistics aggregation, access policy, submission
    validation and listing filters.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import expense_kernel.domain and expense_kernel.exceptions.
    MUST NOT import expense_services or expense_config.

Invariants enforced:
    - Purity: engines never read the clock.  ``today`` and timestamps are
      passed in by services.
    - Decimal-only arithmetic for amounts.
"""

from expense_engines.access import (
    can_decide,
    can_manage_rules,
    can_manage_users,
    can_override,
    can_submit_expense,
    can_view_expense,
    has_capability,
)
from expense_engines.listing import ExpenseQuery, SortField, SortOrder, filter_listings
from expense_engines.statistics import (
    ExpenseStatistics,
    StatisticsDelta,
    aggregate,
    compare,
    percent_change,
)
from expense_engines.validation import ValidatedSubmission, validate_submission
from expense_engines.workflow import (
    check_decision,
    derive_expense_status,
    moot_siblings,
    plan_approvals,
    resolve_manager,
    tier_mode,
    tier_satisfied,
)

__all__ = [
    # Access policy
    "has_capability",
    "can_submit_expense",
    "can_view_expense",
    "can_decide",
    "can_manage_users",
    "can_manage_rules",
    "can_override",
    # Listing
    "ExpenseQuery",
    "SortField",
    "SortOrder",
    "filter_listings",
    # Statistics
    "ExpenseStatistics",
    "StatisticsDelta",
    "aggregate",
    "compare",
    "percent_change",
    # Validation
    "ValidatedSubmission",
    "validate_submission",
    # Workflow
    "check_decision",
    "derive_expense_status",
    "moot_siblings",
    "plan_approvals",
    "resolve_manager",
    "tier_mode",
    "tier_satisfied",
]
