"""
Approval domain types (``expense_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the approval workflow: per-approval lifecycle state
machine, company rule templates, materialized approval instances, and the
results of planning and decision checks.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``APPROVAL_TRANSITIONS`` defines the only valid status transitions.
  Terminal states have no outgoing edges.
* Approvals are processed in ascending ``sequence_order``; rows sharing an
  order form a parallel tier.
* A tier is first-response-wins only when every row in it was materialized
  from an ``any_one`` rule; otherwise every member must approve.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Approval Status Lifecycle
# =========================================================================


class ApprovalStatus(str, Enum):
    """Per-approval lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"  # moot: closed without being actioned


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
        ApprovalStatus.SKIPPED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
    ApprovalStatus.SKIPPED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
    ApprovalStatus.SKIPPED,
})


class ApprovalDecision(str, Enum):
    """Decisions an approver (or an overriding admin) can make."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def status(self) -> ApprovalStatus:
        return ApprovalStatus(self.value)


# =========================================================================
# Rules
# =========================================================================


class RuleType(str, Enum):
    """How a company rule materializes into approval rows."""

    SEQUENTIAL = "sequential"  # always applies
    THRESHOLD = "threshold"  # applies when amount > threshold
    ANY_ONE = "any_one"  # parallel tier member, first response wins
    OVERRIDE = "override"  # admin override record, never a template


class TierMode(str, Enum):
    """Completion semantics for approvals sharing a sequence_order."""

    UNANIMOUS = "unanimous"
    FIRST_RESPONSE = "first_response"


@dataclass(frozen=True)
class ApprovalRule:
    """Company-scoped template used to materialize approvals for a new expense.

    ``required_approver_id`` pins the approver; when unset the approver is
    resolved from the submitter's reporting chain.
    """

    id: UUID
    company_id: UUID
    rule_type: RuleType
    sequence_order: int
    threshold: Decimal | None = None
    required_approver_id: UUID | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Approval:
    """A materialized approval step for one expense."""

    id: UUID
    expense_id: UUID
    approver_id: UUID
    sequence_order: int
    status: ApprovalStatus = ApprovalStatus.PENDING
    rule_type: RuleType = RuleType.SEQUENTIAL
    comment: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING


# =========================================================================
# Planning and decision results
# =========================================================================


@dataclass(frozen=True)
class PlannedApproval:
    """An approval row the engine wants created for a new expense."""

    approver_id: UUID
    sequence_order: int
    rule_type: RuleType
    rule_id: UUID | None = None


@dataclass(frozen=True)
class WorkflowLimits:
    """Bounds for reporting-chain resolution."""

    max_chain_depth: int = 32


@dataclass(frozen=True)
class DecisionCheck:
    """Outcome of checking whether an approval can be actioned now."""

    allowed: bool
    reason: str = ""
    blocking_order: int | None = None
