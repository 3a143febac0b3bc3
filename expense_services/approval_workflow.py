"""
expense_services.approval_workflow -- Approval workflow coordination.

Responsibility:
    Thin coordinator between the pure workflow engine and the kernel
    services.  Rule matching, tier semantics and status derivation are
    delegated to ``expense_engines.workflow``; authorization to
    ``expense_engines.access``; persistence to ``ApprovalService`` and
    ``ExpenseService``.

Architecture position:
    Services layer.  Flush-only: ``ExpenseManager`` owns commit/rollback,
    so materialization and each decision land atomically with the expense
    write that goes with them.

Invariants enforced:
    - After every decision or override the expense row carries the status
      derived from its approval set.
    - Decisions on terminal expenses are refused before any row changes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from expense_engines.access import can_decide, can_manage_rules, can_override
from expense_engines.listing import matches_search
from expense_engines.workflow import (
    check_decision,
    derive_expense_status,
    moot_siblings,
    plan_approvals,
    select_actionable,
)
from expense_kernel.domain.approval import (
    Approval,
    ApprovalDecision,
    ApprovalRule,
    ApprovalStatus,
    RuleType,
    WorkflowLimits,
)
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.expense import ApprovalQueueItem, Expense
from expense_kernel.domain.org import Actor, Profile
from expense_kernel.exceptions import (
    ExpenseNotFoundError,
    ForbiddenError,
    InvalidStateError,
    ValidationError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.profile_selector import ProfileSelector
from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.expense_service import ExpenseService
from expense_services.user_admin import load_actor

logger = get_logger("services.approval_workflow")


@dataclass(frozen=True)
class DecisionResult:
    approval: Approval
    expense: Expense
    skipped: tuple[UUID, ...] = ()


class ApprovalWorkflowService:
    """Coordinates approval materialization, decisions and overrides."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        limits: WorkflowLimits | None = None,
    ):
        self._clock = clock or SystemClock()
        self._limits = limits or WorkflowLimits()
        self._approvals = ApprovalService(session, self._clock)
        self._expenses = ExpenseService(session, self._clock)
        self._expense_selector = ExpenseSelector(session)
        self._profile_selector = ProfileSelector(session)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def materialize(self, expense: Expense, submitter: Profile) -> list[Approval]:
        """Create the approval rows a freshly inserted expense needs."""
        rules = self._expense_selector.list_rules(expense.company_id)
        planned = plan_approvals(
            rules=rules,
            amount=expense.amount,
            submitter=submitter,
            lookup_profile=self._profile_selector.get_profile,
            limits=self._limits,
        )
        return self._approvals.create_approvals(expense.id, planned)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        expense_id: UUID,
        actor_id: UUID,
        decision: ApprovalDecision,
        comment: str | None = None,
        expected_updated_at: datetime | None = None,
        approval_id: UUID | None = None,
    ) -> DecisionResult:
        """Apply one approver decision and re-derive the expense status.

        ``approval_id`` pins the row when the actor holds several on the
        same expense; otherwise their lowest-order pending row is used.
        """
        decision = ApprovalDecision(decision)
        expense = self._load_expense(expense_id)
        action = f"{decision.value} expense"

        if expense.is_terminal:
            raise InvalidStateError(
                "Expense", str(expense_id), expense.status.value,
                f"expense is already {expense.status.value}",
            )

        actor = self._actor_or_none(actor_id)
        approvals = self._expense_selector.approvals_for_expense(expense_id)
        mine = [a for a in approvals if a.approver_id == actor_id]
        if approval_id is not None:
            mine = [a for a in mine if a.id == approval_id]

        if actor is None or actor.company_id != expense.company_id or not mine:
            raise ForbiddenError(str(actor_id), action, "not an approver of this expense")

        target = select_actionable(actor_id, mine)
        if target is None:
            decided = mine[-1]
            raise InvalidStateError(
                "Approval", str(decided.id), decided.status.value,
                "approval has already been decided",
            )

        if not can_decide(actor, target, approvals):
            check = check_decision(target, approvals)
            raise ForbiddenError(str(actor_id), action, check.reason or "approver is inactive")

        with LogContext.bind(actor_id=str(actor_id), expense_id=str(expense_id)):
            decided = self._approvals.record_decision(
                target.id,
                decision.status,
                comment=comment,
                expected_updated_at=expected_updated_at,
            )
            current = [decided if a.id == decided.id else a for a in approvals]

            moot = moot_siblings(decided, current)
            if moot:
                reason = "rejected" if decided.status == ApprovalStatus.REJECTED else "tier_answered"
                self._approvals.skip(moot, reason)
                current = [
                    replace(a, status=ApprovalStatus.SKIPPED) if a.id in moot else a
                    for a in current
                ]

            expense = self._expenses.set_status(expense_id, derive_expense_status(current))

            logger.info(
                "expense_decision_applied",
                extra={
                    "approval_id": str(decided.id),
                    "decision": decision.value,
                    "expense_status": expense.status.value,
                    "skipped_count": len(moot),
                },
            )

        return DecisionResult(approval=decided, expense=expense, skipped=moot)

    def override(
        self,
        expense_id: UUID,
        admin_id: UUID,
        decision: ApprovalDecision,
        comment: str | None = None,
    ) -> DecisionResult:
        """Admin resolves an expense, closing every open approval."""
        decision = ApprovalDecision(decision)
        expense = self._load_expense(expense_id)
        admin = self._actor_or_none(admin_id)
        if admin is None or not can_override(admin, expense):
            raise ForbiddenError(str(admin_id), "override expense", "admin role required")
        if expense.is_terminal:
            raise InvalidStateError(
                "Expense", str(expense_id), expense.status.value,
                f"expense is already {expense.status.value}",
            )

        with LogContext.bind(actor_id=str(admin_id), expense_id=str(expense_id)):
            approvals = self._expense_selector.approvals_for_expense(expense_id)
            skipped = self._approvals.skip(
                (a.id for a in approvals if a.is_pending), "override",
            )
            override_row = self._approvals.record_override(
                expense_id, admin_id, decision.status, comment,
            )
            current = self._expense_selector.approvals_for_expense(expense_id)
            expense = self._expenses.set_status(expense_id, derive_expense_status(current))

            logger.info(
                "expense_overridden",
                extra={
                    "decision": decision.value,
                    "expense_status": expense.status.value,
                    "skipped_count": len(skipped),
                },
            )

        return DecisionResult(
            approval=override_row,
            expense=expense,
            skipped=tuple(a.id for a in skipped),
        )

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    def approval_queue(
        self,
        approver_id: UUID,
        search: str | None = None,
        category: str | None = None,
    ) -> list[ApprovalQueueItem]:
        pending = self._expense_selector.pending_for_approver(approver_id)
        if search:
            pending = [row for row in pending if matches_search(row[1], search)]
        if category:
            pending = [row for row in pending if row[1].expense.category == category]
        siblings = self._expense_selector.approvals_for_expenses(
            {listing.expense.id for _, listing in pending}
        )
        return [
            ApprovalQueueItem(
                approval=approval,
                expense=listing.expense,
                employee_name=listing.employee_name,
                actionable=(
                    not listing.expense.is_terminal
                    and check_decision(approval, siblings[listing.expense.id]).allowed
                ),
            )
            for approval, listing in pending
        ]

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def define_rule(
        self,
        admin_id: UUID,
        rule_type: RuleType | str,
        sequence_order: int,
        threshold: Decimal | str | None = None,
        required_approver_id: UUID | None = None,
    ) -> ApprovalRule:
        admin = self._require_rule_admin(admin_id, "define approval rule")
        if required_approver_id is not None:
            approver = self._profile_selector.get_profile(required_approver_id)
            if approver is None or approver.company_id != admin.company_id:
                raise ValidationError(
                    {"required_approver_id": "Approver must be a user of this company."}
                )
        return self._approvals.define_rule(
            admin.company_id,
            rule_type,
            sequence_order,
            threshold=threshold,
            required_approver_id=required_approver_id,
        )

    def list_rules(self, company_id: UUID) -> list[ApprovalRule]:
        return self._expense_selector.list_rules(company_id)

    def remove_rule(self, admin_id: UUID, rule_id: UUID) -> None:
        admin = self._require_rule_admin(admin_id, "remove approval rule")
        self._approvals.remove_rule(rule_id, admin.company_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_expense(self, expense_id: UUID) -> Expense:
        expense = self._expense_selector.get(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def _actor_or_none(self, user_id: UUID) -> Actor | None:
        profile = self._profile_selector.get_profile(user_id)
        return Actor.from_profile(profile) if profile is not None else None

    def _require_rule_admin(self, admin_id: UUID, action: str) -> Actor:
        admin = load_actor(self._profile_selector, admin_id)
        if not can_manage_rules(admin):
            raise ForbiddenError(str(admin_id), action, "admin role required")
        return admin

