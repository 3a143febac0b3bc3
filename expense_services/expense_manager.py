"""
expense_services.expense_manager -- Expense Entity Manager.

Responsibility
--------------
Sole public entry point for expense operations: submission (with optional
receipt), lookups and scoped listings, approver decisions (single and
bulk), admin overrides, approval queues and approval rule administration.

Architecture position
---------------------
**Services layer** -- owns the transaction boundary.  Validation and
authorization are delegated to ``expense_engines``; workflow coordination
to ``ApprovalWorkflowService``; persistence to kernel services; receipt
storage to ``ReceiptService``.

Invariants enforced
-------------------
* Each public write method commits on success and rolls back (then
  re-raises) on any exception.
* Submission validates every field before anything is written, uploads
  the receipt before the expense insert, and inserts the expense and its
  approvals in one transaction.  A failed receipt upload creates nothing.
* Change events are published only after a successful commit.

Failure modes
-------------
* ValidationError -- bad submission fields.
* ForbiddenError -- actor lacks the capability or is not the approver.
* InvalidStateError -- decision on a terminal expense or decided row.
* NoApproverFoundError -- nobody can approve the new expense.
* ConflictError -- the approval changed between read and update.
* InvalidReceiptError / ReceiptUploadError -- receipt rejected or not stored.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import date, datetime
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from expense_config.bridges import build_submission_rules, build_workflow_limits
from expense_config.schema import ExpenseSettings
from expense_engines.access import can_submit_expense, can_view_expense
from expense_engines.listing import ExpenseQuery, filter_listings
from expense_engines.validation import validate_submission
from expense_kernel.domain.approval import ApprovalDecision, ApprovalRule, RuleType, WorkflowLimits
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.expense import (
    ApprovalQueueItem,
    DecisionOutcome,
    Expense,
    ExpenseDetail,
    ExpenseListing,
    ExpenseSubmission,
    SubmissionRules,
)
from expense_kernel.domain.org import Actor
from expense_kernel.exceptions import (
    ExpenseKernelError,
    ExpenseNotFoundError,
    ForbiddenError,
    ReceiptUploadError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.profile_selector import ProfileSelector
from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.expense_service import ExpenseService
from expense_services.approval_workflow import ApprovalWorkflowService, DecisionResult
from expense_services.change_feed import ChangeEvent, ChangeFeed, ChangeOperation, ScopeKey
from expense_services.receipts import ReceiptService, ReceiptUpload

logger = get_logger("services.expense_manager")

T = TypeVar("T")

EXPENSES_TABLE = "expenses"
APPROVAL_RULES_TABLE = "approval_rules"


class ExpenseManager:
    """Transaction-owning expense operations."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        receipts: ReceiptService | None = None,
        feed: ChangeFeed | None = None,
        submission_rules: SubmissionRules | None = None,
        limits: WorkflowLimits | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._receipts = receipts
        self._feed = feed
        self._rules = submission_rules or SubmissionRules()
        self._expenses = ExpenseService(session, self._clock)
        self._approvals = ApprovalService(session, self._clock)
        self._workflow = ApprovalWorkflowService(session, self._clock, limits)
        self._expense_selector = ExpenseSelector(session)
        self._profile_selector = ProfileSelector(session)

    @classmethod
    def from_settings(
        cls,
        session: Session,
        settings: ExpenseSettings,
        clock: Clock | None = None,
        receipts: ReceiptService | None = None,
        feed: ChangeFeed | None = None,
    ) -> ExpenseManager:
        return cls(
            session,
            clock=clock,
            receipts=receipts,
            feed=feed,
            submission_rules=build_submission_rules(settings),
            limits=build_workflow_limits(settings),
        )

    # ------------------------------------------------------------------
    # Transaction helpers
    # ------------------------------------------------------------------

    def _run(self, operation: Callable[[], T]) -> T:
        try:
            result = operation()
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def _publish(self, table: str, operation: ChangeOperation, expense: Expense) -> None:
        if self._feed is None:
            return
        self._feed.publish(
            ChangeEvent(
                table=table,
                operation=operation,
                company_id=expense.company_id,
                row_id=expense.id,
                employee_id=expense.employee_id,
            )
        )

    def _actor(self, user_id: UUID) -> Actor | None:
        profile = self._profile_selector.get_profile(user_id)
        return Actor.from_profile(profile) if profile is not None else None

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        employee_id: UUID,
        company_id: UUID,
        amount: Decimal | str | int,
        currency: str,
        category: str,
        expense_date: date | str,
        description: str | None = None,
        receipt: ReceiptUpload | None = None,
    ) -> Expense:
        """Validate, upload the receipt, then insert the expense and its approvals."""
        submission = ExpenseSubmission(
            employee_id=employee_id,
            company_id=company_id,
            amount=amount,
            currency=currency,
            category=category,
            expense_date=expense_date,
            description=description,
        )

        with LogContext.bind(actor_id=str(employee_id), company_id=str(company_id)):
            validated = validate_submission(submission, self._rules, self._clock.today())

            submitter = self._profile_selector.get_profile(employee_id)
            if submitter is None or not can_submit_expense(Actor.from_profile(submitter), company_id):
                raise ForbiddenError(str(employee_id), "submit expense", "not an active member of this company")

            receipt_path: str | None = None
            if receipt is not None:
                if self._receipts is None:
                    raise ReceiptUploadError(receipt.filename, "receipt storage is not configured")
                receipt_path = self._receipts.upload(company_id, employee_id, receipt)

            def op() -> Expense:
                expense = self._expenses.create(
                    company_id=company_id,
                    employee_id=employee_id,
                    amount=validated.amount,
                    currency=validated.currency,
                    category=validated.category,
                    expense_date=validated.expense_date,
                    description=validated.description,
                    receipt_url=receipt_path,
                )
                self._workflow.materialize(expense, submitter)
                return expense

            try:
                expense = self._run(op)
            except Exception:
                if receipt_path is not None:
                    self._receipts.discard(receipt_path)
                raise

            logger.info(
                "expense_submitted",
                extra={
                    "expense_id": str(expense.id),
                    "amount": expense.amount,
                    "currency": expense.currency,
                },
            )

        self._publish(EXPENSES_TABLE, ChangeOperation.INSERT, expense)
        return expense

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, expense_id: UUID) -> Expense:
        expense = self._expense_selector.get(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def list_for_scope(
        self,
        company_id: UUID,
        employee_id: UUID | None = None,
        manager_id: UUID | None = None,
    ) -> list[ExpenseListing]:
        """Newest first; ``manager_id`` narrows to that manager's direct reports."""
        return self._expense_selector.list_for_scope(
            company_id, employee_id=employee_id, manager_id=manager_id,
        )

    def list_scope(self, scope: ScopeKey) -> list[ExpenseListing]:
        """Fetcher for ``SubscriptionManager``."""
        return self.list_for_scope(scope.company_id, scope.employee_id, scope.manager_id)

    def search(
        self,
        company_id: UUID,
        query: ExpenseQuery,
        employee_id: UUID | None = None,
        manager_id: UUID | None = None,
    ) -> list[ExpenseListing]:
        return filter_listings(self.list_for_scope(company_id, employee_id, manager_id), query)

    def get_detail(self, expense_id: UUID, actor_id: UUID) -> ExpenseDetail:
        listing = self._expense_selector.get_listing(expense_id)
        if listing is None:
            raise ExpenseNotFoundError(str(expense_id))
        actor = self._actor(actor_id)
        if actor is None or not can_view_expense(actor, listing.expense):
            raise ForbiddenError(str(actor_id), "view expense")
        return ExpenseDetail(
            expense=listing.expense,
            employee_name=listing.employee_name,
            approvals=tuple(self._expense_selector.approvals_for_expense(expense_id)),
        )

    def receipt_url(self, expense_id: UUID, actor_id: UUID) -> str | None:
        """Public URL of the expense's receipt, if it has one."""
        detail = self.get_detail(expense_id, actor_id)
        if detail.expense.receipt_url is None or self._receipts is None:
            return None
        return self._receipts.public_url(detail.expense.receipt_url)

    def approval_queue(
        self,
        approver_id: UUID,
        search: str | None = None,
        category: str | None = None,
    ) -> list[ApprovalQueueItem]:
        """The approver's pending approvals, oldest first, optionally filtered."""
        return self._workflow.approval_queue(approver_id, search=search, category=category)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def apply_decision(
        self,
        expense_id: UUID,
        decision: ApprovalDecision | str,
        acting_approver_id: UUID,
        comment: str | None = None,
        expected_updated_at: datetime | None = None,
        approval_id: UUID | None = None,
    ) -> Expense:
        """Record an approver decision and the re-derived expense status."""
        result: DecisionResult = self._run(
            lambda: self._workflow.decide(
                expense_id,
                acting_approver_id,
                ApprovalDecision(decision),
                comment=comment,
                expected_updated_at=expected_updated_at,
                approval_id=approval_id,
            )
        )
        self._publish(EXPENSES_TABLE, ChangeOperation.UPDATE, result.expense)
        return result.expense

    def decide_many(
        self,
        approval_ids: Iterable[UUID],
        decision: ApprovalDecision | str,
        actor_id: UUID,
        comment: str | None = None,
    ) -> list[DecisionOutcome]:
        """Bulk decision.  Each approval is its own transaction."""
        decision = ApprovalDecision(decision)
        outcomes: list[DecisionOutcome] = []

        for approval_id in approval_ids:
            try:
                approval = self._approvals.get(approval_id)
                if approval.approver_id != actor_id:
                    raise ForbiddenError(str(actor_id), f"{decision.value} expense", "not the approver")
                expense = self.apply_decision(
                    approval.expense_id,
                    decision,
                    actor_id,
                    comment=comment,
                    approval_id=approval_id,
                )
            except ExpenseKernelError as exc:
                self._session.rollback()
                outcomes.append(
                    DecisionOutcome(
                        approval_id=approval_id,
                        success=False,
                        error_code=exc.code,
                        message=str(exc),
                    )
                )
                continue
            outcomes.append(
                DecisionOutcome(
                    approval_id=approval_id,
                    success=True,
                    expense_status=expense.status,
                )
            )

        logger.info(
            "bulk_decision_completed",
            extra={
                "actor_id": str(actor_id),
                "decision": decision.value,
                "requested": len(outcomes),
                "succeeded": sum(1 for o in outcomes if o.success),
            },
        )
        return outcomes

    def override(
        self,
        expense_id: UUID,
        decision: ApprovalDecision | str,
        admin_id: UUID,
        comment: str | None = None,
    ) -> Expense:
        """Admin override: close open approvals and resolve the expense."""
        result: DecisionResult = self._run(
            lambda: self._workflow.override(
                expense_id, admin_id, ApprovalDecision(decision), comment,
            )
        )
        self._publish(EXPENSES_TABLE, ChangeOperation.UPDATE, result.expense)
        return result.expense

    # ------------------------------------------------------------------
    # Approval rules
    # ------------------------------------------------------------------

    def define_rule(
        self,
        admin_id: UUID,
        rule_type: RuleType | str,
        sequence_order: int,
        threshold: Decimal | str | None = None,
        required_approver_id: UUID | None = None,
    ) -> ApprovalRule:
        return self._run(
            lambda: self._workflow.define_rule(
                admin_id,
                rule_type,
                sequence_order,
                threshold=threshold,
                required_approver_id=required_approver_id,
            )
        )

    def list_rules(self, company_id: UUID) -> list[ApprovalRule]:
        return self._workflow.list_rules(company_id)

    def remove_rule(self, admin_id: UUID, rule_id: UUID) -> None:
        self._run(lambda: self._workflow.remove_rule(admin_id, rule_id))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_receipts(self, max_age_hours: int | None = None) -> list[str]:
        """Delete stored receipts that no expense references."""
        if self._receipts is None:
            return []
        referenced = self._expense_selector.receipt_paths()
        return self._receipts.sweep_orphans(
            referenced, as_of=self._clock.now(), max_age_hours=max_age_hours,
        )
