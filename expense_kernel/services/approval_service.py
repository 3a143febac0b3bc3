"""
expense_kernel.services.approval_service -- Approval row persistence.

Responsibility:
    Creates approval rows for a new expense, records decisions with
    compare-and-swap on ``updated_at``, closes moot rows as ``skipped``,
    records admin override rows, and administers company approval rules.
    Deciding WHICH rows to create or close belongs to the workflow engine;
    this service only persists.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Status transitions follow ``APPROVAL_TRANSITIONS``.
    - A decision UPDATE only succeeds when the row still carries the
      ``updated_at`` value read immediately before it.
    - ``updated_at`` strictly increases on every write to a row.

Failure modes:
    - ApprovalNotFoundError if the approval does not exist.
    - InvalidApprovalTransitionError on an illegal status change.
    - ConflictError when the compare-and-swap matches no row.
    - ValidationError on malformed rule definitions.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select, update

from expense_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    Approval,
    ApprovalRule,
    ApprovalStatus,
    PlannedApproval,
    RuleType,
)
from expense_kernel.domain.clock import as_utc
from expense_kernel.exceptions import (
    ApprovalNotFoundError,
    ApprovalRuleNotFoundError,
    ConflictError,
    InvalidApprovalTransitionError,
    ValidationError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.approval import ApprovalModel, ApprovalRuleModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.approval_service")

TEMPLATE_RULE_TYPES = frozenset({
    RuleType.SEQUENTIAL,
    RuleType.THRESHOLD,
    RuleType.ANY_ONE,
})


class ApprovalService(BaseService):
    """Persists approval rows and approval rules."""

    # ------------------------------------------------------------------
    # Approval rows
    # ------------------------------------------------------------------

    def create_approvals(
        self,
        expense_id: UUID,
        planned: Sequence[PlannedApproval],
    ) -> list[Approval]:
        now = self.clock.now()
        models = [
            ApprovalModel(
                expense_id=expense_id,
                approver_id=p.approver_id,
                sequence_order=p.sequence_order,
                rule_type=p.rule_type.value,
                status=ApprovalStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            for p in planned
        ]
        self.session.add_all(models)
        self.session.flush()

        logger.info(
            "approvals_materialized",
            extra={
                "expense_id": str(expense_id),
                "approval_count": len(models),
                "sequence_orders": sorted({p.sequence_order for p in planned}),
            },
        )
        return [m.to_dto() for m in models]

    def get(self, approval_id: UUID) -> Approval:
        return self._load(approval_id).to_dto()

    def record_decision(
        self,
        approval_id: UUID,
        status: ApprovalStatus,
        comment: str | None = None,
        expected_updated_at: datetime | None = None,
    ) -> Approval:
        """Move a pending approval to ``status`` with compare-and-swap.

        ``expected_updated_at`` is the token the caller read (for example
        when rendering the approval).  When omitted, the value read here is
        the token.
        """
        model = self._load(approval_id)
        current = ApprovalStatus(model.status)
        if status not in APPROVAL_TRANSITIONS[current]:
            raise InvalidApprovalTransitionError(
                str(approval_id), current.value, status.value,
            )

        observed = model.updated_at
        if expected_updated_at is not None and as_utc(expected_updated_at) != as_utc(observed):
            logger.warning(
                "approval_decision_conflict",
                extra={
                    "approval_id": str(approval_id),
                    "expected_updated_at": as_utc(expected_updated_at),
                    "observed_updated_at": as_utc(observed),
                },
            )
            raise ConflictError("Approval", str(approval_id))

        now = self._next_stamp(observed)
        result = self.session.execute(
            update(ApprovalModel)
            .where(
                ApprovalModel.id == approval_id,
                ApprovalModel.updated_at == observed,
                ApprovalModel.status == current.value,
            )
            .values(
                status=status.value,
                comment=comment,
                decided_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "approval_decision_conflict",
                extra={"approval_id": str(approval_id), "rows_matched": result.rowcount},
            )
            raise ConflictError("Approval", str(approval_id))

        self.session.refresh(model)

        logger.info(
            "approval_decided",
            extra={
                "approval_id": str(approval_id),
                "expense_id": str(model.expense_id),
                "approver_id": str(model.approver_id),
                "sequence_order": model.sequence_order,
                "from_status": current.value,
                "to_status": status.value,
            },
        )
        return model.to_dto()

    def skip(self, approval_ids: Iterable[UUID], reason: str) -> list[Approval]:
        """Close pending rows as moot.  Rows no longer pending are left alone."""
        ids = list(approval_ids)
        if not ids:
            return []

        models = self.session.scalars(
            select(ApprovalModel).where(
                ApprovalModel.id.in_(ids),
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            )
        ).all()
        for model in models:
            model.status = ApprovalStatus.SKIPPED.value
            model.updated_at = self._next_stamp(model.updated_at)
        self.session.flush()

        if models:
            logger.info(
                "approvals_skipped",
                extra={
                    "expense_id": str(models[0].expense_id),
                    "approval_ids": [str(m.id) for m in models],
                    "reason": reason,
                },
            )
        return [m.to_dto() for m in models]

    def record_override(
        self,
        expense_id: UUID,
        admin_id: UUID,
        status: ApprovalStatus,
        comment: str | None = None,
    ) -> Approval:
        """Append a decided override row after the last existing tier."""
        max_order = self.session.scalar(
            select(func.max(ApprovalModel.sequence_order)).where(
                ApprovalModel.expense_id == expense_id,
            )
        )
        now = self.clock.now()
        model = ApprovalModel(
            expense_id=expense_id,
            approver_id=admin_id,
            sequence_order=(max_order or 0) + 1,
            rule_type=RuleType.OVERRIDE.value,
            status=status.value,
            comment=comment,
            decided_at=now,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "approval_override_recorded",
            extra={
                "expense_id": str(expense_id),
                "admin_id": str(admin_id),
                "to_status": status.value,
                "sequence_order": model.sequence_order,
            },
        )
        return model.to_dto()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def define_rule(
        self,
        company_id: UUID,
        rule_type: RuleType | str,
        sequence_order: int,
        threshold: Decimal | str | None = None,
        required_approver_id: UUID | None = None,
    ) -> ApprovalRule:
        errors: dict[str, str] = {}

        try:
            rule_type = RuleType(rule_type)
        except ValueError:
            errors["rule_type"] = f"Unknown rule type: {rule_type}."
        else:
            if rule_type not in TEMPLATE_RULE_TYPES:
                errors["rule_type"] = f"{rule_type.value} rules cannot be defined."

        if not isinstance(sequence_order, int) or sequence_order < 1:
            errors["sequence_order"] = "Sequence order must be a positive integer."

        amount: Decimal | None = None
        if threshold is not None:
            try:
                amount = Decimal(str(threshold))
            except InvalidOperation:
                errors["threshold"] = "Threshold must be a number."
            else:
                if not amount.is_finite() or amount < 0:
                    errors["threshold"] = "Threshold must be zero or more."
        if rule_type == RuleType.THRESHOLD and threshold is None:
            errors["threshold"] = "Threshold rules need a threshold amount."

        if errors:
            raise ValidationError(errors)

        model = ApprovalRuleModel(
            company_id=company_id,
            rule_type=rule_type.value,
            sequence_order=sequence_order,
            threshold=amount,
            required_approver_id=required_approver_id,
            created_at=self.clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "approval_rule_defined",
            extra={
                "rule_id": str(model.id),
                "company_id": str(company_id),
                "rule_type": rule_type.value,
                "sequence_order": sequence_order,
                "threshold": amount,
            },
        )
        return model.to_dto()

    def remove_rule(self, rule_id: UUID, company_id: UUID) -> None:
        model = self.session.get(ApprovalRuleModel, rule_id)
        if model is None or model.company_id != company_id:
            raise ApprovalRuleNotFoundError(str(rule_id))
        self.session.delete(model)
        self.session.flush()
        logger.info(
            "approval_rule_removed",
            extra={"rule_id": str(rule_id), "company_id": str(company_id)},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, approval_id: UUID) -> ApprovalModel:
        model = self.session.get(ApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(str(approval_id))
        return model

    def _next_stamp(self, previous: datetime) -> datetime:
        """Clock time, nudged forward if it would not move the token."""
        now = self.clock.now()
        if as_utc(now) <= as_utc(previous):
            return as_utc(previous) + timedelta(microseconds=1)
        return now
