"""
Module: expense_kernel.models.approval
Responsibility: ORM persistence for materialized approvals and company
    approval rule templates.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - status is one of pending/approved/rejected/skipped (DB check
      constraint); transitions are enforced by ApprovalService.
    - updated_at is the compare-and-swap token for decisions.
    - UNIQUE(expense_id, approver_id, sequence_order): one row per approver
      per tier.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import Base, TimestampedBase, UUIDString
from expense_kernel.domain.approval import (
    Approval,
    ApprovalRule,
    ApprovalStatus,
    RuleType,
)


class ApprovalModel(TimestampedBase):
    """One approval step of one expense."""

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'skipped')",
            name="ck_approvals_valid_status",
        ),
        UniqueConstraint(
            "expense_id", "approver_id", "sequence_order",
            name="uq_approvals_expense_approver_order",
        ),
        Index("ix_approvals_approver_status", "approver_id", "status", "created_at"),
        Index("ix_approvals_expense_order", "expense_id", "sequence_order"),
    )

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("profiles.id"), nullable=False,
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    rule_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RuleType.SEQUENTIAL.value,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING.value,
    )
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    expense: Mapped["ExpenseModel"] = relationship(  # noqa: F821
        "ExpenseModel", back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} expense={self.expense_id} "
            f"order={self.sequence_order} status={self.status}>"
        )

    def to_dto(self) -> Approval:
        return Approval(
            id=self.id,
            expense_id=self.expense_id,
            approver_id=self.approver_id,
            sequence_order=self.sequence_order,
            status=ApprovalStatus(self.status),
            rule_type=RuleType(self.rule_type),
            comment=self.comment,
            decided_at=self.decided_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class ApprovalRuleModel(Base):
    """Company-scoped approval rule template."""

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('sequential', 'threshold', 'any_one')",
            name="ck_approval_rules_valid_type",
        ),
        CheckConstraint(
            "rule_type <> 'threshold' OR threshold IS NOT NULL",
            name="ck_approval_rules_threshold_amount",
        ),
        Index("ix_approval_rules_company_order", "company_id", "sequence_order"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    threshold: Mapped[Decimal | None] = mapped_column(nullable=True)
    required_approver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("profiles.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.rule_type} order={self.sequence_order}>"

    def to_dto(self) -> ApprovalRule:
        return ApprovalRule(
            id=self.id,
            company_id=self.company_id,
            rule_type=RuleType(self.rule_type),
            sequence_order=self.sequence_order,
            threshold=Decimal(self.threshold) if self.threshold is not None else None,
            required_approver_id=self.required_approver_id,
            created_at=self.created_at,
        )
