"""
Module: expense_kernel.models.expense
Responsibility: ORM persistence for expense claims.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - amount > 0 (DB check constraint; the validation engine checks first).
    - status is one of pending/approved/rejected and, once approvals exist,
      always equals the status derived from them.  Only ApprovalService and
      ExpenseService write it.
    - Expenses are never deleted.  Approval rows are cascade-owned.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import TimestampedBase, UUIDString
from expense_kernel.domain.expense import Expense, ExpenseStatus


class ExpenseModel(TimestampedBase):
    """A persisted expense claim."""

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expenses_positive_amount"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_expenses_valid_status",
        ),
        Index("ix_expenses_company_created", "company_id", "created_at"),
        Index("ix_expenses_employee", "employee_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("profiles.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    receipt_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExpenseStatus.PENDING.value,
    )

    approvals: Mapped[list["ApprovalModel"]] = relationship(  # noqa: F821
        "ApprovalModel",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ApprovalModel.sequence_order",
    )

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.amount} {self.currency} {self.status}>"

    def to_dto(self) -> Expense:
        return Expense(
            id=self.id,
            company_id=self.company_id,
            employee_id=self.employee_id,
            amount=Decimal(self.amount),
            currency=self.currency,
            category=self.category,
            expense_date=self.expense_date,
            status=ExpenseStatus(self.status),
            description=self.description,
            receipt_url=self.receipt_url,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
