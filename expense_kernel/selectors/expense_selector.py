"""
Module: expense_kernel.selectors.expense_selector
Responsibility: Read-side queries for expenses, their approvals, approval
    queues, rules and stored receipt paths.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Scope listings are ordered newest first with an ascending id
      tie-break, so equal creation times list in a stable order.
    - ``manager_id`` narrows a listing to that manager's direct reports.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.approval import Approval, ApprovalRule, ApprovalStatus
from expense_kernel.domain.expense import Expense, ExpenseListing
from expense_kernel.models.approval import ApprovalModel, ApprovalRuleModel
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.models.profile import ProfileModel
from expense_kernel.selectors.base import BaseSelector


class ExpenseSelector(BaseSelector):
    """Queries over expenses and approvals."""

    def get(self, expense_id: UUID) -> Expense | None:
        model = self.session.get(ExpenseModel, expense_id)
        return model.to_dto() if model is not None else None

    def get_listing(self, expense_id: UUID) -> ExpenseListing | None:
        row = self.session.execute(
            select(ExpenseModel, ProfileModel.full_name)
            .join(ProfileModel, ProfileModel.id == ExpenseModel.employee_id)
            .where(ExpenseModel.id == expense_id)
        ).first()
        if row is None:
            return None
        model, name = row
        return ExpenseListing(expense=model.to_dto(), employee_name=name)

    def list_for_scope(
        self,
        company_id: UUID,
        employee_id: UUID | None = None,
        manager_id: UUID | None = None,
    ) -> list[ExpenseListing]:
        stmt = (
            select(ExpenseModel, ProfileModel.full_name)
            .join(ProfileModel, ProfileModel.id == ExpenseModel.employee_id)
            .where(ExpenseModel.company_id == company_id)
        )
        if employee_id is not None:
            stmt = stmt.where(ExpenseModel.employee_id == employee_id)
        if manager_id is not None:
            stmt = stmt.where(ProfileModel.manager_id == manager_id)
        stmt = stmt.order_by(ExpenseModel.created_at.desc(), ExpenseModel.id.asc())

        return [
            ExpenseListing(expense=model.to_dto(), employee_name=name)
            for model, name in self.session.execute(stmt)
        ]

    def approvals_for_expense(self, expense_id: UUID) -> list[Approval]:
        """All approval rows of one expense in sequence order."""
        models = self.session.scalars(
            select(ApprovalModel)
            .where(ApprovalModel.expense_id == expense_id)
            .order_by(
                ApprovalModel.sequence_order,
                ApprovalModel.created_at,
                ApprovalModel.id,
            )
        ).all()
        return [m.to_dto() for m in models]

    def approvals_for_expenses(
        self,
        expense_ids: Iterable[UUID],
    ) -> dict[UUID, list[Approval]]:
        ids = list(expense_ids)
        grouped: dict[UUID, list[Approval]] = {expense_id: [] for expense_id in ids}
        if not ids:
            return grouped
        models = self.session.scalars(
            select(ApprovalModel)
            .where(ApprovalModel.expense_id.in_(ids))
            .order_by(ApprovalModel.sequence_order, ApprovalModel.id)
        ).all()
        for model in models:
            grouped[model.expense_id].append(model.to_dto())
        return grouped

    def pending_for_approver(
        self,
        approver_id: UUID,
    ) -> list[tuple[Approval, ExpenseListing]]:
        """The approver's pending rows, oldest first, with their expenses."""
        rows = self.session.execute(
            select(ApprovalModel, ExpenseModel, ProfileModel.full_name)
            .join(ExpenseModel, ExpenseModel.id == ApprovalModel.expense_id)
            .join(ProfileModel, ProfileModel.id == ExpenseModel.employee_id)
            .where(
                ApprovalModel.approver_id == approver_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            )
            .order_by(ApprovalModel.created_at.asc(), ApprovalModel.id.asc())
        ).all()
        return [
            (approval.to_dto(), ExpenseListing(expense=expense.to_dto(), employee_name=name))
            for approval, expense, name in rows
        ]

    def list_rules(self, company_id: UUID) -> list[ApprovalRule]:
        models = self.session.scalars(
            select(ApprovalRuleModel)
            .where(ApprovalRuleModel.company_id == company_id)
            .order_by(ApprovalRuleModel.sequence_order, ApprovalRuleModel.created_at)
        ).all()
        return [m.to_dto() for m in models]

    def receipt_paths(self, company_id: UUID | None = None) -> set[str]:
        """Storage paths referenced by any expense."""
        stmt = select(ExpenseModel.receipt_url).where(ExpenseModel.receipt_url.is_not(None))
        if company_id is not None:
            stmt = stmt.where(ExpenseModel.company_id == company_id)
        return set(self.session.scalars(stmt))
