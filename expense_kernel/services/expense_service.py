"""
expense_kernel.services.expense_service -- Expense row persistence.

Responsibility:
    Inserts validated expenses as ``pending`` and writes the derived status
    back onto the expense row.  Validation and status derivation happen
    before these calls; this service trusts its inputs.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - New expenses always start ``pending``.
    - Expenses are never deleted.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from expense_kernel.domain.clock import as_utc
from expense_kernel.domain.expense import Expense, ExpenseStatus
from expense_kernel.exceptions import ExpenseNotFoundError
from expense_kernel.logging_config import get_logger
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.expense_service")


class ExpenseService(BaseService):
    """Creates expenses and records their derived status."""

    def create(
        self,
        company_id: UUID,
        employee_id: UUID,
        amount: Decimal,
        currency: str,
        category: str,
        expense_date: date,
        description: str | None = None,
        receipt_url: str | None = None,
    ) -> Expense:
        now = self.clock.now()
        model = ExpenseModel(
            company_id=company_id,
            employee_id=employee_id,
            amount=amount,
            currency=currency,
            category=category,
            expense_date=expense_date,
            description=description,
            receipt_url=receipt_url,
            status=ExpenseStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "expense_created",
            extra={
                "expense_id": str(model.id),
                "company_id": str(company_id),
                "employee_id": str(employee_id),
                "amount": amount,
                "currency": currency,
                "category": category,
                "has_receipt": receipt_url is not None,
            },
        )
        return model.to_dto()

    def get(self, expense_id: UUID) -> Expense:
        return self._load(expense_id).to_dto()

    def set_status(self, expense_id: UUID, status: ExpenseStatus) -> Expense:
        """Write the derived status.  A no-op when it has not changed."""
        model = self._load(expense_id)
        previous = ExpenseStatus(model.status)
        if previous == status:
            return model.to_dto()

        now = self.clock.now()
        if as_utc(now) <= as_utc(model.updated_at):
            now = as_utc(model.updated_at) + timedelta(microseconds=1)
        model.status = status.value
        model.updated_at = now
        self.session.flush()

        logger.info(
            "expense_status_changed",
            extra={
                "expense_id": str(expense_id),
                "from_status": previous.value,
                "to_status": status.value,
            },
        )
        return model.to_dto()

    def _load(self, expense_id: UUID) -> ExpenseModel:
        model = self.session.get(ExpenseModel, expense_id)
        if model is None:
            raise ExpenseNotFoundError(str(expense_id))
        return model
