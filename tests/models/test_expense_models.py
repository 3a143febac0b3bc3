"""
ORM model tests for expenses, approvals and approval rules.

Covers DTO conversion, cascade ownership and the database-level check and
unique constraints.  Service-layer behaviour is tested elsewhere.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from expense_kernel.domain.approval import ApprovalStatus, RuleType
from expense_kernel.domain.expense import ExpenseStatus
from expense_kernel.models.approval import ApprovalModel, ApprovalRuleModel
from expense_kernel.models.expense import ExpenseModel

NOW = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _expense_model(employee, *, amount=Decimal("25.00"), status="pending") -> ExpenseModel:
    return ExpenseModel(
        company_id=employee.company_id,
        employee_id=employee.id,
        amount=amount,
        currency="USD",
        category="Meals",
        expense_date=date(2026, 1, 30),
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


def _approval_model(expense_id, approver_id, *, sequence_order=1, status="pending") -> ApprovalModel:
    return ApprovalModel(
        expense_id=expense_id,
        approver_id=approver_id,
        sequence_order=sequence_order,
        rule_type=RuleType.SEQUENTIAL.value,
        status=status,
        created_at=NOW,
        updated_at=NOW,
    )


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


class TestExpenseModel:
    def test_dto(self, session, employee):
        model = _expense_model(employee)
        session.add(model)
        session.flush()

        dto = model.to_dto()
        assert dto.id == model.id
        assert dto.amount == Decimal("25.00")
        assert dto.status == ExpenseStatus.PENDING
        assert dto.receipt_url is None

    def test_amount_must_be_positive(self, session, employee):
        session.add(_expense_model(employee, amount=Decimal("0")))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_status_is_constrained(self, session, employee):
        session.add(_expense_model(employee, status="paid"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_approvals_cascade_with_expense(self, session, employee, manager):
        expense = _expense_model(employee)
        expense.approvals.append(_approval_model(None, manager.id))
        session.add(expense)
        session.flush()

        assert [a.approver_id for a in expense.approvals] == [manager.id]
        assert expense.approvals[0].expense_id == expense.id


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


class TestApprovalModel:
    def test_dto(self, session, employee, manager):
        expense = _expense_model(employee)
        session.add(expense)
        session.flush()
        approval = _approval_model(expense.id, manager.id)
        session.add(approval)
        session.flush()

        dto = approval.to_dto()
        assert dto.status == ApprovalStatus.PENDING
        assert dto.rule_type == RuleType.SEQUENTIAL
        assert dto.decided_at is None

    def test_skipped_is_a_valid_status(self, session, employee, manager):
        expense = _expense_model(employee)
        session.add(expense)
        session.flush()
        session.add(_approval_model(expense.id, manager.id, status="skipped"))
        session.flush()

    def test_unknown_status_rejected(self, session, employee, manager):
        expense = _expense_model(employee)
        session.add(expense)
        session.flush()
        session.add(_approval_model(expense.id, manager.id, status="maybe"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_one_row_per_approver_and_order(self, session, employee, manager):
        expense = _expense_model(employee)
        session.add(expense)
        session.flush()
        session.add(_approval_model(expense.id, manager.id, sequence_order=1))
        session.flush()

        session.add(_approval_model(expense.id, manager.id, sequence_order=1))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_same_approver_at_another_order(self, session, employee, manager):
        expense = _expense_model(employee)
        session.add(expense)
        session.flush()
        session.add_all([
            _approval_model(expense.id, manager.id, sequence_order=1),
            _approval_model(expense.id, manager.id, sequence_order=2),
        ])
        session.flush()


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class TestApprovalRuleModel:
    def _rule(self, company, rule_type, threshold=None) -> ApprovalRuleModel:
        return ApprovalRuleModel(
            id=uuid4(),
            company_id=company.id,
            rule_type=rule_type,
            sequence_order=1,
            threshold=threshold,
            created_at=NOW,
        )

    def test_threshold_rule_needs_amount(self, session, company):
        session.add(self._rule(company, "threshold"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_override_is_not_a_template(self, session, company):
        session.add(self._rule(company, "override"))
        with pytest.raises(IntegrityError):
            session.flush()

    def test_dto(self, session, company):
        model = self._rule(company, "threshold", Decimal("500"))
        session.add(model)
        session.flush()

        dto = model.to_dto()
        assert dto.rule_type == RuleType.THRESHOLD
        assert dto.threshold == Decimal("500")
        assert dto.required_approver_id is None
