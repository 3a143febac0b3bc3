"""
Tests for approval and expense domain value objects.

Tests cover:
- ApprovalStatus transitions (pending is the only non-terminal status)
- ApprovalDecision -> ApprovalStatus mapping
- Frozen dataclasses
- Expense terminal detection
"""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    Approval,
    ApprovalDecision,
    ApprovalStatus,
    RuleType,
)
from expense_kernel.domain.expense import Expense, ExpenseStatus, SubmissionRules


def _expense(status: ExpenseStatus = ExpenseStatus.PENDING) -> Expense:
    return Expense(
        id=uuid4(),
        company_id=uuid4(),
        employee_id=uuid4(),
        amount=Decimal("10.00"),
        currency="USD",
        category="Meals",
        expense_date=date(2026, 1, 15),
        status=status,
    )


class TestApprovalTransitions:
    def test_pending_can_reach_every_terminal_status(self):
        assert APPROVAL_TRANSITIONS[ApprovalStatus.PENDING] == TERMINAL_APPROVAL_STATUSES

    @pytest.mark.parametrize("status", sorted(TERMINAL_APPROVAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, status):
        assert APPROVAL_TRANSITIONS[status] == frozenset()

    def test_every_status_has_a_transition_entry(self):
        assert set(APPROVAL_TRANSITIONS) == set(ApprovalStatus)


class TestApprovalDecision:
    def test_decision_maps_to_status(self):
        assert ApprovalDecision.APPROVED.status == ApprovalStatus.APPROVED
        assert ApprovalDecision.REJECTED.status == ApprovalStatus.REJECTED

    def test_decision_parses_from_string(self):
        assert ApprovalDecision("rejected") is ApprovalDecision.REJECTED

    def test_unknown_decision_rejected(self):
        with pytest.raises(ValueError):
            ApprovalDecision("maybe")


class TestApproval:
    def test_defaults(self):
        approval = Approval(id=uuid4(), expense_id=uuid4(), approver_id=uuid4(), sequence_order=1)
        assert approval.status == ApprovalStatus.PENDING
        assert approval.rule_type == RuleType.SEQUENTIAL
        assert approval.is_pending

    def test_frozen(self):
        approval = Approval(id=uuid4(), expense_id=uuid4(), approver_id=uuid4(), sequence_order=1)
        with pytest.raises(FrozenInstanceError):
            approval.status = ApprovalStatus.APPROVED


class TestExpense:
    def test_pending_is_not_terminal(self):
        assert not _expense().is_terminal

    @pytest.mark.parametrize("status", [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED])
    def test_decided_is_terminal(self, status):
        assert _expense(status).is_terminal

    def test_default_submission_rules(self):
        rules = SubmissionRules()
        assert "Meals" in rules.categories
        assert "USD" in rules.currencies
        assert rules.max_description_length > 0
