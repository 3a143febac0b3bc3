"""Tests for ExpenseSelector and ProfileSelector read queries."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.domain.approval import ApprovalStatus, PlannedApproval, RuleType
from expense_kernel.domain.org import Role
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.profile_selector import ProfileSelector
from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.expense_service import ExpenseService


@pytest.fixture
def selector(session):
    return ExpenseSelector(session)


@pytest.fixture
def add_expense(session, deterministic_clock):
    """Insert an expense with approval rows, advancing the clock each time."""

    def _add(employee, approvers=(), amount="10.00", receipt_url=None):
        deterministic_clock.advance(1)
        expense = ExpenseService(session, deterministic_clock).create(
            company_id=employee.company_id,
            employee_id=employee.id,
            amount=Decimal(amount),
            currency="USD",
            category="Travel",
            expense_date=date(2026, 1, 20),
            receipt_url=receipt_url,
        )
        ApprovalService(session, deterministic_clock).create_approvals(
            expense.id,
            [
                PlannedApproval(approver_id=a.id, sequence_order=i, rule_type=RuleType.SEQUENTIAL)
                for i, a in enumerate(approvers, start=1)
            ],
        )
        session.commit()
        return expense

    return _add


class TestListForScope:
    def test_newest_first(self, selector, add_expense, employee):
        first = add_expense(employee)
        second = add_expense(employee)

        rows = selector.list_for_scope(employee.company_id)
        assert [r.expense.id for r in rows] == [second.id, first.id]
        assert rows[0].employee_name == "Emery Employee"

    def test_employee_scope(self, selector, add_expense, make_user, company, manager, employee):
        colleague = make_user(company, manager=manager)
        add_expense(employee)
        theirs = add_expense(colleague)

        rows = selector.list_for_scope(company.id, employee_id=colleague.id)
        assert [r.expense.id for r in rows] == [theirs.id]

    def test_manager_scope_is_direct_reports(self, selector, add_expense, manager, employee, company):
        mine = add_expense(employee)
        add_expense(manager)

        rows = selector.list_for_scope(company.id, manager_id=manager.id)
        assert [r.expense.id for r in rows] == [mine.id]

    def test_company_isolation(self, selector, add_expense, make_company, make_user, employee):
        outsider = make_user(make_company("Other Inc"))
        add_expense(outsider)
        add_expense(employee)

        rows = selector.list_for_scope(employee.company_id)
        assert {r.expense.company_id for r in rows} == {employee.company_id}


class TestApprovals:
    def test_rows_in_sequence_order(self, selector, add_expense, employee, manager, admin):
        expense = add_expense(employee, approvers=(manager, admin))

        approvals = selector.approvals_for_expense(expense.id)
        assert [a.approver_id for a in approvals] == [manager.id, admin.id]
        assert [a.sequence_order for a in approvals] == [1, 2]

    def test_grouped_by_expense(self, selector, add_expense, employee, manager):
        a = add_expense(employee, approvers=(manager,))
        b = add_expense(employee)

        grouped = selector.approvals_for_expenses([a.id, b.id])
        assert len(grouped[a.id]) == 1
        assert grouped[b.id] == []
        assert selector.approvals_for_expenses([]) == {}

    def test_pending_queue_oldest_first(self, selector, add_expense, employee, manager):
        older = add_expense(employee, approvers=(manager,))
        newer = add_expense(employee, approvers=(manager,))

        queue = selector.pending_for_approver(manager.id)
        assert [listing.expense.id for _, listing in queue] == [older.id, newer.id]
        assert all(approval.status == ApprovalStatus.PENDING for approval, _ in queue)

    def test_get_listing(self, selector, add_expense, employee):
        expense = add_expense(employee)
        listing = selector.get_listing(expense.id)
        assert listing.expense == selector.get(expense.id)
        assert selector.get_listing(uuid4()) is None


class TestReceiptPaths:
    def test_only_referenced(self, selector, add_expense, make_company, make_user, employee):
        outsider = make_user(make_company("Other Inc"))
        add_expense(employee, receipt_url="acme/a.pdf")
        add_expense(employee)
        add_expense(outsider, receipt_url="other/b.pdf")

        assert selector.receipt_paths() == {"acme/a.pdf", "other/b.pdf"}
        assert selector.receipt_paths(employee.company_id) == {"acme/a.pdf"}


class TestProfileSelector:
    def test_list_profiles(self, session, company, admin, manager, employee):
        profiles = ProfileSelector(session).list_profiles(company.id)
        assert [p.full_name for p in profiles] == ["Avery Admin", "Emery Employee", "Morgan Manager"]

    def test_direct_reports(self, session, manager, employee):
        reports = ProfileSelector(session).direct_reports(manager.id)
        assert [p.id for p in reports] == [employee.id]

    def test_roles_loaded(self, session, admin):
        profile = ProfileSelector(session).get_profile(admin.id)
        assert profile.roles == frozenset({Role.ADMIN})
