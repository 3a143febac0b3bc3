"""
Property-based tests for the workflow and statistics engines.

Properties:
- A rejected row anywhere rejects the expense.
- Approved requires at least one row and no pending row in a unanimous tier.
- Derived status does not depend on row order.
- Aggregated totals equal the sum of amounts; count equals the input size.
- percent_change is zero exactly when nothing changed.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from expense_engines.statistics import aggregate, percent_change
from expense_engines.workflow import derive_expense_status
from expense_kernel.domain.approval import Approval, ApprovalStatus, RuleType
from expense_kernel.domain.expense import Expense, ExpenseStatus

EXPENSE_ID = uuid4()

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def approvals(draw):
    return Approval(
        id=uuid4(),
        expense_id=EXPENSE_ID,
        approver_id=uuid4(),
        sequence_order=draw(st.integers(min_value=1, max_value=4)),
        status=draw(st.sampled_from(list(ApprovalStatus))),
        rule_type=draw(st.sampled_from([RuleType.SEQUENTIAL, RuleType.THRESHOLD, RuleType.ANY_ONE])),
    )


@st.composite
def expenses(draw):
    return Expense(
        id=uuid4(),
        company_id=uuid4(),
        employee_id=uuid4(),
        amount=draw(amounts),
        currency=draw(st.sampled_from(["USD", "EUR"])),
        category="Travel",
        expense_date=date(2026, 1, 1),
        status=draw(st.sampled_from(list(ExpenseStatus))),
    )


class TestDerivedStatusProperties:
    @given(st.lists(approvals(), max_size=8))
    @settings(max_examples=200)
    def test_rejection_dominates(self, rows):
        status = derive_expense_status(rows)
        has_rejection = any(r.status == ApprovalStatus.REJECTED for r in rows)
        assert (status == ExpenseStatus.REJECTED) == has_rejection

    @given(st.lists(approvals(), max_size=8))
    @settings(max_examples=200)
    def test_approved_needs_rows_and_no_blocking_pending(self, rows):
        if derive_expense_status(rows) != ExpenseStatus.APPROVED:
            return
        assert rows
        unanimous_pending = [
            r for r in rows
            if r.status == ApprovalStatus.PENDING and r.rule_type != RuleType.ANY_ONE
        ]
        assert not unanimous_pending

    @given(st.lists(approvals(), max_size=8), st.randoms())
    def test_order_independent(self, rows, rnd):
        shuffled = list(rows)
        rnd.shuffle(shuffled)
        assert derive_expense_status(rows) == derive_expense_status(shuffled)


class TestAggregateProperties:
    @given(st.lists(expenses(), max_size=20))
    def test_totals_match_inputs(self, rows):
        stats = aggregate(rows)
        assert stats.count == len(rows)
        assert stats.total_amount == sum((r.amount for r in rows), Decimal("0"))
        assert stats.total_amount == (
            stats.pending_amount + stats.approved_amount + stats.rejected_amount
        )

    @given(amounts)
    def test_no_change_is_zero_percent(self, value):
        assert percent_change(value, value) == 0

    @given(amounts, amounts)
    def test_sign_follows_direction(self, previous, current):
        change = percent_change(previous, current)
        if current > previous:
            assert change >= 0
        elif current < previous:
            assert change <= 0
