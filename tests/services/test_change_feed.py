"""
Tests for the change feed and scoped subscription fan-out.

Tests cover:
- ChangeFeed: company scoping, unsubscribe, failing subscribers
- SubscriptionManager: one feed subscription per scope, refetch on change,
  statistics deltas, viewer isolation, teardown on last close
- End to end with ExpenseManager publishing after commit
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from expense_kernel.domain.expense import Expense, ExpenseListing, ExpenseStatus
from expense_kernel.exceptions import ValidationError
from expense_services.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeOperation,
    ScopeKey,
    SubscriptionManager,
)
from expense_services.dashboard import StatisticsTracker

COMPANY_ID = uuid4()


def event(company_id=COMPANY_ID) -> ChangeEvent:
    return ChangeEvent(
        table="expenses",
        operation=ChangeOperation.INSERT,
        company_id=company_id,
        row_id=uuid4(),
    )


def listing(amount: str, status=ExpenseStatus.PENDING) -> ExpenseListing:
    return ExpenseListing(
        expense=Expense(
            id=uuid4(),
            company_id=COMPANY_ID,
            employee_id=uuid4(),
            amount=Decimal(amount),
            currency="USD",
            category="Meals",
            expense_date=date(2026, 1, 20),
            status=status,
        ),
        employee_name="Someone",
    )


class FakeStore:
    """Scope fetcher backed by a mutable list; counts fetches."""

    def __init__(self):
        self.rows: list[ExpenseListing] = []
        self.fetches = 0
        self.fail = False

    def __call__(self, scope):
        self.fetches += 1
        if self.fail:
            raise OperationalError("SELECT", {}, Exception("database is locked"))
        return list(self.rows)


class TestChangeFeed:
    def test_delivers_only_to_company(self):
        feed = ChangeFeed()
        mine, theirs = [], []
        feed.subscribe(COMPANY_ID, mine.append)
        feed.subscribe(uuid4(), theirs.append)

        e = event()
        feed.publish(e)

        assert mine == [e]
        assert theirs == []

    def test_close_unsubscribes(self):
        feed = ChangeFeed()
        received = []
        sub = feed.subscribe(COMPANY_ID, received.append)
        sub.close()
        sub.close()

        feed.publish(event())
        assert received == []
        assert feed.subscriber_count(COMPANY_ID) == 0

    def test_failing_subscriber_does_not_block_others(self, captured_logs):
        feed = ChangeFeed()
        received = []

        def broken(_):
            raise RuntimeError("viewer crashed")

        feed.subscribe(COMPANY_ID, broken)
        feed.subscribe(COMPANY_ID, received.append)
        feed.publish(event())

        assert len(received) == 1
        assert any(r["message"] == "change_subscriber_failed" for r in captured_logs())


class TestSubscriptionManager:
    def setup_method(self):
        self.feed = ChangeFeed()
        self.store = FakeStore()
        self.manager = SubscriptionManager(self.feed, self.store)
        self.scope = ScopeKey(COMPANY_ID)

    def test_one_feed_subscription_per_scope(self):
        self.manager.open(self.scope, lambda view: None)
        self.manager.open(self.scope, lambda view: None)

        assert self.feed.subscriber_count(COMPANY_ID) == 1
        assert self.manager.viewer_count(self.scope) == 2
        assert self.store.fetches == 1

    def test_new_viewer_gets_cached_view(self):
        first, second = [], []
        self.store.rows = [listing("10")]
        self.manager.open(self.scope, first.append)
        self.manager.open(self.scope, second.append)

        assert second[0] is first[0]

    def test_event_refetches_and_fans_out(self):
        a, b = [], []
        self.manager.open(self.scope, a.append)
        self.manager.open(self.scope, b.append)

        self.store.rows = [listing("40"), listing("60", ExpenseStatus.APPROVED)]
        self.feed.publish(event())

        assert a[-1] is b[-1]
        view = a[-1]
        assert view.version == 2
        assert view.current.total_amount == Decimal("100")
        assert view.current.approved_amount == Decimal("60")
        assert len(view.listings) == 2

    def test_deltas_against_previous_view(self):
        views = []
        self.store.rows = [listing("100")]
        self.manager.open(self.scope, views.append)

        self.store.rows = [listing("100"), listing("50")]
        self.feed.publish(event())

        assert views[-1].statistics.deltas.total_amount == 50
        assert views[-1].statistics.previous.total_amount == Decimal("100")

    def test_scopes_are_independent(self):
        other_scope = ScopeKey(COMPANY_ID, employee_id=uuid4())
        self.manager.open(self.scope, lambda view: None)
        self.manager.open(other_scope, lambda view: None)

        self.feed.publish(event())

        # two scopes, each fetched on open and on the event
        assert self.store.fetches == 4
        assert self.feed.subscriber_count(COMPANY_ID) == 2

    def test_other_company_event_ignored(self):
        self.manager.open(self.scope, lambda view: None)
        self.feed.publish(event(company_id=uuid4()))
        assert self.store.fetches == 1

    def test_failing_viewer_isolated(self):
        received = []

        def broken(_):
            raise RuntimeError("render failed")

        self.manager.open(self.scope, broken)
        self.manager.open(self.scope, received.append)
        self.feed.publish(event())

        assert [view.version for view in received] == [1, 2]

    def test_failed_refetch_keeps_last_view(self):
        views = []
        self.manager.open(self.scope, views.append)
        self.store.fail = True

        result = self.manager.refresh(self.scope)

        assert result is views[-1]
        assert len(views) == 1

    def test_last_close_tears_down(self):
        tracker = StatisticsTracker()
        manager = SubscriptionManager(self.feed, self.store, tracker)
        first = manager.open(self.scope, lambda view: None)
        second = manager.open(self.scope, lambda view: None)

        first.close()
        assert self.feed.subscriber_count(COMPANY_ID) == 1

        second.close()
        assert self.feed.subscriber_count(COMPANY_ID) == 0
        assert manager.active_scopes() == []
        assert tracker.snapshot(self.scope) is None

    def test_refresh_unknown_scope(self):
        assert self.manager.refresh(ScopeKey(uuid4())) is None


class TestEndToEnd:
    def test_submission_reaches_viewers(self, expense_manager, change_feed, employee, manager):
        subscriptions = SubscriptionManager(change_feed, expense_manager.list_scope)
        team_views, own_views = [], []
        subscriptions.open(ScopeKey(employee.company_id, manager_id=manager.id), team_views.append)
        subscriptions.open(ScopeKey(employee.company_id, employee_id=employee.id), own_views.append)

        expense = expense_manager.submit(
            employee_id=employee.id,
            company_id=employee.company_id,
            amount="42.00",
            currency="USD",
            category="Meals",
            expense_date="2026-01-30",
        )

        assert [row.expense.id for row in team_views[-1].listings] == [expense.id]
        assert own_views[-1].current.pending_amount == Decimal("42.00")

        expense_manager.apply_decision(expense.id, "approved", manager.id)

        assert own_views[-1].current.approved_amount == Decimal("42.00")
        assert own_views[-1].statistics.deltas.pending_amount == -100

    def test_failed_submission_publishes_nothing(self, expense_manager, change_feed, employee):
        events = []
        change_feed.subscribe(employee.company_id, events.append)

        with pytest.raises(ValidationError):
            expense_manager.submit(
                employee_id=employee.id,
                company_id=employee.company_id,
                amount="-1",
                currency="USD",
                category="Meals",
                expense_date="2026-01-30",
            )

        assert events == []
