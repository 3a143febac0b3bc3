"""
expense_services.change_feed -- Change events and scoped subscriptions.

Responsibility:
    ``ChangeFeed`` is an in-process publish/subscribe channel keyed by
    company.  ``ExpenseManager`` publishes after each successful commit.

    ``SubscriptionManager`` holds exactly one feed subscription per viewing
    scope ``(company_id, employee_id, manager_id)`` however many viewers
    share it.  On every event for the scope's company it refetches the
    listing, recomputes statistics and fans the resulting ``ScopeView`` out
    to each viewer.  It refetches instead of patching, so a view is always a
    consistent read of the store at refetch time.

Failure modes:
    - A failing subscriber or viewer callback is logged and skipped; the
      rest still receive the event.
    - A failing refetch is logged; viewers keep their last view.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from expense_engines.statistics import ExpenseStatistics
from expense_kernel.domain.expense import ExpenseListing
from expense_kernel.logging_config import get_logger
from expense_services.dashboard import StatisticsTracker, StatisticsUpdate

logger = get_logger("services.change_feed")


class ChangeOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    operation: ChangeOperation
    company_id: UUID
    row_id: UUID
    employee_id: UUID | None = None


Subscriber = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ``ChangeFeed.subscribe``."""

    def __init__(self, feed: ChangeFeed, company_id: UUID, token: int):
        self._feed = feed
        self.company_id = company_id
        self._token = token
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._feed._remove(self.company_id, self._token)
            self.closed = True


class ChangeFeed:
    """Company-scoped publish/subscribe."""

    def __init__(self) -> None:
        self._subscribers: dict[UUID, dict[int, Subscriber]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, company_id: UUID, callback: Subscriber) -> Subscription:
        with self._lock:
            token = next(self._tokens)
            self._subscribers.setdefault(company_id, {})[token] = callback
        return Subscription(self, company_id, token)

    def subscriber_count(self, company_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(company_id, {}))

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event.company_id, {}).values())

        logger.debug(
            "change_published",
            extra={
                "table": event.table,
                "operation": event.operation.value,
                "row_id": str(event.row_id),
                "subscriber_count": len(callbacks),
            },
        )
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "change_subscriber_failed",
                    extra={"table": event.table, "row_id": str(event.row_id)},
                )

    def _remove(self, company_id: UUID, token: int) -> None:
        with self._lock:
            subscribers = self._subscribers.get(company_id)
            if subscribers is None:
                return
            subscribers.pop(token, None)
            if not subscribers:
                del self._subscribers[company_id]


@dataclass(frozen=True)
class ScopeKey:
    company_id: UUID
    employee_id: UUID | None = None
    manager_id: UUID | None = None


@dataclass(frozen=True)
class ScopeView:
    """What every viewer of a scope sees after a refetch."""

    scope: ScopeKey
    listings: tuple[ExpenseListing, ...]
    statistics: StatisticsUpdate
    version: int

    @property
    def current(self) -> ExpenseStatistics:
        return self.statistics.current


Viewer = Callable[[ScopeView], None]
ScopeFetcher = Callable[[ScopeKey], Sequence[ExpenseListing]]


@dataclass
class _ScopeState:
    subscription: Subscription
    viewers: dict[int, Viewer]
    version: int = 0
    last_view: ScopeView | None = None


class ViewerHandle:
    def __init__(self, manager: SubscriptionManager, scope: ScopeKey, token: int):
        self._manager = manager
        self.scope = scope
        self._token = token
        self.closed = False

    def close(self) -> None:
        if not self.closed:
            self._manager._close_viewer(self.scope, self._token)
            self.closed = True


class SubscriptionManager:
    """One feed subscription per scope, fanned out to all its viewers."""

    def __init__(
        self,
        feed: ChangeFeed,
        fetch: ScopeFetcher,
        tracker: StatisticsTracker | None = None,
    ):
        self._feed = feed
        self._fetch = fetch
        self._tracker = tracker or StatisticsTracker()
        self._scopes: dict[ScopeKey, _ScopeState] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()

    def open(self, scope: ScopeKey, viewer: Viewer) -> ViewerHandle:
        """Register a viewer; it immediately receives the current view."""
        with self._lock:
            token = next(self._tokens)
            state = self._scopes.get(scope)
            if state is None:
                subscription = self._feed.subscribe(
                    scope.company_id,
                    lambda event, scope=scope: self._on_event(scope, event),
                )
                state = _ScopeState(subscription=subscription, viewers={})
                self._scopes[scope] = state
                logger.info("scope_subscribed", extra={"scope": str(scope)})
            state.viewers[token] = viewer
            existing = state.last_view

        if existing is None:
            self.refresh(scope)
        else:
            self._deliver(scope, {token: viewer}, existing)
        return ViewerHandle(self, scope, token)

    def refresh(self, scope: ScopeKey) -> ScopeView | None:
        """Refetch the scope and fan the new view out to its viewers."""
        with self._lock:
            state = self._scopes.get(scope)
        if state is None:
            return None

        try:
            listings = tuple(self._fetch(scope))
        except SQLAlchemyError:
            logger.exception("scope_refetch_failed", extra={"scope": str(scope)})
            return state.last_view

        update = self._tracker.update(scope, (row.expense for row in listings))
        with self._lock:
            state.version += 1
            view = ScopeView(
                scope=scope,
                listings=listings,
                statistics=update,
                version=state.version,
            )
            state.last_view = view
            viewers = dict(state.viewers)

        self._deliver(scope, viewers, view)
        return view

    def viewer_count(self, scope: ScopeKey) -> int:
        with self._lock:
            state = self._scopes.get(scope)
            return len(state.viewers) if state else 0

    def active_scopes(self) -> list[ScopeKey]:
        with self._lock:
            return list(self._scopes)

    def _on_event(self, scope: ScopeKey, event: ChangeEvent) -> None:
        self.refresh(scope)

    def _deliver(self, scope: ScopeKey, viewers: dict[int, Viewer], view: ScopeView) -> None:
        for viewer in viewers.values():
            try:
                viewer(view)
            except Exception:
                logger.exception(
                    "scope_viewer_failed",
                    extra={"scope": str(scope), "view_version": view.version},
                )

    def _close_viewer(self, scope: ScopeKey, token: int) -> None:
        with self._lock:
            state = self._scopes.get(scope)
            if state is None:
                return
            state.viewers.pop(token, None)
            if state.viewers:
                return
            del self._scopes[scope]
        state.subscription.close()
        self._tracker.forget(scope)
        logger.info("scope_unsubscribed", extra={"scope": str(scope)})
