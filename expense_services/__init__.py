"""
expense_services -- Package init and public API.

Responsibility:
    Stateful orchestration over the pure engines (expense_engines/) and the
    kernel (expense_kernel/).  This is the only layer that owns transaction
    boundaries, talks to receipt storage, or publishes change events.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        expense_services/ -> expense_engines/  (allowed)
        expense_services/ -> expense_kernel/   (allowed)
        expense_engines/  -> expense_services/ (FORBIDDEN)
        expense_kernel/   -> expense_services/ (FORBIDDEN)

Invariants enforced:
    - Every public write commits on success and rolls back on failure.
    - Change events are published only after a commit.
"""

from expense_kernel.logging_config import get_logger

logger = get_logger("services")

from expense_services.approval_workflow import ApprovalWorkflowService, DecisionResult
from expense_services.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeOperation,
    ScopeKey,
    ScopeView,
    SubscriptionManager,
)
from expense_services.dashboard import StatisticsTracker, StatisticsUpdate
from expense_services.expense_manager import ExpenseManager
from expense_services.notifications import (
    Notification,
    NotificationLevel,
    run_user_action,
    to_notification,
)
from expense_services.receipts import (
    LocalObjectStore,
    ObjectStore,
    ReceiptService,
    ReceiptUpload,
)
from expense_services.user_admin import UserAdministration, load_actor

__all__ = [
    "ApprovalWorkflowService",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeOperation",
    "DecisionResult",
    "ExpenseManager",
    "LocalObjectStore",
    "Notification",
    "NotificationLevel",
    "ObjectStore",
    "ReceiptService",
    "ReceiptUpload",
    "ScopeKey",
    "ScopeView",
    "StatisticsTracker",
    "StatisticsUpdate",
    "SubscriptionManager",
    "UserAdministration",
    "load_actor",
    "run_user_action",
    "to_notification",
]
