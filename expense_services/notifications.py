"""
expense_services.notifications -- User-facing outcome of an operation.

Responsibility:
    The operation boundary.  ``run_user_action`` runs one user-initiated
    operation and turns its outcome into a ``Notification``:

    * validation problems come back field by field so they can be shown
      inline,
    * authorization failures become a generic denial,
    * state, lookup, conflict and workflow errors keep their message,
    * store and transport failures are logged with traceback and shown as
      a generic "try again" without internal detail.

    Nothing is retried here; retries are user-initiated.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from expense_kernel.exceptions import (
    ConflictError,
    ExpenseKernelError,
    ForbiddenError,
    InvalidReceiptError,
    InvalidStateError,
    NoApproverFoundError,
    NotFoundError,
    ReceiptUploadError,
    ValidationError,
)
from expense_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

T = TypeVar("T")

GENERIC_DENIAL = "You do not have permission to do that."
GENERIC_FAILURE = "Something went wrong. Please try again."


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification(Generic[T]):
    level: NotificationLevel
    title: str
    message: str = ""
    code: str | None = None
    field_errors: dict[str, str] = field(default_factory=dict)
    result: T | None = None

    @property
    def ok(self) -> bool:
        return self.level == NotificationLevel.SUCCESS


def to_notification(exc: ExpenseKernelError) -> Notification[Any]:
    """Map a kernel error to what the user is shown."""
    if isinstance(exc, ValidationError):
        return Notification(
            NotificationLevel.ERROR,
            "Please check the highlighted fields",
            code=exc.code,
            field_errors=dict(exc.field_errors),
        )
    if isinstance(exc, InvalidReceiptError):
        return Notification(
            NotificationLevel.ERROR,
            "Invalid receipt",
            exc.reason,
            code=exc.code,
            field_errors={"receipt": exc.reason},
        )
    if isinstance(exc, ForbiddenError):
        return Notification(NotificationLevel.ERROR, "Not allowed", GENERIC_DENIAL, code=exc.code)
    if isinstance(exc, ReceiptUploadError):
        return Notification(
            NotificationLevel.ERROR,
            "Receipt upload failed",
            "Your receipt could not be uploaded. Please try again.",
            code=exc.code,
        )
    if isinstance(exc, ConflictError):
        return Notification(
            NotificationLevel.ERROR,
            "Already changed",
            "Someone else changed this while you were looking. Refresh and try again.",
            code=exc.code,
        )
    if isinstance(exc, NoApproverFoundError):
        return Notification(
            NotificationLevel.ERROR,
            "No approver available",
            "No one can approve this expense yet. Ask an admin to set your manager.",
            code=exc.code,
        )
    if isinstance(exc, InvalidStateError):
        return Notification(NotificationLevel.ERROR, "Action not available", exc.reason, code=exc.code)
    if isinstance(exc, NotFoundError):
        return Notification(
            NotificationLevel.ERROR,
            "Not found",
            f"{exc.entity_type} could not be found.",
            code=exc.code,
        )
    return Notification(NotificationLevel.ERROR, "Request failed", str(exc), code=exc.code)


def run_user_action(
    action: str,
    operation: Callable[[], T],
    success_title: str = "Done",
    success_message: str = "",
) -> Notification[T]:
    """Run ``operation`` and report its outcome as a notification."""
    try:
        result = operation()
    except ExpenseKernelError as exc:
        logger.info(
            "user_action_rejected",
            extra={"action": action, "error_code": exc.code},
        )
        return to_notification(exc)
    except (SQLAlchemyError, OSError):
        logger.exception("user_action_failed", extra={"action": action})
        return Notification(NotificationLevel.ERROR, "Error", GENERIC_FAILURE)

    return Notification(
        NotificationLevel.SUCCESS,
        success_title,
        success_message,
        result=result,
    )
