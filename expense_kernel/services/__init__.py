"""Kernel services -- flush-only writers.  Callers own commit/rollback."""

from expense_kernel.services.approval_service import ApprovalService
from expense_kernel.services.base import BaseService
from expense_kernel.services.expense_service import ExpenseService
from expense_kernel.services.profile_service import ProfileService

__all__ = [
    "BaseService",
    "ApprovalService",
    "ExpenseService",
    "ProfileService",
]
