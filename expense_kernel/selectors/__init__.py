"""Kernel selectors -- read-only queries returning domain DTOs."""

from expense_kernel.selectors.base import BaseSelector
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.profile_selector import ProfileSelector

__all__ = [
    "BaseSelector",
    "ExpenseSelector",
    "ProfileSelector",
]
