"""ORM models for the expense kernel."""

from expense_kernel.models.approval import ApprovalModel, ApprovalRuleModel
from expense_kernel.models.company import CompanyModel
from expense_kernel.models.expense import ExpenseModel
from expense_kernel.models.profile import ProfileModel, UserRoleModel

__all__ = [
    "CompanyModel",
    "ProfileModel",
    "UserRoleModel",
    "ExpenseModel",
    "ApprovalModel",
    "ApprovalRuleModel",
]
