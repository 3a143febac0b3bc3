"""
Access Policy (``expense_engines.access``).

Pure predicates deciding who may do what.  Every check asks for a
capability or ownership, never for an exact role, because a user can hold
several roles at once.

Company scoping is part of every predicate: an actor never passes a check
for a resource of another company.

Managers may view every expense of their company, not only those of their
reports.  Narrowing that to the reporting chain is a policy change, not a
code change, and would live here.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from expense_engines.workflow import check_decision
from expense_kernel.domain.approval import Approval
from expense_kernel.domain.expense import Expense
from expense_kernel.domain.org import Actor, Capability


def has_capability(actor: Actor, capability: Capability) -> bool:
    return actor.is_active and actor.has_capability(capability)


def can_submit_expense(actor: Actor, company_id: UUID) -> bool:
    return (
        actor.company_id == company_id
        and has_capability(actor, Capability.SUBMIT_EXPENSE)
    )


def can_view_expense(actor: Actor, expense: Expense) -> bool:
    if actor.company_id != expense.company_id or not actor.is_active:
        return False
    if expense.employee_id == actor.user_id:
        return True
    return has_capability(actor, Capability.VIEW_COMPANY_EXPENSES)


def can_decide(
    actor: Actor,
    approval: Approval,
    siblings: Sequence[Approval] = (),
) -> bool:
    """Actor is the approver, the row is pending and earlier tiers are done."""
    if not actor.is_active or approval.approver_id != actor.user_id:
        return False
    if not approval.is_pending:
        return False
    return check_decision(approval, siblings).allowed


def can_manage_users(actor: Actor) -> bool:
    return has_capability(actor, Capability.MANAGE_USERS)


def can_manage_rules(actor: Actor) -> bool:
    return has_capability(actor, Capability.MANAGE_APPROVAL_RULES)


def can_override(actor: Actor, expense: Expense) -> bool:
    return (
        actor.company_id == expense.company_id
        and has_capability(actor, Capability.OVERRIDE_EXPENSE)
    )
