"""
Organization domain types (``expense_kernel.domain.org``).

Responsibility
--------------
Pure value objects for tenants, user profiles, roles, and the capability
model used by the access policy.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* A user may hold several roles at once; authorization asks "has
  capability X", never "is exactly role Y".
* ``ROLE_CAPABILITIES`` is the only mapping from roles to capabilities.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """Application roles stored in ``user_roles``."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class Capability(str, Enum):
    """Actions gated by the access policy."""

    SUBMIT_EXPENSE = "submit_expense"
    VIEW_COMPANY_EXPENSES = "view_company_expenses"
    APPROVE_EXPENSE = "approve_expense"
    OVERRIDE_EXPENSE = "override_expense"
    MANAGE_USERS = "manage_users"
    MANAGE_APPROVAL_RULES = "manage_approval_rules"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.EMPLOYEE: frozenset({
        Capability.SUBMIT_EXPENSE,
    }),
    Role.MANAGER: frozenset({
        Capability.SUBMIT_EXPENSE,
        Capability.VIEW_COMPANY_EXPENSES,
        Capability.APPROVE_EXPENSE,
    }),
    Role.ADMIN: frozenset({
        Capability.SUBMIT_EXPENSE,
        Capability.VIEW_COMPANY_EXPENSES,
        Capability.APPROVE_EXPENSE,
        Capability.OVERRIDE_EXPENSE,
        Capability.MANAGE_USERS,
        Capability.MANAGE_APPROVAL_RULES,
    }),
}


def capabilities_for(roles: frozenset[Role] | set[Role]) -> frozenset[Capability]:
    """Union of the capabilities granted by every held role."""
    granted: set[Capability] = set()
    for role in roles:
        granted |= ROLE_CAPABILITIES.get(role, frozenset())
    return frozenset(granted)


@dataclass(frozen=True)
class Company:
    """Tenant boundary for all business data."""

    id: UUID
    name: str
    currency: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class Profile:
    """A user of one company.  ``id`` is shared with the identity provider."""

    id: UUID
    company_id: UUID
    full_name: str
    email: str
    manager_id: UUID | None = None
    is_active: bool = True
    roles: frozenset[Role] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    user_id: UUID
    company_id: UUID
    roles: frozenset[Role] = field(default_factory=frozenset)
    is_active: bool = True

    @property
    def capabilities(self) -> frozenset[Capability]:
        return capabilities_for(self.roles)

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @classmethod
    def from_profile(cls, profile: Profile) -> Actor:
        return cls(
            user_id=profile.id,
            company_id=profile.company_id,
            roles=profile.roles,
            is_active=profile.is_active,
        )
