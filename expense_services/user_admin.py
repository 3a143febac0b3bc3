"""
expense_services.user_admin -- Companies, users, roles and reporting lines.

Responsibility:
    Admin-facing user management plus profile bootstrap from sign-up
    metadata.  Each public method owns its transaction: commit on
    success, rollback and re-raise on any exception.

Architecture position:
    Services layer.  Persists through ``ProfileService``, reads through
    ``ProfileSelector``, authorizes through ``expense_engines.access``.

Failure modes:
    - ForbiddenError when the acting user is not an admin of the company.
    - ProfileNotFoundError / CompanyNotFoundError on unknown ids.
    - ValidationError on malformed input or a reporting cycle.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from expense_engines.access import can_manage_users
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.org import Actor, Company, Profile, Role
from expense_kernel.exceptions import (
    ForbiddenError,
    ProfileNotFoundError,
    ValidationError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.selectors.profile_selector import ProfileSelector
from expense_kernel.services.profile_service import ProfileService

logger = get_logger("services.user_admin")

T = TypeVar("T")


def load_actor(selector: ProfileSelector, user_id: UUID) -> Actor:
    """The acting user as an ``Actor``, from their profile and roles."""
    profile = selector.get_profile(user_id)
    if profile is None:
        raise ProfileNotFoundError(str(user_id))
    return Actor.from_profile(profile)


def _parse_role(raw: Any) -> Role:
    try:
        return Role(str(raw).strip().lower())
    except ValueError:
        raise ValidationError({"role": f"Unknown role: {raw}."}) from None


def _parse_uuid(field: str, raw: Any) -> UUID:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise ValidationError({field: f"Not a valid id: {raw}."}) from None


class UserAdministration:
    """Transaction-owning user management."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._profiles = ProfileService(session, self._clock)
        self._selector = ProfileSelector(session)

    def _run(self, operation: Callable[[], T]) -> T:
        try:
            result = operation()
            self._session.commit()
            return result
        except Exception:
            self._session.rollback()
            raise

    def _require_admin(self, admin_id: UUID, company_id: UUID, action: str) -> Actor:
        actor = load_actor(self._selector, admin_id)
        if actor.company_id != company_id or not can_manage_users(actor):
            logger.warning(
                "user_admin_denied",
                extra={"actor_id": str(admin_id), "action": action},
            )
            raise ForbiddenError(str(admin_id), action, "admin role required")
        return actor

    def _target_in_company(self, user_id: UUID, company_id: UUID) -> Profile:
        profile = self._selector.get_profile(user_id)
        if profile is None or profile.company_id != company_id:
            raise ProfileNotFoundError(str(user_id))
        return profile

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    def create_company(self, name: str, currency: str = "USD") -> Company:
        return self._run(lambda: self._profiles.create_company(name, currency))

    def update_company(
        self,
        admin_id: UUID,
        company_id: UUID,
        name: str | None = None,
        currency: str | None = None,
    ) -> Company:
        def op() -> Company:
            self._require_admin(admin_id, company_id, "update company")
            return self._profiles.update_company(company_id, name=name, currency=currency)

        return self._run(op)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def bootstrap_profile(
        self,
        user_id: UUID,
        email: str,
        metadata: Mapping[str, Any],
    ) -> Profile:
        """Create a profile and role from sign-up metadata.

        Expected keys: ``full_name``, ``company_id``, ``role`` (defaults to
        employee).  Returns the existing profile when one is already there.
        """
        existing = self._selector.get_profile(user_id)
        if existing is not None:
            return existing

        errors: dict[str, str] = {}
        if not metadata.get("full_name"):
            errors["full_name"] = "Full name is required."
        if not metadata.get("company_id"):
            errors["company_id"] = "Company is required."
        if errors:
            raise ValidationError(errors)

        company_id = _parse_uuid("company_id", metadata["company_id"])
        role = _parse_role(metadata.get("role", Role.EMPLOYEE.value))

        def op() -> Profile:
            return self._profiles.create_profile(
                user_id=user_id,
                company_id=company_id,
                full_name=str(metadata["full_name"]),
                email=email,
                roles=(role,),
            )

        profile = self._run(op)
        logger.info(
            "profile_bootstrapped",
            extra={"user_id": str(user_id), "role": role.value},
        )
        return profile

    def register_user(
        self,
        admin_id: UUID,
        user_id: UUID,
        email: str,
        full_name: str,
        role: Role | str = Role.EMPLOYEE,
        manager_id: UUID | None = None,
    ) -> Profile:
        """Admin adds a user to the admin's own company."""
        parsed_role = _parse_role(role.value if isinstance(role, Role) else role)

        def op() -> Profile:
            admin = load_actor(self._selector, admin_id)
            self._require_admin(admin_id, admin.company_id, "register user")
            if manager_id is not None:
                self._target_in_company(manager_id, admin.company_id)
            return self._profiles.create_profile(
                user_id=user_id,
                company_id=admin.company_id,
                full_name=full_name,
                email=email,
                roles=(parsed_role,),
                manager_id=manager_id,
            )

        with LogContext.bind(actor_id=str(admin_id)):
            return self._run(op)

    def assign_role(self, admin_id: UUID, user_id: UUID, role: Role | str) -> Profile:
        parsed_role = _parse_role(role.value if isinstance(role, Role) else role)

        def op() -> Profile:
            target = self._selector.get_profile(user_id)
            if target is None:
                raise ProfileNotFoundError(str(user_id))
            self._require_admin(admin_id, target.company_id, "assign role")
            return self._profiles.grant_role(user_id, parsed_role)

        return self._run(op)

    def revoke_role(self, admin_id: UUID, user_id: UUID, role: Role | str) -> Profile:
        parsed_role = _parse_role(role.value if isinstance(role, Role) else role)

        def op() -> Profile:
            target = self._selector.get_profile(user_id)
            if target is None:
                raise ProfileNotFoundError(str(user_id))
            self._require_admin(admin_id, target.company_id, "revoke role")
            if user_id == admin_id and parsed_role == Role.ADMIN:
                raise ValidationError({"role": "Admins cannot revoke their own admin role."})
            return self._profiles.revoke_role(user_id, parsed_role)

        return self._run(op)

    def set_manager(self, admin_id: UUID, user_id: UUID, manager_id: UUID | None) -> Profile:
        def op() -> Profile:
            target = self._selector.get_profile(user_id)
            if target is None:
                raise ProfileNotFoundError(str(user_id))
            self._require_admin(admin_id, target.company_id, "set manager")
            return self._profiles.set_manager(user_id, manager_id)

        return self._run(op)

    def deactivate_user(self, admin_id: UUID, user_id: UUID) -> Profile:
        def op() -> Profile:
            target = self._selector.get_profile(user_id)
            if target is None:
                raise ProfileNotFoundError(str(user_id))
            self._require_admin(admin_id, target.company_id, "deactivate user")
            if user_id == admin_id:
                raise ValidationError({"user_id": "Admins cannot deactivate themselves."})
            return self._profiles.deactivate(user_id)

        return self._run(op)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(self, company_id: UUID) -> list[Profile]:
        return self._selector.list_profiles(company_id)

    def get_actor(self, user_id: UUID) -> Actor:
        return load_actor(self._selector, user_id)
