"""
expense_kernel.services.profile_service -- Companies, profiles and roles.

Responsibility:
    Persists tenants, user profiles, role grants and reporting lines.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - A profile's manager belongs to the same company and is never the
      profile itself or one of its reports (no reporting cycles).
    - Role grants are unique per (user, role).
    - Profiles are deactivated, never deleted.

Failure modes:
    - CompanyNotFoundError / ProfileNotFoundError on unknown ids.
    - ValidationError on bad names, currencies, emails or reporting lines.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.org import Company, Profile, Role
from expense_kernel.exceptions import (
    CompanyNotFoundError,
    ProfileNotFoundError,
    ValidationError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.company import CompanyModel
from expense_kernel.models.profile import ProfileModel, UserRoleModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.profile_service")

MAX_REPORTING_DEPTH = 256


def _check_company_fields(name: str | None, currency: str | None) -> dict[str, str]:
    errors: dict[str, str] = {}
    if name is not None and not name.strip():
        errors["name"] = "Company name is required."
    if currency is not None and (len(currency) != 3 or not currency.isalpha()):
        errors["currency"] = "Currency must be a three-letter ISO code."
    return errors


class ProfileService(BaseService):
    """Writes companies, profiles and user roles."""

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    def create_company(self, name: str, currency: str = "USD") -> Company:
        errors = _check_company_fields(name, currency)
        if errors:
            raise ValidationError(errors)

        now = self.clock.now()
        model = CompanyModel(
            name=name.strip(),
            currency=currency.upper(),
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "company_created",
            extra={"company_id": str(model.id), "currency": model.currency},
        )
        return model.to_dto()

    def update_company(
        self,
        company_id: UUID,
        name: str | None = None,
        currency: str | None = None,
    ) -> Company:
        model = self._load_company(company_id)
        errors = _check_company_fields(name, currency)
        if errors:
            raise ValidationError(errors)

        if name is not None:
            model.name = name.strip()
        if currency is not None:
            model.currency = currency.upper()
        model.updated_at = self.clock.now()
        self.session.flush()

        logger.info("company_updated", extra={"company_id": str(company_id)})
        return model.to_dto()

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def create_profile(
        self,
        user_id: UUID,
        company_id: UUID,
        full_name: str,
        email: str,
        roles: Iterable[Role] = (Role.EMPLOYEE,),
        manager_id: UUID | None = None,
    ) -> Profile:
        self._load_company(company_id)

        errors: dict[str, str] = {}
        if not full_name or not full_name.strip():
            errors["full_name"] = "Full name is required."
        if not email or "@" not in email:
            errors["email"] = "A valid email address is required."
        if self.session.get(ProfileModel, user_id) is not None:
            errors["user_id"] = "A profile already exists for this user."
        if errors:
            raise ValidationError(errors)

        now = self.clock.now()
        model = ProfileModel(
            id=user_id,
            company_id=company_id,
            full_name=full_name.strip(),
            email=email.strip().lower(),
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        for role in dict.fromkeys(Role(r) for r in roles):
            model.roles.append(UserRoleModel(role=role.value, created_at=now))
        self.session.add(model)
        self.session.flush()

        if manager_id is not None:
            self.set_manager(user_id, manager_id)

        logger.info(
            "profile_created",
            extra={
                "user_id": str(user_id),
                "company_id": str(company_id),
                "roles": sorted(r.role for r in model.roles),
            },
        )
        return model.to_dto()

    def get_profile(self, user_id: UUID) -> Profile:
        return self._load_profile(user_id).to_dto()

    def grant_role(self, user_id: UUID, role: Role) -> Profile:
        model = self._load_profile(user_id)
        role = Role(role)
        if role not in model.role_set:
            model.roles.append(UserRoleModel(role=role.value, created_at=self.clock.now()))
            model.updated_at = self.clock.now()
            self.session.flush()
            logger.info(
                "role_granted",
                extra={"user_id": str(user_id), "role": role.value},
            )
        return model.to_dto()

    def revoke_role(self, user_id: UUID, role: Role) -> Profile:
        model = self._load_profile(user_id)
        role = Role(role)
        for grant in list(model.roles):
            if grant.role == role.value:
                model.roles.remove(grant)
                model.updated_at = self.clock.now()
                self.session.flush()
                logger.info(
                    "role_revoked",
                    extra={"user_id": str(user_id), "role": role.value},
                )
        return model.to_dto()

    def set_manager(self, user_id: UUID, manager_id: UUID | None) -> Profile:
        model = self._load_profile(user_id)

        if manager_id is not None:
            manager = self._load_profile(manager_id)
            if manager.company_id != model.company_id:
                raise ValidationError({"manager_id": "Manager must belong to the same company."})
            if self._reports_to(manager_id, user_id):
                raise ValidationError({"manager_id": "Reporting lines cannot form a cycle."})

        model.manager_id = manager_id
        model.updated_at = self.clock.now()
        self.session.flush()

        logger.info(
            "manager_assigned",
            extra={
                "user_id": str(user_id),
                "manager_id": str(manager_id) if manager_id else None,
            },
        )
        return model.to_dto()

    def deactivate(self, user_id: UUID) -> Profile:
        model = self._load_profile(user_id)
        if model.is_active:
            model.is_active = False
            model.updated_at = self.clock.now()
            self.session.flush()
            logger.info("profile_deactivated", extra={"user_id": str(user_id)})
        return model.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reports_to(self, start_id: UUID, target_id: UUID) -> bool:
        """Whether ``target_id`` is ``start_id`` or above it in the chain."""
        current: UUID | None = start_id
        seen: set[UUID] = set()
        while current is not None and current not in seen and len(seen) < MAX_REPORTING_DEPTH:
            if current == target_id:
                return True
            seen.add(current)
            current = self.session.scalar(
                select(ProfileModel.manager_id).where(ProfileModel.id == current)
            )
        return False

    def _load_company(self, company_id: UUID) -> CompanyModel:
        model = self.session.get(CompanyModel, company_id)
        if model is None:
            raise CompanyNotFoundError(str(company_id))
        return model

    def _load_profile(self, user_id: UUID) -> ProfileModel:
        model = self.session.get(ProfileModel, user_id)
        if model is None:
            raise ProfileNotFoundError(str(user_id))
        return model
