"""
Module: expense_kernel.selectors.profile_selector
Responsibility: Read-side queries for companies and profiles.
Architecture position: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.org import Company, Profile
from expense_kernel.models.company import CompanyModel
from expense_kernel.models.profile import ProfileModel
from expense_kernel.selectors.base import BaseSelector


class ProfileSelector(BaseSelector):
    """Queries over companies and user profiles."""

    def get_company(self, company_id: UUID) -> Company | None:
        model = self.session.get(CompanyModel, company_id)
        return model.to_dto() if model is not None else None

    def get_profile(self, user_id: UUID) -> Profile | None:
        model = self.session.get(ProfileModel, user_id)
        return model.to_dto() if model is not None else None

    def list_profiles(self, company_id: UUID, include_inactive: bool = True) -> list[Profile]:
        stmt = select(ProfileModel).where(ProfileModel.company_id == company_id)
        if not include_inactive:
            stmt = stmt.where(ProfileModel.is_active.is_(True))
        stmt = stmt.order_by(ProfileModel.full_name, ProfileModel.id)
        return [m.to_dto() for m in self.session.scalars(stmt)]

    def direct_reports(self, manager_id: UUID) -> list[Profile]:
        models = self.session.scalars(
            select(ProfileModel)
            .where(ProfileModel.manager_id == manager_id)
            .order_by(ProfileModel.full_name, ProfileModel.id)
        )
        return [m.to_dto() for m in models]
