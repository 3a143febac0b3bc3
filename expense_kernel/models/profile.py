"""
Module: expense_kernel.models.profile
Responsibility: ORM persistence for user profiles and their role grants.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - A profile belongs to exactly one company.
    - manager_id is a nullable self-reference; cycles are rejected by the
      service layer, and the chain walk is bounded regardless.
    - Profiles are never hard-deleted; is_active is the soft lifecycle.
    - UNIQUE(user_id, role): a role is granted at most once per user.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import Base, TimestampedBase, UUIDString
from expense_kernel.domain.org import Profile, Role


class ProfileModel(TimestampedBase):
    """A user of one company.

    The primary key is supplied by the caller so it matches the identity
    provider's user id.
    """

    __tablename__ = "profiles"

    __table_args__ = (
        Index("ix_profiles_company", "company_id"),
        Index("ix_profiles_manager", "manager_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    manager_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("profiles.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    roles: Mapped[list["UserRoleModel"]] = relationship(
        "UserRoleModel",
        back_populates="profile",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Profile {self.full_name} <{self.email}>>"

    @property
    def role_set(self) -> frozenset[Role]:
        return frozenset(Role(r.role) for r in self.roles)

    def to_dto(self) -> Profile:
        return Profile(
            id=self.id,
            company_id=self.company_id,
            full_name=self.full_name,
            email=self.email,
            manager_id=self.manager_id,
            is_active=self.is_active,
            roles=self.role_set,
        )


class UserRoleModel(Base):
    """One role granted to one user."""

    __tablename__ = "user_roles"

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        CheckConstraint(
            "role IN ('admin', 'manager', 'employee')",
            name="ck_user_roles_valid_role",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("profiles.id"), nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    profile: Mapped[ProfileModel] = relationship(
        "ProfileModel", back_populates="roles",
    )

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id} {self.role}>"
