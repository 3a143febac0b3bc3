"""
Module: expense_kernel.models.company
Responsibility: ORM persistence for companies, the tenant boundary.
Architecture position: Kernel > Models.  May import from db/base.py and domain/.

Invariants enforced:
    - Every business row carries a company_id that references this table.
    - Only name and currency change after creation.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TimestampedBase
from expense_kernel.domain.org import Company


class CompanyModel(TimestampedBase):
    """A tenant."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    def __repr__(self) -> str:
        return f"<Company {self.name} ({self.currency})>"

    def to_dto(self) -> Company:
        return Company(
            id=self.id,
            name=self.name,
            currency=self.currency,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
