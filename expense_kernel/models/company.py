"""
Module: expense_kernel.models.company
Responsibility: ORM persistence for companies and their users.
Architecture position: Kernel > Models.  May import from db/base.py only
    (plus domain DTO types for to_dto()).

Invariants enforced:
    - Email is globally unique (uq_users_email).
    - Users are never hard-deleted; deactivation clears is_active.  Inactive
      users cannot record approval decisions and are skipped as managers
      when a claim is submitted.

Failure modes:
    - IntegrityError on duplicate email.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from expense_kernel.domain.directory import CompanyInfo, UserInfo


class CompanyModel(Base):
    """A tenant: approval policies and claims are scoped per company."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    admin_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Company {self.id}: {self.name} ({self.base_currency})>"

    def to_dto(self) -> CompanyInfo:
        from expense_kernel.domain.directory import CompanyInfo

        return CompanyInfo(
            id=self.id,
            name=self.name,
            base_currency=self.base_currency,
            country=self.country,
            admin_id=self.admin_id,
            is_active=self.is_active,
        )


class UserModel(Base):
    """A person in a company: employee, manager or admin."""

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        Index("ix_users_company", "company_id"),
        Index("ix_users_manager", "manager_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="employee")
    manager_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role} active={self.is_active}>"

    def to_dto(self) -> UserInfo:
        from expense_kernel.domain.approval import ActorRole
        from expense_kernel.domain.directory import UserInfo

        return UserInfo(
            id=self.id,
            company_id=self.company_id,
            name=self.name,
            email=self.email,
            role=ActorRole(self.role),
            manager_id=self.manager_id,
            is_active=self.is_active,
        )
