"""
Directory DTOs (``expense_kernel.domain.directory``).

Immutable views of companies and users.  Services return these instead of
ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from expense_kernel.domain.approval import ActorRole, ApproverRef


@dataclass(frozen=True)
class CompanyInfo:
    """Immutable DTO for company data."""

    id: UUID
    name: str
    base_currency: str
    country: str
    admin_id: UUID | None
    is_active: bool


@dataclass(frozen=True)
class UserInfo:
    """Immutable DTO for user data."""

    id: UUID
    company_id: UUID
    name: str
    email: str
    role: ActorRole
    manager_id: UUID | None
    is_active: bool

    @property
    def can_approve(self) -> bool:
        return self.is_active and self.role in (ActorRole.ADMIN, ActorRole.MANAGER)

    def as_approver(self) -> ApproverRef:
        return ApproverRef(user_id=self.id, role=self.role, is_active=self.is_active)
