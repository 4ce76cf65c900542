"""
Provision a company from a ``SeedDefinition``.

Creates the company and its admin, then the users in file order (a
manager must appear before their reports), then the policies in file
order.  Runs inside the caller's transaction; nothing is committed here.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from expense_config.bridges import policy_kwargs
from expense_config.schema import SeedDefinition
from expense_kernel.domain.approval import ActorRole, ApprovalPolicy
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.directory import CompanyInfo
from expense_kernel.logging_config import get_logger
from expense_kernel.services.directory_service import DirectoryService
from expense_kernel.services.policy_service import PolicyService

logger = get_logger("config.seed")


@dataclass(frozen=True)
class SeedResult:
    company: CompanyInfo
    user_ids: dict[str, UUID]
    policies: tuple[ApprovalPolicy, ...]

    @property
    def active_policy(self) -> ApprovalPolicy | None:
        return self.policies[-1] if self.policies else None


def seed_company(
    session: Session,
    definition: SeedDefinition,
    clock: Clock | None = None,
) -> SeedResult:
    directory = DirectoryService(session, clock)
    policies = PolicyService(session, clock)

    company, admin = directory.register_company(
        name=definition.company.name,
        country=definition.company.country,
        base_currency=definition.company.base_currency,
        admin_name=definition.company.admin_name,
        admin_email=definition.company.admin_email,
    )
    user_ids: dict[str, UUID] = {admin.email: admin.id}

    for user_def in definition.users:
        manager_id = user_ids[user_def.manager] if user_def.manager else None
        user = directory.create_user(
            company.id,
            name=user_def.name,
            email=user_def.email,
            role=ActorRole(user_def.role),
            manager_id=manager_id,
        )
        user_ids[user.email] = user.id

    created = tuple(
        policies.create_policy(
            company.id, actor_id=admin.id, **policy_kwargs(p, user_ids),
        )
        for p in definition.policies
    )

    logger.info(
        "company_seeded",
        extra={
            "company_id": str(company.id),
            "user_count": len(user_ids),
            "policy_count": len(created),
            "seed_checksum": definition.checksum,
        },
    )
    return SeedResult(company=company, user_ids=user_ids, policies=created)
