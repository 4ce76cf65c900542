"""
Module: expense_kernel.models.policy
Responsibility: ORM persistence for versioned approval policies and their
    ordered approver lists.
Architecture position: Kernel > Models.  May import from db/base.py only
    (plus domain DTO types for to_dto()).

Invariants enforced:
    - At most one active policy per company (partial unique index
      ix_approval_policies_one_active).
    - (company_id, version) unique; versions are allocated max + 1 by
      PolicyService.
    - quorum_percentage within [0, 100] (check constraint).
    - An approver appears at most once per (policy, kind); required
      approvers keep their configured order via ``position``.

Failure modes:
    - IntegrityError when a second active policy is inserted without the
      previous one being deactivated first.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_kernel.db.base import Base, UUIDString
from expense_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from expense_kernel.domain.approval import ApprovalPolicy


APPROVER_KIND_REQUIRED = "required"
APPROVER_KIND_OVERRIDE = "override"


class ApprovalPolicyModel(Base):
    """Persistent approval policy version.

    Rows are never edited in place once created: an update inserts a new
    version and deactivates this one, so claims bound to this row keep
    their original rules.
    """

    __tablename__ = "approval_policies"

    __table_args__ = (
        CheckConstraint(
            "quorum_percentage >= 0 AND quorum_percentage <= 100",
            name="ck_approval_policies_quorum_range",
        ),
        UniqueConstraint(
            "company_id", "version",
            name="uq_approval_policies_company_version",
        ),
        Index(
            "ix_approval_policies_one_active",
            "company_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    include_manager_approver: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
    )
    sequential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quorum_percentage: Mapped[int] = mapped_column(nullable=False, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    policy_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    approvers: Mapped[list["PolicyApproverModel"]] = relationship(
        "PolicyApproverModel",
        back_populates="policy",
        order_by="PolicyApproverModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalPolicy {self.id} {self.name!r} v{self.version} "
            f"active={self.is_active}>"
        )

    @property
    def required_approver_ids(self) -> tuple[UUID, ...]:
        return tuple(
            a.user_id for a in self.approvers if a.kind == APPROVER_KIND_REQUIRED
        )

    @property
    def override_approver_ids(self) -> frozenset[UUID]:
        return frozenset(
            a.user_id for a in self.approvers if a.kind == APPROVER_KIND_OVERRIDE
        )

    def to_dto(self) -> ApprovalPolicy:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.approval import ApprovalPolicy as PolicyDTO

        return PolicyDTO(
            policy_id=self.id,
            company_id=self.company_id,
            name=self.name,
            required_approvers=self.required_approver_ids,
            include_manager_approver=self.include_manager_approver,
            sequential=self.sequential,
            quorum_percentage=self.quorum_percentage,
            override_approvers=self.override_approver_ids,
            version=self.version,
            description=self.description,
            is_active=self.is_active,
            policy_hash=self.policy_hash,
        )


class PolicyApproverModel(Base):
    """One approver entry on a policy: a required or an override approver."""

    __tablename__ = "approval_policy_approvers"

    __table_args__ = (
        CheckConstraint(
            "kind IN ('required', 'override')",
            name="ck_policy_approvers_valid_kind",
        ),
        UniqueConstraint(
            "policy_id", "kind", "user_id",
            name="uq_policy_approvers_member",
        ),
        Index("ix_policy_approvers_policy", "policy_id"),
    )

    policy_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_policies.id"), nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False, default=0)

    policy: Mapped["ApprovalPolicyModel"] = relationship(
        "ApprovalPolicyModel", back_populates="approvers",
    )

    def __repr__(self) -> str:
        return f"<PolicyApprover policy={self.policy_id} {self.kind} user={self.user_id}>"


# =============================================================================
# ORM-Level Immutability for Policy Versions
# =============================================================================

_POLICY_MUTABLE_COLUMNS = frozenset({"is_active", "deactivated_at"})


@event.listens_for(ApprovalPolicyModel, "before_update")
def prevent_policy_rule_update(mapper, connection, target):
    """Allow only deactivation on an existing policy version."""
    state = inspect(target)
    changed = [
        attr.key
        for attr in mapper.column_attrs
        if attr.key not in _POLICY_MUTABLE_COLUMNS
        and state.attrs[attr.key].history.has_changes()
    ]
    if changed:
        raise ImmutabilityViolationError(
            entity_type="ApprovalPolicy",
            entity_id=str(target.id),
            reason=f"Policy versions are immutable -- cannot modify {', '.join(sorted(changed))}",
        )


@event.listens_for(PolicyApproverModel, "before_update")
def prevent_policy_approver_update(mapper, connection, target):
    """Prevent edits to a policy's approver list."""
    raise ImmutabilityViolationError(
        entity_type="PolicyApprover",
        entity_id=str(target.id),
        reason="Policy approver lists are immutable -- cannot modify",
    )
