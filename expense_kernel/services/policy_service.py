"""
expense_kernel.services.policy_service -- Approval policy administration.

Responsibility:
    Creates, supersedes, deactivates and loads the versioned approval
    policies of a company.  Exactly one policy per company is active at a
    time; it is the one new claims bind to at submission.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, utils/.

Invariants enforced:
    - Single active policy: ``create_policy`` deactivates every active
      policy of the company and flushes before inserting the new one, all
      inside the caller's transaction.  The partial unique index on
      approval_policies backs this up at the database.
    - Versions are allocated ``max(version) + 1`` per company.
    - Snapshot stability: an existing policy row is never edited;
      ``update_policy`` inserts a new version instead, so claims bound to
      the old row keep being evaluated against the rules they were
      submitted under.
    - Tamper evidence: ``policy_hash`` is computed at creation and
      verified whenever a policy is loaded by id.

Failure modes:
    - InvalidPolicyError on quorum outside [0, 100] or duplicate approvers.
    - CompanyNotFoundError / UserNotFoundError on unknown references.
    - PolicyNotFoundError if policy_id is unknown.
    - PolicyTamperDetectedError on hash mismatch.
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import func, select

from expense_kernel.domain.approval import ApprovalPolicy
from expense_kernel.exceptions import (
    CompanyNotFoundError,
    PolicyNotFoundError,
    PolicyTamperDetectedError,
    UserNotFoundError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.company import CompanyModel, UserModel
from expense_kernel.models.policy import (
    APPROVER_KIND_OVERRIDE,
    APPROVER_KIND_REQUIRED,
    ApprovalPolicyModel,
    PolicyApproverModel,
)
from expense_kernel.services.base import BaseService
from expense_kernel.utils.hashing import hash_policy

logger = get_logger("services.policy")


def _policy_hash(policy: ApprovalPolicy) -> str:
    return hash_policy(
        policy_id=policy.policy_id,
        company_id=policy.company_id,
        version=policy.version,
        required_approvers=policy.required_approvers,
        include_manager_approver=policy.include_manager_approver,
        sequential=policy.sequential,
        quorum_percentage=policy.quorum_percentage,
        override_approvers=policy.override_approvers,
    )


class PolicyService(BaseService[ApprovalPolicyModel]):
    """Manages the approval policy versions of each company."""

    def create_policy(
        self,
        company_id: UUID,
        name: str,
        *,
        required_approvers: Iterable[UUID] = (),
        include_manager_approver: bool = True,
        sequential: bool = False,
        quorum_percentage: int = 100,
        override_approvers: Iterable[UUID] = (),
        description: str = "",
        actor_id: UUID | None = None,
    ) -> ApprovalPolicy:
        """
        Create a new active policy, deactivating the company's current one.

        Args:
            company_id: Owning company.
            name: Display name.
            required_approvers: Ordered approver user ids.
            include_manager_approver: Prepend the employee's manager.
            sequential: Approvers act one at a time, in order.
            quorum_percentage: Percentage of approvals needed (0-100).
            override_approvers: Users whose approval closes the claim.
            description: Free text.
            actor_id: Admin performing the change, for the audit log.

        Returns:
            The new ApprovalPolicy snapshot.
        """
        if self.session.get(CompanyModel, company_id) is None:
            raise CompanyNotFoundError(str(company_id))

        required = tuple(required_approvers)
        overrides = frozenset(override_approvers)
        self._check_company_users(company_id, set(required) | overrides)

        policy = ApprovalPolicy(
            policy_id=uuid4(),
            company_id=company_id,
            name=name,
            required_approvers=required,
            include_manager_approver=include_manager_approver,
            sequential=sequential,
            quorum_percentage=quorum_percentage,
            override_approvers=overrides,
            version=self._next_version(company_id),
            description=description,
        )

        now = self.clock.now()
        superseded = self._deactivate_active(company_id)

        model = ApprovalPolicyModel(
            id=policy.policy_id,
            company_id=company_id,
            name=name,
            description=description,
            version=policy.version,
            include_manager_approver=include_manager_approver,
            sequential=sequential,
            quorum_percentage=quorum_percentage,
            is_active=True,
            policy_hash=_policy_hash(policy),
            created_by_id=actor_id,
            created_at=now,
        )
        model.approvers = [
            PolicyApproverModel(user_id=uid, kind=APPROVER_KIND_REQUIRED, position=i)
            for i, uid in enumerate(required)
        ] + [
            PolicyApproverModel(user_id=uid, kind=APPROVER_KIND_OVERRIDE, position=i)
            for i, uid in enumerate(sorted(overrides, key=str))
        ]
        self.session.add(model)
        self.session.flush()

        logger.info(
            "policy_created",
            extra={
                "company_id": str(company_id),
                "policy_id": str(model.id),
                "version": model.version,
                "sequential": sequential,
                "quorum_percentage": quorum_percentage,
                "approver_count": len(required),
                "override_count": len(overrides),
                "superseded": [str(p) for p in superseded],
            },
        )
        return model.to_dto()

    def update_policy(
        self,
        policy_id: UUID,
        *,
        actor_id: UUID | None = None,
        **changes,
    ) -> ApprovalPolicy:
        """
        Supersede a policy with an edited copy.

        ``changes`` accepts any keyword of ``create_policy`` (name,
        required_approvers, include_manager_approver, sequential,
        quorum_percentage, override_approvers, description).  Unchanged
        fields are carried over.  The new version becomes the company's
        active policy; the original row is left as-is apart from being
        deactivated.
        """
        current = self._load_verified(policy_id)
        allowed = {
            "name",
            "required_approvers",
            "include_manager_approver",
            "sequential",
            "quorum_percentage",
            "override_approvers",
            "description",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise TypeError(f"update_policy got unexpected fields: {sorted(unknown)}")

        fields = {
            "name": current.name,
            "required_approvers": current.required_approvers,
            "include_manager_approver": current.include_manager_approver,
            "sequential": current.sequential,
            "quorum_percentage": current.quorum_percentage,
            "override_approvers": current.override_approvers,
            "description": current.description,
        }
        fields.update(changes)
        name = fields.pop("name")

        new_policy = self.create_policy(
            current.company_id, name, actor_id=actor_id, **fields,
        )
        logger.info(
            "policy_superseded",
            extra={
                "old_policy_id": str(policy_id),
                "new_policy_id": str(new_policy.policy_id),
                "new_version": new_policy.version,
            },
        )
        return new_policy

    def deactivate_policy(self, policy_id: UUID) -> ApprovalPolicy:
        """Deactivate a policy.  Claims already bound to it are unaffected."""
        model = self._get_model(policy_id)
        if model.is_active:
            model.is_active = False
            model.deactivated_at = self.clock.now()
            self.session.flush()
            logger.info(
                "policy_deactivated",
                extra={"policy_id": str(policy_id), "company_id": str(model.company_id)},
            )
        return model.to_dto()

    def get_active_policy(self, company_id: UUID) -> ApprovalPolicy | None:
        """The company's active policy, or None if none is configured."""
        model = self.session.execute(
            select(ApprovalPolicyModel).where(
                ApprovalPolicyModel.company_id == company_id,
                ApprovalPolicyModel.is_active == True,  # noqa: E712
            )
        ).scalar_one_or_none()
        if model is None:
            return None
        return self._verify(model)

    def get_policy(self, policy_id: UUID) -> ApprovalPolicy:
        """
        Load a policy by id, active or not.

        Raises:
            PolicyNotFoundError: Unknown id.
            PolicyTamperDetectedError: Stored hash does not match the row.
        """
        return self._load_verified(policy_id)

    def list_policies(
        self,
        company_id: UUID,
        include_inactive: bool = True,
    ) -> list[ApprovalPolicy]:
        """Policies of a company, newest version first."""
        stmt = select(ApprovalPolicyModel).where(
            ApprovalPolicyModel.company_id == company_id,
        )
        if not include_inactive:
            stmt = stmt.where(ApprovalPolicyModel.is_active == True)  # noqa: E712
        stmt = stmt.order_by(ApprovalPolicyModel.version.desc())
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_model(self, policy_id: UUID) -> ApprovalPolicyModel:
        model = self.session.get(ApprovalPolicyModel, policy_id)
        if model is None:
            raise PolicyNotFoundError(str(policy_id))
        return model

    def _load_verified(self, policy_id: UUID) -> ApprovalPolicy:
        return self._verify(self._get_model(policy_id))

    def _verify(self, model: ApprovalPolicyModel) -> ApprovalPolicy:
        policy = model.to_dto()
        computed = _policy_hash(policy)
        if computed != model.policy_hash:
            logger.error(
                "policy_tamper_detected",
                extra={
                    "policy_id": str(model.id),
                    "expected_hash": model.policy_hash,
                    "computed_hash": computed,
                },
            )
            raise PolicyTamperDetectedError(str(model.id), model.policy_hash, computed)
        return policy

    def _next_version(self, company_id: UUID) -> int:
        current = self.session.execute(
            select(func.max(ApprovalPolicyModel.version)).where(
                ApprovalPolicyModel.company_id == company_id,
            )
        ).scalar_one()
        return (current or 0) + 1

    def _deactivate_active(self, company_id: UUID) -> list[UUID]:
        """Lock and deactivate every active policy of the company."""
        active = self.session.execute(
            select(ApprovalPolicyModel)
            .where(
                ApprovalPolicyModel.company_id == company_id,
                ApprovalPolicyModel.is_active == True,  # noqa: E712
            )
            .with_for_update()
        ).scalars().all()
        now = self.clock.now()
        for model in active:
            model.is_active = False
            model.deactivated_at = now
        self.session.flush()
        return [m.id for m in active]

    def _check_company_users(self, company_id: UUID, user_ids: set[UUID]) -> None:
        if not user_ids:
            return
        found = set(
            self.session.execute(
                select(UserModel.id).where(
                    UserModel.id.in_(user_ids),
                    UserModel.company_id == company_id,
                )
            ).scalars().all()
        )
        missing = sorted((user_ids - found), key=str)
        if missing:
            raise UserNotFoundError(str(missing[0]))
