"""
Tests for PolicyService.

Covers:
- Creation: validation, version allocation, single active policy per company
- Supersede-on-update: edits create a new version; old rows stay intact
- Deactivation and listing
- Tamper detection via policy_hash
- Snapshot binding: in-flight claims keep their original rules
"""

from uuid import uuid4

import pytest
from sqlalchemy import text

from expense_kernel.domain.approval import ApprovalAction, ClaimStatus
from expense_kernel.exceptions import (
    CompanyNotFoundError,
    InvalidPolicyError,
    NoPolicyConfiguredError,
    PolicyNotFoundError,
    PolicyTamperDetectedError,
    UserNotFoundError,
)


class TestCreatePolicy:
    def test_creates_active_policy(self, policy_service, company, admin, manager):
        policy = policy_service.create_policy(
            company.id,
            "Sequential",
            required_approvers=[manager.id, admin.id],
            include_manager_approver=False,
            sequential=True,
            actor_id=admin.id,
        )

        assert policy.is_active
        assert policy.version == 1
        assert policy.required_approvers == (manager.id, admin.id)
        assert policy.sequential is True
        assert len(policy.policy_hash) == 64
        assert policy_service.get_active_policy(company.id) == policy

    def test_keeps_approver_order(self, create_policy, create_user):
        users = [create_user() for _ in range(4)]
        ordered = [users[2].id, users[0].id, users[3].id, users[1].id]

        policy = create_policy(required_approvers=ordered)

        assert policy.required_approvers == tuple(ordered)

    def test_override_approvers_stored(self, create_policy, admin, manager):
        policy = create_policy(
            required_approvers=[admin.id, manager.id],
            quorum_percentage=60,
            override_approvers=[admin.id],
        )

        assert policy.override_approvers == frozenset({admin.id})
        assert policy.quorum_percentage == 60

    @pytest.mark.parametrize("pct", [-5, 101])
    def test_quorum_out_of_range(self, create_policy, admin, pct):
        with pytest.raises(InvalidPolicyError):
            create_policy(required_approvers=[admin.id], quorum_percentage=pct)

    def test_duplicate_required_approvers(self, create_policy, admin):
        with pytest.raises(InvalidPolicyError):
            create_policy(required_approvers=[admin.id, admin.id])

    def test_unknown_company(self, policy_service):
        with pytest.raises(CompanyNotFoundError):
            policy_service.create_policy(uuid4(), "Nope")

    def test_approver_from_another_company(self, create_policy, directory_service):
        _, foreign_admin = directory_service.register_company(
            "Other Co", "France", "EUR", "Other Admin", "admin@other.com",
        )
        with pytest.raises(UserNotFoundError):
            create_policy(required_approvers=[foreign_admin.id])

    def test_new_policy_supersedes_active(self, policy_service, create_policy, admin, company):
        first = create_policy(name="First", required_approvers=[admin.id])
        second = create_policy(name="Second", required_approvers=[admin.id])

        assert second.version == first.version + 1
        assert policy_service.get_active_policy(company.id).policy_id == second.policy_id
        assert policy_service.get_policy(first.policy_id).is_active is False

    def test_exactly_one_active(self, policy_service, create_policy, admin, company):
        for name in ("A", "B", "C"):
            create_policy(name=name, required_approvers=[admin.id])

        active = policy_service.list_policies(company.id, include_inactive=False)

        assert [p.name for p in active] == ["C"]

    def test_logs_creation(self, create_policy, admin, captured_logs):
        policy = create_policy(required_approvers=[admin.id])

        records = [r for r in captured_logs() if r["message"] == "policy_created"]
        assert records[-1]["policy_id"] == str(policy.policy_id)
        assert records[-1]["version"] == policy.version


class TestUpdatePolicy:
    def test_update_creates_new_version(self, policy_service, create_policy, admin, manager):
        original = create_policy(required_approvers=[admin.id], quorum_percentage=100)

        updated = policy_service.update_policy(
            original.policy_id, quorum_percentage=60, actor_id=admin.id,
        )

        assert updated.policy_id != original.policy_id
        assert updated.version == original.version + 1
        assert updated.quorum_percentage == 60
        assert updated.required_approvers == original.required_approvers
        assert updated.name == original.name

        kept = policy_service.get_policy(original.policy_id)
        assert kept.quorum_percentage == 100
        assert kept.is_active is False

    def test_update_unknown_field(self, policy_service, create_policy, admin):
        policy = create_policy(required_approvers=[admin.id])
        with pytest.raises(TypeError):
            policy_service.update_policy(policy.policy_id, approvers=[admin.id])

    def test_update_unknown_policy(self, policy_service):
        with pytest.raises(PolicyNotFoundError):
            policy_service.update_policy(uuid4(), quorum_percentage=50)

    def test_in_flight_claim_keeps_bound_rules(
        self, policy_service, create_policy, submitted_claim, claim_service,
        admin, manager, create_user,
    ):
        """Changing the policy never changes how a submitted claim is evaluated."""
        other = create_user()
        original = create_policy(required_approvers=[other.id], quorum_percentage=100)
        claim = submitted_claim()

        policy_service.update_policy(original.policy_id, quorum_percentage=50)
        outcome = claim_service.decide(claim.claim_id, manager.id, ApprovalAction.APPROVE)

        assert outcome.state.policy_id == original.policy_id
        assert outcome.state.status == ClaimStatus.AWAITING_APPROVAL

    def test_new_claims_bind_to_new_version(
        self, policy_service, create_policy, submitted_claim, admin,
    ):
        original = create_policy(required_approvers=[admin.id])
        updated = policy_service.update_policy(original.policy_id, sequential=True)

        claim = submitted_claim()

        assert claim.approval.policy_id == updated.policy_id


class TestDeactivateAndList:
    def test_deactivate_leaves_company_without_policy(
        self, policy_service, create_policy, admin, company, submitted_claim,
    ):
        policy = create_policy(required_approvers=[admin.id])

        result = policy_service.deactivate_policy(policy.policy_id)

        assert result.is_active is False
        assert policy_service.get_active_policy(company.id) is None
        with pytest.raises(NoPolicyConfiguredError):
            submitted_claim()

    def test_deactivate_is_idempotent(self, policy_service, create_policy, admin):
        policy = create_policy(required_approvers=[admin.id])
        policy_service.deactivate_policy(policy.policy_id)

        assert policy_service.deactivate_policy(policy.policy_id).is_active is False

    def test_list_newest_first(self, policy_service, create_policy, admin, company):
        for name in ("v1", "v2", "v3"):
            create_policy(name=name, required_approvers=[admin.id])

        versions = [p.version for p in policy_service.list_policies(company.id)]

        assert versions == sorted(versions, reverse=True)
        assert len(versions) == 3

    def test_no_active_policy(self, policy_service, company):
        assert policy_service.get_active_policy(company.id) is None


class TestTamperDetection:
    def test_direct_row_edit_detected(self, session, policy_service, create_policy, admin, captured_logs):
        policy = create_policy(required_approvers=[admin.id], quorum_percentage=100)

        # Raw SQL bypasses the ORM immutability listeners.
        session.execute(
            text("UPDATE approval_policies SET quorum_percentage = 1 WHERE id = :id"),
            {"id": str(policy.policy_id)},
        )
        session.expire_all()

        with pytest.raises(PolicyTamperDetectedError) as exc_info:
            policy_service.get_policy(policy.policy_id)

        assert exc_info.value.expected_hash == policy.policy_hash
        assert any(r["message"] == "policy_tamper_detected" for r in captured_logs())

    def test_unchanged_policy_verifies(self, policy_service, create_policy, admin):
        policy = create_policy(required_approvers=[admin.id])

        assert policy_service.get_policy(policy.policy_id) == policy
