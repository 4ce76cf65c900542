"""
Tests for DirectoryService: companies, users, reporting lines.
"""

from uuid import uuid4

import pytest

from expense_kernel.domain.approval import ActorRole
from expense_kernel.exceptions import (
    CompanyNotFoundError,
    DuplicateUserError,
    UserInactiveError,
    UserNotFoundError,
)


class TestRegisterCompany:
    def test_creates_company_with_admin(self, company, admin):
        assert company.name == "Demo Company Ltd"
        assert company.base_currency == "USD"
        assert company.admin_id == admin.id
        assert admin.role == ActorRole.ADMIN
        assert admin.company_id == company.id
        assert admin.manager_id is None

    def test_currency_uppercased(self, directory_service):
        company, _ = directory_service.register_company(
            "Lowercase", "India", "inr", "Root", "root@lower.com",
        )
        assert company.base_currency == "INR"

    def test_admin_email_must_be_unique(self, directory_service, admin):
        with pytest.raises(DuplicateUserError):
            directory_service.register_company(
                "Copycat", "Spain", "EUR", "Copy", "ADMIN@demo.com",
            )

    def test_logged(self, directory_service, captured_logs):
        company, _ = directory_service.register_company(
            "Logged Co", "Italy", "EUR", "Logger", "log@logged.com",
        )
        record = next(r for r in captured_logs() if r["message"] == "company_registered")
        assert record["company_id"] == str(company.id)

    def test_unknown_company(self, directory_service):
        with pytest.raises(CompanyNotFoundError):
            directory_service.get_company(uuid4())


class TestUsers:
    def test_create_with_manager(self, employee, manager):
        assert employee.role == ActorRole.EMPLOYEE
        assert employee.manager_id == manager.id
        assert employee.is_active

    def test_email_normalized(self, directory_service, company):
        user = directory_service.create_user(company.id, "Mixed", "  MiXeD@Demo.com ")

        assert user.email == "mixed@demo.com"
        assert directory_service.find_user_by_email("MIXED@demo.com") == user

    def test_duplicate_email(self, directory_service, company, employee):
        with pytest.raises(DuplicateUserError):
            directory_service.create_user(company.id, "Again", "john@demo.com")

    def test_manager_must_exist(self, directory_service, company):
        with pytest.raises(UserNotFoundError):
            directory_service.create_user(company.id, "X", "x@demo.com", manager_id=uuid4())

    def test_manager_from_other_company(self, directory_service, company):
        _, foreign = directory_service.register_company(
            "Far Away", "Japan", "JPY", "Far", "far@away.com",
        )
        with pytest.raises(UserNotFoundError):
            directory_service.create_user(company.id, "X", "x@demo.com", manager_id=foreign.id)

    def test_inactive_manager_rejected(self, directory_service, company, manager):
        directory_service.deactivate_user(manager.id)
        with pytest.raises(UserInactiveError):
            directory_service.create_user(company.id, "X", "x@demo.com", manager_id=manager.id)

    def test_update_role_and_manager(self, directory_service, employee, admin):
        updated = directory_service.update_user(
            employee.id, role=ActorRole.MANAGER, manager_id=admin.id,
        )

        assert updated.role == ActorRole.MANAGER
        assert updated.manager_id == admin.id
        assert updated.can_approve

    def test_update_clears_manager(self, directory_service, employee):
        updated = directory_service.update_user(employee.id, manager_id=None)
        assert updated.manager_id is None

    def test_update_keeps_manager_when_omitted(self, directory_service, employee, manager):
        updated = directory_service.update_user(employee.id, name="Johnny")

        assert updated.name == "Johnny"
        assert updated.manager_id == manager.id

    def test_cannot_manage_self(self, directory_service, manager):
        with pytest.raises(ValueError):
            directory_service.update_user(manager.id, manager_id=manager.id)

    def test_deactivate_idempotent(self, directory_service, employee):
        first = directory_service.deactivate_user(employee.id)
        second = directory_service.deactivate_user(employee.id)

        assert first.is_active is False
        assert second == first

    def test_list_users_hides_inactive(self, directory_service, company, admin, manager, employee):
        directory_service.deactivate_user(employee.id)

        active = {u.id for u in directory_service.list_users(company.id)}
        everyone = {u.id for u in directory_service.list_users(company.id, include_inactive=True)}

        assert active == {admin.id, manager.id}
        assert everyone == {admin.id, manager.id, employee.id}

    def test_list_managers(self, directory_service, company, admin, manager, employee):
        managers = directory_service.list_managers(company.id)
        assert {u.id for u in managers} == {admin.id, manager.id}

    def test_team_member_ids(self, directory_service, manager, employee, other_employee):
        team = directory_service.team_member_ids(manager.id)
        assert set(team) == {employee.id, other_employee.id}


class TestWorkflowViews:
    def test_employee_ref_includes_manager(self, directory_service, employee, manager):
        ref = directory_service.get_employee_ref(employee.id)

        assert ref.user_id == employee.id
        assert ref.manager.user_id == manager.id
        assert ref.manager.role == ActorRole.MANAGER
        assert ref.manager.is_active

    def test_inactive_manager_flagged(self, directory_service, employee, manager):
        directory_service.deactivate_user(manager.id)

        ref = directory_service.get_employee_ref(employee.id)

        assert ref.manager.is_active is False

    def test_no_manager(self, directory_service, admin):
        assert directory_service.get_employee_ref(admin.id).manager is None

    def test_approver_ref(self, directory_service, admin):
        ref = directory_service.get_approver_ref(admin.id)
        assert ref.role == ActorRole.ADMIN
