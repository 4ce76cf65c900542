"""
Service layer for company and user provisioning.

Registers companies together with their first admin, creates and edits
users, and answers the directory questions the approval workflow asks:
who is this employee's manager, is this approver active, who reports to
whom.

Returns CompanyInfo / UserInfo DTOs instead of ORM entities.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from expense_kernel.domain.approval import ActorRole, ApproverRef, EmployeeRef
from expense_kernel.domain.directory import CompanyInfo, UserInfo
from expense_kernel.exceptions import (
    CompanyNotFoundError,
    DuplicateUserError,
    UserInactiveError,
    UserNotFoundError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.company import CompanyModel, UserModel
from expense_kernel.services.base import BaseService

logger = get_logger("services.directory")

_UNSET = object()

APPROVER_ROLES = (ActorRole.ADMIN.value, ActorRole.MANAGER.value)


class DirectoryService(BaseService[UserModel]):
    """
    Service for managing companies and users.

    Users are never deleted: ``deactivate_user`` clears ``is_active`` so
    historical claims and slots keep a valid approver reference.
    """

    def _get_company(self, company_id: UUID) -> CompanyModel:
        company = self.session.get(CompanyModel, company_id)
        if company is None:
            raise CompanyNotFoundError(str(company_id))
        return company

    def _get_user(self, user_id: UUID) -> UserModel:
        user = self.session.get(UserModel, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def _check_email_free(self, email: str) -> None:
        existing = self.session.execute(
            select(UserModel.id).where(UserModel.email == email)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateUserError(email)

    def _resolve_manager(self, company_id: UUID, manager_id: UUID) -> UserModel:
        manager = self.session.get(UserModel, manager_id)
        if manager is None or manager.company_id != company_id:
            raise UserNotFoundError(str(manager_id))
        if not manager.is_active:
            raise UserInactiveError(str(manager_id))
        return manager

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    def register_company(
        self,
        name: str,
        country: str,
        base_currency: str,
        admin_name: str,
        admin_email: str,
    ) -> tuple[CompanyInfo, UserInfo]:
        """
        Create a company and its first admin user.

        Returns:
            (CompanyInfo, UserInfo) for the new company and its admin.

        Raises:
            DuplicateUserError: If the admin email is already registered.
        """
        email = admin_email.strip().lower()
        self._check_email_free(email)

        now = self.clock.now()
        company = CompanyModel(
            name=name,
            country=country,
            base_currency=base_currency.upper(),
            created_at=now,
        )
        self.session.add(company)
        self.session.flush()

        admin = UserModel(
            company_id=company.id,
            name=admin_name,
            email=email,
            role=ActorRole.ADMIN.value,
            created_at=now,
        )
        self.session.add(admin)
        self.session.flush()

        company.admin_id = admin.id
        self.session.flush()

        logger.info(
            "company_registered",
            extra={
                "company_id": str(company.id),
                "admin_id": str(admin.id),
                "base_currency": company.base_currency,
            },
        )
        return company.to_dto(), admin.to_dto()

    def get_company(self, company_id: UUID) -> CompanyInfo:
        """Raises CompanyNotFoundError if the company does not exist."""
        return self._get_company(company_id).to_dto()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        company_id: UUID,
        name: str,
        email: str,
        role: ActorRole = ActorRole.EMPLOYEE,
        manager_id: UUID | None = None,
    ) -> UserInfo:
        """
        Create a user in an existing company.

        Args:
            company_id: Owning company.
            name: Display name.
            email: Login email; stored lower-cased, globally unique.
            role: Admin, manager or employee.
            manager_id: Direct manager; must be an active user of the
                same company.

        Raises:
            CompanyNotFoundError: Unknown company.
            DuplicateUserError: Email already registered.
            UserNotFoundError: Manager missing or in another company.
            UserInactiveError: Manager deactivated.
        """
        self._get_company(company_id)
        normalized = email.strip().lower()
        self._check_email_free(normalized)
        if manager_id is not None:
            self._resolve_manager(company_id, manager_id)

        user = UserModel(
            company_id=company_id,
            name=name,
            email=normalized,
            role=ActorRole(role).value,
            manager_id=manager_id,
            created_at=self.clock.now(),
        )
        self.session.add(user)
        self.session.flush()

        logger.info(
            "user_created",
            extra={
                "company_id": str(company_id),
                "user_id": str(user.id),
                "role": user.role,
                "manager_id": str(manager_id) if manager_id else None,
            },
        )
        return user.to_dto()

    def update_user(
        self,
        user_id: UUID,
        *,
        name: str | None = None,
        role: ActorRole | None = None,
        manager_id: UUID | None | object = _UNSET,
    ) -> UserInfo:
        """
        Edit a user's name, role or manager.

        Pass ``manager_id=None`` to clear the manager; omit it to keep the
        current one.

        Raises:
            UserNotFoundError: Unknown user, or manager missing / in
                another company.
            UserInactiveError: New manager deactivated.
            ValueError: A user cannot be their own manager.
        """
        user = self._get_user(user_id)

        if name is not None:
            user.name = name
        if role is not None:
            user.role = ActorRole(role).value
        if manager_id is not _UNSET:
            if manager_id is not None:
                if manager_id == user.id:
                    raise ValueError("A user cannot be their own manager")
                self._resolve_manager(user.company_id, manager_id)
            user.manager_id = manager_id

        self.session.flush()
        logger.info(
            "user_updated",
            extra={"user_id": str(user.id), "role": user.role},
        )
        return user.to_dto()

    def deactivate_user(self, user_id: UUID) -> UserInfo:
        """Soft-delete a user.  Idempotent."""
        user = self._get_user(user_id)
        if user.is_active:
            user.is_active = False
            self.session.flush()
            logger.info("user_deactivated", extra={"user_id": str(user.id)})
        return user.to_dto()

    def get_user(self, user_id: UUID) -> UserInfo:
        """Raises UserNotFoundError if the user does not exist."""
        return self._get_user(user_id).to_dto()

    def find_user_by_email(self, email: str) -> UserInfo | None:
        user = self.session.execute(
            select(UserModel).where(UserModel.email == email.strip().lower())
        ).scalar_one_or_none()
        return user.to_dto() if user else None

    def list_users(
        self,
        company_id: UUID,
        include_inactive: bool = False,
    ) -> list[UserInfo]:
        stmt = select(UserModel).where(UserModel.company_id == company_id)
        if not include_inactive:
            stmt = stmt.where(UserModel.is_active == True)  # noqa: E712
        stmt = stmt.order_by(UserModel.name, UserModel.email)
        return [u.to_dto() for u in self.session.execute(stmt).scalars().all()]

    def list_managers(self, company_id: UUID) -> list[UserInfo]:
        """Active admins and managers: the users who can be picked as approvers."""
        stmt = (
            select(UserModel)
            .where(
                UserModel.company_id == company_id,
                UserModel.is_active == True,  # noqa: E712
                UserModel.role.in_(APPROVER_ROLES),
            )
            .order_by(UserModel.name, UserModel.email)
        )
        return [u.to_dto() for u in self.session.execute(stmt).scalars().all()]

    def team_member_ids(self, manager_id: UUID) -> tuple[UUID, ...]:
        """Direct reports of ``manager_id`` (active or not)."""
        stmt = (
            select(UserModel.id)
            .where(UserModel.manager_id == manager_id)
            .order_by(UserModel.email)
        )
        return tuple(self.session.execute(stmt).scalars().all())

    # ------------------------------------------------------------------
    # Approval workflow views
    # ------------------------------------------------------------------

    def get_approver_ref(self, user_id: UUID) -> ApproverRef:
        return self.get_user(user_id).as_approver()

    def get_employee_ref(self, user_id: UUID) -> EmployeeRef:
        """
        The employee together with their manager, as seen at submission.

        An inactive manager is still returned (flagged inactive); the
        approval engine decides whether to skip them.
        """
        user = self._get_user(user_id)
        manager = None
        if user.manager_id is not None:
            manager_model = self.session.get(UserModel, user.manager_id)
            if manager_model is not None:
                manager = manager_model.to_dto().as_approver()
        return EmployeeRef(
            user_id=user.id,
            company_id=user.company_id,
            manager=manager,
        )
