"""
expense_kernel.services.claim_service -- Expense claim lifecycle.

Responsibility:
    Creates draft claims, submits them into the approval workflow, and
    records approver decisions.  All approval logic is delegated to the
    pure engine in ``expense_engines.approval``; this service loads the
    inputs, persists the state the engine returns, writes the audit
    trail, and sends notifications.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the
    approval engine.

Invariants enforced:
    - Atomic decisions: the claim row is locked ``FOR UPDATE`` and
      versioned (optimistic lock), so two concurrent decisions on one
      claim serialize; a lost race surfaces as OptimisticLockError and
      the caller's transaction rolls back.
    - Snapshot binding: decisions are evaluated against the policy the
      claim was bound to at submission, never the company's current one.
    - Terminal claims are never mutated (engine check + ORM listener).
    - Notifications are sent after the state change has been flushed and
      never undo it.

Failure modes:
    - ClaimNotFoundError, ClaimOwnershipError, ClaimNotDraftError,
      InvalidClaimAmountError, ExchangeRateNotFoundError.
    - Everything the engine raises (NoPolicyConfiguredError,
      EmptyApproverListError, ClaimNotAwaitingApprovalError,
      NotAnAuthorizedApproverError, ApproverInactiveError).
    - OptimisticLockError on a concurrent update of the same claim.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expense_engines.approval import (
    actionable_approver_ids,
    approval_progress,
    evaluate_decision,
    initiate,
)
from expense_kernel.domain.approval import (
    ActorRole,
    ApprovalAction,
    ApprovalProgress,
    ClaimApprovalState,
    ClaimStatus,
    DecisionOutcome,
    DecisionRule,
    SlotStatus,
)
from expense_kernel.domain.audit import ClaimAuditAction, ClaimAuditRecord
from expense_kernel.domain.claim import (
    ExchangeRateProvider,
    ExpenseCategory,
    ExpenseClaim,
)
from expense_kernel.domain.clock import Clock
from expense_kernel.exceptions import (
    ClaimNotAwaitingApprovalError,
    ClaimNotFoundError,
    ClaimOwnershipError,
    ExchangeRateNotFoundError,
    InvalidClaimAmountError,
    NotAnAuthorizedApproverError,
    OptimisticLockError,
    UserInactiveError,
    UserNotFoundError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.audit_event import ClaimAuditEventModel
from expense_kernel.models.claim import ApprovalSlotModel, ExpenseClaimModel
from expense_kernel.services.base import BaseService
from expense_kernel.services.directory_service import DirectoryService
from expense_kernel.services.notifications import (
    Notifier,
    NullNotifier,
    notify_safely,
)
from expense_kernel.services.policy_service import PolicyService

logger = get_logger("services.claim")

_TERMINAL_AUDIT_ACTIONS = {
    ClaimStatus.APPROVED: ClaimAuditAction.CLAIM_APPROVED,
    ClaimStatus.REJECTED: ClaimAuditAction.CLAIM_REJECTED,
}


def _to_amount(value: Any) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidClaimAmountError(str(value)) from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidClaimAmountError(str(value))
    return amount


class ClaimService(BaseService[ExpenseClaimModel]):
    """Manages expense claims from draft to final decision."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        rate_provider: ExchangeRateProvider | None = None,
        directory: DirectoryService | None = None,
        policies: PolicyService | None = None,
    ) -> None:
        super().__init__(session, clock)
        self._notifier = notifier or NullNotifier()
        self._rates = rate_provider
        self._directory = directory or DirectoryService(session, self.clock)
        self._policies = policies or PolicyService(session, self.clock)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_claim(
        self,
        employee_id: UUID,
        *,
        description: str,
        category: ExpenseCategory | str,
        amount: Decimal | str | int,
        expense_date: date,
        currency: str | None = None,
        paid_by: str = "Cash",
    ) -> ExpenseClaim:
        """
        Create a draft claim for an employee.

        ``currency`` defaults to the company's base currency.  When it
        differs, the amount is converted with the configured
        ExchangeRateProvider and stored as ``converted_amount``.

        Raises:
            UserNotFoundError / UserInactiveError: Unknown or inactive employee.
            InvalidClaimAmountError: Amount not a positive number.
            ValueError: Unknown category.
            ExchangeRateNotFoundError: No rate for the currency pair.
        """
        employee = self._directory.get_user(employee_id)
        if not employee.is_active:
            raise UserInactiveError(str(employee_id))
        company = self._directory.get_company(employee.company_id)

        value = _to_amount(amount)
        category = ExpenseCategory(category)
        claim_currency = (currency or company.base_currency).upper()
        converted = self._convert(value, claim_currency, company.base_currency)

        now = self.clock.now()
        model = ExpenseClaimModel(
            company_id=company.id,
            employee_id=employee.id,
            description=description,
            category=category.value,
            amount=value,
            currency=claim_currency,
            converted_amount=converted,
            expense_date=expense_date,
            paid_by=paid_by or "Cash",
            status=ClaimStatus.DRAFT.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(model)
        self.session.flush()

        self._audit(
            model.id,
            ClaimAuditAction.CLAIM_CREATED,
            employee.id,
            {
                "amount": str(value),
                "currency": claim_currency,
                "converted_amount": str(converted),
                "category": category.value,
            },
        )
        logger.info(
            "claim_created",
            extra={
                "claim_id": str(model.id),
                "employee_id": str(employee.id),
                "amount": str(value),
                "currency": claim_currency,
            },
        )
        return model.to_dto()

    def submit_claim(self, claim_id: UUID, actor_id: UUID) -> ExpenseClaim:
        """
        Submit a draft claim into the company's active approval workflow.

        Raises:
            ClaimNotFoundError: Unknown claim.
            ClaimOwnershipError: ``actor_id`` is not the claim's employee.
            ClaimNotDraftError: Claim already submitted.
            NoPolicyConfiguredError: Company has no active policy.
            EmptyApproverListError: Policy resolves to no approvers.
        """
        model = self._lock_claim(claim_id)
        with LogContext.bind(
            actor_id=actor_id, claim_id=claim_id, company_id=model.company_id,
        ):
            if model.employee_id != actor_id:
                raise ClaimOwnershipError(str(claim_id), str(actor_id))

            policy = self._policies.get_active_policy(model.company_id)
            employee = self._directory.get_employee_ref(model.employee_id)
            now = self.clock.now()
            state = initiate(
                model.to_approval_state(), policy, employee, submitted_at=now,
            )

            model.apply_approval_state(state, now)
            self._flush(model)

            self._audit(
                model.id,
                ClaimAuditAction.CLAIM_SUBMITTED,
                actor_id,
                {
                    "policy_id": str(policy.policy_id),
                    "policy_version": policy.version,
                    "policy_hash": policy.policy_hash,
                    "approvers": [str(a) for a in state.approver_ids],
                    "sequential": policy.sequential,
                },
            )
            logger.info(
                "claim_submitted",
                extra={
                    "policy_id": str(policy.policy_id),
                    "policy_version": policy.version,
                    "approver_count": len(state.slots),
                    "sequential": policy.sequential,
                },
            )

            claim = model.to_dto()
            notify_safely(
                "claim_submitted", self._notifier.claim_submitted,
                claim.employee_id, claim,
            )
            for approver_id in actionable_approver_ids(state):
                notify_safely(
                    "approval_requested", self._notifier.approval_requested,
                    approver_id, claim,
                )
            return claim

    def decide(
        self,
        claim_id: UUID,
        approver_id: UUID,
        action: ApprovalAction | str,
        comment: str = "",
    ) -> DecisionOutcome:
        """
        Record an approve / reject decision by ``approver_id``.

        The acting user's role and active flag come from the directory; an
        admin's approval overrides the workflow.  Evaluation runs against
        the policy the claim was bound to at submission.

        Returns:
            The engine's DecisionOutcome: the new approval state and the
            rule that settled it.

        Raises:
            ClaimNotFoundError: Unknown claim.
            ClaimNotAwaitingApprovalError: Claim is a draft or closed.
            NotAnAuthorizedApproverError: Unknown user, a user of another
                company, or no actionable slot for the user.
            ApproverInactiveError: The user is deactivated.
            OptimisticLockError: Another decision won the race.
        """
        action = ApprovalAction(action)
        model = self._lock_claim(claim_id)

        with LogContext.bind(
            actor_id=approver_id,
            claim_id=claim_id,
            company_id=model.company_id,
            policy_id=model.policy_id,
        ):
            state = model.to_approval_state()
            if state.status != ClaimStatus.AWAITING_APPROVAL or model.policy_id is None:
                raise ClaimNotAwaitingApprovalError(str(claim_id), model.status)
            try:
                actor = self._directory.get_user(approver_id)
            except UserNotFoundError as exc:
                raise NotAnAuthorizedApproverError(
                    str(claim_id), str(approver_id), "not an approver on this claim",
                ) from exc
            if actor.company_id != model.company_id:
                raise NotAnAuthorizedApproverError(
                    str(claim_id), str(approver_id), "approver belongs to another company",
                )

            policy = self._policies.get_policy(model.policy_id)
            now = self.clock.now()
            outcome = evaluate_decision(
                state,
                policy,
                approver_id,
                action,
                comment,
                actor.role,
                approver_active=actor.is_active,
                decided_at=now,
            )

            model.apply_approval_state(outcome.state, now)
            self._flush(model)

            self._audit(
                model.id,
                ClaimAuditAction.DECISION_RECORDED,
                approver_id,
                {
                    "action": action.value,
                    "comment": comment,
                    "actor_role": actor.role.value,
                    "rule": outcome.rule.value,
                },
            )
            if outcome.is_handoff:
                self._audit(
                    model.id,
                    ClaimAuditAction.APPROVER_HANDOFF,
                    approver_id,
                    {"next_approver_id": str(outcome.next_approver_id)},
                )
            if outcome.is_terminal:
                self._audit(
                    model.id,
                    _TERMINAL_AUDIT_ACTIONS[outcome.state.status],
                    approver_id,
                    {"rule": outcome.rule.value, "comment": comment},
                )

            logger.info(
                "claim_decision_recorded",
                extra={
                    "action": action.value,
                    "rule": outcome.rule.value,
                    "status": outcome.state.status.value,
                    "next_approver_id": (
                        str(outcome.next_approver_id) if outcome.next_approver_id else None
                    ),
                },
            )

            claim = model.to_dto()
            if outcome.is_terminal:
                notify_safely(
                    "claim_decided", self._notifier.claim_decided,
                    claim.employee_id, claim,
                )
            elif outcome.rule == DecisionRule.SEQUENTIAL_HANDOFF:
                notify_safely(
                    "approval_requested", self._notifier.approval_requested,
                    outcome.next_approver_id, claim,
                )
            return outcome

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_claim(self, claim_id: UUID) -> ExpenseClaim:
        return self._get_model(claim_id).to_dto()

    def get_approval_state(self, claim_id: UUID) -> ClaimApprovalState:
        return self._get_model(claim_id).to_approval_state()

    def get_progress(self, claim_id: UUID) -> ApprovalProgress | None:
        """Approval progress against the bound policy; None for drafts."""
        model = self._get_model(claim_id)
        if model.policy_id is None:
            return None
        policy = self._policies.get_policy(model.policy_id)
        return approval_progress(model.to_approval_state(), policy)

    def list_claims_for(self, user_id: UUID) -> list[ExpenseClaim]:
        """
        Claims visible to a user.

        Employees see their own claims, managers their own plus their
        direct reports', admins every claim of their company.
        """
        user = self._directory.get_user(user_id)
        stmt = select(ExpenseClaimModel).where(
            ExpenseClaimModel.company_id == user.company_id,
        )
        if user.role == ActorRole.MANAGER:
            team = (user.id,) + self._directory.team_member_ids(user.id)
            stmt = stmt.where(ExpenseClaimModel.employee_id.in_(team))
        elif user.role != ActorRole.ADMIN:
            stmt = stmt.where(ExpenseClaimModel.employee_id == user.id)
        stmt = stmt.order_by(ExpenseClaimModel.created_at.desc(), ExpenseClaimModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def pending_for_approver(self, user_id: UUID) -> list[ExpenseClaim]:
        """
        Claims waiting on a user.

        Admins see every claim of their company that is awaiting approval.
        Everyone else sees the claims they can act on right now: a pending
        slot, and for sequential claims only when it is their turn.
        """
        user = self._directory.get_user(user_id)
        awaiting = ClaimStatus.AWAITING_APPROVAL.value
        stmt = select(ExpenseClaimModel).where(
            ExpenseClaimModel.company_id == user.company_id,
            ExpenseClaimModel.status == awaiting,
        )
        if user.role != ActorRole.ADMIN:
            has_pending_slot = (
                select(ApprovalSlotModel.id)
                .where(
                    ApprovalSlotModel.claim_id == ExpenseClaimModel.id,
                    ApprovalSlotModel.approver_id == user.id,
                    ApprovalSlotModel.status == SlotStatus.PENDING.value,
                )
                .exists()
            )
            stmt = stmt.where(
                has_pending_slot,
                or_(
                    ExpenseClaimModel.current_approver_id.is_(None),
                    ExpenseClaimModel.current_approver_id == user.id,
                ),
            )
        stmt = stmt.order_by(ExpenseClaimModel.submitted_at, ExpenseClaimModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars().all()]

    def audit_trail(self, claim_id: UUID) -> list[ClaimAuditRecord]:
        """Every audit record of a claim, oldest first."""
        self._get_model(claim_id)
        rows = self.session.execute(
            select(ClaimAuditEventModel)
            .where(ClaimAuditEventModel.claim_id == claim_id)
            .order_by(ClaimAuditEventModel.seq)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get_model(self, claim_id: UUID) -> ExpenseClaimModel:
        model = self.session.get(ExpenseClaimModel, claim_id)
        if model is None:
            raise ClaimNotFoundError(str(claim_id))
        return model

    def _lock_claim(self, claim_id: UUID) -> ExpenseClaimModel:
        model = self.session.execute(
            select(ExpenseClaimModel)
            .where(ExpenseClaimModel.id == claim_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            raise ClaimNotFoundError(str(claim_id))
        return model

    def _flush(self, model: ExpenseClaimModel) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "claim_version_conflict",
                extra={"claim_id": str(model.id)},
            )
            raise OptimisticLockError("ExpenseClaim", str(model.id)) from exc

    def _convert(self, amount: Decimal, currency: str, base_currency: str) -> Decimal:
        if currency == base_currency.upper():
            return amount
        rate = self._rates.get_rate(currency, base_currency) if self._rates else None
        if rate is None:
            raise ExchangeRateNotFoundError(currency, base_currency)
        return (amount * Decimal(rate)).quantize(Decimal("0.01"))

    def _audit(
        self,
        claim_id: UUID,
        action: ClaimAuditAction,
        actor_id: UUID,
        payload: dict[str, Any],
    ) -> None:
        last_seq = self.session.execute(
            select(func.max(ClaimAuditEventModel.seq)).where(
                ClaimAuditEventModel.claim_id == claim_id,
            )
        ).scalar_one()
        self.session.add(
            ClaimAuditEventModel(
                claim_id=claim_id,
                seq=(last_seq or 0) + 1,
                action=action.value,
                actor_id=actor_id,
                occurred_at=self.clock.now(),
                payload=payload,
            )
        )
        self.session.flush()
