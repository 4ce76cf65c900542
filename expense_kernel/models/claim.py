"""
Module: expense_kernel.models.claim
Responsibility: ORM persistence for expense claims and their per-approver
    approval slots.
Architecture position: Kernel > Models.  May import from db/base.py only
    (plus domain DTO types for to_dto()).

Invariants enforced:
    - Valid status values (check constraint); transitions are enforced by
      the approval engine.
    - Optimistic locking: ``version`` is the SQLAlchemy version_id_col.
      Every recorded decision touches the claim row, so two concurrent
      decisions on the same claim cannot both commit.
    - One slot per (claim, approver) and per (claim, position).
    - Terminal claims (approved / rejected) are frozen: any ORM UPDATE of
      the claim or its slots raises ImmutabilityViolationError.
    - policy_id, once bound at submission, never changes.

Failure modes:
    - sqlalchemy.orm.exc.StaleDataError on a concurrent decision
      (translated to OptimisticLockError by ClaimService).
    - ImmutabilityViolationError on mutation of a terminal claim.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import flag_modified

from expense_kernel.db.base import Base, UUIDString
from expense_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from expense_kernel.domain.approval import ApprovalSlot, ClaimApprovalState
    from expense_kernel.domain.claim import ExpenseClaim


_TERMINAL_STATUS_VALUES = frozenset({"approved", "rejected"})


class ExpenseClaimModel(Base):
    """Persistent expense claim.

    Contract:
        Status and slot changes are produced by the approval engine and
        written back through ``apply_approval_state``.  Nothing else edits
        approval columns.
    """

    __tablename__ = "expense_claims"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'awaiting_approval', "
            "'approved', 'rejected')",
            name="ck_expense_claims_valid_status",
        ),
        CheckConstraint("amount > 0", name="ck_expense_claims_positive_amount"),
        Index("ix_expense_claims_company_status", "company_id", "status"),
        Index("ix_expense_claims_employee", "employee_id", "created_at"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("companies.id"), nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    converted_amount: Mapped[Decimal] = mapped_column(nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_by: Mapped[str] = mapped_column(String(100), nullable=False, default="Cash")
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    policy_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("approval_policies.id"), nullable=True,
    )
    current_approver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    final_outcome: Mapped[str | None] = mapped_column(String(30), nullable=True)
    final_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    slots: Mapped[list["ApprovalSlotModel"]] = relationship(
        "ApprovalSlotModel",
        back_populates="claim",
        order_by="ApprovalSlotModel.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<ExpenseClaim {self.id} {self.amount} {self.currency} "
            f"status={self.status}>"
        )

    def to_approval_state(self) -> ClaimApprovalState:
        """Rebuild the frozen approval state from the persisted columns."""
        from expense_kernel.domain.approval import (
            ClaimApprovalState,
            ClaimStatus,
            FinalDecision,
        )

        final = None
        if self.final_outcome is not None:
            final = FinalDecision(
                outcome=ClaimStatus(self.final_outcome),
                comment=self.final_comment or "",
                decided_at=self.final_decided_at,
            )
        return ClaimApprovalState(
            claim_id=self.id,
            company_id=self.company_id,
            status=ClaimStatus(self.status),
            policy_id=self.policy_id,
            slots=tuple(s.to_dto() for s in self.slots),
            current_approver_id=self.current_approver_id,
            final_decision=final,
            submitted_at=self.submitted_at,
        )

    def to_dto(self) -> ExpenseClaim:
        """Convert ORM model to frozen domain DTO."""
        from expense_kernel.domain.claim import ExpenseCategory, ExpenseClaim

        return ExpenseClaim(
            claim_id=self.id,
            company_id=self.company_id,
            employee_id=self.employee_id,
            description=self.description,
            category=ExpenseCategory(self.category),
            amount=self.amount,
            currency=self.currency,
            converted_amount=self.converted_amount,
            expense_date=self.expense_date,
            paid_by=self.paid_by,
            approval=self.to_approval_state(),
            created_at=self.created_at,
        )

    def apply_approval_state(self, state: ClaimApprovalState, now: datetime) -> None:
        """Write an engine-produced state back onto this row.

        Slots are created on first application (submission) and updated
        in place by position afterwards.  ``updated_at`` is flagged as
        modified even when its value is unchanged, so the flush always
        issues an UPDATE on the claim row and the version check runs when
        only slots changed.
        """
        self.status = state.status.value
        self.policy_id = state.policy_id
        self.current_approver_id = state.current_approver_id
        self.submitted_at = state.submitted_at
        if state.final_decision is not None:
            self.final_outcome = state.final_decision.outcome.value
            self.final_comment = state.final_decision.comment
            self.final_decided_at = state.final_decision.decided_at

        if not self.slots:
            self.slots = [
                ApprovalSlotModel.from_dto(slot, position=i)
                for i, slot in enumerate(state.slots)
            ]
        else:
            for model, slot in zip(self.slots, state.slots, strict=True):
                model.apply(slot)
        self.updated_at = now
        flag_modified(self, "updated_at")


class ApprovalSlotModel(Base):
    """One approver's slot on a claim, in resolved order."""

    __tablename__ = "claim_approval_slots"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_claim_approval_slots_valid_status",
        ),
        UniqueConstraint("claim_id", "approver_id", name="uq_claim_slot_approver"),
        UniqueConstraint("claim_id", "position", name="uq_claim_slot_position"),
        Index("ix_claim_approval_slots_approver", "approver_id", "status"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("expense_claims.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    approver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    claim: Mapped["ExpenseClaimModel"] = relationship(
        "ExpenseClaimModel", back_populates="slots",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalSlot claim={self.claim_id} #{self.position} "
            f"approver={self.approver_id} status={self.status}>"
        )

    def to_dto(self) -> ApprovalSlot:
        from expense_kernel.domain.approval import ApprovalSlot, SlotStatus

        return ApprovalSlot(
            approver_id=self.approver_id,
            status=SlotStatus(self.status),
            comment=self.comment,
            decided_at=self.decided_at,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalSlot, position: int) -> ApprovalSlotModel:
        return cls(
            position=position,
            approver_id=dto.approver_id,
            status=dto.status.value,
            comment=dto.comment,
            decided_at=dto.decided_at,
        )

    def apply(self, dto: ApprovalSlot) -> None:
        if dto.approver_id != self.approver_id:
            raise ValueError(
                f"Slot #{self.position} belongs to {self.approver_id}, "
                f"not {dto.approver_id}"
            )
        if (
            self.status == dto.status.value
            and self.comment == dto.comment
            and self.decided_at == dto.decided_at
        ):
            return
        self.status = dto.status.value
        self.comment = dto.comment
        self.decided_at = dto.decided_at


# =============================================================================
# ORM-Level Immutability for Terminal Claims
# =============================================================================


def _committed_status(claim: ExpenseClaimModel) -> str:
    """Status as last loaded from or flushed to the database."""
    history = inspect(claim).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    return claim.status


@event.listens_for(ExpenseClaimModel, "before_update")
def prevent_terminal_claim_update(mapper, connection, target):
    """Prevent updates to a claim that already reached a final decision."""
    if _committed_status(target) in _TERMINAL_STATUS_VALUES:
        raise ImmutabilityViolationError(
            entity_type="ExpenseClaim",
            entity_id=str(target.id),
            reason="Claim has a final decision -- cannot modify",
        )


@event.listens_for(ApprovalSlotModel, "before_update")
def prevent_terminal_slot_update(mapper, connection, target):
    """Prevent slot changes on a claim that already reached a final decision."""
    if target.claim is not None and _committed_status(target.claim) in _TERMINAL_STATUS_VALUES:
        raise ImmutabilityViolationError(
            entity_type="ApprovalSlot",
            entity_id=str(target.id),
            reason="Claim has a final decision -- cannot modify its slots",
        )


@event.listens_for(ExpenseClaimModel, "before_delete")
def prevent_submitted_claim_delete(mapper, connection, target):
    """Only drafts may be deleted."""
    if _committed_status(target) != "draft":
        raise ImmutabilityViolationError(
            entity_type="ExpenseClaim",
            entity_id=str(target.id),
            reason="Submitted claims cannot be deleted",
        )
