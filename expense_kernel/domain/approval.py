"""
Approval domain types (``expense_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the claim approval workflow.  Defines the claim
status state machine, the approval policy snapshot, per-claim approval
slots, final decisions, and the outcome record the engine hands back to
services.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, or ``services/``.

Invariants enforced
-------------------
* Claim lifecycle -- ``CLAIM_TRANSITIONS`` defines the only valid status
  transitions.  ``approved`` and ``rejected`` have no outgoing edges.
* Policy shape -- quorum percentage in [0, 100], required approvers unique.
* Slot uniqueness -- an approver identity appears at most once per claim.
* Open claims -- a claim awaiting approval always has at least one slot.
* Terminal claims -- carry a ``FinalDecision`` and no current approver.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from expense_kernel.exceptions import InvalidPolicyError


# =========================================================================
# Claim Status Lifecycle
# =========================================================================


class ClaimStatus(str, Enum):
    """Expense claim lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


CLAIM_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.DRAFT: frozenset({
        ClaimStatus.SUBMITTED,
        ClaimStatus.AWAITING_APPROVAL,
    }),
    ClaimStatus.SUBMITTED: frozenset({
        ClaimStatus.AWAITING_APPROVAL,
    }),
    ClaimStatus.AWAITING_APPROVAL: frozenset({
        ClaimStatus.APPROVED,
        ClaimStatus.REJECTED,
    }),
    ClaimStatus.APPROVED: frozenset(),
    ClaimStatus.REJECTED: frozenset(),
}

TERMINAL_CLAIM_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.APPROVED,
    ClaimStatus.REJECTED,
})

PRE_SUBMISSION_STATUSES: frozenset[ClaimStatus] = frozenset({
    ClaimStatus.DRAFT,
    ClaimStatus.SUBMITTED,
})


class SlotStatus(str, Enum):
    """Status of one approver's slot on a claim."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, Enum):
    """Actions an approver can take."""

    APPROVE = "approve"
    REJECT = "reject"


class ActorRole(str, Enum):
    """Roles a user can hold within a company."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


ADMIN_OVERRIDE_COMMENT = "Auto-approved by admin override"
SPECIFIC_APPROVER_OVERRIDE_COMMENT = "Auto-approved by specific approver"


# =========================================================================
# Policy
# =========================================================================


@dataclass(frozen=True)
class ApprovalPolicy:
    """A versioned approval policy snapshot.

    Claims bind to ``policy_id`` at submission; a later policy for the same
    company never changes how an in-flight claim is evaluated.
    """

    policy_id: UUID
    company_id: UUID
    name: str
    required_approvers: tuple[UUID, ...] = ()
    include_manager_approver: bool = True
    sequential: bool = False
    quorum_percentage: int = 100
    override_approvers: frozenset[UUID] = frozenset()
    version: int = 1
    description: str = ""
    is_active: bool = True
    policy_hash: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.quorum_percentage, bool) or not isinstance(
            self.quorum_percentage, int
        ):
            raise InvalidPolicyError(
                f"quorum_percentage must be an integer, got {self.quorum_percentage!r}"
            )
        if not 0 <= self.quorum_percentage <= 100:
            raise InvalidPolicyError(
                f"quorum_percentage must be within [0, 100], got {self.quorum_percentage}"
            )
        if len(set(self.required_approvers)) != len(self.required_approvers):
            raise InvalidPolicyError("required_approvers contains duplicates")
        if not isinstance(self.override_approvers, frozenset):
            object.__setattr__(
                self, "override_approvers", frozenset(self.override_approvers)
            )

    def is_override_approver(self, user_id: UUID) -> bool:
        return user_id in self.override_approvers


# =========================================================================
# Directory references
# =========================================================================


@dataclass(frozen=True)
class ApproverRef:
    """Minimal view of a user as the approval workflow sees them."""

    user_id: UUID
    role: ActorRole = ActorRole.EMPLOYEE
    is_active: bool = True


@dataclass(frozen=True)
class EmployeeRef:
    """The submitting employee together with their direct manager."""

    user_id: UUID
    company_id: UUID
    manager: ApproverRef | None = None


# =========================================================================
# Claim approval state
# =========================================================================


@dataclass(frozen=True)
class ApprovalSlot:
    """One approver's entry in a claim's approval list. Immutable."""

    approver_id: UUID
    status: SlotStatus = SlotStatus.PENDING
    comment: str = ""
    decided_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == SlotStatus.PENDING


@dataclass(frozen=True)
class FinalDecision:
    """Outcome recorded on the terminating decision."""

    outcome: ClaimStatus
    comment: str = ""
    decided_at: datetime | None = None


@dataclass(frozen=True)
class ClaimApprovalState:
    """Immutable snapshot of a claim's approval progress.

    Slots keep the order resolved at submission (manager first when
    prepended).  ``current_approver_id`` is only set for sequential
    policies while the claim is open.
    """

    claim_id: UUID
    company_id: UUID
    status: ClaimStatus = ClaimStatus.DRAFT
    policy_id: UUID | None = None
    slots: tuple[ApprovalSlot, ...] = ()
    current_approver_id: UUID | None = None
    final_decision: FinalDecision | None = None
    submitted_at: datetime | None = None

    def __post_init__(self) -> None:
        approver_ids = [s.approver_id for s in self.slots]
        if len(set(approver_ids)) != len(approver_ids):
            raise ValueError(
                f"Claim {self.claim_id}: approver appears more than once in slots"
            )
        if self.status == ClaimStatus.AWAITING_APPROVAL and not self.slots:
            raise ValueError(
                f"Claim {self.claim_id}: awaiting approval with no approval slots"
            )
        if self.status in TERMINAL_CLAIM_STATUSES:
            if self.final_decision is None:
                raise ValueError(
                    f"Claim {self.claim_id}: terminal status without final decision"
                )
            if self.current_approver_id is not None:
                raise ValueError(
                    f"Claim {self.claim_id}: terminal status with a current approver"
                )
        elif self.final_decision is not None:
            raise ValueError(
                f"Claim {self.claim_id}: final decision on non-terminal claim"
            )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_CLAIM_STATUSES

    @property
    def approver_ids(self) -> tuple[UUID, ...]:
        return tuple(s.approver_id for s in self.slots)

    @property
    def approved_count(self) -> int:
        return sum(1 for s in self.slots if s.status == SlotStatus.APPROVED)

    @property
    def rejected_count(self) -> int:
        return sum(1 for s in self.slots if s.status == SlotStatus.REJECTED)

    @property
    def pending_count(self) -> int:
        return sum(1 for s in self.slots if s.status == SlotStatus.PENDING)

    def slot_index(self, approver_id: UUID) -> int | None:
        """Position of ``approver_id`` in the slot list, or None."""
        for i, slot in enumerate(self.slots):
            if slot.approver_id == approver_id:
                return i
        return None

    def slot_for(self, approver_id: UUID) -> ApprovalSlot | None:
        idx = self.slot_index(approver_id)
        return None if idx is None else self.slots[idx]


# =========================================================================
# Evaluation results
# =========================================================================


class DecisionRule(str, Enum):
    """Which rule of the canonical precedence settled a decision."""

    OVERRIDE_ADMIN = "override_admin"
    OVERRIDE_APPROVER = "override_approver"
    REJECTION = "rejection"
    SEQUENTIAL_HANDOFF = "sequential_handoff"
    SEQUENTIAL_COMPLETE = "sequential_complete"
    QUORUM = "quorum"
    OVERRIDE_MEMBER = "override_member"
    NONE = "none"


@dataclass(frozen=True)
class DecisionOutcome:
    """Result of evaluating one approval action."""

    state: ClaimApprovalState
    rule: DecisionRule
    next_approver_id: UUID | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_handoff(self) -> bool:
        return self.rule == DecisionRule.SEQUENTIAL_HANDOFF


@dataclass(frozen=True)
class ApprovalProgress:
    """Read-only summary of how far a claim is through its approvals."""

    approved: int
    rejected: int
    pending: int
    total: int
    quorum_percentage: int
    quorum_met: bool
    actionable_approvers: tuple[UUID, ...] = field(default_factory=tuple)
