"""
expense_engines.approval -- Pure claim approval engine.

Responsibility:
    Expand an approval policy into the per-claim approval slots when a
    claim is submitted (workflow initiation), and evaluate each approve /
    reject action against the policy the claim was bound to (decision
    evaluation), deciding whether the claim stays open, hands off to the
    next sequential approver, or reaches a terminal status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import expense_kernel/domain/ types and expense_kernel.exceptions.

Invariants enforced:
    - Canonical precedence: ``DECISION_RULES`` is evaluated top-down with
      early termination -- override, then rejection, then sequential, then
      quorum.  The same inputs always produce the same outcome.
    - A single rejection rejects the claim in every mode.
    - Sequential eligibility: only the current approver's pending slot is
      actionable; other pending slots are listed but not yet eligible.
    - Terminal claims are never mutated.
    - Quorum uses integer cross-multiplication, never float division.
    - Purity: no clock access, no I/O, no database.  Timestamps are
      supplied by the caller.

Failure modes (each leaves the input state untouched):
    - NoPolicyConfiguredError      -- no active policy for the claim's company.
    - ClaimNotDraftError           -- claim already submitted.
    - EmptyApproverListError       -- policy resolves to zero approvers.
    - ClaimNotAwaitingApprovalError -- decision on a draft or closed claim.
    - PolicySnapshotMismatchError  -- policy is not the one the claim is bound to.
    - NotAnAuthorizedApproverError -- no actionable pending slot for the caller.
    - ApproverInactiveError        -- caller is deactivated.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable
from uuid import UUID

from expense_kernel.domain.approval import (
    ADMIN_OVERRIDE_COMMENT,
    PRE_SUBMISSION_STATUSES,
    SPECIFIC_APPROVER_OVERRIDE_COMMENT,
    ActorRole,
    ApprovalAction,
    ApprovalPolicy,
    ApprovalProgress,
    ApprovalSlot,
    ClaimApprovalState,
    ClaimStatus,
    DecisionOutcome,
    DecisionRule,
    EmployeeRef,
    FinalDecision,
    SlotStatus,
)
from expense_kernel.exceptions import (
    ApproverInactiveError,
    ClaimNotAwaitingApprovalError,
    ClaimNotDraftError,
    EmptyApproverListError,
    NoPolicyConfiguredError,
    NotAnAuthorizedApproverError,
    PolicySnapshotMismatchError,
)


# =========================================================================
# Workflow initiation
# =========================================================================


def resolve_approvers(
    policy: ApprovalPolicy,
    employee: EmployeeRef,
) -> tuple[UUID, ...]:
    """Resolve the ordered approver list for one employee.

    The configured approvers keep their order.  When the policy includes
    the manager and the employee has an active manager, the manager is
    placed first; a manager who is also a configured approver is moved to
    the front rather than listed twice.
    """
    approvers = list(policy.required_approvers)
    manager = employee.manager
    if policy.include_manager_approver and manager is not None and manager.is_active:
        approvers = [manager.user_id] + [a for a in approvers if a != manager.user_id]
    return tuple(approvers)


def initiate(
    state: ClaimApprovalState,
    policy: ApprovalPolicy | None,
    employee: EmployeeRef,
    *,
    submitted_at: datetime | None = None,
) -> ClaimApprovalState:
    """Open the approval workflow for a submitted claim.

    Args:
        state: The claim's current (pre-submission) approval state.
        policy: The policy active for the claim's company, or None.
        employee: The submitting employee with their manager.
        submitted_at: Submission timestamp supplied by the caller.

    Returns:
        A new state awaiting approval, bound to ``policy.policy_id``, with
        one pending slot per resolved approver.

    Raises:
        ClaimNotDraftError: The claim has already been submitted.
        NoPolicyConfiguredError: No active policy for this company.
        EmptyApproverListError: The policy resolves to no approvers.
    """
    if state.status not in PRE_SUBMISSION_STATUSES:
        raise ClaimNotDraftError(str(state.claim_id), state.status.value)

    if (
        policy is None
        or not policy.is_active
        or policy.company_id != state.company_id
    ):
        raise NoPolicyConfiguredError(str(state.company_id))

    approvers = resolve_approvers(policy, employee)
    if not approvers:
        raise EmptyApproverListError(str(policy.policy_id), str(employee.user_id))

    return replace(
        state,
        status=ClaimStatus.AWAITING_APPROVAL,
        policy_id=policy.policy_id,
        slots=tuple(ApprovalSlot(approver_id=a) for a in approvers),
        current_approver_id=approvers[0] if policy.sequential else None,
        final_decision=None,
        submitted_at=submitted_at,
    )


# =========================================================================
# Decision evaluation
# =========================================================================


@dataclass(frozen=True)
class _DecisionContext:
    """Inputs shared by every rule once the decision has been recorded."""

    state: ClaimApprovalState
    policy: ApprovalPolicy
    approver_id: UUID
    slot_index: int
    action: ApprovalAction
    comment: str
    actor_role: ActorRole
    decided_at: datetime | None


def _close(
    ctx: _DecisionContext,
    outcome: ClaimStatus,
    rule: DecisionRule,
    slots: tuple[ApprovalSlot, ...] | None = None,
) -> DecisionOutcome:
    closed = replace(
        ctx.state,
        slots=ctx.state.slots if slots is None else slots,
        status=outcome,
        current_approver_id=None,
        final_decision=FinalDecision(
            outcome=outcome,
            comment=ctx.comment,
            decided_at=ctx.decided_at,
        ),
    )
    return DecisionOutcome(state=closed, rule=rule)


def _override_rule(ctx: _DecisionContext) -> DecisionOutcome | None:
    """An admin or a listed override approver approves: close as approved."""
    if ctx.action != ApprovalAction.APPROVE:
        return None

    by_admin = ctx.actor_role == ActorRole.ADMIN
    if not by_admin and not ctx.policy.is_override_approver(ctx.approver_id):
        return None

    auto_comment = (
        ADMIN_OVERRIDE_COMMENT if by_admin else SPECIFIC_APPROVER_OVERRIDE_COMMENT
    )
    slots = tuple(
        ApprovalSlot(
            approver_id=s.approver_id,
            status=SlotStatus.APPROVED,
            comment=auto_comment,
            decided_at=ctx.decided_at,
        )
        if s.is_pending
        else s
        for s in ctx.state.slots
    )
    rule = DecisionRule.OVERRIDE_ADMIN if by_admin else DecisionRule.OVERRIDE_APPROVER
    return _close(ctx, ClaimStatus.APPROVED, rule, slots)


def _rejection_rule(ctx: _DecisionContext) -> DecisionOutcome | None:
    """Any rejected slot rejects the whole claim."""
    if ctx.state.rejected_count == 0:
        return None
    return _close(ctx, ClaimStatus.REJECTED, DecisionRule.REJECTION)


def _sequential_rule(ctx: _DecisionContext) -> DecisionOutcome | None:
    """Hand off to the next slot, or close once the last slot approves."""
    if not ctx.policy.sequential:
        return None

    next_index = ctx.slot_index + 1
    if next_index < len(ctx.state.slots):
        next_approver = ctx.state.slots[next_index].approver_id
        return DecisionOutcome(
            state=replace(ctx.state, current_approver_id=next_approver),
            rule=DecisionRule.SEQUENTIAL_HANDOFF,
            next_approver_id=next_approver,
        )
    return _close(ctx, ClaimStatus.APPROVED, DecisionRule.SEQUENTIAL_COMPLETE)


def _quorum_rule(ctx: _DecisionContext) -> DecisionOutcome | None:
    """Close when the quorum is met or an override approver has approved."""
    state = ctx.state
    if quorum_met(state.approved_count, len(state.slots), ctx.policy.quorum_percentage):
        return _close(ctx, ClaimStatus.APPROVED, DecisionRule.QUORUM)

    overrides = ctx.policy.override_approvers
    if overrides and any(
        s.status == SlotStatus.APPROVED and s.approver_id in overrides
        for s in state.slots
    ):
        return _close(ctx, ClaimStatus.APPROVED, DecisionRule.OVERRIDE_MEMBER)

    return None


DecisionRuleFn = Callable[[_DecisionContext], DecisionOutcome | None]

# Canonical precedence. Order is significant: the first rule that returns
# an outcome settles the decision.
DECISION_RULES: tuple[DecisionRuleFn, ...] = (
    _override_rule,
    _rejection_rule,
    _sequential_rule,
    _quorum_rule,
)


def _check_decision_preconditions(
    state: ClaimApprovalState,
    policy: ApprovalPolicy,
    approver_id: UUID,
    approver_active: bool,
) -> int:
    """Validate a decision request and return the approver's slot index."""
    if state.status != ClaimStatus.AWAITING_APPROVAL:
        raise ClaimNotAwaitingApprovalError(str(state.claim_id), state.status.value)

    if state.policy_id is not None and policy.policy_id != state.policy_id:
        raise PolicySnapshotMismatchError(
            str(state.claim_id), str(state.policy_id), str(policy.policy_id),
        )

    idx = state.slot_index(approver_id)
    if idx is None:
        raise NotAnAuthorizedApproverError(
            str(state.claim_id), str(approver_id), "not an approver on this claim",
        )
    if not state.slots[idx].is_pending:
        raise NotAnAuthorizedApproverError(
            str(state.claim_id), str(approver_id), "slot already decided",
        )
    if state.current_approver_id is not None and state.current_approver_id != approver_id:
        raise NotAnAuthorizedApproverError(
            str(state.claim_id), str(approver_id), "not the current sequential approver",
        )

    if not approver_active:
        raise ApproverInactiveError(str(approver_id))

    return idx


def evaluate_decision(
    state: ClaimApprovalState,
    policy: ApprovalPolicy,
    approver_id: UUID,
    action: ApprovalAction,
    comment: str = "",
    actor_role: ActorRole = ActorRole.EMPLOYEE,
    *,
    approver_active: bool = True,
    decided_at: datetime | None = None,
) -> DecisionOutcome:
    """Record one approver's decision and settle the claim if possible.

    Args:
        state: Current approval state; must be awaiting approval.
        policy: The policy the claim was bound to at submission.
        approver_id: The acting user.
        action: Approve or reject.
        comment: Free-text comment stored on the slot (and on the final
            decision if this action closes the claim).
        actor_role: Role of the acting user; admins always override.
        approver_active: Whether the acting user is currently active.
        decided_at: Decision timestamp supplied by the caller.

    Returns:
        DecisionOutcome with the new state and the rule that settled it
        (``DecisionRule.NONE`` when the claim simply stays open).
    """
    idx = _check_decision_preconditions(state, policy, approver_id, approver_active)

    decided = replace(
        state.slots[idx],
        status=SlotStatus.APPROVED if action == ApprovalAction.APPROVE else SlotStatus.REJECTED,
        comment=comment,
        decided_at=decided_at,
    )
    recorded = replace(state, slots=state.slots[:idx] + (decided,) + state.slots[idx + 1:])

    ctx = _DecisionContext(
        state=recorded,
        policy=policy,
        approver_id=approver_id,
        slot_index=idx,
        action=action,
        comment=comment,
        actor_role=actor_role,
        decided_at=decided_at,
    )
    for rule in DECISION_RULES:
        outcome = rule(ctx)
        if outcome is not None:
            return outcome

    return DecisionOutcome(state=recorded, rule=DecisionRule.NONE)


def decide(
    state: ClaimApprovalState,
    policy: ApprovalPolicy,
    approver_id: UUID,
    action: ApprovalAction,
    comment: str = "",
    actor_role: ActorRole = ActorRole.EMPLOYEE,
    *,
    approver_active: bool = True,
    decided_at: datetime | None = None,
) -> ClaimApprovalState:
    """Apply one decision and return only the resulting state."""
    return evaluate_decision(
        state,
        policy,
        approver_id,
        action,
        comment,
        actor_role,
        approver_active=approver_active,
        decided_at=decided_at,
    ).state


# =========================================================================
# Queries
# =========================================================================


def quorum_met(approved: int, total: int, percentage: int) -> bool:
    """``approved / total * 100 >= percentage`` without float division."""
    return approved * 100 >= percentage * total


def is_actionable_by(state: ClaimApprovalState, approver_id: UUID) -> bool:
    """True if ``approver_id`` may record a decision on this claim right now."""
    if state.status != ClaimStatus.AWAITING_APPROVAL:
        return False
    slot = state.slot_for(approver_id)
    if slot is None or not slot.is_pending:
        return False
    return state.current_approver_id is None or state.current_approver_id == approver_id


def actionable_approver_ids(state: ClaimApprovalState) -> tuple[UUID, ...]:
    """Approvers who can decide right now, in slot order."""
    if state.status != ClaimStatus.AWAITING_APPROVAL:
        return ()
    if state.current_approver_id is not None:
        return (state.current_approver_id,)
    return tuple(s.approver_id for s in state.slots if s.is_pending)


def approval_progress(
    state: ClaimApprovalState,
    policy: ApprovalPolicy,
) -> ApprovalProgress:
    """Summarize approvals collected so far against the bound policy."""
    total = len(state.slots)
    return ApprovalProgress(
        approved=state.approved_count,
        rejected=state.rejected_count,
        pending=state.pending_count,
        total=total,
        quorum_percentage=policy.quorum_percentage,
        quorum_met=total > 0 and quorum_met(
            state.approved_count, total, policy.quorum_percentage,
        ),
        actionable_approvers=actionable_approver_ids(state),
    )
