"""
Pure domain layer.

Immutable value objects and protocols with NO dependencies on the ORM,
the database, or I/O.  ``SystemClock`` is the one sanctioned time source.
"""

from expense_kernel.domain.approval import (
    CLAIM_TRANSITIONS,
    TERMINAL_CLAIM_STATUSES,
    ActorRole,
    ApprovalAction,
    ApprovalPolicy,
    ApprovalProgress,
    ApprovalSlot,
    ApproverRef,
    ClaimApprovalState,
    ClaimStatus,
    DecisionOutcome,
    DecisionRule,
    EmployeeRef,
    FinalDecision,
    SlotStatus,
)
from expense_kernel.domain.audit import ClaimAuditAction, ClaimAuditRecord
from expense_kernel.domain.claim import (
    ExchangeRateProvider,
    ExpenseCategory,
    ExpenseClaim,
    StaticRateProvider,
)
from expense_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from expense_kernel.domain.directory import CompanyInfo, UserInfo

__all__ = [
    "CLAIM_TRANSITIONS",
    "TERMINAL_CLAIM_STATUSES",
    "ActorRole",
    "ApprovalAction",
    "ApprovalPolicy",
    "ApprovalProgress",
    "ApprovalSlot",
    "ApproverRef",
    "ClaimApprovalState",
    "ClaimAuditAction",
    "ClaimAuditRecord",
    "ClaimStatus",
    "Clock",
    "CompanyInfo",
    "DecisionOutcome",
    "DecisionRule",
    "DeterministicClock",
    "EmployeeRef",
    "ExchangeRateProvider",
    "ExpenseCategory",
    "ExpenseClaim",
    "FinalDecision",
    "SlotStatus",
    "StaticRateProvider",
    "SystemClock",
    "UserInfo",
]
