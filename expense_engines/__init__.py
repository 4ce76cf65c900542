"""
Module: expense_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval engine.  This is the canonical import surface for the
    service layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import expense_kernel.domain and expense_kernel.exceptions.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()``.  Timestamps are passed
      in as explicit parameters by the calling service.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from expense_engines import initiate, evaluate_decision
"""

from expense_engines.approval import (
    DECISION_RULES,
    actionable_approver_ids,
    approval_progress,
    decide,
    evaluate_decision,
    initiate,
    is_actionable_by,
    quorum_met,
    resolve_approvers,
)

__all__ = [
    "DECISION_RULES",
    "actionable_approver_ids",
    "approval_progress",
    "decide",
    "evaluate_decision",
    "initiate",
    "is_actionable_by",
    "quorum_met",
    "resolve_approvers",
]
