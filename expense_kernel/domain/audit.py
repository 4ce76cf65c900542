"""
Claim audit trail types (``expense_kernel.domain.audit``).

Every state change of a claim (creation, submission, each recorded
decision, the final outcome) is written as one append-only audit record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class ClaimAuditAction(str, Enum):
    """Auditable claim actions."""

    CLAIM_CREATED = "claim_created"
    CLAIM_SUBMITTED = "claim_submitted"
    DECISION_RECORDED = "decision_recorded"
    APPROVER_HANDOFF = "approver_handoff"
    CLAIM_APPROVED = "claim_approved"
    CLAIM_REJECTED = "claim_rejected"


@dataclass(frozen=True)
class ClaimAuditRecord:
    """Immutable view of one audit row."""

    event_id: UUID
    claim_id: UUID
    seq: int
    action: ClaimAuditAction
    actor_id: UUID
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
