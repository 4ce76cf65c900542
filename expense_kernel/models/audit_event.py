"""
Module: expense_kernel.models.audit_event
Responsibility: ORM persistence for the per-claim audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only
    (plus domain DTO types for to_dto()).

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listeners).
    - seq is unique and increasing per claim (uq_claim_audit_seq).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError if two writers allocate the same seq for one claim.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint, event
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, UUIDString
from expense_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from expense_kernel.domain.audit import ClaimAuditRecord


class ClaimAuditEventModel(Base):
    """Append-only audit record for one claim action."""

    __tablename__ = "claim_audit_events"

    __table_args__ = (
        UniqueConstraint("claim_id", "seq", name="uq_claim_audit_seq"),
        Index("ix_claim_audit_action", "action"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("expense_claims.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<ClaimAuditEvent {self.action} claim={self.claim_id} seq={self.seq}>"

    def to_dto(self) -> ClaimAuditRecord:
        from expense_kernel.domain.audit import ClaimAuditAction, ClaimAuditRecord

        return ClaimAuditRecord(
            event_id=self.id,
            claim_id=self.claim_id,
            seq=self.seq,
            action=ClaimAuditAction(self.action),
            actor_id=self.actor_id,
            occurred_at=self.occurred_at,
            payload=dict(self.payload or {}),
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(ClaimAuditEventModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit records."""
    raise ImmutabilityViolationError(
        entity_type="ClaimAuditEvent",
        entity_id=str(target.id),
        reason="Audit records are immutable -- cannot modify",
    )


@event.listens_for(ClaimAuditEventModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit records."""
    raise ImmutabilityViolationError(
        entity_type="ClaimAuditEvent",
        entity_id=str(target.id),
        reason="Audit records are immutable -- cannot delete",
    )
