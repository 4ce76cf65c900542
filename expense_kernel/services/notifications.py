"""
Claim notifications.

The claim service tells a ``Notifier`` about three moments in a claim's
life: submission (to the employee), an approval request (to each approver
who can now act), and the final decision (to the employee).  Delivery
is fire-and-forget: ``notify_safely`` logs a failing notifier and lets
the already-flushed state change stand.
"""

from __future__ import annotations

from typing import Callable, Protocol
from uuid import UUID

from expense_kernel.domain.claim import ExpenseClaim
from expense_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class Notifier(Protocol):
    """Outbound notification channel (email, chat, ...)."""

    def claim_submitted(self, employee_id: UUID, claim: ExpenseClaim) -> None: ...

    def approval_requested(self, approver_id: UUID, claim: ExpenseClaim) -> None: ...

    def claim_decided(self, employee_id: UUID, claim: ExpenseClaim) -> None: ...


class NullNotifier:
    """Notifier that drops every message."""

    def claim_submitted(self, employee_id: UUID, claim: ExpenseClaim) -> None:
        pass

    def approval_requested(self, approver_id: UUID, claim: ExpenseClaim) -> None:
        pass

    def claim_decided(self, employee_id: UUID, claim: ExpenseClaim) -> None:
        pass


class LoggingNotifier:
    """Notifier that records each message as a structured log event."""

    def claim_submitted(self, employee_id: UUID, claim: ExpenseClaim) -> None:
        logger.info(
            "notify_claim_submitted",
            extra={
                "recipient_id": str(employee_id),
                "claim_id": str(claim.claim_id),
                "amount": str(claim.amount),
                "currency": claim.currency,
            },
        )

    def approval_requested(self, approver_id: UUID, claim: ExpenseClaim) -> None:
        logger.info(
            "notify_approval_requested",
            extra={
                "recipient_id": str(approver_id),
                "claim_id": str(claim.claim_id),
                "employee_id": str(claim.employee_id),
                "amount": str(claim.converted_amount),
            },
        )

    def claim_decided(self, employee_id: UUID, claim: ExpenseClaim) -> None:
        logger.info(
            "notify_claim_decided",
            extra={
                "recipient_id": str(employee_id),
                "claim_id": str(claim.claim_id),
                "outcome": claim.status.value,
            },
        )


def notify_safely(
    kind: str,
    send: Callable[[UUID, ExpenseClaim], None],
    recipient_id: UUID,
    claim: ExpenseClaim,
) -> bool:
    """Deliver one notification; log and return False if the notifier raises."""
    try:
        send(recipient_id, claim)
    except Exception:
        logger.warning(
            "notification_failed",
            extra={
                "notification": kind,
                "recipient_id": str(recipient_id),
                "claim_id": str(claim.claim_id),
            },
            exc_info=True,
        )
        return False
    return True
