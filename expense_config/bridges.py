"""
Config -> Kernel Bridges.

Translate YAML-authored definitions into kernel service arguments.  These
live in expense_config because the kernel must never import
expense_config.

Usage:
    from expense_config.bridges import notifier_for, policy_kwargs

    kwargs = policy_kwargs(policy_def, email_to_id)
    policy_service.create_policy(company_id, **kwargs)

    claims = ClaimService(session, notifier=notifier_for(settings))
"""

from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from expense_config.schema import ExpenseSettings, PolicyDef
from expense_kernel.services.notifications import (
    LoggingNotifier,
    Notifier,
    NullNotifier,
)


def _resolve(emails: tuple[str, ...], email_to_id: Mapping[str, UUID], policy: str) -> tuple[UUID, ...]:
    try:
        return tuple(email_to_id[e] for e in emails)
    except KeyError as exc:
        raise ValueError(f"Policy {policy!r}: no user with email {exc.args[0]!r}") from exc


def policy_kwargs(defn: PolicyDef, email_to_id: Mapping[str, UUID]) -> dict[str, Any]:
    """Keyword arguments for ``PolicyService.create_policy``."""
    return {
        "name": defn.name,
        "description": defn.description,
        "required_approvers": _resolve(defn.approvers, email_to_id, defn.name),
        "include_manager_approver": defn.include_manager_approver,
        "sequential": defn.sequential,
        "quorum_percentage": defn.quorum_percentage,
        "override_approvers": _resolve(defn.override_approvers, email_to_id, defn.name),
    }


def notifier_for(settings: ExpenseSettings) -> Notifier:
    """The notifier a ClaimService should use under these settings."""
    if settings.notifications_enabled:
        return LoggingNotifier()
    return NullNotifier()
