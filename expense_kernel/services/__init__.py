"""Kernel services: provisioning, policy administration, claim lifecycle."""

from expense_kernel.services.base import BaseService
from expense_kernel.services.claim_service import ClaimService
from expense_kernel.services.directory_service import DirectoryService
from expense_kernel.services.notifications import (
    LoggingNotifier,
    Notifier,
    NullNotifier,
    notify_safely,
)
from expense_kernel.services.policy_service import PolicyService

__all__ = [
    "BaseService",
    "ClaimService",
    "DirectoryService",
    "LoggingNotifier",
    "Notifier",
    "NullNotifier",
    "PolicyService",
    "notify_safely",
]
