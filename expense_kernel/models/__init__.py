"""ORM models for the expense kernel."""

from expense_kernel.models.audit_event import ClaimAuditEventModel
from expense_kernel.models.claim import ApprovalSlotModel, ExpenseClaimModel
from expense_kernel.models.company import CompanyModel, UserModel
from expense_kernel.models.policy import (
    APPROVER_KIND_OVERRIDE,
    APPROVER_KIND_REQUIRED,
    ApprovalPolicyModel,
    PolicyApproverModel,
)

__all__ = [
    "APPROVER_KIND_OVERRIDE",
    "APPROVER_KIND_REQUIRED",
    "ApprovalPolicyModel",
    "ApprovalSlotModel",
    "ClaimAuditEventModel",
    "CompanyModel",
    "ExpenseClaimModel",
    "PolicyApproverModel",
    "UserModel",
]
