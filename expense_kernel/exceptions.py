"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval workflows reject requests for many distinct reasons: no policy is
configured, the claim is already closed, the caller holds no pending slot,
the caller was deactivated.  Each of these is surfaced to a different
audience with a different message, so callers must be able to tell them
apart without parsing strings.

Every exception here:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (claim_id, approver_id, ...)

Example - RIGHT way to handle errors:
    try:
        claims.decide(claim_id, actor_id, ApprovalAction.APPROVE)
    except NotAnAuthorizedApproverError as e:
        return {"error": e.code, "message": e.user_message}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- ApprovalError
    |   +-- NoPolicyConfiguredError
    |   +-- ClaimNotAwaitingApprovalError
    |   +-- NotAnAuthorizedApproverError
    |   +-- ApproverInactiveError
    |   +-- EmptyApproverListError
    |   +-- PolicySnapshotMismatchError
    |
    +-- PolicyError
    |   +-- InvalidPolicyError
    |   +-- PolicyNotFoundError
    |   +-- PolicyTamperDetectedError
    |
    +-- ClaimError
    |   +-- ClaimNotFoundError
    |   +-- ClaimNotDraftError
    |   +-- ClaimOwnershipError
    |   +-- InvalidClaimAmountError
    |
    +-- DirectoryError
    |   +-- CompanyNotFoundError
    |   +-- UserNotFoundError
    |   +-- DuplicateUserError
    |   +-- UserInactiveError
    |
    +-- CurrencyError
    |   +-- ExchangeRateNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|-----------------------------------
Approval     | NO_POLICY_CONFIGURED          | Submit with no active policy
             | CLAIM_NOT_AWAITING_APPROVAL   | Decide on draft/terminal claim
             | NOT_AN_AUTHORIZED_APPROVER    | Caller holds no actionable slot
             | APPROVER_INACTIVE             | Deactivated user decides
             | EMPTY_APPROVER_LIST           | Policy resolves to zero approvers
             | POLICY_SNAPSHOT_MISMATCH      | Decide against a non-bound policy
-------------|-------------------------------|-----------------------------------
Policy       | INVALID_POLICY                | Bad quorum / duplicate approvers
             | POLICY_NOT_FOUND              | Policy id doesn't exist
             | POLICY_TAMPER_DETECTED        | Stored hash doesn't match row
-------------|-------------------------------|-----------------------------------
Claim        | CLAIM_NOT_FOUND               | Claim id doesn't exist
             | CLAIM_NOT_DRAFT               | Submit a claim twice
             | CLAIM_OWNERSHIP               | Submit someone else's claim
             | INVALID_CLAIM_AMOUNT          | Amount <= 0
-------------|-------------------------------|-----------------------------------
Directory    | COMPANY_NOT_FOUND             | Company id doesn't exist
             | USER_NOT_FOUND                | User id doesn't exist
             | DUPLICATE_USER                | Email already registered
             | USER_INACTIVE                 | Deactivated user acts
-------------|-------------------------------|-----------------------------------
Currency     | EXCHANGE_RATE_NOT_FOUND       | No rate for currency pair
-------------|-------------------------------|-----------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT      | Two decisions raced on one claim
-------------|-------------------------------|-----------------------------------
Immutability | IMMUTABILITY_VIOLATION        | Modifying an audit event

===============================================================================
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Approval-workflow exceptions


class ApprovalError(ExpenseKernelError):
    """Base exception for approval workflow request rejections."""

    code: str = "APPROVAL_ERROR"
    user_message: str = "The approval request could not be processed."


class NoPolicyConfiguredError(ApprovalError):
    """Submission attempted with no active approval policy for the company."""

    code: str = "NO_POLICY_CONFIGURED"
    user_message: str = (
        "Cannot submit this expense: ask an administrator to configure "
        "approval rules."
    )

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"No active approval policy for company {company_id}")


class ClaimNotAwaitingApprovalError(ApprovalError):
    """Decision attempted on a claim that is not open for approval."""

    code: str = "CLAIM_NOT_AWAITING_APPROVAL"
    user_message: str = "This claim is not awaiting your approval."

    def __init__(self, claim_id: str, status: str):
        self.claim_id = claim_id
        self.status = status
        super().__init__(
            f"Claim {claim_id} is not awaiting approval (status={status})"
        )


class NotAnAuthorizedApproverError(ApprovalError):
    """Decision attempted by someone with no actionable pending slot."""

    code: str = "NOT_AN_AUTHORIZED_APPROVER"
    user_message: str = "Not authorized to approve this expense."

    def __init__(self, claim_id: str, approver_id: str, reason: str):
        self.claim_id = claim_id
        self.approver_id = approver_id
        self.reason = reason
        super().__init__(
            f"User {approver_id} cannot decide on claim {claim_id}: {reason}"
        )


class ApproverInactiveError(ApprovalError):
    """Decision attempted by a deactivated user."""

    code: str = "APPROVER_INACTIVE"
    user_message: str = "Inactive users cannot approve expenses."

    def __init__(self, approver_id: str):
        self.approver_id = approver_id
        super().__init__(f"Approver {approver_id} is inactive")


class EmptyApproverListError(ApprovalError):
    """The active policy resolved to zero approvers for this employee."""

    code: str = "EMPTY_APPROVER_LIST"
    user_message: str = (
        "Cannot submit this expense: the approval rules name no approvers."
    )

    def __init__(self, policy_id: str, employee_id: str):
        self.policy_id = policy_id
        self.employee_id = employee_id
        super().__init__(
            f"Policy {policy_id} resolves to no approvers for employee {employee_id}"
        )


class PolicySnapshotMismatchError(ApprovalError):
    """A decision was evaluated against a policy the claim is not bound to."""

    code: str = "POLICY_SNAPSHOT_MISMATCH"

    def __init__(self, claim_id: str, bound_policy_id: str, given_policy_id: str):
        self.claim_id = claim_id
        self.bound_policy_id = bound_policy_id
        self.given_policy_id = given_policy_id
        super().__init__(
            f"Claim {claim_id} is bound to policy {bound_policy_id}, "
            f"not {given_policy_id}"
        )


# Policy-administration exceptions


class PolicyError(ExpenseKernelError):
    """Base exception for approval policy administration errors."""

    code: str = "POLICY_ERROR"


class InvalidPolicyError(PolicyError):
    """Policy configuration is structurally invalid."""

    code: str = "INVALID_POLICY"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid approval policy: {reason}")


class PolicyNotFoundError(PolicyError):
    """Policy was not found."""

    code: str = "POLICY_NOT_FOUND"

    def __init__(self, policy_id: str):
        self.policy_id = policy_id
        super().__init__(f"Approval policy not found: {policy_id}")


class PolicyTamperDetectedError(PolicyError):
    """Stored policy hash does not match the stored policy fields."""

    code: str = "POLICY_TAMPER_DETECTED"

    def __init__(self, policy_id: str, expected_hash: str, computed_hash: str):
        self.policy_id = policy_id
        self.expected_hash = expected_hash
        self.computed_hash = computed_hash
        super().__init__(
            f"Approval policy {policy_id} was modified after creation"
        )


# Claim-lifecycle exceptions


class ClaimError(ExpenseKernelError):
    """Base exception for expense claim errors."""

    code: str = "CLAIM_ERROR"


class ClaimNotFoundError(ClaimError):
    """Claim was not found."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: str):
        self.claim_id = claim_id
        super().__init__(f"Expense claim not found: {claim_id}")


class ClaimNotDraftError(ClaimError):
    """Claim has already left the draft state."""

    code: str = "CLAIM_NOT_DRAFT"

    def __init__(self, claim_id: str, status: str):
        self.claim_id = claim_id
        self.status = status
        super().__init__(
            f"Claim {claim_id} cannot be submitted from status {status}"
        )


class ClaimOwnershipError(ClaimError):
    """Caller is not the employee who owns the claim."""

    code: str = "CLAIM_OWNERSHIP"

    def __init__(self, claim_id: str, user_id: str):
        self.claim_id = claim_id
        self.user_id = user_id
        super().__init__(f"User {user_id} does not own claim {claim_id}")


class InvalidClaimAmountError(ClaimError):
    """Claim amount is zero, negative, or not a number."""

    code: str = "INVALID_CLAIM_AMOUNT"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Invalid claim amount: {amount}")


# Directory (company and user) exceptions


class DirectoryError(ExpenseKernelError):
    """Base exception for company/user provisioning errors."""

    code: str = "DIRECTORY_ERROR"


class CompanyNotFoundError(DirectoryError):
    """Company was not found."""

    code: str = "COMPANY_NOT_FOUND"

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company not found: {company_id}")


class UserNotFoundError(DirectoryError):
    """User was not found (or not found within the expected company)."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class DuplicateUserError(DirectoryError):
    """A user with this email already exists."""

    code: str = "DUPLICATE_USER"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User already exists: {email}")


class UserInactiveError(DirectoryError):
    """User is deactivated."""

    code: str = "USER_INACTIVE"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User is inactive: {user_id}")


# Currency exceptions


class CurrencyError(ExpenseKernelError):
    """Base exception for currency conversion errors."""

    code: str = "CURRENCY_ERROR"


class ExchangeRateNotFoundError(CurrencyError):
    """No exchange rate available for the currency pair."""

    code: str = "EXCHANGE_RATE_NOT_FOUND"

    def __init__(self, from_currency: str, to_currency: str):
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(
            f"No exchange rate found for {from_currency} -> {to_currency}"
        )


# Concurrency exceptions


class ConcurrencyError(ExpenseKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(ExpenseKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
