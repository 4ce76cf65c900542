"""
Expense Kernel

Expense claims routed through a configurable approval workflow:
- Versioned, per-company approval policies
- Sequential chains, quorum percentages and override approvers
- Snapshot binding of claims to the policy they were submitted under
- Append-only audit trail per claim
"""

__version__ = "0.1.0"
