"""
Expense claim domain types (``expense_kernel.domain.claim``).

Pure value objects for the claim itself: the expense category list, the
frozen claim DTO returned by services, and the pluggable exchange-rate
lookup used to fill the company-currency amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Protocol
from uuid import UUID

from expense_kernel.domain.approval import ClaimApprovalState, ClaimStatus


class ExpenseCategory(str, Enum):
    """Categories an employee can file an expense under."""

    FOOD = "Food"
    TRAVEL = "Travel"
    ACCOMMODATION = "Accommodation"
    TRANSPORT = "Transport"
    OFFICE_SUPPLIES = "Office Supplies"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


@dataclass(frozen=True)
class ExpenseClaim:
    """Immutable view of an expense claim and its approval state."""

    claim_id: UUID
    company_id: UUID
    employee_id: UUID
    description: str
    category: ExpenseCategory
    amount: Decimal
    currency: str
    converted_amount: Decimal
    expense_date: date
    paid_by: str
    approval: ClaimApprovalState
    created_at: datetime | None = None

    @property
    def status(self) -> ClaimStatus:
        return self.approval.status


class ExchangeRateProvider(Protocol):
    """Pluggable currency-rate lookup."""

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        """Return the multiplier converting ``from_currency`` into ``to_currency``."""
        ...


class StaticRateProvider:
    """Exchange-rate provider backed by a fixed table of pairs."""

    def __init__(self, rates: Mapping[tuple[str, str], Decimal]):
        self._rates = {
            (a.upper(), b.upper()): Decimal(str(r)) for (a, b), r in rates.items()
        }

    def get_rate(self, from_currency: str, to_currency: str) -> Decimal | None:
        key = (from_currency.upper(), to_currency.upper())
        if key in self._rates:
            return self._rates[key]
        inverse = self._rates.get((key[1], key[0]))
        if inverse:
            return Decimal(1) / inverse
        return None
