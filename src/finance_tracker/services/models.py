"""
Service layer models - results of the derivation functions.

These are computed on demand from the transaction set and never persisted.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from finance_tracker.domain.enums import TransactionType

ZERO = Decimal("0")

@dataclass(frozen=True)
class FinancialSummary:
    """Totals over every transaction, plus deadline counters."""
    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    balance: Decimal = ZERO
    pending_deadlines: int = 0
    overdue_deadlines: int = 0

@dataclass(frozen=True)
class PeriodStats:
    """Totals for the transactions of a selected period"""
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    balance: Decimal = ZERO
    transaction_count: int = 0

@dataclass(frozen=True)
class BreakdownEntry:
    """One slice of a category or expense type breakdown"""
    name: str
    amount: Decimal

@dataclass(frozen=True)
class CategoryTotal:
    name: str
    type: TransactionType
    color: str
    amount: Decimal

@dataclass(frozen=True)
class MonthlyEvolutionEntry:
    """
    Income and expenses for one month.

    `year` is only set for chronological series; the 12 month evolution
    aggregates every year it is given into the same month.
    """
    month: str
    income: Decimal = ZERO
    expenses: Decimal = ZERO
    year: Optional[int] = None

    @property
    def balance(self) -> Decimal:
        return self.income - self.expenses

@dataclass(frozen=True)
class DeadlineStats:
    """Counters shown on the deadlines page"""
    total: int = 0
    pending: int = 0
    overdue: int = 0
    due_today: int = 0
    due_soon: int = 0

@dataclass
class PeriodSelection:
    """
    Year/month filter state. `None` means "all".

    Months are 0-11. Choosing a year clears the month, since the months on
    offer depend on the year.
    """
    year: Optional[int] = None
    month: Optional[int] = None

    def select_year(self, year: Optional[int]) -> None:
        self.year = year
        self.month = None

    def select_month(self, month: Optional[int]) -> None:
        if month is not None and not 0 <= month <= 11:
            raise ValueError(f"Month must be between 0 and 11, got {month}")
        self.month = month

    def clear(self) -> None:
        self.year = None
        self.month = None

    @property
    def is_all(self) -> bool:
        return self.year is None and self.month is None
