"""
Derived views over the transaction set.

Everything here is a pure function of its arguments: deadlines, summaries,
period filters, breakdowns and monthly series are recomputed from the
transactions on every read and never stored. Functions that depend on the
current date take `today` as an argument; only the service layer reads
the clock.
"""
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from finance_tracker.domain.defaults import (
    DEFAULT_EXPENSE_TYPE_ID,
    DEFAULT_EXPENSE_TYPE_LABEL,
    FALLBACK_COLOR,
    UNCATEGORIZED_LABEL,
)
from finance_tracker.domain.enums import DeadlineStatus, TransactionType
from finance_tracker.domain.models import Category, Deadline, ExpenseType, Transaction
from finance_tracker.services.models import (
    ZERO,
    BreakdownEntry,
    CategoryTotal,
    DeadlineStats,
    FinancialSummary,
    MonthlyEvolutionEntry,
    PeriodStats,
)

MONTH_LABELS = [
    "Jan", "Fev", "Mar", "Abr", "Mai", "Jun",
    "Jul", "Ago", "Set", "Out", "Nov", "Dez",
]

DUE_SOON_DAYS = 7

# ----------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------

def resolve_label(item_id: Optional[str], collection: Iterable, fallback: str) -> str:
    """
    Name of the item with the given id, or `fallback` when there is none.

    Never raises: ids left behind by a deleted category or expense type
    resolve to the fallback.
    """
    if item_id is None:
        return fallback
    for item in collection:
        if item.id == item_id:
            return item.name or fallback
    return fallback

def resolve_color(item_id: Optional[str], collection: Iterable, fallback: str = FALLBACK_COLOR) -> str:
    for item in collection:
        if item.id == item_id:
            return item.color or fallback
    return fallback

# ----------------------------------------------------------------------
# Deadlines
# ----------------------------------------------------------------------

def deadline_status(due_date: date, today: date) -> DeadlineStatus:
    """Overdue once the due date is in the past; a deadline due today is still pending"""
    return DeadlineStatus.OVERDUE if due_date < today else DeadlineStatus.PENDING

def days_until_due(due_date: date, today: date) -> int:
    """Negative for overdue deadlines"""
    return (due_date - today).days

def deadline_projection(transactions: Iterable[Transaction], today: date) -> List[Deadline]:
    """
    Deadline view of every transaction that has a due date.

    Args:
        transactions: Current transaction set
        today: Reference date for the status

    Returns:
        One deadline per transaction with a due date, in transaction order
    """
    return [
        Deadline(
            id=txn.id,
            title=txn.description,
            amount=txn.amount,
            due_date=txn.due_date,
            category=txn.category,
            type=txn.type,
            status=deadline_status(txn.due_date, today),
            transaction_id=txn.id,
            created_at=txn.created_at,
            expense_type=txn.expense_type,
        )
        for txn in transactions
        if txn.due_date is not None
    ]

def deadlines_for_month(deadlines: Iterable[Deadline], year: int, month: int) -> List[Deadline]:
    """Deadlines due in the given month (0-11), earliest first"""
    selected = [
        d for d in deadlines
        if d.due_date.year == year and d.due_date.month - 1 == month
    ]
    return sorted(selected, key=lambda d: d.due_date)

def deadlines_by_status(deadlines: Iterable[Deadline], today: date) -> Dict[DeadlineStatus, List[Deadline]]:
    """
    Split deadlines into pending (due after today) and overdue (due before today).

    Deadlines due today are in neither group, matching the summary counters.
    """
    groups: Dict[DeadlineStatus, List[Deadline]] = {
        DeadlineStatus.PENDING: [],
        DeadlineStatus.OVERDUE: [],
    }
    for deadline in deadlines:
        if deadline.status == DeadlineStatus.PENDING and deadline.due_date > today:
            groups[DeadlineStatus.PENDING].append(deadline)
        elif deadline.due_date < today:
            groups[DeadlineStatus.OVERDUE].append(deadline)
    return groups

def deadline_stats(
    deadlines: Sequence[Deadline],
    today: date,
    due_soon_days: int = DUE_SOON_DAYS,
) -> DeadlineStats:
    """Counters for a list of deadlines, typically the current month's"""
    days = [days_until_due(d.due_date, today) for d in deadlines]
    return DeadlineStats(
        total=len(days),
        pending=sum(1 for n in days if n >= 0),
        overdue=sum(1 for n in days if n < 0),
        due_today=sum(1 for n in days if n == 0),
        due_soon=sum(1 for n in days if 0 < n <= due_soon_days),
    )

# ----------------------------------------------------------------------
# Summaries
# ----------------------------------------------------------------------

def _total(transactions: Iterable[Transaction], txn_type: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == txn_type), ZERO)

def financial_summary(
    transactions: Sequence[Transaction],
    deadlines: Iterable[Deadline],
    today: date,
) -> FinancialSummary:
    """
    Overall totals and deadline counters.

    Pending and overdue use strict comparisons against `today`, so a
    deadline due today is counted as neither.
    """
    total_income = _total(transactions, TransactionType.INCOME)
    total_expenses = _total(transactions, TransactionType.EXPENSE)
    groups = deadlines_by_status(deadlines, today)

    return FinancialSummary(
        total_income=total_income,
        total_expenses=total_expenses,
        balance=total_income - total_expenses,
        pending_deadlines=len(groups[DeadlineStatus.PENDING]),
        overdue_deadlines=len(groups[DeadlineStatus.OVERDUE]),
    )

def period_stats(transactions: Sequence[Transaction]) -> PeriodStats:
    income = _total(transactions, TransactionType.INCOME)
    expenses = _total(transactions, TransactionType.EXPENSE)
    return PeriodStats(
        income=income,
        expenses=expenses,
        balance=income - expenses,
        transaction_count=len(transactions),
    )

# ----------------------------------------------------------------------
# Period filters
# ----------------------------------------------------------------------

def available_years(transactions: Iterable[Transaction]) -> List[int]:
    """Years that have transactions, most recent first"""
    return sorted({t.date.year for t in transactions}, reverse=True)

def available_months(transactions: Iterable[Transaction], year: Optional[int]) -> List[int]:
    """
    Month indices (0-11) that have transactions in `year`.

    A year without transactions offers all 12 months so a month picker is
    never empty.
    """
    months = {
        t.date.month - 1 for t in transactions
        if year is None or t.date.year == year
    }
    if not months:
        return list(range(12))
    return sorted(months)

def filter_by_period(
    transactions: Iterable[Transaction],
    year: Optional[int],
    month: Optional[int],
) -> List[Transaction]:
    """Transactions in the given year and/or month (0-11); None skips that filter"""
    return [
        t for t in transactions
        if (year is None or t.date.year == year)
        and (month is None or t.date.month - 1 == month)
    ]

def filter_by_type(
    transactions: Iterable[Transaction],
    txn_type: Optional[TransactionType],
) -> List[Transaction]:
    return [t for t in transactions if txn_type is None or t.type == txn_type]

# ----------------------------------------------------------------------
# Breakdowns
# ----------------------------------------------------------------------

def _sorted_breakdown(totals: Dict[str, Decimal]) -> List[BreakdownEntry]:
    entries = [BreakdownEntry(name=name, amount=amount) for name, amount in totals.items()]
    return sorted(entries, key=lambda e: e.amount, reverse=True)

def category_breakdown(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
) -> List[BreakdownEntry]:
    """Expense totals per category name, largest first"""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if not txn.is_expense:
            continue
        name = resolve_label(txn.category, categories, UNCATEGORIZED_LABEL)
        totals[name] += txn.amount
    return _sorted_breakdown(totals)

def expense_type_breakdown(
    transactions: Iterable[Transaction],
    expense_types: Sequence[ExpenseType],
) -> List[BreakdownEntry]:
    """Expense totals per expense type name, largest first. Untagged expenses are "normal"."""
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        if not txn.is_expense:
            continue
        type_id = txn.expense_type or DEFAULT_EXPENSE_TYPE_ID
        name = resolve_label(type_id, expense_types, DEFAULT_EXPENSE_TYPE_LABEL)
        totals[name] += txn.amount
    return _sorted_breakdown(totals)

def category_totals(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
) -> List[CategoryTotal]:
    """Totals per existing category (income and expense), skipping empty ones"""
    amounts: Dict[str, Decimal] = defaultdict(Decimal)
    for txn in transactions:
        amounts[txn.category] += txn.amount

    totals = [
        CategoryTotal(
            name=category.name,
            type=category.type,
            color=category.color,
            amount=amounts[category.id],
        )
        for category in categories
        if amounts.get(category.id, ZERO) > 0
    ]
    return sorted(totals, key=lambda c: c.amount, reverse=True)

# ----------------------------------------------------------------------
# Monthly series
# ----------------------------------------------------------------------

def monthly_evolution(transactions: Iterable[Transaction]) -> List[MonthlyEvolutionEntry]:
    """
    Income and expenses per calendar month, indexed 0-11.

    All 12 months are present even without data. Transactions from different
    years fall into the same month; pass a single year's transactions for a
    per-year view.
    """
    income = [ZERO] * 12
    expenses = [ZERO] * 12
    for txn in transactions:
        index = txn.date.month - 1
        if txn.is_income:
            income[index] += txn.amount
        else:
            expenses[index] += txn.amount

    return [
        MonthlyEvolutionEntry(month=MONTH_LABELS[i], income=income[i], expenses=expenses[i])
        for i in range(12)
    ]

def monthly_series(transactions: Iterable[Transaction]) -> List[MonthlyEvolutionEntry]:
    """Chronological year-month series, only months that have transactions"""
    buckets: Dict[tuple, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for txn in transactions:
        bucket = buckets[(txn.date.year, txn.date.month)]
        if txn.is_income:
            bucket[0] += txn.amount
        else:
            bucket[1] += txn.amount

    return [
        MonthlyEvolutionEntry(
            month=f"{month:02d}/{year}",
            income=income,
            expenses=expenses,
            year=year,
        )
        for (year, month), (income, expenses) in sorted(buckets.items())
    ]
