import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional

import structlog

from finance_tracker.domain.enums import TransactionType
from finance_tracker.domain.models import Category, Deadline, ExpenseType, Transaction
from finance_tracker.repositories.base import StorageError
from finance_tracker.repositories.finance_store import FinanceStore
from finance_tracker.services import derivation
from finance_tracker.services.models import (
    BreakdownEntry,
    CategoryTotal,
    DeadlineStats,
    FinancialSummary,
    MonthlyEvolutionEntry,
    PeriodSelection,
    PeriodStats,
)

logger = structlog.get_logger(__name__)

TRANSACTION_FIELDS = {"description", "amount", "type", "category", "date", "due_date", "expense_type"}
CATEGORY_FIELDS = {"name", "type", "color"}
EXPENSE_TYPE_FIELDS = {"name", "description", "color"}
DEADLINE_FIELDS = {"title": "description", "amount": "amount", "due_date": "due_date", "category": "category"}

class UnsupportedOperationError(Exception):
    """Raised for operations that have no meaning in the current model."""
    pass

class ProtectedEntityError(Exception):
    """Raised when trying to delete a built-in entity."""
    pass

def generate_id() -> str:
    """Random id, unique for the lifetime of the store"""
    return uuid.uuid4().hex

def _check_fields(changes: Dict[str, Any], allowed: set, entity: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update {entity} field(s): {', '.join(sorted(unknown))}")

class FinanceService:
    """
    Single entry point for changing transactions, categories and expense types.

    Keeps an in-memory copy of the store's collections. Every change is
    written to the store first and only reflected in memory once the write
    succeeded. A store that can't be read (StorageReadError) or written
    (StorageWriteError) raises, and memory is left as it was.

    Deadlines are not stored: they are derived from transactions with a due
    date, and editing or deleting one edits the owning transaction.
    """

    def __init__(self, store: FinanceStore):
        self.store = store
        self.period = PeriodSelection()
        self._transactions: List[Transaction] = []
        self._categories: List[Category] = []
        self._expense_types: List[ExpenseType] = []
        self.reload()

    def reload(self) -> None:
        """Refresh the in-memory copy from the store"""
        self._transactions = self.store.get_transactions()
        self._categories = self.store.get_categories()
        self._expense_types = self.store.get_expense_types()
        logger.debug(
            "finance_data_loaded",
            transactions=len(self._transactions),
            categories=len(self._categories),
            expense_types=len(self._expense_types),
        )

    @contextmanager
    def _writing(self, action: str, **context) -> Iterator[None]:
        """Log failed store reads and writes and let them propagate"""
        try:
            yield
        except StorageError as e:
            logger.error(
                "store_change_failed",
                action=action,
                error_type=type(e).__name__,
                error=str(e),
                **context,
            )
            raise

    # ------------------------------------------------------------------
    # Cached collections
    # ------------------------------------------------------------------

    @property
    def transactions(self) -> List[Transaction]:
        return list(self._transactions)

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    @property
    def expense_types(self) -> List[ExpenseType]:
        return list(self._expense_types)

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._transactions if t.id == transaction_id), None)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def add_transaction(
        self,
        description: str,
        amount: Decimal,
        type: TransactionType,
        category: str,
        date: date,
        due_date: Optional[date] = None,
        expense_type: Optional[str] = None,
    ) -> Transaction:
        """
        Create and persist a new transaction.

        Raises:
            ValueError: If the values don't fit the transaction shape
            StorageReadError: If the stored transactions can't be read
            StorageWriteError: If the transaction could not be saved
        """
        transaction = Transaction(
            id=generate_id(),
            description=description,
            amount=amount,
            type=type,
            category=category,
            date=date,
            created_at=datetime.now(timezone.utc),
            due_date=due_date,
            expense_type=expense_type,
        )

        with self._writing("add_transaction", transaction_id=transaction.id):
            self.store.add_transaction(transaction)

        self._transactions.append(transaction)
        logger.info("transaction_added", transaction_id=transaction.id, type=transaction.type.value)
        return transaction

    def update_transaction(self, transaction_id: str, **changes) -> Optional[Transaction]:
        """
        Merge changes into a transaction.

        Passing `due_date=None` clears the due date, which removes the
        derived deadline while keeping the transaction.

        Returns:
            The updated transaction, or None if the id doesn't exist

        Raises:
            ValueError: For unknown or read-only fields, or invalid values
            StorageReadError: If the stored transactions can't be read
            StorageWriteError: If the change could not be saved
        """
        _check_fields(changes, TRANSACTION_FIELDS, "transaction")

        current = self.get_transaction(transaction_id)
        if current is None:
            logger.warning("transaction_not_found", transaction_id=transaction_id)
            return None

        # Validate before touching the store
        updated = replace(current, **changes)

        with self._writing("update_transaction", transaction_id=transaction_id):
            stored = self.store.update_transaction(transaction_id, changes)

        if stored is None:
            # Memory had it, storage didn't: start again from storage
            logger.warning("transaction_missing_from_store", transaction_id=transaction_id)
            self.reload()
            return None

        self._transactions = [
            updated if t.id == transaction_id else t for t in self._transactions
        ]
        logger.info("transaction_updated", transaction_id=transaction_id, fields=sorted(changes))
        return updated

    def delete_transaction(self, transaction_id: str) -> bool:
        """Delete a transaction; its deadline, if any, goes with it"""
        if self.get_transaction(transaction_id) is None:
            logger.warning("transaction_not_found", transaction_id=transaction_id)
            return False

        with self._writing("delete_transaction", transaction_id=transaction_id):
            self.store.delete_transaction(transaction_id)

        self._transactions = [t for t in self._transactions if t.id != transaction_id]
        logger.info("transaction_deleted", transaction_id=transaction_id)
        return True

    # ------------------------------------------------------------------
    # Deadlines (views over transactions)
    # ------------------------------------------------------------------

    def add_deadline(self, *args, **kwargs) -> None:
        """Deadlines can't be created on their own."""
        raise UnsupportedOperationError(
            "Deadlines are derived from transactions: use add_transaction with a due_date instead"
        )

    def _find_deadline(self, deadline_id: str, today: Optional[date]) -> Optional[Deadline]:
        deadline = next(
            (d for d in self.deadlines(today) if d.id == deadline_id),
            None,
        )
        if deadline is None:
            logger.warning("deadline_not_found", deadline_id=deadline_id)
        return deadline

    def update_deadline(
        self,
        deadline_id: str,
        today: Optional[date] = None,
        **updates,
    ) -> Optional[Transaction]:
        """
        Edit a deadline by editing its transaction.

        Accepts `title`, `amount`, `due_date` and `category`. A None value
        keeps the current one; use delete_deadline to clear the due date.

        Returns:
            The updated transaction, or None if there is no such deadline
        """
        _check_fields(updates, set(DEADLINE_FIELDS), "deadline")

        deadline = self._find_deadline(deadline_id, today)
        if deadline is None:
            return None

        changes = {
            DEADLINE_FIELDS[name]: value
            for name, value in updates.items()
            if value is not None
        }
        if not changes:
            return self.get_transaction(deadline.transaction_id)

        return self.update_transaction(deadline.transaction_id, **changes)

    def delete_deadline(self, deadline_id: str, today: Optional[date] = None) -> Optional[Transaction]:
        """Remove a deadline by clearing its transaction's due date"""
        deadline = self._find_deadline(deadline_id, today)
        if deadline is None:
            return None
        return self.update_transaction(deadline.transaction_id, due_date=None)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def add_category(self, name: str, type: TransactionType, color: str = "#6b7280") -> Category:
        category = Category(id=generate_id(), name=name, type=type, color=color)

        with self._writing("add_category", category_id=category.id):
            self.store.add_category(category)

        self._categories.append(category)
        logger.info("category_added", category_id=category.id, name=name)
        return category

    def update_category(self, category_id: str, **changes) -> Optional[Category]:
        _check_fields(changes, CATEGORY_FIELDS, "category")

        current = next((c for c in self._categories if c.id == category_id), None)
        if current is None:
            logger.warning("category_not_found", category_id=category_id)
            return None

        updated = replace(current, **changes)
        with self._writing("update_category", category_id=category_id):
            stored = self.store.update_category(category_id, changes)

        if stored is None:
            logger.warning("category_missing_from_store", category_id=category_id)
            self.reload()
            return None

        self._categories = [updated if c.id == category_id else c for c in self._categories]
        logger.info("category_updated", category_id=category_id, fields=sorted(changes))
        return updated

    def delete_category(self, category_id: str) -> bool:
        """
        Delete a category.

        Transactions keep the stale id and show up as uncategorized.
        """
        if not any(c.id == category_id for c in self._categories):
            logger.warning("category_not_found", category_id=category_id)
            return False

        with self._writing("delete_category", category_id=category_id):
            self.store.delete_category(category_id)

        self._categories = [c for c in self._categories if c.id != category_id]
        logger.info("category_deleted", category_id=category_id)
        return True

    # ------------------------------------------------------------------
    # Expense types
    # ------------------------------------------------------------------

    def add_expense_type(self, name: str, description: str = "", color: str = "#3b82f6") -> ExpenseType:
        expense_type = ExpenseType(
            id=generate_id(),
            name=name,
            description=description,
            color=color,
            is_default=False,
        )

        with self._writing("add_expense_type", expense_type_id=expense_type.id):
            self.store.add_expense_type(expense_type)

        self._expense_types.append(expense_type)
        logger.info("expense_type_added", expense_type_id=expense_type.id, name=name)
        return expense_type

    def update_expense_type(self, expense_type_id: str, **changes) -> Optional[ExpenseType]:
        _check_fields(changes, EXPENSE_TYPE_FIELDS, "expense type")

        current = next((e for e in self._expense_types if e.id == expense_type_id), None)
        if current is None:
            logger.warning("expense_type_not_found", expense_type_id=expense_type_id)
            return None

        updated = replace(current, **changes)
        with self._writing("update_expense_type", expense_type_id=expense_type_id):
            stored = self.store.update_expense_type(expense_type_id, changes)

        if stored is None:
            logger.warning("expense_type_missing_from_store", expense_type_id=expense_type_id)
            self.reload()
            return None

        self._expense_types = [
            updated if e.id == expense_type_id else e for e in self._expense_types
        ]
        logger.info("expense_type_updated", expense_type_id=expense_type_id, fields=sorted(changes))
        return updated

    def delete_expense_type(self, expense_type_id: str) -> bool:
        """
        Delete a custom expense type. Expenses tagged with it count as "Normal".

        Raises:
            ProtectedEntityError: For the built-in types
        """
        current = next((e for e in self._expense_types if e.id == expense_type_id), None)
        if current is None:
            logger.warning("expense_type_not_found", expense_type_id=expense_type_id)
            return False

        if current.is_default:
            raise ProtectedEntityError(f"Built-in expense type '{current.name}' cannot be deleted")

        with self._writing("delete_expense_type", expense_type_id=expense_type_id):
            self.store.delete_expense_type(expense_type_id)

        self._expense_types = [e for e in self._expense_types if e.id != expense_type_id]
        logger.info("expense_type_deleted", expense_type_id=expense_type_id)
        return True

    # ------------------------------------------------------------------
    # Period selection
    # ------------------------------------------------------------------

    def select_year(self, year: Optional[int]) -> None:
        self.period.select_year(year)

    def select_month(self, month: Optional[int]) -> None:
        self.period.select_month(month)

    def clear_period(self) -> None:
        self.period.clear()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def deadlines(self, today: Optional[date] = None) -> List[Deadline]:
        return derivation.deadline_projection(self._transactions, today or date.today())

    def summary(self, today: Optional[date] = None) -> FinancialSummary:
        today = today or date.today()
        return derivation.financial_summary(
            self._transactions,
            derivation.deadline_projection(self._transactions, today),
            today,
        )

    def deadline_stats(
        self,
        today: Optional[date] = None,
        due_soon_days: int = derivation.DUE_SOON_DAYS,
    ) -> DeadlineStats:
        """Counters for the deadlines due in the current month"""
        today = today or date.today()
        current = derivation.deadlines_for_month(self.deadlines(today), today.year, today.month - 1)
        return derivation.deadline_stats(current, today, due_soon_days)

    def available_years(self) -> List[int]:
        return derivation.available_years(self._transactions)

    def available_months(self) -> List[int]:
        return derivation.available_months(self._transactions, self.period.year)

    def filtered_transactions(self) -> List[Transaction]:
        return derivation.filter_by_period(self._transactions, self.period.year, self.period.month)

    def period_stats(self) -> PeriodStats:
        return derivation.period_stats(self.filtered_transactions())

    def category_breakdown(self) -> List[BreakdownEntry]:
        return derivation.category_breakdown(self.filtered_transactions(), self._categories)

    def expense_type_breakdown(self) -> List[BreakdownEntry]:
        return derivation.expense_type_breakdown(self.filtered_transactions(), self._expense_types)

    def category_totals(self) -> List[CategoryTotal]:
        return derivation.category_totals(self.filtered_transactions(), self._categories)

    def monthly_evolution(self) -> List[MonthlyEvolutionEntry]:
        """12 month evolution, limited to the selected year when there is one"""
        transactions = derivation.filter_by_period(self._transactions, self.period.year, None)
        return derivation.monthly_evolution(transactions)

    def monthly_series(self) -> List[MonthlyEvolutionEntry]:
        return derivation.monthly_series(self._transactions)
