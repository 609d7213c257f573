from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Optional
from finance_tracker.domain.enums import TransactionType, DeadlineStatus


def _coerce_type(value) -> TransactionType:
    """Accept a TransactionType or its string value"""
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise ValueError(
            f"Unknown transaction type: {value!r} "
            f"(expected one of {[t.value for t in TransactionType]})"
        ) from None


def _coerce_amount(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        # str() first so floats keep their shortest repr (0.1 -> Decimal("0.1"))
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}") from None


def _coerce_date(value, field_name: str) -> date:
    if isinstance(value, datetime):
        raise ValueError(f"{field_name} must be a calendar date, got a datetime")
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            raise ValueError(f"Invalid {field_name}: {value!r}") from None
    raise ValueError(f"Invalid {field_name}: {value!r}")


@dataclass
class Transaction:
    """Core domain model representing a single income or expense"""
    id: str
    description: str
    amount: Decimal
    type: TransactionType
    category: str
    date: date
    created_at: datetime
    due_date: Optional[date] = None
    expense_type: Optional[str] = None

    def __post_init__(self):
        """Enforce the structural shape of the record"""
        self.type = _coerce_type(self.type)
        self.amount = _coerce_amount(self.amount)
        self.date = _coerce_date(self.date, "date")
        if self.due_date is not None:
            self.due_date = _coerce_date(self.due_date, "due_date")
        if not isinstance(self.created_at, datetime):
            raise ValueError(f"created_at must be a datetime, got {self.created_at!r}")

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE

    @property
    def signed_amount(self) -> Decimal:
        """Return amount with sign for net calculations"""
        return self.amount if self.is_income else -self.amount

    def __repr__(self):
        sign = "+" if self.is_income else "-"
        return f"Transaction({self.id}, {self.date}, {self.description[:30]}, {sign}{self.amount})"


@dataclass(frozen=True)
class Deadline:
    """
    Read-only view of a transaction that carries a due date.

    Deadlines are never stored. `id` and `transaction_id` are both the id of
    the owning transaction.
    """
    id: str
    title: str
    amount: Decimal
    due_date: date
    category: str
    type: TransactionType
    status: DeadlineStatus
    transaction_id: str
    created_at: datetime
    expense_type: Optional[str] = None


@dataclass
class Category:
    """User-defined classification of income or expense purpose"""
    id: str
    name: str
    type: TransactionType
    color: str

    def __post_init__(self):
        self.type = _coerce_type(self.type)


@dataclass
class ExpenseType:
    """Secondary classification applied to expenses only"""
    id: str
    name: str
    description: str = ""
    color: str = "#6b7280"
    is_default: bool = False
