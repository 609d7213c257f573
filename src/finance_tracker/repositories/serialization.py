"""
Record conversion between domain objects and stored JSON records.

Records are flat dicts with camelCase keys. Optional fields that are not
set are left out of the record entirely, never written as null, so a
record always round-trips to the same object.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict

from finance_tracker.domain.models import Category, ExpenseType, Transaction

Record = Dict[str, Any]

class RecordFormatError(ValueError):
    """Raised when a stored record is missing fields or holds bad values."""
    pass

def _parse_datetime(value: str) -> datetime:
    # Records written by browsers end in "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)

def _require(record: Record, key: str) -> Any:
    if key not in record:
        raise RecordFormatError(f"Record is missing '{key}': {record!r}")
    return record[key]

def transaction_to_record(transaction: Transaction) -> Record:
    record: Record = {
        "id": transaction.id,
        "description": transaction.description,
        "amount": str(transaction.amount), # Stored as string for precision
        "type": transaction.type.value,
        "category": transaction.category,
        "date": transaction.date.isoformat(),
        "createdAt": transaction.created_at.isoformat(),
    }
    if transaction.due_date is not None:
        record["dueDate"] = transaction.due_date.isoformat()
    if transaction.expense_type is not None:
        record["expenseType"] = transaction.expense_type
    return record

def record_to_transaction(record: Record) -> Transaction:
    try:
        due_date = record.get("dueDate")
        return Transaction(
            id=str(_require(record, "id")),
            description=_require(record, "description"),
            amount=Decimal(str(_require(record, "amount"))),
            type=_require(record, "type"),
            category=_require(record, "category"),
            date=date.fromisoformat(_require(record, "date")),
            created_at=_parse_datetime(_require(record, "createdAt")),
            due_date=date.fromisoformat(due_date) if due_date else None,
            expense_type=record.get("expenseType") or None,
        )
    except RecordFormatError:
        raise
    except (ArithmeticError, TypeError, ValueError) as e:
        raise RecordFormatError(f"Invalid transaction record {record!r}: {e}") from e

def category_to_record(category: Category) -> Record:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
    }

def record_to_category(record: Record) -> Category:
    try:
        return Category(
            id=str(_require(record, "id")),
            name=_require(record, "name"),
            type=_require(record, "type"),
            color=_require(record, "color"),
        )
    except RecordFormatError:
        raise
    except (TypeError, ValueError) as e:
        raise RecordFormatError(f"Invalid category record {record!r}: {e}") from e

def expense_type_to_record(expense_type: ExpenseType) -> Record:
    return {
        "id": expense_type.id,
        "name": expense_type.name,
        "description": expense_type.description,
        "color": expense_type.color,
        "isDefault": expense_type.is_default,
    }

def record_to_expense_type(record: Record) -> ExpenseType:
    return ExpenseType(
        id=str(_require(record, "id")),
        name=_require(record, "name"),
        description=record.get("description", ""),
        color=record.get("color", "#6b7280"),
        is_default=bool(record.get("isDefault", False)),
    )
