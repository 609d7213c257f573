from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional

class InputValidationError(ValueError):
    """Raised when user input for a transaction is incomplete or inconsistent."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__("; ".join(errors))

@dataclass
class TransactionInput:
    """Raw values entered by the user, before they become a Transaction"""
    description: str
    amount: str
    category: str
    date: date
    due_date: Optional[date] = None

def parse_amount(value: str) -> Decimal:
    """
    Parse a user-entered amount. Accepts "1234.56", "1,234.56" and "1.234,56".

    Raises:
        InputValidationError: If the value isn't a number
    """
    text = value.strip().replace("R$", "").replace(" ", "")
    # Whichever separator comes last is the decimal one
    if text.rfind(",") > text.rfind("."):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise InputValidationError([f"Invalid amount: {value!r}"]) from None
    if not amount.is_finite():
        raise InputValidationError([f"Invalid amount: {value!r}"])
    return amount

def validate_transaction_input(data: TransactionInput) -> Decimal:
    """
    Check the fields the entry forms require.

    Returns:
        The parsed amount

    Raises:
        InputValidationError: With every problem found, not just the first
    """
    errors = []
    amount = None

    if not data.description or not data.description.strip():
        errors.append("Description is required")

    if not data.category or not data.category.strip():
        errors.append("Category is required")

    try:
        amount = parse_amount(data.amount)
        if amount <= 0:
            errors.append("Amount must be greater than zero")
    except InputValidationError as e:
        errors.extend(e.errors)

    if data.due_date is not None and data.due_date < data.date:
        errors.append("Due date cannot be before the transaction date")

    if errors:
        raise InputValidationError(errors)

    return amount
