from enum import Enum

class TransactionType(Enum):
    """Represents whether money is coming in or out"""
    INCOME = "income" # in
    EXPENSE = "expense" # out

class DeadlineStatus(Enum):
    """Status of a deadline derived from its due date"""
    PENDING = "pending"
    OVERDUE = "overdue"
