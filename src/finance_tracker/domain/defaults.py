"""
Seed data written to the store on first run.

The ids and colors are part of the stored format and must not change,
exported backups refer to them.
"""
from typing import List

from finance_tracker.domain.enums import TransactionType
from finance_tracker.domain.models import Category, ExpenseType

UNCATEGORIZED_LABEL = "Sem categoria"
DEFAULT_EXPENSE_TYPE_ID = "normal"
DEFAULT_EXPENSE_TYPE_LABEL = "Normal"
FALLBACK_COLOR = "#6b7280"

_DEFAULT_CATEGORIES = [
    # Income
    ("1", "Salário", TransactionType.INCOME, "#22c55e"),
    ("2", "Freelance", TransactionType.INCOME, "#3b82f6"),
    ("3", "Investimentos", TransactionType.INCOME, "#8b5cf6"),
    ("4", "Outros", TransactionType.INCOME, "#06b6d4"),
    # Expense
    ("5", "Alimentação", TransactionType.EXPENSE, "#ef4444"),
    ("6", "Transporte", TransactionType.EXPENSE, "#f59e0b"),
    ("7", "Moradia", TransactionType.EXPENSE, "#ec4899"),
    ("8", "Saúde", TransactionType.EXPENSE, "#10b981"),
    ("9", "Educação", TransactionType.EXPENSE, "#6366f1"),
    ("10", "Lazer", TransactionType.EXPENSE, "#f97316"),
    ("11", "Contas", TransactionType.EXPENSE, "#84cc16"),
    ("12", "Outros", TransactionType.EXPENSE, "#6b7280"),
]

_DEFAULT_EXPENSE_TYPES = [
    ("normal", "Normal", "Despesa do dia a dia", "#6b7280"),
    ("reserva", "Reserva", "Valor separado para uma reserva", "#3b82f6"),
    ("devolucao", "Devolução", "Valor que será devolvido ou reembolsado", "#22c55e"),
]

DEFAULT_EXPENSE_TYPE_IDS = tuple(row[0] for row in _DEFAULT_EXPENSE_TYPES)


def default_categories() -> List[Category]:
    """Fresh list of the built-in categories (4 income + 8 expense)"""
    return [
        Category(id=cid, name=name, type=ctype, color=color)
        for cid, name, ctype, color in _DEFAULT_CATEGORIES
    ]


def default_expense_types() -> List[ExpenseType]:
    """Fresh list of the three built-in expense types"""
    return [
        ExpenseType(id=eid, name=name, description=desc, color=color, is_default=True)
        for eid, name, desc, color in _DEFAULT_EXPENSE_TYPES
    ]
