import json
import typer
from pathlib import Path
from typing import List, Optional
from datetime import date, datetime

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from finance_tracker.config.settings import AppSettings, ConfigLoader
from finance_tracker.config.log_setup import configure_logging
from finance_tracker.database.connection import DatabaseConfig, DatabaseManager, initialize_database
from finance_tracker.domain.defaults import DEFAULT_EXPENSE_TYPE_ID, DEFAULT_EXPENSE_TYPE_LABEL, UNCATEGORIZED_LABEL
from finance_tracker.domain.enums import DeadlineStatus, TransactionType
from finance_tracker.domain.models import Transaction
from finance_tracker.repositories.finance_store import FinanceStore
from finance_tracker.repositories.sqlite_store import SQLiteKeyValueStore
from finance_tracker.services import derivation
from finance_tracker.services.finance_service import FinanceService
from finance_tracker.services.models import BreakdownEntry
from finance_tracker.services.validation import TransactionInput, parse_amount, validate_transaction_input
from finance_tracker.utils.formatting import describe_due, format_currency, format_date

app = typer.Typer(
    name="finance-tracker",
    help="Track income, expenses and payment deadlines",
    add_completion=False,
)
category_app = typer.Typer(help="Manage categories")
expense_type_app = typer.Typer(help="Manage expense types")
app.add_typer(category_app, name="category")
app.add_typer(expense_type_app, name="expense-type")

console = Console()

DATE_FORMATS = ["%Y-%m-%d"]

class State:
    verbose: bool = False
    settings: AppSettings = AppSettings()
    service: Optional[FinanceService] = None


state = State()

@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to the database file",
        dir_okay=False,
    ),
):
    """
    Finance Tracker - Record transactions, follow deadlines and see where the money goes.
    """
    state.verbose = verbose

    if state.service is None:
        state.settings = ConfigLoader.load_app_settings()
        configure_logging(
            "DEBUG" if verbose else state.settings.log_level,
            state.settings.log_format,
        )
        db_manager = DatabaseManager(DatabaseConfig(db or state.settings.db_path))
        initialize_database(db_manager)
        store = FinanceStore(SQLiteKeyValueStore(db_manager))
        state.service = FinanceService(store)

def _abort(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")
    if state.verbose:
        console.print_exception()
    raise typer.Exit(code=1)

def _money(value) -> str:
    return format_currency(value, state.settings.currency_symbol)

def _as_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None

def _resolve_category(value: str, txn_type: TransactionType) -> str:
    """Accept a category id or a name of the matching type"""
    categories = state.service.categories
    for category in categories:
        if category.id == value:
            return category.id
    for category in categories:
        if category.name.lower() == value.lower() and category.type == txn_type:
            return category.id
    raise typer.BadParameter(f"Unknown {txn_type.value} category: {value}")

def _resolve_expense_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    for expense_type in state.service.expense_types:
        if value in (expense_type.id, expense_type.name) or value.lower() == expense_type.name.lower():
            return expense_type.id
    raise typer.BadParameter(f"Unknown expense type: {value}")

def _month_index(month: Optional[int]) -> Optional[int]:
    """CLI months are 1-12, the service works with 0-11"""
    return month - 1 if month is not None else None

def _transactions_table(transactions: List[Transaction], title: Optional[str] = None) -> Table:
    service = state.service
    table = Table(title=title, show_header=True, padding=(0, 1))
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Date", style="cyan", width=10)
    table.add_column("Description", style="white", max_width=40)
    table.add_column("Category", style="magenta")
    table.add_column("Due", style="yellow", width=10)
    table.add_column("Amount", justify="right")

    for txn in sorted(transactions, key=lambda t: t.date, reverse=True):
        if txn.is_income:
            amount_str = f"[green]+{_money(txn.amount)}[/green]"
        else:
            amount_str = f"[red]-{_money(txn.amount)}[/red]"
        table.add_row(
            txn.id[:8],
            format_date(txn.date),
            txn.description,
            derivation.resolve_label(txn.category, service.categories, UNCATEGORIZED_LABEL),
            format_date(txn.due_date) if txn.due_date else "",
            amount_str,
        )
    return table

def _find_transaction_id(prefix: str) -> str:
    """Accept a full id or an unambiguous prefix, as shown by `list`"""
    matches = [t.id for t in state.service.transactions if t.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ValueError(f"No transaction with id '{prefix}'")
    raise ValueError(f"Id prefix '{prefix}' matches {len(matches)} transactions")

def _breakdown_table(title: str, entries: List[BreakdownEntry], total) -> Table:
    table = Table(title=title, show_header=True, box=None, padding=(0, 2))
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Amount", justify="right", style="red")
    table.add_column("% of Total", justify="right", style="dim")
    for entry in entries:
        percentage = (entry.amount / total * 100) if total > 0 else 0
        table.add_row(entry.name, _money(entry.amount), f"{percentage:.1f}%")
    return table

# ═══════════════════════════════════════════════════════════
# TRANSACTIONS
# ═══════════════════════════════════════════════════════════

@app.command(name="add")
def add_transaction(
    description: str = typer.Argument(..., help="What the transaction was"),
    amount: str = typer.Argument(..., help="Amount, e.g. 1234.56 or 1.234,56"),
    txn_type: TransactionType = typer.Option(
        TransactionType.EXPENSE,
        "--type", "-t",
        help="income or expense",
    ),
    category: str = typer.Option(..., "--category", "-c", help="Category name or id"),
    txn_date: Optional[datetime] = typer.Option(
        None, "--date", "-d", formats=DATE_FORMATS, help="Transaction date (default: today)",
    ),
    due: Optional[datetime] = typer.Option(
        None, "--due", formats=DATE_FORMATS, help="Due date, creates a deadline",
    ),
    expense_type: Optional[str] = typer.Option(
        None, "--expense-type", "-e", help="Expense type name or id (expenses only)",
    ),
):
    """
    Record a new transaction.

    Examples:
        finance-tracker add "Mercado" 250,90 -c Alimentação
        finance-tracker add "Salário" 5000 -t income -c Salário
        finance-tracker add "Aluguel" 1800 -c Moradia --due 2025-02-10
    """
    try:
        when = _as_date(txn_date) or date.today()
        parsed_amount = validate_transaction_input(TransactionInput(
            description=description,
            amount=amount,
            category=category,
            date=when,
            due_date=_as_date(due),
        ))

        txn = state.service.add_transaction(
            description=description.strip(),
            amount=parsed_amount,
            type=txn_type,
            category=_resolve_category(category, txn_type),
            date=when,
            due_date=_as_date(due),
            expense_type=_resolve_expense_type(expense_type) if txn_type == TransactionType.EXPENSE else None,
        )
        console.print(f"[bold green]✓ Added[/bold green] {txn.description} ({_money(txn.amount)}) [dim]{txn.id}[/dim]")

    except Exception as e:
        _abort(e)

@app.command(name="list")
def list_transactions(
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Year"),
    month: Optional[int] = typer.Option(None, "--month", "-m", help="Month (1-12)", min=1, max=12),
    txn_type: Optional[TransactionType] = typer.Option(None, "--type", "-t", help="income or expense"),
):
    """
    List transactions, optionally for a year and/or month.

    Examples:
        finance-tracker list
        finance-tracker list --year 2025 --month 1 --type expense
    """
    try:
        transactions = derivation.filter_by_period(
            state.service.transactions, year, _month_index(month)
        )
        transactions = derivation.filter_by_type(transactions, txn_type)

        if not transactions:
            console.print(Panel(
                "[yellow]No transactions found[/yellow]",
                border_style="yellow",
            ))
            return

        console.print(_transactions_table(transactions))
        console.print(f"\n[dim]{len(transactions)} transactions[/dim]")

    except Exception as e:
        _abort(e)

@app.command(name="edit")
def edit_transaction(
    transaction_id: str = typer.Argument(..., help="Transaction id (or prefix)"),
    description: Optional[str] = typer.Option(None, "--description"),
    amount: Optional[str] = typer.Option(None, "--amount"),
    category: Optional[str] = typer.Option(None, "--category", "-c"),
    txn_date: Optional[datetime] = typer.Option(None, "--date", "-d", formats=DATE_FORMATS),
    due: Optional[datetime] = typer.Option(None, "--due", formats=DATE_FORMATS),
    clear_due: bool = typer.Option(False, "--clear-due", help="Remove the due date"),
    expense_type: Optional[str] = typer.Option(None, "--expense-type", "-e"),
):
    """
    Change fields of a transaction.
    """
    try:
        txn_id = _find_transaction_id(transaction_id)
        current = state.service.get_transaction(txn_id)
        changes = {}

        if description is not None:
            changes["description"] = description.strip()
        if amount is not None:
            changes["amount"] = parse_amount(amount)
        if category is not None:
            changes["category"] = _resolve_category(category, current.type)
        if txn_date is not None:
            changes["date"] = _as_date(txn_date)
        if clear_due:
            changes["due_date"] = None
        elif due is not None:
            changes["due_date"] = _as_date(due)
        if expense_type is not None:
            changes["expense_type"] = _resolve_expense_type(expense_type)

        if not changes:
            console.print("[yellow]Nothing to change[/yellow]")
            return

        # Re-run the entry checks on the merged values
        merged_due = changes.get("due_date", current.due_date)
        validate_transaction_input(TransactionInput(
            description=changes.get("description", current.description),
            amount=str(changes.get("amount", current.amount)),
            category=changes.get("category", current.category),
            date=changes.get("date", current.date),
            due_date=merged_due,
        ))

        updated = state.service.update_transaction(txn_id, **changes)
        console.print(f"[bold green]✓ Updated[/bold green] {updated.description}")

    except Exception as e:
        _abort(e)

@app.command(name="delete")
def delete_transaction(
    transaction_id: str = typer.Argument(..., help="Transaction id (or prefix)"),
):
    """Delete a transaction (and its deadline, if any)."""
    try:
        txn_id = _find_transaction_id(transaction_id)
        state.service.delete_transaction(txn_id)
        console.print(f"[bold green]✓ Deleted[/bold green] {txn_id}")

    except Exception as e:
        _abort(e)

# ═══════════════════════════════════════════════════════════
# DEADLINES
# ═══════════════════════════════════════════════════════════

@app.command(name="deadlines")
def show_deadlines(
    show_all: bool = typer.Option(False, "--all", "-a", help="Show every month, not just the current one"),
):
    """
    Show deadlines (transactions with a due date).
    """
    try:
        today = date.today()
        deadlines = state.service.deadlines(today)
        if show_all:
            deadlines = sorted(deadlines, key=lambda d: d.due_date)
        else:
            deadlines = derivation.deadlines_for_month(deadlines, today.year, today.month - 1)

        stats = derivation.deadline_stats(deadlines, today, state.settings.due_soon_days)
        console.print(Panel(
            f"[bold]Total:[/bold] {stats.total}   "
            f"[green]Pending:[/green] {stats.pending}   "
            f"[red]Overdue:[/red] {stats.overdue}   "
            f"[yellow]Due today:[/yellow] {stats.due_today}   "
            f"[cyan]Due soon:[/cyan] {stats.due_soon}",
            title="[bold]Deadlines[/bold]" + ("" if show_all else f" - {today.strftime('%m/%Y')}"),
            border_style="cyan",
        ))

        if not deadlines:
            console.print("[yellow]No deadlines[/yellow]")
            return

        table = Table(show_header=True, padding=(0, 1))
        table.add_column("ID", style="dim", no_wrap=True)
        table.add_column("Due", style="cyan", width=10)
        table.add_column("Title", style="white", max_width=40)
        table.add_column("Type", style="magenta")
        table.add_column("Amount", justify="right")
        table.add_column("Status")

        for deadline in deadlines:
            days = derivation.days_until_due(deadline.due_date, today)
            color = "red" if deadline.status == DeadlineStatus.OVERDUE else "green"
            if deadline.type == TransactionType.INCOME:
                kind = "Receita"
            else:
                kind = derivation.resolve_label(
                    deadline.expense_type or DEFAULT_EXPENSE_TYPE_ID,
                    state.service.expense_types,
                    DEFAULT_EXPENSE_TYPE_LABEL,
                )
            table.add_row(
                deadline.id[:8],
                format_date(deadline.due_date),
                deadline.title,
                kind,
                _money(deadline.amount),
                f"[{color}]{describe_due(days)}[/{color}]",
            )
        console.print(table)

    except Exception as e:
        _abort(e)

@app.command(name="clear-due")
def clear_due(
    transaction_id: str = typer.Argument(..., help="Transaction id (or prefix)"),
):
    """Remove a deadline by clearing the due date of its transaction."""
    try:
        txn_id = _find_transaction_id(transaction_id)
        if state.service.delete_deadline(txn_id) is None:
            console.print(f"[yellow]Transaction {txn_id} has no due date[/yellow]")
            return
        console.print(f"[bold green]✓ Deadline removed[/bold green] {txn_id}")

    except Exception as e:
        _abort(e)

# ═══════════════════════════════════════════════════════════
# REPORTS
# ═══════════════════════════════════════════════════════════

@app.command(name="summary")
def summary():
    """Overall balance and deadline counters."""
    try:
        result = state.service.summary()
        balance_color = "green" if result.balance >= 0 else "red"
        console.print(Panel(
            f"[green]💰 Income:[/green]    {_money(result.total_income):>16}\n"
            f"[red]💸 Expenses:[/red]  {_money(result.total_expenses):>16}\n"
            f"{'─' * 30}\n"
            f"[bold {balance_color}]Balance:[/bold {balance_color}]     {_money(result.balance):>16}\n\n"
            f"Pending deadlines: {result.pending_deadlines}\n"
            f"Overdue deadlines: {result.overdue_deadlines}",
            title="[bold]Summary[/bold]",
            border_style="cyan",
            padding=(1, 2),
        ))

    except Exception as e:
        _abort(e)

@app.command(name="report")
def report(
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Year"),
    month: Optional[int] = typer.Option(None, "--month", "-m", help="Month (1-12)", min=1, max=12),
):
    """
    Period report: totals, spending by category and expense type, monthly evolution.

    Examples:
        finance-tracker report
        finance-tracker report --year 2025 --month 3
    """
    try:
        service = state.service
        service.select_year(year)
        service.select_month(_month_index(month))

        stats = service.period_stats()
        if year is None and month is None:
            period_name = "All time"
        elif month is None:
            period_name = str(year)
        elif year is None:
            period_name = f"{derivation.MONTH_LABELS[month - 1]} (all years)"
        else:
            period_name = f"{derivation.MONTH_LABELS[month - 1]} {year}"

        console.print(f"\n[bold cyan]Report: {period_name}[/bold cyan]")

        if stats.transaction_count == 0:
            console.print(Panel(
                "[yellow]No transactions found for this period[/yellow]",
                title="Empty Report",
                border_style="yellow",
            ))
            return

        console.print(Panel(
            f"[bold]Transactions:[/bold] {stats.transaction_count}\n\n"
            f"[green]💰 Income:[/green]    {_money(stats.income):>16}\n"
            f"[red]💸 Expenses:[/red]  {_money(stats.expenses):>16}\n"
            f"{'─' * 30}\n"
            f"[bold]Balance:[/bold]     {_money(stats.balance):>16}",
            title=f"[bold]{period_name}[/bold]",
            border_style="cyan",
            padding=(1, 2),
        ))

        by_category = service.category_breakdown()
        if by_category:
            console.print(_breakdown_table("Spending by Category", by_category, stats.expenses))

        by_expense_type = service.expense_type_breakdown()
        if by_expense_type:
            console.print(_breakdown_table("Spending by Expense Type", by_expense_type, stats.expenses))

        evolution = Table(title="Monthly Evolution", show_header=True, padding=(0, 1))
        evolution.add_column("Month", style="cyan")
        evolution.add_column("Income", justify="right", style="green")
        evolution.add_column("Expenses", justify="right", style="red")
        evolution.add_column("Balance", justify="right")
        for entry in service.monthly_evolution():
            evolution.add_row(entry.month, _money(entry.income), _money(entry.expenses), _money(entry.balance))
        console.print(evolution)

    except Exception as e:
        _abort(e)

# ═══════════════════════════════════════════════════════════
# CATEGORIES
# ═══════════════════════════════════════════════════════════

@category_app.command(name="list")
def list_categories():
    """List categories."""
    table = Table(show_header=True, padding=(0, 1))
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Color")
    for category in state.service.categories:
        table.add_row(category.id, category.name, category.type.value, f"[{category.color}]■[/] {category.color}")
    console.print(table)

@category_app.command(name="add")
def add_category(
    name: str = typer.Argument(...),
    txn_type: TransactionType = typer.Option(TransactionType.EXPENSE, "--type", "-t"),
    color: str = typer.Option("#6b7280", "--color"),
):
    """Create a category."""
    try:
        category = state.service.add_category(name.strip(), txn_type, color)
        console.print(f"[bold green]✓ Added category[/bold green] {category.name} [dim]{category.id}[/dim]")
    except Exception as e:
        _abort(e)

@category_app.command(name="edit")
def edit_category(
    category_id: str = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    color: Optional[str] = typer.Option(None, "--color"),
):
    """Rename or recolor a category."""
    try:
        changes = {k: v for k, v in {"name": name, "color": color}.items() if v is not None}
        if state.service.update_category(category_id, **changes) is None:
            raise ValueError(f"No category with id '{category_id}'")
        console.print(f"[bold green]✓ Updated category[/bold green] {category_id}")
    except Exception as e:
        _abort(e)

@category_app.command(name="delete")
def delete_category(category_id: str = typer.Argument(...)):
    """Delete a category. Its transactions are kept as uncategorized."""
    try:
        if not state.service.delete_category(category_id):
            raise ValueError(f"No category with id '{category_id}'")
        console.print(f"[bold green]✓ Deleted category[/bold green] {category_id}")
    except Exception as e:
        _abort(e)

# ═══════════════════════════════════════════════════════════
# EXPENSE TYPES
# ═══════════════════════════════════════════════════════════

@expense_type_app.command(name="list")
def list_expense_types():
    """List expense types."""
    table = Table(show_header=True, padding=(0, 1))
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Built-in", justify="center")
    for expense_type in state.service.expense_types:
        table.add_row(
            expense_type.id,
            expense_type.name,
            expense_type.description,
            "✓" if expense_type.is_default else "",
        )
    console.print(table)

@expense_type_app.command(name="add")
def add_expense_type(
    name: str = typer.Argument(...),
    description: str = typer.Option("", "--description"),
    color: str = typer.Option("#3b82f6", "--color"),
):
    """Create a custom expense type."""
    try:
        expense_type = state.service.add_expense_type(name.strip(), description.strip(), color)
        console.print(f"[bold green]✓ Added expense type[/bold green] {expense_type.name} [dim]{expense_type.id}[/dim]")
    except Exception as e:
        _abort(e)

@expense_type_app.command(name="edit")
def edit_expense_type(
    expense_type_id: str = typer.Argument(...),
    name: Optional[str] = typer.Option(None, "--name"),
    description: Optional[str] = typer.Option(None, "--description"),
    color: Optional[str] = typer.Option(None, "--color"),
):
    """Change an expense type."""
    try:
        changes = {
            k: v for k, v in {"name": name, "description": description, "color": color}.items()
            if v is not None
        }
        if state.service.update_expense_type(expense_type_id, **changes) is None:
            raise ValueError(f"No expense type with id '{expense_type_id}'")
        console.print(f"[bold green]✓ Updated expense type[/bold green] {expense_type_id}")
    except Exception as e:
        _abort(e)

@expense_type_app.command(name="delete")
def delete_expense_type(expense_type_id: str = typer.Argument(...)):
    """Delete a custom expense type."""
    try:
        if not state.service.delete_expense_type(expense_type_id):
            raise ValueError(f"No expense type with id '{expense_type_id}'")
        console.print(f"[bold green]✓ Deleted expense type[/bold green] {expense_type_id}")
    except Exception as e:
        _abort(e)

# ═══════════════════════════════════════════════════════════
# BACKUP
# ═══════════════════════════════════════════════════════════

@app.command(name="export")
def export_data(
    filepath: Path = typer.Argument(..., help="Where to write the JSON backup", dir_okay=False),
):
    """Write every collection to a JSON backup file."""
    try:
        snapshot = state.service.store.export_snapshot()
        filepath.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
        console.print(
            f"[bold green]✓ Exported[/bold green] {len(snapshot['transactions'])} transactions to {filepath}"
        )
    except Exception as e:
        _abort(e)

@app.command(name="import")
def import_data(
    filepath: Path = typer.Argument(
        ..., help="JSON backup file", exists=True, file_okay=True, dir_okay=False,
    ),
):
    """Replace the stored data with a JSON backup."""
    try:
        snapshot = json.loads(filepath.read_text(encoding="utf-8"))
        counts = state.service.store.import_snapshot(snapshot)
        state.service.reload()
        for name, count in counts.items():
            console.print(f"[green]✓[/green] {name.replace('_', ' ')}: {count}")
    except Exception as e:
        _abort(e)


def cli_main():
    """Entry point for the CLI"""
    app()


if __name__ == "__main__":
    cli_main()
