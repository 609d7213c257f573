import json
import pytest
from datetime import date
from decimal import Decimal

from finance_tracker.domain.enums import DeadlineStatus, TransactionType
from finance_tracker.repositories.base import StorageReadError, StorageWriteError
from finance_tracker.repositories.finance_store import TRANSACTIONS_KEY, FinanceStore
from finance_tracker.repositories.serialization import transaction_to_record
from finance_tracker.services.finance_service import (
    FinanceService,
    ProtectedEntityError,
    UnsupportedOperationError,
)
from finance_tracker.services.models import PeriodStats

INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE

@pytest.fixture
def basic_flow(service: FinanceService):
    """Salary plus one grocery bill with a due date"""
    salary = service.add_transaction(
        description="Salário", amount=Decimal("1000"), type=INCOME,
        category="1", date=date(2024, 1, 10),
    )
    groceries = service.add_transaction(
        description="Mercado", amount=Decimal("300"), type=EXPENSE,
        category="5", date=date(2024, 1, 15), due_date=date(2024, 1, 20),
    )
    return salary, groceries

@pytest.mark.unit
class TestLoading:

    def test_starts_with_seeded_collections(self, service: FinanceService):
        assert service.transactions == []
        assert len(service.categories) == 12
        assert [e.id for e in service.expense_types] == ["normal", "reserva", "devolucao"]

    def test_reload_picks_up_store_changes(self, service: FinanceService, store: FinanceStore, make_transaction):
        store.add_transaction(make_transaction())

        service.reload()

        assert len(service.transactions) == 1

@pytest.mark.unit
class TestTransactions:

    def test_add_assigns_id_and_created_at(self, service: FinanceService, store: FinanceStore):
        txn = service.add_transaction(
            description="Café", amount="4.50", type="expense", category="5", date=date(2024, 2, 1),
        )

        assert txn.id
        assert txn.created_at is not None
        assert txn.amount == Decimal("4.50")
        assert store.get_transactions() == [txn]
        assert service.transactions == [txn]

    def test_ids_are_unique(self, service: FinanceService):
        ids = {
            service.add_transaction(
                description="x", amount=Decimal("1"), type=EXPENSE, category="5", date=date(2024, 1, 1),
            ).id
            for _ in range(50)
        }
        assert len(ids) == 50

    def test_invalid_shape_is_rejected_before_writing(self, service: FinanceService, store: FinanceStore):
        with pytest.raises(ValueError):
            service.add_transaction(
                description="x", amount=Decimal("1"), type="transfer", category="5", date=date(2024, 1, 1),
            )

        assert store.get_transactions() == []
        assert service.transactions == []

    def test_update_merges_fields(self, service: FinanceService, store: FinanceStore, basic_flow):
        _, groceries = basic_flow

        updated = service.update_transaction(groceries.id, amount=Decimal("320"), description="Feira")

        assert updated.amount == Decimal("320")
        assert updated.description == "Feira"
        assert updated.due_date == date(2024, 1, 20)
        assert updated.created_at == groceries.created_at
        assert service.get_transaction(groceries.id) == updated
        assert store.get_transactions()[1] == updated

    def test_clearing_due_date_removes_the_deadline(self, service: FinanceService, basic_flow, today):
        _, groceries = basic_flow

        service.update_transaction(groceries.id, due_date=None)

        assert service.deadlines(today) == []
        assert service.get_transaction(groceries.id) is not None

    def test_update_unknown_id_is_a_noop(self, service: FinanceService, store: FinanceStore, basic_flow, mocker):
        spy = mocker.spy(store, "update_transaction")

        assert service.update_transaction("missing", amount=Decimal("1")) is None
        spy.assert_not_called()

    @pytest.mark.parametrize("changes", [{"id": "other"}, {"created_at": None}, {"color": "#fff"}])
    def test_update_rejects_read_only_and_unknown_fields(self, service: FinanceService, basic_flow, changes):
        salary, _ = basic_flow
        with pytest.raises(ValueError):
            service.update_transaction(salary.id, **changes)

    def test_update_rejects_bad_values(self, service: FinanceService, store: FinanceStore, basic_flow):
        salary, _ = basic_flow

        with pytest.raises(ValueError):
            service.update_transaction(salary.id, type="gift")

        assert store.get_transactions()[0].type == INCOME

    def test_delete(self, service: FinanceService, store: FinanceStore, basic_flow, today):
        _, groceries = basic_flow

        assert service.delete_transaction(groceries.id) is True

        assert [t.id for t in service.transactions] == [basic_flow[0].id]
        assert [t.id for t in store.get_transactions()] == [basic_flow[0].id]
        assert service.deadlines(today) == []

    def test_delete_unknown_id(self, service: FinanceService):
        assert service.delete_transaction("missing") is False

@pytest.mark.unit
class TestWriteThenReflect:

    def test_failed_add_leaves_cache_untouched(self, service: FinanceService, store: FinanceStore, mocker):
        mocker.patch.object(store, "add_transaction", side_effect=StorageWriteError("quota exceeded"))

        with pytest.raises(StorageWriteError):
            service.add_transaction(
                description="x", amount=Decimal("1"), type=EXPENSE, category="5", date=date(2024, 1, 1),
            )

        assert service.transactions == []

    def test_failed_update_leaves_cache_untouched(self, service: FinanceService, store: FinanceStore, basic_flow, mocker):
        _, groceries = basic_flow
        mocker.patch.object(store, "update_transaction", side_effect=StorageWriteError("quota exceeded"))

        with pytest.raises(StorageWriteError):
            service.update_transaction(groceries.id, amount=Decimal("999"))

        assert service.get_transaction(groceries.id).amount == Decimal("300")

    def test_failed_delete_leaves_cache_untouched(self, service: FinanceService, store: FinanceStore, basic_flow, mocker):
        mocker.patch.object(store, "delete_transaction", side_effect=StorageWriteError("disk full"))

        with pytest.raises(StorageWriteError):
            service.delete_transaction(basic_flow[0].id)

        assert len(service.transactions) == 2

    def test_failed_category_delete_leaves_cache_untouched(self, service: FinanceService, store: FinanceStore, mocker):
        mocker.patch.object(store, "delete_category", side_effect=StorageWriteError("disk full"))

        with pytest.raises(StorageWriteError):
            service.delete_category("5")

        assert any(c.id == "5" for c in service.categories)

@pytest.mark.unit
class TestDeadlines:

    def test_add_deadline_is_unsupported(self, service: FinanceService):
        with pytest.raises(UnsupportedOperationError, match="add_transaction"):
            service.add_deadline(title="Luz", amount=Decimal("100"), due_date=date(2024, 1, 1))

    def test_update_deadline_edits_the_transaction(self, service: FinanceService, basic_flow, today):
        _, groceries = basic_flow
        new_due = date(2024, 2, 5)

        service.update_deadline(groceries.id, today=today, due_date=new_due)

        [deadline] = service.deadlines(today)
        assert deadline.id == groceries.id
        assert deadline.due_date == new_due
        assert service.get_transaction(groceries.id).due_date == new_due

    def test_update_deadline_maps_title_to_description(self, service: FinanceService, basic_flow, today):
        _, groceries = basic_flow

        service.update_deadline(groceries.id, today=today, title="Supermercado", amount=None)

        txn = service.get_transaction(groceries.id)
        assert txn.description == "Supermercado"
        assert txn.amount == Decimal("300")

    def test_update_deadline_rejects_status(self, service: FinanceService, basic_flow, today):
        with pytest.raises(ValueError):
            service.update_deadline(basic_flow[1].id, today=today, status="paid")

    def test_update_deadline_for_transaction_without_due_date(self, service: FinanceService, basic_flow, today):
        salary, _ = basic_flow
        assert service.update_deadline(salary.id, today=today, title="x") is None
        assert service.get_transaction(salary.id).description == "Salário"

    def test_delete_deadline_keeps_the_transaction(self, service: FinanceService, store: FinanceStore, basic_flow, today):
        _, groceries = basic_flow

        service.delete_deadline(groceries.id, today=today)

        assert service.deadlines(today) == []
        assert service.get_transaction(groceries.id).due_date is None
        assert store.get_transactions()[1].due_date is None

    def test_delete_unknown_deadline(self, service: FinanceService, today):
        assert service.delete_deadline("missing", today=today) is None

    def test_deadline_stats_for_current_month(self, service: FinanceService, today):
        for due in (date(2024, 6, 10), date(2024, 6, 18), date(2024, 7, 2)):
            service.add_transaction(
                description="Conta", amount=Decimal("10"), type=EXPENSE,
                category="11", date=date(2024, 6, 1), due_date=due,
            )

        stats = service.deadline_stats(today)

        assert stats.total == 2
        assert stats.overdue == 1
        assert stats.due_soon == 1

@pytest.mark.unit
class TestBasicFlow:

    def test_period_stats_for_the_year(self, service: FinanceService, basic_flow):
        service.select_year(2024)

        assert service.period_stats() == PeriodStats(
            income=Decimal("1000"),
            expenses=Decimal("300"),
            balance=Decimal("700"),
            transaction_count=2,
        )

    @pytest.mark.parametrize("today, status", [
        (date(2024, 1, 19), DeadlineStatus.PENDING),
        (date(2024, 1, 21), DeadlineStatus.OVERDUE),
    ])
    def test_one_deadline(self, service: FinanceService, basic_flow, today, status):
        [deadline] = service.deadlines(today)

        assert deadline.amount == Decimal("300")
        assert deadline.status == status

    def test_summary_follows_mutations(self, service: FinanceService, basic_flow):
        today = date(2024, 1, 21)
        assert service.summary(today).overdue_deadlines == 1

        service.delete_transaction(basic_flow[1].id)

        summary = service.summary(today)
        assert summary.total_expenses == 0
        assert summary.balance == Decimal("1000")
        assert summary.overdue_deadlines == 0

@pytest.mark.unit
class TestCategoriesAndExpenseTypes:

    def test_deleting_category_does_not_cascade(self, service: FinanceService, basic_flow):
        _, groceries = basic_flow

        service.delete_category("5")

        assert service.get_transaction(groceries.id).category == "5"
        breakdown = service.category_breakdown()
        assert [(e.name, e.amount) for e in breakdown] == [("Sem categoria", Decimal("300"))]

    def test_add_and_update_category(self, service: FinanceService, store: FinanceStore):
        category = service.add_category("Pets", EXPENSE, "#111111")

        renamed = service.update_category(category.id, name="Animais")

        assert renamed.name == "Animais"
        assert store.get_categories()[-1] == renamed
        assert service.categories[-1] == renamed

    def test_update_unknown_category(self, service: FinanceService):
        assert service.update_category("missing", name="x") is None

    def test_custom_expense_type_lifecycle(self, service: FinanceService, store: FinanceStore):
        custom = service.add_expense_type("Viagem", "Férias", "#000000")
        assert custom.is_default is False

        service.update_expense_type(custom.id, description="Viagens")
        assert store.get_expense_types()[-1].description == "Viagens"

        assert service.delete_expense_type(custom.id) is True
        assert [e.id for e in store.get_expense_types()] == ["normal", "reserva", "devolucao"]

    def test_default_expense_types_are_protected(self, service: FinanceService):
        with pytest.raises(ProtectedEntityError):
            service.delete_expense_type("reserva")

        assert any(e.id == "reserva" for e in service.expense_types)

    def test_expense_type_breakdown_after_deleting_custom_type(self, service: FinanceService):
        custom = service.add_expense_type("Viagem")
        service.add_transaction(
            description="Hotel", amount=Decimal("500"), type=EXPENSE,
            category="10", date=date(2024, 5, 1), expense_type=custom.id,
        )

        service.delete_expense_type(custom.id)

        assert [(e.name, e.amount) for e in service.expense_type_breakdown()] == [("Normal", Decimal("500"))]

@pytest.mark.unit
class TestPeriodSelection:

    def test_selecting_year_clears_month(self, service: FinanceService):
        service.select_year(2024)
        service.select_month(3)

        service.select_year(2023)

        assert service.period.year == 2023
        assert service.period.month is None

    def test_clear(self, service: FinanceService, basic_flow):
        service.select_year(2023)
        assert service.filtered_transactions() == []

        service.clear_period()

        assert service.period.is_all
        assert len(service.filtered_transactions()) == 2

    def test_month_out_of_range(self, service: FinanceService):
        with pytest.raises(ValueError):
            service.select_month(12)

    def test_available_months_follow_selected_year(self, service: FinanceService, basic_flow):
        service.select_year(2024)
        assert service.available_months() == [0]

        service.select_year(2030)
        assert service.available_months() == list(range(12))

    def test_monthly_evolution_is_scoped_to_selected_year(self, service: FinanceService, basic_flow):
        service.add_transaction(
            description="Bônus", amount=Decimal("50"), type=INCOME, category="1", date=date(2023, 1, 3),
        )

        assert service.monthly_evolution()[0].income == Decimal("1050")

        service.select_year(2024)
        assert service.monthly_evolution()[0].income == Decimal("1000")
        assert service.available_years() == [2024, 2023]

@pytest.mark.unit
class TestCacheMatchesStorage:

    def test_failed_read_before_add_changes_nothing(self, service: FinanceService, store: FinanceStore, basic_flow, fail_next_read):
        # Arrange
        fail_next_read()

        # Act
        with pytest.raises(StorageReadError):
            service.add_transaction(
                description="Café", amount=Decimal("5"), type=EXPENSE, category="5", date=date(2024, 1, 16),
            )

        # Assert
        assert len(service.transactions) == 2
        assert store.get_transactions() == service.transactions

    def test_failed_read_before_update_changes_nothing(self, service: FinanceService, store: FinanceStore, basic_flow, fail_next_read):
        _, groceries = basic_flow
        fail_next_read()

        with pytest.raises(StorageReadError):
            service.update_transaction(groceries.id, amount=Decimal("999"))

        assert service.get_transaction(groceries.id).amount == Decimal("300")
        assert store.get_transactions() == service.transactions

    def test_failed_read_before_delete_deadline_changes_nothing(self, service: FinanceService, store: FinanceStore, basic_flow, fail_next_read, today):
        _, groceries = basic_flow
        fail_next_read()

        with pytest.raises(StorageReadError):
            service.delete_deadline(groceries.id, today=today)

        assert service.get_transaction(groceries.id).due_date == date(2024, 1, 20)
        assert store.get_transactions() == service.transactions

    def test_undecodable_stored_record_is_not_lost(self, memory_backend, make_transaction):
        legacy = {"id": "legacy", "description": "Sem data de criação", "amount": "10", "type": "expense"}
        memory_backend.set(TRANSACTIONS_KEY, json.dumps([transaction_to_record(make_transaction()), legacy]))
        store = FinanceStore(memory_backend)
        service = FinanceService(store)

        service.add_transaction(
            description="Café", amount=Decimal("5"), type=EXPENSE, category="5", date=date(2024, 1, 16),
        )

        stored_ids = [r["id"] for r in json.loads(memory_backend.get(TRANSACTIONS_KEY))]
        assert "legacy" in stored_ids
        assert len(stored_ids) == 3
        assert store.get_transactions() == service.transactions

    def test_update_of_transaction_gone_from_storage_reloads(self, service: FinanceService, store: FinanceStore, basic_flow):
        salary, _ = basic_flow
        store.delete_transaction(salary.id)

        assert service.update_transaction(salary.id, description="Bônus") is None

        assert service.get_transaction(salary.id) is None
        assert service.transactions == store.get_transactions()

@pytest.mark.unit
def test_category_and_expense_type_updates_are_logged(service: FinanceService, mocker):
    logger = mocker.patch("finance_tracker.services.finance_service.logger")
    custom = service.add_expense_type("Viagem")

    service.update_category("5", name="Comida")
    service.update_expense_type(custom.id, color="#000000")

    events = [c.args[0] for c in logger.info.call_args_list]
    assert "category_updated" in events
    assert "expense_type_updated" in events
