import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

import structlog

from finance_tracker.domain.defaults import default_categories, default_expense_types
from finance_tracker.domain.models import Category, ExpenseType, Transaction
from finance_tracker.repositories.base import KeyValueStore, StorageReadError, StorageWriteError
from finance_tracker.repositories.serialization import (
    Record,
    RecordFormatError,
    category_to_record,
    expense_type_to_record,
    record_to_category,
    record_to_expense_type,
    record_to_transaction,
    transaction_to_record,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSACTIONS_KEY = "finance_app_transactions"
DEADLINES_KEY = "finance_app_deadlines" # legacy, no longer written by the app
CATEGORIES_KEY = "finance_app_categories"
EXPENSE_TYPES_KEY = "finance_app_expense_types"

SNAPSHOT_VERSION = 1

class SnapshotFormatError(ValueError):
    """Raised when a backup snapshot cannot be imported."""
    pass

@dataclass(frozen=True)
class UndecodedRecord:
    """
    A stored record that doesn't decode into a domain object.

    Changes to a collection write it back as it was found, so one bad
    record never costs the rest of the data or itself.
    """
    record: Any

    @property
    def id(self) -> None:
        # Never matches an id, so updates and deletes leave it alone
        return None

class FinanceStore:
    """
    Durable owner of the transaction, category and expense type collections.

    Every collection is read and written as a whole list (read-modify-write).

    Two ways of reading:
    - `get_*` reads fail soft: a missing or corrupt collection comes back
      empty (or as the built-in defaults), and bad records are skipped.
    - Changes (`add_*`, `update_*`, `delete_*`) read strictly: an unreadable
      collection raises StorageReadError and nothing is written, and bad
      records are carried over untouched.

    Writes raise StorageWriteError so the caller knows the change did not happen.
    """

    def __init__(self, backend: KeyValueStore):
        self.backend = backend

    # ------------------------------------------------------------------
    # Low level helpers
    # ------------------------------------------------------------------

    def _load_records(self, key: str) -> Optional[List[Record]]:
        """
        Read the raw record list under a key.

        Returns:
            The list of records, or None if the key was never written

        Raises:
            StorageReadError: If the backend fails or the payload is corrupt
        """
        raw = self.backend.get(key)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageReadError(f"Corrupt data under '{key}': {e}") from e

        if not isinstance(data, list):
            raise StorageReadError(
                f"Expected a list under '{key}', got {type(data).__name__}"
            )
        return data

    def _decode_one(self, key: str, record: Any, from_record: Callable[[Record], T]):
        """Decoded item, or an UndecodedRecord wrapping what was stored"""
        try:
            if not isinstance(record, dict):
                raise RecordFormatError(f"Record is not an object: {record!r}")
            return from_record(record)
        except (RecordFormatError, ValueError) as e:
            logger.warning("record_not_decoded", key=key, error=str(e))
            return UndecodedRecord(record)

    def _encode(self, items: List, to_record: Callable[[T], Record]) -> str:
        return json.dumps(
            [item.record if isinstance(item, UndecodedRecord) else to_record(item) for item in items],
            ensure_ascii=False,
        )

    def _save(self, key: str, items: List, to_record: Callable[[T], Record]) -> None:
        self.backend.set(key, self._encode(items, to_record))
        logger.debug("collection_saved", key=key, count=len(items))

    def _read_list(self, key: str, from_record: Callable[[Record], T]) -> Optional[List[T]]:
        """
        Decoded items for the fail-soft reads, bad records left out.

        None when the key was never written; raises StorageReadError when unreadable.
        """
        records = self._load_records(key)
        if records is None:
            return None
        items = (self._decode_one(key, record, from_record) for record in records)
        return [item for item in items if not isinstance(item, UndecodedRecord)]

    def _read_for_change(
        self,
        key: str,
        from_record: Callable[[Record], T],
        seed: Callable[[], List[T]] = list,
    ) -> List:
        """
        Every stored entry, ready to be changed and written back.

        Bad records come back as UndecodedRecord, in their original position.
        A collection that was never written starts from `seed()`.

        Raises:
            StorageReadError: If the collection can't be read
        """
        records = self._load_records(key)
        if records is None:
            return seed()
        return [self._decode_one(key, record, from_record) for record in records]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def get_transactions(self) -> List[Transaction]:
        try:
            transactions = self._read_list(TRANSACTIONS_KEY, record_to_transaction)
        except StorageReadError as e:
            logger.warning("transactions_read_failed", error=str(e))
            return []
        return transactions or []

    def set_transactions(self, transactions: List[Transaction]) -> None:
        self._save(TRANSACTIONS_KEY, transactions, transaction_to_record)

    def _stored_transactions(self) -> List:
        return self._read_for_change(TRANSACTIONS_KEY, record_to_transaction)

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Append a transaction to the stored list.

        Raises:
            StorageReadError: If the stored list can't be read
            StorageWriteError: If the list could not be written
        """
        transactions = self._stored_transactions()
        transactions.append(transaction)
        self.set_transactions(transactions)
        return transaction

    def update_transaction(self, transaction_id: str, changes: Dict[str, Any]) -> Optional[Transaction]:
        """
        Merge changes into a stored transaction.

        Returns:
            The updated transaction, or None if the id doesn't exist

        Raises:
            StorageReadError: If the stored list can't be read
            StorageWriteError: If the list could not be written
        """
        return self._update(
            self._stored_transactions(), transaction_id, changes, self.set_transactions
        )

    def delete_transaction(self, transaction_id: str) -> bool:
        return self._delete(self._stored_transactions(), transaction_id, self.set_transactions)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def get_categories(self) -> List[Category]:
        """Stored categories, seeding the defaults on first use"""
        try:
            categories = self._read_list(CATEGORIES_KEY, record_to_category)
        except StorageReadError as e:
            logger.warning("categories_read_failed", error=str(e))
            return default_categories()

        if categories is None:
            categories = default_categories()
            self._persist_seed(CATEGORIES_KEY, categories, self.set_categories)

        return categories

    def set_categories(self, categories: List[Category]) -> None:
        self._save(CATEGORIES_KEY, categories, category_to_record)

    def _stored_categories(self) -> List:
        return self._read_for_change(CATEGORIES_KEY, record_to_category, seed=default_categories)

    def add_category(self, category: Category) -> Category:
        categories = self._stored_categories()
        categories.append(category)
        self.set_categories(categories)
        return category

    def update_category(self, category_id: str, changes: Dict[str, Any]) -> Optional[Category]:
        return self._update(self._stored_categories(), category_id, changes, self.set_categories)

    def delete_category(self, category_id: str) -> bool:
        return self._delete(self._stored_categories(), category_id, self.set_categories)

    # ------------------------------------------------------------------
    # Expense types
    # ------------------------------------------------------------------

    @staticmethod
    def _with_missing_defaults(expense_types: List) -> Tuple[List, List[ExpenseType]]:
        """Built-in types that are absent, put in front of the stored ones"""
        present = {et.id for et in expense_types}
        missing = [et for et in default_expense_types() if et.id not in present]
        return missing + expense_types, missing

    def get_expense_types(self) -> List[ExpenseType]:
        """
        Stored expense types.

        Seeds the defaults on first use. If stored data lacks any of the
        built-in types (older data), the missing ones are merged in and the
        result persisted. Custom types are kept as they are.
        """
        try:
            stored = self._read_for_change(EXPENSE_TYPES_KEY, record_to_expense_type)
        except StorageReadError as e:
            logger.warning("expense_types_read_failed", error=str(e))
            return default_expense_types()

        expense_types, missing = self._with_missing_defaults(stored)
        if missing:
            logger.info("expense_types_healed", added=[et.id for et in missing])
            self._persist_seed(EXPENSE_TYPES_KEY, expense_types, self.set_expense_types)

        return [et for et in expense_types if not isinstance(et, UndecodedRecord)]

    def set_expense_types(self, expense_types: List[ExpenseType]) -> None:
        self._save(EXPENSE_TYPES_KEY, expense_types, expense_type_to_record)

    def _stored_expense_types(self) -> List:
        stored = self._read_for_change(EXPENSE_TYPES_KEY, record_to_expense_type)
        return self._with_missing_defaults(stored)[0]

    def add_expense_type(self, expense_type: ExpenseType) -> ExpenseType:
        expense_types = self._stored_expense_types()
        expense_types.append(expense_type)
        self.set_expense_types(expense_types)
        return expense_type

    def update_expense_type(self, expense_type_id: str, changes: Dict[str, Any]) -> Optional[ExpenseType]:
        return self._update(
            self._stored_expense_types(), expense_type_id, changes, self.set_expense_types
        )

    def delete_expense_type(self, expense_type_id: str) -> bool:
        return self._delete(self._stored_expense_types(), expense_type_id, self.set_expense_types)

    # ------------------------------------------------------------------
    # Legacy deadlines
    # ------------------------------------------------------------------

    def get_legacy_deadlines(self) -> List[Record]:
        """
        Raw records left under the old deadlines key.

        Deadlines are derived from transactions now; this key is only read
        so backups carry it along.
        """
        try:
            return self._load_records(DEADLINES_KEY) or []
        except StorageReadError as e:
            logger.warning("deadlines_read_failed", error=str(e))
            return []

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def export_snapshot(self) -> Dict[str, Any]:
        """All collections as plain JSON-serializable data"""
        return {
            "version": SNAPSHOT_VERSION,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "transactions": [transaction_to_record(t) for t in self.get_transactions()],
            "categories": [category_to_record(c) for c in self.get_categories()],
            "expenseTypes": [expense_type_to_record(e) for e in self.get_expense_types()],
            "deadlines": self.get_legacy_deadlines(),
        }

    def import_snapshot(self, snapshot: Dict[str, Any]) -> Dict[str, int]:
        """
        Replace the stored collections with the ones in a snapshot.

        Every record is decoded before anything is written, and the
        collections are written as one change: a bad snapshot or a failed
        write leaves the store as it was.

        Returns:
            Number of records imported per collection

        Raises:
            SnapshotFormatError: If the snapshot is malformed
            StorageReadError: If the current collections can't be read back for a rollback
            StorageWriteError: If the collections could not be written
        """
        if not isinstance(snapshot, dict):
            raise SnapshotFormatError("Snapshot must be a JSON object")

        version = snapshot.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise SnapshotFormatError(f"Unsupported snapshot version: {version!r}")

        def decode_all(name: str, from_record: Callable[[Record], T]) -> Optional[List[T]]:
            records = snapshot.get(name)
            if records is None:
                return None
            if not isinstance(records, list):
                raise SnapshotFormatError(f"'{name}' must be a list")
            try:
                return [from_record(record) for record in records]
            except (RecordFormatError, TypeError, ValueError) as e:
                raise SnapshotFormatError(f"Invalid record in '{name}': {e}") from e

        collections = [
            ("transactions", TRANSACTIONS_KEY,
             decode_all("transactions", record_to_transaction), transaction_to_record),
            ("categories", CATEGORIES_KEY,
             decode_all("categories", record_to_category), category_to_record),
            ("expense_types", EXPENSE_TYPES_KEY,
             decode_all("expenseTypes", record_to_expense_type), expense_type_to_record),
        ]

        payloads: Dict[str, str] = {}
        counts: Dict[str, int] = {}
        for name, key, items, to_record in collections:
            if items is not None:
                payloads[key] = self._encode(items, to_record)
                counts[name] = len(items)

        if payloads:
            self.backend.set_many(payloads)

        logger.info("snapshot_imported", **counts)
        return counts

    # ------------------------------------------------------------------

    def _persist_seed(self, key: str, items: List, save: Callable[[List], None]) -> None:
        # Seeding happens during a read, so a failed write is logged, not raised
        try:
            save(items)
        except StorageWriteError as e:
            logger.error("seed_write_failed", key=key, error=str(e))

    @staticmethod
    def _update(items: List, item_id: str, changes: Dict[str, Any], save) -> Optional[T]:
        for index, item in enumerate(items):
            if item.id == item_id:
                items[index] = replace(item, **changes)
                save(items)
                return items[index]
        return None

    @staticmethod
    def _delete(items: List, item_id: str, save) -> bool:
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            return False
        save(remaining)
        return True
