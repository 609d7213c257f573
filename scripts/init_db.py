#!/usr/bin/env python3
"""
Initialize the finance tracker database.

Creates the storage tables and seeds the default categories and expense types.
"""
import sys

from finance_tracker.config.settings import ConfigLoader
from finance_tracker.database.connection import DatabaseConfig, DatabaseManager, initialize_database
from finance_tracker.repositories.finance_store import FinanceStore
from finance_tracker.repositories.sqlite_store import SQLiteKeyValueStore

def main():
    """Initialize the database."""

    settings = ConfigLoader.load_app_settings()
    config = DatabaseConfig(sys.argv[1] if len(sys.argv) > 1 else settings.db_path)
    print(f"Initializing database at: {config.db_path}")

    with DatabaseManager(config) as db:
        initialize_database(db)

        store = FinanceStore(SQLiteKeyValueStore(db))
        categories = store.get_categories()
        expense_types = store.get_expense_types()

        row = db.get_connection().execute(
            "SELECT version, description FROM schema_version ORDER BY version DESC LIMIT 1"
        ).fetchone()

        if row:
            print(f"✓ Database initialized successfully!")
            print(f"  Schema version: {row['version']}")
            print(f"  Description: {row['description']}")
            print(f"  Categories: {len(categories)}, expense types: {len(expense_types)}")
        else:
            print("✗ Database initialization may have failed")

if __name__ == "__main__":
    main()
