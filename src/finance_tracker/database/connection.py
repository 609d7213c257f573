import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

import structlog

Connection = sqlite3.Connection

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
DEFAULT_DB_PATH = Path("data/finance.db")

logger = structlog.get_logger(__name__)

class DatabaseConfig:
    """Where the finance database file lives. Creates the parent folder."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def connection_string(self) -> str:
        return str(self.db_path.absolute())

def open_connection(path: str) -> Connection:
    """Connect to `path` with rows readable by column name."""
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    logger.debug("database_connected", path=path)
    return conn

class DatabaseManager:
    """
    Lazily opens one connection to the finance database and hands it out.

    Writes go through `transaction()`; reads can use `get_connection()`
    directly. Works as a context manager that closes on exit.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection: Connection | None = None

    def get_connection(self) -> Connection:
        """The open connection, connecting on first use."""
        if self._connection is None:
            self._connection = open_connection(self.config.connection_string)
        return self._connection

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @contextmanager
    def transaction(self) -> Generator[Connection, None, None]:
        """
        Yield the connection for a group of statements that land together.

            with db.transaction() as conn:
                conn.executemany(UPSERT_SQL, rows)

        Nothing is committed if the block raises.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.warning("transaction_rolled_back", error_type=type(e).__name__)
            raise

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

def execute_schema(conn: Connection, schema_path: Path = SCHEMA_PATH) -> None:
    """
    Run the storage schema script. The bundled schema is idempotent.

    Args:
        conn: Database connection
        schema_path: Path to .sql file
    """
    conn.executescript(schema_path.read_text(encoding="utf-8"))
    conn.commit()

def initialize_database(db_manager: DatabaseManager) -> None:
    """Create the storage tables if they don't exist yet."""
    execute_schema(db_manager.get_connection())
