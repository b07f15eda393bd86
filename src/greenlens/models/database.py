"""
DuckDB connection management for greenlens.

DatabaseManager owns a single connection per database file and creates the
schema on first use.
"""

from pathlib import Path
from typing import Any

import duckdb

from ..logging_config import get_logger
from .schema import IMAGE_COLUMNS, IMAGES_TABLE, get_schema_statements, validate_schema_compatibility

logger = get_logger(__name__)


class DatabaseManager:
    """
    Manages a DuckDB database connection and its schema.
    """

    def __init__(self, db_path: str):
        """
        Initialize DatabaseManager.

        Args:
            db_path: Path to the DuckDB database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: duckdb.DuckDBPyConnection | None = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Get or create a database connection.

        Returns:
            DuckDB connection object
        """
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = duckdb.connect(self.db_path)
            logger.info("database_connected", db_path=self.db_path)

        return self._connection

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("database_closed", db_path=self.db_path)

    def initialize_schema(self) -> None:
        """
        Create the images table and indexes if they don't exist.

        Raises:
            RuntimeError: If the schema definition is inconsistent with ImageRecord
            duckdb.Error: If database operations fail
        """
        if not validate_schema_compatibility():
            raise RuntimeError("Schema is not compatible with ImageRecord model")

        conn = self.connect()
        try:
            for statement in get_schema_statements():
                conn.execute(statement)
            logger.info("database_schema_initialized", db_path=self.db_path)
        except duckdb.Error as e:
            logger.error("database_schema_failed", db_path=self.db_path, error=str(e))
            raise

    def verify_schema(self) -> bool:
        """
        Verify that the images table exists with every required column.

        Returns:
            True if schema is valid, False otherwise
        """
        conn = self.connect()
        try:
            columns = conn.execute(
                "SELECT column_name FROM information_schema.columns WHERE table_name = ?", [IMAGES_TABLE]
            ).fetchall()
        except duckdb.Error as e:
            logger.error("schema_verification_failed", error=str(e))
            return False

        missing = set(IMAGE_COLUMNS) - {row[0] for row in columns}
        if missing:
            logger.warning("schema_columns_missing", missing=sorted(missing))
            return False
        return True

    def execute_query(self, query: str, parameters: list[Any] | None = None) -> list[tuple]:
        """
        Execute a SQL statement and return all result rows.

        Raises:
            duckdb.Error: If query execution fails
        """
        conn = self.connect()
        try:
            result = conn.execute(query, parameters or [])
            return result.fetchall()
        except duckdb.Error as e:
            logger.error("query_failed", error=str(e))
            raise

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def get_database_manager(db_path: str) -> DatabaseManager:
    """
    Get a DatabaseManager with an initialized schema.

    Args:
        db_path: Path to the database file, or ":memory:"

    Returns:
        DatabaseManager instance ready for queries
    """
    db_manager = DatabaseManager(db_path)
    if not db_manager.verify_schema():
        db_manager.initialize_schema()
    return db_manager
