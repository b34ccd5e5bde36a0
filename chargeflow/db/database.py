"""
Core database functionality for the charging service.
This module provides the basic database operations used throughout the application.

Every helper logs the failing statement and re-raises, so a datastore failure
always reaches the caller instead of being mistaken for an empty result.
"""
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from chargeflow.config.charging_config import charging_settings

logger = logging.getLogger("chargeflow.db.core")

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


def utcnow():
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_db_time(value):
    """Serialize a datetime for storage (ISO 8601, UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value):
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            logger.warning(f"⚠️ Unparseable timestamp in database: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@contextmanager
def get_db_connection():
    """
    Context manager for database connections.

    Yields:
        sqlite3.Connection: An open database connection
    """
    connection = None
    try:
        connection = sqlite3.connect(
            charging_settings.database_path,
            timeout=charging_settings.database_timeout_seconds,
        )
        # Enable dictionary access to rows
        connection.row_factory = sqlite3.Row
        yield connection
    except sqlite3.Error as e:
        logger.error(f"❌ DATABASE CONNECTION ERROR: {str(e)}")
        raise
    finally:
        if connection:
            connection.close()


def execute_query(query, params=()):
    """
    Execute a SELECT query and return the results.

    Args:
        query (str): SQL query to execute
        params (tuple): Parameters for the query

    Returns:
        list: List of rows as dictionaries
    """
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]
    except sqlite3.Error as e:
        logger.error(f"❌ DATABASE QUERY ERROR: {str(e)}")
        logger.error(f"❌ FAILED QUERY: {query}")
        logger.error(f"❌ PARAMS: {params}")
        raise


def execute_update(query, params=()):
    """
    Execute an UPDATE (or DELETE) statement.

    Args:
        query (str): SQL statement to execute
        params (tuple): Parameters for the statement

    Returns:
        int: Number of rows affected
    """
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            return cursor.rowcount
    except sqlite3.Error as e:
        logger.error(f"❌ DATABASE UPDATE ERROR: {str(e)}")
        logger.error(f"❌ FAILED QUERY: {query}")
        logger.error(f"❌ PARAMS: {params}")
        raise


def execute_many(query, params_seq):
    """
    Execute one statement for each parameter tuple in a single commit.

    Returns:
        int: Total number of rows affected
    """
    params_seq = list(params_seq)
    if not params_seq:
        return 0
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.executemany(query, params_seq)
            conn.commit()
            return cursor.rowcount
    except sqlite3.Error as e:
        logger.error(f"❌ DATABASE BULK UPDATE ERROR: {str(e)}")
        logger.error(f"❌ FAILED QUERY: {query}")
        logger.error(f"❌ ROWS: {len(params_seq)}")
        raise


def execute_transaction(queries_and_params):
    """
    Execute multiple statements in a single transaction.

    Args:
        queries_and_params (list): List of (query, params) tuples

    Returns:
        list: Rows affected by each statement, in order
    """
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            counts = []
            try:
                for query, params in queries_and_params:
                    cursor.execute(query, params)
                    counts.append(cursor.rowcount)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
            return counts
    except sqlite3.Error as e:
        logger.error(f"❌ DATABASE TRANSACTION ERROR: {str(e)}")
        # Log the failed transaction
        for i, (query, params) in enumerate(queries_and_params):
            logger.error(f"❌ TRANSACTION QUERY {i}: {query}")
            logger.error(f"❌ TRANSACTION PARAMS {i}: {params}")
        raise


@contextmanager
def transaction():
    """
    Open a write transaction for statements that depend on each other's results.

    Commits when the block exits normally and rolls back on any exception.

    Yields:
        sqlite3.Cursor: Cursor bound to the transaction
    """
    with get_db_connection() as conn:
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE")
            yield cursor
            conn.commit()
        except Exception as e:
            conn.rollback()
            if isinstance(e, sqlite3.Error):
                logger.error(f"❌ DATABASE TRANSACTION ERROR: {str(e)}")
            raise


def init_db():
    """
    Initialize the database with the schema if needed.

    Returns:
        bool: True if initialization was successful
    """
    try:
        schema = SCHEMA_PATH.read_text(encoding="utf-8")
        with get_db_connection() as conn:
            conn.executescript(schema)
        logger.info(f"✅ Database schema ready at {charging_settings.database_path}")
        return True
    except (sqlite3.Error, IOError) as e:
        logger.error(f"❌ DATABASE INITIALIZATION ERROR: {str(e)}")
        raise
