"""MySQL implementation of the raw backend transport."""

import asyncio
import logging
import time
from contextlib import contextmanager
from datetime import date, datetime, time as dt_time, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from mysql.connector import Error as MySQLError
from mysql.connector import errorcode
from mysql.connector.errors import InterfaceError
from mysql.connector.pooling import MySQLConnectionPool

from ..config.settings import get_settings
from .errors import BackendError, ConnectionLostError
from .models import ConnectionParams, ForeignKeyDescriptor, Row, Value

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOST_CONNECTION_ERRORS = {
    errorcode.CR_SERVER_GONE_ERROR,
    errorcode.CR_SERVER_LOST,
    errorcode.CR_SERVER_LOST_EXTENDED,
    errorcode.CR_CONN_HOST_ERROR,
}

_TEXT_TYPES = ("char", "varchar", "tinytext", "text", "mediumtext", "longtext", "enum")


async def run_sync(func: Callable[..., T], *args: Any, timeout: float = 30) -> T:
    """
    Run a blocking driver call in a thread without stalling the event loop.

    Raises:
        BackendError: If execution exceeds the timeout.
    """
    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", repr(func))
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError:
        elapsed = (time.perf_counter() - start) * 1000
        raise BackendError(f"{name} timed out after {elapsed:.0f}ms (limit {timeout}s)")
    elapsed = (time.perf_counter() - start) * 1000
    logger.debug("run_sync %s completed in %.2fms", name, elapsed)
    return result


def quote_identifier(name: str) -> str:
    """Quote a table or column name for MySQL."""
    return "`" + name.replace("`", "``") + "`"


def make_join_alias(column: str, referenced_table: str) -> str:
    """Synthetic display column for a foreign key join."""
    return f"{column}__{referenced_table}"


def normalize_value(value: Any) -> Value:
    """Convert a driver value into a string, number or None."""
    if value is None or isinstance(value, (str, int, float, Decimal)) and not isinstance(value, bool):
        return value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    if isinstance(value, timedelta):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (set, frozenset)):
        return ",".join(sorted(str(item) for item in value))
    return str(value)


def translate_error(error: MySQLError) -> BackendError:
    """Map a driver error to the backend error taxonomy."""
    message = getattr(error, "msg", None) or str(error)
    if isinstance(error, InterfaceError) or error.errno in _LOST_CONNECTION_ERRORS:
        return ConnectionLostError(message)
    return BackendError(message)


class MySQLBackend:
    """Serves the backend contract from a MySQL connection pool."""

    def __init__(self, settings=None):
        """Initialize the backend; no connection is opened until ``connect``."""
        self.settings = settings or get_settings()
        self._pool: Optional[MySQLConnectionPool] = None
        self._db_name: Optional[str] = None
        self._ready_callback: Optional[Callable[[], None]] = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def set_ready_callback(self, callback: Optional[Callable[[], None]]) -> None:
        """Register the listener for the ``backend_ready`` push signal."""
        self._ready_callback = callback

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await run_sync(func, *args, timeout=self.settings.request_timeout)

    def _setup_connection_pool(self, params: ConnectionParams) -> None:
        """Set up the MySQL connection pool."""
        try:
            config = {
                'host': params.host,
                'port': params.port,
                'database': params.db_name,
                'user': params.user,
                'password': params.password,
                'pool_name': 'dbbrowser_pool',
                'pool_size': self.settings.db_pool_size,
                'pool_reset_session': True,
                'charset': 'utf8mb4',
                'collation': 'utf8mb4_unicode_ci',
                'autocommit': True
            }

            self._pool = MySQLConnectionPool(**config)
            self._db_name = params.db_name
            logger.info(f"Connection pool created for {params.user}@{params.host}:{params.port}/{params.db_name}")

        except MySQLError as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise translate_error(e) from e

    @contextmanager
    def get_connection(self):
        """Get a connection from the pool."""
        if self._pool is None:
            raise BackendError("Not connected to a database")
        connection = None
        try:
            connection = self._pool.get_connection()
            yield connection
        except MySQLError as e:
            logger.error(f"Database error: {e}")
            raise translate_error(e) from e
        finally:
            if connection and connection.is_connected():
                connection.close()

    def _fetch(self, query: str, params: Tuple = ()) -> List[Dict[str, Any]]:
        with self.get_connection() as connection:
            cursor = connection.cursor(dictionary=True)
            try:
                cursor.execute(query, params)
                return cursor.fetchall()
            finally:
                cursor.close()

    def _execute(self, query: str, params: Tuple = ()) -> int:
        with self.get_connection() as connection:
            cursor = connection.cursor()
            try:
                cursor.execute(query, params)
                return cursor.rowcount
            finally:
                cursor.close()

    async def connect(self, params: ConnectionParams) -> None:
        """Open the pool and fire the ready signal."""
        await self._run(self._setup_connection_pool, params)
        if self._ready_callback is not None:
            self._ready_callback()

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool:
            logger.info("Closing database connection pool")
        self._pool = None
        self._db_name = None

    def _list_tables(self) -> List[str]:
        with self.get_connection() as connection:
            cursor = connection.cursor()
            try:
                cursor.execute("SHOW TABLES")
                return [normalize_value(row[0]) for row in cursor.fetchall()]
            finally:
                cursor.close()

    async def list_tables(self) -> List[str]:
        """Get a list of all table names in the database."""
        return await self._run(self._list_tables)

    def _read_columns(self, table: str) -> List[str]:
        # Primary key columns first so that columns[0] is always the row identifier.
        rows = self._fetch(
            """
            SELECT COLUMN_NAME AS name
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            ORDER BY (COLUMN_KEY = 'PRI') DESC, ORDINAL_POSITION
            """,
            (self._db_name, table),
        )
        if not rows:
            raise BackendError(f"Table '{self._db_name}.{table}' doesn't exist")
        return [normalize_value(row['name']) for row in rows]

    def _descriptive_column(self, table: str, referenced_column: str) -> str:
        placeholders = ", ".join(["%s"] * len(_TEXT_TYPES))
        rows = self._fetch(
            f"""
            SELECT COLUMN_NAME AS name
            FROM INFORMATION_SCHEMA.COLUMNS
            WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
            AND COLUMN_NAME <> %s AND DATA_TYPE IN ({placeholders})
            ORDER BY ORDINAL_POSITION
            LIMIT 1
            """,
            (self._db_name, table, referenced_column, *_TEXT_TYPES),
        )
        return normalize_value(rows[0]['name']) if rows else referenced_column

    def _read_schema(self, table: str) -> Dict[str, Any]:
        columns = self._read_columns(table)
        rows = self._fetch(
            """
            SELECT COLUMN_NAME AS column_name,
                   REFERENCED_TABLE_NAME AS referenced_table,
                   REFERENCED_COLUMN_NAME AS referenced_column
            FROM INFORMATION_SCHEMA.KEY_COLUMN_USAGE
            WHERE TABLE_SCHEMA = %s
            AND TABLE_NAME = %s
            AND REFERENCED_TABLE_NAME IS NOT NULL
            ORDER BY ORDINAL_POSITION
            """,
            (self._db_name, table),
        )

        foreign_keys: Dict[str, Dict[str, str]] = {}
        for fk_info in rows:
            column = normalize_value(fk_info['column_name'])
            if column in foreign_keys:
                continue
            referenced_table = normalize_value(fk_info['referenced_table'])
            referenced_column = normalize_value(fk_info['referenced_column'])
            foreign_keys[column] = {
                'column_name': column,
                'referenced_table': referenced_table,
                'referenced_column': referenced_column,
                'descriptive_column': self._descriptive_column(referenced_table, referenced_column),
                'join_alias': make_join_alias(column, referenced_table),
            }
        return {'columns': columns, 'foreign_keys': foreign_keys}

    async def get_table_schema(self, table: str) -> Dict[str, Any]:
        """Get the columns and foreign keys of a table."""
        return await self._run(self._read_schema, table)

    def _read_content(self, table: str) -> List[Row]:
        schema = self._read_schema(table)
        selected = ["t.*"]
        joins = []
        for fk in schema['foreign_keys'].values():
            alias = quote_identifier(fk['join_alias'])
            selected.append(f"{alias}.{quote_identifier(fk['descriptive_column'])} AS {alias}")
            joins.append(
                f"LEFT JOIN {quote_identifier(fk['referenced_table'])} AS {alias} "
                f"ON t.{quote_identifier(fk['column_name'])} = {alias}.{quote_identifier(fk['referenced_column'])}"
            )
        primary_key = quote_identifier(schema['columns'][0])
        query = f"SELECT {', '.join(selected)} FROM {quote_identifier(table)} AS t"
        if joins:
            query += " " + " ".join(joins)
        query += f" ORDER BY t.{primary_key}"

        rows = self._fetch(query)
        logger.info(f"Loaded {len(rows)} rows from {table}")
        return [{key: normalize_value(value) for key, value in row.items()} for row in rows]

    async def get_table_content(self, table: str) -> List[Row]:
        """Get all rows of a table with one joined label per foreign key."""
        return await self._run(self._read_content, table)

    def _read_options(self, descriptor: ForeignKeyDescriptor) -> List[Dict[str, Value]]:
        table = quote_identifier(descriptor.referenced_table)
        id_column = quote_identifier(descriptor.referenced_column)
        display_column = quote_identifier(descriptor.descriptive_column)
        rows = self._fetch(
            f"SELECT {id_column} AS id, {display_column} AS display FROM {table} ORDER BY display"
        )
        return [{'id': normalize_value(row['id']), 'display': normalize_value(row['display'])} for row in rows]

    async def get_foreign_key_options(self, descriptor: ForeignKeyDescriptor) -> List[Dict[str, Value]]:
        """Get the id/label pairs a foreign-key column may take."""
        return await self._run(self._read_options, descriptor)

    def _insert(self, table: str, row: Row) -> None:
        if row:
            columns = ", ".join(quote_identifier(name) for name in row)
            placeholders = ", ".join(["%s"] * len(row))
            query = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
        else:
            query = f"INSERT INTO {quote_identifier(table)} () VALUES ()"
        self._execute(query, tuple(row.values()))
        logger.info(f"Inserted record into {table}")

    async def insert_record(self, table: str, row: Row) -> None:
        """Insert a row into a table."""
        await self._run(self._insert, table, row)

    def _update(self, table: str, primary_key_value: Value, primary_key_column: str, row: Row) -> None:
        if not row:
            return
        assignments = ", ".join(f"{quote_identifier(name)} = %s" for name in row)
        query = (
            f"UPDATE {quote_identifier(table)} SET {assignments} "
            f"WHERE {quote_identifier(primary_key_column)} = %s"
        )
        self._execute(query, (*row.values(), primary_key_value))
        logger.info(f"Updated record {primary_key_column}={primary_key_value} in {table}")

    async def update_record(self, table: str, primary_key_value: Value,
                            primary_key_column: str, row: Row) -> None:
        """Update the row whose primary key equals ``primary_key_value``."""
        await self._run(self._update, table, primary_key_value, primary_key_column, row)

    def _delete(self, table: str, primary_key_value: Value, primary_key_column: str) -> None:
        query = f"DELETE FROM {quote_identifier(table)} WHERE {quote_identifier(primary_key_column)} = %s"
        affected = self._execute(query, (primary_key_value,))
        if affected == 0:
            raise BackendError(f"No record with {primary_key_column} = {primary_key_value} in {table}")
        logger.info(f"Deleted record {primary_key_column}={primary_key_value} from {table}")

    async def delete_record(self, table: str, primary_key_value: Value, primary_key_column: str) -> None:
        """Delete the row whose primary key equals ``primary_key_value``."""
        await self._run(self._delete, table, primary_key_value, primary_key_column)

    def _count(self, table: str) -> int:
        rows = self._fetch(f"SELECT COUNT(*) AS total FROM {quote_identifier(table)}")
        return int(rows[0]['total'])

    async def count_records(self, table: str) -> int:
        """Get the number of rows in a table."""
        return await self._run(self._count, table)
