"""
Database access layer for Ticketry.

Wraps a SQLAlchemy connection behind the host's query API: ``?``-bound
queries, paging, row fetching, metadata introspection, table-name
prefixing and a per-request query log used for profiling.
"""

import logging
import time
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generator, List, Optional, Sequence, Tuple, Union

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Connection, CursorResult, Engine, inspect, text
from sqlalchemy.engine import URL
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from ticketry.config import DB_DRIVERS, Settings, settings as default_settings
from ticketry.db.connection import create_database_engine
from ticketry.exceptions import (
    DatabaseConnectError,
    DatabaseNotConnectedError,
    DatabaseQueryError,
)

logger = logging.getLogger(__name__)

PARAM_TYPES = (type(None), str, int, float, bool, bytes, date, datetime, Decimal)


def split_placeholders(query: str) -> List[str]:
    """
    Split a query on ``?`` placeholders that are outside quoted literals.

    Args:
        query: Query text using ``?`` placeholders

    Returns:
        The literal segments; there is one placeholder between each pair
    """
    segments: List[str] = []
    current: List[str] = []
    quote: Optional[str] = None

    for char in query:
        if quote:
            current.append(char)
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
            current.append(char)
        elif char == "?":
            segments.append("".join(current))
            current = []
        else:
            current.append(char)

    segments.append("".join(current))
    return segments


class Database:
    """
    A connection to the host database.

    One instance lives for the length of a request (or CLI invocation); the
    query log it keeps is discarded with it.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or default_settings
        self.engine: Optional[Engine] = None
        self._owns_engine = True
        self._connection: Optional[Connection] = None
        self._last_result: Optional[CursorResult] = None
        self._transaction_depth = 0
        self.last_error: Optional[str] = None
        self.log_queries = self.config.log_queries
        self.query_log: List[Tuple[str, float]] = []

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    def connect(
        self,
        dsn: Optional[str] = None,
        hostname: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        database_name: Optional[str] = None,
        options: Optional[dict] = None,
        engine: Optional[Engine] = None,
    ) -> bool:
        """
        Open a connection to the database.

        Args:
            dsn: Database URL (specified instead of the other parameters)
            hostname: Database server hostname
            username: Database server username
            password: Database server password
            database_name: Database name
            options: Extra engine options
            engine: Shared engine to take a connection from; it is not
                disposed when this database is closed

        Returns:
            True if the connection was opened

        Raises:
            DatabaseConnectError: If the connection fails
        """
        if engine is not None:
            self.engine = engine
            self._owns_engine = False
            try:
                self._connection = engine.connect()
            except SQLAlchemyError as e:
                self.last_error = str(getattr(e, "orig", None) or e)
                logger.error(f"Failed to connect to database: {self.last_error}")
                self._connection = None
                raise DatabaseConnectError(
                    engine.url.render_as_string(hide_password=True), self.last_error
                ) from e
            logger.debug(f"Connected to {self.dbtype} database")
            return True

        if dsn is None:
            if any(v is not None for v in (hostname, username, password, database_name)):
                dsn = URL.create(
                    drivername=DB_DRIVERS.get(self.config.db_type, self.config.db_type),
                    username=username,
                    password=password,
                    host=hostname,
                    database=database_name,
                ).render_as_string(hide_password=False)
            else:
                dsn = self.config.dsn

        self._owns_engine = True
        try:
            self.engine = create_database_engine(dsn, self.config, **(options or {}))
            self._connection = self.engine.connect()
        except SQLAlchemyError as e:
            self.last_error = str(getattr(e, "orig", None) or e)
            logger.error(f"Failed to connect to database: {self.last_error}")
            self._connection = None
            raise DatabaseConnectError(dsn, self.last_error) from e

        logger.debug(f"Connected to {self.dbtype} database")
        return True

    def is_connected(self) -> bool:
        """Return whether a connection to the database is open."""
        return self._connection is not None and not self._connection.closed

    @property
    def connection(self) -> Connection:
        """The open SQLAlchemy connection."""
        if not self.is_connected():
            raise DatabaseNotConnectedError()
        return self._connection

    def close(self) -> None:
        """Close the connection and release an engine this database created."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self.engine is not None and self._owns_engine:
            self.engine.dispose()

    @property
    def dbtype(self) -> str:
        """Dialect name of the connected database."""
        if self.engine is None:
            raise DatabaseNotConnectedError()
        return self.engine.dialect.name

    def is_mysql(self) -> bool:
        return self.dbtype in ("mysql", "mariadb")

    def is_pgsql(self) -> bool:
        return self.dbtype == "postgresql"

    def is_mssql(self) -> bool:
        return self.dbtype == "mssql"

    def is_db2(self) -> bool:
        return self.dbtype in ("db2", "ibm_db_sa")

    def is_sqlite(self) -> bool:
        return self.dbtype == "sqlite"

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def commit(self) -> None:
        if self.is_connected() and self._transaction_depth == 0:
            self._connection.commit()

    def rollback(self) -> None:
        if self.is_connected():
            self._connection.rollback()

    @contextmanager
    def transaction(self) -> Generator["Database", None, None]:
        """
        Group statements into one transaction.

        Statements executed inside the block are not committed individually;
        the block commits on success and rolls back on error. Nested blocks
        join the outermost one.

        Example:
            >>> with db.transaction():
            >>>     db.query_bound("DELETE FROM t WHERE id=?", [1])
            >>>     db.query_bound("INSERT INTO t (id) VALUES (?)", [1])
        """
        self._transaction_depth += 1
        try:
            yield self
        except Exception:
            self._transaction_depth -= 1
            if self._transaction_depth == 0:
                self.rollback()
            raise
        self._transaction_depth -= 1
        self.commit()

    def operations(self) -> Operations:
        """Get alembic schema operations bound to this connection."""
        return Operations(MigrationContext.configure(self.connection))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def param() -> str:
        """Placeholder for a bound parameter in a query string."""
        return "?"

    def query_bound(
        self,
        query: str,
        params: Optional[Sequence[Any]] = None,
        limit: int = -1,
        offset: int = -1,
    ) -> CursorResult:
        """
        Execute a parameterised query.

        Args:
            query: Query string with ``?`` placeholders
            params: Values matching the placeholders, in order
            limit: Number of rows to return (-1 for no limit)
            offset: Number of rows to skip (-1 for none)

        Returns:
            The SQLAlchemy result

        Raises:
            DatabaseQueryError: If the parameters don't match the query or
                the query fails
        """
        params = list(params or [])
        segments = split_placeholders(query)

        if len(segments) - 1 != len(params):
            raise DatabaseQueryError(
                query,
                f"expected {len(segments) - 1} parameter(s), got {len(params)}",
            )
        for i, value in enumerate(params, start=1):
            if not isinstance(value, PARAM_TYPES):
                raise DatabaseQueryError(
                    query, f"invalid argument type for parameter {i}: {type(value).__name__}"
                )

        sql = self._bind_segments(segments)
        if limit != -1 or offset != -1:
            sql = self._apply_limit(sql, limit, offset)
        binds = {f"p{i}": value for i, value in enumerate(params)}

        start = time.perf_counter()
        try:
            result = self.connection.execute(text(sql), binds)
        except SQLAlchemyError as e:
            self.last_error = str(getattr(e, "orig", None) or e)
            logger.error(f"Query failed: {self.last_error}: {query}")
            if self._transaction_depth == 0:
                self.rollback()
            raise DatabaseQueryError(query, self.last_error) from e
        elapsed = time.perf_counter() - start

        if self.log_queries:
            logged = self._interpolate(segments, params)
            logger.debug(f"{logged} ({elapsed:.4f}s)")
            self.query_log.append((logged, elapsed))
        else:
            self.query_log.append((query, elapsed))

        if not result.returns_rows:
            self._last_result = result
            self.commit()
        return result

    def query(self, query: str, limit: int = -1, offset: int = -1) -> CursorResult:
        """Execute a query without bound parameters."""
        return self.query_bound(query, None, limit, offset)

    @staticmethod
    def _bind_segments(segments: List[str]) -> str:
        # Colons are escaped so that text() only binds our own placeholders
        escaped = [segment.replace(":", "\\:") for segment in segments]
        sql = escaped[0]
        for i, segment in enumerate(escaped[1:]):
            sql += f":p{i}{segment}"
        return sql

    def _apply_limit(self, sql: str, limit: int, offset: int) -> str:
        limit, offset = int(limit), int(offset)
        if self.is_mssql() or self.is_db2():
            sql += f" OFFSET {max(offset, 0)} ROWS"
            if limit != -1:
                sql += f" FETCH NEXT {limit} ROWS ONLY"
            return sql

        if limit != -1:
            sql += f" LIMIT {limit}"
        elif self.is_mysql():
            sql += " LIMIT 18446744073709551615"
        elif self.is_sqlite():
            sql += " LIMIT -1"
        if offset != -1:
            sql += f" OFFSET {offset}"
        return sql

    def _format_param(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return f"'{int(value)}'" if self.is_pgsql() else str(int(value))
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        return f"'{value}'"

    def _interpolate(self, segments: List[str], params: List[Any]) -> str:
        """Build the query text with the parameter values substituted."""
        query = segments[0]
        for value, segment in zip(params, segments[1:]):
            query += self._format_param(value) + segment
        return query

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    @staticmethod
    def affected_rows(result: CursorResult) -> int:
        """Number of rows affected by a query."""
        return result.rowcount

    @staticmethod
    def fetch_array(result: CursorResult) -> Optional[dict]:
        """Fetch the next row as a column-name keyed dict, or None."""
        row = result.mappings().fetchone()
        return dict(row) if row is not None else None

    @staticmethod
    def fetch_all(result: CursorResult) -> List[dict]:
        """Fetch all remaining rows as dicts."""
        return [dict(row) for row in result.mappings().fetchall()]

    @staticmethod
    def result(result: CursorResult, index: int = 0) -> Any:
        """Fetch a single column of the next row, or None if exhausted."""
        row = result.fetchone()
        if row is None:
            return None
        return row[index]

    def insert_id(self, table: Optional[str] = None, field: str = "id") -> Optional[int]:
        """
        Return the id generated by the last insert.

        Args:
            table: Table the row was inserted into (needed for PostgreSQL)
            field: Auto-increment column name

        Returns:
            The generated id, or None if nothing was inserted
        """
        if self.is_pgsql() and table:
            return self.result(
                self.query_bound(
                    "SELECT currval(pg_get_serial_sequence(?, ?))", [table, field]
                )
            )
        if self.is_mssql():
            return self.result(self.query("SELECT @@IDENTITY"))
        if self._last_result is None:
            return None
        return self._last_result.lastrowid

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_table_list(self) -> List[str]:
        """List the tables in the database."""
        return inspect(self.connection).get_table_names()

    def table_exists(self, table_name: Optional[str]) -> bool:
        """Check (case-insensitively) whether a table exists."""
        if not table_name or not table_name.strip():
            return False

        wanted = table_name.lower()
        return any(table.lower() == wanted for table in self.get_table_list())

    def get_indexes(self, table_name: str) -> List[str]:
        """Names of the indexes and named unique constraints on a table."""
        if not self.table_exists(table_name):
            return []

        inspector = inspect(self.connection)
        try:
            names = [index["name"] for index in inspector.get_indexes(table_name)]
            names.extend(
                constraint["name"]
                for constraint in inspector.get_unique_constraints(table_name)
                if constraint.get("name")
            )
        except NoSuchTableError:
            return []
        return [name for name in names if name]

    def index_exists(self, table_name: Optional[str], index_name: Optional[str]) -> bool:
        """Check (case-insensitively) whether an index exists on a table."""
        if not table_name or not table_name.strip():
            return False
        if not index_name or not index_name.strip():
            return False

        wanted = index_name.lower()
        return any(name.lower() == wanted for name in self.get_indexes(table_name))

    def field_names(self, table_name: str) -> List[str]:
        """Column names of a table; empty if the table does not exist."""
        if not self.table_exists(table_name):
            return []

        try:
            columns = inspect(self.connection).get_columns(table_name)
        except NoSuchTableError:
            return []
        return [column["name"] for column in columns]

    def field_exists(self, field_name: str, table_name: str) -> bool:
        """Check whether a column exists in a table (case-sensitive)."""
        return field_name in self.field_names(table_name)

    def get_table(self, name: str) -> str:
        """Full table name with the configured prefix and suffix."""
        table = name
        if self.config.db_table_prefix:
            table = f"{self.config.db_table_prefix}_{table}"
        if self.config.db_table_suffix:
            table += self.config.db_table_suffix
        return table

    # ------------------------------------------------------------------
    # Value helpers
    # ------------------------------------------------------------------

    @staticmethod
    def prepare_string(value: str) -> str:
        return value

    @staticmethod
    def prepare_int(value: Any) -> int:
        return int(value)

    @staticmethod
    def prepare_bool(value: Any) -> int:
        return int(bool(value))

    def prepare_binary_string(self, value: Union[bytes, str]) -> str:
        """Render binary data as a literal for the connected database."""
        data = value.encode("utf-8") if isinstance(value, str) else value
        if self.is_mssql():
            return "0x" + data.hex()
        if self.is_pgsql():
            return "'\\x" + data.hex() + "'"
        return "'" + data.decode("utf-8", errors="replace") + "'"

    @staticmethod
    def now() -> int:
        """Current Unix timestamp for storing in the database."""
        return int(time.time())

    @staticmethod
    def minutes_to_hhmm(minutes: int = 0) -> str:
        """Format a number of minutes as ``hh:mm``."""
        hours, mins = divmod(int(minutes), 60)
        return f"{hours:02d}:{mins:02d}"

    def helper_like(self, field_name: str, case_sensitive: bool = False) -> str:
        """
        Build a LIKE clause for a field with one bound parameter.

        PostgreSQL uses ILIKE for case-insensitive matching.
        """
        keyword = "LIKE"
        if not case_sensitive and self.is_pgsql():
            keyword = "ILIKE"
        return f"({field_name} {keyword} {self.param()})"

    def helper_compare_days(
        self,
        date1: Union[int, str],
        date2: Union[int, str],
        limit: str,
    ) -> str:
        """
        Build a clause comparing the difference of two dates.

        Integer arguments become bound parameters; strings are used as
        column names.
        """
        left = self.param() if isinstance(date1, int) else date1
        right = self.param() if isinstance(date2, int) else date2
        return f"(({left} - {right}){limit})"

    # ------------------------------------------------------------------
    # Query log
    # ------------------------------------------------------------------

    def count_queries(self) -> int:
        return len(self.query_log)

    def count_unique_queries(self) -> int:
        return len({query for query, _ in self.query_log})

    def time_queries(self) -> float:
        return sum(elapsed for _, elapsed in self.query_log)

    def reset_query_log(self) -> None:
        self.query_log.clear()

