from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from ..cancel import CancelToken, check
from ..errors import ExecError, QueryError, TransactionError

logger = logging.getLogger(__name__)


class DbPort(Protocol):
    """
    Capability set shared by a plain connection and an open transaction.
    """

    def query_rows(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[dict[str, Any]]:
        """Execute a SELECT and return one dict per row."""
        ...

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Execute a non-SELECT statement and return affected row count."""
        ...


class DbTx(DbPort, Protocol):
    """
    Protocol for database transactions with explicit commit/rollback.

    Used by the plan/apply runners, which own the transaction for a whole run.
    """

    def commit(self) -> None:
        """Commit the transaction."""
        ...

    def rollback(self) -> None:
        """Rollback the transaction."""
        ...


def driver_message(exc: BaseException) -> str:
    """The underlying DBAPI message when SQLAlchemy wrapped one."""
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


def run_statement(
    conn: Connection,
    sql: str | TextClause,
    params: Mapping[str, Any] | None,
) -> CursorResult:
    # Raw strings go to the driver untouched: they are already fully
    # substituted and may contain colons or percent signs.
    if isinstance(sql, str) and not params:
        return conn.exec_driver_sql(sql, execution_options={"no_parameters": True})
    stmt = text(sql) if isinstance(sql, str) else sql
    return conn.execute(stmt, params or {})


def fetch_rows(
    conn: Connection,
    sql: str | TextClause,
    params: Mapping[str, Any] | None,
) -> list[dict[str, Any]]:
    try:
        result = run_statement(conn, sql, params)
        try:
            return [dict(row) for row in result.mappings()]
        finally:
            result.close()
    except SQLAlchemyError as exc:
        raise QueryError(driver_message(exc)) from exc


def affected_rows(
    conn: Connection,
    sql: str | TextClause,
    params: Mapping[str, Any] | None,
) -> int:
    try:
        result = run_statement(conn, sql, params)
        try:
            rowcount = result.rowcount
        finally:
            result.close()
    except SQLAlchemyError as exc:
        raise ExecError(driver_message(exc)) from exc

    if rowcount is None or rowcount < 0:
        raise ExecError(
            "driver reported no affected row count. "
            "This may indicate a DDL statement or a SELECT run as DML."
        )
    return int(rowcount)


class DbTransaction:
    """
    One open database transaction with explicit commit/rollback methods.

    The transaction begins on construction and must be explicitly committed
    or rolled back exactly once. After commit or rollback, the connection is
    closed and the transaction cannot be used again.

    Usage:
        db = Database(engine)
        tx = db.begin_transaction()
        try:
            tx.execute("UPDATE users SET status = 'inactive' WHERE id = 1")
            tx.commit()
        except Exception:
            tx.rollback()
            raise
    """

    def __init__(self, engine: Engine) -> None:
        """
        Initialize and begin a new transaction.

        Raises:
            TransactionError: If the connection or BEGIN fails
        """
        self.engine = engine
        self._conn: Connection | None = None
        self._tx = None
        self._closed = False

        try:
            self._conn = self.engine.connect()
            self._tx = self._conn.begin()
        except SQLAlchemyError as exc:
            if self._conn is not None:
                self._conn.close()
            self._closed = True
            raise TransactionError(
                f"failed to begin transaction: {driver_message(exc)}"
            ) from exc

    @property
    def closed(self) -> bool:
        return self._closed

    def _connection(self) -> Connection:
        """Get the active connection, raising if closed."""
        if self._closed or self._conn is None:
            raise TransactionError("Transaction is already closed")
        return self._conn

    def _finish(self, action: str) -> None:
        if self._closed:
            raise TransactionError("Transaction is already closed")

        try:
            if self._tx is not None:
                getattr(self._tx, action)()
        except SQLAlchemyError as exc:
            raise TransactionError(
                f"failed to {action} transaction: {driver_message(exc)}"
            ) from exc
        finally:
            self._closed = True
            if self._conn is not None:
                self._conn.close()
            self._conn = None
            self._tx = None
        logger.debug("transaction %s", "committed" if action == "commit" else "rolled back")

    def commit(self) -> None:
        """
        Commit the transaction and close the connection.

        Raises:
            TransactionError: If the transaction is already closed or COMMIT fails
        """
        self._finish("commit")

    def rollback(self) -> None:
        """
        Rollback the transaction and close the connection.

        Raises:
            TransactionError: If the transaction is already closed or ROLLBACK fails
        """
        self._finish("rollback")

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return affected row count.

        Raises:
            RunCancelledError: If the cancel token fired
            TransactionError: If the transaction is closed
            ExecError: If the driver rejects the statement
        """
        check(cancel)
        return affected_rows(self._connection(), sql, params)

    def query_rows(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT returning multiple rows.

        Raises:
            RunCancelledError: If the cancel token fired
            TransactionError: If the transaction is closed
            QueryError: If the driver rejects the query
        """
        check(cancel)
        return fetch_rows(self._connection(), sql, params)
