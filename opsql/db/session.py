from __future__ import annotations

from typing import Any, Mapping, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import TextClause

from ..cancel import CancelToken, check
from ..errors import ExecError, QueryError
from .tx import DbTransaction, affected_rows, driver_message, fetch_rows


class Database:
    """
    Plain-connection access to a database behind a SQLAlchemy Engine.

    Every query_rows()/execute() call runs on its own connection in its own
    short transaction, committed when the call returns. Runs that need several
    statements to share one transaction use begin_transaction().

    Usage:
        db = Database(create_engine(url))
        rows = db.query_rows("SELECT id FROM users ORDER BY id")
        tx = db.begin_transaction()
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def query_rows(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT returning multiple rows.
        """
        check(cancel)
        try:
            with self.engine.begin() as conn:
                return fetch_rows(conn, sql, params)
        except SQLAlchemyError as exc:
            raise QueryError(driver_message(exc)) from exc

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """
        Execute a non-SELECT statement, commit it, and return affected row count.
        """
        check(cancel)
        try:
            with self.engine.begin() as conn:
                return affected_rows(conn, sql, params)
        except SQLAlchemyError as exc:
            raise ExecError(driver_message(exc)) from exc

    def begin_transaction(self, cancel: Optional[CancelToken] = None) -> DbTransaction:
        """
        Begin a new transaction bound to this database.

        Returns:
            A new DbTransaction instance with an active transaction
        """
        check(cancel)
        return DbTransaction(self.engine)

    def close(self) -> None:
        self.engine.dispose()
