from __future__ import annotations

import pytest

from opsql.cancel import CancelToken
from opsql.db.session import Database
from opsql.db.tx import DbTransaction
from opsql.errors import ExecError, QueryError, RunCancelledError, TransactionError


def test_transaction_commits_on_explicit_commit(db: Database, users_table: str) -> None:
    """Test that transaction commits when commit() is called."""
    tx = db.begin_transaction()
    tx.execute(f"INSERT INTO {users_table} (id, name) VALUES (10, 'Dave')")
    tx.commit()

    rows = db.query_rows(f"SELECT id, name FROM {users_table} WHERE id = 10")
    assert rows == [{"id": 10, "name": "Dave"}]


def test_transaction_rolls_back_on_explicit_rollback(db: Database, users_table: str) -> None:
    """Test that transaction rolls back when rollback() is called."""
    tx = db.begin_transaction()
    tx.execute(f"INSERT INTO {users_table} (id, name) VALUES (10, 'Dave')")
    tx.rollback()

    assert db.query_rows(f"SELECT id FROM {users_table} WHERE id = 10") == []


def test_transaction_sees_its_own_writes(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    tx.execute(f"UPDATE {users_table} SET status = 'inactive' WHERE id = 1")
    rows = tx.query_rows(f"SELECT status FROM {users_table} WHERE id = 1")
    tx.rollback()

    assert rows == [{"status": "inactive"}]


def test_transaction_cannot_be_reused_after_commit(db: Database, users_table: str) -> None:
    """Test that transaction cannot be used after commit."""
    tx = db.begin_transaction()
    tx.commit()

    with pytest.raises(TransactionError, match="Transaction is already closed"):
        tx.execute(f"DELETE FROM {users_table}")
    with pytest.raises(TransactionError, match="Transaction is already closed"):
        tx.query_rows(f"SELECT id FROM {users_table}")


def test_transaction_cannot_commit_twice(db: Database) -> None:
    tx = db.begin_transaction()
    tx.commit()

    with pytest.raises(TransactionError, match="Transaction is already closed"):
        tx.commit()


def test_transaction_cannot_rollback_twice(db: Database) -> None:
    tx = db.begin_transaction()
    tx.rollback()

    with pytest.raises(TransactionError, match="Transaction is already closed"):
        tx.rollback()
    assert tx.closed is True


def test_transaction_cannot_rollback_after_commit(db: Database) -> None:
    tx = db.begin_transaction()
    tx.commit()

    with pytest.raises(TransactionError):
        tx.rollback()


def test_transaction_execute_returns_rowcount(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    assert tx.execute(f"UPDATE {users_table} SET value = value + 1 WHERE status = 'active'") == 2
    assert tx.execute(f"DELETE FROM {users_table} WHERE id = 999") == 0
    tx.rollback()


def test_transaction_query_rows_returns_dicts_in_order(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    rows = tx.query_rows(f"SELECT id, name FROM {users_table} ORDER BY id DESC")
    tx.rollback()

    assert rows == [
        {"id": 3, "name": "Carol"},
        {"id": 2, "name": "Bob"},
        {"id": 1, "name": "Alice"},
    ]


def test_transaction_query_rows_accepts_bound_params(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    rows = tx.query_rows(f"SELECT name FROM {users_table} WHERE id = :id", {"id": 2})
    tx.rollback()

    assert rows == [{"name": "Bob"}]


def test_raw_sql_is_not_parsed_for_bind_params(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    rows = tx.query_rows(
        f"SELECT id FROM {users_table} WHERE email LIKE '%@x.com' AND name <> ':name' ORDER BY id"
    )
    tx.rollback()

    assert [r["id"] for r in rows] == [1, 2, 3]


def test_malformed_query_raises_query_error(db: Database, users_table: str) -> None:
    tx = db.begin_transaction()
    with pytest.raises(QueryError):
        tx.query_rows(f"SELECT no_such_column FROM {users_table}")
    tx.rollback()


def test_malformed_statement_raises_exec_error(db: Database) -> None:
    tx = db.begin_transaction()
    with pytest.raises(ExecError):
        tx.execute("UPDATE no_such_table SET x = 1")
    tx.rollback()


def test_cancelled_token_stops_calls(db: Database, users_table: str) -> None:
    token = CancelToken()
    tx = db.begin_transaction()
    token.cancel("stop")

    with pytest.raises(RunCancelledError, match="stop"):
        tx.query_rows(f"SELECT id FROM {users_table}", cancel=token)
    tx.rollback()


def test_connection_is_closed_after_commit(db: Database) -> None:
    tx = db.begin_transaction()
    conn = tx._conn  # behavior we care about: connection closes after commit
    assert conn is not None
    tx.commit()

    assert conn.closed is True


def test_begin_constructs_independent_transactions(engine, users_table: str) -> None:
    tx1 = DbTransaction(engine)
    tx1.execute(f"UPDATE {users_table} SET value = 99 WHERE id = 1")
    tx1.rollback()

    tx2 = DbTransaction(engine)
    rows = tx2.query_rows(f"SELECT value FROM {users_table} WHERE id = 1")
    tx2.rollback()
    assert rows == [{"value": 10}]
