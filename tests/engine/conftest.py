from __future__ import annotations

from collections.abc import Callable
from typing import Any, Mapping, Optional

import pytest

from opsql.cancel import CancelToken
from opsql.errors import TransactionError


class FakeTx:
    """
    In-memory DbTx answering from a sql -> response table.

    A response is returned as-is, raised if it is an exception, or called
    (with no arguments) if it is callable.
    """

    def __init__(
        self,
        responses: Mapping[str, Any],
        fail_rollback: bool = False,
        fail_commit: bool = False,
    ) -> None:
        self.responses = responses
        self.fail_rollback = fail_rollback
        self.fail_commit = fail_commit
        self.calls: list[str] = []
        self.committed = False
        self.rolled_back = False

    @property
    def closed(self) -> bool:
        return self.committed or self.rolled_back

    def _answer(self, sql: str, cancel: Optional[CancelToken]) -> Any:
        if cancel is not None:
            cancel.raise_if_cancelled()
        if self.closed:
            raise TransactionError("Transaction is already closed")
        self.calls.append(sql)
        response = self.responses[sql]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response()
        return response

    def query_rows(self, sql, params=None, cancel=None):
        return self._answer(sql, cancel)

    def execute(self, sql, params=None, cancel=None):
        return self._answer(sql, cancel)

    def commit(self) -> None:
        if self.closed:
            raise TransactionError("Transaction is already closed")
        if self.fail_commit:
            raise TransactionError("failed to commit transaction: connection lost")
        self.committed = True

    def rollback(self) -> None:
        if self.closed:
            raise TransactionError("Transaction is already closed")
        if self.fail_rollback:
            raise TransactionError("failed to rollback transaction: connection lost")
        self.rolled_back = True


class FakeDatabase:
    def __init__(
        self,
        responses: Mapping[str, Any],
        fail_rollback: bool = False,
        fail_commit: bool = False,
    ) -> None:
        self.responses = responses
        self.fail_rollback = fail_rollback
        self.fail_commit = fail_commit
        self.transactions: list[FakeTx] = []

    @property
    def tx(self) -> FakeTx:
        return self.transactions[-1]

    def begin_transaction(self, cancel: Optional[CancelToken] = None) -> FakeTx:
        if cancel is not None:
            cancel.raise_if_cancelled()
        tx = FakeTx(
            self.responses,
            fail_rollback=self.fail_rollback,
            fail_commit=self.fail_commit,
        )
        self.transactions.append(tx)
        return tx


@pytest.fixture
def fake_db() -> Callable[..., FakeDatabase]:
    """
    Usage:
        db = fake_db({"SELECT 1": [{"one": 1}], "UPDATE t SET x = 1": 1})
    """
    return FakeDatabase


@pytest.fixture
def fake_tx() -> Callable[..., FakeTx]:
    return FakeTx
