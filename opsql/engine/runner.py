from __future__ import annotations

import logging
from typing import Iterable, Optional

from ..cancel import CancelToken, check
from ..db.models import Operation, Report
from ..db.session import Database
from ..db.tx import DbTx
from ..errors import ApplyAbortedError, OpsqlError, TransactionError
from .executor import OperationExecutor
from .metrics import observe_run

logger = logging.getLogger(__name__)


class _Runner:
    """
    Drives an ordered list of operations through one transaction.

    Operations run strictly in declaration order on the same transaction, so
    the effects of operation k are visible to operation k+1. Subclasses decide
    what happens to the transaction.

    Any error raised out of execute() carries the reports collected so far in
    `exc.reports` and the failing operation in `exc.operation_id`; the
    transaction has been rolled back by then.
    """

    mode = ""

    def __init__(self, db: Database, executor: Optional[OperationExecutor] = None) -> None:
        self.db = db
        self.executor = executor or OperationExecutor()

    def execute(
        self,
        operations: Iterable[Operation],
        cancel: Optional[CancelToken] = None,
    ) -> list[Report]:
        """
        Raises:
            ConfigurationError: Unsupported type or missing expectations
            RunCancelledError: The cancel token fired mid-run
            TransactionError: Begin, commit or rollback failed
            ApplyAbortedError: An apply-mode operation did not pass
        """
        try:
            tx = self.db.begin_transaction(cancel)
        except OpsqlError:
            observe_run(self.mode, "error")
            raise

        reports: list[Report] = []
        operation_id: Optional[str] = None
        try:
            for operation in operations:
                operation_id = operation.id
                check(cancel)
                report = self.executor.execute(tx, operation, cancel)
                reports.append(report)
                self._after_report(report)
        except Exception as exc:
            self._abort(tx, exc, reports, operation_id)
            raise

        self._finish(tx, reports)
        return reports

    def _after_report(self, report: Report) -> None:
        """Hook run after every report; raising aborts the run."""

    def _finish(self, tx: DbTx, reports: list[Report]) -> None:
        raise NotImplementedError

    def _abort(
        self,
        tx: DbTx,
        exc: Exception,
        reports: list[Report],
        operation_id: Optional[str],
    ) -> None:
        outcome = "aborted" if isinstance(exc, ApplyAbortedError) else "error"
        if isinstance(exc, OpsqlError):
            exc.reports = list(reports)
            exc.operation_id = exc.operation_id or operation_id

        logger.error("%s run stopped at operation[%s]: %s", self.mode, operation_id, exc)
        try:
            tx.rollback()
        except TransactionError as rollback_exc:
            observe_run(self.mode, "error")
            raise TransactionError(
                f"rollback failed after operation[{operation_id}] error ({exc}): {rollback_exc}",
                reports=reports,
                operation_id=operation_id,
            ) from rollback_exc
        observe_run(self.mode, outcome)


class PlanRunner(_Runner):
    """
    Dry run: every operation executes, then the transaction is always rolled
    back, whatever the reports say.
    """

    mode = "plan"

    def _finish(self, tx: DbTx, reports: list[Report]) -> None:
        try:
            tx.rollback()
        except TransactionError as exc:
            exc.reports = list(reports)
            observe_run(self.mode, "error")
            raise
        observe_run(self.mode, "rolled_back")
        logger.info("plan finished: %d operations rolled back", len(reports))


class ApplyRunner(_Runner):
    """
    All-or-nothing run: the first report that does not pass rolls back the
    whole batch and stops; otherwise the transaction is committed.
    """

    mode = "apply"

    def _after_report(self, report: Report) -> None:
        if not report.passed:
            raise ApplyAbortedError(
                f"operation[{report.id}]: assertion failed: {report.message}",
                operation_id=report.id,
            )

    def _finish(self, tx: DbTx, reports: list[Report]) -> None:
        try:
            tx.commit()
        except TransactionError as exc:
            exc.reports = list(reports)
            observe_run(self.mode, "error")
            raise
        observe_run(self.mode, "committed")
        logger.info("apply finished: %d operations committed", len(reports))


def make_runner(db: Database, dry_run: bool) -> _Runner:
    return PlanRunner(db) if dry_run else ApplyRunner(db)
