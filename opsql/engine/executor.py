from __future__ import annotations

import logging
import time
from typing import Any, Optional

from ..cancel import CancelToken
from ..db.models import Operation, OperationType, Report
from ..db.tx import DbPort
from ..errors import ConfigurationError, ExecError, QueryError
from .metrics import observe_operation
from .validate import validate_dml, validate_select

logger = logging.getLogger(__name__)


def resolve_type(operation: Operation) -> OperationType:
    """
    Raises:
        ConfigurationError: If the operation type is not one of the four known types
    """
    try:
        return OperationType(operation.type)
    except ValueError:
        raise ConfigurationError(
            f"unsupported operation type: {operation.type}",
            operation_id=operation.id,
        ) from None


class OperationExecutor:
    """
    Runs one Operation against a port and turns the outcome into a Report.

    Failed assertions and driver errors become reports with passed=False.
    Only configuration problems (unknown type, missing expectations),
    cancellation and transaction failures are raised.
    """

    def execute(
        self,
        port: DbPort,
        operation: Operation,
        cancel: Optional[CancelToken] = None,
    ) -> Report:
        op_type = resolve_type(operation)
        self._check_expectations(operation, op_type)

        start_time = time.monotonic()
        if op_type is OperationType.SELECT:
            report = self._execute_select(port, operation, cancel)
        else:
            report = self._execute_dml(port, operation, op_type, cancel)
        observe_operation(op_type.value, report.passed, time.monotonic() - start_time)

        if report.passed:
            logger.info("operation[%s] passed", operation.id)
        else:
            logger.warning("operation[%s] failed: %s", operation.id, report.message)
        return report

    def _check_expectations(self, operation: Operation, op_type: OperationType) -> None:
        if op_type is OperationType.SELECT and not operation.expected_rows:
            raise ConfigurationError(
                f"operation[{operation.id}]: expected is required for SELECT",
                operation_id=operation.id,
            )
        if op_type.is_dml and not operation.expected_changes:
            raise ConfigurationError(
                f"operation[{operation.id}]: expected_changes is required for DML",
                operation_id=operation.id,
            )

    def _execute_select(
        self,
        port: DbPort,
        operation: Operation,
        cancel: Optional[CancelToken],
    ) -> Report:
        try:
            rows = port.query_rows(operation.statement, cancel=cancel)
        except QueryError as exc:
            return self._report(operation, None, False, f"query failed: {exc}")

        passed, message = validate_select(rows, operation.expected_rows)
        return self._report(operation, rows, passed, message)

    def _execute_dml(
        self,
        port: DbPort,
        operation: Operation,
        op_type: OperationType,
        cancel: Optional[CancelToken],
    ) -> Report:
        try:
            affected = port.execute(operation.statement, cancel=cancel)
        except ExecError as exc:
            return self._report(operation, None, False, f"execution failed: {exc}")

        passed, message = validate_dml(affected, operation.expected_changes, op_type.value)
        return self._report(operation, affected, passed, message)

    @staticmethod
    def _report(operation: Operation, result: Any, passed: bool, message: str) -> Report:
        return Report(
            id=operation.id,
            description=operation.description,
            type=OperationType(operation.type).value,
            result=result,
            passed=passed,
            message=message,
            statement=operation.statement,
        )
