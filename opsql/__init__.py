from .cancel import CancelToken
from .db import Database, DbTransaction, Operation, OperationType, Report, create_database
from .engine import ApplyRunner, OperationExecutor, PlanRunner, compare_values
from .errors import (
    ApplyAbortedError,
    ConfigurationError,
    ExecError,
    OpsqlError,
    QueryError,
    RunCancelledError,
    TransactionError,
)

__all__ = [
    "ApplyAbortedError",
    "ApplyRunner",
    "CancelToken",
    "ConfigurationError",
    "Database",
    "DbTransaction",
    "ExecError",
    "Operation",
    "OperationExecutor",
    "OperationType",
    "OpsqlError",
    "PlanRunner",
    "QueryError",
    "Report",
    "RunCancelledError",
    "TransactionError",
    "compare_values",
    "create_database",
]
