from __future__ import annotations

from ..metrics.registry import (
    OPSQL_OPERATION_LATENCY_SECONDS,
    OPSQL_OPERATIONS_TOTAL,
    OPSQL_RUNS_TOTAL,
)


def observe_operation(op_type: str, passed: bool, latency_s: float) -> None:
    status = "passed" if passed else "failed"
    OPSQL_OPERATIONS_TOTAL.labels(op_type=op_type, status=status).inc()
    OPSQL_OPERATION_LATENCY_SECONDS.labels(op_type=op_type).observe(latency_s)


def observe_run(mode: str, outcome: str) -> None:
    """
    outcome is one of: committed, rolled_back, aborted, error.
    """
    OPSQL_RUNS_TOTAL.labels(mode=mode, outcome=outcome).inc()
