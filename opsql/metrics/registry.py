from __future__ import annotations

from prometheus_client import Counter, Histogram

OPSQL_OPERATIONS_TOTAL = Counter(
    "opsql_operations_total",
    "Operations executed, by type and validation outcome",
    ["op_type", "status"],
)

OPSQL_OPERATION_LATENCY_SECONDS = Histogram(
    "opsql_operation_latency_seconds",
    "Wall time spent executing and validating one operation",
    ["op_type"],
)

OPSQL_RUNS_TOTAL = Counter(
    "opsql_runs_total",
    "Plan/apply runs, by mode and how the transaction ended",
    ["mode", "outcome"],
)
