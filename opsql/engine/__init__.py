from .compare import compare_values
from .executor import OperationExecutor
from .runner import ApplyRunner, PlanRunner, make_runner
from .validate import validate_dml, validate_select

__all__ = [
    "ApplyRunner",
    "OperationExecutor",
    "PlanRunner",
    "compare_values",
    "make_runner",
    "validate_dml",
    "validate_select",
]
