from __future__ import annotations

from typing import Any, Mapping, Sequence

from ..errors import ConfigurationError
from .compare import compare_values, render_value

ASSERTION_PASSED = "assertion passed"


def validate_select(
    actual: Sequence[Mapping[str, Any]],
    expected: Sequence[Mapping[str, Any]],
) -> tuple[bool, str]:
    """
    Compare query rows against expected rows, position by position.

    Only the columns named in each expected row are checked; extra columns in
    the actual rows are ignored.

    Raises:
        ConfigurationError: If no expected rows were declared
    """
    if not expected:
        raise ConfigurationError("expected rows are required for select operations")

    if len(actual) != len(expected):
        return False, f"row count mismatch: expected {len(expected)}, got {len(actual)}"

    for i, expected_row in enumerate(expected):
        actual_row = actual[i]
        for column, expected_value in expected_row.items():
            if column not in actual_row:
                return False, f"missing column '{column}' in row {i}"

            actual_value = actual_row[column]
            if not compare_values(actual_value, expected_value):
                return False, (
                    f"value mismatch in row {i}, column '{column}': "
                    f"expected {_display(expected_value)}, got {_display(actual_value)}"
                )

    return True, ASSERTION_PASSED


def validate_dml(
    actual: int,
    expected_changes: Mapping[str, int],
    op_type: str,
) -> tuple[bool, str]:
    """Compare an affected-row count against the count declared for op_type."""
    if op_type not in expected_changes:
        return False, f"no expected count specified for operation type '{op_type}'"

    expected = expected_changes[op_type]
    if actual != expected:
        return False, f"affected rows mismatch: expected {expected}, got {actual}"

    return True, ASSERTION_PASSED


def _display(value: Any) -> str:
    return "null" if value is None else render_value(value)
