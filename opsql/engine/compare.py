from __future__ import annotations

from typing import Any


def render_value(value: Any) -> str:
    """Canonical text form used when actual and expected types differ."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def compare_values(actual: Any, expected: Any) -> bool:
    """
    Type-tolerant equality between a database value and an expected literal.

    Values of the same type compare with ==. Values of different types compare
    by their rendered text, so b"alice" equals "alice" and 1 equals "1".
    """
    if actual is None and expected is None:
        return True
    if actual is None or expected is None:
        return False

    if type(actual) is not type(expected):
        return render_value(actual) == render_value(expected)

    return actual == expected
