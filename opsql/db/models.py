from __future__ import annotations

import base64
import datetime as dt
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union


class OperationType(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_dml(self) -> bool:
        return self is not OperationType.SELECT

    @classmethod
    def detect(cls, sql: str) -> Optional["OperationType"]:
        """Infer the operation type from the leading SQL keyword."""
        normalized = sql.strip().upper()
        for op_type in cls:
            if normalized.startswith(op_type.value.upper()):
                return op_type
        return None


@dataclass
class Operation:
    """
    A single SQL step with its expectation.

    `type` is normally an OperationType; plain strings are accepted so that an
    unresolved type reaches the executor and is rejected there.
    """
    id: str
    type: Union[OperationType, str]
    statement: str
    description: str = ""
    # select only: ordered expected rows, column -> value
    expected_rows: list[Mapping[str, Any]] = field(default_factory=list)
    # DML only: operation type name -> expected affected rows
    expected_changes: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Report:
    """Outcome of executing one Operation."""
    id: str
    description: str
    type: str
    result: Any
    passed: bool
    message: str
    statement: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "type": self.type,
            "result": to_jsonable(self.result),
            "pass": self.passed,
            "message": self.message,
            "sql": self.statement,
        }


def to_jsonable(value: Any) -> Any:
    """Convert driver-native values (Decimal, dates, bytes) to JSON-safe ones."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, dt.timedelta):
        return value.total_seconds()
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(raw).decode("ascii")
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def summarize(reports: Iterable[Report]) -> tuple[int, int]:
    """Return (passed, failed) counts."""
    passed = failed = 0
    for report in reports:
        if report.passed:
            passed += 1
        else:
            failed += 1
    return passed, failed
