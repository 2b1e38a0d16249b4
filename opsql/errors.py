from __future__ import annotations

from typing import Any, Sequence


class OpsqlError(Exception):
    """
    Base exception for opsql errors.

    Errors raised out of a run carry the reports collected before the failure
    so callers can still render them.
    """

    def __init__(
        self,
        message: str,
        *,
        reports: Sequence[Any] | None = None,
        operation_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.reports = list(reports) if reports is not None else []
        self.operation_id = operation_id


class ConfigurationError(OpsqlError):
    """Unsupported operation type or missing expectation block."""


class DefinitionError(ConfigurationError):
    """A definition file could not be loaded, merged or validated."""


class PortError(OpsqlError):
    """Driver, connectivity or SQL failure."""


class QueryError(PortError):
    """A SELECT failed to produce rows."""


class ExecError(PortError):
    """A DML statement failed to produce an affected-row count."""


class TransactionError(OpsqlError):
    """Begin, commit or rollback failed, or the transaction is already closed."""


class RunCancelledError(OpsqlError):
    """The run was cancelled or its deadline passed."""


class ApplyAbortedError(OpsqlError):
    """An apply run was rolled back because an operation did not pass."""


class NotificationError(OpsqlError):
    """Posting a GitHub comment or Slack message failed."""
