"""Exception hierarchy for pg-index-health.

Every error raised by the library derives from PgIndexHealthError so callers
can catch the whole family in one place. Transport failures keep the
underlying psycopg2 error as ``__cause__``.
"""

from __future__ import annotations

from typing import Any


class PgIndexHealthError(Exception):
    """Base class for all pg-index-health errors."""


class InvariantViolationError(PgIndexHealthError, ValueError):
    """A value object or descriptor was constructed with invalid arguments."""


class ConnectivityError(PgIndexHealthError):
    """A statement or role check could not be executed on a node.

    Attributes:
        node: The node the failure happened on (may be None when unknown).
    """

    def __init__(self, message: str, node: Any = None):
        super().__init__(message)
        self.node = node


class AmbiguousPrimaryError(PgIndexHealthError):
    """The cluster did not report exactly one primary."""


class NoPrimaryAvailableError(AmbiguousPrimaryError):
    """No node reports itself as primary. Usually transient during failover."""


class SplitBrainError(AmbiguousPrimaryError):
    """More than one node reports itself as primary."""

    def __init__(self, message: str, primaries: list | None = None):
        super().__init__(message)
        self.primaries = list(primaries or [])


class UnknownDiagnosticError(PgIndexHealthError, LookupError):
    """The requested diagnostic identifier is not registered."""


class ExtractionError(PgIndexHealthError):
    """A result row does not have the shape the extractor expects."""

    def __init__(self, message: str, column: str | None = None):
        super().__init__(message)
        self.column = column
