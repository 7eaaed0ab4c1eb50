"""Data models for findings and check results.

Findings are frozen dataclasses: immutable once extracted and compared
structurally. Every finding exposes ``name``, the primary identifier the
object is reported under.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime

from pg_index_health.context import validate_percentage
from pg_index_health.exceptions import InvariantViolationError


def _require_name(value: str, argument_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvariantViolationError(f"{argument_name} cannot be blank")
    return value


def _require_non_negative(value: int, argument_name: str) -> int:
    if value < 0:
        raise InvariantViolationError(f"{argument_name} cannot be negative")
    return value


class Finding:
    """Base class for every diagnostic finding."""

    @property
    def name(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> dict:
        data = asdict(self)
        data["type"] = type(self).__name__
        return data


# -- Tables -----------------------------------------------------------------


@dataclass(frozen=True)
class Table(Finding):
    table_name: str
    table_size: int = 0

    def __post_init__(self):
        _require_name(self.table_name, "table_name")
        _require_non_negative(self.table_size, "table_size")

    @property
    def name(self) -> str:
        return self.table_name


@dataclass(frozen=True)
class TableWithBloat(Table):
    bloat_size: int = 0
    bloat_percentage: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative(self.bloat_size, "bloat_size")
        validate_percentage(self.bloat_percentage, "bloat_percentage")


@dataclass(frozen=True)
class TableWithMissingIndex(Table):
    seq_scans: int = 0
    index_scans: int = 0

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative(self.seq_scans, "seq_scans")
        _require_non_negative(self.index_scans, "index_scans")


@dataclass(frozen=True)
class Column(Finding):
    table_name: str
    column_name: str
    not_null: bool = False

    def __post_init__(self):
        _require_name(self.table_name, "table_name")
        _require_name(self.column_name, "column_name")

    @property
    def name(self) -> str:
        return self.column_name

    @property
    def is_nullable(self) -> bool:
        return not self.not_null


def _require_same_table(table_name: str, columns: tuple[Column, ...]):
    for column in columns:
        if column.table_name.lower() != table_name.lower():
            raise InvariantViolationError(
                f"column {column.column_name} belongs to {column.table_name}, not {table_name}"
            )


@dataclass(frozen=True)
class TableWithColumns(Table):
    columns: tuple[Column, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "columns", tuple(self.columns))
        _require_same_table(self.table_name, self.columns)


# -- Indexes ----------------------------------------------------------------


@dataclass(frozen=True)
class Index(Finding):
    table_name: str
    index_name: str

    def __post_init__(self):
        _require_name(self.table_name, "table_name")
        _require_name(self.index_name, "index_name")

    @property
    def name(self) -> str:
        return self.index_name


@dataclass(frozen=True)
class IndexWithSize(Index):
    index_size: int = 0

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative(self.index_size, "index_size")


@dataclass(frozen=True)
class IndexWithBloat(IndexWithSize):
    bloat_size: int = 0
    bloat_percentage: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative(self.bloat_size, "bloat_size")
        validate_percentage(self.bloat_percentage, "bloat_percentage")


@dataclass(frozen=True)
class UnusedIndex(IndexWithSize):
    index_scans: int = 0

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative(self.index_scans, "index_scans")


@dataclass(frozen=True)
class IndexWithNulls(IndexWithSize):
    nullable_column: str = ""

    def __post_init__(self):
        super().__post_init__()
        _require_name(self.nullable_column, "nullable_column")


@dataclass(frozen=True)
class IndexWithColumns(IndexWithSize):
    columns: tuple[Column, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "columns", tuple(self.columns))
        if not self.columns:
            raise InvariantViolationError("columns cannot be empty")
        _require_same_table(self.table_name, self.columns)


@dataclass(frozen=True)
class DuplicatedIndexes(Finding):
    """Two or more indexes on one table that cover the same (or overlapping) keys."""

    indexes: tuple[IndexWithSize, ...]

    def __post_init__(self):
        indexes = tuple(
            sorted(self.indexes, key=lambda i: (i.table_name, i.index_name, i.index_size))
        )
        if len(indexes) < 2:
            raise InvariantViolationError("duplicated indexes require at least two indexes")
        table_names = {i.table_name.lower() for i in indexes}
        if len(table_names) != 1:
            raise InvariantViolationError(
                f"duplicated indexes must belong to one table, got {sorted(table_names)}"
            )
        object.__setattr__(self, "indexes", indexes)

    @property
    def table_name(self) -> str:
        return self.indexes[0].table_name

    @property
    def index_names(self) -> list[str]:
        return [i.index_name for i in self.indexes]

    @property
    def total_size(self) -> int:
        return sum(i.index_size for i in self.indexes)

    @property
    def name(self) -> str:
        return ",".join(self.index_names)


# -- Columns and constraints ------------------------------------------------


@dataclass(frozen=True)
class ColumnWithSerialType(Finding):
    column: Column
    serial_type: str
    sequence_name: str

    def __post_init__(self):
        _require_name(self.serial_type, "serial_type")
        _require_name(self.sequence_name, "sequence_name")

    @property
    def table_name(self) -> str:
        return self.column.table_name

    @property
    def column_name(self) -> str:
        return self.column.column_name

    @property
    def name(self) -> str:
        return self.column.column_name


@dataclass(frozen=True)
class Constraint(Finding):
    table_name: str
    constraint_name: str
    constraint_type: str = ""

    def __post_init__(self):
        _require_name(self.table_name, "table_name")
        _require_name(self.constraint_name, "constraint_name")

    @property
    def name(self) -> str:
        return self.constraint_name


@dataclass(frozen=True)
class ForeignKey(Constraint):
    columns: tuple[Column, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "constraint_type", self.constraint_type or "f")
        object.__setattr__(self, "columns", tuple(self.columns))
        if not self.columns:
            raise InvariantViolationError("columns cannot be empty")
        _require_same_table(self.table_name, self.columns)


@dataclass(frozen=True)
class DuplicatedForeignKeys(Finding):
    foreign_keys: tuple[ForeignKey, ...]

    def __post_init__(self):
        foreign_keys = tuple(sorted(self.foreign_keys, key=lambda k: k.constraint_name))
        if len(foreign_keys) < 2:
            raise InvariantViolationError(
                "duplicated foreign keys require at least two constraints"
            )
        table_names = {k.table_name.lower() for k in foreign_keys}
        if len(table_names) != 1:
            raise InvariantViolationError(
                f"duplicated foreign keys must belong to one table, got {sorted(table_names)}"
            )
        object.__setattr__(self, "foreign_keys", foreign_keys)

    @property
    def table_name(self) -> str:
        return self.foreign_keys[0].table_name

    @property
    def constraint_names(self) -> list[str]:
        return [k.constraint_name for k in self.foreign_keys]

    @property
    def name(self) -> str:
        return ",".join(self.constraint_names)


# -- Other database objects -------------------------------------------------


@dataclass(frozen=True)
class StoredFunction(Finding):
    function_name: str
    function_signature: str = ""

    def __post_init__(self):
        _require_name(self.function_name, "function_name")

    @property
    def name(self) -> str:
        return self.function_name


@dataclass(frozen=True)
class SequenceState(Finding):
    sequence_name: str
    data_type: str
    remaining_percentage: float

    def __post_init__(self):
        _require_name(self.sequence_name, "sequence_name")
        _require_name(self.data_type, "data_type")
        validate_percentage(self.remaining_percentage, "remaining_percentage")

    @property
    def name(self) -> str:
        return self.sequence_name


@dataclass(frozen=True)
class AnyObject(Finding):
    object_name: str
    object_type: str

    def __post_init__(self):
        _require_name(self.object_name, "object_name")
        _require_name(self.object_type, "object_type")

    @property
    def name(self) -> str:
        return self.object_name


# -- Scan results -----------------------------------------------------------


@dataclass
class CheckResult:
    diagnostic: str
    kind: str
    topology: str
    schema_name: str
    description: str = ""
    findings: list[Finding] = field(default_factory=list)
    error: str | None = None

    @property
    def passed(self) -> bool:
        return not self.findings and not self.error


@dataclass
class ScanReport:
    timestamp: datetime
    hosts: list[str] = field(default_factory=list)
    schemas: list[str] = field(default_factory=list)
    results: list[CheckResult] = field(default_factory=list)

    @property
    def findings(self) -> list[Finding]:
        all_findings = []
        for r in self.results:
            all_findings.extend(r.findings)
        return all_findings

    @property
    def checks_passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def checks_with_findings(self) -> int:
        return sum(1 for r in self.results if r.findings)

    @property
    def checks_errored(self) -> int:
        return sum(1 for r in self.results if r.error)

    @property
    def checks_total(self) -> int:
        return len(self.results)
