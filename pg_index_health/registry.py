"""Diagnostic catalog: identifier to query, binder, topology and kind."""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from pg_index_health import queries
from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import InvariantViolationError, UnknownDiagnosticError

_PLACEHOLDER_RE = re.compile(r"%%|%s")


class Topology(enum.Enum):
    PRIMARY_ONLY = "primary_only"
    ACROSS_CLUSTER = "across_cluster"


class CheckKind(enum.Enum):
    STATIC = "static"
    RUNTIME = "runtime"


class ParamBinder(enum.Enum):
    """Which SchemaContext values are bound, in order, into a query."""

    NONE = "none"
    SCHEMA = "schema"
    SCHEMA_AND_BLOAT = "schema_and_bloat"
    SCHEMA_AND_REMAINING = "schema_and_remaining"

    @property
    def arity(self) -> int:
        return _BINDER_ARITY[self]


_BINDER_ARITY = {
    ParamBinder.NONE: 0,
    ParamBinder.SCHEMA: 1,
    ParamBinder.SCHEMA_AND_BLOAT: 2,
    ParamBinder.SCHEMA_AND_REMAINING: 2,
}


def count_placeholders(query: str) -> int:
    return sum(1 for token in _PLACEHOLDER_RE.findall(query) if token == "%s")


@dataclass(frozen=True)
class DiagnosticDescriptor:
    """One immutable catalog entry.

    Attributes:
        identifier: Upper-case diagnostic name, e.g. ``UNUSED_INDEXES``.
        topology: Where the query runs.
        kind: STATIC checks only read the catalog and are safe on an empty
            database; RUNTIME checks depend on live statistics.
        query: psycopg2 query template.
        binder: Which context values fill the template's placeholders.
        description: Human-readable summary.
    """

    identifier: str
    topology: Topology
    kind: CheckKind
    query: str
    binder: ParamBinder = ParamBinder.SCHEMA
    description: str = ""

    def __post_init__(self):
        if not isinstance(self.identifier, str) or not self.identifier.strip():
            raise InvariantViolationError("identifier cannot be blank")
        object.__setattr__(self, "identifier", self.identifier.strip().upper())
        if not isinstance(self.query, str) or not self.query.strip():
            raise InvariantViolationError(f"{self.identifier}: query cannot be blank")
        if self.topology is Topology.ACROSS_CLUSTER and self.kind is not CheckKind.RUNTIME:
            raise InvariantViolationError(
                f"{self.identifier}: runtime check is required for across cluster execution"
            )
        placeholders = count_placeholders(self.query)
        if placeholders != self.binder.arity:
            raise InvariantViolationError(
                f"{self.identifier}: query has {placeholders} placeholder(s) "
                f"but binder {self.binder.name} supplies {self.binder.arity}"
            )

    @property
    def diagnostic_name(self) -> str:
        return self.identifier.lower()

    @property
    def is_static(self) -> bool:
        return self.kind is CheckKind.STATIC

    @property
    def is_runtime(self) -> bool:
        return self.kind is CheckKind.RUNTIME


def bind_parameters(descriptor: DiagnosticDescriptor, context: SchemaContext) -> tuple:
    """Positional query parameters for ``descriptor`` under ``context``."""
    binder = descriptor.binder
    if binder is ParamBinder.NONE:
        return ()
    if binder is ParamBinder.SCHEMA:
        return (context.schema_name,)
    if binder is ParamBinder.SCHEMA_AND_BLOAT:
        return (context.schema_name, context.bloat_percentage_threshold)
    if binder is ParamBinder.SCHEMA_AND_REMAINING:
        return (context.schema_name, context.remaining_percentage_threshold)
    raise ValueError(f"Unknown binder: {binder}")


class DiagnosticRegistry:
    """Read-only catalog of diagnostics, iterated in declaration order."""

    def __init__(self, descriptors: Iterable[DiagnosticDescriptor]):
        self._descriptors: dict[str, DiagnosticDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.identifier in self._descriptors:
                raise InvariantViolationError(
                    f"Duplicate diagnostic identifier: {descriptor.identifier}"
                )
            self._descriptors[descriptor.identifier] = descriptor

    def descriptor_for(self, identifier: str) -> DiagnosticDescriptor:
        key = identifier.strip().upper() if isinstance(identifier, str) else identifier
        try:
            return self._descriptors[key]
        except (KeyError, TypeError):
            raise UnknownDiagnosticError(f"Unknown diagnostic: {identifier!r}") from None

    def __contains__(self, identifier) -> bool:
        return isinstance(identifier, str) and identifier.strip().upper() in self._descriptors

    def __iter__(self) -> Iterator[DiagnosticDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def identifiers(self) -> list[str]:
        return list(self._descriptors)

    def select(
        self,
        kind: CheckKind | None = None,
        topology: Topology | None = None,
        exclude: set[str] | None = None,
        include_only: set[str] | None = None,
    ) -> list[DiagnosticDescriptor]:
        """Descriptors matching the given filters, in catalog order.

        Args:
            kind: If provided, only descriptors of this kind.
            topology: If provided, only descriptors with this topology.
            exclude: Identifiers to leave out; always applied.
            include_only: If provided, exactly these identifiers (whitelist
                mode); kind and topology filters are ignored.
        """
        exclude = {e.upper() for e in exclude or ()}
        if include_only is not None:
            wanted = {i.upper() for i in include_only}
            return [d for d in self if d.identifier in wanted and d.identifier not in exclude]

        selected = []
        for descriptor in self:
            if descriptor.identifier in exclude:
                continue
            if kind and descriptor.kind is not kind:
                continue
            if topology and descriptor.topology is not topology:
                continue
            selected.append(descriptor)
        return selected


def _static(identifier: str, description: str) -> DiagnosticDescriptor:
    return DiagnosticDescriptor(
        identifier=identifier,
        topology=Topology.PRIMARY_ONLY,
        kind=CheckKind.STATIC,
        query=getattr(queries, identifier),
        binder=ParamBinder.SCHEMA,
        description=description,
    )


def _runtime(
    identifier: str,
    description: str,
    topology: Topology = Topology.PRIMARY_ONLY,
    binder: ParamBinder = ParamBinder.SCHEMA,
) -> DiagnosticDescriptor:
    return DiagnosticDescriptor(
        identifier=identifier,
        topology=topology,
        kind=CheckKind.RUNTIME,
        query=getattr(queries, identifier),
        binder=binder,
        description=description,
    )


STANDARD_REGISTRY = DiagnosticRegistry([
    _runtime(
        "BLOATED_INDEXES",
        "B-tree indexes whose estimated bloat reaches the threshold",
        binder=ParamBinder.SCHEMA_AND_BLOAT,
    ),
    _runtime(
        "BLOATED_TABLES",
        "Tables whose estimated bloat reaches the threshold",
        binder=ParamBinder.SCHEMA_AND_BLOAT,
    ),
    _static("DUPLICATED_INDEXES", "Indexes identical in columns, expressions and predicate"),
    _static("FOREIGN_KEYS_WITHOUT_INDEX", "Foreign keys not covered by a leading-column index"),
    _static("INDEXES_WITH_NULL_VALUES", "Indexes on nullable columns without a partial predicate"),
    _static("INTERSECTED_INDEXES", "Indexes whose key columns are a prefix of another index"),
    _static("INVALID_INDEXES", "Indexes left invalid by a failed concurrent build"),
    _runtime(
        "TABLES_WITH_MISSING_INDEXES",
        "Tables read by sequential scan more often than by index",
        topology=Topology.ACROSS_CLUSTER,
    ),
    _static("TABLES_WITHOUT_PRIMARY_KEY", "Tables with no primary key"),
    _runtime(
        "UNUSED_INDEXES",
        "Non-unique indexes rarely or never scanned",
        topology=Topology.ACROSS_CLUSTER,
    ),
    _static("TABLES_WITHOUT_DESCRIPTION", "Tables without a comment"),
    _static("COLUMNS_WITHOUT_DESCRIPTION", "Columns without a comment"),
    _static("COLUMNS_WITH_JSON_TYPE", "Columns of type json instead of jsonb"),
    _static("COLUMNS_WITH_SERIAL_TYPES", "Non-key columns backed by serial sequences"),
    _static("FUNCTIONS_WITHOUT_DESCRIPTION", "Functions and procedures without a comment"),
    _static("INDEXES_WITH_BOOLEAN", "Non-unique indexes containing boolean columns"),
    _static("NOT_VALID_CONSTRAINTS", "Check and foreign key constraints not yet validated"),
    _static("BTREE_INDEXES_ON_ARRAY_COLUMNS", "B-tree indexes on array columns"),
    _runtime(
        "SEQUENCE_OVERFLOW",
        "Sequences with little remaining capacity",
        binder=ParamBinder.SCHEMA_AND_REMAINING,
    ),
    _static("PRIMARY_KEYS_WITH_SERIAL_TYPES", "Primary keys backed by serial sequences"),
    _static("DUPLICATED_FOREIGN_KEYS", "Foreign keys identical in columns and target"),
    _static("INTERSECTED_FOREIGN_KEYS", "Foreign keys to one target sharing some columns"),
    _static(
        "POSSIBLE_OBJECT_NAME_OVERFLOW",
        "Objects whose name reaches the identifier length limit and may be truncated",
    ),
    _static("TABLES_NOT_LINKED_TO_OTHERS", "Tables neither referencing nor referenced by others"),
    _static(
        "FOREIGN_KEYS_WITH_UNMATCHED_COLUMN_TYPE",
        "Foreign keys whose column types differ from the referenced columns",
    ),
    _static("TABLES_WITH_ZERO_OR_ONE_COLUMN", "Tables with at most one column"),
])
