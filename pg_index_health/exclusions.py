"""Declarative exclusion set, turned into a predicate per schema context."""

from __future__ import annotations

from dataclasses import dataclass, field

from pg_index_health.context import SchemaContext, validate_percentage
from pg_index_health.exceptions import InvariantViolationError
from pg_index_health.predicates import (
    Predicate,
    all_of,
    skip_bloat_under_threshold,
    skip_by_column_name,
    skip_by_constraint_name,
    skip_indexes_by_name,
    skip_sequences_by_name,
    skip_small_indexes,
    skip_small_tables,
    skip_tables_by_name,
)


@dataclass
class Exclusions:
    """Known-acceptable objects and size floors.

    Name sets are matched case-insensitively. Table, index and sequence names
    are qualified with the context schema when the predicate is built. A zero
    threshold disables the corresponding size rule.
    """

    tables: set[str] = field(default_factory=set)
    indexes: set[str] = field(default_factory=set)
    sequences: set[str] = field(default_factory=set)
    constraints: set[str] = field(default_factory=set)
    columns: set[str] = field(default_factory=set)
    index_size_threshold: int = 0
    table_size_threshold: int = 0
    bloat_size_threshold: int = 0
    bloat_percentage_threshold: float = 0.0

    def __post_init__(self):
        for attr in ("tables", "indexes", "sequences", "constraints", "columns"):
            names = getattr(self, attr)
            if isinstance(names, str):
                names = [names]
            names = set(names or ())
            for name in names:
                if not isinstance(name, str) or not name.strip():
                    raise InvariantViolationError(f"{attr} exclusions cannot contain blank names")
            setattr(self, attr, names)
        for attr in ("index_size_threshold", "table_size_threshold", "bloat_size_threshold"):
            value = getattr(self, attr)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvariantViolationError(f"{attr} must be a non-negative integer")
        self.bloat_percentage_threshold = validate_percentage(
            self.bloat_percentage_threshold, "bloat_percentage_threshold"
        )

    @property
    def is_empty(self) -> bool:
        return not (
            self.tables
            or self.indexes
            or self.sequences
            or self.constraints
            or self.columns
            or self.index_size_threshold
            or self.table_size_threshold
            or self.bloat_size_threshold
            or self.bloat_percentage_threshold
        )

    def to_predicate(self, context: SchemaContext | None = None) -> Predicate:
        """AND of every configured rule; accepts everything when nothing is set."""
        context = context or SchemaContext.of_default()
        parts = []
        if self.tables:
            parts.append(skip_tables_by_name(self.tables, context))
        if self.indexes:
            parts.append(skip_indexes_by_name(self.indexes, context))
        if self.sequences:
            parts.append(skip_sequences_by_name(self.sequences, context))
        if self.constraints:
            parts.append(skip_by_constraint_name(self.constraints))
        if self.columns:
            parts.append(skip_by_column_name(self.columns))
        if self.index_size_threshold:
            parts.append(skip_small_indexes(self.index_size_threshold))
        if self.table_size_threshold:
            parts.append(skip_small_tables(self.table_size_threshold))
        if self.bloat_size_threshold or self.bloat_percentage_threshold:
            parts.append(
                skip_bloat_under_threshold(
                    self.bloat_size_threshold, self.bloat_percentage_threshold
                )
            )
        return all_of(*parts)
