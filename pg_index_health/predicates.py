"""Composable exclusion predicates over findings.

A predicate returns True to keep a finding and False to drop it. Predicates
compose with ``&`` (logical AND), so several independent exclusion rules can
be layered without any of them knowing about the others.

Name matching is always case-insensitive. Findings that carry no attribute
a predicate looks at are kept.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from pg_index_health import models
from pg_index_health.context import SchemaContext, validate_percentage
from pg_index_health.exceptions import InvariantViolationError

FLYWAY_TABLES = ("flyway_schema_history",)
LIQUIBASE_TABLES = ("databasechangelog", "databasechangeloglock")


class Predicate:
    """Immutable wrapper around a ``Finding -> bool`` function."""

    __slots__ = ("_fn", "description")

    def __init__(self, fn: Callable[[models.Finding], bool], description: str = ""):
        self._fn = fn
        self.description = description or getattr(fn, "__name__", "predicate")

    def __call__(self, finding: models.Finding) -> bool:
        return bool(self._fn(finding))

    def __and__(self, other: Callable[[models.Finding], bool]) -> Predicate:
        if not callable(other):
            return NotImplemented
        return all_of(self, other)

    def and_(self, other: Callable[[models.Finding], bool]) -> Predicate:
        return self & other

    def __repr__(self):
        return f"<Predicate {self.description}>"


def accept_all() -> Predicate:
    return Predicate(lambda finding: True, "accept_all")


def all_of(*predicates: Callable[[models.Finding], bool]) -> Predicate:
    """Combine predicates by AND. With no arguments, everything is kept."""
    parts = tuple(predicates)

    def _all(finding):
        return all(p(finding) for p in parts)

    description = " & ".join(getattr(p, "description", repr(p)) for p in parts) or "accept_all"
    return Predicate(_all, description)


# -- Name extraction --------------------------------------------------------


def _table_names(finding) -> list[str]:
    table_name = getattr(finding, "table_name", None)
    return [table_name] if table_name else []


def _index_names(finding) -> list[str]:
    if isinstance(finding, models.DuplicatedIndexes):
        return finding.index_names
    if isinstance(finding, models.Index):
        return [finding.index_name]
    return []


def _sequence_names(finding) -> list[str]:
    if isinstance(finding, (models.SequenceState, models.ColumnWithSerialType)):
        return [finding.sequence_name]
    return []


def _constraint_names(finding) -> list[str]:
    if isinstance(finding, models.DuplicatedForeignKeys):
        return finding.constraint_names
    if isinstance(finding, models.Constraint):
        return [finding.constraint_name]
    return []


def _column_names(finding) -> list[str]:
    if isinstance(finding, (models.Column, models.ColumnWithSerialType)):
        return [finding.column_name]
    if isinstance(finding, models.IndexWithNulls):
        return [finding.nullable_column]
    if isinstance(finding, models.DuplicatedForeignKeys):
        return [c.column_name for fk in finding.foreign_keys for c in fk.columns]
    columns = getattr(finding, "columns", None)
    if columns:
        return [c.column_name for c in columns]
    return []


def _normalize_names(names: str | Iterable[str], context: SchemaContext | None = None) -> frozenset:
    if isinstance(names, str):
        names = [names]
    normalized = set()
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise InvariantViolationError("exclusion name cannot be blank")
        name = name.strip()
        if context is not None:
            name = context.enrich_with_schema(name)
        normalized.add(name.lower())
    return frozenset(normalized)


def _skip_by(names_of: Callable, excluded: frozenset, description: str) -> Predicate:
    def _keep(finding):
        return not any(n.lower() in excluded for n in names_of(finding))

    return Predicate(_keep, description)


# -- Name-based predicates --------------------------------------------------


def skip_tables_by_name(
    names: str | Iterable[str], context: SchemaContext | None = None
) -> Predicate:
    """Drop findings on the named tables.

    Names are qualified with the context's schema before comparison, matching
    the way non-default-schema tables are reported.
    """
    excluded = _normalize_names(names, context)
    return _skip_by(_table_names, excluded, f"skip_tables_by_name({sorted(excluded)})")


def skip_indexes_by_name(
    names: str | Iterable[str], context: SchemaContext | None = None
) -> Predicate:
    """Drop findings on the named indexes, including any member of a duplicate set."""
    excluded = _normalize_names(names, context)
    return _skip_by(_index_names, excluded, f"skip_indexes_by_name({sorted(excluded)})")


def skip_sequences_by_name(
    names: str | Iterable[str], context: SchemaContext | None = None
) -> Predicate:
    excluded = _normalize_names(names, context)
    return _skip_by(_sequence_names, excluded, f"skip_sequences_by_name({sorted(excluded)})")


def skip_by_constraint_name(names: str | Iterable[str]) -> Predicate:
    excluded = _normalize_names(names)
    return _skip_by(_constraint_names, excluded, f"skip_by_constraint_name({sorted(excluded)})")


def skip_by_column_name(names: str | Iterable[str]) -> Predicate:
    excluded = _normalize_names(names)
    return _skip_by(_column_names, excluded, f"skip_by_column_name({sorted(excluded)})")


def skip_db_objects_by_name(names: str | Iterable[str]) -> Predicate:
    excluded = _normalize_names(names)
    return _skip_by(lambda f: [f.name], excluded, f"skip_db_objects_by_name({sorted(excluded)})")


def skip_flyway_tables(context: SchemaContext | None = None) -> Predicate:
    return skip_tables_by_name(FLYWAY_TABLES, context)


def skip_liquibase_tables(context: SchemaContext | None = None) -> Predicate:
    return skip_tables_by_name(LIQUIBASE_TABLES, context)


# -- Size and bloat predicates ----------------------------------------------


def _require_size(value: int, argument_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvariantViolationError(f"{argument_name} must be a non-negative integer")
    return value


def skip_bloat_under_threshold(size_threshold: int, percentage_threshold: float) -> Predicate:
    """Keep bloated objects only when both thresholds are reached.

    Both comparisons are inclusive. Findings without bloat metrics are kept.
    """
    size_threshold = _require_size(size_threshold, "size_threshold")
    percentage_threshold = validate_percentage(percentage_threshold, "percentage_threshold")

    def _keep(finding):
        if size_threshold == 0 and percentage_threshold == 0.0:
            return True
        bloat_size = getattr(finding, "bloat_size", None)
        bloat_percentage = getattr(finding, "bloat_percentage", None)
        if bloat_size is None or bloat_percentage is None:
            return True
        return bloat_size >= size_threshold and bloat_percentage >= percentage_threshold

    return Predicate(
        _keep, f"skip_bloat_under_threshold({size_threshold}, {percentage_threshold})"
    )


def skip_small_tables(size_threshold: int) -> Predicate:
    size_threshold = _require_size(size_threshold, "size_threshold")

    def _keep(finding):
        if not isinstance(finding, models.Table):
            return True
        return finding.table_size >= size_threshold

    return Predicate(_keep, f"skip_small_tables({size_threshold})")


def skip_small_indexes(size_threshold: int) -> Predicate:
    size_threshold = _require_size(size_threshold, "size_threshold")

    def _keep(finding):
        if isinstance(finding, models.DuplicatedIndexes):
            return finding.total_size >= size_threshold
        if isinstance(finding, models.IndexWithSize):
            return finding.index_size >= size_threshold
        return True

    return Predicate(_keep, f"skip_small_indexes({size_threshold})")
