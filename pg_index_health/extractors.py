"""Row extractors: turn one result row into one immutable finding.

Rows are mappings of column name to value, as produced by
``psycopg2.extras.RealDictCursor``. Cell readers never substitute defaults;
a missing or mistyped cell raises ExtractionError naming the column.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any

from pg_index_health import models
from pg_index_health.exceptions import ExtractionError, InvariantViolationError

Row = Mapping[str, Any]
Extractor = Callable[[Row], models.Finding]

TABLE_NAME = "table_name"
TABLE_SIZE = "table_size"
INDEX_NAME = "index_name"
INDEX_SIZE = "index_size"
BLOAT_SIZE = "bloat_size"
BLOAT_PERCENTAGE = "bloat_percentage"
CONSTRAINT_NAME = "constraint_name"
COLUMN_NAME = "column_name"
COLUMNS = "columns"

_DUPLICATED_INDEX_RE = re.compile(r"^idx=(?P<name>.+?), size=(?P<size>\d+)$")


# -- Cell readers -----------------------------------------------------------


def _cell(row: Row, column: str) -> Any:
    try:
        value = row[column]
    except KeyError:
        raise ExtractionError(f"Missing column '{column}' in result row", column=column) from None
    if value is None:
        raise ExtractionError(f"Column '{column}' is NULL", column=column)
    return value


def _mistyped(column: str, expected: str, value: Any) -> ExtractionError:
    return ExtractionError(
        f"Column '{column}' should be {expected}, got {type(value).__name__}: {value!r}",
        column=column,
    )


def get_str(row: Row, column: str) -> str:
    value = _cell(row, column)
    if not isinstance(value, str):
        raise _mistyped(column, "text", value)
    return value


def get_int(row: Row, column: str) -> int:
    value = _cell(row, column)
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise _mistyped(column, "an integer", value)
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise _mistyped(column, "an integer", value)
        return int(value)
    return value


def get_float(row: Row, column: str) -> float:
    value = _cell(row, column)
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise _mistyped(column, "a number", value)
    return float(value)


def get_bool(row: Row, column: str) -> bool:
    value = _cell(row, column)
    if not isinstance(value, bool):
        raise _mistyped(column, "a boolean", value)
    return value


def get_str_array(row: Row, column: str) -> list[str]:
    value = _cell(row, column)
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise _mistyped(column, "a text array", value)
    return list(value)


def _wrap(builder: Callable[[], models.Finding]) -> models.Finding:
    """Run a finding constructor, reporting invariant failures as extraction errors."""
    try:
        return builder()
    except InvariantViolationError as exc:
        raise ExtractionError(f"Row does not describe a valid finding: {exc}") from exc


# -- Nested value parsers ---------------------------------------------------


def extract_column_from_raw(table_name: str, raw: str) -> models.Column:
    """Parse a ``"<column>,<not-null flag>"`` descriptor into a Column.

    The flag is ``true`` or ``false``; whitespace around either part is ignored.
    """
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2 or not parts[0] or parts[1].lower() not in ("true", "false"):
        raise ExtractionError(f"Cannot parse column info from {raw}", column=COLUMNS)
    return _wrap(
        lambda: models.Column(
            table_name=table_name,
            column_name=parts[0],
            not_null=parts[1].lower() == "true",
        )
    )


def extract_columns(row: Row, table_name: str, column: str = COLUMNS) -> tuple[models.Column, ...]:
    raw_columns = get_str_array(row, column)
    if not raw_columns:
        raise ExtractionError("Columns array cannot be empty", column=column)
    return tuple(extract_column_from_raw(table_name, raw) for raw in raw_columns)


def parse_duplicated_indexes(table_name: str, raw: str) -> list[models.IndexWithSize]:
    """Parse ``"idx=<name>, size=<bytes>; idx=<name>, size=<bytes>"``."""
    indexes = []
    for chunk in raw.split(";"):
        match = _DUPLICATED_INDEX_RE.match(chunk.strip())
        if not match:
            raise ExtractionError(f"Cannot parse index info from {chunk.strip()!r}")
        indexes.append(
            models.IndexWithSize(
                table_name=table_name,
                index_name=match.group("name"),
                index_size=int(match.group("size")),
            )
        )
    return indexes


# -- Finding extractors -----------------------------------------------------


def extract_table(row: Row) -> models.Table:
    return _wrap(lambda: models.Table(get_str(row, TABLE_NAME), get_int(row, TABLE_SIZE)))


def extract_table_with_bloat(row: Row) -> models.TableWithBloat:
    return _wrap(
        lambda: models.TableWithBloat(
            table_name=get_str(row, TABLE_NAME),
            table_size=get_int(row, TABLE_SIZE),
            bloat_size=get_int(row, BLOAT_SIZE),
            bloat_percentage=get_float(row, BLOAT_PERCENTAGE),
        )
    )


def extract_table_with_missing_index(row: Row) -> models.TableWithMissingIndex:
    return _wrap(
        lambda: models.TableWithMissingIndex(
            table_name=get_str(row, TABLE_NAME),
            table_size=get_int(row, TABLE_SIZE),
            seq_scans=get_int(row, "seq_scans"),
            index_scans=get_int(row, "index_scans"),
        )
    )


def extract_table_with_columns(row: Row) -> models.TableWithColumns:
    table_name = get_str(row, TABLE_NAME)
    raw_columns = get_str_array(row, COLUMNS)
    columns = tuple(extract_column_from_raw(table_name, raw) for raw in raw_columns)
    return _wrap(
        lambda: models.TableWithColumns(
            table_name=table_name, table_size=get_int(row, TABLE_SIZE), columns=columns
        )
    )


def extract_index(row: Row) -> models.Index:
    return _wrap(lambda: models.Index(get_str(row, TABLE_NAME), get_str(row, INDEX_NAME)))


def extract_index_with_bloat(row: Row) -> models.IndexWithBloat:
    return _wrap(
        lambda: models.IndexWithBloat(
            table_name=get_str(row, TABLE_NAME),
            index_name=get_str(row, INDEX_NAME),
            index_size=get_int(row, INDEX_SIZE),
            bloat_size=get_int(row, BLOAT_SIZE),
            bloat_percentage=get_float(row, BLOAT_PERCENTAGE),
        )
    )


def extract_unused_index(row: Row) -> models.UnusedIndex:
    return _wrap(
        lambda: models.UnusedIndex(
            table_name=get_str(row, TABLE_NAME),
            index_name=get_str(row, INDEX_NAME),
            index_size=get_int(row, INDEX_SIZE),
            index_scans=get_int(row, "index_scans"),
        )
    )


def extract_index_with_nulls(row: Row) -> models.IndexWithNulls:
    return _wrap(
        lambda: models.IndexWithNulls(
            table_name=get_str(row, TABLE_NAME),
            index_name=get_str(row, INDEX_NAME),
            index_size=get_int(row, INDEX_SIZE),
            nullable_column=get_str(row, "nullable_fields"),
        )
    )


def extract_index_with_columns(row: Row) -> models.IndexWithColumns:
    table_name = get_str(row, TABLE_NAME)
    columns = extract_columns(row, table_name)
    return _wrap(
        lambda: models.IndexWithColumns(
            table_name=table_name,
            index_name=get_str(row, INDEX_NAME),
            index_size=get_int(row, INDEX_SIZE),
            columns=columns,
        )
    )


def extract_duplicated_indexes(row: Row) -> models.DuplicatedIndexes:
    table_name = get_str(row, TABLE_NAME)
    raw = get_str(row, "duplicated_indexes")
    return _wrap(
        lambda: models.DuplicatedIndexes(indexes=tuple(parse_duplicated_indexes(table_name, raw)))
    )


def extract_column(row: Row) -> models.Column:
    return _wrap(
        lambda: models.Column(
            table_name=get_str(row, TABLE_NAME),
            column_name=get_str(row, COLUMN_NAME),
            not_null=get_bool(row, "column_not_null"),
        )
    )


def extract_column_with_serial_type(row: Row) -> models.ColumnWithSerialType:
    column = extract_column(row)
    return _wrap(
        lambda: models.ColumnWithSerialType(
            column=column,
            serial_type=get_str(row, "column_type"),
            sequence_name=get_str(row, "sequence_name"),
        )
    )


def extract_constraint(row: Row) -> models.Constraint:
    return _wrap(
        lambda: models.Constraint(
            table_name=get_str(row, TABLE_NAME),
            constraint_name=get_str(row, CONSTRAINT_NAME),
            constraint_type=get_str(row, "constraint_type"),
        )
    )


def foreign_key_extractor(prefix: str = "") -> Callable[[Row], models.ForeignKey]:
    """Build an extractor for a foreign key whose cells may carry a prefix.

    Without a prefix the row provides ``constraint_name`` and ``columns``.
    With prefix ``p`` it provides ``p_constraint_name`` and
    ``p_constraint_columns``, which lets a single row describe two
    foreign keys side by side.
    """
    constraint_column = f"{prefix}_{CONSTRAINT_NAME}" if prefix else CONSTRAINT_NAME
    columns_column = f"{prefix}_constraint_columns" if prefix else COLUMNS

    def extract(row: Row) -> models.ForeignKey:
        table_name = get_str(row, TABLE_NAME)
        columns = extract_columns(row, table_name, columns_column)
        return _wrap(
            lambda: models.ForeignKey(
                table_name=table_name,
                constraint_name=get_str(row, constraint_column),
                columns=columns,
            )
        )

    return extract


extract_foreign_key = foreign_key_extractor()
_extract_duplicate_foreign_key = foreign_key_extractor("duplicate")


def extract_duplicated_foreign_keys(row: Row) -> models.DuplicatedForeignKeys:
    first = extract_foreign_key(row)
    second = _extract_duplicate_foreign_key(row)
    return _wrap(lambda: models.DuplicatedForeignKeys(foreign_keys=(first, second)))


def extract_stored_function(row: Row) -> models.StoredFunction:
    return _wrap(
        lambda: models.StoredFunction(
            function_name=get_str(row, "function_name"),
            function_signature=get_str(row, "function_signature"),
        )
    )


def extract_sequence_state(row: Row) -> models.SequenceState:
    return _wrap(
        lambda: models.SequenceState(
            sequence_name=get_str(row, "sequence_name"),
            data_type=get_str(row, "data_type"),
            remaining_percentage=get_float(row, "remaining_percentage"),
        )
    )


def extract_any_object(row: Row) -> models.AnyObject:
    return _wrap(
        lambda: models.AnyObject(
            object_name=get_str(row, "object_name"),
            object_type=get_str(row, "object_type"),
        )
    )


EXTRACTORS: dict[str, Extractor] = {
    "BLOATED_INDEXES": extract_index_with_bloat,
    "BLOATED_TABLES": extract_table_with_bloat,
    "DUPLICATED_INDEXES": extract_duplicated_indexes,
    "FOREIGN_KEYS_WITHOUT_INDEX": extract_foreign_key,
    "INDEXES_WITH_NULL_VALUES": extract_index_with_nulls,
    "INTERSECTED_INDEXES": extract_duplicated_indexes,
    "INVALID_INDEXES": extract_index,
    "TABLES_WITH_MISSING_INDEXES": extract_table_with_missing_index,
    "TABLES_WITHOUT_PRIMARY_KEY": extract_table,
    "UNUSED_INDEXES": extract_unused_index,
    "TABLES_WITHOUT_DESCRIPTION": extract_table,
    "COLUMNS_WITHOUT_DESCRIPTION": extract_column,
    "COLUMNS_WITH_JSON_TYPE": extract_column,
    "COLUMNS_WITH_SERIAL_TYPES": extract_column_with_serial_type,
    "FUNCTIONS_WITHOUT_DESCRIPTION": extract_stored_function,
    "INDEXES_WITH_BOOLEAN": extract_index_with_columns,
    "NOT_VALID_CONSTRAINTS": extract_constraint,
    "BTREE_INDEXES_ON_ARRAY_COLUMNS": extract_index_with_columns,
    "SEQUENCE_OVERFLOW": extract_sequence_state,
    "PRIMARY_KEYS_WITH_SERIAL_TYPES": extract_column_with_serial_type,
    "DUPLICATED_FOREIGN_KEYS": extract_duplicated_foreign_keys,
    "INTERSECTED_FOREIGN_KEYS": extract_duplicated_foreign_keys,
    "POSSIBLE_OBJECT_NAME_OVERFLOW": extract_any_object,
    "TABLES_NOT_LINKED_TO_OTHERS": extract_table,
    "FOREIGN_KEYS_WITH_UNMATCHED_COLUMN_TYPE": extract_foreign_key,
    "TABLES_WITH_ZERO_OR_ONE_COLUMN": extract_table_with_columns,
}
