"""Per-invocation schema context: target schema plus runtime thresholds."""

from __future__ import annotations

from dataclasses import dataclass

from pg_index_health.exceptions import InvariantViolationError

DEFAULT_SCHEMA_NAME = "public"
DEFAULT_BLOAT_PERCENTAGE_THRESHOLD = 10.0
DEFAULT_REMAINING_PERCENTAGE_THRESHOLD = 10.0


def validate_percentage(value: float, argument_name: str) -> float:
    """Return ``value`` as float, rejecting anything outside 0..100 inclusive."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvariantViolationError(f"{argument_name} must be a number")
    if value < 0.0 or value > 100.0:
        raise InvariantViolationError(
            f"{argument_name} should be in the range from 0.0 to 100.0 inclusive"
        )
    return float(value)


@dataclass(frozen=True)
class SchemaContext:
    """Which schema a diagnostic runs against, and the thresholds it uses.

    The schema name is stored stripped and lower-cased, so two contexts built
    from ``"Sales"`` and ``"sales"`` compare equal.
    """

    schema_name: str = DEFAULT_SCHEMA_NAME
    bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD

    def __post_init__(self):
        if not isinstance(self.schema_name, str) or not self.schema_name.strip():
            raise InvariantViolationError("schema_name cannot be blank")
        object.__setattr__(self, "schema_name", self.schema_name.strip().lower())
        object.__setattr__(
            self,
            "bloat_percentage_threshold",
            validate_percentage(self.bloat_percentage_threshold, "bloat_percentage_threshold"),
        )
        object.__setattr__(
            self,
            "remaining_percentage_threshold",
            validate_percentage(
                self.remaining_percentage_threshold, "remaining_percentage_threshold"
            ),
        )

    @classmethod
    def of_default(cls) -> SchemaContext:
        return cls()

    @classmethod
    def of(cls, schema_name: str, **thresholds) -> SchemaContext:
        return cls(schema_name=schema_name, **thresholds)

    @property
    def is_default_schema(self) -> bool:
        return self.schema_name == DEFAULT_SCHEMA_NAME

    def enrich_with_schema(self, object_name: str) -> str:
        """Qualify ``object_name`` with this context's schema.

        Names in the default schema are returned unchanged. Names that already
        carry the schema prefix (compared case-insensitively) are not prefixed
        again, so the operation is idempotent.
        """
        if not isinstance(object_name, str) or not object_name.strip():
            raise InvariantViolationError("object_name cannot be blank")
        if self.is_default_schema:
            return object_name
        prefix = self.schema_name + "."
        if object_name.lower().startswith(prefix):
            return object_name
        return prefix + object_name
