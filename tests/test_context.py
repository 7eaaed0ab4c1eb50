"""Tests for pg_index_health.context — SchemaContext."""

from __future__ import annotations

import pytest

from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import InvariantViolationError


class TestSchemaContext:
    def test_defaults(self):
        ctx = SchemaContext.of_default()
        assert ctx.schema_name == "public"
        assert ctx.bloat_percentage_threshold == 10.0
        assert ctx.remaining_percentage_threshold == 10.0
        assert ctx.is_default_schema

    def test_schema_name_is_lower_cased(self):
        ctx = SchemaContext("Sales", 25, 5)
        assert ctx.schema_name == "sales"
        assert ctx.bloat_percentage_threshold == 25.0
        assert ctx.remaining_percentage_threshold == 5.0
        assert not ctx.is_default_schema

    def test_structural_equality(self):
        assert SchemaContext("Sales") == SchemaContext("sales")
        assert SchemaContext("sales") != SchemaContext("sales", bloat_percentage_threshold=11)

    def test_immutable(self):
        ctx = SchemaContext("sales")
        with pytest.raises(AttributeError):
            ctx.schema_name = "other"

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_schema_rejected(self, name):
        with pytest.raises(InvariantViolationError):
            SchemaContext(name)

    @pytest.mark.parametrize("value", [-0.1, 100.1, 1000])
    def test_bloat_threshold_out_of_range(self, value):
        with pytest.raises(InvariantViolationError, match="0.0 to 100.0 inclusive"):
            SchemaContext("public", bloat_percentage_threshold=value)

    @pytest.mark.parametrize("value", [-1, 101])
    def test_remaining_threshold_out_of_range(self, value):
        with pytest.raises(InvariantViolationError):
            SchemaContext("public", remaining_percentage_threshold=value)

    @pytest.mark.parametrize("value", [0, 0.0, 100, 100.0])
    def test_threshold_bounds_inclusive(self, value):
        ctx = SchemaContext("public", value, value)
        assert ctx.bloat_percentage_threshold == float(value)


class TestEnrichWithSchema:
    def test_default_schema_unchanged(self):
        assert SchemaContext.of_default().enrich_with_schema("orders") == "orders"

    def test_prefix_added(self):
        assert SchemaContext("Sales", 25, 5).enrich_with_schema("orders") == "sales.orders"

    def test_idempotent(self):
        ctx = SchemaContext("Sales", 25, 5)
        once = ctx.enrich_with_schema("orders")
        assert ctx.enrich_with_schema(once) == "sales.orders"

    def test_existing_prefix_case_insensitive(self):
        assert SchemaContext("sales").enrich_with_schema("SALES.orders") == "SALES.orders"

    def test_similar_prefix_still_enriched(self):
        assert SchemaContext("sales").enrich_with_schema("salesorders") == "sales.salesorders"

    def test_blank_object_name_rejected(self):
        with pytest.raises(InvariantViolationError):
            SchemaContext("sales").enrich_with_schema(" ")
