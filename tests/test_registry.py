"""Tests for pg_index_health.registry — catalog invariants and filtering."""

from __future__ import annotations

import pytest

from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import InvariantViolationError, UnknownDiagnosticError
from pg_index_health.registry import (
    STANDARD_REGISTRY,
    CheckKind,
    DiagnosticDescriptor,
    DiagnosticRegistry,
    ParamBinder,
    Topology,
    bind_parameters,
    count_placeholders,
)


class TestStandardRegistry:
    def test_total_count(self):
        assert len(STANDARD_REGISTRY) == 26

    def test_across_cluster_is_always_runtime(self):
        for descriptor in STANDARD_REGISTRY:
            if descriptor.topology is Topology.ACROSS_CLUSTER:
                assert descriptor.kind is CheckKind.RUNTIME, descriptor.identifier

    def test_across_cluster_members(self):
        across = STANDARD_REGISTRY.select(topology=Topology.ACROSS_CLUSTER)
        assert [d.identifier for d in across] == ["TABLES_WITH_MISSING_INDEXES", "UNUSED_INDEXES"]

    def test_placeholders_match_binder(self):
        for descriptor in STANDARD_REGISTRY:
            assert count_placeholders(descriptor.query) == descriptor.binder.arity

    def test_all_have_descriptions(self):
        for descriptor in STANDARD_REGISTRY:
            assert descriptor.description, descriptor.identifier

    def test_threshold_binders(self):
        assert STANDARD_REGISTRY.descriptor_for("BLOATED_INDEXES").binder is ParamBinder.SCHEMA_AND_BLOAT
        assert STANDARD_REGISTRY.descriptor_for("BLOATED_TABLES").binder is ParamBinder.SCHEMA_AND_BLOAT
        assert (
            STANDARD_REGISTRY.descriptor_for("SEQUENCE_OVERFLOW").binder
            is ParamBinder.SCHEMA_AND_REMAINING
        )

    def test_lookup_case_insensitive(self):
        assert STANDARD_REGISTRY.descriptor_for("unused_indexes").identifier == "UNUSED_INDEXES"
        assert "invalid_indexes" in STANDARD_REGISTRY

    def test_unknown_diagnostic(self):
        with pytest.raises(UnknownDiagnosticError):
            STANDARD_REGISTRY.descriptor_for("NO_SUCH_CHECK")

    def test_unknown_is_lookup_error(self):
        with pytest.raises(LookupError):
            STANDARD_REGISTRY.descriptor_for("NO_SUCH_CHECK")


class TestSelect:
    def test_kind_filter(self):
        for descriptor in STANDARD_REGISTRY.select(kind=CheckKind.STATIC):
            assert descriptor.kind is CheckKind.STATIC

    def test_exclude(self):
        selected = STANDARD_REGISTRY.select(exclude={"unused_indexes"})
        assert "UNUSED_INDEXES" not in [d.identifier for d in selected]
        assert len(selected) == 25

    def test_include_only_overrides_kind(self):
        selected = STANDARD_REGISTRY.select(kind=CheckKind.STATIC, include_only={"UNUSED_INDEXES"})
        assert [d.identifier for d in selected] == ["UNUSED_INDEXES"]

    def test_exclude_beats_include_only(self):
        selected = STANDARD_REGISTRY.select(
            include_only={"UNUSED_INDEXES"}, exclude={"UNUSED_INDEXES"}
        )
        assert selected == []

    def test_catalog_order(self):
        identifiers = [d.identifier for d in STANDARD_REGISTRY.select()]
        assert identifiers == STANDARD_REGISTRY.identifiers


class TestDescriptor:
    def test_across_cluster_static_rejected(self):
        with pytest.raises(InvariantViolationError, match="runtime check is required"):
            DiagnosticDescriptor(
                "X", Topology.ACROSS_CLUSTER, CheckKind.STATIC, "SELECT %s", ParamBinder.SCHEMA
            )

    def test_placeholder_mismatch_rejected(self):
        with pytest.raises(InvariantViolationError, match="placeholder"):
            DiagnosticDescriptor(
                "X", Topology.PRIMARY_ONLY, CheckKind.STATIC, "SELECT 1", ParamBinder.SCHEMA
            )

    def test_escaped_percent_not_counted(self):
        assert count_placeholders("SELECT '%%s' LIKE %s") == 1

    def test_identifier_upper_cased(self):
        descriptor = DiagnosticDescriptor(
            "my_check", Topology.PRIMARY_ONLY, CheckKind.STATIC, "SELECT 1", ParamBinder.NONE
        )
        assert descriptor.identifier == "MY_CHECK"
        assert descriptor.diagnostic_name == "my_check"

    def test_blank_query_rejected(self):
        with pytest.raises(InvariantViolationError):
            DiagnosticDescriptor("X", Topology.PRIMARY_ONLY, CheckKind.STATIC, " ", ParamBinder.NONE)

    def test_duplicate_identifiers_rejected(self):
        descriptor = DiagnosticDescriptor(
            "X", Topology.PRIMARY_ONLY, CheckKind.STATIC, "SELECT 1", ParamBinder.NONE
        )
        with pytest.raises(InvariantViolationError):
            DiagnosticRegistry([descriptor, descriptor])


class TestBindParameters:
    ctx = SchemaContext("Sales", 25, 5)

    def _descriptor(self, binder, query):
        return DiagnosticDescriptor("X", Topology.PRIMARY_ONLY, CheckKind.RUNTIME, query, binder)

    def test_none(self):
        assert bind_parameters(self._descriptor(ParamBinder.NONE, "SELECT 1"), self.ctx) == ()

    def test_schema(self):
        descriptor = self._descriptor(ParamBinder.SCHEMA, "SELECT %s")
        assert bind_parameters(descriptor, self.ctx) == ("sales",)

    def test_schema_and_bloat(self):
        descriptor = self._descriptor(ParamBinder.SCHEMA_AND_BLOAT, "SELECT %s, %s")
        assert bind_parameters(descriptor, self.ctx) == ("sales", 25.0)

    def test_schema_and_remaining(self):
        descriptor = self._descriptor(ParamBinder.SCHEMA_AND_REMAINING, "SELECT %s, %s")
        assert bind_parameters(descriptor, self.ctx) == ("sales", 5.0)
