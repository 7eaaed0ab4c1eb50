"""Check execution engine: route, execute, extract, filter."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping

from pg_index_health.cluster import ClusterConnection
from pg_index_health.connection import Node
from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import UnknownDiagnosticError
from pg_index_health.extractors import EXTRACTORS, Extractor
from pg_index_health.models import Finding
from pg_index_health.predicates import accept_all
from pg_index_health.registry import (
    STANDARD_REGISTRY,
    DiagnosticDescriptor,
    DiagnosticRegistry,
    Topology,
    bind_parameters,
)

logger = logging.getLogger(__name__)

ExclusionPredicate = Callable[[Finding], bool]


class CheckEngine:
    """Runs registered diagnostics against a cluster.

    PRIMARY_ONLY diagnostics run on the node that is primary at call time.
    ACROSS_CLUSTER diagnostics run on every node and the per-node results are
    concatenated without de-duplication, since each node keeps its own
    statistics. A failure on any node aborts the whole check; there are no
    partial results.

    The engine does no threading of its own and sets no timeouts. Callers
    that want parallelism run several checks concurrently.
    """

    def __init__(
        self,
        cluster: ClusterConnection,
        registry: DiagnosticRegistry = STANDARD_REGISTRY,
        extractors: Mapping[str, Extractor] = EXTRACTORS,
    ):
        self.cluster = cluster
        self.registry = registry
        self.extractors = extractors

    def _extractor_for(self, descriptor: DiagnosticDescriptor) -> Extractor:
        try:
            return self.extractors[descriptor.identifier]
        except KeyError:
            raise UnknownDiagnosticError(
                f"No extractor registered for diagnostic {descriptor.identifier}"
            ) from None

    def _targets(self, descriptor: DiagnosticDescriptor) -> list[Node]:
        if descriptor.topology is Topology.ACROSS_CLUSTER:
            return list(self.cluster.nodes)
        return [self.cluster.current_primary()]

    def _run_on_node(
        self,
        node: Node,
        descriptor: DiagnosticDescriptor,
        params: tuple,
        extractor: Extractor,
        predicate: ExclusionPredicate,
    ) -> list[Finding]:
        rows = node.execute(descriptor.query, params)
        findings = [extractor(row) for row in rows]
        kept = [f for f in findings if predicate(f)]
        logger.debug(
            "%s on %s: %d row(s), %d kept", descriptor.identifier, node, len(rows), len(kept)
        )
        return kept

    def check(
        self,
        diagnostic_id: str,
        context: SchemaContext | None = None,
        exclusions: ExclusionPredicate | None = None,
    ) -> list[Finding]:
        """Run one diagnostic for one schema.

        Args:
            diagnostic_id: Registered identifier, case-insensitive.
            context: Schema and thresholds; defaults to the public schema.
            exclusions: Keep-predicate applied to every finding; defaults to
                accepting everything.

        Returns:
            Findings in database row order; for cluster-wide diagnostics,
            node lists are concatenated in node order.
        """
        descriptor = self.registry.descriptor_for(diagnostic_id)
        extractor = self._extractor_for(descriptor)
        context = context or SchemaContext.of_default()
        predicate = exclusions or accept_all()
        params = bind_parameters(descriptor, context)

        findings = []
        for node in self._targets(descriptor):
            findings.extend(self._run_on_node(node, descriptor, params, extractor, predicate))
        return findings

    def check_many(
        self,
        diagnostic_id: str,
        contexts: Iterable[SchemaContext],
        exclusions: ExclusionPredicate | None = None,
    ) -> list[Finding]:
        """Run one diagnostic for several schemas, concatenated in the given order."""
        findings = []
        for context in contexts:
            findings.extend(self.check(diagnostic_id, context, exclusions))
        return findings
