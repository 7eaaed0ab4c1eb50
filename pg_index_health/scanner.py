"""Scanner orchestrator: selects diagnostics, runs them per schema, collects results."""

from __future__ import annotations

import logging
import sys
from collections.abc import Sequence
from datetime import datetime, timezone

from pg_index_health.context import SchemaContext
from pg_index_health.engine import CheckEngine
from pg_index_health.exceptions import PgIndexHealthError
from pg_index_health.exclusions import Exclusions
from pg_index_health.models import CheckResult, ScanReport
from pg_index_health.registry import CheckKind

logger = logging.getLogger(__name__)


def run_scan(
    engine: CheckEngine,
    contexts: Sequence[SchemaContext] | None = None,
    exclusions: Exclusions | None = None,
    kind: CheckKind | None = None,
    exclude: set[str] | None = None,
    include_only: set[str] | None = None,
    verbose: bool = False,
) -> ScanReport:
    """Execute the selected diagnostics for every schema context.

    A failing diagnostic is recorded in its CheckResult and the scan moves
    on; the single-diagnostic API on CheckEngine raises instead.

    Args:
        engine: Engine bound to the cluster to scan.
        contexts: Schema contexts; defaults to the public schema.
        exclusions: Known-acceptable objects, applied to every diagnostic.
        kind: Optional check kind filter.
        exclude: Optional set of diagnostic identifiers to exclude.
        include_only: Optional set of identifiers to include (whitelist mode).
        verbose: Print progress to stderr.

    Returns:
        ScanReport with one result per diagnostic and schema.
    """
    contexts = list(contexts or [SchemaContext.of_default()])
    exclusions = exclusions or Exclusions()
    report = ScanReport(
        timestamp=datetime.now(timezone.utc),
        hosts=sorted(str(node) for node in engine.cluster.nodes),
        schemas=[c.schema_name for c in contexts],
    )

    descriptors = engine.registry.select(kind=kind, exclude=exclude, include_only=include_only)
    total = len(descriptors) * len(contexts)

    if verbose:
        print(
            f"Running {len(descriptors)} diagnostics on {len(contexts)} schema(s) "
            f"across {len(report.hosts)} host(s)...",
            file=sys.stderr,
        )

    i = 0
    for context in contexts:
        predicate = exclusions.to_predicate(context)
        for descriptor in descriptors:
            i += 1
            if verbose:
                print(
                    f"  [{i}/{total}] {context.schema_name}/{descriptor.identifier}: "
                    f"{descriptor.description}",
                    file=sys.stderr,
                )

            result = CheckResult(
                diagnostic=descriptor.identifier,
                kind=descriptor.kind.value,
                topology=descriptor.topology.value,
                schema_name=context.schema_name,
                description=descriptor.description,
            )

            try:
                result.findings = engine.check(descriptor.identifier, context, predicate)
            except PgIndexHealthError as exc:
                result.error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Diagnostic %s failed on schema %s: %s",
                    descriptor.identifier,
                    context.schema_name,
                    result.error,
                )

            report.results.append(result)

    if verbose:
        print(
            f"Done. {report.checks_with_findings} with findings, "
            f"{report.checks_passed} passed, "
            f"{report.checks_errored} errors.",
            file=sys.stderr,
        )

    return report
