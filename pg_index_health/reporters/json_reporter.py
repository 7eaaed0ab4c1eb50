"""JSON report renderer."""

from __future__ import annotations

import json

from pg_index_health import __version__
from pg_index_health.models import ScanReport


def render(report: ScanReport) -> str:
    """Render a ScanReport as a JSON string."""
    data = {
        "meta": {
            "tool": "pg-index-health",
            "version": __version__,
            "timestamp": report.timestamp.isoformat(),
            "hosts": report.hosts,
            "schemas": report.schemas,
        },
        "summary": {
            "total_checks": report.checks_total,
            "checks_passed": report.checks_passed,
            "checks_with_findings": report.checks_with_findings,
            "errors": report.checks_errored,
            "findings": len(report.findings),
        },
        "results": [],
    }

    for result in report.results:
        data["results"].append({
            "diagnostic": result.diagnostic,
            "kind": result.kind,
            "topology": result.topology,
            "schema": result.schema_name,
            "description": result.description,
            "passed": result.passed,
            "error": result.error,
            "findings": [f.to_dict() for f in result.findings],
        })

    return json.dumps(data, indent=2, default=str)
