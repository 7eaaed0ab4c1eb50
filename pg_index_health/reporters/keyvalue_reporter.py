"""Key-value report renderer: one ``diagnostic:count`` line per diagnostic.

Counts are summed over schemas, so the output has one line per diagnostic
regardless of how many schemas were scanned. Diagnostics that failed are
reported with ``error`` instead of a count.
"""

from __future__ import annotations

from pg_index_health.models import ScanReport


def render(report: ScanReport) -> str:
    counts: dict[str, int] = {}
    errors: set[str] = set()
    for result in report.results:
        key = result.diagnostic.lower()
        counts[key] = counts.get(key, 0) + len(result.findings)
        if result.error:
            errors.add(key)

    lines = [f"{key}:{'error' if key in errors else count}" for key, count in counts.items()]
    return "\n".join(lines) + ("\n" if lines else "")
