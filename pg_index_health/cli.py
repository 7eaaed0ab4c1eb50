"""CLI entry point for pg-index-health."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime

from pg_index_health import __version__

# File extensions per output format
_FORMAT_EXT = {"json": ".json", "keyvalue": ".txt"}

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-index-health",
        description="Diagnose index and schema health across a PostgreSQL cluster.",
    )
    parser.add_argument("--version", action="version", version=f"pg-index-health {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- list-checks --
    list_parser = subparsers.add_parser("list-checks", help="List all available diagnostics")
    list_parser.add_argument(
        "--kind",
        choices=["static", "runtime", "all"],
        default="all",
        help="Filter diagnostics by kind (default: all)",
    )
    list_parser.add_argument(
        "--topology",
        choices=["primary_only", "across_cluster", "all"],
        default="all",
        help="Filter diagnostics by execution topology (default: all)",
    )

    # -- check --
    check_parser = subparsers.add_parser("check", help="Run a single diagnostic")
    check_parser.add_argument("diagnostic", help="Diagnostic identifier, e.g. UNUSED_INDEXES")
    _add_connection_args(check_parser)
    _add_schema_args(check_parser)
    check_parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # -- scan --
    scan_parser = subparsers.add_parser("scan", help="Run all selected diagnostics")
    _add_connection_args(scan_parser)
    _add_schema_args(scan_parser)
    scan_parser.add_argument(
        "--kind",
        choices=["static", "runtime", "all"],
        default="all",
        help="Run only diagnostics of this kind (default: all)",
    )
    scan_parser.add_argument(
        "--exclude",
        help="Comma-separated list of diagnostics to skip",
    )
    scan_parser.add_argument(
        "--include-only",
        help="Comma-separated list of diagnostics to run (overrides --kind)",
    )
    grp = scan_parser.add_argument_group("output")
    grp.add_argument(
        "--format",
        "-f",
        choices=["json", "keyvalue"],
        default="keyvalue",
        help="Report format (default: keyvalue)",
    )
    grp.add_argument("--output", "-o", help="Output file path (default: stdout)")
    scan_parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")

    return parser


def _add_connection_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("connection")
    grp.add_argument(
        "--url",
        action="append",
        dest="urls",
        help="PostgreSQL URL, multi-host allowed (postgresql://h1:5432,h2:5432/db); repeatable",
    )
    grp.add_argument("--user", "-U", default=None, help="Database user")
    grp.add_argument("--password", "-W", default=None, help="Database password")
    grp.add_argument("--config", "-c", default=None, help="Path to pg-index-health.yaml")


def _add_schema_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("schema")
    grp.add_argument(
        "--schema",
        "-s",
        action="append",
        dest="schemas",
        help="Schema to check; repeatable (default: public)",
    )
    grp.add_argument("--bloat-threshold", type=float, default=None, help="Bloat percentage 0-100")
    grp.add_argument(
        "--remaining-threshold", type=float, default=None, help="Remaining sequence percentage 0-100"
    )


def main(argv: list[str] | None = None):
    parser = build_parser()
    raw_args = argv if argv is not None else sys.argv[1:]
    if not raw_args:
        parser.print_help()
        sys.exit(1)

    args = parser.parse_args(raw_args)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING,
        format=_LOG_FORMAT,
    )

    if args.command == "list-checks":
        _cmd_list_checks(args)
    elif args.command == "check":
        _cmd_check(args)
    elif args.command == "scan":
        _cmd_scan(args)


def _cmd_list_checks(args):
    from pg_index_health.registry import STANDARD_REGISTRY, CheckKind, Topology

    kind = CheckKind(args.kind) if args.kind != "all" else None
    topology = Topology(args.topology) if args.topology != "all" else None
    descriptors = STANDARD_REGISTRY.select(kind=kind, topology=topology)

    if not descriptors:
        print("No diagnostics found.")
        return

    current_kind = None
    for descriptor in sorted(descriptors, key=lambda d: (d.kind.value, d.identifier)):
        if descriptor.kind != current_kind:
            current_kind = descriptor.kind
            print(f"\n[{current_kind.value}]")
        tag = "[cluster]" if descriptor.topology is Topology.ACROSS_CLUSTER else ""
        print(f"  {descriptor.identifier:40s} {tag:9s} {descriptor.description}")


def _load_config(args):
    from pg_index_health.config import load_config
    from pg_index_health.exceptions import InvariantViolationError

    try:
        return load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except InvariantViolationError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)


def _split_names(value: str | None) -> set[str] | None:
    """Parse a comma-separated CLI list; None when the flag was not given."""
    if value is None:
        return None
    return {item.strip() for item in value.split(",") if item.strip()}


def _schema_contexts(args, config):
    from pg_index_health.context import SchemaContext
    from pg_index_health.exceptions import InvariantViolationError

    bloat = args.bloat_threshold
    if bloat is None:
        bloat = config.bloat_percentage_threshold
    remaining = args.remaining_threshold
    if remaining is None:
        remaining = config.remaining_percentage_threshold
    try:
        return [
            SchemaContext(
                schema_name=schema,
                bloat_percentage_threshold=bloat,
                remaining_percentage_threshold=remaining,
            )
            for schema in (args.schemas or config.schemas)
        ]
    except InvariantViolationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


def _open_cluster(args, config):
    import psycopg2
    from pg_index_health.cluster import ClusterConnectionFactory
    from pg_index_health.exceptions import PgIndexHealthError
    from pg_index_health.hosts import ConnectionCredentials

    urls = args.urls or config.connection.urls
    user = args.user or config.connection.user or os.environ.get("PGUSER")
    password = args.password or config.connection.password or os.environ.get("PGPASSWORD", "")
    if not urls:
        print("Error: no connection URL given. Use --url or the config file.", file=sys.stderr)
        sys.exit(1)

    try:
        credentials = ConnectionCredentials(urls=tuple(urls), user=user or "", password=password)
        return ClusterConnectionFactory().create(credentials)
    except psycopg2.OperationalError as e:
        error_msg = str(e).strip()
        print("Error: Could not connect to database.", file=sys.stderr)
        print(f"       {error_msg}", file=sys.stderr)
        if "no password supplied" in error_msg:
            print(
                "\nHint: Use --password to provide a password, or set PGPASSWORD environment variable.",
                file=sys.stderr,
            )
        elif "does not exist" in error_msg:
            print("\nHint: Check that the database name in the URL is correct.", file=sys.stderr)
        sys.exit(1)
    except PgIndexHealthError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _cmd_check(args):
    from pg_index_health.engine import CheckEngine
    from pg_index_health.exceptions import PgIndexHealthError
    from pg_index_health.registry import STANDARD_REGISTRY

    if args.diagnostic not in STANDARD_REGISTRY:
        print(f"Error: unknown diagnostic: {args.diagnostic}", file=sys.stderr)
        sys.exit(2)

    config = _load_config(args)
    contexts = _schema_contexts(args, config)
    cluster = _open_cluster(args, config)
    try:
        engine = CheckEngine(cluster)
        findings = []
        for context in contexts:
            predicate = config.exclusions.to_predicate(context)
            findings.extend(engine.check(args.diagnostic, context, predicate))
    except PgIndexHealthError as e:
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        cluster.close()

    print(json.dumps([f.to_dict() for f in findings], indent=2, default=str))


def _cmd_scan(args):
    from pg_index_health.config import select_diagnostics
    from pg_index_health.engine import CheckEngine
    from pg_index_health.registry import STANDARD_REGISTRY
    from pg_index_health.scanner import run_scan

    config = _load_config(args)
    contexts = _schema_contexts(args, config)
    kind = args.kind if args.kind != "all" else None
    selected = select_diagnostics(
        config,
        STANDARD_REGISTRY,
        kind,
        cli_exclude=_split_names(args.exclude),
        cli_include_only=_split_names(args.include_only),
    )

    cluster = _open_cluster(args, config)
    try:
        report = run_scan(
            CheckEngine(cluster),
            contexts,
            exclusions=config.exclusions,
            include_only=selected,
            verbose=args.verbose,
        )
    finally:
        cluster.close()

    output = _render_report(report, args.format)
    _write_output(output, args)


def _write_output(output: str, args):
    """Write report to file (with timestamped name) or stdout."""
    if not args.output:
        sys.stdout.write(output)
        return

    path = _make_output_path(args.output, args.format)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(output)
    print(f"Report written to {path}", file=sys.stderr)


def _make_output_path(user_path: str, fmt: str) -> str:
    """Insert a timestamp into the output filename.

    If the user provides a path like ``health.json``, the result is
    ``health_20260127_131504.json``.  If they provide a bare directory,
    the file is placed there with an auto-generated name.
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")

    if os.path.isdir(user_path):
        return os.path.join(user_path, f"pg-index-health_{ts}{ext}")

    base, existing_ext = os.path.splitext(user_path)
    if not existing_ext:
        existing_ext = ext
    return f"{base}_{ts}{existing_ext}"


def _render_report(report, fmt: str) -> str:
    if fmt == "json":
        from pg_index_health.reporters.json_reporter import render
    elif fmt == "keyvalue":
        from pg_index_health.reporters.keyvalue_reporter import render
    else:
        raise ValueError(f"Unknown format: {fmt}")
    return render(report)
