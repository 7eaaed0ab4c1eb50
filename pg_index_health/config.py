"""Configuration loading and management for pg-index-health."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pg_index_health.context import (
    DEFAULT_BLOAT_PERCENTAGE_THRESHOLD,
    DEFAULT_REMAINING_PERCENTAGE_THRESHOLD,
    DEFAULT_SCHEMA_NAME,
    SchemaContext,
)
from pg_index_health.exceptions import InvariantViolationError
from pg_index_health.exclusions import Exclusions
from pg_index_health.registry import DiagnosticRegistry

CONFIG_FILE_NAME = "pg-index-health.yaml"
CHECK_KINDS = ("static", "runtime")


@dataclass
class CheckConfig:
    """Configuration for which diagnostics to include/exclude."""

    exclude: set[str] = field(default_factory=set)
    include_only: set[str] | None = None  # None = no whitelist, run all minus exclude


@dataclass
class ConnectionConfig:
    urls: list[str] = field(default_factory=list)
    user: str | None = None
    password: str | None = None


@dataclass
class Config:
    """Complete configuration for pg-index-health."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    schemas: list[str] = field(default_factory=lambda: [DEFAULT_SCHEMA_NAME])
    bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD
    global_checks: CheckConfig = field(default_factory=CheckConfig)
    kind_checks: dict[str, CheckConfig] = field(default_factory=dict)
    exclusions: Exclusions = field(default_factory=Exclusions)

    def get_check_config(self, kind: str | None) -> CheckConfig:
        """Get merged check config for a specific check kind.

        Kind-specific settings are merged with global settings:
        - exclude: union of global and kind-specific excludes
        - include_only: kind-specific overrides global if set
        """
        global_cfg = self.global_checks
        kind_cfg = self.kind_checks.get(kind or "", CheckConfig())

        merged_exclude = global_cfg.exclude | kind_cfg.exclude
        merged_include_only = (
            kind_cfg.include_only if kind_cfg.include_only is not None else global_cfg.include_only
        )

        return CheckConfig(exclude=merged_exclude, include_only=merged_include_only)

    def schema_contexts(self) -> list[SchemaContext]:
        return [
            SchemaContext(
                schema_name=schema,
                bloat_percentage_threshold=self.bloat_percentage_threshold,
                remaining_percentage_threshold=self.remaining_percentage_threshold,
            )
            for schema in self.schemas
        ]


def find_config_file() -> str | None:
    """Search for pg-index-health.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILE_NAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILE_NAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return _parse_config(data)


def _as_list(value) -> list:
    """A YAML scalar stands for a one-element list."""
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        return [value]
    return list(value)


def _names(values) -> set[str]:
    return {str(v).strip().upper() for v in _as_list(values) if str(v).strip()}


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    config = Config()

    if "connection" in data:
        conn = data["connection"] or {}
        config.connection = ConnectionConfig(
            urls=[str(u) for u in _as_list(conn.get("urls"))],
            user=conn.get("user"),
            password=conn.get("password"),
        )

    if data.get("schemas"):
        config.schemas = [str(s) for s in _as_list(data["schemas"])]

    thresholds = data.get("thresholds") or {}
    config.bloat_percentage_threshold = _number(
        thresholds, "bloat_percentage", DEFAULT_BLOAT_PERCENTAGE_THRESHOLD, float
    )
    config.remaining_percentage_threshold = _number(
        thresholds, "remaining_percentage", DEFAULT_REMAINING_PERCENTAGE_THRESHOLD, float
    )

    if "checks" in data:
        config.global_checks = _parse_check_config(data["checks"])

    for kind in CHECK_KINDS:
        if kind in data and "checks" in (data[kind] or {}):
            config.kind_checks[kind] = _parse_check_config(data[kind]["checks"])

    if "exclusions" in data:
        config.exclusions = _parse_exclusions(data["exclusions"] or {})

    return config


def _parse_check_config(data: dict) -> CheckConfig:
    """Parse check configuration section."""
    data = data or {}
    exclude = _names(data.get("exclude", []))

    include_only = None
    if data.get("include_only") is not None:
        include_only = _names(data["include_only"])

    return CheckConfig(exclude=exclude, include_only=include_only)


def _number(data: dict, key: str, default, kind):
    value = data.get(key, default)
    if isinstance(value, bool):
        raise InvariantViolationError(f"{key} must be a number, got {value!r}")
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise InvariantViolationError(f"{key} must be a number, got {value!r}") from None


def _parse_exclusions(data: dict) -> Exclusions:
    """Parse the exclusions section; raises InvariantViolationError on bad values."""
    return Exclusions(
        tables={str(v) for v in _as_list(data.get("tables"))},
        indexes={str(v) for v in _as_list(data.get("indexes"))},
        sequences={str(v) for v in _as_list(data.get("sequences"))},
        constraints={str(v) for v in _as_list(data.get("constraints"))},
        columns={str(v) for v in _as_list(data.get("columns"))},
        index_size_threshold=_number(data, "index_size_threshold", 0, int),
        table_size_threshold=_number(data, "table_size_threshold", 0, int),
        bloat_size_threshold=_number(data, "bloat_size_threshold", 0, int),
        bloat_percentage_threshold=_number(data, "bloat_percentage_threshold", 0.0, float),
    )


def merge_cli_with_config(
    config: Config,
    kind: str | None,
    cli_exclude: set[str] | None = None,
    cli_include_only: set[str] | None = None,
) -> CheckConfig:
    """Merge CLI arguments with config file settings.

    CLI arguments take precedence over config file.

    Args:
        config: Loaded configuration.
        kind: Check kind being run ("static", "runtime") or None for all.
        cli_exclude: Diagnostics to exclude (from --exclude flag).
        cli_include_only: Diagnostics to include only (from --include-only flag).

    Returns:
        CheckConfig with merged settings.
    """
    check_cfg = config.get_check_config(kind)

    # CLI exclude adds to config exclude
    if cli_exclude:
        check_cfg = CheckConfig(
            exclude=check_cfg.exclude | _names(cli_exclude),
            include_only=check_cfg.include_only,
        )

    # CLI include_only completely overrides config
    if cli_include_only is not None:
        check_cfg = CheckConfig(
            exclude=check_cfg.exclude,
            include_only=_names(cli_include_only),
        )

    return check_cfg


def select_diagnostics(
    config: Config,
    registry: DiagnosticRegistry,
    kind: str | None,
    cli_exclude: set[str] | None = None,
    cli_include_only: set[str] | None = None,
) -> set[str]:
    """Identifiers of the diagnostics a scan should run.

    Each diagnostic is judged against the check config of its own kind, so
    the ``static:`` and ``runtime:`` sections apply even when every kind is
    scanned. The kind filter is ignored only for a CLI include-only list.

    Args:
        config: Loaded configuration.
        registry: Catalog to select from.
        kind: "static", "runtime", or None for all kinds.
        cli_exclude: Diagnostics to exclude (from --exclude flag).
        cli_include_only: Diagnostics to include only (from --include-only flag).

    Returns:
        Set of selected diagnostic identifiers.
    """
    selected = set()
    for descriptor in registry:
        if cli_include_only is None and kind is not None and descriptor.kind.value != kind:
            continue
        check_cfg = merge_cli_with_config(
            config, descriptor.kind.value, cli_exclude, cli_include_only
        )
        if descriptor.identifier in check_cfg.exclude:
            continue
        if check_cfg.include_only is None or descriptor.identifier in check_cfg.include_only:
            selected.add(descriptor.identifier)
    return selected
