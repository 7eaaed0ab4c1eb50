"""Tests for pg_index_health.cli — argument parsing, listing and output paths."""

from __future__ import annotations

import re

import pytest

from conftest import make_node
from pg_index_health import cli
from pg_index_health.cli import _make_output_path, build_parser, main
from pg_index_health.cluster import ClusterConnection


class TestBuildParser:
    def test_subcommands_exist(self):
        parser = build_parser()
        assert parser.parse_args(["list-checks"]).command == "list-checks"
        assert parser.parse_args(["check", "UNUSED_INDEXES"]).command == "check"
        assert parser.parse_args(["scan"]).command == "scan"

    def test_scan_defaults(self):
        args = build_parser().parse_args(["scan"])
        assert args.format == "keyvalue"
        assert args.kind == "all"
        assert args.output is None
        assert args.urls is None
        assert args.schemas is None

    def test_repeatable_url_and_schema(self):
        args = build_parser().parse_args([
            "scan",
            "--url", "postgresql://h1/app",
            "--url", "postgresql://h2/app",
            "-s", "public",
            "-s", "billing",
        ])
        assert args.urls == ["postgresql://h1/app", "postgresql://h2/app"]
        assert args.schemas == ["public", "billing"]

    def test_invalid_format_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["scan", "--format", "html"])


class TestMain:
    def test_no_args_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1

    def test_unknown_diagnostic_exits_2(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["check", "NO_SUCH_CHECK"])
        assert exc_info.value.code == 2
        assert "unknown diagnostic" in capsys.readouterr().err

    def test_missing_url_exits(self, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        with pytest.raises(SystemExit) as exc_info:
            main(["scan"])
        assert exc_info.value.code == 1
        assert "no connection URL" in capsys.readouterr().err

    def test_invalid_threshold_exits_2(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        with pytest.raises(SystemExit) as exc_info:
            main(["scan", "--bloat-threshold", "150"])
        assert exc_info.value.code == 2

    def test_missing_config_file_exits(self):
        with pytest.raises(SystemExit) as exc_info:
            main(["scan", "--config", "/nonexistent/pg-index-health.yaml"])
        assert exc_info.value.code == 1


class TestListChecks:
    def test_lists_all(self, capsys):
        main(["list-checks"])
        out = capsys.readouterr().out
        assert "[static]" in out
        assert "[runtime]" in out
        assert "INVALID_INDEXES" in out
        assert "UNUSED_INDEXES" in out

    def test_cluster_tag(self, capsys):
        main(["list-checks", "--topology", "across_cluster"])
        out = capsys.readouterr().out
        lines = [line for line in out.splitlines() if line.startswith("  ")]
        assert len(lines) == 2
        assert all("[cluster]" in line for line in lines)

    def test_kind_filter(self, capsys):
        main(["list-checks", "--kind", "static"])
        out = capsys.readouterr().out
        assert "[runtime]" not in out
        assert "BLOATED_INDEXES" not in out


class TestScanCommand:
    def test_scan_keyvalue_to_stdout(self, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        node = make_node(rows={"TABLES_WITHOUT_PRIMARY_KEY": [{"table_name": "audit_log", "table_size": 0}]})
        monkeypatch.setattr(cli, "_open_cluster", lambda args, config: ClusterConnection.of(node))

        main(["scan", "--include-only", "tables_without_primary_key,invalid_indexes"])

        out = capsys.readouterr().out
        assert out == "invalid_indexes:0\ntables_without_primary_key:1\n"
        assert node.connection.closed

    def test_scan_json_to_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        node = make_node()
        monkeypatch.setattr(cli, "_open_cluster", lambda args, config: ClusterConnection.of(node))

        main(["scan", "--include-only", "INVALID_INDEXES", "--format", "json", "-o", str(tmp_path / "health")])

        written = list(tmp_path.glob("health_*.json"))
        assert len(written) == 1
        assert '"INVALID_INDEXES"' in written[0].read_text()

    def test_exclude_list_tolerates_spaces(self, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        node = make_node()
        monkeypatch.setattr(cli, "_open_cluster", lambda args, config: ClusterConnection.of(node))

        main(["scan", "--kind", "static", "--exclude", "invalid_indexes, duplicated_indexes ,"])

        keys = [line.split(":")[0] for line in capsys.readouterr().out.splitlines()]
        assert "invalid_indexes" not in keys
        assert "duplicated_indexes" not in keys
        assert "tables_without_primary_key" in keys

    def test_kind_section_applies_to_full_scan(self, capsys, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / "pg-index-health.yaml").write_text(
            "static:\n  checks:\n    exclude: [TABLES_WITHOUT_DESCRIPTION]\n"
        )
        node = make_node()
        monkeypatch.setattr(cli, "_open_cluster", lambda args, config: ClusterConnection.of(node))

        main(["scan"])

        keys = [line.split(":")[0] for line in capsys.readouterr().out.splitlines()]
        assert "tables_without_description" not in keys
        assert "tables_without_primary_key" in keys
        assert "unused_indexes" in keys

    def test_invalid_exclusions_in_config_exit_2(self, capsys, tmp_path):
        config_path = tmp_path / "pg-index-health.yaml"
        config_path.write_text("exclusions:\n  bloat_percentage_threshold: 150\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["scan", "--config", str(config_path)])
        assert exc_info.value.code == 2
        assert "invalid configuration" in capsys.readouterr().err


class TestMakeOutputPath:
    def test_inserts_timestamp(self):
        path = _make_output_path("health.json", "json")
        assert path.startswith("health_")
        assert path.endswith(".json")
        assert re.search(r"\d{8}_\d{6}", path)

    def test_no_extension_uses_format(self):
        assert _make_output_path("health", "keyvalue").endswith(".txt")

    def test_preserves_user_extension(self):
        assert _make_output_path("output.log", "json").endswith(".log")

    def test_directory_path(self, tmp_path):
        path = _make_output_path(str(tmp_path), "json")
        assert path.startswith(str(tmp_path))
        assert "pg-index-health_" in path
        assert path.endswith(".json")
