"""Shared fixtures and fakes for pg-index-health tests."""

from __future__ import annotations

from datetime import datetime, timezone

import psycopg2
import pytest

from pg_index_health.connection import Node
from pg_index_health.models import CheckResult, IndexWithSize, ScanReport, Table, UnusedIndex
from pg_index_health.primary import RECOVERY_QUERY
from pg_index_health.registry import STANDARD_REGISTRY


class FakeCursor:
    def __init__(self, connection: FakeConnection):
        self.connection = connection
        self._rows: list[dict] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, statement, params=None):
        self.connection.executed.append((statement, params))
        if statement == RECOVERY_QUERY:
            self.connection.role_checks += 1
            if self.connection.role_error:
                raise psycopg2.OperationalError(self.connection.role_error)
            self._rows = [{"in_recovery": self.connection.in_recovery}]
            return
        if self.connection.query_error:
            raise psycopg2.OperationalError(self.connection.query_error)
        response = self.connection.responses.get(statement, [])
        self._rows = list(response(params) if callable(response) else response)

    def fetchall(self):
        return self._rows


class FakeConnection:
    """DB-API connection double answering the recovery query and scripted queries.

    Attributes:
        in_recovery: What the recovery query reports (True for a standby).
        responses: Rows returned per exact statement text, or a callable
            taking the bound params and returning rows.
        executed: Every ``(statement, params)`` executed, in order.
        role_checks: Number of recovery queries executed.
        role_error: If set, the role check raises OperationalError with this text.
        query_error: If set, every other statement raises OperationalError.
    """

    def __init__(self, in_recovery: bool = False, responses: dict | None = None):
        self.in_recovery = in_recovery
        self.responses = dict(responses or {})
        self.executed: list[tuple] = []
        self.role_checks = 0
        self.role_error: str | None = None
        self.query_error: str | None = None
        self.closed = False

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def close(self):
        self.closed = True

    @property
    def queries(self) -> list[tuple]:
        """Executed statements other than the recovery query."""
        return [e for e in self.executed if e[0] != RECOVERY_QUERY]


def make_node(
    host: str = "host-1",
    primary: bool = True,
    port: int = 5432,
    rows: dict[str, list[dict]] | None = None,
) -> Node:
    """Node backed by a FakeConnection.

    ``rows`` maps diagnostic identifiers to the rows the node returns for
    that diagnostic's query.
    """
    responses = {
        STANDARD_REGISTRY.descriptor_for(identifier).query: value
        for identifier, value in (rows or {}).items()
    }
    return Node(host, port, FakeConnection(in_recovery=not primary, responses=responses))


def unused_index_row(index_name: str, table_name: str = "orders", size: int = 8192, scans: int = 0):
    return {
        "table_name": table_name,
        "index_name": index_name,
        "index_size": size,
        "index_scans": scans,
    }


@pytest.fixture
def primary_node() -> Node:
    return make_node("host-1", primary=True)


@pytest.fixture
def standby_node() -> Node:
    return make_node("host-2", primary=False)


@pytest.fixture
def empty_report() -> ScanReport:
    """ScanReport with no results."""
    return ScanReport(
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        hosts=["host-1:5432"],
        schemas=["public"],
    )


@pytest.fixture
def sample_report() -> ScanReport:
    """ScanReport with findings, a passing check and an errored check."""
    report = ScanReport(
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        hosts=["host-1:5432", "host-2:5432"],
        schemas=["public"],
    )

    report.results.append(CheckResult(
        diagnostic="UNUSED_INDEXES",
        kind="runtime",
        topology="across_cluster",
        schema_name="public",
        description="Unused indexes",
        findings=[
            UnusedIndex("orders", "idx_orders_a", index_size=8192, index_scans=0),
            UnusedIndex("orders", "idx_orders_b", index_size=16384, index_scans=3),
        ],
    ))

    report.results.append(CheckResult(
        diagnostic="TABLES_WITHOUT_PRIMARY_KEY",
        kind="static",
        topology="primary_only",
        schema_name="public",
        description="Tables without primary key",
        findings=[Table("audit_log", 1024)],
    ))

    report.results.append(CheckResult(
        diagnostic="INVALID_INDEXES",
        kind="static",
        topology="primary_only",
        schema_name="public",
        description="Invalid indexes",
    ))

    report.results.append(CheckResult(
        diagnostic="BLOATED_INDEXES",
        kind="runtime",
        topology="primary_only",
        schema_name="public",
        description="Bloated indexes",
        error="ConnectivityError: Query failed on host-1:5432: server closed the connection",
    ))

    return report


def make_index(name: str, table_name: str = "orders", size: int = 0) -> IndexWithSize:
    return IndexWithSize(table_name, name, index_size=size)
