"""Tests for pg_index_health.cluster — primary tracking across failover."""

from __future__ import annotations

import pytest

from conftest import FakeConnection, make_node
from pg_index_health.cluster import ClusterConnection, ClusterConnectionFactory
from pg_index_health.exceptions import (
    AmbiguousPrimaryError,
    ConnectivityError,
    InvariantViolationError,
    NoPrimaryAvailableError,
    SplitBrainError,
)
from pg_index_health.hosts import ConnectionCredentials


def _cluster(*roles: bool):
    """Cluster of nodes host-1..host-N, preferred primary host-1."""
    nodes = [make_node(f"host-{i}", primary=role) for i, role in enumerate(roles, 1)]
    return ClusterConnection(nodes[0], nodes), nodes


class TestConstruction:
    def test_contains_preferred_primary(self):
        cluster, nodes = _cluster(True, False, False)
        assert nodes[0] in cluster.connections_to_all_hosts()
        assert cluster.connections_to_all_hosts() == frozenset(nodes)

    def test_preferred_primary_must_be_member(self):
        outsider = make_node("host-9")
        with pytest.raises(InvariantViolationError, match="connection to the primary"):
            ClusterConnection(outsider, [make_node("host-1"), make_node("host-2")])

    def test_empty_nodes_rejected(self):
        with pytest.raises(InvariantViolationError):
            ClusterConnection(make_node("host-1"), [])

    def test_single_node(self):
        node = make_node("host-1")
        cluster = ClusterConnection.of(node)
        assert cluster.connections_to_all_hosts() == frozenset({node})

    def test_duplicate_addresses_collapse(self):
        a, b = make_node("host-1"), make_node("host-1")
        cluster = ClusterConnection(a, [a, b])
        assert len(cluster.nodes) == 1


class TestCurrentPrimary:
    def test_cached_primary_confirmed_without_checking_others(self):
        cluster, nodes = _cluster(True, False, False)
        assert cluster.current_primary() is nodes[0]
        assert nodes[0].connection.role_checks == 1
        assert nodes[1].connection.role_checks == 0
        assert nodes[2].connection.role_checks == 0

    def test_failover_is_observed(self):
        cluster, nodes = _cluster(True, False, False)
        nodes[0].connection.in_recovery = True
        nodes[2].connection.in_recovery = False

        assert cluster.current_primary() is nodes[2]
        assert cluster.cached_primary() is nodes[2]
        assert nodes[2].is_primary is True
        assert nodes[0].is_primary is False

    def test_new_primary_is_cached(self):
        cluster, nodes = _cluster(False, True)
        assert cluster.current_primary() is nodes[1]
        nodes[0].connection.role_checks = 0
        nodes[1].connection.role_checks = 0

        assert cluster.current_primary() is nodes[1]
        assert nodes[1].connection.role_checks == 1
        assert nodes[0].connection.role_checks == 0

    def test_no_primary(self):
        cluster, _ = _cluster(False, False, False)
        with pytest.raises(NoPrimaryAvailableError):
            cluster.current_primary()

    def test_split_brain(self):
        cluster, nodes = _cluster(False, True, True)
        with pytest.raises(SplitBrainError) as exc_info:
            cluster.current_primary()
        assert exc_info.value.primaries == [nodes[1], nodes[2]]

    def test_ambiguity_errors_share_base(self):
        cluster, _ = _cluster(False, False)
        with pytest.raises(AmbiguousPrimaryError):
            cluster.current_primary()

    def test_failed_role_check_aborts_resolution(self):
        cluster, nodes = _cluster(False, True, False)
        nodes[1].connection.role_error = "could not connect to server"
        with pytest.raises(ConnectivityError):
            cluster.current_primary()
        assert cluster.cached_primary() is nodes[0]

    def test_failed_role_check_of_cached_primary(self):
        cluster, nodes = _cluster(True, False)
        nodes[0].connection.role_error = "server closed the connection unexpectedly"
        with pytest.raises(ConnectivityError):
            cluster.current_primary()
        assert nodes[1].connection.role_checks == 0
        assert cluster.unreachable_nodes() == frozenset({nodes[0]})

    def test_promoted_standby_found_after_primary_crash(self):
        cluster, nodes = _cluster(True, False, False)
        nodes[0].connection.role_error = "server closed the connection unexpectedly"
        nodes[1].connection.in_recovery = False

        with pytest.raises(ConnectivityError):
            cluster.current_primary()
        assert cluster.current_primary() is nodes[1]
        assert cluster.current_primary() is nodes[1]
        assert nodes[0].connection.role_checks == 1

    def test_mark_unreachable_skips_cached_primary(self):
        cluster, nodes = _cluster(True, True)
        cluster.mark_unreachable(nodes[0])
        assert cluster.current_primary() is nodes[1]
        assert nodes[0].connection.role_checks == 0

    def test_unreachable_nodes_not_checked(self):
        cluster, nodes = _cluster(False, False, True)
        cluster.mark_unreachable(nodes[1])
        assert cluster.current_primary() is nodes[2]
        assert nodes[1].connection.role_checks == 0

    def test_all_unreachable(self):
        cluster, nodes = _cluster(True, False)
        cluster.mark_unreachable(nodes[0])
        cluster.mark_unreachable(nodes[1])
        with pytest.raises(NoPrimaryAvailableError):
            cluster.current_primary()

    def test_mark_reachable(self):
        cluster, nodes = _cluster(True, False)
        cluster.mark_unreachable(nodes[0])
        cluster.mark_reachable(nodes[0])
        assert cluster.unreachable_nodes() == frozenset()
        assert cluster.current_primary() is nodes[0]

    def test_mark_unreachable_requires_member(self):
        cluster, _ = _cluster(True)
        with pytest.raises(InvariantViolationError):
            cluster.mark_unreachable(make_node("host-9"))

    def test_failure_on_other_node_still_aborts(self):
        cluster, nodes = _cluster(False, False, True)
        nodes[1].connection.role_error = "could not connect to server"
        with pytest.raises(ConnectivityError):
            cluster.current_primary()
        assert nodes[2].connection.role_checks == 0
        assert cluster.unreachable_nodes() == frozenset()

    def test_close_closes_all(self):
        cluster, nodes = _cluster(True, False)
        with cluster:
            pass
        assert all(n.connection.closed for n in nodes)


class TestFactory:
    def _connect_fn(self, roles: dict[str, bool], opened: list):
        def connect(dsn, user, password):
            host = dsn.split("@")[-1].split(":")[0] if "@" in dsn else dsn.split("//")[1].split(":")[0]
            conn = FakeConnection(in_recovery=not roles[host])
            opened.append((dsn, user, password, conn))
            return conn

        return connect

    def test_creates_node_per_host(self):
        opened = []
        factory = ClusterConnectionFactory(self._connect_fn({"h1": False, "h2": True}, opened))
        credentials = ConnectionCredentials.of("postgresql://h1:5432,h2:5433/app", "app", "secret")

        cluster = factory.create(credentials)

        assert [str(n) for n in cluster.nodes] == ["h1:5432", "h2:5433"]
        assert str(cluster.cached_primary()) == "h2:5433"
        assert all(user == "app" and password == "secret" for _, user, password, _ in opened)

    def test_hosts_shared_by_urls_opened_once(self):
        opened = []
        factory = ClusterConnectionFactory(self._connect_fn({"h1": True, "h2": False}, opened))
        credentials = ConnectionCredentials(
            urls=("postgresql://h1:5432,h2:5432/app", "postgresql://h2:5432/app"), user="app"
        )
        cluster = factory.create(credentials)
        assert len(cluster.nodes) == 2
        assert len(opened) == 2

    def test_no_primary_closes_connections(self):
        opened = []
        factory = ClusterConnectionFactory(self._connect_fn({"h1": False, "h2": False}, opened))
        credentials = ConnectionCredentials.of("postgresql://h1,h2/app", "app")
        with pytest.raises(NoPrimaryAvailableError, match="Connection to primary host not found"):
            factory.create(credentials)
        assert all(conn.closed for *_, conn in opened)
