"""Cluster-wide connection holding every node and the current primary."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from pg_index_health.connection import Node, connect
from pg_index_health.exceptions import (
    ConnectivityError,
    InvariantViolationError,
    NoPrimaryAvailableError,
    SplitBrainError,
)
from pg_index_health.hosts import ConnectionCredentials, split_url_per_host
from pg_index_health.primary import PrimaryHostResolver

logger = logging.getLogger(__name__)


class ClusterConnection:
    """One connection per node plus a cached pointer to the current primary.

    The primary pointer is re-verified on every ``current_primary()`` call,
    so a failover is observed on the next call without restarting. The cache
    is a plain attribute overwritten in one assignment; concurrent callers may
    check roles in parallel and the last writer wins. There is no background
    polling.

    A node marked unreachable, either by the caller or after the cached
    primary failed its role check, is skipped by primary resolution until
    ``mark_reachable`` is called for it.

    Args:
        preferred_primary: The node believed to be primary at construction.
        nodes: All nodes of the cluster, in configuration order. Defaults to
            the preferred primary alone; when given it must contain it.
        resolver: Role resolver; defaults to PrimaryHostResolver().
    """

    def __init__(
        self,
        preferred_primary: Node,
        nodes: Iterable[Node] | None = None,
        resolver: PrimaryHostResolver | None = None,
    ):
        if preferred_primary is None:
            raise InvariantViolationError("preferred_primary cannot be None")
        ordered = []
        for node in nodes if nodes is not None else [preferred_primary]:
            if node not in ordered:
                ordered.append(node)
        if not ordered:
            raise InvariantViolationError("cluster must contain at least one node")
        if preferred_primary not in ordered:
            raise InvariantViolationError(
                "connections to all hosts in the cluster have to contain a connection "
                f"to the primary ({preferred_primary})"
            )
        self._nodes = tuple(ordered)
        self._primary = preferred_primary
        self._unreachable: set[Node] = set()
        self.resolver = resolver or PrimaryHostResolver()

    @classmethod
    def of(cls, node: Node, resolver: PrimaryHostResolver | None = None) -> ClusterConnection:
        """Cluster of a single node."""
        return cls(node, [node], resolver)

    @property
    def nodes(self) -> tuple[Node, ...]:
        """Nodes in configuration order."""
        return self._nodes

    def connections_to_all_hosts(self) -> frozenset[Node]:
        return frozenset(self._nodes)

    def cached_primary(self) -> Node:
        """Last known primary, without checking."""
        return self._primary

    def _require_member(self, node: Node):
        if node not in self._nodes:
            raise InvariantViolationError(f"{node} is not a member of this cluster")

    def mark_unreachable(self, node: Node):
        """Leave ``node`` out of primary resolution until it is marked reachable."""
        self._require_member(node)
        if node not in self._unreachable:
            logger.warning("Node %s marked unreachable", node)
        self._unreachable.add(node)

    def mark_reachable(self, node: Node):
        self._require_member(node)
        self._unreachable.discard(node)

    def unreachable_nodes(self) -> frozenset[Node]:
        return frozenset(self._unreachable)

    def _check_role(self, node: Node) -> bool:
        is_primary = self.resolver.is_primary(node)
        node.mark_role(is_primary)
        return is_primary

    def current_primary(self) -> Node:
        """Resolve the node serving as primary right now.

        The cached primary is checked first and returned as is when it still
        reports primary. Otherwise every other reachable node is checked in
        configuration order.

        When the role check of the cached primary itself fails, that node is
        marked unreachable before the error propagates, so the next call skips
        it and looks for a promoted standby. Nodes marked unreachable are never
        checked.

        Raises:
            NoPrimaryAvailableError: no reachable node reports primary.
            SplitBrainError: more than one node reports primary.
            ConnectivityError: a role check failed; resolution is aborted.
        """
        cached = self._primary
        if cached not in self._unreachable:
            try:
                if self._check_role(cached):
                    logger.debug("Cached primary %s confirmed", cached)
                    return cached
            except ConnectivityError:
                self.mark_unreachable(cached)
                raise

        candidates = [n for n in self._nodes if n != cached and n not in self._unreachable]
        primaries = [node for node in candidates if self._check_role(node)]
        if not primaries:
            raise NoPrimaryAvailableError(
                f"No primary found among {len(candidates)} reachable node(s) of "
                f"{len(self._nodes)}: " + ", ".join(str(n) for n in self._nodes)
            )
        if len(primaries) > 1:
            raise SplitBrainError(
                "More than one node reports primary: " + ", ".join(str(n) for n in primaries),
                primaries=primaries,
            )

        primary = primaries[0]
        logger.info("Primary changed from %s to %s", cached, primary)
        self._primary = primary
        return primary

    def close(self):
        for node in self._nodes:
            node.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"<ClusterConnection primary={self._primary} nodes={len(self._nodes)}>"


class ClusterConnectionFactory:
    """Builds a ClusterConnection from credentials.

    One node is opened per distinct ``(host, port)`` across all URLs. The
    first node (in sorted host order) that reports primary becomes the
    preferred primary.

    Args:
        connect_fn: Callable taking ``dsn``, ``user`` and ``password`` keyword
            arguments and returning a DB-API connection.
        resolver: Role resolver shared with the created cluster.
    """

    def __init__(
        self,
        connect_fn: Callable[..., object] = connect,
        resolver: PrimaryHostResolver | None = None,
    ):
        self.connect_fn = connect_fn
        self.resolver = resolver or PrimaryHostResolver()

    def create(self, credentials: ConnectionCredentials) -> ClusterConnection:
        urls_by_host: dict[tuple[str, int], str] = {}
        for url in credentials.urls:
            for address, host_url in split_url_per_host(url):
                urls_by_host.setdefault(address, host_url)

        nodes = []
        try:
            for (host, port), host_url in sorted(urls_by_host.items()):
                logger.debug("Opening connection to %s:%s", host, port)
                conn = self.connect_fn(
                    dsn=host_url, user=credentials.user, password=credentials.password
                )
                nodes.append(Node(host, port, conn))

            for node in nodes:
                is_primary = self.resolver.is_primary(node)
                node.mark_role(is_primary)
                if is_primary:
                    return ClusterConnection(node, nodes, self.resolver)
            raise NoPrimaryAvailableError(
                "Connection to primary host not found among "
                + ", ".join(str(n) for n in nodes)
            )
        except BaseException:
            for node in nodes:
                node.close()
            raise
