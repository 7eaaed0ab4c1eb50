"""Primary role detection for a single node."""

from __future__ import annotations

import logging

from pg_index_health.connection import Node
from pg_index_health.exceptions import ExtractionError
from pg_index_health.extractors import get_bool

logger = logging.getLogger(__name__)

RECOVERY_QUERY = "SELECT pg_catalog.pg_is_in_recovery() AS in_recovery"


class PrimaryHostResolver:
    """Tells whether a node currently serves as primary.

    A node that is not in recovery accepts writes and is the primary. The
    role check is read-only and never guesses: a failed role check raises
    ConnectivityError from ``Node.execute`` and a malformed answer raises
    ExtractionError.
    """

    query = RECOVERY_QUERY

    def is_primary(self, node: Node) -> bool:
        rows = node.execute(self.query)
        if len(rows) != 1:
            raise ExtractionError(
                f"Recovery query on {node} returned {len(rows)} rows, expected 1",
                column="in_recovery",
            )
        is_primary = not get_bool(rows[0], "in_recovery")
        logger.debug("Node %s is %s", node, "primary" if is_primary else "standby")
        return is_primary
