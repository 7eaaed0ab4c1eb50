"""Database connection management."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any

import psycopg2
import psycopg2.extras

from pg_index_health.exceptions import ConnectivityError, InvariantViolationError

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432


def connect(
    host: str | None = None,
    port: int | None = None,
    dbname: str | None = None,
    user: str | None = None,
    password: str | None = None,
    dsn: str | None = None,
) -> psycopg2.extensions.connection:
    """Create a database connection from explicit args or a DSN string.

    Keyword args are passed alongside the DSN and take precedence over its
    components. Falls back to the PGPASSWORD environment variable. The session
    is read-only with autocommit, since diagnostics never write.
    """
    params = {}
    if host:
        params["host"] = host
    if port:
        params["port"] = port
    if dbname:
        params["dbname"] = dbname
    if user:
        params["user"] = user
    if password:
        params["password"] = password
    elif os.environ.get("PGPASSWORD"):
        params["password"] = os.environ["PGPASSWORD"]

    conn = psycopg2.connect(dsn, **params) if dsn else psycopg2.connect(**params)
    conn.set_session(readonly=True, autocommit=True)
    return conn


class Node:
    """One PostgreSQL host in the cluster.

    Identity is ``(host, port)``; two Node objects for the same address are
    equal regardless of the connection they wrap. The cached role is written
    only through ``mark_role``, which the cluster calls after each role check.

    Attributes:
        host: Host name or address.
        port: TCP port.
        connection: DB-API connection (psycopg2 in production).
        is_primary: Role observed by the last role check, None if never checked.
        last_checked: UTC time of the last role check, None if never checked.
    """

    def __init__(self, host: str, port: int = DEFAULT_PORT, connection: Any = None):
        if not isinstance(host, str) or not host.strip():
            raise InvariantViolationError("host cannot be blank")
        if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
            raise InvariantViolationError(f"port must be in 1..65535, got {port!r}")
        if connection is None:
            raise InvariantViolationError(f"connection for {host}:{port} cannot be None")
        self.host = host.strip().lower()
        self.port = port
        self.connection = connection
        self.is_primary: bool | None = None
        self.last_checked: datetime | None = None

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return self.address == other.address

    def __hash__(self):
        return hash(self.address)

    def __repr__(self):
        return f"<Node {self.host}:{self.port}>"

    def __str__(self):
        return f"{self.host}:{self.port}"

    def mark_role(self, is_primary: bool):
        self.is_primary = is_primary
        self.last_checked = datetime.now(timezone.utc)

    def execute(self, statement: str, params: tuple | list | None = None) -> list[dict]:
        """Run a read-only statement and return all rows as dicts.

        Params are bound positionally. Any psycopg2 failure is re-raised as
        ConnectivityError with the original error chained.
        """
        logger.debug("Executing on %s with params %s", self, params)
        try:
            with self.connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(statement, tuple(params) if params else None)
                return [dict(row) for row in cur.fetchall()]
        except psycopg2.Error as exc:
            raise ConnectivityError(
                f"Query failed on {self}: {str(exc).strip()}", node=self
            ) from exc

    def close(self):
        try:
            self.connection.close()
        except psycopg2.Error as exc:
            logger.warning("Failed to close connection to %s: %s", self, exc)
