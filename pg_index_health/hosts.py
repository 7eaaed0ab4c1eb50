"""Multi-host connection URL parsing and connection credentials.

libpq accepts URLs listing several hosts, e.g.
``postgresql://host-1:5432,host-2:5433/app?target_session_attrs=read-write``.
The cluster needs one connection per host, so these helpers split such a URL
into single-host URLs that connect to whichever role the host currently has.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from pg_index_health.connection import DEFAULT_PORT
from pg_index_health.exceptions import InvariantViolationError

_SCHEMES = ("postgresql", "postgres")
_JDBC_PREFIX = "jdbc:"
# libpq and JDBC spellings of "only connect to the primary"
_ROLE_PARAMS = {
    "target_session_attrs": ("read-write", "primary"),
    "targetservertype": ("primary", "master"),
}


def _split(url: str):
    if not isinstance(url, str) or not url.strip():
        raise InvariantViolationError("url cannot be blank")
    url = url.strip()
    if url.lower().startswith(_JDBC_PREFIX):
        url = url[len(_JDBC_PREFIX):]
    try:
        parts = urlsplit(url)
    except ValueError as exc:
        raise InvariantViolationError(f"url {url!r} cannot be parsed: {exc}") from None
    if parts.scheme.lower() not in _SCHEMES:
        raise InvariantViolationError(f"url must start with postgresql://, got {url!r}")
    return parts


def _parse_host_port(item: str, url: str) -> tuple[str, int]:
    item = item.strip()
    if item.startswith("["):
        # bracketed IPv6 literal, brackets kept so the host drops back into a URL
        end = item.find("]")
        if end == -1:
            raise InvariantViolationError(f"url {url!r} contains unterminated IPv6 host {item!r}")
        host, rest = item[: end + 1], item[end + 1:]
        if rest and not rest.startswith(":"):
            raise InvariantViolationError(f"url {url!r} contains invalid host {item!r}")
        port = rest[1:]
        if host == "[]":
            host = ""
    else:
        host, sep, port = item.rpartition(":")
        if not sep:
            host, port = item, ""
    host = host.strip().lower()
    if not host:
        raise InvariantViolationError(f"url {url!r} contains an empty host")
    if not port:
        return host, DEFAULT_PORT
    if not port.isdigit():
        raise InvariantViolationError(f"url {url!r} contains invalid port {port!r}")
    return host, int(port)


def parse_hosts(url: str) -> list[tuple[str, int]]:
    """Return the distinct ``(host, port)`` pairs of a URL, sorted."""
    parts = _split(url)
    netloc = parts.netloc.rpartition("@")[2]
    if not netloc:
        raise InvariantViolationError(f"url {url!r} has no hosts")
    return sorted({_parse_host_port(item, url) for item in netloc.split(",")})


def _rewrite_query(query: str) -> str:
    params = []
    for key, value in parse_qsl(query, keep_blank_values=True):
        if value.lower() in _ROLE_PARAMS.get(key.lower(), ()):
            value = "any"
        params.append((key, value))
    return urlencode(params)


def split_url_per_host(url: str) -> list[tuple[tuple[str, int], str]]:
    """Split a multi-host URL into one URL per host.

    The user info, database and query string are preserved, except that a
    requirement to land on the primary is relaxed to ``any`` so each
    single-host URL can reach a standby too.
    """
    parts = _split(url)
    userinfo, at, _ = parts.netloc.rpartition("@")
    query = _rewrite_query(parts.query)
    result = []
    for host, port in parse_hosts(url):
        netloc = f"{userinfo}{at}{host}:{port}"
        result.append(((host, port), urlunsplit(("postgresql", netloc, parts.path, query, ""))))
    return result


@dataclass(frozen=True)
class ConnectionCredentials:
    """Where to connect and as whom.

    URLs are stripped, de-duplicated and sorted so equal configurations
    compare equal regardless of the order they were written in.
    """

    urls: tuple[str, ...]
    user: str
    password: str = ""

    def __post_init__(self):
        urls = [self.urls] if isinstance(self.urls, str) else list(self.urls or ())
        if not urls:
            raise InvariantViolationError("urls cannot be empty")
        for url in urls:
            _split(url)
        object.__setattr__(self, "urls", tuple(sorted({u.strip() for u in urls})))
        if not isinstance(self.user, str) or not self.user.strip():
            raise InvariantViolationError("user cannot be blank")
        if self.password is None:
            object.__setattr__(self, "password", "")

    @classmethod
    def of(cls, url: str, user: str, password: str = "") -> ConnectionCredentials:
        return cls(urls=(url,), user=user, password=password)

    def __repr__(self):
        return f"ConnectionCredentials(urls={self.urls!r}, user={self.user!r}, password='***')"
