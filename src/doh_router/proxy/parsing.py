"""HTTP/1.x request head parsing for the forwarding proxy.

Only the request line and headers are parsed. Bodies are never buffered;
they stay in the client stream and are relayed byte-for-byte.

Authority rules:
- CONNECT: request target is ``host:port`` (default port 443)
- Absolute-form target (``http://host[:port]/path``): authority from the URL,
  default port from the scheme (443 for https, 80 otherwise)
- Origin-form target (``/path``): authority from the Host header (default 80)
- IPv6 literals must be bracketed (``[::1]:8080``)
"""

from __future__ import annotations

__all__ = [
    "RequestHead",
    "Target",
    "build_upstream_head",
    "parse_authority",
    "parse_request_head",
    "resolve_http_target",
]

from dataclasses import dataclass
from urllib.parse import urlsplit

from doh_router.constants import DEFAULT_CONNECT_PORT, DEFAULT_HTTP_PORT
from doh_router.exceptions import RequestParseError

# Hop-by-hop headers meant for the proxy itself
_PROXY_ONLY_HEADERS = frozenset({"proxy-connection", "proxy-authorization", "connection", "keep-alive"})


@dataclass(frozen=True)
class RequestHead:
    """Parsed request line and headers.

    Headers keep their original order and case for forwarding.
    """

    method: str
    target: str
    version: str
    headers: tuple[tuple[str, str], ...]

    @property
    def is_connect(self) -> bool:
        return self.method.upper() == "CONNECT"

    def header(self, name: str) -> str | None:
        """Get the first header value with the given name (case-insensitive)."""
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class Target:
    """Upstream host and port for one Connection."""

    host: str
    port: int
    path: str = "/"


def parse_request_head(block: bytes) -> RequestHead:
    """Parse a request head terminated by a blank line.

    Args:
        block: Raw bytes up to and including ``\\r\\n\\r\\n``.

    Returns:
        Parsed RequestHead.

    Raises:
        RequestParseError: If the request line or a header line is malformed.
    """
    text = block.decode("iso-8859-1")
    lines = text.split("\r\n")
    if not lines or not lines[0]:
        raise RequestParseError("missing request line")

    parts = lines[0].split(" ")
    if len(parts) != 3 or not all(parts):
        raise RequestParseError(f"invalid request line: {lines[0]!r}")
    method, target, version = parts
    if not version.upper().startswith("HTTP/"):
        raise RequestParseError(f"unsupported protocol: {version!r}")

    headers: list[tuple[str, str]] = []
    for line in lines[1:]:
        if line == "":
            break
        if ":" not in line:
            raise RequestParseError(f"invalid header line: {line!r}")
        key, value = line.split(":", 1)
        headers.append((key.strip(), value.strip()))
    return RequestHead(method=method, target=target, version=version, headers=tuple(headers))


def parse_authority(authority: str, default_port: int) -> tuple[str, int]:
    """Split ``host[:port]`` into host and port.

    Args:
        authority: Authority string; IPv6 literals in brackets.
        default_port: Port used when none is given.

    Returns:
        (host, port) with brackets removed from IPv6 hosts.

    Raises:
        RequestParseError: If the host is empty or the port is invalid.
    """
    authority = authority.strip()
    if authority.startswith("["):
        end = authority.find("]")
        if end == -1:
            raise RequestParseError(f"unterminated IPv6 literal: {authority!r}")
        host = authority[1:end]
        rest = authority[end + 1 :]
        if rest and not rest.startswith(":"):
            raise RequestParseError(f"invalid authority: {authority!r}")
        port_text = rest[1:]
    elif authority.count(":") == 1:
        host, port_text = authority.split(":", 1)
    elif ":" in authority:
        raise RequestParseError(f"IPv6 literal must be bracketed: {authority!r}")
    else:
        host, port_text = authority, ""

    if not host:
        raise RequestParseError(f"missing host: {authority!r}")
    if not port_text:
        return host, default_port
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise RequestParseError(f"invalid port: {port_text!r}")
    return host, int(port_text)


def resolve_http_target(head: RequestHead) -> Target:
    """Pick the upstream for a plain HTTP request.

    Args:
        head: Parsed non-CONNECT request head.

    Returns:
        Target with host, port and origin-form path.

    Raises:
        RequestParseError: If neither the URL nor a Host header names a host.
    """
    try:
        url = urlsplit(head.target)
    except ValueError as e:
        raise RequestParseError(f"invalid request target: {head.target!r}") from e

    # Origin-form targets start with "/" even when the query holds a URL
    if url.scheme and url.netloc and not head.target.startswith("/"):
        default_port = DEFAULT_CONNECT_PORT if url.scheme.lower() == "https" else DEFAULT_HTTP_PORT
        host, port = parse_authority(url.netloc.rpartition("@")[2], default_port)
        path = url.path or "/"
        if url.query:
            path = f"{path}?{url.query}"
        return Target(host=host, port=port, path=path)

    host_header = head.header("host")
    if not host_header:
        raise RequestParseError("request has neither an absolute URL nor a Host header")
    host, port = parse_authority(host_header, DEFAULT_HTTP_PORT)
    return Target(host=host, port=port, path=head.target)


def build_upstream_head(head: RequestHead, target: Target) -> bytes:
    """Rebuild the request head for the upstream server.

    The request line uses origin-form, proxy hop-by-hop headers are dropped
    and ``Connection: close`` is set so one client connection maps to one
    upstream exchange.
    """
    lines = [f"{head.method} {target.path} {head.version}"]
    has_host = False
    for key, value in head.headers:
        lowered = key.lower()
        if lowered in _PROXY_ONLY_HEADERS:
            continue
        if lowered == "host":
            has_host = True
        lines.append(f"{key}: {value}")
    if not has_host:
        host = f"[{target.host}]" if ":" in target.host else target.host
        if target.port != DEFAULT_HTTP_PORT:
            host = f"{host}:{target.port}"
        lines.insert(1, f"Host: {host}")
    lines.append("Connection: close")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("iso-8859-1")
