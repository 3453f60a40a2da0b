"""Unit tests for request head parsing and upstream head rewriting."""

from __future__ import annotations

import pytest

from doh_router.exceptions import RequestParseError
from doh_router.proxy.parsing import (
    RequestHead,
    Target,
    build_upstream_head,
    parse_authority,
    parse_request_head,
    resolve_http_target,
)


def _head(target: str, *headers: tuple[str, str], method: str = "GET") -> RequestHead:
    return RequestHead(method=method, target=target, version="HTTP/1.1", headers=tuple(headers))


class TestParseRequestHead:
    """Tests for parse_request_head."""

    def test_parses_request_line_and_headers(self) -> None:
        """Given a valid head, returns method, target, version and ordered headers."""
        head = parse_request_head(b"GET http://a.test/ HTTP/1.1\r\nHost: a.test\r\nX-Trace: 1\r\n\r\n")

        assert head.method == "GET"
        assert head.target == "http://a.test/"
        assert head.version == "HTTP/1.1"
        assert head.headers == (("Host", "a.test"), ("X-Trace", "1"))

    def test_connect_detection(self) -> None:
        """CONNECT is detected case-insensitively."""
        head = parse_request_head(b"connect a.test:443 HTTP/1.1\r\n\r\n")

        assert head.is_connect

    def test_header_lookup_is_case_insensitive(self) -> None:
        """header() matches names regardless of case."""
        head = parse_request_head(b"GET / HTTP/1.1\r\nhOsT: a.test\r\n\r\n")

        assert head.header("Host") == "a.test"
        assert head.header("Missing") is None

    @pytest.mark.parametrize(
        "block",
        [
            b"\r\n\r\n",
            b"GET /\r\n\r\n",
            b"GET / SPDY/3\r\n\r\n",
            b"GET / HTTP/1.1\r\nno-colon-here\r\n\r\n",
        ],
    )
    def test_rejects_malformed_heads(self, block: bytes) -> None:
        """Given a malformed head, raises RequestParseError."""
        with pytest.raises(RequestParseError):
            parse_request_head(block)


class TestParseAuthority:
    """Tests for parse_authority."""

    @pytest.mark.parametrize(
        ("authority", "expected"),
        [
            ("example.test", ("example.test", 443)),
            ("example.test:8443", ("example.test", 8443)),
            ("[::1]:8080", ("::1", 8080)),
            ("[2001:db8::1]", ("2001:db8::1", 443)),
        ],
    )
    def test_valid_authorities(self, authority: str, expected: tuple[str, int]) -> None:
        """Given host[:port], returns the host and the explicit or default port."""
        assert parse_authority(authority, 443) == expected

    @pytest.mark.parametrize(
        "authority",
        ["", ":443", "example.test:0", "example.test:65536", "example.test:http", "::1", "[::1", "[::1]x"],
    )
    def test_invalid_authorities(self, authority: str) -> None:
        """Given a missing host, bad port or unbracketed IPv6, raises RequestParseError."""
        with pytest.raises(RequestParseError):
            parse_authority(authority, 443)


class TestResolveHttpTarget:
    """Tests for resolve_http_target."""

    def test_absolute_url_wins_over_host_header(self) -> None:
        """The URL authority is used even when a Host header disagrees."""
        target = resolve_http_target(_head("http://url.test:8000/a?b=c", ("Host", "header.test")))

        assert target == Target(host="url.test", port=8000, path="/a?b=c")

    def test_https_url_defaults_to_443(self) -> None:
        """An https:// absolute URL without a port targets 443."""
        assert resolve_http_target(_head("https://secure.test/")).port == 443

    def test_userinfo_is_stripped(self) -> None:
        """Credentials in the URL are not part of the host."""
        assert resolve_http_target(_head("http://user:pw@a.test/")).host == "a.test"

    def test_empty_path_becomes_root(self) -> None:
        """An absolute URL with no path targets '/'."""
        assert resolve_http_target(_head("http://a.test")).path == "/"

    def test_origin_form_uses_host_header(self) -> None:
        """Given an origin-form target, the Host header supplies the authority."""
        target = resolve_http_target(_head("/x", ("Host", "a.test")))

        assert target == Target(host="a.test", port=80, path="/x")

    def test_url_in_query_stays_origin_form(self) -> None:
        """A URL inside the query string does not make the target absolute-form."""
        target = resolve_http_target(_head("/r?u=http://x", ("Host", "a.test:8000")))

        assert target == Target(host="a.test", port=8000, path="/r?u=http://x")

    def test_unparseable_url_is_rejected(self) -> None:
        """An absolute URL urlsplit cannot parse raises RequestParseError."""
        with pytest.raises(RequestParseError):
            resolve_http_target(_head("http://[::1/"))

    def test_missing_host_is_rejected(self) -> None:
        """Given neither an absolute URL nor a Host header, raises RequestParseError."""
        with pytest.raises(RequestParseError):
            resolve_http_target(_head("/x"))


class TestBuildUpstreamHead:
    """Tests for build_upstream_head."""

    def test_rewrites_to_origin_form_and_drops_proxy_headers(self) -> None:
        """Proxy hop-by-hop headers are dropped and Connection: close is appended."""
        head = _head(
            "http://a.test/p",
            ("Host", "a.test"),
            ("Proxy-Connection", "keep-alive"),
            ("Proxy-Authorization", "Basic eA=="),
            ("Connection", "keep-alive"),
            ("Accept", "*/*"),
        )

        raw = build_upstream_head(head, Target(host="a.test", port=80, path="/p"))

        assert raw == b"GET /p HTTP/1.1\r\nHost: a.test\r\nAccept: */*\r\nConnection: close\r\n\r\n"

    def test_inserts_host_when_absent(self) -> None:
        """A Host header is synthesized from the target, with non-default ports."""
        raw = build_upstream_head(_head("http://[::1]:8080/"), Target(host="::1", port=8080, path="/"))

        assert raw.split(b"\r\n")[1] == b"Host: [::1]:8080"
