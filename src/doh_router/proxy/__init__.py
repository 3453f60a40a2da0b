"""Forwarding proxy: plain HTTP relay and CONNECT tunneling on loopback."""

from .parsing import RequestHead, Target, parse_authority, parse_request_head
from .server import ForwardingProxy, Resolver

__all__ = [
    "ForwardingProxy",
    "RequestHead",
    "Resolver",
    "Target",
    "parse_authority",
    "parse_request_head",
]
