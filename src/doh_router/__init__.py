"""doh-router: short-lived local forward proxy with DNS-over-HTTPS resolution."""

__version__ = "0.1.0"
