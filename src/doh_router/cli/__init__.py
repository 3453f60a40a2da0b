"""Command-line interface for doh-router.

Provides commands for starting and stopping a session and inspecting
configuration.
"""

from .main import cli, main

__all__ = ["cli", "main"]
