"""Application-wide constants for doh-router.

Constants that define application behavior.
For user-configurable settings per run, see config.py.
"""

from pathlib import Path

__all__ = [
    # Application identity
    "APP_NAME",
    # DoH resolution
    "DEFAULT_DOH_ENDPOINT",
    "DOH_ACCEPT_HEADER",
    "DEFAULT_DOH_TIMEOUT_SECONDS",
    "MIN_DOH_TIMEOUT_SECONDS",
    "MAX_DOH_TIMEOUT_SECONDS",
    "DNS_TYPE_A",
    # Forwarding proxy
    "PROXY_HOST",
    "DEFAULT_HTTP_PORT",
    "DEFAULT_CONNECT_PORT",
    "RELAY_CHUNK_SIZE",
    "MAX_REQUEST_HEAD_BYTES",
    "CONNECTION_ESTABLISHED",
    "UPSTREAM_CONNECT_TIMEOUT_SECONDS",
    # Session ports
    "DEFAULT_PROXY_PORT",
    "DEFAULT_DASHBOARD_PORT",
    "DEFAULT_LIVE_SERVER_PORT",
    "PORT_SEARCH_LIMIT",
    # Shutdown
    "SUBPROCESS_TERMINATE_TIMEOUT_SECONDS",
    "STOP_WAIT_TIMEOUT_SECONDS",
    # Runtime directory
    "RUNTIME_DIR",
    "PID_PATH",
]

from platformdirs import user_runtime_dir

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names and logger names
APP_NAME: str = "doh-router"

# ============================================================================
# DoH Resolution
# ============================================================================

# Public resolver speaking the JSON answer format
DEFAULT_DOH_ENDPOINT: str = "https://cloudflare-dns.com/dns-query"

DOH_ACCEPT_HEADER: str = "application/dns-json"

# Per-query timeout (seconds). Fallback resolution starts once it expires.
DEFAULT_DOH_TIMEOUT_SECONDS: float = 3.0
MIN_DOH_TIMEOUT_SECONDS: float = 0.1
MAX_DOH_TIMEOUT_SECONDS: float = 30.0

# RR type of an A record in DoH JSON answers
DNS_TYPE_A: int = 1

# ============================================================================
# Forwarding Proxy
# ============================================================================

# Proxy only ever listens on loopback
PROXY_HOST: str = "127.0.0.1"

DEFAULT_HTTP_PORT: int = 80
DEFAULT_CONNECT_PORT: int = 443

# Bytes read per relay iteration
RELAY_CHUNK_SIZE: int = 64 * 1024

# Largest request line + headers accepted from a client
MAX_REQUEST_HEAD_BYTES: int = 64 * 1024

CONNECTION_ESTABLISHED: bytes = b"HTTP/1.1 200 Connection Established\r\n\r\n"

# Upper bound for one upstream dial (seconds)
UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = 10.0

# ============================================================================
# Session Ports
# ============================================================================

# Preferred ports; the first free port at or above each one is used
DEFAULT_PROXY_PORT: int = 8080
DEFAULT_DASHBOARD_PORT: int = 3000
DEFAULT_LIVE_SERVER_PORT: int = 5500

# How many consecutive ports to probe before giving up
PORT_SEARCH_LIMIT: int = 100

# ============================================================================
# Shutdown
# ============================================================================

# Grace period between terminate() and kill() for companion processes
SUBPROCESS_TERMINATE_TIMEOUT_SECONDS: float = 5.0

# How long `doh-router stop` waits for the instance to exit
STOP_WAIT_TIMEOUT_SECONDS: float = 5.0

# ============================================================================
# Runtime Directory
# ============================================================================

# Runtime directory for ephemeral files (PID file)
# Platform-specific:
#   - macOS: ~/Library/Caches/TemporaryItems/doh-router/
#   - Linux: $XDG_RUNTIME_DIR/doh-router/ (auto-cleaned on logout)
RUNTIME_DIR: Path = Path(user_runtime_dir(APP_NAME))

PID_PATH: Path = RUNTIME_DIR / "doh-router.pid"
