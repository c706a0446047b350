"""
HTTP delivery of captured console output and endpoint preflight checks.
"""

from .auth import authorization_header, safe_url
from .client import RelayClient
from .tester import ConnectionTester

__all__ = [
    "ConnectionTester",
    "RelayClient",
    "authorization_header",
    "safe_url",
]
