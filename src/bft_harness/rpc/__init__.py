"""
JSON-RPC access to a running node.

The query client is the only way the harness observes a node: heights, peer
counts and author sets are always re-fetched from the node itself.
"""

from . import methods
from .client import DEFAULT_TIMEOUT, PayTransaction, QueryClient

__all__ = [
    "DEFAULT_TIMEOUT",
    "PayTransaction",
    "QueryClient",
    "methods",
]
