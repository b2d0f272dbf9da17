"""Node process management."""

from .handle import LOCALHOST, NodeHandle, NodeState
from .launch import LaunchConfig

__all__ = [
    "LOCALHOST",
    "LaunchConfig",
    "NodeHandle",
    "NodeState",
]
