"""Helpers for multi-node interop tests."""

from pathlib import Path

FAKE_NODE = Path(__file__).parent / "fake_node.py"
"""Script standing in for the node binary."""

__all__ = ["FAKE_NODE"]
