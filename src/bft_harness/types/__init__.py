"""Reusable type definitions for the harness."""

from .base import CamelModel, StrictBaseModel, load_yaml

__all__ = [
    "CamelModel",
    "StrictBaseModel",
    "load_yaml",
]
