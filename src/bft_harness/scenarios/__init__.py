"""
Consensus scenarios.

Importing this package registers every built-in scenario in ``SCENARIOS``.
"""

from . import tendermint
from .base import (
    SCENARIOS,
    Scenario,
    ScenarioContext,
    ScenarioResult,
    ScenarioRunner,
    classify,
    scenario,
)

__all__ = [
    "SCENARIOS",
    "Scenario",
    "ScenarioContext",
    "ScenarioResult",
    "ScenarioRunner",
    "classify",
    "scenario",
    "tendermint",
]
