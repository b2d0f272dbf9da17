"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest
from hypothesis import settings

from bft_harness.roster import ValidatorRoster

# Create a profile named "no_deadline" with deadline disabled.
settings.register_profile("no_deadline", deadline=None)
settings.load_profile("no_deadline")

VALIDATORS = [
    "tccq94guhkrfndnehnca06dlkxcfuq0gdlamvw9ga4f",
    "tccq8p9hr53lnxnhzcn0d065lux7etz22azaca786tt",
    "tccq8fj6lxn9tchqdqqe93yaga6fzxh5rndzu8k2gdw",
    "tccq9y6e0k6af9058qq4h4ffpt9xmat2vkeyue23j8y",
]
"""Validator set of the four-node test chain."""


@pytest.fixture
def roster() -> ValidatorRoster:
    """Four-validator testnet roster with the first validator as genesis author."""
    return ValidatorRoster.model_validate(
        {"NETWORK": "tc", "VALIDATORS": VALIDATORS, "GENESIS_AUTHOR": VALIDATORS[0]}
    )
