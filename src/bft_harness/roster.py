"""
Validator roster and node identities.

The roster is the ordered set of validator addresses for one chain definition.
It is loaded once and handed to clusters and scenarios as immutable
configuration, so scenarios can run in isolation without shared state.

The YAML format mirrors the chain definition the nodes are started with::

    NETWORK: tc
    GENESIS_AUTHOR: tccq94guhkrfndnehnca06dlkxcfuq0gdlamvw9ga4f
    VALIDATORS:
    - tccq94guhkrfndnehnca06dlkxcfuq0gdlamvw9ga4f
    - tccq8p9hr53lnxnhzcn0d065lux7etz22azaca786tt
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from bft_harness.types import StrictBaseModel

BECH32_CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
"""Characters allowed in the data part of a platform address."""

NETWORK_PREFIXES: dict[str, str] = {"cc": "mainnet", "tc": "testnet"}
"""Human-readable address prefix for each network."""

_ADDRESS_PATTERN = re.compile(rf"^(?P<hrp>cc|tc)c[{BECH32_CHARSET}]{{40}}$")


def parse_platform_address(address: str) -> str:
    """
    Validate a platform address and return its network prefix.

    Args:
        address: Address string such as ``tccq94guhkrfndnehnca06dlkxcfuq0gdlamvw9ga4f``.

    Returns:
        The network prefix (``"cc"`` or ``"tc"``).

    Raises:
        ValueError: If the string is not a well-formed platform address.
    """
    match = _ADDRESS_PATTERN.match(address)
    if match is None:
        raise ValueError(f"Not a platform address: {address!r}")
    return match.group("hrp")


class NodeIdentity(StrictBaseModel):
    """
    Immutable identity a node is launched with.

    A node without a signer address participates in the network but never
    seals blocks.
    """

    signer: str | None = None
    """Engine signer address, or None for a non-validating node."""

    keys_path: Path | None = None
    """Pre-provisioned key material copied into the node's keys directory."""

    @property
    def is_validator(self) -> bool:
        """Whether this identity seals blocks."""
        return self.signer is not None


class ValidatorRoster(StrictBaseModel):
    """Ordered validator set for one chain definition."""

    network: Literal["cc", "tc"] = Field(default="tc", alias="NETWORK")
    """Network prefix all addresses must carry."""

    validators: tuple[str, ...] = Field(alias="VALIDATORS")
    """Validator addresses in the order the engine reports them."""

    genesis_author: str | None = Field(default=None, alias="GENESIS_AUTHOR")
    """Sole possible author of the genesis block. Defaults to the first validator."""

    @field_validator("validators", mode="before")
    @classmethod
    def to_tuple(cls, v: Any) -> tuple[str, ...]:
        """Accept the YAML list form."""
        if not isinstance(v, (list, tuple)):
            raise ValueError(f"validators must be a list, got {type(v).__name__}")
        return tuple(v)

    @model_validator(mode="after")
    def validate_addresses(self) -> ValidatorRoster:
        """Every address must be well-formed, unique, and on the roster's network."""
        if not self.validators:
            raise ValueError("Roster must contain at least one validator")

        for address in (*self.validators, *filter(None, [self.genesis_author])):
            hrp = parse_platform_address(address)
            if hrp != self.network:
                raise ValueError(
                    f"Address {address} belongs to {NETWORK_PREFIXES[hrp]}, "
                    f"roster is {NETWORK_PREFIXES[self.network]}"
                )

        if len(set(self.validators)) != len(self.validators):
            raise ValueError("Duplicate validator address in roster")

        return self

    def __len__(self) -> int:
        return len(self.validators)

    @property
    def genesis_authors(self) -> list[str]:
        """Possible authors reported for block 0."""
        return [self.genesis_author or self.validators[0]]

    def identity(self, index: int, keys_path: Path | None = None) -> NodeIdentity:
        """Identity for the validator at ``index``."""
        return NodeIdentity(signer=self.validators[index], keys_path=keys_path)

    def identities(self, keys_path: Path | None = None) -> list[NodeIdentity]:
        """One identity per validator, in roster order."""
        return [self.identity(i, keys_path) for i in range(len(self.validators))]
