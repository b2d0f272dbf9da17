"""
Harness configuration.

Settings are read from a YAML file and may be overridden by ``BFT_HARNESS_*``
environment variables, e.g. ``BFT_HARNESS_BINARY=/opt/codechain/bin/codechain``.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from bft_harness.types import CamelModel, load_yaml

ENV_PREFIX = "BFT_HARNESS_"
"""Prefix of environment variables that override configuration fields."""


class HarnessConfig(CamelModel):
    """
    Settings shared by every node a cluster launches.

    Values come from YAML or the environment, so types are coerced rather than
    checked strictly.
    """

    model_config = CamelModel.model_config | ConfigDict(extra="forbid", frozen=True)

    binary: Path
    """Node executable."""

    chain: Path
    """Chain definition (genesis and validator set) passed to every node."""

    password_path: Path | None = None
    """Password file unlocking the engine signer keys."""

    keys_path: Path | None = None
    """Directory of pre-provisioned key files copied into each node."""

    work_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / "bft-harness")
    """Parent of the per-node working directories."""

    log_dir: Path = Path("logs")
    """Where logs of failed scenarios are preserved."""

    binary_args: tuple[str, ...] = ()
    """Arguments placed before the harness-generated ones (e.g. ``-m`` module runners)."""

    extra_args: tuple[str, ...] = ()
    """Arguments appended to every node command line."""

    startup_timeout: float = 20.0
    """Seconds a node has to answer its first query."""

    shutdown_timeout: float = 5.0
    """Seconds between SIGTERM and SIGKILL."""

    rpc_timeout: float = 5.0
    """Per-request HTTP timeout for node queries."""

    poll_interval: float = 0.5
    """Default cadence of condition polling."""

    base_p2p_port: int = 3486
    """First p2p port handed out to nodes."""

    base_rpc_port: int = 8081
    """First JSON-RPC port handed out to nodes."""

    @field_validator("binary_args", "extra_args", mode="before")
    @classmethod
    def split_args(cls, v: Any) -> Any:
        """Allow a whitespace-separated string in place of a list."""
        if isinstance(v, str):
            return tuple(v.split())
        return v

    @classmethod
    def from_yaml_file(
        cls,
        path: Path | str,
        environ: Mapping[str, str] | None = None,
    ) -> HarnessConfig:
        """
        Load configuration from YAML, then apply environment overrides.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        return cls.from_mapping(load_yaml(path), environ)

    @classmethod
    def from_mapping(
        cls,
        data: Mapping[str, Any],
        environ: Mapping[str, str] | None = None,
    ) -> HarnessConfig:
        """Build a config from plain data plus ``BFT_HARNESS_*`` overrides."""
        merged = dict(data) | env_overrides(os.environ if environ is None else environ)
        return cls.model_validate(merged)


def env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    """
    Collect configuration overrides from the environment.

    ``BFT_HARNESS_STARTUP_TIMEOUT=30`` becomes ``{"startup_timeout": "30"}``.
    Unknown names are passed through so validation rejects typos.
    """
    return {
        key[len(ENV_PREFIX) :].lower(): value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX)
    }
