"""Tests for harness configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from bft_harness.config import HarnessConfig, env_overrides


class TestHarnessConfig:
    """Tests for defaults, YAML loading and validation."""

    def test_defaults(self) -> None:
        """Only binary and chain are required."""
        config = HarnessConfig.from_mapping({"binary": "/bin/node", "chain": "tendermint"}, {})

        assert config.binary == Path("/bin/node")
        assert config.startup_timeout == 20.0
        assert config.shutdown_timeout == 5.0
        assert config.base_p2p_port == 3486
        assert config.base_rpc_port == 8081
        assert config.extra_args == ()

    def test_from_yaml_file(self, tmp_path: Path) -> None:
        """YAML values are coerced into their field types."""
        path = tmp_path / "harness.yaml"
        path.write_text(
            "binary: /opt/node\n"
            "chain: chain.yaml\n"
            "startup_timeout: 30\n"
            "extra_args: [--instance-id, '7']\n"
        )

        config = HarnessConfig.from_yaml_file(path, environ={})

        assert config.chain == Path("chain.yaml")
        assert config.startup_timeout == 30.0
        assert config.extra_args == ("--instance-id", "7")

    def test_camel_case_keys_are_accepted(self) -> None:
        """Keys may also be written in camelCase."""
        config = HarnessConfig.from_mapping(
            {"binary": "/bin/node", "chain": "c", "rpcTimeout": 2}, {}
        )

        assert config.rpc_timeout == 2.0

    def test_string_args_are_split(self) -> None:
        """A whitespace-separated argument string becomes a tuple."""
        config = HarnessConfig.from_mapping(
            {"binary": "/bin/node", "chain": "c", "extra_args": "--a 1 --b"}, {}
        )

        assert config.extra_args == ("--a", "1", "--b")

    def test_unknown_key_is_rejected(self) -> None:
        """Typos fail loudly instead of being ignored."""
        with pytest.raises(ValidationError):
            HarnessConfig.from_mapping({"binary": "/bin/node", "chain": "c", "binray": "x"}, {})

    def test_missing_binary_is_rejected(self) -> None:
        """The node executable has no default."""
        with pytest.raises(ValidationError):
            HarnessConfig.from_mapping({"chain": "c"}, {})

    def test_copy_revalidates(self) -> None:
        """Copies go through validation like fresh configs."""
        config = HarnessConfig.from_mapping({"binary": "/bin/node", "chain": "c"}, {})

        changed = config.copy(startup_timeout="3")

        assert changed.startup_timeout == 3.0
        assert changed.binary == config.binary


class TestEnvironmentOverrides:
    """Tests for BFT_HARNESS_* overrides."""

    def test_prefix_is_stripped_and_lowercased(self) -> None:
        """Only prefixed variables are collected."""
        overrides = env_overrides(
            {"BFT_HARNESS_STARTUP_TIMEOUT": "45", "PATH": "/usr/bin", "HOME": "/root"}
        )

        assert overrides == {"startup_timeout": "45"}

    def test_environment_wins_over_file(self) -> None:
        """Environment values override file values."""
        config = HarnessConfig.from_mapping(
            {"binary": "/bin/node", "chain": "c", "startup_timeout": 10},
            {"BFT_HARNESS_STARTUP_TIMEOUT": "45", "BFT_HARNESS_BINARY": "/opt/other"},
        )

        assert config.startup_timeout == 45.0
        assert config.binary == Path("/opt/other")

    def test_environment_typo_is_rejected(self) -> None:
        """An unknown override name fails validation."""
        with pytest.raises(ValidationError):
            HarnessConfig.from_mapping(
                {"binary": "/bin/node", "chain": "c"}, {"BFT_HARNESS_STARTUP_TIMOUT": "1"}
            )
