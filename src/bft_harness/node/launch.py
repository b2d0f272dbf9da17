"""Command-line construction for a node process."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from bft_harness.config import HarnessConfig
from bft_harness.roster import NodeIdentity


@dataclass(frozen=True, slots=True)
class LaunchConfig:
    """
    Everything needed to start one node process.

    Paths under ``base_path`` belong to the node and are removed by ``clean()``.
    """

    binary: Path
    """Node executable."""

    chain: Path
    """Chain definition reference."""

    base_path: Path
    """Node working directory."""

    p2p_port: int
    """Port the node accepts peers on."""

    rpc_port: int
    """Port of the JSON-RPC server."""

    engine_signer: str | None = None
    """Signing address. None starts a node that never seals."""

    password_path: Path | None = None
    """Password file unlocking the signer key."""

    additional_keys_path: Path | None = None
    """Pre-provisioned key files copied into ``keys_path`` before launch."""

    force_sealing: bool = False
    """Seal blocks without waiting for transactions."""

    no_discovery: bool = True
    """Disable peer discovery so the topology is fully controlled by the test."""

    no_miner: bool = False
    """Disable block production entirely."""

    binary_args: tuple[str, ...] = ()
    """Arguments placed right after the executable."""

    extra_args: tuple[str, ...] = field(default=())
    """Additional raw arguments appended to the command line."""

    @property
    def db_path(self) -> Path:
        """Chain database directory."""
        return self.base_path / "db"

    @property
    def keys_path(self) -> Path:
        """Key store directory."""
        return self.base_path / "keys"

    @property
    def rpc_endpoint(self) -> str:
        """URL of the JSON-RPC server."""
        return f"http://127.0.0.1:{self.rpc_port}"

    def argv(self) -> list[str]:
        """
        Build the full command line.

        Returns:
            Executable followed by its arguments.
        """
        args = [
            str(self.binary),
            *self.binary_args,
            "--chain",
            str(self.chain),
            "--base-path",
            str(self.base_path),
            "--db-path",
            str(self.db_path),
            "--keys-path",
            str(self.keys_path),
            "--port",
            str(self.p2p_port),
            "--jsonrpc-port",
            str(self.rpc_port),
            "--no-ipc",
        ]

        if self.engine_signer is not None:
            args += ["--engine-signer", self.engine_signer]
        if self.password_path is not None:
            args += ["--password-path", str(self.password_path)]
        if self.force_sealing:
            args.append("--force-sealing")
        if self.no_discovery:
            args.append("--no-discovery")
        if self.no_miner:
            args.append("--no-miner")

        args.extend(self.extra_args)
        return args

    @classmethod
    def for_identity(
        cls,
        config: HarnessConfig,
        identity: NodeIdentity,
        *,
        base_path: Path,
        p2p_port: int,
        rpc_port: int,
    ) -> LaunchConfig:
        """
        Derive launch settings for a roster identity.

        Validators force sealing. Nodes without a signer run with ``--no-miner``.
        """
        return cls(
            binary=config.binary,
            chain=config.chain,
            base_path=base_path,
            p2p_port=p2p_port,
            rpc_port=rpc_port,
            engine_signer=identity.signer,
            password_path=config.password_path,
            additional_keys_path=identity.keys_path or config.keys_path,
            force_sealing=identity.is_validator,
            no_discovery=True,
            no_miner=not identity.is_validator,
            binary_args=config.binary_args,
            extra_args=config.extra_args,
        )
