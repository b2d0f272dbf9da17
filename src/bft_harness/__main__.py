"""
Harness CLI entry point.

Run consensus scenarios against a node binary.

Usage::

    python -m bft_harness --config harness.yaml --roster roster.yaml
    python -m bft_harness --config harness.yaml --roster roster.yaml --scenario block_sync
    python -m bft_harness --list

Options:
    --config       Path to harness YAML file (binary, chain, timeouts, ports)
    --roster       Path to validator roster YAML file
    --scenario     Scenario to run (can be repeated; default: all)
    --list         List registered scenarios and exit
    --metrics-out  Write Prometheus metrics of the run to this file
    -v, --verbose  Enable debug logging (includes node output)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from bft_harness.config import HarnessConfig
from bft_harness.metrics import generate_metrics
from bft_harness.roster import ValidatorRoster
from bft_harness.scenarios import SCENARIOS, Scenario, ScenarioResult, ScenarioRunner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Command-line interface of the harness."""
    parser = argparse.ArgumentParser(
        prog="bft-harness",
        description="Multi-node liveness and safety scenarios for BFT consensus networks",
    )
    parser.add_argument("--config", type=Path, help="Path to harness YAML file")
    parser.add_argument("--roster", type=Path, help="Path to validator roster YAML file")
    parser.add_argument(
        "--scenario",
        action="append",
        dest="scenarios",
        metavar="NAME",
        help="Scenario to run (can be specified multiple times; default: all)",
    )
    parser.add_argument("--list", action="store_true", help="List scenarios and exit")
    parser.add_argument("--metrics-out", type=Path, help="Write Prometheus metrics to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def select_scenarios(names: list[str] | None) -> list[Scenario]:
    """
    Resolve scenario names, keeping registration order when none are given.

    Raises:
        KeyError: If a name is not registered.
    """
    if not names:
        return list(SCENARIOS.values())
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise KeyError(f"Unknown scenario(s): {', '.join(unknown)}")
    return [SCENARIOS[n] for n in names]


async def run(config: HarnessConfig, roster: ValidatorRoster, scenarios: list[Scenario]) -> int:
    """
    Run scenarios sequentially and print a summary.

    Returns:
        Process exit code: 0 when every scenario passed, 1 otherwise.
    """
    runner = ScenarioRunner(config=config, roster=roster)
    results: list[ScenarioResult] = await runner.run_many(scenarios)

    for result in results:
        print(result.summary())

    failed = sum(1 for r in results if not r.passed)
    print(f"{len(results) - failed} passed, {failed} failed")
    return 1 if failed else 0


def main(argv: list[str] | None = None) -> int:
    """Entry point of the ``bft-harness`` command."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.list:
        for s in SCENARIOS.values():
            print(f"{s.name:<36} {s.timeout:>5.0f}s  {s.description}")
        return 0

    if args.config is None or args.roster is None:
        logger.error("--config and --roster are required to run scenarios")
        return 2

    try:
        scenarios = select_scenarios(args.scenarios)
    except KeyError as e:
        logger.error("%s", e.args[0])
        return 2

    config = HarnessConfig.from_yaml_file(args.config)
    roster = ValidatorRoster.from_yaml_file(args.roster)

    try:
        code = asyncio.run(run(config, roster, scenarios))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        code = 130

    if args.metrics_out is not None:
        args.metrics_out.write_bytes(generate_metrics())
        logger.info("Wrote metrics to %s", args.metrics_out)

    return code


if __name__ == "__main__":
    sys.exit(main())
