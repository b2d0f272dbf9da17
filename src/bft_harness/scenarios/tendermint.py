"""
Scenarios for a Tendermint-style validator network.

All scenarios start four validators with forced sealing and discovery
disabled, so connectivity is exactly what the recipe builds.
"""

from __future__ import annotations

from bft_harness.errors import RemoteError
from bft_harness.fanout import gather_all
from bft_harness.topology import chain, full_mesh

from .base import ScenarioContext, scenario

ENGINE_ERROR = "Engine"
"""Error class the engine reports for author queries beyond the best block."""


@scenario("possible_authors_latest", timeout=30)
async def possible_authors_latest(ctx: ScenarioContext) -> None:
    """Every node reports the full ordered roster as possible authors of the latest block."""
    expected = list(ctx.roster.validators)
    reported = await ctx.tracker.should_fulfill(
        "possible authors",
        gather_all(*(node.get_possible_authors(None) for node in ctx.nodes)),
    )

    mismatches = {i: authors for i, authors in enumerate(reported) if authors != expected}
    if mismatches:
        raise AssertionError(f"Possible authors differ from {expected}: {mismatches}")


@scenario("possible_authors_genesis", timeout=30)
async def possible_authors_genesis(ctx: ScenarioContext) -> None:
    """Every node reports the genesis author alone for block 0."""
    expected = ctx.roster.genesis_authors
    reported = await ctx.tracker.should_fulfill(
        "genesis authors",
        gather_all(*(node.get_possible_authors(0) for node in ctx.nodes)),
    )

    mismatches = {i: authors for i, authors in enumerate(reported) if authors != expected}
    if mismatches:
        raise AssertionError(f"Genesis authors differ from {expected}: {mismatches}")


@scenario("possible_authors_beyond_tip", timeout=30)
async def possible_authors_beyond_tip(ctx: ScenarioContext) -> None:
    """Author queries past the best block are rejected by every node, however far past."""
    current = await ctx.nodes[0].get_best_block_number()

    # Each node is asked independently. Outcomes are reconciled at the end
    # so one wrong answer does not hide another.
    for node, distance in zip(ctx.nodes, (10, 100, 1000, 10000), strict=False):
        ctx.tracker.track_rejection(
            f"{node.name} authors at tip+{distance}",
            node.get_possible_authors(current + distance),
            match=ENGINE_ERROR,
            error_type=RemoteError,
        )

    await ctx.tracker.wait_all(timeout=ctx.step_timeout())


@scenario("block_generation", timeout=60)
async def block_generation(ctx: ScenarioContext) -> None:
    """A fully meshed validator set produces blocks on every node."""
    nodes = ctx.nodes
    start_height = await nodes[0].get_best_block_number()

    await ctx.connect("connect", full_mesh(len(nodes)))
    await ctx.wait_peers("wait peers", nodes, len(nodes) - 1)
    await ctx.wait_block_number("block generation", nodes, start_height + 1)


@scenario("block_generation_with_restart", timeout=40)
async def block_generation_with_restart(ctx: ScenarioContext) -> None:
    """Blocks survive a restart of every node and production resumes afterwards."""
    nodes = ctx.nodes
    start_height = await nodes[0].get_best_block_number()

    await ctx.connect("connect", full_mesh(len(nodes)))
    await ctx.wait_peers("wait peers", nodes, len(nodes) - 1)
    await ctx.wait_block_number("block generation", nodes, start_height + 1)

    await ctx.tracker.should_fulfill("restart", ctx.cluster.restart_all())

    intermediate_height = await nodes[0].get_best_block_number()
    if intermediate_height <= start_height:
        raise AssertionError(
            f"Height did not survive restart: {intermediate_height} <= {start_height}"
        )

    await ctx.connect("reconnect", full_mesh(len(nodes)))
    await ctx.wait_peers("wait peers2", nodes, len(nodes) - 1)
    await ctx.wait_block_number("block generation2", nodes, intermediate_height + 1)


@scenario("block_generation_with_transaction", timeout=60)
async def block_generation_with_transaction(ctx: ScenarioContext) -> None:
    """Pay transactions are accepted and blocks keep coming."""
    nodes = ctx.nodes

    await ctx.connect("connect", full_mesh(len(nodes)))
    await ctx.wait_peers("wait peers", nodes, len(nodes) - 1)

    start_height = await nodes[0].get_best_block_number()
    await ctx.tracker.should_fulfill(
        "payTx",
        gather_all(*(nodes[0].send_pay_tx(seq) for seq in range(3))),
    )

    await ctx.wait_block_number("block generation", nodes, start_height + 1)


@scenario("block_sync", timeout=90)
async def block_sync(ctx: ScenarioContext) -> None:
    """A late validator syncs and takes over after the first producer is cut off."""
    nodes = ctx.nodes
    start_height = await nodes[0].get_best_block_number()

    await ctx.connect("connect", [(0, 1), (0, 2), (1, 2)])
    await ctx.wait_peers("wait peers", nodes[:3], 2)
    await ctx.wait_block_number("wait blocknumber", nodes[:3], start_height + 3)

    await ctx.disconnect("disconnect", [(0, 1), (0, 2)])

    # Blocks are now made without node 0. Node 3 has to sync everything
    # and take part for the chain to advance.
    await ctx.connect("reconnect", [(3, 1), (3, 2)])

    height_of_node0 = await nodes[0].get_best_block_number()
    await ctx.cluster.diagnostics("partitioned")
    await ctx.wait_block_number("best blocknumber", nodes[1:4], height_of_node0 + 1)


@scenario("gossip", timeout=20)
async def gossip(ctx: ScenarioContext) -> None:
    """Blocks relay along a chain of validators."""
    nodes = ctx.nodes
    start_height = await nodes[0].get_best_block_number()

    await ctx.connect("connect", chain(len(nodes)))
    await ctx.wait_block_number("wait blocknumber", nodes, start_height + 1)


@scenario("gossip_with_non_permissioned_node", timeout=60)
async def gossip_with_non_permissioned_node(ctx: ScenarioContext) -> None:
    """Two non-validating nodes bridge two halves of the validator set."""
    observers = [ctx.cluster.add_observer(), ctx.cluster.add_observer()]
    await ctx.tracker.should_fulfill("start observers", ctx.cluster.start_all(observers))

    nodes = ctx.nodes
    start_height = await nodes[0].get_best_block_number()

    # 4 <-> 5
    # 0 <-> 4, 1 <-> 4
    # 2 <-> 5, 3 <-> 5
    await ctx.connect("connect", [(4, 5), (4, 0), (4, 1), (5, 2), (5, 3)])
    await ctx.wait_block_number("wait blocknumber", nodes, start_height + 1)
