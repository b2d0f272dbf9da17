"""JSON-RPC method names exposed by the node under test."""

from typing import Final

PING: Final = "ping"
"""Readiness probe. Answers "pong"."""

GET_BEST_BLOCK_NUMBER: Final = "chain_getBestBlockNumber"
"""Height of the node's best block."""

GET_POSSIBLE_AUTHORS: Final = "chain_getPossibleAuthors"
"""Validators eligible to author a block. Takes a block number or null for the latest."""

GET_PEER_COUNT: Final = "net_getPeerCount"
"""Number of currently connected peers."""

CONNECT: Final = "net_connect"
"""Ask the node to dial ``[host, port]``."""

DISCONNECT: Final = "net_disconnect"
"""Ask the node to drop its session with ``[host, port]``."""

SEND_PAY_TX: Final = "devel_sendPayTx"
"""Submit a pay transaction signed by the node's development account."""
