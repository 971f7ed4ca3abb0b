"""Command that runs one chain node."""

from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import time
from contextlib import ExitStack
from typing import Any, Optional, Sequence

import grpc

from . import config
from .config import NodeInfo
from .errors import RpcError
from .node import Node
from .server import NodeServer
from .storage import CraqStore
from .transport import ManagerClient, NodeClient, serve_node

__all__ = ["discover_successor", "main", "DEFAULT_CONFIG"]

log = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/config.json"


def discover_successor(
    manager_client: Any,
    node_id: str,
    max_retries: int = 30,
    retry_delay: float = 2.0,
) -> Optional[NodeInfo]:
    """Wait for the chain to be built and return this node's successor.

    Returns None when the node is the tail. Raises TimeoutError if the chain
    is still not finalized after max_retries attempts; other errors propagate.
    """
    for attempt in range(1, max_retries + 1):
        try:
            successor = manager_client.get_successor(node_id)
        except RpcError as exc:
            if exc.code != grpc.StatusCode.FAILED_PRECONDITION:
                raise
            log.warning(
                "Chain not finalized yet. Retrying in %ss... (attempt %d/%d)",
                retry_delay, attempt, max_retries,
            )
            time.sleep(retry_delay)
            continue
        if successor is None or not successor.addr:
            log.info("No successor. This node is the tail.")
            return None
        log.info("Successor address: %s", successor.addr)
        return successor
    raise TimeoutError(f"Unable to retrieve successor after {max_retries} attempts")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Join the chain and serve until interrupted; return the exit status."""
    parser = argparse.ArgumentParser(prog="craq-node", description="Run one CRAQ chain node.")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="path of the JSON config file")
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s %(filename)s:%(lineno)d %(message)s"
    )

    node_id = os.environ.get("NODE_ID", "")
    node_addr = os.environ.get("NODE_ADDRESS", "")
    if not node_id or not node_addr:
        log.error("NODE_ID, NODE_ADDRESS must be set")
        return 1

    try:
        cfg = config.load(args.config)
    except (OSError, ValueError) as exc:
        log.error("failed to load config: %s", exc)
        return 1

    with ExitStack() as stack:
        manager_client = stack.enter_context(ManagerClient(cfg.manager))
        try:
            log.info("Registering with manager: ID=%s Addr=%s", node_id, node_addr)
            manager_client.register_node(node_id, node_addr)
            log.info("Registered with manager as %s", node_id)

            successor_info = discover_successor(manager_client, node_id)
            successor = (
                stack.enter_context(NodeClient(successor_info.addr)) if successor_info else None
            )

            head = manager_client.get_write_head()
            log.info("Head node for write: %s (%s)", head.id, head.addr)

            store = stack.enter_context(CraqStore(cfg.db.addr))
            node = Node(node_id, node_id == head.id, successor_info is None, store, None, successor)
            server, _ = serve_node(NodeServer(node), node_addr)
        except (RpcError, OSError, sqlite3.Error) as exc:
            log.error("node start-up failed: %s", exc)
            return 1

        log.info(
            "Node started | ID: %s | Addr: %s | Head: %s | Tail: %s | Next: %s",
            node_id, node_addr, node.is_head, node.is_tail,
            successor_info.addr if successor_info else "nil",
        )
        try:
            server.wait_for_termination()
        except KeyboardInterrupt:
            server.stop(None)
    return 0