"""Chain manager: tracks registered nodes and the order of the chain."""

from __future__ import annotations

import logging
import random
import threading
from typing import Optional

import grpc

from .config import NodeInfo
from .errors import RpcError

log = logging.getLogger(__name__)


class Manager:
    """Collects node registrations and builds the chain once enough arrive."""

    def __init__(self, expected_count: int) -> None:
        self._lock = threading.Lock()
        self._nodes: dict[str, NodeInfo] = {}
        self._order: list[str] = []
        self._status: dict[str, bool] = {}
        self._expected_count = expected_count
        self._chain_built = False

    def register_node(self, node_id: str, address: str) -> None:
        """Record a node; the first registration fixes its place in the chain."""
        with self._lock:
            if node_id not in self._nodes:
                self._order.append(node_id)
            self._nodes[node_id] = NodeInfo(id=node_id, addr=address)
            self._status[node_id] = True
            log.info("Registered node %s at %s", node_id, address)
            if len(self._nodes) == self._expected_count and not self._chain_built:
                for position, ident in enumerate(self._order):
                    node = self._nodes[ident]
                    node.is_head = position == 0
                    node.is_tail = position == len(self._order) - 1
                self._chain_built = True
                log.info("Chain finalized: %s", " -> ".join(self._order))

    def get_successor(self, node_id: str) -> Optional[NodeInfo]:
        """Return the node after node_id, or None if it has no successor."""
        with self._lock:
            if not self._chain_built:
                raise RpcError(grpc.StatusCode.FAILED_PRECONDITION, "Chain not finalized yet")
            for current, following in zip(self._order, self._order[1:]):
                if current == node_id:
                    nxt = self._nodes[following]
                    return NodeInfo(nxt.id, nxt.addr, nxt.is_head, nxt.is_tail)
            return None

    def heartbeat(self, node_id: str) -> None:
        """Mark a node as alive."""
        with self._lock:
            self._status[node_id] = True

    def is_alive(self, node_id: str) -> bool:
        """Whether the node has registered or sent a heartbeat."""
        with self._lock:
            return self._status.get(node_id, False)

    def _pick(self, index: int) -> NodeInfo:
        if not self._chain_built or not self._order:
            raise RpcError(
                grpc.StatusCode.FAILED_PRECONDITION, "Chain not finalized or no nodes registered"
            )
        node_id = self._order[index]
        node = self._nodes.get(node_id)
        if node is None:
            raise RpcError(grpc.StatusCode.INTERNAL, f"Node {node_id} not found in registry")
        return node

    def get_write_head(self) -> NodeInfo:
        """Return the head of the chain, where writes go."""
        with self._lock:
            head = self._pick(0)
            return NodeInfo(id=head.id, addr=head.addr, is_head=True, is_tail=False)

    def get_read_node(self) -> NodeInfo:
        """Return a randomly chosen chain member to read from."""
        with self._lock:
            index = random.randrange(len(self._order)) if self._order else 0
            node = self._pick(index)
            return NodeInfo(node.id, node.addr, index == 0, index == len(self._order) - 1)