"""
Compiled Graph - execution view of a graph snapshot.

Builds upstream/downstream maps from the edges (a target depends on its
source) and resolves a topological order before anything runs.
"""

import heapq
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mediaflow.errors import GraphCycleError
from mediaflow.graph.models import Edge, GraphSnapshot
from mediaflow.observability import get_logger

logger = get_logger(__name__)


@dataclass
class CompiledNode:
    """A node id with its position in the graph and its neighbours."""
    id: str
    kind: str
    index: int
    upstream: List[str] = field(default_factory=list)
    downstream: List[str] = field(default_factory=list)
    inputs: Dict[str, Edge] = field(default_factory=dict)


class CompiledGraph:
    """
    Snapshot of a graph ready for execution.

    Raises GraphCycleError on construction when no topological order
    exists, so a cyclic graph never starts running.
    """

    def __init__(self, snapshot: GraphSnapshot):
        self._nodes: Dict[str, CompiledNode] = {}
        self._build_nodes(snapshot)

        self._execution_order: List[str] = []
        self._compute_execution_order()

    def _build_nodes(self, snapshot: GraphSnapshot) -> None:
        for index, node in enumerate(snapshot.nodes):
            self._nodes[node.id] = CompiledNode(id=node.id, kind=node.kind, index=index)

        for edge in snapshot.edges:
            source = self._nodes.get(edge.source)
            target = self._nodes.get(edge.target)
            if source is None or target is None:
                logger.warning(f"Ignoring edge {edge.id} with a missing endpoint")
                continue
            if edge.source not in target.upstream:
                target.upstream.append(edge.source)
            if edge.target not in source.downstream:
                source.downstream.append(edge.target)
            target.inputs[edge.target_handle] = edge

    def _compute_execution_order(self) -> None:
        """
        Kahn's algorithm.

        Ties are broken by node insertion order, so the same graph always
        yields the same order.
        """
        in_degree: Dict[str, int] = {
            node_id: len(node.upstream) for node_id, node in self._nodes.items()
        }

        ready = [(node.index, node_id) for node_id, node in self._nodes.items() if in_degree[node_id] == 0]
        heapq.heapify(ready)
        order: List[str] = []

        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)

            for downstream_id in self._nodes[node_id].downstream:
                in_degree[downstream_id] -= 1
                if in_degree[downstream_id] == 0:
                    heapq.heappush(ready, (self._nodes[downstream_id].index, downstream_id))

        if len(order) != len(self._nodes):
            done = set(order)
            remaining = sorted(
                (node for node_id, node in self._nodes.items() if node_id not in done),
                key=lambda node: node.index,
            )
            raise GraphCycleError([node.id for node in remaining])

        self._execution_order = order

    @property
    def execution_order(self) -> List[str]:
        """Node ids in execution order."""
        return self._execution_order.copy()

    @property
    def node_ids(self) -> List[str]:
        return list(self._nodes.keys())

    def get_node(self, node_id: str) -> Optional[CompiledNode]:
        return self._nodes.get(node_id)

    def upstream(self, node_id: str) -> List[str]:
        node = self._nodes.get(node_id)
        return list(node.upstream) if node else []

    def downstream(self, node_id: str) -> List[str]:
        node = self._nodes.get(node_id)
        return list(node.downstream) if node else []

    def input_edge(self, node_id: str, handle: str) -> Optional[Edge]:
        """The edge feeding ``handle`` of a node, if connected."""
        node = self._nodes.get(node_id)
        return node.inputs.get(handle) if node else None

    def input_edges(self, node_id: str) -> List[Edge]:
        node = self._nodes.get(node_id)
        return list(node.inputs.values()) if node else []


__all__ = ["CompiledGraph", "CompiledNode"]
