"""
Graph Store - single owner of the live node/edge collections.

Every mutation is synchronous, replaces the current GraphSnapshot with a
new one and publishes a GraphChange to subscribers (history, UI bridges).
Snapshots are structurally shared: untouched nodes and edges are the same
objects in the old and new snapshot.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from mediaflow.errors import InvalidEdgeError, NodeNotFoundError
from mediaflow.graph.models import (
    DEFAULT_OUTPUT_HANDLE,
    BaseNode,
    Edge,
    GraphSnapshot,
    NodeKind,
    Position,
    Workflow,
    node_class,
)
from mediaflow.observability import get_logger

logger = get_logger(__name__)


class ChangeAction(str, Enum):
    """Kind of mutation applied to the graph."""
    ADD_NODE = "add_node"
    REMOVE_NODE = "remove_node"
    MOVE_NODE = "move_node"
    PATCH_DATA = "patch_data"
    CONNECT = "connect"
    RECONNECT = "reconnect"
    DISCONNECT = "disconnect"
    RESTORE = "restore"


@dataclass(frozen=True)
class GraphChange:
    """Notification published after every mutation."""
    action: ChangeAction
    previous: GraphSnapshot
    current: GraphSnapshot
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    fields: Tuple[str, ...] = ()
    # Runtime-only patches (run lifecycle) are not user edits
    transient: bool = False

    @property
    def coalesce_key(self) -> Optional[Tuple[Any, ...]]:
        """Key shared by consecutive edits that may merge into one history entry."""
        if self.action == ChangeAction.PATCH_DATA:
            return (self.action, self.node_id, tuple(sorted(self.fields)))
        if self.action == ChangeAction.MOVE_NODE:
            return (self.action, self.node_id)
        return None


Listener = Callable[[GraphChange], None]
PositionLike = Union[Position, Mapping[str, float], Tuple[float, float]]


def _as_position(value: Optional[PositionLike]) -> Position:
    if value is None:
        return Position()
    if isinstance(value, Position):
        return value
    if isinstance(value, tuple):
        return Position(x=value[0], y=value[1])
    return Position.model_validate(dict(value))


@dataclass(frozen=True)
class Connection:
    """New endpoints for an edge being reconnected."""
    source: str
    target: str
    source_handle: Optional[str] = DEFAULT_OUTPUT_HANDLE
    target_handle: Optional[str] = None


class GraphStore:
    """
    Explicit state container for one editor session.

    Not safe for concurrent mutation from several logical callers: the last
    write wins.

    Usage:
        store = GraphStore()
        img = store.add_node("image", (0, 0))
        crop = store.add_node("crop", (200, 0))
        store.connect(Edge(source=img.id, target=crop.id, target_handle="image_url"))
    """

    def __init__(self, workflow: Optional[Workflow] = None):
        self.workflow_id: Optional[str] = None
        self.name = "Untitled Workflow"
        self.owner_id: Optional[str] = None
        self._state = GraphSnapshot()
        self._listeners: List[Listener] = []

        if workflow is not None:
            self.workflow_id = workflow.id
            self.name = workflow.name
            self.owner_id = workflow.owner_id
            self._state = GraphSnapshot(
                nodes=tuple(workflow.nodes),
                edges=tuple(workflow.edges),
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return self._state

    @property
    def nodes(self) -> Tuple[BaseNode, ...]:
        return self._state.nodes

    @property
    def edges(self) -> Tuple[Edge, ...]:
        return self._state.edges

    def get_node(self, node_id: str) -> BaseNode:
        """Get node by id, raising NodeNotFoundError if absent."""
        node = self._state.get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def has_node(self, node_id: str) -> bool:
        return self._state.get_node(node_id) is not None

    def get_edge(self, edge_id: str) -> Optional[Edge]:
        for edge in self._state.edges:
            if edge.id == edge_id:
                return edge
        return None

    def incoming_edges(self, node_id: str) -> List[Edge]:
        return self._state.incoming(node_id)

    def to_workflow(self) -> Workflow:
        return Workflow(
            id=self.workflow_id,
            name=self.name,
            owner_id=self.owner_id,
            nodes=list(self._state.nodes),
            edges=list(self._state.edges),
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(
        self,
        action: ChangeAction,
        new_state: GraphSnapshot,
        **details: Any,
    ) -> GraphChange:
        change = GraphChange(
            action=action,
            previous=self._state,
            current=new_state,
            **details,
        )
        self._state = new_state
        for listener in list(self._listeners):
            listener(change)
        return change

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    def add_node(
        self,
        kind: Union[str, NodeKind],
        position: Optional[PositionLike] = None,
        *,
        node_id: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> BaseNode:
        """Create a node of ``kind`` with its default data."""
        cls = node_class(kind)
        kind_value = kind.value if isinstance(kind, NodeKind) else kind
        node_id = node_id or f"{kind_value}_{uuid.uuid4().hex[:8]}"
        if self.has_node(node_id):
            raise ValueError(f"Node id already exists: {node_id}")

        node = cls(id=node_id, position=_as_position(position))
        if data:
            node = node.with_data(data)

        self._commit(
            ChangeAction.ADD_NODE,
            GraphSnapshot(nodes=self._state.nodes + (node,), edges=self._state.edges),
            node_id=node.id,
        )
        logger.debug(f"Added node {node.id} ({kind_value})")
        return node

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it."""
        self.get_node(node_id)
        nodes = tuple(n for n in self._state.nodes if n.id != node_id)
        edges = tuple(
            e for e in self._state.edges
            if e.source != node_id and e.target != node_id
        )
        self._commit(
            ChangeAction.REMOVE_NODE,
            GraphSnapshot(nodes=nodes, edges=edges),
            node_id=node_id,
        )

    def move_node(self, node_id: str, position: PositionLike) -> BaseNode:
        node = self.get_node(node_id).with_position(_as_position(position))
        self._replace_node(node, ChangeAction.MOVE_NODE, fields=("position",))
        return node

    def patch_node_data(self, node_id: str, partial: Mapping[str, Any]) -> BaseNode:
        """
        Shallow-merge ``partial`` into the node's data.

        Unspecified fields are preserved. Keys may use the wire name
        (``isLoading``) or the Python name (``is_loading``).
        """
        current = self.get_node(node_id)
        node = current.with_data(partial)
        data_cls = type(current.data)
        fields = tuple(data_cls.wire_name(k) for k in partial)
        transient = bool(fields) and set(fields) <= data_cls.runtime_fields()
        self._replace_node(
            node,
            ChangeAction.PATCH_DATA,
            fields=fields,
            transient=transient,
        )
        return node

    def _replace_node(self, node: BaseNode, action: ChangeAction, **details: Any) -> None:
        nodes = tuple(node if n.id == node.id else n for n in self._state.nodes)
        self._commit(
            action,
            GraphSnapshot(nodes=nodes, edges=self._state.edges),
            node_id=node.id,
            **details,
        )

    # ------------------------------------------------------------------
    # Edge mutations
    # ------------------------------------------------------------------

    def _validated(self, edge: Edge, ignore_edge_id: Optional[str] = None) -> Edge:
        """Check an edge against the current graph; fills a missing target handle."""
        source = self._state.get_node(edge.source)
        target = self._state.get_node(edge.target)
        if source is None:
            raise InvalidEdgeError(f"Source node does not exist: {edge.source}")
        if target is None:
            raise InvalidEdgeError(f"Target node does not exist: {edge.target}")

        source_handle = edge.source_handle or DEFAULT_OUTPUT_HANDLE
        if source_handle not in source.OUTPUT_HANDLES:
            raise InvalidEdgeError(
                f"Node {source.id} ({source.kind}) has no output handle '{source_handle}'"
            )

        target_handle = edge.target_handle
        if target_handle is None:
            if len(target.INPUT_HANDLES) != 1:
                raise InvalidEdgeError(
                    f"Edge to {target.id} ({target.kind}) must name a target handle"
                )
            target_handle = target.INPUT_HANDLES[0]
        if target_handle not in target.INPUT_HANDLES:
            raise InvalidEdgeError(
                f"Node {target.id} ({target.kind}) has no input handle '{target_handle}'"
            )

        return edge.model_copy(
            update={"source_handle": source_handle, "target_handle": target_handle}
        )

    def _without_input(self, edges: Tuple[Edge, ...], edge: Edge) -> Tuple[Edge, ...]:
        """Drop any edge occupying the same (target, targetHandle) input."""
        return tuple(e for e in edges if e.input_key != edge.input_key)

    def connect(self, edge: Union[Edge, Mapping[str, Any]]) -> Edge:
        """
        Add an edge.

        A later connect to an occupied input replaces the prior edge.

        Raises:
            InvalidEdgeError: If an endpoint or handle does not exist
        """
        if not isinstance(edge, Edge):
            edge = Edge.model_validate(dict(edge))
        edge = self._validated(edge)

        edges = tuple(e for e in self._without_input(self._state.edges, edge) if e.id != edge.id)
        self._commit(
            ChangeAction.CONNECT,
            GraphSnapshot(nodes=self._state.nodes, edges=edges + (edge,)),
            edge_id=edge.id,
        )
        return edge

    def reconnect(self, old_edge: Union[Edge, str], new_endpoint: Connection) -> Edge:
        """Move an existing edge to new endpoints, keeping its id."""
        edge_id = old_edge if isinstance(old_edge, str) else old_edge.id
        current = self.get_edge(edge_id)
        if current is None:
            raise InvalidEdgeError(f"Edge does not exist: {edge_id}")

        moved = self._validated(
            current.model_copy(
                update={
                    "source": new_endpoint.source,
                    "source_handle": new_endpoint.source_handle,
                    "target": new_endpoint.target,
                    "target_handle": new_endpoint.target_handle,
                }
            )
        )

        kept = {
            e.id for e in self._without_input(
                tuple(e for e in self._state.edges if e.id != edge_id),
                moved,
            )
        }
        # Keep the edge's place in the collection
        edges: List[Edge] = []
        for e in self._state.edges:
            if e.id == edge_id:
                edges.append(moved)
            elif e.id in kept:
                edges.append(e)
        self._commit(
            ChangeAction.RECONNECT,
            GraphSnapshot(nodes=self._state.nodes, edges=tuple(edges)),
            edge_id=edge_id,
        )
        return moved

    def disconnect(self, edge_id: str) -> None:
        """Remove a single edge. Unknown ids are ignored."""
        if self.get_edge(edge_id) is None:
            return
        self._commit(
            ChangeAction.DISCONNECT,
            GraphSnapshot(
                nodes=self._state.nodes,
                edges=tuple(e for e in self._state.edges if e.id != edge_id),
            ),
            edge_id=edge_id,
        )

    # ------------------------------------------------------------------
    # Whole-state replacement
    # ------------------------------------------------------------------

    def restore(self, snapshot: GraphSnapshot) -> None:
        """Replace the whole graph state (used by undo/redo)."""
        self._commit(ChangeAction.RESTORE, snapshot)


__all__ = [
    "GraphStore",
    "GraphChange",
    "ChangeAction",
    "Connection",
]
