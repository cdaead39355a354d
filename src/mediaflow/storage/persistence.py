"""
Persistence Adapter - maps a live graph to its durable form and back.

``to_durable`` is lossy: runtime fields, derived artifacts and large inline
media are regenerated on the next run, so they are never stored.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from mediaflow.config import Settings, get_settings
from mediaflow.errors import PersistenceError
from mediaflow.graph.models import (
    DERIVED_KEYS,
    RUNTIME_KEYS,
    BaseNode,
    Edge,
    GraphSnapshot,
    Workflow,
    parse_node,
)
from mediaflow.observability import get_logger

logger = get_logger(__name__)

STRIPPED_KEYS = RUNTIME_KEYS | DERIVED_KEYS
INLINE_MEDIA_KEYS = ("imageBase64", "imageUrl", "videoUrl")

GraphLike = Union[Workflow, GraphSnapshot, Mapping[str, Any]]


def sanitize_node_data(
    data: Mapping[str, Any],
    inline_preview_max_chars: int,
) -> Dict[str, Any]:
    """
    Drop runtime fields and inline media too large to store.

    ``imageBase64`` is always inline; ``imageUrl`` and ``videoUrl`` are
    inline when they hold a ``data:`` URL. Either way the value is dropped
    once it is longer than ``inline_preview_max_chars``.
    """
    clean = {k: v for k, v in data.items() if k not in STRIPPED_KEYS}

    for key in INLINE_MEDIA_KEYS:
        value = clean.get(key)
        if not isinstance(value, str) or len(value) <= inline_preview_max_chars:
            continue
        if key == "imageBase64" or value.startswith("data:"):
            del clean[key]

    return clean


def _node_wire(node: Union[BaseNode, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(node, BaseNode):
        return node.to_wire()
    return dict(node)


def _edge_wire(edge: Union[Edge, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(edge, Edge):
        return edge.to_wire()
    return dict(edge)


def to_durable(graph: GraphLike, settings: Optional[Settings] = None) -> Dict[str, List[Dict[str, Any]]]:
    """
    Build the durable ``{"nodes": [...], "edges": [...]}`` definition.

    Accepts a Workflow, a GraphSnapshot or an already-durable mapping;
    applying it to its own output changes nothing.
    """
    settings = settings or get_settings()
    if isinstance(graph, Mapping):
        nodes = graph.get("nodes") or []
        edges = graph.get("edges") or []
    else:
        nodes, edges = graph.nodes, graph.edges

    durable_nodes = []
    for node in nodes:
        wire = _node_wire(node)
        data = wire.get("data")
        if isinstance(data, Mapping):
            wire["data"] = sanitize_node_data(data, settings.inline_preview_max_chars)
        durable_nodes.append(wire)

    return {
        "nodes": durable_nodes,
        "edges": [_edge_wire(edge) for edge in edges],
    }


def from_durable(record: Mapping[str, Any]) -> Workflow:
    """
    Load a Workflow from a stored record.

    Accepts ``{id, name, ownerId, nodes, edges}`` or the same with the
    graph nested under ``definition``. Missing collections default to empty,
    every node comes back idle, and edges whose endpoints are gone are
    dropped.

    Raises:
        PersistenceError: If the record cannot be parsed
    """
    definition = record.get("definition") or {}
    nodes_raw = record.get("nodes")
    if nodes_raw is None:
        nodes_raw = definition.get("nodes") or []
    edges_raw = record.get("edges")
    if edges_raw is None:
        edges_raw = definition.get("edges") or []

    try:
        nodes = [parse_node(node).idle() for node in nodes_raw]
        edges = [Edge.model_validate(dict(edge)) for edge in edges_raw]
    except (ValidationError, TypeError, ValueError) as e:
        raise PersistenceError(f"Invalid workflow record: {e}") from e

    known = {node.id for node in nodes}
    kept = [edge for edge in edges if edge.source in known and edge.target in known]
    if len(kept) != len(edges):
        logger.warning(
            f"Dropped {len(edges) - len(kept)} edge(s) with missing endpoints",
            extra={"workflow_id": record.get("id")},
        )

    try:
        return Workflow(
            id=record.get("id"),
            name=record.get("name") or "Untitled Workflow",
            owner_id=record.get("ownerId", record.get("owner_id")),
            nodes=nodes,
            edges=kept,
        )
    except ValidationError as e:
        raise PersistenceError(f"Invalid workflow record: {e}") from e


__all__ = ["from_durable", "sanitize_node_data", "to_durable"]
