"""
Workflow graph - editor-side model, store and history.

This package provides:
- Node/Edge/Workflow models (tagged union keyed by node kind)
- GraphStore: single owner of the live graph, with change notifications
- HistoryManager: bounded, coalescing undo/redo
"""

from .models import (
    BaseNode,
    Edge,
    GraphSnapshot,
    Node,
    NodeKind,
    Position,
    Workflow,
    parse_node,
)
from .store import ChangeAction, Connection, GraphChange, GraphStore
from .history import HistoryManager

__all__ = [
    # Models
    "BaseNode",
    "Edge",
    "GraphSnapshot",
    "Node",
    "NodeKind",
    "Position",
    "Workflow",
    "parse_node",
    # Store
    "ChangeAction",
    "Connection",
    "GraphChange",
    "GraphStore",
    # History
    "HistoryManager",
]
