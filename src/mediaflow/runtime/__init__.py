"""
Workflow Runtime - async DAG execution of media workflows.

This package provides:
- CompiledGraph: execution order and upstream/downstream maps
- WorkflowExecutor: pre-pass materialization and async execution
- Run / NodeExecution: run records
"""

from .models import NodeExecution, NodeStatus, Run, RunStatus
from .graph import CompiledGraph
from .nodes import DEFAULT_HANDLERS, NodeContext, NodeResult, node_value
from .executor import WorkflowExecutor

__all__ = [
    # Models
    "NodeExecution",
    "NodeStatus",
    "Run",
    "RunStatus",
    # Graph
    "CompiledGraph",
    # Handlers
    "DEFAULT_HANDLERS",
    "NodeContext",
    "NodeResult",
    "node_value",
    # Executor
    "WorkflowExecutor",
]
