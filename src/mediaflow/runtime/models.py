"""
Run Models - records of one execution of a workflow.

Serialized with camelCase keys (``workflowId``, ``startedAt``) to match the
editor's wire format.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Overall run status."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class NodeStatus(str, Enum):
    """Per-node lifecycle state within one run."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class NodeExecution(BaseModel):
    """Outcome of one node within a run."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    node_id: str
    node_kind: Optional[str] = None
    status: NodeStatus = NodeStatus.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    output: Any = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.status == NodeStatus.SUCCEEDED

    @property
    def is_error(self) -> bool:
        return self.status == NodeStatus.FAILED


class Run(BaseModel):
    """
    One execution of a workflow.

    NodeExecutions are listed in topological order.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: f"run_{uuid.uuid4().hex}")
    workflow_id: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    node_executions: List[NodeExecution] = Field(default_factory=list)

    @property
    def is_success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def get_execution(self, node_id: str) -> Optional[NodeExecution]:
        for execution in self.node_executions:
            if execution.node_id == node_id:
                return execution
        return None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


__all__ = [
    "NodeExecution",
    "NodeStatus",
    "Run",
    "RunStatus",
    "utcnow",
]
