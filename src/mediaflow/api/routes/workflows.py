"""Workflow CRUD routes."""
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from mediaflow.api.deps import get_service, get_user_id
from mediaflow.graph.models import Workflow
from mediaflow.services import WorkflowService

router = APIRouter()


class WorkflowPayload(BaseModel):
    """Graph as sent by the editor."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(default="Untitled Workflow", description="Workflow name")
    nodes: list[dict[str, Any]] = Field(default_factory=list, description="Nodes (wire format)")
    edges: list[dict[str, Any]] = Field(default_factory=list, description="Edges (wire format)")


def workflow_response(workflow: Workflow) -> dict[str, Any]:
    return workflow.model_dump(by_alias=True, mode="json")


@router.post("/v1/workflows", status_code=201)
async def create_workflow(
    payload: WorkflowPayload,
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> dict[str, Any]:
    workflow = await service.create_workflow(payload.model_dump(), user_id)
    return workflow_response(workflow)


@router.get("/v1/workflows/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> dict[str, Any]:
    """
    Get a workflow.

    Runtime fields come back idle; derived artifacts are regenerated on run.
    """
    workflow = await service.get_workflow(workflow_id, user_id)
    return workflow_response(workflow)


@router.put("/v1/workflows/{workflow_id}")
async def update_workflow(
    workflow_id: str,
    payload: WorkflowPayload,
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> dict[str, Any]:
    """Save the editor's graph (sanitized)."""
    workflow = await service.update_workflow(workflow_id, payload.model_dump(), user_id)
    return workflow_response(workflow)


@router.delete("/v1/workflows/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> dict[str, Any]:
    await service.delete_workflow(workflow_id, user_id)
    return {"success": True, "message": "Workflow deleted"}
