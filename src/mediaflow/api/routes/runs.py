"""Run routes."""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends

from mediaflow.api.deps import get_service, get_user_id
from mediaflow.api.routes.workflows import WorkflowPayload, workflow_response
from mediaflow.services import WorkflowService

router = APIRouter()


@router.get("/v1/workflows/{workflow_id}/runs")
async def list_runs(
    workflow_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> list[dict[str, Any]]:
    """
    Recent runs, newest first.

    Polled by the editor, so a missing identity yields [] rather than 401.
    """
    runs = await service.list_runs(workflow_id, user_id)
    return [run.to_wire() for run in runs]


@router.post("/v1/workflows/{workflow_id}/runs", status_code=201)
async def create_run(
    workflow_id: str,
    payload: Optional[WorkflowPayload] = Body(default=None),
    user_id: Optional[str] = Depends(get_user_id),
    service: WorkflowService = Depends(get_service),
) -> dict[str, Any]:
    """
    Run a workflow.

    With a body, the submitted graph is saved and run; without one, the
    stored graph is run.
    """
    outcome = await service.run_workflow(
        workflow_id,
        user_id,
        payload.model_dump() if payload is not None else None,
    )
    return {
        "run": outcome.run.to_wire(),
        "workflow": workflow_response(outcome.workflow),
    }
