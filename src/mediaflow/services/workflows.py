"""
Workflow Service - ownership checks and the run sequence.

A run always goes: pre-pass -> sanitized save -> execute -> record run.
The run does not start until the save has completed; a failed save raises
PersistenceError.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError

from mediaflow.errors import (
    AccessDeniedError,
    AuthenticationRequiredError,
    InvalidWorkflowError,
    WorkflowNotFoundError,
)
from mediaflow.graph.models import Workflow
from mediaflow.graph.store import GraphStore
from mediaflow.observability import get_logger, with_run_context
from mediaflow.runtime.executor import WorkflowExecutor
from mediaflow.runtime.models import Run
from mediaflow.storage.repository import WorkflowRepository

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunOutcome:
    """A recorded run plus the graph as it stands afterwards (runtime fields included)."""
    run: Run
    workflow: Workflow


def parse_workflow(
    payload: Mapping[str, Any],
    workflow_id: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> Workflow:
    """
    Parse an editor payload ``{name, nodes, edges}``.

    Raises:
        InvalidWorkflowError: If the payload is not a valid workflow
    """
    data = dict(payload)
    if workflow_id is not None:
        data["id"] = workflow_id
    if owner_id is not None:
        data["ownerId"] = owner_id
    try:
        return Workflow.model_validate(data)
    except ValidationError as e:
        raise InvalidWorkflowError(f"Invalid workflow: {e.errors()[0]['msg']}") from e


def load_store(workflow: Workflow) -> GraphStore:
    """
    Build a GraphStore, passing every edge through connect validation.

    Raises:
        InvalidEdgeError: If an edge names an undeclared handle
    """
    store = GraphStore(workflow.model_copy(update={"edges": []}))
    for edge in workflow.edges:
        store.connect(edge)
    return store


class WorkflowService:
    """
    Workflow operations on behalf of an identity.

    ``owner_id`` is the already-resolved user id, or None when the caller
    is anonymous.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        executor: Optional[WorkflowExecutor] = None,
    ):
        self.repository = repository
        self.executor = executor or WorkflowExecutor(settings=repository.settings)

    @staticmethod
    def _require_identity(owner_id: Optional[str]) -> str:
        if not owner_id:
            raise AuthenticationRequiredError("Unauthorized")
        return owner_id

    async def _owned(self, workflow_id: str, owner_id: Optional[str]) -> Workflow:
        owner_id = self._require_identity(owner_id)
        stored = await self.repository.get_workflow(workflow_id)
        if stored is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_id}")
        if stored.owner_id != owner_id:
            raise AccessDeniedError("Forbidden")
        return stored.workflow

    async def create_workflow(self, payload: Mapping[str, Any], owner_id: Optional[str]) -> Workflow:
        owner_id = self._require_identity(owner_id)
        workflow = parse_workflow(payload, owner_id=owner_id)
        workflow = workflow.model_copy(update={"id": None})
        load_store(workflow)
        saved = await self.repository.save_workflow(workflow, owner_id)
        logger.info("Workflow created", extra=with_run_context(workflow_id=saved.id))
        return saved

    async def get_workflow(self, workflow_id: str, owner_id: Optional[str]) -> Workflow:
        return await self._owned(workflow_id, owner_id)

    async def update_workflow(
        self,
        workflow_id: str,
        payload: Mapping[str, Any],
        owner_id: Optional[str],
    ) -> Workflow:
        await self._owned(workflow_id, owner_id)
        workflow = parse_workflow(payload, workflow_id=workflow_id, owner_id=owner_id)
        load_store(workflow)
        return await self.repository.save_workflow(workflow, owner_id)

    async def delete_workflow(self, workflow_id: str, owner_id: Optional[str]) -> None:
        await self._owned(workflow_id, owner_id)
        await self.repository.delete_workflow(workflow_id)
        logger.info("Workflow deleted", extra=with_run_context(workflow_id=workflow_id))

    async def list_runs(self, workflow_id: str, owner_id: Optional[str]) -> List[Run]:
        """Recent runs; an anonymous caller gets an empty list, not an error."""
        if not owner_id:
            return []
        return await self.repository.list_runs(workflow_id, owner_id)

    async def run_workflow(
        self,
        workflow_id: str,
        owner_id: Optional[str],
        payload: Optional[Mapping[str, Any]] = None,
    ) -> RunOutcome:
        """
        Run a workflow.

        Args:
            workflow_id: Stored workflow id
            owner_id: Caller identity
            payload: The editor's current graph; the stored graph when omitted

        Raises:
            PersistenceError: If the pre-run save fails (nothing runs)
            GraphCycleError: If the graph has a cycle (nothing is extracted,
                saved or run)
        """
        stored = await self._owned(workflow_id, owner_id)
        workflow = (
            parse_workflow(payload, workflow_id=workflow_id, owner_id=owner_id)
            if payload is not None
            else stored
        )
        store = load_store(workflow)

        await self.executor.materialize(store)
        await self.repository.save_workflow(store.to_workflow(), owner_id)

        run = await self.executor.execute(store, workflow_id)
        await self.repository.record_run(run, owner_id)
        logger.info(
            f"Run recorded: {run.status.value}",
            extra=with_run_context(workflow_id=workflow_id, run_id=run.id),
        )
        return RunOutcome(run=run, workflow=store.to_workflow())


__all__ = ["RunOutcome", "WorkflowService", "load_store", "parse_workflow"]
