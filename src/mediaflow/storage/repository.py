"""
Workflow Repository - durable workflows and run history.

An injected resource with an explicit lifecycle:

    async with WorkflowRepository(settings) as repo:
        saved = await repo.save_workflow(workflow, owner_id="user_1")

Reads are retried on transient database errors; every SQLAlchemy failure
surfaces as PersistenceError.
"""

import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from mediaflow.config import Settings, get_settings
from mediaflow.errors import PersistenceError
from mediaflow.graph.models import Workflow
from mediaflow.observability import get_logger, with_run_context
from mediaflow.runtime.models import NodeExecution, Run
from mediaflow.storage.database import (
    NodeExecutionRecord,
    WorkflowRecord,
    WorkflowRunRecord,
    as_utc,
    create_engine,
    create_session_factory,
    create_tables,
)
from mediaflow.storage.persistence import from_durable, to_durable
from mediaflow.storage.retry import retry_async

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StoredWorkflow:
    """A loaded workflow together with its owner."""
    workflow: Workflow
    owner_id: Optional[str]


class WorkflowRepository:
    """Async SQLAlchemy repository for workflows, runs and node executions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        self.settings = settings or get_settings()
        self._engine = engine
        self._owns_engine = engine is None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> "WorkflowRepository":
        """Create the engine (if not injected) and ensure tables exist."""
        if self._sessions is not None:
            return self
        if self._engine is None:
            self._engine = create_engine(self.settings)
        try:
            await create_tables(self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize database: {e}") from e
        self._sessions = create_session_factory(self._engine)
        logger.info("Repository opened")
        return self

    async def close(self) -> None:
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None
        self._sessions = None

    async def __aenter__(self) -> "WorkflowRepository":
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_open(self) -> bool:
        return self._sessions is not None

    def _session(self) -> AsyncSession:
        if self._sessions is None:
            raise PersistenceError("Repository is not open")
        return self._sessions()

    async def _read(self, query: Callable[[], Awaitable[T]], action: str) -> T:
        try:
            return await retry_async(
                query,
                attempts=self.settings.read_retry_attempts,
                delay_s=self.settings.read_retry_delay_s,
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to {action} after retries: {e}")
            raise PersistenceError(f"Failed to {action}") from e

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def get_workflow(self, workflow_id: str) -> Optional[StoredWorkflow]:
        """Load a workflow; runtime fields come back idle."""

        async def query() -> Optional[WorkflowRecord]:
            async with self._session() as session:
                return await session.get(WorkflowRecord, workflow_id)

        record = await self._read(query, "load workflow")
        if record is None:
            return None
        workflow = from_durable(
            {
                "id": record.id,
                "name": record.name,
                "ownerId": record.owner_id,
                "definition": record.definition,
            }
        )
        return StoredWorkflow(workflow=workflow, owner_id=record.owner_id)

    async def save_workflow(self, workflow: Workflow, owner_id: Optional[str] = None) -> Workflow:
        """
        Insert or update a workflow with its sanitized definition.

        Returns:
            The workflow as stored (sanitized, with its id)

        Raises:
            PersistenceError: If the write fails
        """
        workflow_id = workflow.id or str(uuid.uuid4())
        owner_id = owner_id or workflow.owner_id
        definition = to_durable(workflow, self.settings)

        try:
            async with self._session() as session:
                async with session.begin():
                    record = await session.get(WorkflowRecord, workflow_id)
                    if record is None:
                        session.add(
                            WorkflowRecord(
                                id=workflow_id,
                                name=workflow.name,
                                owner_id=owner_id,
                                definition=definition,
                            )
                        )
                    else:
                        record.name = workflow.name
                        record.definition = definition
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to save workflow: {e}",
                extra=with_run_context(workflow_id=workflow_id),
            )
            raise PersistenceError("Failed to save workflow") from e

        return from_durable(
            {"id": workflow_id, "name": workflow.name, "ownerId": owner_id, **definition}
        )

    async def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its run history. Returns False if absent."""
        run_ids = select(WorkflowRunRecord.id).where(WorkflowRunRecord.workflow_id == workflow_id)
        try:
            async with self._session() as session:
                async with session.begin():
                    await session.execute(
                        delete(NodeExecutionRecord).where(NodeExecutionRecord.run_id.in_(run_ids))
                    )
                    await session.execute(
                        delete(WorkflowRunRecord).where(WorkflowRunRecord.workflow_id == workflow_id)
                    )
                    result = await session.execute(
                        delete(WorkflowRecord).where(WorkflowRecord.id == workflow_id)
                    )
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to delete workflow") from e
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def record_run(self, run: Run, owner_id: Optional[str] = None) -> None:
        """Append a completed run with its node executions."""
        if run.workflow_id is None:
            raise PersistenceError("Cannot record a run without a workflow id")

        record = WorkflowRunRecord(
            id=run.id,
            workflow_id=run.workflow_id,
            owner_id=owner_id,
            status=run.status.value,
            started_at=run.started_at,
            finished_at=run.finished_at,
            node_executions=[
                NodeExecutionRecord(
                    position=position,
                    node_id=execution.node_id,
                    node_kind=execution.node_kind,
                    status=execution.status.value,
                    started_at=execution.started_at,
                    finished_at=execution.finished_at,
                    output=execution.output,
                    error=execution.error,
                )
                for position, execution in enumerate(run.node_executions)
            ],
        )
        try:
            async with self._session() as session:
                async with session.begin():
                    session.add(record)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to record run") from e

    async def list_runs(
        self,
        workflow_id: str,
        owner_id: Optional[str],
        limit: Optional[int] = None,
    ) -> List[Run]:
        """
        Most recent runs of a workflow for one owner, newest first.

        Returns an empty list when there is no identity.
        """
        if not owner_id:
            return []
        limit = limit or self.settings.run_list_limit

        async def query() -> List[WorkflowRunRecord]:
            async with self._session() as session:
                result = await session.execute(
                    select(WorkflowRunRecord)
                    .where(
                        WorkflowRunRecord.workflow_id == workflow_id,
                        WorkflowRunRecord.owner_id == owner_id,
                    )
                    .options(selectinload(WorkflowRunRecord.node_executions))
                    .order_by(WorkflowRunRecord.started_at.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())

        records = await self._read(query, "list runs")
        return [self._to_run(record) for record in records]

    @staticmethod
    def _to_run(record: WorkflowRunRecord) -> Run:
        return Run(
            id=record.id,
            workflow_id=record.workflow_id,
            status=record.status,
            started_at=as_utc(record.started_at),
            finished_at=as_utc(record.finished_at),
            node_executions=[
                NodeExecution(
                    node_id=execution.node_id,
                    node_kind=execution.node_kind,
                    status=execution.status,
                    started_at=as_utc(execution.started_at),
                    finished_at=as_utc(execution.finished_at),
                    output=execution.output,
                    error=execution.error,
                )
                for execution in record.node_executions
            ],
        )


__all__ = ["StoredWorkflow", "WorkflowRepository"]
