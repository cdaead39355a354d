"""
Workflow Executor - async DAG execution engine.

Every node is an asyncio task that waits for the terminal state of its
upstream nodes, then runs its kind's handler. Independent branches run
concurrently, bounded by ``max_concurrent_nodes``. Failures stay at the
node: dependents see no upstream value and fail with MissingInputError,
unrelated branches keep going.

Lifecycle updates are written through GraphStore.patch_node_data, so the
editor observes Idle -> Running -> Succeeded/Failed as it happens.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional, Tuple

from mediaflow.config import Settings, get_settings
from mediaflow.errors import WorkflowError
from mediaflow.graph.models import BaseNode, NodeKind
from mediaflow.graph.store import GraphStore
from mediaflow.integrations.gemini import GeminiClient
from mediaflow.media import extract_frame
from mediaflow.observability import get_logger, with_run_context
from mediaflow.runtime.graph import CompiledGraph
from mediaflow.runtime.models import (
    NodeExecution,
    NodeStatus,
    Run,
    RunStatus,
    utcnow,
)
from mediaflow.runtime.nodes import DEFAULT_HANDLERS, Handler, NodeContext, frame_source_key

logger = get_logger(__name__)


class WorkflowExecutor:
    """
    Async workflow executor.

    Usage:
        executor = WorkflowExecutor()
        await executor.materialize(store)
        run = await executor.execute(store, workflow_id="wf_1")
    """

    def __init__(
        self,
        handlers: Optional[Mapping[str, Handler]] = None,
        settings: Optional[Settings] = None,
        gemini: Optional[GeminiClient] = None,
    ):
        """
        Initialize executor.

        Args:
            handlers: Per-kind handler overrides (merged over the defaults)
            settings: Settings override
            gemini: Generative-text client used by llm nodes
        """
        self.settings = settings or get_settings()
        self._handlers: Dict[str, Handler] = {**DEFAULT_HANDLERS, **(handlers or {})}
        self._gemini = gemini or GeminiClient(self.settings)

    def register_handler(self, kind: str, handler: Handler) -> None:
        self._handlers[kind] = handler

    # ------------------------------------------------------------------
    # Pre-pass
    # ------------------------------------------------------------------

    async def materialize(self, store: GraphStore) -> int:
        """
        Extract frames for extract nodes whose inputs are known before the run.

        That is a video node with a URL on ``video_url`` and, on a connected
        ``timestamp`` handle, a text node. Results are written into the
        node's runtime fields, keyed by the video and timestamp they came
        from, so they are available before the graph is saved and run.
        Failures are logged and left for the run to report.

        Returns:
            Number of frames extracted

        Raises:
            GraphCycleError: If the graph has a cycle; nothing is extracted
        """
        graph = CompiledGraph(store.snapshot())

        extracted = 0
        for node in store.nodes:
            if node.kind != NodeKind.EXTRACT.value:
                continue
            inputs = self._prepass_inputs(store, graph, node)
            if inputs is None:
                continue

            video_url, timestamp = inputs
            source = frame_source_key(video_url, timestamp)
            if node.data.extracted_frame_url and node.data.extracted_frame_source == source:
                continue

            extra = with_run_context(
                workflow_id=store.workflow_id,
                node_id=node.id,
                node_kind=node.kind,
            )
            try:
                frame = await extract_frame(video_url, timestamp, settings=self.settings)
            except Exception as e:
                logger.warning(f"Frame pre-extraction failed: {e}", extra=extra)
                continue

            store.patch_node_data(
                node.id,
                {"extractedFrameUrl": frame, "extractedFrameSource": source, "output": frame},
            )
            extracted += 1
            logger.info("Frame pre-extracted", extra=extra)

        return extracted

    @staticmethod
    def _prepass_inputs(
        store: GraphStore,
        graph: CompiledGraph,
        node: BaseNode,
    ) -> Optional[Tuple[str, str]]:
        """Video URL and timestamp of an extract node, or None if they depend on the run."""
        edge = graph.input_edge(node.id, "video_url")
        video = store.get_node(edge.source) if edge else None
        if video is None or video.kind != NodeKind.VIDEO.value or not video.data.video_url:
            return None

        timestamp = node.data.timestamp
        edge = graph.input_edge(node.id, "timestamp")
        if edge is not None:
            upstream = store.get_node(edge.source)
            if upstream.kind != NodeKind.TEXT.value:
                return None
            timestamp = upstream.data.text or timestamp

        return video.data.video_url, str(timestamp)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def execute(self, store: GraphStore, workflow_id: Optional[str] = None) -> Run:
        """
        Execute the store's current graph.

        Args:
            store: Live graph store; lifecycle fields are patched into it
            workflow_id: Id recorded on the Run (defaults to the store's)

        Returns:
            The completed Run, NodeExecutions in topological order

        Raises:
            GraphCycleError: If the graph has a cycle; nothing is executed
        """
        graph = CompiledGraph(store.snapshot())
        order = graph.execution_order

        run = Run(workflow_id=workflow_id or store.workflow_id, status=RunStatus.RUNNING)
        run_extra = with_run_context(workflow_id=run.workflow_id, run_id=run.id)
        logger.info(f"Run started with {len(order)} nodes", extra=run_extra)

        done: Dict[str, asyncio.Event] = {node_id: asyncio.Event() for node_id in order}
        executions: Dict[str, NodeExecution] = {}
        slots = asyncio.Semaphore(self.settings.max_concurrent_nodes)

        async def run_when_ready(node_id: str) -> None:
            try:
                for upstream_id in graph.upstream(node_id):
                    await done[upstream_id].wait()
                async with slots:
                    executions[node_id] = await self._execute_node(store, graph, node_id, run)
            finally:
                done[node_id].set()

        await asyncio.gather(*(run_when_ready(node_id) for node_id in order))

        run.node_executions = [executions[node_id] for node_id in order]
        run.status = (
            RunStatus.FAILED
            if any(execution.is_error for execution in run.node_executions)
            else RunStatus.SUCCEEDED
        )
        run.finished_at = utcnow()
        logger.info(f"Run finished: {run.status.value}", extra=run_extra)
        return run

    async def _execute_node(
        self,
        store: GraphStore,
        graph: CompiledGraph,
        node_id: str,
        run: Run,
    ) -> NodeExecution:
        """Drive one node through Running to Succeeded or Failed."""
        node = store.get_node(node_id)
        extra = with_run_context(
            workflow_id=run.workflow_id,
            run_id=run.id,
            node_id=node.id,
            node_kind=node.kind,
        )

        running: Dict[str, Any] = {"isLoading": True, "error": None, "output": None}
        running.update({name: None for name in node.data.RESET_ON_RUN})
        node = store.patch_node_data(node_id, running)

        execution = NodeExecution(
            node_id=node.id,
            node_kind=node.kind,
            status=NodeStatus.RUNNING,
            started_at=utcnow(),
        )
        logger.debug("Node running", extra=extra)

        handler = self._handlers.get(node.kind)
        try:
            if handler is None:
                raise WorkflowError(f"No handler for node kind: {node.kind}")
            ctx = NodeContext(
                node=node,
                graph=graph,
                store=store,
                settings=self.settings,
                gemini=self._gemini,
            )
            result = await handler(ctx)
        except WorkflowError as e:
            error = str(e)
            logger.warning(f"Node failed: {error}", extra=extra)
        except Exception as e:
            error = f"Unexpected error: {e}"
            logger.exception("Node failed unexpectedly", extra=extra)
        else:
            store.patch_node_data(
                node_id,
                {"isLoading": False, "output": result.output, **result.derived},
            )
            execution.status = NodeStatus.SUCCEEDED
            execution.output = result.output
            execution.finished_at = utcnow()
            logger.debug("Node succeeded", extra=extra)
            return execution

        store.patch_node_data(node_id, {"isLoading": False, "error": error, "output": None})
        execution.status = NodeStatus.FAILED
        execution.error = error
        execution.finished_at = utcnow()
        return execution


__all__ = ["WorkflowExecutor"]
