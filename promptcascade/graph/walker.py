"""
Cascade Walker - depth-first execution of a prompt subtree.

The walker loads the subtree once and walks that snapshot with an explicit
stack, pre-order. Each node is re-read from the store right before it runs.
When an action node with ``auto_run_children`` creates children, those
children go on top of the stack: they run right after their creator and
before anything that was already waiting (the creator's own children, its
next sibling). Children created without ``auto_run_children`` are left for
a later run.

Every descent, into the tree or into spawned children, adds one to the
depth. A node at ``depth >= max_depth`` stops the walk with
``depth_limit_reached``; work already done is kept. Excluded nodes are
skipped before that check, so they never trigger it.

Failure policy:
- GenerationFailed aborts the whole run and is re-raised.
- TooManyInterrupts or a cancelled question fails only that node; its action
  and subtree are skipped and the walk continues with its siblings.
- Action failures are recorded on the node; the walk continues, including
  into the node's existing children.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from promptcascade.config import CascadeConfig
from promptcascade.errors import (
    GenerationFailed,
    NodeNotFound,
    RunAlreadyActive,
    TooManyInterrupts,
)
from promptcascade.graph.hitl import Confirmer, QuestionAsker
from promptcascade.graph.node_executor import NodeExecutor
from promptcascade.graph.post_processor import ActionPostProcessor
from promptcascade.graph.variables import VariableScope, build_system_variables
from promptcascade.llm.provider import GenerationProvider
from promptcascade.observability import set_trace_context
from promptcascade.runtime.run_state import RunMode, RunState
from promptcascade.runtime.telemetry import RunTelemetry
from promptcascade.schemas.cascade import (
    CascadeResult,
    CascadeStatus,
    NodeOutcome,
    SkippedNode,
    SkipReason,
)
from promptcascade.schemas.generation import NodeExecutionStatus
from promptcascade.schemas.prompt_node import PromptNode
from promptcascade.schemas.telemetry import ExecutionType, TraceStatus
from promptcascade.storage.tree_store import TreeStore

logger = logging.getLogger(__name__)

_TRACE_STATUS = {
    CascadeStatus.COMPLETED: TraceStatus.COMPLETED,
    CascadeStatus.DEPTH_LIMIT_REACHED: TraceStatus.COMPLETED,
    CascadeStatus.CANCELLED: TraceStatus.CANCELLED,
    CascadeStatus.FAILED: TraceStatus.FAILED,
}


@dataclass
class _WorkItem:
    node: PromptNode
    depth: int
    parent: PromptNode | None = None
    spawned: bool = False


@dataclass
class _Walk:
    """Mutable state of one run."""

    mode: RunMode
    root: PromptNode
    max_depth: int
    trace_id: str | None
    scope: VariableScope = field(default_factory=VariableScope)
    results: list[NodeOutcome] = field(default_factory=list)
    skipped: list[SkippedNode] = field(default_factory=list)
    previous_name: str | None = None
    previous_response: str | None = None


class CascadeWalker:
    """Runs cascades (a whole subtree) and single nodes with auto-run children."""

    def __init__(
        self,
        store: TreeStore,
        provider: GenerationProvider,
        *,
        run_state: RunState | None = None,
        telemetry: RunTelemetry | None = None,
        question_asker: QuestionAsker | None = None,
        confirmer: Confirmer | None = None,
        config: CascadeConfig | None = None,
    ):
        self.store = store
        self.config = config or CascadeConfig()
        self.run_state = run_state or RunState()
        self.telemetry = telemetry or RunTelemetry()
        self.executor = NodeExecutor(
            provider,
            telemetry=self.telemetry,
            question_asker=question_asker or self.run_state,
            config=self.config,
        )
        self.post_processor = ActionPostProcessor(
            store,
            confirmer=confirmer or self.run_state,
            telemetry=self.telemetry,
        )

    async def run_cascade(self, root_id: str, max_depth: int | None = None) -> CascadeResult:
        """Run ``root_id`` and every eligible descendant, depth-first."""
        return await self._run(root_id, RunMode.CASCADE, max_depth)

    async def run_single(self, node_id: str, max_depth: int | None = None) -> CascadeResult:
        """Run one node; if it auto-runs children, run those too."""
        return await self._run(node_id, RunMode.SINGLE, max_depth)

    # -------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------

    async def _run(self, root_id: str, mode: RunMode, max_depth: int | None) -> CascadeResult:
        if self.run_state.is_running:
            raise RunAlreadyActive(self.run_state.root_id)
        max_depth = self.config.max_depth if max_depth is None else max_depth
        root = await self.store.get_subtree(root_id)
        if root is None:
            raise NodeNotFound(root_id)

        if mode == RunMode.CASCADE and not root.children:
            logger.info("Node %s has no children to cascade", root_id)
            self.run_state.status = CascadeStatus.NO_CHILDREN_TO_CASCADE
            return CascadeResult(root_id=root_id, status=CascadeStatus.NO_CHILDREN_TO_CASCADE)
        if mode == RunMode.SINGLE:
            root = root.without_children()

        run_id = self.run_state.start(mode, root_id, total_nodes=1 + root.count_descendants())
        execution_type = (
            ExecutionType.CASCADE_TOP if mode == RunMode.CASCADE else ExecutionType.SINGLE
        )
        trace_id = await self.telemetry.start_trace(root_id, execution_type)
        set_trace_context(trace_id=trace_id, run_id=run_id)
        logger.info("Starting %s run at %s (max_depth=%d)", mode, root_id, max_depth)

        walk = _Walk(mode=mode, root=root, max_depth=max_depth, trace_id=trace_id)
        try:
            status = await self._walk(walk)
            self.run_state.finish(status)
        except asyncio.CancelledError:
            self._abandon(CascadeStatus.CANCELLED)
            await self.telemetry.complete_trace(
                trace_id, TraceStatus.CANCELLED, "Run task cancelled"
            )
            raise
        except Exception as e:
            self._abandon(CascadeStatus.FAILED)
            await self.telemetry.complete_trace(trace_id, TraceStatus.FAILED, str(e))
            raise

        summary = "Depth limit reached" if status == CascadeStatus.DEPTH_LIMIT_REACHED else None
        await self.telemetry.complete_trace(trace_id, _TRACE_STATUS[status], summary)
        logger.info(
            "Run %s finished: %s (%d visited, %d skipped)",
            run_id,
            status,
            len(walk.results),
            len(walk.skipped),
        )
        return CascadeResult(
            root_id=root_id,
            status=status,
            results=walk.results,
            skipped=walk.skipped,
            trace_id=trace_id,
            variables=walk.scope.to_dict(),
        )

    def _abandon(self, status: CascadeStatus) -> None:
        if self.run_state.is_running:
            self.run_state.finish(status)

    async def _walk(self, walk: _Walk) -> CascadeStatus:
        stack = [_WorkItem(walk.root, depth=0)]
        while stack:
            item = stack.pop()
            if not await self.run_state.wait_if_paused() or self.run_state.cancel_requested:
                logger.info("Run cancelled before node %s", item.node.id)
                return CascadeStatus.CANCELLED
            node = await self.store.get_node(item.node.id)
            if node is None:
                self._record_missing(walk, item)
                continue
            if node.exclude_from_cascade and not self._is_entry(walk, item):
                await self._skip_excluded(walk, node)
                continue
            if item.depth >= walk.max_depth:
                logger.warning(
                    "Depth limit %d reached at node %s; stopping", walk.max_depth, item.node.id
                )
                return CascadeStatus.DEPTH_LIMIT_REACHED
            followers = await self._visit(walk, item, node)
            stack.extend(reversed(followers))
        return CascadeStatus.COMPLETED

    @staticmethod
    def _is_entry(walk: _Walk, item: _WorkItem) -> bool:
        return item.depth == 0 and walk.mode == RunMode.SINGLE

    async def _skip_excluded(self, walk: _Walk, node: PromptNode) -> None:
        logger.info("Skipping excluded node %s and its subtree", node.id)
        self._skip(walk, node, SkipReason.EXCLUDED)
        await self.telemetry.record_skipped(walk.trace_id, node.id)

    # -------------------------------------------------------------------
    # Per node
    # -------------------------------------------------------------------

    def _record_missing(self, walk: _Walk, item: _WorkItem) -> None:
        logger.warning("Node %s disappeared before it could run", item.node.id)
        walk.results.append(
            NodeOutcome(
                node_id=item.node.id,
                node_name=item.node.name,
                depth=item.depth,
                success=False,
                error="Prompt not found",
            )
        )
        self._skip(walk, item.node, SkipReason.NOT_FOUND)

    async def _visit(self, walk: _Walk, item: _WorkItem, node: PromptNode) -> list[_WorkItem]:
        """Run ``node`` (freshly read); return the work items that should run next, in order."""
        if node.has_action_type_mismatch:
            logger.warning(
                "Node %s has post_action=%s but node_type=%s; running it as an action node",
                node.id,
                node.post_action,
                node.node_type,
            )

        logger.info(
            "Running %snode %s (%s) at depth %d",
            "spawned " if item.spawned else "",
            node.id,
            node.name,
            item.depth,
            extra={"depth": item.depth},
        )
        self.run_state.node_started(node.id, node.name, item.depth)
        context = build_system_variables(
            node,
            parent=item.parent,
            root=walk.root,
            previous_name=walk.previous_name,
            previous_response=walk.previous_response,
            cascade_level=item.depth,
        )
        outcome = NodeOutcome(node_id=node.id, node_name=node.name, depth=item.depth, success=False)

        try:
            execution = await self.executor.run_node(
                node, walk.scope, context_variables=context, trace_id=walk.trace_id
            )
        except TooManyInterrupts as e:
            logger.error("Node %s failed: %s", node.id, e)
            outcome.error = str(e)
            walk.results.append(outcome)
            self.run_state.node_failed(node.id, str(e))
            return []
        except GenerationFailed as e:
            outcome.error = str(e)
            walk.results.append(outcome)
            self.run_state.node_failed(node.id, str(e))
            raise

        if execution.status != NodeExecutionStatus.SUCCEEDED:
            outcome.error = "Question cancelled"
            walk.results.append(outcome)
            self.run_state.node_cancelled(node.id)
            return []

        executed = await self._save_output(node, execution.response)
        walk.previous_name = node.name
        walk.previous_response = execution.response
        outcome.success = True
        outcome.response = execution.response

        followers: list[_WorkItem] = []
        if node.is_effective_action:
            action_result = await self.post_processor.process_action(
                executed, execution.response, walk.scope, trace_id=walk.trace_id
            )
            outcome.action_status = action_result.status.value
            outcome.created_count = action_result.created_count
            if not action_result.success:
                outcome.error = action_result.error or action_result.reason
            elif action_result.children:
                self.run_state.add_nodes(len(action_result.children))
                if node.auto_run_children:
                    followers.extend(
                        _WorkItem(
                            child,
                            depth=item.depth + 1,
                            parent=executed if child.parent_id == node.id else item.parent,
                            spawned=True,
                        )
                        for child in action_result.children
                    )
                else:
                    logger.info(
                        "Node %s created %d children; auto_run_children is off",
                        node.id,
                        action_result.created_count,
                    )

        walk.results.append(outcome)
        self.run_state.node_succeeded(node.id)
        followers.extend(
            _WorkItem(child, depth=item.depth + 1, parent=executed) for child in item.node.children
        )
        return followers

    async def _save_output(self, node: PromptNode, response: str) -> PromptNode:
        try:
            return await self.store.update_node(node.id, {"output_response": response})
        except Exception:
            logger.exception("Could not save output of node %s (non-fatal)", node.id)
            return node.model_copy(update={"output_response": response})

    def _skip(self, walk: _Walk, node: PromptNode, reason: SkipReason) -> None:
        walk.skipped.append(SkippedNode(node_id=node.id, node_name=node.name, reason=reason))
        self.run_state.node_skipped(node.id, reason)
