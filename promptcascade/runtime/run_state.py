"""
Run State - observable state of the run in progress.

One RunState per engine instance. The walker drives it; callers (a UI,
the CLI, tests) read progress from it, answer pending questions and
previews through it, and request pause, resume or cancellation.

Cascade status machine::

    idle → running → completed | failed | cancelled
                   | depth_limit_reached | no_children_to_cascade

Cancellation is cooperative: it is observed between nodes, and it also
cancels any question or preview that is currently waiting.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from promptcascade.errors import RunAlreadyActive
from promptcascade.schemas.action import ActionPreview
from promptcascade.schemas.cascade import CascadeStatus, SkipReason
from promptcascade.schemas.generation import QuestionInterrupt

logger = logging.getLogger(__name__)


class RunMode(StrEnum):
    SINGLE = "single"
    CASCADE = "cascade"


class NodeRunStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    RESUMED = "resumed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


_TERMINAL = {
    CascadeStatus.COMPLETED,
    CascadeStatus.FAILED,
    CascadeStatus.CANCELLED,
    CascadeStatus.DEPTH_LIMIT_REACHED,
    CascadeStatus.NO_CHILDREN_TO_CASCADE,
}


@dataclass
class PendingQuestion:
    node_id: str | None
    interrupt: QuestionInterrupt
    future: asyncio.Future = field(repr=False)


@dataclass
class PendingPreview:
    preview: ActionPreview
    future: asyncio.Future = field(repr=False)


@dataclass
class RunProgress:
    current_node_id: str | None = None
    current_node_name: str = ""
    current_depth: int = 0
    completed_nodes: int = 0
    total_nodes: int = 0


class RunState:
    """Progress, pending interactions and control flags for the current run."""

    def __init__(self, skip_all_previews: bool = False):
        self.skip_all_previews = skip_all_previews
        self.status = CascadeStatus.IDLE
        self.mode: RunMode | None = None
        self.run_id: str | None = None
        self.root_id: str | None = None
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self.progress = RunProgress()
        self.node_statuses: dict[str, NodeRunStatus] = {}
        self.node_errors: dict[str, str] = {}
        self.completed: list[str] = []
        self.skipped: list[tuple[str, SkipReason]] = []
        self.collected_question_vars: dict[str, str] = {}
        self.pending_question: PendingQuestion | None = None
        self.pending_preview: PendingPreview | None = None
        self._cancel_requested = False
        self._not_paused = asyncio.Event()
        self._not_paused.set()

    # -------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.status == CascadeStatus.RUNNING

    @property
    def is_paused(self) -> bool:
        return not self._not_paused.is_set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def start(self, mode: RunMode, root_id: str, total_nodes: int = 0) -> str:
        """Reset per-run state and enter ``running``. Returns the new run id."""
        if self.is_running:
            raise RunAlreadyActive(self.root_id)
        self.status = CascadeStatus.RUNNING
        self.mode = mode
        self.run_id = uuid.uuid4().hex
        self.root_id = root_id
        self.started_at = datetime.now(UTC)
        self.finished_at = None
        self.progress = RunProgress(total_nodes=total_nodes)
        self.node_statuses = {}
        self.node_errors = {}
        self.completed = []
        self.skipped = []
        self.collected_question_vars = {}
        self.pending_question = None
        self.pending_preview = None
        self._cancel_requested = False
        self._not_paused.set()
        logger.info("Run %s started (%s, root=%s)", self.run_id, mode, root_id)
        return self.run_id

    def finish(self, status: CascadeStatus) -> None:
        if status not in _TERMINAL:
            raise ValueError(f"{status} is not a terminal run status")
        if not self.is_running:
            raise RuntimeError(f"Cannot finish a run in state {self.status}")
        self.status = status
        self.finished_at = datetime.now(UTC)
        self.progress.current_node_id = None
        self.progress.current_node_name = ""
        logger.info("Run %s finished: %s", self.run_id, status)

    def request_cancel(self) -> None:
        """Ask the run to stop at the next node boundary."""
        if not self.is_running:
            return
        self._cancel_requested = True
        self._not_paused.set()
        if self.pending_question is not None and not self.pending_question.future.done():
            self.pending_question.future.set_result(None)
        if self.pending_preview is not None and not self.pending_preview.future.done():
            self.pending_preview.future.set_result(False)
        logger.info("Cancellation requested for run %s", self.run_id)

    def pause(self) -> None:
        if self.is_running:
            self._not_paused.clear()

    def resume(self) -> None:
        self._not_paused.set()

    async def wait_if_paused(self) -> bool:
        """Block while paused. Returns False if the run was cancelled meanwhile."""
        await self._not_paused.wait()
        return not self._cancel_requested

    # -------------------------------------------------------------------
    # Node transitions
    # -------------------------------------------------------------------

    def node_started(self, node_id: str, node_name: str = "", depth: int = 0) -> None:
        self.node_statuses[node_id] = NodeRunStatus.RUNNING
        self.progress.current_node_id = node_id
        self.progress.current_node_name = node_name
        self.progress.current_depth = depth

    def node_interrupted(self, node_id: str) -> None:
        self.node_statuses[node_id] = NodeRunStatus.INTERRUPTED

    def node_resumed(self, node_id: str) -> None:
        self.node_statuses[node_id] = NodeRunStatus.RESUMED

    def node_succeeded(self, node_id: str) -> None:
        self.node_statuses[node_id] = NodeRunStatus.SUCCEEDED
        self.completed.append(node_id)
        self.progress.completed_nodes += 1

    def node_failed(self, node_id: str, error: str) -> None:
        self.node_statuses[node_id] = NodeRunStatus.FAILED
        self.node_errors[node_id] = error

    def node_cancelled(self, node_id: str) -> None:
        self.node_statuses[node_id] = NodeRunStatus.CANCELLED

    def node_skipped(self, node_id: str, reason: SkipReason) -> None:
        self.node_statuses[node_id] = NodeRunStatus.SKIPPED
        self.skipped.append((node_id, reason))

    def add_nodes(self, count: int) -> None:
        """Account for nodes spawned at runtime."""
        self.progress.total_nodes += count

    # -------------------------------------------------------------------
    # QuestionAsker / Confirmer
    # -------------------------------------------------------------------

    async def ask_question(self, interrupt: QuestionInterrupt) -> str | None:
        """Expose the question as pending and wait for ``answer_question``."""
        node_id = self.progress.current_node_id
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.pending_question = PendingQuestion(node_id=node_id, interrupt=interrupt, future=future)
        if node_id:
            self.node_interrupted(node_id)
        try:
            answer = await future
        finally:
            self.pending_question = None
        if answer is not None:
            self.collected_question_vars[interrupt.variable_name] = answer
            if node_id:
                self.node_resumed(node_id)
        return answer

    def answer_question(self, answer: str | None) -> None:
        """Resolve the pending question. None cancels it."""
        pending = self.pending_question
        if pending is None or pending.future.done():
            raise RuntimeError("No question is pending")
        pending.future.set_result(answer)

    async def confirm(self, preview: ActionPreview) -> bool:
        """Expose the action preview as pending and wait for ``resolve_preview``."""
        if self.skip_all_previews:
            return True
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self.pending_preview = PendingPreview(preview=preview, future=future)
        try:
            return bool(await future)
        finally:
            self.pending_preview = None

    def resolve_preview(self, approved: bool, skip_remaining: bool = False) -> None:
        """Approve or reject the pending preview; optionally auto-approve the rest of the run."""
        pending = self.pending_preview
        if pending is None or pending.future.done():
            raise RuntimeError("No action preview is pending")
        if skip_remaining:
            self.skip_all_previews = True
        pending.future.set_result(approved)
