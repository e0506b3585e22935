"""Tests for RunState: lifecycle, node transitions, pending questions and previews."""

import asyncio

import pytest

from promptcascade.errors import RunAlreadyActive
from promptcascade.runtime.run_state import NodeRunStatus, RunMode, RunState
from promptcascade.schemas import ActionPreview, CascadeStatus, QuestionInterrupt, SkipReason


def _interrupt() -> QuestionInterrupt:
    return QuestionInterrupt(question="Tone?", variable_name="tone", response_id="r1")


def _preview() -> ActionPreview:
    return ActionPreview(node_id="n1", node_name="Outline", action="create_children_json")


class TestLifecycle:
    def test_start_and_finish(self):
        state = RunState()
        run_id = state.start(RunMode.CASCADE, "root", total_nodes=4)

        assert state.is_running
        assert state.run_id == run_id
        assert state.progress.total_nodes == 4

        state.finish(CascadeStatus.COMPLETED)

        assert state.status == CascadeStatus.COMPLETED
        assert state.finished_at is not None
        assert state.progress.current_node_id is None

    def test_second_start_while_running_is_rejected(self):
        state = RunState()
        state.start(RunMode.SINGLE, "a")
        with pytest.raises(RunAlreadyActive) as exc_info:
            state.start(RunMode.SINGLE, "b")
        assert exc_info.value.active_root_id == "a"
        assert exc_info.value.error_code == "CONCURRENT_EXECUTION"

    def test_finish_requires_terminal_status(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")
        with pytest.raises(ValueError):
            state.finish(CascadeStatus.RUNNING)

    def test_finish_requires_running(self):
        with pytest.raises(RuntimeError):
            RunState().finish(CascadeStatus.COMPLETED)

    def test_start_resets_previous_run(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")
        state.node_started("n1")
        state.node_failed("n1", "boom")
        state.finish(CascadeStatus.FAILED)

        state.start(RunMode.CASCADE, "root")

        assert state.node_statuses == {}
        assert state.node_errors == {}
        assert not state.cancel_requested

    def test_node_transitions(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root", total_nodes=2)

        state.node_started("n1", "First", depth=1)
        assert state.progress.current_node_id == "n1"
        assert state.progress.current_depth == 1
        state.node_succeeded("n1")
        state.node_skipped("n2", SkipReason.EXCLUDED)
        state.add_nodes(3)

        assert state.node_statuses == {
            "n1": NodeRunStatus.SUCCEEDED,
            "n2": NodeRunStatus.SKIPPED,
        }
        assert state.completed == ["n1"]
        assert state.skipped == [("n2", SkipReason.EXCLUDED)]
        assert state.progress.completed_nodes == 1
        assert state.progress.total_nodes == 5


class TestPauseAndCancel:
    @pytest.mark.asyncio
    async def test_pause_blocks_until_resume(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")
        state.pause()
        assert state.is_paused

        waiter = asyncio.create_task(state.wait_if_paused())
        await asyncio.sleep(0)
        assert not waiter.done()

        state.resume()
        assert await waiter is True

    @pytest.mark.asyncio
    async def test_cancel_releases_paused_run(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")
        state.pause()

        waiter = asyncio.create_task(state.wait_if_paused())
        await asyncio.sleep(0)
        state.request_cancel()

        assert await waiter is False
        assert state.cancel_requested

    def test_cancel_when_idle_is_ignored(self):
        state = RunState()
        state.request_cancel()
        assert not state.cancel_requested

    def test_pause_when_idle_is_ignored(self):
        state = RunState()
        state.pause()
        assert not state.is_paused


class TestPendingInteractions:
    @pytest.mark.asyncio
    async def test_question_answered(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")
        state.node_started("q1")

        task = asyncio.create_task(state.ask_question(_interrupt()))
        await asyncio.sleep(0)

        assert state.pending_question.node_id == "q1"
        assert state.node_statuses["q1"] == NodeRunStatus.INTERRUPTED
        state.answer_question("formal")

        assert await task == "formal"
        assert state.pending_question is None
        assert state.collected_question_vars == {"tone": "formal"}
        assert state.node_statuses["q1"] == NodeRunStatus.RESUMED

    @pytest.mark.asyncio
    async def test_cancel_resolves_pending_question(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")

        task = asyncio.create_task(state.ask_question(_interrupt()))
        await asyncio.sleep(0)
        state.request_cancel()

        assert await task is None
        assert state.collected_question_vars == {}

    def test_answer_without_pending_question(self):
        with pytest.raises(RuntimeError):
            RunState().answer_question("x")

    @pytest.mark.asyncio
    async def test_preview_resolved(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")

        task = asyncio.create_task(state.confirm(_preview()))
        await asyncio.sleep(0)
        assert state.pending_preview.preview.node_id == "n1"
        state.resolve_preview(approved=False)

        assert await task is False
        assert state.pending_preview is None

    @pytest.mark.asyncio
    async def test_skip_remaining_previews(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")

        task = asyncio.create_task(state.confirm(_preview()))
        await asyncio.sleep(0)
        state.resolve_preview(approved=True, skip_remaining=True)

        assert await task is True
        assert await state.confirm(_preview()) is True
        assert state.pending_preview is None

    @pytest.mark.asyncio
    async def test_cancel_rejects_pending_preview(self):
        state = RunState()
        state.start(RunMode.CASCADE, "root")

        task = asyncio.create_task(state.confirm(_preview()))
        await asyncio.sleep(0)
        state.request_cancel()

        assert await task is False

    def test_resolve_without_pending_preview(self):
        with pytest.raises(RuntimeError):
            RunState().resolve_preview(True)
