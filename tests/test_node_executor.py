"""Tests for NodeExecutor: request building, question loop, errors, telemetry."""

import pytest

from promptcascade.config import CascadeConfig
from promptcascade.errors import GenerationFailed, TooManyInterrupts
from promptcascade.graph.hitl import StaticAnswers
from promptcascade.graph.node_executor import NodeExecutor, response_format_for
from promptcascade.graph.variables import VariableScope
from promptcascade.llm.mock import MockGenerationProvider
from promptcascade.runtime.telemetry import RunTelemetry
from promptcascade.schemas import (
    NodeExecutionStatus,
    NodeType,
    PromptNode,
    QuestionConfig,
    QuestionInterrupt,
    ResponseFormat,
    SpanStatus,
)


def _config(**overrides) -> CascadeConfig:
    values = {
        "model": "openai/gpt-4o-mini",
        "max_tokens": 1000,
        "api_key": None,
        "max_depth": 99,
        "max_question_attempts": 3,
        "fallback_message": "Execute this prompt",
    }
    values.update(overrides)
    return CascadeConfig(**values)


class RecordingTelemetry(RunTelemetry):
    """Captures span and cost calls instead of persisting them."""

    def __init__(self):
        super().__init__()
        self.spans: list[tuple[str, SpanStatus]] = []
        self.failed: list[BaseException] = []
        self.costs = []

    async def start_span(self, trace_id, node_id, span_type=None):
        return f"span-{len(self.spans) + len(self.failed)}"

    async def complete_span(self, span_id, status=SpanStatus.SUCCESS, **kwargs):
        self.spans.append((span_id, status))

    async def fail_span(self, span_id, error):
        self.failed.append(error)

    async def record_cost(self, node_id, model, usage, **kwargs):
        record = await super().record_cost(node_id, model, usage, **kwargs)
        self.costs.append(record)
        return record


def _question(variable: str = "audience", text: str = "Who is the audience?") -> QuestionInterrupt:
    return QuestionInterrupt(question=text, variable_name=variable, response_id="")


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestBuildRequest:
    def test_resolves_with_layered_precedence(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config())
        node = PromptNode(
            id="n1",
            name="Writer",
            system_prompt="Topic: {{topic}}",
            user_prompt="Write for {{audience}} about {{q.node.name}}",
            variables={"topic": "node-topic", "audience": "node-audience"},
        )
        scope = VariableScope({"audience": "run-audience"})

        request = executor.build_request(node, scope)

        assert request.system_prompt == "Topic: node-topic"
        assert request.user_prompt == "Write for run-audience about Writer"

    def test_empty_user_prompt_uses_system_prompt(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config())
        node = PromptNode(id="n1", system_prompt="Summarize {{x}}", user_prompt="  ")

        request = executor.build_request(node, VariableScope({"x": "it"}))

        assert request.user_prompt == "Summarize it"
        assert request.system_prompt == ""

    def test_no_prompt_text_uses_fallback_message(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config(fallback_message="Go"))
        request = executor.build_request(PromptNode(id="n1"), VariableScope())
        assert request.user_prompt == "Go"

    def test_node_parameters_override_defaults(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config())
        node = PromptNode(
            id="n1",
            user_prompt="hi",
            model="anthropic/claude-3-5-sonnet",
            temperature=0.2,
            max_tokens=50,
            reasoning_effort="low",
        )

        request = executor.build_request(node, VariableScope())

        assert request.model == "anthropic/claude-3-5-sonnet"
        assert request.temperature == 0.2
        assert request.max_tokens == 50
        assert request.reasoning_effort == "low"

    def test_defaults_from_config(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config())
        request = executor.build_request(PromptNode(id="n1", user_prompt="hi"), VariableScope())
        assert request.model == "openai/gpt-4o-mini"
        assert request.max_tokens == 1000
        assert request.allow_questions is False

    def test_question_nodes_allow_questions(self):
        executor = NodeExecutor(MockGenerationProvider(), config=_config())
        node = PromptNode(id="n1", user_prompt="hi", node_type=NodeType.QUESTION)
        assert executor.build_request(node, VariableScope()).allow_questions is True


class TestResponseFormat:
    def test_plain_text(self):
        assert response_format_for(PromptNode(id="n")) is None

    def test_json_object(self):
        node = PromptNode(id="n", response_format=ResponseFormat.JSON_OBJECT)
        assert response_format_for(node) == {"type": "json_object"}

    def test_action_node_with_schema_forces_json_schema(self):
        schema = {"type": "object", "properties": {"items": {"type": "array"}}}
        node = PromptNode(id="n", name="Make items", node_type=NodeType.ACTION, json_schema=schema)

        fmt = response_format_for(node)

        assert fmt["type"] == "json_schema"
        assert fmt["json_schema"]["name"] == "Make_items"
        assert fmt["json_schema"]["schema"] == schema

    def test_wrapped_schema_keeps_given_name(self):
        wrapped = {"name": "custom", "schema": {"type": "object"}, "strict": True}
        node = PromptNode(
            id="n", response_format=ResponseFormat.JSON_SCHEMA, json_schema=wrapped
        )
        fmt = response_format_for(node)
        assert fmt["json_schema"]["name"] == "custom"
        assert fmt["json_schema"]["strict"] is True


# ---------------------------------------------------------------------------
# run_node
# ---------------------------------------------------------------------------


class TestRunNode:
    @pytest.mark.asyncio
    async def test_success_records_span_and_cost(self):
        provider = MockGenerationProvider({"n1": "the answer"})
        telemetry = RecordingTelemetry()
        executor = NodeExecutor(provider, telemetry=telemetry, config=_config())

        result = await executor.run_node(
            PromptNode(id="n1", user_prompt="q"), VariableScope(), trace_id="t1"
        )

        assert result.status == NodeExecutionStatus.SUCCEEDED
        assert result.response == "the answer"
        assert result.usage.prompt_tokens == 10
        assert telemetry.spans == [("span-0", SpanStatus.SUCCESS)]
        assert len(telemetry.costs) == 1
        assert telemetry.costs[0].node_id == "n1"
        assert telemetry.costs[0].cost_total_usd > 0

    @pytest.mark.asyncio
    async def test_provider_error_wrapped_in_generation_failed(self):
        provider = MockGenerationProvider({"n1": RuntimeError("provider down")})
        telemetry = RecordingTelemetry()
        executor = NodeExecutor(provider, telemetry=telemetry, config=_config())

        with pytest.raises(GenerationFailed) as exc_info:
            await executor.run_node(PromptNode(id="n1", user_prompt="q"), VariableScope())

        assert exc_info.value.node_id == "n1"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert len(telemetry.failed) == 1
        assert telemetry.costs == []

    @pytest.mark.asyncio
    async def test_question_answered_and_resumed(self):
        provider = MockGenerationProvider({"q1": [_question(), "Written for engineers"]})
        asker = StaticAnswers({"audience": "engineers"})
        executor = NodeExecutor(provider, question_asker=asker, config=_config())
        scope = VariableScope()
        node = PromptNode(id="q1", user_prompt="Write", node_type=NodeType.QUESTION)

        result = await executor.run_node(node, scope)

        assert result.succeeded
        assert result.response == "Written for engineers"
        assert result.questions_asked == 1
        assert scope["audience"] == "engineers"
        assert [q.variable_name for q in asker.asked] == ["audience"]
        resume = provider.calls[1]
        assert resume.is_resume
        assert resume.resume_answer == "engineers"
        assert resume.resume_variable_name == "audience"
        assert resume.resume_response_id == "mock-resp-1"

    @pytest.mark.asyncio
    async def test_cancelled_question(self):
        provider = MockGenerationProvider({"q1": [_question(), "never"]})
        executor = NodeExecutor(provider, question_asker=StaticAnswers(), config=_config())
        scope = VariableScope()

        result = await executor.run_node(
            PromptNode(id="q1", node_type=NodeType.QUESTION), scope
        )

        assert result.status == NodeExecutionStatus.CANCELLED
        assert "audience" not in scope
        assert len(provider.calls) == 1
        assert provider.discarded == ["mock-resp-1"]

    @pytest.mark.asyncio
    async def test_too_many_interrupts(self):
        provider = MockGenerationProvider(default=lambda request: _question())
        asker = StaticAnswers(default="again")
        executor = NodeExecutor(provider, question_asker=asker, config=_config())

        node = PromptNode(id="q1", node_type=NodeType.QUESTION)
        with pytest.raises(TooManyInterrupts) as exc_info:
            await executor.run_node(node, VariableScope())

        assert exc_info.value.limit == 3
        # Three answered round-trips, the fourth interrupt raises
        assert len(asker.asked) == 3
        assert len(provider.calls) == 4
        assert provider.discarded == ["mock-resp-4"]

    @pytest.mark.asyncio
    async def test_node_question_limit_overrides_config(self):
        provider = MockGenerationProvider(default=lambda request: _question())
        asker = StaticAnswers(default="again")
        executor = NodeExecutor(provider, question_asker=asker, config=_config())
        node = PromptNode(
            id="q1", node_type=NodeType.QUESTION, question_config=QuestionConfig(max_questions=1)
        )

        with pytest.raises(TooManyInterrupts):
            await executor.run_node(node, VariableScope())

        assert len(asker.asked) == 1

    @pytest.mark.asyncio
    async def test_interrupt_without_asker_returns_resume_state(self):
        provider = MockGenerationProvider({"q1": [_question(), "done: {{audience}}"]})
        executor = NodeExecutor(provider, config=_config())
        node = PromptNode(id="q1", user_prompt="Write", node_type=NodeType.QUESTION)
        scope = VariableScope()

        first = await executor.run_node(node, scope)

        assert first.status == NodeExecutionStatus.INTERRUPTED
        assert first.interrupt.question == "Who is the audience?"
        state = first.resume_state
        assert state.pending_variable_name == "audience"
        assert state.attempts == 1

        second = await executor.run_node(node, scope, state.with_answer("managers"))

        assert second.succeeded
        assert scope["audience"] == "managers"
        assert provider.calls[1].resume_response_id == state.response_id
        assert provider.calls[1].resume_answer == "managers"

    @pytest.mark.asyncio
    async def test_resume_with_cancelled_state(self):
        provider = MockGenerationProvider({"q1": [_question()]})
        executor = NodeExecutor(provider, config=_config())
        node = PromptNode(id="q1", node_type=NodeType.QUESTION)
        scope = VariableScope()
        first = await executor.run_node(node, scope)

        result = await executor.run_node(node, scope, first.resume_state.cancel())

        assert result.status == NodeExecutionStatus.CANCELLED
        assert len(provider.calls) == 1
        assert provider.discarded == [first.resume_state.response_id]
