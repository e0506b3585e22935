"""
Node Executor - runs one prompt node through the generation provider.

Per invocation:
1. Resolve ``{{variables}}`` in the node's prompts against the layered scope
2. Pick the response format (forced JSON schema for action nodes that carry one)
3. Call the provider
4. If the model paused with a question: get the answer, add it to the scope,
   resume the same conversation, repeat (bounded)
5. Record span and cost, return the final response

Provider errors are wrapped in GenerationFailed. Nothing is retried here.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Mapping
from typing import Any

from promptcascade.config import CascadeConfig
from promptcascade.errors import GenerationFailed, TooManyInterrupts
from promptcascade.graph.hitl import QuestionAsker
from promptcascade.graph.variables import VariableScope, build_system_variables, resolve
from promptcascade.llm.provider import GenerationProvider
from promptcascade.observability import set_trace_context
from promptcascade.runtime.telemetry import RunTelemetry
from promptcascade.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    NodeExecutionResult,
    NodeExecutionStatus,
    QuestionInterrupt,
    ResumeState,
)
from promptcascade.schemas.prompt_node import PromptNode, ResponseFormat
from promptcascade.schemas.telemetry import SpanStatus

logger = logging.getLogger(__name__)


def response_format_for(node: PromptNode) -> dict[str, Any] | None:
    """Response format to request for ``node`` (None = plain text)."""
    wants_schema = node.is_effective_action or node.response_format == ResponseFormat.JSON_SCHEMA
    if wants_schema and node.json_schema:
        if "schema" in node.json_schema:
            json_schema = dict(node.json_schema)
            json_schema.setdefault("name", _schema_name(node))
        else:
            json_schema = {"name": _schema_name(node), "schema": node.json_schema}
        return {"type": "json_schema", "json_schema": json_schema}
    if node.response_format in (ResponseFormat.JSON_OBJECT, ResponseFormat.JSON_SCHEMA):
        return {"type": "json_object"}
    return None


def _schema_name(node: PromptNode) -> str:
    name = re.sub(r"[^A-Za-z0-9_-]+", "_", node.name).strip("_")
    return (name or "response")[:64]


class NodeExecutor:
    """Executes single nodes, including the question/answer loop."""

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        telemetry: RunTelemetry | None = None,
        question_asker: QuestionAsker | None = None,
        config: CascadeConfig | None = None,
    ):
        self.provider = provider
        self.telemetry = telemetry or RunTelemetry()
        self.question_asker = question_asker
        self.config = config or CascadeConfig()

    def question_limit(self, node: PromptNode) -> int:
        return node.question_config.max_questions or self.config.max_question_attempts

    def build_request(
        self,
        node: PromptNode,
        scope: VariableScope,
        context_variables: Mapping[str, Any] | None = None,
    ) -> GenerationRequest:
        """Resolve prompts and merge generation parameters.

        Lookup order: run scope, then ``node.variables``, then
        ``context_variables`` (system variables when not given).
        """
        if context_variables is None:
            context_variables = build_system_variables(node)
        view = scope.layered(node.variables, context_variables)

        system_prompt = resolve(node.system_prompt, view)
        user_prompt = resolve(node.user_prompt, view)
        if not user_prompt.strip():
            user_prompt = system_prompt if system_prompt.strip() else self.config.fallback_message
            system_prompt = "" if user_prompt == system_prompt else system_prompt

        return GenerationRequest(
            node_id=node.id,
            node_name=node.name,
            model=node.model or self.config.model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            temperature=node.temperature,
            max_tokens=node.max_tokens or self.config.max_tokens,
            reasoning_effort=node.reasoning_effort,
            response_format=response_format_for(node),
            allow_questions=node.is_question,
        )

    async def run_node(
        self,
        node: PromptNode,
        scope: VariableScope,
        resume_state: ResumeState | None = None,
        *,
        context_variables: Mapping[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> NodeExecutionResult:
        """
        Run ``node`` to completion, interruption or cancellation.

        Args:
            node: The node to run (a fresh read from the store).
            scope: The run's variable scope; question answers are added to it.
            resume_state: Continuation from an earlier ``interrupted`` result,
                carrying the user's answer (or ``cancelled``).
            context_variables: Lower-priority variables (system variables).
            trace_id: Trace the spans belong to.

        Raises:
            GenerationFailed: the provider raised.
            TooManyInterrupts: more question round-trips than allowed.
        """
        set_trace_context(node_id=node.id)
        request = self.build_request(node, scope, context_variables)
        limit = self.question_limit(node)
        attempts = 0

        if resume_state is not None:
            if resume_state.cancelled or resume_state.answer is None:
                logger.info("Node %s: question cancelled, node not resumed", node.id)
                self.provider.discard(resume_state.response_id)
                return NodeExecutionResult(node_id=node.id, status=NodeExecutionStatus.CANCELLED)
            attempts = resume_state.attempts
            scope.set(resume_state.pending_variable_name, resume_state.answer)
            request = request.resumed(
                resume_state.response_id, resume_state.pending_variable_name, resume_state.answer
            )

        latency_ms = 0
        while True:
            outcome, call_latency = await self._generate(node, request, trace_id)
            latency_ms += call_latency
            if isinstance(outcome, GenerationResult):
                break

            interrupt = outcome
            if attempts >= limit:
                self.provider.discard(interrupt.response_id)
                raise TooManyInterrupts(node.id, attempts + 1, limit)
            attempts += 1
            logger.info(
                "Node %s asked question %d/%d (%s)",
                node.id,
                attempts,
                limit,
                interrupt.variable_name,
            )

            if self.question_asker is None:
                return NodeExecutionResult(
                    node_id=node.id,
                    status=NodeExecutionStatus.INTERRUPTED,
                    questions_asked=attempts,
                    interrupt=interrupt,
                    resume_state=ResumeState(
                        response_id=interrupt.response_id,
                        pending_variable_name=interrupt.variable_name,
                        attempts=attempts,
                        question=interrupt.question,
                    ),
                )

            answer = await self.question_asker.ask_question(interrupt)
            if answer is None:
                logger.info("Node %s: question cancelled by user", node.id)
                self.provider.discard(interrupt.response_id)
                return NodeExecutionResult(
                    node_id=node.id,
                    status=NodeExecutionStatus.CANCELLED,
                    questions_asked=attempts,
                    interrupt=interrupt,
                )
            scope.set(interrupt.variable_name, answer)
            request = request.resumed(interrupt.response_id, interrupt.variable_name, answer)

        result = outcome
        usage = result.usage
        await self.telemetry.record_cost(
            node.id,
            result.model or request.model,
            usage,
            response_id=result.response_id,
            finish_reason=result.finish_reason,
            latency_ms=latency_ms,
            trace_id=trace_id,
        )
        logger.info(
            "Node %s completed (%d tokens, %d ms)",
            node.id,
            usage.total_tokens,
            latency_ms,
            extra={"latency_ms": latency_ms, "tokens_used": usage.total_tokens},
        )
        return NodeExecutionResult(
            node_id=node.id,
            status=NodeExecutionStatus.SUCCEEDED,
            response=result.response,
            model=result.model or request.model,
            usage=usage,
            finish_reason=result.finish_reason,
            response_id=result.response_id,
            latency_ms=latency_ms,
            questions_asked=attempts,
        )

    async def _generate(
        self, node: PromptNode, request: GenerationRequest, trace_id: str | None
    ) -> tuple[GenerationResult | QuestionInterrupt, int]:
        """One provider call wrapped in a generation span."""
        span_id = await self.telemetry.start_span(trace_id, node.id)
        started = time.monotonic()
        try:
            outcome = await self.provider.generate(request)
        except Exception as e:
            error = GenerationFailed(node.id, e)
            logger.error("Generation failed for node %s: %s", node.id, e)
            await self.telemetry.fail_span(span_id, error)
            raise error from e
        latency_ms = int((time.monotonic() - started) * 1000)

        if isinstance(outcome, QuestionInterrupt):
            await self.telemetry.complete_span(
                span_id,
                SpanStatus.INTERRUPTED,
                output=outcome.question,
                latency_ms=latency_ms,
                response_id=outcome.response_id,
            )
        else:
            await self.telemetry.complete_span(
                span_id,
                SpanStatus.SUCCESS,
                output=outcome.response,
                latency_ms=latency_ms,
                usage=outcome.usage,
                response_id=outcome.response_id,
            )
        return outcome, latency_ms
