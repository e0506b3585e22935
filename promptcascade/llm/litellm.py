"""LiteLLM-backed generation provider.

Works with any model LiteLLM can route to (``openai/gpt-4o-mini``,
``anthropic/claude-sonnet-4-20250514``, ...). Question nodes are offered an
``ask_user_question`` tool; when the model calls it the provider returns a
QuestionInterrupt and keeps the conversation so far, keyed by response id,
until the caller resumes it with the user's answer.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any

import litellm

from promptcascade.llm.provider import ASK_QUESTION_TOOL, GenerationProvider
from promptcascade.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    QuestionInterrupt,
    Usage,
)

logger = logging.getLogger(__name__)

QUESTION_TOOL_SCHEMA: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": ASK_QUESTION_TOOL,
        "description": (
            "Ask the user a question when information needed to complete the task "
            "is missing. The answer is stored under variable_name."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The question to ask."},
                "variable_name": {
                    "type": "string",
                    "description": "Variable name the answer is stored under.",
                },
                "description": {
                    "type": "string",
                    "description": "Why the answer is needed.",
                },
            },
            "required": ["question", "variable_name"],
        },
    },
}


class LiteLLMGenerationProvider(GenerationProvider):
    """GenerationProvider that calls ``litellm.acompletion``."""

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        **extra_kwargs: Any,
    ):
        self.api_key = api_key
        self.api_base = api_base
        self.extra_kwargs = extra_kwargs
        # response_id -> (messages up to the question tool call, tool_call_id)
        self._suspended: dict[str, tuple[list[dict[str, Any]], str]] = {}

    def discard(self, response_id: str) -> None:
        """Drop a suspended conversation."""
        self._suspended.pop(response_id, None)

    async def generate(self, request: GenerationRequest) -> GenerationResult | QuestionInterrupt:
        messages = self._build_messages(request)

        kwargs: dict[str, Any] = {"model": request.model, "messages": messages, **self.extra_kwargs}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens
        if request.reasoning_effort:
            kwargs["reasoning_effort"] = request.reasoning_effort
        if request.response_format:
            kwargs["response_format"] = request.response_format
        if request.allow_questions:
            kwargs["tools"] = [QUESTION_TOOL_SCHEMA]
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        logger.debug(
            "litellm.acompletion model=%s messages=%d resume=%s",
            request.model,
            len(messages),
            request.is_resume,
        )
        response = await litellm.acompletion(**kwargs)

        choice = response.choices[0]
        message = choice.message
        response_id = getattr(response, "id", None) or uuid.uuid4().hex

        for tool_call in getattr(message, "tool_calls", None) or []:
            if tool_call.function.name != ASK_QUESTION_TOOL:
                continue
            return self._suspend(messages, message, tool_call, response_id)

        usage = getattr(response, "usage", None)
        return GenerationResult(
            response=message.content or "",
            model=getattr(response, "model", None) or request.model,
            usage=Usage(
                prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
                completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            ),
            finish_reason=choice.finish_reason or "",
            response_id=response_id,
            raw_response=response,
        )

    def _build_messages(self, request: GenerationRequest) -> list[dict[str, Any]]:
        if not request.is_resume:
            messages: list[dict[str, Any]] = []
            if request.system_prompt:
                messages.append({"role": "system", "content": request.system_prompt})
            messages.append({"role": "user", "content": request.user_prompt})
            return messages

        suspended = self._suspended.pop(request.resume_response_id, None)
        if suspended is None:
            raise ValueError(
                f"No suspended conversation for response id {request.resume_response_id}"
            )
        history, tool_call_id = suspended
        answer = {"variable_name": request.resume_variable_name, "answer": request.resume_answer}
        return [
            *history,
            {"role": "tool", "tool_call_id": tool_call_id, "content": json.dumps(answer)},
        ]

    def _suspend(
        self,
        messages: list[dict[str, Any]],
        message: Any,
        tool_call: Any,
        response_id: str,
    ) -> QuestionInterrupt:
        raw_arguments = tool_call.function.arguments or "{}"
        try:
            arguments = json.loads(raw_arguments)
        except json.JSONDecodeError:
            logger.warning("Question tool call had invalid arguments: %s", raw_arguments[:200])
            arguments = {}

        assistant_message = {
            "role": "assistant",
            "content": message.content or "",
            "tool_calls": [
                {
                    "id": tool_call.id,
                    "type": "function",
                    "function": {"name": ASK_QUESTION_TOOL, "arguments": raw_arguments},
                }
            ],
        }
        self._suspended[response_id] = ([*messages, assistant_message], tool_call.id)

        return QuestionInterrupt(
            question=arguments.get("question", ""),
            variable_name=arguments.get("variable_name") or f"answer_{len(self._suspended)}",
            description=arguments.get("description", ""),
            response_id=response_id,
        )
