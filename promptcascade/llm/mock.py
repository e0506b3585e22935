"""Scripted generation provider for tests and offline demos."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from promptcascade.llm.provider import GenerationProvider
from promptcascade.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    QuestionInterrupt,
    Usage,
)

logger = logging.getLogger(__name__)

ScriptItem = str | GenerationResult | QuestionInterrupt | Exception | Callable[..., Any]


class MockGenerationProvider(GenerationProvider):
    """
    Replays scripted responses keyed by node id (or node name).

    Each script is a list consumed in order, one item per call. Items can be:
    - str: returned as a GenerationResult
    - GenerationResult / QuestionInterrupt: returned as-is
    - Exception: raised
    - callable(request): called, its return value handled as above

    When a node has no script (or its script is exhausted) ``default`` is
    returned. Every request is kept in ``calls``.
    """

    def __init__(
        self,
        scripts: dict[str, list[ScriptItem] | ScriptItem] | None = None,
        default: ScriptItem = "mock response",
        model: str = "mock-model",
    ):
        self._scripts: dict[str, list[ScriptItem]] = {
            key: list(value) if isinstance(value, list) else [value]
            for key, value in (scripts or {}).items()
        }
        self.default = default
        self.model = model
        self.calls: list[GenerationRequest] = []
        self.discarded: list[str] = []
        self._ids = itertools.count(1)

    def discard(self, response_id: str) -> None:
        self.discarded.append(response_id)

    def calls_for(self, node_id: str) -> list[GenerationRequest]:
        return [call for call in self.calls if call.node_id == node_id]

    @property
    def called_node_ids(self) -> list[str]:
        """Node ids in call order, without consecutive duplicates from resumes."""
        ordered: list[str] = []
        for call in self.calls:
            if not ordered or ordered[-1] != call.node_id or not call.is_resume:
                ordered.append(call.node_id)
        return ordered

    async def generate(self, request: GenerationRequest) -> GenerationResult | QuestionInterrupt:
        self.calls.append(request)
        item = self._next_item(request)
        if callable(item) and not isinstance(item, Exception):
            item = item(request)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, QuestionInterrupt):
            if not item.response_id:
                item = replace(item, response_id=f"mock-resp-{next(self._ids)}")
            return item
        if isinstance(item, GenerationResult):
            return item
        text = str(item)
        return GenerationResult(
            response=text,
            model=request.model or self.model,
            usage=Usage(prompt_tokens=10, completion_tokens=max(1, len(text) // 4)),
            finish_reason="stop",
            response_id=f"mock-resp-{next(self._ids)}",
        )

    def _next_item(self, request: GenerationRequest) -> ScriptItem:
        for key in (request.node_id, request.node_name):
            script = self._scripts.get(key)
            if script:
                return script.pop(0)
        return self.default
