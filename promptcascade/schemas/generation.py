"""Transient values exchanged with the generation provider.

These never outlive a run, so they are plain dataclasses rather than
pydantic models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


@dataclass
class GenerationRequest:
    """Everything the provider needs for one generation call."""

    node_id: str
    model: str
    system_prompt: str
    user_prompt: str
    node_name: str = ""
    temperature: float | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None
    # None for plain text, else {"type": "json_object"} or
    # {"type": "json_schema", "json_schema": {"name": ..., "schema": {...}}}
    response_format: dict[str, Any] | None = None
    allow_questions: bool = False

    # Resume of an interrupted call
    resume_response_id: str | None = None
    resume_answer: str | None = None
    resume_variable_name: str | None = None

    @property
    def is_resume(self) -> bool:
        return self.resume_response_id is not None

    def resumed(self, response_id: str, variable_name: str, answer: str) -> GenerationRequest:
        return replace(
            self,
            resume_response_id=response_id,
            resume_answer=answer,
            resume_variable_name=variable_name,
        )


@dataclass
class GenerationResult:
    """A completed generation."""

    response: str
    model: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: str = ""
    response_id: str | None = None
    raw_response: Any = None


@dataclass
class QuestionInterrupt:
    """The model paused to ask the user something."""

    question: str
    variable_name: str
    response_id: str
    description: str = ""


@dataclass
class ResumeState:
    """Continuation for resuming an interrupted node.

    Returned by ``NodeExecutor.run_node`` when no question asker is wired in;
    the caller fills in ``answer`` (or marks it cancelled) and passes it back.
    """

    response_id: str
    pending_variable_name: str
    attempts: int = 1
    question: str = ""
    answer: str | None = None
    cancelled: bool = False

    def with_answer(self, answer: str) -> ResumeState:
        return replace(self, answer=answer, cancelled=False)

    def cancel(self) -> ResumeState:
        return replace(self, answer=None, cancelled=True)


class NodeExecutionStatus(StrEnum):
    SUCCEEDED = "succeeded"
    INTERRUPTED = "interrupted"
    CANCELLED = "cancelled"


@dataclass
class NodeExecutionResult:
    """Result of running one node through the executor."""

    node_id: str
    status: NodeExecutionStatus
    response: str = ""
    model: str = ""
    usage: Usage = field(default_factory=Usage)
    finish_reason: str = ""
    response_id: str | None = None
    latency_ms: int = 0
    questions_asked: int = 0
    interrupt: QuestionInterrupt | None = None
    resume_state: ResumeState | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == NodeExecutionStatus.SUCCEEDED
