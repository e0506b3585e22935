"""Pydantic models for execution traces, spans and cost records.

One trace per top-level run (single node or cascade); one span per node
invocation; one cost record per completed generation.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


class ExecutionType(StrEnum):
    SINGLE = "single"
    CASCADE_TOP = "cascade_top"
    CASCADE_CHILD = "cascade_child"


class TraceStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SpanType(StrEnum):
    GENERATION = "generation"
    ACTION = "action"
    SKIPPED = "skipped"


class SpanStatus(StrEnum):
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"
    INTERRUPTED = "interrupted"


class ErrorEvidence(BaseModel):
    error_type: str
    error_message: str
    error_code: str | None = None
    retryable: bool = False


class TokenUsage(BaseModel):
    input: int = 0
    output: int = 0
    total: int = 0


class TraceRecord(BaseModel):
    trace_id: str
    entry_node_id: str
    execution_type: ExecutionType
    status: TraceStatus = TraceStatus.RUNNING
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    error_summary: str | None = None


class SpanRecord(BaseModel):
    span_id: str
    trace_id: str
    node_id: str
    span_type: SpanType = SpanType.GENERATION
    status: SpanStatus = SpanStatus.RUNNING
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    response_id: str | None = None
    output: str | None = None
    latency_ms: int | None = None
    usage: TokenUsage | None = None
    error_evidence: ErrorEvidence | None = None


class CostRecord(BaseModel):
    """Append-only cost ledger entry."""

    node_id: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_input_usd: float = 0.0
    cost_output_usd: float = 0.0
    cost_total_usd: float = 0.0
    response_id: str | None = None
    finish_reason: str | None = None
    latency_ms: int | None = None
    trace_id: str | None = None
    recorded_at: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}
