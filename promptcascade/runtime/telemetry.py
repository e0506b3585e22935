"""
Run telemetry - traces, spans and cost records for a run.

RunTelemetry wraps the TraceRecorder and CostLedger collaborators so that
recording can never break a run: every call is guarded, failures are
logged at WARNING and dropped. With no collaborators configured it only
hands out ids.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from promptcascade.errors import CascadeError, GenerationFailed
from promptcascade.llm.pricing import estimate_cost
from promptcascade.schemas.generation import Usage
from promptcascade.schemas.telemetry import (
    CostRecord,
    ErrorEvidence,
    ExecutionType,
    SpanRecord,
    SpanStatus,
    SpanType,
    TokenUsage,
    TraceRecord,
    TraceStatus,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class TraceRecorder(Protocol):
    async def start_trace(self, record: TraceRecord) -> None: ...

    async def create_span(self, record: SpanRecord) -> None: ...

    async def complete_span(
        self,
        span_id: str,
        status: SpanStatus,
        *,
        output: str | None = None,
        latency_ms: int | None = None,
        usage: TokenUsage | None = None,
        response_id: str | None = None,
    ) -> None: ...

    async def fail_span(self, span_id: str, evidence: ErrorEvidence) -> None: ...

    async def complete_trace(
        self, trace_id: str, status: TraceStatus, error_summary: str | None = None
    ) -> None: ...


@runtime_checkable
class CostLedger(Protocol):
    async def record_cost(self, record: CostRecord) -> None: ...


def error_evidence(error: BaseException) -> ErrorEvidence:
    """Describe an exception for a failed span."""
    if isinstance(error, GenerationFailed):
        return ErrorEvidence(
            error_type=error.error_type,
            error_message=str(error.cause),
            error_code=error.provider_error_code or error.error_code,
            retryable=error.retryable,
        )
    return ErrorEvidence(
        error_type=type(error).__name__,
        error_message=str(error),
        error_code=error.error_code if isinstance(error, CascadeError) else None,
        retryable=False,
    )


def _usage(usage: Usage | None) -> TokenUsage | None:
    if usage is None:
        return None
    return TokenUsage(
        input=usage.prompt_tokens, output=usage.completion_tokens, total=usage.total_tokens
    )


class RunTelemetry:
    """Best-effort recording of traces, spans and costs."""

    def __init__(self, recorder: TraceRecorder | None = None, ledger: CostLedger | None = None):
        self.recorder = recorder
        self.ledger = ledger

    async def _guard(self, operation: str, call: Awaitable[None]) -> bool:
        try:
            await call
            return True
        except Exception:
            logger.warning("Telemetry %s failed (non-fatal)", operation, exc_info=True)
            return False

    # -------------------------------------------------------------------
    # Traces
    # -------------------------------------------------------------------

    async def start_trace(self, entry_node_id: str, execution_type: ExecutionType) -> str:
        trace_id = uuid.uuid4().hex
        if self.recorder is not None:
            record = TraceRecord(
                trace_id=trace_id, entry_node_id=entry_node_id, execution_type=execution_type
            )
            await self._guard("start_trace", self.recorder.start_trace(record))
        return trace_id

    async def complete_trace(
        self, trace_id: str | None, status: TraceStatus, error_summary: str | None = None
    ) -> None:
        if self.recorder is None or trace_id is None:
            return
        await self._guard(
            "complete_trace", self.recorder.complete_trace(trace_id, status, error_summary)
        )

    # -------------------------------------------------------------------
    # Spans
    # -------------------------------------------------------------------

    async def start_span(
        self, trace_id: str | None, node_id: str, span_type: SpanType = SpanType.GENERATION
    ) -> str | None:
        if self.recorder is None or trace_id is None:
            return None
        span_id = uuid.uuid4().hex[:16]
        record = SpanRecord(
            span_id=span_id, trace_id=trace_id, node_id=node_id, span_type=span_type
        )
        if await self._guard("create_span", self.recorder.create_span(record)):
            return span_id
        return None

    async def complete_span(
        self,
        span_id: str | None,
        status: SpanStatus = SpanStatus.SUCCESS,
        *,
        output: str | None = None,
        latency_ms: int | None = None,
        usage: Usage | None = None,
        response_id: str | None = None,
    ) -> None:
        if self.recorder is None or span_id is None:
            return
        await self._guard(
            "complete_span",
            self.recorder.complete_span(
                span_id,
                status,
                output=output,
                latency_ms=latency_ms,
                usage=_usage(usage),
                response_id=response_id,
            ),
        )

    async def fail_span(self, span_id: str | None, error: BaseException) -> None:
        if self.recorder is None or span_id is None:
            return
        await self._guard("fail_span", self.recorder.fail_span(span_id, error_evidence(error)))

    async def record_skipped(self, trace_id: str | None, node_id: str) -> None:
        span_id = await self.start_span(trace_id, node_id, SpanType.SKIPPED)
        await self.complete_span(span_id, SpanStatus.SKIPPED)

    # -------------------------------------------------------------------
    # Costs
    # -------------------------------------------------------------------

    async def record_cost(
        self,
        node_id: str,
        model: str,
        usage: Usage,
        *,
        response_id: str | None = None,
        finish_reason: str | None = None,
        latency_ms: int | None = None,
        trace_id: str | None = None,
    ) -> CostRecord:
        cost_input, cost_output = estimate_cost(
            model, usage.prompt_tokens, usage.completion_tokens
        )
        record = CostRecord(
            node_id=node_id,
            model=model,
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            cost_input_usd=cost_input,
            cost_output_usd=cost_output,
            cost_total_usd=cost_input + cost_output,
            response_id=response_id,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
            trace_id=trace_id,
            recorded_at=datetime.now(UTC),
        )
        if self.ledger is not None:
            await self._guard("record_cost", self.ledger.record_cost(record))
        return record
