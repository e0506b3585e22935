"""Tests for RunTelemetry, TraceLogStore and pricing."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from promptcascade.errors import GenerationFailed
from promptcascade.llm.pricing import DEFAULT_PRICING, estimate_cost, get_model_pricing
from promptcascade.runtime.telemetry import RunTelemetry, error_evidence
from promptcascade.runtime.trace_log_store import ORPHANED_TRACE_SUMMARY, TraceLogStore
from promptcascade.schemas import (
    ErrorEvidence,
    ExecutionType,
    SpanRecord,
    SpanStatus,
    SpanType,
    TokenUsage,
    TraceRecord,
    TraceStatus,
    Usage,
)


class RateLimitError(Exception):
    status_code = 429


# ---------------------------------------------------------------------------
# Error evidence
# ---------------------------------------------------------------------------


def test_error_evidence_for_retryable_generation_failure():
    evidence = error_evidence(GenerationFailed("n1", RateLimitError("slow down")))
    assert evidence.error_type == "RateLimitError"
    assert evidence.error_message == "slow down"
    assert evidence.error_code == "429"
    assert evidence.retryable is True


def test_error_evidence_for_plain_exception():
    evidence = error_evidence(ValueError("bad"))
    assert evidence.error_type == "ValueError"
    assert evidence.error_code is None
    assert evidence.retryable is False


def test_generation_failed_not_retryable_for_client_errors():
    class BadRequest(Exception):
        status_code = 400

    failure = GenerationFailed("n1", BadRequest("nope"))
    assert failure.retryable is False
    assert failure.provider_error_code == "400"


# ---------------------------------------------------------------------------
# RunTelemetry
# ---------------------------------------------------------------------------


class TestRunTelemetry:
    @pytest.mark.asyncio
    async def test_without_recorder_only_hands_out_trace_ids(self):
        telemetry = RunTelemetry()
        trace_id = await telemetry.start_trace("n1", ExecutionType.SINGLE)
        assert trace_id
        assert await telemetry.start_span(trace_id, "n1") is None
        await telemetry.complete_trace(trace_id, TraceStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_record_cost_without_ledger_still_prices(self):
        record = await RunTelemetry().record_cost(
            "n1", "openai/gpt-4o", Usage(prompt_tokens=1_000_000, completion_tokens=100_000)
        )
        assert record.cost_input_usd == pytest.approx(2.50)
        assert record.cost_output_usd == pytest.approx(1.00)
        assert record.cost_total_usd == pytest.approx(3.50)
        assert record.total_tokens == 1_100_000

    @pytest.mark.asyncio
    async def test_ledger_failure_is_swallowed(self):
        class BrokenLedger:
            async def record_cost(self, record):
                raise OSError("read-only")

        telemetry = RunTelemetry(ledger=BrokenLedger())
        record = await telemetry.record_cost("n1", "gpt-4o-mini", Usage(10, 5))
        assert record.node_id == "n1"


# ---------------------------------------------------------------------------
# TraceLogStore
# ---------------------------------------------------------------------------


class TestTraceLogStore:
    @pytest.mark.asyncio
    async def test_trace_lifecycle(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        await store.start_trace(
            TraceRecord(trace_id="t1", entry_node_id="n1", execution_type=ExecutionType.SINGLE)
        )

        loaded = await store.load_trace("t1")
        assert loaded.status == TraceStatus.RUNNING

        await store.complete_trace("t1", TraceStatus.FAILED, "boom")

        loaded = await store.load_trace("t1")
        assert loaded.status == TraceStatus.FAILED
        assert loaded.error_summary == "boom"
        assert loaded.completed_at is not None
        assert (tmp_path / "traces" / "t1" / "trace.json").exists()

    @pytest.mark.asyncio
    async def test_complete_unknown_trace(self, tmp_path: Path):
        with pytest.raises(KeyError):
            await TraceLogStore(tmp_path).complete_trace("missing", TraceStatus.COMPLETED)

    @pytest.mark.asyncio
    async def test_span_events_fold_into_records(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        await store.create_span(SpanRecord(span_id="s1", trace_id="t1", node_id="n1"))
        await store.create_span(
            SpanRecord(span_id="s2", trace_id="t1", node_id="n2", span_type=SpanType.ACTION)
        )
        await store.complete_span(
            "s1",
            SpanStatus.SUCCESS,
            output="hello",
            latency_ms=12,
            usage=TokenUsage(input=3, output=4, total=7),
            response_id="resp-1",
        )
        await store.fail_span(
            "s2", ErrorEvidence(error_type="ValueError", error_message="bad", retryable=False)
        )

        spans = {span.span_id: span for span in await store.load_spans("t1")}

        assert spans["s1"].status == SpanStatus.SUCCESS
        assert spans["s1"].output == "hello"
        assert spans["s1"].usage.total == 7
        assert spans["s1"].response_id == "resp-1"
        assert spans["s2"].status == SpanStatus.ERROR
        assert spans["s2"].error_evidence.error_message == "bad"
        assert spans["s2"].span_type == SpanType.ACTION

    @pytest.mark.asyncio
    async def test_open_span_survives_without_completion(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        await store.create_span(SpanRecord(span_id="s1", trace_id="t1", node_id="n1"))

        spans = await store.load_spans("t1")

        assert len(spans) == 1
        assert spans[0].status == SpanStatus.RUNNING

    @pytest.mark.asyncio
    async def test_corrupt_span_lines_are_skipped(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        await store.create_span(SpanRecord(span_id="s1", trace_id="t1", node_id="n1"))
        with open(tmp_path / "traces" / "t1" / "spans.jsonl", "a", encoding="utf-8") as f:
            f.write('{"event": "completed", "data": {"span_id": "s1"\n')

        spans = await store.load_spans("t1")

        assert [span.span_id for span in spans] == ["s1"]

    @pytest.mark.asyncio
    async def test_complete_unknown_span(self, tmp_path: Path):
        with pytest.raises(KeyError):
            await TraceLogStore(tmp_path).complete_span("nope", SpanStatus.SUCCESS)

    @pytest.mark.asyncio
    async def test_cost_ledger_appends(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        telemetry = RunTelemetry(ledger=store)
        await telemetry.record_cost("n1", "gpt-4o-mini", Usage(100, 50), trace_id="t1")
        await telemetry.record_cost("n2", "gpt-4o-mini", Usage(10, 5), trace_id="t1")

        costs = await store.load_costs()

        assert [c.node_id for c in costs] == ["n1", "n2"]
        lines = (tmp_path / "costs.jsonl").read_text(encoding="utf-8").splitlines()
        assert json.loads(lines[0])["prompt_tokens"] == 100

    @pytest.mark.asyncio
    async def test_list_traces_filters_and_sorts(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        now = datetime.now(UTC)
        for index, status in enumerate(
            [TraceStatus.COMPLETED, TraceStatus.RUNNING, TraceStatus.COMPLETED]
        ):
            await store.start_trace(
                TraceRecord(
                    trace_id=f"t{index}",
                    entry_node_id="n1",
                    execution_type=ExecutionType.CASCADE_TOP,
                    status=status,
                    started_at=now - timedelta(minutes=index),
                )
            )

        completed = await store.list_traces(status=TraceStatus.COMPLETED)
        everything = await store.list_traces(limit=2)

        assert [t.trace_id for t in completed] == ["t0", "t2"]
        assert [t.trace_id for t in everything] == ["t0", "t1"]

    @pytest.mark.asyncio
    async def test_cleanup_orphaned_traces(self, tmp_path: Path):
        store = TraceLogStore(tmp_path)
        now = datetime.now(UTC)
        await store.start_trace(
            TraceRecord(
                trace_id="old",
                entry_node_id="n1",
                execution_type=ExecutionType.CASCADE_TOP,
                started_at=now - timedelta(hours=2),
            )
        )
        await store.start_trace(
            TraceRecord(trace_id="fresh", entry_node_id="n1", execution_type=ExecutionType.SINGLE)
        )

        cleaned = await store.cleanup_orphaned_traces(timedelta(minutes=30))

        assert cleaned == 1
        old = await store.load_trace("old")
        assert old.status == TraceStatus.FAILED
        assert old.error_summary == ORPHANED_TRACE_SUMMARY
        assert (await store.load_trace("fresh")).status == TraceStatus.RUNNING


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class TestPricing:
    def test_exact_and_provider_prefixed(self):
        assert get_model_pricing("gpt-4o-mini").input_per_million == 0.15
        assert get_model_pricing("openai/gpt-4o-mini").output_per_million == 0.60

    def test_longest_prefix_wins(self):
        assert get_model_pricing("gpt-4o-mini-2024-07-18").input_per_million == 0.15
        assert get_model_pricing("gpt-4o-2024-08-06").input_per_million == 2.50
        assert get_model_pricing("anthropic/claude-3-5-sonnet-20241022").output_per_million == 15.0

    def test_unknown_model_uses_default(self):
        assert get_model_pricing("some/unknown-model") == DEFAULT_PRICING

    def test_estimate_cost(self):
        cost_in, cost_out = estimate_cost("gpt-4o-mini", 2_000_000, 1_000_000)
        assert cost_in == pytest.approx(0.30)
        assert cost_out == pytest.approx(0.60)
