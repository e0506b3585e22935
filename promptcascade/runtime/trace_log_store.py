"""File-based storage for execution traces, spans and costs.

Storage layout::

    {base_path}/
      traces/
        {trace_id}/
          trace.json     # TraceRecord, rewritten atomically on change
          spans.jsonl    # span events, appended (created/completed/failed)
      costs.jsonl        # CostRecord ledger, append-only

Spans are stored as an event log so that a crash mid-run still leaves
every span that was opened on disk. ``load_spans`` folds the events back
into one SpanRecord per span.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from promptcascade.schemas.telemetry import (
    CostRecord,
    ErrorEvidence,
    SpanRecord,
    SpanStatus,
    TokenUsage,
    TraceRecord,
    TraceStatus,
)
from promptcascade.utils.io import atomic_write

logger = logging.getLogger(__name__)

ORPHANED_TRACE_SUMMARY = "Orphaned trace: run did not complete"


class TraceLogStore:
    """Persists traces, spans and cost records. Implements TraceRecorder and CostLedger."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        self._traces_dir = self._base_path / "traces"
        self._costs_path = self._base_path / "costs.jsonl"
        self._span_traces: dict[str, str] = {}

    def _trace_dir(self, trace_id: str) -> Path:
        return self._traces_dir / trace_id

    # -------------------------------------------------------------------
    # TraceRecorder
    # -------------------------------------------------------------------

    async def start_trace(self, record: TraceRecord) -> None:
        await asyncio.to_thread(self._write_trace, record)

    async def complete_trace(
        self, trace_id: str, status: TraceStatus, error_summary: str | None = None
    ) -> None:
        trace = await self.load_trace(trace_id)
        if trace is None:
            raise KeyError(f"Unknown trace {trace_id}")
        updated = trace.model_copy(
            update={
                "status": status,
                "completed_at": datetime.now(UTC),
                "error_summary": error_summary,
            }
        )
        await asyncio.to_thread(self._write_trace, updated)

    async def create_span(self, record: SpanRecord) -> None:
        self._span_traces[record.span_id] = record.trace_id
        await self._append_span_event(record.trace_id, "created", record.model_dump(mode="json"))

    async def complete_span(
        self,
        span_id: str,
        status: SpanStatus,
        *,
        output: str | None = None,
        latency_ms: int | None = None,
        usage: TokenUsage | None = None,
        response_id: str | None = None,
    ) -> None:
        update: dict[str, Any] = {
            "span_id": span_id,
            "status": status.value,
            "completed_at": datetime.now(UTC).isoformat(),
        }
        if output is not None:
            update["output"] = output
        if latency_ms is not None:
            update["latency_ms"] = latency_ms
        if usage is not None:
            update["usage"] = usage.model_dump()
        if response_id is not None:
            update["response_id"] = response_id
        await self._append_span_event(self._trace_for(span_id), "completed", update)

    async def fail_span(self, span_id: str, evidence: ErrorEvidence) -> None:
        update = {
            "span_id": span_id,
            "status": SpanStatus.ERROR.value,
            "completed_at": datetime.now(UTC).isoformat(),
            "error_evidence": evidence.model_dump(),
        }
        await self._append_span_event(self._trace_for(span_id), "failed", update)

    # -------------------------------------------------------------------
    # CostLedger
    # -------------------------------------------------------------------

    async def record_cost(self, record: CostRecord) -> None:
        data = record.model_dump(mode="json")
        await asyncio.to_thread(self._append_jsonl, self._costs_path, data)

    # -------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------

    async def load_trace(self, trace_id: str) -> TraceRecord | None:
        path = self._trace_dir(trace_id) / "trace.json"

        def _read() -> TraceRecord | None:
            if not path.exists():
                return None
            try:
                return TraceRecord.model_validate_json(path.read_text(encoding="utf-8"))
            except (ValueError, OSError) as e:
                logger.warning("Failed to read %s: %s", path, e)
                return None

        return await asyncio.to_thread(_read)

    async def load_spans(self, trace_id: str) -> list[SpanRecord]:
        path = self._trace_dir(trace_id) / "spans.jsonl"

        def _read() -> list[SpanRecord]:
            spans: dict[str, dict[str, Any]] = {}
            for entry in _read_jsonl(path):
                data = entry.get("data", {})
                span_id = data.get("span_id")
                if not span_id:
                    continue
                if entry.get("event") == "created":
                    spans[span_id] = data
                elif span_id in spans:
                    spans[span_id].update(data)
            return [SpanRecord.model_validate(data) for data in spans.values()]

        return await asyncio.to_thread(_read)

    async def load_costs(self) -> list[CostRecord]:
        def _read() -> list[CostRecord]:
            return _parse_models(_read_jsonl(self._costs_path), CostRecord, self._costs_path)

        return await asyncio.to_thread(_read)

    async def list_traces(
        self, status: TraceStatus | None = None, limit: int = 20
    ) -> list[TraceRecord]:
        """Traces sorted most recent first, optionally filtered by status."""

        def _scan() -> list[TraceRecord]:
            traces = []
            if not self._traces_dir.exists():
                return traces
            for trace_dir in self._traces_dir.iterdir():
                path = trace_dir / "trace.json"
                if not path.exists():
                    continue
                try:
                    trace = TraceRecord.model_validate_json(path.read_text(encoding="utf-8"))
                except (ValueError, OSError) as e:
                    logger.warning("Skipping unreadable trace %s: %s", path, e)
                    continue
                if status is None or trace.status == status:
                    traces.append(trace)
            traces.sort(key=lambda t: t.started_at, reverse=True)
            return traces

        traces = await asyncio.to_thread(_scan)
        return traces[:limit]

    # -------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------

    async def cleanup_orphaned_traces(self, max_age: timedelta = timedelta(minutes=30)) -> int:
        """Mark traces still ``running`` after ``max_age`` as failed. Returns how many."""
        cutoff = datetime.now(UTC) - max_age
        running = await self.list_traces(status=TraceStatus.RUNNING, limit=10_000)
        cleaned = 0
        for trace in running:
            if trace.started_at >= cutoff:
                continue
            await self.complete_trace(trace.trace_id, TraceStatus.FAILED, ORPHANED_TRACE_SUMMARY)
            cleaned += 1
        if cleaned:
            logger.info("Marked %d orphaned trace(s) as failed", cleaned)
        return cleaned

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------

    def _trace_for(self, span_id: str) -> str:
        try:
            return self._span_traces[span_id]
        except KeyError:
            raise KeyError(f"Unknown span {span_id}") from None

    def _write_trace(self, record: TraceRecord) -> None:
        trace_dir = self._trace_dir(record.trace_id)
        trace_dir.mkdir(parents=True, exist_ok=True)
        with atomic_write(trace_dir / "trace.json") as f:
            f.write(record.model_dump_json(indent=2))

    async def _append_span_event(self, trace_id: str, event: str, data: dict[str, Any]) -> None:
        path = self._trace_dir(trace_id) / "spans.jsonl"
        await asyncio.to_thread(self._append_jsonl, path, {"event": event, "data": data})

    @staticmethod
    def _append_jsonl(path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(data, ensure_ascii=False) + "\n"
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)


# -------------------------------------------------------------------
# Module-level helpers
# -------------------------------------------------------------------


def _read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Parse a JSONL file, skipping blank and corrupt lines (partial writes)."""
    entries: list[dict[str, Any]] = []
    if not path.exists():
        return entries
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Skipping corrupt JSONL line in %s: %s", path, e)
    except OSError as e:
        logger.warning("Failed to read %s: %s", path, e)
    return entries


def _parse_models(entries: list[dict[str, Any]], model_cls: type[BaseModel], path: Path) -> list:
    results = []
    for data in entries:
        try:
            results.append(model_cls.model_validate(data))
        except ValueError as e:
            logger.warning("Skipping invalid record in %s: %s", path, e)
    return results
