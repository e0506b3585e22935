"""Runtime state, telemetry and trace persistence."""

from promptcascade.runtime.run_state import NodeRunStatus, RunMode, RunState
from promptcascade.runtime.telemetry import CostLedger, RunTelemetry, TraceRecorder
from promptcascade.runtime.trace_log_store import TraceLogStore

__all__ = [
    "CostLedger",
    "NodeRunStatus",
    "RunMode",
    "RunState",
    "RunTelemetry",
    "TraceLogStore",
    "TraceRecorder",
]
