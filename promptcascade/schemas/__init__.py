"""Schema definitions for prompt trees, runs and telemetry."""

from promptcascade.schemas.action import ActionPreview, ActionResult, ActionStatus
from promptcascade.schemas.cascade import (
    CascadeResult,
    CascadeStatus,
    NodeOutcome,
    SkippedNode,
    SkipReason,
)
from promptcascade.schemas.generation import (
    GenerationRequest,
    GenerationResult,
    NodeExecutionResult,
    NodeExecutionStatus,
    QuestionInterrupt,
    ResumeState,
    Usage,
)
from promptcascade.schemas.prompt_node import (
    ContentDestination,
    LastActionResult,
    NodeType,
    Placement,
    PostActionConfig,
    PromptNode,
    QuestionConfig,
    ResponseFormat,
    VariableAssignmentsConfig,
)
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

__all__ = [
    "ActionPreview",
    "ActionResult",
    "ActionStatus",
    "CascadeResult",
    "CascadeStatus",
    "ContentDestination",
    "CostRecord",
    "ErrorEvidence",
    "ExecutionType",
    "GenerationRequest",
    "GenerationResult",
    "LastActionResult",
    "NodeExecutionResult",
    "NodeExecutionStatus",
    "NodeOutcome",
    "NodeType",
    "Placement",
    "PostActionConfig",
    "PromptNode",
    "QuestionConfig",
    "QuestionInterrupt",
    "ResponseFormat",
    "ResumeState",
    "SkipReason",
    "SkippedNode",
    "SpanRecord",
    "SpanStatus",
    "SpanType",
    "TokenUsage",
    "TraceRecord",
    "TraceStatus",
    "Usage",
    "VariableAssignmentsConfig",
]
