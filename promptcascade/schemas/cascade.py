"""Cascade run outcome."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class CascadeStatus(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DEPTH_LIMIT_REACHED = "depth_limit_reached"
    NO_CHILDREN_TO_CASCADE = "no_children_to_cascade"


class SkipReason(StrEnum):
    EXCLUDED = "excluded"
    NOT_FOUND = "not_found"


class NodeOutcome(BaseModel):
    """One visited node in a cascade."""

    node_id: str
    node_name: str = ""
    depth: int = 0
    success: bool
    error: str | None = None
    response: str | None = None
    action_status: str | None = None
    created_count: int = 0


class SkippedNode(BaseModel):
    node_id: str
    node_name: str = ""
    reason: SkipReason


class CascadeResult(BaseModel):
    root_id: str
    status: CascadeStatus
    results: list[NodeOutcome] = Field(default_factory=list)
    skipped: list[SkippedNode] = Field(default_factory=list)
    trace_id: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)

    @property
    def depth_limit_reached(self) -> bool:
        return self.status == CascadeStatus.DEPTH_LIMIT_REACHED

    @property
    def success(self) -> bool:
        """Partial success counts: depth-limited runs keep their completed work."""
        return self.status in (
            CascadeStatus.COMPLETED,
            CascadeStatus.DEPTH_LIMIT_REACHED,
            CascadeStatus.NO_CHILDREN_TO_CASCADE,
        )

    @property
    def visited_ids(self) -> list[str]:
        return [outcome.node_id for outcome in self.results]
