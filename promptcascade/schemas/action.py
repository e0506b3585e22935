"""Action post-processing results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from promptcascade.schemas.prompt_node import LastActionResult, PromptNode


class ActionStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ActionResult(BaseModel):
    """What happened when a node's post-action ran.

    Action failures never raise; everything the caller needs to diagnose a
    failure (error code, available arrays, response preview) lives here.
    """

    status: ActionStatus
    action: str | None = None
    created_count: int = 0
    target_parent_id: str | None = None
    children: list[PromptNode] = Field(default_factory=list)
    message: str | None = None
    error: str | None = None
    error_code: str | None = None
    reason: str | None = None
    available_arrays: list[str] = Field(default_factory=list)
    suggestion: str | None = None
    response_preview: str | None = None
    variables_assigned: dict[str, Any] = Field(default_factory=dict)
    assignment_errors: list[str] = Field(default_factory=list)
    executed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def success(self) -> bool:
        return self.status == ActionStatus.SUCCESS

    def to_last_action_result(self) -> LastActionResult:
        return LastActionResult(
            status=self.status.value,
            action=self.action,
            created_count=self.created_count,
            target_parent_id=self.target_parent_id,
            message=self.message,
            error=self.error,
            error_code=self.error_code,
            reason=self.reason,
            available_arrays=self.available_arrays,
            suggestion=self.suggestion,
            response_preview=self.response_preview,
            created_ids=[child.id for child in self.children],
            executed_at=self.executed_at,
        )


@dataclass
class ActionPreview:
    """What an action is about to do, shown to the user before it runs."""

    node_id: str
    node_name: str
    action: str
    json_path: str = ""
    items: list[Any] = field(default_factory=list)
    parsed: Any = None
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "action": self.action,
            "json_path": self.json_path,
            "item_count": self.item_count,
            "items": self.items,
            "config": self.config,
        }
