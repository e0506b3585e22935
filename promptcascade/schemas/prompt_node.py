"""Prompt tree schema.

A PromptNode is one unit of LLM instruction. Nodes form an ordered tree;
a cascade walks a subtree depth-first and runs every eligible node.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class NodeType(StrEnum):
    STANDARD = "standard"
    ACTION = "action"
    QUESTION = "question"


class ResponseFormat(StrEnum):
    TEXT = "text"
    JSON_OBJECT = "json_object"
    JSON_SCHEMA = "json_schema"


class Placement(StrEnum):
    """Where children created by an action are attached."""

    SELF = "self"  # under the acting node
    PARENT = "parent"  # siblings of the acting node
    SPECIFIC_PROMPT = "specific_prompt"
    TOP_LEVEL = "top_level"


_PLACEMENT_ALIASES = {"children": "self", "siblings": "parent"}


class ContentDestination(StrEnum):
    SYSTEM = "system"
    USER = "user"


class PostActionConfig(BaseModel):
    """Configuration of a node's post-generation action."""

    json_path: str | list[str] = "items"
    placement: Placement = Placement.SELF
    target_prompt_id: str | None = None
    skip_preview: bool = False
    naming_template: str | None = None
    name_field: str | None = None
    content_field: str | None = None
    content_destination: ContentDestination = ContentDestination.SYSTEM
    child_node_type: NodeType = NodeType.STANDARD
    inherit_action_config: bool = True
    # create_children_text
    children_count: int = 3
    name_prefix: str = "Child"
    default_content: str = ""

    model_config = {"extra": "allow"}

    @field_validator("placement", mode="before")
    @classmethod
    def _normalize_placement(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _PLACEMENT_ALIASES.get(value, value)
        return value

    @property
    def primary_json_path(self) -> str:
        if isinstance(self.json_path, list):
            return self.json_path[0] if self.json_path else ""
        return self.json_path


class VariableAssignmentsConfig(BaseModel):
    """Which parts of a JSON response become run variables."""

    enabled: bool = False
    json_path: str = "variable_assignments"
    mappings: dict[str, str] = Field(default_factory=dict)
    qualify_with_producer: bool = False

    model_config = {"extra": "allow"}


class QuestionConfig(BaseModel):
    max_questions: int | None = None


class LastActionResult(BaseModel):
    """Outcome of the most recent action run on a node, kept on the node."""

    status: str
    action: str | None = None
    created_count: int = 0
    target_parent_id: str | None = None
    message: str | None = None
    error: str | None = None
    error_code: str | None = None
    reason: str | None = None
    available_arrays: list[str] = Field(default_factory=list)
    suggestion: str | None = None
    response_preview: str | None = None
    created_ids: list[str] = Field(default_factory=list)
    executed_at: datetime

    model_config = {"extra": "allow"}


class PromptNode(BaseModel):
    """A node of the prompt tree."""

    id: str
    parent_id: str | None = None
    name: str = ""
    position: int = 0

    # Content
    system_prompt: str = ""
    user_prompt: str = ""
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    reasoning_effort: str | None = None

    # Output shape
    response_format: ResponseFormat = ResponseFormat.TEXT
    json_schema: dict[str, Any] | None = None

    # Kind
    node_type: NodeType = NodeType.STANDARD
    post_action: str | None = None
    post_action_config: PostActionConfig = Field(default_factory=PostActionConfig)
    variable_assignments_config: VariableAssignmentsConfig = Field(
        default_factory=VariableAssignmentsConfig
    )
    question_config: QuestionConfig = Field(default_factory=QuestionConfig)

    # Cascade flags
    exclude_from_cascade: bool = False
    auto_run_children: bool = False

    # Node-local variables
    variables: dict[str, str] = Field(default_factory=dict)

    # Derived / output
    output_response: str | None = None
    extracted_variables: dict[str, Any] | None = None
    last_action_result: LastActionResult | None = None

    children: list[PromptNode] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @property
    def is_effective_action(self) -> bool:
        """True when the node should run the action post-processor.

        A node with a ``post_action`` but a non-action ``node_type`` is still
        treated as an action node (see ``has_action_type_mismatch``).
        """
        return self.node_type == NodeType.ACTION or bool(self.post_action)

    @property
    def has_action_type_mismatch(self) -> bool:
        return bool(self.post_action) and self.node_type != NodeType.ACTION

    @property
    def is_question(self) -> bool:
        return self.node_type == NodeType.QUESTION

    def without_children(self) -> PromptNode:
        return self.model_copy(update={"children": []})

    def count_descendants(self) -> int:
        return sum(1 + child.count_descendants() for child in self.children)
