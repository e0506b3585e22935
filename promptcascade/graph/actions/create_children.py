"""Actions that grow the tree: one child per JSON array item, or N text children."""

from __future__ import annotations

import json
import logging
from typing import Any

from promptcascade.graph.actions.naming import process_naming_template
from promptcascade.graph.actions.registry import ActionContext, register_action
from promptcascade.schemas.action import ActionResult, ActionStatus
from promptcascade.schemas.prompt_node import (
    ContentDestination,
    NodeType,
    Placement,
    PostActionConfig,
    PromptNode,
)

logger = logging.getLogger(__name__)

NAME_FIELDS = (
    "prompt_name",
    "name",
    "title",
    "heading",
    "label",
    "section_name",
    "section_title",
    "topic",
    "subject",
    "key",
    "id",
)
CONTENT_FIELDS = (
    "input_admin_prompt",
    "system_prompt",
    "content",
    "text",
    "body",
    "description",
    "prompt",
)
MAX_NAME_LENGTH = 100
MAX_TEXT_CHILDREN = 20

_PLACEMENT_PHRASES = {
    Placement.SELF: "as children",
    Placement.PARENT: "as siblings",
    Placement.TOP_LEVEL: "as top-level prompts",
    Placement.SPECIFIC_PROMPT: "under the target prompt",
}


def detect_item_name(item: Any, index: int, name_field: str | None = None) -> str:
    """Pick a display name for an array item."""
    if isinstance(item, str):
        return item.strip()[:MAX_NAME_LENGTH] or f"Item {index + 1}"
    if isinstance(item, dict):
        fields = (name_field, *NAME_FIELDS) if name_field else NAME_FIELDS
        for field_name in fields:
            value = item.get(field_name)
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                text = str(value).strip()
                if text:
                    return text[:MAX_NAME_LENGTH]
        for value in item.values():
            if isinstance(value, str) and 0 < len(value.strip()) < 150:
                return value.strip()[:MAX_NAME_LENGTH]
    return f"Item {index + 1}"


def detect_item_content(item: Any, content_field: str | None = None) -> str:
    """Pick the prompt text for an array item."""
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        fields = (content_field, *CONTENT_FIELDS) if content_field else CONTENT_FIELDS
        for field_name in fields:
            if field_name in item and item[field_name] is not None:
                value = item[field_name]
                return value if isinstance(value, str) else json.dumps(value, indent=2)
    return json.dumps(item, indent=2, ensure_ascii=False)


def resolve_target_parent(node: PromptNode, config: PostActionConfig) -> str | None:
    """Parent id the new children are created under (None = top level)."""
    if config.placement == Placement.SELF:
        return node.id
    if config.placement == Placement.PARENT:
        return node.parent_id
    if config.placement == Placement.TOP_LEVEL:
        return None
    if not config.target_prompt_id:
        raise ValueError("placement 'specific_prompt' requires target_prompt_id")
    return config.target_prompt_id


def inherited_fields(node: PromptNode, config: PostActionConfig) -> dict[str, Any]:
    """Generation settings (and, for action children, action config) copied from the creator."""
    fields: dict[str, Any] = {
        "node_type": config.child_node_type,
        "model": node.model,
        "temperature": node.temperature,
        "max_tokens": node.max_tokens,
        "reasoning_effort": node.reasoning_effort,
    }
    if config.child_node_type == NodeType.ACTION:
        fields["response_format"] = node.response_format
        fields["json_schema"] = node.json_schema
        if config.inherit_action_config:
            fields["post_action"] = node.post_action
            fields["post_action_config"] = node.post_action_config.model_dump()
            fields["variable_assignments_config"] = node.variable_assignments_config.model_dump()
            fields["auto_run_children"] = node.auto_run_children
    return fields


def _created_message(count: int, config: PostActionConfig, source: str) -> str:
    kind = "action node(s)" if config.child_node_type == NodeType.ACTION else "node(s)"
    return f"Created {count} {kind} {_PLACEMENT_PHRASES[config.placement]} from {source}"


async def _create_children(
    ctx: ActionContext,
    action: str,
    target_parent_id: str | None,
    field_sets: list[dict[str, Any]],
    source: str,
) -> ActionResult:
    """Create one child per entry of ``field_sets``.

    A store failure stops the loop; children created before it stay in the
    store and are reported on the failed result.
    """
    children: list[PromptNode] = []
    for fields in field_sets:
        try:
            children.append(await ctx.store.create_node(target_parent_id, fields))
        except Exception as e:
            logger.exception(
                "Creating child %d of %d under %s failed",
                len(children) + 1,
                len(field_sets),
                target_parent_id,
            )
            return ActionResult(
                status=ActionStatus.FAILED,
                action=action,
                created_count=len(children),
                target_parent_id=target_parent_id,
                children=children,
                error=f"Created {len(children)} of {len(field_sets)} children before failing: {e}",
                error_code="ACTION_EXECUTION_FAILED",
            )

    logger.info("Created %d children from %s", len(children), source)
    return ActionResult(
        status=ActionStatus.SUCCESS,
        action=action,
        created_count=len(children),
        target_parent_id=target_parent_id,
        children=children,
        message=_created_message(len(children), ctx.config, source),
    )


def _content_key(config: PostActionConfig) -> str:
    if config.content_destination == ContentDestination.USER:
        return "user_prompt"
    return "system_prompt"


@register_action("create_children_json")
async def create_children_json(ctx: ActionContext) -> ActionResult:
    """One child per element of the array at ``json_path``."""
    config = ctx.config
    target_parent_id = resolve_target_parent(ctx.node, config)
    if not ctx.items:
        return ActionResult(
            status=ActionStatus.SUCCESS,
            action="create_children_json",
            created_count=0,
            target_parent_id=target_parent_id,
            message="No items found in JSON array",
        )

    base_fields = inherited_fields(ctx.node, config)
    content_key = _content_key(config)
    field_sets = []
    for index, item in enumerate(ctx.items):
        name = detect_item_name(item, index, config.name_field)
        if config.naming_template:
            name = process_naming_template(config.naming_template, index, name=name)
        field_sets.append(
            {
                **base_fields,
                "name": name,
                content_key: detect_item_content(item, config.content_field),
                "extracted_variables": item if isinstance(item, dict) else {"value": item},
            }
        )
    return await _create_children(
        ctx, "create_children_json", target_parent_id, field_sets, "JSON array"
    )


@register_action("create_children_text")
async def create_children_text(ctx: ActionContext) -> ActionResult:
    """A fixed number of children, named from ``name_prefix`` or ``naming_template``."""
    config = ctx.config
    count = config.children_count
    if not 1 <= count <= MAX_TEXT_CHILDREN:
        raise ValueError(f"children_count must be between 1 and {MAX_TEXT_CHILDREN}, got {count}")

    target_parent_id = resolve_target_parent(ctx.node, config)
    base_fields = inherited_fields(ctx.node, config)
    content_key = _content_key(config)
    field_sets = []
    for index in range(count):
        if config.naming_template:
            name = process_naming_template(config.naming_template, index)
        else:
            name = f"{config.name_prefix} {index + 1}"
        field_sets.append({**base_fields, "name": name, content_key: config.default_content})
    return await _create_children(ctx, "create_children_text", target_parent_id, field_sets, "text")
