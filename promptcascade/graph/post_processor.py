"""
Action Post-Processor - turns an action node's response into tree changes.

Pipeline for one response:

    extract JSON → validate → confirm (preview) → execute → record
                                                          → propagate variables

``process_action`` never raises. Every failure (malformed JSON, a path
that is not an array, a rejected preview, a handler exception) comes back
as an ActionResult and is also recorded on the node as
``last_action_result``. Malformed JSON changes nothing but that record.

Re-processing a response that was already applied creates the children
again; there is no deduplication.
"""

from __future__ import annotations

import logging
from typing import Any

from promptcascade.errors import JsonParseError
from promptcascade.graph.actions.extraction import (
    PREVIEW_LENGTH,
    extract_json_from_response,
    validate_action_response,
)
from promptcascade.graph.actions.registry import ActionContext, get_action_handler
from promptcascade.graph.actions.variable_assignments import apply_variable_assignments
from promptcascade.graph.hitl import ActionPreview, Confirmer
from promptcascade.graph.variables import VariableScope
from promptcascade.runtime.telemetry import RunTelemetry
from promptcascade.schemas.action import ActionResult, ActionStatus
from promptcascade.schemas.prompt_node import PromptNode
from promptcascade.schemas.telemetry import SpanStatus, SpanType
from promptcascade.storage.tree_store import TreeStore

logger = logging.getLogger(__name__)


class ActionPostProcessor:
    """Runs post-actions for effective action nodes."""

    def __init__(
        self,
        store: TreeStore,
        *,
        confirmer: Confirmer | None = None,
        telemetry: RunTelemetry | None = None,
        skip_all_previews: bool = False,
    ):
        self.store = store
        self.confirmer = confirmer
        self.telemetry = telemetry or RunTelemetry()
        self.skip_all_previews = skip_all_previews

    async def process_action(
        self,
        node: PromptNode,
        raw_response: str,
        scope: VariableScope,
        *,
        trace_id: str | None = None,
    ) -> ActionResult:
        """Process ``raw_response`` for ``node`` and record the outcome on the node."""
        action = node.post_action
        span_id = await self.telemetry.start_span(trace_id, node.id, SpanType.ACTION)

        try:
            parsed = extract_json_from_response(raw_response)
        except JsonParseError as e:
            logger.warning("Action on node %s: %s", node.id, e)
            result = ActionResult(
                status=ActionStatus.FAILED,
                action=action,
                error=str(e),
                error_code=e.error_code,
                response_preview=e.response_preview or (raw_response or "")[:PREVIEW_LENGTH],
            )
            await self._record(node, result, extracted=None)
            await self._finish_span(span_id, result)
            return result

        result = await self._run_action(node, parsed)

        assignments = apply_variable_assignments(
            parsed,
            node.variable_assignments_config,
            scope,
            producer_name=node.name,
            producer_id=node.id,
        )
        result.variables_assigned = assignments.assigned
        result.assignment_errors = assignments.errors

        extracted = parsed if isinstance(parsed, dict) else {"value": parsed}
        await self._record(node, result, extracted=extracted)
        await self._finish_span(span_id, result)
        return result

    async def _run_action(self, node: PromptNode, parsed: Any) -> ActionResult:
        action = node.post_action
        config = node.post_action_config
        if not action:
            return ActionResult(
                status=ActionStatus.SUCCESS,
                message="No post-action configured; response parsed only",
            )

        handler = get_action_handler(action)
        if handler is None:
            logger.warning("Node %s has unknown post_action %r", node.id, action)
            return ActionResult(
                status=ActionStatus.FAILED,
                action=action,
                error=f"Unknown action: {action}",
                error_code="UNKNOWN_ACTION",
            )

        validation = validate_action_response(parsed, config, action)
        if not validation.valid:
            logger.warning("Action %s on node %s: %s", action, node.id, validation.error)
            return ActionResult(
                status=ActionStatus.FAILED,
                action=action,
                error=validation.error,
                error_code="ACTION_VALIDATION_FAILED",
                available_arrays=validation.available_arrays,
                suggestion=validation.suggestion,
            )
        if validation.is_empty:
            logger.warning(
                "Action %s on node %s: array at %r is empty", action, node.id, validation.json_path
            )

        if not await self._confirmed(node, action, parsed, validation.items, validation.json_path):
            logger.info("Action %s on node %s rejected by user", action, node.id)
            return ActionResult(
                status=ActionStatus.CANCELLED, action=action, reason="user_cancelled"
            )

        ctx = ActionContext(
            node=node,
            config=config,
            store=self.store,
            parsed=parsed,
            items=validation.items,
            json_path=validation.json_path,
        )
        try:
            return await handler(ctx)
        except Exception as e:
            logger.exception("Action %s on node %s failed", action, node.id)
            return ActionResult(
                status=ActionStatus.FAILED,
                action=action,
                error=str(e),
                error_code="ACTION_EXECUTION_FAILED",
            )

    async def _confirmed(
        self, node: PromptNode, action: str, parsed: Any, items: list[Any], json_path: str
    ) -> bool:
        if node.post_action_config.skip_preview or self.skip_all_previews or self.confirmer is None:
            return True
        preview = ActionPreview(
            node_id=node.id,
            node_name=node.name,
            action=action,
            json_path=json_path,
            items=items,
            parsed=parsed,
            config=node.post_action_config.model_dump(mode="json"),
        )
        return await self.confirmer.confirm(preview)

    async def _record(
        self, node: PromptNode, result: ActionResult, extracted: dict[str, Any] | None
    ) -> None:
        fields: dict[str, Any] = {"last_action_result": result.to_last_action_result()}
        if extracted is not None:
            fields["extracted_variables"] = extracted
        try:
            await self.store.update_node(node.id, fields)
        except Exception:
            logger.exception("Could not record action result on node %s (non-fatal)", node.id)

    async def _finish_span(self, span_id: str | None, result: ActionResult) -> None:
        if result.status == ActionStatus.SUCCESS:
            await self.telemetry.complete_span(span_id, SpanStatus.SUCCESS, output=result.message)
        elif result.status == ActionStatus.CANCELLED:
            await self.telemetry.complete_span(span_id, SpanStatus.CANCELLED, output=result.reason)
        else:
            await self.telemetry.complete_span(span_id, SpanStatus.ERROR, output=result.error)
