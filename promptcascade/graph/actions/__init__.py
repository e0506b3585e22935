"""Post-generation actions.

Importing this package registers the built-in actions.
"""

from promptcascade.graph.actions import create_children  # noqa: F401
from promptcascade.graph.actions.extraction import (
    extract_json_from_response,
    get_nested_value,
    validate_action_response,
)
from promptcascade.graph.actions.registry import (
    ActionContext,
    available_actions,
    get_action_handler,
    register_action,
)
from promptcascade.graph.actions.variable_assignments import apply_variable_assignments

__all__ = [
    "ActionContext",
    "apply_variable_assignments",
    "available_actions",
    "extract_json_from_response",
    "get_action_handler",
    "get_nested_value",
    "register_action",
    "validate_action_response",
]
