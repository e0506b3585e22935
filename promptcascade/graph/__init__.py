"""Cascade execution: variable resolution, node execution, actions and the walker."""

from promptcascade.graph.hitl import (
    ActionPreview,
    AutoConfirmer,
    Confirmer,
    QuestionAsker,
    StaticAnswers,
)
from promptcascade.graph.variables import (
    VariableScope,
    build_system_variables,
    extract_variables,
    resolve,
    validate_variable_name,
)
from promptcascade.graph.node_executor import NodeExecutor  # noqa: I001
from promptcascade.graph.post_processor import ActionPostProcessor
from promptcascade.graph.walker import CascadeWalker

__all__ = [
    "ActionPostProcessor",
    "ActionPreview",
    "AutoConfirmer",
    "CascadeWalker",
    "Confirmer",
    "NodeExecutor",
    "QuestionAsker",
    "StaticAnswers",
    "VariableScope",
    "build_system_variables",
    "extract_variables",
    "resolve",
    "validate_variable_name",
]
