"""
promptcascade - depth-first execution engine for trees of LLM prompts.

Build a tree of PromptNodes, put it in a TreeStore, and run a subtree:

    walker = CascadeWalker(store, LiteLLMGenerationProvider())
    result = await walker.run_cascade(root_id)
"""

from promptcascade.config import CascadeConfig
from promptcascade.errors import (
    CascadeError,
    GenerationFailed,
    NodeNotFound,
    RunAlreadyActive,
    TooManyInterrupts,
)
from promptcascade.graph import (
    ActionPostProcessor,
    AutoConfirmer,
    CascadeWalker,
    NodeExecutor,
    StaticAnswers,
    VariableScope,
)
from promptcascade.llm import GenerationProvider, LiteLLMGenerationProvider, MockGenerationProvider
from promptcascade.runtime import RunState, RunTelemetry, TraceLogStore
from promptcascade.schemas import CascadeResult, CascadeStatus, PromptNode
from promptcascade.storage import FileTreeStore, InMemoryTreeStore, TreeStore

__all__ = [
    "ActionPostProcessor",
    "AutoConfirmer",
    "CascadeConfig",
    "CascadeError",
    "CascadeResult",
    "CascadeStatus",
    "CascadeWalker",
    "FileTreeStore",
    "GenerationFailed",
    "GenerationProvider",
    "InMemoryTreeStore",
    "LiteLLMGenerationProvider",
    "MockGenerationProvider",
    "NodeExecutor",
    "NodeNotFound",
    "PromptNode",
    "RunAlreadyActive",
    "RunState",
    "RunTelemetry",
    "StaticAnswers",
    "TooManyInterrupts",
    "TraceLogStore",
    "TreeStore",
    "VariableScope",
]
