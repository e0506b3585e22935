"""Registry of post-actions, keyed by the ``post_action`` id stored on a node."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from promptcascade.schemas.action import ActionResult
from promptcascade.schemas.prompt_node import PostActionConfig, PromptNode
from promptcascade.storage.tree_store import TreeStore


@dataclass
class ActionContext:
    """Inputs handed to an action handler."""

    node: PromptNode
    config: PostActionConfig
    store: TreeStore
    parsed: Any = None
    items: list[Any] = field(default_factory=list)
    json_path: str = ""


ActionHandler = Callable[[ActionContext], Awaitable[ActionResult]]

_HANDLERS: dict[str, ActionHandler] = {}


def register_action(name: str) -> Callable[[ActionHandler], ActionHandler]:
    def decorator(handler: ActionHandler) -> ActionHandler:
        _HANDLERS[name] = handler
        return handler

    return decorator


def get_action_handler(name: str | None) -> ActionHandler | None:
    return _HANDLERS.get(name) if name else None


def available_actions() -> list[str]:
    return sorted(_HANDLERS)
