"""
Human-in-the-loop capabilities used by the engine.

The engine never talks to a UI directly. It is handed two capabilities:

- QuestionAsker: answers a question a node's model paused to ask
  (None means the user cancelled).
- Confirmer: approves or rejects an action before it mutates the tree.

RunState implements both (a UI answers through it); the CLI ships console
versions; tests pass small fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from promptcascade.schemas.action import ActionPreview
from promptcascade.schemas.generation import QuestionInterrupt

__all__ = ["ActionPreview", "AutoConfirmer", "Confirmer", "QuestionAsker", "StaticAnswers"]


@runtime_checkable
class QuestionAsker(Protocol):
    async def ask_question(self, interrupt: QuestionInterrupt) -> str | None:
        """Return the user's answer, or None if they cancelled."""
        ...


@runtime_checkable
class Confirmer(Protocol):
    async def confirm(self, preview: ActionPreview) -> bool:
        """Return True to run the action, False to reject it."""
        ...


class AutoConfirmer:
    """Confirmer that approves every action."""

    async def confirm(self, preview: ActionPreview) -> bool:
        return True


class StaticAnswers:
    """QuestionAsker answering from a fixed mapping of variable name to answer.

    Unknown variables get ``default``; a None default cancels.
    """

    def __init__(self, answers: dict[str, str] | None = None, default: str | None = None):
        self.answers = answers or {}
        self.default = default
        self.asked: list[QuestionInterrupt] = []

    async def ask_question(self, interrupt: QuestionInterrupt) -> str | None:
        self.asked.append(interrupt)
        return self.answers.get(interrupt.variable_name, self.default)
