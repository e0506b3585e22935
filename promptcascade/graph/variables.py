"""
Variable resolution for prompt text.

Placeholders look like ``{{name}}``. Names are looked up in a layered view:

    run scope (question answers, action assignments)
        ↓ shadows
    node-local variables (PromptNode.variables)
        ↓ shadows
    system variables (q.today, q.previous.response, q.cascade.level, ...)

Resolution is a single pass: a substituted value is never scanned again,
so ``{{...}}`` inside a value survives literally.
"""

from __future__ import annotations

import json
import logging
import re
from collections import ChainMap
from collections.abc import Iterator, Mapping
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

VARIABLE_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")
SYSTEM_PREFIX = "q."
VARIABLE_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*(\.[A-Za-z0-9_-]+)*$")
MAX_VARIABLE_NAME_LENGTH = 100


class VariableScope(Mapping[str, Any]):
    """Append-only variables for one run.

    Keys are only ever added. Writing a different value to an existing key
    is refused and logged; writing the same value again is a no-op.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableScope({self._values!r})"

    def set(self, key: str, value: Any) -> bool:
        """Add ``key``. Returns False if the key already held another value."""
        if key in self._values:
            if self._values[key] != value:
                logger.warning("Variable %r is already set; keeping the first value", key)
                return False
            return True
        self._values[key] = value
        return True

    def merge(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Add every entry of ``values``; returns the entries actually added."""
        return {key: value for key, value in values.items() if self.set(key, value)}

    def layered(self, *lower: Mapping[str, Any] | None) -> ChainMap:
        """Read-only lookup view: this scope first, then each lower layer in order."""
        return ChainMap(self._values, *(layer for layer in lower if layer))

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


def format_value(value: Any) -> str:
    """Render a variable value for substitution into prompt text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def resolve(text: str | None, scope: Mapping[str, Any]) -> str:
    """Substitute every ``{{name}}`` found in ``scope``; unknown names stay literal."""
    if not text:
        return text or ""

    def _replace(match: re.Match) -> str:
        name = match.group(1).strip()
        if name in scope:
            return format_value(scope[name])
        return match.group(0)

    return VARIABLE_PATTERN.sub(_replace, text)


def extract_variables(text: str | None) -> list[str]:
    """Placeholder names in order of first appearance, without duplicates."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for match in VARIABLE_PATTERN.finditer(text):
        seen.setdefault(match.group(1).strip(), None)
    return list(seen)


def unresolved_variables(text: str | None, scope: Mapping[str, Any]) -> list[str]:
    return [name for name in extract_variables(text) if name not in scope]


def validate_variable_name(name: Any) -> str | None:
    """Return an error message for an unusable variable name, else None."""
    if not isinstance(name, str) or not name.strip():
        return "Variable name is required"
    if len(name) > MAX_VARIABLE_NAME_LENGTH:
        return f"Variable name must be {MAX_VARIABLE_NAME_LENGTH} characters or less"
    if not VARIABLE_NAME_PATTERN.match(name):
        return (
            "Variable name must start with a letter and contain only letters, "
            "numbers, underscores, hyphens or dots"
        )
    return None


def build_system_variables(
    node: Any,
    *,
    parent: Any = None,
    root: Any = None,
    previous_name: str | None = None,
    previous_response: str | None = None,
    cascade_level: int | None = None,
    now: datetime | None = None,
) -> dict[str, str]:
    """System (``q.``) variables for one node invocation."""
    now = now or datetime.now()
    variables = {
        "q.today": now.strftime("%Y-%m-%d"),
        "q.now": now.isoformat(timespec="seconds"),
        "q.node.id": node.id,
        "q.node.name": node.name,
    }
    if parent is not None:
        variables["q.parent.prompt.name"] = parent.name
        if parent.output_response:
            variables["q.parent.output.response"] = parent.output_response
    if root is not None:
        variables["q.toplevel.prompt.name"] = root.name
    if previous_name is not None:
        variables["q.previous.name"] = previous_name
    if previous_response is not None:
        variables["q.previous.response"] = previous_response
    if cascade_level is not None:
        variables["q.cascade.level"] = str(cascade_level)
    return variables
