"""JSON extraction and validation of action responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from promptcascade.errors import JsonParseError
from promptcascade.schemas.prompt_node import PostActionConfig

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")
_ROOT_PATHS = {"", "$", "root"}
PREVIEW_LENGTH = 300

# Actions whose input is an array found at post_action_config.json_path
ARRAY_ACTIONS = {"create_children_json"}


def extract_json_from_response(text: str | None) -> Any:
    """Parse JSON out of a model response.

    Tries, in order: the first fenced code block, the whole text, and the
    span from the first ``{``/``[`` to the last matching ``}``/``]``.

    Raises:
        JsonParseError: if none of them parse.
    """
    text = (text or "").strip()
    if not text:
        raise JsonParseError("JSON parse error: empty response", "")

    candidates = []
    fenced = FENCED_BLOCK_PATTERN.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(text)
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])

    last_error: json.JSONDecodeError | None = None
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            last_error = e
    raise JsonParseError(f"JSON parse error: {last_error}", text[:PREVIEW_LENGTH])


def normalize_path(path: str | None) -> list[str]:
    """Split ``$.a.b[0].c`` / ``a.b.0.c`` into segments; root paths give []."""
    path = (path or "").strip()
    if path in _ROOT_PATHS:
        return []
    if path.startswith("$."):
        path = path[2:]
    path = _INDEX_PATTERN.sub(r".\1", path)
    return [segment for segment in path.split(".") if segment]


def get_nested_value(obj: Any, path: str | None) -> Any:
    """Value at ``path`` in ``obj``, or None when any segment is missing."""
    current = obj
    for segment in normalize_path(path):
        if isinstance(current, dict):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def find_array_paths(obj: Any, max_depth: int = 2) -> list[str]:
    """Dotted paths of arrays in ``obj``, up to ``max_depth`` levels of objects."""
    paths: list[str] = []

    def _walk(value: Any, prefix: str, depth: int) -> None:
        if not isinstance(value, dict) or depth > max_depth:
            return
        for key, child in value.items():
            child_path = f"{prefix}.{key}" if prefix else str(key)
            if isinstance(child, list):
                paths.append(child_path)
            else:
                _walk(child, child_path, depth + 1)

    _walk(obj, "", 1)
    return paths


@dataclass
class ActionValidation:
    valid: bool
    json_path: str = ""
    items: list[Any] = field(default_factory=list)
    error: str | None = None
    available_arrays: list[str] = field(default_factory=list)
    suggestion: str | None = None
    value_at_path: Any = None
    response_keys: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.valid and not self.items


def validate_action_response(
    parsed: Any, config: PostActionConfig, action: str | None
) -> ActionValidation:
    """Check that ``parsed`` has what ``action`` needs."""
    if action not in ARRAY_ACTIONS:
        return ActionValidation(valid=True)

    path = config.primary_json_path
    value = get_nested_value(parsed, path)
    if isinstance(value, list):
        return ActionValidation(valid=True, json_path=path, items=value, value_at_path=value)

    available = find_array_paths(parsed)
    if value is None:
        error = f'Path "{path}" not found in response'
    else:
        error = f'Path "{path}" is not an array (found {type(value).__name__})'
    if available:
        suggestion = f"Set json_path to one of: {', '.join(available)}"
    else:
        suggestion = "The response contains no arrays; ask the model for a JSON array of items"
    return ActionValidation(
        valid=False,
        json_path=path,
        error=error,
        available_arrays=available,
        suggestion=suggestion,
        value_at_path=value,
        response_keys=list(parsed.keys()) if isinstance(parsed, dict) else [],
    )
