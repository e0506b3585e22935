"""Copy values from a parsed JSON response into the run's variable scope.

Two sources, both optional:

- ``mappings``: ``{variable_name: json_path}`` pairs
- an array at ``json_path`` (default ``variable_assignments``) of
  ``{"name": ..., "value": ...}`` objects written by the model itself

Bad entries are collected as errors; they never fail the action.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from promptcascade.graph.actions.extraction import get_nested_value
from promptcascade.graph.variables import SYSTEM_PREFIX, VariableScope, validate_variable_name
from promptcascade.schemas.prompt_node import VariableAssignmentsConfig

logger = logging.getLogger(__name__)


@dataclass
class AssignmentOutcome:
    assigned: dict[str, Any] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


def producer_slug(name: str, fallback: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "_", name).strip("_")
    return slug or fallback


def collect_assignments(
    parsed: Any, config: VariableAssignmentsConfig
) -> tuple[list[tuple[str, Any]], list[str]]:
    """Candidate ``(name, value)`` pairs and errors, before validation."""
    pairs: list[tuple[str, Any]] = []
    errors: list[str] = []

    for name, path in config.mappings.items():
        value = get_nested_value(parsed, path)
        if value is None:
            errors.append(f"{name}: path {path!r} not found in response")
            continue
        pairs.append((name, value))

    entries = get_nested_value(parsed, config.json_path) if config.json_path else None
    if entries is not None and not isinstance(entries, list):
        errors.append(f"{config.json_path!r} is not an array")
    elif entries:
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                errors.append(f"Entry {index}: Missing or invalid name field")
                continue
            pairs.append((entry["name"].strip(), entry.get("value")))

    return pairs, errors


def apply_variable_assignments(
    parsed: Any,
    config: VariableAssignmentsConfig,
    scope: VariableScope,
    *,
    producer_name: str = "",
    producer_id: str = "",
) -> AssignmentOutcome:
    """Merge the assignments found in ``parsed`` into ``scope``."""
    outcome = AssignmentOutcome()
    if not config.enabled:
        return outcome

    pairs, outcome.errors = collect_assignments(parsed, config)
    prefix = ""
    if config.qualify_with_producer:
        prefix = f"{SYSTEM_PREFIX}{producer_slug(producer_name, producer_id)}."

    for name, value in pairs:
        error = validate_variable_name(name)
        if error is None and name.startswith(SYSTEM_PREFIX):
            error = f"Names starting with {SYSTEM_PREFIX!r} are reserved"
        if error:
            outcome.errors.append(f"{name}: {error}")
            continue
        key = f"{prefix}{name}"
        value = "" if value is None else value
        if scope.set(key, value):
            outcome.assigned[key] = value
        else:
            outcome.errors.append(f"{key}: already set in this run")

    for error in outcome.errors:
        logger.warning("Variable assignment skipped: %s", error)
    if outcome.assigned:
        names = ", ".join(outcome.assigned)
        logger.info("Assigned %d variable(s): %s", len(outcome.assigned), names)
    return outcome
