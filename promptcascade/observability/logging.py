"""
Logging for cascade runs, with the run's identifiers attached to every line.

The walker stores ``trace_id`` and ``run_id`` in a ContextVar when a run
starts and the node executor adds ``node_id`` before each generation. Both
formatters read that context, so modules just call ``logger.info(...)``:

    CascadeWalker._run()       set_trace_context(trace_id=..., run_id=...)
    NodeExecutor.run_node()    set_trace_context(node_id=...)
    any module                 logger.info("...")  → context included

Output is JSON (``StructuredFormatter``) or coloured text
(``HumanReadableFormatter``); ``configure_logging`` picks one.
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Attributes copied from ``extra={...}`` into JSON entries
_EXTRA_FIELDS = ("event", "node_id", "latency_ms", "tokens_used", "model", "action", "depth")

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"

_THIRD_PARTY_LOGGERS = ("LiteLLM", "LiteLLM Router", "httpcore", "httpx", "openai")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI colour sequences."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


def _clean(value: Any) -> Any:
    return strip_ansi_codes(value) if isinstance(value, str) else value


class StructuredFormatter(logging.Formatter):
    """One JSON object per line: base fields, run context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        entry.update(
            (name, _clean(getattr(record, name)))
            for name in _EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Coloured single-line output for terminals.

    Lines look like ``[INFO    ] [trace:1a2b3c4d | run:9f8e7d6c | node:intro] message``;
    the trace id keeps its first eight characters and the run id its last
    eight. An ``event`` extra is appended in brackets.
    """

    def format(self, record: logging.LogRecord) -> str:
        level = f"{_LEVEL_COLORS.get(record.levelname, '')}[{record.levelname:<8}]{_RESET}"
        parts = [level]

        prefix = self._context_prefix(trace_context.get() or {})
        if prefix:
            parts.append(prefix)
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event is not None:
            parts.append(f"[{event}]")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def _context_prefix(context: dict[str, Any]) -> str:
        labels = []
        if context.get("trace_id"):
            labels.append(f"trace:{context['trace_id'][:8]}")
        if context.get("run_id"):
            labels.append(f"run:{context['run_id'][-8:]}")
        if context.get("node_id"):
            labels.append(f"node:{context['node_id']}")
        return f"[{' | '.join(labels)}]" if labels else ""


def _select_format(requested: str) -> str:
    if requested != "auto":
        return requested
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single stream handler on the root logger.

    Args:
        level: Log level name.
        format: ``"json"``, ``"human"`` or ``"auto"``. Auto means JSON when
            ``LOG_FORMAT=json`` or ``ENV=production``, human otherwise.
    """
    chosen = _select_format(format)
    handler = logging.StreamHandler()
    if chosen == "json":
        handler.setFormatter(StructuredFormatter())
        _quiet_third_party()
    else:
        handler.setFormatter(HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())


def _quiet_third_party() -> None:
    """Turn off colour in LiteLLM and send its loggers through the root handler."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"

    import litellm

    litellm.suppress_debug_info = True
    for name in _THIRD_PARTY_LOGGERS:
        third_party = logging.getLogger(name)
        third_party.handlers.clear()
        third_party.propagate = True


def set_trace_context(**kwargs: Any) -> None:
    """Merge ``kwargs`` into the current context."""
    trace_context.set({**(trace_context.get() or {}), **kwargs})


def get_trace_context() -> dict:
    """Return a copy of the current context."""
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)
