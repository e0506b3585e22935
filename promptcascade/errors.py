"""Exception types raised by the cascade engine.

Generation-layer failures (``GenerationFailed``, ``TooManyInterrupts``)
propagate to the caller. Action-layer problems are normally captured into
``ActionResult`` objects; ``JsonParseError`` and ``ActionValidationFailed``
exist so the extraction helpers can signal them internally.
"""

from __future__ import annotations

from typing import Any


class CascadeError(Exception):
    """Base class for every engine error."""

    error_code: str = "CASCADE_ERROR"


class NodeNotFound(CascadeError):
    """A node id could not be found in the tree store."""

    error_code = "NODE_NOT_FOUND"

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Prompt not found: {node_id}")


class RunAlreadyActive(CascadeError):
    """A run was started while another one is still in progress."""

    error_code = "CONCURRENT_EXECUTION"

    def __init__(self, active_root_id: str | None):
        self.active_root_id = active_root_id
        super().__init__(f"Another execution is already running (root={active_root_id})")


# Provider errors whose names suggest a retry could succeed.
_RETRYABLE_ERROR_NAMES = (
    "RateLimitError",
    "Timeout",
    "TimeoutError",
    "APIConnectionError",
    "ServiceUnavailableError",
    "InternalServerError",
)


class GenerationFailed(CascadeError):
    """The generation provider raised while running a node."""

    error_code = "GENERATION_FAILED"

    def __init__(self, node_id: str, cause: BaseException):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Generation failed for node {node_id}: {cause}")

    @property
    def error_type(self) -> str:
        return type(self.cause).__name__

    @property
    def provider_error_code(self) -> str | None:
        code = getattr(self.cause, "status_code", None) or getattr(self.cause, "code", None)
        return str(code) if code is not None else None

    @property
    def retryable(self) -> bool:
        status_code = getattr(self.cause, "status_code", None)
        if isinstance(status_code, int) and (status_code == 429 or status_code >= 500):
            return True
        return self.error_type in _RETRYABLE_ERROR_NAMES


class TooManyInterrupts(CascadeError):
    """A node kept asking questions past its allowed number of round-trips."""

    error_code = "TOO_MANY_INTERRUPTS"

    def __init__(self, node_id: str, attempts: int, limit: int):
        self.node_id = node_id
        self.attempts = attempts
        self.limit = limit
        super().__init__(
            f"Node {node_id} exceeded the maximum of {limit} question round-trips"
        )


class JsonParseError(CascadeError):
    """A response that should carry JSON could not be parsed."""

    error_code = "JSON_PARSE_ERROR"

    def __init__(self, message: str, response_preview: str = ""):
        self.response_preview = response_preview
        super().__init__(message)


class ActionValidationFailed(CascadeError):
    """Parsed JSON did not match what the configured action needs."""

    error_code = "ACTION_VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        available_arrays: list[str] | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.available_arrays = available_arrays or []
        self.suggestion = suggestion
        self.details = details or {}
        super().__init__(message)
