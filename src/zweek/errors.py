"""Zweek Error Hierarchy.

Provides a structured error hierarchy for the assistant:
- ZweekError: Base exception for all application errors
- EngineError: Inference engine failures (load, generation)
- GenerationInProgressError: A second request arrived while one is running
- PersistenceError: History store failures
- ConfigurationError: Configuration/setup issues

Each error type includes:
- Descriptive message
- Recoverable flag for retry logic
- Structured context for logs and UI

Usage:
    from zweek.errors import EngineUnavailableError

    if not engine.load(model):
        raise EngineUnavailableError("Chat model not loaded", model=model)
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)


# =============================================================================
# Error Base Class
# =============================================================================


class ZweekError(Exception):
    """Base exception for all Zweek application errors.

    Attributes:
        message: Human-readable error description
        recoverable: Whether the operation can be retried
        context: Additional context for debugging
    """

    def __init__(
        self,
        message: str,
        *,
        recoverable: bool = False,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to structured dictionary for logs and status lines."""
        return {
            "type": type(self).__name__.lower().replace("error", ""),
            "message": self.message,
            "recoverable": self.recoverable,
            **{k: v for k, v in self.context.items() if v is not None},
        }


# =============================================================================
# Engine Errors
# =============================================================================


class EngineError(ZweekError):
    """Inference engine operation failed.

    Base class for all engine-related errors.
    """

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        model: str | None = None,
        recoverable: bool = False,
        **kwargs: Any,
    ) -> None:
        context = kwargs.pop("context", {})
        if engine:
            context["engine"] = engine
        if model:
            context["model"] = model
        super().__init__(message, recoverable=recoverable, context=context)
        self.engine = engine
        self.model = model


class EngineUnavailableError(EngineError):
    """The engine could not be reached or the model could not be loaded."""

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        model: str | None = None,
        url: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(
            message,
            engine=engine,
            model=model,
            recoverable=True,  # Can retry after starting the engine
            context={"url": url, "suggestion": suggestion},
        )


class GenerationError(EngineError):
    """A generation call failed after the engine accepted it."""

    def __init__(
        self,
        message: str,
        *,
        engine: str | None = None,
        model: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            message,
            engine=engine,
            model=model,
            recoverable=timeout_seconds is not None,  # Timeouts are often transient
            context={"timeout_seconds": timeout_seconds},
        )


# =============================================================================
# Orchestration Errors
# =============================================================================


class GenerationInProgressError(ZweekError):
    """A request was submitted while another generation is still running.

    Only one generation may be in flight per session; the caller should wait
    for the running task or cancel it first.
    """

    def __init__(self, message: str = "A response is still being generated") -> None:
        super().__init__(message, recoverable=True)


# =============================================================================
# Persistence Errors
# =============================================================================


class PersistenceError(ZweekError):
    """History store operation failed."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(
            message,
            recoverable=recoverable,
            context={"operation": operation, "path": _truncate(path, 200)},
        )


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ZweekError):
    """Configuration or setup issue."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(
            message,
            recoverable=False,
            context={
                "setting": setting,
                "expected": expected,
                "suggestion": suggestion,
            },
        )


# =============================================================================
# Error Handling Decorator
# =============================================================================


def handle_errors(
    operation: str,
    *,
    log_level: str = "error",
    reraise: bool = False,
    default: Any = None,
) -> Callable:
    """Decorator that standardizes exception handling.

    Catches exceptions, logs them with context, and either re-raises or
    returns a default value. ZweekError exceptions are propagated
    as-is when reraise is set since they're already structured.

    Args:
        operation: Human-readable description of what the function does.
        log_level: Logging level for caught exceptions ("error", "warning", "debug").
        reraise: If True, re-raise as ZweekError. If False, return default.
        default: Value to return when exception caught and reraise=False.

    Usage:
        @handle_errors("mirror turn to history store", log_level="warning")
        def mirror(turn: ConversationTurn) -> None:
            store.append_turn(turn.role.value, turn.content)
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log_fn = getattr(logger, log_level, logger.error)
                log_fn(
                    "Failed to %s: %s (function=%s, args_preview=%s)",
                    operation,
                    e,
                    func.__name__,
                    _truncate(str(args), 100),
                )

                if reraise:
                    if isinstance(e, ZweekError):
                        raise
                    raise ZweekError(
                        f"Failed to {operation}: {e}",
                        context={"original_error": str(e), "error_type": type(e).__name__},
                    ) from e

                return default

        return wrapper

    return decorator


# =============================================================================
# Helpers
# =============================================================================


def _truncate(value: str | None, max_len: int) -> str | None:
    """Truncate a string value for safe logging."""
    if value is None:
        return None
    if len(value) <= max_len:
        return value
    return value[:max_len] + "..."
