"""Centralized configuration constants for Zweek.

This module provides a single source of truth for:
- Generation budgets (thinking chunks, token limits)
- Timeouts (engine calls, health checks)
- Prompt templates and the literal strings the stream parser depends on
- Branding shown at the top of the scrollback

Budgets can be overridden via environment variables where noted.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass

from .errors import ConfigurationError


# =============================================================================
# Helper functions
# =============================================================================


def _env_int(name: str, default: int, min_val: int | None = None) -> int:
    """Get integer from environment with optional minimum enforcement."""
    raw = os.environ.get(name, str(default))
    try:
        val = int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}", setting=name, expected="integer"
        ) from e
    if min_val is not None and val < min_val:
        return min_val
    return val


# =============================================================================
# Generation Budgets
# =============================================================================


@dataclass(frozen=True)
class GenerationLimits:
    """Limits for a single engine call.

    These prevent runaway reasoning and keep the router call tiny.
    """

    # Chunks received while still inside the thinking section
    THINKING_CHUNK_BUDGET: int = _env_int("ZWEEK_THINKING_BUDGET", 1000, min_val=1)

    # Tokens per chat generation (continuation uses the same limit)
    CHAT_MAX_TOKENS: int = _env_int("ZWEEK_CHAT_MAX_TOKENS", 2048, min_val=64)

    # Router output is a single label
    ROUTER_MAX_TOKENS: int = 10

    # Context windows requested from the engine
    CHAT_CONTEXT: int = 2048
    ROUTER_CONTEXT: int = 256


LIMITS = GenerationLimits()


# =============================================================================
# Timeouts (in seconds)
# =============================================================================


@dataclass(frozen=True)
class Timeouts:
    """Timeout values for engine operations."""

    # Streaming generation (per read, not total)
    GENERATION: float = 120.0

    # Model warm-up can take a while on first load
    MODEL_LOAD: float = 300.0

    # Health check and model listing
    ENGINE_CHECK: float = 5.0
    ENGINE_MODELS: float = 2.0

    # Worker join at shutdown
    WORKER_JOIN: float = 5.0


TIMEOUTS = Timeouts()


# =============================================================================
# Prompt Templates
# =============================================================================

ROUTER_LABELS = ("code", "chat", "tool")


@dataclass(frozen=True)
class PromptTemplates:
    """Literal strings sent to, or expected from, the engine.

    THINK_CLOSE must match what the chat model emits exactly; a mismatch is
    never an error but sends every exchange down the continuation path.
    """

    THINK_OPEN: str = "<think>\n"
    THINK_CLOSE: str = "</think>"

    CHAT_SYSTEM: str = "You are a helpful coding assistant."

    SYSTEM_TEMPLATE: str = "<|im_start|>system\n{system}<|im_end|>\n"
    USER_TEMPLATE: str = "<|im_start|>user\n{content}<|im_end|>\n"
    ASSISTANT_TEMPLATE: str = "<|im_start|>assistant\n{content}<|im_end|>\n"
    ASSISTANT_OPEN: str = "<|im_start|>assistant\n"

    ROUTER_PROMPT: str = "Classify this request as CODE, CHAT, or TOOL:\n{request}\nClassification:"

    # JSON schema handed to the engine as the router grammar
    ROUTER_GRAMMAR: str = json.dumps(
        {
            "type": "object",
            "properties": {"intent": {"type": "string", "enum": list(ROUTER_LABELS)}},
            "required": ["intent"],
        }
    )

    THINKING_LIMIT_ANNOTATION: str = "[Error: Thinking limit exceeded]"
    MODEL_NOT_LOADED: str = "Error: Chat model not loaded"
    CODE_PIPELINE_PENDING: str = "Code generation coming in Phase 2!"
    TOOL_MODE_PENDING: str = "Tool mode coming in Phase 2!"


PROMPTS = PromptTemplates()


# =============================================================================
# Branding
# =============================================================================


@dataclass(frozen=True)
class Branding:
    """Fixed header lines at the top of the scrollback."""

    LOGO: tuple[str, ...] = (
        " _____              _    ",
        "|__  /_      _____ | | __",
        "  / /\\ \\ /\\ / / _ \\| |/ /",
        " / /_ \\ V  V /  __/|   < ",
        "/____| \\_/\\_/ \\___||_|\\_\\",
    )
    VERSION: str = "v0.1.0"
    TAGLINE: str = "Local AI Coding Assistant"
    WELCOME: tuple[str, ...] = (
        "Welcome to Zweek Code - Local AI Coding Assistant",
        "Type your request and press Enter...",
    )


BRANDING = Branding()
