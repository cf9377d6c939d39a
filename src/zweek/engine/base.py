"""Inference Engine Protocol - Abstract interface for local generation backends.

The chat session and the intent classifier only talk to an engine through
this protocol, so tests can substitute a scripted engine and the Ollama
backend can be swapped without touching either.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

ChunkCallback = Callable[[str], None]


class CancellationToken:
    """Cooperative stop signal shared between a request owner and a generation.

    The flag is write-once: once cancelled it stays cancelled. Whoever
    started the generation (or the session itself, when a budget runs out)
    may set it; the engine polls it between chunks.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


@dataclass
class EngineHealth:
    """Health status of an inference engine.

    Attributes:
        reachable: Whether the engine is accessible.
        model_count: Number of available models.
        error: Error message if not reachable.
        current_model: Currently loaded model name.
    """

    reachable: bool
    model_count: int = 0
    error: str | None = None
    current_model: str | None = None


@dataclass
class ModelInfo:
    """Information about an available model.

    Attributes:
        name: Model identifier (e.g., "qwen3:1.7b").
        size_gb: Model size in gigabytes.
        family: Model family reported by the engine.
        families: Model families reported by the engine (e.g., ["qwen3"]).
    """

    name: str
    size_gb: float | None = None
    family: str | None = None
    families: list[str] = field(default_factory=list)


@runtime_checkable
class InferenceEngine(Protocol):
    """Abstract interface for a local inference engine.

    One engine instance holds at most one loaded model. A chat engine and a
    router engine are separate instances.

    Example:
        engine = OllamaEngine()
        if engine.load("qwen3:1.7b"):
            text = engine.infer(prompt, "", 256, print, CancellationToken())
    """

    @property
    def is_loaded(self) -> bool:
        """Whether a model is currently loaded."""
        ...

    def load(self, model: str, *, resident: bool = False) -> bool:
        """Load a model, replacing any previously loaded one.

        Args:
            model: Model identifier.
            resident: Keep the model in memory between calls.

        Returns:
            True if the model is ready for inference.
        """
        ...

    def unload(self) -> None:
        """Release the loaded model, if any."""
        ...

    def infer(
        self,
        prompt: str,
        grammar: str,
        max_tokens: int,
        on_chunk: ChunkCallback | None,
        cancel: CancellationToken | None,
    ) -> str:
        """Generate a completion for a raw prompt, streaming chunks.

        Args:
            prompt: Fully templated prompt text.
            grammar: Output constraint ("" for none).
            max_tokens: Upper bound on generated tokens.
            on_chunk: Called with each generated text fragment, in order.
            cancel: Checked between chunks; generation stops once set.

        Returns:
            The concatenated generated text (partial when cancelled).

        Raises:
            GenerationError: If no model is loaded or the backend fails.
        """
        ...
