"""Inference engines - Pluggable local generation backends.

This package provides the interface the chat session and router use:
- InferenceEngine: protocol every backend implements
- CancellationToken: cooperative stop flag polled between chunks
- OllamaEngine: local inference through an Ollama server

Usage:
    from zweek.engine import CancellationToken, OllamaEngine

    engine = OllamaEngine()
    if engine.load("qwen3:1.7b"):
        engine.infer(prompt, "", 512, on_chunk, CancellationToken())
"""

from __future__ import annotations

from zweek.engine.base import (
    CancellationToken,
    ChunkCallback,
    EngineHealth,
    InferenceEngine,
    ModelInfo,
)
from zweek.engine.ollama import OllamaEngine

__all__ = [
    "CancellationToken",
    "ChunkCallback",
    "EngineHealth",
    "InferenceEngine",
    "ModelInfo",
    "OllamaEngine",
]
