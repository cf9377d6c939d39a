from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Callable

import pytest

from zweek.engine.base import CancellationToken
from zweek.history_store import HistoryStore

Script = list[str] | Exception


class ScriptedEngine:
    """Inference engine that replays canned chunk lists, one per infer() call.

    Each script is a list of chunks, or an exception to raise instead.
    Once the scripts run out, infer() produces nothing. The cancel token is
    checked before every chunk, like the real engine.
    """

    def __init__(self, scripts: list[Script] | None = None, *, load_ok: bool = True) -> None:
        self.scripts: list[Script] = list(scripts or [])
        self.load_ok = load_ok
        self.loaded_model: str | None = None
        self.loads: list[tuple[str, bool]] = []
        self.calls: list[dict[str, object]] = []
        self.unloaded = 0

    @property
    def is_loaded(self) -> bool:
        return self.loaded_model is not None

    def load(self, model: str, *, resident: bool = False) -> bool:
        self.loads.append((model, resident))
        if self.load_ok:
            self.loaded_model = model
        return self.load_ok

    def unload(self) -> None:
        self.unloaded += 1
        self.loaded_model = None

    def infer(
        self,
        prompt: str,
        grammar: str,
        max_tokens: int,
        on_chunk: Callable[[str], None] | None,
        cancel: CancellationToken | None,
    ) -> str:
        self.calls.append({"prompt": prompt, "grammar": grammar, "max_tokens": max_tokens})
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, Exception):
            raise script

        produced: list[str] = []
        for chunk in script:
            if cancel is not None and cancel.is_cancelled:
                break
            produced.append(chunk)
            if on_chunk is not None:
                on_chunk(chunk)
        return "".join(produced)


class RecordingSink:
    """Collects (phase, text) deltas from a chat session."""

    def __init__(self) -> None:
        self.events: list[tuple[object, str]] = []

    def __call__(self, phase: object, text: str) -> None:
        self.events.append((phase, text))

    def text(self, phase: object) -> str:
        return "".join(t for p, t in self.events if p is phase)


@pytest.fixture
def scripted_engine() -> Callable[..., ScriptedEngine]:
    """Factory for ScriptedEngine instances."""
    return ScriptedEngine


@pytest.fixture
def history_store(tmp_path: Path) -> Iterator[HistoryStore]:
    """A history store on a temp database."""
    store = HistoryStore(tmp_path / "history-test.db")
    try:
        yield store
    finally:
        store.close()
