"""Incremental splitter for reasoning-model output.

Reasoning models stream a thinking section, then a closing delimiter, then the
answer. Chunks arrive with arbitrary boundaries, so the delimiter can be split
across two or more chunks. The parser holds back just enough of the tail of
the thinking text to recognise a split delimiter, and emits everything else
as soon as it is known to be thinking.

The output is the same for every chunking of the same stream.
"""

from __future__ import annotations

import logging
from enum import Enum

from zweek.config import PROMPTS

logger = logging.getLogger(__name__)


class StreamPhase(Enum):
    """Which section of the response is currently streaming."""

    THINKING = "thinking"
    ANSWER = "answer"


class SectionParser:
    """Split a streamed response into thinking and answer deltas.

    Starts in THINKING. The phase flips to ANSWER at most once, on the first
    occurrence of the delimiter, and never flips back.
    """

    def __init__(self, delimiter: str = PROMPTS.THINK_CLOSE) -> None:
        if not delimiter:
            raise ValueError("delimiter must be non-empty")
        self._delimiter = delimiter
        self._holdback = len(delimiter) - 1
        self._phase = StreamPhase.THINKING
        self._pending = ""
        self._skip_newline = False
        self._thinking: list[str] = []
        self._answer: list[str] = []

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    @property
    def pending(self) -> str:
        """Thinking-phase text held back because it may start the delimiter."""
        return self._pending

    @property
    def thinking_text(self) -> str:
        return "".join(self._thinking)

    @property
    def answer_text(self) -> str:
        return "".join(self._answer)

    def consume(self, chunk: str) -> tuple[str, str]:
        """Feed one chunk.

        Args:
            chunk: Next fragment of the raw stream.

        Returns:
            (thinking_delta, answer_delta) newly determined by this chunk.
        """
        if self._phase is StreamPhase.ANSWER:
            return "", self._emit_answer(chunk)

        self._pending += chunk
        idx = self._pending.find(self._delimiter)
        if idx >= 0:
            thinking = self._pending[:idx]
            rest = self._pending[idx + len(self._delimiter):]
            self._pending = ""
            self._phase = StreamPhase.ANSWER
            self._skip_newline = True
            logger.debug("Thinking section closed after %d chars", len(self.thinking_text) + idx)
            self._thinking.append(thinking)
            return thinking, self._emit_answer(rest)

        cut = max(0, len(self._pending) - self._holdback)
        thinking = self._pending[:cut]
        self._pending = self._pending[cut:]
        self._thinking.append(thinking)
        return thinking, ""

    def finish(self) -> tuple[str, str]:
        """End of stream: whatever is still held back was thinking."""
        if self._phase is StreamPhase.ANSWER or not self._pending:
            return "", ""
        thinking = self._pending
        self._pending = ""
        self._thinking.append(thinking)
        return thinking, ""

    def _emit_answer(self, text: str) -> str:
        # A single newline right after the delimiter is formatting, not answer
        if self._skip_newline and text:
            self._skip_newline = False
            if text.startswith("\n"):
                text = text[1:]
        self._answer.append(text)
        return text
