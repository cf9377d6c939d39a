"""Scrollback view-model shared by the front ends.

Holds everything the scrollback shows: the fixed banner, the message log, the
thinking and answer panes of the current exchange, the spinner, and the scroll
state. Front ends call render() and draw the styled lines; they never compute
line counts themselves, so scrolling and drawing can't disagree.

All state is guarded by one lock. The worker thread streams into the panes
while the UI thread scrolls and renders.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from zweek.chat.section_parser import StreamPhase
from zweek.config import BRANDING

logger = logging.getLogger(__name__)

# Scroll position that follows the newest line
STICKY = -1

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")

THINKING_SHOWN_HEADER = "▼ Thinking (press 't' to hide)"
THINKING_HIDDEN_HEADER = "▶ Thinking (press 't' to show)"
ANSWER_HEADER = "Final Answer:"
SPINNER_LABEL = "Working... "


class LineStyle(Enum):
    """Semantic role of a line; front ends map these to colors."""

    LOGO = "logo"
    TAGLINE = "tagline"
    BLANK = "blank"
    PLAIN = "plain"
    USER = "user"
    STATUS = "status"
    ERROR = "error"
    THINKING_HEADER = "thinking_header"
    THINKING = "thinking"
    ANSWER_HEADER = "answer_header"
    ANSWER = "answer"
    SPINNER = "spinner"


class PipelineStage(Enum):
    """Where the current request is in the pipeline."""

    IDLE = "Idle"
    CLASSIFYING = "Classifying"
    PLANNING = "Planning"
    CHATTING = "Chatting"
    TOOL_EXECUTION = "Executing tools"
    COMPLETE = "Complete"
    ERROR = "Error"

    @property
    def label(self) -> str:
        return self.value

    @property
    def is_busy(self) -> bool:
        return self not in (PipelineStage.IDLE, PipelineStage.COMPLETE, PipelineStage.ERROR)


@dataclass(frozen=True)
class StyledLine:
    text: str
    style: LineStyle


@dataclass
class ScrollState:
    """Scroll position (STICKY or an absolute line index) and pane visibility."""

    position: int = STICKY
    thinking_visible: bool = True

    @property
    def is_sticky(self) -> bool:
        return self.position == STICKY


@dataclass(frozen=True)
class RenderedView:
    """One render pass: every line, plus the index of the focused one."""

    lines: tuple[StyledLine, ...]
    focus: int
    revision: int

    def __len__(self) -> int:
        return len(self.lines)


def classify_line(text: str) -> LineStyle:
    """Pick a style for a message-log line from its prefix."""
    if not text:
        return LineStyle.BLANK
    if text.startswith("Error:"):
        return LineStyle.ERROR
    if text.startswith("[") and "]" in text:
        return LineStyle.STATUS
    if text.startswith(">"):
        return LineStyle.USER
    return LineStyle.PLAIN


def _header_lines() -> list[StyledLine]:
    lines = [StyledLine(line, LineStyle.LOGO) for line in BRANDING.LOGO if line]
    lines.append(StyledLine(f"{BRANDING.VERSION} | {BRANDING.TAGLINE}", LineStyle.TAGLINE))
    lines.append(StyledLine("", LineStyle.BLANK))
    return lines


class ScrollbackViewModel:
    """Append-only scrollback with sticky scrolling.

    Appending never moves the scroll position: while STICKY the render simply
    resolves to the last line, and while the user is browsing an absolute
    index the focused line stays put as new content arrives below it.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._header = _header_lines()
        self._messages: list[StyledLine] = []
        self._thinking = ""
        self._answer = ""
        self._stage = PipelineStage.IDLE
        self._spinner_frame = 0
        self._scroll = ScrollState()
        self._revision = 0
        self._add_welcome()

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def revision(self) -> int:
        """Incremented on every change; cheap redraw check for front ends."""
        with self._lock:
            return self._revision

    @property
    def scroll_state(self) -> ScrollState:
        with self._lock:
            return ScrollState(self._scroll.position, self._scroll.thinking_visible)

    @property
    def stage(self) -> PipelineStage:
        with self._lock:
            return self._stage

    @property
    def thinking_text(self) -> str:
        with self._lock:
            return self._thinking

    @property
    def answer_text(self) -> str:
        with self._lock:
            return self._answer

    # -------------------------------------------------------------------------
    # Content
    # -------------------------------------------------------------------------

    def append(self, lines: Iterable[str]) -> None:
        """Append lines to the message log, blank ones included.

        An item holding newlines becomes one log line per piece, so every
        stored line is exactly one rendered line.
        """
        with self._lock:
            for item in lines:
                for line in item.split("\n"):
                    self._messages.append(StyledLine(line, classify_line(line)))
            self._touch()

    def add_message(self, text: str) -> None:
        """Append a message, one log line per non-empty text line."""
        self.append(line for line in text.split("\n") if line)

    def add_error(self, text: str) -> None:
        with self._lock:
            self._stage = PipelineStage.ERROR
            self.add_message(text if text.startswith("Error:") else f"Error: {text}")

    def begin_exchange(self, user_text: str) -> None:
        """Echo a submitted request and start fresh thinking/answer panes.

        The previous exchange's answer moves into the message log so it stays
        in the scrollback.
        """
        with self._lock:
            self._fold_panes()
            self._messages.append(StyledLine(f"> {user_text}", LineStyle.USER))
            self._touch()

    def append_stream(self, phase: StreamPhase, text: str) -> None:
        """Add a parsed delta to the thinking or answer pane."""
        if not text:
            return
        with self._lock:
            if phase is StreamPhase.THINKING:
                self._thinking += text
            else:
                self._answer += text
            self._touch()

    def set_stage(self, stage: PipelineStage, *, announce: bool = True) -> None:
        """Change the pipeline stage, logging it as a "[Stage]" status line."""
        with self._lock:
            if stage is self._stage:
                return
            self._stage = stage
            if announce and stage is not PipelineStage.IDLE:
                self._messages.append(StyledLine(f"[{stage.label}]", LineStyle.STATUS))
            self._touch()

    def tick_spinner(self) -> None:
        with self._lock:
            if self._stage.is_busy:
                self._spinner_frame = (self._spinner_frame + 1) % len(SPINNER_FRAMES)
                self._touch()

    def toggle_thinking(self) -> bool:
        """Flip thinking-pane visibility; returns the new state."""
        with self._lock:
            self._scroll.thinking_visible = not self._scroll.thinking_visible
            self._touch()
            return self._scroll.thinking_visible

    def clear(self) -> None:
        """Empty the message log and panes. The banner stays."""
        with self._lock:
            self._messages.clear()
            self._thinking = ""
            self._answer = ""
            self._stage = PipelineStage.IDLE
            self._scroll.position = STICKY
            self._touch()
        logger.debug("Scrollback cleared")

    # -------------------------------------------------------------------------
    # Scrolling
    # -------------------------------------------------------------------------

    def scroll_up(self, n: int = 1) -> None:
        with self._lock:
            if self._scroll.is_sticky:
                self._scroll.position = self._total_lines() - 1
            self._scroll.position = max(0, self._scroll.position - n)
            self._touch()

    def scroll_down(self, n: int = 1) -> None:
        with self._lock:
            if self._scroll.is_sticky:
                return
            self._scroll.position += n
            if self._scroll.position >= self._total_lines() - 1:
                self._scroll.position = STICKY
            self._touch()

    def jump_home(self) -> None:
        with self._lock:
            self._scroll.position = 0
            self._touch()

    def jump_end(self) -> None:
        with self._lock:
            self._scroll.position = STICKY
            self._touch()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def total_lines(self) -> int:
        with self._lock:
            return self._total_lines()

    def render(self) -> RenderedView:
        """Build every line and resolve the focused one."""
        with self._lock:
            lines = self._build_lines()
            total = len(lines)
            resolved = total - 1 if self._scroll.is_sticky else self._scroll.position
            focus = max(0, min(resolved, total - 1))
            return RenderedView(lines=tuple(lines), focus=focus, revision=self._revision)

    def _total_lines(self) -> int:
        return len(self._build_lines())

    def _build_lines(self) -> list[StyledLine]:
        lines = list(self._header)
        lines.extend(self._messages)

        if self._thinking or self._answer:
            lines.append(StyledLine("", LineStyle.BLANK))

            if self._thinking:
                if self._scroll.thinking_visible:
                    lines.append(StyledLine(THINKING_SHOWN_HEADER, LineStyle.THINKING_HEADER))
                    lines.extend(
                        StyledLine(line, LineStyle.THINKING)
                        for line in self._thinking.splitlines()
                    )
                else:
                    lines.append(StyledLine(THINKING_HIDDEN_HEADER, LineStyle.THINKING_HEADER))

            if self._answer:
                lines.append(StyledLine("", LineStyle.BLANK))
                lines.append(StyledLine(ANSWER_HEADER, LineStyle.ANSWER_HEADER))
                lines.extend(
                    StyledLine(line, LineStyle.ANSWER) for line in self._answer.splitlines()
                )

        if self._stage.is_busy:
            frame = SPINNER_FRAMES[self._spinner_frame % len(SPINNER_FRAMES)]
            lines.append(StyledLine("", LineStyle.BLANK))
            lines.append(StyledLine(f"{SPINNER_LABEL}{frame}", LineStyle.SPINNER))

        return lines

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _add_welcome(self) -> None:
        for line in BRANDING.WELCOME:
            self._messages.append(StyledLine(line, LineStyle.PLAIN))
        self._messages.append(StyledLine("", LineStyle.BLANK))

    def _fold_panes(self) -> None:
        if self._answer.strip():
            self._messages.extend(
                StyledLine(line, LineStyle.ANSWER)
                for line in self._answer.splitlines()
                if line
            )
        self._thinking = ""
        self._answer = ""

    def _touch(self) -> None:
        self._revision += 1


class CommandRecall:
    """Up/Down browsing of previously submitted inputs.

    The index is None while not browsing; Up starts from the newest entry.
    """

    def __init__(self) -> None:
        self._entries: list[str] = []
        self._index: int | None = None

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    def record(self, text: str) -> None:
        if text:
            self._entries.append(text)
        self._index = None

    def previous(self) -> str | None:
        """Older entry, or None when there is nothing to recall."""
        if not self._entries:
            return None
        if self._index is None:
            self._index = len(self._entries) - 1
        elif self._index > 0:
            self._index -= 1
        return self._entries[self._index]

    def next(self) -> str | None:
        """Newer entry; "" past the newest; None when not browsing."""
        if self._index is None:
            return None
        if self._index < len(self._entries) - 1:
            self._index += 1
            return self._entries[self._index]
        self._index = None
        return ""
