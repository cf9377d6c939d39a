"""Tests for the scrollback view-model and command recall."""

from __future__ import annotations

import threading

import pytest

from zweek.chat.section_parser import StreamPhase
from zweek.config import BRANDING
from zweek.ui.view_model import (
    ANSWER_HEADER,
    STICKY,
    THINKING_HIDDEN_HEADER,
    THINKING_SHOWN_HEADER,
    CommandRecall,
    LineStyle,
    PipelineStage,
    ScrollbackViewModel,
    classify_line,
)


@pytest.fixture
def view() -> ScrollbackViewModel:
    return ScrollbackViewModel()


def _texts(view: ScrollbackViewModel) -> list[str]:
    return [line.text for line in view.render().lines]


def _focused(view: ScrollbackViewModel) -> str:
    rendered = view.render()
    return rendered.lines[rendered.focus].text


# =============================================================================
# Layout
# =============================================================================


class TestLayout:
    """Tests for what render() produces."""

    def test_starts_with_banner_and_welcome(self, view: ScrollbackViewModel) -> None:
        """Logo, version line and welcome text are present on a fresh view."""
        texts = _texts(view)
        assert texts[: len(BRANDING.LOGO)] == list(BRANDING.LOGO)
        assert f"{BRANDING.VERSION} | {BRANDING.TAGLINE}" in texts
        for line in BRANDING.WELCOME:
            assert line in texts

    def test_total_lines_matches_render(self, view: ScrollbackViewModel) -> None:
        """total_lines() and render() always agree."""
        view.add_message("one\ntwo")
        view.append_stream(StreamPhase.THINKING, "a\nb\nc")
        view.append_stream(StreamPhase.ANSWER, "x")
        view.set_stage(PipelineStage.CHATTING)
        assert view.total_lines() == len(view.render())
        view.toggle_thinking()
        assert view.total_lines() == len(view.render())

    def test_messages_split_on_newlines(self, view: ScrollbackViewModel) -> None:
        """One log line per non-empty line of a message."""
        before = view.total_lines()
        view.add_message("first\n\nsecond\n")
        assert view.total_lines() == before + 2

    def test_append_is_verbatim(self, view: ScrollbackViewModel) -> None:
        """append() keeps blank lines."""
        before = view.total_lines()
        view.append(["a", "", "b"])
        assert view.total_lines() == before + 3

    def test_append_splits_embedded_newlines(self, view: ScrollbackViewModel) -> None:
        """One stored line per rendered line, even when an item holds a newline."""
        before = view.total_lines()
        view.append(["a\nb"])
        assert view.total_lines() == before + 2
        texts = _texts(view)
        assert texts[-2:] == ["a", "b"]
        assert all("\n" not in text for text in texts)

    def test_thinking_and_answer_panes(self, view: ScrollbackViewModel) -> None:
        """Panes render with their headers, thinking above answer."""
        view.append_stream(StreamPhase.THINKING, "step 1\nstep 2")
        view.append_stream(StreamPhase.ANSWER, "result")
        texts = _texts(view)
        thinking_at = texts.index(THINKING_SHOWN_HEADER)
        answer_at = texts.index(ANSWER_HEADER)
        assert texts[thinking_at + 1 : thinking_at + 3] == ["step 1", "step 2"]
        assert thinking_at < answer_at
        assert texts[answer_at + 1] == "result"

    def test_collapsed_thinking_is_one_line(self, view: ScrollbackViewModel) -> None:
        """Hidden thinking renders as a single header line."""
        view.append_stream(StreamPhase.THINKING, "a\nb\nc\nd")
        shown = view.total_lines()
        assert view.toggle_thinking() is False
        assert view.total_lines() == shown - 4
        assert THINKING_HIDDEN_HEADER in _texts(view)
        assert "a" not in _texts(view)

    def test_spinner_only_while_busy(self, view: ScrollbackViewModel) -> None:
        """Busy stages add a two-line spinner block."""
        idle = view.total_lines()
        view.set_stage(PipelineStage.CHATTING, announce=False)
        assert view.total_lines() == idle + 2
        assert view.render().lines[-1].style is LineStyle.SPINNER
        view.set_stage(PipelineStage.COMPLETE, announce=False)
        assert view.total_lines() == idle

    def test_spinner_advances(self, view: ScrollbackViewModel) -> None:
        """tick_spinner changes the frame only while busy."""
        view.tick_spinner()
        idle_revision = view.revision
        view.tick_spinner()
        assert view.revision == idle_revision

        view.set_stage(PipelineStage.CLASSIFYING, announce=False)
        first = view.render().lines[-1].text
        view.tick_spinner()
        assert view.render().lines[-1].text != first

    def test_stage_announcement(self, view: ScrollbackViewModel) -> None:
        """set_stage logs a status line unless told not to."""
        view.set_stage(PipelineStage.PLANNING)
        assert "[Planning]" in _texts(view)
        assert view.stage is PipelineStage.PLANNING

    def test_begin_exchange_folds_previous_answer(self, view: ScrollbackViewModel) -> None:
        """The last answer stays in the log; panes reset for the new request."""
        view.append_stream(StreamPhase.THINKING, "old thought")
        view.append_stream(StreamPhase.ANSWER, "old answer")
        view.begin_exchange("next question")
        texts = _texts(view)
        assert "old answer" in texts
        assert "old thought" not in texts
        assert texts[-1] == "> next question"
        assert view.thinking_text == ""
        assert view.answer_text == ""

    def test_add_error(self, view: ScrollbackViewModel) -> None:
        """Errors get the Error: prefix and ERROR style."""
        view.add_error("engine gone")
        last = view.render().lines[-1]
        assert last.text == "Error: engine gone"
        assert last.style is LineStyle.ERROR
        assert view.stage is PipelineStage.ERROR

    def test_clear_keeps_banner(self, view: ScrollbackViewModel) -> None:
        """clear() empties the log but not the header."""
        view.add_message("x")
        view.scroll_up(1)
        view.clear()
        assert len(view.render()) == len(BRANDING.LOGO) + 2
        assert view.scroll_state.is_sticky


class TestClassifyLine:
    """Tests for prefix-based line styling."""

    @pytest.mark.parametrize(
        "text,style",
        [
            ("", LineStyle.BLANK),
            ("Error: nope", LineStyle.ERROR),
            ("[Classifying]", LineStyle.STATUS),
            ("> hello", LineStyle.USER),
            ("Generated code:", LineStyle.PLAIN),
            ("anything else", LineStyle.PLAIN),
        ],
    )
    def test_prefixes(self, text: str, style: LineStyle) -> None:
        assert classify_line(text) is style


# =============================================================================
# Scrolling
# =============================================================================


class TestStickyScroll:
    """Tests for the sticky/absolute scroll state machine."""

    def test_starts_sticky_on_last_line(self, view: ScrollbackViewModel) -> None:
        """A fresh view follows the bottom."""
        assert view.scroll_state.position == STICKY
        rendered = view.render()
        assert rendered.focus == len(rendered) - 1

    def test_appends_keep_sticky(self, view: ScrollbackViewModel) -> None:
        """Repeated appends never change a sticky position."""
        for i in range(20):
            view.add_message(f"line {i}")
            assert view.scroll_state.is_sticky
            assert _focused(view) == f"line {i}"

    def test_scroll_up_pins_focused_line(self, view: ScrollbackViewModel) -> None:
        """After scroll_up, new content does not move the focus."""
        for i in range(5):
            view.add_message(f"line {i}")
        view.scroll_up(1)
        pinned = view.scroll_state.position
        assert _focused(view) == "line 3"
        for i in range(5, 10):
            view.add_message(f"line {i}")
        assert view.scroll_state.position == pinned
        assert _focused(view) == "line 3"

    def test_scroll_up_from_sticky_uses_total(self, view: ScrollbackViewModel) -> None:
        """Sticky converts to total - 1 before subtracting."""
        total = view.total_lines()
        view.scroll_up(3)
        assert view.scroll_state.position == total - 1 - 3

    def test_scroll_up_floors_at_zero(self, view: ScrollbackViewModel) -> None:
        view.scroll_up(10_000)
        assert view.scroll_state.position == 0
        assert view.render().focus == 0

    def test_scroll_down_noop_when_sticky(self, view: ScrollbackViewModel) -> None:
        view.scroll_down(5)
        assert view.scroll_state.is_sticky

    def test_scroll_down_returns_to_sticky_at_bottom(self, view: ScrollbackViewModel) -> None:
        """Reaching the last line converts back to sticky."""
        view.scroll_up(4)
        view.scroll_down(2)
        assert not view.scroll_state.is_sticky
        view.scroll_down(2)
        assert view.scroll_state.is_sticky

    def test_jump_home_and_end(self, view: ScrollbackViewModel) -> None:
        view.jump_home()
        assert view.scroll_state.position == 0
        assert view.render().focus == 0
        view.jump_end()
        assert view.scroll_state.is_sticky

    def test_focus_clamped_when_content_shrinks(self, view: ScrollbackViewModel) -> None:
        """A stale absolute index never points past the last line."""
        view.set_stage(PipelineStage.CHATTING, announce=False)
        view.scroll_up(1)
        view.set_stage(PipelineStage.COMPLETE, announce=False)
        rendered = view.render()
        assert rendered.focus == len(rendered) - 1

    def test_scroll_state_is_a_copy(self, view: ScrollbackViewModel) -> None:
        """Mutating the returned state does not affect the view."""
        state = view.scroll_state
        state.position = 0
        assert view.scroll_state.is_sticky


class TestConcurrentAccess:
    """The worker streams while the UI renders."""

    def test_stream_and_render_interleave(self, view: ScrollbackViewModel) -> None:
        """Rendering during streaming always sees a consistent view."""
        done = threading.Event()

        def writer() -> None:
            for i in range(500):
                view.append_stream(StreamPhase.THINKING, f"t{i}\n")
            done.set()

        thread = threading.Thread(target=writer)
        thread.start()
        while not done.is_set():
            rendered = view.render()
            assert 0 <= rendered.focus < len(rendered)
        thread.join()
        assert view.thinking_text.count("\n") == 500


# =============================================================================
# Command Recall
# =============================================================================


class TestCommandRecall:
    """Tests for Up/Down input history."""

    def test_empty_recall(self) -> None:
        recall = CommandRecall()
        assert recall.previous() is None
        assert recall.next() is None

    def test_browse_back_and_forward(self) -> None:
        """Up walks to older entries, Down back to an empty line."""
        recall = CommandRecall()
        for text in ("a", "b", "c"):
            recall.record(text)
        assert recall.previous() == "c"
        assert recall.previous() == "b"
        assert recall.previous() == "a"
        assert recall.previous() == "a"
        assert recall.next() == "b"
        assert recall.next() == "c"
        assert recall.next() == ""
        assert recall.next() is None

    def test_record_resets_browsing(self) -> None:
        recall = CommandRecall()
        recall.record("a")
        recall.previous()
        recall.record("b")
        assert recall.next() is None
        assert recall.previous() == "b"
        assert recall.entries == ["a", "b"]
