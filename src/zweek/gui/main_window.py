"""Main window: scrollback over an input line."""

from __future__ import annotations

import logging

from PySide6.QtCore import QEvent, QObject, QSize, Qt, QTimer
from PySide6.QtGui import QCloseEvent, QColor, QFont, QKeyEvent, QTextCharFormat, QTextCursor, QWheelEvent
from PySide6.QtWidgets import (
    QLabel,
    QLineEdit,
    QMainWindow,
    QTextEdit,
    QVBoxLayout,
    QWidget,
)

from ..config import BRANDING
from ..errors import GenerationInProgressError
from ..pipeline.orchestrator import Orchestrator, build_orchestrator, view_callbacks
from ..ui.view_model import CommandRecall, LineStyle, RenderedView, ScrollbackViewModel

logger = logging.getLogger(__name__)

# Lines moved per input event
WHEEL_LINES = 3
PAGE_LINES = 10
STEP_LINES = 1

REFRESH_MS = 100

# (color, bold, dim) per line style
_STYLE_FORMATS: dict[LineStyle, tuple[str | None, bool, bool]] = {
    LineStyle.LOGO: ("#2bb3c0", False, False),
    LineStyle.TAGLINE: ("#a0a0a0", False, True),
    LineStyle.BLANK: (None, False, False),
    LineStyle.PLAIN: (None, False, False),
    LineStyle.USER: ("#ffffff", True, False),
    LineStyle.STATUS: ("#d7b53c", False, True),
    LineStyle.ERROR: ("#e05252", False, False),
    LineStyle.THINKING_HEADER: ("#707070", False, True),
    LineStyle.THINKING: ("#9a9a9a", False, True),
    LineStyle.ANSWER_HEADER: ("#4caf50", True, False),
    LineStyle.ANSWER: (None, False, False),
    LineStyle.SPINNER: ("#d7b53c", True, False),
}


def _char_format(style: LineStyle) -> QTextCharFormat:
    color, bold, dim = _STYLE_FORMATS.get(style, (None, False, False))
    fmt = QTextCharFormat()
    if color is not None:
        qcolor = QColor(color)
        if dim:
            qcolor.setAlphaF(0.7)
        fmt.setForeground(qcolor)
    if bold:
        fmt.setFontWeight(QFont.Weight.Bold)
    return fmt


class MainWindow(QMainWindow):
    """Zweek desktop app: streaming answers with a collapsible thinking pane."""

    def __init__(self, orchestrator: Orchestrator | None = None) -> None:
        super().__init__()
        self.setWindowTitle(f"Zweek Code {BRANDING.VERSION}")
        self.resize(QSize(1100, 800))

        self._view = ScrollbackViewModel()
        self._recall = CommandRecall()
        if orchestrator is None:
            orchestrator = build_orchestrator()
        orchestrator.callbacks = view_callbacks(self._view)
        self._orchestrator = orchestrator
        self._rendered_revision = -1

        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        self._scrollback = QTextEdit()
        self._scrollback.setReadOnly(True)
        self._scrollback.setFont(QFont("monospace"))
        self._scrollback.setStyleSheet("background-color: #1e1e1e; color: #dcdcdc;")
        self._scrollback.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOn)
        self._scrollback.viewport().installEventFilter(self)
        layout.addWidget(self._scrollback, stretch=1)

        self._status = QLabel("Ready")
        self._status.setStyleSheet("color: #888; font-size: 11px;")
        layout.addWidget(self._status)

        self.chat_input = QLineEdit()
        self.chat_input.setPlaceholderText("Type your request...")
        self.chat_input.returnPressed.connect(self._on_submit)
        self.chat_input.installEventFilter(self)
        layout.addWidget(self.chat_input)

        # The worker writes into the view-model; redraw from here on change
        self.refresh_timer = QTimer(self)
        self.refresh_timer.timeout.connect(self._on_tick)
        self.refresh_timer.start(REFRESH_MS)

        self._render()
        self.chat_input.setFocus()

    @property
    def view(self) -> ScrollbackViewModel:
        return self._view

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def _on_submit(self) -> None:
        text = self.chat_input.text().strip()
        if not text:
            return

        try:
            self._orchestrator.submit(text)
        except GenerationInProgressError:
            logger.debug("Submit ignored; a response is still streaming")
            self._view.add_message("[Still working - press Esc to interrupt]")
            return

        self._recall.record(text)
        self.chat_input.clear()

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:  # noqa: N802
        if obj is self._scrollback.viewport() and event.type() == QEvent.Type.Wheel:
            self._on_wheel(event)  # type: ignore[arg-type]
            return True
        if obj is self.chat_input and event.type() == QEvent.Type.KeyPress:
            if self._on_key(event):  # type: ignore[arg-type]
                self._render()
                return True
        return super().eventFilter(obj, event)

    def _on_wheel(self, event: QWheelEvent) -> None:
        if event.angleDelta().y() > 0:
            self._view.scroll_up(WHEEL_LINES)
        elif event.angleDelta().y() < 0:
            self._view.scroll_down(WHEEL_LINES)
        self._render()

    def _on_key(self, event: QKeyEvent) -> bool:
        """Handle scroll, recall and control keys. Returns True if consumed."""
        key = event.key()
        ctrl = bool(event.modifiers() & Qt.KeyboardModifier.ControlModifier)

        if key == Qt.Key.Key_Escape:
            if self._orchestrator.cancel():
                self._view.add_message("[Interrupting...]")
            return True
        if key == Qt.Key.Key_PageUp:
            self._view.scroll_up(PAGE_LINES)
            return True
        if key == Qt.Key.Key_PageDown:
            self._view.scroll_down(PAGE_LINES)
            return True
        if ctrl and key == Qt.Key.Key_Up:
            self._view.scroll_up(STEP_LINES)
            return True
        if ctrl and key == Qt.Key.Key_Down:
            self._view.scroll_down(STEP_LINES)
            return True
        if ctrl and key == Qt.Key.Key_Home:
            self._view.jump_home()
            return True
        if ctrl and key == Qt.Key.Key_End:
            self._view.jump_end()
            return True
        if key == Qt.Key.Key_Up:
            recalled = self._recall.previous()
            if recalled is not None:
                self.chat_input.setText(recalled)
                return True
            return False
        if key == Qt.Key.Key_Down:
            recalled = self._recall.next()
            if recalled is not None:
                self.chat_input.setText(recalled)
                return True
            return False
        if event.text() == "t" and not self.chat_input.text():
            self._view.toggle_thinking()
            return True
        return False

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _on_tick(self) -> None:
        self._view.tick_spinner()
        if self._view.revision != self._rendered_revision:
            self._render()

    def _render(self) -> None:
        rendered = self._view.render()
        self._rendered_revision = rendered.revision
        self._draw(rendered)
        self._status.setText(self._view.stage.label)

    def _draw(self, rendered: RenderedView) -> None:
        doc = self._scrollback.document()
        doc.clear()
        cursor = QTextCursor(doc)
        for i, line in enumerate(rendered.lines):
            if i:
                cursor.insertBlock()
            cursor.insertText(line.text, _char_format(line.style))

        block = doc.findBlockByNumber(rendered.focus)
        focus_cursor = QTextCursor(block)
        self._scrollback.setTextCursor(focus_cursor)
        self._scrollback.ensureCursorVisible()

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802
        self.refresh_timer.stop()
        self._orchestrator.shutdown()
        super().closeEvent(event)
