"""Front-end independent display state."""

from __future__ import annotations

from zweek.ui.view_model import (
    STICKY,
    CommandRecall,
    LineStyle,
    PipelineStage,
    RenderedView,
    ScrollbackViewModel,
    ScrollState,
    StyledLine,
    classify_line,
)

__all__ = [
    "STICKY",
    "CommandRecall",
    "LineStyle",
    "PipelineStage",
    "RenderedView",
    "ScrollbackViewModel",
    "ScrollState",
    "StyledLine",
    "classify_line",
]
